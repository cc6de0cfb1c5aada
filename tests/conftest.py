"""Shared fixtures for sales assistant tests."""

import os
from datetime import datetime
from typing import List

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# Keep tests away from any developer .env database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-assistant.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from assistant.knowledge_base import load_knowledge
from assistant.response_generator import ResponseGenerator
from config.settings import PROJECT_ROOT, get_settings
from database.seed import DEMO_CATEGORIES, DEMO_PRODUCTS
from database.session import Database
from engines.compliance_engine import ComplianceEngine
from engines.product_engine import CategoryRecord, ProductEngine, ProductRecord
from engines.quote_engine import QuoteEngine
from nlu.intent_classifier import IntentClassifier
from nlu.pattern_matcher import PatternMatcher

KNOWLEDGE_DIR = PROJECT_ROOT / "knowledge"

COMPANY_VARIABLES = {
    "company_name": "Batlokoa Innovative Projects",
    "phone": "+27 11 693 1234",
    "email": "sales@batlokoa.co.za",
    "website": "https://batlokoa.co.za",
    "hours": "Mon-Fri 08:00-17:00",
}


def demo_catalog() -> List[ProductRecord]:
    """Demo products as in-memory records, keyed by SKU."""
    names = {c["slug"]: c["name"] for c in DEMO_CATEGORIES}
    return [
        ProductRecord(
            id=p["sku"],
            name=p["name"],
            sku=p["sku"],
            price=p["price"],
            unit=p.get("unit", "each"),
            description=p.get("description"),
            category_slug=p["category"],
            category_name=names[p["category"]],
            specifications=dict(p.get("specifications", {})),
            bulk_discounts=p.get("bulk_discounts"),
            weight_kg=p.get("weight_kg"),
            is_featured=p.get("is_featured", False),
            stock_qty=p.get("stock_qty", 0),
        )
        for p in DEMO_PRODUCTS
    ]


def demo_categories() -> List[CategoryRecord]:
    return [
        CategoryRecord(
            id=c["slug"],
            name=c["name"],
            slug=c["slug"],
            description=c.get("description"),
            sort_order=c.get("sort_order", 0),
        )
        for c in DEMO_CATEGORIES
    ]


# ── Knowledge and NLU ─────────────────────────────────

@pytest.fixture(scope="session")
def knowledge():
    return load_knowledge(KNOWLEDGE_DIR)


@pytest.fixture
def matcher(knowledge):
    return PatternMatcher.from_knowledge(knowledge.patterns, knowledge.synonyms)


@pytest.fixture
def classifier(matcher):
    return IntentClassifier(matcher)


# ── Engines ───────────────────────────────────────────

@pytest.fixture
def product_engine():
    engine = ProductEngine()
    engine.load(demo_catalog(), demo_categories())
    return engine


@pytest.fixture
def quote_engine(product_engine):
    return QuoteEngine(product_engine)


@pytest.fixture
def compliance_engine(product_engine, knowledge):
    return ComplianceEngine(product_engine, knowledge.compliance)


@pytest.fixture
def response_generator(knowledge):
    return ResponseGenerator(
        knowledge.responses,
        variables=COMPANY_VARIABLES,
        clock=lambda: datetime(2024, 5, 14, 9, 30),
    )


# ── Durable store ─────────────────────────────────────

@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'assistant.db'}")
    await db.create_all()
    yield db
    await db.close()


# ── HTTP ──────────────────────────────────────────────

@pytest.fixture
def client(tmp_path, monkeypatch):
    """FastAPI test client over a fresh, seeded SQLite store."""
    from api.main import create_app
    from api.services import reset_services

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("SEED_DEMO_CATALOG", "true")
    get_settings.cache_clear()
    reset_services()

    with TestClient(create_app()) as test_client:
        yield test_client

    reset_services()
    get_settings.cache_clear()
