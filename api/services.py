"""
Service initialization and dependency injection for the sales assistant API.

Creates and manages all service instances used by the API.
"""

import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import HTTPException

from config.settings import get_settings, Settings
from assistant.knowledge_base import KnowledgeBase, load_knowledge
from assistant.context_store import ContextStore
from assistant.response_generator import ResponseGenerator
from assistant.metrics import AssistantMetrics
from assistant.orchestrator import Orchestrator
from database.session import Database, init_db
from database.seed import seed_demo_catalog
from engines.product_engine import ProductEngine
from engines.quote_engine import QuoteEngine
from engines.compliance_engine import ComplianceEngine
from lead_scoring.notifications import (
    DatabaseNotificationSink,
    NotificationDispatcher,
    NotificationSink,
    WebhookNotificationSink,
)
from lead_scoring.scoring_engine import NotificationCooldown, ScoringEngine
from nlu.intent_classifier import IntentClassifier
from nlu.pattern_matcher import PatternMatcher

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.knowledge: Optional[KnowledgeBase] = None
        self.database: Optional[Database] = None
        self.pattern_matcher: Optional[PatternMatcher] = None
        self.intent_classifier: Optional[IntentClassifier] = None
        self.product_engine: Optional[ProductEngine] = None
        self.quote_engine: Optional[QuoteEngine] = None
        self.compliance_engine: Optional[ComplianceEngine] = None
        self.context_store: Optional[ContextStore] = None
        self.dispatcher: Optional[NotificationDispatcher] = None
        self.scoring_engine: Optional[ScoringEngine] = None
        self.response_generator: Optional[ResponseGenerator] = None
        self.metrics: Optional[AssistantMetrics] = None
        self.orchestrator: Optional[Orchestrator] = None
        self._housekeeper: Optional[asyncio.Task] = None
        self._initialized = False

    async def initialize(self, settings: Optional[Settings] = None):
        """
        Initialize all services.

        Knowledge and catalog failures are fatal: the assistant cannot
        answer anything without them.
        """
        if self._initialized:
            return

        self.settings = settings or get_settings()
        s = self.settings
        logger.info(f"Initializing services (knowledge: {s.knowledge_directory})")

        self.knowledge = load_knowledge(s.knowledge_directory)
        await self._init_database()
        self._init_nlu()
        await self._init_engines()
        self._init_sessions_and_scoring()
        self._init_orchestrator()

        self._initialized = True
        logger.info("All services initialized successfully")

    async def _init_database(self):
        s = self.settings
        self.database = await init_db(
            s.database_url,
            pool_size=s.database_pool_size,
            max_overflow=s.database_max_overflow,
        )
        if s.seed_demo_catalog:
            await seed_demo_catalog(self.database)

    def _init_nlu(self):
        self.pattern_matcher = PatternMatcher.from_knowledge(
            self.knowledge.patterns, self.knowledge.synonyms
        )
        self.intent_classifier = IntentClassifier(
            self.pattern_matcher,
            confidence_threshold=self.settings.confidence_threshold,
            ambiguity_margin=self.settings.ambiguity_margin,
        )
        logger.info(f"NLU ready: {len(self.pattern_matcher.patterns)} patterns")

    async def _init_engines(self):
        self.product_engine = ProductEngine()
        await self.product_engine.refresh(self.database)
        logger.info(f"Product engine ready: {self.product_engine.product_count} products")

        self.quote_engine = QuoteEngine(self.product_engine)
        self.compliance_engine = ComplianceEngine(self.product_engine, self.knowledge.compliance)
        await self.compliance_engine.load_database_standards(self.database)

    def _init_sessions_and_scoring(self):
        s = self.settings
        self.context_store = ContextStore(
            self.database,
            inactivity_window=timedelta(days=s.session_inactivity_days),
            history_limit=s.session_history_limit,
            max_cached=s.session_cache_size,
        )

        sinks: List[NotificationSink] = [DatabaseNotificationSink(self.database, recipient=s.sales_email)]
        if s.lead_webhook_url:
            sinks.append(WebhookNotificationSink(s.lead_webhook_url, api_key=s.lead_webhook_api_key))
        self.dispatcher = NotificationDispatcher(sinks, max_queue=s.notification_queue_size)

        self.scoring_engine = ScoringEngine(
            self.database,
            dispatcher=self.dispatcher,
            cooldown=NotificationCooldown(window=timedelta(minutes=s.hot_lead_cooldown_minutes)),
        )
        logger.info(f"Lead scoring ready with {len(sinks)} notification sink(s)")

    def _init_orchestrator(self):
        self.response_generator = ResponseGenerator(
            self.knowledge.responses,
            variables=self.settings.template_variables,
        )
        self.metrics = AssistantMetrics()
        self.orchestrator = Orchestrator(
            context_store=self.context_store,
            classifier=self.intent_classifier,
            product_engine=self.product_engine,
            quote_engine=self.quote_engine,
            compliance_engine=self.compliance_engine,
            response_generator=self.response_generator,
            scoring_engine=self.scoring_engine,
            metrics=self.metrics,
        )
        logger.info("Assistant orchestrator ready")

    # ── Background work ───────────────────────────────

    def start_background(self):
        """Start the notification worker and the periodic cache sweep."""
        self.dispatcher.start()
        if self._housekeeper is None:
            self._housekeeper = asyncio.create_task(
                self._housekeeping_loop(self.settings.housekeeping_interval_seconds)
            )

    def housekeeping(self) -> dict:
        """Evict idle cached sessions and expired hot lead cooldowns."""
        swept = {
            "sessions_evicted": self.context_store.evict_expired(),
            "cooldowns_pruned": self.scoring_engine.cooldown.prune(),
        }
        logger.debug(f"Housekeeping: {swept}")
        return swept

    async def _housekeeping_loop(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            self.housekeeping()

    async def shutdown(self):
        if self._housekeeper is not None:
            self._housekeeper.cancel()
            try:
                await self._housekeeper
            except asyncio.CancelledError:
                pass
            self._housekeeper = None
        if self.dispatcher is not None:
            await self.dispatcher.stop()
        if self.database is not None:
            await self.database.close()
        self._initialized = False

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.orchestrator is not None

    def health(self) -> dict:
        """Return health status of all services."""
        status = {
            "initialized": self._initialized,
            "database": self.database is not None,
            "knowledge": self.knowledge.versions if self.knowledge else None,
            "notifications": self.dispatcher.stats() if self.dispatcher else None,
        }
        if self.orchestrator is not None:
            status["components"] = self.orchestrator.health()
        return status


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


async def initialize_services(settings: Optional[Settings] = None) -> Services:
    """Initialize all services (called at startup)."""
    await _services.initialize(settings)
    return _services


def reset_services():
    """Replace the singleton with a fresh, uninitialized container."""
    global _services
    _services = Services()


def require_services() -> Services:
    """Route dependency: the initialized services, or 503 while starting up."""
    if not _services.is_ready:
        raise HTTPException(status_code=503, detail="Assistant services are not ready")
    return _services
