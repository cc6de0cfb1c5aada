"""
Product search and recommendation engine.

The active catalog is loaded from the database at startup and kept in
memory together with a term -> product id inverted index, so every search
is a pure in-process computation.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from database.repositories import CatalogRepository
from database.session import Database
from nlu.pattern_matcher import PatternMatcher

logger = logging.getLogger(__name__)


class RecommendationKind(str, Enum):
    COMPLEMENTARY = "complementary"
    ALTERNATIVE = "alternative"
    UPGRADE = "upgrade"


@dataclass
class CategoryRecord:
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    sort_order: int = 0


@dataclass
class ProductRecord:
    """Read-only snapshot of a catalog product."""

    id: str
    name: str
    sku: str
    price: float
    unit: str = "each"
    description: Optional[str] = None
    category_slug: Optional[str] = None
    category_name: Optional[str] = None
    specifications: Dict[str, Any] = field(default_factory=dict)
    bulk_discounts: Optional[List[Dict[str, Any]]] = None
    weight_kg: Optional[float] = None
    is_featured: bool = False
    track_stock: bool = True
    stock_qty: int = 0

    @property
    def in_stock(self) -> bool:
        return not self.track_stock or self.stock_qty > 0

    @classmethod
    def from_model(cls, product) -> "ProductRecord":
        category = product.category
        return cls(
            id=product.id,
            name=product.name,
            sku=product.sku,
            price=float(product.price),
            unit=product.unit or "each",
            description=product.description,
            category_slug=category.slug if category else None,
            category_name=category.name if category else None,
            specifications=dict(product.specifications_json or {}),
            bulk_discounts=product.bulk_discounts_json,
            weight_kg=product.weight_kg,
            is_featured=bool(product.is_featured),
            track_stock=product.track_stock if product.track_stock is not None else True,
            stock_qty=product.stock_qty or 0,
        )


@dataclass
class SearchResult:
    products: List[Dict[str, Any]]
    total_matched: int

    @property
    def count(self) -> int:
        return len(self.products)

    @property
    def found(self) -> bool:
        return bool(self.products)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "total_matched": self.total_matched,
            "products": self.products,
        }


@dataclass
class CompatibilityResult:
    product_one: Dict[str, Any]
    product_two: Dict[str, Any]
    compatible: bool = True
    match_type: str = "unknown"
    size_match: Optional[bool] = None
    grade_match: Optional[bool] = None
    material_match: Optional[bool] = None
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_one": self.product_one,
            "product_two": self.product_two,
            "compatible": self.compatible,
            "match_type": self.match_type,
            "size_match": self.size_match,
            "grade_match": self.grade_match,
            "material_match": self.material_match,
            "warnings": self.warnings,
            "recommendations": self.recommendations,
        }


class ProductEngine:
    """
    In-memory product search over the active catalog.

    Relevance (no upper cap):
        exact name 1.0, name contains query 0.7
        SKU equals or contains query 0.9
        product code equals size/grade 0.9, else in name/SKU 0.8
        0.3 per query word found in the name (capped at 0.9), 0.1 in description
        fuzzy name similarity * 0.2
        featured +0.1, in stock +0.05
    Fuzzy and status boosts only apply to products that already matched,
    except that a query with no terms at all lists the whole scope.
    """

    EXACT_NAME = 1.0
    NAME_CONTAINS = 0.7
    SKU_MATCH = 0.9
    CODE_SPEC_MATCH = 0.9
    CODE_NAME_MATCH = 0.8
    WORD_NAME = 0.3
    WORD_NAME_CAP = 0.9
    WORD_DESCRIPTION = 0.1
    FUZZY_WEIGHT = 0.2
    FUZZY_ONLY_THRESHOLD = 0.8
    FEATURED_BOOST = 0.1
    IN_STOCK_BOOST = 0.05
    BROWSE_BASE = 0.01

    # Categories whose products are commonly bought together
    COMPLEMENTARY_CATEGORIES = {
        "fasteners": ["fasteners"],
        "bearings": ["bearings", "power-transmission"],
        "power-transmission": ["power-transmission", "bearings"],
        "hydraulics": ["hydraulics", "pneumatics"],
        "pneumatics": ["pneumatics", "hydraulics"],
        "electrical": ["electrical"],
        "safety-equipment": ["safety-equipment"],
    }

    INDEXED_SPEC_FIELDS = ("size", "grade", "material")

    def __init__(self):
        self._products: Dict[str, ProductRecord] = {}
        self._by_sku: Dict[str, str] = {}
        self._categories: List[CategoryRecord] = []
        self._index: Dict[str, Set[str]] = {}

    # ── Loading ───────────────────────────────────────

    def load(self, products: List[ProductRecord], categories: Optional[List[CategoryRecord]] = None):
        """Replace the catalog snapshot and rebuild the search index."""
        self._products = {p.id: p for p in products}
        self._by_sku = {p.sku.lower(): p.id for p in products}
        self._categories = sorted(categories or [], key=lambda c: (c.sort_order, c.name))
        self._build_index()
        logger.info(f"Product index built: {len(self._products)} products, {len(self._index)} terms")

    async def refresh(self, database: Database):
        async with database.session() as db:
            catalog = CatalogRepository(db)
            products = [ProductRecord.from_model(p) for p in await catalog.active_products()]
            categories = [
                CategoryRecord(
                    id=c.id, name=c.name, slug=c.slug,
                    description=c.description, sort_order=c.sort_order or 0,
                )
                for c in await catalog.active_categories()
            ]
        self.load(products, categories)

    def _build_index(self):
        self._index = {}
        for product in self._products.values():
            for word in product.name.lower().split():
                self._add_term(word, product.id)
            self._add_term(product.sku.lower(), product.id)
            if product.category_slug:
                self._add_term(product.category_slug, product.id)
            for key in self.INDEXED_SPEC_FIELDS:
                value = product.specifications.get(key)
                if isinstance(value, str) and value:
                    self._add_term(value.lower(), product.id)

    def _add_term(self, term: str, product_id: str):
        self._index.setdefault(term, set()).add(product_id)

    @property
    def product_count(self) -> int:
        return len(self._products)

    @property
    def term_count(self) -> int:
        return len(self._index)

    def lookup(self, term: str) -> List[ProductRecord]:
        """Products indexed under an exact term."""
        ids = self._index.get((term or "").lower(), set())
        return sorted((self._products[i] for i in ids), key=lambda p: p.name)

    # ── Search ────────────────────────────────────────

    def search(
        self,
        query: str = "",
        category: Optional[str] = None,
        product_code: Optional[str] = None,
        max_results: int = 10,
        include_out_of_stock: bool = False,
    ) -> SearchResult:
        scored = []
        for product in self._products.values():
            if category and product.category_slug != category:
                continue
            if not include_out_of_stock and not product.in_stock:
                continue
            score = self.score_product(product, query or "", product_code)
            if score > 0:
                scored.append((score, product))

        scored.sort(key=lambda item: (-item[0], item[1].name))
        return SearchResult(
            products=[self.format_product(p, score) for score, p in scored[:max_results]],
            total_matched=len(scored),
        )

    def score_product(self, product: ProductRecord, query: str, product_code: Optional[str] = None) -> float:
        query_lower = query.lower().strip()
        name = product.name.lower()
        sku = product.sku.lower()
        description = (product.description or "").lower()

        if not query_lower and not product_code:
            return self.BROWSE_BASE + self._status_boost(product)

        relevance = 0.0
        if query_lower:
            if name == query_lower:
                relevance += self.EXACT_NAME
            elif query_lower in name:
                relevance += self.NAME_CONTAINS
            if query_lower in sku:
                relevance += self.SKU_MATCH

        if product_code:
            code = product_code.lower()
            spec_values = {
                str(product.specifications.get(key, "")).lower()
                for key in ("size", "grade")
            }
            if code in spec_values:
                relevance += self.CODE_SPEC_MATCH
            elif code in name or code in sku:
                relevance += self.CODE_NAME_MATCH

        word_score = 0.0
        for word in re.split(r"\s+", query_lower):
            if len(word) < 2:
                continue
            if word in name:
                word_score += self.WORD_NAME
            if word in description:
                relevance += self.WORD_DESCRIPTION
        relevance += min(word_score, self.WORD_NAME_CAP)

        fuzzy = PatternMatcher.fuzzy_match(query_lower, name) if query_lower else 0.0
        if relevance <= 0 and fuzzy < self.FUZZY_ONLY_THRESHOLD:
            return 0.0

        return relevance + fuzzy * self.FUZZY_WEIGHT + self._status_boost(product)

    def _status_boost(self, product: ProductRecord) -> float:
        boost = 0.0
        if product.is_featured:
            boost += self.FEATURED_BOOST
        if product.track_stock and product.stock_qty > 0:
            boost += self.IN_STOCK_BOOST
        return boost

    @staticmethod
    def format_product(product: ProductRecord, score: float = 0.0) -> Dict[str, Any]:
        return {
            "id": product.id,
            "name": product.name,
            "sku": product.sku,
            "price": product.price,
            "unit": product.unit,
            "category": product.category_name or "General",
            "category_slug": product.category_slug,
            "in_stock": product.in_stock,
            "stock_qty": product.stock_qty if product.track_stock else None,
            "specifications": product.specifications,
            "description": product.description,
            "is_featured": product.is_featured,
            "relevance_score": round(score, 3),
        }

    # ── Lookups ───────────────────────────────────────

    def get_product(self, product_id: str) -> Optional[ProductRecord]:
        return self._products.get(product_id)

    def get_by_sku(self, sku: str) -> Optional[ProductRecord]:
        product_id = self._by_sku.get((sku or "").lower())
        return self._products.get(product_id) if product_id else None

    def by_category(self, category_slug: str, limit: int = 20) -> List[Dict[str, Any]]:
        products = [p for p in self._products.values() if p.category_slug == category_slug]
        products.sort(key=lambda p: (not p.is_featured, p.name))
        return [self.format_product(p) for p in products[:limit]]

    def categories(self) -> List[Dict[str, Any]]:
        counts: Dict[str, int] = {}
        for product in self._products.values():
            if product.category_slug:
                counts[product.category_slug] = counts.get(product.category_slug, 0) + 1
        return [
            {
                "id": c.id,
                "name": c.name,
                "slug": c.slug,
                "description": c.description,
                "product_count": counts.get(c.slug, 0),
            }
            for c in self._categories
        ]

    # ── Compatibility and recommendations ─────────────

    def check_compatibility(self, product_one_id: str, product_two_id: str) -> Optional[CompatibilityResult]:
        """
        Compare size, grade and material.

        A size mismatch makes the pair incompatible; grade and material
        mismatches only add warnings. Returns None if either product is unknown.
        """
        first = self.get_product(product_one_id)
        second = self.get_product(product_two_id)
        if first is None or second is None:
            return None

        specs_one, specs_two = first.specifications, second.specifications
        result = CompatibilityResult(
            product_one=self.format_product(first),
            product_two=self.format_product(second),
        )

        if specs_one.get("size") and specs_two.get("size"):
            result.size_match = specs_one["size"] == specs_two["size"]
            if result.size_match:
                result.match_type = "size_match"
            else:
                result.compatible = False
                result.match_type = "size_mismatch"
                result.warnings.append(f"Size mismatch: {specs_one['size']} vs {specs_two['size']}")

        if specs_one.get("grade") and specs_two.get("grade"):
            result.grade_match = specs_one["grade"] == specs_two["grade"]
            if not result.grade_match:
                result.warnings.append(f"Different grades: {specs_one['grade']} vs {specs_two['grade']}")

        if specs_one.get("material") and specs_two.get("material"):
            result.material_match = specs_one["material"] == specs_two["material"]
            if not result.material_match:
                result.warnings.append(
                    f"Different materials: {specs_one['material']} vs {specs_two['material']}"
                )

        if result.compatible:
            result.recommendations.append("These products can be used together")
        else:
            result.recommendations.append("Consider products with matching specifications")
        return result

    def recommendations(
        self,
        product_id: str,
        kind: RecommendationKind = RecommendationKind.COMPLEMENTARY,
        limit: int = 5,
    ) -> Optional[List[Dict[str, Any]]]:
        """Related products, or None if the source product is unknown."""
        source = self.get_product(product_id)
        if source is None:
            return None

        others = [p for p in self._products.values() if p.id != source.id]
        kind = RecommendationKind(kind)

        if kind == RecommendationKind.COMPLEMENTARY:
            targets = self.COMPLEMENTARY_CATEGORIES.get(source.category_slug or "", [source.category_slug])
            picks = [p for p in others if p.category_slug in targets]
            picks.sort(key=lambda p: (not p.is_featured, p.name))
        elif kind == RecommendationKind.ALTERNATIVE:
            low, high = source.price * 0.5, source.price * 1.5
            picks = [
                p for p in others
                if p.category_slug == source.category_slug and low <= p.price <= high
            ]
            picks.sort(key=lambda p: p.price)
        else:
            picks = [
                p for p in others
                if p.category_slug == source.category_slug and p.price > source.price
            ]
            picks.sort(key=lambda p: p.price)

        return [self.format_product(p) for p in picks[:limit]]
