"""
Domain engines used by the sales assistant:
- Product search, compatibility and recommendations
- Pricing, bulk discounts, delivery and quotes
- Industry compliance checks
"""

from .product_engine import ProductEngine, ProductRecord, CategoryRecord, RecommendationKind, SearchResult
from .quote_engine import QuoteEngine, PricingQuote, Quote, DeliveryEstimate
from .compliance_engine import ComplianceEngine, ComplianceResult

__all__ = [
    "ProductEngine",
    "ProductRecord",
    "CategoryRecord",
    "RecommendationKind",
    "SearchResult",
    "QuoteEngine",
    "PricingQuote",
    "Quote",
    "DeliveryEstimate",
    "ComplianceEngine",
    "ComplianceResult",
]
