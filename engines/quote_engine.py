"""
Pricing and quote engine.

Applies tiered bulk discounts, the loyalty discount, VAT and location
based delivery. Money is carried unrounded through every step and only
rounded to cents in the returned figures.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple

from .product_engine import ProductEngine, ProductRecord

logger = logging.getLogger(__name__)

TAX_RATE = 0.15
LOYALTY_DISCOUNT = 0.02
CURRENCY = "ZAR"
CURRENCY_SYMBOL = "R"
QUOTE_VALIDITY_DAYS = 14

# (min quantity, discount) ascending; product tiers replace these entirely
DEFAULT_BULK_DISCOUNTS: List[Tuple[int, float]] = [
    (100, 0.10),
    (500, 0.15),
    (1000, 0.20),
]

# Checked in order; the first key contained in the location wins
DELIVERY_RATES: List[Tuple[str, Dict[str, float]]] = [
    ("gauteng", {"base_cost": 150, "per_kg": 2, "days": 2}),
    ("johannesburg", {"base_cost": 150, "per_kg": 2, "days": 2}),
    ("pretoria", {"base_cost": 180, "per_kg": 2.5, "days": 2}),
    ("randfontein", {"base_cost": 100, "per_kg": 1.5, "days": 1}),
    ("western cape", {"base_cost": 450, "per_kg": 5, "days": 4}),
    ("cape town", {"base_cost": 450, "per_kg": 5, "days": 4}),
    ("kwazulu-natal", {"base_cost": 350, "per_kg": 4, "days": 3}),
    ("durban", {"base_cost": 350, "per_kg": 4, "days": 3}),
    ("mpumalanga", {"base_cost": 280, "per_kg": 3.5, "days": 3}),
    ("limpopo", {"base_cost": 350, "per_kg": 4, "days": 4}),
    ("north west", {"base_cost": 250, "per_kg": 3, "days": 3}),
    ("free state", {"base_cost": 300, "per_kg": 3.5, "days": 3}),
    ("eastern cape", {"base_cost": 400, "per_kg": 4.5, "days": 4}),
    ("northern cape", {"base_cost": 450, "per_kg": 5, "days": 5}),
]
DEFAULT_DELIVERY_RATE = {"base_cost": 400, "per_kg": 4, "days": 5}

LOGISTICS_BUFFER = 1.2
DEFAULT_UNIT_WEIGHT_KG = 0.1
MIN_WEIGHT_KG = 1.0
ESTIMATE_WEIGHT_KG = 10.0
CENTS = Decimal("0.01")


def round_money(value: float) -> float:
    """Half-up to cents."""
    return float(Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP))


@dataclass
class DeliveryEstimate:
    location: str
    cost: float
    days: int
    weight_kg: float
    matched_rate: Optional[str] = None

    @property
    def note(self) -> str:
        return f"Delivery to {self.location.title()}: {self.days} working days (includes logistics buffer)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "cost": round_money(self.cost),
            "estimated_days": self.days,
            "weight_kg": round(self.weight_kg, 2),
            "matched_rate": self.matched_rate,
            "note": self.note,
        }


@dataclass
class PricingQuote:
    """Price of one product line. Amounts are unrounded until ``to_dict``."""

    product: ProductRecord
    quantity: int
    unit_price: float
    subtotal: float
    bulk_discount: float = 0.0
    loyalty_discount: float = 0.0
    delivery: Optional[DeliveryEstimate] = None

    @property
    def original_subtotal(self) -> float:
        return self.product.price * self.quantity

    @property
    def vat(self) -> float:
        return self.subtotal * TAX_RATE

    @property
    def delivery_cost(self) -> float:
        return self.delivery.cost if self.delivery else 0.0

    @property
    def total(self) -> float:
        return self.subtotal + self.vat + self.delivery_cost

    @property
    def savings(self) -> float:
        return (self.original_subtotal - self.subtotal) * (1 + TAX_RATE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "sku": self.product.sku,
                "unit": self.product.unit,
            },
            "quantity": self.quantity,
            "pricing": {
                "unit_price": round_money(self.unit_price),
                "original_unit_price": round_money(self.product.price),
                "subtotal": round_money(self.subtotal),
                "vat": round_money(self.vat),
                "vat_rate": TAX_RATE * 100,
                "delivery": round_money(self.delivery_cost),
                "total": round_money(self.total),
            },
            "discounts": {
                "bulk_discount": round(self.bulk_discount * 100, 2),
                "bulk_discount_amount": round_money(self.original_subtotal * self.bulk_discount),
                "loyalty_discount": round(self.loyalty_discount * 100, 2),
                "total_savings": round_money(self.savings),
            },
            "delivery": self.delivery.to_dict() if self.delivery else None,
            "currency": CURRENCY,
            "currency_symbol": CURRENCY_SYMBOL,
        }


@dataclass
class Quote:
    """Multi-line quote with a single delivery destination."""

    lines: List[PricingQuote]
    delivery: Optional[DeliveryEstimate] = None
    is_loyalty_client: bool = False
    missing_products: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def subtotal(self) -> float:
        return sum(line.subtotal for line in self.lines)

    @property
    def vat(self) -> float:
        return self.subtotal * TAX_RATE

    @property
    def delivery_cost(self) -> float:
        return self.delivery.cost if self.delivery else 0.0

    @property
    def total(self) -> float:
        return self.subtotal + self.vat + self.delivery_cost

    @property
    def savings(self) -> float:
        return sum(line.savings for line in self.lines)

    @property
    def valid_until(self) -> datetime:
        return self.created_at + timedelta(days=QUOTE_VALIDITY_DAYS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [
                {
                    "product_id": line.product.id,
                    "name": line.product.name,
                    "sku": line.product.sku,
                    "unit": line.product.unit,
                    "quantity": line.quantity,
                    "unit_price": round_money(line.unit_price),
                    "line_total": round_money(line.subtotal),
                    "discount_applied": round(line.bulk_discount * 100, 2),
                }
                for line in self.lines
            ],
            "item_count": len(self.lines),
            "missing_products": self.missing_products,
            "summary": {
                "subtotal": round_money(self.subtotal),
                "vat": round_money(self.vat),
                "vat_rate": TAX_RATE * 100,
                "delivery": round_money(self.delivery_cost),
                "total": round_money(self.total),
                "savings": round_money(self.savings),
            },
            "delivery": self.delivery.to_dict() if self.delivery else None,
            "loyalty_applied": self.is_loyalty_client,
            "validity": {
                "created_at": self.created_at.isoformat(),
                "valid_days": QUOTE_VALIDITY_DAYS,
                "valid_until": self.valid_until.isoformat(),
            },
            "currency": CURRENCY,
            "currency_symbol": CURRENCY_SYMBOL,
        }


class QuoteEngine:
    """Prices products from the shared product catalog."""

    def __init__(self, product_engine: ProductEngine):
        self.product_engine = product_engine

    # ── Discounts ─────────────────────────────────────

    @staticmethod
    def discount_tiers(product: Optional[ProductRecord] = None) -> List[Tuple[int, float]]:
        if product is not None and product.bulk_discounts:
            tiers = [(int(t["min_quantity"]), float(t["discount"])) for t in product.bulk_discounts]
            return sorted(tiers)
        return list(DEFAULT_BULK_DISCOUNTS)

    def bulk_discount(self, product: Optional[ProductRecord], quantity: int) -> float:
        """Discount of the highest tier whose minimum the quantity meets."""
        discount = 0.0
        for min_quantity, tier_discount in self.discount_tiers(product):
            if quantity >= min_quantity:
                discount = tier_discount
        return discount

    def bulk_discount_info(self, product_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        product = None
        if product_id:
            product = self.product_engine.get_product(product_id)
            if product is None:
                return None
        tiers = self.discount_tiers(product)
        return {
            "product_id": product.id if product else None,
            "tiers": [
                {
                    "min_quantity": min_quantity,
                    "discount_percent": round(discount * 100, 2),
                    "description": f"{discount * 100:g}% off for {min_quantity}+ units",
                }
                for min_quantity, discount in tiers
            ],
            "loyalty_discount": {
                "percent": LOYALTY_DISCOUNT * 100,
                "description": f"Additional {LOYALTY_DISCOUNT * 100:g}% for registered account clients",
            },
            "note": "Discounts are cumulative. The loyalty discount applies on top of bulk discounts.",
        }

    # ── Delivery ──────────────────────────────────────

    @staticmethod
    def delivery_rate(location: str) -> Tuple[Optional[str], Dict[str, float]]:
        location_lower = location.lower()
        for key, rate in DELIVERY_RATES:
            if key in location_lower:
                return key, rate
        return None, DEFAULT_DELIVERY_RATE

    def calculate_delivery(self, location: str, weight_kg: float) -> DeliveryEstimate:
        matched, rate = self.delivery_rate(location)
        weight = max(MIN_WEIGHT_KG, weight_kg)
        days = math.ceil(round(rate["days"] * LOGISTICS_BUFFER, 6))
        return DeliveryEstimate(
            location=location,
            cost=rate["base_cost"] + weight * rate["per_kg"],
            days=days,
            weight_kg=weight,
            matched_rate=matched,
        )

    def delivery_estimate(self, location: str) -> Dict[str, Any]:
        estimate = self.calculate_delivery(location, ESTIMATE_WEIGHT_KG)
        return {
            **estimate.to_dict(),
            "buffer": f"All times include a {round((LOGISTICS_BUFFER - 1) * 100)}% logistics buffer",
            "disclaimer": "Final delivery cost is calculated on the order weight",
        }

    @staticmethod
    def estimated_weight(product: ProductRecord, quantity: int) -> float:
        per_unit = product.weight_kg if product.weight_kg else DEFAULT_UNIT_WEIGHT_KG
        return per_unit * quantity

    # ── Pricing ───────────────────────────────────────

    def calculate_price(
        self,
        product_id: str,
        quantity: int,
        location: Optional[str] = None,
        is_loyalty_client: bool = False,
    ) -> Optional[PricingQuote]:
        """Price one product line. Returns None if the product is unknown."""
        product = self.product_engine.get_product(product_id)
        if product is None:
            return None
        return self._price_line(product, quantity, location, is_loyalty_client)

    def _price_line(
        self,
        product: ProductRecord,
        quantity: int,
        location: Optional[str],
        is_loyalty_client: bool,
    ) -> PricingQuote:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")

        bulk = self.bulk_discount(product, quantity)
        unit_price = product.price * (1 - bulk)
        loyalty = 0.0
        if is_loyalty_client:
            loyalty = LOYALTY_DISCOUNT
            unit_price = unit_price * (1 - LOYALTY_DISCOUNT)

        delivery = None
        if location:
            delivery = self.calculate_delivery(location, self.estimated_weight(product, quantity))

        return PricingQuote(
            product=product,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=unit_price * quantity,
            bulk_discount=bulk,
            loyalty_discount=loyalty,
            delivery=delivery,
        )

    def calculate_quote(
        self,
        items: List[Dict[str, Any]],
        location: Optional[str] = None,
        is_loyalty_client: bool = False,
    ) -> Quote:
        """
        Price several lines with tax applied once and one delivery.

        Args:
            items: [{"product_id": ..., "quantity": ...}]
            location: single delivery destination for the whole quote
            is_loyalty_client: apply the loyalty discount to every line
        """
        if not items:
            raise ValueError("a quote needs at least one item")

        lines: List[PricingQuote] = []
        missing: List[str] = []
        weight = 0.0
        for item in items:
            product = self.product_engine.get_product(item["product_id"])
            if product is None:
                missing.append(item["product_id"])
                continue
            line = self._price_line(product, int(item["quantity"]), None, is_loyalty_client)
            lines.append(line)
            weight += self.estimated_weight(product, line.quantity)

        if missing:
            logger.warning(f"Quote skipped unknown products: {missing}")

        delivery = self.calculate_delivery(location, weight) if location and lines else None
        return Quote(
            lines=lines,
            delivery=delivery,
            is_loyalty_client=is_loyalty_client,
            missing_products=missing,
        )
