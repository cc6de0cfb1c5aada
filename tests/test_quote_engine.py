"""Tests for pricing, discounts, delivery and quotes."""

from datetime import timedelta

import pytest

from engines.quote_engine import DEFAULT_BULK_DISCOUNTS, TAX_RATE, round_money

M12_BOLT = "FB-HB-M12-50-88"
M12_NUT = "FB-HN-M12-8"
M10_BOLT = "FB-HB-M10-50-88"
SAFETY_BOOTS = "SE-SB-ST"


# ── Discounts ─────────────────────────────────────────

class TestBulkDiscount:
    @pytest.mark.parametrize("quantity,discount", [
        (1, 0.0),
        (99, 0.0),
        (100, 0.10),
        (499, 0.10),
        (500, 0.15),
        (1000, 0.20),
        (25000, 0.20),
    ])
    def test_default_tiers(self, quote_engine, product_engine, quantity, discount):
        bolt = product_engine.get_product(M12_BOLT)
        assert quote_engine.bulk_discount(bolt, quantity) == discount

    @pytest.mark.parametrize("quantity,discount", [
        (100, 0.0),
        (249, 0.0),
        (250, 0.12),
        (1000, 0.22),
    ])
    def test_product_tiers_replace_defaults(self, quote_engine, product_engine, quantity, discount):
        bolt = product_engine.get_product(M10_BOLT)
        assert quote_engine.bulk_discount(bolt, quantity) == discount

    def test_discount_info(self, quote_engine):
        info = quote_engine.bulk_discount_info()
        assert len(info["tiers"]) == len(DEFAULT_BULK_DISCOUNTS)
        assert info["tiers"][0] == {
            "min_quantity": 100,
            "discount_percent": 10.0,
            "description": "10% off for 100+ units",
        }
        assert info["loyalty_discount"]["percent"] == 2.0

    def test_discount_info_for_product(self, quote_engine):
        info = quote_engine.bulk_discount_info(M10_BOLT)
        assert info["product_id"] == M10_BOLT
        assert [t["discount_percent"] for t in info["tiers"]] == [12.0, 22.0]

    def test_discount_info_unknown_product(self, quote_engine):
        assert quote_engine.bulk_discount_info("missing") is None


# ── Delivery ──────────────────────────────────────────

class TestDelivery:
    def test_matched_rate_with_buffer(self, quote_engine):
        estimate = quote_engine.calculate_delivery("Johannesburg CBD", 30.0)
        assert estimate.matched_rate == "johannesburg"
        assert estimate.cost == pytest.approx(150 + 30 * 2)
        assert estimate.days == 3

    def test_minimum_weight(self, quote_engine):
        estimate = quote_engine.calculate_delivery("gauteng", 0.2)
        assert estimate.weight_kg == 1.0
        assert estimate.cost == pytest.approx(152.0)

    def test_short_haul_rounds_days_up(self, quote_engine):
        assert quote_engine.calculate_delivery("randfontein", 5).days == 2

    def test_unknown_location_uses_default_rate(self, quote_engine):
        estimate = quote_engine.calculate_delivery("Windhoek", 10)
        assert estimate.matched_rate is None
        assert estimate.cost == pytest.approx(440.0)
        assert estimate.days == 6

    def test_estimate_for_ten_kilograms(self, quote_engine):
        estimate = quote_engine.delivery_estimate("western cape")
        assert estimate["cost"] == 500.0
        assert estimate["estimated_days"] == 5
        assert estimate["buffer"] == "All times include a 20% logistics buffer"
        assert estimate["note"].startswith("Delivery to Western Cape")

    def test_weight_defaults_per_unit(self, quote_engine, product_engine):
        assert quote_engine.estimated_weight(product_engine.get_product(M12_BOLT), 150) == pytest.approx(15.0)
        assert quote_engine.estimated_weight(product_engine.get_product(SAFETY_BOOTS), 10) == pytest.approx(18.0)


# ── Pricing ───────────────────────────────────────────

class TestCalculatePrice:
    def test_bulk_order_with_delivery(self, quote_engine):
        quote = quote_engine.calculate_price(M12_BOLT, 150, location="kwazulu-natal")
        assert quote.bulk_discount == 0.10
        assert quote.unit_price == pytest.approx(4.05)
        assert quote.subtotal == pytest.approx(607.5)
        assert quote.delivery_cost == pytest.approx(410.0)
        assert quote.delivery.days == 4
        assert quote.total == pytest.approx(1108.625)

    def test_total_is_subtotal_plus_vat_plus_delivery(self, quote_engine):
        quote = quote_engine.calculate_price(M12_BOLT, 750, location="limpopo")
        assert quote.total == pytest.approx(quote.subtotal + quote.vat + quote.delivery_cost)
        assert quote.vat == pytest.approx(quote.subtotal * TAX_RATE)

    def test_no_location_no_delivery(self, quote_engine):
        quote = quote_engine.calculate_price(M12_BOLT, 10)
        assert quote.delivery is None
        assert quote.total == pytest.approx(45.0 * 1.15)
        assert quote.to_dict()["delivery"] is None

    def test_loyalty_stacks_on_bulk(self, quote_engine):
        quote = quote_engine.calculate_price(M12_BOLT, 100, is_loyalty_client=True)
        assert quote.unit_price == pytest.approx(4.50 * 0.90 * 0.98)
        assert quote.to_dict()["discounts"]["loyalty_discount"] == 2.0

    def test_savings(self, quote_engine):
        quote = quote_engine.calculate_price(M12_BOLT, 150)
        assert quote.savings == pytest.approx((675.0 - 607.5) * 1.15)

    def test_rounded_output(self, quote_engine):
        data = quote_engine.calculate_price(M12_BOLT, 150, location="kwazulu-natal").to_dict()
        assert data["pricing"]["unit_price"] == 4.05
        assert data["pricing"]["subtotal"] == 607.5
        assert data["pricing"]["delivery"] == 410.0
        assert data["discounts"]["bulk_discount"] == 10.0
        assert data["currency"] == "ZAR"

    def test_total_rounds_half_cent_up(self, quote_engine):
        data = quote_engine.calculate_price(M12_BOLT, 150, location="kwazulu-natal").to_dict()
        assert data["pricing"]["vat"] == 91.13
        assert data["pricing"]["total"] == 1108.63

    @pytest.mark.parametrize("value,expected", [
        (1108.625, 1108.63),
        (91.125, 91.13),
        (0.005, 0.01),
        (2.675, 2.68),
        (4.0499999999999998, 4.05),
        (410.0, 410.0),
    ])
    def test_round_money(self, value, expected):
        assert round_money(value) == expected

    def test_unknown_product(self, quote_engine):
        assert quote_engine.calculate_price("missing", 10) is None

    def test_quantity_must_be_positive(self, quote_engine):
        with pytest.raises(ValueError):
            quote_engine.calculate_price(M12_BOLT, 0)


# ── Quotes ────────────────────────────────────────────

class TestCalculateQuote:
    def test_multi_line_quote(self, quote_engine):
        quote = quote_engine.calculate_quote(
            [{"product_id": M12_BOLT, "quantity": 150}, {"product_id": M12_NUT, "quantity": 150}],
            location="gauteng",
        )
        assert len(quote.lines) == 2
        assert quote.subtotal == pytest.approx(607.5 + 162.0)
        # One delivery on the combined weight
        assert quote.delivery.weight_kg == pytest.approx(30.0)
        assert quote.delivery_cost == pytest.approx(210.0)
        assert quote.total == pytest.approx(quote.subtotal * 1.15 + 210.0)

    def test_unknown_products_are_reported(self, quote_engine):
        quote = quote_engine.calculate_quote(
            [{"product_id": M12_BOLT, "quantity": 1}, {"product_id": "missing", "quantity": 5}]
        )
        assert quote.missing_products == ["missing"]
        assert quote.to_dict()["item_count"] == 1

    def test_validity_window(self, quote_engine):
        quote = quote_engine.calculate_quote([{"product_id": M12_BOLT, "quantity": 1}])
        assert quote.valid_until - quote.created_at == timedelta(days=14)
        assert quote.to_dict()["validity"]["valid_days"] == 14

    def test_loyalty_applies_to_every_line(self, quote_engine):
        quote = quote_engine.calculate_quote(
            [{"product_id": M12_BOLT, "quantity": 1}, {"product_id": M12_NUT, "quantity": 1}],
            is_loyalty_client=True,
        )
        assert all(line.loyalty_discount == 0.02 for line in quote.lines)
        assert quote.to_dict()["loyalty_applied"] is True

    def test_empty_quote_rejected(self, quote_engine):
        with pytest.raises(ValueError):
            quote_engine.calculate_quote([])
