"""Tests for product search, compatibility and recommendations."""

import pytest

from engines.product_engine import ProductEngine, RecommendationKind

M12_BOLT = "FB-HB-M12-50-88"
M12_NUT = "FB-HN-M12-8"
M10_BOLT = "FB-HB-M10-50-88"
M10_NUT = "FB-HN-M10-8"
BEARING_OUT = "BR-6206-2RS"


# ── Search ────────────────────────────────────────────

class TestSearch:
    def test_featured_product_ranks_first(self, product_engine):
        result = product_engine.search("hex bolt")
        skus = [p["sku"] for p in result.products]
        assert skus[:2] == [M10_BOLT, M12_BOLT]
        assert result.found

    def test_product_code_narrows_ranking(self, product_engine):
        result = product_engine.search("bolt", product_code="M12")
        assert result.products[0]["sku"] == M12_BOLT

    def test_scores_are_descending(self, product_engine):
        scores = [p["relevance_score"] for p in product_engine.search("hex").products]
        assert scores == sorted(scores, reverse=True)

    def test_out_of_stock_excluded_by_default(self, product_engine):
        default = [p["sku"] for p in product_engine.search("bearing").products]
        everything = [p["sku"] for p in product_engine.search("bearing", include_out_of_stock=True).products]
        assert BEARING_OUT not in default
        assert BEARING_OUT in everything

    def test_category_browse(self, product_engine):
        result = product_engine.search("", category="bearings", include_out_of_stock=True)
        assert {p["sku"] for p in result.products} == {"BR-6205-2RS", BEARING_OUT}

    def test_empty_query_lists_scope(self, product_engine):
        result = product_engine.search("", max_results=10)
        assert result.total_matched == 11
        assert result.count == 10

    def test_no_match(self, product_engine):
        result = product_engine.search("zzqq")
        assert not result.found
        assert result.to_dict() == {"count": 0, "total_matched": 0, "products": []}

    def test_formatted_product(self, product_engine):
        product = product_engine.search("hex bolt m12").products[0]
        assert product["sku"] == M12_BOLT
        assert product["category"] == "Fasteners"
        assert product["in_stock"] is True
        assert product["stock_qty"] == 5000
        assert product["specifications"]["grade"] == "8.8"


# ── Lookups ───────────────────────────────────────────

class TestLookups:
    def test_get_product_and_sku(self, product_engine):
        assert product_engine.get_product(M12_BOLT).name == "Hex Bolt M12 x 50mm Grade 8.8"
        assert product_engine.get_by_sku("fb-hb-m12-50-88").id == M12_BOLT
        assert product_engine.get_product("missing") is None

    def test_index_lookup_by_size(self, product_engine):
        names = [p.name for p in product_engine.lookup("M12")]
        assert names == ["Flat Washer M12", "Hex Bolt M12 x 50mm Grade 8.8", "Hex Nut M12 Grade 8"]

    def test_stock_flag(self, product_engine):
        assert product_engine.get_product(BEARING_OUT).in_stock is False

    def test_categories_with_counts(self, product_engine):
        categories = {c["slug"]: c for c in product_engine.categories()}
        assert len(categories) == 8
        assert categories["fasteners"]["product_count"] == 5
        assert categories["hydraulics"]["product_count"] == 0
        assert product_engine.categories()[0]["slug"] == "fasteners"

    def test_by_category_featured_first(self, product_engine):
        products = product_engine.by_category("fasteners")
        assert products[0]["sku"] == M10_BOLT


# ── Compatibility ─────────────────────────────────────

class TestCompatibility:
    def test_same_size_is_compatible_with_grade_warning(self, product_engine):
        result = product_engine.check_compatibility(M12_BOLT, M12_NUT)
        assert result.compatible
        assert result.match_type == "size_match"
        assert result.grade_match is False
        assert result.material_match is True
        assert result.warnings == ["Different grades: 8.8 vs 8"]

    def test_size_mismatch(self, product_engine):
        result = product_engine.check_compatibility(M12_BOLT, M10_NUT)
        assert not result.compatible
        assert result.match_type == "size_mismatch"
        assert result.warnings[0] == "Size mismatch: M12 vs M10"

    def test_unknown_product(self, product_engine):
        assert product_engine.check_compatibility(M12_BOLT, "missing") is None


# ── Recommendations ───────────────────────────────────

class TestRecommendations:
    def test_complementary(self, product_engine):
        skus = [p["sku"] for p in product_engine.recommendations(M12_BOLT)]
        assert skus == [M10_BOLT, "FB-FW-M12", M10_NUT, M12_NUT]

    def test_alternative_within_price_band(self, product_engine):
        skus = [p["sku"] for p in product_engine.recommendations(M12_BOLT, RecommendationKind.ALTERNATIVE)]
        assert skus == [M10_BOLT]

    def test_upgrade_is_pricier(self, product_engine):
        picks = product_engine.recommendations(M10_BOLT, RecommendationKind.UPGRADE)
        assert [p["sku"] for p in picks] == [M12_BOLT]

    def test_limit(self, product_engine):
        assert len(product_engine.recommendations(M12_BOLT, limit=2)) == 2

    def test_unknown_product(self, product_engine):
        assert product_engine.recommendations("missing") is None

    def test_accepts_kind_string(self, product_engine):
        assert product_engine.recommendations(M12_BOLT, "alternative")[0]["sku"] == M10_BOLT


# ── Loading ───────────────────────────────────────────

class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_from_seeded_database(self, database):
        from database.seed import seed_demo_catalog

        assert await seed_demo_catalog(database) == 12
        assert await seed_demo_catalog(database) == 0

        engine = ProductEngine()
        await engine.refresh(database)
        assert engine.product_count == 12
        bolt = engine.get_by_sku(M12_BOLT)
        assert bolt.category_slug == "fasteners"
        assert bolt.price == 4.50
