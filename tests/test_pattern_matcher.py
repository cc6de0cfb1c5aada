"""Tests for the pattern matcher and entity extraction."""

import pytest

from nlu.pattern_matcher import PatternMatcher


# ── Normalization ─────────────────────────────────────

class TestNormalization:
    def test_lowercases_and_strips_punctuation(self, matcher):
        assert matcher.normalize("  Do you have M12 BOLTS?!  ") == "do you have m12 bolts"

    def test_keeps_hyphens_and_dots(self, matcher):
        assert matcher.normalize("6205-2RS, grade 8.8") == "6205-2rs grade 8.8"

    def test_removes_thousands_separators(self, matcher):
        assert matcher.normalize("I need 1,500 bolts") == "i need 1500 bolts"

    @pytest.mark.parametrize("text", [
        "  Do you have M12 BOLTS?!  ",
        "I need 1,500,000 washers @ R2.50 each",
        "1,2345 -- 6205-2RS / grade 8.8",
        "Hard-hat (Class B) for   mining\t\tsite",
        "",
    ])
    def test_normalize_is_idempotent(self, matcher, text):
        once = matcher.normalize(text)
        assert matcher.normalize(once) == once

    def test_empty_input(self, matcher):
        assert matcher.normalize("") == ""
        assert matcher.match("") == []

    def test_synonyms_and_typos_resolve_to_canonical(self, matcher):
        tokens = matcher.tokenize("prise for bolr")
        assert tokens.canonical == ["price", "for", "bolt"]
        assert {"from": "prise", "to": "price"} in tokens.mapped
        assert {"from": "bolr", "to": "bolt"} in tokens.mapped

    def test_single_word_locations_canonicalize(self, matcher):
        assert matcher.canonicalize("deliver to durban") == "delivery to kwazulu-natal"


# ── Matching ──────────────────────────────────────────

class TestMatching:
    def test_greeting_scores_full_confidence(self, matcher):
        top = matcher.match("Hello")[0]
        assert top.intent == "GREETING"
        assert top.score == pytest.approx(1.0)
        assert top.match_type == "both"

    def test_candidates_sorted_by_score(self, matcher):
        matches = matcher.match("I need 150 M12 bolts delivered to Durban")
        scores = [m.score for m in matches]
        assert scores == sorted(scores, reverse=True)
        assert matches[0].intent == "PRICE_QUOTE"

    def test_typo_only_matches_canonical_text(self, matcher):
        matches = matcher.match("can you send me a qoute")
        quote = next(m for m in matches if m.pattern_id == "price_direct")
        assert quote.match_type == "canonical"
        assert quote.synonyms_used == [{"from": "qoute", "to": "quote"}]

    def test_fallback_patterns_only_when_nothing_matches(self, matcher):
        matches = matcher.match("which one")
        assert len(matches) == 1
        assert matches[0].match_type == "fallback"
        assert matches[0].score == PatternMatcher.FALLBACK_SCORE

    def test_no_match_returns_empty(self, matcher):
        assert matcher.match("xyz qwerty") == []

    def test_score_is_capped(self, matcher):
        for m in matcher.match("Is this compliant with SANS 1700 certification?"):
            assert 0.0 < m.score <= 1.0

    def test_metrics_count_matches_and_synonyms(self, matcher):
        matcher.match("hello")
        matcher.match("bolts please")
        metrics = matcher.metrics()
        assert metrics["total_matches"] == 2
        assert metrics["pattern_hits"]["greeting_basic"] == 1
        assert metrics["synonym_hits"]["bolts->bolt"] == 1
        assert metrics["avg_match_time_ms"] >= 0


# ── Fuzzy matching ────────────────────────────────────

class TestFuzzyMatch:
    @pytest.mark.parametrize("query,target,expected", [
        ("bolt", "bolt", 1.0),
        ("bolt", "hex bolt m12", 0.9),
        ("hex bolt m12", "bolt", 0.8),
        ("", "bolt", 0.0),
    ])
    def test_fixed_scores(self, query, target, expected):
        assert PatternMatcher.fuzzy_match(query, target) == expected

    def test_character_overlap(self):
        # {a, b} shared of {a, b, c, d}
        assert PatternMatcher.fuzzy_match("abcd", "ab x") == pytest.approx(2 / 4)


# ── Entities ──────────────────────────────────────────

class TestEntityExtraction:
    def test_quantity_and_code(self, matcher):
        entities = matcher.extract_entities("I need 150 M12 bolts")
        assert entities.product_codes == ["M12"]
        assert [q.value for q in entities.quantities] == [150]
        assert entities.first_quantity.unit == "units"

    def test_quantity_with_unit(self, matcher):
        entities = matcher.extract_entities("20 boxes of washers")
        assert entities.first_quantity.value == 20
        assert entities.first_quantity.unit == "boxes"

    def test_measurement_is_not_a_quantity(self, matcher):
        entities = matcher.extract_entities("bolt 50mm long")
        assert entities.quantities == []
        assert entities.measurements[0].value == 50.0
        assert entities.measurements[0].unit == "mm"

    def test_multi_word_location(self, matcher):
        entities = matcher.extract_entities("deliver to Cape Town please")
        assert entities.locations == ["western cape"]

    def test_order_and_quote_numbers(self, matcher):
        entities = matcher.extract_entities("status of ORD-12345 and QUO-778")
        assert entities.order_numbers == ["ORD-12345"]
        assert entities.quote_numbers == ["QUO-778"]
        assert entities.quantities == []

    def test_standard_code(self, matcher):
        entities = matcher.extract_entities("is it SANS 1700 approved")
        assert entities.standard_codes == ["SANS-1700"]
        assert entities.quantities == []

    def test_bearing_code(self, matcher):
        entities = matcher.extract_entities("price of 6205-2RS")
        assert entities.product_codes == ["6205-2RS"]
        assert entities.quantities == []

    def test_all_entity_types_present(self, matcher):
        data = matcher.extract_entities("hello").to_dict()
        for key in ("quantities", "product_codes", "order_numbers", "quote_numbers",
                    "locations", "measurements", "standard_codes"):
            assert data[key] == []
