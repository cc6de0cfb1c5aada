"""Tests for intent classification and handler parameters."""

import pytest

from nlu.intent_classifier import ConversationContext, Intent, IntentClassifier
from nlu.pattern_matcher import IntentPattern, PatternMatcher


# ── Intents ───────────────────────────────────────────

class TestIntents:
    @pytest.mark.parametrize("text,intent", [
        ("Hello", Intent.GREETING),
        ("thanks a lot", Intent.THANKS),
        ("How much is the hex bolt?", Intent.PRICE_QUOTE),
        ("Do you deliver to Cape Town?", Intent.DELIVERY_INQUIRY),
        ("Is the hard hat compliant for mining?", Intent.COMPLIANCE_CHECK),
        ("What is your BEE level?", Intent.BBBEE_INQUIRY),
        ("Is the 6206-2RS bearing in stock?", Intent.STOCK_CHECK),
        ("Where is my order ORD-12345", Intent.ORDER_STATUS),
    ])
    def test_classifies(self, classifier, text, intent):
        result = classifier.classify(text)
        assert result.intent == intent
        assert result.confidence >= classifier.confidence_threshold

    def test_no_match_is_unknown(self, classifier):
        result = classifier.classify("xyz qwerty")
        assert result.intent == Intent.UNKNOWN
        assert result.confidence == 0.0
        assert result.requires_clarification
        assert result.suggestions == IntentClassifier.DEFAULT_SUGGESTIONS

    def test_low_confidence_keeps_original_intent(self, classifier):
        result = classifier.classify("bolts please")
        assert result.intent == Intent.UNKNOWN
        assert result.original_intent == Intent.PRODUCT_SEARCH
        assert result.confidence < classifier.confidence_threshold
        assert result.suggestions == ["Search for products?"]

    def test_ambiguous_when_runner_up_is_close(self, classifier):
        result = classifier.classify("price for bulk")
        assert result.intent == Intent.PRICE_QUOTE
        assert result.is_ambiguous
        assert set(result.ambiguous_intents) == {Intent.PRICE_QUOTE, Intent.BULK_DISCOUNT}

    def test_clear_winner_is_not_ambiguous(self, classifier):
        result = classifier.classify("I need 150 M12 bolts delivered to Durban")
        assert not result.is_ambiguous
        assert result.ambiguous_intents == []

    def test_close_runner_up_with_same_intent_is_ambiguous(self, matcher):
        patterns = [
            IntentPattern.compile("price_a", "PRICE_QUOTE", r"\bprice\b", ["price"], 100),
            IntentPattern.compile("price_b", "PRICE_QUOTE", r"\bprice\b", ["price"], 90),
            IntentPattern.compile("search_any", "PRODUCT_SEARCH", r"\bprice\b", [], 10),
        ]
        classifier = IntentClassifier(PatternMatcher(patterns, [], {}, matcher.entity_extractor))

        result = classifier.classify("price")
        assert result.intent == Intent.PRICE_QUOTE
        assert result.confidence == 1.0
        assert result.is_ambiguous
        assert result.ambiguous_intents == [Intent.PRICE_QUOTE, Intent.PRODUCT_SEARCH]

    def test_distant_runner_up_is_not_ambiguous(self, matcher):
        patterns = [
            IntentPattern.compile("price_a", "PRICE_QUOTE", r"\bprice\b", ["price"], 100),
            IntentPattern.compile("search_any", "PRODUCT_SEARCH", r"\bprice\b", [], 10),
        ]
        classifier = IntentClassifier(PatternMatcher(patterns, [], {}, matcher.entity_extractor))

        result = classifier.classify("price")
        assert not result.is_ambiguous
        assert result.ambiguous_intents == []

    def test_unknown_pattern_intent_rejected(self, matcher):
        bad = IntentPattern.compile("bad", "NOT_AN_INTENT", r"\bfoo\b", [], 50)
        broken = PatternMatcher([bad], [], {}, matcher.entity_extractor)
        with pytest.raises(ValueError, match="unknown intent"):
            IntentClassifier(broken)


# ── Parameters ────────────────────────────────────────

class TestParameters:
    def test_price_quote_parameters(self, classifier):
        params = classifier.classify("I need 150 M12 bolts delivered to Durban").parameters
        assert params == {
            "quantity": 150,
            "unit": "units",
            "product_code": "M12",
            "location": "kwazulu-natal",
            "query": "M12 bolt",
        }

    def test_price_quote_defaults_quantity(self, classifier):
        params = classifier.classify("How much is the hex bolt?").parameters
        assert params["quantity"] == 1
        assert params["query"] == "hex bolt"

    def test_context_fills_missing_product_and_location(self, classifier):
        context = ConversationContext(last_product_id="FB-HB-M12-50-88", last_location="western cape")
        params = classifier.classify("How much for 500?", context).parameters
        assert params["product_id"] == "FB-HB-M12-50-88"
        assert params["location"] == "western cape"
        assert params["quantity"] == 500
        assert "query" not in params

    def test_explicit_product_beats_context(self, classifier):
        context = ConversationContext(last_product_id="FB-HB-M12-50-88")
        params = classifier.classify("How much is the hex nut?", context).parameters
        assert "product_id" not in params
        assert params["query"] == "hex nut"

    def test_product_search_category(self, classifier):
        params = classifier.classify("Do you have M12 bolts?").parameters
        assert params["category"] == "fasteners"
        assert params["product_code"] == "M12"
        assert params["query"] == "M12 bolt"

    def test_compliance_industry(self, classifier):
        params = classifier.classify("Is the hard hat compliant for mining?").parameters
        assert params["industry"] == "mining"
        assert params["query"] == "hard hat"

    def test_compatibility_pair(self, classifier):
        result = classifier.classify("Is the M12 bolt compatible with the M12 nut?")
        assert result.intent == Intent.COMPATIBILITY_CHECK
        assert result.parameters["product_one"] == "m12 bolt"
        assert result.parameters["product_two"] == "m12 nut"

    def test_bbbee_request_type(self, classifier):
        params = classifier.classify("Can I get a copy of your BEE certificate").parameters
        assert params == {"request_type": "certificate"}

    def test_order_number(self, classifier):
        params = classifier.classify("Where is my order ORD-12345").parameters
        assert params == {"order_number": "ORD-12345"}

    def test_greeting_has_no_parameters(self, classifier):
        assert classifier.classify("Hello").parameters == {}
