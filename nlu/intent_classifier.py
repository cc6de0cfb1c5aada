"""
Intent Classification for the sales assistant.

Picks (or rejects) the best intent from the pattern matcher's candidates,
flags ambiguity, and builds the intent-specific parameters a domain handler
needs, falling back to conversational context where the current turn is
silent.
"""

import re
import logging
from enum import Enum
from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass, field

from .entity_extractor import ExtractedEntities
from .pattern_matcher import PatternMatcher, PatternMatch

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    """Visitor intent categories."""
    PRODUCT_SEARCH = "PRODUCT_SEARCH"
    PRICE_QUOTE = "PRICE_QUOTE"
    SPEC_QUERY = "SPEC_QUERY"
    COMPLIANCE_CHECK = "COMPLIANCE_CHECK"
    DELIVERY_INQUIRY = "DELIVERY_INQUIRY"
    COMPATIBILITY_CHECK = "COMPATIBILITY_CHECK"
    BULK_DISCOUNT = "BULK_DISCOUNT"
    BBBEE_INQUIRY = "BBBEE_INQUIRY"
    PROJECT_ASSISTANCE = "PROJECT_ASSISTANCE"
    STOCK_CHECK = "STOCK_CHECK"
    ORDER_STATUS = "ORDER_STATUS"
    QUOTE_STATUS = "QUOTE_STATUS"
    GENERAL_INFO = "GENERAL_INFO"
    CONTACT_REQUEST = "CONTACT_REQUEST"
    GREETING = "GREETING"
    THANKS = "THANKS"
    UNKNOWN = "UNKNOWN"


@dataclass
class ConversationContext:
    """Derived conversational state the classifier may fall back to."""
    last_product_id: Optional[str] = None
    last_location: Optional[str] = None
    recent_intents: List[str] = field(default_factory=list)
    preferences: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ClassificationResult:
    """Result of intent classification."""
    intent: Intent
    confidence: float
    entities: ExtractedEntities = field(default_factory=ExtractedEntities)
    parameters: Dict[str, Any] = field(default_factory=dict)
    is_ambiguous: bool = False
    ambiguous_intents: List[Intent] = field(default_factory=list)
    requires_clarification: bool = False
    original_intent: Optional[Intent] = None
    suggestions: List[str] = field(default_factory=list)
    match_type: Optional[str] = None
    pattern_id: Optional[str] = None
    synonyms_used: List[Dict[str, str]] = field(default_factory=list)
    alternatives: List[PatternMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent.value,
            "confidence": round(self.confidence, 3),
            "entities": self.entities.to_dict(),
            "parameters": self.parameters,
            "is_ambiguous": self.is_ambiguous,
            "ambiguous_intents": [i.value for i in self.ambiguous_intents],
            "requires_clarification": self.requires_clarification,
            "original_intent": self.original_intent.value if self.original_intent else None,
            "suggestions": self.suggestions,
            "match_type": self.match_type,
            "pattern_id": self.pattern_id,
            "synonyms_used": self.synonyms_used,
            "alternatives": [m.to_dict() for m in self.alternatives],
        }


class IntentClassifier:
    """
    Classifies visitor intent from pattern matcher candidates.

    A candidate below the confidence threshold becomes UNKNOWN with
    suggestions; a runner-up of a different intent within the ambiguity
    margin marks the result ambiguous.
    """

    CONFIDENCE_THRESHOLD = 0.6
    AMBIGUITY_MARGIN = 0.1

    # Parameters each intent's handler consumes
    PARAMETER_MAP: Dict[Intent, Tuple[str, ...]] = {
        Intent.PRODUCT_SEARCH: ("query", "category", "product_code", "quantity"),
        Intent.PRICE_QUOTE: ("product_id", "query", "product_code", "quantity", "location"),
        Intent.SPEC_QUERY: ("product_id", "query", "product_code", "spec_type"),
        Intent.COMPLIANCE_CHECK: ("industry", "product_id", "query", "product_code", "standard"),
        Intent.DELIVERY_INQUIRY: ("location", "quantity", "product_id"),
        Intent.COMPATIBILITY_CHECK: ("product_one", "product_two"),
        Intent.BULK_DISCOUNT: ("quantity", "product_id", "query", "product_code"),
        Intent.BBBEE_INQUIRY: ("request_type",),
        Intent.PROJECT_ASSISTANCE: ("project_type", "industry"),
        Intent.STOCK_CHECK: ("product_id", "query", "product_code", "quantity"),
        Intent.ORDER_STATUS: ("order_number",),
        Intent.QUOTE_STATUS: ("quote_number",),
        Intent.GENERAL_INFO: ("info_type",),
        Intent.CONTACT_REQUEST: ("contact_type",),
        Intent.GREETING: (),
        Intent.THANKS: (),
        Intent.UNKNOWN: (),
    }

    DEFAULT_SUGGESTIONS = [
        "Search for products?",
        "Get a quote?",
        "Check delivery?",
        "Talk to sales?",
    ]

    SUGGESTION_TEXT = {
        Intent.PRODUCT_SEARCH: "Search for products?",
        Intent.PRICE_QUOTE: "Get pricing?",
        Intent.DELIVERY_INQUIRY: "Check delivery times?",
        Intent.COMPLIANCE_CHECK: "Verify compliance?",
    }

    # Product family keywords by category slug
    CATEGORY_KEYWORDS = {
        "fasteners": ["bolt", "nut", "washer", "screw", "fastener", "threaded rod", "anchor"],
        "bearings": ["bearing", "bush", "plummer"],
        "power-transmission": ["belt", "pulley", "chain", "sprocket", "coupling", "gearbox"],
        "hydraulics": ["hydraulic", "hose", "cylinder"],
        "pneumatics": ["pneumatic", "air fitting", "compressor"],
        "tools": ["caliper", "spanner", "wrench", "drill", "grinder", "tool"],
        "safety-equipment": ["helmet", "hard hat", "glove", "boot", "goggle", "vest", "ppe", "harness"],
        "electrical": ["cable", "wire", "switch", "breaker", "plug", "socket", "conduit"],
    }

    SPEC_TYPE_KEYWORDS = {
        "dimensions": ["size", "dimension", "length", "diameter", "width", "thread", "bore"],
        "material": ["material", "steel", "grade", "finish", "made of"],
        "performance": ["tensile", "strength", "load", "rating", "torque", "speed", "temperature"],
        "compliance": ["sans", "iso", "standard", "certified", "compliance"],
    }

    INDUSTRY_KEYWORDS = {
        "mining": ["mining", "mine", "underground", "shaft"],
        "construction": ["construction", "building", "civil", "site"],
        "electrical": ["electrical", "wiring", "electrician", "substation"],
        "manufacturing": ["manufacturing", "factory", "plant", "production"],
    }

    BBBEE_REQUEST_KEYWORDS = {
        "certificate": ["certificate", "cert", "affidavit", "copy"],
        "level": ["level", "status", "score", "rating"],
        "benefits": ["benefit", "points", "recognition", "procurement"],
    }

    PROJECT_TYPE_KEYWORDS = {
        "construction": ["construction", "build", "building"],
        "installation": ["install", "installation", "fitting"],
        "maintenance": ["maintenance", "repair", "shutdown", "overhaul"],
        "expansion": ["expansion", "expand", "upgrade", "new plant"],
    }

    CONTACT_TYPE_KEYWORDS = {
        "whatsapp": ["whatsapp", "whats app"],
        "email": ["email", "e-mail", "mail"],
        "call": ["call", "phone", "ring", "callback"],
        "human": ["human", "person", "agent", "rep", "someone", "salesperson"],
    }

    INFO_TYPE_KEYWORDS = {
        "hours": ["hours", "open", "close", "trading"],
        "location": ["where", "address", "located", "branch"],
        "about": ["about", "who", "company", "what do you do"],
    }

    # Words that never describe a product
    NOISE_WORDS = {
        "i", "we", "need", "want", "require", "looking", "for", "the", "a", "an", "some",
        "do", "you", "have", "sell", "stock", "carry", "is", "are", "what", "whats",
        "how", "much", "many", "price", "pricing", "cost", "costs", "quote", "of", "to",
        "me", "please", "can", "could", "get", "show", "find", "any", "your", "my",
        "in", "on", "with", "and", "or", "compliant", "compliance", "sans", "iso",
        "certified", "spec", "specs", "specification", "specifications", "delivery",
        "deliver", "delivered", "it", "this", "that", "there", "available", "does",
        "will", "be", "per", "about", "search", "searching", "browse", "tell", "give",
        "units", "unit", "pcs", "pieces", "items", "check", "still", "at", "by", "from",
        "would", "like", "order", "buy", "much", "mining", "construction", "electrical",
        "manufacturing", "industry", "suitable", "approved", "standard", "standards",
        "bulk", "discount", "discounts", "size", "material", "dimensions", "them",
        "those", "these", "they", "ones",
    }

    PAIR_PATTERN = re.compile(
        r"^(?:(?:is|are|can|will|does|do)\s+)?(?:i\s+use\s+)?(?:(?:an?|the)\s+)?"
        r"(?P<first>.+?)\s+(?:(?:be\s+)?compatible\s+|work\s+|fit\s+|go\s+)?"
        r"(?:with|and)\s+(?:(?:an?|the)\s+)?(?P<second>.+)$"
    )
    _PAIR_TRAILING = re.compile(r"\s+(?:compatible|compatibility|together|fit|work)$")

    def __init__(
        self,
        matcher: PatternMatcher,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        ambiguity_margin: float = AMBIGUITY_MARGIN,
    ):
        """
        Initialize the intent classifier.

        Args:
            matcher: pattern matcher producing scored candidates
            confidence_threshold: minimum score to accept an intent
            ambiguity_margin: runner-up distance that flags ambiguity

        Raises:
            ValueError: if a configured pattern names an unknown intent
        """
        self.matcher = matcher
        self.confidence_threshold = confidence_threshold
        self.ambiguity_margin = ambiguity_margin

        for pattern in matcher.patterns + matcher.fallback_patterns:
            try:
                Intent(pattern.intent)
            except ValueError:
                raise ValueError(f"Pattern '{pattern.id}' targets unknown intent '{pattern.intent}'")

    def classify(self, text: str, context: Optional[ConversationContext] = None) -> ClassificationResult:
        """
        Classify the intent of a visitor message.

        Args:
            text: the raw visitor message
            context: derived conversational state for parameter fallback

        Returns:
            ClassificationResult with parameters ready for dispatch
        """
        context = context or ConversationContext()
        matches = self.matcher.match(text)

        if not matches:
            return self._unknown_result()

        top = matches[0]
        top_intent = Intent(top.intent)

        if top.score < self.confidence_threshold:
            return self._low_confidence_result(top, matches, text)

        normalized = self.matcher.normalize(text)
        entities = self.matcher.extract_entities(text)

        is_ambiguous = False
        ambiguous_intents: List[Intent] = []
        if len(matches) > 1 and top.score - matches[1].score < self.ambiguity_margin:
            is_ambiguous = True
            ambiguous_intents = self._distinct_intents(matches[:3], limit=3)

        return ClassificationResult(
            intent=top_intent,
            confidence=top.score,
            entities=entities,
            parameters=self.build_parameters(top_intent, normalized, entities, context),
            is_ambiguous=is_ambiguous,
            ambiguous_intents=ambiguous_intents,
            match_type=top.match_type,
            pattern_id=top.pattern_id,
            synonyms_used=top.synonyms_used,
            alternatives=matches[1:4],
        )

    # ── Result builders ───────────────────────────────

    def _unknown_result(self) -> ClassificationResult:
        return ClassificationResult(
            intent=Intent.UNKNOWN,
            confidence=0.0,
            requires_clarification=True,
            suggestions=list(self.DEFAULT_SUGGESTIONS),
        )

    def _low_confidence_result(
        self, top: PatternMatch, matches: List[PatternMatch], text: str
    ) -> ClassificationResult:
        suggestions = [self._suggestion_for(i) for i in self._distinct_intents(matches, limit=3)]
        return ClassificationResult(
            intent=Intent.UNKNOWN,
            confidence=top.score,
            entities=self.matcher.extract_entities(text),
            requires_clarification=True,
            original_intent=Intent(top.intent),
            suggestions=suggestions or list(self.DEFAULT_SUGGESTIONS),
            match_type=top.match_type,
            pattern_id=top.pattern_id,
            alternatives=matches[:3],
        )

    def _suggestion_for(self, intent: Intent) -> str:
        if intent in self.SUGGESTION_TEXT:
            return self.SUGGESTION_TEXT[intent]
        return f"Did you mean: {intent.value.lower().replace('_', ' ')}?"

    @staticmethod
    def _distinct_intents(matches: List[PatternMatch], limit: int) -> List[Intent]:
        intents: List[Intent] = []
        for m in matches:
            intent = Intent(m.intent)
            if intent not in intents:
                intents.append(intent)
            if len(intents) == limit:
                break
        return intents

    # ── Parameters ────────────────────────────────────

    def build_parameters(
        self,
        intent: Intent,
        normalized: str,
        entities: ExtractedEntities,
        context: ConversationContext,
    ) -> Dict[str, Any]:
        """Collect generic and intent-specific parameters for a handler."""
        wanted = self.PARAMETER_MAP.get(intent, ())
        if not wanted:
            return {}

        params: Dict[str, Any] = {}

        # Generic parameters straight from entities
        quantity = entities.first_quantity
        if quantity:
            params["quantity"] = quantity.value
            params["unit"] = quantity.unit
        if entities.product_codes:
            params["product_code"] = entities.product_codes[0]
        if entities.locations:
            params["location"] = entities.locations[0]
        if entities.order_numbers:
            params["order_number"] = entities.order_numbers[0]
        if entities.quote_numbers:
            params["quote_number"] = entities.quote_numbers[0]
        if entities.standard_codes:
            params["standard"] = entities.standard_codes[0]

        # Intent-specific inference
        if "query" in wanted:
            query = self.extract_product_query(normalized, entities)
            if query:
                params["query"] = query
        if "category" in wanted:
            category = self.infer_category(normalized)
            if category:
                params["category"] = category
        if "spec_type" in wanted:
            params["spec_type"] = self._first_match(self.SPEC_TYPE_KEYWORDS, normalized, "general")
        if "industry" in wanted:
            params["industry"] = self._first_match(self.INDUSTRY_KEYWORDS, normalized, "general")
        if "request_type" in wanted:
            params["request_type"] = self._first_match(self.BBBEE_REQUEST_KEYWORDS, normalized, "info")
        if "project_type" in wanted:
            params["project_type"] = self._first_match(self.PROJECT_TYPE_KEYWORDS, normalized, "general")
        if "contact_type" in wanted:
            params["contact_type"] = self._first_match(self.CONTACT_TYPE_KEYWORDS, normalized, "general")
        if "info_type" in wanted:
            params["info_type"] = self._first_match(self.INFO_TYPE_KEYWORDS, normalized, "general")
        if "product_one" in wanted:
            pair = self.extract_product_pair(normalized, entities)
            if pair:
                params["product_one"], params["product_two"] = pair

        # Fall back to conversational context
        if "location" in wanted and "location" not in params and context.last_location:
            params["location"] = context.last_location
        if (
            "product_id" in wanted
            and context.last_product_id
            and "product_code" not in params
            and "query" not in params
        ):
            params["product_id"] = context.last_product_id

        if intent == Intent.PRICE_QUOTE and "quantity" not in params:
            params["quantity"] = 1
            params["unit"] = "units"

        allowed = set(wanted)
        if "quantity" in allowed:
            allowed.add("unit")
        return {k: v for k, v in params.items() if k in allowed}

    def extract_product_query(self, normalized: str, entities: ExtractedEntities) -> str:
        """
        Reduce a message to the words that describe a product.

        With product codes present the query is the codes plus any product
        family words; otherwise it is the message minus noise words.
        """
        tokens = normalized.split()
        if entities.product_codes:
            families = []
            for token in tokens:
                for keyword in self._family_words():
                    if token.startswith(keyword) and keyword not in families:
                        families.append(keyword)
            return " ".join(entities.product_codes + families)

        location_words = set(self.matcher.entity_extractor.locations)
        words = [
            t for t in tokens
            if t not in self.NOISE_WORDS
            and t not in location_words
            and not t.replace(".", "").replace(",", "").isdigit()
            and len(t) > 1
        ]
        return " ".join(words)

    def extract_product_pair(
        self, normalized: str, entities: ExtractedEntities
    ) -> Optional[Tuple[str, str]]:
        match = self.PAIR_PATTERN.match(normalized)
        if match:
            first = self._PAIR_TRAILING.sub("", match.group("first").strip())
            second = self._PAIR_TRAILING.sub("", match.group("second").strip())
            if first and second:
                return first, second
        if len(entities.product_codes) >= 2:
            return entities.product_codes[0], entities.product_codes[1]
        return None

    def infer_category(self, normalized: str) -> Optional[str]:
        return self._first_match(self.CATEGORY_KEYWORDS, normalized, None)

    def _family_words(self) -> List[str]:
        return [kw for words in self.CATEGORY_KEYWORDS.values() for kw in words if " " not in kw]

    @staticmethod
    def _first_match(table: Dict[str, List[str]], text: str, default: Optional[str]) -> Optional[str]:
        for label, keywords in table.items():
            for keyword in keywords:
                if re.search(rf"\b{re.escape(keyword)}", text):
                    return label
        return default
