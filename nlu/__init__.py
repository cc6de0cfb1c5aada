"""
Natural language understanding for visitor messages:
- Synonym-aware pattern matching
- Entity extraction (quantities, codes, locations, standards)
- Intent classification with parameters for the handlers
"""

from .entity_extractor import EntityExtractor, ExtractedEntities, Quantity, Measurement
from .pattern_matcher import PatternMatcher, PatternMatch, IntentPattern
from .intent_classifier import IntentClassifier, Intent, ClassificationResult, ConversationContext

__all__ = [
    "EntityExtractor",
    "ExtractedEntities",
    "Quantity",
    "Measurement",
    "PatternMatcher",
    "PatternMatch",
    "IntentPattern",
    "IntentClassifier",
    "Intent",
    "ClassificationResult",
    "ConversationContext",
]
