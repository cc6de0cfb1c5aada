"""
Pattern Matcher for the sales assistant.

Normalizes visitor input, resolves synonyms and common typos to canonical
terms, and scores every configured intent pattern against the message.
"""

import re
import time
import logging
import threading
from collections import Counter
from typing import List, Dict, Any, Optional, Iterable
from dataclasses import dataclass, field

from .entity_extractor import EntityExtractor, ExtractedEntities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntentPattern:
    """A compiled intent pattern. Immutable once loaded."""

    id: str
    intent: str
    regex: "re.Pattern"
    keywords: tuple
    priority: int

    @classmethod
    def compile(cls, id: str, intent: str, regex: str, keywords: Iterable[str], priority: int):
        return cls(
            id=id,
            intent=intent,
            regex=re.compile(regex, re.IGNORECASE),
            keywords=tuple(k.lower() for k in keywords),
            priority=priority,
        )


@dataclass
class PatternMatch:
    """A scored candidate produced by :meth:`PatternMatcher.match`."""

    pattern_id: str
    intent: str
    score: float
    priority: int
    match_type: str  # both, original, canonical, fallback
    synonyms_used: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern_id": self.pattern_id,
            "intent": self.intent,
            "score": round(self.score, 3),
            "priority": self.priority,
            "match_type": self.match_type,
            "synonyms_used": self.synonyms_used,
        }


@dataclass
class Tokens:
    original: List[str]
    canonical: List[str]
    mapped: List[Dict[str, str]]


class PatternMatcher:
    """
    Rule-based intent matching over normalized and canonicalized text.

    Scoring:
        0.5 base for any hit
        + keyword overlap ratio * 0.3
        + priority / 100 * 0.1
        + min(synonym mappings * 0.05, 0.1)
        + 0.15 when the joined keyword phrase appears in the canonical text
        capped at 1.0
    """

    BASE_SCORE = 0.5
    KEYWORD_WEIGHT = 0.3
    PRIORITY_WEIGHT = 0.1
    SYNONYM_BONUS = 0.05
    SYNONYM_BONUS_CAP = 0.1
    PHRASE_BONUS = 0.15
    FALLBACK_SCORE = 0.3

    _UNSAFE_CHARS = re.compile(r"[^\w\s\-.]")
    _THOUSANDS = re.compile(r"(?<=\d),(?=\d{3}\b)")
    _WHITESPACE = re.compile(r"\s+")

    def __init__(
        self,
        patterns: List[IntentPattern],
        fallback_patterns: List[IntentPattern],
        synonym_map: Dict[str, str],
        entity_extractor: EntityExtractor,
    ):
        """
        Args:
            patterns: primary intent patterns
            fallback_patterns: tried only when no primary pattern matches
            synonym_map: variation or typo -> canonical term
            entity_extractor: typed entity extractors
        """
        self.patterns = list(patterns)
        self.fallback_patterns = list(fallback_patterns)
        self.synonym_map = {k.lower(): v.lower() for k, v in synonym_map.items()}
        self.entity_extractor = entity_extractor

        self._lock = threading.Lock()
        self._total_matches = 0
        self._total_match_ms = 0.0
        self._pattern_hits: Counter = Counter()
        self._synonym_hits: Counter = Counter()

    @classmethod
    def from_knowledge(cls, patterns_doc, synonyms_doc) -> "PatternMatcher":
        """Build a matcher from validated pattern and synonym documents."""
        patterns = [
            IntentPattern.compile(p.id, p.intent, p.regex, p.keywords, p.priority)
            for p in patterns_doc.patterns
        ]
        fallbacks = [
            IntentPattern.compile(p.id, p.intent, p.regex, p.keywords, p.priority)
            for p in patterns_doc.fallback_patterns
        ]
        synonym_map = build_synonym_map(synonyms_doc)
        location_map = build_location_map(synonyms_doc)
        extractor = EntityExtractor(patterns_doc.entity_patterns, location_map)
        return cls(patterns, fallbacks, synonym_map, extractor)

    # ── Normalization ─────────────────────────────────

    def normalize(self, text: str) -> str:
        """Lowercase, strip unsafe punctuation, collapse whitespace."""
        if not text:
            return ""
        text = text.lower()
        text = self._THOUSANDS.sub("", text)
        text = self._UNSAFE_CHARS.sub(" ", text)
        return self._WHITESPACE.sub(" ", text).strip()

    def tokenize(self, text: str) -> Tokens:
        original = self.normalize(text).split()
        canonical = []
        mapped = []
        for token in original:
            resolved = self.synonym_map.get(token, token)
            canonical.append(resolved)
            if resolved != token:
                mapped.append({"from": token, "to": resolved})
        return Tokens(original=original, canonical=canonical, mapped=mapped)

    def canonicalize(self, text: str) -> str:
        return " ".join(self.tokenize(text).canonical)

    # ── Matching ──────────────────────────────────────

    def match(self, text: str) -> List[PatternMatch]:
        """
        Score every pattern against the message.

        Returns:
            Candidates sorted by score then priority, both descending.
            Falls back to the fallback set (fixed score) when nothing hits.
        """
        start = time.perf_counter()
        normalized = self.normalize(text)
        tokens = self.tokenize(normalized)
        canonical_text = " ".join(tokens.canonical)
        canonical_set = set(tokens.canonical)

        matches: List[PatternMatch] = []
        for pattern in self.patterns:
            hit_original = bool(pattern.regex.search(normalized))
            hit_canonical = bool(pattern.regex.search(canonical_text))
            if not (hit_original or hit_canonical):
                continue

            if hit_original and hit_canonical:
                match_type = "both"
            elif hit_canonical:
                match_type = "canonical"
            else:
                match_type = "original"

            matches.append(PatternMatch(
                pattern_id=pattern.id,
                intent=pattern.intent,
                score=self.calculate_score(pattern, canonical_set, canonical_text, tokens.mapped),
                priority=pattern.priority,
                match_type=match_type,
                synonyms_used=list(tokens.mapped),
            ))

        if not matches:
            for pattern in self.fallback_patterns:
                if pattern.regex.search(normalized):
                    matches.append(PatternMatch(
                        pattern_id=pattern.id,
                        intent=pattern.intent,
                        score=self.FALLBACK_SCORE,
                        priority=pattern.priority,
                        match_type="fallback",
                    ))

        matches.sort(key=lambda m: (m.score, m.priority), reverse=True)
        self._record(matches, tokens.mapped, (time.perf_counter() - start) * 1000)
        return matches

    def calculate_score(
        self,
        pattern: IntentPattern,
        canonical_tokens: set,
        canonical_text: str,
        mapped: List[Dict[str, str]],
    ) -> float:
        score = self.BASE_SCORE

        if pattern.keywords:
            overlap = sum(1 for k in pattern.keywords if k in canonical_tokens)
            score += overlap / len(pattern.keywords) * self.KEYWORD_WEIGHT
            if " ".join(pattern.keywords) in canonical_text:
                score += self.PHRASE_BONUS

        score += pattern.priority / 100 * self.PRIORITY_WEIGHT
        score += min(len(mapped) * self.SYNONYM_BONUS, self.SYNONYM_BONUS_CAP)
        return min(score, 1.0)

    def extract_entities(self, text: str) -> ExtractedEntities:
        return self.entity_extractor.extract(self.normalize(text))

    # ── Helpers ───────────────────────────────────────

    @staticmethod
    def fuzzy_match(query: str, target: str) -> float:
        """Character-overlap similarity in [0, 1]."""
        q, t = (query or "").lower(), (target or "").lower()
        if not q or not t:
            return 0.0
        if q == t:
            return 1.0
        if q in t:
            return 0.9
        if t in q:
            return 0.8
        q_chars, t_chars = set(q), set(t)
        return len(q_chars & t_chars) / max(len(q_chars), len(t_chars))

    def _record(self, matches: List[PatternMatch], mapped: List[Dict[str, str]], elapsed_ms: float):
        with self._lock:
            self._total_matches += 1
            self._total_match_ms += elapsed_ms
            if matches:
                self._pattern_hits[matches[0].pattern_id] += 1
            for m in mapped:
                self._synonym_hits[f"{m['from']}->{m['to']}"] += 1

    def metrics(self) -> Dict[str, Any]:
        with self._lock:
            avg = self._total_match_ms / self._total_matches if self._total_matches else 0.0
            return {
                "total_matches": self._total_matches,
                "avg_match_time_ms": round(avg, 3),
                "pattern_hits": dict(self._pattern_hits.most_common(10)),
                "synonym_hits": dict(self._synonym_hits.most_common(10)),
                "pattern_count": len(self.patterns),
                "synonym_count": len(self.synonym_map),
            }


def build_synonym_map(synonyms_doc) -> Dict[str, str]:
    """Variation, typo and canonical term -> canonical term."""
    mapping: Dict[str, str] = {}
    for canonical, entry in synonyms_doc.synonyms.items():
        canonical = canonical.lower()
        mapping[canonical] = canonical
        for word in list(entry.variations) + list(entry.typos):
            mapping[word.lower()] = canonical
    for location in synonyms_doc.locations.values():
        for variation in location.variations:
            # Multi-word names are resolved by the location extractor
            if " " not in variation:
                mapping[variation.lower()] = location.canonical.lower()
    return mapping


def build_location_map(synonyms_doc) -> Dict[str, str]:
    """Location variation -> canonical location name."""
    mapping: Dict[str, str] = {}
    for location in synonyms_doc.locations.values():
        mapping[location.canonical.lower()] = location.canonical.lower()
        for variation in location.variations:
            mapping[variation.lower()] = location.canonical.lower()
    return mapping
