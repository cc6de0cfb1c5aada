"""
Knowledge base loading for the sales assistant.

The four knowledge documents (intent patterns, synonyms, response templates
and compliance tables) are maintained as JSON outside the code and validated
once at startup. Any problem is a configuration error and aborts start-up.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class KnowledgeConfigError(ValueError):
    """Raised when a knowledge document is missing or malformed."""


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Patterns ──────────────────────────────────────────


class PatternSpec(_Document):
    id: str
    intent: str
    regex: str
    keywords: List[str] = Field(default_factory=list)
    priority: int = Field(default=50, ge=0, le=100)

    @field_validator("regex")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regex: {e}")
        return value


class PatternsDocument(_Document):
    version: Optional[str] = None
    patterns: List[PatternSpec]
    fallback_patterns: List[PatternSpec] = Field(default_factory=list, alias="fallbackPatterns")
    entity_patterns: Dict[str, str] = Field(default_factory=dict, alias="entityPatterns")

    @field_validator("entity_patterns")
    @classmethod
    def _entity_patterns_compile(cls, value: Dict[str, str]) -> Dict[str, str]:
        for name, pattern in value.items():
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"entity pattern '{name}' is invalid: {e}")
        return value


# ── Synonyms ──────────────────────────────────────────


class SynonymSpec(_Document):
    variations: List[str] = Field(default_factory=list)
    typos: List[str] = Field(default_factory=list)


class LocationSpec(_Document):
    canonical: str
    variations: List[str] = Field(default_factory=list)


class SynonymsDocument(_Document):
    version: Optional[str] = None
    synonyms: Dict[str, SynonymSpec] = Field(default_factory=dict)
    locations: Dict[str, LocationSpec] = Field(default_factory=dict)


# ── Responses ─────────────────────────────────────────


class ResponsesDocument(_Document):
    version: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    templates: Dict[str, Dict[str, Any]]
    fallback: str = "How can I help you today?"


# ── Compliance ────────────────────────────────────────


class StandardSpec(_Document):
    name: str
    issuing_body: Optional[str] = Field(default=None, alias="issuingBody")
    description: Optional[str] = None
    industries: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)


class IndustrySpec(_Document):
    display_name: str = Field(alias="displayName")
    mandatory: List[str] = Field(default_factory=list)
    recommended: List[str] = Field(default_factory=list)
    regulations: List[str] = Field(default_factory=list)
    specific_requirements: List[str] = Field(default_factory=list, alias="specificRequirements")
    notes: str = ""


class BBBEESpec(_Document):
    level: int
    status: str
    ownership: str
    recognition_level: int = Field(alias="recognitionLevel")
    benefits: List[str] = Field(default_factory=list)
    certificate: str = ""
    verification: str = ""


class ComplianceDocument(_Document):
    version: Optional[str] = None
    standards: Dict[str, StandardSpec] = Field(default_factory=dict)
    regulations: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    industry_compliance: Dict[str, IndustrySpec] = Field(alias="industryCompliance")
    product_compliance: Dict[str, List[str]] = Field(default_factory=dict, alias="productCompliance")
    bbbee: BBBEESpec


# ── Loading ───────────────────────────────────────────


@dataclass
class KnowledgeBase:
    """All knowledge documents, validated."""

    patterns: PatternsDocument
    synonyms: SynonymsDocument
    responses: ResponsesDocument
    compliance: ComplianceDocument

    @property
    def versions(self) -> Dict[str, Optional[str]]:
        return {
            "patterns": self.patterns.version,
            "synonyms": self.synonyms.version,
            "responses": self.responses.version,
            "compliance": self.compliance.version,
        }


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise KnowledgeConfigError(f"Knowledge file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise KnowledgeConfigError(f"Invalid JSON in {path.name}: {e}")


def _parse(model, path: Path):
    try:
        return model.model_validate(_read_json(path))
    except ValidationError as e:
        raise KnowledgeConfigError(f"Invalid knowledge document {path.name}: {e}")


def load_knowledge(directory: Union[str, Path]) -> KnowledgeBase:
    """
    Load and validate every knowledge document in a directory.

    Raises:
        KnowledgeConfigError: if any document is missing or malformed
    """
    base = Path(directory)
    knowledge = KnowledgeBase(
        patterns=_parse(PatternsDocument, base / "patterns.json"),
        synonyms=_parse(SynonymsDocument, base / "synonyms.json"),
        responses=_parse(ResponsesDocument, base / "responses.json"),
        compliance=_parse(ComplianceDocument, base / "compliance.json"),
    )
    logger.info(
        f"Knowledge loaded from {base}: {len(knowledge.patterns.patterns)} patterns, "
        f"{len(knowledge.synonyms.synonyms)} synonym groups, "
        f"{len(knowledge.responses.templates)} templates, "
        f"{len(knowledge.compliance.industry_compliance)} industries"
    )
    return knowledge
