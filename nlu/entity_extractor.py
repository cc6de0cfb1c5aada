"""
Entity Extraction for the sales assistant.

Extracts typed fragments from visitor messages, independently of intent:
- Quantities with units
- Product codes (M12, 6205-2RS, SKUs)
- Order and quote references
- Delivery locations (canonicalized through the location table)
- Physical measurements
- Standard codes (SANS, ISO)
"""

import re
import logging
from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

Span = Tuple[int, int]


@dataclass
class Quantity:
    value: int
    unit: str
    raw: str

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "unit": self.unit, "raw": self.raw}


@dataclass
class Measurement:
    value: float
    unit: str
    raw: str

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "unit": self.unit, "raw": self.raw}


@dataclass
class ExtractedEntities:
    """Container for extracted entities from a message."""

    quantities: List[Quantity] = field(default_factory=list)
    product_codes: List[str] = field(default_factory=list)
    order_numbers: List[str] = field(default_factory=list)
    quote_numbers: List[str] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)
    measurements: List[Measurement] = field(default_factory=list)
    standard_codes: List[str] = field(default_factory=list)

    @property
    def first_quantity(self) -> Optional[Quantity]:
        return self.quantities[0] if self.quantities else None

    def is_empty(self) -> bool:
        return not any((
            self.quantities, self.product_codes, self.order_numbers,
            self.quote_numbers, self.locations, self.measurements,
            self.standard_codes,
        ))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "quantities": [q.to_dict() for q in self.quantities],
            "product_codes": list(self.product_codes),
            "order_numbers": list(self.order_numbers),
            "quote_numbers": list(self.quote_numbers),
            "locations": list(self.locations),
            "measurements": [m.to_dict() for m in self.measurements],
            "standard_codes": list(self.standard_codes),
        }


def _overlaps(span: Span, others: List[Span]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in others)


def _append_unique(items: List[str], value: str):
    if value not in items:
        items.append(value)


class EntityExtractor:
    """
    Extracts entities from normalized visitor messages.

    Extractor expressions come from the ``entityPatterns`` section of the
    pattern configuration; locations are matched against the location table.
    """

    REQUIRED_PATTERNS = (
        "quantity", "productCode", "orderNumber", "quoteNumber",
        "measurement", "standardCode",
    )

    def __init__(self, entity_patterns: Dict[str, str], locations: Dict[str, str]):
        """
        Initialize the entity extractor.

        Args:
            entity_patterns: extractor name -> regular expression
            locations: location variation -> canonical location name
        """
        missing = [name for name in self.REQUIRED_PATTERNS if name not in entity_patterns]
        if missing:
            raise ValueError(f"Missing entity patterns: {', '.join(missing)}")

        self.locations = {k.lower(): v.lower() for k, v in locations.items()}
        self._build_patterns(entity_patterns)

    def _build_patterns(self, entity_patterns: Dict[str, str]):
        """Compile extractor expressions."""
        flags = re.IGNORECASE
        self.quantity_pattern = re.compile(entity_patterns["quantity"], flags)
        self.product_code_pattern = re.compile(entity_patterns["productCode"], flags)
        self.order_pattern = re.compile(entity_patterns["orderNumber"], flags)
        self.quote_pattern = re.compile(entity_patterns["quoteNumber"], flags)
        self.measurement_pattern = re.compile(entity_patterns["measurement"], flags)
        self.standard_pattern = re.compile(entity_patterns["standardCode"], flags)

        if self.locations:
            # Longest first so "cape town" wins over shorter variations
            names = sorted(self.locations, key=len, reverse=True)
            self.location_pattern = re.compile(
                r"\b(" + "|".join(re.escape(n) for n in names) + r")\b", flags
            )
        else:
            self.location_pattern = None

    def extract(self, normalized: str) -> ExtractedEntities:
        """
        Extract all entities from already-normalized text.

        Every entity type is always present in the result, possibly empty.
        """
        entities = ExtractedEntities()
        reserved: List[Span] = []

        for match in self.standard_pattern.finditer(normalized):
            body, number, part = match.group(1), match.group(2), match.group(3)
            code = f"{body.upper()}-{number}" + (f"-{part}" if part else "")
            _append_unique(entities.standard_codes, code)
            reserved.append(match.span())

        for match in self.order_pattern.finditer(normalized):
            _append_unique(entities.order_numbers, match.group(0).upper())
            reserved.append(match.span())

        for match in self.quote_pattern.finditer(normalized):
            _append_unique(entities.quote_numbers, match.group(0).upper())
            reserved.append(match.span())

        for match in self.product_code_pattern.finditer(normalized):
            if _overlaps(match.span(), reserved):
                continue
            _append_unique(entities.product_codes, match.group(0).upper())
            reserved.append(match.span())

        for match in self.measurement_pattern.finditer(normalized):
            entities.measurements.append(Measurement(
                value=float(match.group(1)),
                unit=match.group(2).lower(),
                raw=match.group(0),
            ))

        for match in self.quantity_pattern.finditer(normalized):
            if _overlaps(match.span(), reserved):
                continue
            entities.quantities.append(Quantity(
                value=int(match.group(1).replace(",", "")),
                unit=(match.group(2) or "units").lower(),
                raw=match.group(0).strip(),
            ))

        if self.location_pattern:
            for match in self.location_pattern.finditer(normalized):
                _append_unique(entities.locations, self.locations[match.group(1).lower()])

        return entities
