"""
Template based response generation.

Handlers return a ``HandlerResult``; the generator picks a template by a
fixed precedence and interpolates it:

    error -> notFound -> found[single|multiple|featured|default]
          -> variants (data flag or data["variant"]) -> default -> fallback

Placeholders are ``{key}``; ``{?key:text}`` renders ``text`` only when
``key`` is truthy. Unknown placeholders are left as they are.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .knowledge_base import ResponsesDocument

logger = logging.getLogger(__name__)


class ResponseCase(str, Enum):
    ERROR = "error"
    NOT_FOUND = "not_found"
    SINGLE = "single"
    MULTIPLE = "multiple"
    FEATURED = "featured"
    VARIANT = "variant"
    DEFAULT = "default"
    FALLBACK = "fallback"


@dataclass
class HandlerResult:
    """What a domain handler hands to the generator."""

    data: Dict[str, Any] = field(default_factory=dict)
    not_found: bool = False
    error: bool = False
    count: Optional[int] = None
    featured: bool = False
    # Derived context the turn should remember
    product_id: Optional[str] = None
    location: Optional[str] = None

    @property
    def found_case(self) -> ResponseCase:
        if self.featured:
            return ResponseCase.FEATURED
        if self.count == 1:
            return ResponseCase.SINGLE
        if self.count is not None and self.count > 1:
            return ResponseCase.MULTIPLE
        return ResponseCase.DEFAULT


@dataclass
class GeneratedResponse:
    text: str
    quick_replies: List[str]
    intent: str
    case: ResponseCase

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "quick_replies": self.quick_replies,
            "intent": self.intent,
            "case": self.case.value,
        }


class ResponseGenerator:
    """Renders handler results through the response templates."""

    MAX_QUICK_REPLIES = 4
    GET_QUOTE_REPLY = "Get a quote"
    PURCHASE_WORDS = ("quote", "specification")

    PERCENT_HINTS = ("percent", "rate")
    CURRENCY_HINTS = ("price", "cost", "total", "subtotal", "vat", "tax", "savings", "amount")
    MULTILINE_KEYS = ("product_list", "specs_list", "standards_list", "discount_tiers")

    _PLACEHOLDER = re.compile(r"\{(\w+)\}")

    def __init__(
        self,
        document: ResponsesDocument,
        variables: Optional[Dict[str, Any]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            document: validated response templates
            variables: company details available to every template
            clock: local time source for greeting variants
        """
        self.templates = document.templates
        self.fallback = document.fallback
        self.variables = {**document.variables, **(variables or {})}
        self.currency_symbol = self.variables.get("currency_symbol", "R")
        self.clock = clock

    # ── Public API ────────────────────────────────────

    def generate(
        self,
        intent: Union[str, Enum],
        result: Optional[HandlerResult] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> GeneratedResponse:
        intent_name = intent.value if isinstance(intent, Enum) else str(intent)
        result = result or HandlerResult()
        data = dict(result.data)

        if intent_name == "GREETING" and "variant" not in data:
            data["variant"] = self.time_of_day()

        merged = {**self.variables, **(context or {}), **data}
        template = self.templates.get(intent_name)
        if template is None:
            logger.warning(f"No response template for intent {intent_name}")
            return GeneratedResponse(
                text=self.fallback,
                quick_replies=[],
                intent=intent_name,
                case=ResponseCase.FALLBACK,
            )

        text, case = self.select_template(template, result, merged)
        return GeneratedResponse(
            text=self.interpolate(text, merged),
            quick_replies=self.quick_replies(template, result, case, data),
            intent=intent_name,
            case=case,
        )

    def generate_error(self, context: Optional[Dict[str, Any]] = None) -> GeneratedResponse:
        return self.generate("ERROR", HandlerResult(), context)

    def generate_fallback(self) -> GeneratedResponse:
        replies = self.templates.get("UNKNOWN", {}).get("quickReplies", [])
        return GeneratedResponse(
            text=self.fallback,
            quick_replies=list(replies)[: self.MAX_QUICK_REPLIES],
            intent="UNKNOWN",
            case=ResponseCase.FALLBACK,
        )

    def time_of_day(self) -> str:
        hour = self.clock().hour
        if hour < 12:
            return "morning"
        if hour < 17:
            return "afternoon"
        return "evening"

    # ── Selection ─────────────────────────────────────

    def select_template(self, template: Dict[str, Any], result: HandlerResult, merged: Dict[str, Any]):
        """Return (template text, case) by the fixed precedence."""
        if result.error:
            section = template.get("error") or self.templates.get("ERROR", {}).get("default", {})
            text = section.get("default")
            if text:
                return text, ResponseCase.ERROR

        if result.not_found and "notFound" in template:
            section = template["notFound"]
            text = section.get("suggestion") if merged.get("suggestion") else None
            text = text or section.get("default")
            if text:
                return text, ResponseCase.NOT_FOUND

        if not result.not_found and "found" in template:
            section = template["found"]
            case = result.found_case
            text = section.get(case.value) or section.get("default")
            if text:
                return text, case

        for key, text in template.get("variants", {}).items():
            if merged.get(key) or merged.get("variant") == key:
                return text, ResponseCase.VARIANT

        defaults = template.get("default", {})
        text = defaults.get(merged.get("variant") or "") or defaults.get("default")
        if text:
            return text, ResponseCase.DEFAULT

        return self.fallback, ResponseCase.FALLBACK

    # ── Interpolation ─────────────────────────────────

    def interpolate(self, text: str, values: Dict[str, Any]) -> str:
        text = self._render_conditionals(text, values)
        return self._PLACEHOLDER.sub(lambda m: self._substitute(m, values), text)

    def _render_conditionals(self, text: str, values: Dict[str, Any]) -> str:
        out = []
        i = 0
        while i < len(text):
            start = text.find("{?", i)
            if start == -1:
                out.append(text[i:])
                break
            colon = text.find(":", start)
            if colon == -1:
                out.append(text[i:])
                break
            out.append(text[i:start])
            key = text[start + 2:colon]

            depth, j = 1, colon + 1
            while j < len(text) and depth:
                if text[j] == "{":
                    depth += 1
                elif text[j] == "}":
                    depth -= 1
                j += 1
            body = text[colon + 1:j - 1] if depth == 0 else text[colon + 1:]

            if values.get(key):
                out.append(self._render_conditionals(body, values))
            i = j
        return "".join(out)

    def _substitute(self, match: "re.Match", values: Dict[str, Any]) -> str:
        key = match.group(1)
        value = values.get(key)
        if value is None:
            return match.group(0)
        return self.format_value(key, value)

    def format_value(self, key: str, value: Any) -> str:
        if key in self.MULTILINE_KEYS:
            return self._render_multiline(key, value)
        if isinstance(value, (list, tuple)):
            return oxford_join([str(v) for v in value])
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return str(value)

        key_lower = key.lower()
        if any(h in key_lower for h in self.PERCENT_HINTS):
            return f"{value:g}%"
        if any(h in key_lower for h in self.CURRENCY_HINTS):
            return self.format_currency(value)
        if "discount" in key_lower:
            percent = value * 100 if value <= 1 else value
            return f"{round(percent, 2):g}%"
        if "days" in key_lower:
            return f"{int(value)} day" if value == 1 else f"{int(value)} days"
        return f"{value:g}" if isinstance(value, float) else str(value)

    def format_currency(self, value: float) -> str:
        cents = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return f"{self.currency_symbol}{cents:,.2f}"

    def _render_multiline(self, key: str, value: Any) -> str:
        if key == "product_list":
            return "\n".join(self._product_line(p) for p in value or [])
        if key == "specs_list":
            items = value.items() if isinstance(value, dict) else value or []
            lines = []
            for name, spec in items:
                if isinstance(spec, (list, tuple)):
                    spec = ", ".join(str(s) for s in spec)
                lines.append(f"- {str(name).replace('_', ' ').capitalize()}: {spec}")
            return "\n".join(lines)
        if key == "standards_list":
            lines = []
            for standard in value or []:
                mark = "✓" if standard.get("status") == "compliant" else "✗"
                line = f"{mark} {standard.get('id')} {standard.get('name', '')}".rstrip()
                if standard.get("status") in ("required", "recommended"):
                    line += f" ({standard['status']})"
                lines.append(line)
            return "\n".join(lines)
        if key == "discount_tiers":
            return "\n".join(
                f"- {t['min_quantity']}+ units: {t['discount_percent']:g}% off" for t in value or []
            )
        return str(value)

    def _product_line(self, product: Dict[str, Any]) -> str:
        stock = "in stock" if product.get("in_stock") else "out of stock"
        return (
            f"- {product['name']} ({product['sku']}): "
            f"{self.format_currency(product['price'])} per {product.get('unit', 'each')}, {stock}"
        )

    # ── Quick replies ─────────────────────────────────

    def quick_replies(
        self,
        template: Dict[str, Any],
        result: HandlerResult,
        case: ResponseCase,
        data: Dict[str, Any],
    ) -> List[str]:
        if data.get("suggestions"):
            replies = list(data["suggestions"])
        else:
            replies = list(template.get("quickReplies", []))

        if case == ResponseCase.NOT_FOUND:
            replies = [
                r for r in replies
                if not any(word in r.lower() for word in self.PURCHASE_WORDS)
            ]
        elif case in (ResponseCase.SINGLE, ResponseCase.MULTIPLE, ResponseCase.FEATURED) and data.get("products"):
            replies = [self.GET_QUOTE_REPLY] + [r for r in replies if r != self.GET_QUOTE_REPLY]

        return replies[: self.MAX_QUICK_REPLIES]


def oxford_join(items: List[str]) -> str:
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return f"{', '.join(items[:-1])}, and {items[-1]}"
