"""
Sales assistant orchestrator.

One call per visitor turn:
    session -> classify -> intent handler -> response -> messages -> scoring -> metrics

Every component is passed in, so tests can swap in isolated instances.
Any unexpected failure becomes the generic error reply; ``process`` never
raises.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from engines.compliance_engine import ComplianceEngine
from engines.product_engine import ProductEngine, ProductRecord
from engines.quote_engine import QuoteEngine
from lead_scoring.scoring_engine import LeadTier, ScoringEngine
from nlu.intent_classifier import ClassificationResult, Intent, IntentClassifier
from .context_store import ContextStore, MessageRole, Session
from .metrics import AssistantMetrics, record_lead_score
from .response_generator import HandlerResult, ResponseCase, ResponseGenerator, oxford_join

logger = logging.getLogger(__name__)


# Scoring event fired for each classified turn
INTENT_EVENTS: Dict[Intent, str] = {
    Intent.PRODUCT_SEARCH: "chat_product_inquiry",
    Intent.PRICE_QUOTE: "chat_price_inquiry",
    Intent.SPEC_QUERY: "product_spec_view",
    Intent.COMPLIANCE_CHECK: "chat_compliance_inquiry",
    Intent.DELIVERY_INQUIRY: "chat_delivery_inquiry",
    Intent.BULK_DISCOUNT: "bulk_discount_view",
    Intent.BBBEE_INQUIRY: "bbbee_cert_request",
    Intent.CONTACT_REQUEST: "contact_form_filled",
}
DEFAULT_EVENT = "chat_message_sent"


@dataclass
class AssistantReply:
    """What the request layer gets back for one turn."""

    success: bool
    response_text: str
    quick_replies: List[str]
    intent: str
    confidence: float
    entities: Dict[str, Any] = field(default_factory=dict)
    session: Dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0.0
    data: Dict[str, Any] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)
    is_ambiguous: bool = False
    ambiguous_intents: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "response": {"text": self.response_text, "quick_replies": self.quick_replies},
            "intent": self.intent,
            "confidence": round(self.confidence, 3),
            "entities": self.entities,
            "session": self.session,
            "latency_ms": round(self.latency_ms, 2),
            "data": self.data,
            "suggestions": self.suggestions,
            "is_ambiguous": self.is_ambiguous,
            "ambiguous_intents": self.ambiguous_intents,
        }


class Orchestrator:
    """Runs a visitor turn through the assistant pipeline."""

    PRODUCT_RESULTS = 5

    def __init__(
        self,
        context_store: ContextStore,
        classifier: IntentClassifier,
        product_engine: ProductEngine,
        quote_engine: QuoteEngine,
        compliance_engine: ComplianceEngine,
        response_generator: ResponseGenerator,
        scoring_engine: ScoringEngine,
        metrics: Optional[AssistantMetrics] = None,
    ):
        self.context_store = context_store
        self.classifier = classifier
        self.product_engine = product_engine
        self.quote_engine = quote_engine
        self.compliance_engine = compliance_engine
        self.response_generator = response_generator
        self.scoring_engine = scoring_engine
        self.metrics = metrics if metrics is not None else AssistantMetrics()

        self._handlers: Dict[Intent, Callable[[ClassificationResult, Session], HandlerResult]] = {
            Intent.PRODUCT_SEARCH: self.handle_product_search,
            Intent.PRICE_QUOTE: self.handle_price_quote,
            Intent.SPEC_QUERY: self.handle_spec_query,
            Intent.COMPLIANCE_CHECK: self.handle_compliance_check,
            Intent.DELIVERY_INQUIRY: self.handle_delivery_inquiry,
            Intent.COMPATIBILITY_CHECK: self.handle_compatibility_check,
            Intent.BULK_DISCOUNT: self.handle_bulk_discount,
            Intent.BBBEE_INQUIRY: self.handle_bbbee_inquiry,
            Intent.PROJECT_ASSISTANCE: self.handle_project_assistance,
            Intent.STOCK_CHECK: self.handle_stock_check,
            Intent.ORDER_STATUS: self.handle_order_status,
            Intent.QUOTE_STATUS: self.handle_quote_status,
            Intent.GENERAL_INFO: self.handle_general_info,
            Intent.CONTACT_REQUEST: self.handle_contact_request,
            Intent.GREETING: self.handle_greeting,
            Intent.THANKS: self.handle_thanks,
            Intent.UNKNOWN: self.handle_unknown,
        }

    # ── Turn pipeline ─────────────────────────────────

    async def process(self, text: str, visitor_id: str, customer_id: Optional[str] = None) -> AssistantReply:
        start = time.perf_counter()
        intent_name = Intent.UNKNOWN.value
        try:
            session = await self.context_store.get_or_create(visitor_id, customer_id)
            classification = self.classifier.classify(text, session.conversation_context())
            intent = classification.intent
            intent_name = intent.value

            result = self.dispatch(classification, session)
            response = self.response_generator.generate(intent, result, session.summary())
            elapsed_ms = (time.perf_counter() - start) * 1000

            entities = classification.entities.to_dict()
            if result.product_id:
                entities["product_id"] = result.product_id
            if result.location:
                entities["location"] = result.location

            await self.context_store.add_message(
                session.id,
                MessageRole.VISITOR,
                text,
                intent=intent_name,
                confidence=classification.confidence,
                entities=entities,
            )
            await self.context_store.add_message(
                session.id,
                MessageRole.ASSISTANT,
                response.text,
                response_time_ms=int(elapsed_ms),
                used_fallback=response.case == ResponseCase.FALLBACK,
            )

            if not session.is_temporary:
                await self._score_turn(session, classification)

            latency_ms = (time.perf_counter() - start) * 1000
            self.metrics.record_turn(intent_name, latency_ms)

            return AssistantReply(
                success=True,
                response_text=response.text,
                quick_replies=response.quick_replies,
                intent=intent_name,
                confidence=classification.confidence,
                entities=classification.entities.to_dict(),
                session=session.summary(),
                latency_ms=latency_ms,
                data=result.data,
                suggestions=classification.suggestions,
                is_ambiguous=classification.is_ambiguous,
                ambiguous_intents=[i.value for i in classification.ambiguous_intents],
            )
        except Exception:
            latency_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                f"Assistant turn failed for visitor {visitor_id} (input length {len(text or '')})"
            )
            self.metrics.record_turn(intent_name, latency_ms, error=True)
            error = self.response_generator.generate_error()
            return AssistantReply(
                success=False,
                response_text=error.text,
                quick_replies=error.quick_replies,
                intent=intent_name,
                confidence=0.0,
                latency_ms=latency_ms,
            )

    def dispatch(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        handler = self._handlers.get(classification.intent, self.handle_unknown)
        return handler(classification, session)

    async def _score_turn(self, session: Session, classification: ClassificationResult):
        event_type = INTENT_EVENTS.get(classification.intent, DEFAULT_EVENT)
        update = await self.scoring_engine.track_event(
            session.id,
            event_type,
            {"intent": classification.intent.value, "confidence": round(classification.confidence, 3)},
        )
        if update.recorded:
            session.lead_score = update.score
            session.lead_tier = update.tier.value
            record_lead_score(
                update.score,
                became_hot=update.tier_changed and update.tier == LeadTier.HOT,
            )

    # ── Helpers ───────────────────────────────────────

    def _resolve_product(self, params: Dict[str, Any], include_out_of_stock: bool = True) -> Optional[ProductRecord]:
        """Product named by this turn, else the one remembered from context."""
        if params.get("query") or params.get("product_code"):
            found = self.product_engine.search(
                query=params.get("query", ""),
                product_code=params.get("product_code"),
                max_results=1,
                include_out_of_stock=include_out_of_stock,
            )
            if found.products:
                return self.product_engine.get_product(found.products[0]["id"])
        if params.get("product_id"):
            return self.product_engine.get_product(params["product_id"])
        return None

    def _find_by_phrase(self, phrase: str) -> Optional[ProductRecord]:
        codes = self.classifier.matcher.extract_entities(phrase).product_codes
        found = self.product_engine.search(
            query=phrase,
            product_code=codes[0] if codes else None,
            max_results=1,
            include_out_of_stock=True,
        )
        if not found.products:
            return None
        return self.product_engine.get_product(found.products[0]["id"])

    @staticmethod
    def _display_location(location: str) -> str:
        return location.title()

    # ── Intent handlers ───────────────────────────────

    def handle_product_search(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        params = classification.parameters
        query = params.get("query", "")
        code = params.get("product_code")
        category = params.get("category")

        if not query and not code and not category:
            featured = [
                p for p in self.product_engine.search(max_results=50).products if p["is_featured"]
            ][: self.PRODUCT_RESULTS]
            if featured:
                return HandlerResult(
                    data={"products": featured, "product_list": featured, "count": len(featured)},
                    count=len(featured),
                    featured=True,
                )

        results = self.product_engine.search(
            query=query,
            category=category,
            product_code=code,
            max_results=self.PRODUCT_RESULTS,
        )
        shown_query = query or code or (category or "").replace("-", " ")
        if not results.found:
            categories = [c["name"] for c in self.product_engine.categories()[:4]]
            return HandlerResult(
                data={"query": shown_query, "suggestion": bool(categories), "categories": categories},
                not_found=True,
                count=0,
            )

        return HandlerResult(
            data={
                "query": shown_query,
                "products": results.products,
                "product_list": results.products,
                "count": results.count,
                "total_matched": results.total_matched,
            },
            count=results.count,
            product_id=results.products[0]["id"],
        )

    def handle_price_quote(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        params = classification.parameters
        product = self._resolve_product(params)
        if product is None:
            return HandlerResult(not_found=True)

        quantity = int(params.get("quantity") or 1)
        location = params.get("location")
        pricing = self.quote_engine.calculate_price(
            product.id,
            quantity,
            location=location,
            is_loyalty_client=session.customer_id is not None,
        )

        if pricing.bulk_discount:
            bulk_note = f"Bulk discount applied: {pricing.bulk_discount * 100:g}% off."
        else:
            next_tier = next(
                (t for t in self.quote_engine.discount_tiers(product) if t[0] > quantity), None
            )
            bulk_note = f"Order {next_tier[0]}+ for {next_tier[1] * 100:g}% off." if next_tier else None

        if pricing.delivery:
            delivery_note = pricing.delivery.note
        else:
            delivery_note = "Tell me your delivery area and I'll add delivery to the quote."

        quote = pricing.to_dict()
        amounts = quote["pricing"]
        return HandlerResult(
            data={
                "product_name": product.name,
                "quantity": quantity,
                "unit_price": amounts["unit_price"],
                "subtotal": amounts["subtotal"],
                "vat": amounts["vat"],
                "delivery_cost": amounts["delivery"],
                "total": amounts["total"],
                "bulk_note": bulk_note,
                "delivery_note": delivery_note,
                "pricing": quote,
            },
            product_id=product.id,
            location=location,
        )

    def handle_spec_query(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        params = classification.parameters
        product = self._resolve_product(params)
        if product is None:
            return HandlerResult(not_found=True)
        return HandlerResult(
            data={
                "product_name": product.name,
                "specs_list": product.specifications,
                "specifications": product.specifications,
                "spec_type": params.get("spec_type", "general"),
            },
            product_id=product.id,
        )

    def handle_compliance_check(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        params = classification.parameters
        product = self._resolve_product(params)
        if product is None:
            return HandlerResult(not_found=True)

        check = self.compliance_engine.check_product_compliance(product.id, params.get("industry"))
        if check.compliant:
            status = "compliant"
        else:
            missing = oxford_join([s["id"] for s in check.mandatory_missing])
            status = f"not compliant (missing {missing})"

        data = {
            "product_name": product.name,
            "industry_name": check.industry_display_name,
            "compliance_status": status,
            "standards_list": check.met + check.missing,
            "warnings": check.warnings,
            "compliance": check.to_dict(),
        }
        if params.get("standard"):
            data["standard_check"] = self.compliance_engine.check_standard(product.id, params["standard"])
        return HandlerResult(data=data, product_id=product.id)

    def handle_delivery_inquiry(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        location = classification.parameters.get("location")
        if not location:
            return HandlerResult(not_found=True)
        estimate = self.quote_engine.delivery_estimate(location)
        return HandlerResult(
            data={
                "location": self._display_location(location),
                "delivery_days": estimate["estimated_days"],
                "delivery_cost": estimate["cost"],
                "delivery_note": estimate["buffer"],
                "estimate": estimate,
            },
            location=location,
        )

    def handle_compatibility_check(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        params = classification.parameters
        if not params.get("product_one") or not params.get("product_two"):
            return HandlerResult(not_found=True)

        first = self._find_by_phrase(params["product_one"])
        second = self._find_by_phrase(params["product_two"])
        if first is None or second is None or first.id == second.id:
            return HandlerResult(not_found=True)

        result = self.product_engine.check_compatibility(first.id, second.id)
        issues = [w for w in result.warnings if w.startswith("Size mismatch")]
        notes = [w for w in result.warnings if not w.startswith("Size mismatch")]
        return HandlerResult(
            data={
                "product_one": first.name,
                "product_two": second.name,
                "compatible": result.compatible,
                "variant": "compatible" if result.compatible else "incompatible",
                "issues": issues,
                "warnings": notes,
                "compatibility": result.to_dict(),
            },
            product_id=first.id,
        )

    def handle_bulk_discount(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        params = classification.parameters
        product = self._resolve_product(params)
        info = self.quote_engine.bulk_discount_info(product.id if product else None)
        quantity = params.get("quantity")

        data = {
            "discount_tiers": info["tiers"],
            "loyalty_note": info["loyalty_discount"]["description"],
            "quantity": quantity,
        }
        if quantity:
            data["applicable_discount"] = self.quote_engine.bulk_discount(product, quantity)
        if product:
            data["product_name"] = product.name
        return HandlerResult(data=data, product_id=product.id if product else None)

    def handle_bbbee_inquiry(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        info = self.compliance_engine.bbbee_info()
        certificate = info["certificate"]
        # "level" and "certificate" are variant names, so they stay out of the data
        return HandlerResult(
            data={
                "bbbee_level": info["level"],
                "status": info["status"],
                "ownership": info["ownership"],
                "recognition_level": info["recognition_level"],
                "benefits": info["benefits"],
                "verification": info["verification"],
                "certificate_availability": certificate[:1].lower() + certificate[1:],
                "variant": classification.parameters.get("request_type", "info"),
            },
        )

    def handle_project_assistance(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        params = classification.parameters
        industry = params.get("industry", "general")
        spec = self.compliance_engine.industry(industry)
        return HandlerResult(
            data={
                "project_type": params.get("project_type", "general"),
                "industry": industry,
                "industry_name": spec.display_name if spec else industry.title(),
                "categories": [c["name"] for c in self.product_engine.categories()[:5]],
            },
        )

    def handle_stock_check(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        params = classification.parameters
        product = self._resolve_product(params)
        if product is None:
            return HandlerResult(not_found=True)

        requested = params.get("quantity")
        if not product.track_stock:
            availability = "This item is not stock controlled and can be ordered any time."
        elif requested and requested > product.stock_qty:
            availability = f"We have {product.stock_qty} available; the balance of {requested} can be ordered in."
        else:
            availability = f"We have {product.stock_qty} available."

        return HandlerResult(
            data={
                "product_name": product.name,
                "in_stock": product.in_stock,
                "variant": "in_stock" if product.in_stock else "out_of_stock",
                "stock_qty": product.stock_qty if product.track_stock else None,
                "availability": availability,
            },
            product_id=product.id,
        )

    def handle_order_status(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        order_number = classification.parameters.get("order_number")
        if not order_number:
            return HandlerResult(not_found=True)
        return HandlerResult(data={"order_number": order_number})

    def handle_quote_status(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        quote_number = classification.parameters.get("quote_number")
        if not quote_number:
            return HandlerResult(not_found=True)
        return HandlerResult(data={"quote_number": quote_number})

    def handle_general_info(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        return HandlerResult(data={"info_type": classification.parameters.get("info_type", "general")})

    def handle_contact_request(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        return HandlerResult(data={"variant": classification.parameters.get("contact_type", "general")})

    def handle_greeting(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        return HandlerResult()

    def handle_thanks(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        return HandlerResult()

    def handle_unknown(self, classification: ClassificationResult, session: Session) -> HandlerResult:
        data: Dict[str, Any] = {"suggestions": classification.suggestions, "requires_clarification": True}
        if classification.original_intent:
            data["original_intent"] = classification.original_intent.value
        return HandlerResult(data=data)

    # ── Status ────────────────────────────────────────

    def metrics_snapshot(self) -> Dict[str, Any]:
        return {
            **self.metrics.snapshot(),
            "pattern_matcher": self.classifier.matcher.metrics(),
            "context_store": self.context_store.stats(),
            "tier_thresholds": self.scoring_engine.tier_thresholds(),
        }

    def health(self) -> Dict[str, Any]:
        return {
            "pattern_matcher": {
                "ready": bool(self.classifier.matcher.patterns),
                "patterns": len(self.classifier.matcher.patterns),
                "synonyms": len(self.classifier.matcher.synonym_map),
            },
            "intent_classifier": {
                "ready": True,
                "confidence_threshold": self.classifier.confidence_threshold,
            },
            "product_engine": {
                "ready": self.product_engine.product_count > 0,
                "products": self.product_engine.product_count,
                "index_terms": self.product_engine.term_count,
            },
            "quote_engine": {"ready": True},
            "compliance_engine": {
                "ready": bool(self.compliance_engine.industries),
                "standards": len(self.compliance_engine.standards),
            },
            "response_generator": {"ready": bool(self.response_generator.templates)},
            "context_store": {"ready": True, **self.context_store.stats()},
            "scoring_engine": {
                "ready": True,
                "event_types": len(self.scoring_engine.event_scores),
            },
        }
