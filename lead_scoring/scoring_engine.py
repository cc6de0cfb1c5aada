"""
Cumulative Lead Scoring Engine.

Every tracked visitor event adds a fixed number of points to the session's
running score. The tier is derived from the score alone:

    HOT  >= 80   notify sales (once per cooldown window)
    WARM >= 40
    COOL >= 20
    COLD  < 20

Scores never decay; a session keeps its tier until it is closed.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from database.repositories import (
    MessageRepository,
    ScoringEventRepository,
    SessionRepository,
)
from database.session import PERSISTENCE_ERRORS, Database
from .notifications import HotLeadNotification, NotificationDispatcher

logger = logging.getLogger(__name__)


class LeadTier(str, Enum):
    HOT = "HOT"
    WARM = "WARM"
    COOL = "COOL"
    COLD = "COLD"


# Points per event type
EVENT_SCORES: Dict[str, int] = {
    # Page views
    "page_view_home": 1,
    "page_view_products": 3,
    "page_view_services": 3,
    "page_view_about": 2,
    "page_view_contact": 8,
    "page_view_bbbee": 5,
    # Product interactions
    "product_view": 5,
    "product_spec_view": 10,
    "product_compare": 12,
    "product_add_to_cart": 15,
    # Pricing interactions
    "price_check": 15,
    "bulk_discount_view": 20,
    "quote_started": 25,
    "quote_item_added": 10,
    # Chat interactions
    "chat_opened": 3,
    "chat_message_sent": 3,
    "chat_product_inquiry": 8,
    "chat_price_inquiry": 12,
    "chat_compliance_inquiry": 10,
    "chat_delivery_inquiry": 8,
    # High-value actions
    "bbbee_cert_request": 30,
    "quote_request": 30,
    "quote_submitted": 50,
    "contact_form_filled": 35,
    "phone_clicked": 25,
    "email_clicked": 20,
    "whatsapp_clicked": 22,
    "callback_requested": 40,
    # Orders
    "order_started": 30,
    "order_completed": 100,
    "repeat_visit": 5,
}

# Highest first
TIER_THRESHOLDS: Dict[LeadTier, int] = {
    LeadTier.HOT: 80,
    LeadTier.WARM: 40,
    LeadTier.COOL: 20,
    LeadTier.COLD: 0,
}

TIER_ORDER = [LeadTier.COLD, LeadTier.COOL, LeadTier.WARM, LeadTier.HOT]

DEFAULT_ACTION = "Contact within 1 hour to qualify and assist"

SUGGESTED_ACTIONS: Dict[str, str] = {
    "quote_submitted": "Follow up within 1 hour to close the sale",
    "quote_request": "Prepare personalized quote and call within 2 hours",
    "callback_requested": "Call immediately - customer is waiting",
    "contact_form_filled": "Call within 1 hour with relevant product info",
    "bbbee_cert_request": "Send certificate and highlight procurement benefits",
    "phone_clicked": "Customer may call - be ready with pricing",
    "bulk_discount_view": "Large order potential - prepare volume pricing",
}


def calculate_tier(score: int) -> LeadTier:
    """First tier from the top whose threshold the score meets."""
    for tier, threshold in TIER_THRESHOLDS.items():
        if score >= threshold:
            return tier
    return LeadTier.COLD


def suggested_action(trigger_event: str) -> str:
    return SUGGESTED_ACTIONS.get(trigger_event, DEFAULT_ACTION)


@dataclass
class ScoreUpdate:
    """Outcome of tracking one event."""

    score: int
    tier: LeadTier
    points_added: int
    previous_score: int = 0
    previous_tier: LeadTier = LeadTier.COLD
    tier_changed: bool = False
    recorded: bool = True
    store_unavailable: bool = False
    notified: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "tier": self.tier.value,
            "points_added": self.points_added,
            "previous_score": self.previous_score,
            "previous_tier": self.previous_tier.value,
            "tier_changed": self.tier_changed,
            "recorded": self.recorded,
            "store_unavailable": self.store_unavailable,
            "notified": self.notified,
        }


class NotificationCooldown:
    """
    Remembers when each session last triggered a hot lead notification.

    Shared across concurrent turns; ``try_acquire`` is atomic per call.
    """

    def __init__(
        self,
        window: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.window = window
        self.clock = clock
        self._last_sent: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def try_acquire(self, session_id: str) -> bool:
        """Claim the notification slot for a session if its cooldown has elapsed."""
        now = self.clock()
        with self._lock:
            last = self._last_sent.get(session_id)
            if last is not None and now - last < self.window:
                return False
            self._drop_stale(now)
            self._last_sent[session_id] = now
            return True

    def prune(self) -> int:
        with self._lock:
            return self._drop_stale(self.clock())

    def _drop_stale(self, now: datetime) -> int:
        # Caller holds the lock
        stale = [sid for sid, ts in self._last_sent.items() if now - ts >= self.window]
        for sid in stale:
            del self._last_sent[sid]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_sent)


class ScoringEngine:
    """
    Tracks engagement events against sessions and surfaces hot leads.

    Usage:
        engine = ScoringEngine(database, dispatcher)
        update = await engine.track_event(session_id, "quote_request")
        if update.tier == LeadTier.HOT:
            ...
    """

    def __init__(
        self,
        database: Database,
        dispatcher: Optional[NotificationDispatcher] = None,
        cooldown: Optional[NotificationCooldown] = None,
        event_scores: Optional[Dict[str, int]] = None,
    ):
        self.database = database
        self.dispatcher = dispatcher
        self.cooldown = cooldown if cooldown is not None else NotificationCooldown()
        self.event_scores = dict(event_scores if event_scores is not None else EVENT_SCORES)

    def points_for(self, event_type: str) -> int:
        if event_type not in self.event_scores:
            logger.warning(f"Unknown scoring event type: {event_type}")
            return 0
        return self.event_scores[event_type]

    async def track_event(
        self,
        session_id: str,
        event_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScoreUpdate:
        """
        Record an event, add its points and recompute the tier.

        Never raises on persistence failure; the returned update has
        ``recorded=False`` instead.
        """
        points = self.points_for(event_type)
        notification: Optional[HotLeadNotification] = None

        try:
            async with self.database.session() as db:
                sessions = SessionRepository(db)
                row = await sessions.get_by_id(session_id)
                if row is None:
                    logger.warning(f"track_event: session {session_id} not found")
                    return ScoreUpdate(score=0, tier=LeadTier.COLD, points_added=0, recorded=False)

                previous_score = row.lead_score or 0
                previous_tier = LeadTier(row.lead_tier or LeadTier.COLD.value)

                await ScoringEventRepository(db).add(session_id, event_type, points, metadata)
                score = await sessions.add_points(session_id, points)
                tier = calculate_tier(score)
                if tier != previous_tier:
                    await sessions.set_tier(session_id, tier.value)

                if (
                    tier == LeadTier.HOT
                    and previous_tier != LeadTier.HOT
                    and self.dispatcher is not None
                    and self.cooldown.try_acquire(session_id)
                ):
                    notification = await self._build_notification(db, row, score, event_type)
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Dropped scoring event {event_type} for session {session_id}: {e}")
            return ScoreUpdate(
                score=0, tier=LeadTier.COLD, points_added=points, recorded=False, store_unavailable=True
            )

        update = ScoreUpdate(
            score=score,
            tier=tier,
            points_added=points,
            previous_score=previous_score,
            previous_tier=previous_tier,
            tier_changed=tier != previous_tier,
        )

        if update.tier_changed:
            logger.info(
                f"Session {session_id} moved {previous_tier.value} -> {tier.value} "
                f"(score {score}, event {event_type})"
            )

        if notification is not None:
            update.notified = self.dispatcher.enqueue(notification)
            if update.notified:
                logger.info(f"HOT lead queued for session {session_id}, score {score}")

        return update

    async def _build_notification(self, db, row, score: int, trigger_event: str) -> HotLeadNotification:
        events = await ScoringEventRepository(db).recent(row.id, limit=5)
        messages = await MessageRepository(db).recent(row.id, limit=3, role="visitor")
        return HotLeadNotification(
            session_id=row.id,
            visitor_id=row.visitor_id,
            customer_id=row.customer_id,
            score=score,
            tier=LeadTier.HOT.value,
            trigger_event=trigger_event,
            suggested_action=suggested_action(trigger_event),
            recent_events=[
                {"type": e.event_type, "points": e.points, "timestamp": e.created_at.isoformat()}
                for e in events
            ],
            recent_messages=[m.content for m in messages],
        )

    # ── Queries ───────────────────────────────────────

    async def get_score(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Current score, tier, last ten events and progress towards the next tier."""
        async with self.database.session() as db:
            row = await SessionRepository(db).get_by_id(session_id)
            if row is None:
                return None
            events = await ScoringEventRepository(db).recent(session_id, limit=10)

        score = row.lead_score or 0
        tier = calculate_tier(score)
        return {
            "session_id": session_id,
            "score": score,
            "tier": tier.value,
            "events": [
                {"type": e.event_type, "points": e.points, "timestamp": e.created_at.isoformat()}
                for e in events
            ],
            "thresholds": self.tier_thresholds(),
            "next_tier": self.next_tier_info(score),
        }

    @staticmethod
    def next_tier_info(score: int) -> Dict[str, Any]:
        tier = calculate_tier(score)
        index = TIER_ORDER.index(tier)
        if index == len(TIER_ORDER) - 1:
            return {"tier": LeadTier.HOT.value, "points_needed": 0, "is_max_tier": True}
        next_tier = TIER_ORDER[index + 1]
        return {
            "tier": next_tier.value,
            "points_needed": TIER_THRESHOLDS[next_tier] - score,
            "is_max_tier": False,
        }

    async def get_hot_leads(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Active HOT sessions, highest score first."""
        leads = []
        async with self.database.session() as db:
            messages = MessageRepository(db)
            events = ScoringEventRepository(db)
            for row in await SessionRepository(db).list_hot(limit):
                recent_messages = await messages.recent(row.id, limit=3, role="visitor")
                recent_events = await events.recent(row.id, limit=5)
                leads.append({
                    "session_id": row.id,
                    "visitor_id": row.visitor_id,
                    "customer_id": row.customer_id,
                    "score": row.lead_score,
                    "tier": row.lead_tier,
                    "last_active": row.last_message_at.isoformat() if row.last_message_at else None,
                    "recent_messages": [m.content for m in recent_messages],
                    "top_events": [e.event_type for e in recent_events],
                })
        return leads

    async def get_analytics(self, days: int = 7) -> Dict[str, Any]:
        """Tier distribution, event frequency and conversions for the last ``days``."""
        start = datetime.utcnow() - timedelta(days=days)
        async with self.database.session() as db:
            sessions = SessionRepository(db)
            distribution = await sessions.tier_distribution(start)
            frequency = await ScoringEventRepository(db).frequency(start)
            conversions = await sessions.count(since=start, converted_only=True)
            total = await sessions.count(since=start)

        return {
            "period": {"days": days, "start_date": start.isoformat()},
            "tier_distribution": {t.value: distribution.get(t.value, 0) for t in TIER_ORDER},
            "event_frequency": [
                {"type": event_type, "count": count, "total_points": total_points}
                for event_type, count, total_points in frequency
            ],
            "conversions": conversions,
            "total_sessions": total,
            "conversion_rate": round(conversions / total * 100, 2) if total else 0.0,
        }

    def event_types(self) -> Dict[str, int]:
        return dict(self.event_scores)

    @staticmethod
    def tier_thresholds() -> Dict[str, int]:
        return {tier.value: threshold for tier, threshold in TIER_THRESHOLDS.items()}
