"""
Lead Scoring Module for the sales assistant.

This module turns visitor engagement into sales priority:
- Cumulative event scoring (points per event type)
- Tier derivation (COLD, COOL, WARM, HOT)
- Hot lead notifications through an async queue and pluggable sinks
"""

from .scoring_engine import (
    ScoringEngine,
    ScoreUpdate,
    LeadTier,
    NotificationCooldown,
    EVENT_SCORES,
    TIER_THRESHOLDS,
    calculate_tier,
)
from .notifications import (
    HotLeadNotification,
    NotificationDispatcher,
    NotificationSink,
    DatabaseNotificationSink,
    WebhookNotificationSink,
)

__all__ = [
    "ScoringEngine",
    "ScoreUpdate",
    "LeadTier",
    "NotificationCooldown",
    "EVENT_SCORES",
    "TIER_THRESHOLDS",
    "calculate_tier",
    "HotLeadNotification",
    "NotificationDispatcher",
    "NotificationSink",
    "DatabaseNotificationSink",
    "WebhookNotificationSink",
]
