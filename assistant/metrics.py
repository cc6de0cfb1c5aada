"""
Aggregate assistant metrics.

``AssistantMetrics`` is an injectable in-process counter set used for the
JSON metrics snapshot; the Prometheus collectors below feed /metrics.
"""

import logging
import threading
from collections import Counter as TallyCounter
from typing import Any, Dict

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

INTENT_COUNT = Counter(
    "assistant_intent_classification_total",
    "Intent classifications",
    ["intent"],
)
TURN_LATENCY = Histogram(
    "assistant_turn_duration_seconds",
    "End to end latency of one assistant turn",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
TURN_ERRORS = Counter(
    "assistant_turn_errors_total",
    "Turns that ended in the generic error reply",
)
LEAD_SCORE_HIST = Histogram(
    "assistant_lead_score",
    "Lead score after each tracked event",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100, 150],
)
HOT_LEADS = Counter(
    "assistant_hot_leads_total",
    "Sessions that moved into the HOT tier",
)


def record_intent(intent: str):
    """Record an intent classification event."""
    INTENT_COUNT.labels(intent=intent).inc()


def record_lead_score(score: float, became_hot: bool = False):
    """Record a lead score, counting transitions into HOT."""
    LEAD_SCORE_HIST.observe(score)
    if became_hot:
        HOT_LEADS.inc()


class AssistantMetrics:
    """Thread-safe turn counters with a running average latency."""

    def __init__(self):
        self._lock = threading.Lock()
        self.total_requests = 0
        self.errors = 0
        self.average_latency_ms = 0.0
        self.intent_distribution: TallyCounter = TallyCounter()

    def record_turn(self, intent: str, latency_ms: float, error: bool = False):
        with self._lock:
            self.total_requests += 1
            n = self.total_requests
            self.average_latency_ms += (latency_ms - self.average_latency_ms) / n
            self.intent_distribution[intent] += 1
            if error:
                self.errors += 1

        record_intent(intent)
        TURN_LATENCY.observe(latency_ms / 1000)
        if error:
            TURN_ERRORS.inc()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_requests": self.total_requests,
                "average_latency_ms": round(self.average_latency_ms, 2),
                "intent_distribution": dict(self.intent_distribution),
                "errors": self.errors,
                "error_rate": round(self.errors / self.total_requests, 4) if self.total_requests else 0.0,
            }
