"""
HTTP metrics for the sales assistant API.

Request counts and latencies are labelled by route template so session and
product ids stay out of the label set. Assistant-level metrics (intents,
lead scores) are registered in ``assistant.metrics`` on the same default
registry and appear on the same /metrics page.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Paths excluded from request metrics
UNTRACKED_PATHS = frozenset({"/metrics"})

HTTP_REQUESTS = Counter(
    "assistant_http_requests_total",
    "HTTP requests served by the assistant API",
    ["method", "route", "status_class"],
)
HTTP_LATENCY = Histogram(
    "assistant_http_request_duration_seconds",
    "HTTP request handling time",
    ["method", "route"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)
HTTP_IN_FLIGHT = Gauge(
    "assistant_http_requests_in_flight",
    "HTTP requests currently being handled",
)


def route_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is None:
        return "unmatched"
    return route.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count and time every request except the scrape itself."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in UNTRACKED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        status_code = 500
        HTTP_IN_FLIGHT.inc()
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            HTTP_IN_FLIGHT.dec()
            route = route_label(request)
            HTTP_REQUESTS.labels(request.method, route, f"{status_code // 100}xx").inc()
            HTTP_LATENCY.labels(request.method, route).observe(time.perf_counter() - started)


async def metrics_endpoint() -> Response:
    """Prometheus text exposition of the default registry."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
