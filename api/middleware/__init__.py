"""
API middleware.
"""

from .metrics import MetricsMiddleware, metrics_endpoint

__all__ = ["MetricsMiddleware", "metrics_endpoint"]
