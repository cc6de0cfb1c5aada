"""
API module for the sales assistant.

FastAPI application with routes for:
- Chat turns and sessions
- Product search, pricing and delivery
- Compliance checks
- Lead scoring
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
