"""
API routes for the sales assistant.
"""

from . import chat, products, compliance, leads

__all__ = ["chat", "products", "compliance", "leads"]
