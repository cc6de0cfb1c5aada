"""
Sales assistant core.

- Knowledge documents (patterns, synonyms, responses, compliance)
- Session context store
- Template response generation
- Assistant metrics

The turn orchestrator lives in ``assistant.orchestrator``.
"""

from .knowledge_base import KnowledgeBase, KnowledgeConfigError, load_knowledge
from .context_store import ContextStore, MessageRole, Session, TEMP_SESSION_PREFIX
from .response_generator import GeneratedResponse, HandlerResult, ResponseCase, ResponseGenerator
from .metrics import AssistantMetrics

__all__ = [
    "KnowledgeBase",
    "KnowledgeConfigError",
    "load_knowledge",
    "ContextStore",
    "MessageRole",
    "Session",
    "TEMP_SESSION_PREFIX",
    "GeneratedResponse",
    "HandlerResult",
    "ResponseCase",
    "ResponseGenerator",
    "AssistantMetrics",
]
