"""
Chat API Routes for the sales assistant.
"""

import logging
from typing import List, Dict, Any, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..services import Services, require_services

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    visitor_id: str = Field(..., min_length=1, max_length=128)
    customer_id: Optional[str] = Field(default=None, max_length=128)


class ReplyBody(BaseModel):
    text: str
    quick_replies: List[str] = []


class ChatResponse(BaseModel):
    success: bool
    response: ReplyBody
    intent: str
    confidence: float
    entities: Dict[str, Any] = {}
    session: Dict[str, Any] = {}
    latency_ms: float
    data: Dict[str, Any] = {}
    suggestions: List[str] = []
    is_ambiguous: bool = False
    ambiguous_intents: List[str] = []
    timestamp: str


class CloseSessionRequest(BaseModel):
    outcome: Optional[str] = Field(default=None, max_length=64)


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, services: Services = Depends(require_services)):
    """
    Process one visitor message.

    1. Resolve session  2. Classify intent  3. Run the intent handler
    4. Render the reply  5. Record messages and lead score
    """
    reply = await services.orchestrator.process(
        request.message,
        visitor_id=request.visitor_id,
        customer_id=request.customer_id,
    )
    return ChatResponse(**reply.to_dict(), timestamp=datetime.utcnow().isoformat())


@router.post("/sessions/{session_id}/close")
async def close_session(
    session_id: str,
    request: Optional[CloseSessionRequest] = None,
    services: Services = Depends(require_services),
):
    """Close a chat session, optionally recording its conversion outcome."""
    outcome = request.outcome if request else None
    closed = await services.context_store.close(session_id, outcome=outcome)
    if not closed:
        raise HTTPException(status_code=404, detail="Session not found or already closed")
    return {"message": "Session closed", "session_id": session_id, "outcome": outcome}


@router.get("/chat/stats")
async def get_chat_stats(services: Services = Depends(require_services)):
    """Get chat statistics."""
    return services.orchestrator.metrics_snapshot()
