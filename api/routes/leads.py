"""
Lead scoring API routes.
"""

import logging
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..services import Services, require_services

logger = logging.getLogger(__name__)

router = APIRouter()


# Models
class TrackEventRequest(BaseModel):
    """Scoring event reported by the website (page views, downloads, forms)."""
    session_id: str = Field(..., min_length=1)
    event_type: str = Field(..., min_length=1, max_length=64)
    metadata: Optional[Dict[str, Any]] = None


# Endpoints
@router.post("/track")
async def track_event(request: TrackEventRequest, services: Services = Depends(require_services)):
    """Record a scoring event against a session."""
    update = await services.scoring_engine.track_event(
        request.session_id,
        request.event_type,
        request.metadata,
    )
    if update.store_unavailable:
        raise HTTPException(status_code=503, detail="Event not recorded: session store unavailable")
    if not update.recorded:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session_id": request.session_id, "event_type": request.event_type, **update.to_dict()}


@router.get("/score/{session_id}")
async def get_score(session_id: str, services: Services = Depends(require_services)):
    score = await services.scoring_engine.get_score(session_id)
    if score is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return score


@router.get("/leads/hot")
async def get_hot_leads(
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(require_services),
):
    """Active HOT sessions, highest score first."""
    leads = await services.scoring_engine.get_hot_leads(limit)
    return {"count": len(leads), "leads": leads}


@router.get("/analytics")
async def get_analytics(
    days: int = Query(7, ge=1, le=365),
    services: Services = Depends(require_services),
):
    return await services.scoring_engine.get_analytics(days)


@router.get("/events")
async def get_event_types(services: Services = Depends(require_services)):
    """Scoring event types with their point values, and the tier thresholds."""
    return {
        "event_types": services.scoring_engine.event_types(),
        "tier_thresholds": services.scoring_engine.tier_thresholds(),
    }


@router.get("/assistant/metrics")
async def get_assistant_metrics(services: Services = Depends(require_services)):
    """Aggregate assistant counters, matcher metrics and session cache stats."""
    return {
        **services.orchestrator.metrics_snapshot(),
        "notifications": services.dispatcher.stats(),
    }
