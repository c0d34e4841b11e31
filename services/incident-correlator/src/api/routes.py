"""
TicketLink - Incident Correlator API Routes
===========================================

Read-only view of the registry and the audit trail, plus a manual trigger
for one correlation cycle.
"""

from fastapi import APIRouter, HTTPException, Query, Request

from src.api.schemas import CycleReport, EventListResponse, Incident, IncidentListResponse
from src.core.ticket_store import TicketStoreError

router = APIRouter()


# =============================================================================
# INCIDENTS
# =============================================================================

@router.get("/incidents", response_model=IncidentListResponse, tags=["incidents"])
async def list_incidents(request: Request):
    """Active incidents in discovery order."""
    registry = request.app.state.correlation_loop.registry
    incidents = registry.active_incidents()
    return IncidentListResponse(incidents=incidents, total=len(incidents))


@router.get("/incidents/{incident_id}", response_model=Incident, tags=["incidents"])
async def get_incident(incident_id: int, request: Request):
    """Get one active incident."""
    incident = request.app.state.correlation_loop.registry.get(incident_id)
    if not incident:
        raise HTTPException(status_code=404, detail="Incident not found")
    return incident


# =============================================================================
# AUDIT TRAIL
# =============================================================================

@router.get("/events", response_model=EventListResponse, tags=["events"])
async def list_events(request: Request, limit: int = Query(50, ge=1, le=1000)):
    """Most recent audit events, oldest first."""
    events = request.app.state.correlation_loop.recent_events[-limit:]
    return EventListResponse(
        events=[event.model_dump(mode="json") for event in events],
        total=len(events),
    )


# =============================================================================
# CYCLES
# =============================================================================

@router.post("/cycles", response_model=CycleReport, tags=["cycles"])
async def trigger_cycle(request: Request):
    """
    Run one correlation cycle now.

    Waits for a cycle already in progress to finish first. A failed cycle
    is recorded in the audit trail like one run by the poller.
    """
    loop = request.app.state.correlation_loop
    try:
        return await loop.run_cycle()
    except TicketStoreError as e:
        loop.record_failure(e)
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        loop.record_failure(e)
        raise
