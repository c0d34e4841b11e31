"""
TicketLink - Shared Schemas
===========================

Pydantic models for the audit trail produced by the correlator.
"""

from shared.schemas.events import (
    BaseEvent,
    IncidentDiscoveredEvent,
    IncidentRetiredEvent,
    TicketMatchedEvent,
    IdleHeartbeatEvent,
    CycleSummaryEvent,
    CycleFailedEvent,
)

__all__ = [
    "BaseEvent",
    "IncidentDiscoveredEvent",
    "IncidentRetiredEvent",
    "TicketMatchedEvent",
    "IdleHeartbeatEvent",
    "CycleSummaryEvent",
    "CycleFailedEvent",
]
