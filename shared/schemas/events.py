"""
TicketLink - Event Schemas
==========================

Pydantic models for the audit events emitted by a correlation cycle.
These events are the only output contract of the correlator: how they
are rendered (log line, API response, file) is up to the consumer.
"""

from datetime import datetime, timezone
from typing import Any, Optional
import uuid

from pydantic import BaseModel, Field

from shared.constants import EventKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """Base class for all audit events."""

    event_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for this event"
    )
    kind: EventKind = Field(..., description="What happened")
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event was generated"
    )
    correlation_id: Optional[str] = Field(
        None,
        description="Identifier of the cycle that produced the event"
    )
    source_service: str = Field(
        default="incident-correlator",
        description="Name of the service that generated this event"
    )

    def log_fields(self) -> dict[str, Any]:
        """Event payload suitable for the `extra` of a log call."""
        data = self.model_dump(mode="json", exclude={"timestamp", "source_service"})
        data["event_kind"] = data.pop("kind")
        return data


class IncidentDiscoveredEvent(BaseEvent):
    """A problem ticket was seen for the first time and became an incident."""

    kind: EventKind = EventKind.INCIDENT_DISCOVERED
    incident_id: int
    subject: str
    system_tag: Optional[str] = None
    pattern_name: str
    pattern_description: str
    keywords: list[str] = Field(default_factory=list)
    external_links: list[dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class IncidentRetiredEvent(BaseEvent):
    """An incident left the open-problem result set and was dropped."""

    kind: EventKind = EventKind.INCIDENT_RETIRED
    incident_id: int
    subject: str
    linked_count: int = 0


class TicketMatchedEvent(BaseEvent):
    """A candidate ticket was linked to its best-scoring incident."""

    kind: EventKind = EventKind.TICKET_MATCHED
    ticket_id: int
    incident_id: int
    score: float
    reasons: list[str] = Field(default_factory=list)
    subject: str = ""
    linked_count: int = 0
    annotated: bool = False


class IdleHeartbeatEvent(BaseEvent):
    """No active incidents; the cycle stopped before fetching candidates."""

    kind: EventKind = EventKind.IDLE_HEARTBEAT


class CycleSummaryEvent(BaseEvent):
    """End-of-cycle status line."""

    kind: EventKind = EventKind.CYCLE_SUMMARY
    active_incidents: int
    linked_counts: dict[int, int] = Field(default_factory=dict)
    candidates_scanned: int = 0
    links_made: int = 0


class CycleFailedEvent(BaseEvent):
    """A collaborator call failed and the cycle was abandoned."""

    kind: EventKind = EventKind.CYCLE_FAILED
    error: str
    stage: Optional[str] = None
