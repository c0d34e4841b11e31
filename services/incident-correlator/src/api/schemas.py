"""
TicketLink - Incident Correlator Schemas
========================================

Pydantic models for tickets fetched from the store, the incidents the
registry tracks, and the API responses built from them.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.constants import IncidentState


class ExternalLink(BaseModel):
    """An issue-tracker issue linked to a problem ticket."""

    issue_key: str = Field(..., description="Issue key, e.g. ENG-1234")
    url: str = Field(..., description="Browse URL of the issue")
    issue_id: Optional[str] = None
    created_at: Optional[datetime] = None


class TicketBase(BaseModel):
    """
    Fields shared by problem and candidate tickets.

    Missing text and tags are normalised to empty values, so the extractor
    and the matcher never see None.
    """

    ticket_id: int = Field(..., description="Ticket store identifier")
    subject: str = Field(default="")
    description: str = Field(default="")
    tags: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @field_validator("subject", "description", mode="before")
    @classmethod
    def _empty_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _empty_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        return [tag for tag in value if tag]

    @property
    def text(self) -> str:
        """Lower-cased subject and description, as scanned for keywords."""
        return f"{self.subject} {self.description}".lower()


class ProblemTicket(TicketBase):
    """An open problem ticket as returned by the store."""


class CandidateTicket(TicketBase):
    """A recent support ticket being evaluated for incident membership."""

    status: Optional[str] = None
    problem_link_id: Optional[int] = Field(
        None,
        description="Problem ticket this ticket is already linked to"
    )


class IncidentProfile(BaseModel):
    """
    Signature derived from an incident's problem ticket.

    Immutable once built; the matcher for the incident is constructed from it.
    """

    model_config = ConfigDict(frozen=True)

    source_ticket_id: int
    keywords: tuple[str, ...] = ()
    system_tag: Optional[str] = None
    pattern_name: str = "custom"
    pattern_description: str = "Custom Pattern"
    created_at: Optional[datetime] = None


class MatchResult(BaseModel):
    """Outcome of scoring one candidate against one incident."""

    model_config = ConfigDict(frozen=True)

    matched: bool = False
    score: float = 0.0
    reasons: tuple[str, ...] = ()


class Incident(BaseModel):
    """One open problem ticket tracked by the registry."""

    incident_id: int = Field(..., description="Problem ticket identifier")
    subject: str = Field(default="")
    created_at: Optional[datetime] = None
    profile: IncidentProfile
    linked_count: int = Field(default=0, ge=0)
    external_links: list[ExternalLink] = Field(default_factory=list)
    state: IncidentState = Field(default=IncidentState.ACTIVE)
    discovered_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class IncidentListResponse(BaseModel):
    """Response for listing active incidents."""

    incidents: list[Incident]
    total: int


class EventListResponse(BaseModel):
    """Recent audit events, oldest first."""

    events: list[dict[str, Any]]
    total: int


class CycleReport(BaseModel):
    """What one correlation cycle did."""

    cycle_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    idle: bool = False
    discovered: list[int] = Field(default_factory=list)
    retired: list[int] = Field(default_factory=list)
    candidates_scanned: int = 0
    links: dict[int, int] = Field(
        default_factory=dict,
        description="Linked ticket id -> incident id"
    )
    active_incidents: int = 0
