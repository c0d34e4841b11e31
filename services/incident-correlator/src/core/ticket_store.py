"""
TicketLink - Ticket Store Interface
===================================

The operations the correlator needs from the ticket store. Transport,
auth, pagination and backoff belong to the implementation.
"""

from abc import ABC, abstractmethod

from src.api.schemas import CandidateTicket, ExternalLink, ProblemTicket

from shared.constants import Visibility


class TicketStoreError(Exception):
    """A ticket store call failed (network error or non-success status)."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body[:200]


class RateLimitedError(TicketStoreError):
    """The store answered 429; `retry_after` is the advised wait in seconds."""

    def __init__(self, retry_after: float, body: str = ""):
        super().__init__(f"Rate limited, retry after {retry_after}s", status_code=429, body=body)
        self.retry_after = retry_after


class BaseTicketStore(ABC):
    """Ticket store collaborator of the correlation loop."""

    @abstractmethod
    async def list_open_problems(self) -> list[ProblemTicket]:
        """Problem tickets that are not solved or closed."""

    @abstractmethod
    async def list_recent_tickets(self, window_minutes: int) -> list[CandidateTicket]:
        """Unsolved tickets created within the last `window_minutes`."""

    @abstractmethod
    async def link_child_to_incident(self, ticket_id: int, incident_id: int) -> None:
        """Make `ticket_id` a child of the problem ticket `incident_id`."""

    @abstractmethod
    async def annotate_ticket(
        self,
        ticket_id: int,
        text: str,
        visibility: Visibility = Visibility.INTERNAL
    ) -> None:
        """Add a comment to a ticket."""

    @abstractmethod
    async def get_external_issue_links(self, incident_id: int) -> list[ExternalLink]:
        """Issue-tracker links of a problem ticket. Best effort: [] when unknown."""

    async def close(self) -> None:
        """Release transport resources."""
