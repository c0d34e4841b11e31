"""
TicketLink - Incident Registry
==============================

Owns the active incidents and the set of (incident, ticket) pairs already
evaluated. Mutated only by the correlation loop that owns it, so it holds
no locks.
"""

from typing import Iterable, Optional

from src.api.schemas import Incident, ProblemTicket
from src.core.pattern_extractor import PatternExtractor
from src.core.ticket_matcher import TicketMatcher
from src.core.ticket_store import BaseTicketStore

from shared.constants import IncidentState
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class IncidentRegistry:
    """
    Active incidents keyed by problem ticket id, in discovery order.

    Lifecycle per incident: discovered -> active -> retired. Retired
    incidents are deleted. Processed pairs outlive them, so a reopened
    problem never re-scores a ticket it already saw.
    """

    def __init__(self, extractor: Optional[PatternExtractor] = None):
        self._extractor = extractor or PatternExtractor()
        self._incidents: dict[int, Incident] = {}
        self._matchers: dict[int, TicketMatcher] = {}
        self._processed: set[tuple[int, int]] = set()

    def __contains__(self, incident_id: object) -> bool:
        return incident_id in self._incidents

    def __len__(self) -> int:
        return len(self._incidents)

    def get(self, incident_id: int) -> Optional[Incident]:
        return self._incidents.get(incident_id)

    def active_incidents(self) -> list[Incident]:
        """Snapshot of the active incidents in discovery order."""
        return list(self._incidents.values())

    def matcher_for(self, incident_id: int) -> TicketMatcher:
        return self._matchers[incident_id]

    async def discover(
        self,
        open_problems: Iterable[ProblemTicket],
        store: BaseTicketStore
    ) -> list[Incident]:
        """
        Register every open problem not yet tracked.

        All new incidents are built (profile + external links) before any is
        inserted, so a failure part-way leaves the registry untouched.
        """
        pending: dict[int, Incident] = {}

        for problem in open_problems:
            if problem.ticket_id in self._incidents or problem.ticket_id in pending:
                continue

            profile = self._extractor.extract(problem)
            links = await store.get_external_issue_links(problem.ticket_id)

            pending[problem.ticket_id] = Incident(
                incident_id=problem.ticket_id,
                subject=problem.subject,
                created_at=problem.created_at,
                profile=profile,
                external_links=links,
            )

        for incident_id, incident in pending.items():
            self._incidents[incident_id] = incident
            self._matchers[incident_id] = TicketMatcher.from_profile(incident.profile)
            logger.info(
                f"Incident {incident_id} registered",
                extra={"incident_id": incident_id, "pattern": incident.profile.pattern_name}
            )

        return list(pending.values())

    def retire(self, open_problems: Iterable[ProblemTicket]) -> list[Incident]:
        """
        Drop every incident absent from the latest open-problem result set.

        One absence is enough: the store only returns problems still open.
        """
        still_open = {problem.ticket_id for problem in open_problems}
        retired: list[Incident] = []

        for incident_id in list(self._incidents):
            if incident_id in still_open:
                continue

            incident = self._incidents.pop(incident_id)
            incident.state = IncidentState.RETIRED
            del self._matchers[incident_id]
            retired.append(incident)

            logger.info(
                f"Incident {incident_id} retired",
                extra={"incident_id": incident_id, "linked_count": incident.linked_count}
            )

        return retired

    def record(self, incident_id: int, ticket_id: int) -> None:
        """Remember that `ticket_id` has been evaluated against `incident_id`."""
        self._processed.add((incident_id, ticket_id))

    def already_processed(self, incident_id: int, ticket_id: int) -> bool:
        return (incident_id, ticket_id) in self._processed

    def increment_linked(self, incident_id: int) -> int:
        """Count one more linked child ticket; returns the new total."""
        incident = self._incidents[incident_id]
        incident.linked_count += 1
        return incident.linked_count

    def linked_counts(self) -> dict[int, int]:
        return {
            incident_id: incident.linked_count
            for incident_id, incident in self._incidents.items()
        }
