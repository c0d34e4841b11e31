"""
TicketLink - Correlation Loop
=============================

Drives one correlation cycle at a time:

1. Pull the open problem tickets
2. Register new incidents, retire closed ones
3. Stop with a heartbeat when nothing is active
4. Pull recent candidate tickets
5. Score each candidate against every incident it was not yet evaluated
   against, keep the single best match
6. Link the winner (plus an internal note when the incident has issue links)
7. Emit a cycle summary

Cycles never overlap: `run_cycle` holds a lock, and `run_forever` waits for
a cycle to finish before scheduling the next one.

A failing store call aborts the cycle. Per candidate, the link and note calls
happen before the processed pairs are committed, so the next cycle picks up
where this one stopped. An incident's linked count moves as soon as its link
call succeeds. Failures from either driver go through `record_failure`.
"""

import asyncio
import time
from collections import deque
from datetime import datetime, timezone
from typing import Optional

from src.api.schemas import CandidateTicket, CycleReport, Incident, MatchResult
from src.core.incident_registry import IncidentRegistry
from src.core.ticket_store import BaseTicketStore

from shared.constants import Visibility
from shared.schemas.events import (
    BaseEvent,
    CycleFailedEvent,
    CycleSummaryEvent,
    IdleHeartbeatEvent,
    IncidentDiscoveredEvent,
    IncidentRetiredEvent,
    TicketMatchedEvent,
)
from shared.utils.logging import get_correlation_id, get_logger, new_correlation_id

logger = get_logger(__name__)

NOTE_SIGNATURE = "- TicketLink"


class CorrelationLoop:
    """
    Single driver of the incident registry.

    Example:
        loop = CorrelationLoop(store, candidate_window_minutes=120)
        report = await loop.run_cycle()
    """

    def __init__(
        self,
        store: BaseTicketStore,
        registry: Optional[IncidentRegistry] = None,
        candidate_window_minutes: int = 120,
        event_limit: int = 200
    ):
        self.store = store
        self.registry = registry if registry is not None else IncidentRegistry()
        self.candidate_window_minutes = candidate_window_minutes
        self._events: deque[BaseEvent] = deque(maxlen=event_limit)
        self._cycle_lock = asyncio.Lock()
        self._stage: Optional[str] = None
        self.cycles_completed = 0
        self.cycles_failed = 0
        self.last_report: Optional[CycleReport] = None

    @property
    def recent_events(self) -> list[BaseEvent]:
        """Audit trail, oldest first."""
        return list(self._events)

    def _emit(self, event: BaseEvent, message: str) -> None:
        self._events.append(event)
        logger.info(message, extra=event.log_fields())

    async def run_cycle(self) -> CycleReport:
        """
        Run one full discover -> retire -> scan -> link pass.

        Store failures propagate to the caller.
        """
        async with self._cycle_lock:
            cycle_id = new_correlation_id()
            report = CycleReport(cycle_id=cycle_id, started_at=datetime.now(timezone.utc))

            self._stage = "list_open_problems"
            problems = await self.store.list_open_problems()

            self._stage = "discover"
            for incident in await self.registry.discover(problems, self.store):
                report.discovered.append(incident.incident_id)
                self._emit_discovered(incident, cycle_id)

            self._stage = "retire"
            for incident in self.registry.retire(problems):
                report.retired.append(incident.incident_id)
                self._emit(
                    IncidentRetiredEvent(
                        correlation_id=cycle_id,
                        incident_id=incident.incident_id,
                        subject=incident.subject,
                        linked_count=incident.linked_count,
                    ),
                    f"Incident {incident.incident_id} no longer open, retired"
                )

            if len(self.registry) == 0:
                self._emit(
                    IdleHeartbeatEvent(correlation_id=cycle_id),
                    "No active incidents, watching for problem tickets"
                )
                report.idle = True
                return self._finish(report)

            self._stage = "list_recent_tickets"
            candidates = await self.store.list_recent_tickets(self.candidate_window_minutes)
            report.candidates_scanned = len(candidates)

            self._stage = "scan"
            for candidate in candidates:
                incident_id = await self._process_candidate(candidate, cycle_id)
                if incident_id is not None:
                    report.links[candidate.ticket_id] = incident_id

            report.active_incidents = len(self.registry)
            self._emit(
                CycleSummaryEvent(
                    correlation_id=cycle_id,
                    active_incidents=len(self.registry),
                    linked_counts=self.registry.linked_counts(),
                    candidates_scanned=len(candidates),
                    links_made=len(report.links),
                ),
                self._summary_line(len(candidates))
            )
            return self._finish(report)

    async def _process_candidate(
        self,
        candidate: CandidateTicket,
        cycle_id: str
    ) -> Optional[int]:
        """
        Evaluate one candidate against the active incidents and link the best.

        Returns the incident id the candidate was linked to, if any.
        """
        if candidate.ticket_id in self.registry:
            # Problem tickets are never children of other problems
            return None

        incidents = self.registry.active_incidents()
        winner = self.select_best_match(candidate, incidents)

        annotated = False
        linked_count = 0
        if winner is not None:
            incident, result = winner
            await self.store.link_child_to_incident(candidate.ticket_id, incident.incident_id)
            # The link exists from here on, even if the note below fails
            linked_count = self.registry.increment_linked(incident.incident_id)
            if incident.external_links:
                await self.store.annotate_ticket(
                    candidate.ticket_id,
                    self.build_link_note(incident, result),
                    Visibility.INTERNAL,
                )
                annotated = True

        # Pairs are committed only once the store calls went through
        for incident in incidents:
            self.registry.record(incident.incident_id, candidate.ticket_id)

        if winner is None:
            return None

        incident, result = winner
        self._emit(
            TicketMatchedEvent(
                correlation_id=cycle_id,
                ticket_id=candidate.ticket_id,
                incident_id=incident.incident_id,
                score=result.score,
                reasons=list(result.reasons),
                subject=candidate.subject[:120],
                linked_count=linked_count,
                annotated=annotated,
            ),
            f"Ticket {candidate.ticket_id} linked to incident {incident.incident_id} "
            f"(score: {result.score:g})"
        )
        return incident.incident_id

    def select_best_match(
        self,
        candidate: CandidateTicket,
        incidents: list[Incident]
    ) -> Optional[tuple[Incident, MatchResult]]:
        """
        Highest-scoring matching incident for `candidate`.

        Scores are compared with strict greater-than, so on a tie the
        incident discovered first wins. Pairs already evaluated are skipped.
        """
        best: Optional[tuple[Incident, MatchResult]] = None
        best_score = 0.0

        for incident in incidents:
            if self.registry.already_processed(incident.incident_id, candidate.ticket_id):
                continue

            result = self.registry.matcher_for(incident.incident_id).evaluate(candidate)
            if result.matched and result.score > best_score:
                best = (incident, result)
                best_score = result.score

        return best

    @staticmethod
    def build_link_note(incident: Incident, result: MatchResult) -> str:
        """Internal note telling the agent which incident the ticket joined."""
        issues = "\n".join(f"{link.issue_key}: {link.url}" for link in incident.external_links)
        return "\n".join([
            f"Auto-linked to Problem #{incident.incident_id}: {incident.subject}",
            "",
            f"Issues: {issues}",
            f"Pattern: {incident.profile.pattern_description}",
            f"Match score: {result.score:g} ({', '.join(result.reasons)})",
            "",
            NOTE_SIGNATURE,
        ])

    def _emit_discovered(self, incident: Incident, cycle_id: str) -> None:
        profile = incident.profile
        self._emit(
            IncidentDiscoveredEvent(
                correlation_id=cycle_id,
                incident_id=incident.incident_id,
                subject=incident.subject,
                system_tag=profile.system_tag,
                pattern_name=profile.pattern_name,
                pattern_description=profile.pattern_description,
                keywords=list(profile.keywords),
                external_links=[link.model_dump(mode="json") for link in incident.external_links],
                created_at=incident.created_at,
            ),
            f"New incident detected: #{incident.incident_id} {incident.subject[:50]}"
        )

    def _summary_line(self, scanned: int) -> str:
        parts = []
        for incident in self.registry.active_incidents():
            issue = f"/{incident.external_links[0].issue_key}" if incident.external_links else ""
            parts.append(f"#{incident.incident_id}{issue}({incident.linked_count})")
        return f"Active: {', '.join(parts)} | Scanned: {scanned} tickets"

    def _finish(self, report: CycleReport) -> CycleReport:
        report.finished_at = datetime.now(timezone.utc)
        report.active_incidents = len(self.registry)
        self._stage = None
        self.cycles_completed += 1
        self.last_report = report
        return report

    def record_failure(self, error: Exception) -> CycleFailedEvent:
        """Count a failed cycle, log it and add it to the audit trail."""
        self.cycles_failed += 1
        stage = self._stage
        self._stage = None

        event = CycleFailedEvent(correlation_id=get_correlation_id(), error=str(error), stage=stage)
        self._events.append(event)
        logger.error(
            f"Correlation cycle failed: {error}",
            extra={"stage": stage, "error": str(error)},
            exc_info=error
        )
        return event

    async def run_forever(self, interval_seconds: float) -> None:
        """
        Run cycles until cancelled.

        The next cycle starts `interval_seconds` after the previous one
        started, or right away if the previous one overran. A failed cycle
        is logged and recorded; the next one starts from scratch.
        """
        logger.info(
            f"Starting correlation loop with {interval_seconds}s interval",
            extra={"interval_seconds": interval_seconds}
        )

        while True:
            started = time.monotonic()
            try:
                await self.run_cycle()
            except Exception as e:
                self.record_failure(e)

            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, interval_seconds - elapsed))
