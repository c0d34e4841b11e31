"""
TicketLink - Ticket Matcher
===========================

Scores a candidate ticket against one incident's signature.

Substantive conditions:
- each strong keyword literally present in subject + description
- the candidate carries the incident's system tag

Minor boosts, only counted once a substantive condition fired:
- emergency flag (tag or subject prefix)
- system/integration tag
- candidate created after the incident ticket

There is no score threshold: any substantive hit is a match. The correlation
loop picks the best incident per ticket, so weak matches only win when
nothing stronger exists.
"""

from datetime import datetime
from typing import Iterable, Optional

from src.api.schemas import CandidateTicket, IncidentProfile, MatchResult

from shared.constants import EMERGENCY_SUBJECT_PREFIX, EMERGENCY_TAG, SYSTEM_ISSUE_TAGS

# Single words too generic to count as keywords on their own.
# Multi-word phrases containing them are kept.
STOP_WORDS = frozenset({
    # Common English
    "auto", "work", "working", "does", "that", "this", "with", "from",
    "have", "been", "they", "their", "about", "into", "causing", "other",
    "when", "what", "where", "which", "every", "time", "some", "also",
    "just", "only", "more", "very", "still", "back", "after", "before",
    # Generic support words
    "issue", "issues", "problem", "problems", "help", "need", "please",
    "shop", "customer", "support", "ticket", "call", "called", "report",
    "reports", "device", "devices", "resolved", "update", "release",
    "unable", "error", "able", "getting", "showing", "trying", "tried",
    "says", "said", "told", "want", "wants", "like", "goes", "going",
    # Generic tech words
    "data", "system", "page", "screen", "button", "click", "open",
    "close", "save", "send", "receive", "check", "find", "view",
    "text", "messages", "notes", "labor", "lines", "techs", "user",
    "users", "account", "login", "email", "phone", "number",
})

KEYWORD_WEIGHT = 1.0
SYSTEM_TAG_WEIGHT = 1.0
EMERGENCY_WEIGHT = 0.5
SYSTEM_ISSUE_WEIGHT = 0.5
TEMPORAL_WEIGHT = 0.25

NO_MATCH = MatchResult(matched=False, score=0.0, reasons=())


class TicketMatcher:
    """
    Scores candidates against a single incident.

    Deterministic and side-effect free: the same candidate always yields
    the same score and reasons.
    """

    def __init__(
        self,
        keywords: Iterable[str] = (),
        system_tag: Optional[str] = None,
        exclude_ticket_id: Optional[int] = None,
        incident_created_at: Optional[datetime] = None
    ):
        normalized = [keyword.lower().strip() for keyword in keywords]
        self.keywords: tuple[str, ...] = tuple(k for k in normalized if k)
        self.strong_keywords: tuple[str, ...] = tuple(
            k for k in self.keywords if " " in k or k not in STOP_WORDS
        )
        self.system_tag = (system_tag or "").lower().strip()
        self.exclude_ticket_id = exclude_ticket_id
        self.incident_created_at = incident_created_at

    @classmethod
    def from_profile(cls, profile: IncidentProfile) -> "TicketMatcher":
        return cls(
            keywords=profile.keywords,
            system_tag=profile.system_tag,
            exclude_ticket_id=profile.source_ticket_id,
            incident_created_at=profile.created_at,
        )

    def evaluate(self, candidate: CandidateTicket) -> MatchResult:
        """Score `candidate`; `matched` is True iff the score is positive."""
        if candidate.ticket_id == self.exclude_ticket_id:
            return NO_MATCH

        # Already linked, to this incident or another one
        if candidate.problem_link_id is not None:
            return NO_MATCH

        score = 0.0
        reasons: list[str] = []

        tags = {tag.lower() for tag in candidate.tags}
        if self.system_tag and self.system_tag in tags:
            score += SYSTEM_TAG_WEIGHT
            reasons.append(f"system tag: {self.system_tag}")

        text = candidate.text
        for keyword in self.strong_keywords:
            if keyword in text:
                score += KEYWORD_WEIGHT
                reasons.append(f'keyword: "{keyword}"')

        if score == 0:
            return NO_MATCH

        if EMERGENCY_TAG in tags or candidate.subject.lower().startswith(EMERGENCY_SUBJECT_PREFIX):
            score += EMERGENCY_WEIGHT
            reasons.append("emergency flag")

        if any(tag in tags for tag in SYSTEM_ISSUE_TAGS):
            score += SYSTEM_ISSUE_WEIGHT
            reasons.append("system/integration tag")

        if self._created_after_incident(candidate.created_at):
            score += TEMPORAL_WEIGHT
            reasons.append("created after incident")

        return MatchResult(matched=True, score=score, reasons=tuple(reasons))

    def _created_after_incident(self, created_at: Optional[datetime]) -> bool:
        if created_at is None or self.incident_created_at is None:
            return False
        try:
            return created_at > self.incident_created_at
        except TypeError:
            # naive vs aware timestamps
            return False
