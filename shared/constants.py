"""
TicketLink - Shared Constants
=============================

Enumerations and fixed values shared by the correlator and its collaborators.
"""

from enum import Enum


class EventKind(str, Enum):
    """Kinds of audit events produced by a correlation cycle."""
    INCIDENT_DISCOVERED = "incident_discovered"
    INCIDENT_RETIRED = "incident_retired"
    TICKET_MATCHED = "ticket_matched"
    IDLE_HEARTBEAT = "idle_heartbeat"
    CYCLE_SUMMARY = "cycle_summary"
    CYCLE_FAILED = "cycle_failed"


class IncidentState(str, Enum):
    """Lifecycle of an incident inside the registry."""
    ACTIVE = "active"
    RETIRED = "retired"  # terminal, the record is dropped


class Visibility(str, Enum):
    """Visibility of a ticket annotation."""
    INTERNAL = "internal"
    PUBLIC = "public"


# Ticket tags with special meaning for the matcher
EMERGENCY_TAG = "high_slack"
EMERGENCY_SUBJECT_PREFIX = "(emergency)"
SYSTEM_ISSUE_TAGS = ("system_issue", "integrations")

# HTTP status code classifications
HTTP_TOO_MANY_REQUESTS = 429
HTTP_NO_CONTENT = 204
