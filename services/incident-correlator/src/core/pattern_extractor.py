"""
TicketLink - Pattern Extractor
==============================

Derives the keyword signature of a newly discovered incident.

Three steps, all first-match-wins over ordered tables:
1. System tag: ticket tags against SYSTEM_TAGS, then the lower-cased text
   against SYSTEM_NAMES.
2. Known pattern: the first INCIDENT_PATTERNS entry with any keyword present
   in the text contributes its whole keyword list.
3. Fallback: bigrams and distinctive words taken from the subject.

Table order is the tie-break, so the tables are tuples, not dicts.
"""

import re
from typing import Optional

from src.api.schemas import IncidentProfile, ProblemTicket

from shared.utils.logging import get_logger

logger = get_logger(__name__)


# (name, description, keywords)
INCIDENT_PATTERNS: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("ro_missing", "ROs Not Showing", (
        "ro not showing", "ro not transferr", "ro not coming", "ro not populating",
        "ros not showing", "not showing up", "not transferring", "not populating",
        "data transfer delay", "no tiles", "tiles not", "repair order",
    )),
    ("platform_down", "Platform Down", (
        "tvp down", "page not loading", "blank page", "can't access", "error 500",
        "error 503", "error 504", "site down", "not loading", "completely down",
    )),
    ("app_issues", "App Issues", (
        "app crash", "app freeze", "app not working", "crashing", "freezing",
        "white screen", "glitch", "lagging",
    )),
    ("email_sms", "Email/SMS Down", (
        "email not sending", "text not sending", "reminders not", "mailgun",
        "twilio down", "sms not", "messages not sending",
    )),
    ("integration", "Integration Issue", (
        "integration", "binary", "partner api", "overnight compare",
    )),
    ("media_upload", "Media Upload Issue", (
        "media not uploading", "photo not uploading", "image not uploading",
        "upload fail", "can't upload", "media upload", "photo upload",
    )),
    ("camera_photo", "Camera/Photo Issue", (
        "camera", "photo", "multiple photos", "auto rotate", "image editor",
    )),
    ("notifications", "Notification Issue", (
        "not alerting", "notifications", "excessive notif", "push notification",
    )),
)

# Ticket tags naming an integrated point-of-sale / back-office system
SYSTEM_TAGS: tuple[str, ...] = (
    "napaenterprise", "napa_binary", "protractor_partner_api", "tekmetric_partner_api",
    "tekmetric_pos", "shopware_partner_api", "mitchell_binary", "rowriter_binary",
    "winworks_binary", "vast_binary", "maxxtraxx_binary", "alldata_binary",
    "autofluent_binary", "yes_binary",
)

# (name as written in ticket text, system tag); "napa tracs" must precede "napa"
SYSTEM_NAMES: tuple[tuple[str, str], ...] = (
    ("napa tracs", "napaenterprise"),
    ("napa", "napaenterprise"),
    ("protractor", "protractor_partner_api"),
    ("tekmetric", "tekmetric_partner_api"),
    ("shop-ware", "shopware_partner_api"),
    ("mitchell", "mitchell_binary"),
    ("ro writer", "rowriter_binary"),
    ("winworks", "winworks_binary"),
)

# Words never kept as standalone fallback keywords
COMMON_WORDS = frozenset({
    "auto", "work", "working", "issue", "issues", "problem", "device",
    "devices", "unable", "error", "showing", "notes", "labor", "lines",
    "techs", "about", "their", "other", "causing", "receiving", "requires",
    "resolved", "does", "android",
})

CUSTOM_PATTERN_NAME = "custom"
CUSTOM_PATTERN_DESCRIPTION = "Custom Pattern"

MAX_BIGRAMS = 4
MAX_DISTINCTIVE_WORDS = 3
MIN_WORD_LENGTH = 3
MIN_DISTINCTIVE_LENGTH = 5

_SUBJECT_PREFIX = re.compile(r"^PT\s*-\s*", re.IGNORECASE)
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9\s]")


class PatternExtractor:
    """
    Builds an IncidentProfile from a problem ticket.

    Stateless and total: tickets with empty subject, description or tags
    still yield a profile (possibly with no keywords).

    Example:
        extractor = PatternExtractor()
        profile = extractor.extract(problem)
        profile.pattern_description  # "Platform Down"
    """

    def extract(self, ticket: ProblemTicket) -> IncidentProfile:
        """Derive the signature of an incident ticket."""
        text = ticket.text
        system_tag = self.detect_system_tag(ticket.tags, text)

        pattern = self.detect_pattern(text)
        if pattern is not None:
            pattern_name, description, keywords = pattern
        else:
            pattern_name = CUSTOM_PATTERN_NAME
            description = CUSTOM_PATTERN_DESCRIPTION
            keywords = self.build_fallback_keywords(ticket.subject)

        if system_tag:
            description = f"{description} ({system_tag})"

        profile = IncidentProfile(
            source_ticket_id=ticket.ticket_id,
            keywords=tuple(dict.fromkeys(keywords)),
            system_tag=system_tag,
            pattern_name=pattern_name,
            pattern_description=description,
            created_at=ticket.created_at,
        )

        logger.debug(
            f"Extracted profile for ticket {ticket.ticket_id}",
            extra={
                "ticket_id": ticket.ticket_id,
                "pattern": pattern_name,
                "system_tag": system_tag,
                "keyword_count": len(profile.keywords),
            }
        )

        return profile

    @staticmethod
    def detect_system_tag(tags: list[str], text: str) -> Optional[str]:
        """
        First system tag carried by the ticket, in SYSTEM_TAGS order;
        failing that, the first system name found in the lower-cased text.
        """
        ticket_tags = {tag.lower() for tag in tags}
        for tag in SYSTEM_TAGS:
            if tag in ticket_tags:
                return tag

        for name, tag in SYSTEM_NAMES:
            if name in text:
                return tag

        return None

    @staticmethod
    def detect_pattern(text: str) -> Optional[tuple[str, str, tuple[str, ...]]]:
        """First known pattern with any keyword present in `text`."""
        for name, description, keywords in INCIDENT_PATTERNS:
            if any(keyword in text for keyword in keywords):
                return name, description, keywords
        return None

    @staticmethod
    def build_fallback_keywords(subject: str) -> list[str]:
        """
        Signature for subjects no known pattern covers.

        A single common word is too weak to discriminate, two adjacent words
        usually are not. Result: the first four bigrams of the cleaned
        subject, then its first three distinctive words, in token order.
        """
        cleaned = _SUBJECT_PREFIX.sub("", subject or "").lower()
        cleaned = _NON_ALPHANUMERIC.sub("", cleaned)
        words = [word for word in cleaned.split() if len(word) >= MIN_WORD_LENGTH]

        bigrams = [f"{first} {second}" for first, second in zip(words, words[1:])]
        distinctive = [
            word for word in words
            if len(word) >= MIN_DISTINCTIVE_LENGTH and word not in COMMON_WORDS
        ]

        return bigrams[:MAX_BIGRAMS] + distinctive[:MAX_DISTINCTIVE_WORDS]
