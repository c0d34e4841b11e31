"""
TicketLink - Zendesk Ticket Store
=================================

Zendesk implementation of the ticket store used by the correlation loop.

- Searches for open problem tickets and recent candidate tickets
- Links a ticket to a problem and adds comments (live mode only)
- Looks up the Jira issues linked to a problem through the Zendesk
  Jira integration

Rate limiting (HTTP 429) is retried here, honouring Retry-After. Any other
non-success status raises TicketStoreError and aborts the caller's cycle.
"""

from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from src.api.schemas import CandidateTicket, ExternalLink, ProblemTicket
from src.config import Settings
from src.core.ticket_store import BaseTicketStore, RateLimitedError, TicketStoreError

from shared.constants import HTTP_NO_CONTENT, HTTP_TOO_MANY_REQUESTS, Visibility
from shared.utils.http_client import ServiceClient, ServiceClientConfig
from shared.utils.logging import get_logger
from shared.utils.retry import RetryConfig, with_retry

logger = get_logger(__name__)

OPEN_PROBLEMS_QUERY = "type:ticket ticket_type:problem status<solved"


def _retry_after(exc: Exception) -> Optional[float]:
    return getattr(exc, "retry_after", None)


def parse_retry_after(value: Optional[str], default: float) -> float:
    """
    Seconds to wait from a Retry-After header.

    Accepts delta-seconds or an HTTP-date; anything unreadable gives `default`.
    """
    if not value:
        return default

    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max(0.0, (moment - datetime.now(timezone.utc)).total_seconds())


def format_search_timestamp(moment: datetime) -> str:
    """ISO 8601 in UTC to the second, as the search API expects."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ZendeskTicketStore(BaseTicketStore):
    """
    Ticket store backed by the Zendesk REST API.

    In dry-run mode (live_mode False) every write is logged and skipped.

    Example:
        store = ZendeskTicketStore.from_settings(get_settings())
        problems = await store.list_open_problems()
    """

    def __init__(
        self,
        subdomain: str,
        email: str,
        api_token: str,
        live_mode: bool = False,
        jira_browse_url: str = "https://jira.example.com/browse",
        problem_page_size: int = 25,
        candidate_page_size: int = 100,
        timeout_seconds: float = 30.0,
        rate_limit_max_attempts: int = 5,
        rate_limit_default_wait_seconds: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.root_url = f"https://{subdomain}.zendesk.com"
        self.live_mode = live_mode
        self.jira_browse_url = jira_browse_url.rstrip("/")
        self.problem_page_size = problem_page_size
        self.candidate_page_size = candidate_page_size
        self.rate_limit_default_wait_seconds = rate_limit_default_wait_seconds
        self._client = ServiceClient(
            self.root_url,
            config=ServiceClientConfig(timeout_seconds=timeout_seconds),
            auth=(f"{email}/token", api_token),
            transport=transport,
        )
        self._request = with_retry(RetryConfig(
            max_attempts=rate_limit_max_attempts,
            base_delay=float(rate_limit_default_wait_seconds),
            max_delay=300.0,
            retryable_exceptions=(RateLimitedError,),
            delay_hint=_retry_after,
        ))(self._request_once)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "ZendeskTicketStore":
        return cls(
            subdomain=settings.zendesk_subdomain,
            email=settings.zendesk_email,
            api_token=settings.zendesk_api_token.get_secret_value(),
            live_mode=settings.live_mode,
            jira_browse_url=settings.jira_browse_url,
            problem_page_size=settings.problem_page_size,
            candidate_page_size=settings.candidate_page_size,
            timeout_seconds=settings.request_timeout_seconds,
            rate_limit_max_attempts=settings.rate_limit_max_attempts,
            rate_limit_default_wait_seconds=settings.rate_limit_default_wait_seconds,
            **kwargs,
        )

    async def _request_once(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        body: Optional[dict] = None
    ) -> Optional[dict]:
        try:
            if method == "GET":
                response = await self._client.get(path, params=params)
            else:
                response = await self._client.put(path, data=body)
        except httpx.HTTPError as e:
            raise TicketStoreError(f"Zendesk request {method} {path} failed: {e}") from e

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            wait = parse_retry_after(
                response.headers.get("retry-after"),
                float(self.rate_limit_default_wait_seconds),
            )
            logger.warning(f"Rate limited, waiting {wait:g}s", extra={"path": path})
            raise RateLimitedError(wait, body=response.text)

        if not response.is_success:
            raise TicketStoreError(
                f"Zendesk API {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                body=response.text,
            )

        if response.status_code == HTTP_NO_CONTENT or not response.content:
            return None

        try:
            payload = response.json()
        except ValueError as e:
            raise TicketStoreError(
                f"Zendesk {method} {path} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from e
        if not isinstance(payload, dict):
            raise TicketStoreError(
                f"Zendesk {method} {path} returned {type(payload).__name__}, expected an object",
                status_code=response.status_code,
                body=response.text,
            )
        return payload

    async def _search(self, query: str, per_page: int) -> list[dict]:
        data = await self._request(
            "GET",
            "/api/v2/search.json",
            params={
                "query": query,
                "sort_by": "created_at",
                "sort_order": "desc",
                "per_page": str(per_page),
            },
        )
        return (data or {}).get("results") or []

    async def list_open_problems(self) -> list[ProblemTicket]:
        results = await self._search(OPEN_PROBLEMS_QUERY, self.problem_page_size)
        return [
            ProblemTicket(
                ticket_id=item["id"],
                subject=item.get("subject"),
                description=item.get("description"),
                tags=item.get("tags"),
                created_at=item.get("created_at"),
            )
            for item in results
        ]

    async def list_recent_tickets(self, window_minutes: int) -> list[CandidateTicket]:
        since = datetime.now(timezone.utc) - timedelta(minutes=window_minutes)
        query = f"type:ticket created>{format_search_timestamp(since)} status<solved"
        results = await self._search(query, self.candidate_page_size)
        return [
            CandidateTicket(
                ticket_id=item["id"],
                subject=item.get("subject"),
                description=item.get("description"),
                tags=item.get("tags"),
                created_at=item.get("created_at"),
                status=item.get("status"),
                problem_link_id=item.get("problem_id"),
            )
            for item in results
        ]

    async def link_child_to_incident(self, ticket_id: int, incident_id: int) -> None:
        if not self.live_mode:
            logger.info(
                f"[DRY-RUN] Would link #{ticket_id} to problem #{incident_id}",
                extra={"ticket_id": ticket_id, "incident_id": incident_id}
            )
            return

        await self._request(
            "PUT",
            f"/api/v2/tickets/{ticket_id}.json",
            body={"ticket": {"type": "incident", "problem_id": incident_id}},
        )
        logger.info(
            f"[LIVE] Linked #{ticket_id} to problem #{incident_id}",
            extra={"ticket_id": ticket_id, "incident_id": incident_id}
        )

    async def annotate_ticket(
        self,
        ticket_id: int,
        text: str,
        visibility: Visibility = Visibility.INTERNAL
    ) -> None:
        if not self.live_mode:
            logger.info(
                f"[DRY-RUN] Would add {visibility.value} comment on #{ticket_id}",
                extra={"ticket_id": ticket_id}
            )
            return

        await self._request(
            "PUT",
            f"/api/v2/tickets/{ticket_id}.json",
            body={
                "ticket": {
                    "comment": {"body": text, "public": visibility == Visibility.PUBLIC}
                }
            },
        )

    async def get_external_issue_links(self, incident_id: int) -> list[ExternalLink]:
        try:
            data = await self._request(
                "GET",
                "/api/services/jira/links",
                params={"ticket_id": str(incident_id)},
            )
        except TicketStoreError as e:
            # Integration missing or no links for this ticket
            logger.debug(
                f"No Jira links for #{incident_id}: {e}",
                extra={"incident_id": incident_id}
            )
            return []

        raw_links = (data or {}).get("links")
        if not isinstance(raw_links, list):
            return []

        links = []
        for link in raw_links:
            if not isinstance(link, dict) or not link.get("issue_key"):
                continue
            issue_key = str(link["issue_key"])
            try:
                links.append(ExternalLink(
                    issue_key=issue_key,
                    issue_id=str(link["issue_id"]) if link.get("issue_id") is not None else None,
                    url=f"{self.jira_browse_url}/{issue_key}",
                    created_at=link.get("created_at"),
                ))
            except ValidationError as e:
                logger.debug(
                    f"Skipping malformed Jira link {issue_key} on #{incident_id}: {e}",
                    extra={"incident_id": incident_id}
                )
        return links

    async def close(self) -> None:
        await self._client.close()
