"""
TicketLink - Zendesk Ticket Store Tests
=======================================

Tests for the Zendesk collaborator using httpx.MockTransport.
"""

import json

import httpx
import pytest

import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from src.clients.zendesk import ZendeskTicketStore, format_search_timestamp, parse_retry_after
from src.core.ticket_store import TicketStoreError

from shared.constants import Visibility


class RecordingHandler:
    """MockTransport handler that replays queued responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(500, text="unexpected request")
        return self.responses.pop(0)


def make_store(handler, live_mode=False, **kwargs):
    return ZendeskTicketStore(
        subdomain="acme",
        email="bot@acme.test",
        api_token="secret",
        live_mode=live_mode,
        jira_browse_url="https://acme.atlassian.net/browse/",
        rate_limit_max_attempts=3,
        rate_limit_default_wait_seconds=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestSearch:
    """Tests for the problem and candidate searches."""

    @pytest.mark.asyncio
    async def test_list_open_problems(self):
        handler = RecordingHandler(httpx.Response(200, json={"results": [
            {
                "id": 100,
                "subject": "PT - TVP Down",
                "description": None,
                "tags": ["napa_binary"],
                "created_at": "2024-01-15T10:30:00Z",
            },
        ]}))
        store = make_store(handler)

        problems = await store.list_open_problems()

        assert len(problems) == 1
        assert problems[0].ticket_id == 100
        assert problems[0].description == ""
        assert problems[0].tags == ["napa_binary"]

        request = handler.requests[0]
        assert request.url.path == "/api/v2/search.json"
        assert request.url.params["query"] == "type:ticket ticket_type:problem status<solved"
        assert request.url.params["per_page"] == "25"
        assert request.headers["authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_list_recent_tickets_maps_problem_link(self):
        handler = RecordingHandler(httpx.Response(200, json={"results": [
            {"id": 5, "subject": "Page not loading", "status": "new", "problem_id": 100},
            {"id": 6, "subject": None, "tags": None},
        ]}))
        store = make_store(handler)

        tickets = await store.list_recent_tickets(120)

        assert [t.ticket_id for t in tickets] == [5, 6]
        assert tickets[0].problem_link_id == 100
        assert tickets[0].status == "new"
        assert tickets[1].subject == ""
        assert tickets[1].problem_link_id is None

        query = handler.requests[0].url.params["query"]
        assert query.startswith("type:ticket created>")
        assert query.endswith("Z status<solved")

    def test_format_search_timestamp(self):
        from datetime import datetime, timezone

        moment = datetime(2024, 1, 15, 10, 30, 5, 123000, tzinfo=timezone.utc)

        assert format_search_timestamp(moment) == "2024-01-15T10:30:05Z"

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        handler = RecordingHandler(
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"results": []}),
        )
        store = make_store(handler)

        problems = await store.list_open_problems()

        assert problems == []
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_with_http_date_is_retried(self):
        handler = RecordingHandler(
            httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}),
            httpx.Response(200, json={"results": []}),
        )
        store = make_store(handler)

        problems = await store.list_open_problems()

        assert problems == []
        assert len(handler.requests) == 2

    def test_parse_retry_after(self):
        from datetime import datetime, timedelta, timezone
        from email.utils import format_datetime

        future = datetime.now(timezone.utc) + timedelta(seconds=120)

        assert parse_retry_after("7", 30.0) == 7.0
        assert parse_retry_after(None, 30.0) == 30.0
        assert parse_retry_after("soon", 30.0) == 30.0
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT", 30.0) == 0.0
        assert 100 < parse_retry_after(format_datetime(future, usegmt=True), 30.0) <= 120

    @pytest.mark.asyncio
    async def test_non_json_body_raises_store_error(self):
        handler = RecordingHandler(httpx.Response(200, text="<html>Sign in</html>"))
        store = make_store(handler)

        with pytest.raises(TicketStoreError):
            await store.list_open_problems()

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        handler = RecordingHandler(httpx.Response(500, text="internal error"))
        store = make_store(handler)

        with pytest.raises(TicketStoreError) as exc_info:
            await store.list_open_problems()

        assert exc_info.value.status_code == 500
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = make_store(handler)

        with pytest.raises(TicketStoreError):
            await store.list_recent_tickets(60)


class TestWrites:
    """Tests for linking and annotating."""

    @pytest.mark.asyncio
    async def test_dry_run_never_writes(self):
        handler = RecordingHandler()
        store = make_store(handler, live_mode=False)

        await store.link_child_to_incident(5, 100)
        await store.annotate_ticket(5, "note", Visibility.INTERNAL)

        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_live_link(self):
        handler = RecordingHandler(httpx.Response(200, json={"ticket": {"id": 5}}))
        store = make_store(handler, live_mode=True)

        await store.link_child_to_incident(5, 100)

        request = handler.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/api/v2/tickets/5.json"
        assert json.loads(request.content) == {"ticket": {"type": "incident", "problem_id": 100}}

    @pytest.mark.asyncio
    async def test_live_internal_note(self):
        handler = RecordingHandler(httpx.Response(200, json={"ticket": {"id": 5}}))
        store = make_store(handler, live_mode=True)

        await store.annotate_ticket(5, "Auto-linked", Visibility.INTERNAL)

        body = json.loads(handler.requests[0].content)
        assert body == {"ticket": {"comment": {"body": "Auto-linked", "public": False}}}

    @pytest.mark.asyncio
    async def test_live_link_failure_raises(self):
        handler = RecordingHandler(httpx.Response(422, text="invalid problem"))
        store = make_store(handler, live_mode=True)

        with pytest.raises(TicketStoreError):
            await store.link_child_to_incident(5, 100)


class TestIssueLinks:
    """Tests for the Jira link lookup."""

    @pytest.mark.asyncio
    async def test_links_rendered_with_browse_url(self):
        handler = RecordingHandler(httpx.Response(200, json={"links": [
            {"issue_key": "ENG-42", "issue_id": 4242, "created_at": "2024-01-15T10:00:00Z"},
            {"issue_key": None},
        ]}))
        store = make_store(handler)

        links = await store.get_external_issue_links(100)

        assert len(links) == 1
        assert links[0].issue_key == "ENG-42"
        assert links[0].issue_id == "4242"
        assert links[0].url == "https://acme.atlassian.net/browse/ENG-42"
        assert handler.requests[0].url.path == "/api/services/jira/links"
        assert handler.requests[0].url.params["ticket_id"] == "100"

    @pytest.mark.asyncio
    async def test_missing_integration_returns_empty(self):
        handler = RecordingHandler(httpx.Response(404, text="not found"))
        store = make_store(handler)

        assert await store.get_external_issue_links(100) == []

    @pytest.mark.asyncio
    async def test_html_page_returns_empty(self):
        handler = RecordingHandler(httpx.Response(200, text="<html>Sign in</html>"))
        store = make_store(handler)

        assert await store.get_external_issue_links(100) == []

    @pytest.mark.asyncio
    async def test_unexpected_payload_shapes_return_empty(self):
        handler = RecordingHandler(
            httpx.Response(200, json=["ENG-1"]),
            httpx.Response(200, json={"links": "ENG-1"}),
            httpx.Response(200, json={"links": ["ENG-1", {"issue_key": "ENG-2"}]}),
        )
        store = make_store(handler)

        assert await store.get_external_issue_links(100) == []
        assert await store.get_external_issue_links(100) == []
        links = await store.get_external_issue_links(100)
        assert [link.issue_key for link in links] == ["ENG-2"]

    @pytest.mark.asyncio
    async def test_rate_limit_with_http_date_stays_best_effort(self):
        handler = RecordingHandler(
            httpx.Response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}),
            httpx.Response(200, json={"links": [{"issue_key": "ENG-7"}]}),
        )
        store = make_store(handler)

        links = await store.get_external_issue_links(100)

        assert [link.issue_key for link in links] == ["ENG-7"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
