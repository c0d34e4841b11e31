"""
TicketLink - HTTP Service Client
================================

Async HTTP client used by the outbound adapters (ticket store, issue tracker).
Wraps a pooled httpx.AsyncClient and propagates the correlation ID.

Usage:
    from shared.utils.http_client import ServiceClient

    async with ServiceClient("https://acme.zendesk.com", auth=("me/token", "secret")) as client:
        response = await client.get("/api/v2/search.json", params={"query": "..."})
"""

from typing import Any, Optional
from dataclasses import dataclass

import httpx

from shared.utils.logging import get_logger, get_correlation_id

logger = get_logger(__name__)


@dataclass
class ServiceClientConfig:
    """Configuration for the HTTP service client."""
    timeout_seconds: float = 30.0
    user_agent: str = "TicketLink-ServiceClient/0.1"


class ServiceClient:
    """
    Async HTTP client for calls to an external service.

    Features:
    - Connection pooling (one AsyncClient per instance, created lazily)
    - Optional basic auth
    - Correlation ID propagation via X-Correlation-ID
    - Async context manager support

    `transport` lets tests plug in an httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: str,
        config: Optional[ServiceClientConfig] = None,
        auth: Optional[tuple[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.config = config or ServiceClientConfig()
        self._auth = auth
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                auth=self._auth,
                transport=self._transport,
                follow_redirects=True
            )
        return self._client

    def _build_headers(self, extra_headers: Optional[dict] = None) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Correlation-ID"] = correlation_id

        if extra_headers:
            headers.update(extra_headers)

        return headers

    async def get(
        self,
        path: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None
    ) -> httpx.Response:
        """
        Make a GET request.

        Args:
            path: Path relative to base_url, or an absolute URL
            params: Optional query parameters
            headers: Optional additional headers
        """
        client = await self._get_client()

        logger.debug(f"GET {path}", extra={"params": params})

        response = await client.get(
            path,
            params=params,
            headers=self._build_headers(headers)
        )

        logger.debug(
            f"Response: {response.status_code}",
            extra={"path": path, "status": response.status_code}
        )

        return response

    async def put(
        self,
        path: str,
        data: Optional[dict[str, Any]] = None,
        headers: Optional[dict] = None
    ) -> httpx.Response:
        """Make a PUT request with a JSON body."""
        client = await self._get_client()

        logger.debug(
            f"PUT {path}",
            extra={"payload_keys": list(data.keys()) if data else []}
        )

        response = await client.put(
            path,
            json=data,
            headers=self._build_headers(headers)
        )

        logger.debug(
            f"Response: {response.status_code}",
            extra={"path": path, "status": response.status_code}
        )

        return response

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ServiceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
