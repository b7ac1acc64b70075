"""
HTTP transport for the request pipeline.

A Transport performs exactly one HTTP exchange: no retries, no auth
handling, no status interpretation. It either returns the response or
raises TransportFailure when no response was received.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger

from .models import ApiRequest, TransportResponse

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class TransportFailure(Exception):
    """No response was received (connection refused, DNS, timeout, ...)."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


@runtime_checkable
class Transport(Protocol):
    """Protocol for single HTTP exchanges."""

    async def send(self, request: ApiRequest) -> TransportResponse:
        """
        Issue one HTTP exchange.

        Args:
            request: Method, path, headers, body and query to send.

        Returns:
            Status, headers and decoded body of the response.

        Raises:
            TransportFailure: If no response was received.
        """
        ...


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text.

    Returns:
        Parsed JSON, the raw text, or None for an empty body.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpxTransport:
    """Transport backed by a pooled httpx.AsyncClient.

    Features:
    - Connection pooling via httpx.AsyncClient
    - JSON default headers
    - Timeout handling
    - Conversion of httpx transport errors into TransportFailure

    Example:
        transport = HttpxTransport("https://api.example.com/api")
        async with transport:
            response = await transport.send(ApiRequest(path="/health"))
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_connections: int = 100,
        max_keepalive: int = 20,
        headers: dict[str, str] | None = None,
    ):
        """Initialize the transport.

        Args:
            base_url: Base URL for all requests. Defaults to settings.API_BASE_URL.
            timeout: Timeout in seconds. Defaults to settings.REQUEST_TIMEOUT.
            max_connections: Maximum total connections in pool.
            max_keepalive: Maximum keepalive connections.
            headers: Headers sent with every request.
        """
        from wealthify_core.config import settings

        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}

        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive,
            keepalive_expiry=30.0,
        )
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client.

        Returns:
            The shared httpx.AsyncClient instance.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=self._limits,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpxTransport":
        await self._get_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _build_url(self, path: str) -> str:
        """Build full URL from path.

        Args:
            path: Request path (with or without leading slash).

        Returns:
            Full URL including base_url.
        """
        path = path.lstrip("/")
        return f"{self.base_url}/{path}"

    async def send(self, request: ApiRequest) -> TransportResponse:
        client = await self._get_client()
        url = self._build_url(request.path)

        headers = {**self.headers, **request.headers}
        kwargs: dict[str, Any] = {}
        if request.files is not None:
            # httpx sets the multipart boundary itself
            headers.pop("Content-Type", None)
            kwargs["files"] = request.files
            if request.data:
                kwargs["data"] = request.data
        elif request.body is not None:
            kwargs["json"] = request.body
        if request.query:
            kwargs["params"] = {k: v for k, v in request.query.items() if v is not None}

        try:
            response = await client.request(
                method=request.method,
                url=url,
                headers=headers,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            logger.info(f"[{request.request_id}] {request.method} {request.path} timed out after {self.timeout}s")
            raise TransportFailure(f"Request timed out after {self.timeout}s", cause=e) from e
        except httpx.TransportError as e:
            logger.info(f"[{request.request_id}] {request.method} {request.path} failed: {e}")
            raise TransportFailure(f"Transport error: {e}", cause=e) from e

        return TransportResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=decode_body(response),
        )
