"""
Authenticated request pipeline.

RequestPipeline is the one object every resource API talks to the network
through. Per request it:

1. attaches the current access credential as a bearer header,
2. runs the exchange, under the retry policy when the call is retryable,
3. on a 401, asks the refresh coordinator for a new credential and
   re-issues the request exactly once,
4. normalizes every failure and returns Ok(body) or Err(error).
"""

from __future__ import annotations

import asyncio
import inspect
import os
import time
from typing import Any, Awaitable, BinaryIO, Callable, Mapping, Union

from loguru import logger
from pydantic import ValidationError

from wealthify_core.logging import request_context

from .credentials import CredentialStore
from .errors import ApiError, HttpError, RefreshError, Unauthorized
from .models import ApiEnvelope, ApiRequest, SendOptions, TransportResponse
from .normalizer import normalize, normalize_response, normalize_transport_failure
from .refresh import RefreshCoordinator
from .result import Err, Ok, Result
from .retry import RetryPolicy, is_retryable_method, with_retry
from .transport import HttpxTransport, Transport

SessionTerminatedHook = Callable[[], Union[None, Awaitable[None]]]


class RequestPipeline:
    """End-to-end send(request) -> Result contract.

    Example:
        pipeline = RequestPipeline(
            transport=HttpxTransport("https://api.example.com/api"),
            credentials=CredentialStore.from_file(),
            on_session_terminated=redirect_to_login,
        )
        async with pipeline:
            result = await pipeline.get("/accounts")
    """

    def __init__(
        self,
        transport: Transport | None = None,
        credentials: CredentialStore | None = None,
        coordinator: RefreshCoordinator | None = None,
        on_session_terminated: SessionTerminatedHook | None = None,
        retry_policy: RetryPolicy | None = None,
        retry_matrix: Mapping[str, bool] | None = None,
        timeout: float | None = None,
    ):
        """Initialize the pipeline.

        Args:
            transport: Transport for HTTP exchanges. Defaults to an
                HttpxTransport built from settings.
            credentials: Credential store. Defaults to an in-memory store.
            coordinator: Refresh coordinator. Built from transport and
                credentials if omitted.
            on_session_terminated: Hook called with no arguments when
                authorization cannot be recovered.
            retry_policy: Retry configuration for retryable calls.
            retry_matrix: Per-method retry defaults.
            timeout: Timeout in seconds applied to every transport call.
        """
        from wealthify_core.config import settings

        self.transport: Transport = transport if transport is not None else HttpxTransport()
        self.credentials = credentials if credentials is not None else CredentialStore()
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self.coordinator = coordinator or RefreshCoordinator(
            self.transport, self.credentials, timeout=self.timeout
        )
        self.on_session_terminated = on_session_terminated
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.retry_matrix = retry_matrix

        self._last_refresh_failure: RefreshError | None = None

    async def close(self) -> None:
        """Release the transport's connections, if it holds any."""
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "RequestPipeline":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def is_retryable(self, request: ApiRequest, options: SendOptions | None = None) -> bool:
        """Resolve whether a request runs under the retry policy."""
        if options is not None and options.retryable is not None:
            return options.retryable
        return is_retryable_method(request.method, self.retry_matrix)

    async def send(self, request: ApiRequest, options: SendOptions | None = None) -> Result[Any]:
        """Send a request through the full pipeline.

        Args:
            request: The logical request. It is copied, never mutated.
            options: Per-call options (retry override).

        Returns:
            Ok(body) on a 2xx response, otherwise Err(ApiError).
        """
        request = request.model_copy(deep=True)
        started = time.monotonic()

        async def attempt() -> Any:
            return await self._dispatch(request)

        attempt.__name__ = f"{request.method} {request.path}"

        with request_context(request.request_id):
            try:
                if self.is_retryable(request, options):
                    body = await with_retry(attempt, self.retry_policy)
                else:
                    body = await attempt()
            except ApiError as e:
                duration = (time.monotonic() - started) * 1000
                logger.warning(
                    f"[{request.request_id}] {request.method} {request.path} failed "
                    f"({duration:.0f}ms): {e}"
                )
                return Err(e)

            duration = (time.monotonic() - started) * 1000
            logger.debug(f"[{request.request_id}] {request.method} {request.path} ok ({duration:.0f}ms)")
            return Ok(body)

    async def _dispatch(self, request: ApiRequest, credential: str | None = None) -> Any:
        """One attempt: exchange, plus at most one re-issue after a refresh."""
        if credential is None:
            credential = self.credentials.access_token
        response = await self._exchange(request.with_bearer(credential))

        if response.status == 401:
            if request.auth_retried:
                logger.warning(
                    f"[{request.request_id}] Rejected again after credential refresh, giving up"
                )
                error = normalize_response(response)
                raise Unauthorized(message=error.message, code=error.code, details=error.details)

            request.auth_retried = True
            logger.info(f"[{request.request_id}] Credential rejected, requesting refresh")
            try:
                fresh = await self.coordinator.ensure_valid_credential(stale=credential)
            except RefreshError as e:
                await self._terminate_session(e)
                raise Unauthorized(cause=e) from e
            return await self._dispatch(request, fresh)

        if not response.is_success:
            raise normalize_response(response)
        return response.body

    async def _exchange(self, request: ApiRequest) -> TransportResponse:
        """Run the transport under the pipeline timeout, normalizing failures."""
        logger.debug(f"[{request.request_id}] {request.method} {request.path}")
        try:
            return await asyncio.wait_for(self.transport.send(request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise normalize_transport_failure(e) from e
        except ApiError:
            raise
        except Exception as e:
            raise normalize(e) from e

    async def _terminate_session(self, error: RefreshError) -> None:
        """Notify the hook once per failed refresh cycle.

        The coordinator has already cleared the credentials. All waiters of
        a failed cycle receive the same RefreshError instance, so identity
        tells whether the hook already ran for this cycle.
        """
        if error is self._last_refresh_failure:
            return
        self._last_refresh_failure = error
        if self.on_session_terminated is None:
            return
        logger.warning("Session terminated: authorization could not be recovered")
        outcome = self.on_session_terminated()
        if inspect.isawaitable(outcome):
            await outcome

    async def request(
        self,
        method: str,
        path: str,
        *,
        query: dict[str, Any] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
        retryable: bool | None = None,
    ) -> Result[Any]:
        """Build an ApiRequest and send it.

        Args:
            method: HTTP method.
            path: Path relative to the API base URL.
            query: Query string parameters.
            body: JSON payload.
            headers: Extra headers.
            retryable: Force retry on or off; None uses the method default.

        Returns:
            Ok(body) or Err(ApiError).
        """
        api_request = ApiRequest(
            method=method,
            path=path,
            query=query,
            body=body,
            headers=headers or {},
        )
        return await self.send(api_request, SendOptions(retryable=retryable))

    async def get(self, path: str, **kwargs: Any) -> Result[Any]:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Result[Any]:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Result[Any]:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Result[Any]:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Result[Any]:
        return await self.request("DELETE", path, **kwargs)

    async def send_envelope(
        self, request: ApiRequest, options: SendOptions | None = None
    ) -> Result[ApiEnvelope[Any]]:
        """Send a request and validate the body as a response envelope.

        Returns:
            Ok(ApiEnvelope) or Err(ApiError). A body that does not match
            the envelope contract is reported as an HttpError.
        """
        result = await self.send(request, options)
        if isinstance(result, Err):
            return result
        try:
            return Ok(ApiEnvelope[Any].model_validate(result.value))
        except ValidationError as e:
            return Err(
                HttpError(
                    message="Malformed response envelope",
                    status=200,
                    code="INVALID_RESPONSE",
                    cause=e,
                )
            )

    async def health_check(self) -> Result[Any]:
        return await self.get("/health")

    async def get_paginated(
        self,
        path: str,
        page: int = 1,
        limit: int = 10,
        **query: Any,
    ) -> Result[ApiEnvelope[Any]]:
        """Fetch one page of a list endpoint.

        Args:
            path: List endpoint path.
            page: 1-based page number.
            limit: Page size.
            **query: Extra filters merged into the query string.

        Returns:
            Ok(ApiEnvelope) whose `pagination` describes the page, or
            Err(ApiError).
        """
        request = ApiRequest(method="GET", path=path, query={"page": page, "limit": limit, **query})
        return await self.send_envelope(request)

    async def upload_file(
        self,
        path: str,
        file: Union[bytes, BinaryIO],
        *,
        filename: str | None = None,
        content_type: str | None = None,
        field: str = "file",
        data: dict[str, Any] | None = None,
    ) -> Result[Any]:
        """Upload a file as multipart/form-data.

        The content is read into memory first so the request can be
        re-issued after a credential refresh. Uploads are not retried.

        Args:
            path: Upload endpoint path.
            file: Raw bytes or a binary file object.
            filename: Name reported to the server. Defaults to the file
                object's name, or "upload".
            content_type: MIME type of the part.
            field: Form field holding the file.
            data: Extra form fields sent with the file.

        Returns:
            Ok(body) or Err(ApiError).
        """
        if isinstance(file, (bytes, bytearray)):
            content = bytes(file)
        else:
            content = file.read()
            filename = filename or os.path.basename(getattr(file, "name", "") or "")
        part = (filename or "upload", content)
        if content_type:
            part = (*part, content_type)

        request = ApiRequest(
            method="POST",
            path=path,
            files={field: part},
            data={k: str(v) for k, v in (data or {}).items()},
        )
        logger.info(f"[{request.request_id}] Uploading {part[0]} ({len(content)} bytes) to {path}")
        return await self.send(request, SendOptions(retryable=False))
