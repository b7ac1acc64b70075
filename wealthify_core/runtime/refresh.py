"""
Single-flight credential refresh.

When several in-flight requests discover an expired credential at the same
time, only the first one starts a refresh exchange. Everyone else queues as
a waiter and resumes with the outcome of that one exchange.

The coordinator relies on cooperative scheduling: the idle -> refreshing
transition happens in one synchronous step of ensure_valid_credential(), so
no other task can observe the idle state in between.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum

from loguru import logger
from pydantic import ValidationError

from .credentials import CredentialStore
from .errors import RefreshError
from .models import ApiEnvelope, ApiRequest, TokenPair
from .transport import Transport


class RefreshState(str, Enum):
    """Coordinator states."""

    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshCoordinator:
    """Ensures at most one refresh exchange per expiry window.

    Example:
        coordinator = RefreshCoordinator(transport, store)
        token = await coordinator.ensure_valid_credential(stale=old_token)
    """

    def __init__(
        self,
        transport: Transport,
        credentials: CredentialStore,
        refresh_path: str | None = None,
        timeout: float | None = None,
    ):
        """Initialize the coordinator.

        Args:
            transport: Transport used for the refresh exchange.
            credentials: Store holding the credential pair.
            refresh_path: Refresh endpoint. Defaults to settings.REFRESH_PATH.
            timeout: Timeout in seconds for the exchange.
        """
        from wealthify_core.config import settings

        self.transport = transport
        self.credentials = credentials
        self.refresh_path = refresh_path or settings.REFRESH_PATH
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT

        self._state = RefreshState.IDLE
        self._waiters: list[asyncio.Future[str]] = []
        self._task: asyncio.Task[None] | None = None

        # Statistics
        self.refresh_count = 0
        self.failure_count = 0

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._state is RefreshState.REFRESHING

    @property
    def pending_waiters(self) -> int:
        return len(self._waiters)

    async def ensure_valid_credential(self, stale: str | None = None) -> str:
        """Return a credential that is newer than the one that was rejected.

        Args:
            stale: The credential the caller just saw rejected. If the store
                already holds a different one and no refresh is running,
                it is returned without a new exchange.

        Returns:
            The new access credential.

        Raises:
            RefreshError: If the exchange failed. All waiters of the same
                cycle receive the same instance.
        """
        if self._state is RefreshState.IDLE and stale is not None:
            current = self.credentials.access_token
            if current and current != stale:
                logger.debug("Credential already refreshed, reusing current one")
                return current

        waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)

        if self._state is RefreshState.IDLE:
            self._state = RefreshState.REFRESHING
            self._task = asyncio.create_task(self._run_cycle())
        else:
            logger.info(f"Refresh in progress, queued as waiter #{len(self._waiters)}")

        return await waiter

    async def _run_cycle(self) -> None:
        started = time.monotonic()
        try:
            pair = await self._exchange()
            self.credentials.replace_access_token(pair.access_token, pair.refresh_token)
        except asyncio.CancelledError:
            self._settle(error=RefreshError("Token refresh was cancelled"))
            raise
        except RefreshError as e:
            self._fail(e)
        except Exception as e:
            logger.error(f"Unexpected error during token refresh: {e}")
            self._fail(RefreshError(f"Token refresh failed: {e}", cause=e))
        else:
            self.refresh_count += 1
            logger.info(
                f"Token refresh succeeded in {time.monotonic() - started:.2f}s, "
                f"resuming {len(self._waiters)} waiter(s)"
            )
            self._settle(credential=pair.access_token)

    def _fail(self, error: RefreshError) -> None:
        self.failure_count += 1
        logger.warning(f"Token refresh failed: {error}. Rejecting {len(self._waiters)} waiter(s)")
        try:
            self.credentials.clear()
        except Exception as e:
            logger.error(f"Could not clear credentials after failed refresh: {e}")
        self._settle(error=error)

    def _settle(self, credential: str | None = None, error: RefreshError | None = None) -> None:
        """Resolve every queued waiter in arrival order and return to idle."""
        waiters, self._waiters = self._waiters, []
        self._state = RefreshState.IDLE
        self._task = None
        for waiter in waiters:
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(credential)

    async def _exchange(self) -> TokenPair:
        """Trade the refresh credential for a new access credential.

        Sent directly on the transport: never retried, never queued behind
        another refresh.
        """
        refresh_token = self.credentials.refresh_token
        if not refresh_token:
            raise RefreshError("No refresh token available")

        request = ApiRequest(
            method="POST",
            path=self.refresh_path,
            body={"refreshToken": refresh_token},
        )
        logger.info(f"[{request.request_id}] Refreshing access token")

        try:
            response = await asyncio.wait_for(self.transport.send(request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise RefreshError(f"Token refresh timed out after {self.timeout}s", cause=e) from e
        except Exception as e:
            raise RefreshError("Token refresh failed: network error", cause=e) from e

        if not response.is_success:
            raise RefreshError(status=response.status)

        try:
            envelope = ApiEnvelope[TokenPair].model_validate(response.body)
        except ValidationError as e:
            raise RefreshError("Token refresh returned an invalid response", status=response.status, cause=e) from e
        if envelope.data is None:
            raise RefreshError("Token refresh returned no credentials", status=response.status)
        return envelope.data
