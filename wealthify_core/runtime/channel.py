"""
Self-healing real-time channel.

DuplexChannelManager keeps one WebSocket open to the dashboard feed. The
access credential travels as a ``token`` query parameter because browsers
and most WebSocket stacks cannot set custom headers on the handshake.

State machine::

    disconnected -> connecting -> open -> disconnected (retry)
    disconnected -> closed (reconnect cap reached, or disconnect())

Unexpected closes are retried with exponential backoff; the counter resets
on every successful open. Once the cap is reached the channel is closed and
the consumer receives a ChannelError through on_error.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from enum import Enum
from typing import Any, AsyncContextManager, Callable, Optional

import httpx
import websockets
from loguru import logger

from .credentials import CredentialStore
from .errors import ChannelError, Unauthenticated

MessageHandler = Callable[[Any], Any]
ErrorHandler = Callable[[Exception], Any]
CloseHandler = Callable[[Optional[int]], Any]
Connector = Callable[[str], AsyncContextManager[Any]]


class ChannelState(str, Enum):
    """Channel connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call a sync or async consumer callback, logging its failures."""
    if callback is None:
        return
    try:
        outcome = callback(*args)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        logger.exception(f"Channel callback {getattr(callback, '__name__', callback)!r} raised: {e}")


class DuplexChannelManager:
    """Owns the real-time connection and its reconnect loop.

    Example:
        channel = DuplexChannelManager(credentials)
        await channel.connect(on_message=handle_update, on_error=report)
        await channel.send_message({"type": "subscribe", "topic": "budgets"})
        ...
        await channel.disconnect()
    """

    def __init__(
        self,
        credentials: CredentialStore,
        url: str | None = None,
        path: str | None = None,
        max_reconnect_attempts: int | None = None,
        base_delay: float | None = None,
        connector: Connector | None = None,
    ):
        """Initialize the channel manager.

        Args:
            credentials: Store read on every (re)connect.
            url: WebSocket server URL. Defaults to settings.WS_URL.
            path: Channel path. Defaults to settings.WS_PATH.
            max_reconnect_attempts: Reconnects allowed before giving up.
            base_delay: Backoff base in seconds.
            connector: Factory returning an async context manager that
                yields an open connection. Defaults to websockets.connect.
        """
        from wealthify_core.config import settings

        self.credentials = credentials
        self.url = (url or settings.WS_URL).rstrip("/")
        self.path = path if path is not None else settings.WS_PATH
        self.max_reconnect_attempts = (
            max_reconnect_attempts
            if max_reconnect_attempts is not None
            else settings.WS_MAX_RECONNECT_ATTEMPTS
        )
        self.base_delay = base_delay if base_delay is not None else settings.WS_RECONNECT_BASE_DELAY
        self.connector: Connector = connector or websockets.connect

        self.state = ChannelState.DISCONNECTED
        self.reconnect_attempts = 0
        self.terminal_error: ChannelError | None = None

        self._on_message: MessageHandler | None = None
        self._on_error: ErrorHandler | None = None
        self._on_close: CloseHandler | None = None
        self._ws: Any = None
        self._task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self.state is ChannelState.OPEN and self._ws is not None

    def build_url(self, credential: str) -> str:
        """Handshake URL with the credential as a query parameter."""
        return str(httpx.URL(f"{self.url}{self.path}").copy_merge_params({"token": credential}))

    def reconnect_delay(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)

    async def connect(
        self,
        on_message: MessageHandler,
        on_error: ErrorHandler | None = None,
        on_close: CloseHandler | None = None,
    ) -> None:
        """Start the connection loop in the background.

        Args:
            on_message: Called with each parsed inbound message.
            on_error: Called with connection errors and the terminal
                ChannelError.
            on_close: Called with the close code after every close.

        Raises:
            Unauthenticated: If no credential is stored.
        """
        if not self.credentials.access_token:
            raise Unauthenticated()

        if self._task is not None and not self._task.done():
            logger.debug("Channel already running, ignoring connect()")
            return

        self._on_message = on_message
        self._on_error = on_error
        self._on_close = on_close
        self._closing = False
        self.reconnect_attempts = 0
        self.terminal_error = None
        self.state = ChannelState.CONNECTING
        self._task = asyncio.create_task(self._run())

    async def disconnect(self) -> None:
        """Close the channel for good and cancel any pending reconnect."""
        self._closing = True
        self.state = ChannelState.CLOSED

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error while closing channel: {e}")

        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Real-time channel disconnected")

    async def send_message(self, payload: Any) -> bool:
        """Send a JSON message if the channel is open.

        Returns:
            True if the message was handed to the socket, False if the
            channel is not open or closed during the send.
        """
        if not self.is_open:
            logger.warning(f"Channel not open ({self.state.value}), dropping outbound message")
            return False
        try:
            await self._ws.send(json.dumps(payload))
        except websockets.ConnectionClosed as e:
            logger.warning(f"Channel closed while sending, dropping outbound message: {e}")
            return False
        return True

    async def wait_closed(self) -> None:
        """Wait for the background loop to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self) -> None:
        while not self._closing:
            credential = self.credentials.access_token
            if not credential:
                await self._give_up("No authentication token found for reconnect")
                return

            self.state = ChannelState.CONNECTING
            close_code: int | None = None
            try:
                async with self.connector(self.build_url(credential)) as ws:
                    self._ws = ws
                    self.state = ChannelState.OPEN
                    self.reconnect_attempts = 0
                    logger.info("Real-time channel open")
                    await self._receive(ws)
                    close_code = getattr(ws, "close_code", None)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Real-time channel error: {e}")
                await _invoke(self._on_error, e)
            finally:
                self._ws = None

            if self._closing:
                return

            self.state = ChannelState.DISCONNECTED
            await _invoke(self._on_close, close_code)

            if self.reconnect_attempts >= self.max_reconnect_attempts:
                await self._give_up(
                    f"Gave up after {self.reconnect_attempts} reconnect attempts"
                )
                return

            delay = self.reconnect_delay(self.reconnect_attempts)
            self.reconnect_attempts += 1
            logger.info(
                f"Reconnecting real-time channel in {delay:.2f}s "
                f"(attempt {self.reconnect_attempts}/{self.max_reconnect_attempts})"
            )
            await asyncio.sleep(delay)

    async def _receive(self, ws: Any) -> None:
        async for raw in ws:
            try:
                data = json.loads(raw)
            except (TypeError, ValueError) as e:
                logger.warning(f"Dropping unparseable channel message: {e}")
                continue
            await _invoke(self._on_message, data)

    async def _give_up(self, reason: str) -> None:
        self.state = ChannelState.CLOSED
        self.terminal_error = ChannelError(reason)
        logger.error(f"Real-time channel closed: {reason}")
        await _invoke(self._on_error, self.terminal_error)
