"""
Retry policy configuration and helpers.

This module provides bounded retries with exponential backoff for pipeline
attempts, and the per-method table deciding which requests are retried by
default.
"""

from __future__ import annotations

import asyncio
import functools
import random
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from loguru import logger
from pydantic import BaseModel

from .errors import ApiError, MaxRetriesExceeded

T = TypeVar("T")

# Idempotent reads retry by default. Writes must opt in.
DEFAULT_RETRY_MATRIX: Mapping[str, bool] = {
    "GET": True,
    "HEAD": True,
    "OPTIONS": True,
    "POST": False,
    "PUT": False,
    "PATCH": False,
    "DELETE": False,
}


def is_retryable_method(method: str, matrix: Mapping[str, bool] | None = None) -> bool:
    """Look up the default retry behaviour for an HTTP method.

    Args:
        method: HTTP method, any case.
        matrix: Table to consult. Defaults to DEFAULT_RETRY_MATRIX.

    Returns:
        True if requests with this method are retried by default. Unknown
        methods are not.
    """
    table = DEFAULT_RETRY_MATRIX if matrix is None else matrix
    return table.get(method.upper(), False)


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    The delay before retry N (0-indexed) is:
    min(base_delay * (exponential_base ** N), max_delay), plus up to 25%
    jitter when enabled.

    Attributes:
        max_retries: Extra attempts beyond the first.
        base_delay: Initial delay in seconds between retries.
        max_delay: Maximum delay in seconds (caps backoff).
        exponential_base: Base for exponential backoff calculation.
        jitter: Whether to add random jitter to delays.
        wrap_exhausted: Raise MaxRetriesExceeded instead of the last error
            once retries are exhausted.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = False
    wrap_exhausted: bool = False

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        from wealthify_core.config import settings

        return cls(
            max_retries=settings.RETRY_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
        )

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first."""
        return self.max_retries + 1

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay after a given failed attempt.

        Args:
            attempt: The attempt number (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        delay = self.base_delay * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_amount = delay * 0.25 * random.random()
            delay += jitter_amount

        return delay

    def should_retry(self, exc: BaseException) -> bool:
        """Only ApiErrors flagged retryable are retried."""
        return isinstance(exc, ApiError) and exc.retryable


# Default policy for general use
DEFAULT_RETRY_POLICY = RetryPolicy()


async def with_retry(
    attempt: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    max_retries: int | None = None,
    base_delay: float | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    """Run an async attempt with bounded exponential-backoff retries.

    Args:
        attempt: Zero-argument coroutine function performing one attempt.
        policy: Retry policy. Defaults to DEFAULT_RETRY_POLICY.
        max_retries: Override of policy.max_retries.
        base_delay: Override of policy.base_delay.
        on_retry: Optional callback called before each retry with
                  (attempt, exception, delay).

    Returns:
        The result of the first successful attempt.

    Raises:
        ApiError: The last error, unchanged, once retries are exhausted
            (MaxRetriesExceeded if the policy wraps), or the first
            non-retryable error.
    """
    retry_policy = policy or DEFAULT_RETRY_POLICY
    overrides: dict[str, Any] = {}
    if max_retries is not None:
        overrides["max_retries"] = max_retries
    if base_delay is not None:
        overrides["base_delay"] = base_delay
    if overrides:
        retry_policy = retry_policy.model_copy(update=overrides)

    name = getattr(attempt, "__name__", "attempt")
    index = 0
    while True:
        try:
            return await attempt()
        except Exception as e:
            if not retry_policy.should_retry(e):
                raise
            if index >= retry_policy.max_retries:
                logger.warning(
                    f"[{e.debug_id}] Max retries ({retry_policy.max_retries}) "
                    f"exceeded for {name}: {e.message}"
                )
                if retry_policy.wrap_exhausted:
                    raise MaxRetriesExceeded(e, attempts=index + 1) from e
                raise

            delay = retry_policy.calculate_delay(index)
            logger.info(
                f"[{e.debug_id}] Retry {index + 1}/{retry_policy.max_retries} "
                f"for {name} in {delay:.2f}s: {e.message}"
            )

            if on_retry:
                on_retry(index, e, delay)

            await asyncio.sleep(delay)
            index += 1


def retrying(
    policy: RetryPolicy | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of with_retry.

    Example:
        @retrying(RetryPolicy(max_retries=5))
        async def fetch_accounts() -> dict:
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            @functools.wraps(func)
            async def attempt() -> T:
                return await func(*args, **kwargs)

            return await with_retry(attempt, policy, on_retry=on_retry)

        return wrapper

    return decorator
