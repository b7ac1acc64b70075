"""Unit tests for RetryPolicy, with_retry and the retry matrix."""

from unittest.mock import AsyncMock, patch

import pytest

from wealthify_core.runtime.errors import HttpError, MaxRetriesExceeded, NetworkError, Unauthorized
from wealthify_core.runtime.retry import (
    DEFAULT_RETRY_MATRIX,
    DEFAULT_RETRY_POLICY,
    RetryPolicy,
    is_retryable_method,
    retrying,
    with_retry,
)


class TestRetryPolicy:
    """Tests for RetryPolicy configuration."""

    def test_default_values(self):
        """Three extra attempts, one second base delay."""
        policy = RetryPolicy()

        assert policy.max_retries == 3
        assert policy.max_attempts == 4
        assert policy.base_delay == 1.0
        assert policy.exponential_base == 2.0
        assert policy.jitter is False
        assert policy.wrap_exhausted is False

    def test_is_frozen(self):
        """Should be immutable."""
        policy = RetryPolicy()
        with pytest.raises(Exception):
            policy.max_retries = 10

    def test_default_policy_exists(self):
        assert isinstance(DEFAULT_RETRY_POLICY, RetryPolicy)


class TestCalculateDelay:
    """Tests for delay calculation."""

    def test_exponential_backoff(self):
        """Delays for attempts 0, 1, 2 double each time."""
        policy = RetryPolicy(base_delay=1000, max_delay=100_000)

        assert policy.calculate_delay(0) == 1000
        assert policy.calculate_delay(1) == 2000
        assert policy.calculate_delay(2) == 4000

    def test_max_delay_caps_backoff(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0)

        assert policy.calculate_delay(10) == 5.0

    def test_jitter_stays_within_bounds(self):
        """Jitter adds at most 25% on top of the computed delay."""
        policy = RetryPolicy(base_delay=1.0, jitter=True)

        for _ in range(20):
            delay = policy.calculate_delay(1)
            assert 2.0 <= delay <= 2.5


class TestShouldRetry:
    """Tests for error classification."""

    def test_network_error_is_retried(self):
        assert RetryPolicy().should_retry(NetworkError()) is True

    def test_server_error_is_retried(self):
        assert RetryPolicy().should_retry(HttpError(status=500, retryable=True)) is True

    def test_unauthorized_is_not_retried(self):
        assert RetryPolicy().should_retry(Unauthorized()) is False

    def test_foreign_exception_is_not_retried(self):
        assert RetryPolicy().should_retry(ValueError("bug")) is False


class TestWithRetry:
    """Tests for the with_retry helper."""

    @pytest.mark.asyncio
    async def test_returns_value_on_success(self):
        async def succeed():
            return "success"

        assert await with_retry(succeed) == "success"

    @pytest.mark.asyncio
    async def test_always_failing_attempt_runs_four_times(self):
        """max_retries=3 means one initial attempt plus three retries."""
        errors = []

        async def always_fails():
            error = NetworkError(message=f"failure {len(errors)}")
            errors.append(error)
            raise error

        with patch("wealthify_core.runtime.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(NetworkError) as exc_info:
                await with_retry(always_fails, RetryPolicy(max_retries=3))

        assert len(errors) == 4
        assert exc_info.value is errors[-1]

    @pytest.mark.asyncio
    async def test_backoff_delays_grow_exponentially(self):
        """Suspends for 1000, 2000, 4000 between attempts."""

        async def always_fails():
            raise NetworkError()

        with patch("wealthify_core.runtime.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(NetworkError):
                await with_retry(always_fails, RetryPolicy(base_delay=1000, max_delay=100_000))

        delays = [call.args[0] for call in mock_sleep.await_args_list]
        assert delays == [1000, 2000, 4000]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        call_count = 0

        async def flaky():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise NetworkError()
            return "done"

        result = await with_retry(flaky, RetryPolicy(base_delay=0.001))

        assert result == "done"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_does_not_retry_terminal_error(self):
        call_count = 0

        async def forbidden():
            nonlocal call_count
            call_count += 1
            raise HttpError(status=403, code="FORBIDDEN", retryable=False)

        with pytest.raises(HttpError):
            await with_retry(forbidden, RetryPolicy(base_delay=0.001))

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_foreign_exceptions_propagate_immediately(self):
        call_count = 0

        async def broken():
            nonlocal call_count
            call_count += 1
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await with_retry(broken, RetryPolicy(base_delay=0.001))

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_max_retries_override(self):
        call_count = 0

        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise NetworkError()

        with pytest.raises(NetworkError):
            await with_retry(always_fails, max_retries=1, base_delay=0.001)

        assert call_count == 2

    @pytest.mark.asyncio
    async def test_wrap_exhausted_preserves_last_error(self):
        last = NetworkError(message="last one")

        async def always_fails():
            raise last

        policy = RetryPolicy(max_retries=2, base_delay=0.001, wrap_exhausted=True)
        with pytest.raises(MaxRetriesExceeded) as exc_info:
            await with_retry(always_fails, policy)

        assert exc_info.value.last_error is last
        assert exc_info.value.attempts == 3
        assert exc_info.value.status == 0
        assert exc_info.value.code == "NETWORK_ERROR"

    @pytest.mark.asyncio
    async def test_calls_on_retry_callback(self):
        retry_calls = []

        def on_retry(attempt, exc, delay):
            retry_calls.append((attempt, delay))

        async def always_fails():
            raise NetworkError()

        with pytest.raises(NetworkError):
            await with_retry(
                always_fails,
                RetryPolicy(max_retries=2, base_delay=0.001),
                on_retry=on_retry,
            )

        assert retry_calls == [(0, 0.001), (1, 0.002)]


class TestRetryingDecorator:
    """Tests for the decorator form."""

    @pytest.mark.asyncio
    async def test_passes_arguments_through(self):
        call_count = 0

        @retrying(RetryPolicy(base_delay=0.001))
        async def fetch(account_id, *, page=1):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise NetworkError()
            return account_id, page

        assert await fetch("acc-1", page=2) == ("acc-1", 2)
        assert call_count == 2


class TestRetryMatrix:
    """Tests for per-method retry defaults."""

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_reads_are_retryable(self, method):
        assert is_retryable_method(method) is True

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_writes_are_not_retryable(self, method):
        assert is_retryable_method(method) is False

    def test_lookup_is_case_insensitive(self):
        assert is_retryable_method("get") is True

    def test_unknown_method_is_not_retryable(self):
        assert is_retryable_method("TRACE") is False

    def test_custom_matrix(self):
        assert is_retryable_method("PUT", {"PUT": True}) is True
        assert is_retryable_method("GET", {"PUT": True}) is False

    def test_default_matrix_covers_standard_methods(self):
        assert set(DEFAULT_RETRY_MATRIX) == {"GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"}
