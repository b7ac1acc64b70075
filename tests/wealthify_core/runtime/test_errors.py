"""Unit tests for the ApiError hierarchy and the Result type."""

import pytest

from wealthify_core.runtime.errors import (
    ApiError,
    ChannelError,
    ErrorCode,
    HttpError,
    MaxRetriesExceeded,
    NetworkError,
    RefreshError,
    Unauthenticated,
    Unauthorized,
)
from wealthify_core.runtime.result import Err, Ok


class TestApiError:
    """Tests for the base error."""

    def test_defaults(self):
        error = ApiError()

        assert error.message == "An error occurred"
        assert error.status == 0
        assert error.code == ErrorCode.HTTP_ERROR
        assert error.retryable is False
        assert error.details is None
        assert error.debug_id is not None

    def test_str_representation(self):
        error = HttpError(message="Budget not found", status=404, code="NOT_FOUND")

        assert str(error) == "[NOT_FOUND] Budget not found"

    def test_to_dict_has_normalized_shape(self):
        error = HttpError(message="Invalid request", status=400, code="BAD_REQUEST")

        assert error.to_dict() == {
            "message": "Invalid request",
            "status": 400,
            "code": "BAD_REQUEST",
        }

    def test_to_dict_includes_details(self):
        error = HttpError(status=400, details={"amount": ["must be positive"]})

        assert error.to_dict()["details"] == {"amount": ["must be positive"]}

    def test_is_raiseable(self):
        with pytest.raises(ApiError) as exc_info:
            raise HttpError(status=500, code="INTERNAL_ERROR")

        assert exc_info.value.status == 500


class TestErrorKinds:
    """Tests for the concrete failure kinds."""

    def test_network_error(self):
        cause = OSError("refused")
        error = NetworkError(cause=cause)

        assert error.status == 0
        assert error.code == "NETWORK_ERROR"
        assert error.message == "Network error"
        assert error.retryable is True
        assert error.cause is cause

    def test_unauthorized_is_never_retryable(self):
        error = Unauthorized(retryable=True)

        assert error.status == 401
        assert error.code == ErrorCode.UNAUTHORIZED
        assert error.retryable is False

    def test_unauthenticated_is_unauthorized(self):
        error = Unauthenticated()

        assert isinstance(error, Unauthorized)
        assert error.code == ErrorCode.UNAUTHENTICATED

    def test_refresh_error(self):
        error = RefreshError(status=401)

        assert error.code == ErrorCode.REFRESH_FAILED
        assert error.status == 401
        assert error.retryable is False

    def test_channel_error(self):
        assert ChannelError().code == ErrorCode.CHANNEL_ERROR

    def test_max_retries_exceeded_mirrors_last_error(self):
        last = HttpError(message="Server error", status=503, code="HTTP_ERROR", retryable=True)
        error = MaxRetriesExceeded(last, attempts=4)

        assert error.last_error is last
        assert error.attempts == 4
        assert error.status == 503
        assert error.message == "Server error"
        assert error.debug_id == last.debug_id


class TestResult:
    """Tests for Ok / Err."""

    def test_ok(self):
        result = Ok({"id": 1})

        assert result.ok is True
        assert result.unwrap() == {"id": 1}
        assert result.unwrap_or(None) == {"id": 1}

    def test_err_unwrap_raises_carried_error(self):
        error = NetworkError()
        result = Err(error)

        assert result.ok is False
        assert result.unwrap_or("fallback") == "fallback"
        with pytest.raises(NetworkError) as exc_info:
            result.unwrap()
        assert exc_info.value is error

    def test_pattern_matching(self):
        def describe(result):
            match result:
                case Ok(value=body):
                    return f"ok:{body}"
                case Err(error=Unauthorized()):
                    return "login"
                case Err(error=error):
                    return f"err:{error.code}"

        assert describe(Ok(1)) == "ok:1"
        assert describe(Err(Unauthorized())) == "login"
        assert describe(Err(NetworkError())) == "err:NETWORK_ERROR"
