"""
Normalized error model for the request pipeline.

Every failure that leaves the pipeline or the channel manager is an ApiError
carrying the same shape: a human-readable message, a numeric status (0 when
no response was received) and a machine-readable code. Subclasses name the
failure kind so callers can match on it exhaustively.
"""

from __future__ import annotations

import uuid
from typing import Any


class ErrorCode:
    """Standard error codes for common failure scenarios."""

    # Network/connectivity
    NETWORK_ERROR = "NETWORK_ERROR"

    # Status-derived
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    HTTP_ERROR = "HTTP_ERROR"

    # Pipeline
    UNAUTHENTICATED = "UNAUTHENTICATED"
    REFRESH_FAILED = "REFRESH_FAILED"
    MAX_RETRIES_EXCEEDED = "MAX_RETRIES_EXCEEDED"

    # Real-time channel
    CHANNEL_ERROR = "CHANNEL_ERROR"


class ApiError(Exception):
    """Normalized failure of a pipeline or channel operation.

    Attributes:
        message: Human-readable message safe to show to users.
        status: HTTP status code, or 0 when no response was received.
        code: Machine-readable error code.
        retryable: Whether the failed operation may be retried.
        details: Optional field-level details reported by the server.
        cause: The underlying exception, if any.
        debug_id: Unique identifier for log correlation.
    """

    default_code = ErrorCode.HTTP_ERROR
    default_message = "An error occurred"

    def __init__(
        self,
        message: str | None = None,
        status: int = 0,
        code: str | None = None,
        retryable: bool = False,
        details: Any = None,
        cause: BaseException | None = None,
        debug_id: str | None = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.status = status
        self.code = code or self.default_code
        self.retryable = retryable
        self.details = details
        self.cause = cause
        self.debug_id = debug_id or str(uuid.uuid4())[:8]

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"status={self.status}, "
            f"message={self.message!r}, "
            f"retryable={self.retryable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the normalized error shape.

        Returns:
            Dictionary with message, status and code (plus details if any).
        """
        data: dict[str, Any] = {
            "message": self.message,
            "status": self.status,
            "code": self.code,
        }
        if self.details is not None:
            data["details"] = self.details
        return data


class NetworkError(ApiError):
    """No response reached the pipeline (connection failure, timeout)."""

    default_code = ErrorCode.NETWORK_ERROR
    default_message = "Network error"

    def __init__(self, message: str | None = None, cause: BaseException | None = None, **kwargs: Any):
        kwargs.setdefault("retryable", True)
        super().__init__(message=message, status=0, cause=cause, **kwargs)


class HttpError(ApiError):
    """The server answered with a non-2xx status."""


class Unauthorized(ApiError):
    """Authorization failed and could not be recovered by a refresh."""

    default_code = ErrorCode.UNAUTHORIZED
    default_message = "Authentication required"

    def __init__(self, message: str | None = None, status: int = 401, **kwargs: Any):
        kwargs["retryable"] = False
        super().__init__(message=message, status=status, **kwargs)


class Unauthenticated(Unauthorized):
    """An operation that needs a credential was attempted without one."""

    default_code = ErrorCode.UNAUTHENTICATED
    default_message = "No authentication token found"


class RefreshError(ApiError):
    """The refresh exchange failed; every waiter of that cycle sees this error."""

    default_code = ErrorCode.REFRESH_FAILED
    default_message = "Token refresh failed"

    def __init__(self, message: str | None = None, status: int = 0, **kwargs: Any):
        kwargs["retryable"] = False
        super().__init__(message=message, status=status, **kwargs)


class ChannelError(ApiError):
    """The real-time channel gave up reconnecting."""

    default_code = ErrorCode.CHANNEL_ERROR
    default_message = "Real-time connection lost"


class MaxRetriesExceeded(ApiError):
    """Retry budget exhausted. Mirrors the last error and keeps it as last_error."""

    default_code = ErrorCode.MAX_RETRIES_EXCEEDED
    default_message = "Max retries exceeded"

    def __init__(self, last_error: ApiError, attempts: int):
        super().__init__(
            message=last_error.message,
            status=last_error.status,
            code=last_error.code,
            retryable=False,
            details=last_error.details,
            cause=last_error,
            debug_id=last_error.debug_id,
        )
        self.last_error = last_error
        self.attempts = attempts
