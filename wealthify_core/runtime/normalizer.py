"""
Error normalization for transport outcomes.

Maps the two failure shapes the transport can produce, an exception raised
before any response arrived and a non-2xx response, onto ApiError
subclasses. The mapping is total: normalize() never raises.
"""

from __future__ import annotations

from typing import Any

from .errors import ApiError, ErrorCode, HttpError, NetworkError
from .models import TransportResponse

# status -> (default message, default code)
STATUS_DEFAULTS: dict[int, tuple[str, str]] = {
    400: ("Invalid request", ErrorCode.BAD_REQUEST),
    401: ("Authentication required", ErrorCode.UNAUTHORIZED),
    403: ("Permission denied", ErrorCode.FORBIDDEN),
    404: ("Resource not found", ErrorCode.NOT_FOUND),
    500: ("Server error", ErrorCode.INTERNAL_ERROR),
}
FALLBACK_DEFAULT = ("An error occurred", ErrorCode.HTTP_ERROR)

RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


def status_defaults(status: int) -> tuple[str, str]:
    """Return the default (message, code) for a status."""
    return STATUS_DEFAULTS.get(status, FALLBACK_DEFAULT)


def is_retryable_status(status: int) -> bool:
    """Server errors, request timeouts and rate limiting are transient."""
    return status >= 500 or status in RETRYABLE_CLIENT_STATUSES


def _field(body: Any, name: str) -> Any:
    if isinstance(body, dict):
        value = body.get(name)
        if value not in (None, ""):
            return value
    return None


def normalize_transport_failure(exc: BaseException) -> NetworkError:
    """Map a failure with no response into a NetworkError.

    Args:
        exc: The exception raised by the transport.

    Returns:
        NetworkError with status 0 and code NETWORK_ERROR.
    """
    return NetworkError(cause=exc)


def normalize_response(response: TransportResponse) -> HttpError:
    """Map a non-2xx response into an HttpError.

    Server-provided ``message`` and ``code`` win over the status defaults.
    The server's ``errors`` map, when present, is kept as details.

    Args:
        response: The non-2xx response.

    Returns:
        HttpError mirroring the response status.
    """
    default_message, default_code = status_defaults(response.status)
    body = response.body
    return HttpError(
        message=str(_field(body, "message") or default_message),
        status=response.status,
        code=str(_field(body, "code") or default_code),
        retryable=is_retryable_status(response.status),
        details=_field(body, "errors"),
    )


def normalize(failure: Any) -> ApiError:
    """Normalize any transport outcome into exactly one ApiError.

    Args:
        failure: An ApiError, a TransportResponse, or any exception.

    Returns:
        The normalized error. ApiErrors are returned unchanged.
    """
    if isinstance(failure, ApiError):
        return failure
    if isinstance(failure, TransportResponse):
        return normalize_response(failure)
    if isinstance(failure, BaseException):
        return normalize_transport_failure(failure)
    return ApiError(message=f"Unexpected failure: {failure!r}", code="UNKNOWN_ERROR")
