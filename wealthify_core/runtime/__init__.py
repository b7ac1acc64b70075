"""
Network runtime for the wealthify client.

This package provides the authenticated request pipeline and the real-time
channel:
- RequestPipeline: send(request) -> Ok(body) | Err(ApiError)
- RefreshCoordinator: single-flight credential refresh
- RetryPolicy / with_retry: bounded exponential backoff
- CredentialStore: the access/refresh credential pair
- DuplexChannelManager: self-reconnecting WebSocket channel
"""

from .channel import ChannelState, DuplexChannelManager
from .credentials import CredentialStore, InMemoryKeyValueStore, JsonFileKeyValueStore
from .errors import (
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
from .models import ApiEnvelope, ApiRequest, SendOptions, TokenPair, TransportResponse
from .normalizer import normalize
from .pipeline import RequestPipeline
from .refresh import RefreshCoordinator, RefreshState
from .result import Err, Ok, Result
from .retry import DEFAULT_RETRY_MATRIX, RetryPolicy, with_retry
from .session import AuthSession
from .transport import HttpxTransport, Transport, TransportFailure

__all__ = [
    "ApiEnvelope",
    "ApiError",
    "ApiRequest",
    "AuthSession",
    "ChannelError",
    "ChannelState",
    "CredentialStore",
    "DEFAULT_RETRY_MATRIX",
    "DuplexChannelManager",
    "Err",
    "ErrorCode",
    "HttpError",
    "HttpxTransport",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "MaxRetriesExceeded",
    "NetworkError",
    "Ok",
    "RefreshCoordinator",
    "RefreshError",
    "RefreshState",
    "RequestPipeline",
    "Result",
    "RetryPolicy",
    "SendOptions",
    "TokenPair",
    "Transport",
    "TransportFailure",
    "TransportResponse",
    "Unauthenticated",
    "Unauthorized",
    "normalize",
    "with_retry",
]
