"""
Wire-level models shared by the pipeline, the transport and the refresh
coordinator.
"""

from __future__ import annotations

import uuid
from typing import Any, Generic, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


class ApiRequest(BaseModel):
    """A logical request handed to the pipeline.

    Attributes:
        method: HTTP method, normalized to upper case.
        path: Path relative to the API base URL.
        headers: Extra headers for this request.
        body: JSON-serializable payload.
        query: Query string parameters.
        files: Multipart file parts, in the form httpx accepts
            (`{field: (filename, content, content_type)}`). When set, the
            request is sent as multipart/form-data and `body` is ignored.
        data: Extra form fields sent alongside `files`.
        request_id: Correlation id used in logs.
        auth_retried: Set once the request has been re-issued after a
            credential refresh. Never re-issued for auth a second time.
    """

    method: str = "GET"
    path: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    query: dict[str, Any] | None = None
    files: dict[str, Any] | None = None
    data: dict[str, Any] | None = None
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:9])
    auth_retried: bool = False

    @field_validator("method")
    @classmethod
    def upper_method(cls, v: str) -> str:
        return v.upper()

    def with_bearer(self, credential: str | None) -> "ApiRequest":
        """Return a copy carrying the credential as a bearer header.

        Args:
            credential: Access credential, or None to send without one.

        Returns:
            New ApiRequest; the receiver is left unchanged.
        """
        headers = {k: v for k, v in self.headers.items() if k.lower() != "authorization"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        return self.model_copy(update={"headers": headers})


class SendOptions(BaseModel):
    """Per-call pipeline options.

    Attributes:
        retryable: Force retry on or off. None uses the method default.
    """

    retryable: bool | None = None

    model_config = {"frozen": True}


class TransportResponse(BaseModel):
    """One HTTP exchange as seen by the pipeline."""

    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


class Pagination(BaseModel):
    """Pagination block of a list envelope."""

    page: int
    page_size: int = Field(alias="pageSize")
    total_items: int = Field(alias="totalItems")
    total_pages: int = Field(alias="totalPages")
    has_next_page: bool | None = Field(default=None, alias="hasNextPage")
    has_previous_page: bool | None = Field(default=None, alias="hasPreviousPage")

    model_config = ConfigDict(populate_by_name=True)


class ApiEnvelope(BaseModel, Generic[T]):
    """Response envelope returned by every API endpoint."""

    success: bool
    message: str = ""
    data: T | None = None
    pagination: Pagination | None = None
    timestamp: str | None = None


class TokenPair(BaseModel):
    """Credentials issued by login or by the refresh exchange.

    The refresh credential is optional: servers that do not rotate it only
    return a new access credential.
    """

    access_token: str = Field(
        min_length=1,
        validation_alias=AliasChoices("accessToken", "access_token", "token"),
    )
    refresh_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("refreshToken", "refresh_token"),
    )
