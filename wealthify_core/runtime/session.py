"""
Login / logout credential lifecycle.

Login is the only place besides the refresh coordinator that writes the
credential pair. Logout always clears it, whether or not the server call
succeeds.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import ValidationError

from .errors import HttpError
from .models import ApiRequest, SendOptions, TokenPair
from .pipeline import RequestPipeline
from .result import Err, Ok, Result


class AuthSession:
    """Owns credential creation and teardown for a pipeline.

    Example:
        session = AuthSession(pipeline)
        result = await session.login({"email": email, "password": password})
        ...
        await session.logout()
    """

    def __init__(
        self,
        pipeline: RequestPipeline,
        login_path: str | None = None,
        logout_path: str | None = None,
    ):
        from wealthify_core.config import settings

        self.pipeline = pipeline
        self.login_path = login_path or settings.LOGIN_PATH
        self.logout_path = logout_path or settings.LOGOUT_PATH

    @property
    def credentials(self):
        return self.pipeline.credentials

    @property
    def is_authenticated(self) -> bool:
        return self.credentials.has_credentials

    def establish(self, access_token: str, refresh_token: str) -> None:
        """Store a credential pair obtained outside of login()."""
        self.credentials.set_tokens(access_token, refresh_token)

    async def login(self, payload: dict[str, Any]) -> Result[TokenPair]:
        """Exchange user credentials for a token pair and store it.

        Args:
            payload: Login body (e.g. email and password).

        Returns:
            Ok(TokenPair) on success, otherwise Err(ApiError). Nothing is
            stored on failure.
        """
        request = ApiRequest(method="POST", path=self.login_path, body=payload)
        result = await self.pipeline.send_envelope(request, SendOptions(retryable=False))
        if isinstance(result, Err):
            return result

        try:
            pair = TokenPair.model_validate(result.value.data)
        except ValidationError as e:
            return Err(
                HttpError(
                    message="Login response did not contain credentials",
                    status=200,
                    code="INVALID_RESPONSE",
                    cause=e,
                )
            )
        if not pair.refresh_token:
            return Err(
                HttpError(
                    message="Login response did not contain a refresh token",
                    status=200,
                    code="INVALID_RESPONSE",
                )
            )

        self.credentials.set_tokens(pair.access_token, pair.refresh_token)
        logger.info("Login succeeded, credentials stored")
        return Ok(pair)

    async def logout(self) -> None:
        """Notify the server (best effort) and clear both credentials."""
        try:
            if self.credentials.has_credentials:
                result = await self.pipeline.post(self.logout_path, retryable=False)
                if isinstance(result, Err):
                    logger.info(f"Logout call failed, clearing credentials anyway: {result.error}")
        finally:
            self.credentials.clear()
