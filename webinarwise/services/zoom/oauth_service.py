"""
Zoom OAuth token endpoint client.

Supports the two grants Zoom connections use:
- account_credentials (Server-to-Server OAuth apps): a fresh token per request,
  no refresh token involved
- refresh_token (user-authorized OAuth apps): exchanges and rotates the refresh token
"""

import asyncio
import base64
from datetime import UTC, datetime, timedelta

import httpx

from webinarwise.config import settings
from webinarwise.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class ZoomOAuthError(Exception):
    """Custom exception for Zoom token endpoint errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class TokenResponse:
    """Structured representation of a Zoom token response."""

    def __init__(self, data: dict):
        self.access_token = data.get("access_token")
        self.refresh_token = data.get("refresh_token")
        self.token_type = data.get("token_type", "bearer")
        self.expires_in = data.get("expires_in")
        self.scope = data.get("scope", "")

        if self.expires_in:
            self.expires_at = datetime.now(UTC) + timedelta(seconds=int(self.expires_in))
        else:
            self.expires_at = None

    def is_valid(self) -> bool:
        return bool(self.access_token)


class ZoomOAuthService:
    """
    Calls https://zoom.us/oauth/token with retry/backoff on transient failures.

    Args:
        http_client: Shared client; a private one is created when omitted.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        token_url: str | None = None,
        max_retries: int | None = None,
        backoff_factor: float | None = None,
    ):
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.ZOOM_REQUEST_TIMEOUT)
        )
        self._owns_client = http_client is None
        self.token_url = token_url or settings.ZOOM_TOKEN_URL
        self.max_retries = max_retries if max_retries is not None else settings.ZOOM_MAX_RETRIES
        self.backoff_factor = (
            backoff_factor if backoff_factor is not None else settings.ZOOM_BACKOFF_FACTOR
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _basic_auth_header(client_id: str, client_secret: str) -> str:
        raw = f"{client_id}:{client_secret}".encode("utf-8")
        return "Basic " + base64.b64encode(raw).decode("ascii")

    async def _post_with_retry(self, data: dict, auth_header: str, operation: str) -> httpx.Response:
        headers = {
            "Authorization": auth_header,
            "Content-Type": "application/x-www-form-urlencoded",
        }

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.post(self.token_url, data=data, headers=headers)

                if response.status_code in RETRY_STATUS_CODES and attempt < self.max_retries:
                    wait_time = self.backoff_factor * (2 ** (attempt - 1))
                    logger.warning(
                        "Zoom OAuth transient status",
                        operation=operation,
                        status_code=response.status_code,
                        attempt=attempt,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                return response

            except httpx.RequestError as exc:
                if attempt >= self.max_retries:
                    raise ZoomOAuthError(f"Network error during {operation}: {exc}") from exc

                wait_time = self.backoff_factor * (2 ** (attempt - 1))
                logger.warning(
                    "Zoom OAuth request error, retrying",
                    operation=operation,
                    attempt=attempt,
                    wait_time=wait_time,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                await asyncio.sleep(wait_time)

        raise ZoomOAuthError(f"{operation} failed: retries exhausted")

    async def request_account_token(
        self, account_id: str, client_id: str, client_secret: str
    ) -> TokenResponse:
        """
        Request a new access token with the account_credentials grant.

        Raises:
            ZoomOAuthError: If Zoom rejects the credentials or is unreachable
        """
        if not (account_id and client_id and client_secret):
            raise ZoomOAuthError(
                "Server-to-Server connection is missing account id or client credentials",
                error_code="missing_credentials",
            )

        logger.info("Requesting Zoom account token", account_id=account_id)
        response = await self._post_with_retry(
            {"grant_type": "account_credentials", "account_id": account_id},
            self._basic_auth_header(client_id, client_secret),
            operation="account_credentials",
        )
        return self._handle_token_response(response, "account_credentials")

    async def refresh_access_token(
        self, refresh_token: str, client_id: str, client_secret: str
    ) -> TokenResponse:
        """
        Exchange a refresh token for a new access token.

        Zoom rotates refresh tokens; when the response omits one the
        existing token is preserved.
        """
        if not refresh_token:
            raise ZoomOAuthError(
                "No refresh token available - re-authentication required",
                error_code="missing_refresh_token",
            )
        if not (client_id and client_secret):
            raise ZoomOAuthError("OAuth client credentials not configured", error_code="missing_credentials")

        logger.info("Refreshing Zoom access token", refresh_token_preview=refresh_token[:8] + "...")
        response = await self._post_with_retry(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            self._basic_auth_header(client_id, client_secret),
            operation="token_refresh",
        )

        token_response = self._handle_token_response(response, "token_refresh")
        if not token_response.refresh_token:
            token_response.refresh_token = refresh_token
            logger.debug("Preserved existing refresh token")
        return token_response

    def _handle_token_response(self, response: httpx.Response, operation: str) -> TokenResponse:
        if not response.is_success:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}

            error_code = error_data.get("error") or error_data.get("code") or "unknown_error"
            reason = error_data.get("reason") or error_data.get("error_description") or error_data.get(
                "message", "No description provided"
            )
            logger.error(
                f"Zoom {operation} failed",
                status_code=response.status_code,
                error_code=error_code,
                reason=reason,
            )
            raise ZoomOAuthError(
                f"Zoom {operation} failed ({error_code}): {reason}",
                error_code=str(error_code),
                status_code=response.status_code,
                response_data=error_data,
            )

        try:
            token_response = TokenResponse(response.json())
        except ValueError as e:
            raise ZoomOAuthError(f"Failed to parse Zoom token response: {e}") from e

        if not token_response.is_valid():
            raise ZoomOAuthError("Invalid token response from Zoom")

        logger.info(
            f"Zoom {operation} successful",
            expires_in=token_response.expires_in,
            has_refresh_token=bool(token_response.refresh_token),
        )
        return token_response
