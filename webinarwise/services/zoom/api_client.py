"""
Low-level Zoom REST API v2 client.

Every call goes through `_get`, which retries transient failures with
exponential backoff, refreshes the bearer token once on a 401, and maps
everything else onto the error taxonomy in `errors.py`. Pagination loops
live in the pipeline services; this client only fetches single pages.
"""

import asyncio
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from webinarwise.config import settings
from webinarwise.infrastructure.observability.logging import get_logger

from .errors import (
    AuthExpiredError,
    EndpointUnsupportedError,
    ProviderRequestError,
    TransientProviderError,
    ZoomApiError,
)

if TYPE_CHECKING:
    from webinarwise.services.token_service import AccessToken

logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
UNSUPPORTED_STATUS_CODES = {400, 403, 404, 422}

# Zoom's list endpoint calls ended webinars "past".
LIST_TYPE_PARAMS = {"scheduled": "scheduled", "live": "live", "ended": "past"}


def encode_webinar_uuid(value: str) -> str:
    """Zoom requires double URL-encoding for UUIDs that start with '/' or contain '//'."""
    if value.startswith("/") or "//" in value:
        return quote(quote(value, safe=""), safe="")
    return quote(value, safe="")


class ZoomApiClient:
    """
    Async client for the handful of Zoom endpoints the sync engine needs.

    Args:
        http_client: Injected transport; tests pass one built on httpx.MockTransport.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str | None = None,
        max_retries: int | None = None,
        backoff_factor: float | None = None,
    ):
        self._client = http_client
        self.base_url = (base_url or settings.ZOOM_API_BASE_URL).rstrip("/")
        self.max_retries = max_retries if max_retries is not None else settings.ZOOM_MAX_RETRIES
        self.backoff_factor = (
            backoff_factor if backoff_factor is not None else settings.ZOOM_BACKOFF_FACTOR
        )

    def _backoff(self, attempt: int, response: httpx.Response | None = None) -> float:
        if response is not None and response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                return float(retry_after)
        return self.backoff_factor * (2 ** (attempt - 1))

    async def _request_with_retry(
        self, method: str, url: str, operation: str, **kwargs
    ) -> httpx.Response:
        """Execute an HTTP request, retrying timeouts, 5xx and 429 responses."""
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                if attempt >= self.max_retries:
                    raise TransientProviderError(
                        f"Zoom {operation} request failed: {type(e).__name__}: {e}",
                        operation=operation,
                    ) from e
                backoff = self._backoff(attempt)
                logger.debug(
                    "Zoom API request error, retrying",
                    operation=operation,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code in RETRY_STATUS_CODES and attempt < self.max_retries:
                backoff = self._backoff(attempt, response)
                logger.debug(
                    "Zoom API retrying request",
                    operation=operation,
                    attempt=attempt,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue
            return response

        raise TransientProviderError(f"Zoom {operation} retry loop exhausted", operation=operation)

    def _get_auth_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Parse a Zoom response or raise the matching taxonomy error.

        Raises:
            ZoomApiError subclass for every non-2xx status
        """
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                raise ProviderRequestError(
                    f"Invalid Zoom {operation} response format: {e}",
                    status_code=response.status_code,
                    operation=operation,
                ) from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            error_data = {"message": response.text[:200]}

        status_code = response.status_code
        error_code = str(error_data.get("code", status_code))
        message = f"Zoom {operation} failed (HTTP {status_code}): {error_data.get('message', 'unknown error')}"

        logger.warning(
            f"Zoom API {operation} failed",
            status_code=status_code,
            error_code=error_code,
            error_message=error_data.get("message"),
        )

        if status_code == 401:
            error_cls = AuthExpiredError
        elif status_code in RETRY_STATUS_CODES:
            error_cls = TransientProviderError
        elif status_code in UNSUPPORTED_STATUS_CODES:
            error_cls = EndpointUnsupportedError
        else:
            error_cls = ProviderRequestError

        raise error_cls(
            message,
            status_code=status_code,
            error_code=error_code,
            operation=operation,
            response_data=error_data,
        )

    async def _get(
        self, token: "AccessToken", path: str, operation: str, params: dict | None = None
    ) -> dict:
        """GET with one forced token refresh when Zoom answers 401."""
        url = f"{self.base_url}{path}"
        response = await self._request_with_retry(
            "GET", url, operation, params=params, headers=self._get_auth_headers(token.value)
        )
        try:
            return self._handle_api_response(response, operation)
        except AuthExpiredError:
            logger.info("Zoom token rejected, refreshing once", operation=operation)
            await token.force_refresh()

        response = await self._request_with_retry(
            "GET", url, operation, params=params, headers=self._get_auth_headers(token.value)
        )
        return self._handle_api_response(response, operation)

    async def list_webinars_page(
        self,
        token: "AccessToken",
        lifecycle_type: str,
        *,
        page_number: int = 1,
        page_size: int = 100,
        next_page_token: str | None = None,
    ) -> dict:
        params: dict[str, Any] = {
            "type": LIST_TYPE_PARAMS.get(lifecycle_type, lifecycle_type),
            "page_size": page_size,
            "page_number": page_number,
        }
        if next_page_token:
            params["next_page_token"] = next_page_token
        return await self._get(token, "/users/me/webinars", "list_webinars", params)

    async def get_webinar(self, token: "AccessToken", webinar_id: str) -> dict:
        return await self._get(token, f"/webinars/{webinar_id}", "get_webinar")

    async def list_registrants_page(
        self, token: "AccessToken", webinar_id: str, *, page_number: int = 1, page_size: int = 100
    ) -> dict:
        params = {"page_size": page_size, "page_number": page_number}
        return await self._get(
            token, f"/webinars/{webinar_id}/registrants", "list_registrants", params
        )

    async def list_report_participants_page(
        self,
        token: "AccessToken",
        target_id: str,
        *,
        page_size: int = 300,
        next_page_token: str | None = None,
    ) -> dict:
        params: dict[str, Any] = {"page_size": page_size}
        if next_page_token:
            params["next_page_token"] = next_page_token
        return await self._get(
            token,
            f"/report/webinars/{encode_webinar_uuid(target_id)}/participants",
            "report_participants",
            params,
        )

    async def list_basic_participants_page(
        self, token: "AccessToken", target_id: str, *, page_number: int = 1, page_size: int = 300
    ) -> dict:
        params = {"page_size": page_size, "page_number": page_number}
        return await self._get(
            token,
            f"/past_webinars/{encode_webinar_uuid(target_id)}/participants",
            "basic_participants",
            params,
        )

    async def list_past_instances(self, token: "AccessToken", webinar_id: str) -> list[dict]:
        data = await self._get(token, f"/past_webinars/{webinar_id}/instances", "list_instances")
        return [item for item in data.get("webinars") or [] if isinstance(item, dict)]


__all__ = ["ZoomApiClient", "ZoomApiError", "encode_webinar_uuid"]
