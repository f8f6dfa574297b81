"""
Webinar enumeration.

Pages through /users/me/webinars once per lifecycle type, drops webinars
outside the sync window, merges the detail payload over each list entry
and attaches occurrence ids for recurring webinars. A failure while paging
one type only loses that type.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from webinarwise.config import settings
from webinarwise.features.webinar_sync.domain import (
    LIFECYCLE_TYPES,
    DateRange,
    SyncError,
    WebinarDescriptor,
    parse_int,
    parse_timestamp,
)
from webinarwise.infrastructure.observability.logging import get_logger
from webinarwise.services.token_service import AccessToken
from webinarwise.services.zoom.api_client import ZoomApiClient
from webinarwise.services.zoom.errors import AuthInvalidError, ZoomApiError

logger = get_logger(__name__)


def compute_date_range(kind: str, last_sync_at: datetime | None, now: datetime | None = None) -> DateRange:
    """
    Window of webinar start times a sync covers.

    manual: the full lookback/lookahead window.
    incremental/scheduled: from the previous sync minus an overlap, so
    webinars that ended right around the last run are picked up again.
    """
    now = now or datetime.now(UTC)
    end = now + timedelta(days=settings.SYNC_LOOKAHEAD_DAYS)
    start = now - timedelta(days=settings.SYNC_LOOKBACK_DAYS)

    if kind in ("incremental", "scheduled") and last_sync_at:
        start = max(start, last_sync_at - timedelta(hours=settings.SYNC_INCREMENTAL_OVERLAP_HOURS))

    return DateRange(start=start, end=end)


def _descriptor_from_payload(data: dict, lifecycle_type: str) -> WebinarDescriptor:
    settings_payload = data.get("settings") if isinstance(data.get("settings"), dict) else {}
    return WebinarDescriptor(
        provider_webinar_id=str(data["id"]),
        uuid=data.get("uuid"),
        topic=data.get("topic"),
        start_time=parse_timestamp(data.get("start_time")),
        duration=parse_int(data.get("duration")),
        lifecycle_type=lifecycle_type,
        status=data.get("status"),
        timezone=data.get("timezone"),
        host_id=data.get("host_id"),
        host_email=data.get("host_email"),
        registration_url=data.get("registration_url"),
        settings=dict(settings_payload),
    )


class WebinarEnumerator:
    """
    Lists webinars for one connection.

    Args:
        api_client: Zoom API client
        page_size: Webinars requested per page
        max_pages: Hard ceiling per lifecycle type
        request_delay: Pause between consecutive API calls
    """

    def __init__(
        self,
        api_client: ZoomApiClient,
        *,
        page_size: int | None = None,
        max_pages: int | None = None,
        request_delay: float | None = None,
    ):
        self.api_client = api_client
        self.page_size = page_size or settings.SYNC_PAGE_SIZE
        self.max_pages = max_pages or settings.SYNC_MAX_LIST_PAGES
        self.request_delay = (
            request_delay if request_delay is not None else settings.SYNC_REQUEST_DELAY_SECONDS
        )

    async def list_webinars(
        self,
        token: AccessToken,
        date_range: DateRange,
        types: tuple[str, ...] | list[str] = LIFECYCLE_TYPES,
        errors: list[SyncError] | None = None,
    ) -> list[WebinarDescriptor]:
        """
        Enumerate webinars across lifecycle types, deduplicated by provider id.

        Per-type failures are appended to `errors` (when given) as warnings.
        """
        seen: dict[str, WebinarDescriptor] = {}

        for lifecycle_type in types:
            try:
                payloads = await self._enumerate_type(token, lifecycle_type)
            except AuthInvalidError:
                raise
            except ZoomApiError as e:
                logger.warning(
                    "Webinar enumeration failed for type",
                    lifecycle_type=lifecycle_type,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if errors is not None:
                    errors.append(
                        SyncError(
                            stage="enumeration",
                            error_type=type(e).__name__,
                            message=f"Listing {lifecycle_type} webinars failed: {e}",
                            severity="warning",
                        )
                    )
                continue

            for payload in payloads:
                if payload.get("id") is None:
                    continue
                descriptor = _descriptor_from_payload(payload, lifecycle_type)
                if descriptor.provider_webinar_id in seen:
                    continue
                if not date_range.contains(descriptor.start_time):
                    continue
                seen[descriptor.provider_webinar_id] = descriptor

        webinars = list(seen.values())
        for webinar in webinars:
            await self._merge_detail(token, webinar)
            if webinar.has_occurred():
                await self._expand_occurrences(token, webinar)

        logger.info(
            "Webinar enumeration complete",
            webinar_count=len(webinars),
            types=list(types),
            recurring=sum(1 for webinar in webinars if webinar.occurrence_ids),
        )
        return webinars

    async def _enumerate_type(self, token: AccessToken, lifecycle_type: str) -> list[dict[str, Any]]:
        """Page through one lifecycle type until Zoom signals the end or the ceiling is hit."""
        results: list[dict[str, Any]] = []
        page_number = 1
        next_page_token: str | None = None

        while True:
            data = await self.api_client.list_webinars_page(
                token,
                lifecycle_type,
                page_number=page_number,
                page_size=self.page_size,
                next_page_token=next_page_token,
            )
            items = [item for item in data.get("webinars") or [] if isinstance(item, dict)]
            results.extend(items)

            next_page_token = data.get("next_page_token") or None
            page_count = data.get("page_count")

            if not items:
                break
            if page_count is not None and page_number >= (parse_int(page_count) or 1):
                break
            if page_number >= self.max_pages:
                logger.warning(
                    "Webinar enumeration hit page ceiling",
                    lifecycle_type=lifecycle_type,
                    max_pages=self.max_pages,
                )
                break
            if not next_page_token and len(items) < self.page_size:
                break

            page_number += 1
            await asyncio.sleep(self.request_delay)

        logger.debug(
            "Enumerated lifecycle type",
            lifecycle_type=lifecycle_type,
            pages=page_number,
            webinars=len(results),
        )
        return results

    async def _merge_detail(self, token: AccessToken, webinar: WebinarDescriptor) -> None:
        """Overlay the richer /webinars/{id} payload; the list entry is kept on failure."""
        try:
            detail = await self.api_client.get_webinar(token, webinar.provider_webinar_id)
        except AuthInvalidError:
            raise
        except ZoomApiError as e:
            logger.warning(
                "Webinar detail unavailable, using list data",
                webinar_id=webinar.provider_webinar_id,
                error=str(e),
            )
            return
        finally:
            await asyncio.sleep(self.request_delay)

        webinar.uuid = detail.get("uuid") or webinar.uuid
        webinar.topic = detail.get("topic") or webinar.topic
        webinar.start_time = parse_timestamp(detail.get("start_time")) or webinar.start_time
        duration = parse_int(detail.get("duration"))
        if duration is not None:
            webinar.duration = duration
        webinar.status = detail.get("status") or webinar.status
        webinar.timezone = detail.get("timezone") or webinar.timezone
        webinar.host_id = detail.get("host_id") or webinar.host_id
        webinar.host_email = detail.get("host_email") or webinar.host_email
        webinar.registration_url = detail.get("registration_url") or webinar.registration_url
        if isinstance(detail.get("settings"), dict):
            webinar.settings = {**webinar.settings, **detail["settings"]}
        for key in ("agenda", "type", "recurrence", "password"):
            if detail.get(key) is not None:
                webinar.settings.setdefault(key, detail[key])

    async def _expand_occurrences(self, token: AccessToken, webinar: WebinarDescriptor) -> None:
        """Attach past instance uuids; a failed lookup means no occurrences."""
        try:
            instances = await self.api_client.list_past_instances(token, webinar.provider_webinar_id)
        except AuthInvalidError:
            raise
        except ZoomApiError as e:
            logger.debug(
                "No past instances for webinar",
                webinar_id=webinar.provider_webinar_id,
                error=str(e),
            )
            return
        finally:
            await asyncio.sleep(self.request_delay)

        occurrence_ids = []
        for instance in instances:
            uuid = instance.get("uuid")
            if uuid and uuid not in occurrence_ids:
                occurrence_ids.append(uuid)
        webinar.occurrence_ids = occurrence_ids
