"""
Participant and registrant reconciliation for one webinar.

Fetches registrants, fetches raw attendance (report endpoint first, basic
endpoint as fallback, once per occurrence), resolves identities, merges
sessions into canonical participants and back-fills registrant attendance.
"""

import asyncio
from datetime import UTC, datetime

from webinarwise.config import settings
from webinarwise.features.webinar_sync.domain import (
    AttendanceRecord,
    ParticipantSession,
    ReconciliationResult,
    RegistrantRecord,
    SyncError,
    WebinarDescriptor,
    normalize_attendance,
    parse_attendance,
    parse_int,
    parse_timestamp,
)
from webinarwise.infrastructure.observability.logging import get_logger
from webinarwise.services.token_service import AccessToken
from webinarwise.services.zoom.api_client import ZoomApiClient
from webinarwise.services.zoom.errors import (
    AuthInvalidError,
    EndpointUnsupportedError,
    ZoomApiError,
)

from .identity import IdentityGroup, group_sessions, normalize_email
from .merge import backfill_attendance, merge_group

logger = get_logger(__name__)

HOST_ROLES = frozenset({"host"})


class AttendanceUnavailableError(Exception):
    """Neither participant endpoint could serve any attendance target of a webinar."""

    def __init__(self, message: str, webinar_id: str, failures: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.webinar_id = webinar_id
        self.failures = failures or []


def _registrant_from_payload(data: dict, webinar_id: str) -> RegistrantRecord | None:
    registrant_id = data.get("id") or data.get("registrant_id")
    if not registrant_id:
        return None
    return RegistrantRecord(
        webinar_id=webinar_id,
        registrant_id=str(registrant_id),
        email=data.get("email"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        status=data.get("status"),
        join_url=data.get("join_url"),
        registration_time=parse_timestamp(data.get("create_time")),
    )


class ReconciliationEngine:
    """
    Produces canonical participants and registrants for a webinar.

    Args:
        api_client: Zoom API client
        page_size: Registrant page size
        report_page_size: Participant page size for both attendance endpoints
        max_pages: Page ceiling for every paginated attendance/registrant fetch
        request_delay: Pause between consecutive page requests
    """

    def __init__(
        self,
        api_client: ZoomApiClient,
        *,
        page_size: int | None = None,
        report_page_size: int | None = None,
        max_pages: int | None = None,
        request_delay: float | None = None,
    ):
        self.api_client = api_client
        self.page_size = page_size or settings.SYNC_PAGE_SIZE
        self.report_page_size = report_page_size or settings.SYNC_REPORT_PAGE_SIZE
        self.max_pages = max_pages or settings.SYNC_MAX_PARTICIPANT_PAGES
        self.request_delay = (
            request_delay if request_delay is not None else settings.SYNC_REQUEST_DELAY_SECONDS
        )

    async def reconcile(
        self, token: AccessToken, webinar: WebinarDescriptor, webinar_id: str
    ) -> ReconciliationResult:
        """
        Reconcile one webinar.

        Raises:
            AttendanceUnavailableError: Both endpoints failed for every target
            AuthInvalidError: Token could not be refreshed
        """
        registrants = await self._fetch_registrants(token, webinar, webinar_id)

        if not webinar.has_occurred(datetime.now(UTC)):
            backfill_attendance(registrants, [])
            logger.debug(
                "Webinar has not occurred, skipping attendance",
                webinar_id=webinar.provider_webinar_id,
                registrants=len(registrants),
            )
            return ReconciliationResult(
                participants=[],
                registrants=registrants,
                participant_sync_status="not_applicable",
            )

        errors: list[SyncError] = []
        sessions, source = await self._fetch_attendance(token, webinar, webinar_id, errors)

        groups = group_sessions(sessions, registrants)
        attendee_groups = [group for group in groups if not self._is_host_group(group, webinar)]

        matches = [(group, merge_group(webinar_id, group)) for group in attendee_groups]
        attended = backfill_attendance(registrants, matches)
        participants = [participant for _, participant in matches]

        logger.info(
            "Webinar reconciled",
            webinar_id=webinar.provider_webinar_id,
            raw_sessions=len(sessions),
            participants=len(participants),
            hosts_excluded=len(groups) - len(attendee_groups),
            registrants=len(registrants),
            registrants_attended=attended,
            attendance_source=source,
        )

        return ReconciliationResult(
            participants=participants,
            registrants=registrants,
            errors=errors,
            participant_sync_status="synced" if participants else "no_participants",
            attendance_source=source,
        )

    @staticmethod
    def _is_host_group(group: IdentityGroup, webinar: WebinarDescriptor) -> bool:
        if any((session.role or "").lower() in HOST_ROLES for session in group.sessions):
            return True
        host_email = normalize_email(webinar.host_email)
        return bool(host_email and host_email in group.emails)

    async def _fetch_registrants(
        self, token: AccessToken, webinar: WebinarDescriptor, webinar_id: str
    ) -> list[RegistrantRecord]:
        """Page through registrants; any failure yields an empty set."""
        registrants: dict[str, RegistrantRecord] = {}
        page_number = 1

        try:
            while True:
                data = await self.api_client.list_registrants_page(
                    token,
                    webinar.provider_webinar_id,
                    page_number=page_number,
                    page_size=self.page_size,
                )
                items = data.get("registrants") or []
                for item in items:
                    registrant = _registrant_from_payload(item, webinar_id)
                    if registrant:
                        registrants[registrant.registrant_id] = registrant

                page_count = parse_int(data.get("page_count")) or 1
                if not items or page_number >= page_count or page_number >= self.max_pages:
                    break
                page_number += 1
                await asyncio.sleep(self.request_delay)

        except AuthInvalidError:
            raise
        except ZoomApiError as e:
            logger.warning(
                "Registrant fetch failed, continuing without registrants",
                webinar_id=webinar.provider_webinar_id,
                error=str(e),
                status_code=e.status_code,
            )
            return []

        return list(registrants.values())

    async def _fetch_attendance(
        self,
        token: AccessToken,
        webinar: WebinarDescriptor,
        webinar_id: str,
        errors: list[SyncError],
    ) -> tuple[list[ParticipantSession], str | None]:
        sessions: list[ParticipantSession] = []
        sources: set[str] = set()
        failures: list[str] = []
        targets = webinar.attendance_targets

        for target in targets:
            try:
                records, source = await self._fetch_target(token, target)
            except AuthInvalidError:
                raise
            except ZoomApiError as e:
                logger.warning(
                    "Attendance unavailable for target",
                    webinar_id=webinar.provider_webinar_id,
                    target=target,
                    error=str(e),
                )
                failures.append(f"{target}: {e}")
                continue

            occurrence_id = target if webinar.occurrence_ids else None
            sessions.extend(normalize_attendance(records, webinar_id, occurrence_id))
            sources.add(source)

        if targets and len(failures) == len(targets):
            raise AttendanceUnavailableError(
                f"Attendance unavailable for every target: {'; '.join(failures)}"[:500],
                webinar_id=webinar.provider_webinar_id,
                failures=failures,
            )

        for failure in failures:
            errors.append(
                SyncError(
                    stage="attendance",
                    error_type="AttendanceUnavailableError",
                    message=f"Occurrence skipped: {failure}"[:500],
                    webinar_id=webinar.provider_webinar_id,
                    severity="warning",
                )
            )

        if len(sources) > 1:
            return sessions, "mixed"
        return sessions, next(iter(sources), None)

    async def _fetch_target(self, token: AccessToken, target: str) -> tuple[list[AttendanceRecord], str]:
        """Detailed report first; fall back to the basic endpoint when it is rejected."""
        try:
            return await self._fetch_report(token, target), "report"
        except EndpointUnsupportedError as e:
            logger.info(
                "Report endpoint unavailable, falling back to basic participants",
                target=target,
                status_code=e.status_code,
                error_code=e.error_code,
            )
        return await self._fetch_basic(token, target), "basic"

    async def _fetch_report(self, token: AccessToken, target: str) -> list[AttendanceRecord]:
        records: list[AttendanceRecord] = []
        next_page_token = None
        pages = 0

        while True:
            data = await self.api_client.list_report_participants_page(
                token, target, page_size=self.report_page_size, next_page_token=next_page_token
            )
            pages += 1
            records.extend(
                parse_attendance(item, "report") for item in data.get("participants") or []
            )

            next_page_token = data.get("next_page_token") or None
            if not next_page_token:
                break
            if pages >= self.max_pages:
                logger.warning("Report participant pagination hit page ceiling", target=target)
                break
            await asyncio.sleep(self.request_delay)

        return records

    async def _fetch_basic(self, token: AccessToken, target: str) -> list[AttendanceRecord]:
        records: list[AttendanceRecord] = []
        page_number = 1

        while True:
            data = await self.api_client.list_basic_participants_page(
                token, target, page_number=page_number, page_size=self.report_page_size
            )
            items = data.get("participants") or []
            records.extend(parse_attendance(item, "basic") for item in items)

            page_count = parse_int(data.get("page_count")) or 1
            if not items or page_number >= page_count:
                break
            if page_number >= self.max_pages:
                logger.warning("Basic participant pagination hit page ceiling", target=target)
                break
            page_number += 1
            await asyncio.sleep(self.request_delay)

        return records
