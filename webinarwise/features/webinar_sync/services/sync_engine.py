"""
Webinar sync engine.

Runs one SyncJob end to end: token -> date window -> enumeration -> per
webinar reconciliation, persistence and metrics -> finalize. Webinars are
processed strictly one at a time. Failures of a single webinar or record
are itemized on the job and the loop moves on; only an unusable token, an
unreachable store or an unexpected exception fails the whole job.

All collaborators are injected; `WebinarSyncEngine(gateway, http_client)`
wires the production defaults around them.
"""

import asyncio
from datetime import UTC, datetime

import httpx

from webinarwise.config import settings
from webinarwise.features.webinar_sync.domain import (
    LIFECYCLE_TYPES,
    ParticipantRecord,
    ReconciliationResult,
    SyncError,
    SyncJob,
    WebinarDescriptor,
    WebinarRecord,
)
from webinarwise.features.webinar_sync.pipeline.enumeration import (
    WebinarEnumerator,
    compute_date_range,
)
from webinarwise.features.webinar_sync.pipeline.metrics import MetricsCalculator
from webinarwise.features.webinar_sync.pipeline.reconciliation import (
    AttendanceUnavailableError,
    ReconciliationEngine,
)
from webinarwise.features.webinar_sync.repository.gateway import (
    PersistenceError,
    PersistenceGateway,
    StoreUnavailableError,
)
from webinarwise.infrastructure.observability.logging import (
    bind_job_context,
    clear_job_context,
    get_logger,
)
from webinarwise.services.token_service import AccessToken, TokenService
from webinarwise.services.zoom.api_client import ZoomApiClient
from webinarwise.services.zoom.errors import AuthInvalidError, ZoomApiError
from webinarwise.services.zoom.oauth_service import ZoomOAuthService

from .progress import (
    PROGRESS_AUTHENTICATING,
    PROGRESS_DATE_RANGE,
    PROGRESS_ENUMERATED,
    PROGRESS_FINALIZING,
    ProgressObserver,
    webinar_progress,
)
from .state_machine import SyncJobStateMachine

logger = get_logger(__name__)


class WebinarSyncEngine:
    """
    Orchestrates a single sync run.

    Args:
        gateway: Persistence gateway
        http_client: Transport shared by the Zoom API and token clients
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        http_client: httpx.AsyncClient,
        *,
        token_service: TokenService | None = None,
        enumerator: WebinarEnumerator | None = None,
        reconciler: ReconciliationEngine | None = None,
        metrics_calculator: MetricsCalculator | None = None,
        request_delay: float | None = None,
    ):
        self.gateway = gateway
        api_client = ZoomApiClient(http_client)
        self.token_service = token_service or TokenService(gateway, ZoomOAuthService(http_client))
        self.enumerator = enumerator or WebinarEnumerator(api_client)
        self.reconciler = reconciler or ReconciliationEngine(api_client)
        self.metrics_calculator = metrics_calculator or MetricsCalculator(gateway)
        self.request_delay = (
            request_delay if request_delay is not None else settings.SYNC_REQUEST_DELAY_SECONDS
        )

    async def run(self, job: SyncJob, observers: list[ProgressObserver] | None = None) -> SyncJob:
        """Drive the job to a terminal state and return it."""
        machine = SyncJobStateMachine(job, self.gateway, observers)
        bind_job_context(job.id, job.connection_id)

        try:
            await self._run(machine)

        except AuthInvalidError as e:
            await self._fail_safely(machine, "reconnection_required", str(e), requires_reconnection=True)
        except StoreUnavailableError as e:
            await self._fail_safely(machine, "store_unavailable", str(e))
        except Exception as e:
            logger.exception("Unexpected error in sync orchestration", job_id=job.id)
            await self._fail_safely(machine, "unexpected_error", f"{type(e).__name__}: {e}")
        finally:
            clear_job_context()

        return machine.job

    async def _fail_safely(
        self, machine: SyncJobStateMachine, reason: str, message: str, requires_reconnection: bool = False
    ) -> None:
        try:
            await machine.fail(reason, message, requires_reconnection=requires_reconnection)
        except PersistenceError as e:
            # Nothing left to report to; the stored row keeps its last state.
            logger.error(
                "Could not record sync job failure",
                job_id=machine.job.id,
                reason=reason,
                error=str(e),
            )

    async def _run(self, machine: SyncJobStateMachine) -> None:
        job = machine.job

        if not await machine.report_progress(PROGRESS_AUTHENTICATING, "Authenticating"):
            return

        connection = await self.gateway.get_connection(job.connection_id)
        if connection is None:
            await machine.fail("connection_not_found", f"Connection {job.connection_id} does not exist")
            return

        token = await self.token_service.ensure_valid_token(connection)
        if not await machine.start():
            return

        date_range = compute_date_range(job.kind, connection.last_sync_at)
        job.metadata["date_range"] = date_range.to_dict()
        if not await machine.report_progress(PROGRESS_DATE_RANGE, "Date range computed"):
            return

        if await machine.is_cancel_requested():
            return

        enumeration_errors: list[SyncError] = []
        webinars = await self.enumerator.list_webinars(
            token, date_range, LIFECYCLE_TYPES, errors=enumeration_errors
        )
        for error in enumeration_errors:
            machine.record_error(error)

        total = len(webinars)
        if not await machine.report_progress(
            PROGRESS_ENUMERATED, f"Found {total} webinars", total_items=total
        ):
            return

        succeeded = 0
        for index, webinar in enumerate(webinars, start=1):
            if await machine.is_cancel_requested():
                return

            if await self._sync_webinar(machine, token, webinar):
                succeeded += 1

            if not await machine.report_progress(
                webinar_progress(index, total),
                f"Processed webinar {index} of {total}",
                processed_items=index,
            ):
                return

            if index < total:
                await asyncio.sleep(self.request_delay)

        if not await machine.report_progress(PROGRESS_FINALIZING, "Finalizing"):
            return

        await self.gateway.touch_last_sync(job.connection_id, datetime.now(UTC))
        await machine.complete(
            {
                "webinars_total": total,
                "webinars_succeeded": succeeded,
                "webinars_failed": total - succeeded,
            }
        )

    async def _sync_webinar(
        self, machine: SyncJobStateMachine, token: AccessToken, webinar: WebinarDescriptor
    ) -> bool:
        """Sync one webinar. Returns False when it was skipped with an error."""
        job = machine.job
        webinar_id = None

        try:
            webinar_id = await self.gateway.upsert_webinar(
                WebinarRecord.from_descriptor(job.connection_id, webinar)
            )
            result = await self.reconciler.reconcile(token, webinar, webinar_id)
            for error in result.errors:
                machine.record_error(error)

            await self._persist_result(machine, webinar, webinar_id, result)
            await self.gateway.update_webinar_sync_status(
                webinar_id, result.participant_sync_status, result.attendance_source
            )
            await self.metrics_calculator.refresh(webinar_id)
            return True

        except (AuthInvalidError, StoreUnavailableError):
            raise
        except AttendanceUnavailableError as e:
            machine.record_error(
                SyncError(
                    stage="attendance",
                    error_type=type(e).__name__,
                    message=e.message,
                    webinar_id=webinar.provider_webinar_id,
                    severity="warning",
                )
            )
            if webinar_id:
                await self._mark_webinar_failed(webinar_id)
            return False
        except (ZoomApiError, PersistenceError) as e:
            machine.record_error(
                SyncError(
                    stage="webinar",
                    error_type=type(e).__name__,
                    message=str(e)[:500],
                    webinar_id=webinar.provider_webinar_id,
                )
            )
            return False
        except Exception as e:
            # Malformed upstream data for one webinar must not end the job.
            logger.exception(
                "Unexpected error syncing webinar",
                webinar_id=webinar.provider_webinar_id,
            )
            machine.record_error(
                SyncError(
                    stage="webinar",
                    error_type=type(e).__name__,
                    message=f"Unexpected error: {e}"[:500],
                    webinar_id=webinar.provider_webinar_id,
                )
            )
            if webinar_id:
                await self._mark_webinar_failed(webinar_id)
            return False

    async def _mark_webinar_failed(self, webinar_id: str) -> None:
        try:
            await self.gateway.update_webinar_sync_status(webinar_id, "failed", None)
        except StoreUnavailableError:
            raise
        except PersistenceError as e:
            logger.warning("Could not flag webinar sync failure", webinar_id=webinar_id, error=str(e))

    async def _persist_result(
        self,
        machine: SyncJobStateMachine,
        webinar: WebinarDescriptor,
        webinar_id: str,
        result: ReconciliationResult,
    ) -> None:
        """Upsert registrants, participants and raw sessions; single-record failures are itemized."""
        for registrant in result.registrants:
            try:
                await self.gateway.upsert_registrant(registrant)
            except StoreUnavailableError:
                raise
            except PersistenceError as e:
                machine.record_error(
                    SyncError(
                        stage="persist_registrant",
                        error_type=type(e).__name__,
                        message=f"Registrant {registrant.registrant_id}: {e}"[:500],
                        webinar_id=webinar.provider_webinar_id,
                    )
                )

        new_sessions = 0
        for participant in result.participants:
            try:
                new_sessions += await self._persist_participant(participant)
            except StoreUnavailableError:
                raise
            except PersistenceError as e:
                machine.record_error(
                    SyncError(
                        stage="persist_participant",
                        error_type=type(e).__name__,
                        message=f"Participant {participant.identity_key}: {e}"[:500],
                        webinar_id=webinar.provider_webinar_id,
                    )
                )

        logger.debug(
            "Webinar data persisted",
            webinar_id=webinar_id,
            registrants=len(result.registrants),
            participants=len(result.participants),
            new_sessions=new_sessions,
        )

    async def _persist_participant(self, participant: ParticipantRecord) -> int:
        participant.id = await self.gateway.upsert_participant(participant)
        return await self.gateway.insert_sessions(participant.id, participant.sessions)
