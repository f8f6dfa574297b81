"""
Sync job state machine.

Owns every mutation of a SyncJob: status transitions, milestone progress,
error accumulation and cancellation. Transitions:

    pending -> running -> completed | failed | cancelled
    pending -> failed | cancelled

Progress is clamped so it never decreases and only `complete()` sets 100.
Once the job is terminal (including a cancel written by another process)
every further update is a no-op.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from webinarwise.features.webinar_sync.domain import SyncError, SyncJob
from webinarwise.infrastructure.observability.logging import get_logger

from .progress import PROGRESS_COMPLETE, ProgressEvent, ProgressObserver

if TYPE_CHECKING:
    from webinarwise.features.webinar_sync.repository.gateway import PersistenceGateway

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"running", "failed", "cancelled"}),
    "running": frozenset({"completed", "failed", "cancelled"}),
}


class SyncStateError(Exception):
    """Raised for a transition the state machine does not allow."""

    def __init__(self, message: str, job_id: str, status: str):
        super().__init__(message)
        self.job_id = job_id
        self.status = status


class SyncJobStateMachine:
    def __init__(
        self,
        job: SyncJob,
        gateway: "PersistenceGateway",
        observers: list[ProgressObserver] | None = None,
    ):
        self.job = job
        self.gateway = gateway
        self.observers = list(observers or [])

    @property
    def is_terminal(self) -> bool:
        return self.job.is_terminal

    async def _persist(self) -> bool:
        """Save the job; a refused write means the stored row went terminal (cancelled)."""
        saved = await self.gateway.save_sync_job(self.job)
        if not saved:
            logger.info("Sync job was cancelled externally", job_id=self.job.id)
            self.job.status = "cancelled"
            self.job.current_operation = "Cancelled"
        return saved

    async def _emit(self) -> None:
        event = ProgressEvent(
            job_id=self.job.id,
            status=self.job.status,
            progress_pct=self.job.progress_pct,
            current_operation=self.job.current_operation,
            processed_items=self.job.processed_items,
            total_items=self.job.total_items,
        )
        for observer in self.observers:
            try:
                await observer.on_progress(event)
            except Exception as e:
                logger.warning(
                    "Progress observer failed",
                    job_id=self.job.id,
                    observer=type(observer).__name__,
                    error=str(e),
                )

    def _transition(self, target: str) -> None:
        allowed = ALLOWED_TRANSITIONS.get(self.job.status, frozenset())
        if target not in allowed:
            raise SyncStateError(
                f"Cannot move sync job from {self.job.status} to {target}",
                job_id=self.job.id,
                status=self.job.status,
            )
        self.job.status = target

    async def report_progress(
        self,
        progress_pct: int,
        operation: str,
        *,
        total_items: int | None = None,
        processed_items: int | None = None,
    ) -> bool:
        """
        Record a milestone. Returns False when the job is terminal and nothing was written.
        """
        if self.job.is_terminal:
            return False

        # 100 is reserved for completion.
        self.job.progress_pct = max(self.job.progress_pct, min(int(progress_pct), PROGRESS_COMPLETE - 1))
        self.job.current_operation = operation
        if total_items is not None:
            self.job.total_items = max(self.job.total_items, total_items)
        if processed_items is not None:
            self.job.processed_items = max(self.job.processed_items, processed_items)

        if not await self._persist():
            return False
        await self._emit()
        return True

    async def start(self) -> bool:
        if self.job.is_terminal:
            return False
        self._transition("running")
        self.job.started_at = datetime.now(UTC)
        if not await self._persist():
            return False
        logger.info("Sync job running", job_id=self.job.id, kind=self.job.kind)
        await self._emit()
        return True

    def record_error(self, error: SyncError) -> None:
        """Accumulate an itemized error; it is persisted with the next update."""
        self.job.errors.append(error)
        log = logger.warning if error.severity == "warning" else logger.error
        log(
            "Sync item error",
            job_id=self.job.id,
            stage=error.stage,
            webinar_id=error.webinar_id,
            error_type=error.error_type,
            message=error.message,
        )

    async def is_cancel_requested(self) -> bool:
        """Poll the stored status so cancellation from any process is observed."""
        if self.job.is_terminal:
            return self.job.status == "cancelled"
        status = await self.gateway.get_sync_job_status(self.job.id)
        if status == "cancelled":
            self.job.status = "cancelled"
            self.job.current_operation = "Cancelled"
            logger.info("Sync job cancellation observed", job_id=self.job.id)
            return True
        return False

    async def complete(self, summary: dict | None = None) -> bool:
        if self.job.is_terminal:
            return False
        previous_pct = self.job.progress_pct
        self._transition("completed")
        self.job.progress_pct = PROGRESS_COMPLETE
        self.job.current_operation = "Completed"
        self.job.completed_at = datetime.now(UTC)
        self.job.metadata.update(summary or {})
        self.job.metadata["error_count"] = len(self.job.errors)

        if not await self._persist():
            self.job.progress_pct = previous_pct
            return False
        logger.info(
            "Sync job completed",
            job_id=self.job.id,
            processed=self.job.processed_items,
            total=self.job.total_items,
            errors=len(self.job.errors),
        )
        await self._emit()
        return True

    async def fail(self, reason: str, message: str, *, requires_reconnection: bool = False) -> bool:
        if self.job.is_terminal:
            return False
        self._transition("failed")
        self.job.current_operation = "Failed"
        self.job.completed_at = datetime.now(UTC)
        self.job.metadata.update(
            {
                "failure_reason": reason,
                "error_message": message[:500],
                "requires_reconnection": requires_reconnection,
            }
        )
        if not await self._persist():
            return False
        logger.error(
            "Sync job failed",
            job_id=self.job.id,
            reason=reason,
            error=message[:200],
            requires_reconnection=requires_reconnection,
        )
        await self._emit()
        return True
