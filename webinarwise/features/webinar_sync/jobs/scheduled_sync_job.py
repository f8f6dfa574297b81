"""
Scheduled webinar sync job.

Periodically starts a `scheduled` sync for every active connection whose
last sync is older than SCHEDULED_SYNC_INTERVAL_MINUTES. Connections are
synced one after another inside the worker process; each run is an
ordinary SyncJob, visible through the sync API like any manual run.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from webinarwise.config import settings
from webinarwise.features.webinar_sync.repository import PersistenceError, PersistenceGateway
from webinarwise.features.webinar_sync.services.progress import LoggingProgressObserver
from webinarwise.features.webinar_sync.services.sync_engine import WebinarSyncEngine
from webinarwise.infrastructure.observability.logging import get_logger
from webinarwise.jobs.runtime import job_runtime

logger = get_logger(__name__)


class ScheduledSyncJobError(Exception):
    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class ScheduledSyncMetrics:
    """Per-iteration counters, logged when the iteration ends."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.connections_due = 0
        self.jobs_completed = 0
        self.jobs_failed = 0
        self.jobs_cancelled = 0
        self.item_errors = 0
        self.start_errors = 0
        self.total_duration_seconds = 0.0

    def record_job(self, status: str, error_count: int):
        if status == "completed":
            self.jobs_completed += 1
        elif status == "cancelled":
            self.jobs_cancelled += 1
        else:
            self.jobs_failed += 1
        self.item_errors += error_count

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "job_run": "scheduled_sync",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "connections_due": self.connections_due,
            "jobs_completed": self.jobs_completed,
            "jobs_failed": self.jobs_failed,
            "jobs_cancelled": self.jobs_cancelled,
            "item_errors": self.item_errors,
            "start_errors": self.start_errors,
        }


class ScheduledSyncJob:
    def __init__(
        self,
        gateway: PersistenceGateway,
        engine: WebinarSyncEngine,
        *,
        interval_minutes: int | None = None,
    ):
        self.gateway = gateway
        self.engine = engine
        self.interval_minutes = interval_minutes or settings.SCHEDULED_SYNC_INTERVAL_MINUTES
        self.is_running = False
        self.metrics = ScheduledSyncMetrics()

    async def run_once(self) -> dict:
        """
        Sync every connection that is due.

        Raises:
            ScheduledSyncJobError: If due connections could not be listed
        """
        if self.is_running:
            logger.warning("Scheduled sync already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.metrics.reset()

            cutoff = datetime.now(UTC) - timedelta(minutes=self.interval_minutes)
            try:
                connections = await self.gateway.list_connections_due_for_sync(cutoff)
            except PersistenceError as e:
                raise ScheduledSyncJobError(
                    f"Failed to list connections due for sync: {e}",
                    operation="list_due_connections",
                    recoverable=e.recoverable,
                ) from e

            self.metrics.connections_due = len(connections)
            observers = [LoggingProgressObserver()]

            for connection in connections:
                try:
                    job = await self.gateway.create_sync_job(connection.id, "scheduled")
                except PersistenceError as e:
                    self.metrics.start_errors += 1
                    logger.error(
                        "Could not create scheduled sync job",
                        connection_id=connection.id,
                        error=str(e),
                    )
                    if not e.recoverable:
                        raise ScheduledSyncJobError(
                            f"Store unavailable: {e}", operation="create_sync_job", recoverable=False
                        ) from e
                    continue

                finished = await self.engine.run(job, observers)
                self.metrics.record_job(finished.status, len(finished.errors))

            self.metrics.finalize()
            metrics = self.metrics.to_dict()
            logger.info("Scheduled sync iteration completed", **metrics)
            return metrics

        finally:
            self.is_running = False


async def run_scheduled_sync() -> dict:
    """Run a single scheduled sync iteration with its own runtime."""
    async with job_runtime() as (gateway, http_client):
        job = ScheduledSyncJob(gateway, WebinarSyncEngine(gateway, http_client))
        return await job.run_once()


async def start_scheduled_sync_scheduler() -> None:
    """Worker entry point: one iteration every SCHEDULED_SYNC_INTERVAL_MINUTES."""
    interval_minutes = settings.SCHEDULED_SYNC_INTERVAL_MINUTES
    logger.info("Starting scheduled sync scheduler", interval_minutes=interval_minutes)

    async with job_runtime() as (gateway, http_client):
        job = ScheduledSyncJob(gateway, WebinarSyncEngine(gateway, http_client))

        while True:
            try:
                await job.run_once()
                await asyncio.sleep(interval_minutes * 60)
            except ScheduledSyncJobError as e:
                logger.error("Error in scheduled sync scheduler", error=str(e), operation=e.operation)
                await asyncio.sleep(60)


if __name__ == "__main__":
    asyncio.run(start_scheduled_sync_scheduler())
