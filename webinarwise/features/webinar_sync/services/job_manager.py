"""
Sync job manager.

Inbound entry point for sync jobs: validates the request, persists a
pending job and hands it to a background asyncio task running the engine.
Status, cancellation and history reads go straight to the gateway so they
reflect writes made by any process.
"""

import asyncio

import httpx

from webinarwise.features.webinar_sync.domain import SYNC_KINDS, SyncJob
from webinarwise.features.webinar_sync.repository.gateway import PersistenceGateway
from webinarwise.infrastructure.observability.logging import get_logger
from webinarwise.models.domain.connection_domain import ZoomConnection

from .progress import LoggingProgressObserver, ProgressObserver
from .state_machine import SyncStateError
from .sync_engine import WebinarSyncEngine

logger = get_logger(__name__)


class SyncJobNotFoundError(Exception):
    def __init__(self, job_id: str):
        super().__init__(f"Sync job {job_id} not found")
        self.job_id = job_id


class ConnectionNotFoundError(Exception):
    def __init__(self, connection_id: str):
        super().__init__(f"Connection {connection_id} not found")
        self.connection_id = connection_id


class ConnectionUnavailableError(Exception):
    """Connection exists but cannot be synced until the user reconnects."""

    def __init__(self, connection_id: str, status: str):
        super().__init__(f"Connection {connection_id} is {status}; reconnection required")
        self.connection_id = connection_id
        self.status = status


class SyncJobManager:
    """
    Starts and tracks sync jobs.

    Args:
        gateway: Persistence gateway shared with the engine
        http_client: Shared transport for Zoom calls
        engine: Optional pre-built engine (tests inject one with fakes)
        observers: Progress observers attached to every job
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        http_client: httpx.AsyncClient,
        *,
        engine: WebinarSyncEngine | None = None,
        observers: list[ProgressObserver] | None = None,
    ):
        self.gateway = gateway
        self.engine = engine or WebinarSyncEngine(gateway, http_client)
        self.observers = observers if observers is not None else [LoggingProgressObserver()]
        self._tasks: dict[str, asyncio.Task] = {}

    async def start_sync(self, connection_id: str, kind: str, *, user_id: str | None = None) -> str:
        """
        Create a pending job and run it in the background.

        Returns:
            str: ID of the created job

        Raises:
            ValueError: Unknown sync kind
            ConnectionNotFoundError: Connection missing or owned by another user
            ConnectionUnavailableError: Connection is expired
        """
        if kind not in SYNC_KINDS:
            raise ValueError(f"Unknown sync kind: {kind}")

        connection = await self._owned_connection(connection_id, user_id)
        if connection.status == "expired":
            raise ConnectionUnavailableError(connection_id, connection.status)

        job = await self.gateway.create_sync_job(connection_id, kind)
        task = asyncio.create_task(self._run_job(job), name=f"sync-job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))

        logger.info("Sync job started", job_id=job.id, connection_id=connection_id, kind=kind)
        return job.id

    async def _run_job(self, job: SyncJob) -> None:
        try:
            await self.engine.run(job, self.observers)
        except Exception:
            # engine.run already converts failures into a failed job
            logger.exception("Sync task crashed", job_id=job.id)

    async def _owned_connection(self, connection_id: str, user_id: str | None) -> ZoomConnection:
        """Load a connection, hiding ones that belong to another user."""
        connection = await self.gateway.get_connection(connection_id)
        if connection is None or (user_id is not None and connection.user_id != user_id):
            raise ConnectionNotFoundError(connection_id)
        return connection

    async def get_sync_status(self, job_id: str, *, user_id: str | None = None) -> SyncJob:
        """
        Raises:
            SyncJobNotFoundError: Job missing or its connection owned by another user
        """
        job = await self.gateway.get_sync_job(job_id)
        if job is None:
            raise SyncJobNotFoundError(job_id)
        if user_id is not None:
            try:
                await self._owned_connection(job.connection_id, user_id)
            except ConnectionNotFoundError:
                raise SyncJobNotFoundError(job_id) from None
        return job

    async def cancel_sync(self, job_id: str, *, user_id: str | None = None) -> SyncJob:
        """
        Mark a pending or running job cancelled.

        The running task notices on its next status poll or write.
        """
        if user_id is not None:
            await self.get_sync_status(job_id, user_id=user_id)

        job = await self.gateway.cancel_sync_job(job_id)
        if job is not None:
            logger.info("Sync job cancellation requested", job_id=job_id)
            return job

        existing = await self.gateway.get_sync_job(job_id)
        if existing is None:
            raise SyncJobNotFoundError(job_id)
        raise SyncStateError(
            f"Sync job {job_id} is already {existing.status}",
            job_id=job_id,
            status=existing.status,
        )

    async def list_sync_jobs(
        self, connection_id: str, limit: int = 20, *, user_id: str | None = None
    ) -> list[SyncJob]:
        if user_id is not None:
            await self._owned_connection(connection_id, user_id)
        return await self.gateway.list_sync_jobs(connection_id, limit)

    @property
    def active_job_ids(self) -> list[str]:
        return list(self._tasks)

    async def wait_for(self, job_id: str) -> None:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        """Cancel in-flight tasks; used on application shutdown."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Sync tasks cancelled on shutdown", count=len(tasks))
