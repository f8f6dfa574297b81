"""
Persistence layer for zoom_sync_jobs.

Every write is conditional on the stored status still being pending or
running, which is what makes cancellation (and any other terminal state)
stick even when a worker keeps reporting progress.
"""

from psycopg.types.json import Jsonb

from webinarwise.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from webinarwise.features.webinar_sync.domain import SyncError, SyncJob
from webinarwise.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class SyncJobRepository:
    JOB_SELECT_COLUMNS = """
        id, connection_id, kind, status, progress_pct, current_operation,
        total_items, processed_items, errors, metadata,
        created_at, started_at, completed_at
    """

    @classmethod
    def _row_to_job(cls, row: dict | None) -> SyncJob | None:
        if not row:
            return None

        return SyncJob(
            id=str(row["id"]),
            connection_id=str(row["connection_id"]),
            kind=row["kind"],
            status=row["status"],
            progress_pct=row["progress_pct"],
            current_operation=row.get("current_operation"),
            total_items=row["total_items"],
            processed_items=row["processed_items"],
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            errors=[SyncError.from_dict(item) for item in row.get("errors") or []],
            metadata=row.get("metadata") or {},
            created_at=row.get("created_at"),
        )

    @classmethod
    async def create_job(cls, connection_id: str, kind: str) -> SyncJob:
        """Insert a new job row (status=pending) and return the record."""
        query = f"""
            INSERT INTO zoom_sync_jobs (connection_id, kind, status, current_operation)
            VALUES (%s, %s, 'pending', 'Queued')
            RETURNING {cls.JOB_SELECT_COLUMNS}
        """
        row = await fetch_one(query, (connection_id, kind))
        job = cls._row_to_job(row)
        logger.info("Sync job created", job_id=job.id, connection_id=connection_id, kind=kind)
        return job

    @classmethod
    @with_db_retry()
    async def load_job(cls, job_id: str) -> SyncJob | None:
        query = f"SELECT {cls.JOB_SELECT_COLUMNS} FROM zoom_sync_jobs WHERE id = %s"
        return cls._row_to_job(await fetch_one(query, (job_id,)))

    @classmethod
    @with_db_retry()
    async def load_status(cls, job_id: str) -> str | None:
        row = await fetch_one("SELECT status FROM zoom_sync_jobs WHERE id = %s", (job_id,))
        return row["status"] if row else None

    @classmethod
    async def save_job(cls, job: SyncJob) -> bool:
        """Write the job's mutable fields; False when the stored row is already terminal."""
        query = """
            UPDATE zoom_sync_jobs
            SET status = %s,
                progress_pct = %s,
                current_operation = %s,
                total_items = %s,
                processed_items = %s,
                errors = %s,
                metadata = %s,
                started_at = %s,
                completed_at = %s
            WHERE id = %s
              AND status IN ('pending', 'running')
        """
        affected = await execute_query(
            query,
            (
                job.status,
                job.progress_pct,
                job.current_operation,
                job.total_items,
                job.processed_items,
                Jsonb([error.to_dict() for error in job.errors]),
                Jsonb(job.metadata),
                job.started_at,
                job.completed_at,
                job.id,
            ),
        )
        return affected > 0

    @classmethod
    async def cancel_job(cls, job_id: str) -> SyncJob | None:
        """Flip a pending/running job to cancelled; None when it was not cancellable."""
        query = f"""
            UPDATE zoom_sync_jobs
            SET status = 'cancelled',
                current_operation = 'Cancelled',
                completed_at = NOW()
            WHERE id = %s
              AND status IN ('pending', 'running')
            RETURNING {cls.JOB_SELECT_COLUMNS}
        """
        job = cls._row_to_job(await fetch_one(query, (job_id,)))
        if job:
            logger.info("Sync job cancelled", job_id=job_id)
        return job

    @classmethod
    @with_db_retry()
    async def list_jobs(cls, connection_id: str, limit: int) -> list[SyncJob]:
        query = f"""
            SELECT {cls.JOB_SELECT_COLUMNS}
            FROM zoom_sync_jobs
            WHERE connection_id = %s
            ORDER BY created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (connection_id, limit))
        return [cls._row_to_job(row) for row in rows]
