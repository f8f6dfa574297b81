"""
Persistence gateway consumed by every stage of the sync engine.

`PersistenceGateway` is the contract; `PostgresSyncGateway` implements it
on top of the SQL repositories and translates database failures into
PersistenceError (single record, recoverable) or StoreUnavailableError
(store unreachable, fatal for the job).
"""

import functools
from datetime import datetime
from typing import Protocol

import psycopg

from webinarwise.db.helpers import DatabaseError
from webinarwise.features.webinar_sync.domain import (
    ParticipantRecord,
    ParticipantSession,
    RegistrantRecord,
    SyncJob,
    WebinarMetrics,
    WebinarRecord,
)
from webinarwise.infrastructure.observability.logging import get_logger
from webinarwise.models.domain.connection_domain import ZoomConnection
from webinarwise.services.infrastructure.encryption_service import EncryptionError

from .connection_repository import ConnectionRepository
from .job_repository import SyncJobRepository
from .webinar_repository import WebinarRepository

logger = get_logger(__name__)


class PersistenceError(Exception):
    """A single write or read failed; the store itself is still reachable."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.recoverable = recoverable


class StoreUnavailableError(PersistenceError):
    """The persistent store cannot be reached."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message, operation=operation, recoverable=False)


class PersistenceGateway(Protocol):
    # Connections
    async def get_connection(self, connection_id: str) -> ZoomConnection | None: ...

    async def list_connections_due_for_sync(self, synced_before: datetime) -> list[ZoomConnection]: ...

    async def list_connections_expiring(self, expires_before: datetime) -> list[ZoomConnection]: ...

    async def update_connection_tokens(
        self,
        connection_id: str,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
    ) -> None: ...

    async def mark_connection_expired(self, connection_id: str, reason: str) -> None: ...

    async def touch_last_sync(self, connection_id: str, synced_at: datetime) -> None: ...

    # Sync jobs
    async def create_sync_job(self, connection_id: str, kind: str) -> SyncJob: ...

    async def get_sync_job(self, job_id: str) -> SyncJob | None: ...

    async def get_sync_job_status(self, job_id: str) -> str | None: ...

    async def save_sync_job(self, job: SyncJob) -> bool: ...

    async def cancel_sync_job(self, job_id: str) -> SyncJob | None: ...

    async def list_sync_jobs(self, connection_id: str, limit: int) -> list[SyncJob]: ...

    # Webinar data
    async def upsert_webinar(self, record: WebinarRecord) -> str: ...

    async def update_webinar_sync_status(
        self, webinar_id: str, participant_sync_status: str, attendance_source: str | None
    ) -> None: ...

    async def update_webinar_metrics(self, webinar_id: str, metrics: WebinarMetrics) -> None: ...

    async def upsert_registrant(self, record: RegistrantRecord) -> str: ...

    async def upsert_participant(self, record: ParticipantRecord) -> str: ...

    async def insert_sessions(self, participant_id: str, sessions: list[ParticipantSession]) -> int: ...

    async def list_registrants(self, webinar_id: str) -> list[RegistrantRecord]: ...

    async def list_participants(self, webinar_id: str) -> list[ParticipantRecord]: ...


def _translate_errors(func):
    """Map DatabaseError/psycopg errors onto the gateway's exception types."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        operation = func.__name__
        try:
            return await func(*args, **kwargs)
        except DatabaseError as e:
            if not e.recoverable:
                raise StoreUnavailableError(str(e), operation=operation) from e
            raise PersistenceError(str(e), operation=operation) from e
        except (psycopg.OperationalError, psycopg.InterfaceError) as e:
            raise StoreUnavailableError(f"Database unreachable: {e}", operation=operation) from e
        except psycopg.Error as e:
            raise PersistenceError(f"Database error: {e}", operation=operation) from e
        except EncryptionError as e:
            raise PersistenceError(f"Credential decryption failed: {e}", operation=operation) from e

    return wrapper


class PostgresSyncGateway:
    """PersistenceGateway backed by the shared psycopg pool."""

    @_translate_errors
    async def get_connection(self, connection_id: str) -> ZoomConnection | None:
        return await ConnectionRepository.load(connection_id)

    @_translate_errors
    async def list_connections_due_for_sync(self, synced_before: datetime) -> list[ZoomConnection]:
        return await ConnectionRepository.list_due_for_sync(synced_before)

    @_translate_errors
    async def list_connections_expiring(self, expires_before: datetime) -> list[ZoomConnection]:
        return await ConnectionRepository.list_expiring(expires_before)

    @_translate_errors
    async def update_connection_tokens(
        self,
        connection_id: str,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
    ) -> None:
        await ConnectionRepository.update_tokens(
            connection_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    @_translate_errors
    async def mark_connection_expired(self, connection_id: str, reason: str) -> None:
        await ConnectionRepository.mark_expired(connection_id, reason)

    @_translate_errors
    async def touch_last_sync(self, connection_id: str, synced_at: datetime) -> None:
        await ConnectionRepository.touch_last_sync(connection_id, synced_at)

    @_translate_errors
    async def create_sync_job(self, connection_id: str, kind: str) -> SyncJob:
        return await SyncJobRepository.create_job(connection_id, kind)

    @_translate_errors
    async def get_sync_job(self, job_id: str) -> SyncJob | None:
        return await SyncJobRepository.load_job(job_id)

    @_translate_errors
    async def get_sync_job_status(self, job_id: str) -> str | None:
        return await SyncJobRepository.load_status(job_id)

    @_translate_errors
    async def save_sync_job(self, job: SyncJob) -> bool:
        return await SyncJobRepository.save_job(job)

    @_translate_errors
    async def cancel_sync_job(self, job_id: str) -> SyncJob | None:
        return await SyncJobRepository.cancel_job(job_id)

    @_translate_errors
    async def list_sync_jobs(self, connection_id: str, limit: int) -> list[SyncJob]:
        return await SyncJobRepository.list_jobs(connection_id, limit)

    @_translate_errors
    async def upsert_webinar(self, record: WebinarRecord) -> str:
        return await WebinarRepository.upsert_webinar(record)

    @_translate_errors
    async def update_webinar_sync_status(
        self, webinar_id: str, participant_sync_status: str, attendance_source: str | None
    ) -> None:
        await WebinarRepository.update_sync_status(webinar_id, participant_sync_status, attendance_source)

    @_translate_errors
    async def update_webinar_metrics(self, webinar_id: str, metrics: WebinarMetrics) -> None:
        await WebinarRepository.update_metrics(webinar_id, metrics)

    @_translate_errors
    async def upsert_registrant(self, record: RegistrantRecord) -> str:
        return await WebinarRepository.upsert_registrant(record)

    @_translate_errors
    async def upsert_participant(self, record: ParticipantRecord) -> str:
        return await WebinarRepository.upsert_participant(record)

    @_translate_errors
    async def insert_sessions(self, participant_id: str, sessions: list[ParticipantSession]) -> int:
        return await WebinarRepository.insert_sessions(participant_id, sessions)

    @_translate_errors
    async def list_registrants(self, webinar_id: str) -> list[RegistrantRecord]:
        return await WebinarRepository.list_registrants(webinar_id)

    @_translate_errors
    async def list_participants(self, webinar_id: str) -> list[ParticipantRecord]:
        return await WebinarRepository.list_participants(webinar_id)
