"""
Persistence helpers for zoom_connections.

Credential CRUD lives outside this service; the sync engine only loads
connections and writes token fields, status and last sync time.
"""

from datetime import datetime

from webinarwise.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from webinarwise.infrastructure.observability.logging import get_logger
from webinarwise.models.domain.connection_domain import ZoomConnection
from webinarwise.services.infrastructure.encryption_service import (
    decrypt_optional,
    encrypt_optional,
)

logger = get_logger(__name__)


class ConnectionRepository:
    """SQL for the connection fields owned by the sync engine."""

    SELECT_COLUMNS = """
        id, user_id, connection_type, account_id, client_id, client_secret,
        access_token, refresh_token, token_expires_at, connection_status,
        error_message, last_sync_at
    """

    @classmethod
    def _row_to_connection(cls, row: dict | None) -> ZoomConnection | None:
        if not row:
            return None

        return ZoomConnection(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            connection_type=row["connection_type"],
            account_id=row.get("account_id"),
            client_id=row.get("client_id"),
            client_secret=decrypt_optional(row.get("client_secret")),
            access_token=decrypt_optional(row.get("access_token")),
            refresh_token=decrypt_optional(row.get("refresh_token")),
            token_expires_at=row.get("token_expires_at"),
            status=row["connection_status"],
            error_message=row.get("error_message"),
            last_sync_at=row.get("last_sync_at"),
        )

    @classmethod
    @with_db_retry()
    async def load(cls, connection_id: str) -> ZoomConnection | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM zoom_connections WHERE id = %s"
        return cls._row_to_connection(await fetch_one(query, (connection_id,)))

    @classmethod
    @with_db_retry()
    async def list_due_for_sync(cls, synced_before: datetime) -> list[ZoomConnection]:
        """Active connections never synced or last synced before the cutoff."""
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM zoom_connections
            WHERE connection_status = 'active'
              AND (last_sync_at IS NULL OR last_sync_at < %s)
            ORDER BY last_sync_at NULLS FIRST
        """
        rows = await fetch_all(query, (synced_before,))
        return [cls._row_to_connection(row) for row in rows]

    @classmethod
    @with_db_retry()
    async def list_expiring(cls, expires_before: datetime) -> list[ZoomConnection]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM zoom_connections
            WHERE connection_status = 'active'
              AND (token_expires_at IS NULL OR token_expires_at < %s)
            ORDER BY token_expires_at NULLS FIRST
        """
        rows = await fetch_all(query, (expires_before,))
        return [cls._row_to_connection(row) for row in rows]

    @classmethod
    async def update_tokens(
        cls,
        connection_id: str,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
    ) -> None:
        query = """
            UPDATE zoom_connections
            SET access_token = %s,
                refresh_token = COALESCE(%s, refresh_token),
                token_expires_at = %s,
                connection_status = 'active',
                error_message = NULL,
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(
            query,
            (encrypt_optional(access_token), encrypt_optional(refresh_token), expires_at, connection_id),
        )
        logger.debug("Connection tokens updated", connection_id=connection_id)

    @classmethod
    async def mark_expired(cls, connection_id: str, reason: str) -> None:
        query = """
            UPDATE zoom_connections
            SET connection_status = 'expired',
                error_message = %s,
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (reason[:500], connection_id))
        logger.warning("Connection marked expired", connection_id=connection_id, reason=reason[:200])

    @classmethod
    async def touch_last_sync(cls, connection_id: str, synced_at: datetime) -> None:
        query = "UPDATE zoom_connections SET last_sync_at = %s, updated_at = NOW() WHERE id = %s"
        await execute_query(query, (synced_at, connection_id))
