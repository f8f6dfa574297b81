# models/domain/connection_domain.py
"""
Zoom connection domain model (secrets decrypted).

A connection is owned by credential management outside this service; the
sync engine only reads credentials and writes token fields, status and
last sync time.
"""

from datetime import UTC, datetime, timedelta
from typing import Literal

from pydantic import BaseModel

ConnectionType = Literal["server_to_server", "oauth"]
ConnectionStatus = Literal["active", "expired", "error"]


class ZoomConnection(BaseModel):
    """Domain model for a Zoom account connection."""

    id: str
    user_id: str
    connection_type: ConnectionType = "oauth"
    account_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None  # decrypted
    access_token: str | None = None  # decrypted
    refresh_token: str | None = None  # decrypted
    token_expires_at: datetime | None = None
    status: ConnectionStatus = "active"
    error_message: str | None = None
    last_sync_at: datetime | None = None

    @property
    def is_server_to_server(self) -> bool:
        return self.connection_type == "server_to_server"

    def is_expired(self) -> bool:
        """Check if access token is expired."""
        if not self.token_expires_at:
            return False
        return datetime.now(UTC) >= self.token_expires_at

    def needs_refresh(self, buffer_minutes: int = 5) -> bool:
        """True when there is no token or it expires inside the buffer window."""
        if not self.access_token:
            return True
        if not self.token_expires_at:
            return False
        buffer_time = datetime.now(UTC) + timedelta(minutes=buffer_minutes)
        return buffer_time >= self.token_expires_at
