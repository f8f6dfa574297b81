"""
Token lifecycle management for Zoom connections.

`ensure_valid_token()` hands the sync engine a bearer token that is good
for at least TOKEN_REFRESH_BUFFER_MINUTES, refreshing it first when needed.
A failed refresh is final: the connection is marked expired and the
caller receives AuthInvalidError flagged as requiring reconnection.
"""

from typing import TYPE_CHECKING

from webinarwise.config import settings
from webinarwise.infrastructure.observability.logging import get_logger
from webinarwise.models.domain.connection_domain import ZoomConnection
from webinarwise.services.zoom.errors import AuthInvalidError
from webinarwise.services.zoom.oauth_service import ZoomOAuthError, ZoomOAuthService

if TYPE_CHECKING:
    from webinarwise.features.webinar_sync.repository.gateway import PersistenceGateway

logger = get_logger(__name__)


class AccessToken:
    """Bearer token bound to its connection so the API client can force a refresh."""

    def __init__(self, connection: ZoomConnection, token_service: "TokenService"):
        self._connection = connection
        self._token_service = token_service

    @property
    def value(self) -> str:
        return self._connection.access_token or ""

    @property
    def connection(self) -> ZoomConnection:
        return self._connection

    async def force_refresh(self) -> str:
        self._connection = await self._token_service.refresh(
            self._connection, reason="rejected_by_api"
        )
        return self.value


class TokenService:
    """
    Obtains and refreshes Zoom bearer tokens.

    Args:
        gateway: Persistence gateway used to store new token fields
        oauth_service: Token endpoint client
    """

    def __init__(
        self,
        gateway: "PersistenceGateway",
        oauth_service: ZoomOAuthService,
        *,
        buffer_minutes: int | None = None,
    ):
        self.gateway = gateway
        self.oauth_service = oauth_service
        self.buffer_minutes = (
            buffer_minutes if buffer_minutes is not None else settings.TOKEN_REFRESH_BUFFER_MINUTES
        )

    async def ensure_valid_token(self, connection: ZoomConnection) -> AccessToken:
        """
        Return a usable token for the connection, refreshing proactively.

        Raises:
            AuthInvalidError: If the refresh fails (connection is marked expired)
        """
        if connection.status == "expired":
            raise AuthInvalidError(
                f"Connection {connection.id} is expired: {connection.error_message or 'reconnect required'}",
                operation="ensure_valid_token",
            )

        if connection.needs_refresh(buffer_minutes=self.buffer_minutes):
            connection = await self.refresh(connection, reason="expiring")
        else:
            logger.debug(
                "Token refresh not needed",
                connection_id=connection.id,
                expires_at=connection.token_expires_at.isoformat() if connection.token_expires_at else None,
            )

        return AccessToken(connection, self)

    async def refresh(self, connection: ZoomConnection, reason: str) -> ZoomConnection:
        """
        Refresh the connection's token and persist the new fields.

        Returns:
            ZoomConnection: Copy of the connection carrying the new token
        """
        logger.info(
            "Refreshing Zoom token",
            connection_id=connection.id,
            connection_type=connection.connection_type,
            reason=reason,
        )

        try:
            if connection.is_server_to_server:
                token_response = await self.oauth_service.request_account_token(
                    connection.account_id, connection.client_id, connection.client_secret
                )
            else:
                token_response = await self.oauth_service.refresh_access_token(
                    connection.refresh_token,
                    connection.client_id or settings.ZOOM_CLIENT_ID,
                    connection.client_secret or settings.ZOOM_CLIENT_SECRET,
                )
        except ZoomOAuthError as e:
            await self._mark_expired(connection, str(e))
            raise AuthInvalidError(
                f"Token refresh failed: {e}",
                status_code=e.status_code,
                error_code=e.error_code,
                operation="token_refresh",
            ) from e

        refresh_token = None if connection.is_server_to_server else token_response.refresh_token
        await self.gateway.update_connection_tokens(
            connection.id,
            access_token=token_response.access_token,
            refresh_token=refresh_token,
            expires_at=token_response.expires_at,
        )

        logger.info(
            "Token refresh successful",
            connection_id=connection.id,
            new_expires_at=token_response.expires_at.isoformat() if token_response.expires_at else None,
            rotated_refresh_token=bool(refresh_token and refresh_token != connection.refresh_token),
        )

        return connection.model_copy(
            update={
                "access_token": token_response.access_token,
                "refresh_token": refresh_token,
                "token_expires_at": token_response.expires_at,
                "status": "active",
                "error_message": None,
            }
        )

    async def _mark_expired(self, connection: ZoomConnection, reason: str) -> None:
        logger.error("Token refresh failed, marking connection expired", connection_id=connection.id, reason=reason)
        await self.gateway.mark_connection_expired(connection.id, reason[:500])
