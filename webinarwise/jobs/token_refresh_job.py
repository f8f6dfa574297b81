"""
Token Refresh Job for proactive Zoom token management.
Runs as a background job to refresh connection tokens before they expire,
so sync runs rarely pay for a refresh on their critical path.
"""

import asyncio
import time
from datetime import UTC, datetime, timedelta

from webinarwise.config import settings
from webinarwise.features.webinar_sync.repository import PersistenceError, PersistenceGateway
from webinarwise.infrastructure.observability.logging import get_logger
from webinarwise.models.domain.connection_domain import ZoomConnection
from webinarwise.services.token_service import TokenService
from webinarwise.services.zoom.errors import AuthInvalidError
from webinarwise.services.zoom.oauth_service import ZoomOAuthService

from .runtime import job_runtime

logger = get_logger(__name__)

# Job configuration
JOB_INTERVAL_MINUTES = 10
MAX_CONCURRENT_REFRESHES = 10
REFRESH_TIMEOUT_SECONDS = 30


class TokenRefreshJobError(Exception):
    """Custom exception for token refresh job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class TokenRefreshMetrics:
    """Metrics tracking for token refresh operations."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all metrics for new job run."""
        self.start_time = datetime.now(UTC)
        self.connections_processed = 0
        self.tokens_refreshed = 0
        self.refresh_failures = 0
        self.connections_expired = 0
        self.processing_errors = 0
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_success(self, connection_id: str, duration_ms: float):
        self.connections_processed += 1
        self.tokens_refreshed += 1

        logger.debug(
            "Token refresh successful",
            connection_id=connection_id,
            duration_ms=round(duration_ms, 2),
            job_run="token_refresh",
        )

    def record_failure(self, connection_id: str, error: str, expired: bool = False):
        """Record failed token refresh."""
        self.connections_processed += 1
        self.refresh_failures += 1
        if expired:
            self.connections_expired += 1

        self.errors.append(
            {
                "connection_id": connection_id,
                "error": error,
                "expired": expired,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

        logger.warning(
            "Token refresh failed",
            connection_id=connection_id,
            error=error,
            expired=expired,
            job_run="token_refresh",
        )

    def record_processing_error(self, connection_id: str, error: str):
        """Record processing error (non-token related)."""
        self.connections_processed += 1
        self.processing_errors += 1

        self.errors.append(
            {
                "connection_id": connection_id,
                "error": error,
                "error_type": "processing",
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

        logger.error(
            "Token refresh processing error",
            connection_id=connection_id,
            error=error,
            job_run="token_refresh",
        )

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        """Convert metrics to dictionary for logging."""
        return {
            "job_run": "token_refresh",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "connections_processed": self.connections_processed,
            "tokens_refreshed": self.tokens_refreshed,
            "refresh_failures": self.refresh_failures,
            "connections_expired": self.connections_expired,
            "processing_errors": self.processing_errors,
            "success_rate_percent": round(
                (
                    (self.tokens_refreshed / self.connections_processed * 100)
                    if self.connections_processed > 0
                    else 0
                ),
                2,
            ),
            "errors_count": len(self.errors),
        }


class TokenRefreshJob:
    """
    Background job for proactive token refresh.

    Picks active connections whose token expires inside the buffer window
    and refreshes them with bounded concurrency. A refresh rejected by
    Zoom leaves the connection marked expired (done by TokenService).
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        token_service: TokenService,
        *,
        buffer_minutes: int | None = None,
        max_concurrent: int = MAX_CONCURRENT_REFRESHES,
        timeout_seconds: float = REFRESH_TIMEOUT_SECONDS,
    ):
        self.gateway = gateway
        self.token_service = token_service
        self.buffer_minutes = (
            buffer_minutes if buffer_minutes is not None else settings.TOKEN_REFRESH_BUFFER_MINUTES
        )
        self.max_concurrent = max_concurrent
        self.timeout_seconds = timeout_seconds
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = TokenRefreshMetrics()

    async def run_once(self) -> dict:
        """
        Run a single iteration of the token refresh job.

        Returns:
            Dict: Job execution metrics and results

        Raises:
            TokenRefreshJobError: If the expiring connections could not be listed
        """
        if self.is_running:
            logger.warning("Token refresh job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            connections = await self._get_expiring_connections()
            if not connections:
                logger.info("No tokens found requiring refresh")
                self.job_metrics.finalize()
                return self.job_metrics.to_dict()

            logger.info(
                "Found connections with expiring tokens",
                connection_count=len(connections),
                buffer_minutes=self.buffer_minutes,
            )

            semaphore = asyncio.Semaphore(self.max_concurrent)
            await asyncio.gather(
                *(self._refresh_with_semaphore(semaphore, connection) for connection in connections)
            )

            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            metrics = self.job_metrics.to_dict()
            logger.info("Token refresh job completed", **metrics)
            return metrics

        finally:
            self.is_running = False

    async def _get_expiring_connections(self) -> list[ZoomConnection]:
        expires_before = datetime.now(UTC) + timedelta(minutes=self.buffer_minutes)
        try:
            return await self.gateway.list_connections_expiring(expires_before)
        except PersistenceError as e:
            logger.error("Failed to list expiring connections", error=str(e))
            raise TokenRefreshJobError(
                f"Failed to get expiring connections: {e}",
                operation="get_expiring_connections",
                recoverable=e.recoverable,
            ) from e

    async def _refresh_with_semaphore(self, semaphore: asyncio.Semaphore, connection: ZoomConnection):
        async with semaphore:
            await self._refresh_connection(connection)

    async def _refresh_connection(self, connection: ZoomConnection):
        start_time = time.time()

        try:
            await asyncio.wait_for(
                self.token_service.refresh(connection, reason="scheduled"),
                timeout=self.timeout_seconds,
            )
            self.job_metrics.record_success(connection.id, (time.time() - start_time) * 1000)

        except TimeoutError:
            self.job_metrics.record_processing_error(
                connection.id, f"Token refresh timed out after {self.timeout_seconds}s"
            )
        except AuthInvalidError as e:
            self.job_metrics.record_failure(connection.id, str(e), expired=True)
        except PersistenceError as e:
            self.job_metrics.record_processing_error(connection.id, f"Store error: {e}")

    def get_job_status(self) -> dict:
        return {
            "job_name": "token_refresh",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_minutes": JOB_INTERVAL_MINUTES,
            "buffer_minutes": self.buffer_minutes,
            "max_concurrent": self.max_concurrent,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }


async def start_token_refresh_scheduler():
    """
    Start the token refresh job scheduler.

    Runs forever in the worker process, one iteration every
    JOB_INTERVAL_MINUTES.
    """
    logger.info("Starting token refresh job scheduler", interval_minutes=JOB_INTERVAL_MINUTES)

    async with job_runtime() as (gateway, http_client):
        job = TokenRefreshJob(gateway, TokenService(gateway, ZoomOAuthService(http_client)))

        while True:
            try:
                metrics = await job.run_once()
                if not metrics.get("skipped", False):
                    logger.info(
                        "Token refresh job cycle completed",
                        **{k: v for k, v in metrics.items() if k != "errors"},
                    )
                await asyncio.sleep(JOB_INTERVAL_MINUTES * 60)

            except TokenRefreshJobError as e:
                logger.error("Error in token refresh job scheduler", error=str(e), operation=e.operation)
                # Avoid a tight loop while the store is down
                await asyncio.sleep(60)
