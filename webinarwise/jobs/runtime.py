"""
Shared resources for worker processes.

Workers run outside the FastAPI lifespan, so they open the database pool
and the Zoom HTTP client themselves.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from webinarwise.config import settings
from webinarwise.db.pool import db_pool
from webinarwise.features.webinar_sync.repository import PostgresSyncGateway
from webinarwise.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.ZOOM_REQUEST_TIMEOUT))


@asynccontextmanager
async def job_runtime() -> AsyncIterator[tuple[PostgresSyncGateway, httpx.AsyncClient]]:
    """Yield a gateway and HTTP client; close both on exit."""
    setup_logging(log_level=settings.LOG_LEVEL)
    await db_pool.initialize()
    http_client = build_http_client()
    try:
        yield PostgresSyncGateway(), http_client
    finally:
        await http_client.aclose()
        try:
            await db_pool.close()
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))
