"""
FastAPI application: sync routes, health probes and the lifetime of the
resources the sync job manager runs on.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from webinarwise.config import settings
from webinarwise.db.pool import db_pool
from webinarwise.features.webinar_sync import SyncJobManager, sync_router
from webinarwise.features.webinar_sync.repository import PostgresSyncGateway
from webinarwise.infrastructure.observability.logging import get_logger, setup_logging
from webinarwise.jobs.runtime import build_http_client
from webinarwise.routes import health

setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)

QUIET_PATHS = {"/health", "/healthz", "/readyz"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Sync API starting", environment=settings.environment)
    await db_pool.initialize()
    http_client = build_http_client()
    manager = SyncJobManager(PostgresSyncGateway(), http_client)
    app.state.sync_manager = manager

    try:
        yield
    finally:
        # In-flight jobs are cancelled first; they still hold pool connections.
        active = manager.active_job_ids
        if active:
            logger.warning("Cancelling in-flight sync jobs", job_ids=active)
        await manager.shutdown()
        await http_client.aclose()
        await db_pool.close()
        logger.info("Sync API stopped")


app = FastAPI(
    title="WebinarWise Sync",
    description="Zoom webinar, registrant and attendance synchronization",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(sync_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    if request.url.path in QUIET_PATHS:
        return response

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.time() - start_time) * 1000, 2),
    )
    return response


def serve() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    serve()
