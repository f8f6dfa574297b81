"""
Webinar sync routes.

Start, inspect, cancel and list sync jobs for a Zoom connection. Jobs run
in the background; callers poll `GET /sync/jobs/{job_id}` for progress.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from webinarwise.auth.verify import auth_dependency
from webinarwise.features.webinar_sync.repository.gateway import PersistenceError
from webinarwise.features.webinar_sync.services import (
    ConnectionNotFoundError,
    ConnectionUnavailableError,
    SyncJobManager,
    SyncJobNotFoundError,
    SyncStateError,
)
from webinarwise.infrastructure.observability.logging import get_logger
from webinarwise.models.api.sync_request import StartSyncRequest
from webinarwise.models.api.sync_response import (
    StartSyncResponse,
    SyncJobListResponse,
    SyncJobResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["webinar-sync"])


def get_sync_manager(request: Request) -> SyncJobManager:
    manager = getattr(request.app.state, "sync_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync service not initialized",
        )
    return manager


def _require_user(claims: dict) -> str:
    user_id = claims.get("sub")
    if not user_id:
        logger.error("No user ID in JWT claims")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token: missing user ID"
        )
    return user_id


@router.post("/start", response_model=StartSyncResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_sync(
    body: StartSyncRequest,
    claims: dict = Depends(auth_dependency),
    manager: SyncJobManager = Depends(get_sync_manager),
):
    """
    Start a sync job for one of the caller's Zoom connections.

    Raises:
        404: Connection not found
        409: Connection needs to be reconnected
        503: Store unavailable
    """
    user_id = _require_user(claims)

    try:
        job_id = await manager.start_sync(body.connection_id, body.kind, user_id=user_id)
        return StartSyncResponse(job_id=job_id)

    except ConnectionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found"
        ) from None
    except ConnectionUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from None
    except PersistenceError as e:
        logger.error("Failed to start sync job", connection_id=body.connection_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync service temporarily unavailable",
        ) from None


def _store_unavailable(action: str, error: PersistenceError) -> HTTPException:
    logger.error("Sync store call failed", action=action, error=str(error))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Sync service temporarily unavailable",
    )


@router.get("/jobs/{job_id}", response_model=SyncJobResponse)
async def get_sync_status(
    job_id: UUID,
    claims: dict = Depends(auth_dependency),
    manager: SyncJobManager = Depends(get_sync_manager),
):
    """Jobs on another user's connection answer 404, same as missing ones."""
    user_id = _require_user(claims)
    try:
        job = await manager.get_sync_status(str(job_id), user_id=user_id)
    except SyncJobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync job not found") from None
    except PersistenceError as e:
        raise _store_unavailable("get_sync_status", e) from None
    return SyncJobResponse.from_job(job)


@router.post("/jobs/{job_id}/cancel", response_model=SyncJobResponse)
async def cancel_sync(
    job_id: UUID,
    claims: dict = Depends(auth_dependency),
    manager: SyncJobManager = Depends(get_sync_manager),
):
    """Cancel a pending or running job; terminal jobs answer 409."""
    user_id = _require_user(claims)
    try:
        job = await manager.cancel_sync(str(job_id), user_id=user_id)
    except SyncJobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync job not found") from None
    except SyncStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from None
    except PersistenceError as e:
        raise _store_unavailable("cancel_sync", e) from None

    logger.info("Sync job cancelled via API", job_id=str(job_id), user_id=user_id)
    return SyncJobResponse.from_job(job)


@router.get("/connections/{connection_id}/jobs", response_model=SyncJobListResponse)
async def list_sync_jobs(
    connection_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    claims: dict = Depends(auth_dependency),
    manager: SyncJobManager = Depends(get_sync_manager),
):
    user_id = _require_user(claims)
    try:
        jobs = await manager.list_sync_jobs(connection_id, limit, user_id=user_id)
    except ConnectionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found"
        ) from None
    except PersistenceError as e:
        raise _store_unavailable("list_sync_jobs", e) from None
    return SyncJobListResponse(
        connection_id=connection_id,
        jobs=[SyncJobResponse.from_job(job) for job in jobs],
        total=len(jobs),
    )
