# models/api/sync_response.py
"""
Sync job API response models.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from webinarwise.features.webinar_sync.domain import SyncJob


class StartSyncResponse(BaseModel):
    job_id: str = Field(..., description="ID of the created sync job")
    status: str = Field(default="pending", description="Initial job status")


class SyncErrorResponse(BaseModel):
    stage: str
    error_type: str
    message: str
    webinar_id: str | None = None
    severity: str = "error"
    occurred_at: datetime | None = None


class SyncJobResponse(BaseModel):
    """Sync job status with partial progress and itemized errors."""

    id: str
    connection_id: str
    kind: str
    status: str
    progress_pct: int = Field(..., ge=0, le=100)
    current_operation: str | None = None
    total_items: int = 0
    processed_items: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    errors: list[SyncErrorResponse] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_job(cls, job: SyncJob) -> "SyncJobResponse":
        return cls(
            id=job.id,
            connection_id=job.connection_id,
            kind=job.kind,
            status=job.status,
            progress_pct=job.progress_pct,
            current_operation=job.current_operation,
            total_items=job.total_items,
            processed_items=job.processed_items,
            started_at=job.started_at,
            completed_at=job.completed_at,
            errors=[SyncErrorResponse(**error.to_dict()) for error in job.errors],
            metadata=job.metadata,
        )


class SyncJobListResponse(BaseModel):
    connection_id: str
    jobs: list[SyncJobResponse] = Field(default_factory=list)
    total: int = 0
