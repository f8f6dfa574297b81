# models/api/sync_request.py
from typing import Literal

from pydantic import BaseModel, Field


class StartSyncRequest(BaseModel):
    """Request to start a webinar sync for a Zoom connection."""

    connection_id: str = Field(..., description="Zoom connection to sync")
    kind: Literal["manual", "incremental", "scheduled"] = Field(
        default="manual", description="Sync kind; controls the date window"
    )
