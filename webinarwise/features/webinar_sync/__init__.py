"""
Webinar sync feature package.

Vertical slice for pulling webinars, registrants and attendance from Zoom
into the store: domain models, pipeline stages, repositories, the sync
engine and job manager, background jobs and the HTTP router.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as sync_router  # noqa: F401
from .domain.models import SyncError, SyncJob, WebinarDescriptor  # noqa: F401
from .jobs.scheduled_sync_job import run_scheduled_sync, start_scheduled_sync_scheduler  # noqa: F401
from .services.job_manager import SyncJobManager  # noqa: F401
from .services.sync_engine import WebinarSyncEngine  # noqa: F401
