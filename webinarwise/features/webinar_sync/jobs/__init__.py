"""
Background jobs for the webinar sync feature.
"""

from .scheduled_sync_job import (
    ScheduledSyncJob,
    ScheduledSyncJobError,
    run_scheduled_sync,
    start_scheduled_sync_scheduler,
)

__all__ = [
    "ScheduledSyncJob",
    "ScheduledSyncJobError",
    "run_scheduled_sync",
    "start_scheduled_sync_scheduler",
]
