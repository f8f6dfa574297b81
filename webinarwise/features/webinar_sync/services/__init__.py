"""
Webinar sync services: engine, job state machine, progress and job manager.
"""

from .job_manager import (
    ConnectionNotFoundError,
    ConnectionUnavailableError,
    SyncJobManager,
    SyncJobNotFoundError,
)
from .progress import LoggingProgressObserver, ProgressEvent, ProgressObserver
from .state_machine import SyncJobStateMachine, SyncStateError
from .sync_engine import WebinarSyncEngine

__all__ = [
    "ConnectionNotFoundError",
    "ConnectionUnavailableError",
    "LoggingProgressObserver",
    "ProgressEvent",
    "ProgressObserver",
    "SyncJobManager",
    "SyncJobNotFoundError",
    "SyncJobStateMachine",
    "SyncStateError",
    "WebinarSyncEngine",
]
