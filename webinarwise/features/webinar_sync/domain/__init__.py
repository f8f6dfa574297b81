"""
Domain package for the webinar sync feature.

Exports the dataclasses shared across pipeline stages, repositories and
the API layer.
"""

from .attendance import (
    AttendanceRecord,
    BasicAttendanceRecord,
    DetailedAttendanceRecord,
    normalize_attendance,
    parse_attendance,
    parse_int,
    parse_timestamp,
)
from .models import (
    LIFECYCLE_TYPES,
    SYNC_KINDS,
    TERMINAL_STATUSES,
    DateRange,
    ParticipantEngagement,
    ParticipantRecord,
    ParticipantSession,
    ReconciliationResult,
    RegistrantRecord,
    SyncError,
    SyncJob,
    WebinarDescriptor,
    WebinarMetrics,
    WebinarRecord,
)

__all__ = [
    "AttendanceRecord",
    "BasicAttendanceRecord",
    "DetailedAttendanceRecord",
    "normalize_attendance",
    "parse_attendance",
    "parse_int",
    "parse_timestamp",
    "LIFECYCLE_TYPES",
    "SYNC_KINDS",
    "TERMINAL_STATUSES",
    "DateRange",
    "ParticipantEngagement",
    "ParticipantRecord",
    "ParticipantSession",
    "ReconciliationResult",
    "RegistrantRecord",
    "SyncError",
    "SyncJob",
    "WebinarDescriptor",
    "WebinarMetrics",
    "WebinarRecord",
]
