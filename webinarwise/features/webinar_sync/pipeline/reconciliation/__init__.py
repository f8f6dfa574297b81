"""
Participant and registrant reconciliation package.
"""

from .identity import IdentityGroup, group_sessions, resolve_identity_key
from .merge import backfill_attendance, merge_group
from .service import AttendanceUnavailableError, ReconciliationEngine

__all__ = [
    "AttendanceUnavailableError",
    "IdentityGroup",
    "ReconciliationEngine",
    "backfill_attendance",
    "group_sessions",
    "merge_group",
    "resolve_identity_key",
]
