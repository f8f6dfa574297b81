"""
Domain models for the webinar sync feature.

Plain dataclasses shared by the pipeline stages, the job state machine,
the repositories and the API layer. Behaviour kept here is limited to
small derived properties and serialization helpers.
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

SyncKind = Literal["manual", "incremental", "scheduled"]
SyncStatus = Literal["pending", "running", "completed", "failed", "cancelled"]
LifecycleType = Literal["scheduled", "live", "ended"]
SourceEndpoint = Literal["report", "basic"]

SYNC_KINDS: tuple[str, ...] = ("manual", "incremental", "scheduled")
LIFECYCLE_TYPES: tuple[str, ...] = ("scheduled", "live", "ended")
TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled"})

# A webinar is treated as finished this long after its scheduled end.
ENDED_BUFFER = timedelta(minutes=5)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(slots=True)
class DateRange:
    start: datetime
    end: datetime

    def contains(self, moment: datetime | None) -> bool:
        # Webinars without a fixed start (recurring, no fixed time) are kept.
        if moment is None:
            return True
        return self.start <= moment <= self.end

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(slots=True)
class SyncError:
    """One itemized entry of SyncJob.errors."""

    stage: str
    error_type: str
    message: str
    webinar_id: str | None = None
    severity: Literal["error", "warning"] = "error"
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "error_type": self.error_type,
            "message": self.message,
            "webinar_id": self.webinar_id,
            "severity": self.severity,
            "occurred_at": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncError":
        occurred_at = data.get("occurred_at")
        return cls(
            stage=data.get("stage", "unknown"),
            error_type=data.get("error_type", "unknown"),
            message=data.get("message", ""),
            webinar_id=data.get("webinar_id"),
            severity=data.get("severity", "error"),
            occurred_at=datetime.fromisoformat(occurred_at) if occurred_at else datetime.now(UTC),
        )


@dataclass(slots=True)
class SyncJob:
    """Represents a zoom_sync_jobs row."""

    id: str
    connection_id: str
    kind: str
    status: str = "pending"
    progress_pct: int = 0
    current_operation: str | None = None
    total_items: int = 0
    processed_items: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    errors: list[SyncError] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "connection_id": self.connection_id,
            "kind": self.kind,
            "status": self.status,
            "progress_pct": self.progress_pct,
            "current_operation": self.current_operation,
            "total_items": self.total_items,
            "processed_items": self.processed_items,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
            "errors": [error.to_dict() for error in self.errors],
            "metadata": dict(self.metadata),
        }


@dataclass(slots=True)
class WebinarDescriptor:
    """One enumerated webinar: list fields with detail merged on top."""

    provider_webinar_id: str
    uuid: str | None
    topic: str | None
    start_time: datetime | None
    duration: int | None  # minutes
    lifecycle_type: str
    status: str | None = None
    timezone: str | None = None
    host_id: str | None = None
    host_email: str | None = None
    registration_url: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)
    occurrence_ids: list[str] = field(default_factory=list)

    def has_occurred(self, now: datetime | None = None) -> bool:
        """Attendance data only exists once the webinar has ended."""
        if self.lifecycle_type == "ended" or (self.status or "").lower() in ("ended", "finished"):
            return True
        if not self.start_time:
            return False
        now = now or datetime.now(UTC)
        ends_at = self.start_time + timedelta(minutes=self.duration or 0)
        return ends_at + ENDED_BUFFER < now

    @property
    def attendance_targets(self) -> list[str]:
        """Identifiers to fetch attendance for: every occurrence, else the webinar itself."""
        if self.occurrence_ids:
            return list(self.occurrence_ids)
        return [self.provider_webinar_id]


@dataclass(slots=True)
class WebinarRecord:
    """Represents a zoom_webinars row."""

    connection_id: str
    provider_webinar_id: str
    uuid: str | None
    topic: str | None
    start_time: datetime | None
    duration: int | None
    lifecycle_status: str
    timezone: str | None = None
    host_id: str | None = None
    host_email: str | None = None
    registration_url: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)
    occurrence_ids: list[str] = field(default_factory=list)
    total_registrants: int = 0
    total_attendees: int = 0
    total_absentees: int = 0
    avg_attendance_duration: int = 0
    participant_sync_status: str = "pending"
    attendance_source: str | None = None
    id: str | None = None

    @classmethod
    def from_descriptor(cls, connection_id: str, webinar: WebinarDescriptor) -> "WebinarRecord":
        return cls(
            connection_id=connection_id,
            provider_webinar_id=webinar.provider_webinar_id,
            uuid=webinar.uuid,
            topic=webinar.topic,
            start_time=webinar.start_time,
            duration=webinar.duration,
            lifecycle_status=webinar.status or webinar.lifecycle_type,
            timezone=webinar.timezone,
            host_id=webinar.host_id,
            host_email=webinar.host_email,
            registration_url=webinar.registration_url,
            settings=dict(webinar.settings),
            occurrence_ids=list(webinar.occurrence_ids),
        )


@dataclass(slots=True)
class RegistrantRecord:
    """Represents a zoom_registrants row."""

    webinar_id: str
    registrant_id: str
    email: str | None
    first_name: str | None = None
    last_name: str | None = None
    status: str | None = None
    join_url: str | None = None
    registration_time: datetime | None = None
    attended: bool = False
    join_time: datetime | None = None
    leave_time: datetime | None = None
    duration_sec: int | None = None

    @property
    def normalized_email(self) -> str | None:
        return self.email.strip().lower() if self.email and self.email.strip() else None


@dataclass(slots=True)
class ParticipantSession:
    """
    One upstream join/leave interval in canonical shape.

    Both attendance endpoints are normalized into this type at the fetch
    boundary; nothing downstream looks at the endpoint-specific payloads.
    """

    webinar_id: str
    source_endpoint: str
    occurrence_id: str | None
    name: str | None
    email: str | None
    join_time: datetime | None
    leave_time: datetime | None
    duration_sec: int = 0
    user_id: str | None = None  # stable account id
    registrant_id: str | None = None
    participant_id: str | None = None  # provider participant id
    role: str | None = None
    device: str | None = None
    location: str | None = None
    network_type: str | None = None
    attentiveness_score: float | None = None
    posted_chat: bool = False
    raised_hand: bool = False
    answered_polling: bool = False
    asked_question: bool = False
    camera_on_sec: int = 0
    identity_key_raw: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def session_signature(self) -> str:
        """Deterministic per-session key used for append-only inserts."""
        return "|".join(
            [
                self.occurrence_id or "",
                self.identity_key_raw,
                _iso(self.join_time) or "",
                _iso(self.leave_time) or "",
                str(self.duration_sec),
            ]
        )


@dataclass(slots=True)
class ParticipantEngagement:
    chat: bool = False
    raised_hand: bool = False
    polls: bool = False
    questions: bool = False
    camera_on_sec: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(slots=True)
class ParticipantRecord:
    """Canonical per-person attendance produced by merging sessions."""

    webinar_id: str
    identity_key: str
    session_count: int
    total_duration_sec: int
    first_join: datetime | None
    last_leave: datetime | None
    engagement: ParticipantEngagement = field(default_factory=ParticipantEngagement)
    attentiveness_score: float | None = None
    engagement_score: float = 0.0
    profile: dict[str, Any] = field(default_factory=dict)
    sessions: list[ParticipantSession] = field(default_factory=list)
    id: str | None = None


@dataclass(slots=True)
class WebinarMetrics:
    total_registrants: int = 0
    total_attendees: int = 0
    total_absentees: int = 0
    avg_attendance_duration: int = 0
    total_minutes: int = 0
    chat_rate: float = 0.0
    poll_rate: float = 0.0
    question_rate: float = 0.0
    raised_hand_rate: float = 0.0
    avg_camera_on_sec: float = 0.0
    avg_engagement_score: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    def engagement_dict(self) -> dict:
        return {
            "chat_rate": self.chat_rate,
            "poll_rate": self.poll_rate,
            "question_rate": self.question_rate,
            "raised_hand_rate": self.raised_hand_rate,
            "avg_camera_on_sec": self.avg_camera_on_sec,
        }


@dataclass(slots=True)
class ReconciliationResult:
    participants: list[ParticipantRecord]
    registrants: list[RegistrantRecord]
    errors: list[SyncError] = field(default_factory=list)
    participant_sync_status: str = "synced"
    attendance_source: str | None = None
