"""
Raw attendance rows as returned by the two Zoom participant endpoints.

`BasicAttendanceRecord` comes from /past_webinars/{id}/participants and
`DetailedAttendanceRecord` from /report/webinars/{id}/participants. Field
names drift between API versions (email vs user_email, participant_user_id
vs user_id), so parsing tolerates every spelling we have seen and
`to_sessions()` turns either variant into `ParticipantSession` rows.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from .models import ParticipantSession


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse Zoom ISO-8601 timestamps ("2024-03-01T17:00:00Z").

    Always returns an aware UTC datetime; values without an offset are taken as UTC.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_int(value: Any) -> int | None:
    """Whole number from an int, float or numeric string; None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _seconds(value: Any) -> int:
    return max(0, parse_int(value) or 0)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _interval_seconds(join: datetime | None, leave: datetime | None) -> int:
    if join and leave and leave > join:
        return int((leave - join).total_seconds())
    return 0


@dataclass(slots=True)
class BasicAttendanceRecord:
    """Minimal participant row (page-number paginated endpoint)."""

    participant_id: str | None
    name: str | None
    email: str | None
    join_time: datetime | None
    leave_time: datetime | None
    duration_sec: int
    registrant_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    source: Literal["basic"] = "basic"

    @classmethod
    def from_payload(cls, data: dict) -> "BasicAttendanceRecord":
        return cls(
            participant_id=_text(data.get("id")),
            name=_text(data.get("name")),
            email=_text(data.get("user_email") or data.get("email")),
            join_time=parse_timestamp(data.get("join_time")),
            leave_time=parse_timestamp(data.get("leave_time")),
            duration_sec=_seconds(data.get("duration")),
            registrant_id=_text(data.get("registrant_id")),
            payload=dict(data),
        )

    def to_sessions(self, webinar_id: str, occurrence_id: str | None) -> list[ParticipantSession]:
        return [
            ParticipantSession(
                webinar_id=webinar_id,
                source_endpoint=self.source,
                occurrence_id=occurrence_id,
                name=self.name,
                email=self.email,
                join_time=self.join_time,
                leave_time=self.leave_time,
                duration_sec=self.duration_sec or _interval_seconds(self.join_time, self.leave_time),
                registrant_id=self.registrant_id,
                participant_id=self.participant_id,
                payload=self.payload,
            )
        ]


@dataclass(slots=True)
class DetailedAttendanceRecord:
    """Report participant row with engagement fields and optional sub-sessions."""

    participant_id: str | None
    user_id: str | None
    name: str | None
    email: str | None
    join_time: datetime | None
    leave_time: datetime | None
    duration_sec: int
    registrant_id: str | None = None
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
    details: list[dict[str, Any]] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)
    source: Literal["report"] = "report"

    @classmethod
    def from_payload(cls, data: dict) -> "DetailedAttendanceRecord":
        attentiveness = data.get("attentiveness_score")
        try:
            attentiveness = float(str(attentiveness).rstrip("%")) if attentiveness not in (None, "") else None
        except ValueError:
            attentiveness = None

        return cls(
            participant_id=_text(data.get("id")),
            user_id=_text(data.get("participant_user_id")),
            name=_text(data.get("name")),
            email=_text(data.get("user_email") or data.get("email")),
            join_time=parse_timestamp(data.get("join_time")),
            leave_time=parse_timestamp(data.get("leave_time")),
            duration_sec=_seconds(data.get("duration")),
            registrant_id=_text(data.get("registrant_id")),
            role=_text(data.get("role")),
            device=_text(data.get("device")),
            location=_text(data.get("location")),
            network_type=_text(data.get("network_type")),
            attentiveness_score=attentiveness,
            posted_chat=_flag(data.get("posted_chat")),
            raised_hand=_flag(data.get("raised_hand")),
            answered_polling=_flag(data.get("answered_polling")),
            asked_question=_flag(data.get("asked_question")),
            camera_on_sec=_seconds(data.get("camera_on_duration")),
            details=[item for item in data.get("details") or [] if isinstance(item, dict)],
            payload=dict(data),
        )

    def _session(self, webinar_id, occurrence_id, join, leave, duration, camera_on_sec):
        return ParticipantSession(
            webinar_id=webinar_id,
            source_endpoint=self.source,
            occurrence_id=occurrence_id,
            name=self.name,
            email=self.email,
            join_time=join,
            leave_time=leave,
            duration_sec=duration,
            user_id=self.user_id,
            registrant_id=self.registrant_id,
            participant_id=self.participant_id,
            role=self.role,
            device=self.device,
            location=self.location,
            network_type=self.network_type,
            attentiveness_score=self.attentiveness_score,
            posted_chat=self.posted_chat,
            raised_hand=self.raised_hand,
            answered_polling=self.answered_polling,
            asked_question=self.asked_question,
            camera_on_sec=camera_on_sec,
            payload=self.payload,
        )

    def to_sessions(self, webinar_id: str, occurrence_id: str | None) -> list[ParticipantSession]:
        """Flatten nested sub-sessions; the row itself is one session when there are none."""
        intervals = []
        for detail in self.details:
            join = parse_timestamp(detail.get("join_time"))
            leave = parse_timestamp(detail.get("leave_time"))
            if not join:
                continue
            duration = _seconds(detail.get("duration")) or _interval_seconds(join, leave)
            intervals.append((join, leave, duration))

        if not intervals:
            duration = self.duration_sec or _interval_seconds(self.join_time, self.leave_time)
            return [
                self._session(
                    webinar_id, occurrence_id, self.join_time, self.leave_time, duration, self.camera_on_sec
                )
            ]

        # Camera time is reported once per row, so it rides on the first interval only.
        return [
            self._session(
                webinar_id, occurrence_id, join, leave, duration, self.camera_on_sec if index == 0 else 0
            )
            for index, (join, leave, duration) in enumerate(intervals)
        ]


AttendanceRecord = BasicAttendanceRecord | DetailedAttendanceRecord


def parse_attendance(data: dict, source: str) -> AttendanceRecord:
    """Build the tagged record for a raw payload from the named endpoint."""
    if source == "report":
        return DetailedAttendanceRecord.from_payload(data)
    if source == "basic":
        return BasicAttendanceRecord.from_payload(data)
    raise ValueError(f"Unknown attendance source '{source}'")


def normalize_attendance(
    records: list[AttendanceRecord], webinar_id: str, occurrence_id: str | None = None
) -> list[ParticipantSession]:
    """Normalize raw rows from either endpoint into canonical sessions."""
    sessions: list[ParticipantSession] = []
    for record in records:
        sessions.extend(record.to_sessions(webinar_id, occurrence_id))
    return sessions
