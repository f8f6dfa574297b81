"""
Metrics calculation for synced webinars.

`compute_webinar_metrics` is a pure function of the participant and
registrant rows; `MetricsCalculator.refresh` reads those rows back from
the store and overwrites the webinar's aggregate columns, so running it
twice never double counts.
"""

from typing import TYPE_CHECKING

from webinarwise.features.webinar_sync.domain import (
    ParticipantEngagement,
    ParticipantRecord,
    RegistrantRecord,
    WebinarMetrics,
)
from webinarwise.infrastructure.observability.logging import get_logger

if TYPE_CHECKING:
    from webinarwise.features.webinar_sync.repository.gateway import PersistenceGateway

logger = get_logger(__name__)

# Engagement score weights (max 100)
DURATION_POINTS_CAP = 40
DURATION_POINTS_PER_MINUTE = 10 / 60
CHAT_POINTS = 15
POLL_POINTS = 20
QUESTION_POINTS = 20
RAISED_HAND_POINTS = 5


def calculate_engagement_score(duration_sec: int, engagement: ParticipantEngagement) -> float:
    """Score a participant from 0 to 100 from attendance time and interactions."""
    score = min(DURATION_POINTS_CAP, duration_sec * DURATION_POINTS_PER_MINUTE)
    if engagement.chat:
        score += CHAT_POINTS
    if engagement.polls:
        score += POLL_POINTS
    if engagement.questions:
        score += QUESTION_POINTS
    if engagement.raised_hand:
        score += RAISED_HAND_POINTS
    return round(min(100.0, score), 2)


def _rate(count: int, total: int) -> float:
    return round(count / total, 4) if total else 0.0


def compute_webinar_metrics(
    participants: list[ParticipantRecord], registrants: list[RegistrantRecord]
) -> WebinarMetrics:
    total_registrants = len(registrants)
    total_attendees = len(participants)
    total_duration = sum(participant.total_duration_sec for participant in participants)

    if not total_attendees:
        return WebinarMetrics(
            total_registrants=total_registrants,
            total_absentees=total_registrants,
        )

    return WebinarMetrics(
        total_registrants=total_registrants,
        total_attendees=total_attendees,
        total_absentees=max(0, total_registrants - total_attendees),
        avg_attendance_duration=round(total_duration / total_attendees),
        total_minutes=round(total_duration / 60),
        chat_rate=_rate(sum(p.engagement.chat for p in participants), total_attendees),
        poll_rate=_rate(sum(p.engagement.polls for p in participants), total_attendees),
        question_rate=_rate(sum(p.engagement.questions for p in participants), total_attendees),
        raised_hand_rate=_rate(sum(p.engagement.raised_hand for p in participants), total_attendees),
        avg_camera_on_sec=round(
            sum(p.engagement.camera_on_sec for p in participants) / total_attendees, 2
        ),
        avg_engagement_score=round(
            sum(p.engagement_score for p in participants) / total_attendees, 2
        ),
    )


class MetricsCalculator:
    def __init__(self, gateway: "PersistenceGateway"):
        self.gateway = gateway

    async def compute_metrics(self, webinar_id: str) -> WebinarMetrics:
        participants = await self.gateway.list_participants(webinar_id)
        registrants = await self.gateway.list_registrants(webinar_id)
        return compute_webinar_metrics(participants, registrants)

    async def refresh(self, webinar_id: str) -> WebinarMetrics:
        """Recompute from persisted rows and overwrite the webinar's aggregates."""
        metrics = await self.compute_metrics(webinar_id)
        await self.gateway.update_webinar_metrics(webinar_id, metrics)
        logger.debug(
            "Webinar metrics updated",
            webinar_id=webinar_id,
            registrants=metrics.total_registrants,
            attendees=metrics.total_attendees,
            absentees=metrics.total_absentees,
        )
        return metrics
