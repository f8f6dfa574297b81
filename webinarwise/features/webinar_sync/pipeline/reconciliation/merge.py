"""
Session merge and registrant attendance back-fill.
"""

from webinarwise.features.webinar_sync.domain import (
    ParticipantEngagement,
    ParticipantRecord,
    ParticipantSession,
    RegistrantRecord,
)
from webinarwise.features.webinar_sync.pipeline.metrics.service import calculate_engagement_score

from .identity import IdentityGroup, normalize_email

PROFILE_FIELDS = (
    "name",
    "email",
    "user_id",
    "registrant_id",
    "participant_id",
    "device",
    "location",
    "network_type",
    "role",
)


def _unique_sessions(sessions: list[ParticipantSession]) -> list[ParticipantSession]:
    # The same interval can come back twice (overlapping pages, re-fetched occurrence).
    seen: set[str] = set()
    unique = []
    for session in sessions:
        signature = session.session_signature
        if signature in seen:
            continue
        seen.add(signature)
        unique.append(session)
    return unique


def merge_group(webinar_id: str, group: IdentityGroup) -> ParticipantRecord:
    """Collapse an identity group into one canonical participant."""
    sessions = _unique_sessions(group.sessions)

    joins = [session.join_time for session in sessions if session.join_time]
    leaves = [session.leave_time for session in sessions if session.leave_time]
    attentiveness = [
        session.attentiveness_score for session in sessions if session.attentiveness_score is not None
    ]

    engagement = ParticipantEngagement(
        chat=any(session.posted_chat for session in sessions),
        raised_hand=any(session.raised_hand for session in sessions),
        polls=any(session.answered_polling for session in sessions),
        questions=any(session.asked_question for session in sessions),
        camera_on_sec=sum(session.camera_on_sec for session in sessions),
    )
    total_duration = sum(session.duration_sec for session in sessions)

    profile: dict[str, str] = {}
    for field_name in PROFILE_FIELDS:
        for session in sessions:
            value = getattr(session, field_name)
            if value:
                profile[field_name] = value
                break
    if profile.get("email"):
        profile["email"] = normalize_email(profile["email"])

    return ParticipantRecord(
        webinar_id=webinar_id,
        identity_key=group.identity_key,
        session_count=len(sessions),
        total_duration_sec=total_duration,
        first_join=min(joins) if joins else None,
        last_leave=max(leaves) if leaves else None,
        engagement=engagement,
        attentiveness_score=round(sum(attentiveness) / len(attentiveness), 2) if attentiveness else None,
        engagement_score=calculate_engagement_score(total_duration, engagement),
        profile=profile,
        sessions=sessions,
    )


def backfill_attendance(
    registrants: list[RegistrantRecord],
    matches: list[tuple[IdentityGroup, ParticipantRecord]],
) -> int:
    """
    Mark registrants that attended and copy their attendance window.

    Registrants without a matching participant are reset to not attended so
    a re-sync reflects the latest attendance data. Returns the attended count.
    """
    by_registrant_id: dict[str, ParticipantRecord] = {}
    by_email: dict[str, ParticipantRecord] = {}
    for group, participant in matches:
        for registrant_id in group.registrant_ids:
            by_registrant_id.setdefault(registrant_id, participant)
        for email in group.emails:
            by_email.setdefault(email, participant)

    attended = 0
    for registrant in registrants:
        participant = by_registrant_id.get(registrant.registrant_id)
        if participant is None and registrant.normalized_email:
            participant = by_email.get(registrant.normalized_email)

        if participant is None:
            registrant.attended = False
            registrant.join_time = None
            registrant.leave_time = None
            registrant.duration_sec = None
            continue

        registrant.attended = True
        registrant.join_time = participant.first_join
        registrant.leave_time = participant.last_leave
        registrant.duration_sec = participant.total_duration_sec
        attended += 1

    return attended
