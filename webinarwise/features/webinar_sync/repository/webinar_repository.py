"""
Upserts for webinars, registrants, participants and raw sessions.

Each table carries a UNIQUE constraint on its natural key and every
write is INSERT ... ON CONFLICT, so concurrent or repeated syncs of the
same connection converge on the same rows.
"""

from psycopg.types.json import Jsonb

from webinarwise.db.helpers import execute_query, fetch_all, fetch_one
from webinarwise.db.pool import get_db_transaction
from webinarwise.features.webinar_sync.domain import (
    ParticipantEngagement,
    ParticipantRecord,
    ParticipantSession,
    RegistrantRecord,
    WebinarMetrics,
    WebinarRecord,
)
from webinarwise.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class WebinarRepository:
    @classmethod
    async def upsert_webinar(cls, record: WebinarRecord) -> str:
        """Insert or refresh the webinar row; metric columns are left to update_metrics."""
        query = """
            INSERT INTO zoom_webinars (
                connection_id, provider_webinar_id, uuid, topic, start_time, duration,
                timezone, lifecycle_status, host_id, host_email, registration_url,
                settings, occurrence_ids, last_synced_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (connection_id, provider_webinar_id)
            DO UPDATE SET
                uuid = EXCLUDED.uuid,
                topic = EXCLUDED.topic,
                start_time = EXCLUDED.start_time,
                duration = EXCLUDED.duration,
                timezone = EXCLUDED.timezone,
                lifecycle_status = EXCLUDED.lifecycle_status,
                host_id = EXCLUDED.host_id,
                host_email = EXCLUDED.host_email,
                registration_url = EXCLUDED.registration_url,
                settings = EXCLUDED.settings,
                occurrence_ids = EXCLUDED.occurrence_ids,
                last_synced_at = NOW(),
                updated_at = NOW()
            RETURNING id
        """
        row = await fetch_one(
            query,
            (
                record.connection_id,
                record.provider_webinar_id,
                record.uuid,
                record.topic,
                record.start_time,
                record.duration,
                record.timezone,
                record.lifecycle_status,
                record.host_id,
                record.host_email,
                record.registration_url,
                Jsonb(record.settings),
                Jsonb(record.occurrence_ids),
            ),
        )
        return str(row["id"])

    @classmethod
    async def update_sync_status(
        cls, webinar_id: str, participant_sync_status: str, attendance_source: str | None
    ) -> None:
        query = """
            UPDATE zoom_webinars
            SET participant_sync_status = %s,
                attendance_source = COALESCE(%s, attendance_source),
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (participant_sync_status, attendance_source, webinar_id))

    @classmethod
    async def update_metrics(cls, webinar_id: str, metrics: WebinarMetrics) -> None:
        """Overwrite aggregate columns with freshly computed values."""
        query = """
            UPDATE zoom_webinars
            SET total_registrants = %s,
                total_attendees = %s,
                total_absentees = %s,
                avg_attendance_duration = %s,
                total_minutes = %s,
                avg_engagement_score = %s,
                engagement_metrics = %s,
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(
            query,
            (
                metrics.total_registrants,
                metrics.total_attendees,
                metrics.total_absentees,
                metrics.avg_attendance_duration,
                metrics.total_minutes,
                metrics.avg_engagement_score,
                Jsonb(metrics.engagement_dict()),
                webinar_id,
            ),
        )

    @classmethod
    async def upsert_registrant(cls, record: RegistrantRecord) -> str:
        query = """
            INSERT INTO zoom_registrants (
                webinar_id, registrant_id, email, first_name, last_name, status,
                join_url, registration_time, attended, join_time, leave_time, duration_sec
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (webinar_id, registrant_id)
            DO UPDATE SET
                email = EXCLUDED.email,
                first_name = EXCLUDED.first_name,
                last_name = EXCLUDED.last_name,
                status = EXCLUDED.status,
                join_url = EXCLUDED.join_url,
                registration_time = EXCLUDED.registration_time,
                attended = EXCLUDED.attended,
                join_time = EXCLUDED.join_time,
                leave_time = EXCLUDED.leave_time,
                duration_sec = EXCLUDED.duration_sec,
                updated_at = NOW()
            RETURNING id
        """
        row = await fetch_one(
            query,
            (
                record.webinar_id,
                record.registrant_id,
                record.email,
                record.first_name,
                record.last_name,
                record.status,
                record.join_url,
                record.registration_time,
                record.attended,
                record.join_time,
                record.leave_time,
                record.duration_sec,
            ),
        )
        return str(row["id"])

    @classmethod
    async def upsert_participant(cls, record: ParticipantRecord) -> str:
        query = """
            INSERT INTO zoom_participants (
                webinar_id, identity_key, session_count, total_duration_sec, first_join,
                last_leave, engagement, attentiveness_score, engagement_score, profile
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (webinar_id, identity_key)
            DO UPDATE SET
                session_count = EXCLUDED.session_count,
                total_duration_sec = EXCLUDED.total_duration_sec,
                first_join = EXCLUDED.first_join,
                last_leave = EXCLUDED.last_leave,
                engagement = EXCLUDED.engagement,
                attentiveness_score = EXCLUDED.attentiveness_score,
                engagement_score = EXCLUDED.engagement_score,
                profile = EXCLUDED.profile,
                updated_at = NOW()
            RETURNING id
        """
        row = await fetch_one(
            query,
            (
                record.webinar_id,
                record.identity_key,
                record.session_count,
                record.total_duration_sec,
                record.first_join,
                record.last_leave,
                Jsonb(record.engagement.to_dict()),
                record.attentiveness_score,
                record.engagement_score,
                Jsonb(record.profile),
            ),
        )
        return str(row["id"])

    @classmethod
    async def insert_sessions(cls, participant_id: str, sessions: list[ParticipantSession]) -> int:
        """Append raw sessions; already-recorded signatures are skipped."""
        query = """
            INSERT INTO zoom_participant_sessions (
                participant_id, webinar_id, session_signature, identity_key_raw,
                occurrence_id, join_time, leave_time, duration_sec, source_endpoint, payload
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (participant_id, session_signature) DO NOTHING
        """
        inserted = 0
        async with await get_db_transaction() as conn:
            for session in sessions:
                inserted += await execute_query(
                    query,
                    (
                        participant_id,
                        session.webinar_id,
                        session.session_signature,
                        session.identity_key_raw,
                        session.occurrence_id,
                        session.join_time,
                        session.leave_time,
                        session.duration_sec,
                        session.source_endpoint,
                        Jsonb(session.payload),
                    ),
                    connection=conn,
                )
        return inserted

    @classmethod
    async def list_registrants(cls, webinar_id: str) -> list[RegistrantRecord]:
        query = """
            SELECT webinar_id, registrant_id, email, first_name, last_name, status, join_url,
                   registration_time, attended, join_time, leave_time, duration_sec
            FROM zoom_registrants
            WHERE webinar_id = %s
        """
        rows = await fetch_all(query, (webinar_id,))
        return [RegistrantRecord(**{**row, "webinar_id": str(row["webinar_id"])}) for row in rows]

    @classmethod
    async def list_participants(cls, webinar_id: str) -> list[ParticipantRecord]:
        query = """
            SELECT id, webinar_id, identity_key, session_count, total_duration_sec, first_join,
                   last_leave, engagement, attentiveness_score, engagement_score, profile
            FROM zoom_participants
            WHERE webinar_id = %s
        """
        rows = await fetch_all(query, (webinar_id,))
        return [
            ParticipantRecord(
                id=str(row["id"]),
                webinar_id=str(row["webinar_id"]),
                identity_key=row["identity_key"],
                session_count=row["session_count"],
                total_duration_sec=row["total_duration_sec"],
                first_join=row.get("first_join"),
                last_leave=row.get("last_leave"),
                engagement=ParticipantEngagement(**(row.get("engagement") or {})),
                attentiveness_score=(
                    float(row["attentiveness_score"]) if row.get("attentiveness_score") is not None else None
                ),
                engagement_score=float(row.get("engagement_score") or 0),
                profile=row.get("profile") or {},
            )
            for row in rows
        ]


__all__ = ["WebinarRepository"]
