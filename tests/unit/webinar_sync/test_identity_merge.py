from datetime import UTC, datetime, timedelta

from webinarwise.features.webinar_sync.domain import ParticipantSession, RegistrantRecord
from webinarwise.features.webinar_sync.pipeline.reconciliation import (
    backfill_attendance,
    group_sessions,
    merge_group,
    resolve_identity_key,
)

START = datetime(2024, 3, 1, 17, 0, tzinfo=UTC)


def make_session(**fields) -> ParticipantSession:
    values = {
        "webinar_id": "web-1",
        "source_endpoint": "report",
        "occurrence_id": None,
        "name": "Ann",
        "email": None,
        "join_time": START,
        "leave_time": START + timedelta(minutes=10),
        "duration_sec": 600,
    }
    values.update(fields)
    return ParticipantSession(**values)


def test_identity_key_priority():
    assert resolve_identity_key(make_session(user_id="u1", email="a@x.com")) == "uid:u1"
    assert resolve_identity_key(make_session(email=" A@X.com ", registrant_id="r1")) == "email:a@x.com"
    assert resolve_identity_key(make_session(registrant_id="r1", participant_id="p1")) == "reg:r1"
    assert resolve_identity_key(make_session(participant_id="p1")) == "pid:p1"


def test_synthesized_key_is_deterministic_and_nonempty():
    first = resolve_identity_key(make_session(name="Guest"))
    second = resolve_identity_key(make_session(name="guest "))

    assert first.startswith("anon:")
    assert first == second
    assert first != resolve_identity_key(make_session(name="Guest", join_time=START + timedelta(minutes=1)))


def test_rejoins_by_email_and_user_id_merge_into_one_participant():
    sessions = [
        make_session(email="ann@example.com", posted_chat=True),
        make_session(
            user_id="u-1",
            email="ANN@example.com",
            join_time=START + timedelta(minutes=20),
            leave_time=START + timedelta(minutes=50),
            duration_sec=1800,
            answered_polling=True,
        ),
        make_session(user_id="u-1", join_time=START + timedelta(minutes=55), duration_sec=60),
    ]

    groups = group_sessions(sessions)

    assert len(groups) == 1
    participant = merge_group("web-1", groups[0])
    assert participant.identity_key == "uid:u-1"
    assert participant.session_count == 3
    assert participant.total_duration_sec == 2460
    assert participant.first_join == START
    assert participant.engagement.chat is True
    assert participant.engagement.polls is True
    assert participant.profile["email"] == "ann@example.com"


def test_registrant_links_registrant_id_to_email():
    sessions = [
        make_session(registrant_id="r-1", name="Ann"),
        make_session(email="ann@example.com", join_time=START + timedelta(minutes=30)),
    ]
    registrants = [RegistrantRecord(webinar_id="web-1", registrant_id="r-1", email="Ann@Example.com")]

    groups = group_sessions(sessions, registrants)

    assert len(groups) == 1
    assert groups[0].identity_key == "email:ann@example.com"


def test_distinct_people_stay_separate():
    sessions = [
        make_session(email="ann@example.com"),
        make_session(email="bob@example.com", name="Bob"),
        make_session(name="Guest", participant_id=None),
    ]

    groups = group_sessions(sessions)

    assert len(groups) == 3
    assert len({group.identity_key for group in groups}) == 3


def test_duplicate_sessions_are_counted_once():
    sessions = [make_session(email="ann@example.com"), make_session(email="ann@example.com")]

    [group] = group_sessions(sessions)
    participant = merge_group("web-1", group)

    assert participant.session_count == 1
    assert participant.total_duration_sec == 600


def test_backfill_marks_attendees_and_resets_absentees():
    sessions = [make_session(email="ann@example.com")]
    registrants = [
        RegistrantRecord(webinar_id="web-1", registrant_id="r-1", email="ann@example.com"),
        RegistrantRecord(
            webinar_id="web-1",
            registrant_id="r-2",
            email="bob@example.com",
            attended=True,
            duration_sec=99,
        ),
    ]
    [group] = group_sessions(sessions, registrants)
    participant = merge_group("web-1", group)

    attended = backfill_attendance(registrants, [(group, participant)])

    assert attended == 1
    assert registrants[0].attended is True
    assert registrants[0].duration_sec == 600
    assert registrants[0].join_time == START
    assert registrants[1].attended is False
    assert registrants[1].duration_sec is None
