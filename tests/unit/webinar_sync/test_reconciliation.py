from datetime import UTC, datetime, timedelta

import pytest

from webinarwise.features.webinar_sync.domain import WebinarDescriptor
from webinarwise.features.webinar_sync.pipeline.reconciliation import (
    AttendanceUnavailableError,
    ReconciliationEngine,
)
from webinarwise.services.token_service import AccessToken, TokenService
from webinarwise.services.zoom.api_client import ZoomApiClient
from webinarwise.services.zoom.oauth_service import ZoomOAuthService

PAST_START = datetime.now(UTC) - timedelta(days=2)


@pytest.fixture
def token(gateway, http_client, connection):
    return AccessToken(connection, TokenService(gateway, ZoomOAuthService(http_client)))


@pytest.fixture
def reconciler(http_client):
    return ReconciliationEngine(ZoomApiClient(http_client), request_delay=0)


def past_webinar(**fields) -> WebinarDescriptor:
    values = {
        "provider_webinar_id": "100",
        "uuid": "uuid-100",
        "topic": "Launch",
        "start_time": PAST_START,
        "duration": 60,
        "lifecycle_type": "ended",
        "host_email": "host@example.com",
    }
    values.update(fields)
    return WebinarDescriptor(**values)


def report_row(name, email=None, **fields):
    row = {
        "id": f"pid-{name}",
        "name": name,
        "user_email": email,
        "join_time": PAST_START.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "leave_time": (PAST_START + timedelta(minutes=30)).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "duration": 1800,
    }
    row.update(fields)
    return row


@pytest.mark.asyncio
async def test_report_attendance_with_registrant_backfill(fake_zoom, token, reconciler):
    fake_zoom.registrants["100"] = [
        {"id": "r-1", "email": "ann@example.com", "first_name": "Ann"},
        {"id": "r-2", "email": "bob@example.com", "first_name": "Bob"},
    ]
    fake_zoom.report["100"] = [
        report_row("Ann", "ann@example.com", posted_chat=True),
        report_row("Host", "host@example.com", role="host"),
        report_row("Walk-in", "walkin@example.com"),
    ]

    result = await reconciler.reconcile(token, past_webinar(), "web-1")

    assert result.attendance_source == "report"
    assert result.participant_sync_status == "synced"
    assert {p.identity_key for p in result.participants} == {
        "email:ann@example.com",
        "email:walkin@example.com",
    }
    attended = {r.registrant_id: r.attended for r in result.registrants}
    assert attended == {"r-1": True, "r-2": False}
    assert fake_zoom.count("/past_webinars/100/participants") == 0


@pytest.mark.asyncio
async def test_host_matched_by_email_is_excluded_but_panelist_kept(fake_zoom, token, reconciler):
    fake_zoom.report["100"] = [
        report_row("Host", "HOST@example.com"),
        report_row("Panel", "panel@example.com", role="panelist"),
    ]

    result = await reconciler.reconcile(token, past_webinar(), "web-1")

    assert [p.identity_key for p in result.participants] == ["email:panel@example.com"]


@pytest.mark.asyncio
async def test_falls_back_to_basic_when_report_rejected(fake_zoom, token, reconciler):
    fake_zoom.basic["100"] = [
        {"id": "p1", "name": "Ann", "user_email": "ann@example.com", "duration": 600},
    ]

    result = await reconciler.reconcile(token, past_webinar(), "web-1")

    assert result.attendance_source == "basic"
    assert [p.total_duration_sec for p in result.participants] == [600]
    assert fake_zoom.count("/report/webinars/100/participants") == 1
    assert fake_zoom.count("/past_webinars/100/participants") == 1


@pytest.mark.asyncio
async def test_both_endpoints_failing_raises(fake_zoom, token, reconciler):
    with pytest.raises(AttendanceUnavailableError) as exc_info:
        await reconciler.reconcile(token, past_webinar(), "web-1")

    assert exc_info.value.webinar_id == "100"
    assert len(exc_info.value.failures) == 1


@pytest.mark.asyncio
async def test_recurring_webinar_partial_occurrence_failure(fake_zoom, token, reconciler):
    fake_zoom.report["occ-a"] = [report_row("Ann", "ann@example.com")]
    fake_zoom.basic["occ-b"] = [{"id": "p2", "name": "Bob", "user_email": "bob@example.com", "duration": 60}]
    webinar = past_webinar(occurrence_ids=["occ-a", "occ-b", "occ-c"])

    result = await reconciler.reconcile(token, webinar, "web-1")

    assert result.attendance_source == "mixed"
    assert len(result.participants) == 2
    assert [e.severity for e in result.errors] == ["warning"]
    assert "occ-c" in result.errors[0].message
    occurrences = {s.occurrence_id for p in result.participants for s in p.sessions}
    assert occurrences == {"occ-a", "occ-b"}


@pytest.mark.asyncio
async def test_future_webinar_is_not_applicable(fake_zoom, token, reconciler):
    fake_zoom.registrants["100"] = [{"id": "r-1", "email": "ann@example.com"}]
    webinar = past_webinar(
        lifecycle_type="scheduled", start_time=datetime.now(UTC) + timedelta(days=3)
    )

    result = await reconciler.reconcile(token, webinar, "web-1")

    assert result.participant_sync_status == "not_applicable"
    assert result.participants == []
    assert [r.attended for r in result.registrants] == [False]
    assert fake_zoom.count("/participants") == 0


@pytest.mark.asyncio
async def test_empty_attendance_reports_no_participants(fake_zoom, token, reconciler):
    fake_zoom.report["100"] = []

    result = await reconciler.reconcile(token, past_webinar(), "web-1")

    assert result.participant_sync_status == "no_participants"


@pytest.mark.asyncio
async def test_registrant_failure_is_not_fatal(fake_zoom, token, reconciler):
    fake_zoom.queue("/webinars/100/registrants", 400, {"code": 200, "message": "Registration disabled"})
    fake_zoom.report["100"] = [report_row("Ann", "ann@example.com")]

    result = await reconciler.reconcile(token, past_webinar(), "web-1")

    assert result.registrants == []
    assert len(result.participants) == 1


def attendees(count):
    return [report_row(f"Guest{i}", f"guest{i}@example.com") for i in range(count)]


def small_page_reconciler(http_client, max_pages=10):
    return ReconciliationEngine(
        ZoomApiClient(http_client), report_page_size=2, max_pages=max_pages, request_delay=0
    )


@pytest.mark.asyncio
async def test_report_pages_follow_next_page_token(fake_zoom, token, http_client):
    fake_zoom.report["100"] = attendees(5)

    result = await small_page_reconciler(http_client).reconcile(token, past_webinar(), "web-1")

    assert fake_zoom.count("/report/webinars/100/participants") == 3
    assert len(result.participants) == 5
    assert all(p.total_duration_sec == 1800 for p in result.participants)
    tokens = [
        r.url.params.get("next_page_token") for r in fake_zoom.requests if "/report/" in r.url.path
    ]
    assert tokens == [None, "2", "4"]


@pytest.mark.asyncio
async def test_basic_pages_follow_page_count(fake_zoom, token, http_client):
    fake_zoom.basic["100"] = attendees(5)

    result = await small_page_reconciler(http_client).reconcile(token, past_webinar(), "web-1")

    assert result.attendance_source == "basic"
    assert fake_zoom.count("/past_webinars/100/participants") == 3
    assert {p.identity_key for p in result.participants} == {
        f"email:guest{i}@example.com" for i in range(5)
    }


@pytest.mark.asyncio
async def test_report_pagination_stops_at_page_ceiling(fake_zoom, token, http_client):
    fake_zoom.report["100"] = attendees(7)

    reconciler = small_page_reconciler(http_client, max_pages=2)
    result = await reconciler.reconcile(token, past_webinar(), "web-1")

    assert fake_zoom.count("/report/webinars/100/participants") == 2
    assert len(result.participants) == 4
    assert result.participant_sync_status == "synced"


@pytest.mark.asyncio
async def test_basic_pagination_stops_at_page_ceiling(fake_zoom, token, http_client):
    fake_zoom.basic["100"] = attendees(9)

    reconciler = small_page_reconciler(http_client, max_pages=3)
    result = await reconciler.reconcile(token, past_webinar(), "web-1")

    assert fake_zoom.count("/past_webinars/100/participants") == 3
    assert len(result.participants) == 6
