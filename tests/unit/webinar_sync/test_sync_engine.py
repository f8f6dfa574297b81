from datetime import UTC, datetime, timedelta

import pytest

from webinarwise.features.webinar_sync.repository import PersistenceError, StoreUnavailableError

FUTURE = (datetime.now(UTC) + timedelta(days=5)).strftime("%Y-%m-%dT%H:%M:%SZ")


def report_row(name, email, **fields):
    row = {
        "id": f"pid-{name}",
        "name": name,
        "user_email": email,
        "join_time": "2024-03-01T17:00:00Z",
        "leave_time": "2024-03-01T17:30:00Z",
        "duration": 1800,
    }
    row.update(fields)
    return row


@pytest.fixture
def scripted_zoom(fake_zoom):
    """Two ended webinars (report and basic attendance) plus one upcoming webinar."""
    fake_zoom.add_webinar("100", list_type="past")
    fake_zoom.add_webinar("200", list_type="past")
    fake_zoom.add_webinar("300", list_type="scheduled", start_time=FUTURE)

    fake_zoom.registrants["100"] = [
        {"id": "r-1", "email": "ann@example.com"},
        {"id": "r-2", "email": "bob@example.com"},
        {"id": "r-3", "email": "cara@example.com"},
    ]
    fake_zoom.report["100"] = [
        report_row("Ann", "ann@example.com", posted_chat=True),
        report_row("Ann", "ann@example.com", join_time="2024-03-01T17:40:00Z", leave_time="2024-03-01T17:50:00Z", duration=600),
        report_row("Walk-in", "walkin@example.com"),
        report_row("Host", "host@example.com", role="host"),
    ]
    fake_zoom.basic["200"] = [
        {"id": "b1", "name": "Dan", "user_email": "dan@example.com", "duration": 900},
    ]
    fake_zoom.registrants["300"] = [{"id": "r-9", "email": "eve@example.com"}]
    return fake_zoom


async def start_job(gateway, connection, kind="manual"):
    return await gateway.create_sync_job(connection.id, kind)


@pytest.mark.asyncio
async def test_full_sync_persists_webinars_participants_and_metrics(
    gateway, connection, engine, scripted_zoom, observer
):
    job = await start_job(gateway, connection)

    result = await engine.run(job, [observer])

    assert result.status == "completed"
    assert result.progress_pct == 100
    assert result.total_items == 3
    assert result.processed_items == 3
    assert result.errors == []
    assert result.metadata["webinars_succeeded"] == 3

    webinar_100 = gateway.webinar_by_provider_id("100")
    assert gateway.sync_status[webinar_100.id] == ("synced", "report")
    assert webinar_100.total_registrants == 3
    assert webinar_100.total_attendees == 2
    assert webinar_100.total_absentees == 1
    ann = next(p for p in gateway.participants_for(webinar_100.id) if p.identity_key == "email:ann@example.com")
    assert ann.session_count == 2
    assert ann.total_duration_sec == 2400
    attended = {r.registrant_id: r.attended for r in gateway.registrants_for(webinar_100.id)}
    assert attended == {"r-1": True, "r-2": False, "r-3": False}

    webinar_200 = gateway.webinar_by_provider_id("200")
    assert gateway.sync_status[webinar_200.id] == ("synced", "basic")
    assert webinar_200.total_attendees == 1

    webinar_300 = gateway.webinar_by_provider_id("300")
    assert gateway.sync_status[webinar_300.id] == ("not_applicable", None)
    assert webinar_300.total_absentees == 1

    assert gateway.connections[connection.id].last_sync_at is not None


@pytest.mark.asyncio
async def test_progress_milestones_are_monotonic(gateway, connection, engine, scripted_zoom, observer):
    job = await start_job(gateway, connection)

    await engine.run(job, [observer])

    progress = [event.progress_pct for event in observer.events]
    assert progress == sorted(progress)
    assert progress[0] == 5
    assert {10, 20, 95, 100} <= set(progress)
    assert progress.count(100) == 1
    assert observer.events[-1].status == "completed"
    processed = [event.processed_items for event in observer.events]
    assert processed == sorted(processed)
    stored = [snapshot.progress_pct for snapshot in gateway.job_snapshots]
    assert stored == sorted(stored)


@pytest.mark.asyncio
async def test_resync_is_idempotent(gateway, connection, engine, scripted_zoom):
    await engine.run(await start_job(gateway, connection))
    counts = (
        len(gateway.webinars),
        len(gateway.participants),
        len(gateway.registrants),
        gateway.session_count(),
    )

    second = await engine.run(await start_job(gateway, connection))

    assert second.status == "completed"
    assert (
        len(gateway.webinars),
        len(gateway.participants),
        len(gateway.registrants),
        gateway.session_count(),
    ) == counts
    webinar_100 = gateway.webinar_by_provider_id("100")
    assert webinar_100.total_attendees == 2


@pytest.mark.asyncio
async def test_webinar_failure_is_isolated(gateway, connection, engine, scripted_zoom):
    # No attendance from either endpoint for webinar 200
    del scripted_zoom.basic["200"]
    job = await start_job(gateway, connection)

    result = await engine.run(job)

    assert result.status == "completed"
    assert result.processed_items == 3
    assert result.metadata["webinars_failed"] == 1
    [error] = result.errors
    assert error.webinar_id == "200"
    assert error.severity == "warning"
    webinar_200 = gateway.webinar_by_provider_id("200")
    assert gateway.sync_status[webinar_200.id][0] == "failed"
    webinar_100 = gateway.webinar_by_provider_id("100")
    assert gateway.sync_status[webinar_100.id] == ("synced", "report")


@pytest.mark.asyncio
async def test_single_record_persistence_error_is_recorded(
    gateway, connection, engine, scripted_zoom, persistence_error
):
    gateway.failures["upsert_participant"] = lambda record: (
        persistence_error("duplicate key") if record.identity_key == "email:walkin@example.com" else None
    )
    job = await start_job(gateway, connection)

    result = await engine.run(job)

    assert result.status == "completed"
    [error] = result.errors
    assert error.stage == "persist_participant"
    assert "walkin" in error.message
    webinar_100 = gateway.webinar_by_provider_id("100")
    assert [p.identity_key for p in gateway.participants_for(webinar_100.id)] == ["email:ann@example.com"]


@pytest.mark.asyncio
async def test_provider_error_for_one_webinar_is_itemized(gateway, connection, engine, scripted_zoom):
    for _ in range(3):
        scripted_zoom.queue("/report/webinars/100/participants", 500, {"message": "internal"})
    job = await start_job(gateway, connection)

    result = await engine.run(job)

    assert result.status == "completed"
    [error] = result.errors
    assert error.error_type == "AttendanceUnavailableError"
    assert "HTTP 500" in error.message
    assert error.webinar_id == "100"
    assert result.metadata["webinars_succeeded"] == 2


@pytest.mark.asyncio
async def test_store_unavailable_fails_job(gateway, connection, engine, scripted_zoom):
    gateway.failures["upsert_webinar"] = StoreUnavailableError("connection refused", operation="upsert_webinar")
    job = await start_job(gateway, connection)

    result = await engine.run(job)

    assert result.status == "failed"
    assert result.metadata["failure_reason"] == "store_unavailable"
    assert (await gateway.get_sync_job(job.id)).status == "failed"


@pytest.mark.asyncio
async def test_failed_token_refresh_requires_reconnection(
    gateway, connection, engine, scripted_zoom, make_connection
):
    gateway.add_connection(make_connection(token_expires_at=datetime.now(UTC) - timedelta(minutes=1)))
    scripted_zoom.token_reply = (400, {"error": "invalid_grant", "reason": "Invalid Token!"})
    job = await start_job(gateway, connection)

    result = await engine.run(job)

    assert result.status == "failed"
    assert result.metadata["failure_reason"] == "reconnection_required"
    assert result.metadata["requires_reconnection"] is True
    assert gateway.connections[connection.id].status == "expired"
    assert gateway.webinars == {}


@pytest.mark.asyncio
async def test_missing_connection_fails_job(gateway, engine):
    job = await gateway.create_sync_job("missing", "manual")

    result = await engine.run(job)

    assert result.status == "failed"
    assert result.metadata["failure_reason"] == "connection_not_found"


@pytest.mark.asyncio
async def test_cancel_between_webinars_stops_the_loop(gateway, connection, engine, scripted_zoom):
    class CancelAfterFirstWebinar:
        async def on_progress(self, event):
            if event.processed_items == 1:
                await gateway.cancel_sync_job(event.job_id)

    job = await start_job(gateway, connection)

    result = await engine.run(job, [CancelAfterFirstWebinar()])

    assert result.status == "cancelled"
    assert result.processed_items == 1
    assert len(gateway.webinars) == 1
    stored = await gateway.get_sync_job(job.id)
    assert stored.status == "cancelled"
    assert stored.progress_pct < 100
    assert gateway.connections[connection.id].last_sync_at is None


@pytest.mark.asyncio
async def test_unexpected_error_outside_webinar_loop_fails_job(gateway, connection, engine, scripted_zoom):
    gateway.failures["get_connection"] = RuntimeError("bug")
    job = await start_job(gateway, connection)

    result = await engine.run(job)

    assert result.status == "failed"
    assert result.metadata["failure_reason"] == "unexpected_error"
    assert "RuntimeError" in result.metadata["error_message"]


@pytest.mark.asyncio
async def test_enumeration_warning_is_kept_on_completed_job(gateway, connection, engine, scripted_zoom):
    scripted_zoom.queue("/users/me/webinars", 403, {"code": 200, "message": "No permission"})
    job = await start_job(gateway, connection)

    result = await engine.run(job)

    assert result.status == "completed"
    assert [e.stage for e in result.errors] == ["enumeration"]
    assert result.total_items == 2


@pytest.mark.asyncio
async def test_unexpected_error_in_one_webinar_is_itemized(gateway, connection, engine, scripted_zoom):
    gateway.failures["upsert_webinar"] = (
        lambda record: RuntimeError("bad row") if record.provider_webinar_id == "200" else None
    )
    job = await start_job(gateway, connection)

    result = await engine.run(job)

    assert result.status == "completed"
    assert result.processed_items == 3
    assert result.metadata["webinars_failed"] == 1
    [error] = result.errors
    assert error.webinar_id == "200"
    assert error.error_type == "RuntimeError"
    assert gateway.webinar_by_provider_id("100") is not None


@pytest.mark.asyncio
async def test_timestamps_without_offset_are_read_as_utc(gateway, connection, engine, scripted_zoom):
    naive_start = (datetime.now(UTC) - timedelta(days=3)).strftime("%Y-%m-%dT%H:%M:%S")
    scripted_zoom.add_webinar("400", list_type="past", start_time=naive_start, duration="45.0")
    scripted_zoom.report["400"] = [
        report_row("Gil", "gil@example.com"),
        report_row("Gil", "gil@example.com", join_time="2024-03-01T17:40:00", leave_time="2024-03-01T17:50:00", duration="600"),
    ]
    job = await start_job(gateway, connection)

    result = await engine.run(job)

    assert result.status == "completed"
    assert result.errors == []
    webinar_400 = gateway.webinar_by_provider_id("400")
    assert webinar_400.duration == 45
    [gil] = gateway.participants_for(webinar_400.id)
    assert gil.session_count == 2
    assert gil.first_join == datetime(2024, 3, 1, 17, 0, tzinfo=UTC)
    assert gil.last_leave == datetime(2024, 3, 1, 17, 50, tzinfo=UTC)
