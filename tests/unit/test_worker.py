import pytest

from webinarwise.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_registry_exposes_sync_and_token_jobs():
    assert {"scheduled_sync", "scheduled_sync_once", "token_refresh"} <= set(worker.JOB_REGISTRY)


def test_job_name_falls_back_to_env(monkeypatch):
    monkeypatch.setattr(worker.sys, "argv", ["webinarwise-worker"])
    monkeypatch.setenv("WORKER_JOB", " Token_Refresh ")

    assert worker._resolve_job_name() == "token_refresh"
