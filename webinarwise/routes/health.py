"""
Health check endpoints with database pool monitoring.
"""

import time

from fastapi import APIRouter, Request

from webinarwise.config import settings
from webinarwise.db.pool import db_health_check

router = APIRouter()


@router.get("/healthz")
@router.get("/health")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "webinarwise-sync"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check: database pool, configuration and sync manager.
    """
    checks = {}
    overall_ok = True

    t0 = time.time()
    db_health = await db_health_check()
    is_healthy = db_health.get("healthy", False)
    checks["database"] = {
        "ok": is_healthy,
        "latency_ms": round((time.time() - t0) * 1000, 1),
    }
    if "pool_stats" in db_health:
        checks["database"].update(db_health["pool_stats"])
    if "running_sync_jobs" in db_health:
        checks["database"]["running_sync_jobs"] = db_health["running_sync_jobs"]
    if not is_healthy:
        checks["database"]["error"] = db_health.get("error", "Database unhealthy")
    overall_ok = overall_ok and is_healthy

    config_issues = []
    if not settings.ENCRYPTION_KEY:
        config_issues.append("ENCRYPTION_KEY not set")
    if not settings.jwks_url():
        config_issues.append("SUPABASE_URL not set")
    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and not config_issues

    manager = getattr(request.app.state, "sync_manager", None)
    checks["sync_manager"] = {
        "ok": manager is not None,
        "active_jobs": len(manager.active_job_ids) if manager else 0,
    }
    overall_ok = overall_ok and manager is not None

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
