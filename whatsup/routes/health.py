"""
Health check endpoints for the status bot.
"""

import time

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "whatsup"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check: database pool, XMPP session and contact directory.
    """
    checks = {}
    overall_ok = True

    context = getattr(request.app.state, "context", None)
    db_pool = getattr(request.app.state, "db_pool", None)

    # 1) Database pool
    t0 = time.time()
    if db_pool is None:
        checks["database"] = {"ok": False, "error": "Database pool not configured"}
        overall_ok = False
    else:
        try:
            db_health = await db_pool.health_check()
            is_healthy = db_health.get("healthy", False)
            checks["database"] = {
                "ok": is_healthy,
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            if "pool_stats" in db_health:
                checks["database"].update(db_health["pool_stats"])
            if not is_healthy:
                checks["database"]["error"] = db_health.get("error", "Database unhealthy")
            overall_ok = overall_ok and is_healthy
        except Exception as e:
            checks["database"] = {
                "ok": False,
                "error": f"{type(e).__name__}: {e}",
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            overall_ok = False

    # 2) XMPP session and directory
    if context is None:
        checks["xmpp"] = {"ok": False, "error": "Service context not initialized"}
        overall_ok = False
    else:
        checks["xmpp"] = {"ok": context.session_ready, "jid": context.own_jid}
        checks["directory"] = {
            "ok": True,
            "contacts": len(context.directory),
            "subscribed": len(context.directory.subscribed()),
        }
        overall_ok = overall_ok and context.session_ready

    reminder_job = getattr(request.app.state, "reminder_job", None)
    if reminder_job is not None:
        checks["reminders"] = {"ok": True, **reminder_job.get_job_status()}

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
