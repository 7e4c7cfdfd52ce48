# app/routes/health.py
"""
Liveness and readiness endpoints.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.db.pool import db_health_check
from app.services.redis_client import fast_redis

router = APIRouter(tags=["health"])


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


def _configuration_issues() -> list[str]:
    issues = []
    if not settings.SUPABASE_DB_URL:
        issues.append("SUPABASE_DB_URL not set")
    if not settings.SUPABASE_ANON_KEY:
        issues.append("SUPABASE_ANON_KEY not set")
    if not settings.redis_url():
        issues.append("Redis not configured")
    return issues


@router.get("/healthz")
async def healthz():
    """Always 200 while the process is serving."""
    return {"status": "ok", "service": "ubghub"}


@router.get("/readyz")
async def readyz():
    """Redis (sign-in state), the database pool and required settings."""
    started = time.perf_counter()
    redis_ok = await fast_redis.ping()
    redis_check = {"ok": redis_ok, "latency_ms": _elapsed_ms(started)}

    started = time.perf_counter()
    db_health = await db_health_check()
    db_ok = bool(db_health.get("healthy"))
    database_check = {"ok": db_ok, "latency_ms": _elapsed_ms(started)}
    if "pool_stats" in db_health:
        database_check["pool_stats"] = db_health["pool_stats"]
    if not db_ok:
        database_check["error"] = db_health.get("error", "Database unhealthy")

    issues = _configuration_issues()
    checks = {
        "redis": redis_check,
        "database": database_check,
        "configuration": {
            "ok": not issues,
            "issues": issues or None,
            "environment": settings.environment,
        },
    }
    overall_ok = all(check["ok"] for check in checks.values())
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
