from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text

from app.core.settings import settings
from app.db.session import engine
from app.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"


async def _check_db() -> dict[str, str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        return {"status": "error", "error": str(exc)}


async def _check_redis() -> dict[str, str]:
    try:
        await get_redis_client().ping()
        return {"status": "ok"}
    except Exception as exc:
        return {"status": "error", "error": str(exc)}


def _check_twilio() -> dict[str, str]:
    configured = all(
        (settings.twilio_account_sid, settings.twilio_auth_token, settings.twilio_verify_service_sid)
    )
    return {"status": "ok" if configured else "unconfigured"}


async def live_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def ready_payload() -> dict[str, Any]:
    checks = {
        "database": await _check_db(),
        "redis": await _check_redis(),
    }
    ready = all(check.get("status") == "ok" for check in checks.values())
    # Reported only; does not gate readiness.
    checks["twilio_verify"] = _check_twilio()
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "environment": settings.environment,
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
