"""Health and readiness endpoints"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shieldmatch.config import Settings, get_settings
from shieldmatch.db.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter()


def channel_state(enabled: bool, configured: bool, production: bool) -> str:
    """How a notification channel will behave when a workflow runs.

    Unconfigured channels simulate delivery outside production and fail
    inside it, so in production they count against readiness.
    """
    if not enabled:
        return "disabled"
    if configured:
        return "configured"
    return "unavailable" if production else "simulated"


def _enabled_channels(settings: Settings) -> list[str]:
    channels = []
    if settings.enable_email:
        channels.append("email")
    if settings.enable_sms:
        channels.append("sms")
    return channels


@router.get("/")
async def health_check(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "ShieldMatch API",
        "environment": settings.app_env,
        "channels": _enabled_channels(settings),
    }


@router.get("/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Whether a matching run and the job links would work right now"""
    checks: dict[str, str] = {}

    try:
        result = await db.execute(text("SELECT 1"))
        checks["database"] = "healthy" if result.scalar() == 1 else "unhealthy"
    except SQLAlchemyError as e:
        logger.error(f"Database readiness check failed: {e}")
        checks["database"] = "unhealthy"

    secret = settings.accept_token_secret
    checks["token_secret"] = "configured" if secret and secret.get_secret_value() else "missing"

    checks["email"] = channel_state(
        settings.enable_email, settings.is_email_configured(), settings.is_production
    )
    checks["sms"] = channel_state(
        settings.enable_sms, settings.is_sms_configured(), settings.is_production
    )

    ready = (
        checks["database"] == "healthy"
        and checks["token_secret"] == "configured"
        and "unavailable" not in (checks["email"], checks["sms"])
    )
    if not ready:
        logger.warning(f"Service not ready: {checks}")

    return {
        "status": "ready" if ready else "not_ready",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
