"""Main FastAPI application for ShieldMatch"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from shieldmatch.api import health, jobs, matching
from shieldmatch.config import get_settings, mask_secret
from shieldmatch.db.database import close_db, init_db
from shieldmatch.exceptions import ConfigurationError
from shieldmatch.utils.logging import setup_logging

settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info("Starting ShieldMatch application...")

    issues = settings.validate_configuration()
    for warning in issues["warnings"]:
        logger.warning(f"Configuration warning: {warning}")
    if issues["errors"]:
        for error in issues["errors"]:
            logger.error(f"Configuration error: {error}")
        raise ConfigurationError("; ".join(issues["errors"]))

    logger.info(f"Job links signed with secret {mask_secret(settings.accept_token_secret)}")
    await init_db(settings)
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down ShieldMatch application...")
    await close_db()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="ShieldMatch API",
    description="""
    ## Contractor matching for disaster-damage claims

    1. **Match** → active contractors are scored by trade, service area and urgency
    2. **Invite** → the top contractors get email/SMS invitations with signed links
    3. **Respond** → the first contractor to accept is assigned the job
    """,
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(matching.router)
app.include_router(jobs.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint"""
    return {
        "name": "ShieldMatch API",
        "version": "0.1.0",
        "status": "operational",
    }
