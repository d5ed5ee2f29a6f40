"""Database connection and session management"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from shieldmatch.config import Settings, get_settings
from shieldmatch.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(settings: Settings) -> AsyncEngine:
    """Create an async engine for the configured database"""
    if not settings.database_url:
        raise ConfigurationError("database_url is not configured")

    options = {"echo": settings.app_debug, "pool_pre_ping": True}
    if settings.database_url.startswith("postgresql"):
        options.update(pool_size=20, max_overflow=40)
    return create_async_engine(settings.database_url, **options)


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory, creating the engine on first use"""
    global _engine, _session_factory
    if _session_factory is None:
        _engine = create_engine(settings or get_settings())
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def init_db(settings: Settings) -> None:
    """Initialize database connection and create tables if needed"""
    # Import models to register them with Base.metadata
    from shieldmatch.db import models  # noqa: F401

    get_session_factory(settings)
    logger.info("Connecting to database...")
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database connection established successfully")


async def close_db() -> None:
    """Close database connections"""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_factory = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
