"""Pytest configuration and fixtures"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shieldmatch.config import Settings
from shieldmatch.db import models  # noqa: F401
from shieldmatch.db.database import Base
from shieldmatch.schemas.matching import ProjectDetails
from shieldmatch.services.tokens import TokenService
from tests.factories import NOW, TEST_SECRET, make_project

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        accept_token_secret=TEST_SECRET,
        app_base_url="https://app.test",
        app_env="test",
        enable_email=True,
        enable_sms=False,
    )


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(TEST_SECRET, clock=lambda: NOW.timestamp())


@pytest.fixture
def project() -> ProjectDetails:
    return make_project()


@pytest_asyncio.fixture
async def test_db() -> AsyncGenerator[AsyncSession, None]:
    """In-memory SQLite session with all tables created"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with TestSessionLocal() as session:
        yield session

    await engine.dispose()
