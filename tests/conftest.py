"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across unit and integration tests.

Integration tests run against a throwaway SQLite file per test (aiosqlite
driver), so transactions, version checks and rollbacks are real.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Add the project root to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file from project root BEFORE any fixtures run
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

# Settings are read at import time; never point tests at a real server
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ["REVIEW_RETRY_WAIT_SECONDS"] = "0"

from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from study_scheduler.db.base import init_db  # noqa: E402
from study_scheduler.services.scheduling import (  # noqa: E402
    SchedulingParameters,
    SchedulingService,
)

# ============================================================================
# Time
# ============================================================================


@pytest.fixture
def t0() -> datetime:
    """Fixed reference time with microseconds, to catch precision loss."""
    return datetime(2026, 3, 2, 9, 30, 15, 123456, tzinfo=timezone.utc)


# ============================================================================
# Scheduling Parameters
# ============================================================================


@pytest.fixture
def params() -> SchedulingParameters:
    """Default SM-2 parameters, independent of any local config overrides."""
    return SchedulingParameters()


# ============================================================================
# Mock Database
# ============================================================================


@pytest.fixture
def mock_db_session() -> MagicMock:
    """
    Create a mock async database session.

    Use for unit tests that need to mock database operations.
    """
    session = MagicMock(spec=AsyncSession)
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.add = MagicMock()
    return session


# ============================================================================
# SQLite Database
# ============================================================================


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Engine bound to a fresh SQLite file with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scheduler.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """A session on the test database."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def service(db_session: AsyncSession, params: SchedulingParameters) -> SchedulingService:
    """SchedulingService on the test database with default parameters."""
    return SchedulingService(db_session, params)
