"""
Database Base Configuration

Sets up the async SQLAlchemy engine and session management.

Usage:
    from study_scheduler.db.base import async_session_maker, Base

    async with async_session_maker() as session:
        service = SchedulingService(session)
        ...
"""

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from study_scheduler.config import settings, yaml_config


# Get pool configuration from yaml config
db_config: dict[str, Any] = yaml_config.get("database", {})
pool_size: int = db_config.get("pool_size", 5)
max_overflow: int = db_config.get("max_overflow", 10)
pool_timeout: int = db_config.get("pool_timeout", 30)


def create_engine_from_settings(url: str = None) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    Pool sizing only applies to server databases; SQLite picks its own pool.

    Args:
        url: SQLAlchemy URL (defaults to settings.SQLALCHEMY_URL)
    """
    url = url or settings.SQLALCHEMY_URL
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.DEBUG)

    return create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        echo=settings.DEBUG,
    )


# Create async engine
engine = create_engine_from_settings()

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# Import models AFTER Base is defined to avoid circular imports.
# This ensures all models are registered with Base.metadata.
from study_scheduler.db import models  # noqa: F401, E402


async def init_db(bind: AsyncEngine = None) -> None:
    """
    Initialize database tables.

    Creates tables that don't exist. For production, use Alembic
    migrations instead.
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
