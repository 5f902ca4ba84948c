"""Async database engine, session factory, and lifespan management.

Uses SQLAlchemy 2.0 async with the asyncpg driver for PostgreSQL.
Every ticket service receives the session factory and opens one session
(and one transaction) per public operation.
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ticketdesk.config import DatabaseSettings, settings


def create_engine_from_settings(db_settings: DatabaseSettings, *, echo: bool = False) -> AsyncEngine:
    """Build the async engine, passing the statement timeout to PostgreSQL."""
    connect_args: dict[str, Any] = {}
    if db_settings.database_url.startswith("postgresql+asyncpg"):
        connect_args["server_settings"] = {
            "statement_timeout": str(db_settings.statement_timeout_ms),
        }
    return create_async_engine(
        db_settings.database_url,
        echo=echo,
        pool_size=db_settings.pool_size,
        max_overflow=db_settings.max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        connect_args=connect_args,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by all services; objects stay usable after commit."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


# ── Async PostgreSQL engine ──────────────────────────────────────────

engine: AsyncEngine = create_engine_from_settings(settings.db, echo=settings.log_level == "DEBUG")

# ── Session factory ──────────────────────────────────────────────────

async_session_factory = create_session_factory(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session, committing on success.

    Usage:
        async for session in get_session():
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Lifespan helpers ─────────────────────────────────────────────────


async def init_db() -> None:
    """Verify connectivity and, outside production, create missing tables.

    In production, tables are created via Alembic migrations.
    """
    async with engine.begin() as conn:
        # Import here to ensure all models are registered with Base.metadata
        from ticketdesk.models import Base

        if not settings.is_production:
            await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the database engine."""
    await engine.dispose()


@contextlib.asynccontextmanager
async def db_lifespan() -> AsyncGenerator[None, None]:
    """Context manager for database lifecycle.

    Usage:
        async with db_lifespan():
            ...
    """
    await init_db()
    try:
        yield
    finally:
        await close_db()
