"""
Async SQLAlchemy engine and sessions for the order records.

PostgreSQL (``asyncpg``) in production, SQLite (``aiosqlite``) for local
runs and tests. Alembic owns the schema; nothing here issues DDL.
"""
from __future__ import annotations

import contextlib
import logging
from typing import Any, AsyncGenerator, AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from huggnote.config import settings

logger = logging.getLogger(__name__)

_SQLITE_FALLBACK_URL = "sqlite+aiosqlite:///./huggnote.db"


class Base(DeclarativeBase):
    """Declarative base for the ``huggnote.db.models`` tables."""
    pass


# Set by init_db() during the FastAPI lifespan
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    url = settings.database_url
    if not url:
        logger.warning("⚠️ HUGGNOTE_DATABASE_URL unset, using %s", _SQLITE_FALLBACK_URL)
        url = _SQLITE_FALLBACK_URL
    return url


def _redacted(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    # Claims and generations cascade with their form; SQLite needs this per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def init_db() -> None:
    """Create the engine and session factory (call once at startup)."""
    global _engine, _async_session_factory

    database_url = get_database_url()
    logger.info("Connecting to database: %s", _redacted(database_url))

    engine_args: dict[str, Any] = {"echo": settings.debug}
    if database_url.startswith("sqlite"):
        engine_args["connect_args"] = {"check_same_thread": False}
    else:
        engine_args["pool_pre_ping"] = True

    _engine = create_async_engine(database_url, **engine_args)
    if database_url.startswith("sqlite"):
        event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Mappers must be configured before the first query.
    from huggnote.db import models  # noqa: F401

    logger.info("✅ Database ready")


async def close_db() -> None:
    global _engine, _async_session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection closed")


def _require_factory() -> async_sessionmaker[AsyncSession]:
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one session per request, committed on success.

    Usage:
        @router.get("/compose/forms/{form_id}")
        async def get_form(form_id: str, db: AsyncSession = Depends(get_db)):
            ...
    """
    async with _require_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@contextlib.asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Transactional session outside a request (startup housekeeping)."""
    async with _require_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
