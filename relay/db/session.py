"""Database engine and sessions.

One async engine per process, created on first use from
``settings.database``. Requests get a session through
``get_session_dependency``; background sweeps open their own with
``get_async_session``. Either way a session is one unit of work: committed
when the block exits cleanly, rolled back if it raises.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

# Registers every table with SQLModel metadata
import relay.models  # noqa: F401
from relay.config import get_settings

logger = structlog.get_logger()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _connect() -> async_sessionmaker[AsyncSession]:
    global _engine, _session_factory
    if _session_factory is None:
        database = get_settings().database
        _prepare_sqlite_path(database.url)
        _engine = create_async_engine(database.url, echo=database.echo)
        # Managers hand rows back after commit; keep them loaded
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


def _prepare_sqlite_path(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    if not parsed.database or parsed.database == ":memory:":
        return
    Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


async def init_db() -> None:
    """Create missing tables. There are no migrations; schema changes need a fresh database."""
    _connect()
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("db.init", url=_engine.url.render_as_string(hide_password=True))


async def close_db() -> None:
    """Dispose the engine; the next use creates a new one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Open a session for one unit of work outside a request.

    Usage:
        async with get_async_session() as session:
            ...
    """
    async with _connect()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with get_async_session() as session:
        yield session
