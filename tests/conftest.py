"""Shared fixtures.

Tests use a file-backed SQLite database in ``tmp_path`` so that several
sessions (simulating concurrent requests) can see each other's commits.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import relay.models  # noqa: F401
from relay.config import Settings
from tests.fakes import FakeMediaStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Test settings: temp database and media root, sweeps off."""
    return Settings(
        database={"url": f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}"},
        media={"backend": "local", "local": {"root_path": str(tmp_path / "media")}},
        gc={"enabled": False},
    )


@pytest.fixture
async def session_factory(settings: Settings) -> AsyncIterator[sessionmaker]:
    engine = create_async_engine(settings.database.url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory: sessionmaker) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def media_store() -> FakeMediaStore:
    return FakeMediaStore()


@pytest.fixture
async def client(
    settings: Settings,
    session_factory: sessionmaker,
    media_store: FakeMediaStore,
) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client bound to an app wired to the test database and store."""
    from relay.api.dependencies import get_media_store
    from relay.db.session import get_session_dependency
    from relay.main import create_app

    app = create_app()

    async def override_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session_dependency] = override_session
    app.dependency_overrides[get_media_store] = lambda: media_store

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as c:
        yield c
