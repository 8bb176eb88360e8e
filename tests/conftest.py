"""Shared fixtures for the test suite."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.db import get_session_factory
from app.main import app
from app.quests.catalogue import seed_templates
from app.quests.router import get_clock
from app.quests.tables import create_schema


class FakeClock:
    """Injectable clock; tests move ``now`` by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# SQLite store (file-backed so concurrent sessions see one database)
# ---------------------------------------------------------------------------

def _enforce_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def sqlite_engine(path):
    """File-backed SQLite engine that enforces foreign keys like Postgres."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    event.listen(engine.sync_engine, "connect", _enforce_foreign_keys)
    return engine


@pytest.fixture()
async def db_engine(tmp_path):
    engine = sqlite_engine(tmp_path / "quests.db")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def unseeded_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def session_factory(unseeded_factory):
    async with unseeded_factory() as session:
        await seed_templates(session)
        await session.commit()
    return unseeded_factory


@pytest.fixture()
def clock():
    # Wednesday of ISO week 2025-03-03 .. 2025-03-09
    return FakeClock(utc(2025, 3, 5, 12, 0))


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture()
def override_dependencies(session_factory, clock):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(override_dependencies):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
