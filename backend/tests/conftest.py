"""
Pytest fixtures for test database, client, and scheduling data.

Each test gets its own SQLite file (through aiosqlite) with the full schema
created from the models, so tests are isolated and need no running
PostgreSQL or Redis. Every session opens its own connection, which keeps
transaction boundaries as real as they are in production.
"""

import os

# Must be set before booking_engine reads its settings
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("STUDIO_TIMEZONE", "UTC")
os.environ.setdefault("NOTIFIER", "log")

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from booking_engine.core.clock import at_minute
from booking_engine.db.base import Base
from booking_engine.db.session import get_db
from booking_engine.main import app
from booking_engine.models.service import Service
from booking_engine.services import availability_service, catalog_service, ledger_service

TRAINER_ID = 7
CLIENT_ID = 100
MONDAY = 1


def hhmm(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def at(day: date, value: str) -> datetime:
    """UTC timestamp for a wall-clock time on `day` in the studio timezone."""
    return at_minute(day, hhmm(value))


@pytest.fixture
def next_monday() -> date:
    """A Monday one to two weeks out: always bookable, never 'late'."""
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) % 7 + 7)


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a fresh database file, then drop it with the test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'booking_test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session, like get_db."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def trainer_rules(db_session: AsyncSession):
    """Trainer works Mondays 09:00-17:00."""
    rule = await availability_service.create_rule(
        db_session, TRAINER_ID, MONDAY, hhmm("09:00"), hhmm("17:00")
    )
    await db_session.commit()
    return [rule]


@pytest_asyncio.fixture
async def test_service(db_session: AsyncSession) -> Service:
    """60-minute session costing one credit."""
    service = await catalog_service.create_service(
        db_session, name="Personal Training", duration_minutes=60, credits_required=Decimal("1")
    )
    await db_session.commit()
    return service


@pytest_asyncio.fixture
async def short_service(db_session: AsyncSession) -> Service:
    service = await catalog_service.create_service(
        db_session, name="Form Check", duration_minutes=30, credits_required=Decimal("0.5")
    )
    await db_session.commit()
    return service


@pytest_asyncio.fixture
async def paid_service(db_session: AsyncSession) -> Service:
    service = await catalog_service.create_service(
        db_session, name="Drop-in Class", duration_minutes=60, credits_required=Decimal("0"), price_cents=2500
    )
    await db_session.commit()
    return service


@pytest_asyncio.fixture
async def funded_client(db_session: AsyncSession) -> int:
    """Client holding three credits."""
    await ledger_service.grant(db_session, CLIENT_ID, Decimal("3"), note="starter pack")
    await db_session.commit()
    return CLIENT_ID
