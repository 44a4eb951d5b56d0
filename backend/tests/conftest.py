from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest_asyncio
from sqlalchemy.pool import StaticPool

from meterdash.core.database import Database
from meterdash.models.database import MeterReading, MeteringPoint, User


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def database():
    db = Database(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def seeded_database(database: Database):
    """Two metering points with a few consumption and production readings."""
    async with database.session() as session:
        user = User(email="owner@example.com", name="Owner")
        session.add(user)
        await session.flush()
        session.add_all([
            MeteringPoint(gsrn="P1", user_id=user.id, name="House"),
            MeteringPoint(gsrn="P2", user_id=user.id, name=None),
        ])
        await session.flush()
        rows = [
            ("P1", "consumption", utc(2025, 4, 11, 10, 0), "0.250"),
            ("P1", "consumption", utc(2025, 4, 11, 10, 15), "0.125"),
            ("P1", "consumption", utc(2025, 4, 11, 11, 0), "0.500"),
            ("P1", "production", utc(2025, 4, 11, 10, 0), "1.000"),
            ("P2", "consumption", utc(2025, 4, 11, 10, 0), "2.000"),
            ("P2", "consumption", utc(2025, 4, 12, 9, 30), "3.000"),
        ]
        session.add_all([
            MeterReading(
                metering_point_id=gsrn,
                reading_type_code=code,
                timestamp=ts,
                value=Decimal(value),
                user_id=user.id,
            )
            for gsrn, code, ts, value in rows
        ])
    return database
