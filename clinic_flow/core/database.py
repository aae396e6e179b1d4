"""Database engine and async session factory."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from clinic_flow.config import get_settings
from clinic_flow.core.models import Base, Room, ShortStayBed

logger = logging.getLogger(__name__)


def build_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    if not url.startswith("sqlite") and "poolclass" not in kwargs:
        settings = get_settings()
        kwargs.setdefault("pool_size", settings.database_pool_size)
        kwargs.setdefault("max_overflow", settings.database_max_overflow)
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=False, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@lru_cache
def _get_engine() -> AsyncEngine:
    return build_engine(get_settings().database_url)


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(
    engine: AsyncEngine | None = None,
    rooms: int | None = None,
    beds: int | None = None,
) -> None:
    """Create all tables and seed rooms and beds (dev only; production uses migrations)."""
    engine = engine or _get_engine()
    await create_tables(engine)
    await seed_resources(build_session_factory(engine), rooms=rooms, beds=beds)


async def seed_resources(
    session_factory: async_sessionmaker[AsyncSession],
    rooms: int | None = None,
    beds: int | None = None,
) -> tuple[int, int]:
    """Create numbered exam rooms and short-stay beds that do not exist yet.

    Returns the number of rooms and beds inserted.
    """
    settings = get_settings()
    rooms = settings.seed_exam_rooms if rooms is None else rooms
    beds = settings.seed_short_stay_beds if beds is None else beds

    async with session_factory() as session:
        existing_rooms = set((await session.execute(select(Room.room_number))).scalars().all())
        existing_beds = set((await session.execute(select(ShortStayBed.bed_number))).scalars().all())

        new_rooms = [
            Room(room_number=str(n), room_name=f"Exam Room {n}", room_type="exam")
            for n in range(1, rooms + 1)
            if str(n) not in existing_rooms
        ]
        new_beds = [
            ShortStayBed(bed_number=f"SSU-{n}", bed_name=f"Bed {n}")
            for n in range(1, beds + 1)
            if f"SSU-{n}" not in existing_beds
        ]
        session.add_all([*new_rooms, *new_beds])
        await session.commit()

    if new_rooms or new_beds:
        logger.info("Seeded %d exam rooms and %d short-stay beds", len(new_rooms), len(new_beds))
    return len(new_rooms), len(new_beds)
