from __future__ import annotations

from typing import Tuple

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base declarative class for the metrics tables."""


def normalize_dsn(dsn: str) -> str:
    """Map plain PostgreSQL URLs onto the asyncpg driver."""
    for scheme in ("postgres://", "postgresql://"):
        if dsn.startswith(scheme):
            return "postgresql+asyncpg://" + dsn[len(scheme):]
    return dsn


def create_engine(
    dsn: str, echo: bool = False
) -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    database_url = normalize_dsn(dsn)
    engine = create_async_engine(database_url, echo=echo, future=True, pool_pre_ping=True)
    sessions = async_sessionmaker(engine, expire_on_commit=False)
    return engine, sessions


async def init_db(engine: AsyncEngine) -> None:
    from . import models  # noqa: F401  # ensure models are imported

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
