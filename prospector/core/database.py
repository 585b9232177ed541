# ──── Usage Guide ────
# Module code takes an AsyncSession argument; entry points (jobs, CLI,
# scheduler) open one with:
#     async with get_async_db() as session:
#         result = await session.execute(select(Model).where(...))
#
# DATABASE: PostgreSQL in production. SQLite (aiosqlite) for tests and local runs.

from contextlib import asynccontextmanager
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import MetaData
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from prospector.core.config import settings


class ToDictMixin:
    """Mixin to add dictionary serialization to models."""
    def to_dict(self):
        """Convert model instance to dictionary."""
        from sqlalchemy import inspect
        import datetime
        from enum import Enum

        result = {}
        for key in inspect(self).mapper.column_attrs.keys():
            value = getattr(self, key)
            if isinstance(value, (datetime.datetime, datetime.date)):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = float(value)
            elif isinstance(value, Enum):
                result[key] = value.value
            else:
                result[key] = value
        return result


class Base(ToDictMixin, DeclarativeBase):
    metadata = MetaData()


def async_database_url(url: str) -> str:
    """Map a plain database URL onto its async driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and "aiosqlite" not in url:
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


# ──── Single Async Engine ────
engine = create_async_engine(async_database_url(settings.database_url), echo=False, future=True)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_async_db() -> AsyncSession:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ──── Helpers ────
SCORE_QUANTUM = Decimal("0.01")


def to_score_decimal(value: Optional[float]) -> Optional[Decimal]:
    """Quantize a [0, 1] score to the two-decimal precision stored in the database."""
    if value is None:
        return None
    clamped = min(max(float(value), 0.0), 1.0)
    return Decimal(str(clamped)).quantize(SCORE_QUANTUM, rounding=ROUND_HALF_UP)


async def insert_ignore(session: AsyncSession, model, rows: Iterable[Dict[str, Any]]) -> int:
    """
    INSERT ... ON CONFLICT DO NOTHING for every row.

    Unique indexes decide what counts as a duplicate, so concurrent writers
    cannot create two rows the indexes forbid. Returns the number of rows
    actually inserted.
    """
    rows = list(rows)
    if not rows:
        return 0

    dialect = session.get_bind().dialect.name
    insert_fn = postgresql.insert if dialect == "postgresql" else sqlite.insert

    inserted = 0
    for row in rows:
        stmt = insert_fn(model).values(**row).on_conflict_do_nothing()
        result = await session.execute(stmt)
        inserted += result.rowcount or 0
    return inserted
