"""Async SQLAlchemy engine, session factory and FastAPI session dependency."""

from collections.abc import AsyncIterator
from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from loandesk.config import settings


def pool_options(url: str, *, size: int, overflow: int, timeout: float) -> dict:
    """Queue-pool sizing; SQLite URLs keep the dialect's own pool."""
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": size, "max_overflow": overflow, "pool_timeout": timeout}


engine = create_async_engine(settings.database_url, echo=settings.database_echo)

# Sequence allocations get their own small pool with a short checkout timeout
counter_engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    **pool_options(
        settings.database_url,
        size=settings.sequence_pool_size,
        overflow=0,
        timeout=settings.sequence_pool_timeout,
    ),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a session per request; commit on success, roll back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always hands back UTC datetimes.

    SQLite drops the offset on write; values read back naive are tagged UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
