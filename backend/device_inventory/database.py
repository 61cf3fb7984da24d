"""Inventory database: async engine, session factory and declarative base."""

from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from device_inventory.config import settings

# stable constraint names so Alembic diffs stay readable
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def build_engine(url: str, pool_size: int | None = None, max_overflow: int | None = None) -> AsyncEngine:
    """Create the async engine; SQLite URLs get the driver's default pool."""
    if make_url(url).get_backend_name() == "sqlite":
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        pool_size=pool_size or settings.db_pool_size,
        max_overflow=max_overflow if max_overflow is not None else settings.db_max_overflow,
        pool_pre_ping=True,
        echo=False,
    )


engine = build_engine(settings.database_url)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for the inventory tables."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """FastAPI dependency — one session per request, rolled back if the handler raises."""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
