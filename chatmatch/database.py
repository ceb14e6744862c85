"""Database configuration and connection management."""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def init_engine(database_url: str, echo: bool = False) -> async_sessionmaker[AsyncSession]:
    """Create the async engine and session factory."""
    global engine, AsyncSessionLocal

    engine = create_async_engine(database_url, echo=echo, future=True)
    AsyncSessionLocal = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    return AsyncSessionLocal


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory, failing if the engine was never created."""
    if AsyncSessionLocal is None:
        raise RuntimeError("Database engine is not initialised")
    return AsyncSessionLocal


async def close_db() -> None:
    """Close database connections on shutdown."""
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None
