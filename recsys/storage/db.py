"""Database engine and session configuration."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from recsys.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./recsys.db"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def create_engine(database_url: str | None = None, log_level: str = "INFO") -> AsyncEngine:
    """Create an async database engine.

    Args:
        database_url: SQLAlchemy URL (defaults to a local SQLite file)
        log_level: Echo SQL when DEBUG

    Returns:
        AsyncEngine instance
    """
    url = database_url or DEFAULT_DATABASE_URL
    logger.info(f"Creating database engine for {url}")
    return create_async_engine(
        url,
        echo=log_level.upper() == "DEBUG",
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``.

    Returns:
        Session factory for creating database sessions
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
