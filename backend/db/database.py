"""SQLAlchemy async database setup and engine configuration."""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings

settings = get_settings()


def create_db_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create and configure async SQLAlchemy engine.

    Returns:
        Async SQLAlchemy engine instance.
    """
    url = database_url or settings.DATABASE_URL
    is_sqlite = url.startswith("sqlite")
    kwargs = dict(echo=settings.SQLALCHEMY_ECHO)
    if not is_sqlite:
        kwargs.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async session factory.

    Args:
        engine: SQLAlchemy async engine instance.

    Returns:
        Async sessionmaker instance.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory instances
engine = create_db_engine()
AsyncSessionLocal = create_session_factory(engine)


async def init_db(db_engine: Optional[AsyncEngine] = None) -> None:
    """Create tables for all registered models.

    This should be called once at application startup. Failing to reach the
    database here is fatal for the process.
    """
    from db.base import Base
    import db.models  # noqa: F401  (registers the models)

    async with (db_engine or engine).begin() as conn:
        await conn.execute(text("SELECT 1"))
        await conn.run_sync(Base.metadata.create_all)


async def close_db(db_engine: Optional[AsyncEngine] = None) -> None:
    """Close database connections.

    This should be called at application shutdown.
    """
    await (db_engine or engine).dispose()
