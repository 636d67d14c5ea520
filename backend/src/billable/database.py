"""Database session management with async SQLAlchemy."""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from billable.config import settings

_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(url: str | None = None, **kwargs) -> AsyncEngine:  # noqa: ANN003
    """
    Create an async engine.

    Args:
        url: Connection string (defaults to settings.database_url)
        **kwargs: Extra create_async_engine options

    Returns:
        AsyncEngine: Configured engine
    """
    url = url or settings.database_url
    options = {"echo": settings.debug, "pool_pre_ping": True}
    # SQLite uses a static/null pool that rejects sizing arguments
    if not url.startswith("sqlite"):
        options.update(pool_size=20, max_overflow=10)
    options.update(kwargs)
    return create_async_engine(url, **options)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Yields:
        AsyncSession: Database session committed on success, rolled back on error
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = build_sessionmaker(build_engine())

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Declarative base for all models
Base = declarative_base()
