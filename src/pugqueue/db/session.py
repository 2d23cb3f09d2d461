"""Database session management."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for a database URL."""
    return create_async_engine(database_url, echo=False, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine.

    Usage:
        async with factory() as session:
            # use session
            await session.commit()
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
