"""
Database Session Management

Provides async SQLAlchemy engine and session factory construction.
"""

from __future__ import annotations

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite engines use the
    dialect's default pool.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return create_async_engine(url, echo=echo)

    return create_async_engine(
        url,
        echo=echo,  # Set True for SQL debugging
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
