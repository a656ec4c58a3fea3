"""
Database Session Management

Provides the async SQLAlchemy engine and session factory for PostgreSQL.

The engine is built once at application start (see ``main.lifespan``) and
kept on ``app.state``; nothing here connects at import time.
"""

from __future__ import annotations

from typing import AsyncGenerator, Tuple
from fastapi import Request
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)


def create_session_factory(
    database_url: str,
    echo: bool = False,
) -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Create the async engine and its session factory.

    Parameters
    ----------
    database_url : str
        SQLAlchemy URL using the asyncpg driver.
    echo : bool
        Log emitted SQL (debugging only).
    """
    engine = create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )

    factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, factory


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI endpoints that need database access.

    Usage:
        @router.get("/items")
        async def get_items(session: AsyncSession = Depends(get_async_session)):
            ...
    """
    factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
