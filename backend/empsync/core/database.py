"""
Employment Sync Database Connection
SQLAlchemy declarative base plus the async engine used by the API
"""

from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.orm import declarative_base

from empsync.core.config import Settings, get_settings

# Declarative base for models
Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


def to_async_url(url: str) -> str:
    """Normalise a PostgreSQL URL for the asyncpg driver"""
    url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_api_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for FastAPI routes.

    asyncpg driver is used (postgresql+asyncpg://)
    """
    url = to_async_url(settings.DATABASE_URL)
    kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": settings.DB_ECHO,
    }
    if url.startswith("postgresql+asyncpg://"):
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    return create_async_engine(url, **kwargs)


@lru_cache()
def get_api_engine() -> AsyncEngine:
    return create_api_engine(get_settings())


@lru_cache()
def get_async_sessionmaker() -> async_sessionmaker:
    return async_sessionmaker(
        get_api_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI routes to get database session

    Usage:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_async_sessionmaker()() as session:
        try:
            yield session
        finally:
            await session.close()


async def close_db():
    """Close database connection pool"""
    if get_api_engine.cache_info().currsize:
        await get_api_engine().dispose()
        get_async_sessionmaker.cache_clear()
        get_api_engine.cache_clear()


def enum_values(enum_cls) -> list[str]:
    """Persist str enums by value ("running"), not by member name"""
    return [member.value for member in enum_cls]
