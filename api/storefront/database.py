# storefront/database.py
"""
Async database access for the storefront.

Postgres (asyncpg) in deployment; any SQLAlchemy async URL can be supplied
through DATABASE_URL, which is how the test-suite runs on aiosqlite.
"""
from __future__ import annotations
from typing import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from storefront.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by every table in db_models."""


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    return (
        f"postgresql+asyncpg://{settings.DB_USER}:{settings.DB_PASSWORD}"
        f"@{settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}"
    )


async def init_db(create_tables: bool = False) -> None:
    """Create the engine once; optionally create missing tables."""
    global _engine, _session_factory
    if _engine is not None:
        return

    url = get_database_url()
    options = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
    _engine = create_async_engine(url, **options)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    if create_tables:
        from storefront import db_models  # noqa: F401  registers tables on Base.metadata
        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None


async def _open_session() -> AsyncSession:
    if _session_factory is None:
        await init_db()
    return _session_factory()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one session per request, committed when the handler
    returns and rolled back if it raises.

        @router.get("/api/things")
        async def things(db: AsyncSession = Depends(get_session)): ...
    """
    async with await _open_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncIterator[AsyncSession]:
    """Same commit/rollback contract as get_session, for code outside a request."""
    async with await _open_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_db_health() -> dict:
    try:
        async with get_session_context() as db:
            (await db.execute(text("SELECT 1"))).scalar()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}


@asynccontextmanager
async def transaction(session: AsyncSession):
    """
    Commit the enclosed writes as one unit; roll back and re-raise on failure.

        async with transaction(db):
            db.add(order)
            db.add(item)
    """
    try:
        yield
        await session.commit()
    except Exception:
        await session.rollback()
        raise
