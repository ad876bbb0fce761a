"""Async SQLAlchemy engine, session and schema helpers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import MetaData, event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import ServiceSettings

_ENGINES: dict[str, AsyncEngine] = {}
_SESSION_FACTORIES: dict[str, async_sessionmaker[AsyncSession]] = {}


def _enforce_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    # SQLite ignores ON DELETE CASCADE unless enabled per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def create_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Return the process-wide AsyncEngine for ``database_url``, creating it once."""

    engine = _ENGINES.get(database_url)
    if engine is None:
        engine = create_async_engine(database_url, pool_pre_ping=True, **kwargs)
        if make_url(database_url).get_backend_name() == "sqlite":
            event.listen(engine.sync_engine, "connect", _enforce_sqlite_foreign_keys)
        _ENGINES[database_url] = engine
    return engine


def get_session_factory(database_url: str) -> async_sessionmaker[AsyncSession]:
    factory = _SESSION_FACTORIES.get(database_url)
    if factory is None:
        factory = async_sessionmaker(create_engine(database_url), expire_on_commit=False)
        _SESSION_FACTORIES[database_url] = factory
    return factory


async def ensure_schema(database_url: str, metadata: MetaData) -> None:
    """Create the tables in ``metadata`` that do not exist yet."""

    async with create_engine(database_url).begin() as conn:
        await conn.run_sync(metadata.create_all)


@asynccontextmanager
async def lifespan_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """One unit of work: commit when the block succeeds, roll back when it raises."""

    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


def resolve_database_url(settings: ServiceSettings, fallback: str) -> str:
    return settings.database_url or fallback


async def dispose_engines() -> None:
    """Close pooled connections and forget every cached engine."""

    engines = list(_ENGINES.values())
    _ENGINES.clear()
    _SESSION_FACTORIES.clear()
    for engine in engines:
        await engine.dispose()
