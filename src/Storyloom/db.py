# src/Storyloom/db.py
from __future__ import annotations

import contextlib
import os
from collections.abc import AsyncIterator
from typing import Any

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from Storyloom.config import load_settings

log = structlog.get_logger()

_ASYNC_DRIVERS = (
    ("postgresql://", "postgresql+asyncpg://"),
    ("sqlite://", "sqlite+aiosqlite://"),
)


def _normalize_url(url: str) -> str:
    """Swap a plain sync URL for its async-driver equivalent."""
    for sync_prefix, async_prefix in _ASYNC_DRIVERS:
        if url.startswith(sync_prefix):
            return async_prefix + url[len(sync_prefix):]
    return url


DATABASE_URL = _normalize_url(load_settings().database_url)


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None
_schema_initialized: bool = False


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite+aiosqlite://") and ":memory:" in url


def _engine_kwargs(url: str) -> dict[str, Any]:
    if url.startswith("sqlite+aiosqlite://"):
        kwargs: dict[str, Any] = {"connect_args": {"timeout": 30}}
        # One shared connection, or an in-memory schema vanishes between sessions
        if _is_memory_sqlite(url) or os.environ.get("STORYLOOM_SQLITE_STATIC_POOL") == "1":
            kwargs["poolclass"] = StaticPool
        return kwargs
    if url.startswith("postgresql+asyncpg://"):
        return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10, "pool_timeout": 30}
    return {}


def get_engine() -> AsyncEngine:
    global _engine, _sessionmaker
    if _engine is None:
        _engine = create_async_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
        _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
        url = make_url(DATABASE_URL)
        log.info(
            "db.connection.config",
            backend=url.get_backend_name(),
            driver=url.drivername,
            host=url.host or "",
            database=url.database or "",
        )
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        get_engine()
    return _sessionmaker  # type: ignore[return-value]


async def _ensure_schema_created_if_needed() -> None:
    """In-memory SQLite never sees a migration, so build its tables on first use."""
    global _schema_initialized
    if _schema_initialized:
        return
    if _is_memory_sqlite(DATABASE_URL):
        from Storyloom import models as _models  # noqa: F401

        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    _schema_initialized = True


@contextlib.asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One transaction: commit on success, roll back and re-raise on error."""
    await _ensure_schema_created_if_needed()
    async with get_sessionmaker()() as s:
        try:
            yield s
            await s.commit()
        except Exception:
            log.error("db.session.error", exc_info=True)
            await s.rollback()
            raise
