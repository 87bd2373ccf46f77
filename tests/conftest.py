# tests/conftest.py

import os
from collections.abc import AsyncIterator

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

# Point the app at a process-local in-memory DB before any app module builds an
# engine. A file-backed SQLite can be selected for debugging.
if os.environ.get("STORYLOOM_TEST_USE_FILE_SQLITE") == "1":
    test_db_path = os.path.abspath(
        os.environ.get("STORYLOOM_TEST_DB_PATH", "./storyloom_test.sqlite3")
    )
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"
else:
    os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

if os.environ.get("STORYLOOM_SQLITE_STATIC_POOL", "1") != "0":
    os.environ["STORYLOOM_SQLITE_STATIC_POOL"] = "1"

# Storyloom.db may already have read settings; pin the module-level URL before
# any engine is created.
import Storyloom.db as _db

_db.DATABASE_URL = os.environ["DATABASE_URL"]

# Register every ORM table on Base.metadata before create_all
from Storyloom import models as _models  # noqa: F401,E402
from Storyloom.db import Base, get_engine, get_sessionmaker  # noqa: E402
from Storyloom.metrics import reset_counters  # noqa: E402


def _forget_engine() -> None:
    _db._engine = None
    _db._sessionmaker = None
    _db._schema_initialized = True


# Each test gets a fresh engine bound to its own event loop and a freshly
# created schema; session_scope() commits, so nothing else would isolate tests.
@pytest.fixture(autouse=True)
async def _fresh_db_per_test() -> AsyncIterator[None]:
    _forget_engine()
    engine = get_engine()
    async with engine.begin() as conn:
        is_sqlite = conn.dialect.name == "sqlite"
        if is_sqlite:
            await conn.execute(sa.text("PRAGMA foreign_keys=OFF"))
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
        if is_sqlite:
            await conn.execute(sa.text("PRAGMA foreign_keys=ON"))
    reset_counters()
    try:
        yield None
    finally:
        await engine.dispose()
        _forget_engine()


@pytest.fixture
async def db() -> AsyncIterator[AsyncSession]:
    sm = get_sessionmaker()
    async with sm() as s:
        try:
            yield s
        finally:
            await s.rollback()
            await s.close()
