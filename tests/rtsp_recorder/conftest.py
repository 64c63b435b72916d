"""Shared pytest fixtures for recorder tests.

Provides a parametrized metadata store fixture that runs against SQLite and,
when TEST_DB_DSN is set, PostgreSQL.
"""

from __future__ import annotations

import os
import sys
from collections.abc import AsyncGenerator
from pathlib import Path

# Add src to sys.path for imports
src_path = Path(__file__).parent.parent.parent / "src"
if str(src_path.resolve()) not in sys.path:
    sys.path.insert(0, str(src_path.resolve()))

import pytest

from rtsp_recorder.store.database import Base, SQLAlchemyRecordingStore
from tests.rtsp_recorder.mocks import FakeClock, FakeLauncher, MockRecordingStore

# =============================================================================
# Database Backend Configuration
# =============================================================================


def _get_postgres_dsn() -> str | None:
    """Get PostgreSQL DSN from environment, or None if unavailable."""
    if os.environ.get("SKIP_POSTGRES_TESTS", "0") == "1":
        return None
    return os.environ.get("TEST_DB_DSN")


@pytest.fixture(params=["sqlite", "postgresql"])
def db_backend(request: pytest.FixtureRequest) -> str:
    """Parametrize tests to run against both database backends.

    PostgreSQL runs only when TEST_DB_DSN points at a reachable server.
    """
    backend = request.param
    if backend == "postgresql" and _get_postgres_dsn() is None:
        pytest.skip("TEST_DB_DSN not set, skipping PostgreSQL tests")
    return backend


@pytest.fixture
def db_dsn(db_backend: str, tmp_path: Path) -> str:
    """Return the DSN for the database backend."""
    if db_backend == "sqlite":
        return f"sqlite+aiosqlite:///{tmp_path / 'recordings.db'}"
    pg_dsn = _get_postgres_dsn()
    assert pg_dsn is not None, "PostgreSQL DSN should be available"
    return pg_dsn


@pytest.fixture
async def recording_store(db_dsn: str) -> AsyncGenerator[SQLAlchemyRecordingStore, None]:
    """Create and initialize a recording store with fresh tables.

    Yields:
        Initialized SQLAlchemyRecordingStore instance
    """
    store = SQLAlchemyRecordingStore(db_dsn, create_tables=True)
    initialized = await store.initialize()
    assert initialized, f"Failed to initialize recording store with {db_dsn}"

    if store._engine is not None:
        async with store._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    yield store

    await store.shutdown()


# =============================================================================
# Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_store() -> MockRecordingStore:
    """Return an in-memory MockRecordingStore."""
    return MockRecordingStore()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Return a FakeClock starting at 2024-05-01 12:00 UTC."""
    return FakeClock()


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    """Return a FakeLauncher whose processes stay up until signalled."""
    return FakeLauncher()
