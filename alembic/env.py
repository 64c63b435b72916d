"""Alembic environment for the recordings schema (SQLite or PostgreSQL).

The target database comes from DB_DSN (environment or `.env`), falling back
to `sqlalchemy.url` in alembic.ini.
"""

from __future__ import annotations

import asyncio
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

_SRC = Path(__file__).resolve().parents[1] / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from rtsp_recorder.db import DialectHelper  # noqa: E402
from rtsp_recorder.settings import EnvSettings  # noqa: E402
from rtsp_recorder.store.database import Base  # noqa: E402

alembic_config = context.config
if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name, disable_existing_loggers=False)

# SQLite needs batch mode for ALTER TABLE.
_CONFIGURE_OPTIONS = {
    "target_metadata": Base.metadata,
    "compare_type": True,
    "render_as_batch": True,
}


def _database_url() -> str:
    dsn = EnvSettings().db_dsn or alembic_config.get_main_option("sqlalchemy.url")
    if not dsn:
        raise RuntimeError("Set DB_DSN to the recordings database before running alembic.")
    return DialectHelper.normalize_dsn(dsn)


def _migrate(connection: Connection) -> None:
    context.configure(connection=connection, **_CONFIGURE_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    engine = create_async_engine(_database_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    context.configure(
        url=_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_CONFIGURE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()
else:
    asyncio.run(_migrate_online())
