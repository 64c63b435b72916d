"""Database engine factory."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from rtsp_recorder.db.dialect import DialectHelper


def create_async_engine_for_dsn(dsn: str, **overrides: object) -> AsyncEngine:
    """Build an async engine for `dsn` with pool options suited to its dialect.

    Raises:
        ValueError: If the DSN names an unsupported database
    """
    dialect = DialectHelper.from_dsn(dsn)
    url = DialectHelper.normalize_dsn(dsn)
    options = {**dialect.engine_options(url), **overrides}
    return create_async_engine(url, **options)
