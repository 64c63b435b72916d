"""Database abstraction layer for SQLite and PostgreSQL support."""

from rtsp_recorder.db.dialect import DialectHelper, detect_dialect_from_dsn
from rtsp_recorder.db.engine import create_async_engine_for_dsn

__all__ = [
    "DialectHelper",
    "create_async_engine_for_dsn",
    "detect_dialect_from_dsn",
]
