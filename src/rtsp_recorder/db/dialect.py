"""SQLite and PostgreSQL differences, kept out of the recording store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from sqlalchemy import Table
    from sqlalchemy.dialects.postgresql import Insert as PgInsert
    from sqlalchemy.dialects.sqlite import Insert as SqliteInsert

SUPPORTED_DIALECTS = ("postgresql", "sqlite")

# Plain scheme -> scheme with the async driver the engine needs.
_ASYNC_SCHEMES = (
    ("postgresql://", "postgresql+asyncpg://"),
    ("postgres://", "postgresql+asyncpg://"),
    ("sqlite://", "sqlite+aiosqlite://"),
)

# Class 08 is connection trouble; the rest are deadlock, serialization,
# too many connections and server shutdown/startup.
_TRANSIENT_PG_SQLSTATE_CLASS = "08"
_TRANSIENT_PG_SQLSTATES = frozenset({"40P01", "40001", "53300", "57P01", "57P02", "57P03"})

_SQLITE_BUSY_MARKERS = ("database is locked", "database is busy")


class DialectHelper:
    """Statement building, error classification and engine options per dialect.

    Usually created with `DialectHelper.from_dsn(dsn)`.
    """

    def __init__(self, dialect_name: str) -> None:
        if dialect_name not in SUPPORTED_DIALECTS:
            raise ValueError(f"Unsupported dialect: {dialect_name}")
        self.dialect_name = dialect_name

    @classmethod
    def from_dsn(cls, dsn: str) -> DialectHelper:
        return cls(detect_dialect_from_dsn(dsn))

    @property
    def is_postgres(self) -> bool:
        return self.dialect_name == "postgresql"

    def insert_ignoring_conflicts(
        self, table: Table, conflict_columns: list[str]
    ) -> PgInsert | SqliteInsert:
        """INSERT that skips rows clashing on `conflict_columns` instead of failing."""
        insert = postgresql.insert if self.is_postgres else sqlite.insert
        return insert(table).on_conflict_do_nothing(index_elements=conflict_columns)

    def is_transient(self, exc: BaseException) -> bool:
        """True for errors worth retrying: lost connections, locks, restarts."""
        if isinstance(exc, OperationalError):
            return True
        if isinstance(exc, DBAPIError) and exc.connection_invalidated:
            return True
        if self.is_postgres:
            sqlstate = _sqlstate(exc)
            return sqlstate is not None and (
                sqlstate.startswith(_TRANSIENT_PG_SQLSTATE_CLASS)
                or sqlstate in _TRANSIENT_PG_SQLSTATES
            )
        return _sqlite_busy(exc)

    def engine_options(self, dsn: str) -> dict[str, Any]:
        if self.is_postgres:
            return {"pool_size": 5, "max_overflow": 0, "pool_pre_ping": True}
        options: dict[str, Any] = {"pool_pre_ping": True}
        if ":memory:" in dsn:
            # Every connection to :memory: is a new database; share one.
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        return options

    @staticmethod
    def normalize_dsn(dsn: str) -> str:
        """Rewrite a plain DSN to name its async driver (asyncpg / aiosqlite)."""
        for plain, with_driver in _ASYNC_SCHEMES:
            if dsn.startswith(plain):
                return with_driver + dsn[len(plain) :]
        return dsn


def detect_dialect_from_dsn(dsn: str) -> str:
    """Return "postgresql" or "sqlite" for a DSN.

    Raises:
        ValueError: If the DSN names any other database
    """
    scheme = dsn.split("://", 1)[0].lower()
    base = scheme.split("+", 1)[0]
    if base in ("postgresql", "postgres"):
        return "postgresql"
    if base == "sqlite":
        return "sqlite"
    raise ValueError(f"Cannot detect dialect from DSN: {dsn}")


def _sqlstate(exc: BaseException) -> str | None:
    for candidate in (exc, getattr(exc, "orig", None), exc.__cause__):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def _sqlite_busy(exc: BaseException) -> bool:
    current: BaseException | None = exc
    while current is not None:
        message = str(current).lower()
        if any(marker in message for marker in _SQLITE_BUSY_MARKERS):
            return True
        current = current.__cause__
    return False
