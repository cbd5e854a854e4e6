"""Timestamp helpers and the SQLite engine policy used by the job store."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import ConnectionPoolEntry, NullPool
from sqlmodel import create_engine


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; treat naive values as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def build_sqlite_engine(*, db_path: Path, busy_timeout_ms: int) -> Engine:
    """Engine without pooling: each write opens its own connection.

    A reconnect therefore only has to dispose and rebuild the engine; no
    pooled connection can outlive a dropped database file.
    """

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"timeout": max(1.0, busy_timeout_ms / 1000.0)},
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _configure_connection(
        dbapi_connection: sqlite3.Connection,
        _record: ConnectionPoolEntry,
    ) -> None:
        dbapi_connection.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
        dbapi_connection.execute("PRAGMA journal_mode = WAL")
        dbapi_connection.execute("PRAGMA synchronous = NORMAL")

    return engine
