"""Job outcome store backed by SQLModel + SQLite."""

from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from sqlalchemy import insert as sa_insert
from sqlalchemy import update as sa_update
from sqlalchemy.sql.expression import Executable
from sqlmodel import Session, SQLModel, col, select

from daemon_workers.pool.models import Call
from daemon_workers.storage.common import as_utc, build_sqlite_engine, utc_now
from daemon_workers.storage.models import JobRecordView
from daemon_workers.storage.resilient import (
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    write_with_reconnect,
)
from daemon_workers.storage.sqlmodel_models import JobRecord

logger = logging.getLogger(__name__)


class JobRecordStore:
    """Record one row per (run, worker, job) and update it on outcome.

    Job ids restart with every process, so rows are scoped to a ``run_id``
    generated per store; the pid is kept for operators only.

    Writes are best-effort: a failed write is replayed once after a
    reconnect, then logged and dropped.
    """

    def __init__(  # noqa: PLR0913
        self,
        db_path: Path,
        *,
        pid: int | None = None,
        run_id: str | None = None,
        busy_timeout_ms: int = 5_000,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.db_path = db_path
        self.pid = pid if pid is not None else os.getpid()
        self.run_id = run_id or uuid.uuid4().hex
        self.busy_timeout_ms = busy_timeout_ms
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Create the jobs table if it does not exist."""

        SQLModel.metadata.create_all(self.engine)

    def reconnect(self) -> None:
        """Drop every pooled connection and build a fresh engine."""

        self.engine.dispose()
        self.engine = build_sqlite_engine(
            db_path=self.db_path,
            busy_timeout_ms=self.busy_timeout_ms,
        )
        logger.info("Reconnected job store at %s", self.db_path)

    def persist(self, statement: Executable, *, description: str = "job record write") -> bool:
        """Execute one write statement, replaying it once after a reconnect."""

        def _write() -> None:
            with self.engine.begin() as connection:
                connection.execute(statement)

        return write_with_reconnect(
            _write,
            reconnect=self.reconnect,
            max_attempts=self.max_attempts,
            backoff_seconds=self.backoff_seconds,
            sleep=self._sleep,
            description=description,
        )

    def record_submission(self, *, job: int, worker: str, method: str | None, source: str) -> bool:
        """INSERT the row for a freshly submitted job."""

        statement = sa_insert(JobRecord).values(
            run_id=self.run_id,
            pid=self.pid,
            worker=worker,
            method=method,
            job=job,
            source=source,
            is_complete=False,
            is_timeout=False,
            retries=0,
            created_at=utc_now(),
        )
        return self.persist(statement, description=f"insert job {job}")

    def record_return(self, call: Call) -> bool:
        """UPDATE the job row as complete."""

        statement = (
            sa_update(JobRecord)
            .where(*self._row_filter(call))
            .values(
                is_complete=True,
                retries=call.retries,
                error=call.error,
                completed_at=utc_now(),
            )
        )
        return self.persist(statement, description=f"complete job {call.id}")

    def record_timeout(self, call: Call) -> bool:
        """UPDATE the job row with the timeout flag and retry count."""

        statement = (
            sa_update(JobRecord)
            .where(*self._row_filter(call))
            .values(
                is_timeout=True,
                retries=call.retries,
                completed_at=utc_now(),
            )
        )
        return self.persist(statement, description=f"timeout job {call.id}")

    def list_jobs(
        self,
        *,
        limit: int = 20,
        worker: str | None = None,
        pid: int | None = None,
        run_id: str | None = None,
    ) -> list[JobRecordView]:
        """Most recent job rows, newest first."""

        query = select(JobRecord)
        if pid is not None:
            query = query.where(JobRecord.pid == pid)
        if run_id is not None:
            query = query.where(JobRecord.run_id == run_id)
        if worker is not None:
            query = query.where(JobRecord.worker == worker)
        query = query.order_by(col(JobRecord.record_id).desc()).limit(limit)
        with Session(self.engine) as session:
            rows = session.exec(query).all()
            return [_to_view(row) for row in rows]

    def get_job(self, *, job: int, worker: str) -> JobRecordView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(JobRecord).where(
                    JobRecord.run_id == self.run_id,
                    JobRecord.worker == worker,
                    JobRecord.job == job,
                ),
            ).one_or_none()
            return _to_view(row) if row is not None else None

    def _row_filter(self, call: Call) -> tuple[object, ...]:
        return (
            col(JobRecord.run_id) == self.run_id,
            col(JobRecord.worker) == call.worker_name,
            col(JobRecord.job) == call.id,
        )


def _to_view(row: JobRecord) -> JobRecordView:
    return JobRecordView(
        run_id=row.run_id,
        pid=row.pid,
        worker=row.worker,
        method=row.method,
        job=row.job,
        source=row.source,
        is_complete=row.is_complete,
        is_timeout=row.is_timeout,
        retries=row.retries,
        error=row.error,
        created_at=as_utc(row.created_at),
        completed_at=as_utc(row.completed_at) if row.completed_at is not None else None,
    )
