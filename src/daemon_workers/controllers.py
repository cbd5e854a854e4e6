"""Controllers for daemon CLI commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from daemon_workers.config import Settings
from daemon_workers.daemon import WorkersDaemon
from daemon_workers.pool import InvalidArgumentError, PoolSaturatedError
from daemon_workers.storage.models import JobRecordView
from daemon_workers.storage.repository import JobRecordStore

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class DaemonRunCommand:
    """CLI input for the daemon loop."""

    db_path: Path | None
    auto_run: bool | None
    max_ticks: int | None
    heartbeat_seconds: float | None
    log_to_file: bool = True


@dataclass(slots=True)
class SubmitJobCommand:
    """CLI input for a one-shot job submission."""

    db_path: Path | None
    worker: str
    method: str | None
    args: tuple[str, ...]
    max_seconds: float


@dataclass(slots=True)
class ListJobsCommand:
    """CLI input for job record listing."""

    db_path: Path | None
    worker: str | None
    limit: int


@dataclass(slots=True)
class SubmitJobResult:
    success: bool
    lines: list[str]


class DaemonCliController:
    """Coordinates daemon loop, one-shot submission and job inspection."""

    def run(self, command: DaemonRunCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        if command.heartbeat_seconds is not None:
            settings = replace(settings, heartbeat_seconds=command.heartbeat_seconds)
        if command.auto_run is not None:
            settings = replace(settings, auto_run=command.auto_run)
        settings.validate()
        log_path = _configure_logging(settings) if command.log_to_file else None

        with _store(settings) as store:
            daemon = WorkersDaemon(settings=settings, store=store)
            summary = daemon.run_loop(max_ticks=command.max_ticks)

        lines = [
            "Daemon summary: "
            f"ticks={summary.ticks} submitted={summary.submitted} rejected={summary.rejected} "
            f"returned={summary.returned} timeouts={summary.timed_out} "
            f"retried={summary.retried} abandoned={summary.abandoned}",
        ]
        if log_path is not None:
            lines.append(f"Log: {log_path}")
        return lines

    def submit(self, command: SubmitJobCommand) -> SubmitJobResult:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        args = tuple(_parse_cli_arg(value) for value in command.args)

        with _store(settings) as store:
            daemon = WorkersDaemon(settings=settings, store=store)
            try:
                job = daemon.submit(command.worker, command.method, args, source="cli")
            except (InvalidArgumentError, PoolSaturatedError) as error:
                daemon.dispatcher.shutdown()
                return SubmitJobResult(success=False, lines=[f"Rejected: {error}"])
            if job is None:
                daemon.dispatcher.shutdown()
                return SubmitJobResult(success=False, lines=["Job Failed."])

            try:
                finished = daemon.run_until_idle(max_seconds=command.max_seconds)
            finally:
                daemon.dispatcher.shutdown()
            records = store.list_jobs(limit=50, run_id=store.run_id)

        lines = [f"Submitted job {job} to {command.worker}"]
        lines.extend(_render_job(record) for record in reversed(records))
        if not finished:
            lines.append(f"Gave up waiting after {command.max_seconds:g}s.")
        submitted = next((record for record in records if record.job == job), None)
        success = finished and submitted is not None and submitted.outcome == "complete"
        return SubmitJobResult(success=success, lines=lines)

    def list_jobs(self, command: ListJobsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings) as store:
            records = store.list_jobs(limit=command.limit, worker=command.worker)
        if not records:
            return ["No job records."]
        return [_render_job(record) for record in records]


def _render_job(record: JobRecordView) -> str:
    method = f".{record.method}" if record.method else ""
    completed = record.completed_at.isoformat() if record.completed_at else "-"
    line = (
        f"pid={record.pid} job={record.job} {record.worker}{method} "
        f"outcome={record.outcome} retries={record.retries} "
        f"source={record.source or '-'} completed_at={completed}"
    )
    if record.error:
        line += f" error={record.error}"
    return line


def _parse_cli_arg(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _configure_logging(settings: Settings) -> Path:
    log_path = settings.log_file()
    logging.basicConfig(filename=log_path, level=logging.INFO, format=LOG_FORMAT)
    return log_path


@contextmanager
def _store(settings: Settings) -> Iterator[JobRecordStore]:
    store = JobRecordStore(settings.db_path)
    store.init_schema()
    try:
        yield store
    finally:
        store.close()
