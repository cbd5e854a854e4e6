"""CLI entrypoint for daemon-workers."""

import logging
from pathlib import Path

import rich_click as click

from daemon_workers import __version__
from daemon_workers.controllers import (
    LOG_FORMAT,
    DaemonCliController,
    DaemonRunCommand,
    ListJobsCommand,
    SubmitJobCommand,
)
from daemon_workers.workers import GET_FACTORS, PRIME_NUMBERS, PrimeOperation

click.rich_click.USE_MARKDOWN = True
DAEMON_CONTROLLER = DaemonCliController()


@click.group()
@click.version_option(version=__version__, prog_name="daemon-workers")
def daemon_workers() -> None:
    """Worker-pool daemon CLI."""


@daemon_workers.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--auto-run/--no-auto-run",
    default=None,
    help="Start random jobs every heartbeat. Defaults to DAEMON_WORKERS_AUTO_RUN.",
)
@click.option(
    "--max-ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many heartbeats (runs until SIGINT/SIGTERM when omitted).",
)
@click.option(
    "--heartbeat",
    "heartbeat_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Heartbeat interval in seconds. Defaults to DAEMON_WORKERS_HEARTBEAT_SECONDS.",
)
@click.option(
    "--log-file/--no-log-file",
    "log_to_file",
    default=True,
    show_default=True,
    help="Write the event log to the daily log file.",
)
def run(
    db_path: Path | None,
    auto_run: bool | None,
    max_ticks: int | None,
    heartbeat_seconds: float | None,
    log_to_file: bool,
) -> None:
    """Run the daemon loop.

    Send the configured signals (see `DAEMON_WORKERS_SIGNAL_MAP`) to start a
    factoring job, a sieve job, or to toggle auto-run.
    """

    _emit_lines(
        DAEMON_CONTROLLER.run(
            DaemonRunCommand(
                db_path=db_path,
                auto_run=auto_run,
                max_ticks=max_ticks,
                heartbeat_seconds=heartbeat_seconds,
                log_to_file=log_to_file,
            ),
        ),
    )


@daemon_workers.command("submit")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--worker",
    type=click.Choice([GET_FACTORS, PRIME_NUMBERS]),
    required=True,
    help="Worker pool to submit to.",
)
@click.option(
    "--method",
    type=click.Choice([operation.value for operation in PrimeOperation]),
    default=None,
    help="Operation for PrimeNumbers. Omit for GetFactors.",
)
@click.option(
    "--max-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=120.0,
    show_default=True,
    help="How long to wait for the job and its follow-ups.",
)
@click.option("--verbose/--quiet", default=False, help="Print the event log to stderr.")
@click.argument("args", nargs=-1)
def submit(  # noqa: PLR0913
    db_path: Path | None,
    worker: str,
    method: str | None,
    max_seconds: float,
    verbose: bool,
    args: tuple[str, ...],
) -> None:
    """Submit one job and wait for it. ARGS are parsed as JSON when possible."""

    if verbose:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    result = DAEMON_CONTROLLER.submit(
        SubmitJobCommand(
            db_path=db_path,
            worker=worker,
            method=method,
            args=args,
            max_seconds=max_seconds,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Job did not complete.")


@daemon_workers.command("jobs")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--worker", default=None, help="Only show jobs of this worker pool.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=20,
    show_default=True,
    help="Max number of job records to print.",
)
def jobs(db_path: Path | None, worker: str | None, limit: int) -> None:
    """List persisted job records, newest first."""

    _emit_lines(
        DAEMON_CONTROLLER.list_jobs(
            ListJobsCommand(db_path=db_path, worker=worker, limit=limit),
        ),
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    daemon_workers()
