from __future__ import annotations

import re
from pathlib import Path

from click.testing import CliRunner

from daemon_workers import __version__
from daemon_workers.main import daemon_workers


def test_submit_runs_job_and_its_follow_up(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    result = runner.invoke(
        daemon_workers,
        ["submit", "--db-path", str(db_path), "--worker", "GetFactors", "--max-seconds", "30", "12"],
    )

    assert result.exit_code == 0, result.output
    match = re.search(r"Submitted job (\d+) to GetFactors", result.output)
    assert match is not None
    assert f"job={match.group(1)} GetFactors outcome=complete" in result.output
    assert "PrimeNumbers.primes_among outcome=complete" in result.output

    listing = runner.invoke(daemon_workers, ["jobs", "--db-path", str(db_path), "--worker", "GetFactors"])

    assert listing.exit_code == 0, listing.output
    assert "GetFactors outcome=complete retries=0 source=cli" in listing.output
    assert "PrimeNumbers" not in listing.output


def test_submit_rejects_invalid_argument_without_running(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"

    result = CliRunner().invoke(
        daemon_workers,
        ["submit", "--db-path", str(db_path), "--worker", "GetFactors", "twelve"],
    )

    assert result.exit_code == 1
    assert "Rejected: Invalid Input! Expected Integer. Given: str" in result.output

    listing = CliRunner().invoke(daemon_workers, ["jobs", "--db-path", str(db_path)])
    assert "No job records." in listing.output


def test_run_stops_after_max_ticks(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("DAEMON_WORKERS_AUTO_RUN", raising=False)

    result = CliRunner().invoke(
        daemon_workers,
        [
            "run",
            "--db-path",
            str(tmp_path / "run.db"),
            "--no-log-file",
            "--no-auto-run",
            "--max-ticks",
            "2",
            "--heartbeat",
            "0.01",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Daemon summary: ticks=2 submitted=0" in result.output


def test_run_writes_daily_log_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("DAEMON_WORKERS_LOG_DIR", str(tmp_path / "logs"))

    result = CliRunner().invoke(
        daemon_workers,
        ["run", "--db-path", str(tmp_path / "run.db"), "--max-ticks", "1", "--heartbeat", "0.01"],
    )

    assert result.exit_code == 0, result.output
    assert f"Log: {tmp_path / 'logs'}" in result.output


def test_version_option() -> None:
    result = CliRunner().invoke(daemon_workers, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output
