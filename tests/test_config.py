from __future__ import annotations

from dataclasses import replace
from datetime import date
from pathlib import Path

import allure
import pytest

from daemon_workers.config import DEFAULT_SIGNAL_MAP, PoolSettings, Settings

pytestmark = [
    allure.epic("Daemon"),
    allure.feature("Configuration"),
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DAEMON_WORKERS_DB_PATH",
        "DAEMON_WORKERS_HEARTBEAT_SECONDS",
        "DAEMON_WORKERS_AUTO_RUN",
        "DAEMON_WORKERS_LOG_DIR",
        "DAEMON_WORKERS_SIGNAL_MAP",
        "DAEMON_WORKERS_PRIMES_CAPACITY",
        "DAEMON_WORKERS_PRIMES_TIMEOUT_SECONDS",
        "DAEMON_WORKERS_PRIMES_MAX_RETRIES",
        "DAEMON_WORKERS_FACTORS_CAPACITY",
        "DAEMON_WORKERS_FACTORS_MAX_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)


def test_from_env_defaults_match_example_pools() -> None:
    settings = Settings.from_env()

    assert settings.primes.capacity == 4
    assert settings.primes.max_retries == 3
    assert settings.primes.buffer_size_hint == 30 * 1024 * 1024
    assert settings.factors.capacity == 2
    assert settings.factors.max_retries == 0
    assert settings.signal_map == DEFAULT_SIGNAL_MAP
    assert settings.auto_run is False
    settings.validate()


def test_from_env_reads_pool_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DAEMON_WORKERS_PRIMES_CAPACITY", " 8 ")
    monkeypatch.setenv("DAEMON_WORKERS_PRIMES_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("DAEMON_WORKERS_FACTORS_MAX_RETRIES", "1")
    monkeypatch.setenv("DAEMON_WORKERS_AUTO_RUN", "yes")
    monkeypatch.setenv("DAEMON_WORKERS_DB_PATH", "/tmp/jobs.db")

    settings = Settings.from_env()

    assert settings.primes == PoolSettings(
        capacity=8,
        timeout_seconds=2.5,
        max_retries=3,
        buffer_size_hint=30 * 1024 * 1024,
    )
    assert settings.factors.max_retries == 1
    assert settings.auto_run is True
    assert settings.db_path == Path("/tmp/jobs.db")


def test_explicit_db_path_wins_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DAEMON_WORKERS_DB_PATH", "/tmp/from-env.db")

    assert Settings.from_env(db_path=Path("cli.db")).db_path == Path("cli.db")


def test_from_env_rejects_bad_integer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DAEMON_WORKERS_FACTORS_CAPACITY", "two")

    with pytest.raises(ValueError, match="DAEMON_WORKERS_FACTORS_CAPACITY"):
        Settings.from_env()


def test_from_env_rejects_bad_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DAEMON_WORKERS_AUTO_RUN", "sometimes")

    with pytest.raises(ValueError, match="DAEMON_WORKERS_AUTO_RUN"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(heartbeat_seconds=0), "HEARTBEAT_SECONDS"),
        (Settings(primes=PoolSettings(capacity=0)), "PRIMES_CAPACITY"),
        (Settings(factors=PoolSettings(capacity=1, timeout_seconds=-1)), "FACTORS_TIMEOUT_SECONDS"),
        (Settings(factors=PoolSettings(capacity=1, max_retries=-1)), "FACTORS_MAX_RETRIES"),
        (Settings(signal_map="SIGUSR1=explode"), "Unknown signal action"),
    ],
)
def test_validate_rejects_out_of_range_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_log_file_is_named_after_the_day(tmp_path: Path) -> None:
    settings = Settings(log_dir=tmp_path / "daemons")

    path = settings.log_file(today=date(2024, 3, 7))

    assert path == tmp_path / "daemons" / "log_20240307"
    assert path.parent.is_dir()


def test_log_file_falls_back_to_local_logs_dir(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    settings = replace(Settings(), log_dir=blocker)

    path = settings.log_file(today=date(2024, 3, 7))

    assert path == Path("logs") / "log_20240307"
    assert (tmp_path / "logs").is_dir()
