"""Runtime configuration for the workers daemon."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from daemon_workers.triggers import parse_signal_map

DEFAULT_SIGNAL_MAP = "SIGUSR1=run_getfactors,SIGUSR2=run_sieve,SIGHUP=auto_run"
DEFAULT_LOG_DIR = Path("/var/log/daemons/exampleworkers")
FALLBACK_LOG_DIR = Path("logs")


@dataclass(slots=True)
class PoolSettings:
    """Sizing and timeout settings for one worker pool."""

    capacity: int
    timeout_seconds: float = 60.0
    max_retries: int = 3
    buffer_size_hint: int = 5 * 1024 * 1024


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".daemon_workers.db")
    heartbeat_seconds: float = 1.0
    auto_run: bool = False
    log_dir: Path = DEFAULT_LOG_DIR
    signal_map: str = DEFAULT_SIGNAL_MAP
    primes: PoolSettings = field(
        default_factory=lambda: PoolSettings(capacity=4, buffer_size_hint=30 * 1024 * 1024),
    )
    factors: PoolSettings = field(default_factory=lambda: PoolSettings(capacity=2, max_retries=0))

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("DAEMON_WORKERS_DB_PATH", ".daemon_workers.db")),
            heartbeat_seconds=float(os.getenv("DAEMON_WORKERS_HEARTBEAT_SECONDS", "1.0")),
            auto_run=_env_bool("DAEMON_WORKERS_AUTO_RUN", default=False),
            log_dir=Path(os.getenv("DAEMON_WORKERS_LOG_DIR", str(DEFAULT_LOG_DIR))),
            signal_map=os.getenv("DAEMON_WORKERS_SIGNAL_MAP", DEFAULT_SIGNAL_MAP),
            primes=_pool_from_env(
                "PRIMES",
                PoolSettings(capacity=4, buffer_size_hint=30 * 1024 * 1024),
            ),
            factors=_pool_from_env("FACTORS", PoolSettings(capacity=2, max_retries=0)),
        )

    def validate(self) -> None:
        """Raise configuration error if any value is out of range."""

        if self.heartbeat_seconds <= 0:
            raise ValueError("DAEMON_WORKERS_HEARTBEAT_SECONDS must be > 0.")
        parse_signal_map(self.signal_map)
        for prefix, pool in (("PRIMES", self.primes), ("FACTORS", self.factors)):
            if pool.capacity <= 0:
                raise ValueError(f"DAEMON_WORKERS_{prefix}_CAPACITY must be a positive integer.")
            if pool.timeout_seconds <= 0:
                raise ValueError(f"DAEMON_WORKERS_{prefix}_TIMEOUT_SECONDS must be > 0.")
            if pool.max_retries < 0:
                raise ValueError(f"DAEMON_WORKERS_{prefix}_MAX_RETRIES must be >= 0.")
            if pool.buffer_size_hint <= 0:
                raise ValueError(f"DAEMON_WORKERS_{prefix}_BUFFER_SIZE_HINT must be > 0.")

    def log_file(self, today: date | None = None) -> Path:
        """Daily log file path, falling back to ./logs when log_dir is not writable."""

        directory = self.log_dir
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass
        if not directory.is_dir() or not os.access(directory, os.W_OK):
            directory = FALLBACK_LOG_DIR
            directory.mkdir(parents=True, exist_ok=True)
        stamp = (today or date.today()).strftime("%Y%m%d")
        return directory / f"log_{stamp}"


def _pool_from_env(prefix: str, defaults: PoolSettings) -> PoolSettings:
    return PoolSettings(
        capacity=_env_int(f"DAEMON_WORKERS_{prefix}_CAPACITY", defaults.capacity),
        timeout_seconds=float(
            os.getenv(f"DAEMON_WORKERS_{prefix}_TIMEOUT_SECONDS", str(defaults.timeout_seconds)),
        ),
        max_retries=_env_int(f"DAEMON_WORKERS_{prefix}_MAX_RETRIES", defaults.max_retries),
        buffer_size_hint=_env_int(
            f"DAEMON_WORKERS_{prefix}_BUFFER_SIZE_HINT",
            defaults.buffer_size_hint,
        ),
    )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
