from __future__ import annotations

import logging
import sqlite3

import allure
import pytest
from sqlalchemy.exc import OperationalError

from daemon_workers.storage.resilient import write_with_reconnect

pytestmark = [
    allure.epic("Persistence"),
    allure.feature("Reconnect & Replay"),
]


def _dropped_connection() -> OperationalError:
    return OperationalError("INSERT INTO jobs", {}, sqlite3.OperationalError("disk I/O error"))


class FlakyWrite:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise _dropped_connection()


def test_healthy_write_succeeds_first_time() -> None:
    write = FlakyWrite(failures=0)
    reconnects: list[int] = []
    sleeps: list[float] = []

    ok = write_with_reconnect(write, reconnect=lambda: reconnects.append(1), sleep=sleeps.append)

    assert ok is True
    assert write.calls == 1
    assert reconnects == []
    assert sleeps == []


def test_write_is_replayed_once_after_reconnect(caplog) -> None:
    write = FlakyWrite(failures=1)
    reconnects: list[int] = []
    sleeps: list[float] = []

    with caplog.at_level(logging.WARNING, logger="daemon_workers.storage.resilient"):
        ok = write_with_reconnect(
            write,
            reconnect=lambda: reconnects.append(1),
            sleep=sleeps.append,
            description="insert job 1",
        )

    assert ok is True
    assert write.calls == 2
    assert reconnects == [1]
    assert sleeps == [0.025]
    assert "insert job 1 failed (attempt 1 of 2)" in caplog.text


def test_second_failure_is_logged_and_not_retried(caplog) -> None:
    write = FlakyWrite(failures=5)
    reconnects: list[int] = []

    with caplog.at_level(logging.ERROR, logger="daemon_workers.storage.resilient"):
        ok = write_with_reconnect(
            write,
            reconnect=lambda: reconnects.append(1),
            sleep=lambda _: None,
            description="complete job 7",
        )

    assert ok is False
    assert write.calls == 2
    assert reconnects == [1]
    assert "Dropping complete job 7 after 2 attempts" in caplog.text


def test_failed_reconnect_still_replays_write(caplog) -> None:
    write = FlakyWrite(failures=1)

    def reconnect() -> None:
        raise _dropped_connection()

    with caplog.at_level(logging.WARNING, logger="daemon_workers.storage.resilient"):
        ok = write_with_reconnect(write, reconnect=reconnect, sleep=lambda _: None)

    assert ok is True
    assert write.calls == 2
    assert "Reconnect failed" in caplog.text


def test_errors_outside_retry_set_propagate() -> None:
    def write() -> None:
        raise KeyError("not a store error")

    with pytest.raises(KeyError):
        write_with_reconnect(write, reconnect=lambda: None, sleep=lambda _: None)


def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError, match="max_attempts"):
        write_with_reconnect(lambda: None, reconnect=lambda: None, max_attempts=0)
