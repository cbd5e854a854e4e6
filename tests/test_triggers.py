from __future__ import annotations

import signal

import allure
import pytest

from daemon_workers.triggers import Trigger, TriggerQueue, parse_signal_map

pytestmark = [
    allure.epic("Daemon"),
    allure.feature("Signal Triggers"),
]


def test_parse_signal_map_accepts_names_numbers_and_short_names() -> None:
    mapping = parse_signal_map(
        f" SIGUSR1=run_getfactors, usr2=run_sieve ,{int(signal.SIGHUP)}=auto_run,",
    )

    assert mapping == {
        signal.SIGUSR1: Trigger.RUN_GETFACTORS,
        signal.SIGUSR2: Trigger.RUN_SIEVE,
        signal.SIGHUP: Trigger.AUTO_RUN,
    }


def test_parse_signal_map_allows_empty_value() -> None:
    assert parse_signal_map("") == {}


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("SIGUSR1", "Expected format"),
        ("SIGUSR1=reboot", "Unknown signal action"),
        ("SIGNOPE=run_sieve", "Unknown signal"),
        ("9999=run_sieve", "Unknown signal"),
    ],
)
def test_parse_signal_map_rejects_bad_entries(raw: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        parse_signal_map(raw)


def test_trigger_queue_drains_in_order() -> None:
    triggers = TriggerQueue()
    triggers.put(Trigger.RUN_SIEVE)
    triggers.put(Trigger.AUTO_RUN)
    triggers.put(Trigger.RUN_SIEVE)

    assert triggers.drain() == [Trigger.RUN_SIEVE, Trigger.AUTO_RUN, Trigger.RUN_SIEVE]
    assert triggers.drain() == []
