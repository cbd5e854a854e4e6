"""Out-of-band triggers delivered to the daemon loop.

Signal handlers are not a safe place to start worker processes, so they only
enqueue a ``Trigger``; the heartbeat loop drains the queue and submits work.
"""

from __future__ import annotations

import queue
import signal
from enum import Enum


class Trigger(str, Enum):
    RUN_GETFACTORS = "run_getfactors"
    RUN_SIEVE = "run_sieve"
    RUN_PRIMES_AMONG = "run_primes_among"
    AUTO_RUN = "auto_run"


class TriggerQueue:
    """Thread- and signal-safe FIFO of pending triggers."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Trigger] = queue.SimpleQueue()

    def put(self, trigger: Trigger) -> None:
        self._queue.put_nowait(trigger)

    def drain(self) -> list[Trigger]:
        triggers: list[Trigger] = []
        while True:
            try:
                triggers.append(self._queue.get_nowait())
            except queue.Empty:
                return triggers


def parse_signal_map(raw: str) -> dict[signal.Signals, Trigger]:
    """Parse ``"SIGUSR1=run_getfactors,12=run_sieve"`` into a signal map."""

    mapping: dict[signal.Signals, Trigger] = {}
    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        if "=" not in token:
            raise ValueError(
                f"Invalid signal map entry: {token!r}. Expected format '<signal>=<action>'.",
            )
        name, action = (value.strip() for value in token.split("=", 1))
        try:
            trigger = Trigger(action)
        except ValueError as error:
            supported = ", ".join(item.value for item in Trigger)
            raise ValueError(
                f"Unknown signal action {action!r}. Supported: {supported}",
            ) from error
        mapping[_resolve_signal(name)] = trigger
    return mapping


def _resolve_signal(name: str) -> signal.Signals:
    try:
        if name.isdigit():
            return signal.Signals(int(name))
        normalized = name.upper()
        if not normalized.startswith("SIG"):
            normalized = f"SIG{normalized}"
        return signal.Signals[normalized]
    except (KeyError, ValueError) as error:
        raise ValueError(f"Unknown signal: {name!r}") from error
