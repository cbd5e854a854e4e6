"""Heartbeat loop that drives the example worker pools."""

from __future__ import annotations

import logging
import random
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any

from daemon_workers.config import Settings
from daemon_workers.pool import (
    Call,
    CallState,
    Dispatcher,
    HandlerContext,
    TickSummary,
    WorkerPoolDescriptor,
)
from daemon_workers.pool.transport import ChannelFactory, ProcessChannel
from daemon_workers.storage.repository import JobRecordStore
from daemon_workers.triggers import Trigger, TriggerQueue, parse_signal_map
from daemon_workers.workers import (
    FACTORS_OPERATIONS,
    GET_FACTORS,
    PRIME_NUMBERS,
    PRIMES_OPERATIONS,
    PrimeOperation,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DaemonRunSummary:
    """Aggregate loop counters for CLI reporting."""

    ticks: int = 0
    submitted: int = 0
    rejected: int = 0
    returned: int = 0
    timed_out: int = 0
    retried: int = 0
    abandoned: int = 0

    def add(self, tick: TickSummary) -> None:
        self.ticks += 1
        self.returned += tick.returned
        self.timed_out += tick.timed_out
        self.retried += tick.retried
        self.abandoned += tick.abandoned


def _summarize_sieve(call: Call) -> str:
    if not call.result:
        return "Return: The resultset is empty."
    return (
        f"Return: There are {len(call.result)} items in the resultset, "
        f"from {call.result[0]} to {call.result[-1]}."
    )


def _summarize_is_prime(call: Call) -> str:
    return f"Return: {call.args[0]} is prime: {call.result}"


def _summarize_primes_among(call: Call) -> str:
    among = ", ".join(str(value) for value in call.args[0])
    primes = ", ".join(str(value) for value in call.result)
    return f"Return. Among [{among}], Primes Are [{primes}]"


PRIME_SUMMARIES: dict[PrimeOperation, Callable[[Call], str]] = {
    PrimeOperation.SIEVE: _summarize_sieve,
    PrimeOperation.IS_PRIME: _summarize_is_prime,
    PrimeOperation.PRIMES_AMONG: _summarize_primes_among,
}


def on_primes_return(call: Call, context: HandlerContext) -> None:
    context.log.info("Job %s to %s() Complete", call.id, call.method)
    if call.error is not None:
        context.log.warning("Worker failed: %s", call.error)
    else:
        context.log.info(PRIME_SUMMARIES[PrimeOperation(call.method)](call))
    if context.store is not None:
        context.store.record_return(call)


def on_primes_timeout(call: Call, context: HandlerContext) -> None:
    context.log.warning("Job %s Timed Out!", call.id)
    if call.state == CallState.ABANDONED:
        context.log.warning("Retries Concluded. I Give Up.")
    if context.store is not None:
        context.store.record_timeout(call)


def on_factors_return(call: Call, context: HandlerContext) -> None:
    if call.error is not None:
        context.log.warning("Worker failed: %s", call.error)
    else:
        context.log.info("Return: %s has %s factors", call.args[0], len(call.result))
        if call.result:
            context.log.info("Finding Prime Factors")
            job = context.submit(PRIME_NUMBERS, PrimeOperation.PRIMES_AMONG, (call.result,))
            if job is None:
                context.log.warning("Call Failed")
            elif context.store is not None:
                context.store.record_submission(
                    job=job,
                    worker=PRIME_NUMBERS,
                    method=PrimeOperation.PRIMES_AMONG.value,
                    source=PrimeOperation.PRIMES_AMONG.value,
                )
    if context.store is not None:
        context.store.record_return(call)


def on_factors_timeout(call: Call, context: HandlerContext) -> None:
    context.log.warning("Job %s Timed Out!", call.id)
    if context.store is not None:
        context.store.record_timeout(call)


def build_dispatcher(
    settings: Settings,
    *,
    store: JobRecordStore | None = None,
    channel_factory: ChannelFactory = ProcessChannel,
    clock: Callable[[], float] = time.monotonic,
) -> Dispatcher:
    """Register the PrimeNumbers and GetFactors pools."""

    dispatcher = Dispatcher(channel_factory=channel_factory, store=store, clock=clock)
    dispatcher.register(
        WorkerPoolDescriptor(
            name=PRIME_NUMBERS,
            operations=PRIMES_OPERATIONS,
            capacity=settings.primes.capacity,
            timeout_seconds=settings.primes.timeout_seconds,
            max_retries=settings.primes.max_retries,
            on_return=on_primes_return,
            on_timeout=on_primes_timeout,
            buffer_size_hint=settings.primes.buffer_size_hint,
        ),
    )
    dispatcher.register(
        WorkerPoolDescriptor(
            name=GET_FACTORS,
            operations=FACTORS_OPERATIONS,
            capacity=settings.factors.capacity,
            timeout_seconds=settings.factors.timeout_seconds,
            max_retries=settings.factors.max_retries,
            on_return=on_factors_return,
            on_timeout=on_factors_timeout,
            buffer_size_hint=settings.factors.buffer_size_hint,
        ),
    )
    return dispatcher


class WorkersDaemon:
    """Runs jobs randomly and in response to signals, one tick per heartbeat."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: Settings,
        store: JobRecordStore | None = None,
        channel_factory: ChannelFactory = ProcessChannel,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
        triggers: TriggerQueue | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.dispatcher = build_dispatcher(
            settings,
            store=store,
            channel_factory=channel_factory,
            clock=clock,
        )
        self.triggers = triggers or TriggerQueue()
        self.signal_map = parse_signal_map(settings.signal_map)
        self.auto_run = settings.auto_run
        self._random = rng or random.Random()  # noqa: S311
        self._stop_requested = False
        self._summary = DaemonRunSummary()

    @property
    def summary(self) -> DaemonRunSummary:
        return self._summary

    def submit(
        self,
        worker_name: str,
        method: str | Enum | None,
        args: tuple[Any, ...],
        *,
        source: str,
    ) -> int | None:
        """Submit a job and insert its record; returns the job id or None."""

        job = self.dispatcher.submit(worker_name, method, args)
        if job is None:
            self._summary.rejected += 1
            logger.warning("Job Failed.")
            return None
        self._summary.submitted += 1
        if self.store is not None:
            self.store.record_submission(
                job=job,
                worker=worker_name,
                method=method.value if isinstance(method, Enum) else method,
                source=source,
            )
        return job

    def run_once(self) -> TickSummary:
        """One heartbeat: roll auto-run, act on triggers, reconcile calls."""

        self._roll_auto_run()
        for trigger in self.triggers.drain():
            self._handle_trigger(trigger)
        tick = self.dispatcher.tick()
        self._summary.add(tick)
        return tick

    def run_loop(self, *, max_ticks: int | None = None) -> DaemonRunSummary:
        """Tick every heartbeat until stopped or ``max_ticks`` is reached."""

        logger.info(
            "Workers daemon is ready: signals %s",
            ", ".join(f"{sig.name}={trigger.value}" for sig, trigger in self.signal_map.items()),
        )
        heartbeats = 0
        try:
            with self._signal_handlers():
                while not self._stop_requested:
                    started = time.monotonic()
                    heartbeats += 1
                    try:
                        self.run_once()
                    except Exception:
                        logger.exception("Heartbeat %s failed; continuing", heartbeats)
                    if max_ticks is not None and heartbeats >= max_ticks:
                        break
                    elapsed = time.monotonic() - started
                    self._sleep_with_stop(self.settings.heartbeat_seconds - elapsed)
        finally:
            self.dispatcher.shutdown()
        return self._summary

    def run_until_idle(self, *, max_seconds: float) -> bool:
        """Tick until no call is pending; returns False if time ran out."""

        deadline = time.monotonic() + max_seconds
        while self.dispatcher.pending_count() > 0:
            if time.monotonic() >= deadline:
                return False
            self.run_once()
            if self.dispatcher.pending_count() > 0:
                time.sleep(min(0.05, self.settings.heartbeat_seconds))
        return True

    def request_stop(self) -> None:
        self._stop_requested = True

    def _roll_auto_run(self) -> None:
        if not self.auto_run:
            return
        roll = self._random.randint(1, 20)
        if 2 <= roll <= 7:
            self.triggers.put(Trigger.RUN_GETFACTORS)
        if roll in (7, 8):
            self.triggers.put(Trigger.RUN_SIEVE)

    def _handle_trigger(self, trigger: Trigger) -> None:
        if trigger == Trigger.AUTO_RUN:
            self.auto_run = not self.auto_run
            logger.info("Setting auto_run=%s", self.auto_run)
        elif trigger == Trigger.RUN_GETFACTORS:
            number = self._random.randint(500_000, 10_000_000)
            self.submit(GET_FACTORS, None, (number,), source="execute")
        elif trigger == Trigger.RUN_SIEVE:
            start = self._random.randint(10_000, 1_000_000)
            self.submit(
                PRIME_NUMBERS,
                PrimeOperation.SIEVE,
                (start, start + start),
                source=PrimeOperation.SIEVE.value,
            )
        elif trigger == Trigger.RUN_PRIMES_AMONG:
            numbers = [self._random.randint(2, 1_000_000) for _ in range(10)]
            self.submit(
                PRIME_NUMBERS,
                PrimeOperation.PRIMES_AMONG,
                (numbers,),
                source=PrimeOperation.PRIMES_AMONG.value,
            )

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        stop_signals = [
            getattr(signal, name) for name in ("SIGINT", "SIGTERM") if hasattr(signal, name)
        ]
        watched = [*stop_signals, *self.signal_map]
        originals: dict[signal.Signals, Any] = {}

        def _handler(signum: int, _: object | None) -> None:
            try:
                received = signal.Signals(signum)
            except ValueError:
                return
            trigger = self.signal_map.get(received)
            if trigger is not None:
                self.triggers.put(trigger)
                return
            self._stop_requested = True

        try:
            for sig in watched:
                original = signal.getsignal(sig)
                signal.signal(sig, _handler)
                originals[sig] = original
        except ValueError:
            # Signal handlers can only be installed in main thread.
            logger.debug("Signal handlers not installed outside the main thread")
        try:
            yield
        finally:
            for sig, original in originals.items():
                try:
                    signal.signal(sig, original)
                except ValueError:
                    pass
