"""Call submission, slot assignment and heartbeat reconciliation."""

from __future__ import annotations

import copy
import itertools
import logging
import pickle
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from daemon_workers.pool.callbacks import CallbackEvent, CallbackKind, CallbackRouter
from daemon_workers.pool.errors import (
    InvalidArgumentError,
    PoolSaturatedError,
    RetryExhaustedError,
    WorkerStartError,
)
from daemon_workers.pool.models import (
    Call,
    CallReply,
    CallRequest,
    CallState,
    WorkerOperation,
    WorkerPoolDescriptor,
)
from daemon_workers.pool.retry import RetryDecision, RetryPolicy
from daemon_workers.pool.slots import WorkerSlot, WorkerSlotPool
from daemon_workers.pool.supervisor import TimeoutSupervisor
from daemon_workers.pool.transport import ChannelFactory, ProcessChannel

if TYPE_CHECKING:
    from daemon_workers.storage.repository import JobRecordStore

logger = logging.getLogger(__name__)

# A returned call should stay under this share of its pool's buffer hint.
BUFFER_WARN_RATIO = 0.02

_call_ids = itertools.count(1)


@dataclass(slots=True)
class TickSummary:
    """Counters for one heartbeat."""

    returned: int = 0
    timed_out: int = 0
    retried: int = 0
    abandoned: int = 0
    late_replies: int = 0
    callbacks: int = 0


@dataclass(slots=True)
class _RegisteredPool:
    descriptor: WorkerPoolDescriptor
    slots: WorkerSlotPool


class Dispatcher:
    """Owns every registered worker pool and the table of live calls."""

    def __init__(
        self,
        *,
        channel_factory: ChannelFactory = ProcessChannel,
        store: JobRecordStore | None = None,
        clock: Callable[[], float] = time.monotonic,
        supervisor: TimeoutSupervisor | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.channel_factory = channel_factory
        self.clock = clock
        self.supervisor = supervisor or TimeoutSupervisor()
        self.retry_policy = retry_policy or RetryPolicy()
        self.router = CallbackRouter(submit=self.submit, store=store)
        self._pools: dict[str, _RegisteredPool] = {}
        self._calls: dict[int, Call] = {}
        self._slot_of: dict[int, WorkerSlot] = {}
        self._closed = False

    def register(self, descriptor: WorkerPoolDescriptor) -> None:
        """Create the fixed-size pool for ``descriptor.name``."""

        if descriptor.name in self._pools:
            raise ValueError(f"Worker pool {descriptor.name!r} is already registered.")
        self._pools[descriptor.name] = _RegisteredPool(
            descriptor=descriptor,
            slots=WorkerSlotPool(descriptor.name, descriptor.capacity, self.channel_factory),
        )
        logger.info(
            "Registered worker pool %s: capacity=%s timeout=%ss max_retries=%s",
            descriptor.name,
            descriptor.capacity,
            descriptor.timeout_seconds,
            descriptor.max_retries,
        )

    def descriptor(self, worker_name: str) -> WorkerPoolDescriptor:
        return self._pool(worker_name).descriptor

    def submit(
        self,
        worker_name: str,
        method: str | Enum | None = None,
        args: Sequence[Any] = (),
    ) -> int | None:
        """Accept a call and return its id without waiting for the result.

        Raises:
            InvalidArgumentError: unknown worker or method, args that are not a
                sequence or cannot be sent to a worker process, or args rejected
                by the operation's validator. No slot is consumed.
            PoolSaturatedError: no free slot and the pool does not queue.

        Returns None when the call could not be accepted at all.
        """

        pool = self._pool(worker_name)
        method_key = method.value if isinstance(method, Enum) else method
        operation = _resolve_operation(pool.descriptor, method_key)
        call_args = _copy_args(worker_name, args)
        operation.validate(call_args)

        if self._closed:
            logger.warning("Rejecting %s: dispatcher is shut down", worker_name)
            return None

        slot = pool.slots.acquire()
        if slot is None and not pool.descriptor.queue_when_saturated:
            raise PoolSaturatedError(worker_name, pool.slots.capacity)

        call = Call(
            id=next(_call_ids),
            worker_name=worker_name,
            method=method_key,
            args=call_args,
            submitted_at=self.clock(),
        )
        self._check_buffer(pool.descriptor, call, payload=call.args)
        if slot is None:
            pool.slots.enqueue(call)
            self._calls[call.id] = call
            logger.debug("Queued call %s (%s); pool saturated", call.id, call.label)
            return call.id

        try:
            self._start(pool, slot, call)
        except WorkerStartError as error:
            logger.error("%s", error)
            self._wake_next(pool, slot)
            return None
        self._calls[call.id] = call
        return call.id

    def tick(self) -> TickSummary:
        """Run one heartbeat: collect replies, sweep timeouts, fire handlers."""

        summary = TickSummary()
        events: list[CallbackEvent] = []

        for pool in self._pools.values():
            for slot in pool.slots.busy_slots():
                if slot.channel is None:
                    continue
                reply = slot.channel.poll()
                if reply is None:
                    continue
                event = self._apply_reply(reply)
                if event is None:
                    summary.late_replies += 1
                    continue
                summary.returned += 1
                events.append(event)

        now = self.clock()
        retried: list[Call] = []
        for call in self.supervisor.sweep(list(self._calls.values()), now=now):
            pool = self._pools[call.worker_name]
            event, decision = self._apply_timeout(pool, call)
            summary.timed_out += 1
            events.append(event)
            if decision == RetryDecision.RETRY:
                summary.retried += 1
                retried.append(call)
            else:
                summary.abandoned += 1

        for event in events:
            if self.router.dispatch(event):
                summary.callbacks += 1
            if event.call.state.is_terminal:
                self._evict(event.call)

        for call in retried:
            self._resubmit(call)

        return summary

    def deliver(self, reply: CallReply) -> bool:
        """Apply a worker reply outside a heartbeat; returns False when discarded."""

        event = self._apply_reply(reply)
        if event is None:
            return False
        self.router.dispatch(event)
        self._evict(event.call)
        return True

    def get(self, call_id: int) -> Call | None:
        return self._calls.get(call_id)

    def pending_count(self, worker_name: str | None = None) -> int:
        return sum(
            1
            for call in self._calls.values()
            if worker_name is None or call.worker_name == worker_name
        )

    def shutdown(self) -> None:
        """Stop all workers; in-flight calls are abandoned without handlers."""

        if self._closed:
            return
        self._closed = True
        abandoned = 0
        for pool in self._pools.values():
            pool.slots.drain_waiting()
            pool.slots.close()
        for call in self._calls.values():
            call.state = CallState.ABANDONED
            abandoned += 1
        self._calls.clear()
        self._slot_of.clear()
        logger.info("Dispatcher shut down; %s in-flight calls abandoned", abandoned)

    def _pool(self, worker_name: str) -> _RegisteredPool:
        pool = self._pools.get(worker_name)
        if pool is None:
            raise InvalidArgumentError(f"Unknown worker: {worker_name!r}")
        return pool

    def _start(self, pool: _RegisteredPool, slot: WorkerSlot, call: Call) -> None:
        operation = pool.descriptor.operations[call.method]
        now = self.clock()
        call.state = CallState.RUNNING
        call.started_at = now
        call.deadline = call.submitted_at + pool.descriptor.timeout_seconds
        slot.call = call
        self._slot_of[call.id] = slot
        try:
            slot.start(
                CallRequest(
                    call_id=call.id,
                    attempt=call.attempt,
                    target=operation.target,
                    args=call.args,
                ),
                pool.slots.channel_factory,
                pool.descriptor.name,
            )
        except Exception as error:  # noqa: BLE001
            slot.call = None
            self._slot_of.pop(call.id, None)
            slot.discard_channel()
            call.state = CallState.QUEUED
            call.started_at = None
            call.deadline = None
            raise WorkerStartError(call.label, error) from error
        logger.debug("Call %s (%s) running, attempt %s", call.id, call.label, call.attempt)

    def _apply_reply(self, reply: CallReply) -> CallbackEvent | None:
        call = self._calls.get(reply.call_id)
        if call is None or call.state != CallState.RUNNING or call.attempt != reply.attempt:
            logger.info(
                "Discarding late reply for call %s attempt %s",
                reply.call_id,
                reply.attempt,
            )
            return None

        pool = self._pools[call.worker_name]
        call.state = CallState.RETURNED
        if reply.ok:
            call.result = reply.value
        else:
            call.error = reply.error or "worker failed"
            logger.warning("Call %s (%s) failed in worker: %s", call.id, call.label, call.error)
        self._check_buffer(pool.descriptor, call, payload=(call.args, call.result))
        self._free_slot(pool, call)
        return CallbackEvent(
            kind=CallbackKind.RETURN,
            call=call,
            attempt=call.attempt,
            handler=pool.descriptor.on_return,
        )

    def _apply_timeout(
        self,
        pool: _RegisteredPool,
        call: Call,
    ) -> tuple[CallbackEvent, RetryDecision]:
        attempt = call.attempt
        call.state = CallState.TIMED_OUT
        slot = self._slot_of.get(call.id)
        if slot is not None:
            slot.discard_channel()
        self._free_slot(pool, call)

        decision = self.retry_policy.decide(call, max_retries=pool.descriptor.max_retries)
        if decision == RetryDecision.RETRY:
            logger.warning(
                "Call %s (%s) timed out; retry %s of %s",
                call.id,
                call.label,
                call.retries,
                pool.descriptor.max_retries,
            )
        else:
            logger.error("%s", RetryExhaustedError(call.id, call.retries))
        return (
            CallbackEvent(
                kind=CallbackKind.TIMEOUT,
                call=call,
                attempt=attempt,
                handler=pool.descriptor.on_timeout,
            ),
            decision,
        )

    def _free_slot(self, pool: _RegisteredPool, call: Call) -> None:
        slot = self._slot_of.pop(call.id, None)
        if slot is None:
            return
        self._wake_next(pool, slot)

    def _wake_next(self, pool: _RegisteredPool, slot: WorkerSlot) -> None:
        woken = pool.slots.release(slot)
        while woken is not None:
            next_slot = pool.slots.acquire()
            if next_slot is None:
                pool.slots.enqueue(woken)
                return
            try:
                self._start(pool, next_slot, woken)
            except WorkerStartError as error:
                self._fail_start(pool, woken, error)
                woken = pool.slots.release(next_slot)
                continue
            return

    def _fail_start(self, pool: _RegisteredPool, call: Call, error: WorkerStartError) -> None:
        logger.error("%s", error)
        call.state = CallState.RETURNED
        call.error = f"worker failed to start: {error.cause}"
        # No reply will ever come; route the failure like a worker error.
        self.router.dispatch(
            CallbackEvent(
                kind=CallbackKind.RETURN,
                call=call,
                attempt=call.attempt,
                handler=pool.descriptor.on_return,
            ),
        )
        self._evict(call)

    def _resubmit(self, call: Call) -> None:
        if self._closed:
            return
        pool = self._pools[call.worker_name]
        call.state = CallState.QUEUED
        call.submitted_at = self.clock()
        call.started_at = None
        call.deadline = None
        call.result = None
        call.error = None
        slot = pool.slots.acquire()
        if slot is None:
            pool.slots.enqueue(call)
            return
        try:
            self._start(pool, slot, call)
        except WorkerStartError as error:
            self._fail_start(pool, call, error)
            self._wake_next(pool, slot)

    def _evict(self, call: Call) -> None:
        self._calls.pop(call.id, None)
        self._slot_of.pop(call.id, None)
        self.router.forget(call.id)

    def _check_buffer(
        self,
        descriptor: WorkerPoolDescriptor,
        call: Call,
        *,
        payload: object,
    ) -> None:
        try:
            size = len(pickle.dumps(payload))
        except (pickle.PicklingError, TypeError, AttributeError):
            return
        limit = descriptor.buffer_size_hint * BUFFER_WARN_RATIO
        if size > limit:
            logger.warning(
                "Call %s (%s) moved %s bytes; more than %.0f%% of the %s byte buffer hint "
                "for pool %s. Increase the buffer size hint.",
                call.id,
                call.label,
                size,
                BUFFER_WARN_RATIO * 100,
                descriptor.buffer_size_hint,
                descriptor.name,
            )


def _resolve_operation(
    descriptor: WorkerPoolDescriptor,
    method: str | None,
) -> WorkerOperation:
    operation = descriptor.operations.get(method)
    if operation is None:
        supported = ", ".join(sorted(str(key) for key in descriptor.operations))
        raise InvalidArgumentError(
            f"Worker {descriptor.name!r} has no operation {method!r}. Supported: {supported}",
        )
    return operation


def _copy_args(worker_name: str, args: Sequence[Any]) -> tuple[Any, ...]:
    """Deep copy of ``args``; rejects values a worker process could not receive."""

    if isinstance(args, (str, bytes, bytearray)) or not isinstance(args, Sequence):
        raise InvalidArgumentError(
            f"Arguments for {worker_name} must be a list or tuple, got {type(args).__name__}.",
        )
    call_args = tuple(copy.deepcopy(list(args)))
    try:
        pickle.dumps(call_args)
    except (pickle.PicklingError, TypeError, AttributeError) as error:
        raise InvalidArgumentError(
            f"Arguments for {worker_name} cannot be sent to a worker process: {error}",
        ) from error
    return call_args
