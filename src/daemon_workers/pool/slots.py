"""Fixed-size slot accounting for one worker pool."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from daemon_workers.pool.models import Call, CallRequest
from daemon_workers.pool.transport import ChannelFactory, WorkerChannel

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerSlot:
    """One unit of concurrency; holds at most one running call."""

    index: int
    channel: WorkerChannel | None = None
    call: Call | None = None

    def start(self, request: CallRequest, factory: ChannelFactory, worker_name: str) -> None:
        if self.channel is None:
            self.channel = factory(worker_name)
        self.channel.send(request)

    def discard_channel(self) -> None:
        if self.channel is None:
            return
        channel, self.channel = self.channel, None
        channel.terminate()


class WorkerSlotPool:
    """Bounded set of worker slots plus a FIFO list of waiting calls."""

    def __init__(self, name: str, capacity: int, channel_factory: ChannelFactory) -> None:
        if capacity <= 0:
            raise ValueError(f"Capacity must be > 0 for pool {name!r}.")
        self.name = name
        self._capacity = capacity
        self.channel_factory = channel_factory
        self._slots = [WorkerSlot(index=index) for index in range(capacity)]
        self._free: deque[WorkerSlot] = deque(self._slots)
        self._waiting: deque[Call] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def free_count(self) -> int:
        return len(self._free)

    @property
    def waiting_count(self) -> int:
        return len(self._waiting)

    def busy_slots(self) -> list[WorkerSlot]:
        return [slot for slot in self._slots if slot.call is not None]

    def acquire(self) -> WorkerSlot | None:
        """Take a free slot, or return None when the pool is saturated."""

        if not self._free:
            return None
        return self._free.popleft()

    def release(self, slot: WorkerSlot) -> Call | None:
        """Return the slot to the free set and wake the oldest waiting call."""

        slot.call = None
        self._free.append(slot)
        if not self._waiting:
            return None
        return self._waiting.popleft()

    def enqueue(self, call: Call) -> None:
        self._waiting.append(call)

    def drain_waiting(self) -> list[Call]:
        waiting = list(self._waiting)
        self._waiting.clear()
        return waiting

    def close(self) -> None:
        """Stop every worker context owned by this pool."""

        for slot in self._slots:
            if slot.channel is None:
                continue
            channel, slot.channel = slot.channel, None
            try:
                if slot.call is not None:
                    channel.terminate()
                else:
                    channel.close()
            except OSError as error:
                logger.warning("Failed to stop worker of pool %s: %s", self.name, error)
            slot.call = None
