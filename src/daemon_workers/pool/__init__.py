"""Bounded worker pools with timeout supervision and retry coordination.

A single cooperative loop owns every pool. ``Dispatcher.submit`` never waits
on a worker: it allocates a call id, hands the call to a free slot (or parks
it in the pool's FIFO wait list) and returns. Each heartbeat calls
``Dispatcher.tick`` which collects worker replies, sweeps overdue calls,
applies the retry policy and runs the registered handlers.

State transitions are single-writer: the reply path only writes RETURNED,
the sweep only writes TIMED_OUT, and whichever is recorded first for an
attempt wins.
"""

from daemon_workers.pool.callbacks import CallbackRouter, HandlerContext
from daemon_workers.pool.dispatcher import Dispatcher, TickSummary
from daemon_workers.pool.errors import (
    DispatchError,
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

__all__ = [
    "Call",
    "CallReply",
    "CallRequest",
    "CallState",
    "CallbackRouter",
    "DispatchError",
    "Dispatcher",
    "HandlerContext",
    "InvalidArgumentError",
    "PoolSaturatedError",
    "RetryExhaustedError",
    "TickSummary",
    "WorkerOperation",
    "WorkerPoolDescriptor",
    "WorkerStartError",
]
