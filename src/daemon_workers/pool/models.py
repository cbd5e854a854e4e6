"""Domain models for worker pools and call lifecycle."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from daemon_workers.pool.callbacks import HandlerContext

DEFAULT_BUFFER_SIZE_HINT = 5 * 1024 * 1024


class CallState(str, Enum):
    """Call lifecycle states."""

    QUEUED = "queued"
    RUNNING = "running"
    RETURNED = "returned"
    TIMED_OUT = "timed_out"
    RETRIED = "retried"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in {CallState.RETURNED, CallState.ABANDONED}


@dataclass(slots=True)
class Call:
    """One unit of work tracked from submission to a terminal state."""

    id: int
    worker_name: str
    method: str | None
    args: tuple[Any, ...]
    submitted_at: float
    state: CallState = CallState.QUEUED
    started_at: float | None = None
    deadline: float | None = None
    retries: int = 0
    result: Any = None
    error: str | None = None

    @property
    def attempt(self) -> int:
        return self.retries + 1

    @property
    def label(self) -> str:
        if self.method is None:
            return self.worker_name
        return f"{self.worker_name}.{self.method}"


@dataclass(slots=True)
class CallRequest:
    """Message sent to a worker process for one attempt."""

    call_id: int
    attempt: int
    target: Callable[..., Any]
    args: tuple[Any, ...]


@dataclass(slots=True)
class CallReply:
    """Worker process answer for one attempt."""

    call_id: int
    attempt: int
    ok: bool
    value: Any = None
    error: str | None = None


ArgumentValidator = Callable[[tuple[Any, ...]], None]
CallHandler = Callable[[Call, "HandlerContext"], None]


def accept_any(_: tuple[Any, ...]) -> None:
    """Validator for operations without an argument contract."""


@dataclass(frozen=True, slots=True)
class WorkerOperation:
    """One entry of a pool's dispatch table.

    ``target`` runs inside the worker process, so it must be a module-level
    callable that pickles by reference.
    """

    target: Callable[..., Any]
    validate: ArgumentValidator = accept_any


def _ignore_call(call: Call, context: HandlerContext) -> None:
    return None


@dataclass(frozen=True, slots=True)
class WorkerPoolDescriptor:
    """Registration record for a named worker pool."""

    name: str
    operations: Mapping[str | None, WorkerOperation]
    capacity: int
    timeout_seconds: float
    max_retries: int = 3
    on_return: CallHandler = _ignore_call
    on_timeout: CallHandler = _ignore_call
    buffer_size_hint: int = DEFAULT_BUFFER_SIZE_HINT
    queue_when_saturated: bool = True

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError(f"Worker pool {self.name!r} capacity must be > 0.")
        if self.timeout_seconds <= 0:
            raise ValueError(f"Worker pool {self.name!r} timeout must be > 0.")
        if self.max_retries < 0:
            raise ValueError(f"Worker pool {self.name!r} max_retries must be >= 0.")
        if not self.operations:
            raise ValueError(f"Worker pool {self.name!r} declares no operations.")
