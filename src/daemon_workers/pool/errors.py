"""Error taxonomy for call submission and dispatch."""

from __future__ import annotations


class DispatchError(RuntimeError):
    """Base class for dispatcher errors reported to the submitter."""


class InvalidArgumentError(DispatchError, ValueError):
    """Submission rejected before any slot was consumed."""


class PoolSaturatedError(DispatchError):
    """No free slot and the pool is configured not to queue."""

    def __init__(self, worker_name: str, capacity: int) -> None:
        super().__init__(f"Worker pool {worker_name!r} is saturated ({capacity} slots busy).")
        self.worker_name = worker_name
        self.capacity = capacity


class RetryExhaustedError(DispatchError):
    """Retry budget spent; logged as the reason a call was abandoned."""

    def __init__(self, call_id: int, retries: int) -> None:
        super().__init__(f"Call {call_id} abandoned after {retries} retries.")
        self.call_id = call_id
        self.retries = retries


class WorkerStartError(DispatchError):
    """A worker context could not be started or refused the request."""

    def __init__(self, label: str, cause: BaseException) -> None:
        super().__init__(f"Worker for {label} could not accept the call: {cause}")
        self.label = label
        self.cause = cause
