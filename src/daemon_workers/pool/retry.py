"""Retry policy for timed-out calls."""

from __future__ import annotations

from enum import Enum

from daemon_workers.pool.models import Call, CallState


class RetryDecision(str, Enum):
    RETRY = "retry"
    ABANDON = "abandon"


class RetryPolicy:
    """Resubmit a timed-out call until its pool's retry budget is spent.

    There is no backoff: the heartbeat sweep already spaces attempts out.
    """

    def decide(self, call: Call, *, max_retries: int) -> RetryDecision:
        if call.state != CallState.TIMED_OUT:
            raise ValueError(f"Call {call.id} is {call.state.value}, expected timed_out.")
        if call.retries < max_retries:
            call.retries += 1
            call.state = CallState.RETRIED
            return RetryDecision.RETRY
        call.state = CallState.ABANDONED
        return RetryDecision.ABANDON
