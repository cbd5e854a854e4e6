"""Heartbeat sweep that detects overdue calls."""

from __future__ import annotations

from collections.abc import Iterable

from daemon_workers.pool.models import Call, CallState


class TimeoutSupervisor:
    """Find running calls whose deadline has passed.

    The sweep runs once per heartbeat instead of keeping a timer per call, so
    detection latency is bounded by the heartbeat interval.
    """

    def sweep(self, calls: Iterable[Call], *, now: float) -> list[Call]:
        return [
            call
            for call in calls
            if call.state == CallState.RUNNING
            and call.deadline is not None
            and now > call.deadline
        ]
