"""Read models for persisted job records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class JobRecordView:
    """Readable job row for CLI output."""

    run_id: str
    pid: int
    worker: str
    method: str | None
    job: int
    source: str | None
    is_complete: bool
    is_timeout: bool
    retries: int
    error: str | None
    created_at: datetime
    completed_at: datetime | None

    @property
    def outcome(self) -> str:
        if self.is_complete:
            return "failed" if self.error else "complete"
        if self.is_timeout:
            return "timeout"
        return "pending"
