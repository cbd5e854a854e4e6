"""SQLModel tables for job outcome records."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index
from sqlmodel import Field, SQLModel


class JobRecord(SQLModel, table=True):
    __tablename__ = "jobs"  # type: ignore[bad-override]
    __table_args__ = (Index("uq_jobs_run_worker_job", "run_id", "worker", "job", unique=True),)

    record_id: int | None = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    pid: int = Field(index=True)
    worker: str = Field(index=True)
    method: str | None = None
    job: int = Field(index=True)
    source: str | None = None
    is_complete: bool = Field(default=False)
    is_timeout: bool = Field(default=False)
    retries: int = Field(default=0)
    error: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
