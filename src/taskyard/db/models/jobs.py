"""Job model for the durable background queue.

Jobs are claimed with SELECT ... FOR UPDATE SKIP LOCKED followed by a
compare-and-set on status, so concurrent workers never both activate the
same row.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import Enum, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskyard.db.models.base import (
    Base,
    JobStatus,
    JSONPayload,
    OptionalTimestampTZ,
    TimestampTZ,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Job(Base):
    """One unit of deferred work with a kind, payload and status."""

    __tablename__ = "jobs"

    job_id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    created_at: Mapped[TimestampTZ] = mapped_column(default=_utcnow)
    updated_at: Mapped[TimestampTZ] = mapped_column(default=_utcnow, onupdate=_utcnow)

    # Logical queue this job belongs to
    queue: Mapped[str] = mapped_column(String(100), nullable=False)

    # Job kind determines which handler processes it
    kind: Mapped[str] = mapped_column(String(100), nullable=False)

    # Kind-specific data; immutable after enqueue except operator edits
    payload_json: Mapped[dict | None] = mapped_column(JSONPayload, nullable=True)

    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            name="job_status",
            create_constraint=True,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=JobStatus.WAITING,
    )

    # Lower value is served first
    priority: Mapped[int] = mapped_column(default=100, nullable=False)

    # Earliest instant the job may be claimed
    run_at: Mapped[TimestampTZ]

    # Retry tracking
    attempts_made: Mapped[int] = mapped_column(default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(default=3, nullable=False)
    backoff_delay_ms: Mapped[int] = mapped_column(default=2000, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Handler-reported completion indicator (0-100)
    progress: Mapped[int] = mapped_column(default=0, nullable=False)

    # Handler return value (for completed jobs)
    result_json: Mapped[dict | None] = mapped_column(JSONPayload, nullable=True)

    # Claim lock, renewed by the owning worker's heartbeat
    locked_at: Mapped[OptionalTimestampTZ]
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    processed_at: Mapped[OptionalTimestampTZ]
    finished_at: Mapped[OptionalTimestampTZ]

    __table_args__ = (
        # Claim query: ready jobs of one queue ordered by priority
        Index("ix_jobs_queue_ready", "queue", "status", "priority", "run_at"),
        Index("ix_jobs_status", "status"),
        Index("ix_jobs_kind", "kind"),
        # Retention pruning and most-recent-first listing
        Index("ix_jobs_finished_at", "finished_at"),
    )

    def __repr__(self) -> str:
        return f"<Job {self.job_id} kind={self.kind} status={self.status.value}>"
