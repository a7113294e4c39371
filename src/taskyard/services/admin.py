"""Operator-facing queue administration.

Read operations never mutate job state. All operations tolerate a missing
queue (store not configured) and report a disconnected state instead of
raising.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from taskyard.core.config import DEFAULT_QUEUE_NAME
from taskyard.db.models.base import JobStatus
from taskyard.services.payloads import parse_kind, parse_payload

if TYPE_CHECKING:
    from taskyard.db.models.jobs import Job
    from taskyard.services.job_queue import JobQueue, QueueMetrics

logger = logging.getLogger(__name__)

# Payload fields never shown to operators
REDACTED_PAYLOAD_FIELDS = frozenset({"secret", "signed_body", "html", "text"})


class WorkerState(Protocol):
    @property
    def is_running(self) -> bool: ...


@dataclass(frozen=True, slots=True)
class QueueHealth:
    """Connectivity snapshot of the queue subsystem."""

    connected: bool
    worker_running: bool
    queue_name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class JobSummary:
    """Operator view of one job, with sensitive payload fields removed."""

    id: str
    kind: str
    payload: dict[str, Any]
    status: str
    progress: int
    attempts_made: int
    max_attempts: int
    failure_reason: str | None
    created_at: datetime
    processed_at: datetime | None
    finished_at: datetime | None

    @classmethod
    def from_job(cls, job: Job) -> JobSummary:
        return cls(
            id=str(job.job_id),
            kind=job.kind,
            payload=summarize_payload(job.payload_json),
            status=job.status.value,
            progress=job.progress,
            attempts_made=job.attempts_made,
            max_attempts=job.max_attempts,
            failure_reason=job.failure_reason,
            created_at=job.created_at,
            processed_at=job.processed_at,
            finished_at=job.finished_at,
        )


def summarize_payload(payload: dict[str, Any] | None) -> dict[str, Any]:
    """Drop secrets and bulky bodies, keep identifying fields."""
    if not payload:
        return {}
    return {k: v for k, v in payload.items() if k not in REDACTED_PAYLOAD_FIELDS}


class QueueAdminService:
    """Metrics, listings and recovery actions for operators.

    Attributes:
        queue: The job queue, or None when the store is not configured.
        worker: The in-process worker, if any, for health reporting.
        queue_name: Name reported by health when the queue is absent.
    """

    def __init__(
        self,
        queue: JobQueue | None,
        *,
        worker: WorkerState | None = None,
        queue_name: str = DEFAULT_QUEUE_NAME,
    ) -> None:
        self.queue = queue
        self.worker = worker
        self.queue_name = queue.name if queue is not None else queue_name

    async def metrics(self) -> QueueMetrics | None:
        """Counts per status, or None when the queue is disabled."""
        if self.queue is None:
            return None
        return await self.queue.metrics()

    async def health(self) -> QueueHealth:
        connected = False
        if self.queue is not None:
            connected = await self.queue.connection.ping()
        return QueueHealth(
            connected=connected,
            worker_running=self.worker is not None and self.worker.is_running,
            queue_name=self.queue_name,
        )

    async def list_jobs(
        self,
        status: JobStatus | str = JobStatus.COMPLETED,
        start: int = 0,
        end: int = 19,
    ) -> list[JobSummary]:
        if self.queue is None:
            return []
        jobs = await self.queue.list_jobs(status, start, end)
        return [JobSummary.from_job(job) for job in jobs]

    async def retry(self, job_id: str) -> bool:
        """Re-queue a failed job. False if disabled, unknown or not failed."""
        if self.queue is None:
            return False
        retried = await self.queue.retry(job_id)
        logger.info("Operator retry: job_id=%s, success=%s", job_id, retried)
        return retried

    async def clear_failed(self) -> int:
        """Delete all failed jobs. Returns 0 when disabled."""
        if self.queue is None:
            return 0
        return await self.queue.clear_failed()

    async def remove(self, job_id: str) -> bool:
        """Delete one job that is not active. False if disabled or refused."""
        if self.queue is None:
            return False
        removed = await self.queue.remove(job_id)
        logger.info("Operator remove: job_id=%s, success=%s", job_id, removed)
        return removed

    async def update_payload(self, job_id: str, payload: dict[str, Any]) -> bool:
        """Replace the payload of a failed job ahead of a retry.

        The new payload is validated against the job's kind first, so a
        retried job never fails again on a malformed edit.

        Returns:
            True if the payload was replaced. False if the queue is disabled
            or the job is unknown or not failed.

        Raises:
            pydantic.ValidationError: If the payload does not fit the kind.
        """
        if self.queue is None:
            return False
        job = await self.queue.get_job(job_id)
        if job is None or job.status != JobStatus.FAILED:
            return False

        kind = parse_kind(job.kind)
        if kind is not None:
            payload = parse_payload(kind, payload).to_json()

        updated = await self.queue.update_payload(job.job_id, payload)
        logger.info("Operator payload edit: job_id=%s, success=%s", job_id, updated)
        return updated
