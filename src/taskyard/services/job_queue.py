"""Durable, prioritized job queue backed by the SQL job store.

This service owns every job state transition:

    waiting  --(claim)-------------------------> active
    delayed  --(run_at elapsed)----------------> waiting
    active   --(handler returns)---------------> completed
    active   --(error, attempts remain)--------> delayed (exponential backoff)
    active   --(error exhausted or terminal)---> failed
    active   --(lock expired, attempts remain)-> waiting
    failed   --(operator retry)----------------> waiting

Key features:
- Atomic claiming: SELECT ... FOR UPDATE SKIP LOCKED on PostgreSQL, then a
  compare-and-set UPDATE on status, so two workers never activate one job
- Exponential backoff: base_delay * 2^(attempts_made - 1)
- Retention of the most recent N completed and M failed jobs
- Stall recovery for jobs whose worker stopped renewing its lock

Every mutating call commits before returning.

Usage:
    queue = JobQueue(connection, name="taskyard-jobs")
    job_id = await queue.enqueue(JobKind.EMAIL, payload.to_json(), priority=2)

    job = await queue.claim("worker-1")
    if job:
        try:
            ...
            await queue.complete(job.job_id)
        except Exception as e:
            await queue.fail(job.job_id, str(e))
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from taskyard.core.config import DEFAULT_QUEUE_NAME
from taskyard.db.models.base import JobStatus
from taskyard.db.models.jobs import Job
from taskyard.services.payloads import JobKind

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from taskyard.core.config import QueueSettings, WorkerSettings
    from taskyard.db import StoreConnection

logger = logging.getLogger(__name__)

STALLED_REASON = "job stalled more than allowable limit"

# Candidate rows examined per claim batch
CLAIM_CANDIDATES = 5


class JobQueueError(Exception):
    """Base exception for job queue operations."""

    pass


class JobNotFoundError(JobQueueError):
    """Raised when a job cannot be found."""

    pass


@dataclass(frozen=True, slots=True)
class JobOptions:
    """Default job options applied at enqueue time.

    Attributes:
        attempts: Maximum execution attempts per job.
        backoff_delay_ms: Base delay of the exponential backoff.
        keep_completed: Completed jobs retained for inspection.
        keep_failed: Failed jobs retained for inspection.
        lock_timeout_seconds: Claim lock lifetime without heartbeat.
    """

    attempts: int = 3
    backoff_delay_ms: int = 2000
    keep_completed: int = 100
    keep_failed: int = 200
    lock_timeout_seconds: int = 30

    @classmethod
    def from_settings(cls, queue: QueueSettings, worker: WorkerSettings) -> JobOptions:
        return cls(
            attempts=queue.attempts,
            backoff_delay_ms=queue.backoff_delay_ms,
            keep_completed=queue.keep_completed,
            keep_failed=queue.keep_failed,
            lock_timeout_seconds=worker.lock_timeout_seconds,
        )


@dataclass(frozen=True, slots=True)
class QueueMetrics:
    """Point-in-time job counts per status.

    Not transactionally consistent with concurrent mutation.
    """

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    paused: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def compute_backoff_ms(attempts_made: int, base_delay_ms: int) -> int:
    """Delay before the next attempt after `attempts_made` failures.

    Attempt n (1-based) that fails is retried after base * 2^(n-1).
    """
    return base_delay_ms * (2 ** max(attempts_made - 1, 0))


def _coerce_job_id(job_id: uuid.UUID | str) -> uuid.UUID | None:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except ValueError:
        return None


def _encode_result(job_id: uuid.UUID, result: Any) -> Any:
    """Make a handler result storable as JSON.

    Values JSON cannot represent natively (datetimes, UUIDs, decimals) are
    stored as strings. A result that still cannot be encoded is dropped so
    the job can complete.
    """
    if result is None:
        return None
    try:
        return json.loads(json.dumps(result, default=str))
    except (TypeError, ValueError) as e:
        logger.warning("Job result not storable, dropped: job_id=%s, error=%s", job_id, e)
        return None


class JobQueue:
    """Named, ordered collection of job records with default job options.

    Attributes:
        connection: Store connection used for every operation.
        name: Queue name; jobs of other queues in the same table are ignored.
        options: Default retry and retention policy.
    """

    def __init__(
        self,
        connection: StoreConnection,
        name: str = DEFAULT_QUEUE_NAME,
        options: JobOptions | None = None,
    ) -> None:
        self.connection = connection
        self.name = name
        self.options = options or JobOptions()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        kind: JobKind | str,
        payload: dict[str, Any] | None = None,
        *,
        priority: int = 100,
        delay_ms: int = 0,
        max_attempts: int | None = None,
    ) -> uuid.UUID:
        """Persist a new job.

        Args:
            kind: Job kind (determines which handler processes it).
            payload: Kind-specific data passed to the handler.
            priority: Lower value is served first. Default 100.
            delay_ms: Explicit delay; a positive value enqueues as DELAYED.
            max_attempts: Attempt cap. Defaults to the queue option.

        Returns:
            UUID of the created job.

        Raises:
            JobQueueError: If the store rejects the insert.
        """
        kind_value = kind.value if isinstance(kind, JobKind) else kind
        now = datetime.now(UTC)
        delayed = delay_ms > 0

        job = Job(
            queue=self.name,
            kind=kind_value,
            payload_json=payload,
            status=JobStatus.DELAYED if delayed else JobStatus.WAITING,
            priority=priority,
            run_at=now + timedelta(milliseconds=delay_ms) if delayed else now,
            attempts_made=0,
            max_attempts=max_attempts or self.options.attempts,
            backoff_delay_ms=self.options.backoff_delay_ms,
            progress=0,
            created_at=now,
        )

        try:
            async with self.connection.session() as session:
                session.add(job)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to enqueue job: kind=%s, error=%s", kind_value, e)
            raise JobQueueError(f"Failed to enqueue job: {e}") from e

        logger.info(
            "Job enqueued: job_id=%s, kind=%s, queue=%s, priority=%d, status=%s",
            job.job_id,
            kind_value,
            self.name,
            priority,
            job.status.value,
        )
        return job.job_id

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    async def claim(self, worker_id: str) -> Job | None:
        """Claim the next waiting job for processing.

        Candidates are ordered by priority, then eligibility time, then
        enqueue time. Each candidate is taken with a compare-and-set on
        status, so a job lost to a concurrent worker is skipped. When a
        whole batch is lost the next batch is examined; None is returned
        only once no untried waiting job remains.

        Args:
            worker_id: Unique identifier for the claiming worker.

        Returns:
            The claimed Job (now ACTIVE), or None if nothing is ready.

        Raises:
            JobQueueError: If the claim fails at the store level.
        """
        tried: set[uuid.UUID] = set()

        try:
            while True:
                job, candidates = await self._claim_batch(worker_id, tried)
                if job is not None:
                    logger.info(
                        "Job claimed: job_id=%s, worker_id=%s, kind=%s, attempt=%d/%d",
                        job.job_id,
                        worker_id,
                        job.kind,
                        job.attempts_made,
                        job.max_attempts,
                    )
                    return job
                if not candidates:
                    return None
                tried.update(candidates)
                logger.debug(
                    "Claim batch lost to other workers: worker_id=%s, candidates=%d",
                    worker_id,
                    len(candidates),
                )

        except SQLAlchemyError as e:
            logger.error("Failed to claim job: %s", e)
            raise JobQueueError(f"Failed to claim job: {e}") from e

    async def _claim_batch(
        self,
        worker_id: str,
        exclude: set[uuid.UUID],
    ) -> tuple[Job | None, list[uuid.UUID]]:
        """Try to activate one of the next untried candidates.

        Returns the claimed job (or None) and the candidate ids examined.
        """
        now = datetime.now(UTC)

        async with self.connection.session() as session:
            stmt = (
                select(Job.job_id)
                .where(
                    Job.queue == self.name,
                    Job.status == JobStatus.WAITING,
                )
                .order_by(Job.priority, Job.run_at, Job.created_at)
                .limit(CLAIM_CANDIDATES)
                .with_for_update(skip_locked=True)
            )
            if exclude:
                stmt = stmt.where(Job.job_id.not_in(list(exclude)))
            candidates = list((await session.execute(stmt)).scalars().all())

            for candidate_id in candidates:
                result = await session.execute(
                    update(Job)
                    .where(
                        Job.job_id == candidate_id,
                        Job.status == JobStatus.WAITING,
                    )
                    .values(
                        status=JobStatus.ACTIVE,
                        attempts_made=Job.attempts_made + 1,
                        processed_at=now,
                        locked_at=now,
                        locked_by=worker_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    continue

                job = (
                    await session.execute(select(Job).where(Job.job_id == candidate_id))
                ).scalar_one()
                await session.commit()
                return job, candidates

            await session.commit()
            return None, candidates

    async def complete(
        self,
        job_id: uuid.UUID,
        result: dict[str, Any] | None = None,
    ) -> bool:
        """Mark an active job as completed.

        Args:
            job_id: UUID of the job to complete.
            result: Optional handler return value to store with the job.

        Returns:
            True if the job was completed, False if it was no longer active
            (for example, recovered as stalled by another worker).

        Raises:
            JobQueueError: If the update fails.
        """
        now = datetime.now(UTC)

        try:
            async with self.connection.session() as session:
                outcome = await session.execute(
                    update(Job)
                    .where(
                        Job.job_id == job_id,
                        Job.queue == self.name,
                        Job.status == JobStatus.ACTIVE,
                    )
                    .values(
                        status=JobStatus.COMPLETED,
                        finished_at=now,
                        result_json=_encode_result(job_id, result),
                        locked_at=None,
                        locked_by=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                if outcome.rowcount != 1:
                    await session.rollback()
                    logger.warning("Complete ignored, job not active: job_id=%s", job_id)
                    return False

                await self._apply_retention(
                    session, JobStatus.COMPLETED, self.options.keep_completed
                )
                await session.commit()

        except SQLAlchemyError as e:
            logger.error("Failed to complete job %s: %s", job_id, e)
            raise JobQueueError(f"Failed to complete job: {e}") from e

        logger.info("Job completed: job_id=%s", job_id)
        return True

    async def fail(
        self,
        job_id: uuid.UUID,
        error: str,
        *,
        terminal: bool = False,
    ) -> bool:
        """Record a failed attempt and schedule a retry or fail permanently.

        If attempts remain and the error is not terminal, the job moves to
        DELAYED with exponential backoff. Otherwise it moves to FAILED.

        Args:
            job_id: UUID of the job that failed.
            error: Error message describing the failure.
            terminal: Skip remaining attempts (non-retryable error).

        Returns:
            True if the job will be retried, False if it is now failed.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobQueueError: If the update fails.
        """
        now = datetime.now(UTC)

        try:
            async with self.connection.session() as session:
                job = await self._get_job(session, job_id)
                if job is None:
                    raise JobNotFoundError(f"Job not found: {job_id}")

                if job.status != JobStatus.ACTIVE:
                    logger.warning(
                        "Fail ignored, job not active: job_id=%s, status=%s",
                        job_id,
                        job.status.value,
                    )
                    return False

                guard = (
                    Job.job_id == job_id,
                    Job.status == JobStatus.ACTIVE,
                    Job.attempts_made == job.attempts_made,
                )

                if terminal or job.attempts_made >= job.max_attempts:
                    outcome = await session.execute(
                        update(Job)
                        .where(*guard)
                        .values(
                            status=JobStatus.FAILED,
                            failure_reason=error,
                            finished_at=now,
                            locked_at=None,
                            locked_by=None,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if outcome.rowcount != 1:
                        await session.rollback()
                        return False
                    await self._apply_retention(session, JobStatus.FAILED, self.options.keep_failed)
                    await session.commit()

                    logger.warning(
                        "Job failed permanently: job_id=%s, kind=%s, attempts=%d/%d, "
                        "terminal=%s, error=%s",
                        job_id,
                        job.kind,
                        job.attempts_made,
                        job.max_attempts,
                        terminal,
                        error,
                    )
                    return False

                backoff_ms = compute_backoff_ms(job.attempts_made, job.backoff_delay_ms)
                run_at = now + timedelta(milliseconds=backoff_ms)
                outcome = await session.execute(
                    update(Job)
                    .where(*guard)
                    .values(
                        status=JobStatus.DELAYED,
                        run_at=run_at,
                        failure_reason=error,
                        locked_at=None,
                        locked_by=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                if outcome.rowcount != 1:
                    await session.rollback()
                    return False
                await session.commit()

                logger.info(
                    "Job scheduled for retry: job_id=%s, kind=%s, attempt=%d/%d, "
                    "retry_at=%s, backoff_ms=%d",
                    job_id,
                    job.kind,
                    job.attempts_made,
                    job.max_attempts,
                    run_at.isoformat(),
                    backoff_ms,
                )
                return True

        except JobNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error("Failed to fail job %s: %s", job_id, e)
            raise JobQueueError(f"Failed to fail job: {e}") from e

    async def update_progress(self, job_id: uuid.UUID, progress: int) -> None:
        """Persist handler-reported progress (clamped to 0-100)."""
        value = max(0, min(100, int(progress)))
        try:
            async with self.connection.session() as session:
                await session.execute(
                    update(Job)
                    .where(Job.job_id == job_id, Job.status == JobStatus.ACTIVE)
                    .values(progress=value)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise JobQueueError(f"Failed to update progress: {e}") from e

    async def extend_locks(self, worker_id: str, job_ids: list[uuid.UUID]) -> int:
        """Renew the claim lock of jobs owned by a worker (heartbeat).

        Returns:
            Number of locks renewed.
        """
        if not job_ids:
            return 0
        try:
            async with self.connection.session() as session:
                outcome = await session.execute(
                    update(Job)
                    .where(
                        Job.job_id.in_(job_ids),
                        Job.locked_by == worker_id,
                        Job.status == JobStatus.ACTIVE,
                    )
                    .values(locked_at=datetime.now(UTC))
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                return outcome.rowcount
        except SQLAlchemyError as e:
            raise JobQueueError(f"Failed to extend locks: {e}") from e

    async def promote_delayed(self) -> int:
        """Move delayed jobs whose run_at has elapsed to WAITING.

        Returns:
            Number of jobs promoted.
        """
        now = datetime.now(UTC)
        try:
            async with self.connection.session() as session:
                outcome = await session.execute(
                    update(Job)
                    .where(
                        Job.queue == self.name,
                        Job.status == JobStatus.DELAYED,
                        Job.run_at <= now,
                    )
                    .values(status=JobStatus.WAITING)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise JobQueueError(f"Failed to promote delayed jobs: {e}") from e

        if outcome.rowcount:
            logger.debug("Promoted %d delayed jobs", outcome.rowcount)
        return outcome.rowcount

    async def recover_stalled(self, lock_timeout_seconds: int | None = None) -> int:
        """Recover jobs left ACTIVE by a worker that stopped heartbeating.

        Stalled jobs with attempts remaining return to WAITING; the rest
        are failed with STALLED_REASON.

        Args:
            lock_timeout_seconds: Lock age after which a job is stalled.
                Defaults to the queue option.

        Returns:
            Number of stalled jobs handled.
        """
        now = datetime.now(UTC)
        timeout = lock_timeout_seconds or self.options.lock_timeout_seconds
        threshold = now - timedelta(seconds=timeout)
        stalled = (
            Job.queue == self.name,
            Job.status == JobStatus.ACTIVE,
            Job.locked_at < threshold,
        )

        try:
            async with self.connection.session() as session:
                exhausted = await session.execute(
                    update(Job)
                    .where(*stalled, Job.attempts_made >= Job.max_attempts)
                    .values(
                        status=JobStatus.FAILED,
                        failure_reason=STALLED_REASON,
                        finished_at=now,
                        locked_at=None,
                        locked_by=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                requeued = await session.execute(
                    update(Job)
                    .where(*stalled)
                    .values(
                        status=JobStatus.WAITING,
                        run_at=now,
                        locked_at=None,
                        locked_by=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                if exhausted.rowcount:
                    await self._apply_retention(session, JobStatus.FAILED, self.options.keep_failed)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to recover stalled jobs: %s", e)
            raise JobQueueError(f"Failed to recover stalled jobs: {e}") from e

        total = exhausted.rowcount + requeued.rowcount
        if total:
            logger.warning(
                "Recovered stalled jobs: requeued=%d, failed=%d",
                requeued.rowcount,
                exhausted.rowcount,
            )
        return total

    # ------------------------------------------------------------------
    # Introspection and operator actions
    # ------------------------------------------------------------------

    async def metrics(self) -> QueueMetrics:
        """Count jobs per status."""
        try:
            async with self.connection.session() as session:
                rows = await session.execute(
                    select(Job.status, func.count(Job.job_id))
                    .where(Job.queue == self.name)
                    .group_by(Job.status)
                )
                counts = {status.value: count for status, count in rows.all()}
        except SQLAlchemyError as e:
            raise JobQueueError(f"Failed to read metrics: {e}") from e

        return QueueMetrics(
            waiting=counts.get("waiting", 0),
            active=counts.get("active", 0),
            completed=counts.get("completed", 0),
            failed=counts.get("failed", 0),
            delayed=counts.get("delayed", 0),
        )

    async def list_jobs(
        self,
        status: JobStatus | str,
        start: int = 0,
        end: int = 19,
    ) -> list[Job]:
        """Most-recent-first window over one status bucket.

        Args:
            status: Status bucket to list.
            start: First index (inclusive).
            end: Last index (inclusive).

        Returns:
            Jobs in the requested window.
        """
        status = JobStatus(status) if isinstance(status, str) else status
        if start < 0 or end < start:
            return []

        if status in (JobStatus.COMPLETED, JobStatus.FAILED):
            recency = Job.finished_at
        elif status == JobStatus.ACTIVE:
            recency = Job.processed_at
        else:
            recency = Job.created_at

        stmt = (
            select(Job)
            .where(Job.queue == self.name, Job.status == status)
            .order_by(recency.desc(), Job.created_at.desc())
            .offset(start)
            .limit(end - start + 1)
        )
        try:
            async with self.connection.session() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise JobQueueError(f"Failed to list jobs: {e}") from e

    async def get_job(self, job_id: uuid.UUID | str) -> Job | None:
        """Retrieve a job by ID, or None if unknown."""
        coerced = _coerce_job_id(job_id)
        if coerced is None:
            return None
        try:
            async with self.connection.session() as session:
                return await self._get_job(session, coerced)
        except SQLAlchemyError as e:
            raise JobQueueError(f"Failed to load job: {e}") from e

    async def retry(self, job_id: uuid.UUID | str) -> bool:
        """Manually move a FAILED job back to WAITING.

        Attempt history is preserved: attempts_made is not reset. When the
        attempt budget is already spent, it is extended by one attempt so
        the job can run again without exceeding max_attempts.

        Returns:
            True if the job was re-queued, False if it was not FAILED
            or does not exist (the job is left untouched).
        """
        coerced = _coerce_job_id(job_id)
        if coerced is None:
            return False

        try:
            async with self.connection.session() as session:
                outcome = await session.execute(
                    update(Job)
                    .where(
                        Job.job_id == coerced,
                        Job.queue == self.name,
                        Job.status == JobStatus.FAILED,
                    )
                    .values(
                        status=JobStatus.WAITING,
                        run_at=datetime.now(UTC),
                        failure_reason=None,
                        finished_at=None,
                        progress=0,
                        max_attempts=case(
                            (Job.attempts_made >= Job.max_attempts, Job.attempts_made + 1),
                            else_=Job.max_attempts,
                        ),
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to retry job %s: %s", coerced, e)
            raise JobQueueError(f"Failed to retry job: {e}") from e

        if outcome.rowcount != 1:
            logger.info("Retry refused, job not failed: job_id=%s", coerced)
            return False

        logger.info("Failed job queued for retry: job_id=%s", coerced)
        return True

    async def clear_failed(self) -> int:
        """Delete every FAILED job of this queue. Irreversible.

        Returns:
            Number of jobs removed.
        """
        try:
            async with self.connection.session() as session:
                outcome = await session.execute(
                    delete(Job)
                    .where(Job.queue == self.name, Job.status == JobStatus.FAILED)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to clear failed jobs: %s", e)
            raise JobQueueError(f"Failed to clear failed jobs: {e}") from e

        logger.warning("Cleared %d failed jobs from queue=%s", outcome.rowcount, self.name)
        return outcome.rowcount

    async def remove(self, job_id: uuid.UUID | str) -> bool:
        """Delete one job that is not currently ACTIVE."""
        coerced = _coerce_job_id(job_id)
        if coerced is None:
            return False
        try:
            async with self.connection.session() as session:
                outcome = await session.execute(
                    delete(Job)
                    .where(
                        Job.job_id == coerced,
                        Job.queue == self.name,
                        Job.status != JobStatus.ACTIVE,
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise JobQueueError(f"Failed to remove job: {e}") from e

        if outcome.rowcount == 1:
            logger.info("Job removed: job_id=%s", coerced)
            return True
        return False

    async def update_payload(self, job_id: uuid.UUID | str, payload: dict[str, Any]) -> bool:
        """Replace the payload of a FAILED job (operator fix before retry)."""
        coerced = _coerce_job_id(job_id)
        if coerced is None:
            return False
        try:
            async with self.connection.session() as session:
                outcome = await session.execute(
                    update(Job)
                    .where(
                        Job.job_id == coerced,
                        Job.queue == self.name,
                        Job.status == JobStatus.FAILED,
                    )
                    .values(payload_json=payload)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise JobQueueError(f"Failed to update payload: {e}") from e

        if outcome.rowcount == 1:
            logger.info("Job payload edited by operator: job_id=%s", coerced)
            return True
        return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _apply_retention(self, session: AsyncSession, status: JobStatus, keep: int) -> int:
        """Delete all but the `keep` most recently finished jobs of a status."""
        keep_ids = list(
            (
                await session.execute(
                    select(Job.job_id)
                    .where(Job.queue == self.name, Job.status == status)
                    .order_by(Job.finished_at.desc(), Job.created_at.desc())
                    .limit(keep)
                )
            )
            .scalars()
            .all()
        )
        stmt = delete(Job).where(Job.queue == self.name, Job.status == status)
        if keep_ids:
            stmt = stmt.where(Job.job_id.not_in(keep_ids))
        outcome = await session.execute(stmt.execution_options(synchronize_session=False))
        if outcome.rowcount:
            logger.debug("Retention pruned %d %s jobs", outcome.rowcount, status.value)
        return outcome.rowcount

    async def _get_job(self, session: AsyncSession, job_id: uuid.UUID) -> Job | None:
        stmt = select(Job).where(Job.job_id == job_id, Job.queue == self.name)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
