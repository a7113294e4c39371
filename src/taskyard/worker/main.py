"""taskyard worker service entry point.

This module provides the Worker class that:
- Claims jobs from the queue with bounded concurrency and a claim rate limit
- Dispatches each job by kind to its registered handler
- Drives the retry/backoff state machine through the JobQueue
- Promotes delayed jobs, renews claim locks and recovers stalled jobs
- Handles graceful shutdown via SIGTERM/SIGINT
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import signal
import sys
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, NoReturn

from pydantic import ValidationError

from taskyard.core.config import DEFAULT_QUEUE_NAME
from taskyard.services.job_queue import JobOptions, JobQueue, JobQueueError
from taskyard.services.payloads import parse_kind, parse_payload
from taskyard.worker.context import JobContext, TerminalJobError
from taskyard.worker.ratelimit import ClaimRateLimiter

if TYPE_CHECKING:
    from taskyard.core.config import Settings
    from taskyard.db import StoreConnection
    from taskyard.db.models.jobs import Job
    from taskyard.worker.context import HandlerRegistry

logger = logging.getLogger(__name__)

UNKNOWN_KIND_REASON = "unknown job kind"


@dataclass
class WorkerConfig:
    """Configuration for the worker process.

    Attributes:
        queue_name: Queue to consume.
        worker_id: Unique identifier for this worker instance.
        concurrency: Maximum jobs executing at once.
        limiter_max: Maximum job starts per limiter window.
        limiter_duration_ms: Limiter window length.
        poll_interval: Seconds between queue polls when idle.
        lock_timeout_seconds: Claim lock lifetime without heartbeat.
        stalled_check_interval: Seconds between stalled-job sweeps.
        shutdown_timeout: Seconds to wait for in-flight jobs on shutdown.
    """

    queue_name: str = DEFAULT_QUEUE_NAME
    worker_id: str = field(default_factory=lambda: f"worker-{uuid.uuid4().hex[:8]}")
    concurrency: int = 5
    limiter_max: int = 10
    limiter_duration_ms: int = 1000
    poll_interval: float = 1.0
    lock_timeout_seconds: int = 30
    stalled_check_interval: float = 30.0
    shutdown_timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> WorkerConfig:
        worker = settings.worker
        return cls(
            queue_name=settings.queue.name,
            concurrency=worker.concurrency,
            limiter_max=worker.limiter_max,
            limiter_duration_ms=worker.limiter_duration_ms,
            poll_interval=worker.poll_interval,
            lock_timeout_seconds=worker.lock_timeout_seconds,
            stalled_check_interval=worker.stalled_check_interval,
            shutdown_timeout=worker.shutdown_timeout,
        )


class Worker:
    """Background job worker consuming one queue.

    Claims are atomic in the store, so several workers (in one process or
    many) can consume the same queue safely.

    Example:
        worker = Worker(WorkerConfig(), connections.consumer, registry)
        task = asyncio.create_task(worker.start())
        ...
        await worker.stop()
        await task
    """

    def __init__(
        self,
        config: WorkerConfig,
        connection: StoreConnection,
        registry: HandlerRegistry,
        *,
        options: JobOptions | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            config: Worker configuration settings.
            connection: Consumer connection to the job store.
            registry: Handlers for every job kind.
            options: Queue options; retention and lock timeout apply here.
        """
        self.config = config
        self.registry = registry
        self.queue = JobQueue(
            connection,
            name=config.queue_name,
            options=options or JobOptions(lock_timeout_seconds=config.lock_timeout_seconds),
        )
        self._limiter = ClaimRateLimiter(
            config.limiter_max,
            config.limiter_duration_ms / 1000,
        )
        self._shutdown_event = asyncio.Event()
        self._in_flight: dict[asyncio.Task[None], uuid.UUID] = {}
        self._running = False
        self._started_at: datetime | None = None
        self._jobs_processed = 0
        self._jobs_failed = 0
        self._peak_in_flight = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def get_stats(self) -> dict[str, int | str]:
        """Counters since start, for logs and tests."""
        return {
            "worker_id": self.config.worker_id,
            "processed": self._jobs_processed,
            "failed": self._jobs_failed,
            "in_flight": len(self._in_flight),
            "peak_in_flight": self._peak_in_flight,
        }

    async def start(self) -> None:
        """Run until stop() is requested, then drain in-flight jobs.

        Raises:
            WorkerConfigurationError: If a job kind has no handler.
        """
        self.registry.validate()

        self._running = True
        self._started_at = datetime.now(UTC)
        logger.info(
            "Worker starting: worker_id=%s, queue=%s, concurrency=%d, limiter=%d/%dms",
            self.config.worker_id,
            self.config.queue_name,
            self.config.concurrency,
            self.config.limiter_max,
            self.config.limiter_duration_ms,
        )

        try:
            await self._run_loop()
        finally:
            await self._drain()
            self._running = False
            logger.info(
                "Worker stopped: worker_id=%s, processed=%d, failed=%d, uptime=%s",
                self.config.worker_id,
                self._jobs_processed,
                self._jobs_failed,
                self._get_uptime(),
            )

    async def stop(self) -> None:
        """Request graceful shutdown of the worker."""
        logger.info("Worker shutdown requested: worker_id=%s", self.config.worker_id)
        self._shutdown_event.set()

    async def _run_loop(self) -> None:
        """Main loop: maintain, promote, claim, then wait for activity."""
        heartbeat_interval = max(self.config.lock_timeout_seconds / 2, 0.1)
        last_stalled_check = float("-inf")
        last_heartbeat = time.monotonic()

        while not self._shutdown_event.is_set():
            try:
                now = time.monotonic()
                if now - last_stalled_check >= self.config.stalled_check_interval:
                    await self.queue.recover_stalled(self.config.lock_timeout_seconds)
                    last_stalled_check = now
                if self._in_flight and now - last_heartbeat >= heartbeat_interval:
                    await self.queue.extend_locks(
                        self.config.worker_id, list(self._in_flight.values())
                    )
                    last_heartbeat = now

                await self.queue.promote_delayed()
                await self._fill_slots()

            except JobQueueError as e:
                # Store unavailable: keep running, retry on the next cycle
                logger.exception("Error in worker loop: %s", e)

            await self._wait_for_activity()

    async def _fill_slots(self) -> None:
        """Claim jobs while concurrency and the rate limit allow."""
        while (
            len(self._in_flight) < self.config.concurrency
            and not self._shutdown_event.is_set()
        ):
            if not self._limiter.try_acquire():
                return

            job = await self.queue.claim(self.config.worker_id)
            if job is None:
                self._limiter.release_last()
                return

            task = asyncio.create_task(self._process(job))
            self._in_flight[task] = job.job_id
            task.add_done_callback(self._in_flight.pop)
            self._peak_in_flight = max(self._peak_in_flight, len(self._in_flight))

    async def _wait_for_activity(self) -> None:
        """Sleep until a job finishes, the limiter reopens, a poll is due or shutdown."""
        if self._shutdown_event.is_set():
            return

        timeout = self.config.poll_interval
        if len(self._in_flight) < self.config.concurrency:
            reopen = self._limiter.seconds_until_available()
            if reopen > 0:
                timeout = min(timeout, reopen)

        shutdown_waiter = asyncio.create_task(self._shutdown_event.wait())
        try:
            await asyncio.wait(
                {shutdown_waiter, *self._in_flight},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            shutdown_waiter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await shutdown_waiter

    async def _process(self, job: Job) -> None:
        """Execute one claimed job and record its outcome."""
        try:
            await self._dispatch(job)
        except JobQueueError as e:
            # Outcome not recorded; the job stays active until stall recovery
            logger.error(
                "Failed to record job outcome: job_id=%s, kind=%s, error=%s",
                job.job_id,
                job.kind,
                e,
            )

    async def _dispatch(self, job: Job) -> None:
        kind = parse_kind(job.kind)
        handler = self.registry.get(kind) if kind is not None else None
        if handler is None:
            logger.error("No handler for job: job_id=%s, kind=%s", job.job_id, job.kind)
            await self.queue.fail(job.job_id, UNKNOWN_KIND_REASON, terminal=True)
            self._jobs_failed += 1
            return

        try:
            payload = parse_payload(kind, job.payload_json)
        except ValidationError as e:
            logger.error("Invalid job payload: job_id=%s, kind=%s, error=%s", job.job_id, job.kind, e)
            await self.queue.fail(job.job_id, f"invalid payload: {e}", terminal=True)
            self._jobs_failed += 1
            return

        ctx = JobContext(
            job_id=job.job_id,
            kind=kind,
            attempts_made=job.attempts_made,
            max_attempts=job.max_attempts,
            report_progress=functools.partial(self.queue.update_progress, job.job_id),
        )

        logger.info(
            "Processing job: job_id=%s, kind=%s, attempt=%d/%d",
            job.job_id,
            job.kind,
            job.attempts_made,
            job.max_attempts,
        )

        try:
            result = await handler(ctx, payload)
        except TerminalJobError as e:
            logger.warning("Job failed terminally: job_id=%s, kind=%s, error=%s", job.job_id, job.kind, e)
            await self.queue.fail(job.job_id, _describe(e), terminal=True)
            self._jobs_failed += 1
            return
        except Exception as e:
            logger.exception("Job failed: job_id=%s, kind=%s, error=%s", job.job_id, job.kind, e)
            will_retry = await self.queue.fail(job.job_id, _describe(e))
            if not will_retry:
                self._jobs_failed += 1
            return

        await self.queue.complete(job.job_id, result if isinstance(result, dict) else None)
        self._jobs_processed += 1

    async def _drain(self) -> None:
        """Wait for in-flight jobs, cancelling those that outlive the timeout."""
        if not self._in_flight:
            return

        logger.info(
            "Waiting for in-flight jobs: worker_id=%s, count=%d",
            self.config.worker_id,
            len(self._in_flight),
        )
        _, pending = await asyncio.wait(
            set(self._in_flight),
            timeout=self.config.shutdown_timeout,
        )
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Cancelled %d jobs at shutdown; they will be recovered as stalled",
                len(pending),
            )

    def _get_uptime(self) -> str:
        """Calculate worker uptime as a human-readable string."""
        if self._started_at is None:
            return "0s"
        delta = datetime.now(UTC) - self._started_at
        hours, remainder = divmod(int(delta.total_seconds()), 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours > 0:
            return f"{hours}h {minutes}m {seconds}s"
        elif minutes > 0:
            return f"{minutes}m {seconds}s"
        else:
            return f"{seconds}s"


def _describe(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


# Global shutdown event for signal handlers
_shutdown_event: asyncio.Event | None = None
_loop: asyncio.AbstractEventLoop | None = None


def _handle_shutdown(signum: int, _frame: object) -> None:
    """Handle shutdown signals gracefully."""
    logger.info("Shutdown signal received (signal=%d)", signum)
    if _shutdown_event is not None and _loop is not None:
        _loop.call_soon_threadsafe(_shutdown_event.set)


async def _async_main(shutdown_event: asyncio.Event) -> None:
    """Async entry point for the worker.

    Args:
        shutdown_event: Event to signal shutdown request.
    """
    from taskyard.core.settings import get_settings
    from taskyard.runtime import JobRuntime

    runtime = JobRuntime.from_settings(get_settings())
    worker = runtime.start_worker()
    if worker is None:
        await runtime.stop()
        return

    await shutdown_event.wait()
    await runtime.stop()


def run() -> NoReturn:
    """Run the worker process.

    This is the main entry point for the worker. It:
    - Sets up logging from TASKYARD_LOG_LEVEL
    - Registers signal handlers for graceful shutdown
    - Builds the runtime from settings
    - Runs the async worker loop
    """
    from taskyard.core.settings import get_settings

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    logger.info("taskyard worker starting...")

    async def _run_with_event() -> None:
        global _shutdown_event, _loop
        _shutdown_event = asyncio.Event()
        _loop = asyncio.get_running_loop()
        await _async_main(_shutdown_event)

    try:
        asyncio.run(_run_with_event())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    except Exception as e:
        logger.exception("Worker failed: %s", e)
        sys.exit(1)

    logger.info("taskyard worker shutdown complete")
    sys.exit(0)


if __name__ == "__main__":
    run()
