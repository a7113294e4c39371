"""Tests for the taskyard background worker.

Tests cover:
- Worker configuration
- Handler registry validation
- Retry with backoff until the attempt cap
- Bounded concurrency and the claim rate limit
- Terminal failures (4xx webhook, unknown kind, invalid payload)
- Progress reporting
- Graceful shutdown
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime

import httpx
import pytest

from taskyard.core.config import Settings
from taskyard.db.models.base import JobStatus
from taskyard.services.job_queue import JobOptions, JobQueue
from taskyard.services.payloads import JobKind
from taskyard.services.webhooks import WebhookClient
from taskyard.worker.context import HandlerRegistry, WorkerConfigurationError
from taskyard.worker.handlers.webhook import WebhookRetryJobHandler
from taskyard.worker.main import UNKNOWN_KIND_REASON, Worker, WorkerConfig

# Matches the queue fixture in conftest.py
TEST_QUEUE_NAME = "test-jobs"

REPORT_PAYLOAD = {"report_type": "usage", "requested_by": "user-1"}
WEBHOOK_PAYLOAD = {
    "url": "https://hooks.example.com/in",
    "event": "subscription.updated",
    "signed_body": '{"id": "evt_1"}',
    "secret": "whsec",
    "attempt": 1,
    "max_attempts": 5,
}


async def _noop(ctx, payload):
    return None


def _registry(**overrides) -> HandlerRegistry:
    """Registry with a no-op handler for every kind except overrides."""
    registry = HandlerRegistry()
    for kind in JobKind:
        registry.register(kind, overrides.get(kind.name.lower(), _noop))
    return registry


def _config(**kwargs) -> WorkerConfig:
    defaults = {
        "queue_name": TEST_QUEUE_NAME,
        "worker_id": "worker-test",
        "concurrency": 5,
        "limiter_max": 100,
        "limiter_duration_ms": 1000,
        "poll_interval": 0.02,
        "shutdown_timeout": 2.0,
    }
    defaults.update(kwargs)
    return WorkerConfig(**defaults)


async def _wait_until(predicate, timeout: float = 5.0) -> None:
    """Poll an async predicate until it holds or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if await predicate():
            return
        await asyncio.sleep(0.02)
    raise AssertionError("condition not reached before timeout")


async def _run(worker: Worker, until, timeout: float = 5.0) -> None:
    """Run a worker until a condition holds, then stop it."""
    task = asyncio.create_task(worker.start())
    try:
        await _wait_until(until, timeout)
    finally:
        await worker.stop()
        await task


class TestWorkerConfig:
    """Tests for WorkerConfig dataclass."""

    def test_default_config(self):
        """Defaults match the documented worker policy."""
        config = WorkerConfig()

        assert config.queue_name == "taskyard-jobs"
        assert config.concurrency == 5
        assert config.limiter_max == 10
        assert config.limiter_duration_ms == 1000
        assert config.poll_interval == 1.0
        assert config.lock_timeout_seconds == 30
        assert config.shutdown_timeout == 30.0

    def test_worker_id_auto_generated(self):
        """Auto-generated worker ids are unique."""
        config1 = WorkerConfig()
        config2 = WorkerConfig()

        assert config1.worker_id.startswith("worker-")
        assert config1.worker_id != config2.worker_id

    def test_from_settings(self, monkeypatch):
        """Worker settings map onto the config."""
        monkeypatch.setenv("TASKYARD_WORKER__CONCURRENCY", "8")
        monkeypatch.setenv("TASKYARD_WORKER__LIMITER_MAX", "20")
        monkeypatch.setenv("TASKYARD_QUEUE__NAME", "billing-jobs")

        config = WorkerConfig.from_settings(Settings())

        assert config.concurrency == 8
        assert config.limiter_max == 20
        assert config.queue_name == "billing-jobs"


class TestHandlerRegistry:
    """Tests for handler exhaustiveness."""

    def test_complete_registry_validates(self):
        """A handler for every kind passes validation."""
        _registry().validate()

    def test_missing_kind_rejected(self):
        """A missing kind is a configuration error naming the kind."""
        registry = HandlerRegistry()
        registry.register(JobKind.EMAIL, _noop)

        with pytest.raises(WorkerConfigurationError, match="webhook-retry"):
            registry.validate()

    @pytest.mark.asyncio
    async def test_worker_refuses_to_start_with_incomplete_registry(self, store):
        """Worker.start validates the registry before claiming anything."""
        worker = Worker(_config(), store, HandlerRegistry())

        with pytest.raises(WorkerConfigurationError):
            await worker.start()
        assert worker.is_running is False


class TestRetries:
    """Tests for transient failures and backoff."""

    @pytest.mark.asyncio
    async def test_always_failing_email_exhausts_attempts(self, store, fast_options):
        """An always-failing handler runs exactly max_attempts times."""
        attempts: list[int] = []

        async def failing_email(ctx, payload):
            attempts.append(ctx.attempts_made)
            raise RuntimeError("SMTP timeout")

        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue(
            JobKind.EMAIL,
            {"to": "a@example.com", "subject": "Hi", "html": "<p>Hi</p>"},
            max_attempts=3,
        )
        worker = Worker(_config(), store, _registry(email=failing_email), options=fast_options)

        async def failed():
            return (await queue.get_job(job_id)).status == JobStatus.FAILED

        await _run(worker, failed)

        job = await queue.get_job(job_id)
        assert attempts == [1, 2, 3]
        assert job.attempts_made == 3
        assert job.failure_reason == "SMTP timeout"
        assert worker.get_stats()["failed"] == 1

    @pytest.mark.asyncio
    async def test_failure_then_success_completes(self, store, fast_options):
        """A job that fails once and then succeeds ends completed."""
        calls = 0

        async def flaky_report(ctx, payload):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionError("temporary")
            return {"ok": True}

        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue(JobKind.REPORT, REPORT_PAYLOAD)
        worker = Worker(_config(), store, _registry(report=flaky_report), options=fast_options)

        async def completed():
            return (await queue.get_job(job_id)).status == JobStatus.COMPLETED

        await _run(worker, completed)

        job = await queue.get_job(job_id)
        assert job.attempts_made == 2
        assert job.result_json == {"ok": True}

    @pytest.mark.asyncio
    async def test_datetime_result_completes_once(self, store, fast_options):
        """A successful handler is not re-run because of its return value."""
        calls = 0

        async def dated_report(ctx, payload):
            nonlocal calls
            calls += 1
            return {"generated_at": datetime(2026, 10, 19, 12, 0, tzinfo=UTC)}

        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue(JobKind.REPORT, REPORT_PAYLOAD)
        worker = Worker(_config(), store, _registry(report=dated_report), options=fast_options)

        async def completed():
            return (await queue.get_job(job_id)).status == JobStatus.COMPLETED

        await _run(worker, completed)

        job = await queue.get_job(job_id)
        assert calls == 1
        assert job.attempts_made == 1
        assert job.result_json == {"generated_at": "2026-10-19 12:00:00+00:00"}


class TestConcurrency:
    """Tests for bounded concurrency and the rate limit."""

    @pytest.mark.asyncio
    async def test_never_more_than_concurrency_active(self, store, fast_options):
        """With 20 jobs and concurrency 5, at most 5 run at once."""
        running = 0
        peak = 0

        async def slow_report(ctx, payload):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.05)
            running -= 1

        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        for _ in range(20):
            await queue.enqueue(JobKind.REPORT, REPORT_PAYLOAD)
        worker = Worker(_config(concurrency=5), store, _registry(report=slow_report))

        sampled_active: list[int] = []

        async def all_done():
            metrics = await queue.metrics()
            sampled_active.append(metrics.active)
            return metrics.completed == 20

        await _run(worker, all_done, timeout=10.0)

        assert peak <= 5
        assert max(sampled_active) <= 5
        assert worker.get_stats()["peak_in_flight"] <= 5
        assert worker.get_stats()["processed"] == 20

    @pytest.mark.asyncio
    async def test_rate_limit_caps_starts_per_window(self, store, fast_options):
        """No more than limiter_max jobs start within one window."""
        starts: list[float] = []

        async def timed_report(ctx, payload):
            starts.append(time.monotonic())

        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        for _ in range(4):
            await queue.enqueue(JobKind.REPORT, REPORT_PAYLOAD)
        worker = Worker(
            _config(limiter_max=2, limiter_duration_ms=500),
            store,
            _registry(report=timed_report),
        )

        async def all_done():
            return (await queue.metrics()).completed == 4

        await _run(worker, all_done, timeout=10.0)

        starts.sort()
        assert len(starts) == 4
        # The third start waits for the first window to roll over
        assert starts[2] - starts[0] >= 0.45
        assert starts[3] - starts[1] >= 0.45


class TestTerminalFailures:
    """Tests for failures that bypass the retry budget."""

    @pytest.mark.asyncio
    async def test_webhook_404_fails_without_retry(self, store, fast_options):
        """A 4xx webhook answer fails the job on its first attempt."""
        calls = 0

        def respond(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(404)

        client = WebhookClient(transport=httpx.MockTransport(respond))
        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue(JobKind.WEBHOOK_RETRY, WEBHOOK_PAYLOAD, max_attempts=3)
        worker = Worker(
            _config(),
            store,
            _registry(webhook_retry=WebhookRetryJobHandler(client)),
        )

        async def failed():
            return (await queue.get_job(job_id)).status == JobStatus.FAILED

        await _run(worker, failed)
        await client.close()

        job = await queue.get_job(job_id)
        assert calls == 1
        assert job.attempts_made == 1
        assert "404" in job.failure_reason

    @pytest.mark.asyncio
    async def test_webhook_500_is_retried(self, store, fast_options):
        """A 5xx webhook answer is retried until success."""
        statuses = iter([503, 200])

        def respond(request: httpx.Request) -> httpx.Response:
            return httpx.Response(next(statuses))

        client = WebhookClient(transport=httpx.MockTransport(respond))
        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue(JobKind.WEBHOOK_RETRY, WEBHOOK_PAYLOAD)
        worker = Worker(
            _config(),
            store,
            _registry(webhook_retry=WebhookRetryJobHandler(client)),
            options=fast_options,
        )

        async def completed():
            return (await queue.get_job(job_id)).status == JobStatus.COMPLETED

        await _run(worker, completed)
        await client.close()

        assert (await queue.get_job(job_id)).attempts_made == 2

    @pytest.mark.asyncio
    async def test_unknown_kind_fails_immediately(self, store, fast_options):
        """A kind without a handler fails with 'unknown job kind'."""
        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue("token-rotation", {"resource_id": "r1"})
        worker = Worker(_config(), store, _registry())

        async def failed():
            return (await queue.get_job(job_id)).status == JobStatus.FAILED

        await _run(worker, failed)

        job = await queue.get_job(job_id)
        assert job.failure_reason == UNKNOWN_KIND_REASON
        assert job.attempts_made == 1

    @pytest.mark.asyncio
    async def test_invalid_payload_fails_immediately(self, store, fast_options):
        """A payload that does not match its kind is not retried."""
        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue(JobKind.EMAIL, {"subject": "missing recipient"})
        worker = Worker(_config(), store, _registry())

        async def failed():
            return (await queue.get_job(job_id)).status == JobStatus.FAILED

        await _run(worker, failed)

        job = await queue.get_job(job_id)
        assert job.failure_reason.startswith("invalid payload")
        assert job.attempts_made == 1


class TestProgressAndShutdown:
    """Tests for progress reporting and graceful shutdown."""

    @pytest.mark.asyncio
    async def test_progress_reported_by_handler(self, store, fast_options):
        """Progress reported through the context is persisted."""
        seen: list[int] = []

        async def reporting(ctx, payload):
            await ctx.report_progress(40)
            seen.append((await queue.get_job(ctx.job_id)).progress)
            await ctx.report_progress(100)

        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue(JobKind.REPORT, REPORT_PAYLOAD)
        worker = Worker(_config(), store, _registry(report=reporting))

        async def completed():
            return (await queue.get_job(job_id)).status == JobStatus.COMPLETED

        await _run(worker, completed)

        assert seen == [40]
        assert (await queue.get_job(job_id)).progress == 100

    @pytest.mark.asyncio
    async def test_shutdown_cancels_jobs_past_timeout(self, store, fast_options):
        """Jobs outliving the shutdown timeout are cancelled and left active."""
        started = asyncio.Event()

        async def endless(ctx, payload):
            started.set()
            await asyncio.sleep(30)

        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue(JobKind.REPORT, REPORT_PAYLOAD)
        worker = Worker(_config(shutdown_timeout=0.1), store, _registry(report=endless))

        task = asyncio.create_task(worker.start())
        await asyncio.wait_for(started.wait(), timeout=5.0)
        assert worker.is_running is True

        await worker.stop()
        await asyncio.wait_for(task, timeout=5.0)

        assert worker.is_running is False
        assert worker.in_flight == 0
        assert (await queue.get_job(job_id)).status == JobStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_stalled_jobs_recovered_on_start(self, store, fast_options):
        """A job left active by a dead worker is re-run after lock expiry."""
        queue = JobQueue(store, name=TEST_QUEUE_NAME, options=fast_options)
        job_id = await queue.enqueue(JobKind.REPORT, REPORT_PAYLOAD)
        await queue.claim("dead-worker")

        worker = Worker(
            _config(lock_timeout_seconds=1, stalled_check_interval=0.2),
            store,
            _registry(),
            options=JobOptions(backoff_delay_ms=20, lock_timeout_seconds=1),
        )

        async def completed():
            return (await queue.get_job(job_id)).status == JobStatus.COMPLETED

        await _run(worker, completed, timeout=8.0)

        assert (await queue.get_job(job_id)).attempts_made == 2
