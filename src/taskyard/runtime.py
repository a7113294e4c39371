"""Composition root for the job subsystem.

JobRuntime owns the store connections, the producer-side JobQueue, the
optional in-process Worker and the outbound clients. Nothing here is
cached at module level: the host application builds one runtime at
startup and stops it at shutdown.

Usage:
    runtime = JobRuntime.from_settings(get_settings())
    runtime.start_worker()
    await add_email_job(runtime.queue, {...})
    ...
    await runtime.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from taskyard.db import open_store_connections
from taskyard.services.admin import QueueAdminService
from taskyard.services.job_queue import JobOptions, JobQueue
from taskyard.services.mail import SMTPMailer
from taskyard.services.webhooks import WebhookClient
from taskyard.worker.handlers import build_default_registry
from taskyard.worker.main import Worker, WorkerConfig

if TYPE_CHECKING:
    from taskyard.core.config import Settings
    from taskyard.db import StoreConnections
    from taskyard.services.admin import QueueHealth
    from taskyard.services.mail import MailSender
    from taskyard.worker.context import HandlerRegistry
    from taskyard.worker.handlers import ReportGenerator

logger = logging.getLogger(__name__)


class JobRuntime:
    """Process-wide handle on the queue, worker and their connections.

    Attributes:
        settings: Application settings.
        connections: Producer/consumer store connections, or None when the
            store is not configured (degraded mode).
        queue: Producer-side queue, or None in degraded mode.
    """

    def __init__(
        self,
        settings: Settings,
        connections: StoreConnections | None,
        *,
        mailer: MailSender | None = None,
        webhook_client: WebhookClient | None = None,
        report_generator: ReportGenerator | None = None,
    ) -> None:
        self.settings = settings
        self.connections = connections
        self.options = JobOptions.from_settings(settings.queue, settings.worker)
        self.mailer = mailer or SMTPMailer(settings.smtp)
        self.webhook_client = webhook_client or WebhookClient(settings.webhook_timeout_seconds)
        self.report_generator = report_generator

        self.queue: JobQueue | None = None
        if connections is not None:
            self.queue = JobQueue(connections.producer, name=settings.queue.name, options=self.options)

        self.worker: Worker | None = None
        self._worker_task: asyncio.Task[None] | None = None
        self._unconfigured_logged = False

    @classmethod
    def from_settings(cls, settings: Settings) -> JobRuntime:
        """Open store connections (if configured) and build the runtime."""
        return cls(settings, open_store_connections(settings))

    @property
    def admin(self) -> QueueAdminService:
        return QueueAdminService(self.queue, worker=self.worker, queue_name=self.settings.queue.name)

    def build_registry(self) -> HandlerRegistry:
        return build_default_registry(
            mailer=self.mailer,
            webhook_client=self.webhook_client,
            app_base_url=self.settings.app_base_url,
            report_generator=self.report_generator,
        )

    def start_worker(self) -> Worker | None:
        """Start the in-process worker, once.

        Returns:
            The running worker, or None when the store is not configured
            or the worker is disabled.

        Raises:
            WorkerConfigurationError: If a job kind has no handler.
        """
        if self.worker is not None:
            return self.worker

        if self.connections is None:
            if not self._unconfigured_logged:
                logger.info("store not configured, worker not started")
                self._unconfigured_logged = True
            return None

        if not self.settings.worker.enabled:
            logger.info("Worker disabled by configuration: queue=%s", self.settings.queue.name)
            return None

        registry = self.build_registry()
        registry.validate()

        self.worker = Worker(
            WorkerConfig.from_settings(self.settings),
            self.connections.consumer,
            registry,
            options=self.options,
        )
        self._worker_task = asyncio.create_task(self.worker.start())
        return self.worker

    async def health(self) -> QueueHealth:
        return await self.admin.health()

    async def stop(self) -> None:
        """Stop the worker (draining in-flight jobs) and release resources.

        Clients and connections are released even when the worker task
        ended with an error; that error is re-raised afterwards.
        """
        try:
            if self.worker is not None and self._worker_task is not None:
                await self.worker.stop()
                try:
                    # The worker bounds its own drain by shutdown_timeout.
                    # wait_for cancels the task when the timeout expires.
                    await asyncio.wait_for(
                        self._worker_task,
                        timeout=self.settings.worker.shutdown_timeout + 5,
                    )
                except TimeoutError:
                    logger.warning("Worker did not stop within timeout, task cancelled")
                finally:
                    self._worker_task = None
        finally:
            await self.webhook_client.close()
            if self.connections is not None:
                await self.connections.dispose()
