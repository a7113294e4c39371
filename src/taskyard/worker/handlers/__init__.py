"""Job handlers for the taskyard worker.

Each handler processes one job kind:
- email: transactional email over SMTP
- webhook-retry: signed webhook redelivery
- report: on-demand report generation
- metrics-report / metrics-alert: operator metrics emails
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from taskyard.services.mail import MetricsMailRenderer
from taskyard.services.payloads import JobKind
from taskyard.worker.context import HandlerRegistry
from taskyard.worker.handlers.email import EmailJobHandler
from taskyard.worker.handlers.metrics import MetricsAlertJobHandler, MetricsReportJobHandler
from taskyard.worker.handlers.report import ReportGenerator, ReportJobHandler
from taskyard.worker.handlers.webhook import WebhookRetryJobHandler

if TYPE_CHECKING:
    from taskyard.services.mail import MailSender
    from taskyard.services.webhooks import WebhookClient


def build_default_registry(
    *,
    mailer: MailSender,
    webhook_client: WebhookClient,
    app_base_url: str,
    report_generator: ReportGenerator | None = None,
) -> HandlerRegistry:
    """Register a handler for every job kind."""
    renderer = MetricsMailRenderer(app_base_url)

    registry = HandlerRegistry()
    registry.register(JobKind.EMAIL, EmailJobHandler(mailer))
    registry.register(JobKind.WEBHOOK_RETRY, WebhookRetryJobHandler(webhook_client))
    registry.register(JobKind.REPORT, ReportJobHandler(report_generator))
    registry.register(JobKind.METRICS_REPORT, MetricsReportJobHandler(mailer, renderer))
    registry.register(JobKind.METRICS_ALERT, MetricsAlertJobHandler(mailer, renderer))
    return registry


__all__ = [
    "EmailJobHandler",
    "MetricsAlertJobHandler",
    "MetricsReportJobHandler",
    "ReportGenerator",
    "ReportJobHandler",
    "WebhookRetryJobHandler",
    "build_default_registry",
]
