"""taskyard service layer.

- JobQueue: durable, prioritized job store operations and state machine
- Producer API: typed enqueue helpers per job kind
- QueueAdminService: operator metrics, listings and recovery actions
- SMTPMailer / WebhookClient: outbound delivery used by job handlers
"""

from taskyard.services.admin import JobSummary, QueueAdminService, QueueHealth
from taskyard.services.job_queue import (
    JobNotFoundError,
    JobOptions,
    JobQueue,
    JobQueueError,
    QueueMetrics,
    compute_backoff_ms,
)
from taskyard.services.payloads import JobKind
from taskyard.services.producers import (
    add_email_job,
    add_metrics_alert_job,
    add_metrics_report_job,
    add_report_job,
    add_webhook_retry_job,
)

__all__ = [
    "JobKind",
    "JobNotFoundError",
    "JobOptions",
    "JobQueue",
    "JobQueueError",
    "JobSummary",
    "QueueAdminService",
    "QueueHealth",
    "QueueMetrics",
    "add_email_job",
    "add_metrics_alert_job",
    "add_metrics_report_job",
    "add_report_job",
    "add_webhook_retry_job",
    "compute_backoff_ms",
]
