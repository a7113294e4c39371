"""Producer API: typed enqueue helpers for each job kind.

Each helper validates its payload, derives the kind's default priority and
delay, and enqueues the job. When the queue is unavailable (no store
configured) the helpers log and return None instead of raising, so callers
can degrade gracefully without special-casing missing infrastructure.

Priorities (lower is served first):
    metrics-alert 1, team-invite email 1, other email 2,
    webhook-retry 3, metrics-report 4, report 5
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from taskyard.services.payloads import (
    EmailPayload,
    JobKind,
    JobPayload,
    MetricsAlertPayload,
    MetricsReportPayload,
    ReportPayload,
    WebhookRetryPayload,
)

if TYPE_CHECKING:
    from taskyard.services.job_queue import JobQueue

logger = logging.getLogger(__name__)

PRIORITY_URGENT = 1
PRIORITY_EMAIL = 2
PRIORITY_WEBHOOK_RETRY = 3
PRIORITY_METRICS_REPORT = 4
PRIORITY_REPORT = 5

# Redelivery cadence of webhook-retry jobs: attempt n waits n * base
WEBHOOK_RETRY_BASE_DELAY_MS = 2000


def _coerce(model: type[JobPayload], payload: JobPayload | dict[str, Any]) -> Any:
    if isinstance(payload, model):
        return payload
    if isinstance(payload, JobPayload):
        return model.model_validate(payload.model_dump())
    return model.model_validate(payload)


async def _submit(
    queue: JobQueue | None,
    kind: JobKind,
    payload: JobPayload,
    *,
    priority: int,
    delay_ms: int = 0,
) -> str | None:
    if queue is None:
        if kind == JobKind.EMAIL:
            # Callers fall back to sending inline
            logger.warning("Job queue not configured, email not enqueued")
        else:
            logger.debug("Job queue not configured, %s job not enqueued", kind.value)
        return None

    job_id = await queue.enqueue(kind, payload.to_json(), priority=priority, delay_ms=delay_ms)
    return str(job_id)


async def add_email_job(
    queue: JobQueue | None,
    payload: EmailPayload | dict[str, Any],
) -> str | None:
    """Enqueue a transactional email.

    Team invitations jump ahead of other mail.

    Raises:
        pydantic.ValidationError: If the payload is malformed.
    """
    email = _coerce(EmailPayload, payload)
    priority = PRIORITY_URGENT if email.email_type == "team-invite" else PRIORITY_EMAIL
    return await _submit(queue, JobKind.EMAIL, email, priority=priority)


async def add_webhook_retry_job(
    queue: JobQueue | None,
    payload: WebhookRetryPayload | dict[str, Any],
) -> str | None:
    """Enqueue a webhook redelivery, delayed proportionally to its attempt number.

    Raises:
        pydantic.ValidationError: If the payload is malformed.
    """
    retry = _coerce(WebhookRetryPayload, payload)
    return await _submit(
        queue,
        JobKind.WEBHOOK_RETRY,
        retry,
        priority=PRIORITY_WEBHOOK_RETRY,
        delay_ms=WEBHOOK_RETRY_BASE_DELAY_MS * retry.attempt,
    )


async def add_report_job(
    queue: JobQueue | None,
    payload: ReportPayload | dict[str, Any],
) -> str | None:
    """Enqueue an on-demand report."""
    report = _coerce(ReportPayload, payload)
    return await _submit(queue, JobKind.REPORT, report, priority=PRIORITY_REPORT)


async def add_metrics_report_job(
    queue: JobQueue | None,
    payload: MetricsReportPayload | dict[str, Any],
) -> str | None:
    """Enqueue a weekly or monthly metrics digest email."""
    report = _coerce(MetricsReportPayload, payload)
    return await _submit(
        queue, JobKind.METRICS_REPORT, report, priority=PRIORITY_METRICS_REPORT
    )


async def add_metrics_alert_job(
    queue: JobQueue | None,
    payload: MetricsAlertPayload | dict[str, Any],
) -> str | None:
    """Enqueue a metrics threshold alert. Alerts are served first."""
    alert = _coerce(MetricsAlertPayload, payload)
    return await _submit(queue, JobKind.METRICS_ALERT, alert, priority=PRIORITY_URGENT)
