"""Metrics digest and alert job handlers.

Both render an email pointing at the admin metrics dashboard and send it
through the MailSender.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from taskyard.services.mail import MailSender, MetricsMailRenderer
    from taskyard.services.payloads import MetricsAlertPayload, MetricsReportPayload
    from taskyard.worker.context import JobContext

logger = logging.getLogger(__name__)


class MetricsReportJobHandler:
    """Sends `metrics-report` digests."""

    def __init__(self, mailer: MailSender, renderer: MetricsMailRenderer) -> None:
        self.mailer = mailer
        self.renderer = renderer

    async def __call__(self, ctx: JobContext, payload: MetricsReportPayload) -> dict[str, Any]:
        message = self.renderer.render_report(payload)
        message_id = await self.mailer.send(message)
        logger.info(
            "Metrics report sent: job_id=%s, report_type=%s",
            ctx.job_id,
            payload.report_type,
        )
        return {"message_id": message_id}


class MetricsAlertJobHandler:
    """Sends `metrics-alert` notifications."""

    def __init__(self, mailer: MailSender, renderer: MetricsMailRenderer) -> None:
        self.mailer = mailer
        self.renderer = renderer

    async def __call__(self, ctx: JobContext, payload: MetricsAlertPayload) -> dict[str, Any]:
        message = self.renderer.render_alert(payload)
        message_id = await self.mailer.send(message)
        logger.info(
            "Metrics alert sent: job_id=%s, alert_type=%s, current_value=%s, threshold=%s",
            ctx.job_id,
            payload.alert_type,
            payload.current_value,
            payload.threshold,
        )
        return {"message_id": message_id}
