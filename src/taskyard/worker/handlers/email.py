"""Email job handler.

Sends a transactional email through the configured MailSender. Provider
errors surface as EmailDeliveryError and are retried by the worker.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from taskyard.services.mail import OutboundMessage

if TYPE_CHECKING:
    from taskyard.services.mail import MailSender
    from taskyard.services.payloads import EmailPayload
    from taskyard.worker.context import JobContext

logger = logging.getLogger(__name__)


class EmailJobHandler:
    """Delivers `email` jobs."""

    def __init__(self, mailer: MailSender) -> None:
        self.mailer = mailer

    async def __call__(self, ctx: JobContext, payload: EmailPayload) -> dict[str, Any]:
        message = OutboundMessage(
            to=payload.recipients,
            subject=payload.subject,
            html=payload.html,
            text=payload.text,
            reply_to=payload.reply_to,
        )
        message_id = await self.mailer.send(message)

        logger.info(
            "Email job delivered: job_id=%s, email_type=%s, recipients=%d",
            ctx.job_id,
            payload.email_type,
            len(message.to),
        )
        return {"message_id": message_id}
