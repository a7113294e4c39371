"""Webhook redelivery job handler.

A 4xx answer means the receiver will never accept this body, so the job
fails at once. Server errors and transport failures are retried.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from taskyard.services.webhooks import WebhookRejectedError
from taskyard.worker.context import TerminalJobError

if TYPE_CHECKING:
    from taskyard.services.payloads import WebhookRetryPayload
    from taskyard.services.webhooks import WebhookClient
    from taskyard.worker.context import JobContext

logger = logging.getLogger(__name__)


class WebhookRetryJobHandler:
    """Delivers `webhook-retry` jobs."""

    def __init__(self, client: WebhookClient) -> None:
        self.client = client

    async def __call__(self, ctx: JobContext, payload: WebhookRetryPayload) -> dict[str, Any]:
        try:
            status = await self.client.deliver(payload)
        except WebhookRejectedError as e:
            logger.warning(
                "Webhook rejected by receiver: job_id=%s, event=%s, status=%d",
                ctx.job_id,
                payload.event,
                e.status_code,
            )
            raise TerminalJobError(str(e)) from e

        return {"status_code": status}
