"""Report job handler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from taskyard.services.payloads import ReportPayload
    from taskyard.worker.context import JobContext

logger = logging.getLogger(__name__)


class ReportGenerator(Protocol):
    async def generate(self, payload: ReportPayload) -> dict[str, Any] | None: ...


class ReportJobHandler:
    """Runs `report` jobs.

    Without a generator the job only records progress; report content is
    produced by the host application when it supplies one.
    """

    def __init__(self, generator: ReportGenerator | None = None) -> None:
        self.generator = generator

    async def __call__(self, ctx: JobContext, payload: ReportPayload) -> dict[str, Any] | None:
        logger.info(
            "Processing %s report: job_id=%s, requested_by=%s",
            payload.report_type,
            ctx.job_id,
            payload.requested_by,
        )
        await ctx.report_progress(0)

        result = None
        if self.generator is not None:
            result = await self.generator.generate(payload)

        await ctx.report_progress(100)
        logger.info("Report completed: job_id=%s, report_type=%s", ctx.job_id, payload.report_type)
        return result
