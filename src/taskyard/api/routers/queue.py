"""Queue admin API router.

Single endpoint pair mirroring the admin dashboard contract:

    GET  /admin/queue?action=metrics          -> {metrics, health}
    GET  /admin/queue?action=jobs&status=...  -> {jobs}
    POST /admin/queue {action: "retry", jobId} -> {success}
    POST /admin/queue {action: "clear-failed"} -> {cleared}

All requests require an owner or admin principal.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from taskyard.api.auth import OperatorUser
from taskyard.api.schemas.queue import (
    ClearFailedResponse,
    JobListResponse,
    JobSummarySchema,
    QueueActionRequest,
    QueueHealthSchema,
    QueueMetricsSchema,
    QueueOverviewResponse,
    RetryResponse,
)
from taskyard.db.models.base import JobStatus
from taskyard.services.admin import JobSummary, QueueAdminService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Operator role required"},
    },
)


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def get_queue_admin(request: Request) -> QueueAdminService:
    """Admin service of the runtime attached to the application."""
    runtime = getattr(request.app.state, "job_runtime", None)
    if runtime is None:
        return QueueAdminService(None)
    return runtime.admin


QueueAdmin = Annotated[QueueAdminService, Depends(get_queue_admin)]


def _invalid_action() -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")


def _to_schema(job: JobSummary) -> JobSummarySchema:
    return JobSummarySchema(
        id=job.id,
        name=job.kind,
        data=job.payload,
        status=job.status,
        progress=job.progress,
        attempts_made=job.attempts_made,
        max_attempts=job.max_attempts,
        failed_reason=job.failure_reason,
        created_at=job.created_at,
        processed_at=job.processed_at,
        finished_at=job.finished_at,
    )


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.get(
    "/queue",
    response_model=None,
    summary="Queue metrics or job listing",
)
async def read_queue(
    _user: OperatorUser,
    admin: QueueAdmin,
    action: Annotated[str, Query()] = "metrics",
    job_status: Annotated[str, Query(alias="status")] = JobStatus.COMPLETED.value,
) -> QueueOverviewResponse | JobListResponse:
    """Read-only view of the queue. Never mutates job state."""
    if action == "metrics":
        metrics = await admin.metrics()
        health = await admin.health()
        return QueueOverviewResponse(
            metrics=QueueMetricsSchema(**metrics.to_dict()) if metrics is not None else None,
            health=QueueHealthSchema(**health.to_dict()),
        )

    if action == "jobs":
        try:
            bucket = JobStatus(job_status)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status: {job_status}",
            ) from e
        jobs = await admin.list_jobs(bucket)
        return JobListResponse(jobs=[_to_schema(job) for job in jobs])

    raise _invalid_action()


@router.post(
    "/queue",
    response_model=None,
    summary="Retry a failed job or clear failed jobs",
)
async def act_on_queue(
    body: QueueActionRequest,
    user: OperatorUser,
    admin: QueueAdmin,
) -> RetryResponse | ClearFailedResponse:
    """Operator recovery actions."""
    if body.action == "retry":
        if not body.job_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Job ID required",
            )
        success = await admin.retry(body.job_id)
        logger.info(
            "Queue retry requested: user_id=%s, job_id=%s, success=%s",
            getattr(user, "user_id", None),
            body.job_id,
            success,
        )
        return RetryResponse(success=success)

    if body.action == "clear-failed":
        cleared = await admin.clear_failed()
        logger.warning(
            "Failed jobs cleared: user_id=%s, cleared=%d",
            getattr(user, "user_id", None),
            cleared,
        )
        return ClearFailedResponse(cleared=cleared)

    raise _invalid_action()
