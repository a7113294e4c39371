"""Pydantic schemas for the queue admin endpoints.

Field names are serialized in camelCase for the admin dashboard.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueueMetricsSchema(_CamelModel):
    """Job counts per status."""

    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int
    paused: int = 0


class QueueHealthSchema(_CamelModel):
    """Connectivity of the queue subsystem."""

    connected: bool
    worker_running: bool
    queue_name: str


class QueueOverviewResponse(_CamelModel):
    """Response for action=metrics. Metrics are null when the queue is disabled."""

    metrics: QueueMetricsSchema | None
    health: QueueHealthSchema


class JobSummarySchema(_CamelModel):
    """Operator view of one job."""

    id: str
    name: str = Field(..., description="Job kind")
    data: dict[str, Any] = Field(default_factory=dict, description="Redacted payload")
    status: str
    progress: int
    attempts_made: int
    max_attempts: int
    failed_reason: str | None = None
    created_at: datetime
    processed_at: datetime | None = None
    finished_at: datetime | None = None


class JobListResponse(_CamelModel):
    """Response for action=jobs."""

    jobs: list[JobSummarySchema]


class QueueActionRequest(_CamelModel):
    """Body of POST /admin/queue."""

    action: str
    job_id: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RetryResponse(_CamelModel):
    success: bool


class ClearFailedResponse(_CamelModel):
    cleared: int
