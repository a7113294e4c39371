"""Pydantic schemas for the taskyard HTTP surface."""

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

__all__ = [
    "ClearFailedResponse",
    "JobListResponse",
    "JobSummarySchema",
    "QueueActionRequest",
    "QueueHealthSchema",
    "QueueMetricsSchema",
    "QueueOverviewResponse",
    "RetryResponse",
]
