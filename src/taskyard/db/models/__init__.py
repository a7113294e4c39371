"""SQLAlchemy models for the job store."""

from taskyard.db.models.base import Base, JobStatus, UTCDateTime, metadata
from taskyard.db.models.jobs import Job

__all__ = [
    "Base",
    "Job",
    "JobStatus",
    "UTCDateTime",
    "metadata",
]
