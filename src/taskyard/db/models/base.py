"""Base model definitions and common column types.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Portable column types (UTC timestamps, JSON payloads)
- The job status enum shared by the queue and the admin surface
"""

import enum
from datetime import UTC, datetime
from typing import Annotated, Any

from sqlalchemy import JSON, DateTime, MetaData, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, mapped_column

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    PostgreSQL stores timestamptz natively. SQLite drops tzinfo, so values
    are normalized to UTC on the way in and re-tagged on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# JSONB on PostgreSQL, plain JSON elsewhere
JSONPayload = JSON().with_variant(JSONB(), "postgresql")

TimestampTZ = Annotated[
    datetime,
    mapped_column(UTCDateTime(), nullable=False),
]

OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(UTCDateTime(), nullable=True),
]


class Base(DeclarativeBase):
    """Declarative base for all taskyard models."""

    metadata = metadata


class JobStatus(enum.Enum):
    """Job lifecycle states.

    States:
        WAITING: Eligible for claim now
        DELAYED: Eligible once run_at has passed (explicit delay or backoff)
        ACTIVE: Claimed by exactly one worker
        COMPLETED: Handler finished successfully (terminal)
        FAILED: Attempts exhausted or terminal error (operator retry only)
    """

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
