"""Configuration management for taskyard.

This module provides centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables with the TASKYARD_
prefix. Nested settings use double underscore as delimiter
(e.g., TASKYARD_STORE__URL).

The job store is gated by two credentials: the store URL and the store
token. When either is missing the queue is disabled and the application
runs in degraded (inline-only) mode.

Example:
    export TASKYARD_STORE__URL=postgresql://jobs@localhost:5432/app
    export TASKYARD_STORE__TOKEN=secret
    export TASKYARD_WORKER__CONCURRENCY=5
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import cached_property
from typing import Annotated, Any, Self

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_NAME = "taskyard-jobs"


class Environment(str, Enum):
    """Deployment environment.

    Affects default behaviors and validation strictness.
    """

    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class StoreSettings(BaseSettings):
    """Durable job store connection settings.

    Both url and token must be present for the queue to be enabled.
    The token is injected as the database password so that the URL can be
    shared in non-secret configuration.
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKYARD_STORE__",
        extra="ignore",
    )

    url: str | None = Field(
        default=None,
        description="SQLAlchemy URL of the job store (postgresql://user@host/db)",
    )
    token: SecretStr | None = Field(
        default=None,
        description="Credential for the job store (injected as the password)",
    )
    pool_size: Annotated[int, Field(ge=1, le=100)] = Field(
        default=5,
        description="Connection pool size per store connection",
    )
    echo: bool = Field(
        default=False,
        description="Enable SQL query logging (dev only)",
    )

    @property
    def is_configured(self) -> bool:
        """Whether both store credentials are present."""
        return bool(self.url) and self.token is not None and bool(self.token.get_secret_value())

    def async_url(self) -> str:
        """Build the async driver URL with the token applied as password.

        Returns:
            URL string suitable for create_async_engine.

        Raises:
            ConfigValidationError: If the store is not configured.
        """
        if not self.is_configured:
            raise ConfigValidationError(
                "Store is not configured. Set TASKYARD_STORE__URL and TASKYARD_STORE__TOKEN.",
                field="store.url",
            )

        url = str(self.url)
        # Ensure we're using the async driver
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+psycopg://", 1)
        elif url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+psycopg://", 1)

        parsed = make_url(url)
        if not parsed.drivername.startswith("sqlite"):
            parsed = parsed.set(password=self.token.get_secret_value())  # type: ignore[union-attr]
        return parsed.render_as_string(hide_password=False)

    def sync_url(self) -> str:
        """URL for synchronous tooling (Alembic).

        psycopg 3 serves both modes, so only the SQLite driver changes.
        """
        return self.async_url().replace("sqlite+aiosqlite://", "sqlite://", 1)


class QueueSettings(BaseSettings):
    """Default job options for the queue."""

    model_config = SettingsConfigDict(
        env_prefix="TASKYARD_QUEUE__",
        extra="ignore",
    )

    name: str = Field(
        default=DEFAULT_QUEUE_NAME,
        description="Logical queue name",
    )
    attempts: Annotated[int, Field(ge=1, le=50)] = Field(
        default=3,
        description="Default maximum execution attempts per job",
    )
    backoff_delay_ms: Annotated[int, Field(ge=0)] = Field(
        default=2000,
        description="Base delay for exponential retry backoff in milliseconds",
    )
    keep_completed: Annotated[int, Field(ge=0)] = Field(
        default=100,
        description="Number of most recent completed jobs to retain",
    )
    keep_failed: Annotated[int, Field(ge=0)] = Field(
        default=200,
        description="Number of most recent failed jobs to retain",
    )


class WorkerSettings(BaseSettings):
    """Worker pool settings."""

    model_config = SettingsConfigDict(
        env_prefix="TASKYARD_WORKER__",
        extra="ignore",
    )

    enabled: bool = Field(
        default=True,
        description="Start the worker alongside the runtime",
    )
    concurrency: Annotated[int, Field(ge=1, le=100)] = Field(
        default=5,
        description="Maximum jobs executing simultaneously",
    )
    limiter_max: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description="Maximum claims per limiter window",
    )
    limiter_duration_ms: Annotated[int, Field(ge=1)] = Field(
        default=1000,
        description="Limiter window length in milliseconds",
    )
    poll_interval: Annotated[float, Field(gt=0)] = Field(
        default=1.0,
        description="Seconds between polls when the queue is idle",
    )
    lock_timeout_seconds: Annotated[int, Field(ge=1)] = Field(
        default=30,
        description="Seconds before an unrenewed claim is considered stalled",
    )
    stalled_check_interval: Annotated[float, Field(gt=0)] = Field(
        default=30.0,
        description="Seconds between stalled-job checks",
    )
    shutdown_timeout: Annotated[float, Field(gt=0)] = Field(
        default=30.0,
        description="Seconds to wait for in-flight jobs on shutdown",
    )


class SMTPSettings(BaseSettings):
    """SMTP settings for outbound email jobs."""

    model_config = SettingsConfigDict(
        env_prefix="TASKYARD_SMTP__",
        extra="ignore",
    )

    host: str = Field(
        default="localhost",
        description="SMTP server hostname",
    )
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=1025,
        description="SMTP server port (1025 is Mailpit default)",
    )
    username: str | None = Field(
        default=None,
        description="SMTP authentication username (optional for dev)",
    )
    password: SecretStr | None = Field(
        default=None,
        description="SMTP authentication password (optional for dev)",
    )
    use_tls: bool = Field(
        default=False,
        description="Enable STARTTLS",
    )
    use_ssl: bool = Field(
        default=False,
        description="Enable implicit TLS/SSL",
    )
    from_address: str = Field(
        default="noreply@taskyard.local",
        description="Default sender email address",
    )
    from_name: str = Field(
        default="taskyard",
        description="Default sender display name",
    )
    timeout: Annotated[int, Field(ge=1, le=120)] = Field(
        default=30,
        description="SMTP connection timeout in seconds",
    )


class Settings(BaseSettings):
    """Main taskyard configuration container.

    Example environment variables:
        TASKYARD_ENVIRONMENT=production
        TASKYARD_STORE__URL=postgresql://jobs@db/app
        TASKYARD_STORE__TOKEN=...
        TASKYARD_WORKER__CONCURRENCY=8
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKYARD_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_default=True,
    )

    environment: Environment = Field(
        default=Environment.DEV,
        description="Deployment environment (dev, staging, production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Public base URL of the application (used in email links)",
    )
    webhook_timeout_seconds: Annotated[float, Field(gt=0, le=120)] = Field(
        default=10.0,
        description="Abort timeout for webhook redelivery requests",
    )

    store: StoreSettings = Field(default_factory=StoreSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    smtp: SMTPSettings = Field(default_factory=SMTPSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            msg = f"Log level must be one of: {', '.join(sorted(allowed))}"
            raise ValueError(msg)
        return v.upper()

    @field_validator("app_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Strip trailing slash so links can be joined with '/path'."""
        return v.rstrip("/")

    @model_validator(mode="after")
    def warn_production_constraints(self) -> Self:
        """Warn about insecure settings in production."""
        if self.environment == Environment.PRODUCTION:
            if not self.smtp.use_tls and not self.smtp.use_ssl:
                logger.warning(
                    "SMTP is configured without TLS in production. "
                    "Outbound mail will be sent in clear text."
                )
            if not self.store.is_configured:
                logger.warning(
                    "Job store is not configured in production. "
                    "All background work will run inline."
                )
        return self

    @cached_property
    def is_queue_configured(self) -> bool:
        """Check whether the durable store credentials are present."""
        return self.store.is_configured

    @cached_property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def get_snapshot(self) -> dict[str, Any]:
        """Non-sensitive configuration snapshot for startup logging."""
        return {
            "environment": self.environment.value,
            "queue_configured": self.is_queue_configured,
            "queue": {
                "name": self.queue.name,
                "attempts": self.queue.attempts,
                "backoff_delay_ms": self.queue.backoff_delay_ms,
            },
            "worker": {
                "enabled": self.worker.enabled,
                "concurrency": self.worker.concurrency,
                "limiter": f"{self.worker.limiter_max}/{self.worker.limiter_duration_ms}ms",
            },
        }


class ConfigValidationError(Exception):
    """Raised when configuration validation fails.

    This exception should cause fast failure at startup to prevent
    running with invalid configuration.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with error details.

        Args:
            message: Human-readable error description.
            field: Optional field name that failed validation.
        """
        self.message = message
        self.field = field
        super().__init__(message)


def validate_settings(settings: Settings) -> None:
    """Perform additional runtime validation of settings.

    A half-configured store (only one of the two credentials) is almost
    always a deployment mistake, so it fails fast instead of silently
    degrading.

    Args:
        settings: Settings instance to validate.

    Raises:
        ConfigValidationError: If validation fails.
    """
    store = settings.store
    has_url = bool(store.url)
    has_token = store.token is not None and bool(store.token.get_secret_value())
    if has_url != has_token:
        missing = "TASKYARD_STORE__TOKEN" if has_url else "TASKYARD_STORE__URL"
        raise ConfigValidationError(
            f"Job store is partially configured. Set {missing} or unset both.",
            field="store",
        )

    if settings.worker.limiter_max < settings.worker.concurrency:
        logger.info(
            "Limiter max (%d) is below concurrency (%d); the limiter will bound throughput",
            settings.worker.limiter_max,
            settings.worker.concurrency,
        )

    logger.info("Configuration validated: %s", settings.get_snapshot())
