"""Job kinds and their payload schemas.

The set of job kinds is closed: every JobKind maps to exactly one payload
model, and the worker refuses to start unless every kind has a handler.
Payloads are validated by the producer API before anything is persisted
and parsed again at dispatch time.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobKind(str, Enum):
    """Supported job kinds.

    Each kind corresponds to a specific handler in the worker.
    """

    EMAIL = "email"
    WEBHOOK_RETRY = "webhook-retry"
    REPORT = "report"
    METRICS_REPORT = "metrics-report"
    METRICS_ALERT = "metrics-alert"


EmailType = Literal[
    "welcome",
    "subscription-confirmed",
    "subscription-cancelled",
    "team-invite",
    "generic",
]


class JobPayload(BaseModel):
    """Base class for kind-specific payloads."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    def to_json(self) -> dict[str, Any]:
        """Serialize for storage in the job record."""
        return self.model_dump(mode="json", exclude_none=True)


class EmailPayload(JobPayload):
    """Transactional email to send through the mail provider."""

    email_type: EmailType = Field("generic", description="Template family of the email")
    to: str | list[str] = Field(..., description="Recipient address or addresses")
    subject: str = Field(..., min_length=1, max_length=998)
    html: str = Field(..., description="HTML body")
    text: str | None = Field(None, description="Plain-text alternative body")
    reply_to: str | None = Field(None, description="Reply-To address")
    metadata: dict[str, Any] | None = Field(None, description="Caller bookkeeping, not sent")

    @field_validator("to")
    @classmethod
    def validate_recipients(cls, v: str | list[str]) -> str | list[str]:
        """Require at least one non-empty recipient."""
        recipients = [v] if isinstance(v, str) else v
        if not recipients or not all(r.strip() for r in recipients):
            msg = "at least one recipient is required"
            raise ValueError(msg)
        return v

    @property
    def recipients(self) -> list[str]:
        return [self.to] if isinstance(self.to, str) else list(self.to)


class WebhookRetryPayload(JobPayload):
    """Redelivery of an outbound webhook that failed inline.

    attempt/max_attempts belong to the consuming system's retry cadence and
    drive the enqueue delay. They are independent of the queue's own
    attempts_made/max_attempts, which drive transient-failure retries.
    """

    url: str = Field(..., description="Target endpoint")
    event: str = Field(..., description="Event name sent in X-Webhook-Event")
    signed_body: str = Field(..., description="Serialized JSON body to sign and send")
    secret: str = Field("", description="Per-target HMAC secret (empty disables signing)")
    attempt: int = Field(1, ge=1, description="Application-level delivery attempt number")
    max_attempts: int = Field(5, ge=1, description="Application-level attempt budget")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only http(s) targets are deliverable."""
        if not v.startswith(("http://", "https://")):
            msg = "webhook url must be http or https"
            raise ValueError(msg)
        return v


class ReportPayload(JobPayload):
    """On-demand report generation request."""

    report_type: Literal["usage", "analytics", "audit"]
    parameters: dict[str, Any] = Field(default_factory=dict)
    requested_by: str


class MetricsReportPayload(JobPayload):
    """Scheduled metrics digest emailed to an operator."""

    report_type: Literal["weekly", "monthly"]
    recipient_email: str
    requested_by: str


class MetricsAlertPayload(JobPayload):
    """Threshold alert emailed to an operator."""

    alert_type: Literal["churn-threshold", "revenue-drop", "user-growth-stall"]
    threshold: float
    current_value: float
    recipient_email: str


PAYLOAD_MODELS: dict[JobKind, type[JobPayload]] = {
    JobKind.EMAIL: EmailPayload,
    JobKind.WEBHOOK_RETRY: WebhookRetryPayload,
    JobKind.REPORT: ReportPayload,
    JobKind.METRICS_REPORT: MetricsReportPayload,
    JobKind.METRICS_ALERT: MetricsAlertPayload,
}


def parse_kind(value: str) -> JobKind | None:
    """Map a stored kind string to a JobKind, or None if unknown."""
    try:
        return JobKind(value)
    except ValueError:
        return None


def parse_payload(kind: JobKind, data: dict[str, Any] | None) -> JobPayload:
    """Validate a stored payload against its kind's model.

    Raises:
        pydantic.ValidationError: If the payload does not match the model.
    """
    return PAYLOAD_MODELS[kind].model_validate(data or {})
