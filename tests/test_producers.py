"""Tests for the producer API and payload schemas.

Tests cover:
- Kind-specific priorities and delays
- Validation before anything is persisted
- Degraded mode (no queue configured)
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

import pytest
from pydantic import ValidationError

from taskyard.db.models.base import JobStatus
from taskyard.services.payloads import (
    PAYLOAD_MODELS,
    EmailPayload,
    JobKind,
    parse_kind,
    parse_payload,
)
from taskyard.services.producers import (
    PRIORITY_EMAIL,
    PRIORITY_METRICS_REPORT,
    PRIORITY_REPORT,
    PRIORITY_URGENT,
    PRIORITY_WEBHOOK_RETRY,
    add_email_job,
    add_metrics_alert_job,
    add_metrics_report_job,
    add_report_job,
    add_webhook_retry_job,
)

WEBHOOK = {
    "url": "https://hooks.example.com/in",
    "event": "invoice.paid",
    "signed_body": "{}",
    "secret": "whsec",
    "attempt": 3,
    "max_attempts": 5,
}


class TestPayloads:
    """Tests for payload models."""

    def test_every_kind_has_a_model(self):
        assert set(PAYLOAD_MODELS) == set(JobKind)

    def test_parse_kind(self):
        assert parse_kind("webhook-retry") is JobKind.WEBHOOK_RETRY
        assert parse_kind("token-rotation") is None

    def test_parse_payload_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            parse_payload(JobKind.REPORT, {"report_type": "usage", "requested_by": "u", "x": 1})

    def test_email_requires_recipient(self):
        with pytest.raises(ValidationError, match="recipient"):
            EmailPayload(to=[], subject="Hi", html="<p>Hi</p>")

    def test_to_json_drops_unset_optionals(self, email_payload):
        data = EmailPayload(**email_payload).to_json()
        assert "text" not in data
        assert data["email_type"] == "welcome"


class TestAddEmailJob:
    """Tests for add_email_job."""

    @pytest.mark.asyncio
    async def test_enqueues_with_email_priority(self, queue, email_payload):
        job_id = await add_email_job(queue, email_payload)

        job = await queue.get_job(job_id)
        assert job.kind == "email"
        assert job.status == JobStatus.WAITING
        assert job.priority == PRIORITY_EMAIL
        assert job.payload_json["to"] == "user@example.com"
        uuid.UUID(job_id)

    @pytest.mark.asyncio
    async def test_team_invite_is_urgent(self, queue, email_payload):
        job_id = await add_email_job(queue, {**email_payload, "email_type": "team-invite"})

        assert (await queue.get_job(job_id)).priority == PRIORITY_URGENT

    @pytest.mark.asyncio
    async def test_accepts_model_instance(self, queue, email_payload):
        job_id = await add_email_job(queue, EmailPayload(**email_payload))
        assert job_id is not None

    @pytest.mark.asyncio
    async def test_invalid_payload_not_persisted(self, queue):
        """Validation fails before the store is touched."""
        with pytest.raises(ValidationError):
            await add_email_job(queue, {"subject": "no recipient", "html": "x"})

        assert (await queue.metrics()).waiting == 0

    @pytest.mark.asyncio
    async def test_no_queue_returns_none_with_warning(self, email_payload, caplog):
        """Without a store the caller is told to send inline."""
        with caplog.at_level(logging.WARNING, logger="taskyard.services.producers"):
            result = await add_email_job(None, email_payload)

        assert result is None
        assert "not configured" in caplog.text

    @pytest.mark.asyncio
    async def test_no_queue_still_validates(self):
        with pytest.raises(ValidationError):
            await add_email_job(None, {"to": "a@example.com"})


class TestOtherProducers:
    """Tests for the remaining kinds."""

    @pytest.mark.asyncio
    async def test_webhook_retry_delayed_by_attempt(self, queue):
        """Attempt n is delayed by n * 2 seconds."""
        job_id = await add_webhook_retry_job(queue, WEBHOOK)

        job = await queue.get_job(job_id)
        assert job.status == JobStatus.DELAYED
        assert job.priority == PRIORITY_WEBHOOK_RETRY
        assert job.run_at - job.created_at == timedelta(milliseconds=6000)
        # Application-level bookkeeping is stored untouched
        assert job.payload_json["attempt"] == 3
        assert job.payload_json["max_attempts"] == 5

    @pytest.mark.asyncio
    async def test_webhook_retry_rejects_non_http_url(self, queue):
        with pytest.raises(ValidationError, match="http"):
            await add_webhook_retry_job(queue, {**WEBHOOK, "url": "ftp://example.com"})

    @pytest.mark.asyncio
    async def test_report(self, queue):
        job_id = await add_report_job(queue, {"report_type": "audit", "requested_by": "u1"})

        job = await queue.get_job(job_id)
        assert job.kind == "report"
        assert job.priority == PRIORITY_REPORT
        assert job.payload_json["parameters"] == {}

    @pytest.mark.asyncio
    async def test_metrics_report(self, queue):
        job_id = await add_metrics_report_job(
            queue,
            {"report_type": "weekly", "recipient_email": "ops@example.com", "requested_by": "u1"},
        )

        assert (await queue.get_job(job_id)).priority == PRIORITY_METRICS_REPORT

    @pytest.mark.asyncio
    async def test_metrics_alert_is_urgent(self, queue):
        job_id = await add_metrics_alert_job(
            queue,
            {
                "alert_type": "churn-threshold",
                "threshold": 5,
                "current_value": 6.5,
                "recipient_email": "ops@example.com",
            },
        )

        assert (await queue.get_job(job_id)).priority == PRIORITY_URGENT

    @pytest.mark.asyncio
    async def test_alert_served_before_report(self, queue):
        """Lower priority values are claimed first regardless of order."""
        report_id = await add_report_job(queue, {"report_type": "usage", "requested_by": "u1"})
        alert_id = await add_metrics_alert_job(
            queue,
            {
                "alert_type": "revenue-drop",
                "threshold": 1000,
                "current_value": 500,
                "recipient_email": "ops@example.com",
            },
        )

        first = await queue.claim("w1")
        second = await queue.claim("w1")
        assert str(first.job_id) == alert_id
        assert str(second.job_id) == report_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("producer", "payload"),
        [
            (add_report_job, {"report_type": "usage", "requested_by": "u1"}),
            (add_webhook_retry_job, WEBHOOK),
        ],
    )
    async def test_no_queue_returns_none(self, producer, payload):
        assert await producer(None, payload) is None
