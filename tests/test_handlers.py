"""Tests for the per-kind job handlers.

Handlers are exercised directly with a recording mail sender and a
JobContext whose progress callback records values.
"""

from __future__ import annotations

import uuid

import httpx
import pytest

from taskyard.services.mail import EmailDeliveryError, MetricsMailRenderer, OutboundMessage
from taskyard.services.payloads import (
    EmailPayload,
    JobKind,
    MetricsAlertPayload,
    MetricsReportPayload,
    ReportPayload,
    WebhookRetryPayload,
)
from taskyard.services.webhooks import WebhookClient, WebhookDeliveryError
from taskyard.worker.context import JobContext, TerminalJobError
from taskyard.worker.handlers import (
    EmailJobHandler,
    MetricsAlertJobHandler,
    MetricsReportJobHandler,
    ReportJobHandler,
    WebhookRetryJobHandler,
    build_default_registry,
)


class RecordingMailer:
    """MailSender that stores messages instead of sending them."""

    def __init__(self, error: Exception | None = None) -> None:
        self.sent: list[OutboundMessage] = []
        self.error = error

    async def send(self, message: OutboundMessage) -> str:
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        return f"<msg-{len(self.sent)}@test>"


def _context(kind: JobKind, progress: list[int] | None = None) -> JobContext:
    async def report_progress(value: int) -> None:
        if progress is not None:
            progress.append(value)

    return JobContext(
        job_id=uuid.uuid4(),
        kind=kind,
        attempts_made=1,
        max_attempts=3,
        report_progress=report_progress,
    )


class TestJobContext:
    def test_is_last_attempt(self):
        ctx = _context(JobKind.EMAIL)
        assert ctx.is_last_attempt is False

        last = JobContext(
            job_id=ctx.job_id,
            kind=ctx.kind,
            attempts_made=3,
            max_attempts=3,
            report_progress=ctx.report_progress,
        )
        assert last.is_last_attempt is True


class TestEmailJobHandler:
    """Tests for the email handler."""

    @pytest.mark.asyncio
    async def test_sends_message(self):
        """Recipients, subject and bodies are passed to the sender."""
        mailer = RecordingMailer()
        payload = EmailPayload(
            to=["a@example.com", "b@example.com"],
            subject="Invoice",
            html="<p>Invoice</p>",
            text="Invoice",
            reply_to="billing@example.com",
        )

        result = await EmailJobHandler(mailer)(_context(JobKind.EMAIL), payload)

        assert result == {"message_id": "<msg-1@test>"}
        sent = mailer.sent[0]
        assert sent.to == ["a@example.com", "b@example.com"]
        assert sent.subject == "Invoice"
        assert sent.text == "Invoice"
        assert sent.reply_to == "billing@example.com"

    @pytest.mark.asyncio
    async def test_single_recipient_normalized(self):
        mailer = RecordingMailer()
        payload = EmailPayload(to="a@example.com", subject="Hi", html="<p>Hi</p>")

        await EmailJobHandler(mailer)(_context(JobKind.EMAIL), payload)

        assert mailer.sent[0].to == ["a@example.com"]

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self):
        """Provider failures are left to the worker's retry policy."""
        mailer = RecordingMailer(error=EmailDeliveryError("SMTP timeout"))
        payload = EmailPayload(to="a@example.com", subject="Hi", html="<p>Hi</p>")

        with pytest.raises(EmailDeliveryError, match="SMTP timeout"):
            await EmailJobHandler(mailer)(_context(JobKind.EMAIL), payload)


class TestWebhookRetryJobHandler:
    """Tests for the webhook redelivery handler."""

    @pytest.fixture
    def payload(self) -> WebhookRetryPayload:
        return WebhookRetryPayload(
            url="https://hooks.example.com/in",
            event="invoice.paid",
            signed_body='{"id": 1}',
            secret="s3cret",
        )

    @pytest.mark.asyncio
    async def test_success_returns_status(self, payload):
        client = WebhookClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        try:
            result = await WebhookRetryJobHandler(client)(_context(JobKind.WEBHOOK_RETRY), payload)
        finally:
            await client.close()

        assert result == {"status_code": 200}

    @pytest.mark.asyncio
    async def test_rejection_is_terminal(self, payload):
        """A 4xx answer becomes a TerminalJobError."""
        client = WebhookClient(transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        try:
            with pytest.raises(TerminalJobError, match="404"):
                await WebhookRetryJobHandler(client)(_context(JobKind.WEBHOOK_RETRY), payload)
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_server_error_is_not_terminal(self, payload):
        client = WebhookClient(transport=httpx.MockTransport(lambda r: httpx.Response(502)))
        try:
            with pytest.raises(WebhookDeliveryError):
                await WebhookRetryJobHandler(client)(_context(JobKind.WEBHOOK_RETRY), payload)
        finally:
            await client.close()


class TestReportJobHandler:
    """Tests for the report handler."""

    @pytest.fixture
    def payload(self) -> ReportPayload:
        return ReportPayload(report_type="usage", parameters={"month": "2026-09"}, requested_by="u1")

    @pytest.mark.asyncio
    async def test_reports_progress_without_generator(self, payload):
        progress: list[int] = []

        result = await ReportJobHandler()(_context(JobKind.REPORT, progress), payload)

        assert result is None
        assert progress == [0, 100]

    @pytest.mark.asyncio
    async def test_generator_result_returned(self, payload):
        """A supplied generator produces the job result."""

        class UsageReport:
            async def generate(self, p: ReportPayload) -> dict:
                return {"rows": 3, "month": p.parameters["month"]}

        result = await ReportJobHandler(UsageReport())(_context(JobKind.REPORT), payload)

        assert result == {"rows": 3, "month": "2026-09"}


class TestMetricsHandlers:
    """Tests for metrics report and alert handlers."""

    @pytest.fixture
    def renderer(self) -> MetricsMailRenderer:
        return MetricsMailRenderer("https://app.example.com")

    @pytest.mark.asyncio
    async def test_metrics_report_sends_digest(self, renderer):
        mailer = RecordingMailer()
        payload = MetricsReportPayload(
            report_type="monthly",
            recipient_email="ops@example.com",
            requested_by="u1",
        )

        result = await MetricsReportJobHandler(mailer, renderer)(
            _context(JobKind.METRICS_REPORT), payload
        )

        assert result == {"message_id": "<msg-1@test>"}
        assert mailer.sent[0].subject == "Monthly Metrics Report"
        assert "https://app.example.com/admin/metrics" in mailer.sent[0].html

    @pytest.mark.asyncio
    async def test_metrics_alert_sends_alert(self, renderer):
        mailer = RecordingMailer()
        payload = MetricsAlertPayload(
            alert_type="revenue-drop",
            threshold=100000,
            current_value=90000,
            recipient_email="ops@example.com",
        )

        await MetricsAlertJobHandler(mailer, renderer)(_context(JobKind.METRICS_ALERT), payload)

        assert mailer.sent[0].to == ["ops@example.com"]
        assert mailer.sent[0].subject == "Alert: Revenue Drop Alert"
        assert "$900.00" in mailer.sent[0].html


class TestDefaultRegistry:
    def test_every_kind_registered(self):
        registry = build_default_registry(
            mailer=RecordingMailer(),
            webhook_client=WebhookClient(),
            app_base_url="https://app.example.com",
        )

        registry.validate()
        assert all(kind in registry for kind in JobKind)
