"""Outbound mail for email and metrics jobs.

Mail is sent over SMTP with the blocking smtplib client run in the default
executor so it never stalls the worker's event loop. Metrics digests and
alerts are rendered from jinja2 templates packaged under
taskyard/templates/email.

Usage:
    mailer = SMTPMailer(settings.smtp)
    message_id = await mailer.send(
        OutboundMessage(to=["ops@example.com"], subject="Hi", html="<p>Hi</p>")
    )
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Protocol

from jinja2 import Environment, PackageLoader, select_autoescape

if TYPE_CHECKING:
    from taskyard.core.config import SMTPSettings
    from taskyard.services.payloads import MetricsAlertPayload, MetricsReportPayload

logger = logging.getLogger(__name__)


class EmailError(Exception):
    """Base exception for email operations."""

    pass


class EmailDeliveryError(EmailError):
    """Raised when the mail provider rejects or cannot accept a message.

    Treated as transient by the worker: the job is retried with backoff.
    """

    pass


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """A fully rendered message ready for the provider.

    Attributes:
        to: Recipient addresses.
        subject: Subject line.
        html: HTML body.
        text: Plain-text alternative, if any.
        reply_to: Reply-To address, if any.
    """

    to: list[str]
    subject: str
    html: str
    text: str | None = None
    reply_to: str | None = None


class MailSender(Protocol):
    """Anything able to deliver an OutboundMessage and return its message id."""

    async def send(self, message: OutboundMessage) -> str: ...


class SMTPMailer:
    """MailSender backed by an SMTP relay.

    Attributes:
        smtp_settings: SMTP configuration for delivery.
    """

    def __init__(self, smtp_settings: SMTPSettings) -> None:
        self.smtp_settings = smtp_settings

    async def send(self, message: OutboundMessage) -> str:
        """Deliver a message without blocking the event loop.

        Raises:
            EmailDeliveryError: If the relay refuses or cannot be reached.
        """
        loop = asyncio.get_running_loop()
        message_id = await loop.run_in_executor(None, self._send_sync, message)
        logger.info(
            "Email sent: message_id=%s, recipients=%d",
            message_id,
            len(message.to),
        )
        return message_id

    def _send_sync(self, message: OutboundMessage) -> str:
        settings = self.smtp_settings

        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = f"{settings.from_name} <{settings.from_address}>"
        msg["To"] = ", ".join(message.to)
        if message.reply_to:
            msg["Reply-To"] = message.reply_to

        message_id = f"<{secrets.token_hex(16)}@{self._get_domain()}>"
        msg["Message-ID"] = message_id

        if message.text:
            msg.attach(MIMEText(message.text, "plain", "utf-8"))
        msg.attach(MIMEText(message.html, "html", "utf-8"))

        try:
            if settings.use_ssl:
                # Implicit TLS (port 465)
                server = smtplib.SMTP_SSL(
                    settings.host,
                    settings.port,
                    timeout=settings.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout)

            try:
                if settings.use_tls and not settings.use_ssl:
                    server.starttls(context=ssl.create_default_context())

                if settings.username and settings.password:
                    server.login(settings.username, settings.password.get_secret_value())

                refused = server.sendmail(settings.from_address, message.to, msg.as_string())
            finally:
                server.quit()

        except smtplib.SMTPException as e:
            msg_text = f"SMTP error: {e}"
            raise EmailDeliveryError(msg_text) from e
        except OSError as e:
            msg_text = f"Connection error: {e}"
            raise EmailDeliveryError(msg_text) from e

        if refused:
            msg_text = f"Recipients refused: {', '.join(sorted(refused))}"
            raise EmailDeliveryError(msg_text)

        return message_id

    def _get_domain(self) -> str:
        """Domain part of the sender address, used in Message-ID."""
        _, _, domain = self.smtp_settings.from_address.partition("@")
        return domain or "localhost"


ALERT_LABELS = {
    "churn-threshold": "Churn Rate Alert",
    "revenue-drop": "Revenue Drop Alert",
    "user-growth-stall": "User Growth Stall Alert",
}


def describe_alert(payload: MetricsAlertPayload) -> str:
    """Human-readable sentence for a threshold alert."""
    if payload.alert_type == "churn-threshold":
        return (
            f"Your churn rate has reached {payload.current_value:.1f}%, "
            f"exceeding your threshold of {payload.threshold:g}%."
        )
    if payload.alert_type == "revenue-drop":
        # Revenue values are in cents
        return (
            f"Your MRR has dropped to ${payload.current_value / 100:.2f}, "
            "which is below your alert threshold."
        )
    if payload.alert_type == "user-growth-stall":
        return (
            f"User growth has stalled at {payload.current_value:g} new users this month, "
            f"below your threshold of {payload.threshold:g}."
        )
    return "A metric has exceeded its configured threshold."


class MetricsMailRenderer:
    """Renders metrics digest and alert emails.

    Both link to the admin metrics dashboard under the application base URL.
    """

    def __init__(self, app_base_url: str) -> None:
        self.dashboard_url = f"{app_base_url.rstrip('/')}/admin/metrics"
        self._env = Environment(
            loader=PackageLoader("taskyard", "templates/email"),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def render_report(self, payload: MetricsReportPayload) -> OutboundMessage:
        period_label = "Weekly" if payload.report_type == "weekly" else "Monthly"
        html = self._env.get_template("metrics_report.html").render(
            period_label=period_label,
            dashboard_url=self.dashboard_url,
        )
        return OutboundMessage(
            to=[payload.recipient_email],
            subject=f"{period_label} Metrics Report",
            html=html,
        )

    def render_alert(self, payload: MetricsAlertPayload) -> OutboundMessage:
        label = ALERT_LABELS.get(payload.alert_type, "Metrics Alert")
        html = self._env.get_template("metrics_alert.html").render(
            alert_label=label,
            description=describe_alert(payload),
            dashboard_url=self.dashboard_url,
        )
        return OutboundMessage(
            to=[payload.recipient_email],
            subject=f"Alert: {label}",
            html=html,
        )
