"""Outbound webhook redelivery.

Redelivers a previously serialized webhook body to its target, signed with
the target's shared secret when one is configured:

    Content-Type: application/json
    X-Webhook-Event: <event>
    X-Webhook-Timestamp: <ISO-8601 send time>
    X-Webhook-Signature: sha256=<hex hmac-sha256(secret, body)>

Outcome classification:
    status < 400         delivered
    400 <= status < 500  rejected by the receiver (WebhookRejectedError)
    status >= 500        transient (WebhookDeliveryError)
    timeout / transport  transient (WebhookDeliveryError)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from taskyard.services.payloads import WebhookRetryPayload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class WebhookError(Exception):
    """Base exception for webhook delivery."""

    pass


class WebhookDeliveryError(WebhookError):
    """Transient delivery failure (5xx, timeout, connection error)."""

    pass


class WebhookRejectedError(WebhookError):
    """The receiver rejected the request with a 4xx status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def sign_payload(body: str, secret: str) -> str:
    """Compute the X-Webhook-Signature header value for a body."""
    signature = hmac.new(
        secret.encode("utf-8"),
        body.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"sha256={signature}"


def build_headers(payload: WebhookRetryPayload, sent_at: datetime | None = None) -> dict[str, str]:
    sent_at = sent_at or datetime.now(UTC)
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Event": payload.event,
        "X-Webhook-Timestamp": sent_at.isoformat().replace("+00:00", "Z"),
    }
    if payload.secret:
        headers["X-Webhook-Signature"] = sign_payload(payload.signed_body, payload.secret)
    return headers


class WebhookClient:
    """Async HTTP client for webhook redelivery.

    Attributes:
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the underlying HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def deliver(self, payload: WebhookRetryPayload) -> int:
        """POST the stored body to its target.

        Returns:
            The response status code (always below 400).

        Raises:
            WebhookRejectedError: On a 4xx response.
            WebhookDeliveryError: On a 5xx response, timeout or transport error.
        """
        client = await self._get_http_client()

        try:
            response = await client.post(
                payload.url,
                content=payload.signed_body,
                headers=build_headers(payload),
            )
        except httpx.TimeoutException as e:
            msg = f"Webhook delivery timed out after {self.timeout}s"
            raise WebhookDeliveryError(msg) from e
        except httpx.RequestError as e:
            msg = f"Webhook request failed: {e}"
            raise WebhookDeliveryError(msg) from e

        status = response.status_code
        if status >= 500:
            msg = f"Webhook delivery failed with status {status}"
            raise WebhookDeliveryError(msg)
        if status >= 400:
            msg = f"Webhook rejected with status {status}"
            raise WebhookRejectedError(msg, status)

        logger.info(
            "Webhook redelivered: event=%s, status=%d, attempt=%d",
            payload.event,
            status,
            payload.attempt,
        )
        return status
