"""
Notification dispatcher.

Contract consumed by fulfillment:

    send(recipient, subject, content) -> NotificationResult

`content` is structured data (order id, product, amount, code, PIN,
instructions); rendering rich templates is not this module's job. A failed
delivery raises NotificationError, which callers log and swallow:
fulfillment never depends on the customer notification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

import requests

from config.settings import EmailSettings, get_settings
from domain.errors import NotificationError

logger = logging.getLogger(__name__)

# Keys never written to logs.
_SECRET_KEYS = frozenset({"redemptionCode", "pinCode", "serialNumber"})


@dataclass(frozen=True, slots=True)
class NotificationResult:
    delivered: bool
    message_id: Optional[str] = None


class NotificationDispatcher(Protocol):
    def send(self, recipient: str, subject: str, content: Mapping[str, Any]) -> NotificationResult: ...


def _redacted(content: Mapping[str, Any]) -> dict[str, Any]:
    return {k: ("***" if k in _SECRET_KEYS and v else v) for k, v in content.items()}


def render_plain_text(content: Mapping[str, Any]) -> str:
    """Minimal plain-text body; one "Label: value" line per non-empty field."""

    labels = (
        ("orderId", "Order"),
        ("productName", "Product"),
        ("amount", "Amount"),
        ("currency", "Currency"),
        ("redemptionCode", "Redemption code"),
        ("pinCode", "PIN"),
        ("serialNumber", "Serial number"),
    )
    lines = [f"Hi {content.get('firstName') or 'Valued Customer'},", ""]
    for key, label in labels:
        value = content.get(key)
        if value not in (None, ""):
            lines.append(f"{label}: {value}")
    instructions = content.get("redemptionInstructions")
    if instructions:
        lines.extend(["", "How to redeem:", str(instructions)])
    return "\n".join(lines)


class LoggingDispatcher:
    """
    Logs notifications instead of sending them (development, tests).

    Nothing reaches the customer, so the result is never reported as delivered.
    """

    def send(self, recipient: str, subject: str, content: Mapping[str, Any]) -> NotificationResult:
        logger.info(
            "Notification (not sent): %s",
            subject,
            extra={"recipient": recipient, "content": _redacted(content)},
        )
        return NotificationResult(delivered=False)


class ResendEmailDispatcher:
    """Sends email through the Resend HTTP API."""

    def __init__(
        self,
        settings: EmailSettings,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not settings.api_key:
            raise NotificationError("Email service not configured", code="EMAIL_NOT_CONFIGURED")
        self._settings = settings
        self._session = session or requests.Session()
        self._timeout = timeout_seconds

    def send(self, recipient: str, subject: str, content: Mapping[str, Any]) -> NotificationResult:
        if not recipient:
            raise NotificationError("No recipient address for notification", code="MISSING_RECIPIENT")

        try:
            response = self._session.request(
                "POST",
                self._settings.api_url,
                json={
                    "from": self._settings.sender,
                    "to": [recipient],
                    "subject": subject,
                    "text": render_plain_text(content),
                },
                headers={
                    "Authorization": f"Bearer {self._settings.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise NotificationError(f"Email request failed: {exc}", code="EMAIL_TRANSPORT_ERROR") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not 200 <= int(response.status_code) < 300:
            raise NotificationError(
                "Failed to send email",
                code="EMAIL_REJECTED",
                status=int(response.status_code),
                details=body if isinstance(body, dict) else {},
            )

        message_id = body.get("id") if isinstance(body, dict) else None
        return NotificationResult(delivered=True, message_id=message_id)


def get_dispatcher() -> NotificationDispatcher:
    """Resend when an API key is configured, logging otherwise."""

    email_settings = get_settings().email
    if email_settings.enabled:
        return ResendEmailDispatcher(email_settings)
    logger.warning("RESEND_API_KEY not set; notifications will only be logged")
    return LoggingDispatcher()


__all__ = [
    "NotificationResult",
    "NotificationDispatcher",
    "LoggingDispatcher",
    "ResendEmailDispatcher",
    "render_plain_text",
    "get_dispatcher",
]
