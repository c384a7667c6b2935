"""Transactional email: order confirmations and approval notices.

Provides a logging fallback when no Resend API key is configured.
"""

import html
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from hiringkit.app.config import Settings
from hiringkit.app.errors import NotificationError
from hiringkit.app.models.common import PlanTier

logger = logging.getLogger(__name__)


@dataclass
class OrderConfirmation:
    """Payment received. Premium orders get no download link until approved."""

    to: str
    kit_title: str
    plan_tier: PlanTier
    download_url: str | None


@dataclass
class ApprovalNotification:
    """Premium kit reviewed and ready to download."""

    to: str
    kit_title: str
    download_url: str


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str


class Notifier(Protocol):
    """Protocol for email delivery implementations."""

    async def send_order_confirmation(self, message: OrderConfirmation) -> None:
        """Send the post-payment confirmation.

        Raises:
            NotificationError: If delivery fails
        """
        ...

    async def send_approval_notification(self, message: ApprovalNotification) -> None:
        """Send the review-complete notice.

        Raises:
            NotificationError: If delivery fails
        """
        ...


def render_order_confirmation(message: OrderConfirmation) -> EmailMessage:
    title = html.escape(message.kit_title)
    if not message.download_url:
        body = (
            f"<h1>Thanks for your order</h1>"
            f"<p>Your <strong>{title}</strong> is now with our reviewers. "
            f"We will email you as soon as it has been checked and is ready to download.</p>"
        )
    else:
        url = html.escape(message.download_url, quote=True)
        body = (
            f"<h1>Your hiring kit is ready</h1>"
            f"<p>Thanks for your purchase of <strong>{title}</strong>.</p>"
            f'<p><a href="{url}">Download your kit</a></p>'
        )
    return EmailMessage(to=message.to, subject=f"Your order: {message.kit_title}", html=body)


def render_approval_notification(message: ApprovalNotification) -> EmailMessage:
    title = html.escape(message.kit_title)
    url = html.escape(message.download_url, quote=True)
    body = (
        f"<h1>Your reviewed hiring kit is ready</h1>"
        f"<p><strong>{title}</strong> has passed human review.</p>"
        f'<p><a href="{url}">Download your kit</a></p>'
    )
    return EmailMessage(to=message.to, subject=f"Ready to download: {message.kit_title}", html=body)


class LoggingNotifier:
    """Notifier that only logs. Used when no email provider is configured."""

    async def send_order_confirmation(self, message: OrderConfirmation) -> None:
        email = render_order_confirmation(message)
        logger.info(f"Email (not sent, no provider): {email.subject} -> {email.to}")

    async def send_approval_notification(self, message: ApprovalNotification) -> None:
        email = render_approval_notification(message)
        logger.info(f"Email (not sent, no provider): {email.subject} -> {email.to}")


class ResendNotifier:
    """Resend HTTP API notifier."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._api_url = api_url
        self._timeout_seconds = timeout_seconds

    async def send_order_confirmation(self, message: OrderConfirmation) -> None:
        await self._send(render_order_confirmation(message))

    async def send_approval_notification(self, message: ApprovalNotification) -> None:
        await self._send(render_approval_notification(message))

    async def _send(self, email: EmailMessage) -> None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.post(
                    self._api_url,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": self._sender,
                        "to": [email.to],
                        "subject": email.subject,
                        "html": email.html,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Email delivery failed: {type(e).__name__}") from e


def get_notifier(settings: Settings) -> Notifier:
    """Get a Resend notifier if configured, otherwise the logging fallback."""
    if settings.resend_api_key and settings.resend_api_key.get_secret_value():
        return ResendNotifier(
            api_key=settings.resend_api_key.get_secret_value(),
            sender=settings.email_from,
            api_url=settings.resend_api_url,
        )

    logger.info("No RESEND_API_KEY configured, emails will be logged only")
    return LoggingNotifier()
