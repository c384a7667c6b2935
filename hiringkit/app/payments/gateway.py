"""Payment gateway: checkout session creation and webhook verification.

Security: secrets come from settings only. Webhook payloads are never trusted
before the signature header verifies against the raw body.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

import stripe

from hiringkit.app.config import Settings
from hiringkit.app.errors import PaymentProviderError, WebhookSignatureError
from hiringkit.app.models.common import PlanTier

logger = logging.getLogger(__name__)

PLAN_PRODUCT_NAMES: dict[PlanTier, str] = {
    PlanTier.standard: "Solo Kit",
    PlanTier.premium: "Pro Kit + Human Review",
}


@dataclass
class CheckoutSession:
    """Hosted checkout session the buyer is redirected to."""

    id: str
    url: str


@dataclass
class PaymentEvent:
    """Verified payment webhook event."""

    id: str
    type: str
    data_object: dict[str, Any]
    created: int | None = None
    livemode: bool = False
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    """Protocol for payment processor implementations."""

    async def create_checkout_session(
        self,
        *,
        kit_id: UUID,
        plan_tier: PlanTier,
        amount_cents: int,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        """Create a hosted checkout session.

        Raises:
            PaymentProviderError: If the processor rejects the request
        """
        ...

    def construct_event(self, payload: bytes, signature: str | None) -> PaymentEvent:
        """Verify a webhook signature and parse the event.

        Raises:
            WebhookSignatureError: If the signature or payload is invalid
        """
        ...


def parse_event_payload(payload: bytes) -> PaymentEvent:
    """Parse a verified webhook body into a PaymentEvent."""
    try:
        body = json.loads(payload)
        return PaymentEvent(
            id=body["id"],
            type=body["type"],
            data_object=body.get("data", {}).get("object", {}) or {},
            created=body.get("created"),
            livemode=bool(body.get("livemode", False)),
            raw=body,
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise WebhookSignatureError("Invalid webhook payload") from e


class StripeGateway:
    """Stripe-backed payment gateway."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        tolerance_seconds: int = 300,
    ) -> None:
        """Initialize Stripe gateway.

        Args:
            secret_key: Stripe API secret key
            webhook_secret: Endpoint signing secret (whsec_...)
            tolerance_seconds: Maximum accepted signature age
        """
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._tolerance_seconds = tolerance_seconds

    async def create_checkout_session(
        self,
        *,
        kit_id: UUID,
        plan_tier: PlanTier,
        amount_cents: int,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        """Create a Stripe Checkout session in payment mode."""
        params: dict[str, Any] = {
            "api_key": self._secret_key,
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": "usd",
                        "product_data": {
                            "name": PLAN_PRODUCT_NAMES[plan_tier],
                            "description": "Complete hiring kit with 9 professional documents",
                        },
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {"kit_id": str(kit_id), "plan_type": plan_tier.value},
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            # SDK is synchronous; keep it off the event loop
            session = await asyncio.to_thread(stripe.checkout.Session.create, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {e}")
            raise PaymentProviderError("Failed to create checkout session") from e

        if not session.url:
            raise PaymentProviderError("Checkout session has no redirect URL")

        return CheckoutSession(id=session.id, url=session.url)

    def construct_event(self, payload: bytes, signature: str | None) -> PaymentEvent:
        """Verify the Stripe-Signature header and parse the event."""
        if not signature:
            raise WebhookSignatureError("Missing signature header")

        try:
            stripe.Webhook.construct_event(
                payload, signature, self._webhook_secret, self._tolerance_seconds
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("Invalid signature") from e
        except ValueError as e:
            raise WebhookSignatureError("Invalid webhook payload") from e

        return parse_event_payload(payload)


def get_payment_gateway(settings: Settings) -> PaymentGateway:
    """Get the payment gateway configured by settings."""
    return StripeGateway(
        secret_key=settings.stripe_secret_key.get_secret_value(),
        webhook_secret=settings.stripe_webhook_secret.get_secret_value(),
        tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
    )
