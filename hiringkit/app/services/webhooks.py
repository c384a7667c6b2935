"""Payment webhook processing."""

import logging

from hiringkit.app.db.repositories import Repositories
from hiringkit.app.middleware.idempotency import WebhookIdempotencyGuard, WebhookResult
from hiringkit.app.payments.gateway import PaymentEvent, PaymentGateway
from hiringkit.app.services.orders import OrderStateMachine
from hiringkit.app.utils.logging import StructuredEventLogger

logger = logging.getLogger(__name__)
events = StructuredEventLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"


def _customer_email(session: dict) -> str | None:
    details = session.get("customer_details") or {}
    return details.get("email") or session.get("customer_email")


class WebhookProcessor:
    """Verifies payment events and applies them to orders exactly once."""

    def __init__(
        self,
        repos: Repositories,
        *,
        gateway: PaymentGateway,
        machine: OrderStateMachine,
        guard: WebhookIdempotencyGuard | None = None,
    ) -> None:
        self._repos = repos
        self._gateway = gateway
        self._machine = machine
        self._guard = guard or WebhookIdempotencyGuard()

    async def handle(self, payload: bytes, signature: str | None) -> WebhookResult:
        """Verify, deduplicate and dispatch one webhook delivery.

        Raises:
            WebhookSignatureError: If the signature or payload is invalid
            Exception: Whatever the event handler raised; the event is marked failed
        """
        event = self._gateway.construct_event(payload, signature)
        events.webhook(event.type, event.id, "started")
        return await self._guard.run(self._repos, event, self._dispatch)

    async def _dispatch(self, repos: Repositories, event: PaymentEvent) -> None:
        session = event.data_object
        session_id = session.get("id")

        if event.type == CHECKOUT_COMPLETED:
            if session.get("payment_status") != "paid":
                logger.info(
                    f"Checkout session {session_id} completed with payment_status="
                    f"{session.get('payment_status')}, waiting for async payment"
                )
                return
            await self._machine.apply_payment_succeeded(
                session_id=session_id, customer_email=_customer_email(session)
            )
        elif event.type == ASYNC_PAYMENT_SUCCEEDED:
            await self._machine.apply_payment_succeeded(
                session_id=session_id, customer_email=_customer_email(session)
            )
        elif event.type == ASYNC_PAYMENT_FAILED:
            await self._machine.apply_payment_failed(session_id=session_id)
        else:
            events.webhook(event.type, event.id, "unhandled")
