"""Webhook idempotency guard."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from hiringkit.app.db.repositories import Repositories, WebhookBeginOutcome
from hiringkit.app.payments.gateway import PaymentEvent
from hiringkit.app.utils.logging import StructuredEventLogger
from hiringkit.app.utils.metrics import metrics

events = StructuredEventLogger(__name__)

EventHandler = Callable[[Repositories, PaymentEvent], Awaitable[None]]


@dataclass
class WebhookResult:
    """Outcome reported back to the payment processor."""

    event_id: str
    status: Literal["processed", "duplicate", "processing"]

    def to_body(self) -> dict[str, object]:
        return {"received": True, "status": self.status}


class WebhookIdempotencyGuard:
    """Runs each payment event's side effects at most once.

    Semantics:
    - A new event id is claimed as processing and committed before the
      handler runs, so a concurrent delivery of the same id sees it
    - A completed id is acknowledged as a duplicate without side effects
    - An id still processing is acknowledged without side effects
    - A failed attempt is recorded and the error re-raised; the processor's
      retry may claim the id again
    """

    async def run(
        self, repos: Repositories, event: PaymentEvent, handler: EventHandler
    ) -> WebhookResult:
        outcome = await repos.webhook_events.begin(
            event.id, event.type, {"livemode": event.livemode, "created": event.created}
        )
        await repos.commit()

        if outcome == WebhookBeginOutcome.duplicate:
            metrics.inc_webhook(event.type, "duplicate")
            events.webhook(event.type, event.id, "duplicate")
            return WebhookResult(event_id=event.id, status="duplicate")

        if outcome == WebhookBeginOutcome.in_progress:
            metrics.inc_webhook(event.type, "in_progress")
            events.webhook(event.type, event.id, "in_progress")
            return WebhookResult(event_id=event.id, status="processing")

        try:
            await handler(repos, event)
            await repos.webhook_events.complete(event.id)
            await repos.commit()
        except Exception as e:
            await repos.rollback()
            await repos.webhook_events.fail(event.id, str(e) or type(e).__name__)
            await repos.commit()
            metrics.inc_webhook(event.type, "failed")
            events.webhook(event.type, event.id, "failed", error=str(e))
            raise

        metrics.inc_webhook(event.type, "processed")
        events.webhook(event.type, event.id, "processed")
        return WebhookResult(event_id=event.id, status="processed")
