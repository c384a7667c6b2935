"""Order and kit lifecycle state machine.

Every status change is a guarded conditional write: the repository only
applies it if the entity is still in an expected state, so a duplicate
request or a concurrent admin click cannot apply the same transition twice.
"""

import logging
import uuid
from collections.abc import Collection
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from hiringkit.app.config import Settings
from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import AuditLogEntry, KitRecord, OrderRecord, Repositories
from hiringkit.app.errors import (
    KitNotFoundError,
    NotificationError,
    OrderNotFoundError,
    PersistenceError,
    StateConflictError,
)
from hiringkit.app.models.common import (
    DELIVERABLE_STATUSES,
    PAID_STATUSES,
    KitStatus,
    OrderStatus,
    PlanTier,
    plan_tier_for_amount,
    utc_now,
)
from hiringkit.app.notifications.email import ApprovalNotification, Notifier, OrderConfirmation
from hiringkit.app.payments.gateway import PaymentGateway
from hiringkit.app.services.access import load_kit
from hiringkit.app.utils.logging import StructuredEventLogger
from hiringkit.app.utils.metrics import metrics

logger = logging.getLogger(__name__)
events = StructuredEventLogger(__name__)

SYSTEM_WEBHOOK_ACTOR = "system:webhook"
SYSTEM_EXPORT_ACTOR = "system:export"


async def record_audit(
    repos: Repositories,
    action: str,
    actor: str,
    *,
    order_id: UUID | None = None,
    kit_id: UUID | None = None,
    **metadata: Any,
) -> AuditLogEntry:
    """Append an audit log entry."""
    entry = AuditLogEntry(
        id=uuid.uuid4(),
        action=action,
        actor=actor,
        order_id=order_id,
        kit_id=kit_id,
        metadata=metadata,
        created_at=utc_now(),
    )
    await repos.audit_log.append(entry)
    return entry


async def deliverable_order(repos: Repositories, kit_id: UUID) -> OrderRecord | None:
    """Newest order for the kit that allows downloads, if any."""
    for order in await repos.orders.list_for_kit(kit_id):
        if order.status in DELIVERABLE_STATUSES:
            return order
    return None


async def has_paid_order(repos: Repositories, kit_id: UUID) -> bool:
    """Whether any order for the kit has been paid."""
    return any(order.status in PAID_STATUSES for order in await repos.orders.list_for_kit(kit_id))


async def transition_order(
    repos: Repositories,
    order: OrderRecord,
    new_status: OrderStatus,
    *,
    expected: Collection[OrderStatus],
    actor: str,
    action: str,
    **changes: Any,
) -> OrderRecord | None:
    """Guarded order transition with audit entry, log line and metric.

    Does not commit. Returns None if the guard failed.
    """
    updated = await repos.orders.transition(order.id, new_status, expected=expected, **changes)
    if updated is None:
        return None

    await record_audit(
        repos,
        action,
        actor,
        order_id=order.id,
        kit_id=order.kit_id,
        previous_status=order.status.value,
        new_status=new_status.value,
    )
    events.transition("order", order.id, order.status.value, new_status.value, actor=actor)
    metrics.inc_transition(order.status.value, new_status.value)
    return updated


async def mark_delivered(repos: Repositories, kit_id: UUID, actor: str = SYSTEM_EXPORT_ACTOR) -> int:
    """Move every ready or paid order of the kit to delivered.

    Does not commit. Returns the number of orders moved.
    """
    moved = 0
    for order in await repos.orders.list_for_kit(kit_id):
        if order.status not in (OrderStatus.ready, OrderStatus.paid):
            continue
        updated = await transition_order(
            repos,
            order,
            OrderStatus.delivered,
            expected={OrderStatus.ready, OrderStatus.paid},
            actor=actor,
            action="status_changed_to_delivered",
        )
        if updated is not None:
            moved += 1
    return moved


@dataclass
class CheckoutResult:
    """Redirect target for the buyer plus the order awaiting payment."""

    url: str
    session_id: str
    order: OrderRecord


@dataclass
class ApprovalResult:
    kit: KitRecord
    order: OrderRecord


class OrderStateMachine:
    """Checkout, payment, approval and admin status transitions."""

    def __init__(
        self,
        repos: Repositories,
        *,
        notifier: Notifier,
        settings: Settings,
        gateway: PaymentGateway | None = None,
    ) -> None:
        self._repos = repos
        self._notifier = notifier
        self._settings = settings
        self._gateway = gateway

    def plan_tier(self, order: OrderRecord) -> PlanTier:
        return plan_tier_for_amount(order.total_cents, self._settings.premium_threshold_cents)

    def price_for(self, plan_tier: PlanTier) -> int:
        if plan_tier == PlanTier.premium:
            return self._settings.premium_price_cents
        return self._settings.standard_price_cents

    def download_url(self, kit_id: UUID) -> str:
        return f"{self._settings.app_url}/kit/{kit_id}/success"

    async def create_checkout(
        self,
        *,
        kit_id: UUID,
        plan_tier: PlanTier,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        ctx: RequestContext | None = None,
    ) -> CheckoutResult:
        """Create a payment session and an order awaiting payment.

        Raises:
            KitNotFoundError: If the kit does not exist or is not the caller's
            PaymentProviderError: If the session cannot be created
        """
        if self._gateway is None:
            raise RuntimeError("OrderStateMachine was built without a payment gateway")

        kit = await load_kit(self._repos, kit_id, ctx)

        amount = self.price_for(plan_tier)
        session = await self._gateway.create_checkout_session(
            kit_id=kit_id,
            plan_tier=plan_tier,
            amount_cents=amount,
            success_url=success_url,
            cancel_url=cancel_url,
            customer_email=customer_email,
        )

        now = utc_now()
        order = await self._repos.orders.create(
            OrderRecord(
                id=uuid.uuid4(),
                kit_id=kit_id,
                status=OrderStatus.awaiting_payment,
                total_cents=amount,
                stripe_session_id=session.id,
                customer_email=customer_email,
                user_id=ctx.user_id if ctx else kit.user_id,
                org_id=ctx.org_id if ctx else kit.org_id,
                created_at=now,
                updated_at=now,
            )
        )
        await record_audit(
            self._repos,
            "checkout_created",
            ctx.actor if ctx else "anonymous",
            order_id=order.id,
            kit_id=kit_id,
            plan_tier=plan_tier.value,
            total_cents=amount,
        )
        await self._repos.commit()
        events.transition("order", order.id, None, OrderStatus.awaiting_payment.value)
        return CheckoutResult(url=session.url, session_id=session.id, order=order)

    async def apply_payment_succeeded(
        self, *, session_id: str, customer_email: str | None = None
    ) -> OrderRecord | None:
        """Record a successful payment for the session's order.

        Standard orders become paid. Premium orders go to qa_pending and their
        kit is flagged for review. An order already past payment is left alone,
        as is a session with no local order. Does not commit.
        """
        order = await self._repos.orders.get_by_session(session_id)
        if order is None:
            logger.warning(f"No order for checkout session {session_id}, payment success ignored")
            return None

        tier = self.plan_tier(order)
        new_status = OrderStatus.qa_pending if tier == PlanTier.premium else OrderStatus.paid
        changes: dict[str, Any] = {}
        if customer_email and not order.customer_email:
            changes["customer_email"] = customer_email

        updated = await transition_order(
            self._repos,
            order,
            new_status,
            expected={OrderStatus.draft, OrderStatus.awaiting_payment},
            actor=SYSTEM_WEBHOOK_ACTOR,
            action=f"status_changed_to_{new_status.value}",
            **changes,
        )
        if updated is None:
            logger.info(f"Order {order.id} already {order.status.value}, payment success ignored")
            return None

        kit = await self._repos.kits.get(order.kit_id)
        if kit is None:
            raise KitNotFoundError(f"Kit {order.kit_id} for order {order.id} not found")

        if tier == PlanTier.premium:
            await self._repos.kits.update(
                kit.id, status=KitStatus.editing, requires_review=True
            )
            events.transition("kit", kit.id, kit.status.value, KitStatus.editing.value)

        await self._send_confirmation(updated, kit, tier)
        return updated

    async def apply_payment_failed(self, *, session_id: str) -> OrderRecord | None:
        """Return an order awaiting payment to draft. Does not commit."""
        order = await self._repos.orders.get_by_session(session_id)
        if order is None:
            logger.warning(f"No order for checkout session {session_id}, payment failure ignored")
            return None

        return await transition_order(
            self._repos,
            order,
            OrderStatus.draft,
            expected={OrderStatus.awaiting_payment},
            actor=SYSTEM_WEBHOOK_ACTOR,
            action="payment_failed",
        )

    async def approve_kit(self, kit_id: UUID, actor: str) -> ApprovalResult:
        """Publish a reviewed premium kit and make its order ready.

        The kit update and order update commit together. If the order update
        fails, the kit is put back into review before the error is reported.

        Raises:
            KitNotFoundError: If the kit does not exist
            StateConflictError: If the kit is not awaiting review
            PersistenceError: If the order update fails
        """
        kit = await self._repos.kits.get(kit_id)
        if kit is None:
            raise KitNotFoundError(f"Kit {kit_id} not found")
        if not kit.requires_review:
            raise StateConflictError("Kit does not require approval")

        orders = await self._repos.orders.list_for_kit(kit_id)
        order = next((o for o in orders if o.status == OrderStatus.qa_pending), None)
        if order is None:
            raise StateConflictError("Kit has no order awaiting review")

        published = await self._repos.kits.update(
            kit_id,
            expected_requires_review=True,
            status=KitStatus.published,
            requires_review=False,
        )
        if published is None:
            raise StateConflictError("Kit was already approved")

        try:
            ready = await transition_order(
                self._repos,
                order,
                OrderStatus.ready,
                expected={OrderStatus.qa_pending},
                actor=actor,
                action="kit_approved",
            )
        except Exception as e:
            events.failure("approve_kit.order_update", e, kit_id=kit_id, order_id=order.id)
            await self._revert_approval(kit)
            raise PersistenceError("Failed to update order status") from e

        if ready is None:
            await self._revert_approval(kit)
            raise StateConflictError("Order is no longer awaiting review")

        await record_audit(
            self._repos,
            "kit_published",
            actor,
            kit_id=kit_id,
            order_id=order.id,
            kit_title=kit.title,
            previous_status=kit.status.value,
            new_status=KitStatus.published.value,
        )
        await self._repos.commit()
        events.admin_action("kit_approved", actor, kit_id=kit_id, order_id=order.id)

        if ready.customer_email:
            try:
                await self._notifier.send_approval_notification(
                    ApprovalNotification(
                        to=ready.customer_email,
                        kit_title=kit.title,
                        download_url=self.download_url(kit_id),
                    )
                )
            except NotificationError as e:
                events.failure("approval_email", e, kit_id=kit_id, order_id=order.id)

        return ApprovalResult(kit=published, order=ready)

    async def _revert_approval(self, kit: KitRecord) -> None:
        """Put the kit back into review after a failed approval."""
        try:
            await self._repos.rollback()
            await self._repos.kits.update(
                kit.id, status=kit.status, requires_review=True, updated_at=kit.updated_at
            )
            await self._repos.commit()
        except Exception as e:
            events.failure("approve_kit.compensation", e, kit_id=kit.id)
            raise PersistenceError("Failed to restore kit after approval failure") from e

    async def mark_paid(self, order_id: UUID, actor: str) -> OrderRecord:
        """Manually confirm payment for an order awaiting payment.

        Raises:
            OrderNotFoundError: If the order does not exist
            StateConflictError: If the order is not awaiting payment
        """
        order = await self._repos.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")

        if order.status != OrderStatus.awaiting_payment:
            raise StateConflictError(
                f"Cannot mark order as paid. Current status: {order.status.value}",
                code="INVALID_STATUS",
            )

        updated = await transition_order(
            self._repos,
            order,
            OrderStatus.paid,
            expected={OrderStatus.awaiting_payment},
            actor=actor,
            action="status_changed_to_paid",
        )
        if updated is None:
            raise StateConflictError(
                "Cannot mark order as paid. Order status changed concurrently",
                code="INVALID_STATUS",
            )

        await self._repos.commit()
        events.admin_action("mark_paid", actor, order_id=order_id)
        return updated

    async def _send_confirmation(self, order: OrderRecord, kit: KitRecord, tier: PlanTier) -> None:
        if not order.customer_email:
            logger.info(f"Order {order.id} has no customer email, confirmation skipped")
            return
        try:
            await self._notifier.send_order_confirmation(
                OrderConfirmation(
                    to=order.customer_email,
                    kit_title=kit.title,
                    plan_tier=tier,
                    download_url=self.download_url(kit.id) if tier == PlanTier.standard else None,
                )
            )
        except NotificationError as e:
            events.failure("order_confirmation_email", e, order_id=order.id)
