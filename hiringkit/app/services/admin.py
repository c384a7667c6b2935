"""Admin review surface: order listing, kit edits, notes and email resends."""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from hiringkit.app.db.repositories import AuditLogEntry, KitRecord, OrderRecord, Repositories
from hiringkit.app.errors import InvalidInputError, KitNotFoundError, OrderNotFoundError
from hiringkit.app.models.common import KitStatus, OrderStatus, PlanTier, Section, utc_now
from hiringkit.app.models.content import ContentOverlay, parse_section
from hiringkit.app.notifications.email import Notifier, OrderConfirmation
from hiringkit.app.services.orders import ApprovalResult, OrderStateMachine, record_audit
from hiringkit.app.utils.logging import StructuredEventLogger

events = StructuredEventLogger(__name__)

MAX_PAGE_SIZE = 100
MAX_NOTE_LENGTH = 1000


@dataclass
class OrderSummary:
    order: OrderRecord
    plan_tier: PlanTier
    kit_title: str | None


@dataclass
class OrderPage:
    items: list[OrderSummary]
    total: int
    page: int
    limit: int


@dataclass
class OrderDetail:
    order: OrderRecord
    plan_tier: PlanTier
    kit: KitRecord | None
    audit_log: list[AuditLogEntry]


def parse_overlay(edited_content: dict[str, Any]) -> ContentOverlay:
    """Validate an ``{section: content}`` mapping as an overlay.

    Raises:
        InvalidInputError: If a section name or its content is invalid
    """
    overlay = ContentOverlay()
    for name, data in edited_content.items():
        try:
            section = Section(name)
        except ValueError as e:
            raise InvalidInputError(f"Unknown section: {name}") from e
        try:
            overlay = overlay.with_section(section, parse_section(section, data))
        except ValidationError as e:
            raise InvalidInputError(f"Invalid content for section {name}") from e
    return overlay


class AdminService:
    """Operations behind the admin endpoints. Callers are already authorized."""

    def __init__(
        self, repos: Repositories, *, machine: OrderStateMachine, notifier: Notifier
    ) -> None:
        self._repos = repos
        self._machine = machine
        self._notifier = notifier

    async def list_orders(
        self, status: OrderStatus | str | None = None, page: int = 1, limit: int = 20
    ) -> OrderPage:
        """Newest-first page of orders, optionally filtered by status."""
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise InvalidInputError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if page < 1:
            raise InvalidInputError("page must be at least 1")

        status_filter: OrderStatus | None
        if status is None or status == "all":
            status_filter = None
        else:
            try:
                status_filter = OrderStatus(status)
            except ValueError as e:
                raise InvalidInputError(f"Unknown order status: {status}") from e

        orders, total = await self._repos.orders.list_orders(
            status=status_filter, offset=(page - 1) * limit, limit=limit
        )
        items = []
        for order in orders:
            kit = await self._repos.kits.get(order.kit_id)
            items.append(
                OrderSummary(
                    order=order,
                    plan_tier=self._machine.plan_tier(order),
                    kit_title=kit.title if kit else None,
                )
            )
        return OrderPage(items=items, total=total, page=page, limit=limit)

    async def order_detail(self, order_id: UUID) -> OrderDetail:
        order = await self._get_order(order_id)
        return OrderDetail(
            order=order,
            plan_tier=self._machine.plan_tier(order),
            kit=await self._repos.kits.get(order.kit_id),
            audit_log=await self._repos.audit_log.list_for_order(order_id),
        )

    async def approve(self, kit_id: UUID, actor: str) -> ApprovalResult:
        return await self._machine.approve_kit(kit_id, actor)

    async def mark_paid(self, order_id: UUID, actor: str) -> OrderRecord:
        return await self._machine.mark_paid(order_id, actor)

    async def edit_kit(
        self,
        kit_id: UUID,
        actor: str,
        *,
        edited_content: dict[str, Any] | None = None,
        qa_notes: str | None = None,
    ) -> KitRecord:
        """Apply reviewer edits to a kit.

        Given sections replace the matching edited sections; all other
        sections keep their current content.

        Raises:
            KitNotFoundError: If the kit does not exist
            InvalidInputError: If the edited content does not validate
        """
        kit = await self._repos.kits.get(kit_id)
        if kit is None:
            raise KitNotFoundError(f"Kit {kit_id} not found")

        changes: dict[str, Any] = {}
        edited: list[str] = []
        if edited_content:
            incoming = parse_overlay(edited_content)
            edited = [section.value for section in incoming.edited_sections()]
            now = utc_now()
            changes.update(
                edited_content=kit.overlay().merged_with(incoming).to_json(),
                status=KitStatus.editing,
                edited_at=now,
            )
        if qa_notes is not None:
            changes["qa_notes"] = qa_notes

        if not changes:
            raise InvalidInputError("Nothing to update")

        updated = await self._repos.kits.update(kit_id, **changes)
        if updated is None:
            raise KitNotFoundError(f"Kit {kit_id} not found")

        await record_audit(
            self._repos,
            "kit_edited",
            actor,
            kit_id=kit_id,
            sections=edited,
            qa_notes_updated=qa_notes is not None,
        )
        await self._repos.commit()

        if edited and kit.status != KitStatus.editing:
            events.transition("kit", kit_id, kit.status.value, KitStatus.editing.value, actor=actor)
        events.admin_action("kit_edited", actor, kit_id=kit_id)
        return updated

    async def add_note(self, order_id: UUID, note: str, actor: str) -> AuditLogEntry:
        """Attach a reviewer note to an order's audit log."""
        note = note.strip()
        if not note or len(note) > MAX_NOTE_LENGTH:
            raise InvalidInputError(f"Note must be between 1 and {MAX_NOTE_LENGTH} characters")

        order = await self._get_order(order_id)
        entry = await record_audit(
            self._repos, "note_added", actor, order_id=order.id, kit_id=order.kit_id, note=note
        )
        await self._repos.commit()
        events.admin_action("note_added", actor, order_id=order_id)
        return entry

    async def resend_email(self, order_id: UUID, actor: str) -> OrderRecord:
        """Send the order confirmation again.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidInputError: If the order has no customer email
            NotificationError: If delivery fails
        """
        order = await self._get_order(order_id)
        if not order.customer_email:
            raise InvalidInputError("Order has no customer email")

        kit = await self._repos.kits.get(order.kit_id)
        if kit is None:
            raise KitNotFoundError(f"Kit {order.kit_id} not found")

        tier = self._machine.plan_tier(order)
        # Premium buyers only get a link once the kit has been approved
        downloadable = tier == PlanTier.standard or order.status in (
            OrderStatus.ready,
            OrderStatus.delivered,
        )
        await self._notifier.send_order_confirmation(
            OrderConfirmation(
                to=order.customer_email,
                kit_title=kit.title,
                plan_tier=tier,
                download_url=self._machine.download_url(kit.id) if downloadable else None,
            )
        )

        await record_audit(
            self._repos,
            "email_resent",
            actor,
            order_id=order.id,
            kit_id=order.kit_id,
            to=order.customer_email,
        )
        await self._repos.commit()
        events.admin_action("email_resent", actor, order_id=order_id)
        return order

    async def _get_order(self, order_id: UUID) -> OrderRecord:
        order = await self._repos.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order
