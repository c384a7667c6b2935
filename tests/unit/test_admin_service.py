"""Tests for the admin review operations."""

import uuid
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

import pytest

from hiringkit.app.db.repositories import KitRecord, OrderRecord, Repositories
from hiringkit.app.errors import (
    InvalidInputError,
    KitNotFoundError,
    NotificationError,
    OrderNotFoundError,
)
from hiringkit.app.models.common import KitStatus, OrderStatus, PlanTier, Section, utc_now
from hiringkit.app.models.content import ReferenceCheck
from hiringkit.app.services.admin import AdminService, parse_overlay
from hiringkit.app.services.orders import OrderStateMachine

MakeKit = Callable[..., Awaitable[KitRecord]]
MakeOrder = Callable[..., Awaitable[OrderRecord]]


@pytest.fixture
def admin(repos: Repositories, machine: OrderStateMachine, notifier: Any) -> AdminService:
    return AdminService(repos, machine=machine, notifier=notifier)


@pytest.mark.asyncio
async def test_list_orders_filters_and_pages_newest_first(
    admin: AdminService, make_kit: MakeKit, make_order: MakeOrder
) -> None:
    kit = await make_kit()
    base = utc_now()
    for index in range(3):
        await make_order(
            kit.id, status=OrderStatus.paid, created_at=base + timedelta(minutes=index)
        )
    await make_order(kit.id, status=OrderStatus.qa_pending, total_cents=12900)

    everything = await admin.list_orders("all")
    paid_page = await admin.list_orders(OrderStatus.paid, page=1, limit=2)
    second_page = await admin.list_orders("paid", page=2, limit=2)

    assert everything.total == 4
    assert paid_page.total == 3
    assert len(paid_page.items) == 2
    assert len(second_page.items) == 1
    created = [item.order.created_at for item in paid_page.items]
    assert created == sorted(created, reverse=True)
    assert paid_page.items[0].kit_title == kit.title
    assert paid_page.items[0].plan_tier == PlanTier.standard


@pytest.mark.asyncio
async def test_list_orders_rejects_bad_arguments(admin: AdminService) -> None:
    with pytest.raises(InvalidInputError):
        await admin.list_orders("refunded")
    with pytest.raises(InvalidInputError):
        await admin.list_orders(limit=101)
    with pytest.raises(InvalidInputError):
        await admin.list_orders(page=0)


@pytest.mark.asyncio
async def test_order_detail_includes_kit_and_audit(
    admin: AdminService, make_kit: MakeKit, make_order: MakeOrder
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id, total_cents=12900)
    await admin.mark_paid(order.id, actor="admin-1")

    detail = await admin.order_detail(order.id)

    assert detail.kit is not None and detail.kit.id == kit.id
    assert detail.plan_tier == PlanTier.premium
    assert [entry.action for entry in detail.audit_log] == ["status_changed_to_paid"]

    with pytest.raises(OrderNotFoundError):
        await admin.order_detail(uuid.uuid4())


@pytest.mark.asyncio
async def test_edit_kit_merges_sections_and_moves_to_editing(
    admin: AdminService, make_kit: MakeKit, repos: Repositories
) -> None:
    kit = await make_kit()
    await admin.edit_kit(
        kit.id, "admin-1", edited_content={"eeo": {"principles": ["Fair"], "disclaimer": ""}}
    )

    updated = await admin.edit_kit(
        kit.id,
        "admin-1",
        edited_content={"reference_check": {"questions": ["Would you rehire them?"]}},
        qa_notes="Tightened references",
    )

    assert updated.status == KitStatus.editing
    assert updated.qa_notes == "Tightened references"
    overlay = updated.overlay()
    assert overlay.edited_sections() == [Section.reference_check, Section.eeo]
    assert overlay.reference_check == ReferenceCheck(questions=["Would you rehire them?"])
    assert updated.generated_content == kit.generated_content

    [latest, first] = await repos.audit_log.list_for_kit(kit.id)
    assert latest.action == "kit_edited"
    assert latest.metadata["sections"] == ["reference_check"]
    assert latest.metadata["qa_notes_updated"] is True
    assert first.metadata["qa_notes_updated"] is False


@pytest.mark.asyncio
async def test_notes_only_edit_keeps_kit_status(admin: AdminService, make_kit: MakeKit) -> None:
    kit = await make_kit(status=KitStatus.published)

    updated = await admin.edit_kit(kit.id, "admin-1", qa_notes="Looks good")

    assert updated.status == KitStatus.published
    assert updated.qa_notes == "Looks good"


@pytest.mark.asyncio
async def test_edit_kit_validation(admin: AdminService, make_kit: MakeKit) -> None:
    kit = await make_kit()

    with pytest.raises(InvalidInputError):
        await admin.edit_kit(kit.id, "admin-1")
    with pytest.raises(InvalidInputError):
        await admin.edit_kit(kit.id, "admin-1", edited_content={"cover_letter": {}})
    with pytest.raises(InvalidInputError):
        await admin.edit_kit(
            kit.id, "admin-1", edited_content={"reference_check": {"questions": 3}}
        )
    with pytest.raises(KitNotFoundError):
        await admin.edit_kit(uuid.uuid4(), "admin-1", qa_notes="x")


def test_parse_overlay_accepts_known_sections() -> None:
    overlay = parse_overlay({"reference_check": {"questions": ["Q"]}})

    assert overlay.edited_sections() == [Section.reference_check]


@pytest.mark.asyncio
async def test_add_note_is_audited(
    admin: AdminService, make_kit: MakeKit, make_order: MakeOrder, repos: Repositories
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id)

    entry = await admin.add_note(order.id, "  Called the buyer  ", actor="admin-1")

    assert entry.action == "note_added"
    assert entry.metadata == {"note": "Called the buyer"}
    assert entry.kit_id == kit.id
    assert await repos.audit_log.list_for_order(order.id) == [entry]


@pytest.mark.asyncio
async def test_add_note_rejects_empty_and_long_notes(
    admin: AdminService, make_kit: MakeKit, make_order: MakeOrder
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id)

    with pytest.raises(InvalidInputError):
        await admin.add_note(order.id, "   ", actor="admin-1")
    with pytest.raises(InvalidInputError):
        await admin.add_note(order.id, "x" * 1001, actor="admin-1")
    with pytest.raises(OrderNotFoundError):
        await admin.add_note(uuid.uuid4(), "hello", actor="admin-1")


@pytest.mark.asyncio
async def test_resend_email_for_standard_order_includes_link(
    admin: AdminService, make_kit: MakeKit, make_order: MakeOrder, notifier: Any
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id, status=OrderStatus.paid)

    await admin.resend_email(order.id, actor="admin-1")

    [message] = notifier.confirmations
    assert message.to == "buyer@example.com"
    assert message.download_url == f"https://kits.test/kit/{kit.id}/success"


@pytest.mark.asyncio
async def test_resend_email_for_premium_order_in_review_has_no_link(
    admin: AdminService,
    make_kit: MakeKit,
    make_order: MakeOrder,
    notifier: Any,
    repos: Repositories,
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id, status=OrderStatus.qa_pending, total_cents=12900)

    await admin.resend_email(order.id, actor="admin-1")

    assert notifier.confirmations[0].download_url is None
    assert notifier.confirmations[0].plan_tier == PlanTier.premium
    [entry] = await repos.audit_log.list_for_order(order.id)
    assert entry.action == "email_resent"


@pytest.mark.asyncio
async def test_resend_email_failures(
    admin: AdminService,
    make_kit: MakeKit,
    make_order: MakeOrder,
    notifier: Any,
    repos: Repositories,
) -> None:
    kit = await make_kit()
    no_email = await make_order(kit.id, customer_email=None)
    order = await make_order(kit.id, status=OrderStatus.paid)

    with pytest.raises(InvalidInputError):
        await admin.resend_email(no_email.id, actor="admin-1")

    notifier.fail = True
    with pytest.raises(NotificationError):
        await admin.resend_email(order.id, actor="admin-1")
    assert await repos.audit_log.list_for_order(order.id) == []
