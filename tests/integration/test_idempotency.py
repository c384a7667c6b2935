"""Tests for payment webhook idempotency through the API."""

from collections.abc import Awaitable, Callable
from typing import Any

import pytest
from fastapi.testclient import TestClient

from hiringkit.app.db.repositories import KitRecord, OrderRecord, Repositories
from hiringkit.app.errors import PersistenceError
from hiringkit.app.models.common import OrderStatus, WebhookProcessingStatus
from hiringkit.app.services.orders import OrderStateMachine

MakeKit = Callable[..., Awaitable[KitRecord]]
MakeOrder = Callable[..., Awaitable[OrderRecord]]


def post_webhook(client: TestClient, payload: bytes, signature: str | None) -> Any:
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post("/stripe/webhook", content=payload, headers=headers)


@pytest.mark.asyncio
async def test_webhook_applies_payment_once(
    client: TestClient,
    make_kit: MakeKit,
    make_order: MakeOrder,
    repos: Repositories,
    notifier: Any,
    sign: Any,
    stripe_event: Any,
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id)
    payload = stripe_event("evt_api_1", order.stripe_session_id)

    first = post_webhook(client, payload, sign(payload))
    second = post_webhook(client, payload, sign(payload))

    assert first.status_code == 200
    assert first.json() == {"received": True, "status": "processed"}
    assert second.status_code == 200
    assert second.json() == {"received": True, "status": "duplicate"}
    stored = await repos.orders.get(order.id)
    assert stored is not None and stored.status == OrderStatus.paid
    assert len(notifier.confirmations) == 1


@pytest.mark.asyncio
async def test_webhook_in_progress_is_acknowledged(
    client: TestClient,
    make_kit: MakeKit,
    make_order: MakeOrder,
    repos: Repositories,
    sign: Any,
    stripe_event: Any,
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id)
    payload = stripe_event("evt_api_busy", order.stripe_session_id)
    await repos.webhook_events.begin("evt_api_busy", "checkout.session.completed", {})

    response = post_webhook(client, payload, sign(payload))

    assert response.status_code == 200
    assert response.json()["status"] == "processing"


def test_missing_signature_is_rejected(client: TestClient, stripe_event: Any) -> None:
    response = post_webhook(client, stripe_event("evt_api_2", "cs_x"), None)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SIGNATURE"


def test_forged_signature_is_rejected(client: TestClient, sign: Any, stripe_event: Any) -> None:
    payload = stripe_event("evt_api_3", "cs_x")

    response = post_webhook(client, payload, sign(payload, secret="whsec_attacker"))

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_handler_failure_returns_500_and_allows_redelivery(
    client: TestClient,
    make_kit: MakeKit,
    make_order: MakeOrder,
    repos: Repositories,
    sign: Any,
    stripe_event: Any,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id)
    payload = stripe_event("evt_api_retry", order.stripe_session_id)

    async def unavailable(self: OrderStateMachine, **_: Any) -> None:
        raise PersistenceError("database unavailable")

    monkeypatch.setattr(OrderStateMachine, "apply_payment_succeeded", unavailable)
    failed = post_webhook(client, payload, sign(payload))

    assert failed.status_code == 500
    record = await repos.webhook_events.get("evt_api_retry")
    assert record is not None and record.status == WebhookProcessingStatus.failed

    monkeypatch.undo()
    retried = post_webhook(client, payload, sign(payload))

    assert retried.status_code == 200
    assert retried.json()["status"] == "processed"
    stored = await repos.orders.get(order.id)
    assert stored is not None and stored.status == OrderStatus.paid


@pytest.mark.asyncio
async def test_event_for_unknown_session_is_acknowledged(
    client: TestClient, repos: Repositories, sign: Any, stripe_event: Any
) -> None:
    payload = stripe_event("evt_api_foreign", "cs_unknown_session")

    first = post_webhook(client, payload, sign(payload))
    second = post_webhook(client, payload, sign(payload))

    assert first.status_code == 200
    assert first.json() == {"received": True, "status": "processed"}
    assert second.json()["status"] == "duplicate"
    record = await repos.webhook_events.get("evt_api_foreign")
    assert record is not None and record.status == WebhookProcessingStatus.completed
