"""Tests for kit ownership enforcement through the API."""

import uuid
from collections.abc import Awaitable, Callable

import pytest
from fastapi.testclient import TestClient

from hiringkit.app.db.repositories import KitRecord, OrderRecord, Repositories
from hiringkit.app.models.common import OrderStatus

MakeKit = Callable[..., Awaitable[KitRecord]]
MakeOrder = Callable[..., Awaitable[OrderRecord]]

INTAKE = {
    "role_title": "Finance Manager",
    "organization": "Riverbend Clinic",
    "mission": "Keep the clinic financially healthy so care stays free.",
}


def bearer(org_id: uuid.UUID, user_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {org_id}:{user_id}"}


@pytest.mark.asyncio
async def test_other_users_cannot_touch_a_kit(
    client: TestClient, admin_headers: dict[str, str], repos: Repositories
) -> None:
    """A kit created by org_a/user_a is invisible to anyone but its owner and admins."""
    org_a = uuid.uuid4()
    owner = bearer(org_a, uuid.uuid4())
    same_org = bearer(org_a, uuid.uuid4())
    other_org = bearer(uuid.uuid4(), uuid.uuid4())

    created = client.post("/kits/generate", json=INTAKE, headers=owner)
    assert created.status_code == 201
    kit_id = created.json()["id"]

    for headers in (same_org, other_org, {}):
        fetched = client.get(f"/kits/{kit_id}", headers=headers)
        assert fetched.status_code == 404
        assert fetched.json()["code"] == "KIT_NOT_FOUND"

        regen = client.post(f"/kits/{kit_id}/sections/scorecard/regenerate", headers=headers)
        assert regen.status_code == 404

        edit = client.patch(
            f"/kits/{kit_id}/inputs",
            json={"field_updates": {"mission": "Taken over."}},
            headers=headers,
        )
        assert edit.status_code == 404

    stored = await repos.kits.get(uuid.UUID(kit_id))
    assert stored is not None
    assert stored.regen_counts == {}
    assert stored.intake["mission"] == INTAKE["mission"]

    assert client.get(f"/kits/{kit_id}", headers=owner).status_code == 200
    assert client.get(f"/kits/{kit_id}", headers=admin_headers).status_code == 200


@pytest.mark.asyncio
async def test_export_and_checkout_are_scoped_to_owner(
    client: TestClient,
    make_kit: MakeKit,
    make_order: MakeOrder,
    repos: Repositories,
) -> None:
    org_id, user_id = uuid.uuid4(), uuid.uuid4()
    kit = await make_kit(user_id=user_id, org_id=org_id)
    order = await make_order(kit.id, status=OrderStatus.paid, user_id=user_id, org_id=org_id)
    stranger = bearer(uuid.uuid4(), uuid.uuid4())

    export = client.post(
        f"/kits/{kit.id}/export", json={"export_type": "combined"}, headers=stranger
    )
    checkout = client.post(
        "/checkout",
        json={
            "kit_id": str(kit.id),
            "success_url": "https://kits.test/success",
            "cancel_url": "https://kits.test/cancel",
        },
        headers=stranger,
    )

    assert export.status_code == 404
    assert checkout.status_code == 404
    stored = await repos.orders.get(order.id)
    assert stored is not None and stored.status == OrderStatus.paid

    owned = client.post(
        f"/kits/{kit.id}/export",
        json={"export_type": "combined"},
        headers=bearer(org_id, user_id),
    )
    assert owned.status_code == 200
