"""Checkout, payment webhook and order status endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, Field

from hiringkit.app.api.auth import get_optional_context
from hiringkit.app.api.dependencies import (
    enforce_rate_limit,
    get_order_machine,
    get_repositories,
    get_webhook_processor,
)
from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import Repositories
from hiringkit.app.errors import WebhookSignatureError
from hiringkit.app.models.common import DELIVERABLE_STATUSES, OrderStatus, PlanTier
from hiringkit.app.services.orders import OrderStateMachine
from hiringkit.app.services.webhooks import WebhookProcessor

router = APIRouter(tags=["payments"])


class CheckoutRequest(BaseModel):
    """Request body for POST /checkout."""

    kit_id: UUID
    plan_tier: PlanTier = PlanTier.standard
    success_url: str = Field(..., min_length=1)
    cancel_url: str = Field(..., min_length=1)
    customer_email: str | None = Field(None, max_length=320)


class CheckoutResponse(BaseModel):
    url: str
    session_id: str
    order_id: UUID


class WebhookResponse(BaseModel):
    received: bool
    status: str


class OrderStatusResponse(BaseModel):
    """Latest order for a kit."""

    order_id: UUID
    kit_id: UUID
    status: OrderStatus
    plan_tier: PlanTier
    total_cents: int
    downloadable: bool


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def create_checkout(
    request: CheckoutRequest,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    machine: Annotated[OrderStateMachine, Depends(get_order_machine)],
) -> CheckoutResponse:
    """Start a hosted checkout for a kit."""
    result = await machine.create_checkout(
        kit_id=request.kit_id,
        plan_tier=request.plan_tier,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
        customer_email=request.customer_email,
        ctx=ctx,
    )
    return CheckoutResponse(url=result.url, session_id=result.session_id, order_id=result.order.id)


@router.post("/stripe/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    processor: Annotated[WebhookProcessor, Depends(get_webhook_processor)],
    stripe_signature: Annotated[str | None, Header(alias="stripe-signature")] = None,
) -> WebhookResponse:
    """Receive a signed payment event.

    200 for processed, duplicate and still-processing deliveries, 400 for a
    bad signature, 500 when handling fails so the processor redelivers.
    """
    payload = await request.body()
    try:
        result = await processor.handle(payload, stripe_signature)
    except WebhookSignatureError:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from e
    return WebhookResponse(**result.to_body())


@router.get("/orders/{kit_id}/status", response_model=OrderStatusResponse)
async def get_order_status(
    kit_id: UUID,
    repos: Annotated[Repositories, Depends(get_repositories)],
    machine: Annotated[OrderStateMachine, Depends(get_order_machine)],
) -> OrderStatusResponse:
    orders = await repos.orders.list_for_kit(kit_id)
    if not orders:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No order for this kit")

    order = orders[0]
    return OrderStatusResponse(
        order_id=order.id,
        kit_id=order.kit_id,
        status=order.status,
        plan_tier=machine.plan_tier(order),
        total_cents=order.total_cents,
        downloadable=order.status in DELIVERABLE_STATUSES,
    )
