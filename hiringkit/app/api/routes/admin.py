"""Admin review endpoints."""

from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from hiringkit.app.api.auth import require_admin
from hiringkit.app.api.dependencies import get_admin_service
from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import AuditLogEntry, OrderRecord
from hiringkit.app.models.common import KitStatus, OrderStatus, PlanTier
from hiringkit.app.services.admin import AdminService

router = APIRouter(prefix="/admin", tags=["admin"])


class OrderResponse(BaseModel):
    id: UUID
    kit_id: UUID
    status: OrderStatus
    plan_tier: PlanTier
    total_cents: int
    customer_email: str | None
    kit_title: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def build(cls, order: OrderRecord, plan_tier: PlanTier, kit_title: str | None) -> "OrderResponse":
        return cls(
            id=order.id,
            kit_id=order.kit_id,
            status=order.status,
            plan_tier=plan_tier,
            total_cents=order.total_cents,
            customer_email=order.customer_email,
            kit_title=kit_title,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total: int
    page: int
    limit: int


class AuditEntryResponse(BaseModel):
    id: UUID
    action: str
    actor: str
    metadata: dict[str, Any]
    created_at: datetime

    @classmethod
    def build(cls, entry: AuditLogEntry) -> "AuditEntryResponse":
        return cls(
            id=entry.id,
            action=entry.action,
            actor=entry.actor,
            metadata=entry.metadata,
            created_at=entry.created_at,
        )


class KitSummaryResponse(BaseModel):
    id: UUID
    title: str
    status: KitStatus
    requires_review: bool
    qa_notes: str | None
    edited_sections: list[str]


class OrderDetailResponse(BaseModel):
    order: OrderResponse
    kit: KitSummaryResponse | None
    audit_log: list[AuditEntryResponse]


class NoteRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=1000)


class EditKitRequest(BaseModel):
    """Reviewer edits. Sections not listed keep their content."""

    edited_content: dict[str, Any] | None = None
    qa_notes: str | None = Field(None, max_length=5000)


class ActionResponse(BaseModel):
    success: bool = True
    order_id: UUID | None = None
    kit_id: UUID | None = None
    status: str | None = None


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    admin: Annotated[RequestContext, Depends(require_admin)],
    service: Annotated[AdminService, Depends(get_admin_service)],
    order_status: Annotated[str, Query(alias="status")] = "all",
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> OrderListResponse:
    result = await service.list_orders(order_status, page=page, limit=limit)
    return OrderListResponse(
        orders=[
            OrderResponse.build(item.order, item.plan_tier, item.kit_title) for item in result.items
        ],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def order_detail(
    order_id: UUID,
    admin: Annotated[RequestContext, Depends(require_admin)],
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> OrderDetailResponse:
    detail = await service.order_detail(order_id)
    kit = detail.kit
    return OrderDetailResponse(
        order=OrderResponse.build(detail.order, detail.plan_tier, kit.title if kit else None),
        kit=(
            KitSummaryResponse(
                id=kit.id,
                title=kit.title,
                status=kit.status,
                requires_review=kit.requires_review,
                qa_notes=kit.qa_notes,
                edited_sections=[s.value for s in kit.overlay().edited_sections()],
            )
            if kit
            else None
        ),
        audit_log=[AuditEntryResponse.build(entry) for entry in detail.audit_log],
    )


@router.post("/orders/{order_id}/mark-paid", response_model=ActionResponse)
async def mark_paid(
    order_id: UUID,
    admin: Annotated[RequestContext, Depends(require_admin)],
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> ActionResponse:
    order = await service.mark_paid(order_id, admin.actor)
    return ActionResponse(order_id=order.id, kit_id=order.kit_id, status=order.status.value)


@router.post("/orders/{order_id}/add-note", response_model=ActionResponse)
async def add_note(
    order_id: UUID,
    request: NoteRequest,
    admin: Annotated[RequestContext, Depends(require_admin)],
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> ActionResponse:
    entry = await service.add_note(order_id, request.note, admin.actor)
    return ActionResponse(order_id=entry.order_id, kit_id=entry.kit_id)


@router.post("/orders/{order_id}/resend-email", response_model=ActionResponse)
async def resend_email(
    order_id: UUID,
    admin: Annotated[RequestContext, Depends(require_admin)],
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> ActionResponse:
    order = await service.resend_email(order_id, admin.actor)
    return ActionResponse(order_id=order.id, kit_id=order.kit_id, status=order.status.value)


@router.post("/kits/{kit_id}/approve", response_model=ActionResponse)
async def approve_kit(
    kit_id: UUID,
    admin: Annotated[RequestContext, Depends(require_admin)],
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> ActionResponse:
    """Publish a reviewed premium kit and release it to the buyer."""
    result = await service.approve(kit_id, admin.actor)
    return ActionResponse(order_id=result.order.id, kit_id=kit_id, status=result.order.status.value)


@router.post("/kits/{kit_id}/edit", response_model=ActionResponse)
async def edit_kit(
    kit_id: UUID,
    request: EditKitRequest,
    admin: Annotated[RequestContext, Depends(require_admin)],
    service: Annotated[AdminService, Depends(get_admin_service)],
) -> ActionResponse:
    kit = await service.edit_kit(
        kit_id, admin.actor, edited_content=request.edited_content, qa_notes=request.qa_notes
    )
    return ActionResponse(kit_id=kit.id, status=kit.status.value)
