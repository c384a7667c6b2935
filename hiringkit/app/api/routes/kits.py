"""Kit endpoints: generation, viewing, input edits, section regeneration and export."""

from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from hiringkit.app.api.auth import get_optional_context
from hiringkit.app.api.dependencies import (
    enforce_rate_limit,
    get_export_pipeline,
    get_intake_service,
    get_regeneration_limiter,
)
from hiringkit.app.db.context import RequestContext
from hiringkit.app.export.pipeline import ExportPipeline
from hiringkit.app.models.common import ExportKind, KitStatus
from hiringkit.app.models.intake import GenerateKitRequest, StyleSettings
from hiringkit.app.services.intake import IntakeService, KitView, kit_view
from hiringkit.app.services.regeneration import RegenerationLimiter

router = APIRouter(prefix="/kits", tags=["kits"])


class KitResponse(BaseModel):
    """Kit with edited sections applied over generated content."""

    id: UUID
    title: str
    status: KitStatus
    requires_review: bool
    intake: dict[str, Any]
    content: dict[str, Any | None]
    edited_sections: list[str]
    regen_counts: dict[str, int]
    qa_notes: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_view(cls, view: KitView) -> "KitResponse":
        return cls(
            id=view.id,
            title=view.title,
            status=view.status,
            requires_review=view.requires_review,
            intake=view.intake.model_dump(mode="json"),
            content={
                section.value: content.model_dump(mode="json") if content else None
                for section, content in view.content.items()
            },
            edited_sections=[section.value for section in view.edited_sections],
            regen_counts=view.regen_counts,
            qa_notes=view.qa_notes,
            created_at=view.created_at,
            updated_at=view.updated_at,
        )


class UpdateInputsRequest(BaseModel):
    """Request body for PATCH /kits/{kit_id}/inputs."""

    field_updates: dict[str, Any]


class UpdateInputsResponse(BaseModel):
    intake_data: dict[str, Any]
    updated_fields: list[str]


class RegenerateRequest(BaseModel):
    """Request body for section regeneration."""

    intake_overrides: dict[str, Any] | None = None
    style_settings: StyleSettings | None = None


class RegenerateResponse(BaseModel):
    section: str
    content: dict[str, Any]
    regen_count: int
    remaining: int | Literal["unlimited"]


class ExportRequest(BaseModel):
    """Request body for POST /kits/{kit_id}/export."""

    export_type: ExportKind = Field(ExportKind.combined, description="combined PDF or ZIP archive")


class ExportAssetResponse(BaseModel):
    slot: str
    file_name: str
    url: str


class ExportResponse(BaseModel):
    """Ready export (200) or scheduled job (202)."""

    status: Literal["ready", "processing"]
    export_type: ExportKind
    url: str | None = None
    assets: list[ExportAssetResponse] = []
    fallback_slots: list[str] = []
    cached: bool = False
    job_id: UUID | None = None
    check_url: str | None = None


@router.post(
    "/generate",
    response_model=KitResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_rate_limit)],
)
async def generate_kit(
    request: GenerateKitRequest,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    service: Annotated[IntakeService, Depends(get_intake_service)],
) -> KitResponse:
    """Create a kit from the intake form and generate all sections."""
    kit = await service.create_kit(request, ctx)
    return KitResponse.from_view(kit_view(kit))


@router.get("/{kit_id}", response_model=KitResponse)
async def get_kit(
    kit_id: UUID,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    service: Annotated[IntakeService, Depends(get_intake_service)],
) -> KitResponse:
    return KitResponse.from_view(await service.get_kit(kit_id, ctx))


@router.patch("/{kit_id}/inputs", response_model=UpdateInputsResponse)
async def update_inputs(
    kit_id: UUID,
    request: UpdateInputsRequest,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    service: Annotated[IntakeService, Depends(get_intake_service)],
) -> UpdateInputsResponse:
    """Partially update the intake. Sections are not regenerated."""
    result = await service.update_inputs(kit_id, request.field_updates, ctx)
    return UpdateInputsResponse(
        intake_data=result.intake.model_dump(mode="json"),
        updated_fields=result.updated_fields,
    )


@router.post(
    "/{kit_id}/sections/{section}/regenerate",
    response_model=RegenerateResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def regenerate_section(
    kit_id: UUID,
    section: str,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    limiter: Annotated[RegenerationLimiter, Depends(get_regeneration_limiter)],
    request: RegenerateRequest | None = None,
) -> RegenerateResponse:
    """Regenerate one section. Unpaid kits are limited per section."""
    body = request or RegenerateRequest()
    result = await limiter.regenerate(
        kit_id,
        section,
        intake_overrides=body.intake_overrides,
        style_settings=body.style_settings,
        ctx=ctx,
    )
    return RegenerateResponse(
        section=result.section.value,
        content=result.content.model_dump(mode="json"),
        regen_count=result.regen_count,
        remaining=result.remaining,
    )


@router.post(
    "/{kit_id}/export",
    response_model=ExportResponse,
    responses={202: {"model": ExportResponse, "description": "Export scheduled as a job"}},
    dependencies=[Depends(enforce_rate_limit)],
)
async def export_kit(
    kit_id: UUID,
    response: Response,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    pipeline: Annotated[ExportPipeline, Depends(get_export_pipeline)],
    request: ExportRequest | None = None,
) -> ExportResponse:
    """Export a paid kit as a combined PDF or a per-section ZIP archive."""
    kind = (request or ExportRequest()).export_type
    outcome = await pipeline.request_export(kit_id, kind, ctx)

    if outcome.status == "processing":
        response.status_code = status.HTTP_202_ACCEPTED

    return ExportResponse(
        status=outcome.status,
        export_type=outcome.kind,
        url=outcome.url,
        assets=[
            ExportAssetResponse(slot=asset.slot, file_name=asset.file_name, url=asset.url)
            for asset in outcome.assets
        ],
        fallback_slots=outcome.fallback_slots,
        cached=outcome.cached,
        job_id=outcome.job_id,
        check_url=outcome.check_url,
    )
