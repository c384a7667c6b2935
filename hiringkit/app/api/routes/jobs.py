"""Export job polling endpoint."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from hiringkit.app.api.dependencies import get_export_pipeline
from hiringkit.app.export.pipeline import ExportPipeline
from hiringkit.app.models.common import ExportJobStatus

router = APIRouter(prefix="/jobs", tags=["jobs"])


class JobStatusResponse(BaseModel):
    """Job state. ``url`` only once completed, ``error`` only once failed."""

    job_id: UUID
    status: ExportJobStatus
    progress: int
    url: str | None = None
    error: str | None = None


@router.get("/{job_id}/status", response_model=JobStatusResponse, response_model_exclude_none=True)
async def get_job_status(
    job_id: UUID,
    pipeline: Annotated[ExportPipeline, Depends(get_export_pipeline)],
) -> JobStatusResponse:
    view = await pipeline.get_job_status(job_id)
    return JobStatusResponse(
        job_id=view.job_id,
        status=view.status,
        progress=view.progress,
        url=view.url,
        error=view.error,
    )
