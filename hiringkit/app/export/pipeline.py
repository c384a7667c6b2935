"""Export pipeline: cache lookup, synchronous render, async fallback.

A request first looks for an export of the same kind created within the cache
window. On a miss it renders inline under a time budget; if the render is too
slow or the artifact too large for an inline response, it hands the work to a
background job and returns a job id to poll.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Literal
from uuid import UUID

from hiringkit.app.config import Settings
from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import (
    ExportAssetRecord,
    ExportJobRecord,
    ExportRecord,
    KitRecord,
    Repositories,
)
from hiringkit.app.errors import (
    ExportJobNotFoundError,
    HiringKitError,
    KitNotFoundError,
    NotDeliverableError,
)
from hiringkit.app.export.archive import SlotFiles, build_archive, split_by_slot
from hiringkit.app.export.jobs import BackgroundJobs, background_jobs
from hiringkit.app.export.render import KitDocument, KitRenderer
from hiringkit.app.export.storage import ObjectStorage
from hiringkit.app.models.common import ARCHIVE_SLOTS, ExportJobStatus, ExportKind, utc_now
from hiringkit.app.models.content import effective_content
from hiringkit.app.services.access import load_kit
from hiringkit.app.services.orders import SYSTEM_EXPORT_ACTOR, deliverable_order, mark_delivered
from hiringkit.app.utils.logging import StructuredEventLogger
from hiringkit.app.utils.metrics import metrics

events = StructuredEventLogger(__name__)

RepositoryScope = Callable[[], AbstractAsyncContextManager[Repositories]]


@dataclass
class ExportOutcome:
    """Result of an export request."""

    status: Literal["ready", "processing"]
    kind: ExportKind
    url: str | None = None
    assets: list[ExportAssetRecord] = field(default_factory=list)
    fallback_slots: list[str] = field(default_factory=list)
    cached: bool = False
    job_id: UUID | None = None

    @property
    def check_url(self) -> str | None:
        if self.job_id is None:
            return None
        return f"/jobs/{self.job_id}/status"


@dataclass
class JobStatusView:
    job_id: UUID
    status: ExportJobStatus
    progress: int
    url: str | None
    error: str | None


@dataclass
class _Artifact:
    data: bytes
    content_type: str
    extension: str
    slot_files: SlotFiles | None = None

    @property
    def fallback_slots(self) -> list[str]:
        return list(self.slot_files.fallback_slots) if self.slot_files else []


def build_document(kit: KitRecord) -> KitDocument:
    """Renderable view of a kit using edited content where present."""
    intake = kit.intake_data()
    return KitDocument(
        kit_id=kit.id,
        title=kit.title,
        role_title=intake.role_title,
        organization=intake.organization,
        sections=effective_content(kit.content(), kit.overlay()),
    )


class ExportPipeline:
    """Produces combined PDF and per-section archive exports for paid kits."""

    def __init__(
        self,
        repos: Repositories,
        *,
        renderer: KitRenderer,
        storage: ObjectStorage,
        settings: Settings,
        repos_scope: RepositoryScope | None = None,
        jobs: BackgroundJobs = background_jobs,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repos = repos
        self._renderer = renderer
        self._storage = storage
        self._settings = settings
        self._repos_scope = repos_scope
        self._jobs = jobs
        self._clock = clock

    async def request_export(
        self, kit_id: UUID, kind: ExportKind, ctx: RequestContext | None = None
    ) -> ExportOutcome:
        """Return a fresh export, rendering or scheduling one if needed.

        Raises:
            KitNotFoundError: If the kit does not exist or is not the caller's
            NotDeliverableError: If no order for the kit allows downloads
            RenderError: If the synchronous render fails
            StorageError: If the artifact cannot be stored
        """
        kit = await self._load_deliverable_kit(kit_id, ctx)
        repos = self._repos

        since = self._clock() - timedelta(hours=self._settings.export_cache_ttl_hours)
        cached = await repos.exports.find_fresh(kit_id, kind, since)
        if cached is not None:
            await mark_delivered(repos, kit_id, SYSTEM_EXPORT_ACTOR)
            await repos.commit()
            metrics.inc_export(kind.value, "cache_hit")
            events.export(kit_id, kind.value, "cache_hit", export_id=str(cached.id))
            return ExportOutcome(
                status="ready",
                kind=kind,
                url=cached.url,
                assets=cached.assets,
                fallback_slots=cached.fallback_slots,
                cached=True,
            )

        started = time.perf_counter()
        try:
            artifact = await asyncio.wait_for(
                self._build(kit, kind), timeout=self._settings.export_sync_timeout_seconds
            )
        except asyncio.TimeoutError:
            events.export(kit_id, kind.value, "async_fallback", reason="timeout")
            return await self._schedule(kit_id, kind)

        metrics.record_render_latency(kind.value, (time.perf_counter() - started) * 1000)

        if len(artifact.data) > self._settings.export_sync_max_bytes:
            events.export(
                kit_id, kind.value, "async_fallback", reason="too_large", size_bytes=len(artifact.data)
            )
            return await self._schedule(kit_id, kind)

        record = await self._store(repos, kit, kind, artifact)
        await mark_delivered(repos, kit_id, SYSTEM_EXPORT_ACTOR)
        await repos.commit()

        metrics.inc_export(kind.value, "rendered")
        events.export(kit_id, kind.value, "rendered", size_bytes=record.size_bytes)
        return ExportOutcome(
            status="ready",
            kind=kind,
            url=record.url,
            assets=record.assets,
            fallback_slots=record.fallback_slots,
        )

    async def get_job_status(self, job_id: UUID) -> JobStatusView:
        """Current job state. Jobs stuck past the job timeout are failed here.

        Raises:
            ExportJobNotFoundError: If the job does not exist
        """
        job = await self._repos.export_jobs.get(job_id)
        if job is None:
            raise ExportJobNotFoundError("Job not found")

        now = self._clock()
        timeout = timedelta(seconds=self._settings.export_job_timeout_seconds)
        if job.status in (ExportJobStatus.queued, ExportJobStatus.processing) and (
            now - job.updated_at > timeout
        ):
            job = await self._repos.export_jobs.update(
                job_id,
                status=ExportJobStatus.failed,
                error_message="Export job timed out",
                updated_at=now,
            ) or job
            await self._repos.commit()
            metrics.inc_export(job.kind.value, "timed_out")
            events.export(job.kit_id, job.kind.value, "failed", job_id=str(job_id), reason="stale")

        return JobStatusView(
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            url=job.result_url if job.status == ExportJobStatus.completed else None,
            error=job.error_message if job.status == ExportJobStatus.failed else None,
        )

    async def _load_deliverable_kit(
        self, kit_id: UUID, ctx: RequestContext | None
    ) -> KitRecord:
        kit = await load_kit(self._repos, kit_id, ctx)
        if await deliverable_order(self._repos, kit_id) is None:
            raise NotDeliverableError("Kit must be paid for before it can be exported")
        return kit

    async def _build(self, kit: KitRecord, kind: ExportKind) -> _Artifact:
        rendered = await self._renderer.render(build_document(kit))
        if kind == ExportKind.combined:
            return _Artifact(rendered.pdf, "application/pdf", "pdf")

        slot_files = await asyncio.to_thread(split_by_slot, rendered, kit.title)
        data = await asyncio.to_thread(build_archive, kit.title, slot_files)
        return _Artifact(data, "application/zip", "zip", slot_files)

    async def _store(
        self, repos: Repositories, kit: KitRecord, kind: ExportKind, artifact: _Artifact
    ) -> ExportRecord:
        now = self._clock()
        stamp = int(now.timestamp() * 1000)
        key = f"kits/{kit.id}/{kind.value}_{stamp}.{artifact.extension}"
        url = await self._storage.put(key, artifact.data, artifact.content_type)

        assets: list[ExportAssetRecord] = []
        if artifact.slot_files is not None:
            for slot, file_name in ARCHIVE_SLOTS.items():
                asset_key = f"kits/{kit.id}/{slot}_{stamp}.pdf"
                asset_url = await self._storage.put(
                    asset_key, artifact.slot_files.files[slot], "application/pdf"
                )
                assets.append(
                    ExportAssetRecord(
                        slot=slot, file_name=file_name, url=asset_url, storage_key=asset_key
                    )
                )

        for slot in artifact.fallback_slots:
            metrics.inc_placeholder(slot)
            events.export(kit.id, kind.value, "placeholder", slot=slot)

        return await repos.exports.create(
            ExportRecord(
                id=uuid.uuid4(),
                kit_id=kit.id,
                kind=kind,
                url=url,
                storage_key=key,
                size_bytes=len(artifact.data),
                created_at=now,
                fallback_slots=artifact.fallback_slots,
                assets=assets,
            )
        )

    async def _schedule(self, kit_id: UUID, kind: ExportKind) -> ExportOutcome:
        now = self._clock()
        job = await self._repos.export_jobs.create(
            ExportJobRecord(
                id=uuid.uuid4(),
                kit_id=kit_id,
                kind=kind,
                status=ExportJobStatus.queued,
                progress=0,
                result_url=None,
                error_message=None,
                created_at=now,
                updated_at=now,
                completed_at=None,
            )
        )
        await self._repos.commit()

        self._jobs.spawn(self._run_job(job.id, kit_id, kind), name=f"export-{job.id}")
        metrics.inc_export(kind.value, "async")
        events.export(kit_id, kind.value, "queued", job_id=str(job.id))
        return ExportOutcome(status="processing", kind=kind, job_id=job.id)

    def _scope(self) -> AbstractAsyncContextManager[Repositories]:
        if self._repos_scope is not None:
            return self._repos_scope()
        return _shared(self._repos)

    async def _run_job(self, job_id: UUID, kit_id: UUID, kind: ExportKind) -> None:
        """Render and store an export in the background, recording the outcome on the job."""
        async with self._scope() as repos:
            try:
                await repos.export_jobs.update(
                    job_id, status=ExportJobStatus.processing, progress=10, updated_at=self._clock()
                )
                await repos.commit()

                kit = await repos.kits.get(kit_id)
                if kit is None:
                    raise KitNotFoundError(f"Kit {kit_id} not found")

                started = time.perf_counter()
                artifact = await asyncio.wait_for(
                    self._build(kit, kind), timeout=self._settings.export_async_timeout_seconds
                )
                metrics.record_render_latency(kind.value, (time.perf_counter() - started) * 1000)

                await repos.export_jobs.update(job_id, progress=80, updated_at=self._clock())
                record = await self._store(repos, kit, kind, artifact)

                now = self._clock()
                await repos.export_jobs.update(
                    job_id,
                    status=ExportJobStatus.completed,
                    progress=100,
                    result_url=record.url,
                    completed_at=now,
                    updated_at=now,
                )
                await mark_delivered(repos, kit_id, SYSTEM_EXPORT_ACTOR)
                await repos.commit()
            except Exception as e:
                await repos.rollback()
                if isinstance(e, asyncio.TimeoutError):
                    message = "Export timed out"
                elif isinstance(e, HiringKitError):
                    message = e.message
                else:
                    message = "Export failed"
                await repos.export_jobs.update(
                    job_id,
                    status=ExportJobStatus.failed,
                    error_message=message,
                    updated_at=self._clock(),
                )
                await repos.commit()
                metrics.inc_export(kind.value, "failed")
                events.failure("export_job", e, job_id=job_id, kit_id=kit_id)
                return

        metrics.inc_export(kind.value, "completed")
        events.export(kit_id, kind.value, "completed", job_id=str(job_id))


@asynccontextmanager
async def _shared(repos: Repositories) -> AsyncIterator[Repositories]:
    yield repos
