"""Integration tests for the export pipeline: cache, sync render and async jobs."""

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime, timedelta
from typing import Any

import pytest

from hiringkit.app.config import Settings
from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import KitRecord, OrderRecord, Repositories
from hiringkit.app.errors import (
    ExportJobNotFoundError,
    KitNotFoundError,
    NotDeliverableError,
    RenderError,
)
from hiringkit.app.export.jobs import BackgroundJobs
from hiringkit.app.export.pipeline import ExportPipeline
from hiringkit.app.export.render import KitDocument, RenderedDocument, ReportLabRenderer
from hiringkit.app.export.storage import InMemoryObjectStorage
from hiringkit.app.models.common import (
    ARCHIVE_SLOTS,
    ExportJobStatus,
    ExportKind,
    OrderStatus,
    utc_now,
)

MakeKit = Callable[..., Awaitable[KitRecord]]
MakeOrder = Callable[..., Awaitable[OrderRecord]]


class SlowRenderer(ReportLabRenderer):
    """Renders after a delay."""

    def __init__(self, delay: float) -> None:
        self.delay = delay

    async def render(self, document: KitDocument) -> RenderedDocument:
        await asyncio.sleep(self.delay)
        return await super().render(document)


class FailingRenderer:
    async def render(self, document: KitDocument) -> RenderedDocument:
        raise RenderError("Failed to render kit document")


class FlakyRenderer(ReportLabRenderer):
    """Renders once, then fails."""

    def __init__(self) -> None:
        self.calls = 0

    async def render(self, document: KitDocument) -> RenderedDocument:
        self.calls += 1
        if self.calls > 1:
            raise RenderError("Failed to render kit document")
        return await super().render(document)


class HeldJobs(BackgroundJobs):
    """Job runner that never starts its jobs."""

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> Any:
        coro.close()
        return None


def build_pipeline(
    repos: Repositories,
    settings: Settings,
    storage: InMemoryObjectStorage,
    jobs: BackgroundJobs,
    renderer: object | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> ExportPipeline:
    return ExportPipeline(
        repos,
        renderer=renderer or ReportLabRenderer(),  # type: ignore[arg-type]
        storage=storage,
        settings=settings,
        jobs=jobs,
        clock=clock,
    )


@pytest.fixture
def pipeline(
    repos: Repositories, settings: Settings, storage: InMemoryObjectStorage, jobs: BackgroundJobs
) -> ExportPipeline:
    return build_pipeline(repos, settings, storage, jobs)


@pytest.mark.asyncio
async def test_combined_export_renders_and_marks_delivered(
    pipeline: ExportPipeline,
    make_kit: MakeKit,
    make_order: MakeOrder,
    repos: Repositories,
    storage: InMemoryObjectStorage,
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id, status=OrderStatus.paid)

    outcome = await pipeline.request_export(kit.id, ExportKind.combined)

    assert outcome.status == "ready"
    assert outcome.cached is False
    assert outcome.url is not None and outcome.url.endswith(".pdf")
    [key] = list(storage.objects)
    assert key.startswith(f"kits/{kit.id}/combined_")
    assert storage.objects[key][1] == "application/pdf"
    stored = await repos.orders.get(order.id)
    assert stored is not None and stored.status == OrderStatus.delivered


@pytest.mark.asyncio
async def test_second_request_is_served_from_cache(
    pipeline: ExportPipeline,
    make_kit: MakeKit,
    make_order: MakeOrder,
    storage: InMemoryObjectStorage,
) -> None:
    kit = await make_kit()
    await make_order(kit.id, status=OrderStatus.ready, total_cents=12900)

    first = await pipeline.request_export(kit.id, ExportKind.combined)
    second = await pipeline.request_export(kit.id, ExportKind.combined)

    assert second.cached is True
    assert second.url == first.url
    assert len(storage.objects) == 1


@pytest.mark.asyncio
async def test_expired_cache_entry_is_rendered_again(
    repos: Repositories,
    settings: Settings,
    storage: InMemoryObjectStorage,
    jobs: BackgroundJobs,
    make_kit: MakeKit,
    make_order: MakeOrder,
) -> None:
    kit = await make_kit()
    await make_order(kit.id, status=OrderStatus.paid)
    past = utc_now() - timedelta(hours=25)
    await build_pipeline(repos, settings, storage, jobs, clock=lambda: past).request_export(
        kit.id, ExportKind.combined
    )

    outcome = await build_pipeline(repos, settings, storage, jobs).request_export(
        kit.id, ExportKind.combined
    )

    assert outcome.cached is False
    assert len(storage.objects) == 2


@pytest.mark.asyncio
async def test_archive_export_stores_every_slot(
    pipeline: ExportPipeline,
    make_kit: MakeKit,
    make_order: MakeOrder,
    storage: InMemoryObjectStorage,
) -> None:
    kit = await make_kit()
    await make_order(kit.id, status=OrderStatus.paid)

    outcome = await pipeline.request_export(kit.id, ExportKind.archive)

    assert outcome.status == "ready"
    assert outcome.url is not None and outcome.url.endswith(".zip")
    assert [asset.slot for asset in outcome.assets] == list(ARCHIVE_SLOTS)
    assert [asset.file_name for asset in outcome.assets] == list(ARCHIVE_SLOTS.values())
    assert outcome.fallback_slots == []
    assert len(storage.objects) == 1 + len(ARCHIVE_SLOTS)

    cached = await pipeline.request_export(kit.id, ExportKind.archive)
    assert cached.cached is True
    assert [asset.url for asset in cached.assets] == [asset.url for asset in outcome.assets]


@pytest.mark.asyncio
async def test_unpaid_and_review_pending_kits_cannot_export(
    pipeline: ExportPipeline, make_kit: MakeKit, make_order: MakeOrder
) -> None:
    unpaid = await make_kit()
    await make_order(unpaid.id, status=OrderStatus.awaiting_payment)
    in_review = await make_kit()
    await make_order(in_review.id, status=OrderStatus.qa_pending, total_cents=12900)

    with pytest.raises(NotDeliverableError):
        await pipeline.request_export(unpaid.id, ExportKind.combined)
    with pytest.raises(NotDeliverableError):
        await pipeline.request_export(in_review.id, ExportKind.combined)
    with pytest.raises(KitNotFoundError):
        await pipeline.request_export(uuid.uuid4(), ExportKind.combined)


@pytest.mark.asyncio
async def test_export_of_another_users_kit_is_refused(
    pipeline: ExportPipeline,
    make_kit: MakeKit,
    make_order: MakeOrder,
    repos: Repositories,
    storage: InMemoryObjectStorage,
) -> None:
    owner = RequestContext(org_id=uuid.uuid4(), user_id=uuid.uuid4())
    stranger = RequestContext(org_id=uuid.uuid4(), user_id=uuid.uuid4())
    kit = await make_kit(user_id=owner.user_id, org_id=owner.org_id)
    order = await make_order(kit.id, status=OrderStatus.paid)

    with pytest.raises(KitNotFoundError):
        await pipeline.request_export(kit.id, ExportKind.combined, stranger)

    stored = await repos.orders.get(order.id)
    assert stored is not None and stored.status == OrderStatus.paid
    assert storage.objects == {}

    outcome = await pipeline.request_export(kit.id, ExportKind.combined, owner)
    assert outcome.status == "ready"


@pytest.mark.asyncio
async def test_sync_render_failure_propagates(
    repos: Repositories,
    settings: Settings,
    storage: InMemoryObjectStorage,
    jobs: BackgroundJobs,
    make_kit: MakeKit,
    make_order: MakeOrder,
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id, status=OrderStatus.paid)
    pipeline = build_pipeline(repos, settings, storage, jobs, renderer=FailingRenderer())

    with pytest.raises(RenderError):
        await pipeline.request_export(kit.id, ExportKind.combined)

    assert storage.objects == {}
    stored = await repos.orders.get(order.id)
    assert stored is not None and stored.status == OrderStatus.paid


@pytest.mark.asyncio
async def test_slow_render_falls_back_to_background_job(
    repos: Repositories,
    settings: Settings,
    storage: InMemoryObjectStorage,
    jobs: BackgroundJobs,
    make_kit: MakeKit,
    make_order: MakeOrder,
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id, status=OrderStatus.paid)
    fast_timeout = settings.model_copy(update={"export_sync_timeout_seconds": 0.01})
    pipeline = build_pipeline(repos, fast_timeout, storage, jobs, renderer=SlowRenderer(0.2))

    outcome = await pipeline.request_export(kit.id, ExportKind.combined)

    assert outcome.status == "processing"
    assert outcome.job_id is not None
    assert outcome.check_url == f"/jobs/{outcome.job_id}/status"

    await jobs.drain()

    view = await pipeline.get_job_status(outcome.job_id)
    assert view.status == ExportJobStatus.completed
    assert view.progress == 100
    assert view.url is not None and view.url.endswith(".pdf")
    assert view.error is None
    stored = await repos.orders.get(order.id)
    assert stored is not None and stored.status == OrderStatus.delivered

    cached = await pipeline.request_export(kit.id, ExportKind.combined)
    assert cached.cached is True
    assert cached.url == view.url


@pytest.mark.asyncio
async def test_oversized_artifact_is_produced_in_background(
    repos: Repositories,
    settings: Settings,
    storage: InMemoryObjectStorage,
    jobs: BackgroundJobs,
    make_kit: MakeKit,
    make_order: MakeOrder,
) -> None:
    kit = await make_kit()
    await make_order(kit.id, status=OrderStatus.paid)
    tiny = settings.model_copy(update={"export_sync_max_bytes": 10})
    pipeline = build_pipeline(repos, tiny, storage, jobs)

    outcome = await pipeline.request_export(kit.id, ExportKind.archive)

    assert outcome.status == "processing"
    assert storage.objects == {}

    await jobs.drain()

    assert outcome.job_id is not None
    view = await pipeline.get_job_status(outcome.job_id)
    assert view.status == ExportJobStatus.completed
    assert view.url is not None and view.url.endswith(".zip")


@pytest.mark.asyncio
async def test_failed_background_job_reports_error(
    repos: Repositories,
    settings: Settings,
    storage: InMemoryObjectStorage,
    jobs: BackgroundJobs,
    make_kit: MakeKit,
    make_order: MakeOrder,
) -> None:
    kit = await make_kit()
    order = await make_order(kit.id, status=OrderStatus.paid)
    tiny = settings.model_copy(update={"export_sync_max_bytes": 10})
    pipeline = build_pipeline(repos, tiny, storage, jobs, renderer=FlakyRenderer())

    outcome = await pipeline.request_export(kit.id, ExportKind.combined)
    await jobs.drain()

    assert outcome.job_id is not None
    view = await pipeline.get_job_status(outcome.job_id)
    assert view.status == ExportJobStatus.failed
    assert view.error == "Failed to render kit document"
    assert view.url is None
    assert storage.objects == {}
    stored = await repos.orders.get(order.id)
    assert stored is not None and stored.status == OrderStatus.paid


@pytest.mark.asyncio
async def test_stale_job_is_failed_on_poll(
    repos: Repositories,
    settings: Settings,
    storage: InMemoryObjectStorage,
    make_kit: MakeKit,
    make_order: MakeOrder,
) -> None:
    kit = await make_kit()
    await make_order(kit.id, status=OrderStatus.paid)
    tiny = settings.model_copy(update={"export_sync_max_bytes": 10})
    outcome = await build_pipeline(repos, tiny, storage, HeldJobs()).request_export(
        kit.id, ExportKind.combined
    )
    assert outcome.job_id is not None

    later = utc_now() + timedelta(seconds=settings.export_job_timeout_seconds + 60)
    poller = build_pipeline(repos, settings, storage, HeldJobs(), clock=lambda: later)

    view = await poller.get_job_status(outcome.job_id)

    assert view.status == ExportJobStatus.failed
    assert view.error == "Export job timed out"


@pytest.mark.asyncio
async def test_fresh_queued_job_is_left_alone(
    repos: Repositories,
    settings: Settings,
    storage: InMemoryObjectStorage,
    make_kit: MakeKit,
    make_order: MakeOrder,
) -> None:
    kit = await make_kit()
    await make_order(kit.id, status=OrderStatus.paid)
    tiny = settings.model_copy(update={"export_sync_max_bytes": 10})
    pipeline = build_pipeline(repos, tiny, storage, HeldJobs())
    outcome = await pipeline.request_export(kit.id, ExportKind.combined)
    assert outcome.job_id is not None

    view = await pipeline.get_job_status(outcome.job_id)

    assert view.status == ExportJobStatus.queued
    assert view.progress == 0


@pytest.mark.asyncio
async def test_unknown_job_raises(pipeline: ExportPipeline) -> None:
    with pytest.raises(ExportJobNotFoundError):
        await pipeline.get_job_status(uuid.uuid4())
