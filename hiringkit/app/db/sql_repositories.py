"""SQL implementations of repository interfaces.

Repositories flush but never commit; ``Repositories.commit`` owns the
transaction boundary so multi-step operations commit once.
"""

import uuid
from collections.abc import Collection
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hiringkit.app.db.models import AuditLog, Export, ExportAsset, ExportJob, Kit, Order, WebhookEvent
from hiringkit.app.db.repositories import (
    AuditLogEntry,
    ExportAssetRecord,
    ExportJobRecord,
    ExportRecord,
    KitRecord,
    OrderRecord,
    Repositories,
    WebhookBeginOutcome,
    WebhookEventRecord,
)
from hiringkit.app.models.common import (
    ExportJobStatus,
    ExportKind,
    KitStatus,
    OrderStatus,
    WebhookProcessingStatus,
    utc_now,
)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite returns naive datetimes; everything we store is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _column_values(changes: dict[str, Any]) -> dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in changes.items()}


def _to_kit_record(kit: Kit) -> KitRecord:
    return KitRecord(
        id=kit.id,
        title=kit.title,
        status=KitStatus(kit.status),
        intake=kit.intake,
        generated_content=kit.generated_content,
        edited_content=kit.edited_content or {},
        regen_counts=kit.regen_counts or {},
        requires_review=kit.requires_review,
        qa_notes=kit.qa_notes,
        user_id=kit.user_id,
        org_id=kit.org_id,
        edited_at=_aware(kit.edited_at),
        created_at=_aware(kit.created_at),  # type: ignore[arg-type]
        updated_at=_aware(kit.updated_at),  # type: ignore[arg-type]
    )


def _to_order_record(order: Order) -> OrderRecord:
    return OrderRecord(
        id=order.id,
        kit_id=order.kit_id,
        status=OrderStatus(order.status),
        total_cents=order.total_cents,
        stripe_session_id=order.stripe_session_id,
        customer_email=order.customer_email,
        user_id=order.user_id,
        org_id=order.org_id,
        created_at=_aware(order.created_at),  # type: ignore[arg-type]
        updated_at=_aware(order.updated_at),  # type: ignore[arg-type]
    )


class SqlKitRepository:
    """SQL implementation of KitRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, kit: KitRecord) -> KitRecord:
        """Persist a new kit."""
        self._session.add(
            Kit(
                id=kit.id,
                user_id=kit.user_id,
                org_id=kit.org_id,
                title=kit.title,
                status=kit.status.value,
                intake=kit.intake,
                generated_content=kit.generated_content,
                edited_content=kit.edited_content,
                regen_counts=kit.regen_counts,
                requires_review=kit.requires_review,
                qa_notes=kit.qa_notes,
                edited_at=kit.edited_at,
                created_at=kit.created_at,
                updated_at=kit.updated_at,
            )
        )
        await self._session.flush()
        return kit

    async def get(self, kit_id: uuid.UUID) -> KitRecord | None:
        """Get kit by ID."""
        kit = await self._session.get(Kit, kit_id, populate_existing=True)
        if kit is None:
            return None
        return _to_kit_record(kit)

    async def update(
        self,
        kit_id: uuid.UUID,
        *,
        expected_requires_review: bool | None = None,
        **changes: Any,
    ) -> KitRecord | None:
        """Update kit fields, optionally guarded on requires_review."""
        changes.setdefault("updated_at", utc_now())
        stmt = update(Kit).where(Kit.id == kit_id)
        if expected_requires_review is not None:
            stmt = stmt.where(Kit.requires_review == expected_requires_review)

        result = await self._session.execute(
            stmt.values(**_column_values(changes)).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            return None

        await self._session.flush()
        return await self.get(kit_id)


class SqlOrderRepository:
    """SQL implementation of OrderRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, order: OrderRecord) -> OrderRecord:
        """Persist a new order."""
        self._session.add(
            Order(
                id=order.id,
                kit_id=order.kit_id,
                user_id=order.user_id,
                org_id=order.org_id,
                status=order.status.value,
                total_cents=order.total_cents,
                stripe_session_id=order.stripe_session_id,
                customer_email=order.customer_email,
                created_at=order.created_at,
                updated_at=order.updated_at,
            )
        )
        await self._session.flush()
        return order

    async def get(self, order_id: uuid.UUID) -> OrderRecord | None:
        """Get order by ID."""
        order = await self._session.get(Order, order_id, populate_existing=True)
        if order is None:
            return None
        return _to_order_record(order)

    async def get_by_session(self, stripe_session_id: str) -> OrderRecord | None:
        """Get order by payment session ID."""
        result = await self._session.execute(
            select(Order)
            .where(Order.stripe_session_id == stripe_session_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            return None
        return _to_order_record(order)

    async def list_for_kit(self, kit_id: uuid.UUID) -> list[OrderRecord]:
        """List orders for a kit, newest first."""
        result = await self._session.execute(
            select(Order)
            .where(Order.kit_id == kit_id)
            .order_by(Order.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return [_to_order_record(order) for order in result.scalars().all()]

    async def list_orders(
        self, *, status: OrderStatus | None = None, offset: int = 0, limit: int = 20
    ) -> tuple[list[OrderRecord], int]:
        """List orders newest first."""
        query = select(Order)
        count_query = select(func.count()).select_from(Order)
        if status is not None:
            query = query.where(Order.status == status.value)
            count_query = count_query.where(Order.status == status.value)

        total = (await self._session.execute(count_query)).scalar_one()
        result = await self._session.execute(
            query.order_by(Order.created_at.desc()).offset(offset).limit(limit)
        )
        return [_to_order_record(order) for order in result.scalars().all()], total

    async def transition(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        *,
        expected: Collection[OrderStatus],
        **changes: Any,
    ) -> OrderRecord | None:
        """Conditionally move an order to a new status in a single UPDATE."""
        changes.setdefault("updated_at", utc_now())
        result = await self._session.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status.in_([status.value for status in expected]))
            .values(status=new_status.value, **_column_values(changes))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            return None

        await self._session.flush()
        return await self.get(order_id)


class SqlWebhookEventStore:
    """SQL implementation of WebhookEventStore.

    The event id is the primary key, so two deliveries racing to insert the
    same id cannot both claim it.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def begin(
        self, event_id: str, event_type: str, metadata: dict[str, Any]
    ) -> WebhookBeginOutcome:
        """Claim an event id for processing."""
        now = utc_now()
        existing = await self._session.get(WebhookEvent, event_id, populate_existing=True)

        if existing is None:
            self._session.add(
                WebhookEvent(
                    event_id=event_id,
                    event_type=event_type,
                    processing_status=WebhookProcessingStatus.processing.value,
                    metadata_=metadata,
                    created_at=now,
                    updated_at=now,
                )
            )
            try:
                await self._session.flush()
                return WebhookBeginOutcome.started
            except IntegrityError:
                # Lost the insert race; the other delivery owns the id
                await self._session.rollback()
                existing = await self._session.get(WebhookEvent, event_id, populate_existing=True)
                if existing is None:
                    raise

        if existing.processing_status == WebhookProcessingStatus.completed.value:
            return WebhookBeginOutcome.duplicate
        if existing.processing_status == WebhookProcessingStatus.processing.value:
            return WebhookBeginOutcome.in_progress

        # Failed attempt: re-claim only if nobody else re-claimed it first
        result = await self._session.execute(
            update(WebhookEvent)
            .where(WebhookEvent.event_id == event_id)
            .where(WebhookEvent.processing_status == WebhookProcessingStatus.failed.value)
            .values(
                processing_status=WebhookProcessingStatus.processing.value,
                error_message=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:  # type: ignore[attr-defined]
            return WebhookBeginOutcome.started
        return WebhookBeginOutcome.in_progress

    async def complete(self, event_id: str) -> None:
        """Mark event processed."""
        now = utc_now()
        await self._session.execute(
            update(WebhookEvent)
            .where(WebhookEvent.event_id == event_id)
            .values(
                processing_status=WebhookProcessingStatus.completed.value,
                error_message=None,
                updated_at=now,
                processed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.flush()

    async def fail(self, event_id: str, error_message: str) -> None:
        """Mark event failed."""
        await self._session.execute(
            update(WebhookEvent)
            .where(WebhookEvent.event_id == event_id)
            .values(
                processing_status=WebhookProcessingStatus.failed.value,
                error_message=error_message[:1000],
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.flush()

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        """Get event record."""
        event = await self._session.get(WebhookEvent, event_id, populate_existing=True)
        if event is None:
            return None
        return WebhookEventRecord(
            event_id=event.event_id,
            event_type=event.event_type,
            status=WebhookProcessingStatus(event.processing_status),
            metadata=event.metadata_ or {},
            error_message=event.error_message,
            created_at=_aware(event.created_at),  # type: ignore[arg-type]
            updated_at=_aware(event.updated_at),  # type: ignore[arg-type]
            processed_at=_aware(event.processed_at),
        )


class SqlExportRepository:
    """SQL implementation of ExportRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, record: ExportRecord) -> ExportRecord:
        """Persist an export record with its assets."""
        export = Export(
            id=record.id,
            kit_id=record.kit_id,
            kind=record.kind.value,
            url=record.url,
            storage_key=record.storage_key,
            size_bytes=record.size_bytes,
            fallback_slots=list(record.fallback_slots),
            created_at=record.created_at,
        )
        export.assets = [
            ExportAsset(
                position=position,
                slot=asset.slot,
                file_name=asset.file_name,
                url=asset.url,
                storage_key=asset.storage_key,
            )
            for position, asset in enumerate(record.assets)
        ]
        self._session.add(export)
        await self._session.flush()
        return record

    async def find_fresh(
        self, kit_id: uuid.UUID, kind: ExportKind, since: datetime
    ) -> ExportRecord | None:
        """Newest export for a kit and kind created at or after ``since``."""
        result = await self._session.execute(
            select(Export)
            .where(Export.kit_id == kit_id)
            .where(Export.kind == kind.value)
            .where(Export.created_at >= since)
            .order_by(Export.created_at.desc())
            .limit(1)
        )
        export = result.scalar_one_or_none()
        if export is None:
            return None

        return ExportRecord(
            id=export.id,
            kit_id=export.kit_id,
            kind=ExportKind(export.kind),
            url=export.url,
            storage_key=export.storage_key,
            size_bytes=export.size_bytes,
            created_at=_aware(export.created_at),  # type: ignore[arg-type]
            fallback_slots=list(export.fallback_slots or []),
            assets=[
                ExportAssetRecord(
                    slot=asset.slot,
                    file_name=asset.file_name,
                    url=asset.url,
                    storage_key=asset.storage_key,
                )
                for asset in export.assets
            ],
        )


class SqlExportJobRepository:
    """SQL implementation of ExportJobRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, job: ExportJobRecord) -> ExportJobRecord:
        """Persist a new job."""
        self._session.add(
            ExportJob(
                id=job.id,
                kit_id=job.kit_id,
                kind=job.kind.value,
                status=job.status.value,
                progress=job.progress,
                result_url=job.result_url,
                error_message=job.error_message,
                created_at=job.created_at,
                updated_at=job.updated_at,
                completed_at=job.completed_at,
            )
        )
        await self._session.flush()
        return job

    async def get(self, job_id: uuid.UUID) -> ExportJobRecord | None:
        """Get job by ID."""
        job = await self._session.get(ExportJob, job_id, populate_existing=True)
        if job is None:
            return None
        return ExportJobRecord(
            id=job.id,
            kit_id=job.kit_id,
            kind=ExportKind(job.kind),
            status=ExportJobStatus(job.status),
            progress=job.progress,
            result_url=job.result_url,
            error_message=job.error_message,
            created_at=_aware(job.created_at),  # type: ignore[arg-type]
            updated_at=_aware(job.updated_at),  # type: ignore[arg-type]
            completed_at=_aware(job.completed_at),
        )

    async def update(self, job_id: uuid.UUID, **changes: Any) -> ExportJobRecord | None:
        """Update job fields."""
        changes.setdefault("updated_at", utc_now())
        result = await self._session.execute(
            update(ExportJob)
            .where(ExportJob.id == job_id)
            .values(**_column_values(changes))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            return None
        await self._session.flush()
        return await self.get(job_id)


class SqlAuditLogRepository:
    """SQL implementation of AuditLogRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: AuditLogEntry) -> None:
        """Append an entry."""
        self._session.add(
            AuditLog(
                id=entry.id,
                order_id=entry.order_id,
                kit_id=entry.kit_id,
                actor=entry.actor,
                action=entry.action,
                metadata_=entry.metadata,
                created_at=entry.created_at,
            )
        )
        await self._session.flush()

    async def list_for_order(self, order_id: uuid.UUID) -> list[AuditLogEntry]:
        """Entries for an order, newest first."""
        return await self._list(AuditLog.order_id == order_id)

    async def list_for_kit(self, kit_id: uuid.UUID) -> list[AuditLogEntry]:
        """Entries for a kit, newest first."""
        return await self._list(AuditLog.kit_id == kit_id)

    async def _list(self, criterion: Any) -> list[AuditLogEntry]:
        result = await self._session.execute(
            select(AuditLog).where(criterion).order_by(AuditLog.created_at.desc())
        )
        return [
            AuditLogEntry(
                id=row.id,
                action=row.action,
                actor=row.actor,
                order_id=row.order_id,
                kit_id=row.kit_id,
                metadata=row.metadata_ or {},
                created_at=_aware(row.created_at),  # type: ignore[arg-type]
            )
            for row in result.scalars().all()
        ]


def build_sql_repositories(session: AsyncSession) -> Repositories:
    """Create SQL repositories sharing one session (one unit of work)."""
    return Repositories(
        kits=SqlKitRepository(session),
        orders=SqlOrderRepository(session),
        webhook_events=SqlWebhookEventStore(session),
        exports=SqlExportRepository(session),
        export_jobs=SqlExportJobRepository(session),
        audit_log=SqlAuditLogRepository(session),
        session=session,
    )
