"""In-memory implementations of repository interfaces."""

import dataclasses
import threading
import uuid
from collections.abc import Collection
from datetime import datetime, timedelta
from typing import Any

from hiringkit.app.db.repositories import (
    AuditLogEntry,
    ExportJobRecord,
    ExportRecord,
    KitRecord,
    OrderRecord,
    Repositories,
    RetryAfter,
    WebhookBeginOutcome,
    WebhookEventRecord,
)
from hiringkit.app.models.common import (
    ExportKind,
    OrderStatus,
    WebhookProcessingStatus,
    utc_now,
)


class InMemoryKitRepository:
    """In-memory implementation of KitRepository."""

    def __init__(self) -> None:
        self._kits: dict[uuid.UUID, KitRecord] = {}

    async def create(self, kit: KitRecord) -> KitRecord:
        """Persist a new kit."""
        self._kits[kit.id] = kit
        return kit

    async def get(self, kit_id: uuid.UUID) -> KitRecord | None:
        """Get kit by ID."""
        return self._kits.get(kit_id)

    async def update(
        self,
        kit_id: uuid.UUID,
        *,
        expected_requires_review: bool | None = None,
        **changes: Any,
    ) -> KitRecord | None:
        """Update kit fields, optionally guarded on requires_review."""
        record = self._kits.get(kit_id)
        if record is None:
            return None

        if (
            expected_requires_review is not None
            and record.requires_review != expected_requires_review
        ):
            return None

        changes.setdefault("updated_at", utc_now())
        updated = dataclasses.replace(record, **changes)
        self._kits[kit_id] = updated
        return updated


class InMemoryOrderRepository:
    """In-memory implementation of OrderRepository."""

    def __init__(self) -> None:
        self._orders: dict[uuid.UUID, OrderRecord] = {}

    async def create(self, order: OrderRecord) -> OrderRecord:
        """Persist a new order."""
        self._orders[order.id] = order
        return order

    async def get(self, order_id: uuid.UUID) -> OrderRecord | None:
        """Get order by ID."""
        return self._orders.get(order_id)

    async def get_by_session(self, stripe_session_id: str) -> OrderRecord | None:
        """Get order by payment session ID."""
        for order in self._orders.values():
            if order.stripe_session_id == stripe_session_id:
                return order
        return None

    async def list_for_kit(self, kit_id: uuid.UUID) -> list[OrderRecord]:
        """List orders for a kit, newest first."""
        orders = [order for order in self._orders.values() if order.kit_id == kit_id]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    async def list_orders(
        self, *, status: OrderStatus | None = None, offset: int = 0, limit: int = 20
    ) -> tuple[list[OrderRecord], int]:
        """List orders newest first."""
        orders = [
            order for order in self._orders.values() if status is None or order.status == status
        ]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders[offset : offset + limit], len(orders)

    async def transition(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        *,
        expected: Collection[OrderStatus],
        **changes: Any,
    ) -> OrderRecord | None:
        """Conditionally move an order to a new status."""
        record = self._orders.get(order_id)
        if record is None or record.status not in expected:
            return None

        changes.setdefault("updated_at", utc_now())
        updated = dataclasses.replace(record, status=new_status, **changes)
        self._orders[order_id] = updated
        return updated


class InMemoryWebhookEventStore:
    """In-memory implementation of WebhookEventStore."""

    def __init__(self) -> None:
        self._events: dict[str, WebhookEventRecord] = {}

    async def begin(
        self, event_id: str, event_type: str, metadata: dict[str, Any]
    ) -> WebhookBeginOutcome:
        """Claim an event id for processing."""
        now = utc_now()
        existing = self._events.get(event_id)

        if existing is not None:
            if existing.status == WebhookProcessingStatus.completed:
                return WebhookBeginOutcome.duplicate
            if existing.status == WebhookProcessingStatus.processing:
                return WebhookBeginOutcome.in_progress

        # New event, or a failed attempt being retried
        self._events[event_id] = WebhookEventRecord(
            event_id=event_id,
            event_type=event_type,
            status=WebhookProcessingStatus.processing,
            metadata=metadata,
            error_message=None,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            processed_at=None,
        )
        return WebhookBeginOutcome.started

    async def complete(self, event_id: str) -> None:
        """Mark event processed."""
        record = self._events.get(event_id)
        if record is None:
            return
        now = utc_now()
        self._events[event_id] = dataclasses.replace(
            record,
            status=WebhookProcessingStatus.completed,
            error_message=None,
            updated_at=now,
            processed_at=now,
        )

    async def fail(self, event_id: str, error_message: str) -> None:
        """Mark event failed."""
        record = self._events.get(event_id)
        if record is None:
            return
        self._events[event_id] = dataclasses.replace(
            record,
            status=WebhookProcessingStatus.failed,
            error_message=error_message,
            updated_at=utc_now(),
        )

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        """Get event record."""
        return self._events.get(event_id)


class InMemoryExportRepository:
    """In-memory implementation of ExportRepository."""

    def __init__(self) -> None:
        self._exports: list[ExportRecord] = []

    async def create(self, record: ExportRecord) -> ExportRecord:
        """Persist an export record with its assets."""
        self._exports.append(record)
        return record

    async def find_fresh(
        self, kit_id: uuid.UUID, kind: ExportKind, since: datetime
    ) -> ExportRecord | None:
        """Newest export for a kit and kind created at or after ``since``."""
        candidates = [
            record
            for record in self._exports
            if record.kit_id == kit_id and record.kind == kind and record.created_at >= since
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.created_at)


class InMemoryExportJobRepository:
    """In-memory implementation of ExportJobRepository."""

    def __init__(self) -> None:
        self._jobs: dict[uuid.UUID, ExportJobRecord] = {}

    async def create(self, job: ExportJobRecord) -> ExportJobRecord:
        """Persist a new job."""
        self._jobs[job.id] = job
        return job

    async def get(self, job_id: uuid.UUID) -> ExportJobRecord | None:
        """Get job by ID."""
        return self._jobs.get(job_id)

    async def update(self, job_id: uuid.UUID, **changes: Any) -> ExportJobRecord | None:
        """Update job fields."""
        record = self._jobs.get(job_id)
        if record is None:
            return None
        changes.setdefault("updated_at", utc_now())
        updated = dataclasses.replace(record, **changes)
        self._jobs[job_id] = updated
        return updated


class InMemoryAuditLogRepository:
    """In-memory implementation of AuditLogRepository."""

    def __init__(self) -> None:
        self._entries: list[AuditLogEntry] = []

    async def append(self, entry: AuditLogEntry) -> None:
        """Append an entry."""
        self._entries.append(entry)

    async def list_for_order(self, order_id: uuid.UUID) -> list[AuditLogEntry]:
        """Entries for an order, newest first."""
        return [entry for entry in reversed(self._entries) if entry.order_id == order_id]

    async def list_for_kit(self, kit_id: uuid.UUID) -> list[AuditLogEntry]:
        """Entries for a kit, newest first."""
        return [entry for entry in reversed(self._entries) if entry.kit_id == kit_id]


def build_inmemory_repositories() -> Repositories:
    """Create a fresh set of in-memory repositories."""
    return Repositories(
        kits=InMemoryKitRepository(),
        orders=InMemoryOrderRepository(),
        webhook_events=InMemoryWebhookEventStore(),
        exports=InMemoryExportRepository(),
        export_jobs=InMemoryExportJobRepository(),
        audit_log=InMemoryAuditLogRepository(),
    )


class InMemoryRateLimiter:
    """In-memory implementation of RateLimiter using fixed window."""

    def __init__(self, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            window_seconds: Window size in seconds (default 60)
        """
        self._window_seconds = window_seconds
        self._windows: dict[str, tuple[datetime, int]] = {}
        self._lock = threading.Lock()

    def check_quota(self, key: str, now: datetime, max_requests: int) -> RetryAfter | None:
        """Check if quota is available. Safe to call from worker threads."""
        with self._lock:
            return self._check(key, now, max_requests)

    def _check(self, key: str, now: datetime, max_requests: int) -> RetryAfter | None:
        if key not in self._windows:
            self._windows[key] = (now, 1)
            return None

        window_start, count = self._windows[key]
        window_end = window_start + timedelta(seconds=self._window_seconds)

        if now >= window_end:
            self._windows[key] = (now, 1)
            return None

        if count >= max_requests:
            seconds_remaining = int((window_end - now).total_seconds())
            return RetryAfter(seconds=max(1, seconds_remaining))

        self._windows[key] = (window_start, count + 1)
        return None
