"""Repository protocol interfaces for data access."""

from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from hiringkit.app.models.common import (
    ExportJobStatus,
    ExportKind,
    KitStatus,
    OrderStatus,
    WebhookProcessingStatus,
)
from hiringkit.app.models.content import ContentOverlay, KitContent
from hiringkit.app.models.intake import IntakeData


@dataclass
class KitRecord:
    """Kit data record."""

    id: UUID
    title: str
    status: KitStatus
    intake: dict[str, Any]
    generated_content: dict[str, Any] | None
    edited_content: dict[str, Any]
    regen_counts: dict[str, int]
    requires_review: bool
    qa_notes: str | None
    user_id: UUID | None
    org_id: UUID | None
    edited_at: datetime | None
    created_at: datetime
    updated_at: datetime

    def intake_data(self) -> IntakeData:
        return IntakeData.model_validate(self.intake)

    def content(self) -> KitContent | None:
        if self.generated_content is None:
            return None
        return KitContent.model_validate(self.generated_content)

    def overlay(self) -> ContentOverlay:
        return ContentOverlay.model_validate(self.edited_content or {})


@dataclass
class OrderRecord:
    """Order data record."""

    id: UUID
    kit_id: UUID
    status: OrderStatus
    total_cents: int
    stripe_session_id: str | None
    customer_email: str | None
    user_id: UUID | None
    org_id: UUID | None
    created_at: datetime
    updated_at: datetime


class WebhookBeginOutcome(str, Enum):
    """Result of claiming a webhook event id for processing."""

    started = "started"
    duplicate = "duplicate"
    in_progress = "in_progress"


@dataclass
class WebhookEventRecord:
    """Received payment webhook event."""

    event_id: str
    event_type: str
    status: WebhookProcessingStatus
    metadata: dict[str, Any]
    error_message: str | None
    created_at: datetime
    updated_at: datetime
    processed_at: datetime | None


@dataclass
class ExportAssetRecord:
    """One per-section file of an archive export."""

    slot: str
    file_name: str
    url: str
    storage_key: str


@dataclass
class ExportRecord:
    """Stored export artifact. Never updated after creation."""

    id: UUID
    kit_id: UUID
    kind: ExportKind
    url: str
    storage_key: str
    size_bytes: int
    created_at: datetime
    fallback_slots: list[str] = field(default_factory=list)
    assets: list[ExportAssetRecord] = field(default_factory=list)


@dataclass
class ExportJobRecord:
    """Asynchronous export job."""

    id: UUID
    kit_id: UUID
    kind: ExportKind
    status: ExportJobStatus
    progress: int
    result_url: str | None
    error_message: str | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None


@dataclass
class AuditLogEntry:
    """Append-only record of an action that touched an order or kit."""

    id: UUID
    action: str
    actor: str
    order_id: UUID | None
    kit_id: UUID | None
    metadata: dict[str, Any]
    created_at: datetime


class KitRepository(Protocol):
    """Repository for kit operations."""

    async def create(self, kit: KitRecord) -> KitRecord:
        """Persist a new kit."""
        ...

    async def get(self, kit_id: UUID) -> KitRecord | None:
        """Get kit by ID, or None if not found."""
        ...

    async def update(
        self,
        kit_id: UUID,
        *,
        expected_requires_review: bool | None = None,
        **changes: Any,
    ) -> KitRecord | None:
        """Update kit fields.

        Args:
            kit_id: Kit ID
            expected_requires_review: When set, only update if the kit's
                ``requires_review`` currently equals this value
            **changes: Field values to write

        Returns:
            Updated record, or None if the kit is missing or the guard failed
        """
        ...


class OrderRepository(Protocol):
    """Repository for order operations."""

    async def create(self, order: OrderRecord) -> OrderRecord:
        """Persist a new order."""
        ...

    async def get(self, order_id: UUID) -> OrderRecord | None:
        """Get order by ID."""
        ...

    async def get_by_session(self, stripe_session_id: str) -> OrderRecord | None:
        """Get order by payment session ID."""
        ...

    async def list_for_kit(self, kit_id: UUID) -> list[OrderRecord]:
        """List orders for a kit, newest first."""
        ...

    async def list_orders(
        self, *, status: OrderStatus | None = None, offset: int = 0, limit: int = 20
    ) -> tuple[list[OrderRecord], int]:
        """List orders newest first.

        Returns:
            Tuple of (page of orders, total matching count)
        """
        ...

    async def transition(
        self,
        order_id: UUID,
        new_status: OrderStatus,
        *,
        expected: Collection[OrderStatus],
        **changes: Any,
    ) -> OrderRecord | None:
        """Conditionally move an order to ``new_status``.

        The write only happens if the current status is one of ``expected``.

        Returns:
            Updated record, or None if the order is missing or the guard failed
        """
        ...


class WebhookEventStore(Protocol):
    """Persisted idempotency store for payment webhook events."""

    async def begin(
        self, event_id: str, event_type: str, metadata: dict[str, Any]
    ) -> WebhookBeginOutcome:
        """Atomically claim an event id for processing.

        A new id, or one whose previous attempt failed, is claimed and marked
        processing. A completed id is a duplicate. A processing id is in progress.
        """
        ...

    async def complete(self, event_id: str) -> None:
        """Mark event processed."""
        ...

    async def fail(self, event_id: str, error_message: str) -> None:
        """Mark event failed with the error that stopped it."""
        ...

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        """Get event record."""
        ...


class ExportRepository(Protocol):
    """Repository for export records and their assets."""

    async def create(self, record: ExportRecord) -> ExportRecord:
        """Persist an export record with its assets."""
        ...

    async def find_fresh(
        self, kit_id: UUID, kind: ExportKind, since: datetime
    ) -> ExportRecord | None:
        """Newest export for a kit and kind created at or after ``since``."""
        ...


class ExportJobRepository(Protocol):
    """Repository for asynchronous export jobs."""

    async def create(self, job: ExportJobRecord) -> ExportJobRecord:
        """Persist a new job."""
        ...

    async def get(self, job_id: UUID) -> ExportJobRecord | None:
        """Get job by ID."""
        ...

    async def update(self, job_id: UUID, **changes: Any) -> ExportJobRecord | None:
        """Update job fields. Returns None if the job is missing."""
        ...


class AuditLogRepository(Protocol):
    """Append-only audit log."""

    async def append(self, entry: AuditLogEntry) -> None:
        """Append an entry."""
        ...

    async def list_for_order(self, order_id: UUID) -> list[AuditLogEntry]:
        """Entries for an order, newest first."""
        ...

    async def list_for_kit(self, kit_id: UUID) -> list[AuditLogEntry]:
        """Entries for a kit, newest first."""
        ...


@dataclass
class Repositories:
    """Unit of work over all repositories.

    SQL repositories only flush; ``commit`` is the transaction boundary.
    In-memory repositories have no session and commit is a no-op.
    """

    kits: KitRepository
    orders: OrderRepository
    webhook_events: WebhookEventStore
    exports: ExportRepository
    export_jobs: ExportJobRepository
    audit_log: AuditLogRepository
    session: AsyncSession | None = None

    async def commit(self) -> None:
        if self.session is not None:
            await self.session.commit()

    async def rollback(self) -> None:
        if self.session is not None:
            await self.session.rollback()


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    def check_quota(self, key: str, now: datetime, max_requests: int) -> RetryAfter | None:
        """Check if quota is available.

        Args:
            key: Rate limit key
            now: Current timestamp
            max_requests: Quota for this key's window

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...
