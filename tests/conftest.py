"""Shared pytest fixtures for all test suites."""

import dataclasses
import hashlib
import hmac
import json
import os
import time
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from hiringkit.app.api.dependencies import (
    get_background_jobs,
    get_email_notifier,
    get_gateway,
    get_generator,
    get_rate_limiter,
    get_renderer,
    get_repositories,
    get_repository_scope,
    get_storage,
)
from hiringkit.app.config import Settings, get_settings
from hiringkit.app.db.inmemory import InMemoryRateLimiter, build_inmemory_repositories
from hiringkit.app.db.models import Base
from hiringkit.app.db.repositories import KitRecord, OrderRecord, Repositories
from hiringkit.app.errors import NotificationError
from hiringkit.app.export.jobs import BackgroundJobs
from hiringkit.app.export.render import ReportLabRenderer
from hiringkit.app.export.storage import InMemoryObjectStorage
from hiringkit.app.generation.client import DeterministicStubGenerator
from hiringkit.app.main import app
from hiringkit.app.models.common import KitStatus, OrderStatus, PlanTier, utc_now
from hiringkit.app.models.intake import IntakeData, StyleSettings
from hiringkit.app.notifications.email import ApprovalNotification, OrderConfirmation
from hiringkit.app.payments.gateway import CheckoutSession, StripeGateway
from hiringkit.app.services.orders import OrderStateMachine

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-0000000000ad")
ADMIN_ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")


class FakeGateway(StripeGateway):
    """Stripe gateway with real signature checks and local checkout sessions."""

    def __init__(self, webhook_secret: str = WEBHOOK_SECRET) -> None:
        super().__init__(secret_key="sk_test_unused", webhook_secret=webhook_secret)
        self.sessions: list[dict[str, Any]] = []

    async def create_checkout_session(
        self,
        *,
        kit_id: uuid.UUID,
        plan_tier: PlanTier,
        amount_cents: int,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append(
            {
                "id": session_id,
                "kit_id": kit_id,
                "plan_tier": plan_tier,
                "amount_cents": amount_cents,
                "customer_email": customer_email,
            }
        )
        return CheckoutSession(id=session_id, url=f"https://checkout.test/{session_id}")


class RecordingNotifier:
    """Notifier that records messages; can be told to fail."""

    def __init__(self) -> None:
        self.confirmations: list[OrderConfirmation] = []
        self.approvals: list[ApprovalNotification] = []
        self.fail = False

    async def send_order_confirmation(self, message: OrderConfirmation) -> None:
        if self.fail:
            raise NotificationError("Email delivery failed: ConnectError")
        self.confirmations.append(message)

    async def send_approval_notification(self, message: ApprovalNotification) -> None:
        if self.fail:
            raise NotificationError("Email delivery failed: ConnectError")
        self.approvals.append(message)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_event(
    event_id: str,
    session_id: str,
    *,
    event_type: str = "checkout.session.completed",
    payment_status: str = "paid",
    email: str | None = "buyer@example.com",
) -> bytes:
    """Serialized checkout session event."""
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": int(time.time()),
            "livemode": False,
            "data": {
                "object": {
                    "id": session_id,
                    "object": "checkout.session",
                    "payment_status": payment_status,
                    "customer_details": {"email": email},
                }
            },
        }
    ).encode()


@pytest.fixture
def sign() -> Callable[..., str]:
    return sign_payload


@pytest.fixture
def stripe_event() -> Callable[..., bytes]:
    return checkout_event


@pytest.fixture
def settings(tmp_path: Any) -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        stripe_secret_key=SecretStr("sk_test_unused"),
        stripe_webhook_secret=SecretStr(WEBHOOK_SECRET),
        admin_user_ids=[ADMIN_ID],
        export_storage_dir=str(tmp_path / "exports"),
        app_url="https://kits.test",
    )


@pytest.fixture
def repos() -> Repositories:
    return build_inmemory_repositories()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture
def jobs() -> BackgroundJobs:
    return BackgroundJobs()


@pytest.fixture
def machine(
    repos: Repositories, notifier: RecordingNotifier, settings: Settings, gateway: FakeGateway
) -> OrderStateMachine:
    return OrderStateMachine(repos, notifier=notifier, settings=settings, gateway=gateway)


@pytest.fixture
def make_kit(repos: Repositories) -> Callable[..., Awaitable[KitRecord]]:
    """Factory persisting a generated kit with stub content."""

    async def _make(**overrides: Any) -> KitRecord:
        intake = IntakeData(
            role_title="Program Manager",
            organization="Acme Foundation",
            mission="Deliver community programs that measurably improve lives.",
        )
        content = await DeterministicStubGenerator().generate_kit(
            intake=intake, style=StyleSettings()
        )
        now = utc_now()
        kit = KitRecord(
            id=uuid.uuid4(),
            title="Program Manager Hiring Kit",
            status=KitStatus.generated,
            intake=intake.model_dump(mode="json"),
            generated_content=content.model_dump(mode="json"),
            edited_content={},
            regen_counts={},
            requires_review=False,
            qa_notes=None,
            user_id=None,
            org_id=None,
            edited_at=None,
            created_at=now,
            updated_at=now,
        )
        return await repos.kits.create(dataclasses.replace(kit, **overrides))

    return _make


@pytest.fixture
def make_order(repos: Repositories) -> Callable[..., Awaitable[OrderRecord]]:
    """Factory persisting an order for a kit."""

    async def _make(
        kit_id: uuid.UUID,
        status: OrderStatus = OrderStatus.awaiting_payment,
        total_cents: int = 4900,
        **overrides: Any,
    ) -> OrderRecord:
        now = utc_now()
        order = OrderRecord(
            id=uuid.uuid4(),
            kit_id=kit_id,
            status=status,
            total_cents=total_cents,
            stripe_session_id=f"cs_test_{uuid.uuid4().hex[:12]}",
            customer_email="buyer@example.com",
            user_id=None,
            org_id=None,
            created_at=now,
            updated_at=now,
        )
        return await repos.orders.create(dataclasses.replace(order, **overrides))

    return _make


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_ORG_ID}:{ADMIN_ID}"}


@pytest.fixture
def client(
    repos: Repositories,
    settings: Settings,
    gateway: FakeGateway,
    notifier: RecordingNotifier,
    storage: InMemoryObjectStorage,
    jobs: BackgroundJobs,
) -> Iterator[TestClient]:
    """API client over in-memory repositories and fake collaborators."""
    limiter = InMemoryRateLimiter(window_seconds=settings.rate_limit_window_seconds)
    app.dependency_overrides.update(
        {
            get_settings: lambda: settings,
            get_repositories: lambda: repos,
            get_repository_scope: lambda: None,
            get_gateway: lambda: gateway,
            get_email_notifier: lambda: notifier,
            get_generator: lambda: DeterministicStubGenerator(),
            get_storage: lambda: storage,
            get_renderer: lambda: ReportLabRenderer(),
            get_rate_limiter: lambda: limiter,
            get_background_jobs: lambda: jobs,
        }
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_session(sqlite_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(sqlite_engine, expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
