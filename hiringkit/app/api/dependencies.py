"""FastAPI dependencies wiring repositories, collaborators and services."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

import redis
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hiringkit.app.api.auth import get_optional_context
from hiringkit.app.config import Settings, get_settings
from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.engine import get_session, session_scope
from hiringkit.app.db.inmemory import InMemoryRateLimiter
from hiringkit.app.db.repositories import RateLimiter, Repositories
from hiringkit.app.db.sql_repositories import build_sql_repositories
from hiringkit.app.export.jobs import BackgroundJobs, background_jobs
from hiringkit.app.export.pipeline import ExportPipeline, RepositoryScope
from hiringkit.app.export.render import KitRenderer, ReportLabRenderer
from hiringkit.app.export.storage import ObjectStorage, get_object_storage
from hiringkit.app.generation.client import ContentGenerator, get_content_generator
from hiringkit.app.middleware.ratelimit import RateLimitMiddleware, create_default_bucket_map
from hiringkit.app.notifications.email import Notifier, get_notifier
from hiringkit.app.payments.gateway import PaymentGateway, get_payment_gateway
from hiringkit.app.ratelimit import RedisRateLimiter
from hiringkit.app.services.admin import AdminService
from hiringkit.app.services.intake import IntakeService
from hiringkit.app.services.orders import OrderStateMachine
from hiringkit.app.services.regeneration import RegenerationLimiter
from hiringkit.app.services.webhooks import WebhookProcessor


async def get_repositories(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Repositories:
    return build_sql_repositories(session)


@asynccontextmanager
async def sql_repository_scope() -> AsyncIterator[Repositories]:
    """Repositories on a fresh session, for background jobs."""
    async with session_scope() as session:
        yield build_sql_repositories(session)


def get_repository_scope() -> RepositoryScope | None:
    return sql_repository_scope


@lru_cache
def get_gateway() -> PaymentGateway:
    return get_payment_gateway(get_settings())


@lru_cache
def get_email_notifier() -> Notifier:
    return get_notifier(get_settings())


@lru_cache
def get_generator() -> ContentGenerator:
    return get_content_generator(get_settings())


@lru_cache
def get_storage() -> ObjectStorage:
    return get_object_storage(get_settings())


@lru_cache
def get_renderer() -> KitRenderer:
    return ReportLabRenderer()


def get_background_jobs() -> BackgroundJobs:
    return background_jobs


@lru_cache
def get_rate_limiter() -> RateLimiter:
    """Redis limiter when REDIS_URL is configured, in-memory otherwise."""
    settings = get_settings()
    if settings.redis_url:
        client = redis.from_url(settings.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        return RedisRateLimiter(client, window_seconds=settings.rate_limit_window_seconds)
    return InMemoryRateLimiter(window_seconds=settings.rate_limit_window_seconds)


async def enforce_rate_limit(
    request: Request,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Reject the request with 429 once the caller's bucket is exhausted.

    The limiter may block on Redis, so the check runs in a worker thread.
    """
    middleware = RateLimitMiddleware(limiter, create_default_bucket_map(), settings)
    client_ip = request.client.host if request.client else "unknown"
    allowed, retry_after = await asyncio.to_thread(
        middleware.check_rate_limit, request.url.path, ctx, client_ip
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(retry_after)},
        )


def get_order_machine(
    repos: Annotated[Repositories, Depends(get_repositories)],
    gateway: Annotated[PaymentGateway, Depends(get_gateway)],
    notifier: Annotated[Notifier, Depends(get_email_notifier)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> OrderStateMachine:
    return OrderStateMachine(repos, notifier=notifier, settings=settings, gateway=gateway)


def get_webhook_processor(
    repos: Annotated[Repositories, Depends(get_repositories)],
    gateway: Annotated[PaymentGateway, Depends(get_gateway)],
    machine: Annotated[OrderStateMachine, Depends(get_order_machine)],
) -> WebhookProcessor:
    return WebhookProcessor(repos, gateway=gateway, machine=machine)


def get_export_pipeline(
    repos: Annotated[Repositories, Depends(get_repositories)],
    renderer: Annotated[KitRenderer, Depends(get_renderer)],
    storage: Annotated[ObjectStorage, Depends(get_storage)],
    settings: Annotated[Settings, Depends(get_settings)],
    repos_scope: Annotated[RepositoryScope | None, Depends(get_repository_scope)],
    jobs: Annotated[BackgroundJobs, Depends(get_background_jobs)],
) -> ExportPipeline:
    return ExportPipeline(
        repos,
        renderer=renderer,
        storage=storage,
        settings=settings,
        repos_scope=repos_scope,
        jobs=jobs,
    )


def get_intake_service(
    repos: Annotated[Repositories, Depends(get_repositories)],
    generator: Annotated[ContentGenerator, Depends(get_generator)],
) -> IntakeService:
    return IntakeService(repos, generator=generator)


def get_regeneration_limiter(
    repos: Annotated[Repositories, Depends(get_repositories)],
    generator: Annotated[ContentGenerator, Depends(get_generator)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> RegenerationLimiter:
    return RegenerationLimiter(repos, generator=generator, settings=settings)


def get_admin_service(
    repos: Annotated[Repositories, Depends(get_repositories)],
    machine: Annotated[OrderStateMachine, Depends(get_order_machine)],
    notifier: Annotated[Notifier, Depends(get_email_notifier)],
) -> AdminService:
    return AdminService(repos, machine=machine, notifier=notifier)
