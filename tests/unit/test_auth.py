"""Unit tests for auth dependencies."""

import uuid

import pytest
from fastapi import HTTPException

from hiringkit.app.api.auth import get_current_context, get_optional_context, require_admin
from hiringkit.app.config import Settings

ADMIN = uuid.uuid4()


@pytest.fixture
def auth_settings() -> Settings:
    return Settings(admin_user_ids=[ADMIN])


@pytest.mark.asyncio
async def test_optional_context_without_header_is_none(auth_settings: Settings) -> None:
    assert await get_optional_context(auth_settings, authorization=None) is None


@pytest.mark.asyncio
async def test_optional_context_parses_org_and_user(auth_settings: Settings) -> None:
    org_id = uuid.uuid4()
    user_id = uuid.uuid4()

    ctx = await get_optional_context(auth_settings, authorization=f"Bearer {org_id}:{user_id}")

    assert ctx is not None
    assert ctx.org_id == org_id
    assert ctx.user_id == user_id
    assert ctx.is_admin is False


@pytest.mark.asyncio
async def test_configured_admin_id_marks_context_admin(auth_settings: Settings) -> None:
    ctx = await get_optional_context(auth_settings, authorization=f"Bearer {uuid.uuid4()}:{ADMIN}")

    assert ctx is not None
    assert ctx.is_admin is True
    assert ctx.actor == str(ADMIN)


@pytest.mark.asyncio
async def test_invalid_bearer_format_raises_401(auth_settings: Settings) -> None:
    with pytest.raises(HTTPException) as exc_info:
        await get_optional_context(auth_settings, authorization="NotBearer token")

    assert exc_info.value.status_code == 401
    assert "Invalid authorization header format" in exc_info.value.detail


@pytest.mark.asyncio
async def test_invalid_uuid_format_raises_401(auth_settings: Settings) -> None:
    with pytest.raises(HTTPException) as exc_info:
        await get_optional_context(auth_settings, authorization="Bearer not-a-uuid:also-not")

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_token_without_separator_raises_401(auth_settings: Settings) -> None:
    with pytest.raises(HTTPException) as exc_info:
        await get_optional_context(auth_settings, authorization="Bearer eyJhbGciOi")

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_current_context_requires_credentials() -> None:
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(None)

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_require_admin_rejects_anonymous_and_non_admin(auth_settings: Settings) -> None:
    with pytest.raises(HTTPException) as anonymous:
        await require_admin(None)
    assert anonymous.value.status_code == 401

    ctx = await get_optional_context(
        auth_settings, authorization=f"Bearer {uuid.uuid4()}:{uuid.uuid4()}"
    )
    with pytest.raises(HTTPException) as forbidden:
        await require_admin(ctx)
    assert forbidden.value.status_code == 403


@pytest.mark.asyncio
async def test_require_admin_accepts_admin(auth_settings: Settings) -> None:
    ctx = await get_optional_context(auth_settings, authorization=f"Bearer {uuid.uuid4()}:{ADMIN}")

    assert await require_admin(ctx) is ctx
