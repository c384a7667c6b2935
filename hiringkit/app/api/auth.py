"""Bearer-token auth dependencies.

Stub implementation that extracts org_id/user_id from a
``Bearer <org_id>:<user_id>`` token. Admin rights come from the configured
admin user ids.
"""

import uuid
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from hiringkit.app.config import Settings, get_settings
from hiringkit.app.db.context import RequestContext


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_optional_context(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext | None:
    """Request context from the authorization header, or None if absent.

    Raises:
        HTTPException: 401 if a header is present but malformed
    """
    if not authorization:
        return None

    if not authorization.startswith("Bearer "):
        raise _unauthorized("Invalid authorization header format")

    token = authorization[7:]  # Strip "Bearer "
    if ":" not in token:
        raise _unauthorized("Invalid bearer token")

    try:
        org_id_str, user_id_str = token.split(":", 1)
        org_id = uuid.UUID(org_id_str)
        user_id = uuid.UUID(user_id_str)
    except ValueError as e:
        raise _unauthorized("Invalid token format (expected org_id:user_id)") from e

    return RequestContext(
        org_id=org_id,
        user_id=user_id,
        is_admin=user_id in settings.admin_user_ids,
    )


async def get_current_context(
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
) -> RequestContext:
    """Request context for endpoints that need a signed-in caller."""
    if ctx is None:
        raise _unauthorized("Authentication required")
    return ctx


async def require_admin(
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
) -> RequestContext:
    """Request context of an admin caller.

    Raises:
        HTTPException: 401 without credentials, 403 for non-admin callers
    """
    if ctx is None:
        raise _unauthorized("Authentication required")
    if not ctx.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return ctx
