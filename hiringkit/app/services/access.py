"""Kit ownership checks shared by the kit endpoints."""

from uuid import UUID

from hiringkit.app.db.context import RequestContext
from hiringkit.app.db.repositories import KitRecord, Repositories
from hiringkit.app.errors import KitNotFoundError
from hiringkit.app.utils.logging import StructuredEventLogger

events = StructuredEventLogger(__name__)


def can_access_kit(kit: KitRecord, ctx: RequestContext | None) -> bool:
    """Admins see every kit; anyone else only kits with their own user id.

    Kits created without a signed-in user have no owner and are reachable
    by anonymous callers holding the id.
    """
    if ctx is not None and ctx.is_admin:
        return True
    caller = ctx.user_id if ctx is not None else None
    return kit.user_id == caller


async def load_kit(repos: Repositories, kit_id: UUID, ctx: RequestContext | None) -> KitRecord:
    """Fetch a kit the caller may act on.

    A kit owned by someone else is reported exactly like a missing one.

    Raises:
        KitNotFoundError: If the kit does not exist or belongs to another user
    """
    kit = await repos.kits.get(kit_id)
    if kit is None or not can_access_kit(kit, ctx):
        if kit is not None:
            events.access_denied("kit", kit_id, user_id=ctx.user_id if ctx else None)
        raise KitNotFoundError("Kit not found or access denied")
    return kit
