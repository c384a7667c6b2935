"""Request context carried from auth into services."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Caller identity.

    ``is_admin`` is resolved once at auth time from the configured admin ids.
    """

    org_id: UUID
    user_id: UUID
    is_admin: bool = False

    @property
    def actor(self) -> str:
        """Identifier recorded as the actor in audit log entries."""
        return str(self.user_id)
