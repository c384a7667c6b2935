"""Domain error taxonomy.

Every error carries a machine-readable code and the HTTP status the API layer
renders it with. Services raise these; routes never build error bodies by hand.
"""

from fastapi import status


class HiringKitError(Exception):
    """Base class for all domain errors."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class InvalidInputError(HiringKitError):
    """Request input failed a domain validation rule."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class NotDeliverableError(HiringKitError):
    """Kit has no order in a deliverable state."""

    code = "NOT_DELIVERABLE"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(HiringKitError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class KitNotFoundError(NotFoundError):
    code = "KIT_NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    code = "ORDER_NOT_FOUND"


class ExportJobNotFoundError(NotFoundError):
    code = "JOB_NOT_FOUND"


class StateConflictError(HiringKitError):
    """Operation is not valid in the entity's current state."""

    code = "INVALID_STATE"
    status_code = status.HTTP_409_CONFLICT


class RegenLimitExceededError(HiringKitError):
    """Unpaid kit has used its regeneration allowance for a section."""

    code = "REGEN_LIMIT_EXCEEDED"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Regeneration limit exceeded. Upgrade to continue.") -> None:
        super().__init__(message)


class UpstreamError(HiringKitError):
    """An external collaborator failed."""

    code = "UPSTREAM_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY


class PaymentProviderError(UpstreamError):
    code = "PAYMENT_PROVIDER_ERROR"


class ContentGenerationError(UpstreamError):
    code = "GENERATION_FAILED"


class RenderError(UpstreamError):
    code = "RENDER_FAILED"


class StorageError(UpstreamError):
    code = "STORAGE_FAILED"


class NotificationError(UpstreamError):
    code = "EMAIL_FAILED"


class PersistenceError(HiringKitError):
    """A database write failed."""

    code = "DATABASE_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class WebhookSignatureError(HiringKitError):
    """Webhook payload could not be authenticated."""

    code = "INVALID_SIGNATURE"
    status_code = status.HTTP_400_BAD_REQUEST
