"""Structured logging for lifecycle events."""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


class StructuredFormatter(logging.Formatter):
    """Appends the record's ``structured`` payload as JSON to the message."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        structured = getattr(record, "structured", None)
        if structured:
            message = f"{message} {json.dumps(structured, default=str, sort_keys=True)}"
        return message


def configure_logging(level: str = "INFO") -> None:
    """Install the structured formatter on the ``hiringkit`` logger tree."""
    root = logging.getLogger("hiringkit")
    if any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        root.setLevel(level.upper())
        return

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(handler)
    root.setLevel(level.upper())
    root.propagate = False


class StructuredEventLogger:
    """Structured logger for webhook, transition, admin and export events."""

    def __init__(self, name: str = __name__) -> None:
        self._logger = logging.getLogger(name)

    def webhook(self, event_type: str, event_id: str, outcome: str, **fields: Any) -> None:
        """Log a webhook lifecycle step."""
        data: dict[str, Any] = {"event_type": event_type, "event_id": event_id, "outcome": outcome}
        data.update(fields)

        log_msg = f"Webhook {event_type} - {outcome}"
        if outcome == "failed":
            self._logger.error(log_msg, extra={"structured": data})
        elif outcome == "unhandled":
            self._logger.warning(log_msg, extra={"structured": data})
        else:
            self._logger.info(log_msg, extra={"structured": data})

    def transition(
        self,
        entity: str,
        entity_id: Any,
        previous_status: str | None,
        new_status: str,
        **fields: Any,
    ) -> None:
        """Log an order or kit status change."""
        data: dict[str, Any] = {
            "entity": entity,
            "entity_id": str(entity_id),
            "previous_status": previous_status,
            "new_status": new_status,
        }
        data.update(fields)
        self._logger.info(
            f"{entity} {entity_id}: {previous_status} -> {new_status}", extra={"structured": data}
        )

    def admin_action(self, action: str, actor: str, **fields: Any) -> None:
        """Log an admin action."""
        data: dict[str, Any] = {"action": action, "actor": actor}
        data.update({key: str(value) for key, value in fields.items()})
        self._logger.info(f"Admin action: {action}", extra={"structured": data})

    def export(self, kit_id: Any, kind: str, outcome: str, **fields: Any) -> None:
        """Log an export pipeline step."""
        data: dict[str, Any] = {"kit_id": str(kit_id), "kind": kind, "outcome": outcome}
        data.update(fields)
        if outcome in ("failed", "placeholder"):
            self._logger.warning(f"Export {kind} - {outcome}", extra={"structured": data})
        else:
            self._logger.info(f"Export {kind} - {outcome}", extra={"structured": data})

    def failure(self, context: str, error: BaseException, **fields: Any) -> None:
        """Log an error with its context. Callers decide whether to re-raise."""
        data: dict[str, Any] = {
            "context": context,
            "error_type": type(error).__name__,
            "error": str(error),
        }
        data.update({key: str(value) for key, value in fields.items()})
        self._logger.error(f"{context} failed: {error}", extra={"structured": data})

    def access_denied(self, entity: str, entity_id: Any, **fields: Any) -> None:
        """Log a lookup refused because the caller does not own the entity."""
        data: dict[str, Any] = {"entity": entity, "entity_id": str(entity_id)}
        data.update({key: str(value) for key, value in fields.items()})
        self._logger.warning(f"Access denied to {entity} {entity_id}", extra={"structured": data})
