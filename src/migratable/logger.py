"""
Structured logging for migration lifecycle events.

Outputs one JSON object per event on the ``migratable.events`` logger so
log pipelines can follow a contract through registration, migration and
broadcast without parsing free text.

Logged events:
- contract.instantiated
- subscriber.registered
- subscriber.duplicate
- subscriber.rewritten
- contract.migrated
- broadcast.built
- operation.rejected

Usage:
    from migratable.logger import MigrationEventLogger

    events = MigrationEventLogger(contract="secret1abc")
    events.log_registered(subscriber="secret1xyz", code_hash="h", remaining_slots=3)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from migratable.types import MigrationEvent

_event_logger = logging.getLogger("migratable.events")
_event_logger.setLevel(logging.INFO)

# Default handler writes JSON lines to stderr; stdout is reserved for CLI output
if not _event_logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    _event_logger.addHandler(handler)
    _event_logger.propagate = False


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Set the root level and, if the root has no handler yet, install one
    using ``json`` or ``text`` format."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    root.addHandler(handler)


class MigrationEventLogger:
    """
    Structured logger for migration lifecycle events.

    Each entry carries the emitting contract's address so entries from
    several instances sharing one log stream can be told apart.
    """

    def __init__(
        self,
        contract: str,
        service_name: str = "migratable",
        extra_labels: Optional[Dict[str, str]] = None,
    ):
        self.contract = contract
        self.service_name = service_name
        self.extra_labels = extra_labels or {}
        self._logger = _event_logger

    def _emit(
        self,
        event: MigrationEvent,
        level: str = "info",
        **extra_fields: Any,
    ) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event.value,
            "service": self.service_name,
            "contract": self.contract,
        }
        entry.update({k: v for k, v in extra_fields.items() if v is not None})
        if self.extra_labels:
            entry["labels"] = self.extra_labels

        log_line = json.dumps(entry, default=str)

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_instantiated(
        self,
        admin: str,
        registration_slots: Optional[int] = None,
        migrated_from: Optional[str] = None,
    ) -> None:
        self._emit(
            MigrationEvent.CONTRACT_INSTANTIATED,
            admin=admin,
            registration_slots=registration_slots,
            migrated_from=migrated_from,
        )

    def log_registered(
        self,
        subscriber: str,
        code_hash: str,
        remaining_slots: Optional[int] = None,
        reciprocal_requested: bool = False,
    ) -> None:
        """Log a new subscriber entering the registry."""
        self._emit(
            MigrationEvent.SUBSCRIBER_REGISTERED,
            subscriber=subscriber,
            code_hash=code_hash,
            remaining_slots=remaining_slots,
            reciprocal_requested=reciprocal_requested,
        )

    def log_duplicate(
        self,
        subscriber: str,
        code_hash: str,
        remaining_slots: Optional[int] = None,
    ) -> None:
        """Log an idempotent re-registration (registry unchanged)."""
        self._emit(
            MigrationEvent.SUBSCRIBER_DUPLICATE,
            subscriber=subscriber,
            code_hash=code_hash,
            remaining_slots=remaining_slots,
        )

    def log_rewritten(self, sender: str, new_address: str, position: int) -> None:
        self._emit(
            MigrationEvent.SUBSCRIBER_REWRITTEN,
            sender=sender,
            new_address=new_address,
            position=position,
        )

    def log_migrated(self, migrated_to: str, code_hash: str) -> None:
        self._emit(
            MigrationEvent.CONTRACT_MIGRATED,
            migrated_to=migrated_to,
            code_hash=code_hash,
        )

    def log_broadcast(self, migrated_to: str, recipients: int, has_data: bool) -> None:
        self._emit(
            MigrationEvent.BROADCAST_BUILT,
            migrated_to=migrated_to,
            recipients=recipients,
            has_data=has_data,
        )

    def log_rejected(self, operation: str, code: str, message: str) -> None:
        self._emit(
            MigrationEvent.OPERATION_REJECTED,
            level="warn",
            operation=operation,
            code=code,
            reason=message,
        )
