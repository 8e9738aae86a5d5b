"""
Error taxonomy for the migration coordination core.

Every rejected precondition raises a ``MigratableError`` subclass.  Errors
carry a stable :class:`~migratable.types.ErrorCode` and can be rendered as
the externally tagged wire reply used by the message surface::

    {"operation_unavailable": {"message": "Not available in contract mode: paused."}}

Hierarchy::

    MigratableError
    ├── OperationUnavailableError      mode gate rejection
    ├── NoSlotsAvailableError          registration capacity exhausted
    ├── UnauthorizedError              caller is not the configured admin
    ├── AddressInvalidError            malformed peer address
    ├── StorageError                   backend failure (chained)
    ├── InvalidModeTransitionError     non-monotonic mode change
    ├── MigrationRecordExistsError     write-once record already set
    ├── InvalidMessageError            unparseable execute/query payload
    ├── MigrationCompleteNotificationFailedError
    └── DeliveryError
"""

from __future__ import annotations

import json
from typing import Any, Optional

from migratable.types import ContractMode, ErrorCode


class MigratableError(Exception):
    """Base class for all coordination errors."""

    code: ErrorCode = ErrorCode.STORAGE_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_reply(self) -> dict[str, Any]:
        """Return the externally tagged reply payload for this error."""
        return {self.code.value: {"message": self.message}}

    def to_json(self) -> str:
        return json.dumps(self.to_reply())


class OperationUnavailableError(MigratableError):
    """Raised by the mode gate when the current mode does not allow an operation."""

    code = ErrorCode.OPERATION_UNAVAILABLE

    def __init__(self, mode: ContractMode, message: Optional[str] = None) -> None:
        self.mode = mode
        super().__init__(message or f"Not available in contract mode: {mode.value}.")


class NoSlotsAvailableError(MigratableError):
    """Raised when the registration slot counter has reached zero."""

    code = ErrorCode.NO_SLOTS_AVAILABLE

    def __init__(self) -> None:
        super().__init__("No migration complete notification slots available")


class UnauthorizedError(MigratableError):
    code = ErrorCode.UNAUTHORIZED

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or "This is an admin command and can only be run from the admin address"
        )


class AddressInvalidError(MigratableError):
    """Raised when a peer address cannot be validated or converted."""

    code = ErrorCode.ADDRESS_INVALID

    def __init__(self, address: Any, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Invalid address {address!r}: {reason}")


class StorageError(MigratableError):
    """Raised when the storage backend fails; the original error is chained."""

    code = ErrorCode.STORAGE_ERROR


class InvalidModeTransitionError(MigratableError):
    code = ErrorCode.INVALID_MODE_TRANSITION

    def __init__(
        self, current: Optional[ContractMode], requested: ContractMode
    ) -> None:
        self.current = current
        self.requested = requested
        current_label = current.value if current is not None else "uninitialized"
        super().__init__(
            f"Cannot change contract mode from {current_label} to {requested.value}"
        )


class MigrationRecordExistsError(MigratableError):
    """Raised when a write-once migration record is written a second time."""

    code = ErrorCode.MIGRATION_RECORD_EXISTS

    def __init__(self, record: str) -> None:
        self.record = record
        super().__init__(f"Migration record '{record}' is already set")


class InvalidMessageError(MigratableError):
    code = ErrorCode.INVALID_MESSAGE


class MigrationCompleteNotificationFailedError(MigratableError):
    """A subscriber rejected a migration complete notification.

    Usually means the subscriber has itself migrated away; the operator
    should ask it to notify this contract of its new address.
    """

    code = ErrorCode.NOTIFICATION_FAILED

    def __init__(self, subscriber: str, error: str) -> None:
        self.subscriber = subscriber
        self.error = error
        super().__init__(
            f"Migration complete event subscriber {subscriber} has migrated. "
            f"Request it to notify this contract of the new address. Error: {error}"
        )


class DeliveryError(MigratableError):
    code = ErrorCode.DELIVERY_ERROR
