"""
Shared enums for the migration coordination core.

All enums are ``str`` subclasses so they serialise to their wire value in
pydantic models and JSON payloads without custom encoders.
"""

from __future__ import annotations

from enum import Enum


class ContractMode(str, Enum):
    """Lifecycle phase of a contract instance.

    ``RUNNING`` is set at instantiation; ``MIGRATED_OUT`` is entered exactly
    once by the admin migrate operation.  ``PAUSED`` is host-defined and
    only ever read by this core.
    """
    RUNNING = "running"
    PAUSED = "paused"
    MIGRATED_OUT = "migrated_out"


class ErrorCode(str, Enum):
    """Wire codes for the error taxonomy."""
    OPERATION_UNAVAILABLE = "operation_unavailable"
    NO_SLOTS_AVAILABLE = "no_slots_available"
    UNAUTHORIZED = "unauthorized"
    ADDRESS_INVALID = "address_invalid"
    STORAGE_ERROR = "storage_error"
    INVALID_MODE_TRANSITION = "invalid_mode_transition"
    MIGRATION_RECORD_EXISTS = "migration_record_exists"
    INVALID_MESSAGE = "invalid_message"
    NOTIFICATION_FAILED = "migration_complete_notification_failed"
    DELIVERY_ERROR = "delivery_error"


class StorageType(str, Enum):
    """Available storage backend types."""
    MEMORY = "memory"
    FILE = "file"


class MigrationEvent(str, Enum):
    """Lifecycle events written by the structured event logger."""
    SUBSCRIBER_REGISTERED = "subscriber.registered"
    SUBSCRIBER_DUPLICATE = "subscriber.duplicate"
    SUBSCRIBER_REWRITTEN = "subscriber.rewritten"
    CONTRACT_INSTANTIATED = "contract.instantiated"
    CONTRACT_MIGRATED = "contract.migrated"
    BROADCAST_BUILT = "broadcast.built"
    OPERATION_REJECTED = "operation.rejected"
