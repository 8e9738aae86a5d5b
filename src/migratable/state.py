"""
Persistent per-instance state of a migratable contract.

Each logical record lives under one fixed byte key:

==================================================  =====================
Key                                                 Record
==================================================  =====================
``contract_mode``                                   Mode Store
``contract_info``                                   this contract's own address
``contract_admin``                                  canonical admin address
``migration_complete_event_subscribers``            Subscriber Registry
``remaining_migration_complete_event_sub_slots``    RemainingSlots
``migrated_from`` / ``migrated_to``                 Migration State Store
==================================================  =====================

The classes below wrap those items with the invariants the protocols rely
on: monotonic mode transitions, a duplicate-free ordered registry, a slot
counter that never increases, and write-once migration records.  They
operate on whatever store they are given, normally a
:class:`~migratable.storage.Transaction`.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ConfigDict, NonNegativeInt

from migratable.errors import (
    InvalidModeTransitionError,
    MigrationRecordExistsError,
    NoSlotsAvailableError,
    StorageError,
)
from migratable.models import CanonicalPeerRef, HumanPeerRef, MigrationRecord
from migratable.storage.base import StorageBackend
from migratable.storage.item import Item
from migratable.types import ContractMode

logger = logging.getLogger(__name__)

_BYTES = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

CONTRACT_MODE: Item[ContractMode] = Item(b"contract_mode", ContractMode)
CONTRACT_INFO: Item[HumanPeerRef] = Item(b"contract_info", HumanPeerRef)
CONTRACT_ADMIN: Item[bytes] = Item(b"contract_admin", bytes, config=_BYTES)
MIGRATION_COMPLETE_EVENT_SUBSCRIBERS: Item[list[CanonicalPeerRef]] = Item(
    b"migration_complete_event_subscribers", list[CanonicalPeerRef]
)
REMAINING_MIGRATION_COMPLETE_EVENT_SUB_SLOTS: Item[int] = Item(
    b"remaining_migration_complete_event_sub_slots", NonNegativeInt
)
MIGRATED_FROM: Item[MigrationRecord] = Item(b"migrated_from", MigrationRecord)
MIGRATED_TO: Item[MigrationRecord] = Item(b"migrated_to", MigrationRecord)

# Allowed mode changes.  MIGRATED_OUT is terminal.
_TRANSITIONS: dict[ContractMode, frozenset[ContractMode]] = {
    ContractMode.RUNNING: frozenset({ContractMode.MIGRATED_OUT}),
    ContractMode.PAUSED: frozenset(),
    ContractMode.MIGRATED_OUT: frozenset(),
}


class ModeStore:
    """Holds the single current :class:`ContractMode`."""

    def __init__(self, store: StorageBackend):
        self._store = store

    def may_load(self) -> Optional[ContractMode]:
        return CONTRACT_MODE.may_load(self._store)

    def load(self) -> ContractMode:
        mode = CONTRACT_MODE.may_load(self._store)
        if mode is None:
            raise StorageError("Contract mode is not initialized")
        return mode

    def initialize(self) -> None:
        """Set the mode to RUNNING; only valid on an empty store."""
        current = self.may_load()
        if current is not None:
            raise InvalidModeTransitionError(current, ContractMode.RUNNING)
        CONTRACT_MODE.save(self._store, ContractMode.RUNNING)

    def transition(self, requested: ContractMode) -> ContractMode:
        """Move to ``requested`` if allowed from the current mode; returns the old mode."""
        current = self.load()
        if requested not in _TRANSITIONS[current]:
            raise InvalidModeTransitionError(current, requested)
        CONTRACT_MODE.save(self._store, requested)
        logger.info("Contract mode %s -> %s", current.value, requested.value)
        return current


class IdentityStore:
    """This instance's own contract reference and its admin."""

    def __init__(self, store: StorageBackend):
        self._store = store

    def contract(self) -> Optional[HumanPeerRef]:
        return CONTRACT_INFO.may_load(self._store)

    def save_contract(self, contract: HumanPeerRef) -> None:
        CONTRACT_INFO.save(self._store, contract)

    def admin(self) -> Optional[bytes]:
        return CONTRACT_ADMIN.may_load(self._store)

    def save_admin(self, admin: bytes) -> None:
        CONTRACT_ADMIN.save(self._store, admin)


class SubscriberRegistry:
    """
    Ordered, duplicate-free list of canonical subscriber references.

    An absent key is an empty registry.  Entries are only ever appended or
    rewritten in place; nothing is removed except when a rewrite would
    otherwise duplicate an existing entry.
    """

    def __init__(self, store: StorageBackend):
        self._store = store

    def load(self) -> list[CanonicalPeerRef]:
        return MIGRATION_COMPLETE_EVENT_SUBSCRIBERS.may_load(self._store) or []

    def contains(self, peer: CanonicalPeerRef) -> bool:
        return peer in self.load()

    def insert(self, peer: CanonicalPeerRef) -> bool:
        """Append ``peer`` unless a structurally equal entry exists.

        Returns True if the registry changed (and was persisted).
        """
        subscribers = self.load()
        if peer in subscribers:
            return False
        subscribers.append(peer)
        MIGRATION_COMPLETE_EVENT_SUBSCRIBERS.save(self._store, subscribers)
        return True

    def rewrite_address(
        self, old_address: bytes, new_peer: CanonicalPeerRef
    ) -> Optional[int]:
        """Replace the first entry whose address is ``old_address`` with ``new_peer``.

        Matching ignores the code hash.  Returns the index of the rewritten
        entry, or None when there was no registry or no matching entry.
        """
        subscribers = MIGRATION_COMPLETE_EVENT_SUBSCRIBERS.may_load(self._store)
        if subscribers is None:
            return None
        for index, entry in enumerate(subscribers):
            if entry.address != old_address:
                continue
            if new_peer in subscribers and subscribers.index(new_peer) != index:
                # new_peer is already registered; drop the stale entry so the
                # registry stays duplicate-free.
                del subscribers[index]
                logger.info(
                    "Subscriber %r already registered at new address; removed stale entry %d",
                    new_peer.address,
                    index,
                )
            else:
                subscribers[index] = new_peer
            MIGRATION_COMPLETE_EVENT_SUBSCRIBERS.save(self._store, subscribers)
            return index
        return None


class SlotCounter:
    """Optional registration capacity.  Absent means unlimited."""

    def __init__(self, store: StorageBackend):
        self._store = store

    def remaining(self) -> Optional[int]:
        return REMAINING_MIGRATION_COMPLETE_EVENT_SUB_SLOTS.may_load(self._store)

    def initialize(self, slots: Optional[int]) -> None:
        if slots is None:
            return
        if slots < 0:
            raise ValueError(f"Registration slots must be non-negative, got {slots}")
        REMAINING_MIGRATION_COMPLETE_EVENT_SUB_SLOTS.save(self._store, slots)

    def consume(self) -> Optional[int]:
        """Take one slot; returns what is left, or None when unlimited.

        Raises ``NoSlotsAvailableError`` once the counter is at zero.
        """
        remaining = self.remaining()
        if remaining is None:
            return None
        if remaining == 0:
            raise NoSlotsAvailableError()
        remaining -= 1
        REMAINING_MIGRATION_COMPLETE_EVENT_SUB_SLOTS.save(self._store, remaining)
        return remaining


class MigrationStateStore:
    """The write-once ``MigratedFrom`` and ``MigratedTo`` records."""

    def __init__(self, store: StorageBackend):
        self._store = store

    def migrated_from(self) -> Optional[MigrationRecord]:
        return MIGRATED_FROM.may_load(self._store)

    def migrated_to(self) -> Optional[MigrationRecord]:
        return MIGRATED_TO.may_load(self._store)

    def set_migrated_from(self, record: MigrationRecord) -> None:
        if MIGRATED_FROM.exists(self._store):
            raise MigrationRecordExistsError("migrated_from")
        MIGRATED_FROM.save(self._store, record)

    def set_migrated_to(self, record: MigrationRecord) -> None:
        if MIGRATED_TO.exists(self._store):
            raise MigrationRecordExistsError("migrated_to")
        MIGRATED_TO.save(self._store, record)


class ContractState:
    """Bundle of every per-instance store, bound to one backing store."""

    def __init__(self, store: StorageBackend):
        self.store = store
        self.mode = ModeStore(store)
        self.identity = IdentityStore(store)
        self.subscribers = SubscriberRegistry(store)
        self.slots = SlotCounter(store)
        self.migration = MigrationStateStore(store)
