"""
Read-only queries over a contract's migration state.

Usage::

    from migratable.query import query_migrated_info

    info = query_migrated_info(state, addressing, migrated_from=True)
    info.contract     # HumanPeerRef or None
"""

from __future__ import annotations

from migratable.addressing import Addressing, humanize_peer
from migratable.models import ContractModeInfo, MigrationInfo, SubscriberInfo
from migratable.state import ContractState


def query_migrated_info(
    state: ContractState,
    addressing: Addressing,
    migrated_from: bool,
) -> MigrationInfo:
    """Return the contract this instance migrated from (or to).

    Args:
        state: Contract state to read.
        addressing: Used to humanize the stored canonical reference.
        migrated_from: If True return the predecessor, otherwise the
            successor.  The migration secret is never returned.
    """
    record = (
        state.migration.migrated_from()
        if migrated_from
        else state.migration.migrated_to()
    )
    if record is None:
        return MigrationInfo(contract=None)
    return MigrationInfo(contract=humanize_peer(addressing, record.peer))


def query_subscribers(state: ContractState, addressing: Addressing) -> SubscriberInfo:
    """Registered subscribers in registration order, plus remaining slots."""
    return SubscriberInfo(
        subscribers=[humanize_peer(addressing, p) for p in state.subscribers.load()],
        remaining_slots=state.slots.remaining(),
    )


def query_contract_mode(state: ContractState) -> ContractModeInfo:
    return ContractModeInfo(mode=state.mode.load())
