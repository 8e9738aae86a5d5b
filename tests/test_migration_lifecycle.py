"""End-to-end migration scenarios across contract instances."""

from __future__ import annotations

import pytest

from migratable.contract import MigratableContract
from migratable.coordinator import CoordinatorSettings
from migratable.errors import NoSlotsAvailableError, OperationUnavailableError
from migratable.models import (
    BroadcastMsg,
    CanonicalPeerRef,
    Env,
    HumanPeerRef,
    MessageInfo,
    MigrationCompleteNotification,
    MigrationRecord,
    RegisterMsg,
    parse_execute_msg,
)
from migratable.state import ContractState
from migratable.storage import MemoryStorage
from migratable.types import ContractMode


def _contract(address: str, code_hash: str, **settings) -> MigratableContract:
    contract = MigratableContract(
        MemoryStorage(namespace=address),
        Env(contract=HumanPeerRef(address=address, code_hash=code_hash)),
        settings=CoordinatorSettings(**settings),
    )
    contract.instantiate(MessageInfo(sender="admin"))
    return contract


def _deliver(sender: MigratableContract, message, contracts: dict[str, MigratableContract]):
    """Deliver one outbound message the way a host runtime would."""
    target = contracts[message.recipient]
    return target.execute(
        MessageInfo(sender=sender.env.contract.address),
        parse_execute_msg(message.body.to_wire()),
    )


def _subscribers(contract: MigratableContract) -> list[tuple[str, str]]:
    return [(p.address, p.code_hash) for p in contract.query({"subscribers": {}}).subscribers]


# ---------------------------------------------------------------------------
# Single instance
# ---------------------------------------------------------------------------


class TestRegistrationSlots:
    def test_duplicate_consumes_slot_then_exhausts(self):
        contract = _contract("v1", "h1", registration_slots=2)
        info = MessageInfo(sender="anyone")

        contract.execute(info, RegisterMsg(address="addr1", code_hash="hash1"))
        assert _subscribers(contract) == [("addr1", "hash1")]
        assert contract.query({"subscribers": {}}).remaining_slots == 1

        contract.execute(info, RegisterMsg(address="addr1", code_hash="hash1"))
        assert _subscribers(contract) == [("addr1", "hash1")]
        assert contract.query({"subscribers": {}}).remaining_slots == 0

        with pytest.raises(NoSlotsAvailableError):
            contract.execute(info, RegisterMsg(address="addr2", code_hash="hash2"))
        assert _subscribers(contract) == [("addr1", "hash1")]


class TestBroadcastScenario:
    def test_explicit_listeners(self):
        storage = MemoryStorage()
        state = ContractState(storage)
        state.mode.initialize()
        state.identity.save_admin(b"admin")
        state.migration.set_migrated_to(
            MigrationRecord(peer=CanonicalPeerRef(address=b"v2", code_hash="h2"))
        )
        state.mode.transition(ContractMode.MIGRATED_OUT)
        contract = MigratableContract(
            storage, Env(contract=HumanPeerRef(address="v1", code_hash="h1"))
        )

        response = contract.execute(
            MessageInfo(sender="admin"),
            BroadcastMsg(
                addresses=["listener_a", "listener_b"], code_hash="listener_hash", data=b"x"
            ),
        )

        assert [(m.recipient, m.code_hash) for m in response.messages] == [
            ("listener_a", "listener_hash"),
            ("listener_b", "listener_hash"),
        ]
        expected = MigrationCompleteNotification(
            to=HumanPeerRef(address="v2", code_hash="h2"), data=b"x"
        )
        assert all(m.body == expected for m in response.messages)

    def test_registration_closed_after_migration(self):
        contract = _contract("v1", "h1")
        contract.execute(
            MessageInfo(sender="admin"),
            {"migrate": {"migrate_to": {"address": "v2", "code_hash": "h2", "entropy": "e"}}},
        )
        with pytest.raises(OperationUnavailableError, match="migrated_out"):
            contract.execute(
                MessageInfo(sender="late"), RegisterMsg(address="late", code_hash="h")
            )


# ---------------------------------------------------------------------------
# Several instances
# ---------------------------------------------------------------------------


class TestPropagation:
    def test_reciprocal_subscription_round(self):
        provider = _contract("provider", "ph")
        consumer = _contract("consumer", "ch")
        contracts = {"provider": provider, "consumer": consumer}

        response = provider.execute(
            MessageInfo(sender="consumer"),
            RegisterMsg(address="consumer", code_hash="ch", reciprocal_requested=True),
        )
        assert len(response.messages) == 1
        follow_up = _deliver(provider, response.messages[0], contracts)

        assert _subscribers(provider) == [("consumer", "ch")]
        assert _subscribers(consumer) == [("provider", "ph")]
        assert follow_up.messages == []

    def test_migration_propagates_new_address(self):
        provider = _contract("provider", "ph")
        other = _contract("other", "oh")
        consumer = _contract("consumer", "ch")
        contracts = {"provider": provider, "consumer": consumer, "other": other}

        # consumer depends on other and provider, in that order
        consumer.execute(MessageInfo(sender="x"), RegisterMsg(address="other", code_hash="oh"))
        consumer.execute(MessageInfo(sender="x"), RegisterMsg(address="provider", code_hash="ph"))
        provider.execute(MessageInfo(sender="x"), RegisterMsg(address="consumer", code_hash="ch"))

        successor = MigratableContract(
            MemoryStorage(namespace="provider2"),
            Env(contract=HumanPeerRef(address="provider2", code_hash="ph2")),
        )
        successor.instantiate(
            MessageInfo(sender="admin"),
            migrated_from=HumanPeerRef(address="provider", code_hash="ph"),
        )
        provider.execute(
            MessageInfo(sender="admin"),
            {"migrate": {"migrate_to": {"address": "provider2", "code_hash": "ph2", "entropy": "e"}}},
        )

        broadcast = provider.execute(
            MessageInfo(sender="admin"), {"broadcast_migration_complete_notification": {}}
        )
        assert [m.recipient for m in broadcast.messages] == ["consumer"]
        _deliver(provider, broadcast.messages[0], contracts)

        assert _subscribers(consumer) == [("other", "oh"), ("provider2", "ph2")]
        assert provider.query({"contract_mode": {}}).mode == ContractMode.MIGRATED_OUT
        assert provider.query({"migrated_to": {}}).contract == HumanPeerRef(
            address="provider2", code_hash="ph2"
        )
        assert successor.query({"migrated_from": {}}).contract == HumanPeerRef(
            address="provider", code_hash="ph"
        )

    def test_notification_from_unknown_contract_is_ignored(self):
        consumer = _contract("consumer", "ch")
        consumer.execute(MessageInfo(sender="x"), RegisterMsg(address="a", code_hash="h"))
        response = consumer.execute(
            MessageInfo(sender="stranger"),
            MigrationCompleteNotification(to=HumanPeerRef(address="c", code_hash="h")),
        )
        assert response.attributes["rewritten"] == "False"
        assert _subscribers(consumer) == [("a", "h")]
