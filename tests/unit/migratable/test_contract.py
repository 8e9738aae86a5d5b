"""Tests for the message-surface entry point."""

from __future__ import annotations

import pytest

from migratable.config import MigratableConfig
from migratable.contract import MigratableContract
from migratable.coordinator import CoordinatorSettings
from migratable.errors import (
    AddressInvalidError,
    DeliveryError,
    InvalidMessageError,
    MigrationCompleteNotificationFailedError,
    NoSlotsAvailableError,
    StorageError,
    UnauthorizedError,
)
from migratable.models import (
    ContractModeInfo,
    HumanPeerRef,
    MessageInfo,
    MigrationInfo,
    RegisterMsg,
    SubscriberInfo,
)
from migratable.replies import DeliveryResult
from migratable.storage import FileStorage
from migratable.types import ContractMode


def _register(address: str, code_hash: str = "h", reciprocal: bool = False) -> dict:
    return {
        "subscribe_to_migration_complete_event": {
            "address": address,
            "code_hash": code_hash,
            "reciprocal_requested": reciprocal,
        }
    }


MIGRATE_V2 = {"migrate": {"migrate_to": {"address": "v2", "code_hash": "h2", "entropy": "e"}}}


class TestExecute:
    def test_dict_message_dispatch(self, make_contract):
        contract = make_contract()
        response = contract.execute(MessageInfo(sender="x"), _register("addr1"))
        assert response.attributes["action"] == "register"
        assert contract.query({"subscribers": {}}).subscribers == [
            HumanPeerRef(address="addr1", code_hash="h")
        ]

    def test_model_message_dispatch(self, make_contract):
        contract = make_contract()
        contract.execute(MessageInfo(sender="x"), RegisterMsg(address="a", code_hash="h"))
        assert len(contract.query({"subscribers": {}}).subscribers) == 1

    def test_invalid_message(self, make_contract, storage):
        contract = make_contract()
        before = storage.snapshot()
        with pytest.raises(InvalidMessageError):
            contract.execute(MessageInfo(sender="x"), {"nope": {}})
        assert storage.snapshot() == before

    def test_failed_call_writes_nothing(self, make_contract, storage):
        # The slot is consumed before the address is validated; the
        # transaction must discard that write.
        contract = make_contract(registration_slots=2)
        before = storage.snapshot()
        with pytest.raises(AddressInvalidError):
            contract.execute(MessageInfo(sender="x"), _register("Invalid Address"))
        assert storage.snapshot() == before
        assert contract.query({"subscribers": {}}).remaining_slots == 2

    def test_migrate_and_broadcast(self, make_contract, admin):
        contract = make_contract()
        contract.execute(MessageInfo(sender="x"), _register("listener", "lh"))
        contract.execute(admin, MIGRATE_V2)
        response = contract.execute(
            admin, {"broadcast_migration_complete_notification": {}}
        )
        assert [m.to_dict() for m in response.messages] == [
            {
                "recipient": "listener",
                "code_hash": "lh",
                "body": {
                    "migration_complete_notification": {
                        "to": {"address": "v2", "code_hash": "h2"},
                        "data": None,
                    }
                },
            }
        ]

    def test_unauthorized_migrate_leaves_mode(self, make_contract):
        contract = make_contract()
        with pytest.raises(UnauthorizedError):
            contract.execute(MessageInfo(sender="mallory"), MIGRATE_V2)
        assert contract.query({"contract_mode": {}}).mode == ContractMode.RUNNING

    def test_slot_exhaustion_through_surface(self, make_contract):
        contract = make_contract(registration_slots=1)
        contract.execute(MessageInfo(sender="x"), _register("a"))
        with pytest.raises(NoSlotsAvailableError):
            contract.execute(MessageInfo(sender="x"), _register("b"))

    def test_settings_property(self, make_contract):
        assert make_contract(registration_slots=5).settings.registration_slots == 5


class TestQuery:
    def test_fresh_contract(self, make_contract):
        contract = make_contract()
        assert contract.query({"migrated_from": {}}) == MigrationInfo(contract=None)
        assert contract.query({"migrated_to": {}}) == MigrationInfo(contract=None)
        assert contract.query({"contract_mode": {}}) == ContractModeInfo(
            mode=ContractMode.RUNNING
        )
        assert contract.query({"subscribers": {}}) == SubscriberInfo()

    def test_migrated_to_after_migrate(self, make_contract, admin):
        contract = make_contract()
        contract.execute(admin, MIGRATE_V2)
        assert contract.query({"migrated_to": {}}).contract == HumanPeerRef(
            address="v2", code_hash="h2"
        )

    def test_migrated_from(self, storage, env, admin):
        contract = MigratableContract(storage, env)
        contract.instantiate(
            admin, migrated_from=HumanPeerRef(address="v0", code_hash="h0"), migration_secret=b"s"
        )
        answer = contract.query({"migrated_from": {}})
        assert answer.contract == HumanPeerRef(address="v0", code_hash="h0")
        assert "secret" not in answer.model_dump()

    def test_invalid_query(self, make_contract):
        with pytest.raises(InvalidMessageError):
            make_contract().query({"contract_info": {}})


class TestReply:
    def test_success_is_silent(self, make_contract):
        assert make_contract().reply(DeliveryResult(recipient="a")) is None

    def test_migrated_subscriber(self, make_contract):
        with pytest.raises(MigrationCompleteNotificationFailedError) as exc_info:
            make_contract().reply(
                DeliveryResult(recipient="a", error="contract a failed to validate message")
            )
        assert exc_info.value.subscriber == "a"
        assert "Request it to notify" in exc_info.value.message

    def test_other_failure(self, make_contract):
        with pytest.raises(DeliveryError, match="out of gas"):
            make_contract().reply(DeliveryResult(recipient="a", error="out of gas"))


class TestFromConfig:
    def test_reopens_instantiated_namespace(self, tmp_path, admin):
        config = MigratableConfig(storage_dir=str(tmp_path), namespace="v1")
        contract = MigratableContract.from_config(
            contract=HumanPeerRef(address="v1", code_hash="h1"), config=config
        )
        assert isinstance(contract.storage, FileStorage)
        contract.instantiate(admin)
        contract.execute(MessageInfo(sender="x"), _register("a"))

        reopened = MigratableContract.from_config(config=config)
        assert reopened.env.contract == HumanPeerRef(address="v1", code_hash="h1")
        assert len(reopened.query({"subscribers": {}}).subscribers) == 1

    def test_empty_namespace(self, tmp_path):
        config = MigratableConfig(storage_dir=str(tmp_path), namespace="empty")
        with pytest.raises(StorageError, match="no instantiated contract"):
            MigratableContract.from_config(config=config)

    def test_settings_from_config(self, tmp_path):
        config = MigratableConfig(
            storage_dir=str(tmp_path), registration_slots=7, address_prefix="s1"
        )
        contract = MigratableContract.from_config(
            contract=HumanPeerRef(address="s1abc", code_hash="h"), config=config
        )
        assert contract.settings == CoordinatorSettings(registration_slots=7)
        assert contract.addressing.prefix == "s1"

    def test_failed_file_commit_keeps_slots_and_registry(self, tmp_path, admin, monkeypatch):
        config = MigratableConfig(
            storage_dir=str(tmp_path), namespace="v1", registration_slots=2
        )
        contract = MigratableContract.from_config(
            contract=HumanPeerRef(address="v1", code_hash="h1"), config=config
        )
        contract.instantiate(admin)

        replaced = []

        def replace_then_fail(src, dst):
            replaced.append(dst)
            raise OSError("disk full")

        monkeypatch.setattr("migratable.storage.file.os.replace", replace_then_fail)
        with pytest.raises(StorageError, match="disk full"):
            contract.execute(MessageInfo(sender="x"), _register("addr1"))
        monkeypatch.undo()

        assert len(replaced) == 1
        info = MigratableContract.from_config(config=config).query({"subscribers": {}})
        assert info.remaining_slots == 2
        assert info.subscribers == []
