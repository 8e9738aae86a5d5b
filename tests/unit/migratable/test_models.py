"""Tests for peer references and the externally tagged message surface."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from migratable.errors import InvalidMessageError
from migratable.models import (
    BroadcastMsg,
    CanonicalPeerRef,
    ContractModeInfo,
    ContractModeQuery,
    HumanPeerRef,
    MigrateMsg,
    MigratedFromQuery,
    MigrationCompleteNotification,
    MigrationInfo,
    OutboundMessage,
    RegisterMsg,
    Response,
    SubscriberInfo,
    SubscribersQuery,
    parse_execute_msg,
    parse_query_msg,
)
from migratable.types import ContractMode


class TestPeerRefs:
    def test_canonical_equality_is_structural(self):
        assert CanonicalPeerRef(address=b"a", code_hash="h") == CanonicalPeerRef(
            address=b"a", code_hash="h"
        )
        assert CanonicalPeerRef(address=b"a", code_hash="h") != CanonicalPeerRef(
            address=b"a", code_hash="other"
        )

    def test_canonical_json_uses_base64(self):
        ref = CanonicalPeerRef(address=b"\x00\xff", code_hash="h")
        raw = ref.model_dump_json()
        assert json.loads(raw)["address"] == "AP8="
        assert CanonicalPeerRef.model_validate_json(raw) == ref

    def test_human_rejects_extra_fields(self):
        with pytest.raises(ValidationError):
            HumanPeerRef(address="a", code_hash="h", extra="x")

    def test_refs_are_frozen(self):
        ref = HumanPeerRef(address="a", code_hash="h")
        with pytest.raises(ValidationError):
            ref.address = "b"


class TestParseExecuteMsg:
    def test_register(self):
        msg = parse_execute_msg(
            {"subscribe_to_migration_complete_event": {"address": "a", "code_hash": "h"}}
        )
        assert msg == RegisterMsg(address="a", code_hash="h", reciprocal_requested=False)

    def test_broadcast_with_base64_data(self):
        msg = parse_execute_msg(
            {
                "broadcast_migration_complete_notification": {
                    "addresses": ["x"],
                    "code_hash": "h",
                    "data": "eA==",
                }
            }
        )
        assert isinstance(msg, BroadcastMsg)
        assert msg.data == b"x"

    def test_broadcast_all_fields_optional(self):
        msg = parse_execute_msg({"broadcast_migration_complete_notification": {}})
        assert msg == BroadcastMsg()

    def test_broadcast_addresses_need_code_hash(self):
        with pytest.raises(InvalidMessageError):
            parse_execute_msg(
                {"broadcast_migration_complete_notification": {"addresses": ["x"]}}
            )

    def test_migrate(self):
        msg = parse_execute_msg(
            {"migrate": {"migrate_to": {"address": "v2", "code_hash": "h2", "entropy": "e"}}}
        )
        assert isinstance(msg, MigrateMsg)
        assert msg.migrate_to.address == "v2"

    def test_notification(self):
        msg = parse_execute_msg(
            {"migration_complete_notification": {"to": {"address": "v2", "code_hash": "h2"}}}
        )
        assert msg == MigrationCompleteNotification(to=HumanPeerRef(address="v2", code_hash="h2"))

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            [],
            {},
            {"migrate": {}, "subscribers": {}},
            {"unknown": {}},
            {"subscribe_to_migration_complete_event": {"address": "a"}},
            {"subscribe_to_migration_complete_event": {"address": "a", "code_hash": "h", "x": 1}},
            {"subscribers": {}},
        ],
    )
    def test_invalid(self, raw):
        with pytest.raises(InvalidMessageError):
            parse_execute_msg(raw)


class TestParseQueryMsg:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ({"migrated_from": {}}, MigratedFromQuery()),
            ({"subscribers": None}, SubscribersQuery()),
            ({"contract_mode": {}}, ContractModeQuery()),
        ],
    )
    def test_queries(self, raw, expected):
        assert parse_query_msg(raw) == expected

    def test_execute_tag_is_not_a_query(self):
        with pytest.raises(InvalidMessageError):
            parse_query_msg({"migrate": {}})


class TestWireEncoding:
    def test_register_wire_form(self):
        msg = RegisterMsg(address="a", code_hash="h", reciprocal_requested=True)
        assert msg.to_wire() == {
            "subscribe_to_migration_complete_event": {
                "address": "a",
                "code_hash": "h",
                "reciprocal_requested": True,
            }
        }

    def test_encode_is_parseable(self):
        msg = MigrationCompleteNotification(
            to=HumanPeerRef(address="v2", code_hash="h2"), data=b"payload"
        )
        assert parse_execute_msg(json.loads(msg.encode())) == msg

    def test_answers(self):
        assert MigrationInfo().to_wire() == {"migration_info": {"contract": None}}
        assert ContractModeInfo(mode=ContractMode.MIGRATED_OUT).to_wire() == {
            "contract_mode_info": {"mode": "migrated_out"}
        }
        assert SubscriberInfo().to_wire() == {
            "subscriber_info": {"subscribers": [], "remaining_slots": None}
        }


class TestOutboundAndResponse:
    def test_outbound_to_dict(self):
        message = OutboundMessage(
            recipient="a",
            code_hash="h",
            body=RegisterMsg(address="v1", code_hash="h1"),
        )
        assert message.to_dict() == {
            "recipient": "a",
            "code_hash": "h",
            "body": {
                "subscribe_to_migration_complete_event": {
                    "address": "v1",
                    "code_hash": "h1",
                    "reciprocal_requested": False,
                }
            },
        }
        assert message.encode() == message.body.encode()

    def test_response_attributes_are_strings(self):
        response = Response().add_attribute("count", 2).add_attribute("ok", True)
        assert response.attributes == {"count": "2", "ok": "True"}
