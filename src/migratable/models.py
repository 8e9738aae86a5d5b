"""
Pydantic v2 models for peer references, migration records and the
externally tagged message surface.

Peer references come in two non-interchangeable forms:

- :class:`HumanPeerRef`: display/transport form used in messages.
- :class:`CanonicalPeerRef`: storage/comparison form used as registry key.

Conversion between them always goes through an
:class:`~migratable.addressing.Addressing` capability and can fail with
``AddressInvalidError``; neither model coerces into the other.

Wire messages are externally tagged snake_case JSON objects::

    {"subscribe_to_migration_complete_event":
        {"address": "addr1", "code_hash": "hash1", "reciprocal_requested": false}}

Usage::

    from migratable.models import parse_execute_msg

    msg = parse_execute_msg(json.loads(raw))
"""

from __future__ import annotations

import json
from typing import Any, Callable, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, model_validator

from migratable.errors import InvalidMessageError
from migratable.types import ContractMode

_BYTES_CONFIG = ConfigDict(
    extra="forbid",
    frozen=True,
    ser_json_bytes="base64",
    val_json_bytes="base64",
)


# ---------------------------------------------------------------------------
# Peer references and records
# ---------------------------------------------------------------------------


class HumanPeerRef(BaseModel):
    """Externally presented contract reference."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    address: str = Field(..., description="Human-readable contract address")
    code_hash: str = Field(..., description="Code hash of the contract instance")


class CanonicalPeerRef(BaseModel):
    """Storage-stable contract reference.

    Equality is structural over ``(address, code_hash)``, which is the
    registry uniqueness key.
    """

    model_config = _BYTES_CONFIG

    address: bytes
    code_hash: str = ""


class MigrationRecord(BaseModel):
    """A ``MigratedFrom`` or ``MigratedTo`` record."""

    model_config = _BYTES_CONFIG

    peer: CanonicalPeerRef
    secret: bytes = b""


class MigrateTo(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    address: str
    code_hash: str
    entropy: str = Field(..., description="Caller supplied entropy for the migration secret")


class Env(BaseModel):
    """Execution environment: the identity of this contract instance."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    contract: HumanPeerRef


class MessageInfo(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    sender: str


# ---------------------------------------------------------------------------
# Wire messages
# ---------------------------------------------------------------------------


class WireMessage(BaseModel):
    """Base for externally tagged messages."""

    model_config = _BYTES_CONFIG

    tag: ClassVar[str]

    def to_wire(self) -> dict[str, Any]:
        return {self.tag: self.model_dump(mode="json")}

    def encode(self) -> bytes:
        return json.dumps(self.to_wire(), sort_keys=True).encode("utf-8")


class RegisterMsg(WireMessage):
    """Ask a contract to notify ``address`` once it has migrated."""

    tag: ClassVar[str] = "subscribe_to_migration_complete_event"

    address: str
    code_hash: str
    reciprocal_requested: bool = False


class BroadcastMsg(WireMessage):
    """Send ``MigrationCompleteNotification`` to listeners.

    ``addresses`` omitted means every registered subscriber, each with its
    own stored code hash.  When given, all addresses share ``code_hash``.
    """

    tag: ClassVar[str] = "broadcast_migration_complete_notification"

    addresses: Optional[list[str]] = None
    code_hash: Optional[str] = None
    data: Optional[bytes] = None

    @model_validator(mode="after")
    def _check_code_hash(self) -> "BroadcastMsg":
        if self.addresses is not None and self.code_hash is None:
            raise ValueError("code_hash is required when addresses are given")
        return self


class MigrateMsg(WireMessage):
    tag: ClassVar[str] = "migrate"

    migrate_to: MigrateTo


class MigrationCompleteNotification(WireMessage):
    """Sent to listeners once the sender has migrated to ``to``."""

    tag: ClassVar[str] = "migration_complete_notification"

    to: HumanPeerRef
    data: Optional[bytes] = None


class MigratedFromQuery(WireMessage):
    tag: ClassVar[str] = "migrated_from"


class MigratedToQuery(WireMessage):
    tag: ClassVar[str] = "migrated_to"


class SubscribersQuery(WireMessage):
    tag: ClassVar[str] = "subscribers"


class ContractModeQuery(WireMessage):
    tag: ClassVar[str] = "contract_mode"


class MigrationInfo(WireMessage):
    tag: ClassVar[str] = "migration_info"

    contract: Optional[HumanPeerRef] = None


class SubscriberInfo(WireMessage):
    tag: ClassVar[str] = "subscriber_info"

    subscribers: list[HumanPeerRef] = Field(default_factory=list)
    remaining_slots: Optional[int] = None


class ContractModeInfo(WireMessage):
    tag: ClassVar[str] = "contract_mode_info"

    mode: ContractMode


ExecuteMsg = Union[RegisterMsg, BroadcastMsg, MigrateMsg, MigrationCompleteNotification]
QueryMsg = Union[MigratedFromQuery, MigratedToQuery, SubscribersQuery, ContractModeQuery]

EXECUTE_MESSAGES: dict[str, type[WireMessage]] = {
    cls.tag: cls
    for cls in (RegisterMsg, BroadcastMsg, MigrateMsg, MigrationCompleteNotification)
}
QUERY_MESSAGES: dict[str, type[WireMessage]] = {
    cls.tag: cls
    for cls in (MigratedFromQuery, MigratedToQuery, SubscribersQuery, ContractModeQuery)
}


def _parse_tagged(raw: Any, table: dict[str, type[WireMessage]]) -> WireMessage:
    if not isinstance(raw, dict) or len(raw) != 1:
        raise InvalidMessageError(
            "Expected a single-key object naming the message, "
            f"got {type(raw).__name__}"
        )
    ((tag, body),) = raw.items()
    cls = table.get(tag)
    if cls is None:
        raise InvalidMessageError(f"Unknown message '{tag}'")
    try:
        return cls.model_validate_json(json.dumps(body if body is not None else {}))
    except ValidationError as exc:
        raise InvalidMessageError(f"Invalid '{tag}' message: {exc}") from exc


def parse_execute_msg(raw: Any) -> ExecuteMsg:
    """Parse an externally tagged execute message."""
    return _parse_tagged(raw, EXECUTE_MESSAGES)  # type: ignore[return-value]


def parse_query_msg(raw: Any) -> QueryMsg:
    """Parse an externally tagged query message."""
    return _parse_tagged(raw, QUERY_MESSAGES)  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Outbound messages and responses
# ---------------------------------------------------------------------------


class OutboundMessage(BaseModel):
    """A request for asynchronous delivery by the host messaging runtime.

    This core only constructs these values; it never sends them.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    recipient: str
    code_hash: str
    body: Union[RegisterMsg, MigrationCompleteNotification]

    def encode(self) -> bytes:
        """Encoded body as delivered to ``recipient``."""
        return self.body.encode()

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient": self.recipient,
            "code_hash": self.code_hash,
            "body": self.body.to_wire(),
        }


class Response(BaseModel):
    """Result of a successful execute call.

    Lifecycle events (log lines, span events) are attached with
    :meth:`on_commit` and only emitted by :meth:`flush_events` once the
    call's writes have been committed.
    """

    model_config = ConfigDict(extra="forbid")

    messages: list[OutboundMessage] = Field(default_factory=list)
    attributes: dict[str, str] = Field(default_factory=dict)

    _on_commit: list[Callable[[], None]] = PrivateAttr(default_factory=list)

    def add_message(self, message: OutboundMessage) -> "Response":
        self.messages.append(message)
        return self

    def add_attribute(self, key: str, value: Any) -> "Response":
        self.attributes[key] = str(value)
        return self

    def on_commit(self, callback: Callable[[], None]) -> "Response":
        self._on_commit.append(callback)
        return self

    def flush_events(self) -> None:
        callbacks, self._on_commit = self._on_commit, []
        for callback in callbacks:
            callback()
