"""
Migration coordination protocols.

:class:`MigrationCoordinator` implements the lifecycle of a migratable
contract against an explicit :class:`~migratable.state.ContractState`:

- **instantiate**: mode RUNNING, admin, optional slot limit, optional
  ``MigratedFrom`` record.
- **register**: add a subscriber to the registry (gated: RUNNING),
  optionally asking it to subscribe back.
- **migrate**: record the successor and enter MIGRATED_OUT (admin only).
- **broadcast**: one ``MigrationCompleteNotification`` per recipient
  (gated: MIGRATED_OUT).
- **on_migration_notification**: rewrite a moved subscriber's registry
  entry in place.

Every method runs the mode gate first and raises before writing anything
when a precondition fails.  Methods never commit; callers run them inside
a :class:`~migratable.storage.Transaction` (see
:class:`~migratable.contract.MigratableContract`).  Log and span events
are attached to the returned :class:`~migratable.models.Response` and
fire only once that transaction commits.

Variants are selected with :class:`CoordinatorSettings` rather than
separate types::

    settings = CoordinatorSettings(
        admin_gated_registration=True,
        registration_slots=8,
        consume_slot_on_duplicate=False,
    )
    coordinator = MigrationCoordinator(env, PrefixedAddressing(), settings)
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from migratable import otel
from migratable.addressing import Addressing, canonicalize_peer, humanize_peer
from migratable.auth import Authorizer, CanonicalAdminAuthorizer, require_admin
from migratable.config import MigratableConfig, get_config
from migratable.errors import AddressInvalidError, OperationUnavailableError
from migratable.gate import check_contract_mode
from migratable.logger import MigrationEventLogger
from migratable.models import (
    BroadcastMsg,
    Env,
    HumanPeerRef,
    MessageInfo,
    MigrateMsg,
    MigrationCompleteNotification,
    MigrationRecord,
    OutboundMessage,
    RegisterMsg,
    Response,
)
from migratable.state import ContractState
from migratable.types import ContractMode

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class CoordinatorSettings(BaseModel):
    """Capability set of one coordinator deployment."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    admin_gated_registration: bool = Field(
        False, description="Only the admin may register subscribers"
    )
    registration_slots: Optional[int] = Field(
        None, ge=0, description="Initial registration capacity (None = unlimited)"
    )
    reciprocal_subscriptions: bool = Field(
        True, description="Honour reciprocal subscription requests"
    )
    consume_slot_on_duplicate: bool = Field(
        True,
        description=(
            "Take a slot before the duplicate check, so re-registering a "
            "known subscriber still consumes capacity"
        ),
    )

    @classmethod
    def from_config(cls, config: Optional[MigratableConfig] = None) -> "CoordinatorSettings":
        config = config or get_config()
        return cls(
            admin_gated_registration=config.admin_gated_registration,
            registration_slots=config.registration_slots,
            reciprocal_subscriptions=config.reciprocal_subscriptions,
            consume_slot_on_duplicate=config.consume_slot_on_duplicate,
        )


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def derive_migration_secret(entropy: str, contract: bytes, migrate_to: bytes) -> bytes:
    """Secret shared between a contract and its successor."""
    digest = hashlib.sha256()
    for part in (entropy.encode("utf-8"), contract, migrate_to):
        digest.update(len(part).to_bytes(4, "big"))
        digest.update(part)
    return digest.digest()


def build_migration_complete_notifications(
    migrated_to: HumanPeerRef,
    recipients: Sequence[HumanPeerRef],
    data: Optional[bytes] = None,
) -> list[OutboundMessage]:
    """One notification per recipient, in recipient order."""
    notification = MigrationCompleteNotification(to=migrated_to, data=data)
    return [
        OutboundMessage(
            recipient=recipient.address,
            code_hash=recipient.code_hash,
            body=notification,
        )
        for recipient in recipients
    ]


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class MigrationCoordinator:
    """Runs the migration lifecycle protocols for one contract instance."""

    def __init__(
        self,
        env: Env,
        addressing: Addressing,
        settings: Optional[CoordinatorSettings] = None,
        authorizer: Optional[Authorizer] = None,
        events: Optional[MigrationEventLogger] = None,
    ):
        self.env = env
        self.addressing = addressing
        self.settings = settings or CoordinatorSettings()
        self.authorizer = authorizer or CanonicalAdminAuthorizer()
        self.events = events or MigrationEventLogger(contract=env.contract.address)

    @property
    def contract(self) -> HumanPeerRef:
        return self.env.contract

    # -- instantiate -----------------------------------------------------------

    def instantiate(
        self,
        state: ContractState,
        info: MessageInfo,
        admin: Optional[str] = None,
        migrated_from: Optional[HumanPeerRef] = None,
        migration_secret: bytes = b"",
    ) -> Response:
        """Initialize a fresh instance in RUNNING mode.

        ``admin`` defaults to the caller.  A successor passes its
        predecessor as ``migrated_from`` together with the shared secret.
        """
        admin_address = admin or info.sender
        admin_raw = self.addressing.canonicalize(admin_address)
        predecessor = (
            canonicalize_peer(self.addressing, migrated_from)
            if migrated_from is not None
            else None
        )

        state.mode.initialize()
        state.identity.save_contract(self.contract)
        state.identity.save_admin(admin_raw)
        state.slots.initialize(self.settings.registration_slots)
        if predecessor is not None:
            state.migration.set_migrated_from(
                MigrationRecord(peer=predecessor, secret=migration_secret)
            )

        response = Response().add_attribute("action", "instantiate")
        response.add_attribute("admin", admin_address)
        response.on_commit(
            lambda: self.events.log_instantiated(
                admin=admin_address,
                registration_slots=self.settings.registration_slots,
                migrated_from=migrated_from.address if migrated_from else None,
            )
        )
        return response

    # -- register --------------------------------------------------------------

    def register(
        self,
        state: ContractState,
        info: MessageInfo,
        msg: RegisterMsg,
        mode: Optional[ContractMode] = None,
    ) -> Response:
        """Register ``msg.address`` to be notified once this contract migrates.

        Registering a known ``(address, code_hash)`` pair is a no-op apart
        from slot accounting (see ``consume_slot_on_duplicate``).
        """
        mode = mode if mode is not None else state.mode.load()
        check_contract_mode([ContractMode.RUNNING], mode)

        if msg.reciprocal_requested and not self.settings.reciprocal_subscriptions:
            raise OperationUnavailableError(
                mode, "Reciprocal subscriptions are not supported by this contract."
            )
        if self.settings.admin_gated_registration:
            require_admin(
                self.authorizer,
                self.addressing.canonicalize(info.sender),
                state.identity.admin(),
            )

        if self.settings.consume_slot_on_duplicate:
            remaining = state.slots.consume()
            peer = canonicalize_peer(
                self.addressing, HumanPeerRef(address=msg.address, code_hash=msg.code_hash)
            )
            inserted = state.subscribers.insert(peer)
        else:
            peer = canonicalize_peer(
                self.addressing, HumanPeerRef(address=msg.address, code_hash=msg.code_hash)
            )
            if state.subscribers.contains(peer):
                remaining = state.slots.remaining()
                inserted = False
            else:
                remaining = state.slots.consume()
                inserted = state.subscribers.insert(peer)

        response = Response().add_attribute("action", "register")
        response.add_attribute("subscriber", msg.address)
        response.add_attribute("inserted", inserted)
        if remaining is not None:
            response.add_attribute("remaining_slots", remaining)
        if msg.reciprocal_requested:
            response.add_message(self._reciprocal_request(msg))
        response.on_commit(lambda: self._announce_register(msg, inserted, remaining))
        return response

    def _announce_register(
        self, msg: RegisterMsg, inserted: bool, remaining: Optional[int]
    ) -> None:
        if inserted:
            logger.info("Registered subscriber %s (%s)", msg.address, msg.code_hash)
            self.events.log_registered(
                subscriber=msg.address,
                code_hash=msg.code_hash,
                remaining_slots=remaining,
                reciprocal_requested=msg.reciprocal_requested,
            )
        else:
            logger.debug("Subscriber %s (%s) already registered", msg.address, msg.code_hash)
            self.events.log_duplicate(
                subscriber=msg.address, code_hash=msg.code_hash, remaining_slots=remaining
            )
        otel.emit_register(msg.address, inserted, remaining, msg.reciprocal_requested)

    def _reciprocal_request(self, msg: RegisterMsg) -> OutboundMessage:
        # The embedded request never asks for another reciprocal, bounding
        # the exchange to one round.
        return OutboundMessage(
            recipient=msg.address,
            code_hash=msg.code_hash,
            body=RegisterMsg(
                address=self.contract.address,
                code_hash=self.contract.code_hash,
                reciprocal_requested=False,
            ),
        )

    # -- migrate ---------------------------------------------------------------

    def migrate(
        self,
        state: ContractState,
        info: MessageInfo,
        msg: MigrateMsg,
    ) -> Response:
        """Designate the successor instance and enter MIGRATED_OUT."""
        mode = state.mode.load()
        check_contract_mode([ContractMode.RUNNING], mode)
        require_admin(
            self.authorizer,
            self.addressing.canonicalize(info.sender),
            state.identity.admin(),
        )

        target = msg.migrate_to
        successor = canonicalize_peer(
            self.addressing, HumanPeerRef(address=target.address, code_hash=target.code_hash)
        )
        own_address = self.addressing.canonicalize(self.contract.address)
        if successor.address == own_address:
            raise AddressInvalidError(target.address, "contract cannot migrate to itself")

        secret = derive_migration_secret(target.entropy, own_address, successor.address)
        state.migration.set_migrated_to(MigrationRecord(peer=successor, secret=secret))
        state.mode.transition(ContractMode.MIGRATED_OUT)

        response = Response().add_attribute("action", "migrate")
        response.add_attribute("migrated_to", target.address)
        response.on_commit(lambda: self._announce_migrate(target.address, target.code_hash))
        return response

    def _announce_migrate(self, address: str, code_hash: str) -> None:
        logger.info("Contract migrated to %s (%s)", address, code_hash)
        self.events.log_migrated(migrated_to=address, code_hash=code_hash)
        otel.emit_migrate(address, code_hash)

    # -- broadcast -------------------------------------------------------------

    def broadcast(
        self,
        state: ContractState,
        msg: BroadcastMsg,
        mode: Optional[ContractMode] = None,
    ) -> Response:
        """Build a ``MigrationCompleteNotification`` for every recipient.

        Recipients are ``msg.addresses`` (sharing ``msg.code_hash``) or, when
        omitted, every registered subscriber.  One invalid address fails the
        whole batch.
        """
        mode = mode if mode is not None else state.mode.load()
        check_contract_mode([ContractMode.MIGRATED_OUT], mode)

        record = state.migration.migrated_to()
        if record is None:
            raise OperationUnavailableError(mode, "Migration target has not been recorded.")
        migrated_to = humanize_peer(self.addressing, record.peer)

        if msg.addresses is None:
            recipients = [
                humanize_peer(self.addressing, peer) for peer in state.subscribers.load()
            ]
        else:
            recipients = []
            for address in msg.addresses:
                self.addressing.canonicalize(address)
                recipients.append(HumanPeerRef(address=address, code_hash=msg.code_hash))

        messages = build_migration_complete_notifications(migrated_to, recipients, msg.data)

        response = Response(messages=messages).add_attribute("action", "broadcast")
        response.add_attribute("recipients", len(messages))
        response.on_commit(
            lambda: self._announce_broadcast(migrated_to, len(messages), msg.data is not None)
        )
        return response

    def _announce_broadcast(
        self, migrated_to: HumanPeerRef, recipients: int, has_data: bool
    ) -> None:
        logger.info(
            "Built %d migration complete notification(s) for %s",
            recipients,
            migrated_to.address,
        )
        self.events.log_broadcast(
            migrated_to=migrated_to.address, recipients=recipients, has_data=has_data
        )
        otel.emit_broadcast(migrated_to.address, recipients)

    # -- notification ----------------------------------------------------------

    def on_migration_notification(
        self,
        state: ContractState,
        info: MessageInfo,
        msg: MigrationCompleteNotification,
    ) -> Response:
        """Point the sender's registry entry at its new address.

        Matches on address only, since the code hash changes across a
        migration.  Unknown senders and a missing registry are ignored.
        """
        sender = self.addressing.canonicalize(info.sender)
        new_peer = canonicalize_peer(self.addressing, msg.to)

        position = state.subscribers.rewrite_address(sender, new_peer)

        response = Response().add_attribute("action", "migration_complete_notification")
        response.add_attribute("rewritten", position is not None)
        response.on_commit(lambda: self._announce_rewrite(info.sender, msg.to.address, position))
        return response

    def _announce_rewrite(self, sender: str, new_address: str, position: Optional[int]) -> None:
        if position is None:
            logger.debug("Ignoring migration notification from unknown sender %s", sender)
        else:
            logger.info("Subscriber %s moved to %s (position %d)", sender, new_address, position)
            self.events.log_rewritten(sender=sender, new_address=new_address, position=position)
        otel.emit_rewrite(sender, new_address, position)
