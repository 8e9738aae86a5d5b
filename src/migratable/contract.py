"""
Message-surface entry point for a migratable contract instance.

:class:`MigratableContract` binds a storage namespace, the contract's own
identity and the external capabilities together, parses externally
tagged messages and runs each execute call inside one
:class:`~migratable.storage.Transaction`.  A call either commits all of its
writes or, on any error, none of them.  Success events are only emitted
once the transaction has committed.

Usage::

    from migratable.contract import MigratableContract
    from migratable.models import Env, HumanPeerRef, MessageInfo
    from migratable.storage import MemoryStorage

    contract = MigratableContract(
        MemoryStorage(),
        Env(contract=HumanPeerRef(address="v1", code_hash="h1")),
    )
    contract.instantiate(MessageInfo(sender="admin"))
    response = contract.execute(
        MessageInfo(sender="admin"),
        {"subscribe_to_migration_complete_event": {"address": "listener", "code_hash": "lh"}},
    )
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from migratable import otel
from migratable.addressing import Addressing, PrefixedAddressing
from migratable.auth import Authorizer
from migratable.config import MigratableConfig, get_config
from migratable.coordinator import CoordinatorSettings, MigrationCoordinator
from migratable.errors import MigratableError, StorageError
from migratable.logger import MigrationEventLogger
from migratable.models import (
    BroadcastMsg,
    ContractModeQuery,
    Env,
    ExecuteMsg,
    HumanPeerRef,
    MessageInfo,
    MigratedFromQuery,
    MigratedToQuery,
    MigrateMsg,
    MigrationCompleteNotification,
    QueryMsg,
    RegisterMsg,
    Response,
    SubscribersQuery,
    WireMessage,
    parse_execute_msg,
    parse_query_msg,
)
from migratable.query import query_contract_mode, query_migrated_info, query_subscribers
from migratable.replies import DeliveryResult, humanize_notification_error
from migratable.state import ContractState
from migratable.storage import BaseStorage, Transaction, get_storage

logger = logging.getLogger(__name__)


class MigratableContract:
    """One contract instance: storage namespace plus coordinator."""

    def __init__(
        self,
        storage: BaseStorage,
        env: Env,
        addressing: Optional[Addressing] = None,
        settings: Optional[CoordinatorSettings] = None,
        authorizer: Optional[Authorizer] = None,
        service_name: str = "migratable",
    ):
        self.storage = storage
        self.env = env
        self.addressing = addressing or PrefixedAddressing()
        self.events = MigrationEventLogger(
            contract=env.contract.address, service_name=service_name
        )
        self.coordinator = MigrationCoordinator(
            env,
            self.addressing,
            settings=settings,
            authorizer=authorizer,
            events=self.events,
        )

    @classmethod
    def from_config(
        cls,
        contract: Optional[HumanPeerRef] = None,
        config: Optional[MigratableConfig] = None,
        settings: Optional[CoordinatorSettings] = None,
    ) -> "MigratableContract":
        """Build an instance from ``MIGRATABLE_*`` configuration.

        ``contract`` defaults to the identity recorded at instantiation.
        """
        config = config or get_config()
        storage = get_storage(config=config)
        if contract is None:
            contract = ContractState(storage).identity.contract()
            if contract is None:
                raise StorageError(
                    f"Namespace '{config.namespace}' holds no instantiated contract"
                )
        return cls(
            storage,
            Env(contract=contract),
            addressing=PrefixedAddressing(prefix=config.address_prefix),
            settings=settings or CoordinatorSettings.from_config(config),
            service_name=config.service_name,
        )

    @property
    def settings(self) -> CoordinatorSettings:
        return self.coordinator.settings

    # -- execute ---------------------------------------------------------------

    def instantiate(
        self,
        info: MessageInfo,
        admin: Optional[str] = None,
        migrated_from: Optional[HumanPeerRef] = None,
        migration_secret: bytes = b"",
    ) -> Response:
        return self._run(
            "instantiate",
            lambda state: self.coordinator.instantiate(
                state, info, admin, migrated_from, migration_secret
            ),
        )

    def execute(
        self,
        info: MessageInfo,
        msg: Union[ExecuteMsg, dict[str, Any]],
    ) -> Response:
        """Parse (if needed) and run one execute message."""
        if isinstance(msg, dict):
            try:
                msg = parse_execute_msg(msg)
            except MigratableError as exc:
                self._rejected("execute", exc)
                raise
        return self._run(msg.tag, lambda state: self._dispatch(state, info, msg))

    def _dispatch(self, state: ContractState, info: MessageInfo, msg: ExecuteMsg) -> Response:
        if isinstance(msg, RegisterMsg):
            return self.coordinator.register(state, info, msg)
        if isinstance(msg, BroadcastMsg):
            return self.coordinator.broadcast(state, msg)
        if isinstance(msg, MigrateMsg):
            return self.coordinator.migrate(state, info, msg)
        if isinstance(msg, MigrationCompleteNotification):
            return self.coordinator.on_migration_notification(state, info, msg)
        raise TypeError(f"Unsupported execute message: {type(msg).__name__}")

    def _run(self, operation: str, call) -> Response:
        with otel.tracer.start_as_current_span(f"migratable.execute.{operation}"):
            try:
                with Transaction(self.storage) as txn:
                    response = call(ContractState(txn))
            except MigratableError as exc:
                self._rejected(operation, exc)
                raise
            response.flush_events()
            return response

    def _rejected(self, operation: str, exc: MigratableError) -> None:
        self.events.log_rejected(operation, exc.code.value, exc.message)
        otel.emit_rejected(operation, exc.code.value, exc.message)

    # -- reply -----------------------------------------------------------------

    def reply(self, result: DeliveryResult) -> None:
        """Handle a delivery result reported by the host runtime.

        Raises the interpreted error for failed deliveries.
        """
        error = humanize_notification_error(result)
        if error is not None:
            self._rejected("reply", error)
            raise error

    # -- query -----------------------------------------------------------------

    def query(self, msg: Union[QueryMsg, dict[str, Any]]) -> WireMessage:
        if isinstance(msg, dict):
            msg = parse_query_msg(msg)
        state = ContractState(self.storage)
        if isinstance(msg, MigratedFromQuery):
            return query_migrated_info(state, self.addressing, migrated_from=True)
        if isinstance(msg, MigratedToQuery):
            return query_migrated_info(state, self.addressing, migrated_from=False)
        if isinstance(msg, SubscribersQuery):
            return query_subscribers(state, self.addressing)
        if isinstance(msg, ContractModeQuery):
            return query_contract_mode(state)
        raise TypeError(f"Unsupported query message: {type(msg).__name__}")
