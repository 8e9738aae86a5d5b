"""
Pytest configuration and fixtures for migratable tests.
"""

from __future__ import annotations

import os
from typing import Callable, Generator

import pytest

from migratable.addressing import PrefixedAddressing
from migratable.config import reset_config
from migratable.contract import MigratableContract
from migratable.coordinator import CoordinatorSettings, MigrationCoordinator
from migratable.loader import CoordinatorSettingsLoader
from migratable.models import Env, HumanPeerRef, MessageInfo
from migratable.state import ContractState
from migratable.storage import MemoryStorage


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_config(monkeypatch) -> Generator[None, None, None]:
    """Isolate every test from MIGRATABLE_* variables and the config singleton."""
    for key in list(os.environ):
        if key.startswith("MIGRATABLE_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    CoordinatorSettingsLoader.clear_cache()
    yield
    reset_config()


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def addressing() -> PrefixedAddressing:
    return PrefixedAddressing()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def state(storage: MemoryStorage) -> ContractState:
    return ContractState(storage)


@pytest.fixture
def env() -> Env:
    return Env(contract=HumanPeerRef(address="v1", code_hash="h1"))


@pytest.fixture
def admin() -> MessageInfo:
    return MessageInfo(sender="admin")


@pytest.fixture
def make_coordinator(env: Env, addressing: PrefixedAddressing) -> Callable[..., MigrationCoordinator]:
    """Build a coordinator with the given settings overrides."""
    def _make(**settings) -> MigrationCoordinator:
        return MigrationCoordinator(env, addressing, CoordinatorSettings(**settings))
    return _make


@pytest.fixture
def make_contract(
    storage: MemoryStorage, env: Env, addressing: PrefixedAddressing, admin: MessageInfo
) -> Callable[..., MigratableContract]:
    """Build and instantiate a contract with the given settings overrides."""
    def _make(**settings) -> MigratableContract:
        contract = MigratableContract(
            storage, env, addressing=addressing, settings=CoordinatorSettings(**settings)
        )
        contract.instantiate(admin)
        return contract
    return _make
