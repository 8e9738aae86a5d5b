"""
Typed single-value storage accessor.

An :class:`Item` binds one fixed byte key to a value type and handles
JSON encoding through a pydantic ``TypeAdapter``.

Usage::

    CONTRACT_MODE: Item[ContractMode] = Item(b"contract_mode", ContractMode)

    mode = CONTRACT_MODE.may_load(store)      # None when absent
    CONTRACT_MODE.save(store, ContractMode.RUNNING)
"""

from __future__ import annotations

from typing import Any, Generic, Optional, TypeVar

from pydantic import ConfigDict, TypeAdapter, ValidationError

from migratable.errors import StorageError
from migratable.storage.base import StorageBackend

T = TypeVar("T")


class Item(Generic[T]):
    """A value of type ``T`` stored under a fixed key."""

    def __init__(self, key: bytes, value_type: Any, config: Optional[ConfigDict] = None):
        self.key = key
        self._adapter: TypeAdapter[T] = TypeAdapter(value_type, config=config)

    def __repr__(self) -> str:
        return f"Item({self.key!r})"

    def may_load(self, store: StorageBackend) -> Optional[T]:
        raw = store.get(self.key)
        if raw is None:
            return None
        try:
            return self._adapter.validate_json(raw)
        except ValidationError as exc:
            raise StorageError(f"Corrupt value under key {self.key!r}: {exc}") from exc

    def save(self, store: StorageBackend, value: T) -> None:
        store.set(self.key, self._adapter.dump_json(value))

    def exists(self, store: StorageBackend) -> bool:
        return store.get(self.key) is not None
