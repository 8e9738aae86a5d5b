"""
Storage abstraction layer for migratable.

Provides pluggable key-value backends plus the transaction and typed item
helpers used by the coordination core:

- ``MemoryStorage`` for tests and embedded hosts
- ``FileStorage`` for local, CLI-driven contract instances

Example:
    from migratable.storage import get_storage, StorageType, Transaction

    storage = get_storage(StorageType.FILE, namespace="my-contract")
    with Transaction(storage) as txn:
        ...
"""

from migratable.storage.base import (
    BaseStorage,
    StorageBackend,
    get_storage,
    register_backend,
)
from migratable.storage.file import FileStorage
from migratable.storage.item import Item
from migratable.storage.memory import MemoryStorage
from migratable.storage.transaction import Transaction
from migratable.types import StorageType

__all__ = [
    "BaseStorage",
    "StorageBackend",
    "StorageType",
    "get_storage",
    "register_backend",
    "FileStorage",
    "MemoryStorage",
    "Item",
    "Transaction",
]
