"""In-memory storage backend for tests and embedded hosts."""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from migratable.storage.base import BaseStorage, register_backend
from migratable.types import StorageType


@register_backend(StorageType.MEMORY)
class MemoryStorage(BaseStorage):
    """Dict-backed storage.  Not shared between processes."""

    def __init__(self, namespace: str = "default", data: Optional[Dict[bytes, bytes]] = None):
        super().__init__(namespace=namespace)
        self._data: Dict[bytes, bytes] = dict(data or {})

    def get(self, key: bytes) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        self._data[key] = bytes(value)

    def write_batch(self, writes: Mapping[bytes, bytes]) -> None:
        self._data.update({k: bytes(v) for k, v in writes.items()})

    def snapshot(self) -> Dict[bytes, bytes]:
        """Copy of the stored data."""
        return dict(self._data)
