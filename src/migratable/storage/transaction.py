"""
All-or-nothing storage transactions.

Every protocol call runs inside a :class:`Transaction`: reads see the
call's own staged writes, and nothing reaches the backend unless the call
returns normally.  The backend's ``locked()`` section is held for the
whole call, which makes the read-modify-write cycle atomic at the storage
boundary.

Usage::

    from migratable.storage import MemoryStorage, Transaction

    storage = MemoryStorage()
    with Transaction(storage) as txn:
        txn.set(b"key", b"value")
    # committed here; an exception inside the block discards the writes
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Dict, Optional, Type

from migratable.errors import StorageError
from migratable.storage.base import BaseStorage

logger = logging.getLogger(__name__)


class Transaction:
    """Buffers writes against a backend and commits them together."""

    def __init__(self, storage: BaseStorage):
        self.storage = storage
        self._pending: Dict[bytes, bytes] = {}
        self._lock_cm = None
        self._closed = False

    def __enter__(self) -> "Transaction":
        self._lock_cm = self.storage.locked()
        try:
            self._lock_cm.__enter__()
        except OSError as exc:
            raise StorageError(f"Failed to lock storage: {exc}") from exc
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self._lock_cm.__exit__(None, None, None)

    def get(self, key: bytes) -> Optional[bytes]:
        if key in self._pending:
            return self._pending[key]
        try:
            return self.storage.get(key)
        except OSError as exc:
            raise StorageError(f"Failed to read key {key!r}: {exc}") from exc

    def set(self, key: bytes, value: bytes) -> None:
        if self._closed:
            raise StorageError("Transaction is already closed")
        self._pending[key] = bytes(value)

    def commit(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._pending:
            return
        try:
            self.storage.write_batch(self._pending)
        except OSError as exc:
            raise StorageError(f"Failed to commit {len(self._pending)} write(s): {exc}") from exc
        logger.debug("Committed %d write(s) to %s", len(self._pending), self.storage.namespace)
        self._pending.clear()

    def rollback(self) -> None:
        if self._pending:
            logger.debug("Discarding %d staged write(s)", len(self._pending))
        self._pending.clear()
        self._closed = True
