"""
File-based storage backend.

Keeps a whole namespace in one JSON document::

    ~/.migratable/storage/<namespace>/
    ├── .lock
    └── store.json      # {"<hex key>": "<base64 value>", ...}

A batch is merged into the current document, written to a temporary file
and moved into place with a single ``os.replace``.  Either every write of
the batch is visible afterwards or none is.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional

from migratable.storage.base import BaseStorage, register_backend
from migratable.types import StorageType

logger = logging.getLogger(__name__)

STORE_FILE = "store.json"
LOCK_FILE = ".lock"


@contextmanager
def _exclusive_lock(path: Path) -> Iterator[None]:
    """Hold an advisory exclusive lock on ``path`` for the block."""
    with open(path, "a+") as handle:
        if sys.platform == "win32":
            import msvcrt

            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)
            try:
                yield
            finally:
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
        else:
            import fcntl

            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@register_backend(StorageType.FILE)
class FileStorage(BaseStorage):
    """
    File-based storage backend.

    Ideal for:
    - Local development
    - Single-machine deployments driven by the CLI
    - Testing
    """

    def __init__(
        self,
        namespace: str = "default",
        base_dir: Optional[str] = None,
    ):
        super().__init__(namespace=namespace)
        self.base_dir = Path(
            base_dir or os.environ.get(
                "MIGRATABLE_STORAGE_DIR",
                os.path.expanduser("~/.migratable/storage")
            )
        )
        self.namespace_dir = self.base_dir / namespace
        self.namespace_dir.mkdir(parents=True, exist_ok=True)
        self.store_path = self.namespace_dir / STORE_FILE
        self._lock_depth = 0
        logger.debug("FileStorage initialized at %s", self.namespace_dir)

    def get(self, key: bytes) -> Optional[bytes]:
        return self._read().get(key)

    def set(self, key: bytes, value: bytes) -> None:
        self.write_batch({key: value})

    def write_batch(self, writes: Mapping[bytes, bytes]) -> None:
        with self.locked():
            data = self._read()
            data.update({k: bytes(v) for k, v in writes.items()})
            self._replace(data)
        logger.debug("Wrote %d key(s) to %s", len(writes), self.store_path)

    @contextmanager
    def locked(self) -> Iterator[None]:
        # flock is per open file description, so nested acquisition would
        # deadlock against ourselves.
        if self._lock_depth:
            self._lock_depth += 1
            try:
                yield
            finally:
                self._lock_depth -= 1
            return
        with _exclusive_lock(self.namespace_dir / LOCK_FILE):
            self._lock_depth = 1
            try:
                yield
            finally:
                self._lock_depth = 0

    def _read(self) -> Dict[bytes, bytes]:
        if not self.store_path.exists():
            return {}
        with open(self.store_path, encoding="utf-8") as f:
            raw = json.load(f)
        return {bytes.fromhex(k): base64.b64decode(v) for k, v in raw.items()}

    def _replace(self, data: Mapping[bytes, bytes]) -> None:
        document = {
            k.hex(): base64.b64encode(v).decode("ascii") for k, v in sorted(data.items())
        }
        fd, tmp_name = tempfile.mkstemp(dir=self.namespace_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_name, self.store_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
