"""
Base storage protocol and factory.

The coordination core consumes storage as an opaque key-value capability:
fixed byte keys, one per logical record, and byte values.  Backends add
two things on top of ``get``/``set``:

- ``write_batch`` so a call's staged writes land together, and
- ``locked()`` so a read-modify-write cycle is atomic at the storage
  boundary when several processes share one backend.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, Mapping, Optional, Protocol, Type, runtime_checkable

from migratable.types import StorageType

if TYPE_CHECKING:
    from migratable.config import MigratableConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol defining the storage capability consumed by the core."""

    def get(self, key: bytes) -> Optional[bytes]:
        """Return the stored value, or None if the key is absent."""
        ...

    def set(self, key: bytes, value: bytes) -> None:
        """Store ``value`` under ``key``."""
        ...


class BaseStorage(ABC):
    """
    Abstract base class for storage backends.

    Provides common functionality and default implementations.
    """

    storage_type: StorageType

    def __init__(self, namespace: str = "default"):
        self.namespace = namespace

    @abstractmethod
    def get(self, key: bytes) -> Optional[bytes]:
        """Return the stored value, or None if the key is absent."""
        pass

    @abstractmethod
    def set(self, key: bytes, value: bytes) -> None:
        """Store ``value`` under ``key``."""
        pass

    def write_batch(self, writes: Mapping[bytes, bytes]) -> None:
        """Apply several writes.

        This default applies them one at a time; ``MemoryStorage`` and
        ``FileStorage`` override it so a batch lands all at once.
        """
        for key, value in writes.items():
            self.set(key, value)

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold exclusive access to the namespace for a read-modify-write cycle."""
        yield


# Storage backend registry
_BACKENDS: Dict[StorageType, Type[BaseStorage]] = {}


def register_backend(storage_type: StorageType):
    """Decorator to register a storage backend."""
    def decorator(cls: Type[BaseStorage]) -> Type[BaseStorage]:
        cls.storage_type = storage_type
        _BACKENDS[storage_type] = cls
        return cls
    return decorator


def get_storage(
    storage_type: Optional[StorageType | str] = None,
    namespace: Optional[str] = None,
    config: Optional["MigratableConfig"] = None,
    **kwargs: Any,
) -> BaseStorage:
    """
    Get a storage backend instance.

    Falls back to the configured ``MIGRATABLE_STORAGE_TYPE`` and
    ``MIGRATABLE_NAMESPACE`` when arguments are omitted.

    Args:
        storage_type: Explicit storage type to use
        namespace: Namespace (one contract instance per namespace)
        config: Configuration to read defaults from (global config if omitted)
        **kwargs: Additional backend-specific options

    Returns:
        Storage backend instance
    """
    # Import backends to register them
    from migratable.storage import file, memory  # noqa: F401
    from migratable.config import get_config

    config = config or get_config()
    if storage_type is None:
        storage_type = config.storage_type
    storage_type = StorageType(storage_type)
    if namespace is None:
        namespace = config.namespace

    if storage_type not in _BACKENDS:
        raise ValueError(f"Unknown storage type: {storage_type}")

    if storage_type == StorageType.FILE and "base_dir" not in kwargs:
        kwargs["base_dir"] = config.storage_dir

    backend_class = _BACKENDS[storage_type]
    logger.debug("Using %s storage for namespace %s", storage_type.value, namespace)
    return backend_class(namespace=namespace, **kwargs)
