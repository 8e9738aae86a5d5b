"""
migratable - Contract migration coordination.

Lets a contract announce that it has been superseded by a new instance and
propagates the new address to every contract that depends on it:

- A mode-gated lifecycle (``running`` -> ``migrated_out``)
- A capacity-bounded, duplicate-free subscriber registry
- Migration complete broadcasts, and in-place address rewrites on the
  receiving side

Example usage:
    from migratable import MigratableContract, Env, HumanPeerRef, MessageInfo
    from migratable.storage import MemoryStorage

    contract = MigratableContract(
        MemoryStorage(),
        Env(contract=HumanPeerRef(address="v1", code_hash="h1")),
    )
    contract.instantiate(MessageInfo(sender="admin"))
"""

__version__ = "0.1.0"
__all__ = [
    "MigratableContract",
    "MigrationCoordinator",
    "CoordinatorSettings",
    "ContractMode",
    "Env",
    "HumanPeerRef",
    "CanonicalPeerRef",
    "MessageInfo",
    "__version__",
]


# Lazy imports to keep ``import migratable`` free of OTel/pydantic-settings
def __getattr__(name: str):
    if name == "MigratableContract":
        from migratable.contract import MigratableContract
        return MigratableContract
    if name in ("MigrationCoordinator", "CoordinatorSettings"):
        from migratable import coordinator
        return getattr(coordinator, name)
    if name == "ContractMode":
        from migratable.types import ContractMode
        return ContractMode
    if name in ("Env", "HumanPeerRef", "CanonicalPeerRef", "MessageInfo"):
        from migratable import models
        return getattr(models, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
