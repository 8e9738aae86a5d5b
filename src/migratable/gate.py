"""
Mode gate consulted by every mutating protocol before it touches state.

Usage::

    from migratable.gate import check_contract_mode

    check_contract_mode({ContractMode.RUNNING}, current_mode)
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from migratable.errors import OperationUnavailableError
from migratable.types import ContractMode

logger = logging.getLogger(__name__)


def build_operation_unavailable_error(
    contract_mode: ContractMode,
    error_msg: Optional[str] = None,
) -> OperationUnavailableError:
    """Build the error returned when ``contract_mode`` rejects an operation."""
    return OperationUnavailableError(contract_mode, error_msg)


def check_contract_mode(
    allowed_contract_modes: Iterable[ContractMode],
    contract_mode: ContractMode,
    error_msg: Optional[str] = None,
) -> None:
    """Raise ``OperationUnavailableError`` unless ``contract_mode`` is allowed.

    Pure: reads nothing and writes nothing.
    """
    allowed = frozenset(allowed_contract_modes)
    if contract_mode not in allowed:
        logger.warning(
            "Operation rejected in contract mode %s (allowed: %s)",
            contract_mode.value,
            sorted(m.value for m in allowed),
        )
        raise build_operation_unavailable_error(contract_mode, error_msg)
