"""
Admin authorization.

Identity verification itself is external (signed permits, credential
checks, ...); the core only consumes it as a boolean capability.  The
default implementation compares canonical addresses.

Example:
    authorizer = CanonicalAdminAuthorizer()

    # Check (returns bool)
    authorizer.verify(caller=b"alice", admin=b"alice")

    # Require (raises UnauthorizedError on denial)
    require_admin(authorizer, caller=b"bob", admin=b"alice")
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional, Protocol, runtime_checkable

from migratable.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@runtime_checkable
class Authorizer(Protocol):
    """External authorization capability."""

    def verify(self, caller: bytes, admin: bytes) -> bool:
        """Return True if ``caller`` may act as ``admin``."""
        ...


class CanonicalAdminAuthorizer:
    """Caller is the admin iff their canonical addresses are equal."""

    def verify(self, caller: bytes, admin: bytes) -> bool:
        return hmac.compare_digest(caller, admin)


def require_admin(
    authorizer: Authorizer,
    caller: bytes,
    admin: Optional[bytes],
) -> None:
    """
    Hard enforcement: raises UnauthorizedError unless ``caller`` is the admin.

    A contract with no admin recorded rejects every admin command.
    """
    if admin is None or not authorizer.verify(caller, admin):
        logger.warning("Admin check failed: caller=%r", caller)
        raise UnauthorizedError()
    logger.debug("Admin check passed: caller=%r", caller)
