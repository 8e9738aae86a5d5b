"""
Interpretation of notification delivery results.

The host runtime delivers outbound messages asynchronously and may report
the outcome back.  A subscriber that fails to validate a migration
complete notification has usually migrated itself; the operator then
needs to ask it to notify this contract of its new address.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator

from migratable.errors import (
    DeliveryError,
    MigratableError,
    MigrationCompleteNotificationFailedError,
)

logger = logging.getLogger(__name__)

_MIGRATED_SUBSCRIBER_MARKER = "failed to validate"


class DeliveryResult(BaseModel):
    """Outcome of delivering one outbound message."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    recipient: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @model_validator(mode="after")
    def _check_error(self) -> "DeliveryResult":
        if self.error is not None and not self.error:
            raise ValueError("error must be non-empty when set")
        return self


def humanize_notification_error(result: DeliveryResult) -> Optional[MigratableError]:
    """Translate a failed notification delivery into a taxonomy error.

    Returns None for a successful delivery.
    """
    if result.ok:
        return None
    if _MIGRATED_SUBSCRIBER_MARKER in result.error:
        logger.warning(
            "Subscriber %s rejected migration notification; it has likely migrated",
            result.recipient,
        )
        return MigrationCompleteNotificationFailedError(result.recipient, result.error)
    return DeliveryError(f"Delivery to {result.recipient} failed: {result.error}")
