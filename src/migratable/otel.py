"""
OTel span event emission helpers for the migration protocols.

Events are attached to the current span and are a no-op when the current
span is not recording (no SDK configured, sampling off).

Usage::

    from migratable.otel import emit_register

    emit_register(subscriber="addr1", inserted=True, remaining_slots=1)
"""

from __future__ import annotations

import logging
from typing import Optional

from opentelemetry import trace as otel_trace

logger = logging.getLogger(__name__)

tracer = otel_trace.get_tracer("migratable")


def add_span_event(
    name: str, attributes: dict[str, str | int | float | bool]
) -> None:
    """Add an event to the current OTel span if it is recording."""
    span = otel_trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name=name, attributes=attributes)


def emit_register(
    subscriber: str,
    inserted: bool,
    remaining_slots: Optional[int],
    reciprocal_requested: bool = False,
) -> None:
    """Event name: ``migration.register``"""
    attrs: dict[str, str | int | float | bool] = {
        "migration.subscriber": subscriber,
        "migration.inserted": inserted,
        "migration.reciprocal_requested": reciprocal_requested,
    }
    if remaining_slots is not None:
        attrs["migration.remaining_slots"] = remaining_slots
    add_span_event("migration.register", attrs)


def emit_broadcast(migrated_to: str, recipient_count: int) -> None:
    """Event name: ``migration.broadcast``"""
    add_span_event(
        "migration.broadcast",
        {
            "migration.migrated_to": migrated_to,
            "migration.recipient_count": recipient_count,
        },
    )


def emit_rewrite(sender: str, new_address: str, position: Optional[int]) -> None:
    """Event name: ``migration.rewrite``"""
    attrs: dict[str, str | int | float | bool] = {
        "migration.sender": sender,
        "migration.new_address": new_address,
        "migration.rewritten": position is not None,
    }
    if position is not None:
        attrs["migration.position"] = position
    add_span_event("migration.rewrite", attrs)


def emit_migrate(migrated_to: str, code_hash: str) -> None:
    """Event name: ``migration.migrate``"""
    add_span_event(
        "migration.migrate",
        {"migration.migrated_to": migrated_to, "migration.code_hash": code_hash},
    )


def emit_rejected(operation: str, code: str, message: str) -> None:
    """Event name: ``migration.rejected``"""
    logger.debug("Rejected %s: %s (%s)", operation, message, code)
    add_span_event(
        "migration.rejected",
        {
            "migration.operation": operation,
            "migration.error_code": code,
            "migration.error_message": message,
        },
    )
