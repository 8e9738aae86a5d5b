"""
Addressing capability: conversion between human and canonical addresses.

The coordination core never compares or stores human addresses directly.
Every address crossing the message boundary is canonicalized first, and
every stored address is humanized before it is put on an outbound message.

Usage::

    from migratable.addressing import PrefixedAddressing, canonicalize_peer

    api = PrefixedAddressing(prefix="secret1")
    raw = api.canonicalize("secret1abc")        # b"abc"
    api.humanize(raw)                           # "secret1abc"
    ref = canonicalize_peer(api, HumanPeerRef(address="secret1abc", code_hash="h"))
"""

from __future__ import annotations

import re
from typing import Optional, Protocol, runtime_checkable

from migratable.errors import AddressInvalidError
from migratable.models import CanonicalPeerRef, HumanPeerRef

_ADDRESS_BODY = re.compile(r"^[a-z0-9][a-z0-9_.\-]*$")


@runtime_checkable
class Addressing(Protocol):
    """External addressing capability."""

    def canonicalize(self, human: str) -> bytes:
        """Convert a human address to canonical form, or raise ``AddressInvalidError``."""
        ...

    def humanize(self, canonical: bytes) -> str:
        """Convert a canonical address to human form, or raise ``AddressInvalidError``."""
        ...


class PrefixedAddressing:
    """
    Default addressing: lowercase ASCII addresses with an optional prefix.

    The canonical form is the address body (prefix stripped) as UTF-8 bytes,
    so the mapping is lossless in both directions.  Addresses that are not
    normalized (upper case, surrounding whitespace) are rejected rather than
    silently folded, otherwise two human forms would share one canonical key.
    """

    def __init__(
        self,
        prefix: Optional[str] = None,
        min_length: int = 1,
        max_length: int = 90,
    ):
        if min_length < 1 or max_length < min_length:
            raise ValueError(
                f"Invalid address length bounds: min={min_length} max={max_length}"
            )
        self.prefix = prefix or ""
        self.min_length = min_length
        self.max_length = max_length

    def canonicalize(self, human: str) -> bytes:
        if not isinstance(human, str):
            raise AddressInvalidError(human, "address must be a string")
        if human != human.strip():
            raise AddressInvalidError(human, "address not normalized")
        if human != human.lower():
            raise AddressInvalidError(human, "address not normalized")
        if self.prefix and not human.startswith(self.prefix):
            raise AddressInvalidError(human, f"missing prefix '{self.prefix}'")
        body = human[len(self.prefix):]
        if len(body) < self.min_length:
            raise AddressInvalidError(human, "address too short")
        if len(body) > self.max_length:
            raise AddressInvalidError(human, "address too long")
        if not _ADDRESS_BODY.match(body):
            raise AddressInvalidError(human, "address contains invalid characters")
        return body.encode("ascii")

    def humanize(self, canonical: bytes) -> str:
        try:
            body = canonical.decode("ascii")
        except (AttributeError, UnicodeDecodeError) as exc:
            raise AddressInvalidError(canonical, "canonical address is not valid ASCII") from exc
        human = f"{self.prefix}{body}"
        # Round-trip check keeps the mapping bijective.
        if self.canonicalize(human) != canonical:
            raise AddressInvalidError(canonical, "canonical address does not round-trip")
        return human


def canonicalize_peer(api: Addressing, peer: HumanPeerRef) -> CanonicalPeerRef:
    """Convert a human peer reference into its canonical storage form."""
    return CanonicalPeerRef(
        address=api.canonicalize(peer.address),
        code_hash=peer.code_hash,
    )


def humanize_peer(api: Addressing, peer: CanonicalPeerRef) -> HumanPeerRef:
    """Convert a stored peer reference into its human message form."""
    return HumanPeerRef(address=api.humanize(peer.address), code_hash=peer.code_hash)
