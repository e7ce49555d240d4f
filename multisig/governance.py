"""
multisig.governance — owner-set and threshold changes as wallet transactions.

A governance transaction is an ordinary ledger entry whose `target` is the
wallet's own address and whose payload is a canonical CBOR map:

    {"op": "add_owner",     "owner": <32 bytes>}
    {"op": "remove_owner",  "owner": <32 bytes>}
    {"op": "set_threshold", "threshold": <int>}

It goes through the same submit → confirm → execute pipeline as a transfer.
When executed, the engine hands the decoded change to `GovernanceGateway`,
which only accepts calls whose caller is the wallet itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from . import encoding
from .errors import InvalidAddress, InvalidGovernancePayload, Unauthorized
from .events import OwnerAdded, OwnerRemoved, ThresholdChanged
from .journal import Journal
from .registry import OwnerRegistry
from .types import ADDRESS_LEN, Address

logger = logging.getLogger(__name__)

OP_ADD_OWNER = "add_owner"
OP_REMOVE_OWNER = "remove_owner"
OP_SET_THRESHOLD = "set_threshold"


@dataclass(frozen=True)
class AddOwner:
    owner: Address


@dataclass(frozen=True)
class RemoveOwner:
    owner: Address


@dataclass(frozen=True)
class SetThreshold:
    threshold: int


GovernanceChange = Union[AddOwner, RemoveOwner, SetThreshold]


def encode_change(change: GovernanceChange) -> bytes:
    if isinstance(change, AddOwner):
        return encoding.dumps({"op": OP_ADD_OWNER, "owner": bytes(change.owner)})
    if isinstance(change, RemoveOwner):
        return encoding.dumps({"op": OP_REMOVE_OWNER, "owner": bytes(change.owner)})
    if isinstance(change, SetThreshold):
        return encoding.dumps({"op": OP_SET_THRESHOLD, "threshold": int(change.threshold)})
    raise TypeError(f"not a governance change: {type(change).__name__}")


def _owner_field(d: dict) -> Address:
    owner = d.get("owner")
    if not isinstance(owner, bytes) or len(owner) != ADDRESS_LEN:
        raise InvalidGovernancePayload("owner must be a 32-byte string", op=d.get("op"))
    return owner


def decode_change(payload: bytes) -> GovernanceChange:
    """Parse a governance payload; anything malformed is `InvalidGovernancePayload`."""
    try:
        d: Any = encoding.loads(payload)
    except encoding.CBORError as e:
        raise InvalidGovernancePayload(str(e)).with_cause(e) from e
    if not isinstance(d, dict):
        raise InvalidGovernancePayload("payload must be a CBOR map")
    op = d.get("op")
    if op == OP_ADD_OWNER and set(d) == {"op", "owner"}:
        return AddOwner(_owner_field(d))
    if op == OP_REMOVE_OWNER and set(d) == {"op", "owner"}:
        return RemoveOwner(_owner_field(d))
    if op == OP_SET_THRESHOLD and set(d) == {"op", "threshold"}:
        n = d["threshold"]
        if isinstance(n, bool) or not isinstance(n, int):
            raise InvalidGovernancePayload("threshold must be an integer", op=op)
        return SetThreshold(n)
    raise InvalidGovernancePayload("unknown operation or unexpected fields", op=op)


class GovernanceGateway:
    """The only path that mutates the owner registry after genesis."""

    def __init__(self, address: Address, registry: OwnerRegistry, journal: Journal) -> None:
        self._address = address
        self._registry = registry
        self._journal = journal

    def _require_self_call(self, caller: Address) -> None:
        if caller != self._address:
            raise Unauthorized("registry changes must come from an executed wallet transaction", caller=caller)

    def check_payload(self, change: GovernanceChange) -> None:
        """Checks that do not depend on registry state; also run at submit time."""
        if isinstance(change, AddOwner) and change.owner == self._address:
            raise InvalidAddress(change.owner, message="wallet address cannot be one of its owners")

    def check(self, change: GovernanceChange) -> None:
        """Validate `change` against the current registry without applying it."""
        self.check_payload(change)
        if isinstance(change, AddOwner):
            self._registry.check_add(change.owner)
        elif isinstance(change, RemoveOwner):
            self._registry.check_remove(change.owner)
        elif isinstance(change, SetThreshold):
            self._registry.check_threshold(change.threshold)
        else:
            raise TypeError(f"not a governance change: {type(change).__name__}")

    def apply(self, caller: Address, change: GovernanceChange) -> None:
        self._require_self_call(caller)
        self.check_payload(change)
        reg = self._registry
        if isinstance(change, AddOwner):
            reg.add_owner(change.owner)
            self._journal.emit(OwnerAdded(owner=change.owner, owner_count=reg.owner_count()))
            logger.info("owner added", extra={"owner": change.owner})
        elif isinstance(change, RemoveOwner):
            reg.remove_owner(change.owner)
            self._journal.emit(OwnerRemoved(owner=change.owner, owner_count=reg.owner_count()))
            logger.info("owner removed", extra={"owner": change.owner})
        elif isinstance(change, SetThreshold):
            old = reg.set_threshold(change.threshold)
            self._journal.emit(ThresholdChanged(old=old, new=change.threshold))
            logger.info("threshold changed", extra={"old": old, "new": change.threshold})
        else:
            raise TypeError(f"not a governance change: {type(change).__name__}")


__all__ = [
    "AddOwner",
    "RemoveOwner",
    "SetThreshold",
    "GovernanceChange",
    "encode_change",
    "decode_change",
    "GovernanceGateway",
]
