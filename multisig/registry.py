"""
multisig.registry: owner set and confirmation threshold.

Owners are tracked by *slot*: every admission hands out the next slot number,
which is never reused. A transaction's confirmations are a bitmask over slots,
so deactivating a slot on removal drops that owner's standing confirmations
from every pending count at once, and re-adding the same principal later gets
a fresh slot that old confirmations do not match.

Every mutator has a `check_*` twin that performs the full validation without
touching state. The execution engine calls the checks before it commits to
running a governance transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import (DuplicateOwner, InvalidThreshold, LimitExceeded,
                     NullPrincipal, ThresholdViolation, UnknownOwner)
from .types import Address, is_null

logger = logging.getLogger(__name__)

RegistrySnapshot = Tuple[Dict[Address, int], Dict[int, Address], int, int]


class OwnerRegistry:
    def __init__(self, *, max_owners: int = 64) -> None:
        self._max_owners = int(max_owners)
        # Active owners in insertion order → slot.
        self._active: Dict[Address, int] = {}
        # Every slot ever assigned → principal.
        self._history: Dict[int, Address] = {}
        self._next_slot = 0
        self._threshold = 0

    @classmethod
    def genesis(cls, owners: Iterable[Address], threshold: int, *, max_owners: int = 64) -> "OwnerRegistry":
        """Build the initial registry, applying the same rules as governance."""
        reg = cls(max_owners=max_owners)
        for owner in owners:
            reg.add_owner(owner)
        reg.set_threshold(threshold)
        return reg

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def is_owner(self, principal: Address) -> bool:
        return principal in self._active

    def owner_count(self) -> int:
        return len(self._active)

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def max_owners(self) -> int:
        return self._max_owners

    def owners(self) -> Tuple[Address, ...]:
        return tuple(self._active)

    def slot_of(self, principal: Address) -> Optional[int]:
        return self._active.get(principal)

    def owner_of_slot(self, slot: int) -> Optional[Address]:
        """Principal that held `slot`, whether or not it is still active."""
        return self._history.get(slot)

    def active_mask(self) -> int:
        mask = 0
        for slot in self._active.values():
            mask |= 1 << slot
        return mask

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    def check_add(self, principal: Address) -> None:
        if is_null(principal):
            raise NullPrincipal(owner=principal)
        if principal in self._active:
            raise DuplicateOwner(principal)
        if len(self._active) >= self._max_owners:
            raise LimitExceeded("owners", self._max_owners, owner=principal)

    def check_remove(self, principal: Address) -> None:
        if principal not in self._active:
            raise UnknownOwner(principal)
        remaining = len(self._active) - 1
        if self._threshold > remaining:
            raise ThresholdViolation(self._threshold, remaining)

    def check_threshold(self, n: Any) -> None:
        count = len(self._active)
        if isinstance(n, bool) or not isinstance(n, int) or not 1 <= n <= count:
            raise InvalidThreshold(n, count)

    # ------------------------------------------------------------------ #
    # Mutations (governance only)
    # ------------------------------------------------------------------ #

    def add_owner(self, principal: Address) -> int:
        self.check_add(principal)
        slot = self._next_slot
        self._next_slot += 1
        self._active[principal] = slot
        self._history[slot] = principal
        logger.debug("owner added", extra={"owner": principal, "slot": slot})
        return slot

    def remove_owner(self, principal: Address) -> int:
        self.check_remove(principal)
        slot = self._active.pop(principal)
        logger.debug("owner removed", extra={"owner": principal, "slot": slot})
        return slot

    def set_threshold(self, n: int) -> int:
        """Set the threshold; returns the previous value."""
        self.check_threshold(n)
        old, self._threshold = self._threshold, int(n)
        return old

    # ------------------------------------------------------------------ #
    # Journal & persistence
    # ------------------------------------------------------------------ #

    def snapshot(self) -> RegistrySnapshot:
        return (dict(self._active), dict(self._history), self._next_slot, self._threshold)

    def restore(self, snap: RegistrySnapshot) -> None:
        active, history, next_slot, threshold = snap
        self._active = dict(active)
        self._history = dict(history)
        self._next_slot = next_slot
        self._threshold = threshold

    def to_record(self) -> Dict[str, Any]:
        return {
            "threshold": self._threshold,
            "next_slot": self._next_slot,
            "active": [[owner, slot] for owner, slot in self._active.items()],
            "history": dict(self._history),
        }

    @classmethod
    def from_record(cls, d: Dict[str, Any], *, max_owners: int = 64) -> "OwnerRegistry":
        """
        Rebuild a registry from `to_record` output.

        Raises ValueError when the record breaks a registry invariant: slots
        must be unique, below `next_slot` and recorded in the history under the
        same principal; owners must be non-null; `1 <= threshold <= owners`.
        """
        reg = cls(max_owners=max_owners)
        active: List[Any] = d["active"]
        reg._active = {bytes(owner): int(slot) for owner, slot in active}
        reg._history = {int(k): bytes(v) for k, v in d["history"].items()}
        reg._next_slot = int(d["next_slot"])
        threshold = d["threshold"]
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise ValueError(f"threshold must be an integer, got {threshold!r}")
        reg._threshold = threshold

        if len(reg._active) != len(active):
            raise ValueError("duplicate owner in registry record")
        if len(set(reg._active.values())) != len(reg._active):
            raise ValueError("owner slot assigned twice")
        for owner, slot in reg._active.items():
            if is_null(owner):
                raise ValueError("null principal recorded as owner")
            if reg._history.get(slot) != owner:
                raise ValueError(f"slot {slot} does not match the slot history")
        if any(not 0 <= slot < reg._next_slot for slot in reg._history):
            raise ValueError("slot history beyond next_slot")
        if not 1 <= reg._threshold <= len(reg._active):
            raise ValueError(f"threshold {reg._threshold} out of range for {len(reg._active)} owners")
        return reg


__all__ = ["OwnerRegistry", "RegistrySnapshot"]
