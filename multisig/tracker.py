"""
multisig.tracker: per-transaction confirmation bookkeeping.

A transaction's confirmations are a bitmask over owner slots. The effective
count of a pending transaction is the number of *currently active* slots in
its mask, so an owner removed by governance stops counting immediately
without rewriting any ledger entry. Executed transactions carry a frozen mask
and count taken at execution time.
"""

from __future__ import annotations

import logging
from typing import Tuple

from .errors import (AlreadyConfirmed, AlreadyExecuted, NotConfirmed,
                     Unauthorized)
from .events import TransactionConfirmed, TransactionRevoked
from .journal import Journal
from .ledger import TransactionLedger
from .registry import OwnerRegistry
from .types import Address, Transaction, popcount

logger = logging.getLogger(__name__)


class ConfirmationTracker:
    def __init__(self, registry: OwnerRegistry, ledger: TransactionLedger, journal: Journal) -> None:
        self._registry = registry
        self._ledger = ledger
        self._journal = journal

    # --- counting ---

    def effective_count(self, tx: Transaction) -> int:
        if tx.executed:
            return tx.executed_count
        return popcount(tx.mask & self._registry.active_mask())

    def confirmed_by(self, tx: Transaction) -> Tuple[Address, ...]:
        """Confirming principals in slot order (frozen set for executed transactions)."""
        mask = tx.mask if tx.executed else tx.mask & self._registry.active_mask()
        out = []
        slot = 0
        while mask:
            if mask & 1:
                owner = self._registry.owner_of_slot(slot)
                if owner is not None:
                    out.append(owner)
            mask >>= 1
            slot += 1
        return tuple(out)

    def confirmation_count(self, index: int) -> int:
        return self.effective_count(self._ledger.get(index))

    def is_confirmed(self, index: int, owner: Address) -> bool:
        tx = self._ledger.get(index)
        slot = self._registry.slot_of(owner)
        if slot is None:
            return False
        return bool(tx.mask >> slot & 1)

    # --- mutations ---

    def _require_owner(self, caller: Address, op: str) -> int:
        slot = self._registry.slot_of(caller)
        if slot is None:
            raise Unauthorized(f"only owners may {op}", caller=caller)
        return slot

    def confirm(self, caller: Address, index: int) -> int:
        slot = self._require_owner(caller, "confirm")
        tx = self._ledger.require(index)
        if tx.executed:
            raise AlreadyExecuted(index)
        if tx.mask >> slot & 1:
            raise AlreadyConfirmed(index, caller)
        tx = self._journal.tx_for_write(index)
        tx.mask |= 1 << slot
        count = self.effective_count(tx)
        self._journal.emit(TransactionConfirmed(index=index, owner=caller, confirmations=count))
        logger.debug("confirmed", extra={"index": index, "caller": caller, "confirmations": count})
        return count

    def revoke(self, caller: Address, index: int) -> int:
        slot = self._require_owner(caller, "revoke")
        tx = self._ledger.require(index)
        if tx.executed:
            raise AlreadyExecuted(index)
        if not tx.mask >> slot & 1:
            raise NotConfirmed(index, caller)
        tx = self._journal.tx_for_write(index)
        tx.mask &= ~(1 << slot)
        count = self.effective_count(tx)
        self._journal.emit(TransactionRevoked(index=index, owner=caller, confirmations=count))
        logger.debug("revoked", extra={"index": index, "caller": caller, "confirmations": count})
        return count


__all__ = ["ConfirmationTracker"]
