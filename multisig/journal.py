"""
multisig.journal: nested checkpoints over the wallet's in-memory state.

Each checkpoint captures what it needs to undo itself:

- a registry snapshot (owner slots and threshold),
- the pool balance and ledger length at `begin()`,
- copy-on-write copies of transactions the layer is about to mutate,
- the events emitted inside the layer.

`commit()` folds the top layer into its parent; when the outermost layer
commits, its events are returned to the caller for publication. `revert()`
restores registry, balance and ledger to the state at `begin()` and discards
the layer's events.

Intended usage
--------------
    j = Journal(registry, ledger, pool)
    j.begin()
    tx = j.tx_for_write(3)      # copy recorded before first mutation
    tx.mask |= 1 << slot
    j.emit(TransactionConfirmed(...))
    published = j.commit()      # events when outermost, else []
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Set

from .events import Event
from .ledger import Pool, TransactionLedger
from .registry import OwnerRegistry, RegistrySnapshot
from .types import Transaction


@dataclass
class _Layer:
    registry: RegistrySnapshot
    balance: int
    ledger_len: int
    touched: Dict[int, Transaction] = field(default_factory=dict)
    events: List[Event] = field(default_factory=list)


class Journal:
    def __init__(self, registry: OwnerRegistry, ledger: TransactionLedger, pool: Pool) -> None:
        self._registry = registry
        self._ledger = ledger
        self._pool = pool
        self._layers: List[_Layer] = []

    def depth(self) -> int:
        """Number of open checkpoints (0 when idle)."""
        return len(self._layers)

    def begin(self) -> int:
        self._layers.append(
            _Layer(
                registry=self._registry.snapshot(),
                balance=self._pool.balance,
                ledger_len=self._ledger.count(),
            )
        )
        return len(self._layers)

    def _top(self) -> _Layer:
        if not self._layers:
            raise RuntimeError("no open checkpoint")
        return self._layers[-1]

    def tx_for_write(self, index: int) -> Transaction:
        """Return the live record for `index`, saving its pre-image in the top layer."""
        top = self._top()
        tx = self._ledger.require(index)
        if index < top.ledger_len and index not in top.touched:
            top.touched[index] = tx.copy()
        return tx

    def emit(self, event: Event) -> None:
        self._top().events.append(event)

    def dirty(self) -> Set[int]:
        """Indices written or appended since the outermost checkpoint began."""
        if not self._layers:
            return set()
        base = self._layers[0].ledger_len
        out: Set[int] = set(range(base, self._ledger.count()))
        for layer in self._layers:
            out.update(i for i in layer.touched if i < self._ledger.count())
        return out

    def commit(self) -> List[Event]:
        top = self._top()
        self._layers.pop()
        if not self._layers:
            return top.events
        parent = self._layers[-1]
        parent.events.extend(top.events)
        for i, pre in top.touched.items():
            if i < parent.ledger_len:
                parent.touched.setdefault(i, pre)
        return []

    def revert(self) -> None:
        top = self._top()
        self._layers.pop()
        self._registry.restore(top.registry)
        self._pool.balance = top.balance
        self._ledger.truncate(top.ledger_len)
        for pre in top.touched.values():
            self._ledger.replace(pre)


__all__ = ["Journal"]
