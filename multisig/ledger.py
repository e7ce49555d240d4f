"""
multisig.ledger: append-only transaction ledger and the value pool.

The ledger exclusively owns `Transaction` records. Indices are zero-based,
assigned at submission and never reused; the ledger never shrinks except when
the journal reverts an uncommitted append.
"""

from __future__ import annotations

from typing import Any, Callable, ContextManager, Iterator, List, Optional

from .errors import EffectFailed, IndexOutOfRange, InvalidValue, LimitExceeded, TxNotFound
from .types import Address, Transaction


class TransactionLedger:
    def __init__(self, *, max_transactions: int = 1 << 32, max_payload_bytes: int = 128 * 1024) -> None:
        self._txs: List[Transaction] = []
        self._max_transactions = int(max_transactions)
        self._max_payload_bytes = int(max_payload_bytes)

    def __len__(self) -> int:
        return len(self._txs)

    def count(self) -> int:
        return len(self._txs)

    def check_append(self, value: int, payload: bytes) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidValue(value)
        if len(payload) > self._max_payload_bytes:
            raise LimitExceeded("payload_bytes", self._max_payload_bytes, size=len(payload))
        if len(self._txs) >= self._max_transactions:
            raise LimitExceeded("transactions", self._max_transactions)

    def append(self, submitter: Address, target: Address, value: int, payload: bytes) -> Transaction:
        self.check_append(value, payload)
        tx = Transaction(
            index=len(self._txs),
            target=target,
            value=int(value),
            payload=bytes(payload),
            submitter=submitter,
        )
        self._txs.append(tx)
        return tx

    def get(self, index: int) -> Transaction:
        """Lookup for queries; a bad index is `IndexOutOfRange`."""
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self._txs):
            raise IndexOutOfRange(index, len(self._txs))
        return self._txs[index]

    def require(self, index: int) -> Transaction:
        """Lookup for mutations; a bad index is `TxNotFound`."""
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self._txs):
            raise TxNotFound(index, len(self._txs))
        return self._txs[index]

    def iter_pending(self, start: int = 0, stop: Optional[int] = None) -> Iterator[int]:
        end = len(self._txs) if stop is None else min(stop, len(self._txs))
        for i in range(start, end):
            if not self._txs[i].executed:
                yield i

    def __iter__(self) -> Iterator[Transaction]:
        return iter(list(self._txs))

    # --- journal hooks ---

    def truncate(self, length: int) -> None:
        del self._txs[length:]

    def replace(self, tx: Transaction) -> None:
        self._txs[tx.index] = tx

    # --- persistence ---

    def load(self, txs: List[Transaction]) -> None:
        for expected, tx in enumerate(txs):
            if tx.index != expected:
                raise ValueError(f"ledger gap at index {expected}")
        self._txs = list(txs)


class PendingIndices:
    """
    Restartable, lazy view over pending transaction indices.

    Each iteration takes the ledger length at its start, so transactions
    submitted meanwhile are picked up by the next pass, not the current one.
    `guard` wraps every step (the wallet passes its lock).
    """

    def __init__(self, ledger: TransactionLedger, guard: Optional[Callable[[], ContextManager[Any]]] = None) -> None:
        self._ledger = ledger
        self._guard = guard

    def __iter__(self) -> Iterator[int]:
        stop = self._step(lambda: self._ledger.count())
        i = 0
        while i < stop:
            nxt = self._step(lambda: next(self._ledger.iter_pending(i, stop), None))
            if nxt is None:
                return
            yield nxt
            i = nxt + 1

    def _step(self, fn: Callable[[], Any]) -> Any:
        if self._guard is None:
            return fn()
        with self._guard():
            return fn()


class Pool:
    """Wallet balance in integer base units."""

    __slots__ = ("balance",)

    def __init__(self, balance: int = 0) -> None:
        self.balance = int(balance)

    def credit(self, value: int) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidValue(value, message="deposit value must be a positive integer")
        self.balance += value
        return self.balance

    def check_debit(self, index: int, value: int) -> None:
        if value > self.balance:
            raise EffectFailed(index, reason="insufficient_funds", value=value, balance=self.balance)

    def debit(self, index: int, value: int) -> int:
        self.check_debit(index, value)
        self.balance -= value
        return self.balance


__all__ = ["TransactionLedger", "PendingIndices", "Pool"]
