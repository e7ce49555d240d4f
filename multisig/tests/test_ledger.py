from __future__ import annotations

import threading

import pytest

from multisig.errors import EffectFailed, IndexOutOfRange, InvalidValue, LimitExceeded, TxNotFound
from multisig.ledger import PendingIndices, Pool, TransactionLedger
from multisig.tests.fixtures import O1, X


def test_append_assigns_sequential_indices():
    led = TransactionLedger()
    assert [led.append(O1, X, v, b"").index for v in (1, 2, 3)] == [0, 1, 2]
    assert led.count() == 3
    tx = led.get(1)
    assert (tx.target, tx.value, tx.executed, tx.mask) == (X, 2, False, 0)


def test_bad_index_kinds():
    led = TransactionLedger()
    led.append(O1, X, 0, b"")
    with pytest.raises(IndexOutOfRange) as q:
        led.get(1)
    assert not isinstance(q.value, TxNotFound)
    with pytest.raises(TxNotFound):
        led.require(5)
    with pytest.raises(IndexOutOfRange):
        led.get(-1)
    # TxNotFound is still an index error for callers that only catch the base.
    with pytest.raises(IndexOutOfRange):
        led.require(-1)


def test_limits():
    led = TransactionLedger(max_transactions=2, max_payload_bytes=4)
    with pytest.raises(LimitExceeded):
        led.append(O1, X, 0, b"12345")
    with pytest.raises(InvalidValue):
        led.append(O1, X, -1, b"")
    led.append(O1, X, 0, b"1234")
    led.append(O1, X, 0, b"")
    with pytest.raises(LimitExceeded) as ei:
        led.append(O1, X, 0, b"")
    assert ei.value.data["resource"] == "transactions"


def test_pending_indices_is_restartable_and_lazy():
    led = TransactionLedger()
    for _ in range(4):
        led.append(O1, X, 0, b"")
    led.get(1).executed = True
    view = PendingIndices(led)
    assert list(view) == [0, 2, 3]
    assert list(view) == [0, 2, 3]

    it = iter(view)
    assert next(it) == 0
    led.get(2).executed = True
    led.append(O1, X, 0, b"")
    # Executed while iterating: skipped. Appended after the pass began: next pass.
    assert list(it) == [3]
    assert list(view) == [0, 3, 4]


def test_pending_indices_takes_guard_per_step():
    led = TransactionLedger()
    led.append(O1, X, 0, b"")
    lock = threading.RLock()
    calls = []

    def guard():
        calls.append(1)
        return lock

    assert list(PendingIndices(led, guard=guard)) == [0]
    assert len(calls) >= 2


def test_pool_credit_and_debit():
    pool = Pool()
    with pytest.raises(InvalidValue):
        pool.credit(0)
    with pytest.raises(InvalidValue):
        pool.credit(-5)
    assert pool.credit(10) == 10
    with pytest.raises(EffectFailed) as ei:
        pool.debit(0, 11)
    assert ei.value.data["reason"] == "insufficient_funds"
    assert ei.value.retryable
    assert pool.debit(0, 10) == 0
