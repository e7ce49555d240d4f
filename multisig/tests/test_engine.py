from __future__ import annotations

import threading

import pytest

from multisig.effects import AccountsEffectHandler, Effect
from multisig.errors import (AlreadyExecuted, EffectFailed,
                             InsufficientConfirmations, TxNotFound,
                             Unauthorized)
from multisig.tests.fixtures import O1, O2, O3, STRANGER, X
from multisig.wallet import Wallet


def _ready(w: Wallet, value: int = 10, payload: bytes = b"") -> int:
    i = w.submit(O1, X, value, payload)
    w.confirm(O1, i)
    w.confirm(O2, i)
    return i


def test_execute_at_exact_threshold(wallet, handler):
    i = _ready(wallet)
    view = wallet.execute(O3, i)
    assert view.executed
    assert view.confirmations == 2
    assert handler.balances[X] == 10
    assert wallet.balance() == 990


def test_execute_one_short_fails(wallet):
    i = wallet.submit(O1, X, 10)
    wallet.confirm(O1, i)
    with pytest.raises(InsufficientConfirmations) as ei:
        wallet.execute(O1, i)
    assert ei.value.data == {"index": i, "confirmations": 1, "threshold": 2}
    assert not wallet.get_transaction(i).executed


def test_execute_guards(wallet):
    i = _ready(wallet)
    with pytest.raises(Unauthorized):
        wallet.execute(STRANGER, i)
    with pytest.raises(TxNotFound):
        wallet.execute(O1, 5)
    wallet.execute(O1, i)
    with pytest.raises(AlreadyExecuted):
        wallet.execute(O2, i)


def test_executed_transaction_is_frozen(wallet):
    i = _ready(wallet)
    wallet.execute(O1, i)
    before = wallet.get_transaction(i)
    for op in (wallet.confirm, wallet.revoke, wallet.execute):
        with pytest.raises(AlreadyExecuted):
            op(O3, i)
    assert wallet.get_transaction(i) == before


def test_insufficient_funds_is_retryable(wallet, handler):
    i = _ready(wallet, value=5000)
    with pytest.raises(EffectFailed) as ei:
        wallet.execute(O1, i)
    assert ei.value.data["reason"] == "insufficient_funds"
    assert ei.value.retryable
    assert not wallet.get_transaction(i).executed
    assert wallet.balance() == 1000

    wallet.deposit(O3, 4000)
    assert wallet.execute(O1, i).executed
    assert handler.balances[X] == 5000
    assert wallet.balance() == 0


def test_callee_revert_rolls_back_everything(cfg):
    calls = []

    def callee(effect: Effect) -> None:
        calls.append(effect)
        raise RuntimeError("callee reverted")

    handler = AccountsEffectHandler(callees={X: callee})
    w = Wallet.create([O1, O2, O3], 2, effect_handler=handler, config=cfg)
    w.deposit(O1, 100)
    seen = []
    w.subscribe(seen.append)
    i = _ready(w)
    seen.clear()

    with pytest.raises(EffectFailed) as ei:
        w.execute(O1, i)
    assert isinstance(ei.value.cause, RuntimeError)
    assert isinstance(ei.value.__cause__, RuntimeError)
    assert ei.value.data["reason"] == "handler_raised"
    assert len(calls) == 1
    assert not w.get_transaction(i).executed
    assert w.get_transaction(i).confirmations == 2
    assert w.balance() == 100
    assert handler.balances.get(X, 0) == 0
    assert seen == []
    assert list(w.pending_indices()) == [i]


def test_effect_sees_executed_state_and_reentry_fails_closed(cfg):
    observed = {}

    def handler(effect: Effect) -> None:
        observed["view"] = w.get_transaction(effect.index)
        try:
            w.execute(O2, effect.index)
        except AlreadyExecuted as e:
            observed["reentry"] = e

    w = Wallet.create([O1, O2, O3], 2, effect_handler=handler, config=cfg)
    w.deposit(O1, 50)
    i = _ready(w)
    w.execute(O1, i)
    assert observed["view"].executed
    assert isinstance(observed["reentry"], AlreadyExecuted)
    assert w.balance() == 40


def test_reentrant_work_inside_handler_commits_with_outer(cfg):
    def handler(effect: Effect) -> None:
        # Callee reacts by confirming another pending transaction.
        w.confirm(O3, 1)

    w = Wallet.create([O1, O2, O3], 2, effect_handler=handler, config=cfg)
    w.deposit(O1, 50)
    i = _ready(w)
    j = w.submit(O1, X, 1)
    assert j == 1
    w.execute(O1, i)
    assert w.is_confirmed(j, O3)


def test_reentrant_work_rolled_back_with_failing_outer(cfg):
    def handler(effect: Effect) -> None:
        w.confirm(O3, 1)
        raise ValueError("boom")

    w = Wallet.create([O1, O2, O3], 2, effect_handler=handler, config=cfg)
    w.deposit(O1, 50)
    i = _ready(w)
    j = w.submit(O1, X, 1)
    with pytest.raises(EffectFailed):
        w.execute(O1, i)
    assert not w.is_confirmed(j, O3)
    assert not w.get_transaction(i).executed


def test_effect_command_content(cfg):
    got = []
    w = Wallet.create([O1, O2], 1, effect_handler=got.append, config=cfg)
    w.deposit(O1, 3)
    i = w.submit(O2, X, 3, b"\x01\x02")
    w.confirm(O1, i)
    w.execute(O2, i)
    assert got == [Effect(wallet=w.address, index=i, target=X, value=3, payload=b"\x01\x02")]
    assert got[0].to_dict()["payload"] == "0x0102"


def test_handler_holds_the_wallet_against_other_threads(cfg):
    observed = []

    def handler(effect: Effect) -> None:
        other = threading.Thread(target=lambda: observed.append(w.get_transaction(effect.index).executed))
        other.start()
        other.join(timeout=0.1)
        # The reader is parked on the wallet lock until this unit ends.
        assert other.is_alive()
        assert observed == []
        readers.append(other)

    readers = []
    w = Wallet.create([O1, O2, O3], 2, effect_handler=handler, config=cfg)
    w.deposit(X, 10)
    i = _ready(w, value=5)
    w.execute(O1, i)
    readers[0].join(timeout=5)
    assert observed == [True]
