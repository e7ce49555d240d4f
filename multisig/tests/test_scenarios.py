"""
End-to-end lifecycle scenarios on a 3-owner wallet.

  A: 2-of-3 happy path, one confirmation short first
  B: revoke drops the count below quorum
  C: governance removal that would break the threshold is refused
  D: concurrent executes of the same transaction, exactly one wins
"""

from __future__ import annotations

import threading
import time

import pytest

from multisig.effects import AccountsEffectHandler, Effect
from multisig.errors import (AlreadyExecuted, InsufficientConfirmations,
                             ThresholdViolation)
from multisig.events import TransactionExecuted
from multisig.governance import RemoveOwner
from multisig.tests.fixtures import FUNDER, O1, O2, O3, X
from multisig.wallet import Wallet


def test_scenario_a_two_of_three(wallet, handler, events):
    tx0 = wallet.submit(O1, X, 10)
    assert tx0 == 0
    wallet.confirm(O1, tx0)
    assert wallet.get_transaction(tx0).confirmations == 1
    with pytest.raises(InsufficientConfirmations):
        wallet.execute(O1, tx0)
    wallet.confirm(O2, tx0)
    assert wallet.get_transaction(tx0).confirmations == 2

    view = wallet.execute(O3, tx0)
    assert view.executed
    assert handler.balances == {X: 10}
    executed = [e for e in events if isinstance(e, TransactionExecuted)]
    assert len(executed) == 1
    assert executed[0].executor == O3


def test_scenario_b_revoke_below_quorum(wallet):
    wallet.submit(O1, X, 1)
    tx1 = wallet.submit(O1, X, 10)
    wallet.confirm(O1, tx1)
    wallet.confirm(O2, tx1)
    assert wallet.revoke(O2, tx1) == 1
    with pytest.raises(InsufficientConfirmations):
        wallet.execute(O1, tx1)
    assert not wallet.get_transaction(tx1).executed


def test_scenario_c_removal_blocked_by_threshold(cfg):
    w = Wallet.create([O1, O2, O3], 3, config=cfg)
    g = w.submit_governance(O1, RemoveOwner(O3))
    for o in (O1, O2, O3):
        w.confirm(o, g)
    with pytest.raises(ThresholdViolation):
        w.execute(O2, g)
    assert w.is_owner(O3)
    assert w.owners() == (O1, O2, O3)
    assert not w.get_transaction(g).executed


def test_scenario_d_concurrent_execute(cfg):
    settled = []

    def slow(effect: Effect) -> None:
        # Hold the unit open long enough for the other caller to queue up.
        time.sleep(0.05)
        settled.append(effect.index)

    w = Wallet.create([O1, O2, O3], 2, effect_handler=slow, config=cfg)
    w.deposit(FUNDER, 100)
    tx0 = w.submit(O1, X, 10)
    w.confirm(O1, tx0)
    w.confirm(O2, tx0)

    barrier = threading.Barrier(2)
    results = {}

    def run(who):
        barrier.wait()
        try:
            w.execute(who, tx0)
            results[who] = "ok"
        except AlreadyExecuted:
            results[who] = "already"

    threads = [threading.Thread(target=run, args=(o,)) for o in (O1, O3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert sorted(results.values()) == ["already", "ok"]
    assert settled == [tx0]
    assert w.balance() == 90
    assert w.get_transaction(tx0).executed


def test_readers_never_see_provisional_execution(cfg):
    started = threading.Event()
    release = threading.Event()
    errors = []
    reads = []

    def blocking(effect: Effect) -> None:
        started.set()
        release.wait(timeout=5)
        raise RuntimeError("transfer rejected")

    w = Wallet.create([O1, O2], 1, effect_handler=blocking, config=cfg)
    w.deposit(FUNDER, 10)
    tx0 = w.submit(O1, X, 10)
    w.confirm(O1, tx0)

    def execute():
        try:
            w.execute(O1, tx0)
        except Exception as e:
            errors.append(type(e).__name__)

    t = threading.Thread(target=execute)
    t.start()
    assert started.wait(timeout=5)

    def read():
        reads.append(w.get_transaction(tx0).executed)

    reader = threading.Thread(target=read)
    reader.start()
    time.sleep(0.02)
    release.set()
    t.join(timeout=5)
    reader.join(timeout=5)

    assert errors == ["EffectFailed"]
    assert reads == [False]
    assert w.balance() == 10


def test_accounts_handler_settles_multiple_payouts(cfg):
    handler = AccountsEffectHandler()
    w = Wallet.create([O1, O2, O3], 2, effect_handler=handler, config=cfg)
    w.deposit(FUNDER, 30)
    for value in (10, 20):
        i = w.submit(O2, X, value)
        w.confirm(O1, i)
        w.confirm(O3, i)
        w.execute(O2, i)
    assert handler.balances[X] == 30
    assert w.balance() == 0
    assert list(w.pending_indices()) == []
