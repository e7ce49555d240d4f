# -*- coding: utf-8 -*-
"""
Property tests for the confirmation/execution state machine.

Random sequences of submit/confirm/revoke/execute and governance operations
are applied by random principals. After every step:

  - 1 <= threshold <= owner count
  - for every pending tx, the effective count equals the number of current
    owners with a standing confirmation
  - executed transactions never change again
  - a transfer executes iff the caller is an owner and count >= threshold
"""
from __future__ import annotations

from typing import Dict

from hypothesis import HealthCheck, given, settings, strategies as st

from multisig.config import load_config
from multisig.errors import MultisigError
from multisig.governance import AddOwner, RemoveOwner, SetThreshold
from multisig.types import TransactionView
from multisig.wallet import Wallet

PRINCIPALS = [bytes([n]) * 32 for n in range(1, 7)]
TARGET = b"\xee" * 32

who = st.integers(min_value=0, max_value=len(PRINCIPALS) - 1)
idx = st.integers(min_value=0, max_value=12)

OPS = st.one_of(
    st.tuples(st.just("submit"), who),
    st.tuples(st.just("confirm"), who, idx),
    st.tuples(st.just("revoke"), who, idx),
    st.tuples(st.just("execute"), who, idx),
    st.tuples(st.just("add"), who, who),
    st.tuples(st.just("remove"), who, who),
    st.tuples(st.just("threshold"), who, st.integers(min_value=0, max_value=7)),
)


def _check_invariants(w: Wallet, frozen: Dict[int, TransactionView]) -> None:
    owners = w.owners()
    assert 1 <= w.threshold() <= len(owners)
    assert len(set(owners)) == len(owners)
    for i in range(w.count()):
        view = w.get_transaction(i)
        if view.executed:
            if i in frozen:
                assert view == frozen[i]
            frozen[i] = view
            continue
        standing = sum(1 for o in owners if w.is_confirmed(i, o))
        assert view.confirmations == standing
        assert set(view.confirmed_by) <= set(owners)


@settings(max_examples=60, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(ops=st.lists(OPS, min_size=1, max_size=40))
def test_random_operation_sequences_keep_invariants(ops):
    w = Wallet.create(PRINCIPALS[:4], 2, config=load_config(env={}))
    w.deposit(PRINCIPALS[5], 10**6)
    frozen: Dict[int, TransactionView] = {}

    for op in ops:
        kind, caller = op[0], PRINCIPALS[op[1]]
        try:
            if kind == "submit":
                w.submit(caller, TARGET, 1)
            elif kind == "confirm":
                w.confirm(caller, op[2])
            elif kind == "revoke":
                w.revoke(caller, op[2])
            elif kind == "execute":
                i = op[2]
                expect = None
                if w.is_owner(caller) and i < w.count():
                    view = w.get_transaction(i)
                    if not view.executed and not view.is_governance:
                        expect = view.confirmations >= w.threshold()
                try:
                    w.execute(caller, i)
                    ok = True
                except MultisigError:
                    ok = False
                if expect is not None:
                    assert ok == expect
            elif kind == "add":
                w.submit_governance(caller, AddOwner(PRINCIPALS[op[2]]))
            elif kind == "remove":
                w.submit_governance(caller, RemoveOwner(PRINCIPALS[op[2]]))
            elif kind == "threshold":
                w.submit_governance(caller, SetThreshold(op[2]))
        except MultisigError:
            pass
        _check_invariants(w, frozen)
