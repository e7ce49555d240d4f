from __future__ import annotations

import logging
import threading

import pytest

from multisig.errors import AlreadyConfirmed, InsufficientConfirmations
from multisig.events import (DepositReceived, EventBus, TransactionConfirmed,
                             TransactionExecuted, TransactionRevoked,
                             TransactionSubmitted)
from multisig.tests.fixtures import FUNDER, O1, O2, X


def test_each_transition_fires_once_in_order(wallet, events):
    i = wallet.submit(O1, X, 7, b"\x01")
    wallet.confirm(O1, i)
    wallet.confirm(O2, i)
    wallet.revoke(O2, i)
    wallet.confirm(O2, i)
    wallet.execute(O1, i)
    wallet.deposit(FUNDER, 3)
    assert [type(e) for e in events] == [
        TransactionSubmitted,
        TransactionConfirmed,
        TransactionConfirmed,
        TransactionRevoked,
        TransactionConfirmed,
        TransactionExecuted,
        DepositReceived,
    ]
    assert events[0] == TransactionSubmitted(index=i, submitter=O1, target=X, value=7, payload=b"\x01")
    assert events[3] == TransactionRevoked(index=i, owner=O2, confirmations=1)
    assert events[-1] == DepositReceived(sender=FUNDER, value=3, balance=996)


def test_failures_emit_nothing(wallet, events):
    i = wallet.submit(O1, X, 1)
    wallet.confirm(O1, i)
    events.clear()
    with pytest.raises(AlreadyConfirmed):
        wallet.confirm(O1, i)
    with pytest.raises(InsufficientConfirmations):
        wallet.execute(O1, i)
    assert events == []


def test_topic_subscription_and_unsubscribe(wallet):
    got = []
    sub = wallet.subscribe(got.append, topic="TransactionSubmitted")
    wallet.submit(O1, X, 1)
    wallet.confirm(O1, 0)
    assert [type(e) for e in got] == [TransactionSubmitted]
    sub.unsubscribe()
    wallet.submit(O1, X, 1)
    assert len(got) == 1


def test_listener_errors_are_logged_not_raised(wallet, caplog):
    def broken(event):
        raise RuntimeError("listener bug")

    wallet.subscribe(broken)
    with caplog.at_level(logging.WARNING, logger="multisig.events"):
        i = wallet.submit(O1, X, 1)
    assert wallet.count() == 1
    assert wallet.get_transaction(i).value == 1
    assert any("listener error" in r.getMessage() for r in caplog.records)


def test_to_dict_is_json_friendly():
    ev = TransactionConfirmed(index=3, owner=O1, confirmations=2)
    assert ev.to_dict() == {
        "event": "TransactionConfirmed",
        "index": 3,
        "owner": "0x" + O1.hex(),
        "confirmations": 2,
    }


def test_bus_counts_deliveries():
    bus = EventBus()
    bus.subscribe(lambda e: None)
    bus.subscribe(lambda e: None, topic="DepositReceived")
    bus.subscribe(lambda e: None, topic="OwnerAdded")
    assert bus.publish(DepositReceived(sender=O1, value=1, balance=1)) == 2
    with pytest.raises(TypeError):
        bus.subscribe("not callable")  # type: ignore[arg-type]


def test_listeners_see_units_in_commit_order_across_threads(wallet):
    seen = []
    wallet.subscribe(lambda e: seen.append(e.index), topic="TransactionSubmitted")
    start = threading.Barrier(2)

    def worker(owner):
        start.wait()
        for _ in range(50):
            wallet.submit(owner, X, 1)

    threads = [threading.Thread(target=worker, args=(o,)) for o in (O1, O2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert seen == list(range(100))
