from __future__ import annotations

from pathlib import Path

import pytest

from multisig import encoding
from multisig.db import LEDGER, WALLET, be_u64, open_kv
from multisig.db.sqlite import _prefix_hi
from multisig.errors import EffectFailed, InsufficientConfirmations, StorageError
from multisig.governance import AddOwner
from multisig.store import HEADER_KEY, WalletStore, tx_key
from multisig.tests.fixtures import FUNDER, O1, O2, O3, O4, X
from multisig.wallet import Wallet


def _db(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'wallet.db'}"


def test_kv_basics_and_prefix_scan():
    kv = open_kv("memory://")
    with kv.batch() as b:
        b.put(LEDGER.key(be_u64(1)), b"one")
        b.put(LEDGER.key(be_u64(0)), b"zero")
        b.put(WALLET.key(b"header"), b"h")
    assert kv.get(LEDGER.key(be_u64(0))) == b"zero"
    assert kv.has(WALLET.key(b"header"))
    assert not kv.has(WALLET.key(b"other"))
    assert [v for _, v in kv.iter_prefix(LEDGER.raw)] == [b"zero", b"one"]
    kv.close()


def test_batch_rolls_back_on_error():
    kv = open_kv("memory://")
    with pytest.raises(RuntimeError):
        with kv.batch() as b:
            b.put(b"k", b"v")
            raise RuntimeError("abort")
    assert kv.get(b"k") is None


def test_prefix_hi():
    assert _prefix_hi(b"ab\x01") == b"ab\x02"
    assert _prefix_hi(b"a\xff") == b"b"
    assert _prefix_hi(b"\xff\xff") is None


def test_open_kv_rejects_unknown_scheme():
    with pytest.raises(ValueError):
        open_kv("redis://localhost")


def test_reopen_round_trip(tmp_path, cfg):
    uri = _db(tmp_path)
    w = Wallet.create([O1, O2, O3], 2, store=WalletStore.open(uri), config=cfg)
    w.deposit(FUNDER, 100)
    t0 = w.submit(O1, X, 10, b"\x00\x01")
    w.confirm(O1, t0)
    w.confirm(O2, t0)
    w.execute(O3, t0)
    t1 = w.submit(O2, X, 5)
    w.confirm(O3, t1)
    g = w.submit_governance(O1, AddOwner(O4))
    w.confirm(O1, g)
    w.confirm(O2, g)
    w.execute(O1, g)
    address = w.address
    w.close()

    r = Wallet.open(WalletStore.open(uri), config=cfg)
    assert r.address == address
    assert r.owners() == (O1, O2, O3, O4)
    assert r.threshold() == 2
    assert r.balance() == 90
    assert r.count() == 3
    assert r.get_transaction(t0).executed
    assert r.get_transaction(t0).payload == b"\x00\x01"
    assert r.get_transaction(t0).confirmed_by == (O1, O2)
    assert r.is_confirmed(t1, O3)
    assert list(r.pending_indices()) == [t1]
    # Slots keep counting from where they left off.
    r.confirm(O4, t1)
    assert r.confirmation_count(t1) == 2
    r.close()


def test_failed_execution_leaves_storage_untouched(tmp_path, cfg):
    def reject(effect):
        raise RuntimeError("nope")

    uri = _db(tmp_path)
    store = WalletStore.open(uri)
    w = Wallet.create([O1, O2], 1, store=store, effect_handler=reject, config=cfg)
    w.deposit(FUNDER, 10)
    t0 = w.submit(O1, X, 10)
    w.confirm(O1, t0)
    before = dict(store.kv.iter_prefix(b""))
    with pytest.raises(EffectFailed):
        w.execute(O1, t0)
    assert dict(store.kv.iter_prefix(b"")) == before
    w.close()

    r = Wallet.open(WalletStore.open(uri), config=cfg)
    assert not r.get_transaction(t0).executed
    assert r.balance() == 10


def test_records_are_canonical_cbor(tmp_path, cfg):
    store = WalletStore.open(_db(tmp_path))
    w = Wallet.create([O1], 1, store=store, config=cfg)
    w.submit(O1, X, 0)
    header = encoding.loads(store.kv.get(HEADER_KEY))
    assert header["count"] == 1
    assert header["address"] == w.address
    rec = encoding.loads(store.kv.get(tx_key(0)))
    assert rec["target"] == X and rec["executed"] is False
    w.close()


def test_create_refuses_initialized_store(tmp_path, cfg):
    uri = _db(tmp_path)
    Wallet.create([O1], 1, store=WalletStore.open(uri), config=cfg).close()
    with pytest.raises(StorageError):
        Wallet.create([O2], 1, store=WalletStore.open(uri), config=cfg)


def test_open_missing_or_empty_store(tmp_path, cfg):
    with pytest.raises(StorageError):
        WalletStore.open(str(tmp_path / "missing.db"), create=False)
    with pytest.raises(StorageError):
        Wallet.open(WalletStore.open("memory://"), config=cfg)


def _rewrite(store, key, mutate):
    rec = encoding.loads(store.kv.get(key))
    mutate(rec)
    with store.kv.batch() as b:
        b.put(key, encoding.dumps(rec))


@pytest.fixture
def small_store(cfg):
    store = WalletStore.open("memory://")
    w = Wallet.create([O1, O2], 1, store=store, config=cfg)
    w.submit(O1, X, 0)
    return store


def test_corrupt_header_bytes_are_storage_error(small_store):
    with small_store.kv.batch() as b:
        b.put(HEADER_KEY, b"\xff")
    with pytest.raises(StorageError) as ei:
        small_store.load()
    assert not ei.value.retryable


@pytest.mark.parametrize(
    "mutate",
    [
        lambda h: h["registry"].pop("next_slot"),
        lambda h: h["registry"].update(threshold=0),
        lambda h: h["registry"].update(threshold=3),
        lambda h: h["registry"].update(threshold=True),
        lambda h: h["registry"]["active"][0].__setitem__(1, 7),
        lambda h: h["registry"]["active"][1].__setitem__(1, 0),
        lambda h: h["registry"].update(next_slot=1),
        lambda h: h.update(address=O1),
        lambda h: h.update(count=2),
        lambda h: h.update(count=0),
    ],
    ids=[
        "missing-next-slot",
        "zero-threshold",
        "threshold-above-owners",
        "bool-threshold",
        "slot-not-in-history",
        "slot-assigned-twice",
        "history-beyond-next-slot",
        "address-is-owner",
        "missing-tx-record",
        "extra-tx-record",
    ],
)
def test_corrupt_header_is_refused_on_open(small_store, cfg, mutate):
    _rewrite(small_store, HEADER_KEY, mutate)
    with pytest.raises(StorageError) as ei:
        Wallet.open(small_store, config=cfg)
    assert not ei.value.retryable


def test_misnumbered_tx_record_is_refused_on_open(small_store, cfg):
    _rewrite(small_store, tx_key(0), lambda r: r.update(index=3))
    with pytest.raises(StorageError):
        Wallet.open(small_store, config=cfg)


def test_zero_threshold_record_never_yields_a_usable_wallet(small_store, cfg):
    _rewrite(small_store, HEADER_KEY, lambda h: h["registry"].update(threshold=0))
    with pytest.raises(StorageError):
        Wallet.open(small_store, config=cfg)
    # The untouched store still opens normally once repaired.
    _rewrite(small_store, HEADER_KEY, lambda h: h["registry"].update(threshold=1))
    w = Wallet.open(small_store, config=cfg)
    with pytest.raises(InsufficientConfirmations):
        w.execute(O1, 0)
