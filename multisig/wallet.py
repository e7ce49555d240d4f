"""
multisig.wallet — the wallet aggregate and its public entry points.

`Wallet` owns the registry, ledger, pool and journal of one multisig wallet
and is the only object callers talk to. Every entry point, queries included,
runs under the wallet's re-entrant lock; mutating entry points additionally
run as one atomic unit:

    journal.begin()
    ... validate, mutate, buffer events ...
    on error   → journal.revert(), nothing persisted, no events
    on success → outermost unit: persist dirty records in one KV batch,
                 journal.commit(), publish buffered events

Effect handlers run inside the `execute` unit. A handler that calls back into
the wallet from the same thread opens a nested unit, which folds into the
outer one on success. Calls from other threads block until the unit ends.

Buffered events are published before the lock is released, so every listener
sees units in commit order across threads. A listener that calls back into
the wallet runs a unit of its own, whose events are delivered before the
rest of the enclosing unit's batch.

Example
-------
    w = Wallet.create([a, b, c], threshold=2)
    w.deposit(funder, 100)
    i = w.submit(a, target, 10)
    w.confirm(a, i); w.confirm(b, i)
    w.execute(c, i)
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence, Tuple

from . import logging as mlog
from .config import MultisigConfig, get_config
from .effects import EffectHandler, NullEffectHandler
from .engine import ExecutionEngine
from .errors import EffectFailed, InvalidAddress, InvalidValue, StorageError
from .events import DepositReceived, EventBus, Listener, Subscription
from .governance import AddOwner, GovernanceChange, GovernanceGateway, RemoveOwner, SetThreshold, encode_change
from .journal import Journal
from .ledger import PendingIndices, Pool, TransactionLedger
from .registry import OwnerRegistry
from .store import WalletStore
from .tracker import ConfirmationTracker
from .types import (Address, AddressLike, TransactionView, derive_address,
                    hex_address, is_null, to_address)

logger = logging.getLogger(__name__)


def _payload_bytes(payload: Any) -> bytes:
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    raise InvalidValue(type(payload).__name__, message="payload must be bytes")


class Wallet:
    def __init__(
        self,
        address: Address,
        registry: OwnerRegistry,
        *,
        ledger: Optional[TransactionLedger] = None,
        pool: Optional[Pool] = None,
        store: Optional[WalletStore] = None,
        effect_handler: Optional[EffectHandler] = None,
        config: Optional[MultisigConfig] = None,
    ) -> None:
        cfg = config or get_config()
        self._address = address
        self._registry = registry
        self._ledger = (
            ledger
            if ledger is not None
            else TransactionLedger(
                max_transactions=cfg.limits.max_transactions,
                max_payload_bytes=cfg.limits.max_payload_bytes,
            )
        )
        self._pool = pool if pool is not None else Pool()
        self._store = store
        self._effect_handler: EffectHandler = effect_handler or NullEffectHandler()
        self._lock = threading.RLock()
        self._bus = EventBus()
        self._journal = Journal(self._registry, self._ledger, self._pool)
        self._tracker = ConfirmationTracker(self._registry, self._ledger, self._journal)
        self._gateway = GovernanceGateway(address, self._registry, self._journal)
        self._engine = ExecutionEngine(
            address,
            self._registry,
            self._ledger,
            self._pool,
            self._tracker,
            self._gateway,
            self._journal,
        )

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    @classmethod
    def create(
        cls,
        owners: Sequence[AddressLike],
        threshold: int,
        *,
        address: Optional[AddressLike] = None,
        store: Optional[WalletStore] = None,
        effect_handler: Optional[EffectHandler] = None,
        config: Optional[MultisigConfig] = None,
    ) -> "Wallet":
        """
        Create a wallet with its genesis owner set and threshold.

        The genesis registry obeys the same rules as governance: at least one
        owner, no duplicates, no null principal, `1 <= threshold <= owners`.
        Without an explicit `address` one is derived from owners and threshold.
        A `store` that already holds a wallet is refused.
        """
        cfg = config or get_config()
        normalized = [to_address(o) for o in owners]
        registry = OwnerRegistry.genesis(normalized, threshold, max_owners=cfg.limits.max_owners)
        if address is None:
            addr = derive_address(*normalized, int(threshold).to_bytes(4, "big"))
        else:
            addr = to_address(address)
        if is_null(addr):
            raise InvalidAddress(addr, message="wallet address cannot be the null principal")
        if registry.is_owner(addr):
            raise InvalidAddress(addr, message="wallet address cannot be one of its owners")
        if store is not None and store.is_initialized():
            raise StorageError("store already holds a wallet", retryable=False)

        wallet = cls(addr, registry, store=store, effect_handler=effect_handler, config=cfg)
        if store is not None:
            store.save(addr, registry, wallet._pool, wallet._ledger, ())
        logger.info(
            "wallet created",
            extra={"wallet": addr, "owners": len(normalized), "threshold": threshold},
        )
        return wallet

    @classmethod
    def open(
        cls,
        store: WalletStore,
        *,
        effect_handler: Optional[EffectHandler] = None,
        config: Optional[MultisigConfig] = None,
    ) -> "Wallet":
        """Restore a wallet previously persisted in `store`."""
        cfg = config or get_config()
        state = store.load()
        ledger = TransactionLedger(
            max_transactions=cfg.limits.max_transactions,
            max_payload_bytes=cfg.limits.max_payload_bytes,
        )
        try:
            registry = OwnerRegistry.from_record(state.registry, max_owners=cfg.limits.max_owners)
            ledger.load(state.transactions)
            if is_null(state.address) or registry.is_owner(state.address):
                raise ValueError("wallet address is null or registered as an owner")
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"corrupt wallet record: {e}", retryable=False).with_cause(e) from e
        return cls(
            state.address,
            registry,
            ledger=ledger,
            pool=Pool(state.balance),
            store=store,
            effect_handler=effect_handler,
            config=cfg,
        )

    def close(self) -> None:
        with self._lock:
            if self._store is not None:
                self._store.close()

    # ------------------------------------------------------------------ #
    # Atomic units
    # ------------------------------------------------------------------ #

    @contextmanager
    def _unit(self, op: str) -> Iterator[None]:
        with self._lock:
            outermost = self._journal.depth() == 0
            with mlog.trace_scope(mlog.context().get("trace_id"), wallet=self._address, component=op):
                self._journal.begin()
                try:
                    yield
                    if outermost and self._store is not None:
                        self._store.save(
                            self._address,
                            self._registry,
                            self._pool,
                            self._ledger,
                            self._journal.dirty(),
                        )
                except BaseException:
                    self._journal.revert()
                    raise
                events = self._journal.commit()
            # Listeners receive units in commit order.
            for ev in events:
                self._bus.publish(ev)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    @property
    def address(self) -> Address:
        return self._address

    @property
    def hex_address(self) -> str:
        return hex_address(self._address)

    def owners(self) -> Tuple[Address, ...]:
        with self._lock:
            return self._registry.owners()

    def owner_count(self) -> int:
        with self._lock:
            return self._registry.owner_count()

    def threshold(self) -> int:
        with self._lock:
            return self._registry.threshold

    def is_owner(self, principal: AddressLike) -> bool:
        p = to_address(principal)
        with self._lock:
            return self._registry.is_owner(p)

    def count(self) -> int:
        with self._lock:
            return self._ledger.count()

    def balance(self) -> int:
        with self._lock:
            return self._pool.balance

    def get_transaction(self, index: int) -> TransactionView:
        with self._lock:
            tx = self._ledger.get(index)
            return TransactionView(
                index=tx.index,
                target=tx.target,
                value=tx.value,
                payload=tx.payload,
                executed=tx.executed,
                confirmations=self._tracker.effective_count(tx),
                submitter=tx.submitter,
                confirmed_by=self._tracker.confirmed_by(tx),
                is_governance=self._engine.is_governance(tx),
            )

    def is_confirmed(self, index: int, owner: AddressLike) -> bool:
        o = to_address(owner)
        with self._lock:
            return self._tracker.is_confirmed(index, o)

    def confirmation_count(self, index: int) -> int:
        with self._lock:
            return self._tracker.confirmation_count(index)

    def pending_indices(self) -> PendingIndices:
        return PendingIndices(self._ledger, guard=lambda: self._lock)

    def subscribe(self, callback: Listener, topic: Optional[str] = None) -> Subscription:
        return self._bus.subscribe(callback, topic)

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def deposit(self, sender: AddressLike, value: int) -> int:
        """Add `value` to the pool; anyone may deposit. Returns the new balance."""
        s = to_address(sender)
        with self._unit("deposit"):
            balance = self._pool.credit(value)
            self._journal.emit(DepositReceived(sender=s, value=value, balance=balance))
        logger.debug("deposit", extra={"caller": s, "value": value})
        return balance

    def submit(self, caller: AddressLike, target: AddressLike, value: int = 0, payload: Any = b"") -> int:
        c, t, p = to_address(caller), to_address(target), _payload_bytes(payload)
        with self._unit("submit"):
            return self._engine.submit(c, t, value, p)

    def submit_governance(self, caller: AddressLike, change: GovernanceChange) -> int:
        return self.submit(caller, self._address, 0, encode_change(change))

    def confirm(self, caller: AddressLike, index: int) -> int:
        c = to_address(caller)
        with self._unit("confirm"):
            return self._tracker.confirm(c, index)

    def revoke(self, caller: AddressLike, index: int) -> int:
        c = to_address(caller)
        with self._unit("revoke"):
            return self._tracker.revoke(c, index)

    def execute(self, caller: AddressLike, index: int) -> TransactionView:
        """
        Execute a transaction that has reached quorum.

        The transaction is executed (and the pool debited) before the effect
        handler runs. If the handler raises, everything is rolled back, the
        transaction is pending again and `EffectFailed` is raised with the
        handler's exception as its cause.
        """
        c = to_address(caller)
        with self._unit("execute"):
            effect = self._engine.execute(c, index)
            if effect is not None:
                try:
                    self._effect_handler(effect)
                except Exception as e:
                    logger.warning(
                        "effect failed; execution rolled back",
                        extra={"index": index, "error": repr(e)},
                    )
                    raise EffectFailed(index, reason="handler_raised", error=type(e).__name__).with_cause(e) from e
        return self.get_transaction(index)

    # --- governance-only entry points (self-call) ---

    def add_owner(self, caller: AddressLike, owner: AddressLike) -> None:
        c, o = to_address(caller), to_address(owner)
        with self._unit("add_owner"):
            self._gateway.apply(c, AddOwner(o))

    def remove_owner(self, caller: AddressLike, owner: AddressLike) -> None:
        c, o = to_address(caller), to_address(owner)
        with self._unit("remove_owner"):
            self._gateway.apply(c, RemoveOwner(o))

    def set_threshold(self, caller: AddressLike, threshold: int) -> None:
        c = to_address(caller)
        with self._unit("set_threshold"):
            self._gateway.apply(c, SetThreshold(threshold))

    def __repr__(self) -> str:
        return f"Wallet({self.hex_address}, owners={self.owner_count()}, threshold={self.threshold()})"


__all__ = ["Wallet"]
