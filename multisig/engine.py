"""
multisig.engine — proposal admission and quorum execution.

`execute` follows a fixed order:

  1. validate everything (caller, index, state, quorum, and either the
     registry change or the pool balance) before touching state;
  2. mark the transaction executed, freezing its confirmation mask and count,
     and debit the pool;
  3. governance changes are applied through the gateway as a self-call;
     transfers return an `Effect` for the wallet to hand to its handler.

Because step 2 precedes any external call, a re-entrant `execute` of the same
index from inside the handler sees `AlreadyExecuted`. The caller owns the
surrounding journal checkpoint and reverts it if the handler fails.
"""

from __future__ import annotations

import logging
from typing import Optional

from .effects import Effect
from .errors import AlreadyExecuted, InsufficientConfirmations, InvalidGovernancePayload, Unauthorized
from .events import TransactionExecuted, TransactionSubmitted
from .governance import GovernanceChange, GovernanceGateway, decode_change
from .journal import Journal
from .ledger import Pool, TransactionLedger
from .registry import OwnerRegistry
from .tracker import ConfirmationTracker
from .types import Address, Transaction, popcount

logger = logging.getLogger(__name__)


class ExecutionEngine:
    def __init__(
        self,
        address: Address,
        registry: OwnerRegistry,
        ledger: TransactionLedger,
        pool: Pool,
        tracker: ConfirmationTracker,
        gateway: GovernanceGateway,
        journal: Journal,
    ) -> None:
        self.address = address
        self._registry = registry
        self._ledger = ledger
        self._pool = pool
        self._tracker = tracker
        self._gateway = gateway
        self._journal = journal

    def is_governance(self, tx: Transaction) -> bool:
        return tx.target == self.address

    def governance_change(self, tx: Transaction) -> Optional[GovernanceChange]:
        return decode_change(tx.payload) if self.is_governance(tx) else None

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    def submit(self, caller: Address, target: Address, value: int, payload: bytes) -> int:
        if not self._registry.is_owner(caller):
            raise Unauthorized("only owners may submit", caller=caller)
        self._ledger.check_append(value, payload)
        if target == self.address:
            self._gateway.check_payload(decode_change(payload))
            if value != 0:
                raise InvalidGovernancePayload("governance transactions carry no value", value=value)
        tx = self._ledger.append(caller, target, value, payload)
        self._journal.emit(
            TransactionSubmitted(
                index=tx.index,
                submitter=caller,
                target=tx.target,
                value=tx.value,
                payload=tx.payload,
            )
        )
        logger.debug("submitted", extra={"index": tx.index, "caller": caller})
        return tx.index

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def execute(self, caller: Address, index: int) -> Optional[Effect]:
        if not self._registry.is_owner(caller):
            raise Unauthorized("only owners may execute", caller=caller)
        tx = self._ledger.require(index)
        if tx.executed:
            raise AlreadyExecuted(index)
        count = self._tracker.effective_count(tx)
        threshold = self._registry.threshold
        if count < threshold:
            raise InsufficientConfirmations(index, count, threshold)

        change = self.governance_change(tx)
        if change is not None:
            self._gateway.check(change)
        else:
            self._pool.check_debit(index, tx.value)

        tx = self._journal.tx_for_write(index)
        tx.mask &= self._registry.active_mask()
        tx.executed_count = popcount(tx.mask)
        tx.executed = True
        self._journal.emit(
            TransactionExecuted(
                index=index,
                executor=caller,
                target=tx.target,
                value=tx.value,
                confirmations=tx.executed_count,
            )
        )
        logger.info(
            "executed",
            extra={"index": index, "caller": caller, "confirmations": tx.executed_count},
        )

        if change is not None:
            self._gateway.apply(self.address, change)
            return None
        self._pool.debit(index, tx.value)
        return Effect(
            wallet=self.address,
            index=index,
            target=tx.target,
            value=tx.value,
            payload=tx.payload,
        )


__all__ = ["ExecutionEngine"]
