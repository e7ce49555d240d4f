"""
multisig.effects: the external side of an execution.

`ExecutionEngine.execute` does not perform transfers itself. After it has
marked a transaction executed it returns an `Effect` command, and the wallet
hands that command to an `EffectHandler` supplied by the embedding
application. If the handler raises, the wallet rolls the whole execution back.

Handlers may call back into the wallet from the same thread (for instance a
callee that confirms another transaction); such calls run as nested atomic
units and see the transaction already executed. Handlers must not block on
other threads that use the wallet, since the wallet lock is held throughout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, MutableMapping, Optional, Protocol

from .types import Address, hex_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Effect:
    """Transfer `value` to `target` and deliver `payload`, on behalf of `wallet`."""

    wallet: Address
    index: int
    target: Address
    value: int
    payload: bytes

    def to_dict(self) -> Dict[str, object]:
        return {
            "wallet": hex_address(self.wallet),
            "index": self.index,
            "target": hex_address(self.target),
            "value": self.value,
            "payload": "0x" + self.payload.hex(),
        }


class EffectHandler(Protocol):
    """
    Performs the transfer described by an `Effect`; raising rolls it back.

    The handler runs while the wallet lock is held. Calls back into the wallet
    must come from the handler's own thread: a handler that waits on another
    thread which itself calls the wallet deadlocks.
    """

    def __call__(self, effect: Effect) -> None: ...


class NullEffectHandler:
    """Accepts every effect and does nothing (value leaves the pool)."""

    def __call__(self, effect: Effect) -> None:
        logger.debug("effect dropped", extra={"index": effect.index})


Callee = Callable[[Effect], None]


class AccountsEffectHandler:
    """
    In-process settlement: credits `balances[target]` and, when the target has
    a registered callee, invokes it with the effect. A callee that raises
    reverts the credit and propagates, which rolls back the execution.
    """

    def __init__(
        self,
        balances: Optional[MutableMapping[Address, int]] = None,
        callees: Optional[Dict[Address, Callee]] = None,
    ) -> None:
        self.balances: MutableMapping[Address, int] = {} if balances is None else balances
        self.callees: Dict[Address, Callee] = dict(callees or {})

    def register(self, target: Address, callee: Callee) -> None:
        self.callees[target] = callee

    def __call__(self, effect: Effect) -> None:
        before = self.balances.get(effect.target, 0)
        self.balances[effect.target] = before + effect.value
        callee = self.callees.get(effect.target)
        if callee is None:
            return
        try:
            callee(effect)
        except Exception:
            self.balances[effect.target] = before
            raise


__all__ = [
    "Effect",
    "EffectHandler",
    "NullEffectHandler",
    "AccountsEffectHandler",
    "Callee",
]
