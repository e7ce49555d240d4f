"""
multisig.events
===============

Typed wallet notifications and a small synchronous bus to deliver them.

Topics
------
  - "DepositReceived"       value added to the pool
  - "TransactionSubmitted"  new pending transaction with full proposal content
  - "TransactionConfirmed"  owner confirmation recorded
  - "TransactionRevoked"    owner confirmation withdrawn
  - "TransactionExecuted"   transaction reached its terminal state
  - "OwnerAdded"            governance admitted an owner
  - "OwnerRemoved"          governance removed an owner
  - "ThresholdChanged"      governance changed the quorum

Events are buffered by the wallet for the duration of an atomic unit and only
published once the outermost unit commits, so a rolled-back call never emits.

Every event has a JSON-friendly `to_dict()`:

    {"event": "TransactionConfirmed", "index": 0, "owner": "0x..", "confirmations": 1}
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Optional

from .types import Address

logger = logging.getLogger(__name__)

JSONDict = Dict[str, Any]


def _jsonify(v: Any) -> Any:
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    return v


@dataclass(frozen=True)
class Event:
    """Base class; the topic is the class name."""

    @property
    def topic(self) -> str:
        return type(self).__name__

    def to_dict(self) -> JSONDict:
        out: JSONDict = {"event": self.topic}
        for f in fields(self):
            out[f.name] = _jsonify(getattr(self, f.name))
        return out


@dataclass(frozen=True)
class DepositReceived(Event):
    sender: Address
    value: int
    balance: int


@dataclass(frozen=True)
class TransactionSubmitted(Event):
    index: int
    submitter: Address
    target: Address
    value: int
    payload: bytes


@dataclass(frozen=True)
class TransactionConfirmed(Event):
    index: int
    owner: Address
    confirmations: int


@dataclass(frozen=True)
class TransactionRevoked(Event):
    index: int
    owner: Address
    confirmations: int


@dataclass(frozen=True)
class TransactionExecuted(Event):
    index: int
    executor: Address
    target: Address
    value: int
    confirmations: int


@dataclass(frozen=True)
class OwnerAdded(Event):
    owner: Address
    owner_count: int


@dataclass(frozen=True)
class OwnerRemoved(Event):
    owner: Address
    owner_count: int


@dataclass(frozen=True)
class ThresholdChanged(Event):
    old: int
    new: int


Listener = Callable[[Event], None]


class Subscription:
    """Handle returned by `EventBus.subscribe`; call `unsubscribe()` to detach."""

    __slots__ = ("_bus", "_topic", "_cb")

    def __init__(self, bus: "EventBus", topic: Optional[str], cb: Listener) -> None:
        self._bus = bus
        self._topic = topic
        self._cb = cb

    def unsubscribe(self) -> None:
        self._bus._unsubscribe(self._topic, self._cb)


class EventBus:
    """
    A synchronous, thread-safe pub-sub bus.

    - Listeners may subscribe to one topic or to all (`topic=None`)
    - Best-effort delivery: listener exceptions are caught and logged
    - `publish` returns the number of listeners that completed
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subs: Dict[Optional[str], List[Listener]] = {}

    def subscribe(self, callback: Listener, topic: Optional[str] = None) -> Subscription:
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            self._subs.setdefault(topic, []).append(callback)
        return Subscription(self, topic, callback)

    def _unsubscribe(self, topic: Optional[str], callback: Listener) -> None:
        with self._lock:
            lst = self._subs.get(topic)
            if not lst:
                return
            try:
                lst.remove(callback)
            except ValueError:
                pass
            if not lst:
                self._subs.pop(topic, None)

    def subscribers(self, topic: Optional[str] = None) -> int:
        with self._lock:
            return len(self._subs.get(topic, []))

    def publish(self, event: Event) -> int:
        with self._lock:
            subs = list(self._subs.get(event.topic, [])) + list(self._subs.get(None, []))
        delivered = 0
        for cb in subs:
            try:
                cb(event)
                delivered += 1
            except Exception as e:
                logger.warning("listener error on topic=%s: %s", event.topic, e, exc_info=True)
        return delivered


__all__ = [
    "Event",
    "DepositReceived",
    "TransactionSubmitted",
    "TransactionConfirmed",
    "TransactionRevoked",
    "TransactionExecuted",
    "OwnerAdded",
    "OwnerRemoved",
    "ThresholdChanged",
    "Listener",
    "Subscription",
    "EventBus",
]
