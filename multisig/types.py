"""
multisig.types: principals and transaction records.

Conventions
-----------
* A principal (owner, target, wallet address) is a raw 32-byte value. Higher
  layers may render it as 0x-hex; inputs may be given as hex strings (with or
  without 0x) and are normalized by `to_address`.
* The all-zero address is the null principal and is never a valid owner.
* Amounts are integer base units (no floats).

`Transaction` is the mutable ledger record owned by `TransactionLedger`;
`TransactionView` is the immutable snapshot handed to callers.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, replace
from typing import Any, Dict, Tuple, Union

from .errors import InvalidAddress

Address = bytes
AddressLike = Union[str, bytes, bytearray, memoryview]

ADDRESS_LEN = 32
ZERO_ADDRESS: Address = bytes(ADDRESS_LEN)

_WALLET_DOMAIN = b"multisig.wallet.v1|"


def to_address(v: AddressLike) -> Address:
    """Normalize bytes or hex into a 32-byte address; raise InvalidAddress otherwise."""
    if isinstance(v, (bytes, bytearray, memoryview)):
        b = bytes(v)
    elif isinstance(v, str):
        s = v.strip()
        if s.startswith(("0x", "0X")):
            s = s[2:]
        try:
            b = bytes.fromhex(s)
        except ValueError as e:
            raise InvalidAddress(v, message="address is not valid hex").with_cause(e) from e
    else:
        raise InvalidAddress(repr(v), message=f"unsupported address type {type(v).__name__}")
    if len(b) != ADDRESS_LEN:
        raise InvalidAddress(v, message=f"address must be {ADDRESS_LEN} bytes, got {len(b)}")
    return b


def hex_address(a: bytes) -> str:
    return "0x" + bytes(a).hex()


def is_null(a: bytes) -> bool:
    return bytes(a) == ZERO_ADDRESS


def derive_address(*parts: bytes) -> Address:
    """Deterministic wallet address: sha3-256 over a domain tag and length-prefixed parts."""
    h = hashlib.sha3_256(_WALLET_DOMAIN)
    for p in parts:
        h.update(len(p).to_bytes(4, "big"))
        h.update(p)
    return h.digest()


def popcount(mask: int) -> int:
    return bin(mask).count("1")


@dataclass
class Transaction:
    """
    A ledger entry.

    `mask` holds one bit per owner slot that confirmed. While pending, the
    effective count is popcount(mask & active slots). On execution the mask is
    intersected with the active slots once and frozen, and `executed_count`
    records the count that satisfied quorum.
    """

    index: int
    target: Address
    value: int
    payload: bytes
    submitter: Address
    mask: int = 0
    executed: bool = False
    executed_count: int = 0

    def copy(self) -> "Transaction":
        return replace(self)

    def to_record(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "target": self.target,
            "value": self.value,
            "payload": self.payload,
            "submitter": self.submitter,
            "mask": self.mask,
            "executed": self.executed,
            "executed_count": self.executed_count,
        }

    @classmethod
    def from_record(cls, d: Dict[str, Any]) -> "Transaction":
        return cls(
            index=int(d["index"]),
            target=bytes(d["target"]),
            value=int(d["value"]),
            payload=bytes(d["payload"]),
            submitter=bytes(d["submitter"]),
            mask=int(d.get("mask", 0)),
            executed=bool(d.get("executed", False)),
            executed_count=int(d.get("executed_count", 0)),
        )


@dataclass(frozen=True)
class TransactionView:
    """Read-only snapshot returned by `get_transaction`."""

    index: int
    target: Address
    value: int
    payload: bytes
    executed: bool
    confirmations: int
    submitter: Address
    confirmed_by: Tuple[Address, ...] = ()
    is_governance: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "target": hex_address(self.target),
            "value": self.value,
            "payload": "0x" + self.payload.hex(),
            "executed": self.executed,
            "confirmations": self.confirmations,
            "submitter": hex_address(self.submitter),
            "confirmed_by": [hex_address(a) for a in self.confirmed_by],
            "is_governance": self.is_governance,
        }


__all__ = [
    "Address",
    "AddressLike",
    "ADDRESS_LEN",
    "ZERO_ADDRESS",
    "to_address",
    "hex_address",
    "is_null",
    "derive_address",
    "popcount",
    "Transaction",
    "TransactionView",
]
