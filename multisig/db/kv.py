from __future__ import annotations

"""
KV interface & namespace prefixes
=================================

Backend-agnostic Key–Value interface used by `multisig.store`, plus the
canonical key prefixes for the wallet's logical buckets:

- WALLET (b"w:") : wallet header (address, threshold, owner slots, balance, count)
- LEDGER (b"t:") : transaction records by big-endian u64 index

This file is *pure interface + helpers* and contains no I/O.

Key building helpers
--------------------
- Prefix(ns=b"t") produces a prefix object:
    LEDGER.key(be_u64(7)) → b"t:" + len|data
- Big-endian fixed-width integers keep keys lexicographically sortable.

Batching
--------
`KV.batch()` returns a context manager. Use it to write atomically:

>>> with kv.batch() as b:
...     b.put(WALLET.key(b"header"), blob)
"""

from typing import Iterator, Optional, Protocol, Tuple, Union, runtime_checkable

NS_SEP = b":"


class Prefix:
    """
    A logical namespace prefix (e.g., b"t:" for LEDGER).

    .raw gives the raw bytes prefix.
    .key(*parts) builds a composite key: prefix + ∑ (uvarlen | part_bytes).
    """

    __slots__ = ("_raw",)

    def __init__(self, ns: Union[bytes, str]) -> None:
        ns_b = ns.encode("ascii") if isinstance(ns, str) else bytes(ns)
        if len(ns_b) == 0:
            raise ValueError("namespace must be non-empty")
        self._raw = ns_b.rstrip(NS_SEP) + NS_SEP

    @property
    def raw(self) -> bytes:
        return self._raw

    def key(self, *parts: Union[bytes, str]) -> bytes:
        out = bytearray(self._raw)
        for p in parts:
            pb = p.encode("utf-8") if isinstance(p, str) else bytes(p)
            out.extend(_uvarint_len(len(pb)))
            out.extend(pb)
        return bytes(out)


def _uvarint_len(n: int) -> bytes:
    """LEB128-like unsigned length prefix."""
    if n < 0:
        raise ValueError("length must be non-negative")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(0x80 | b)
        else:
            out.append(b)
            break
    return bytes(out)


def be_u64(n: int) -> bytes:
    if not (0 <= n < (1 << 64)):
        raise ValueError("be_u64 out of range")
    return n.to_bytes(8, "big")


WALLET = Prefix(b"w")
LEDGER = Prefix(b"t")


@runtime_checkable
class ReadOnlyKV(Protocol):
    def get(self, key: bytes) -> Optional[bytes]: ...
    def has(self, key: bytes) -> bool: ...
    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]: ...
    def close(self) -> None: ...


@runtime_checkable
class Batch(Protocol):
    """
    A write-batch context manager. Backend guarantees atomicity when exiting
    the context without exception. If an exception escapes, the batch is rolled back.
    """

    def put(self, key: bytes, value: bytes) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    def batch(self) -> Batch: ...


__all__ = [
    "ReadOnlyKV",
    "KV",
    "Batch",
    "Prefix",
    "WALLET",
    "LEDGER",
    "be_u64",
]
