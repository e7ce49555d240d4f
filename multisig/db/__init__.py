from __future__ import annotations

"""
multisig.db
===========

Thin facade for the key–value backend used to persist wallets.

URIs
----
- "sqlite:///path/to/wallet.db"   → SQLite file
- "sqlite:///:memory:"            → in-memory SQLite (tests)
- "memory://"                     → alias of "sqlite:///:memory:"
- Bare path                       → SQLite file

Example
-------
>>> from multisig.db import open_kv
>>> kv = open_kv("memory://")
>>> with kv.batch() as b:
...     b.put(b"w:key", b"hello")
>>> kv.get(b"w:key")
b'hello'
"""

from typing import Tuple

from .kv import KV, LEDGER, WALLET, Batch, Prefix, ReadOnlyKV, be_u64
from .sqlite import open_sqlite_kv


def _parse_uri(uri: str) -> Tuple[str, str]:
    """Parse a DB URI into ("sqlite", path) or ("memory", "")."""
    u = uri.strip()
    if u.startswith("sqlite:///"):
        return ("sqlite", u[len("sqlite:///") :])
    if u.startswith("memory://"):
        return ("memory", "")
    if "://" in u:
        raise ValueError(f"Unsupported DB backend in URI: {uri!r}")
    return ("sqlite", u)


def open_kv(uri: str, create: bool = True) -> KV:
    """
    Open a KV database by URI. See module docstring for supported forms.

    Raises:
        ValueError for unsupported URIs.
        FileNotFoundError when create=False and the file is missing.
    """
    backend, path = _parse_uri(uri)
    if backend == "memory" or path in ("", ":memory:"):
        return open_sqlite_kv(":memory:", create=True)
    return open_sqlite_kv(path, create=create)


__all__ = [
    "KV",
    "ReadOnlyKV",
    "Batch",
    "Prefix",
    "WALLET",
    "LEDGER",
    "be_u64",
    "open_kv",
]
