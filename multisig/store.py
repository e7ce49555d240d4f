"""
multisig.store: durable wallet state over the KV interface.

Layout
------
  WALLET.key(b"header")   CBOR {version, address, registry, balance, count}
  LEDGER.key(be_u64(i))   CBOR transaction record i

The wallet writes every atomic unit's changes (header plus each appended or
modified transaction) in one KV batch when the unit commits, so storage only
ever holds committed states.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from . import encoding
from .db import KV, LEDGER, WALLET, be_u64, open_kv
from .errors import StorageError
from .ledger import Pool, TransactionLedger
from .registry import OwnerRegistry
from .types import Address, Transaction

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
HEADER_KEY = WALLET.key(b"header")


def tx_key(index: int) -> bytes:
    return LEDGER.key(be_u64(index))


@dataclass
class LoadedState:
    address: Address
    registry: Dict[str, Any]
    balance: int
    transactions: List[Transaction]


class WalletStore:
    def __init__(self, kv: KV) -> None:
        self._kv = kv

    @classmethod
    def open(cls, uri: str, create: bool = True) -> "WalletStore":
        try:
            return cls(open_kv(uri, create=create))
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"cannot open store: {e}", retryable=False, uri=uri).with_cause(e) from e

    @property
    def kv(self) -> KV:
        return self._kv

    def is_initialized(self) -> bool:
        return self._kv.has(HEADER_KEY)

    def save(
        self,
        address: Address,
        registry: OwnerRegistry,
        pool: Pool,
        ledger: TransactionLedger,
        indices: Iterable[int],
    ) -> None:
        header = {
            "version": SCHEMA_VERSION,
            "address": address,
            "registry": registry.to_record(),
            "balance": pool.balance,
            "count": ledger.count(),
        }
        try:
            with self._kv.batch() as b:
                for i in sorted(indices):
                    b.put(tx_key(i), encoding.dumps(ledger.get(i).to_record()))
                b.put(HEADER_KEY, encoding.dumps(header))
        except sqlite3.Error as e:
            raise StorageError(f"write failed: {e}").with_cause(e) from e

    def load(self) -> LoadedState:
        raw = self._kv.get(HEADER_KEY)
        if raw is None:
            raise StorageError("store holds no wallet", retryable=False)
        try:
            header = encoding.loads(raw)
            if header.get("version") != SCHEMA_VERSION:
                raise StorageError("unsupported schema version", retryable=False, version=header.get("version"))
            count = int(header["count"])
            txs = []
            # Keys sort by index, so record i must sit at position i.
            for i, (key, rec) in enumerate(self._kv.iter_prefix(LEDGER.raw)):
                if i >= count:
                    raise StorageError("transaction record beyond ledger count", retryable=False, index=i, count=count)
                if key != tx_key(i):
                    raise StorageError("missing transaction record", retryable=False, index=i)
                txs.append(Transaction.from_record(encoding.loads(rec)))
            if len(txs) != count:
                raise StorageError("missing transaction record", retryable=False, index=len(txs))
        except (encoding.CBORError, AttributeError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"corrupt wallet record: {e}", retryable=False).with_cause(e) from e
        logger.debug("wallet loaded", extra={"count": count})
        return LoadedState(
            address=bytes(header["address"]),
            registry=header["registry"],
            balance=int(header["balance"]),
            transactions=txs,
        )

    def close(self) -> None:
        self._kv.close()


__all__ = ["WalletStore", "LoadedState", "HEADER_KEY", "tx_key"]
