"""
multisig — M-of-N multisig authorization engine.

A fixed set of owners jointly controls a value pool and an outgoing
transaction queue. Any transaction executes only after a quorum of distinct
current owners has confirmed it, exactly once, with owner-set and threshold
changes going through the same pipeline as governance transactions.

Typical usage:

    from multisig import Wallet, AddOwner

    w = Wallet.create([alice, bob, carol], threshold=2)
    i = w.submit(alice, target, value=10)
    w.confirm(alice, i)
    w.confirm(bob, i)
    w.execute(carol, i)
"""

from .effects import AccountsEffectHandler, Effect, NullEffectHandler
from .errors import *  # noqa: F401,F403
from .errors import __all__ as _errors_all
from .events import (DepositReceived, Event, OwnerAdded, OwnerRemoved,
                     ThresholdChanged, TransactionConfirmed,
                     TransactionExecuted, TransactionRevoked,
                     TransactionSubmitted)
from .governance import AddOwner, RemoveOwner, SetThreshold, decode_change, encode_change
from .store import WalletStore
from .types import TransactionView, derive_address, hex_address, to_address
from .version import __version__
from .wallet import Wallet

__all__ = [
    "__version__",
    "Wallet",
    "WalletStore",
    "TransactionView",
    "Effect",
    "NullEffectHandler",
    "AccountsEffectHandler",
    "AddOwner",
    "RemoveOwner",
    "SetThreshold",
    "encode_change",
    "decode_change",
    "Event",
    "DepositReceived",
    "TransactionSubmitted",
    "TransactionConfirmed",
    "TransactionRevoked",
    "TransactionExecuted",
    "OwnerAdded",
    "OwnerRemoved",
    "ThresholdChanged",
    "to_address",
    "hex_address",
    "derive_address",
    *_errors_all,
]
