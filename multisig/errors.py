"""
multisig.errors
---------------

One error system for the whole engine.

Design goals
------------
- One root `MultisigError` with a machine-stable `code` and optional `data`.
- One concrete subclass per failure kind so callers can branch on cause
  (`except AlreadyExecuted:`) or on `err.code` after a JSON round-trip.
- Safe JSON representation (`to_dict`) suitable for logs and CLI output.
- Clear separation of *retryable* vs *permanent* failures.

Hierarchy
---------
MultisigError
 ├─ Unauthorized                 caller is not allowed to perform the call
 ├─ RegistryError
 │   ├─ NullPrincipal            zero address used as an owner
 │   ├─ DuplicateOwner
 │   ├─ UnknownOwner
 │   ├─ ThresholdViolation       removal would leave threshold > owners
 │   └─ InvalidThreshold
 ├─ IndexOutOfRange              bad index on a query
 │   └─ TxNotFound               bad index on a mutation
 ├─ StateConflict
 │   ├─ AlreadyExecuted
 │   ├─ AlreadyConfirmed
 │   └─ NotConfirmed
 ├─ InsufficientConfirmations
 ├─ EffectFailed                 external effect failed; execution rolled back
 ├─ InvalidInput
 │   ├─ InvalidValue
 │   ├─ InvalidAddress
 │   └─ InvalidGovernancePayload
 ├─ LimitExceeded
 ├─ StorageError
 └─ ConfigError

This module uses only stdlib so every other module can import it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class ErrorCode(str, Enum):
    UNAUTHORIZED = "MULTISIG/UNAUTHORIZED"

    # Registry invariants
    NULL_PRINCIPAL = "MULTISIG/NULL_PRINCIPAL"
    DUPLICATE_OWNER = "MULTISIG/DUPLICATE_OWNER"
    UNKNOWN_OWNER = "MULTISIG/UNKNOWN_OWNER"
    THRESHOLD_VIOLATION = "MULTISIG/THRESHOLD_VIOLATION"
    INVALID_THRESHOLD = "MULTISIG/INVALID_THRESHOLD"

    # Bad index
    INDEX_OUT_OF_RANGE = "MULTISIG/INDEX_OUT_OF_RANGE"
    TX_NOT_FOUND = "MULTISIG/TX_NOT_FOUND"

    # State conflicts
    ALREADY_EXECUTED = "MULTISIG/ALREADY_EXECUTED"
    ALREADY_CONFIRMED = "MULTISIG/ALREADY_CONFIRMED"
    NOT_CONFIRMED = "MULTISIG/NOT_CONFIRMED"

    # Quorum / effect
    INSUFFICIENT_CONFIRMATIONS = "MULTISIG/INSUFFICIENT_CONFIRMATIONS"
    EFFECT_FAILED = "MULTISIG/EFFECT_FAILED"

    # Input validation
    INVALID_VALUE = "MULTISIG/INVALID_VALUE"
    INVALID_ADDRESS = "MULTISIG/INVALID_ADDRESS"
    INVALID_GOVERNANCE_PAYLOAD = "MULTISIG/INVALID_GOVERNANCE_PAYLOAD"

    # Resources / environment
    LIMIT_EXCEEDED = "MULTISIG/LIMIT_EXCEEDED"
    STORAGE = "MULTISIG/STORAGE"
    CONFIG = "MULTISIG/CONFIG"


@dataclass(eq=False)
class MultisigError(Exception):
    """
    Root error for the multisig engine.

    Attributes
    ----------
    code: str
        Machine-stable error code (see ErrorCode).
    message: str
        Human hint suitable for logs.
    data: dict
        Optional machine data (indices, addresses, counts). JSON-serializable.
    retryable: bool
        Whether the same call may succeed later without changing inputs
        (e.g. execute after the pool has been funded).
    cause: Optional[BaseException]
        Wrapped original exception; not part of equality or repr.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")

    def with_context(self, **ctx: Any) -> "MultisigError":
        """Return a *new* error with extra context merged (does not mutate)."""
        clone = self._clone()
        clone.data = {**self.data, **_jsonmap(ctx)}
        return clone

    def with_cause(self, exc: BaseException) -> "MultisigError":
        """Attach/replace the causal exception (returns a new instance)."""
        clone = self._clone()
        clone.cause = exc
        clone.__cause__ = exc
        return clone

    def _clone(self) -> "MultisigError":
        # Subclass __init__ signatures differ, so bypass them.
        clone = type(self).__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone.args = self.args
        return clone

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """JSON-safe shape suitable for logs and CLI output."""
        out: Dict[str, Any] = {
            "code": str(self.code),
            "message": self.message,
            "data": _jsonmap(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:  # pragma: no cover - human formatting
        parts = [f"{self.code}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


def _init(
    err: MultisigError,
    code: ErrorCode,
    message: str,
    data: Mapping[str, Any],
    retryable: bool = False,
) -> None:
    MultisigError.__init__(
        err, code=code.value, message=message, data=_jsonmap(data), retryable=retryable
    )


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class Unauthorized(MultisigError):
    def __init__(self, message: str = "caller is not authorized", **data: Any) -> None:
        _init(self, ErrorCode.UNAUTHORIZED, message, data)


# ---------------------------------------------------------------------------
# Registry invariants
# ---------------------------------------------------------------------------


class RegistryError(MultisigError):
    """Base for owner-set / threshold invariant violations."""


class NullPrincipal(RegistryError):
    def __init__(self, message: str = "null principal is not a valid owner", **data: Any) -> None:
        _init(self, ErrorCode.NULL_PRINCIPAL, message, data)


class DuplicateOwner(RegistryError):
    def __init__(self, owner: Any = None, message: str = "owner already registered") -> None:
        _init(self, ErrorCode.DUPLICATE_OWNER, message, {"owner": owner})


class UnknownOwner(RegistryError):
    def __init__(self, owner: Any = None, message: str = "owner is not registered") -> None:
        _init(self, ErrorCode.UNKNOWN_OWNER, message, {"owner": owner})


class ThresholdViolation(RegistryError):
    def __init__(self, threshold: int, owners_after: int) -> None:
        _init(
            self,
            ErrorCode.THRESHOLD_VIOLATION,
            "owner removal would leave threshold above owner count",
            {"threshold": threshold, "owners_after": owners_after},
        )


class InvalidThreshold(RegistryError):
    def __init__(self, threshold: Any, owner_count: int) -> None:
        _init(
            self,
            ErrorCode.INVALID_THRESHOLD,
            "threshold must satisfy 1 <= threshold <= owner count",
            {"threshold": threshold, "owner_count": owner_count},
        )


# ---------------------------------------------------------------------------
# Bad index
# ---------------------------------------------------------------------------


class IndexOutOfRange(MultisigError):
    def __init__(self, index: Any, count: int, message: str = "transaction index out of range") -> None:
        _init(self, ErrorCode.INDEX_OUT_OF_RANGE, message, {"index": index, "count": count})


class TxNotFound(IndexOutOfRange):
    def __init__(self, index: Any, count: int) -> None:
        _init(self, ErrorCode.TX_NOT_FOUND, "transaction not found", {"index": index, "count": count})


# ---------------------------------------------------------------------------
# State conflicts
# ---------------------------------------------------------------------------


class StateConflict(MultisigError):
    """Base for calls that are invalid in the transaction's current state."""


class AlreadyExecuted(StateConflict):
    def __init__(self, index: int) -> None:
        _init(self, ErrorCode.ALREADY_EXECUTED, "transaction already executed", {"index": index})


class AlreadyConfirmed(StateConflict):
    def __init__(self, index: int, owner: Any = None) -> None:
        _init(
            self,
            ErrorCode.ALREADY_CONFIRMED,
            "owner already confirmed this transaction",
            {"index": index, "owner": owner},
        )


class NotConfirmed(StateConflict):
    def __init__(self, index: int, owner: Any = None) -> None:
        _init(
            self,
            ErrorCode.NOT_CONFIRMED,
            "owner has no standing confirmation on this transaction",
            {"index": index, "owner": owner},
        )


# ---------------------------------------------------------------------------
# Quorum & effect
# ---------------------------------------------------------------------------


class InsufficientConfirmations(MultisigError):
    def __init__(self, index: int, confirmations: int, threshold: int) -> None:
        _init(
            self,
            ErrorCode.INSUFFICIENT_CONFIRMATIONS,
            "not enough confirmations to execute",
            {"index": index, "confirmations": confirmations, "threshold": threshold},
        )


class EffectFailed(MultisigError):
    """
    The external effect of an execution failed. The execution was rolled back
    and the transaction is pending again, so a later retry may succeed.
    """

    def __init__(self, index: int, reason: str = "effect_failed", **data: Any) -> None:
        _init(
            self,
            ErrorCode.EFFECT_FAILED,
            f"external effect failed: {reason}",
            {"index": index, "reason": reason, **data},
            retryable=True,
        )


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InvalidInput(MultisigError):
    """Base for malformed call arguments."""


class InvalidValue(InvalidInput):
    def __init__(self, value: Any, message: str = "value must be a non-negative integer") -> None:
        _init(self, ErrorCode.INVALID_VALUE, message, {"value": value})


class InvalidAddress(InvalidInput):
    def __init__(self, value: Any, message: str = "address must be 32 bytes") -> None:
        _init(self, ErrorCode.INVALID_ADDRESS, message, {"value": value})


class InvalidGovernancePayload(InvalidInput):
    def __init__(self, message: str = "malformed governance payload", **data: Any) -> None:
        _init(self, ErrorCode.INVALID_GOVERNANCE_PAYLOAD, message, data)


# ---------------------------------------------------------------------------
# Resources & environment
# ---------------------------------------------------------------------------


class LimitExceeded(MultisigError):
    def __init__(self, resource: str, limit: int, **data: Any) -> None:
        _init(
            self,
            ErrorCode.LIMIT_EXCEEDED,
            f"limit exceeded: {resource}",
            {"resource": resource, "limit": limit, **data},
        )


class StorageError(MultisigError):
    def __init__(self, message: str = "storage error", retryable: bool = True, **data: Any) -> None:
        _init(self, ErrorCode.STORAGE, message, data, retryable=retryable)


class ConfigError(MultisigError):
    def __init__(self, message: str = "invalid configuration", **data: Any) -> None:
        _init(self, ErrorCode.CONFIG, message, data)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    # Keep JSON primitives; hex-encode bytes; stringify the rest.
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    if isinstance(v, Enum):
        return _coerce_json(v.value)
    if isinstance(v, (list, tuple)):
        return [_coerce_json(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _coerce_json(x) for k, x in v.items()}
    return str(v)


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"


__all__ = [
    "ErrorCode",
    "MultisigError",
    "Unauthorized",
    "RegistryError",
    "NullPrincipal",
    "DuplicateOwner",
    "UnknownOwner",
    "ThresholdViolation",
    "InvalidThreshold",
    "IndexOutOfRange",
    "TxNotFound",
    "StateConflict",
    "AlreadyExecuted",
    "AlreadyConfirmed",
    "NotConfirmed",
    "InsufficientConfirmations",
    "EffectFailed",
    "InvalidInput",
    "InvalidValue",
    "InvalidAddress",
    "InvalidGovernancePayload",
    "LimitExceeded",
    "StorageError",
    "ConfigError",
]
