"""
multisig.encoding
=================

Canonical CBOR encode/decode helpers used for persisted wallet records and
governance payloads.

- Deterministic map ordering (canonical CBOR, RFC 8949 §4.2)
- Shortest integer encodings; bytes stay bytes

Public API
----------
dumps(obj) -> bytes
loads(data: (bytes|bytearray|memoryview)) -> Any

Notes
-----
* Keys in mappings MUST be of type (str | int | bytes). Floats or other
  non-canonical keys are rejected.
* Dataclasses and Enums are converted to plain Python types before encoding.
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Union

import cbor2


class CBORError(ValueError):
    """Raised for canonical CBOR violations or encode/decode failures."""


_KeyType = Union[str, int, bytes]


def _is_key_type(k: Any) -> bool:
    return isinstance(k, (str, int, bytes))


def _to_plain(obj: Any) -> Any:
    """Convert dataclasses/Enums/bytearray/memoryview etc. to plain types."""
    if obj is None or isinstance(obj, (bool, int, str, bytes)):
        return obj
    if isinstance(obj, float):
        raise CBORError("floats are not allowed in wallet records")
    if isinstance(obj, (bytearray, memoryview)):
        return bytes(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        return {k: _to_plain(v) for k, v in asdict(obj).items()}
    if isinstance(obj, Enum):
        return _to_plain(obj.value)
    if isinstance(obj, Mapping):
        out: Dict[_KeyType, Any] = {}
        for k, v in obj.items():
            if not _is_key_type(k):
                raise CBORError(
                    f"Non-canonical mapping key type {type(k).__name__}; "
                    "only str|int|bytes are allowed"
                )
            out[k] = _to_plain(v)
        return out
    if isinstance(obj, (tuple, list)):
        return [_to_plain(x) for x in obj]
    raise CBORError(f"cannot encode {type(obj).__name__} as CBOR")


def dumps(obj: Any) -> bytes:
    """Encode to canonical CBOR bytes."""
    plain = _to_plain(obj)
    try:
        return cbor2.dumps(plain, canonical=True)
    except Exception as e:  # pragma: no cover
        raise CBORError(f"cbor2 canonical encode failed: {e}") from e


def loads(data: Union[bytes, bytearray, memoryview]) -> Any:
    """
    Decode CBOR bytes. Trailing bytes after the first item are rejected so a
    payload has exactly one reading.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise CBORError("loads() expects bytes-like input")
    raw = bytes(data)
    try:
        obj = cbor2.loads(raw)
    except Exception as e:
        raise CBORError(f"CBOR decode failed: {e}") from e
    if cbor2.dumps(obj, canonical=True) != raw:
        raise CBORError("CBOR input is not in canonical form")
    return obj


__all__ = ["dumps", "loads", "CBORError"]
