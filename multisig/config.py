"""
multisig.config — runtime configuration for the multisig engine.

This module centralizes knobs for:
  • Limits (owner cap, payload size, ledger length)
  • Storage location (KV URI used by the CLI and `WalletStore`)
  • Logging (level and format)

Configuration may be provided via environment variables. Safe defaults are
chosen so a local run works out of the box.

Environment variables (all optional):
  MULTISIG_DB                  -> KV URI (default: sqlite:///multisig.db)
  MULTISIG_MAX_OWNERS          -> integer (default: 64)
  MULTISIG_MAX_PAYLOAD_BYTES   -> e.g. "128KiB", "4096" (default: 128KiB)
  MULTISIG_MAX_TRANSACTIONS    -> integer (default: 2**32)
  MULTISIG_LOG_LEVEL           -> DEBUG/INFO/WARNING/... (default: INFO)
  MULTISIG_LOG_FORMAT          -> json | text | auto (default: auto)

Programmatic usage:
    from multisig.config import get_config
    cfg = get_config()
    if len(owners) > cfg.limits.max_owners:
        ...
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from typing import Dict, Mapping, Optional, Union

from .errors import ConfigError

DEFAULT_DB_URI = "sqlite:///multisig.db"

# ----------------------------- helpers -------------------------------------

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([kKmMgG]i?[bB]|[bB])?\s*$")

_UNITS = {
    "b": 1,
    "kb": 1000,
    "kib": 1024,
    "mb": 1000**2,
    "mib": 1024**2,
    "gb": 1000**3,
    "gib": 1024**3,
}


def _parse_size_bytes(s: Union[str, int]) -> int:
    """
    Parse human-friendly byte sizes:
      "128KiB", "64KB", "1MiB", "131072", 131072 -> bytes (int)
    """
    if isinstance(s, int):
        if s < 0:
            raise ConfigError("size must be non-negative", value=s)
        return s
    m = _SIZE_RE.match(str(s))
    if not m:
        raise ConfigError(f"invalid size: {s!r}", value=str(s))
    unit = (m.group(2) or "b").lower()
    return int(m.group(1)) * _UNITS[unit]


def _parse_int(name: str, raw: Union[str, int]) -> int:
    if isinstance(raw, int):
        return raw
    s = str(raw).strip().replace("_", "")
    try:
        # Accept "2**32" for readability in env files.
        if "**" in s:
            base, exp = s.split("**", 1)
            return int(base) ** int(exp)
        return int(s, 0)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer", value=str(raw)).with_cause(e) from e


# ------------------------------ dataclasses ---------------------------------


@dataclass(frozen=True)
class Limits:
    max_owners: int = 64
    max_payload_bytes: int = 128 * 1024  # 128 KiB
    max_transactions: int = 1 << 32


@dataclass(frozen=True)
class MultisigConfig:
    db_uri: str = DEFAULT_DB_URI
    limits: Limits = field(default_factory=Limits)
    log_level: str = "INFO"
    log_format: str = "auto"

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


# ------------------------------ loader --------------------------------------


def _validate_limits(l: Limits) -> Limits:
    if l.max_owners < 1:
        raise ConfigError("max_owners must be >= 1", max_owners=l.max_owners)
    if l.max_payload_bytes < 0:
        raise ConfigError("max_payload_bytes must be >= 0", max_payload_bytes=l.max_payload_bytes)
    if l.max_transactions < 1:
        raise ConfigError("max_transactions must be >= 1", max_transactions=l.max_transactions)
    return l


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    overrides: Optional[Mapping[str, Union[str, int]]] = None,
) -> MultisigConfig:
    """
    Build a MultisigConfig from environment and optional overrides.

    Overrides take precedence over the environment; keys: 'db_uri',
    'max_owners', 'max_payload_bytes', 'max_transactions', 'log_level',
    'log_format'.
    """
    env = os.environ if env is None else env
    overrides = dict(overrides or {})

    def pick(key: str, env_name: str, default: Union[str, int]) -> Union[str, int]:
        if key in overrides:
            return overrides[key]
        return env.get(env_name, default)

    limits = _validate_limits(
        Limits(
            max_owners=_parse_int("max_owners", pick("max_owners", "MULTISIG_MAX_OWNERS", 64)),
            max_payload_bytes=_parse_size_bytes(
                pick("max_payload_bytes", "MULTISIG_MAX_PAYLOAD_BYTES", 128 * 1024)
            ),
            max_transactions=_parse_int(
                "max_transactions", pick("max_transactions", "MULTISIG_MAX_TRANSACTIONS", 1 << 32)
            ),
        )
    )

    log_format = str(pick("log_format", "MULTISIG_LOG_FORMAT", "auto")).strip().lower()
    if log_format not in ("json", "text", "auto"):
        raise ConfigError("log_format must be json, text or auto", value=log_format)

    return MultisigConfig(
        db_uri=str(pick("db_uri", "MULTISIG_DB", DEFAULT_DB_URI)),
        limits=limits,
        log_level=str(pick("log_level", "MULTISIG_LOG_LEVEL", "INFO")).upper(),
        log_format=log_format,
    )


@lru_cache(maxsize=1)
def get_config() -> MultisigConfig:
    """Cached process-wide config for application bootstraps."""
    return load_config()


def summary(cfg: Optional[MultisigConfig] = None) -> str:
    cfg = cfg or get_config()
    l = cfg.limits
    return (
        "multisig{"
        f"db={cfg.db_uri}, owners<={l.max_owners}, payload<={l.max_payload_bytes}B, "
        f"txs<={l.max_transactions}, log={cfg.log_level}/{cfg.log_format}"
        "}"
    )


__all__ = [
    "DEFAULT_DB_URI",
    "Limits",
    "MultisigConfig",
    "load_config",
    "get_config",
    "summary",
]
