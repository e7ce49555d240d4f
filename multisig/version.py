"""
Version helpers for the multisig engine.

- Exposes __version__ (PEP 440 string).
- MULTISIG_VERSION env var overrides the packaged default (useful for
  reproducible builds that stamp a release from CI).

This module has **no external dependencies** and is safe to import very early.
"""

from __future__ import annotations

import os
import re

DEFAULT_VERSION = "0.1.0"

_PEP440_LOOSE = re.compile(r"^v?\d+(\.\d+)*([._+-].+)?$")


def resolve_version() -> str:
    """
    Determine the version string in priority:
      1) MULTISIG_VERSION environment variable (leading 'v' stripped)
      2) DEFAULT_VERSION
    """
    env = os.getenv("MULTISIG_VERSION", "").strip()
    if env and _PEP440_LOOSE.match(env):
        return env.lstrip("v")
    return DEFAULT_VERSION


__version__ = resolve_version()


if __name__ == "__main__":
    print(__version__)
