"""
Repository-level pytest setup.

Hypothesis defaults: fewer examples locally, deeper runs on CI. Select with
HYPOTHESIS_PROFILE=local|ci.
"""

import os

from hypothesis import settings

settings.register_profile("local", settings(max_examples=60, deadline=None))
settings.register_profile("ci", settings(max_examples=200, deadline=None))
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE") or ("ci" if os.environ.get("CI") else "local"))
