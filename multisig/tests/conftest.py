from __future__ import annotations

from typing import List

import pytest

from multisig.config import MultisigConfig, load_config
from multisig.effects import AccountsEffectHandler
from multisig.tests.fixtures import FUNDER, O1, O2, O3
from multisig.wallet import Wallet


@pytest.fixture
def cfg() -> MultisigConfig:
    # Ignore the developer's environment.
    return load_config(env={})


@pytest.fixture
def handler() -> AccountsEffectHandler:
    return AccountsEffectHandler()


@pytest.fixture
def wallet(cfg: MultisigConfig, handler: AccountsEffectHandler) -> Wallet:
    """3 owners, threshold 2, funded with 1000."""
    w = Wallet.create([O1, O2, O3], 2, effect_handler=handler, config=cfg)
    w.deposit(FUNDER, 1000)
    return w


@pytest.fixture
def events(wallet: Wallet) -> List[object]:
    seen: List[object] = []
    wallet.subscribe(seen.append)
    return seen
