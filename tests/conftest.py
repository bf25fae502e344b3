"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from tculture.config import LedgerConfig
from tculture.core import AccessCore
from tculture.governance import Authority
from tculture.payments import InMemoryPaymentRail
from tculture.registry import AssetRecord


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Ledger directory for one test."""
    return tmp_path / ".tculture"


@pytest.fixture
def config() -> LedgerConfig:
    """Distinct governor and oracle, default weights (100, 50, 20)."""
    return LedgerConfig(authority=Authority(governor="gov", oracle="oracle"))


@pytest.fixture
def rail() -> InMemoryPaymentRail:
    return InMemoryPaymentRail()


@pytest.fixture
def core(data_dir: Path, config: LedgerConfig, rail: InMemoryPaymentRail) -> AccessCore:
    """Fresh ledger paying into an in-memory rail."""
    return AccessCore.open(data_dir, config=config, payments=rail)


@pytest.fixture
def asset(core: AccessCore) -> AssetRecord:
    """
    Asset 0 owned by "studio" with C=100 and M=200.

    Initial price is 100*100 + 50*0 + 20*200 = 14000.
    """
    record = core.mint("studio", 100, "ipfs://bafy-museum-vase")
    core.set_market_value("oracle", record.asset_id, 200)
    return record
