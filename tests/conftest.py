from __future__ import annotations

import math

import pytest

from pm_settle.clock import ManualClock
from pm_settle.ledgers.collateral import MAX_UINT256, AssetDirectory, InMemoryCollateralAsset
from pm_settle.ledgers.outcome_tokens import InMemoryOutcomeTokenLedger
from pm_settle.market.core import MarketCore
from pm_settle.oracles.base import OracleDirectory
from pm_settle.oracles.manual import ManualOracle
from pm_settle.schemas import MarketParams

T0 = 1_700_000_000
DAY = 86_400
E18 = 10**18

ENGINE = "0x" + "e0" * 20
COLLATERAL = "0x" + "c0" * 20
ORACLE = "0x" + "0a" * 20
REPORTER = "0x" + "7e" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
POOL = "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640"
TWAP_ORACLE = "0x" + "7a" * 20


def tick_for_usdc_per_weth(price: float) -> int:
    """Pool tick at which one WETH (token1) trades for ``price`` USDC (token0)."""
    raw_token1_per_token0 = 10**18 / (price * 10**6)
    return round(math.log(raw_token1_per_token0) / math.log(1.0001))


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def collateral() -> InMemoryCollateralAsset:
    asset = InMemoryCollateralAsset(COLLATERAL, "mUSDC", 18)
    for user in (ALICE, BOB):
        asset.mint(user, 100_000 * E18)
        asset.approve(user, ENGINE, MAX_UINT256)
    return asset


@pytest.fixture
def tokens() -> InMemoryOutcomeTokenLedger:
    ledger = InMemoryOutcomeTokenLedger(minters=[ENGINE])
    for user in (ALICE, BOB):
        ledger.set_approval_for_all(user, ENGINE, True)
    return ledger


@pytest.fixture
def oracle(clock) -> ManualOracle:
    return ManualOracle(ORACLE, REPORTER, clock)


@pytest.fixture
def core(clock, collateral, tokens, oracle) -> MarketCore:
    return MarketCore(ENGINE, AssetDirectory(collateral), tokens, OracleDirectory(oracle), clock=clock)


@pytest.fixture
def make_params():
    def _make(**overrides) -> MarketParams:
        fields = {
            "collateral_token": COLLATERAL,
            "market_deadline": T0 + DAY,
            "config_flags": 0,
            "num_outcomes": 2,
            "oracle": ORACLE,
            "question_id": "0x" + "11" * 32,
        }
        fields.update(overrides)
        return MarketParams(**fields)

    return _make
