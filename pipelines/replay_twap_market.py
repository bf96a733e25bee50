"""Replay a recorded pool price series through a TWAP-settled binary market.

Observations are read from a CSV with ``timestamp, tick_cumulative`` and an
optional ``tick`` column. The replay registers one threshold question on the
series, runs a market on it from creation to payout on a manual clock and
writes the resulting audit ledger to the configured database.
"""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any, Mapping

import pandas as pd
import structlog

from pm_settle.clock import ManualClock
from pm_settle.db import get_engine, get_session
from pm_settle.ids import format_id
from pm_settle.ledgers.collateral import MAX_UINT256, AssetDirectory, InMemoryCollateralAsset
from pm_settle.ledgers.outcome_tokens import InMemoryOutcomeTokenLedger
from pm_settle.logging import configure_logging
from pm_settle.market.core import MarketCore
from pm_settle.oracles.base import OracleDirectory
from pm_settle.oracles.pools import PoolDirectory, RecordedPool
from pm_settle.oracles.twap import TwapThresholdOracle
from pm_settle.repo.ledger import persist_core
from pm_settle.repo.schema import create_schema
from pm_settle.schemas import ConfigFlags, MarketParams

log = structlog.get_logger(__name__)

ENGINE = "0x" + "e0" * 20
COLLATERAL = "0x" + "c0" * 20
TWAP_ORACLE = "0x" + "7a" * 20

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
POOL = "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640"


async def run(
    observations_csv: str | Path,
    threshold: int,
    eval_time: int,
    twap_window: int = 3600,
    greater_than: bool = True,
    stakes: Mapping[str, int] | None = None,
    database_url: str | None = None,
) -> dict[str, Any]:
    """Settle one market against the recorded series.

    ``threshold`` is in whole USDC per WETH. ``stakes`` maps
    trader addresses to the collateral each splits into a full outcome set.
    """
    configure_logging()
    stakes = stakes or {"0x" + "a1" * 20: 10**18}

    start = int(pd.read_csv(observations_csv, usecols=["timestamp"])["timestamp"].min())
    clock = ManualClock(start)
    pool = RecordedPool.from_csv(observations_csv, POOL, WETH, USDC, clock)
    twap = TwapThresholdOracle(TWAP_ORACLE, PoolDirectory(pool), {USDC: 6, WETH: 18}, clock)

    collateral = InMemoryCollateralAsset(COLLATERAL)
    tokens = InMemoryOutcomeTokenLedger(minters=[ENGINE])
    for trader, amount in stakes.items():
        collateral.mint(trader, amount)
        collateral.approve(trader, ENGINE, MAX_UINT256)
        tokens.set_approval_for_all(trader, ENGINE, True)
    core = MarketCore(ENGINE, AssetDirectory(collateral), tokens, OracleDirectory(twap), clock=clock, events=twap.events)

    question_id = twap.register_threshold_question(POOL, WETH, USDC, threshold, twap_window, eval_time, greater_than)
    market_id = core.create_market(
        MarketParams(
            collateral_token=COLLATERAL,
            market_deadline=eval_time,
            config_flags=ConfigFlags.NONE,
            num_outcomes=2,
            oracle=TWAP_ORACLE,
            question_id=question_id,
        ),
        metadata_uri=f"replay://{Path(observations_csv).name}",
    )
    for trader, amount in stakes.items():
        core.split_collateral(market_id, amount, sender=trader)

    clock.increase_to(eval_time + twap_window)
    core.request_resolution(market_id)
    core.finalize_market(market_id)

    winner = core.get_market_state(market_id).winning_outcome_index
    payouts = {trader: core.redeem_winnings(market_id, winner, amount, sender=trader) for trader, amount in stakes.items()}

    if database_url is not None:
        get_engine(database_url)
    async with get_session() as session:
        await create_schema(session)
        await persist_core(session, core, twap)

    summary = {
        "market_id": format_id(market_id),
        "question_id": format_id(question_id),
        "twap_price": twap.get_question_config(question_id).resolved_price,
        "winning_index": winner,
        "payouts": payouts,
        "remaining_collateral": core.get_collateral_balance(market_id),
    }
    log.info("replay_done", **{k: v for k, v in summary.items() if k != "payouts"}, traders=len(payouts))
    return summary


def main() -> None:
    p = argparse.ArgumentParser()
    p.add_argument("csv", help="Observation series: timestamp, tick_cumulative[, tick]")
    p.add_argument("--threshold", type=int, required=True, help="Whole USDC per WETH")
    p.add_argument("--eval-time", type=int, required=True)
    p.add_argument("--window", type=int, default=3600)
    p.add_argument("--below", action="store_true", help="Yes when the TWAP is at or below the threshold")
    p.add_argument("--db-url", default=None, help="Async SQLAlchemy DB URL")
    args = p.parse_args()

    asyncio.run(
        run(
            args.csv,
            threshold=args.threshold,
            eval_time=args.eval_time,
            twap_window=args.window,
            greater_than=not args.below,
            database_url=args.db_url,
        )
    )


if __name__ == "__main__":
    main()
