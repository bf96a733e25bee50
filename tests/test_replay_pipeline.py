import pandas as pd
import pytest

from pipelines.replay_twap_market import run
from pm_settle.db import get_engine, get_session
from pm_settle.sql import fetch_all

from conftest import ALICE, BOB, DAY, E18, T0, tick_for_usdc_per_weth


@pytest.mark.asyncio
async def test_replay_settles_and_persists(tmp_path):
    tick = tick_for_usdc_per_weth(3_050.5)
    csv = tmp_path / "weth_usdc.csv"
    pd.DataFrame(
        {"timestamp": [T0, T0 + DAY], "tick_cumulative": [0, tick * DAY], "tick": [tick, tick]}
    ).to_csv(csv, index=False)

    summary = await run(
        csv,
        threshold=3_000,
        eval_time=T0 + DAY // 2,
        twap_window=3_600,
        stakes={ALICE: 4 * E18, BOB: E18},
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'replay.db'}",
    )

    assert summary["winning_index"] == 1
    assert summary["twap_price"] == 3_050
    assert summary["payouts"] == {ALICE: 4 * E18, BOB: E18}
    assert summary["remaining_collateral"] == 0

    async with get_session() as session:
        rows = await fetch_all(session, "SELECT name FROM notifications ORDER BY seq")
    names = [r["name"] for r in rows]
    assert names[:2] == ["QuestionRegistered", "MarketCreated"]
    assert names[-1] == "Redeemed"
    assert "QuestionResolved" in names and "MarketFinalized" in names
    await get_engine().dispose()
