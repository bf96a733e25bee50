"""Audit ledger persistence against a throwaway SQLite file."""
from __future__ import annotations

import json

import pytest

from pm_settle.db import get_engine, get_session, get_sessionmaker
from pm_settle.ids import format_id
from pm_settle.oracles.pools import ConstantTickPool, PoolDirectory
from pm_settle.oracles.twap import TwapThresholdOracle
from pm_settle.repo.ledger import load_collateral_balance, persist_core
from pm_settle.repo.schema import create_schema
from pm_settle.sql import fetch_all, fetch_one, fetch_scalar

from conftest import ALICE, DAY, E18, POOL, REPORTER, T0, TWAP_ORACLE, USDC, WETH, tick_for_usdc_per_weth


async def _fresh_db(tmp_path):
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with get_session() as session:
        await create_schema(session)
    return engine


@pytest.mark.asyncio
async def test_persist_markets_balances_and_events(tmp_path, core, make_params, oracle):
    engine = await _fresh_db(tmp_path)
    market_id = core.create_market(make_params(), metadata_uri="ipfs://question")
    core.split_collateral(market_id, 7 * E18, sender=ALICE)

    async with get_session() as session:
        await persist_core(session, core)
        row = await fetch_one(session, "SELECT * FROM markets WHERE market_id = :m", {"m": format_id(market_id)})
        assert row["status"] == 0
        assert row["metadata_uri"] == "ipfs://question"
        assert await load_collateral_balance(session, market_id) == 7 * E18

        events = await fetch_all(session, "SELECT name, payload FROM notifications ORDER BY seq")
        assert [e["name"] for e in events] == ["MarketCreated", "PositionsSplit"]
        # ids exceed 2**53 and are written as strings
        assert json.loads(events[0]["payload"])["market_id"] == str(market_id)

    oracle.set_outcome(make_params().question_id, 1, False, sender=REPORTER)
    core.finalize_market(market_id)
    async with get_session() as session:
        await persist_core(session, core)
        await persist_core(session, core)
        row = await fetch_one(session, "SELECT status, winning_outcome_index FROM markets")
        assert (row["status"], row["winning_outcome_index"]) == (2, 1)
        assert await fetch_scalar(session, "SELECT COUNT(*) FROM notifications") == 3
    await engine.dispose()


@pytest.mark.asyncio
async def test_persist_threshold_questions(tmp_path, core, clock):
    engine = await _fresh_db(tmp_path)
    pool = ConstantTickPool(POOL, WETH, USDC, tick_for_usdc_per_weth(3_050.5), clock)
    twap = TwapThresholdOracle(TWAP_ORACLE, PoolDirectory(pool), {USDC: 6, WETH: 18}, clock)
    question_id = twap.register_threshold_question(POOL, WETH, USDC, 3_000, 3_600, T0 + DAY, True)
    clock.increase_to(T0 + DAY + 3_600)
    twap.request_resolution(question_id)

    async with get_session() as session:
        await persist_core(session, core, twap)
        row = await fetch_one(session, "SELECT * FROM threshold_questions")
        assert row["question_id"] == format_id(question_id)
        assert row["winning_index"] == 1
        assert int(row["resolved_price"]) == twap.get_question_config(question_id).resolved_price
        sources = await fetch_all(session, "SELECT DISTINCT source FROM notifications")
        assert [s["source"] for s in sources] == [TWAP_ORACLE]
    await engine.dispose()


@pytest.mark.asyncio
async def test_unknown_market_has_no_balance(tmp_path):
    engine = await _fresh_db(tmp_path)
    async with get_session() as session:
        assert await load_collateral_balance(session, 1) is None
    await engine.dispose()


@pytest.mark.asyncio
async def test_session_factory_follows_engine(tmp_path):
    first = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'a.db'}")
    assert get_sessionmaker().kw["bind"] is first
    second = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'b.db'}")
    assert get_sessionmaker().kw["bind"] is second
    assert get_engine() is second
    await first.dispose()
    await second.dispose()
