from __future__ import annotations

import json
from typing import Iterable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pm_settle.events import Notification
from pm_settle.ids import format_id
from pm_settle.market.core import MarketCore
from pm_settle.oracles.twap import TwapThresholdOracle
from pm_settle.schemas import MarketRecord, ThresholdQuestion
from pm_settle.sql import execute, execute_many, fetch_one

log = structlog.get_logger(__name__)


# JSON consumers lose precision above 2**53
def _jsonable(payload: dict) -> dict:
    return {k: str(v) if isinstance(v, int) and not isinstance(v, bool) and abs(v) > 2**53 else v for k, v in payload.items()}


async def upsert_market_record(session: AsyncSession, r: MarketRecord) -> None:
    # parameters are immutable; only lifecycle columns may move, and only forward
    await execute(
        session,
        """
        INSERT INTO markets(market_id, collateral_token, market_deadline, config_flags, num_outcomes,
                            oracle, question_id, metadata_uri, creator, created_at,
                            status, winning_outcome_index, is_invalid, resolved_at)
        VALUES (:market_id, :collateral_token, :market_deadline, :config_flags, :num_outcomes,
                :oracle, :question_id, :metadata_uri, :creator, :created_at,
                :status, :winning_outcome_index, :is_invalid, :resolved_at)
        ON CONFLICT (market_id) DO UPDATE SET
          status=EXCLUDED.status,
          winning_outcome_index=EXCLUDED.winning_outcome_index,
          is_invalid=EXCLUDED.is_invalid,
          resolved_at=EXCLUDED.resolved_at
        WHERE markets.status < EXCLUDED.status
        """,
        {
            "market_id": format_id(r.market_id),
            "collateral_token": r.params.collateral_token,
            "market_deadline": r.params.market_deadline,
            "config_flags": r.params.config_flags,
            "num_outcomes": r.params.num_outcomes,
            "oracle": r.params.oracle,
            "question_id": format_id(r.params.question_id),
            "metadata_uri": r.metadata_uri,
            "creator": r.creator,
            "created_at": r.created_at,
            "status": int(r.status),
            "winning_outcome_index": r.winning_outcome_index,
            "is_invalid": r.is_invalid,
            "resolved_at": r.resolved_at,
        },
    )


async def set_collateral_balance(session: AsyncSession, market_id: int, balance: int, as_of: int) -> None:
    await execute(
        session,
        """
        INSERT INTO collateral_balances(market_id, balance, as_of)
        VALUES (:market_id, :balance, :as_of)
        ON CONFLICT (market_id) DO UPDATE SET
          balance=EXCLUDED.balance,
          as_of=EXCLUDED.as_of
        """,
        {"market_id": format_id(market_id), "balance": str(balance), "as_of": as_of},
    )


async def upsert_question(session: AsyncSession, oracle: str, q: ThresholdQuestion) -> None:
    await execute(
        session,
        """
        INSERT INTO threshold_questions(question_id, oracle, pool, base_token, quote_token, threshold,
                                        twap_window, eval_time, greater_than,
                                        resolved, winning_index, resolution_time, resolved_price)
        VALUES (:question_id, :oracle, :pool, :base_token, :quote_token, :threshold,
                :twap_window, :eval_time, :greater_than,
                :resolved, :winning_index, :resolution_time, :resolved_price)
        ON CONFLICT (question_id) DO UPDATE SET
          resolved=EXCLUDED.resolved,
          winning_index=EXCLUDED.winning_index,
          resolution_time=EXCLUDED.resolution_time,
          resolved_price=EXCLUDED.resolved_price
        WHERE threshold_questions.resolved = false
        """,
        {
            "question_id": format_id(q.question_id),
            "oracle": oracle,
            "pool": q.config.pool,
            "base_token": q.config.base_token,
            "quote_token": q.config.quote_token,
            "threshold": str(q.config.threshold),
            "twap_window": q.config.twap_window,
            "eval_time": q.config.eval_time,
            "greater_than": q.config.greater_than,
            "resolved": q.resolved,
            "winning_index": q.winning_index,
            "resolution_time": q.resolution_time,
            "resolved_price": None if q.resolved_price is None else str(q.resolved_price),
        },
    )


async def append_events(session: AsyncSession, source: str, events: Iterable[Notification]) -> int:
    """Insert-only; re-persisting the same log is a no-op for rows already written."""
    rows = []
    for seq, e in enumerate(events):
        payload = e.payload()
        block_time = payload.pop("timestamp")
        rows.append(
            {
                "source": source,
                "seq": seq,
                "name": e.name,
                "block_time": block_time,
                "payload": json.dumps(_jsonable(payload), sort_keys=True),
            }
        )
    return await execute_many(
        session,
        """
        INSERT INTO notifications(source, seq, name, block_time, payload)
        VALUES (:source, :seq, :name, :block_time, :payload)
        ON CONFLICT (source, seq) DO NOTHING
        """,
        rows,
    )


async def persist_core(session: AsyncSession, core: MarketCore, *oracles: TwapThresholdOracle) -> None:
    now = core.clock.now()
    for market_id, record in core.registry.markets.items():
        await upsert_market_record(session, record)
        await set_collateral_balance(session, market_id, core.registry.balances[market_id], now)
    n_events = await append_events(session, core.address, core.events.entries)

    for oracle in oracles:
        for q in oracle.questions.values():
            await upsert_question(session, oracle.address, q)
        if oracle.events is not core.events:
            n_events += await append_events(session, oracle.address, oracle.events.entries)

    await session.commit()
    log.info(
        "ledger_persisted",
        markets=len(core.registry.markets),
        questions=sum(len(o.questions) for o in oracles),
        events=n_events,
    )


async def load_collateral_balance(session: AsyncSession, market_id: int) -> int | None:
    row = await fetch_one(
        session,
        "SELECT balance FROM collateral_balances WHERE market_id = :market_id",
        {"market_id": format_id(market_id)},
    )
    return int(row["balance"]) if row else None
