"""Audit ledger tables. Portable between PostgreSQL and SQLite.

256-bit quantities (ids, balances, prices) are stored as text: ids as
0x-prefixed hex, amounts as decimal strings.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from pm_settle.sql import execute

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS markets (
      market_id TEXT PRIMARY KEY,
      collateral_token TEXT NOT NULL,
      market_deadline BIGINT NOT NULL,
      config_flags INTEGER NOT NULL,
      num_outcomes INTEGER NOT NULL,
      oracle TEXT NOT NULL,
      question_id TEXT NOT NULL,
      metadata_uri TEXT NOT NULL DEFAULT '',
      creator TEXT NOT NULL,
      created_at BIGINT NOT NULL,
      status INTEGER NOT NULL,
      winning_outcome_index INTEGER NOT NULL DEFAULT 0,
      is_invalid BOOLEAN NOT NULL DEFAULT false,
      resolved_at BIGINT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS collateral_balances (
      market_id TEXT PRIMARY KEY REFERENCES markets(market_id),
      balance TEXT NOT NULL,
      as_of BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS threshold_questions (
      question_id TEXT PRIMARY KEY,
      oracle TEXT NOT NULL,
      pool TEXT NOT NULL,
      base_token TEXT NOT NULL,
      quote_token TEXT NOT NULL,
      threshold TEXT NOT NULL,
      twap_window BIGINT NOT NULL,
      eval_time BIGINT NOT NULL,
      greater_than BOOLEAN NOT NULL,
      resolved BOOLEAN NOT NULL DEFAULT false,
      winning_index INTEGER NOT NULL DEFAULT 0,
      resolution_time BIGINT NOT NULL DEFAULT 0,
      resolved_price TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
      source TEXT NOT NULL,
      seq BIGINT NOT NULL,
      name TEXT NOT NULL,
      block_time BIGINT NOT NULL,
      payload TEXT NOT NULL,
      PRIMARY KEY (source, seq)
    )
    """,
)


async def create_schema(session: AsyncSession) -> None:
    for statement in SCHEMA_STATEMENTS:
        await execute(session, statement)
    await session.commit()
