"""Thin helpers over ``text()`` SQL; every query in the ledger goes through here."""
from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

Params = dict[str, Any]


async def execute(session: AsyncSession, sql: str, params: Params | None = None) -> None:
    await session.execute(text(sql), params or {})


async def execute_many(session: AsyncSession, sql: str, rows: Sequence[Params]) -> int:
    """Run one statement for a batch of parameter sets; returns the batch size."""
    if not rows:
        return 0
    await session.execute(text(sql), list(rows))
    return len(rows)


async def fetch_all(session: AsyncSession, sql: str, params: Params | None = None) -> list[dict[str, Any]]:
    res = await session.execute(text(sql), params or {})
    return [dict(r._mapping) for r in res.fetchall()]


async def fetch_one(session: AsyncSession, sql: str, params: Params | None = None) -> dict[str, Any] | None:
    res = await session.execute(text(sql), params or {})
    row = res.fetchone()
    return dict(row._mapping) if row else None


async def fetch_scalar(session: AsyncSession, sql: str, params: Params | None = None) -> Any:
    res = await session.execute(text(sql), params or {})
    return res.scalar()
