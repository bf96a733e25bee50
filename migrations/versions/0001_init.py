"""0001 settlement audit ledger

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op

from pm_settle.repo.schema import SCHEMA_STATEMENTS


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    for statement in SCHEMA_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    # the ledger is append-only; tables are never dropped
    pass
