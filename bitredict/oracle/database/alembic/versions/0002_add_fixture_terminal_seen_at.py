"""Track when a fixture was first reported in a terminal state

Revision ID: 0002_add_fixture_terminal_seen_at
Revises: 0001_create_oracle_tables
Create Date: 2025-11-18 10:30:00
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect


revision = "0002_add_fixture_terminal_seen_at"
down_revision = "0001_create_oracle_tables"
branch_labels = None
depends_on = None


def _columns(bind) -> set[str]:
    return {c["name"] for c in inspect(bind).get_columns("fixtures")}


def upgrade() -> None:
    if "terminal_seen_at" not in _columns(op.get_bind()):
        op.add_column("fixtures", sa.Column("terminal_seen_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    if "terminal_seen_at" in _columns(op.get_bind()):
        op.drop_column("fixtures", "terminal_seen_at")
