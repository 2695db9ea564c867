"""Create fixture, pool, oracle submission, oddyssey and sync cursor tables

Revision ID: 0001_create_oracle_tables
Revises:
Create Date: 2025-11-04 09:00:00
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql


revision = "0001_create_oracle_tables"
down_revision = None
branch_labels = None
depends_on = None

POOL_STATUSES = ("active", "awaiting_result", "outcome_submitted", "settled", "refunded")

_WEI = sa.Numeric(78, 0)


def _ts(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), **kwargs)


def upgrade() -> None:
    bind = op.get_bind()
    existing = set(inspect(bind).get_table_names())
    pool_status = postgresql.ENUM(*POOL_STATUSES, name="pool_status", create_type=False)
    pool_status.create(bind, checkfirst=True)

    if "fixtures" not in existing:
        op.create_table(
            "fixtures",
            sa.Column("fixture_id", sa.BigInteger(), primary_key=True, autoincrement=False),
            sa.Column("home_team", sa.String(length=128), nullable=True),
            sa.Column("away_team", sa.String(length=128), nullable=True),
            sa.Column("league_id", sa.BigInteger(), nullable=True),
            sa.Column("league_name", sa.String(length=128), nullable=True),
            sa.Column("country", sa.String(length=128), nullable=True),
            _ts("starting_at", nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="NS"),
            sa.Column("odds", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
            sa.Column("needs_inspection", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("inspection_reason", sa.Text(), nullable=True),
            _ts("created_at", server_default=sa.func.now()),
            _ts("updated_at", server_default=sa.func.now()),
        )
        op.create_index("ix_fixtures_starting_at", "fixtures", ["starting_at"])

    if "fixture_results" not in existing:
        outcome_cols = [
            sa.Column(name, sa.String(length=8), nullable=False)
            for name in (
                "outcome_1x2",
                "outcome_ou05",
                "outcome_ou15",
                "outcome_ou25",
                "outcome_ou35",
                "outcome_ou45",
                "outcome_btts",
                "outcome_ht_result",
                "outcome_ht_ou05",
                "outcome_ht_ou15",
                "outcome_double_chance",
            )
        ]
        op.create_table(
            "fixture_results",
            sa.Column(
                "fixture_id",
                sa.BigInteger(),
                sa.ForeignKey("fixtures.fixture_id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column("ft_home_score", sa.Integer(), nullable=False),
            sa.Column("ft_away_score", sa.Integer(), nullable=False),
            sa.Column("ht_home_score", sa.Integer(), nullable=False),
            sa.Column("ht_away_score", sa.Integer(), nullable=False),
            sa.Column("final_home_score", sa.Integer(), nullable=True),
            sa.Column("final_away_score", sa.Integer(), nullable=True),
            sa.Column("penalty_home_score", sa.Integer(), nullable=True),
            sa.Column("penalty_away_score", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False),
            _ts("finished_at", nullable=False),
            *outcome_cols,
            sa.Column("outcome_correct_score", sa.String(length=16), nullable=False),
            _ts("created_at", server_default=sa.func.now()),
        )

    if "pools" not in existing:
        op.create_table(
            "pools",
            sa.Column("pool_id", sa.BigInteger(), primary_key=True, autoincrement=False),
            sa.Column("creator", sa.String(length=42), nullable=False),
            sa.Column("predicted_outcome", sa.Text(), nullable=False),
            sa.Column("market_id", sa.Text(), nullable=False),
            sa.Column("fixture_id", sa.BigInteger(), sa.ForeignKey("fixtures.fixture_id"), nullable=True),
            sa.Column("category", sa.String(length=64), nullable=True),
            sa.Column("league", sa.String(length=128), nullable=True),
            sa.Column("home_team", sa.String(length=128), nullable=True),
            sa.Column("away_team", sa.String(length=128), nullable=True),
            sa.Column("title", sa.Text(), nullable=True),
            sa.Column("odds", sa.Integer(), nullable=True),
            sa.Column("creator_stake", _WEI, nullable=False, server_default="0"),
            sa.Column("oracle_type", sa.SmallInteger(), nullable=False),
            sa.Column("market_type", sa.SmallInteger(), nullable=True),
            _ts("event_start_time", nullable=False),
            _ts("event_end_time", nullable=False),
            _ts("arbitration_deadline", nullable=False),
            sa.Column("total_bettor_stake", _WEI, nullable=False, server_default="0"),
            sa.Column("total_creator_side_stake", _WEI, nullable=False, server_default="0"),
            sa.Column("market_family", postgresql.JSONB(), nullable=True),
            sa.Column("status", pool_status, nullable=False, server_default="active"),
            sa.Column("state_tx_hash", sa.String(length=66), nullable=True),
            sa.Column("is_settled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("result", sa.String(length=66), nullable=True),
            sa.Column("creator_side_won", sa.Boolean(), nullable=True),
            _ts("result_timestamp", nullable=True),
            sa.Column("settlement_tx_hash", sa.String(length=66), nullable=True),
            _ts("settled_at", nullable=True),
            sa.Column("refund_reason", sa.Text(), nullable=True),
            _ts("refunded_at", nullable=True),
            sa.Column("rejected_reason", sa.Text(), nullable=True),
            sa.Column("created_block", sa.BigInteger(), nullable=True),
            sa.Column("created_tx_hash", sa.String(length=66), nullable=True),
            _ts("created_at", server_default=sa.func.now()),
            _ts("updated_at", server_default=sa.func.now()),
        )
        op.create_index("ix_pools_market_id", "pools", ["market_id"])
        op.create_index("ix_pools_fixture_id", "pools", ["fixture_id"])
        op.create_index("ix_pools_event_end_time", "pools", ["event_end_time"])
        op.create_index("ix_pools_is_settled", "pools", ["is_settled"])

    if "pool_bets" not in existing:
        op.create_table(
            "pool_bets",
            sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
            sa.Column("tx_hash", sa.String(length=66), nullable=False),
            sa.Column("log_index", sa.Integer(), nullable=False),
            sa.Column("pool_id", sa.BigInteger(), sa.ForeignKey("pools.pool_id"), nullable=False),
            sa.Column("bettor", sa.String(length=42), nullable=False),
            sa.Column("amount", _WEI, nullable=False),
            sa.Column("is_for_outcome", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("block_number", sa.BigInteger(), nullable=False),
            sa.UniqueConstraint("tx_hash", "log_index", name="uq_pool_bets_tx_log"),
        )
        op.create_index("ix_pool_bets_pool_id", "pool_bets", ["pool_id"])

    if "pool_liquidity" not in existing:
        op.create_table(
            "pool_liquidity",
            sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
            sa.Column("tx_hash", sa.String(length=66), nullable=False),
            sa.Column("log_index", sa.Integer(), nullable=False),
            sa.Column("pool_id", sa.BigInteger(), sa.ForeignKey("pools.pool_id"), nullable=False),
            sa.Column("provider", sa.String(length=42), nullable=False),
            sa.Column("amount", _WEI, nullable=False),
            sa.Column("block_number", sa.BigInteger(), nullable=False),
            sa.UniqueConstraint("tx_hash", "log_index", name="uq_pool_liquidity_tx_log"),
        )
        op.create_index("ix_pool_liquidity_pool_id", "pool_liquidity", ["pool_id"])

    if "oracle_submissions" not in existing:
        op.create_table(
            "oracle_submissions",
            sa.Column("market_id", sa.Text(), primary_key=True),
            sa.Column("outcome", sa.Text(), nullable=False),
            sa.Column("outcome_hex", sa.Text(), nullable=False),
            sa.Column("tx_hash", sa.String(length=66), nullable=True),
            sa.Column("block_number", sa.BigInteger(), nullable=True),
            _ts("submitted_at", nullable=False, server_default=sa.func.now()),
        )

    if "oddyssey_cycles" not in existing:
        op.create_table(
            "oddyssey_cycles",
            sa.Column("cycle_id", sa.BigInteger(), primary_key=True, autoincrement=False),
            sa.Column("matches_data", postgresql.JSONB(), nullable=False),
            sa.Column("matches_count", sa.Integer(), nullable=False, server_default="10"),
            _ts("cycle_start_time", nullable=True),
            _ts("cycle_end_time", nullable=True),
            sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("resolved_at", nullable=True),
            sa.Column("ready_for_resolution", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("resolution_prepared_at", nullable=True),
            sa.Column("tx_hash", sa.String(length=66), nullable=True),
            sa.Column("resolution_tx_hash", sa.String(length=66), nullable=True),
            sa.Column("resolution_data", postgresql.JSONB(), nullable=True),
            sa.Column("prize_pool", _WEI, nullable=True),
            _ts("created_at", server_default=sa.func.now()),
            _ts("updated_at", server_default=sa.func.now()),
        )
        op.create_index("ix_oddyssey_cycles_is_resolved", "oddyssey_cycles", ["is_resolved"])
        op.create_index("ix_oddyssey_cycles_created_at", "oddyssey_cycles", ["created_at"])

    if "oddyssey_slips" not in existing:
        op.create_table(
            "oddyssey_slips",
            sa.Column("slip_id", sa.BigInteger(), primary_key=True, autoincrement=False),
            sa.Column("cycle_id", sa.BigInteger(), sa.ForeignKey("oddyssey_cycles.cycle_id"), nullable=False),
            sa.Column("player_address", sa.String(length=42), nullable=False),
            _ts("placed_at", nullable=True),
            sa.Column("predictions", postgresql.JSONB(), nullable=False),
            sa.Column("is_evaluated", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("correct_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("final_score", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("leaderboard_rank", sa.Integer(), nullable=True),
            sa.Column("tx_hash", sa.String(length=66), nullable=True),
            sa.Column("evaluation_tx_hash", sa.String(length=66), nullable=True),
            _ts("evaluated_at", nullable=True),
        )
        op.create_index("ix_oddyssey_slips_cycle_id", "oddyssey_slips", ["cycle_id"])
        op.create_index("ix_oddyssey_slips_player_address", "oddyssey_slips", ["player_address"])

    if "chain_sync_cursor" not in existing:
        op.create_table(
            "chain_sync_cursor",
            sa.Column("name", sa.String(length=64), primary_key=True),
            sa.Column("last_block", sa.BigInteger(), nullable=False),
            _ts("updated_at", server_default=sa.func.now()),
        )


def downgrade() -> None:
    bind = op.get_bind()
    existing = set(inspect(bind).get_table_names())
    for table in (
        "chain_sync_cursor",
        "oddyssey_slips",
        "oddyssey_cycles",
        "oracle_submissions",
        "pool_liquidity",
        "pool_bets",
        "pools",
        "fixture_results",
        "fixtures",
    ):
        if table in existing:
            op.drop_table(table)
    postgresql.ENUM(name="pool_status").drop(bind, checkfirst=True)
