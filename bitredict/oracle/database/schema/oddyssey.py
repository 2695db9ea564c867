"""Oddyssey daily cycles and slips."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, Wei


class OddysseyCycle(Base):
    __tablename__ = "oddyssey_cycles"

    cycle_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    matches_data: Mapped[list] = mapped_column(
        JSONB,
        nullable=False,
        comment="Ten {fixture_id, start_time, odds_*} entries in on-chain order",
    )
    matches_count: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    cycle_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cycle_end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ready_for_resolution: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolution_prepared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    tx_hash: Mapped[str | None] = mapped_column(String(66))
    resolution_tx_hash: Mapped[str | None] = mapped_column(String(66))
    resolution_data: Mapped[list | None] = mapped_column(JSONB)
    prize_pool: Mapped[int | None] = mapped_column(Wei)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class OddysseySlip(Base):
    __tablename__ = "oddyssey_slips"

    slip_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    cycle_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("oddyssey_cycles.cycle_id"),
        nullable=False,
        index=True,
    )
    player_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    placed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    predictions: Mapped[list] = mapped_column(
        JSONB,
        nullable=False,
        comment="Ten {match_id, bet_type, selection, selected_odd} entries",
    )
    is_evaluated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_score: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    leaderboard_rank: Mapped[int | None] = mapped_column(Integer)
    tx_hash: Mapped[str | None] = mapped_column(String(66))
    evaluation_tx_hash: Mapped[str | None] = mapped_column(String(66))
    evaluated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


__all__ = ["OddysseyCycle", "OddysseySlip"]
