"""Fixtures mirrored from the football provider and their final results."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Fixture(Base):
    __tablename__ = "fixtures"

    fixture_id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
        comment="Provider-assigned fixture id; football pools use its decimal form as market_id",
    )
    home_team: Mapped[str | None] = mapped_column(String(128))
    away_team: Mapped[str | None] = mapped_column(String(128))
    league_id: Mapped[int | None] = mapped_column(BigInteger)
    league_name: Mapped[str | None] = mapped_column(String(128))
    country: Mapped[str | None] = mapped_column(String(128))
    starting_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="NS")
    odds: Mapped[dict] = mapped_column(
        JSONB,
        default=dict,
        comment="1X2 and O/U 2.5 decimal odds keyed home/draw/away/over_25/under_25",
    )
    needs_inspection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    inspection_reason: Mapped[str | None] = mapped_column(Text)
    terminal_seen_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        comment="First time the provider reported a terminal state; cleared if the state rolls back",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class FixtureResult(Base):
    __tablename__ = "fixture_results"

    fixture_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("fixtures.fixture_id", ondelete="CASCADE"),
        primary_key=True,
    )
    ft_home_score: Mapped[int] = mapped_column(Integer, nullable=False, comment="90-minute home goals")
    ft_away_score: Mapped[int] = mapped_column(Integer, nullable=False, comment="90-minute away goals")
    ht_home_score: Mapped[int] = mapped_column(Integer, nullable=False)
    ht_away_score: Mapped[int] = mapped_column(Integer, nullable=False)
    final_home_score: Mapped[int | None] = mapped_column(Integer, comment="Informational, includes extra time")
    final_away_score: Mapped[int | None] = mapped_column(Integer, comment="Informational, includes extra time")
    penalty_home_score: Mapped[int | None] = mapped_column(Integer)
    penalty_away_score: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    outcome_1x2: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_ou05: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_ou15: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_ou25: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_ou35: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_ou45: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_btts: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_ht_result: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_ht_ou05: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_ht_ou15: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_double_chance: Mapped[str] = mapped_column(String(8), nullable=False)
    outcome_correct_score: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


__all__ = ["Fixture", "FixtureResult"]
