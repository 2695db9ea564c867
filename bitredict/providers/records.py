"""Normalized records produced by the provider adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass
class FixtureResult:
    fixture_id: int
    status: str
    ft_home_score: Optional[int] = None
    ft_away_score: Optional[int] = None
    ht_home_score: Optional[int] = None
    ht_away_score: Optional[int] = None
    # informational only; never used for outcome computation
    final_home_score: Optional[int] = None
    final_away_score: Optional[int] = None
    penalty_home_score: Optional[int] = None
    penalty_away_score: Optional[int] = None
    ended_at: Optional[datetime] = None
    # first time the provider was seen reporting a terminal state
    terminal_seen_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    problem: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.finished_at is not None and self.problem is None


@dataclass
class FixtureSnapshot:
    fixture_id: int
    starting_at: datetime
    status: str
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    league_id: Optional[int] = None
    league_name: Optional[str] = None
    country: Optional[str] = None
    odds: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SpotPrice:
    symbol: str
    coin_id: str
    price_usd: Decimal
    fetched_at: datetime


__all__ = ["FixtureResult", "FixtureSnapshot", "SpotPrice"]
