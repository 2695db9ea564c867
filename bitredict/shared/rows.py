from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict


class FixtureRow(TypedDict, total=False):
    fixture_id: int
    home_team: Optional[str]
    away_team: Optional[str]
    league_id: Optional[int]
    league_name: Optional[str]
    country: Optional[str]
    starting_at: datetime
    status: str
    odds: dict


class FixtureResultRow(TypedDict, total=False):
    fixture_id: int
    ft_home_score: int
    ft_away_score: int
    ht_home_score: int
    ht_away_score: int
    final_home_score: Optional[int]
    final_away_score: Optional[int]
    penalty_home_score: Optional[int]
    penalty_away_score: Optional[int]
    status: str
    finished_at: datetime
    outcome_1x2: str
    outcome_ou05: str
    outcome_ou15: str
    outcome_ou25: str
    outcome_ou35: str
    outcome_ou45: str
    outcome_btts: str
    outcome_ht_result: str
    outcome_ht_ou05: str
    outcome_ht_ou15: str
    outcome_double_chance: str
    outcome_correct_score: str


class PoolRow(TypedDict, total=False):
    pool_id: int
    creator: str
    predicted_outcome: str
    market_id: str
    fixture_id: Optional[int]
    category: str
    oracle_type: int
    event_start_time: datetime
    event_end_time: datetime
    arbitration_deadline: datetime
    total_bettor_stake: int
    total_creator_side_stake: int
    market_family: Optional[dict]
    status: str
    state_tx_hash: Optional[str]
    is_settled: bool
    result: Optional[str]
    creator_side_won: Optional[bool]


class PoolBetRow(TypedDict, total=False):
    tx_hash: str
    log_index: int
    pool_id: int
    bettor: str
    amount: int
    is_for_outcome: bool
    block_number: int


class OracleSubmissionRow(TypedDict, total=False):
    market_id: str
    outcome: str
    outcome_hex: str
    tx_hash: Optional[str]
    block_number: Optional[int]
    submitted_at: datetime


class OddysseyCycleRow(TypedDict, total=False):
    cycle_id: int
    matches_data: list
    cycle_start_time: Optional[datetime]
    cycle_end_time: Optional[datetime]
    is_resolved: bool
    resolved_at: Optional[datetime]
    ready_for_resolution: bool
    tx_hash: Optional[str]
    resolution_tx_hash: Optional[str]
    resolution_data: Optional[list]


class OddysseySlipRow(TypedDict, total=False):
    slip_id: int
    cycle_id: int
    player_address: str
    placed_at: Optional[datetime]
    predictions: list
    is_evaluated: bool
    correct_count: int
    final_score: int
    leaderboard_rank: Optional[int]


__all__ = [
    "FixtureRow",
    "FixtureResultRow",
    "PoolRow",
    "PoolBetRow",
    "OracleSubmissionRow",
    "OddysseyCycleRow",
    "OddysseySlipRow",
]
