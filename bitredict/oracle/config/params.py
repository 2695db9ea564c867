"""Pipeline parameters.

Everything that shapes settlement and Oddyssey decisions lives here so that
one place documents the constants the pipeline depends on. Changing the
terminal guard, the arbitration window or the prize rules changes which
transactions the oracle sends.
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field, model_validator


class IngestParams(BaseModel):
    """Result ingestion scan window."""

    min_kickoff_age_minutes: int = Field(
        default=30,
        ge=0,
        le=24 * 60,
        description="Only fixtures whose kickoff is at least this old are scanned for results.",
    )
    max_kickoff_age_days: int = Field(
        default=7,
        ge=1,
        le=60,
        description="Fixtures older than this without a result are left to operators.",
    )
    scan_limit: int = Field(default=200, ge=1, le=5000)
    catalogue_days_ahead: int = Field(
        default=2,
        ge=0,
        le=14,
        description="How many days of upcoming fixtures to mirror each tick.",
    )
    max_concurrent_batches: int = Field(default=2, ge=1, le=16)


class SettlementParams(BaseModel):
    """Settlement pipeline behaviour."""

    result_settle_delay_minutes: int = Field(
        default=15,
        ge=0,
        le=24 * 60,
        description="Football pools wait this long after fixture finished_at before settling.",
    )
    submit_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first submitOutcome attempt on transient failure.",
    )
    retry_base_delay_seconds: float = Field(default=2.0, ge=0.0, le=60.0)
    retry_factor: float = Field(default=2.0, ge=1.0, le=10.0)
    retry_max_delay_seconds: float = Field(default=60.0, ge=0.0)
    arbitration_window_hours: int = Field(
        default=24,
        ge=0,
        le=24 * 30,
        description="Arbitration deadline = event end + window, used when the chain does not report it.",
    )
    pool_limit: int = Field(default=500, ge=1, le=10_000)
    # Pools with irreparable on-chain prediction bytes; never settled.
    excluded_pool_ids: List[int] = Field(default_factory=lambda: [0, 1])


class SyncParams(BaseModel):
    """Chain event sync behaviour."""

    reorg_depth: int = Field(
        default=12,
        ge=0,
        le=1000,
        description="Blocks re-fetched on every tick to absorb shallow reorgs.",
    )
    max_block_range: int = Field(default=2000, ge=1, le=100_000)


class OddysseyParams(BaseModel):
    """Oddyssey daily cycle rules."""

    matches_per_cycle: int = Field(default=10, ge=10, le=10)
    earliest_kickoff_hour_utc: int = Field(default=13, ge=0, le=23)
    cycle_close_buffer_seconds: int = Field(
        default=300,
        ge=0,
        description="Cycle end time is this many seconds before the earliest kickoff.",
    )
    odds_scale: int = Field(default=1000, ge=1)
    score_base: int = Field(default=1000, ge=1)
    evaluation_batch_size: int = Field(default=5, ge=1, le=50)
    prize_min_correct: int = Field(default=7, ge=0, le=10)
    leaderboard_size: int = Field(default=5, ge=1, le=50)
    ou_threshold: float = Field(default=2.5)
    resolution_overdue_hours: int = Field(default=2, ge=0)
    excluded_league_keywords: List[str] = Field(
        default_factory=lambda: ["women", "female", "ladies", "friendl", "u19", "u21", "u23"]
    )
    league_priorities: Dict[str, int] = Field(
        default_factory=lambda: {
            "england premier league": 100,
            "spain la liga": 95,
            "germany bundesliga": 95,
            "italy serie a": 95,
            "france ligue 1": 90,
            "europe champions league": 100,
            "europe europa league": 85,
            "netherlands eredivisie": 75,
            "portugal liga portugal": 75,
            "england championship": 70,
            "turkey super lig": 65,
            "belgium pro league": 60,
            "scotland premiership": 60,
            "usa major league soccer": 55,
            "brazil serie a": 55,
            "argentina liga profesional": 50,
        }
    )
    default_league_priority: int = Field(default=10, ge=0)

    @model_validator(mode="after")
    def _validate_prize_rules(self) -> "OddysseyParams":
        if self.prize_min_correct > self.matches_per_cycle:
            raise ValueError("prize_min_correct cannot exceed matches_per_cycle")
        return self


class OracleParams(BaseModel):
    """Master configuration for pipeline parameters."""

    ingest: IngestParams = Field(default_factory=IngestParams)
    settlement: SettlementParams = Field(default_factory=SettlementParams)
    sync: SyncParams = Field(default_factory=SyncParams)
    oddyssey: OddysseyParams = Field(default_factory=OddysseyParams)


DEFAULT_ORACLE_PARAMS = OracleParams()


def get_oracle_params() -> OracleParams:
    return DEFAULT_ORACLE_PARAMS


__all__ = [
    "IngestParams",
    "SettlementParams",
    "SyncParams",
    "OddysseyParams",
    "OracleParams",
    "DEFAULT_ORACLE_PARAMS",
    "get_oracle_params",
]
