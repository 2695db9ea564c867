"""Selection of pools that are ready for a settlement decision."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import text

from bitredict.oracle.config.params import SettlementParams
from bitredict.shared.enums import OracleType, PoolCategory

from .markets import MarketFamily, category_for, family_from_json
from .state import PoolState, state_from_row

_RESULT_COLUMNS = (
    "ft_home_score",
    "ft_away_score",
    "ht_home_score",
    "ht_away_score",
    "finished_at",
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
)

# Football pools need a result that has aged past the settle delay; crypto
# pools are purely time based.
_SELECT_SETTLEMENT_CANDIDATES = text(
    """
    SELECT
        p.pool_id, p.market_id, p.fixture_id, p.category, p.predicted_outcome,
        p.market_family, p.event_end_time, p.arbitration_deadline,
        p.status, p.state_tx_hash, p.result, p.creator_side_won, p.settlement_tx_hash,
        r.fixture_id AS result_fixture_id,
        r.ft_home_score, r.ft_away_score, r.ht_home_score, r.ht_away_score, r.finished_at,
        r.outcome_1x2, r.outcome_ou05, r.outcome_ou15, r.outcome_ou25, r.outcome_ou35, r.outcome_ou45,
        r.outcome_btts, r.outcome_ht_result, r.outcome_ht_ou05, r.outcome_ht_ou15
    FROM pools p
    LEFT JOIN fixture_results r ON r.fixture_id = p.fixture_id
    WHERE p.is_settled = false
      AND p.oracle_type = :oracle_type
      AND p.event_end_time <= :now
      AND p.rejected_reason IS NULL
      AND NOT (p.pool_id = ANY(:excluded_pool_ids))
      AND (
          COALESCE(p.market_family->>'kind', '') = 'crypto_threshold'
          OR lower(COALESCE(p.category, '')) IN ('crypto', 'cryptocurrency')
          OR (r.fixture_id IS NOT NULL AND r.finished_at <= :result_cutoff)
      )
    ORDER BY p.pool_id ASC
    LIMIT :limit
    """
)


@dataclass
class PoolCandidate:
    pool_id: int
    market_id: str
    predicted_outcome: str
    category: PoolCategory
    event_end_time: datetime
    arbitration_deadline: datetime
    state: PoolState
    family: Optional[MarketFamily] = None
    fixture_id: Optional[int] = None
    result: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PoolCandidate":
        family = family_from_json(row.get("market_family"))
        result: Optional[Dict[str, Any]] = None
        if row.get("result_fixture_id") is not None:
            result = {"fixture_id": int(row["result_fixture_id"])}
            result.update({col: row.get(col) for col in _RESULT_COLUMNS})
        fixture_id = row.get("fixture_id")
        return cls(
            pool_id=int(row["pool_id"]),
            market_id=str(row.get("market_id") or ""),
            predicted_outcome=str(row.get("predicted_outcome") or ""),
            category=category_for(family, row.get("category")),
            event_end_time=row["event_end_time"],
            arbitration_deadline=row["arbitration_deadline"],
            state=state_from_row(row),
            family=family,
            fixture_id=int(fixture_id) if fixture_id is not None else None,
            result=result,
        )


async def select_candidates(database: Any, *, now: datetime, params: SettlementParams) -> List[PoolCandidate]:
    rows = await database.read(
        _SELECT_SETTLEMENT_CANDIDATES,
        params={
            "oracle_type": int(OracleType.GUIDED),
            "now": now,
            "result_cutoff": now - timedelta(minutes=params.result_settle_delay_minutes),
            "excluded_pool_ids": list(params.excluded_pool_ids),
            "limit": params.pool_limit,
        },
        mappings=True,
    )
    return [PoolCandidate.from_row(row) for row in rows]


__all__ = ["PoolCandidate", "select_candidates"]
