"""Mirror rows for Oddyssey cycles and slips.

Shared by the event sync (which mirrors what the contract emitted) and the
cycle handlers (which record their own transactions). Every write is an
upsert that keeps the first non-null value, so either side may run first.
"""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import text

from bitredict.chain.contracts import OddysseyMatch, SlipPrediction, SlipView
from bitredict.shared.enums import BetType
from bitredict.shared.errors import DataIntegrityError

_MATCH_FIELDS = tuple(f.name for f in fields(OddysseyMatch))

_UPSERT_CYCLE = text(
    """
    INSERT INTO oddyssey_cycles (
        cycle_id, matches_data, matches_count, cycle_start_time, cycle_end_time, tx_hash, updated_at
    )
    VALUES (
        :cycle_id, CAST(:matches_data AS jsonb), :matches_count, :cycle_start_time, :cycle_end_time, :tx_hash, now()
    )
    ON CONFLICT (cycle_id) DO UPDATE SET
        matches_data = EXCLUDED.matches_data,
        matches_count = EXCLUDED.matches_count,
        cycle_start_time = COALESCE(oddyssey_cycles.cycle_start_time, EXCLUDED.cycle_start_time),
        cycle_end_time = COALESCE(EXCLUDED.cycle_end_time, oddyssey_cycles.cycle_end_time),
        tx_hash = COALESCE(oddyssey_cycles.tx_hash, EXCLUDED.tx_hash),
        updated_at = now()
    """
)

_MARK_CYCLE_RESOLVED = text(
    """
    UPDATE oddyssey_cycles
    SET is_resolved = true,
        ready_for_resolution = true,
        resolved_at = COALESCE(resolved_at, :resolved_at),
        resolution_tx_hash = COALESCE(resolution_tx_hash, :tx_hash),
        resolution_data = COALESCE(CAST(:resolution_data AS jsonb), resolution_data),
        prize_pool = COALESCE(:prize_pool, prize_pool),
        updated_at = now()
    WHERE cycle_id = :cycle_id
    """
)

_SET_RESOLUTION_TX = text(
    """
    UPDATE oddyssey_cycles
    SET resolution_tx_hash = :tx_hash, updated_at = now()
    WHERE cycle_id = :cycle_id AND is_resolved = false
    """
)

_SELECT_CYCLE = text(
    """
    SELECT cycle_id, matches_data, cycle_start_time, cycle_end_time, is_resolved,
           resolved_at, ready_for_resolution, tx_hash, resolution_tx_hash
    FROM oddyssey_cycles
    WHERE cycle_id = :cycle_id
    """
)

_INSERT_SLIP = text(
    """
    INSERT INTO oddyssey_slips (
        slip_id, cycle_id, player_address, placed_at, predictions,
        is_evaluated, correct_count, final_score, tx_hash
    )
    VALUES (
        :slip_id, :cycle_id, :player_address, :placed_at, CAST(:predictions AS jsonb),
        :is_evaluated, :correct_count, :final_score, :tx_hash
    )
    ON CONFLICT (slip_id) DO NOTHING
    """
)


def match_to_json(match: OddysseyMatch) -> Dict[str, Any]:
    return asdict(match)


def match_from_json(data: Mapping[str, Any]) -> OddysseyMatch:
    return OddysseyMatch(**{k: int(data[k]) for k in _MATCH_FIELDS if k in data})


def matches_from_json(data: Any) -> List[OddysseyMatch]:
    try:
        if isinstance(data, (str, bytes)):
            data = json.loads(data)
        return [match_from_json(item) for item in data or []]
    except (KeyError, TypeError, ValueError) as exc:
        raise DataIntegrityError(f"malformed matches_data: {exc}") from exc


def prediction_to_json(prediction: SlipPrediction) -> Dict[str, Any]:
    return {
        "match_id": prediction.match_id,
        "bet_type": int(prediction.bet_type),
        "selection": prediction.selection,
        "selected_odd": prediction.selected_odd,
    }


def predictions_from_json(data: Any) -> List[SlipPrediction]:
    try:
        if isinstance(data, (str, bytes)):
            data = json.loads(data)
        return [
            SlipPrediction(
                match_id=int(item["match_id"]),
                bet_type=BetType(int(item["bet_type"])),
                selection=str(item["selection"]),
                selected_odd=int(item["selected_odd"]),
            )
            for item in data or []
        ]
    except (KeyError, TypeError, ValueError) as exc:
        raise DataIntegrityError(f"malformed slip predictions: {exc}") from exc


async def upsert_cycle(
    database: Any,
    *,
    cycle_id: int,
    matches: Sequence[OddysseyMatch],
    start_time: Optional[datetime],
    end_time: Optional[datetime],
    tx_hash: Optional[str],
) -> int:
    return await database.write(
        _UPSERT_CYCLE,
        params={
            "cycle_id": cycle_id,
            "matches_data": json.dumps([match_to_json(m) for m in matches]),
            "matches_count": len(matches),
            "cycle_start_time": start_time,
            "cycle_end_time": end_time,
            "tx_hash": tx_hash,
        },
    )


async def load_cycle(database: Any, cycle_id: int) -> Optional[Mapping[str, Any]]:
    rows = await database.read(_SELECT_CYCLE, params={"cycle_id": cycle_id}, mappings=True)
    return rows[0] if rows else None


async def mark_cycle_resolved(
    database: Any,
    *,
    cycle_id: int,
    resolved_at: datetime,
    tx_hash: Optional[str] = None,
    results: Optional[Sequence[Mapping[str, int]]] = None,
    prize_pool: Optional[int] = None,
) -> int:
    return await database.write(
        _MARK_CYCLE_RESOLVED,
        params={
            "cycle_id": cycle_id,
            "resolved_at": resolved_at,
            "tx_hash": tx_hash,
            "resolution_data": json.dumps(list(results)) if results is not None else None,
            "prize_pool": prize_pool,
        },
    )


async def record_resolution_tx(database: Any, *, cycle_id: int, tx_hash: str) -> int:
    return await database.write(_SET_RESOLUTION_TX, params={"cycle_id": cycle_id, "tx_hash": tx_hash})


async def insert_slip(
    database: Any,
    slip: SlipView,
    *,
    placed_at: Optional[datetime],
    tx_hash: Optional[str],
) -> int:
    return await database.write(
        _INSERT_SLIP,
        params={
            "slip_id": slip.slip_id,
            "cycle_id": slip.cycle_id,
            "player_address": slip.player,
            "placed_at": placed_at,
            "predictions": json.dumps([prediction_to_json(p) for p in slip.predictions]),
            "is_evaluated": slip.is_evaluated,
            "correct_count": slip.correct_count,
            "final_score": slip.final_score,
            "tx_hash": tx_hash,
        },
    )


__all__ = [
    "match_to_json",
    "match_from_json",
    "matches_from_json",
    "prediction_to_json",
    "predictions_from_json",
    "upsert_cycle",
    "load_cycle",
    "mark_cycle_resolved",
    "record_resolution_tx",
    "insert_slip",
]
