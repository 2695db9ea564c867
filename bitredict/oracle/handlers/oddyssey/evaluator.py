"""Slip scoring, batched on-chain evaluation and the cycle leaderboard.

Scoring mirrors the contract: the score starts at the odds scale (1000) and
each correct pick multiplies it by the selected odd with floor division, so
8 correct picks with an odds product of 24.73 score 24730.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import text

from bitredict.chain.contracts import OddysseyContract, SlipPrediction
from bitredict.oracle.config.params import OddysseyParams, get_oracle_params
from bitredict.oracle.utils.runtime import utcnow
from bitredict.shared.enums import BetType, Moneyline, OverUnder
from bitredict.shared.errors import ChainRevertError, DataIntegrityError

from .cycles import predictions_from_json

logger = logging.getLogger(__name__)

MatchOutcome = Tuple[Moneyline, OverUnder]

_MONEYLINE_SELECTIONS = {"1": Moneyline.HOME_WIN, "X": Moneyline.DRAW, "2": Moneyline.AWAY_WIN}
_OVER_UNDER_SELECTIONS = {"Over": OverUnder.OVER, "Under": OverUnder.UNDER}

_SELECT_PENDING_SLIPS = text(
    """
    SELECT slip_id, predictions
    FROM oddyssey_slips
    WHERE cycle_id = :cycle_id AND is_evaluated = false
    ORDER BY slip_id ASC
    """
)

_MARK_SLIP_EVALUATED = text(
    """
    UPDATE oddyssey_slips
    SET is_evaluated = true,
        correct_count = :correct_count,
        final_score = :final_score,
        evaluation_tx_hash = COALESCE(:tx_hash, evaluation_tx_hash),
        evaluated_at = COALESCE(evaluated_at, :evaluated_at)
    WHERE slip_id = :slip_id
    """
)

_SELECT_EVALUATED_SLIPS = text(
    """
    SELECT slip_id, correct_count, final_score
    FROM oddyssey_slips
    WHERE cycle_id = :cycle_id AND is_evaluated = true
    """
)

_CLEAR_RANKS = text(
    """
    UPDATE oddyssey_slips SET leaderboard_rank = NULL
    WHERE cycle_id = :cycle_id AND leaderboard_rank IS NOT NULL
    """
)

_SET_RANK = text("UPDATE oddyssey_slips SET leaderboard_rank = :rank WHERE slip_id = :slip_id")


@dataclass(frozen=True)
class SlipScore:
    correct_count: int
    final_score: int


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    slip_id: int
    correct_count: int
    final_score: int


def is_correct(prediction: SlipPrediction, outcome: MatchOutcome) -> bool:
    moneyline, over_under = outcome
    if prediction.bet_type is BetType.MONEYLINE:
        return _MONEYLINE_SELECTIONS.get(prediction.selection) is moneyline
    return _OVER_UNDER_SELECTIONS.get(prediction.selection) is over_under


def evaluate_slip(
    predictions: Sequence[SlipPrediction],
    outcomes: Mapping[int, MatchOutcome],
    *,
    odds_scale: int = 1000,
) -> SlipScore:
    """Score one slip. A slip with no correct pick scores zero."""
    correct = 0
    score = odds_scale
    for prediction in predictions:
        outcome = outcomes.get(prediction.match_id)
        if outcome is None:
            raise DataIntegrityError(f"slip picks match {prediction.match_id}, which is not in the cycle")
        if is_correct(prediction, outcome):
            correct += 1
            score = score * prediction.selected_odd // odds_scale
    return SlipScore(correct_count=correct, final_score=score if correct else 0)


def rank_leaderboard(
    slips: Sequence[Mapping[str, Any]],
    *,
    size: int,
    min_correct: int,
) -> List[LeaderboardEntry]:
    ordered = sorted(
        (s for s in slips if int(s["correct_count"]) >= min_correct),
        key=lambda s: (-int(s["final_score"]), -int(s["correct_count"]), int(s["slip_id"])),
    )
    return [
        LeaderboardEntry(
            rank=i + 1,
            slip_id=int(s["slip_id"]),
            correct_count=int(s["correct_count"]),
            final_score=int(s["final_score"]),
        )
        for i, s in enumerate(ordered[:size])
    ]


def outcomes_from_resolution(resolution: Any) -> Dict[int, MatchOutcome]:
    """Match id -> outcome from the stored resolution_data."""
    try:
        if isinstance(resolution, (str, bytes)):
            resolution = json.loads(resolution)
        return {
            int(item["match_id"]): (Moneyline(int(item["moneyline"])), OverUnder(int(item["over_under"])))
            for item in resolution or []
        }
    except (KeyError, TypeError, ValueError) as exc:
        raise DataIntegrityError(f"malformed resolution_data: {exc}") from exc


class SlipEvaluator:
    def __init__(
        self,
        *,
        database: Any,
        oddyssey: OddysseyContract,
        params: Optional[OddysseyParams] = None,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.oddyssey = oddyssey
        self.params = params or get_oracle_params().oddyssey
        self._now = now_fn

    async def evaluate_cycle(self, cycle_id: int, outcomes: Mapping[int, MatchOutcome]) -> List[LeaderboardEntry]:
        rows = await self.database.read(_SELECT_PENDING_SLIPS, params={"cycle_id": cycle_id}, mappings=True)
        scores: Dict[int, SlipScore] = {}
        for row in rows:
            slip_id = int(row["slip_id"])
            try:
                scores[slip_id] = evaluate_slip(
                    predictions_from_json(row["predictions"]), outcomes, odds_scale=self.params.odds_scale
                )
            except DataIntegrityError as exc:
                # left unevaluated for an operator; the rest of the cycle proceeds
                logger.error({"slip_evaluation_blocked": {"cycle_id": cycle_id, "slip_id": slip_id, "reason": str(exc)}})

        slip_ids = sorted(scores)
        size = self.params.evaluation_batch_size
        for i in range(0, len(slip_ids), size):
            batch = slip_ids[i:i + size]
            tx_hash = await self._evaluate_on_chain(cycle_id, batch)
            for slip_id in batch:
                score = scores[slip_id]
                await self.database.write(
                    _MARK_SLIP_EVALUATED,
                    params={
                        "slip_id": slip_id,
                        "correct_count": score.correct_count,
                        "final_score": score.final_score,
                        "tx_hash": tx_hash,
                        "evaluated_at": self._now(),
                    },
                )

        leaderboard = await self.update_leaderboard(cycle_id)
        logger.info(
            {
                "cycle_slips_evaluated": {
                    "cycle_id": cycle_id,
                    "evaluated": len(slip_ids),
                    "winners": [e.slip_id for e in leaderboard],
                }
            }
        )
        return leaderboard

    async def _evaluate_on_chain(self, cycle_id: int, batch: List[int]) -> Optional[str]:
        try:
            tx = await self.oddyssey.evaluate_multiple_slips(batch)
        except ChainRevertError as exc:
            # slips evaluated by their owners revert the batch; the off-chain score still stands
            logger.warning({"slip_batch_reverted": {"cycle_id": cycle_id, "slips": batch, **exc.as_log()}})
            return None
        return tx.tx_hash

    async def update_leaderboard(self, cycle_id: int) -> List[LeaderboardEntry]:
        rows = await self.database.read(_SELECT_EVALUATED_SLIPS, params={"cycle_id": cycle_id}, mappings=True)
        leaderboard = rank_leaderboard(
            rows,
            size=self.params.leaderboard_size,
            min_correct=self.params.prize_min_correct,
        )
        await self.database.write(_CLEAR_RANKS, params={"cycle_id": cycle_id})
        for entry in leaderboard:
            await self.database.write(_SET_RANK, params={"slip_id": entry.slip_id, "rank": entry.rank})
        return leaderboard


__all__ = [
    "MatchOutcome",
    "SlipScore",
    "LeaderboardEntry",
    "is_correct",
    "evaluate_slip",
    "rank_leaderboard",
    "outcomes_from_resolution",
    "SlipEvaluator",
]
