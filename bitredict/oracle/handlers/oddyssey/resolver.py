"""Oddyssey cycle resolution.

A cycle is resolved only when all ten of its fixtures have a stored result
and the contract reports the cycle as Ended. A cycle the contract already
reports as Resolved is synced into the mirror without a transaction. Slips
are evaluated right after resolution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import text

from bitredict.chain.contracts import OddysseyContract, OddysseyMatch
from bitredict.oracle.config.params import OddysseyParams, get_oracle_params
from bitredict.oracle.utils.runtime import utcnow
from bitredict.shared.enums import CycleState, Moneyline, OverUnder
from bitredict.shared.errors import ChainRevertError, DataIntegrityError

from .cycles import mark_cycle_resolved, matches_from_json, record_resolution_tx
from .evaluator import MatchOutcome, SlipEvaluator, outcomes_from_resolution

logger = logging.getLogger(__name__)

_SELECT_CYCLES_TO_RESOLVE = text(
    """
    SELECT cycle_id, matches_data, cycle_end_time, is_resolved
    FROM oddyssey_cycles
    WHERE cycle_end_time <= :now
      AND (is_resolved = false OR resolution_data IS NULL)
    ORDER BY cycle_id ASC
    """
)

_SELECT_RESULTS = text(
    """
    SELECT fixture_id, ft_home_score, ft_away_score
    FROM fixture_results
    WHERE fixture_id = ANY(:fixture_ids)
    """
)

_SELECT_UNEVALUATED_CYCLES = text(
    """
    SELECT DISTINCT c.cycle_id, c.resolution_data
    FROM oddyssey_cycles c
    JOIN oddyssey_slips s ON s.cycle_id = c.cycle_id
    WHERE c.is_resolved = true
      AND c.resolution_data IS NOT NULL
      AND s.is_evaluated = false
    ORDER BY c.cycle_id ASC
    """
)


@dataclass
class CycleReport:
    cycle_id: int
    resolved: bool = False
    synced_only: bool = False
    reason: Optional[str] = None
    tx_hash: Optional[str] = None


@dataclass
class ResolverReport:
    cycles: List[CycleReport] = field(default_factory=list)
    evaluated: List[int] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "resolved": [c.cycle_id for c in self.cycles if c.resolved],
            "pending": {c.cycle_id: c.reason for c in self.cycles if not c.resolved},
            "evaluated": self.evaluated,
        }


def match_outcome(ft_home: int, ft_away: int, *, threshold: float = 2.5) -> MatchOutcome:
    if ft_home > ft_away:
        moneyline = Moneyline.HOME_WIN
    elif ft_home < ft_away:
        moneyline = Moneyline.AWAY_WIN
    else:
        moneyline = Moneyline.DRAW
    over_under = OverUnder.OVER if ft_home + ft_away > threshold else OverUnder.UNDER
    return moneyline, over_under


def cycle_outcomes(
    matches: Sequence[OddysseyMatch],
    results: Mapping[int, Mapping[str, Any]],
    *,
    threshold: float = 2.5,
) -> List[MatchOutcome]:
    """Outcomes in match order. Every match must have a result."""
    outcomes: List[MatchOutcome] = []
    for match in matches:
        row = results[match.id]
        home, away = row.get("ft_home_score"), row.get("ft_away_score")
        if home is None or away is None:
            raise DataIntegrityError(f"fixture {match.id} has a result row without scores")
        outcomes.append(match_outcome(int(home), int(away), threshold=threshold))
    return outcomes


def resolution_rows(matches: Sequence[OddysseyMatch], outcomes: Sequence[MatchOutcome]) -> List[Dict[str, int]]:
    return [
        {"match_id": m.id, "moneyline": int(ml), "over_under": int(ou)}
        for m, (ml, ou) in zip(matches, outcomes)
    ]


class CycleResolver:
    def __init__(
        self,
        *,
        database: Any,
        oddyssey: OddysseyContract,
        evaluator: SlipEvaluator,
        params: Optional[OddysseyParams] = None,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.oddyssey = oddyssey
        self.evaluator = evaluator
        self.params = params or get_oracle_params().oddyssey
        self._now = now_fn

    async def run_once(self) -> ResolverReport:
        report = ResolverReport()
        rows = await self.database.read(_SELECT_CYCLES_TO_RESOLVE, params={"now": self._now()}, mappings=True)
        for row in rows:
            report.cycles.append(await self.resolve_cycle(row))
        report.evaluated = await self.evaluate_pending()
        if rows or report.evaluated:
            logger.info({"oddyssey_resolver_tick": report.as_dict()})
        return report

    async def resolve_cycle(self, row: Mapping[str, Any]) -> CycleReport:
        cycle_id = int(row["cycle_id"])
        report = CycleReport(cycle_id=cycle_id)
        try:
            matches = matches_from_json(row["matches_data"])
        except DataIntegrityError as exc:
            report.reason = f"data_integrity: {exc}"
            logger.error({"cycle_resolution_blocked": {"cycle_id": cycle_id, "reason": str(exc)}})
            return report
        if len(matches) != self.params.matches_per_cycle:
            report.reason = f"cycle_has_{len(matches)}_matches"
            logger.error({"cycle_malformed": {"cycle_id": cycle_id, "matches": len(matches)}})
            return report

        ids = [m.id for m in matches]
        results = {
            int(r["fixture_id"]): r
            for r in await self.database.read(_SELECT_RESULTS, params={"fixture_ids": ids}, mappings=True)
        }
        missing = [i for i in ids if i not in results]
        if missing:
            report.reason = "results_pending"
            logger.debug({"cycle_results_pending": {"cycle_id": cycle_id, "missing": missing}})
            return report

        try:
            outcomes = cycle_outcomes(matches, results, threshold=self.params.ou_threshold)
        except DataIntegrityError as exc:
            report.reason = f"data_integrity: {exc}"
            logger.error({"cycle_resolution_blocked": {"cycle_id": cycle_id, "reason": str(exc)}})
            return report
        resolution = resolution_rows(matches, outcomes)

        status = await self.oddyssey.get_cycle_status(cycle_id)
        if row.get("is_resolved") or status.state is CycleState.RESOLVED:
            await mark_cycle_resolved(
                self.database,
                cycle_id=cycle_id,
                resolved_at=self._now(),
                results=resolution,
                prize_pool=status.prize_pool,
            )
            report.resolved = report.synced_only = True
            logger.info({"cycle_resolution_synced": {"cycle_id": cycle_id}})
            await self._evaluate(cycle_id, matches, outcomes)
            return report
        if status.state is not CycleState.ENDED:
            report.reason = f"cycle_state_{status.state.name.lower()}"
            return report

        async def _record_pending(tx_hash: str) -> None:
            await record_resolution_tx(self.database, cycle_id=cycle_id, tx_hash=tx_hash)

        try:
            tx = await self.oddyssey.resolve_daily_cycle(
                cycle_id,
                [(int(ml), int(ou)) for ml, ou in outcomes],
                on_sent=_record_pending,
            )
        except ChainRevertError as exc:
            report.reason = f"chain_revert: {exc.reason}"
            logger.error({"cycle_resolution_reverted": {"cycle_id": cycle_id, **exc.as_log()}})
            return report

        await mark_cycle_resolved(
            self.database,
            cycle_id=cycle_id,
            resolved_at=self._now(),
            tx_hash=tx.tx_hash,
            results=resolution,
        )
        report.resolved = True
        report.tx_hash = tx.tx_hash
        logger.info({"cycle_resolved": {"cycle_id": cycle_id, "tx_hash": tx.tx_hash, "results": resolution}})
        await self._evaluate(cycle_id, matches, outcomes)
        return report

    async def _evaluate(self, cycle_id: int, matches: Sequence[OddysseyMatch], outcomes: Sequence[MatchOutcome]) -> None:
        await self.evaluator.evaluate_cycle(cycle_id, {m.id: o for m, o in zip(matches, outcomes)})

    async def evaluate_pending(self) -> List[int]:
        """Resolved cycles whose slips were not all evaluated, e.g. after a restart."""
        cycles: List[int] = []
        rows = await self.database.read(_SELECT_UNEVALUATED_CYCLES, params={}, mappings=True)
        for row in rows:
            cycle_id = int(row["cycle_id"])
            try:
                outcomes = outcomes_from_resolution(row["resolution_data"])
            except DataIntegrityError as exc:
                logger.error({"cycle_evaluation_blocked": {"cycle_id": cycle_id, "reason": str(exc)}})
                continue
            await self.evaluator.evaluate_cycle(cycle_id, outcomes)
            cycles.append(cycle_id)
        return cycles


__all__ = [
    "CycleReport",
    "ResolverReport",
    "match_outcome",
    "cycle_outcomes",
    "resolution_rows",
    "CycleResolver",
]
