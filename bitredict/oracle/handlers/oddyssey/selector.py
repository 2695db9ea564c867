"""Daily match selection and cycle start.

The cycle for day D is published at `cycle_start_utc` on D-1 (23:50 by
default). Candidates kick off on D at or after 13:00 UTC, come from
competitions that are not women's, friendly or youth, and carry all five
odds. They are ranked by league priority then kickoff; the chosen ten are
published in kickoff order.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import text

from bitredict.chain.contracts import OddysseyContract, OddysseyMatch
from bitredict.oracle.config.params import OddysseyParams, get_oracle_params
from bitredict.oracle.utils.runtime import ensure_utc, utcnow
from bitredict.shared.enums import CycleState
from bitredict.shared.errors import OracleError

from .cycles import upsert_cycle

logger = logging.getLogger(__name__)

ODDS_KEYS = ("home", "draw", "away", "over_25", "under_25")

_SELECT_CANDIDATE_FIXTURES = text(
    """
    SELECT fixture_id, home_team, away_team, league_name, country, starting_at, odds
    FROM fixtures
    WHERE starting_at >= :window_start
      AND starting_at < :window_end
      AND starting_at > :not_before
      AND needs_inspection = false
      AND status = 'NS'
    ORDER BY starting_at ASC, fixture_id ASC
    """
)

_SELECT_CYCLE_FOR_DAY = text(
    """
    SELECT cycle_id FROM oddyssey_cycles
    WHERE cycle_end_time >= :day_start AND cycle_end_time < :day_end
    ORDER BY cycle_id DESC
    LIMIT 1
    """
)


class InsufficientMatches(OracleError):
    def __init__(self, found: int, needed: int) -> None:
        super().__init__(f"only {found} eligible fixtures, need {needed}")
        self.found = found
        self.needed = needed


@dataclass(frozen=True)
class StartedCycle:
    cycle_id: int
    target_date: date
    tx_hash: Optional[str]
    matches: Tuple[OddysseyMatch, ...]
    from_chain: bool = False


def scale_odds(value: Any, scale: int = 1000) -> int:
    """floor(value * scale), computed in decimal so 1.15 scales to 1150."""
    return int((Decimal(str(value)) * scale).to_integral_value(rounding=ROUND_FLOOR))


def target_date_for(now: datetime, start_at: time) -> date:
    """Day whose cycle is due at `now`; rolls over at `start_at` the day before."""
    lead = timedelta(days=1) - timedelta(hours=start_at.hour, minutes=start_at.minute)
    return (now + lead).date()


def league_priority(row: Mapping[str, Any], params: OddysseyParams) -> int:
    league = str(row.get("league_name") or "").strip().lower()
    country = str(row.get("country") or "").strip().lower()
    for key in (f"{country} {league}".strip(), league):
        if key in params.league_priorities:
            return params.league_priorities[key]
    return params.default_league_priority


def is_excluded(row: Mapping[str, Any], params: OddysseyParams) -> bool:
    names = " ".join(str(row.get(k) or "") for k in ("league_name", "home_team", "away_team")).lower()
    return any(keyword in names for keyword in params.excluded_league_keywords)


def _odds(row: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    odds = row.get("odds") or {}
    if isinstance(odds, (str, bytes)):
        odds = json.loads(odds)
    if any(odds.get(k) in (None, 0) for k in ODDS_KEYS):
        return None
    return odds


def select_matches(
    rows: Iterable[Mapping[str, Any]],
    *,
    target_date: date,
    params: OddysseyParams,
) -> List[OddysseyMatch]:
    earliest = datetime.combine(target_date, time(hour=params.earliest_kickoff_hour_utc), tzinfo=timezone.utc)
    eligible: List[Tuple[int, datetime, int, Mapping[str, Any]]] = []
    for row in rows:
        kickoff = ensure_utc(row["starting_at"])
        if kickoff.date() != target_date or kickoff < earliest:
            continue
        if is_excluded(row, params):
            continue
        odds = _odds(row)
        if odds is None:
            continue
        eligible.append((league_priority(row, params), kickoff, int(row["fixture_id"]), odds))

    needed = params.matches_per_cycle
    if len(eligible) < needed:
        raise InsufficientMatches(len(eligible), needed)

    eligible.sort(key=lambda e: (-e[0], e[1], e[2]))
    chosen = sorted(eligible[:needed], key=lambda e: (e[1], e[2]))
    scale = params.odds_scale
    return [
        OddysseyMatch(
            id=fixture_id,
            start_time=int(kickoff.timestamp()),
            odds_home=scale_odds(odds["home"], scale),
            odds_draw=scale_odds(odds["draw"], scale),
            odds_away=scale_odds(odds["away"], scale),
            odds_over=scale_odds(odds["over_25"], scale),
            odds_under=scale_odds(odds["under_25"], scale),
        )
        for _, kickoff, fixture_id, odds in chosen
    ]


class CycleStarter:
    def __init__(
        self,
        *,
        database: Any,
        oddyssey: OddysseyContract,
        start_at: time,
        params: Optional[OddysseyParams] = None,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.oddyssey = oddyssey
        self.start_at = start_at
        self.params = params or get_oracle_params().oddyssey
        self._now = now_fn

    async def run_once(self) -> Optional[StartedCycle]:
        now = self._now()
        target = target_date_for(now, self.start_at)
        day_start = datetime.combine(target, time(), tzinfo=timezone.utc)
        day_end = day_start + timedelta(days=1)

        existing = await self.database.read(
            _SELECT_CYCLE_FOR_DAY, params={"day_start": day_start, "day_end": day_end}, mappings=True
        )
        if existing:
            return None

        adopted = await self._adopt_chain_cycle(target, day_start, day_end)
        if adopted is not None:
            return adopted

        rows = await self.database.read(
            _SELECT_CANDIDATE_FIXTURES,
            params={
                "window_start": day_start,
                "window_end": day_end,
                "not_before": now + timedelta(seconds=self.params.cycle_close_buffer_seconds),
            },
            mappings=True,
        )
        try:
            matches = select_matches(rows, target_date=target, params=self.params)
        except InsufficientMatches as exc:
            logger.error({"oddyssey_insufficient_matches": {"date": target.isoformat(), "found": exc.found}})
            return None

        async def _log_sent(tx_hash: str) -> None:
            logger.info({"cycle_start_sent": {"date": target.isoformat(), "tx_hash": tx_hash}})

        tx = await self.oddyssey.start_daily_cycle(matches, on_sent=_log_sent)
        cycle_id = self.oddyssey.parse_cycle_started(tx.receipt)
        if cycle_id is None:
            cycle_id = await self.oddyssey.daily_cycle_id()

        earliest = min(m.start_time for m in matches)
        await upsert_cycle(
            self.database,
            cycle_id=cycle_id,
            matches=matches,
            start_time=now,
            end_time=datetime.fromtimestamp(earliest - self.params.cycle_close_buffer_seconds, tz=timezone.utc),
            tx_hash=tx.tx_hash,
        )
        logger.info(
            {
                "cycle_started": {
                    "cycle_id": cycle_id,
                    "date": target.isoformat(),
                    "fixtures": [m.id for m in matches],
                    "tx_hash": tx.tx_hash,
                }
            }
        )
        return StartedCycle(cycle_id=cycle_id, target_date=target, tx_hash=tx.tx_hash, matches=tuple(matches))

    async def _adopt_chain_cycle(self, target: date, day_start: datetime, day_end: datetime) -> Optional[StartedCycle]:
        """A cycle for `target` already on-chain (sent before a crash) is mirrored, not restarted."""
        cycle_id = await self.oddyssey.daily_cycle_id()
        if cycle_id <= 0:
            return None
        status = await self.oddyssey.get_cycle_status(cycle_id)
        if not status.exists or status.state is CycleState.NOT_STARTED:
            return None
        end_time = datetime.fromtimestamp(status.end_time, tz=timezone.utc)
        if not day_start <= end_time < day_end:
            return None

        matches = await self.oddyssey.get_daily_matches(cycle_id)
        await upsert_cycle(
            self.database,
            cycle_id=cycle_id,
            matches=matches,
            start_time=None,
            end_time=end_time,
            tx_hash=None,
        )
        logger.warning({"cycle_adopted_from_chain": {"cycle_id": cycle_id, "date": target.isoformat()}})
        return StartedCycle(
            cycle_id=cycle_id,
            target_date=target,
            tx_hash=None,
            matches=tuple(matches),
            from_chain=True,
        )


__all__ = [
    "ODDS_KEYS",
    "InsufficientMatches",
    "StartedCycle",
    "scale_odds",
    "target_date_for",
    "league_priority",
    "is_excluded",
    "select_matches",
    "CycleStarter",
]
