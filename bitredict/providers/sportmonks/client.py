from __future__ import annotations

import asyncio
import logging
import os
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import httpx

from bitredict.shared.errors import PermanentError, ProviderSemanticError, TransientError

from ..ratelimit import TokenBucket
from ..records import FixtureResult, FixtureSnapshot
from .config import SportMonksConfig
from .types import Fixture, Odd

logger = logging.getLogger(__name__)

ScorePair = Tuple[int, int]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _chunks(items: Sequence[int], size: int) -> Iterable[List[int]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class SportMonksClient:
    """
    Async HTTP client for the SportMonks football API.

    - Authenticates with the static token in the `Authorization` header
    - Fetches fixture results in batches through the `fixtures/multi` endpoint
    - Extracts the 90-minute score, even for matches decided after extra time
    - Retries transient HTTP errors with exponential backoff
    """

    def __init__(
        self,
        *,
        api_token: Optional[str] = None,
        config: Optional[SportMonksConfig] = None,
        timeout_seconds: float = 15.0,
        max_retries: int = 2,
        rate_per_minute: int = 50,
        bucket: Optional[TokenBucket] = None,
        now_fn: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.api_token = api_token or os.getenv("SPORTMONKS_API_TOKEN")
        self.config = config or SportMonksConfig()
        self.max_retries = max_retries
        self.bucket = bucket or TokenBucket(rate_per_minute)
        self._now = now_fn
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=timeout_seconds,
            limits=limits,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SportMonksClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public fetch helpers
    # ------------------------------------------------------------------
    async def fetch_fixture_results(
        self,
        ids: Sequence[int],
        terminal_seen: Optional[Mapping[int, datetime]] = None,
    ) -> List[FixtureResult]:
        """Fetch results for the given fixtures.

        Every requested id yields one record. Records for fixtures that are
        not terminal yet, or whose terminal state is younger than the guard,
        carry `finished_at=None`. Records the provider cannot back up carry
        a `problem` string.

        `terminal_seen` maps fixture ids to the time a terminal state was
        first observed. The guard runs from the later of that sighting and
        the estimated end of play; a fixture missing from the map counts as
        first seen now.
        """
        terminal_seen = terminal_seen or {}
        unique_ids = list(dict.fromkeys(int(i) for i in ids))
        results: List[FixtureResult] = []
        for batch in _chunks(unique_ids, self.config.batch_size):
            path = f"/fixtures/multi/{','.join(str(i) for i in batch)}"
            try:
                payload = await self._get_json(
                    path,
                    params={"include": ";".join(self.config.result_includes)},
                )
            except PermanentError as exc:
                logger.warning({"sportmonks_results_batch_rejected": {"ids": batch, "error": str(exc)}})
                results.extend(
                    FixtureResult(fixture_id=i, status="UNKNOWN", problem=f"provider_rejected: {exc}")
                    for i in batch
                )
                continue

            seen: set[int] = set()
            for item in self._data_items(payload):
                try:
                    fixture = Fixture.model_validate(item)
                except ValueError as exc:
                    logger.debug({"sportmonks_parse_fixture_error": str(exc)})
                    continue
                seen.add(fixture.id)
                results.append(self._to_result(fixture, terminal_seen.get(fixture.id)))

            for missing in batch:
                if missing not in seen:
                    results.append(
                        FixtureResult(fixture_id=missing, status="UNKNOWN", problem="not_found_in_provider")
                    )

        logger.debug(
            {
                "sportmonks_results_response": {
                    "requested": len(unique_ids),
                    "finished": sum(1 for r in results if r.is_final),
                    "problems": sum(1 for r in results if r.problem),
                }
            }
        )
        return results

    async def fetch_fixtures_between(self, start: date, end: date) -> List[FixtureSnapshot]:
        """Fetch the fixture catalogue (with 1X2 and O/U 2.5 odds) for a date window."""
        path = f"/fixtures/between/{start.isoformat()}/{end.isoformat()}"
        snapshots: List[FixtureSnapshot] = []
        for page in range(1, self.config.max_pages + 1):
            payload = await self._get_json(
                path,
                params={
                    "include": ";".join(self.config.fixture_includes),
                    "per_page": self.config.per_page,
                    "page": page,
                },
            )
            for item in self._data_items(payload):
                try:
                    fixture = Fixture.model_validate(item)
                except ValueError as exc:
                    logger.debug({"sportmonks_parse_fixture_error": str(exc)})
                    continue
                snapshot = self._to_snapshot(fixture)
                if snapshot is not None:
                    snapshots.append(snapshot)
            pagination = payload.get("pagination") if isinstance(payload, dict) else None
            if not pagination or not pagination.get("has_more"):
                break
        return snapshots

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if not self.api_token:
            raise PermanentError("SPORTMONKS_API_TOKEN is required to query SportMonks.")
        headers = {"Authorization": self.api_token, "Accept": "application/json"}
        attempt = 0
        backoff = 0.5
        while True:
            await self.bucket.acquire()
            try:
                resp = await self._client.get(path, params=params or {}, headers=headers)
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status == 404:
                    logger.debug({"sportmonks_http_404": {"path": path}})
                    raise PermanentError(f"not found: {path}") from exc
                if status in (401, 403) or (400 <= status < 500 and status != 429):
                    raise PermanentError(f"http {status} for {path}") from exc
                if attempt >= self.max_retries:
                    raise TransientError(f"http {status} for {path}") from exc
            except (httpx.RequestError, httpx.TimeoutException) as exc:
                if attempt >= self.max_retries:
                    raise TransientError(f"request failed for {path}: {exc}") from exc
            except ValueError as exc:
                raise PermanentError(f"malformed json for {path}") from exc
            await asyncio.sleep(backoff)
            attempt += 1
            backoff *= 2

    @staticmethod
    def _data_items(payload: Any) -> List[Any]:
        if not isinstance(payload, dict):
            return []
        data = payload.get("data")
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return list(data)

    def _to_result(self, fixture: Fixture, seen_at: Optional[datetime] = None) -> FixtureResult:
        state = fixture.state_code or "UNKNOWN"
        record = FixtureResult(fixture_id=fixture.id, status=state)
        if state not in self.config.terminal_states:
            return record
        try:
            self._fill_scores(record, fixture)
            record.ended_at = self._terminal_event_time(fixture)
        except ProviderSemanticError as exc:
            logger.warning({"sportmonks_semantic_error": {"fixture_id": fixture.id, "state": state, "error": str(exc)}})
            record.problem = str(exc)
            return record

        now = self._now()
        record.terminal_seen_at = seen_at or now
        terminal_at = max(record.ended_at, record.terminal_seen_at)
        elapsed = now - terminal_at
        if elapsed >= timedelta(minutes=self.config.terminal_guard_minutes):
            record.finished_at = terminal_at
        else:
            logger.debug(
                {
                    "sportmonks_terminal_guard": {
                        "fixture_id": fixture.id,
                        "state": state,
                        "minutes_since_end": round(elapsed.total_seconds() / 60, 1),
                    }
                }
            )
        return record

    def _fill_scores(self, record: FixtureResult, fixture: Fixture) -> None:
        scores = _collect_scores(fixture)
        first_half = scores.get("1ST_HALF")
        if first_half is None:
            raise ProviderSemanticError("missing_half_time_score", record_id=fixture.id)

        if record.status in self.config.extra_time_states:
            second_half = scores.get("2ND_HALF")
            if second_half is None:
                raise ProviderSemanticError("missing_second_half_score", record_id=fixture.id)
            full_time = (first_half[0] + second_half[0], first_half[1] + second_half[1])
            final = scores.get("CURRENT")
            if final is not None:
                record.final_home_score, record.final_away_score = final
            penalties = scores.get("PENALTY_SHOOTOUT")
            if penalties is not None:
                record.penalty_home_score, record.penalty_away_score = penalties
        else:
            full_time = scores.get("CURRENT")
            if full_time is None:
                raise ProviderSemanticError("missing_full_time_score", record_id=fixture.id)
            record.final_home_score, record.final_away_score = full_time

        if first_half[0] > full_time[0] or first_half[1] > full_time[1]:
            raise ProviderSemanticError("half_time_exceeds_full_time", record_id=fixture.id)
        record.ft_home_score, record.ft_away_score = full_time
        record.ht_home_score, record.ht_away_score = first_half

    def _terminal_event_time(self, fixture: Fixture) -> datetime:
        kickoff = fixture.kickoff
        if kickoff is None:
            raise ProviderSemanticError("missing_kickoff", record_id=fixture.id)
        minutes = (fixture.length or self.config.regulation_minutes) + self.config.half_time_break_minutes
        if fixture.state_code in self.config.penalty_states:
            minutes += self.config.penalty_shootout_minutes
        return kickoff + timedelta(minutes=minutes)

    def _to_snapshot(self, fixture: Fixture) -> Optional[FixtureSnapshot]:
        kickoff = fixture.kickoff
        if kickoff is None:
            logger.debug({"sportmonks_skip_fixture": {"fixture_id": fixture.id, "reason": "missing_kickoff"}})
            return None
        league = fixture.league
        return FixtureSnapshot(
            fixture_id=fixture.id,
            starting_at=kickoff,
            status=fixture.state_code or "NS",
            home_team=fixture.participant_name("home"),
            away_team=fixture.participant_name("away"),
            league_id=league.id if league else fixture.league_id,
            league_name=league.name if league else None,
            country=league.country.name if league and league.country else None,
            odds=self._extract_odds(fixture.odds),
        )

    def _extract_odds(self, odds: List[Odd]) -> Dict[str, float]:
        """Pick one bookmaker's 1X2 and O/U 2.5 prices."""
        by_bookmaker: Dict[Optional[int], Dict[str, float]] = {}
        for odd in odds:
            if odd.value is None:
                continue
            if self.config.bookmaker_id is not None and odd.bookmaker_id != self.config.bookmaker_id:
                continue
            label = (odd.label or "").strip().lower()
            key = None
            if odd.market_id == self.config.fulltime_result_market_id:
                key = {"home": "home", "1": "home", "draw": "draw", "x": "draw", "away": "away", "2": "away"}.get(label)
            elif odd.market_id == self.config.goals_over_under_market_id and odd.total == "2.5":
                key = {"over": "over_25", "under": "under_25"}.get(label)
            if key:
                by_bookmaker.setdefault(odd.bookmaker_id, {}).setdefault(key, odd.value)

        best: Dict[str, float] = {}
        for prices in by_bookmaker.values():
            if len(prices) > len(best):
                best = prices
            if len(best) == 5:
                break
        return best


def _collect_scores(fixture: Fixture) -> Dict[str, ScorePair]:
    """Group score entries by description into (home, away) pairs."""
    partial: Dict[str, Dict[str, int]] = {}
    for entry in fixture.scores:
        side = (entry.score.participant or "").lower()
        if side not in ("home", "away") or entry.score.goals is None:
            continue
        if entry.score.goals < 0:
            raise ProviderSemanticError(f"negative_score:{entry.description}", record_id=fixture.id)
        partial.setdefault(entry.description.upper(), {})[side] = int(entry.score.goals)
    return {
        desc: (sides["home"], sides["away"])
        for desc, sides in partial.items()
        if "home" in sides and "away" in sides
    }


__all__ = ["SportMonksClient"]
