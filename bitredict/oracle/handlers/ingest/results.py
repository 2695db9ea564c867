"""Result ingestion worker.

Owns the `fixture_results` table. Each tick mirrors the upcoming fixture
catalogue, then pulls results for fixtures whose kickoff is in the recent past
and stores one row per finished fixture with every canonical outcome.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import text

from bitredict.oracle.config.params import IngestParams, get_oracle_params
from bitredict.oracle.utils.runtime import utcnow
from bitredict.providers.records import FixtureResult, FixtureSnapshot
from bitredict.providers.sportmonks import SportMonksClient
from bitredict.shared.errors import OracleError

from .outcomes import compute_outcomes

logger = logging.getLogger(__name__)


_UPSERT_FIXTURE = text(
    """
    INSERT INTO fixtures (
        fixture_id, home_team, away_team, league_id, league_name, country,
        starting_at, status, odds, updated_at
    ) VALUES (
        :fixture_id, :home_team, :away_team, :league_id, :league_name, :country,
        :starting_at, :status, CAST(:odds AS jsonb), now()
    )
    ON CONFLICT (fixture_id) DO UPDATE SET
        home_team = COALESCE(EXCLUDED.home_team, fixtures.home_team),
        away_team = COALESCE(EXCLUDED.away_team, fixtures.away_team),
        league_id = COALESCE(EXCLUDED.league_id, fixtures.league_id),
        league_name = COALESCE(EXCLUDED.league_name, fixtures.league_name),
        country = COALESCE(EXCLUDED.country, fixtures.country),
        starting_at = EXCLUDED.starting_at,
        status = EXCLUDED.status,
        odds = CASE WHEN EXCLUDED.odds = '{}'::jsonb THEN fixtures.odds ELSE EXCLUDED.odds END,
        updated_at = now()
    """
)

_SELECT_FIXTURES_AWAITING_RESULT = text(
    """
    SELECT f.fixture_id, f.terminal_seen_at
    FROM fixtures f
    LEFT JOIN fixture_results r ON r.fixture_id = f.fixture_id
    WHERE r.fixture_id IS NULL
      AND f.needs_inspection = false
      AND f.starting_at <= :newest_kickoff
      AND f.starting_at >= :oldest_kickoff
    ORDER BY f.starting_at ASC
    LIMIT :limit
    """
)

# One statement so the result row and the fixture status commit together.
_INSERT_FIXTURE_RESULT = text(
    """
    WITH inserted AS (
        INSERT INTO fixture_results (
            fixture_id, ft_home_score, ft_away_score, ht_home_score, ht_away_score,
            final_home_score, final_away_score, penalty_home_score, penalty_away_score,
            status, finished_at,
            outcome_1x2, outcome_ou05, outcome_ou15, outcome_ou25, outcome_ou35, outcome_ou45,
            outcome_btts, outcome_ht_result, outcome_ht_ou05, outcome_ht_ou15,
            outcome_double_chance, outcome_correct_score
        ) VALUES (
            :fixture_id, :ft_home_score, :ft_away_score, :ht_home_score, :ht_away_score,
            :final_home_score, :final_away_score, :penalty_home_score, :penalty_away_score,
            :status, :finished_at,
            :outcome_1x2, :outcome_ou05, :outcome_ou15, :outcome_ou25, :outcome_ou35, :outcome_ou45,
            :outcome_btts, :outcome_ht_result, :outcome_ht_ou05, :outcome_ht_ou15,
            :outcome_double_chance, :outcome_correct_score
        )
        ON CONFLICT (fixture_id) DO NOTHING
        RETURNING fixture_id
    )
    UPDATE fixtures
    SET status = :status, updated_at = now()
    WHERE fixture_id IN (SELECT fixture_id FROM inserted)
    RETURNING fixture_id
    """
)

# The first terminal sighting is kept; a status that is no longer terminal clears it.
_UPDATE_FIXTURE_STATUS = text(
    """
    UPDATE fixtures
    SET status = :status,
        terminal_seen_at = CASE
            WHEN CAST(:terminal_seen_at AS timestamptz) IS NULL THEN NULL
            ELSE COALESCE(fixtures.terminal_seen_at, CAST(:terminal_seen_at AS timestamptz))
        END,
        updated_at = now()
    WHERE fixture_id = :fixture_id
      AND (
        status IS DISTINCT FROM :status
        OR (fixtures.terminal_seen_at IS NULL) <> (CAST(:terminal_seen_at AS timestamptz) IS NULL)
      )
    """
)

_MARK_NEEDS_INSPECTION = text(
    """
    UPDATE fixtures
    SET needs_inspection = true,
        inspection_reason = :reason,
        updated_at = now()
    WHERE fixture_id = :fixture_id
    """
)


@dataclass
class IngestReport:
    catalogued: int = 0
    scanned: int = 0
    inserted: int = 0
    pending: int = 0
    poisoned: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


def result_row(record: FixtureResult) -> Dict[str, Any]:
    """Build the fixture_results row for a final record."""
    if not record.is_final:
        raise ValueError(f"fixture {record.fixture_id} is not final")
    row: Dict[str, Any] = {
        "fixture_id": record.fixture_id,
        "ft_home_score": record.ft_home_score,
        "ft_away_score": record.ft_away_score,
        "ht_home_score": record.ht_home_score,
        "ht_away_score": record.ht_away_score,
        "final_home_score": record.final_home_score,
        "final_away_score": record.final_away_score,
        "penalty_home_score": record.penalty_home_score,
        "penalty_away_score": record.penalty_away_score,
        "status": record.status,
        "finished_at": record.finished_at,
    }
    row.update(
        compute_outcomes(
            record.ft_home_score,  # type: ignore[arg-type]
            record.ft_away_score,  # type: ignore[arg-type]
            record.ht_home_score,  # type: ignore[arg-type]
            record.ht_away_score,  # type: ignore[arg-type]
        )
    )
    return row


def snapshot_params(snapshot: FixtureSnapshot) -> Dict[str, Any]:
    return {
        "fixture_id": snapshot.fixture_id,
        "home_team": snapshot.home_team,
        "away_team": snapshot.away_team,
        "league_id": snapshot.league_id,
        "league_name": snapshot.league_name,
        "country": snapshot.country,
        "starting_at": snapshot.starting_at,
        "status": snapshot.status,
        "odds": json.dumps(snapshot.odds or {}, sort_keys=True),
    }


class ResultIngestionWorker:
    def __init__(
        self,
        *,
        database: Any,
        sportmonks: SportMonksClient,
        params: Optional[IngestParams] = None,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.sportmonks = sportmonks
        self.params = params or get_oracle_params().ingest
        self._now = now_fn

    async def run_once(self) -> IngestReport:
        report = IngestReport()
        now = self._now()
        try:
            report.catalogued = await self.sync_catalogue(now)
        except OracleError as exc:
            report.errors += 1
            logger.warning({"fixture_catalogue_failed": {"error": str(exc), "type": type(exc).__name__}})

        await self.ingest_results(now, report)
        if report.scanned or report.catalogued:
            logger.info({"result_ingestion": report.as_dict()})
        return report

    async def sync_catalogue(self, now: datetime) -> int:
        start = now.date()
        end = start + timedelta(days=self.params.catalogue_days_ahead)
        snapshots = await self.sportmonks.fetch_fixtures_between(start, end)
        upserted = 0
        for snapshot in snapshots:
            await self.database.write(_UPSERT_FIXTURE, params=snapshot_params(snapshot))
            upserted += 1
        return upserted

    async def ingest_results(self, now: datetime, report: IngestReport) -> None:
        rows = await self.database.read(
            _SELECT_FIXTURES_AWAITING_RESULT,
            params={
                "newest_kickoff": now - timedelta(minutes=self.params.min_kickoff_age_minutes),
                "oldest_kickoff": now - timedelta(days=self.params.max_kickoff_age_days),
                "limit": self.params.scan_limit,
            },
            mappings=True,
        )
        fixture_ids = [int(r["fixture_id"]) for r in rows]
        terminal_seen = {int(r["fixture_id"]): r["terminal_seen_at"] for r in rows if r.get("terminal_seen_at")}
        report.scanned = len(fixture_ids)
        if not fixture_ids:
            return

        batch_size = self.sportmonks.config.batch_size
        batches = [fixture_ids[i:i + batch_size] for i in range(0, len(fixture_ids), batch_size)]
        semaphore = asyncio.Semaphore(self.params.max_concurrent_batches)

        async def _fetch(batch: List[int]) -> List[FixtureResult]:
            async with semaphore:
                return await self.sportmonks.fetch_fixture_results(
                    batch, {i: terminal_seen[i] for i in batch if i in terminal_seen}
                )

        outcomes = await asyncio.gather(*(_fetch(b) for b in batches), return_exceptions=True)
        for batch, outcome in zip(batches, outcomes):
            if isinstance(outcome, OracleError):
                report.errors += 1
                logger.warning({"result_batch_failed": {"ids": batch, "error": str(outcome)}})
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            for record in outcome:
                await self._store(record, report)

    async def _store(self, record: FixtureResult, report: IngestReport) -> None:
        if record.problem:
            if record.problem.startswith("provider_rejected"):
                report.errors += 1
                return
            await self.mark_needs_inspection(record.fixture_id, record.problem)
            report.poisoned += 1
            return

        if not record.is_final:
            report.pending += 1
            await self.database.write(
                _UPDATE_FIXTURE_STATUS,
                params={
                    "fixture_id": record.fixture_id,
                    "status": record.status,
                    "terminal_seen_at": record.terminal_seen_at,
                },
            )
            return

        try:
            row = result_row(record)
        except ValueError as exc:
            await self.mark_needs_inspection(record.fixture_id, f"invalid_scores: {exc}")
            report.poisoned += 1
            return

        inserted = await self.database.write(_INSERT_FIXTURE_RESULT, params=row, return_rows=True)
        if inserted:
            report.inserted += 1
            logger.info(
                {
                    "fixture_result_stored": {
                        "fixture_id": record.fixture_id,
                        "ft": f"{record.ft_home_score}-{record.ft_away_score}",
                        "ht": f"{record.ht_home_score}-{record.ht_away_score}",
                        "status": record.status,
                    }
                }
            )

    async def mark_needs_inspection(self, fixture_id: int, reason: str) -> None:
        logger.warning({"fixture_needs_inspection": {"fixture_id": fixture_id, "reason": reason}})
        await self.database.write(
            _MARK_NEEDS_INSPECTION,
            params={"fixture_id": fixture_id, "reason": reason[:500]},
        )


__all__ = ["IngestReport", "ResultIngestionWorker", "result_row", "snapshot_params"]
