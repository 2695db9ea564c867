from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bitredict.oracle.handlers.ingest.results import ResultIngestionWorker, result_row
from bitredict.providers.records import FixtureResult, FixtureSnapshot
from bitredict.shared.errors import TransientError

NOW = datetime(2025, 3, 1, 20, 0, tzinfo=timezone.utc)


def _final(fixture_id, ft=(2, 1), ht=(1, 0)):
    return FixtureResult(
        fixture_id=fixture_id,
        status="FT",
        ft_home_score=ft[0],
        ft_away_score=ft[1],
        ht_home_score=ht[0],
        ht_away_score=ht[1],
        ended_at=NOW - timedelta(minutes=30),
        finished_at=NOW - timedelta(minutes=30),
    )


def _database(fixture_ids):
    db = MagicMock()
    db.read = AsyncMock(return_value=[{"fixture_id": i} for i in fixture_ids])

    async def write(query, params=None, *, return_rows=False):
        if return_rows:
            return [{"fixture_id": params["fixture_id"]}]
        return 1

    db.write = AsyncMock(side_effect=write)
    return db


def _sportmonks(results, snapshots=()):
    client = MagicMock()
    client.config.batch_size = 25
    client.fetch_fixtures_between = AsyncMock(return_value=list(snapshots))
    client.fetch_fixture_results = AsyncMock(return_value=results)
    return client


def _written(db):
    return [call.kwargs["params"] for call in db.write.call_args_list]


def test_result_row_requires_final_record():
    with pytest.raises(ValueError):
        result_row(FixtureResult(fixture_id=1, status="INPLAY_1ST_HALF"))
    row = result_row(_final(1, ft=(0, 0), ht=(0, 0)))
    assert row["outcome_1x2"] == "Draw"
    assert row["outcome_ou25"] == "Under"
    assert row["finished_at"] == NOW - timedelta(minutes=30)


@pytest.mark.asyncio
async def test_run_once_sorts_records_by_state():
    snapshot = FixtureSnapshot(fixture_id=9, starting_at=NOW + timedelta(days=1), status="NS", odds={"home": 2.0})
    results = [
        _final(1),
        FixtureResult(fixture_id=2, status="INPLAY_2ND_HALF"),
        FixtureResult(fixture_id=3, status="FT", problem="missing_half_time_score"),
        FixtureResult(fixture_id=4, status="UNKNOWN", problem="provider_rejected: http 400"),
    ]
    db = _database([1, 2, 3, 4])
    worker = ResultIngestionWorker(database=db, sportmonks=_sportmonks(results, [snapshot]), now_fn=lambda: NOW)

    report = await worker.run_once()

    assert report.as_dict() == {
        "catalogued": 1,
        "scanned": 4,
        "inserted": 1,
        "pending": 1,
        "poisoned": 1,
        "errors": 1,
    }
    written = _written(db)
    assert written[0]["fixture_id"] == 9
    assert written[0]["odds"] == '{"home": 2.0}'
    stored = next(p for p in written if p.get("outcome_1x2"))
    assert stored["fixture_id"] == 1 and stored["outcome_1x2"] == "Home"
    assert {"fixture_id": 2, "status": "INPLAY_2ND_HALF", "terminal_seen_at": None} in written
    assert {"fixture_id": 3, "reason": "missing_half_time_score"} in written


@pytest.mark.asyncio
async def test_scan_window_uses_kickoff_age():
    db = _database([])
    worker = ResultIngestionWorker(database=db, sportmonks=_sportmonks([]), now_fn=lambda: NOW)

    report = await worker.run_once()

    params = db.read.call_args.kwargs["params"]
    assert params["newest_kickoff"] == NOW - timedelta(minutes=30)
    assert params["oldest_kickoff"] == NOW - timedelta(days=7)
    assert report.scanned == 0


@pytest.mark.asyncio
async def test_catalogue_failure_does_not_block_results():
    client = _sportmonks([_final(5)])
    client.fetch_fixtures_between = AsyncMock(side_effect=TransientError("http 503"))
    db = _database([5])
    worker = ResultIngestionWorker(database=db, sportmonks=client, now_fn=lambda: NOW)

    report = await worker.run_once()

    assert report.errors == 1
    assert report.inserted == 1


@pytest.mark.asyncio
async def test_failed_batch_is_counted_and_skipped():
    client = _sportmonks([])
    client.fetch_fixture_results = AsyncMock(side_effect=TransientError("timeout"))
    db = _database([1, 2])
    worker = ResultIngestionWorker(database=db, sportmonks=client, now_fn=lambda: NOW)

    report = await worker.run_once()

    assert report.errors == 1
    assert report.inserted == 0
    assert db.write.await_count == 0


@pytest.mark.asyncio
async def test_existing_result_is_not_rewritten():
    db = _database([1])
    db.write = AsyncMock(return_value=[])
    worker = ResultIngestionWorker(database=db, sportmonks=_sportmonks([_final(1)]), now_fn=lambda: NOW)

    report = await worker.run_once()

    assert report.inserted == 0


@pytest.mark.asyncio
async def test_first_terminal_sighting_is_stored_and_passed_back():
    seen = NOW - timedelta(minutes=5)
    guarded = FixtureResult(
        fixture_id=7,
        status="FT",
        ft_home_score=1,
        ft_away_score=0,
        ht_home_score=0,
        ht_away_score=0,
        ended_at=NOW - timedelta(hours=1),
        terminal_seen_at=seen,
    )
    client = _sportmonks([guarded])
    db = _database([])
    db.read = AsyncMock(
        return_value=[{"fixture_id": 7, "terminal_seen_at": seen}, {"fixture_id": 8, "terminal_seen_at": None}]
    )
    worker = ResultIngestionWorker(database=db, sportmonks=client, now_fn=lambda: NOW)

    report = await worker.run_once()

    client.fetch_fixture_results.assert_awaited_once_with([7, 8], {7: seen})
    assert report.pending == 1
    assert report.inserted == 0
    assert {"fixture_id": 7, "status": "FT", "terminal_seen_at": seen} in _written(db)
