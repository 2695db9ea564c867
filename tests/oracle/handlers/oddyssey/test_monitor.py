from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bitredict.oracle.config.params import OddysseyParams
from bitredict.oracle.handlers.oddyssey.monitor import CycleMonitor, Severity

NOW = datetime(2025, 3, 2, 15, 0, tzinfo=timezone.utc)


def _monitor(db):
    return CycleMonitor(database=db, params=OddysseyParams(), now_fn=lambda: NOW)


def _db(*reads, flagged=1):
    db = MagicMock()
    db.read = AsyncMock(side_effect=list(reads))
    db.write = AsyncMock(return_value=flagged)
    return db


@pytest.mark.asyncio
async def test_healthy_when_nothing_is_wrong():
    db = _db([{"n": 1}], [], [], [])

    report = await _monitor(db).run_once()

    assert report.status == "healthy"
    assert report.issues == []
    db.write.assert_not_awaited()
    day = db.read.await_args_list[0].kwargs["params"]
    assert day == {
        "day_start": datetime(2025, 3, 2, tzinfo=timezone.utc),
        "day_end": datetime(2025, 3, 3, tzinfo=timezone.utc),
    }


@pytest.mark.asyncio
async def test_reports_every_issue_and_flags_ready_cycles():
    db = _db(
        [{"n": 0}],
        [{"cycle_id": 10}, {"cycle_id": 11}],
        [{"cycle_id": 11, "cycle_end_time": NOW - timedelta(hours=5)}],
        [{"cycle_id": 11, "ready_for_resolution": False}, {"cycle_id": 12, "ready_for_resolution": True}],
    )

    report = await _monitor(db).run_once()

    by_kind = {i.kind: i for i in report.issues}
    assert by_kind["missing_cycle"].severity is Severity.CRITICAL
    assert by_kind["cycle_without_tx"].severity is Severity.ERROR
    assert by_kind["cycle_without_tx"].cycle_ids == [10, 11]
    assert by_kind["resolution_overdue"].severity is Severity.WARNING
    assert by_kind["ready_not_flagged"].cycle_ids == [11]
    assert report.status == "critical"
    assert report.flagged_ready == [11]
    db.write.assert_awaited_once()
    assert db.write.await_args.kwargs["params"] == {"cycle_id": 11, "now": NOW}

    windows = [c.kwargs["params"] for c in db.read.await_args_list]
    assert windows[1] == {"since": NOW - timedelta(days=7)}
    assert windows[2] == {"overdue_before": NOW - timedelta(hours=2)}
    assert windows[3] == {"matches_per_cycle": 10}


@pytest.mark.asyncio
async def test_status_is_worst_severity():
    db = _db([{"n": 1}], [], [{"cycle_id": 4, "cycle_end_time": NOW - timedelta(hours=3)}], [])

    report = await _monitor(db).run_once()

    assert report.status == "warning"
    assert report.as_dict()["issues"][0]["kind"] == "resolution_overdue"


@pytest.mark.asyncio
async def test_flag_race_is_not_reported_as_flagged():
    db = _db([{"n": 1}], [], [], [{"cycle_id": 11, "ready_for_resolution": False}], flagged=0)

    report = await _monitor(db).run_once()

    assert report.flagged_ready == []
    assert report.status == "warning"
