from datetime import date, datetime, time, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bitredict.chain.client import TxResult
from bitredict.chain.contracts import CycleStatus, OddysseyMatch
from bitredict.oracle.config.params import OddysseyParams
from bitredict.oracle.handlers.oddyssey.selector import (
    CycleStarter,
    InsufficientMatches,
    is_excluded,
    league_priority,
    scale_odds,
    select_matches,
    target_date_for,
)
from bitredict.shared.enums import CycleState

TARGET = date(2025, 3, 2)
START_AT = time(23, 50)
ODDS = {"home": 1.85, "draw": 3.4, "away": 4.1, "over_25": 1.9, "under_25": 1.95}


def _kickoff(hour, minute=0, day=TARGET):
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


def _fixture(fixture_id, kickoff, *, league="Obscure League", country="Nowhere", home="Home FC", away="Away FC", odds=ODDS):
    return {
        "fixture_id": fixture_id,
        "home_team": home,
        "away_team": away,
        "league_name": league,
        "country": country,
        "starting_at": kickoff,
        "odds": odds,
    }


@pytest.mark.parametrize(
    "value,expected",
    [(1.15, 1150), ("2.0", 2000), (1.999, 1999), (3.4, 3400), (10, 10000)],
)
def test_scale_odds_floors_in_decimal(value, expected):
    assert scale_odds(value) == expected


@pytest.mark.parametrize(
    "now,expected",
    [
        (datetime(2025, 3, 1, 23, 49, tzinfo=timezone.utc), date(2025, 3, 1)),
        (datetime(2025, 3, 1, 23, 50, tzinfo=timezone.utc), date(2025, 3, 2)),
        # a late start still targets the running day
        (datetime(2025, 3, 2, 2, 0, tzinfo=timezone.utc), date(2025, 3, 2)),
    ],
)
def test_target_date_rolls_over_at_start_time(now, expected):
    assert target_date_for(now, START_AT) == expected


def test_league_priority_and_exclusions():
    params = OddysseyParams()
    assert league_priority({"league_name": "Premier League", "country": "England"}, params) == 100
    assert league_priority({"league_name": "Europa League", "country": "Europe"}, params) == 85
    assert league_priority({"league_name": "Somewhere Cup"}, params) == params.default_league_priority
    assert is_excluded({"league_name": "Women's Super League"}, params)
    assert is_excluded({"league_name": "Club Friendlies"}, params)
    assert is_excluded({"league_name": "Premier League 2", "home_team": "Arsenal U21"}, params)
    assert not is_excluded({"league_name": "Premier League", "home_team": "Arsenal"}, params)


def test_select_matches_ranks_by_priority_then_kickoff():
    rows = [
        _fixture(1, _kickoff(20), league="Premier League", country="England"),
        _fixture(2, _kickoff(21), league="Premier League", country="England"),
        _fixture(3, _kickoff(22), league="Premier League", country="England"),
        _fixture(4, _kickoff(12, 30)),
        _fixture(5, _kickoff(14), league="Women's Championship"),
        _fixture(6, _kickoff(14), odds={**ODDS, "under_25": None}),
        _fixture(7, _kickoff(14, day=TARGET + timedelta(days=1))),
    ]
    rows += [_fixture(100 + i, _kickoff(13 + i % 8, i)) for i in range(8)]

    matches = select_matches(rows, target_date=TARGET, params=OddysseyParams())

    ids = [m.id for m in matches]
    assert len(ids) == 10
    assert {1, 2, 3} <= set(ids)
    assert not {4, 5, 6, 7} & set(ids)
    # seven lowest-priority fixtures by kickoff; 107 (20:07) misses out to the later ones
    assert 107 not in ids
    assert [m.start_time for m in matches] == sorted(m.start_time for m in matches)
    first = matches[0]
    assert (first.odds_home, first.odds_draw, first.odds_away, first.odds_over, first.odds_under) == (
        1850, 3400, 4100, 1900, 1950
    )


def test_select_matches_needs_ten():
    rows = [_fixture(i, _kickoff(14)) for i in range(9)]
    with pytest.raises(InsufficientMatches) as excinfo:
        select_matches(rows, target_date=TARGET, params=OddysseyParams())
    assert excinfo.value.found == 9


def _oddyssey(current_cycle=0, status=None):
    oddyssey = MagicMock()
    oddyssey.daily_cycle_id = AsyncMock(return_value=current_cycle)
    oddyssey.get_cycle_status = AsyncMock(return_value=status)
    oddyssey.get_daily_matches = AsyncMock(return_value=[])
    oddyssey.start_daily_cycle = AsyncMock(return_value=TxResult(tx_hash="0xstart", block_number=5, receipt={}))
    oddyssey.parse_cycle_started = MagicMock(return_value=13)
    return oddyssey


def _starter(db, oddyssey, now):
    return CycleStarter(database=db, oddyssey=oddyssey, start_at=START_AT, params=OddysseyParams(), now_fn=lambda: now)


@pytest.mark.asyncio
async def test_starter_is_noop_when_day_has_cycle():
    db = MagicMock()
    db.read = AsyncMock(return_value=[{"cycle_id": 12}])
    oddyssey = _oddyssey()

    started = await _starter(db, oddyssey, datetime(2025, 3, 1, 23, 55, tzinfo=timezone.utc)).run_once()

    assert started is None
    oddyssey.start_daily_cycle.assert_not_awaited()
    params = db.read.await_args.kwargs["params"]
    assert params["day_start"] == datetime(2025, 3, 2, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_starter_publishes_ten_matches():
    now = datetime(2025, 3, 1, 23, 55, tzinfo=timezone.utc)
    rows = [_fixture(200 + i, _kickoff(13 + i % 9, 5 * i)) for i in range(12)]
    db = MagicMock()
    db.read = AsyncMock(side_effect=[[], rows])
    db.write = AsyncMock(return_value=1)
    oddyssey = _oddyssey()

    started = await _starter(db, oddyssey, now).run_once()

    assert started.cycle_id == 13
    assert started.target_date == TARGET
    assert started.tx_hash == "0xstart"
    assert not started.from_chain
    (published,), kwargs = oddyssey.start_daily_cycle.await_args
    assert len(published) == 10
    assert "on_sent" in kwargs
    (cycle,) = [c.kwargs["params"] for c in db.write.await_args_list]
    assert cycle["cycle_id"] == 13
    assert cycle["tx_hash"] == "0xstart"
    earliest = min(m.start_time for m in published)
    assert cycle["cycle_end_time"] == datetime.fromtimestamp(earliest - 300, tz=timezone.utc)
    window = db.read.await_args_list[1].kwargs["params"]
    assert window["not_before"] == now + timedelta(seconds=300)


@pytest.mark.asyncio
async def test_starter_adopts_cycle_already_on_chain():
    end_time = int(_kickoff(12, 55).timestamp())
    status = CycleStatus(
        exists=True, state=CycleState.ACTIVE, end_time=end_time, prize_pool=0, slip_count=0, has_winner=False
    )
    matches = [OddysseyMatch(id=i, start_time=end_time + 300, odds_home=2000, odds_draw=3000, odds_away=4000,
                             odds_over=1900, odds_under=1900) for i in range(10)]
    oddyssey = _oddyssey(current_cycle=13, status=status)
    oddyssey.get_daily_matches = AsyncMock(return_value=matches)
    db = MagicMock()
    db.read = AsyncMock(return_value=[])
    db.write = AsyncMock(return_value=1)

    started = await _starter(db, oddyssey, datetime(2025, 3, 2, 0, 10, tzinfo=timezone.utc)).run_once()

    assert started.from_chain
    assert started.cycle_id == 13
    assert started.tx_hash is None
    oddyssey.start_daily_cycle.assert_not_awaited()
    (cycle,) = [c.kwargs["params"] for c in db.write.await_args_list]
    assert cycle["matches_count"] == 10
    assert cycle["cycle_start_time"] is None


@pytest.mark.asyncio
async def test_starter_ignores_previous_days_chain_cycle():
    yesterday_end = int(_kickoff(12, 55, day=TARGET - timedelta(days=1)).timestamp())
    status = CycleStatus(
        exists=True, state=CycleState.ENDED, end_time=yesterday_end, prize_pool=0, slip_count=4, has_winner=False
    )
    oddyssey = _oddyssey(current_cycle=12, status=status)
    db = MagicMock()
    db.read = AsyncMock(side_effect=[[], [_fixture(1, _kickoff(15))]])
    db.write = AsyncMock(return_value=1)

    started = await _starter(db, oddyssey, datetime(2025, 3, 1, 23, 55, tzinfo=timezone.utc)).run_once()

    # not enough fixtures: logged and retried next tick
    assert started is None
    oddyssey.get_daily_matches.assert_not_awaited()
    oddyssey.start_daily_cycle.assert_not_awaited()
