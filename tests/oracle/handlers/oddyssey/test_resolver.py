import json
from datetime import datetime, timezone
from unittest.mock import ANY, AsyncMock, MagicMock

import pytest

from bitredict.chain.client import TxResult
from bitredict.chain.contracts import CycleStatus, OddysseyMatch
from bitredict.oracle.config.params import OddysseyParams
from bitredict.oracle.handlers.oddyssey.cycles import match_to_json
from bitredict.oracle.handlers.oddyssey.resolver import CycleResolver, match_outcome
from bitredict.shared.enums import CycleState, Moneyline, OverUnder
from bitredict.shared.errors import ChainRevertError

NOW = datetime(2025, 3, 3, 1, 0, tzinfo=timezone.utc)
MATCH_IDS = list(range(500, 510))
SCORES = [(2, 1), (0, 0), (1, 3), (3, 0), (1, 1), (0, 1), (2, 2), (4, 1), (0, 2), (1, 0)]


def _cycle_row(cycle_id=12, *, is_resolved=False, match_ids=MATCH_IDS):
    matches = [
        OddysseyMatch(id=i, start_time=1740920400, odds_home=2000, odds_draw=3100, odds_away=3900,
                      odds_over=1850, odds_under=1950)
        for i in match_ids
    ]
    return {
        "cycle_id": cycle_id,
        "matches_data": json.dumps([match_to_json(m) for m in matches]),
        "cycle_end_time": datetime(2025, 3, 2, 12, 55, tzinfo=timezone.utc),
        "is_resolved": is_resolved,
    }


def _results(ids=MATCH_IDS):
    return [
        {"fixture_id": i, "ft_home_score": home, "ft_away_score": away}
        for i, (home, away) in zip(MATCH_IDS, SCORES)
        if i in ids
    ]


def _status(state, prize_pool=0):
    return CycleStatus(exists=True, state=state, end_time=0, prize_pool=prize_pool, slip_count=3, has_winner=False)


def _resolver(db, oddyssey, evaluator):
    return CycleResolver(database=db, oddyssey=oddyssey, evaluator=evaluator, params=OddysseyParams(), now_fn=lambda: NOW)


def _oddyssey(state):
    oddyssey = MagicMock()
    oddyssey.get_cycle_status = AsyncMock(return_value=_status(state, prize_pool=5 * 10**18))

    async def _resolve(cycle_id, results, on_sent=None):
        await on_sent("0xresolve")
        return TxResult(tx_hash="0xresolve", block_number=77, receipt={})

    oddyssey.resolve_daily_cycle = AsyncMock(side_effect=_resolve)
    return oddyssey


def _evaluator():
    evaluator = MagicMock()
    evaluator.evaluate_cycle = AsyncMock(return_value=[])
    return evaluator


def _db(*reads):
    db = MagicMock()
    db.read = AsyncMock(side_effect=list(reads))
    db.write = AsyncMock(return_value=1)
    return db


@pytest.mark.parametrize(
    "home,away,expected",
    [
        (2, 1, (Moneyline.HOME_WIN, OverUnder.OVER)),
        (0, 0, (Moneyline.DRAW, OverUnder.UNDER)),
        (1, 1, (Moneyline.DRAW, OverUnder.UNDER)),
        (0, 3, (Moneyline.AWAY_WIN, OverUnder.OVER)),
    ],
)
def test_match_outcome(home, away, expected):
    assert match_outcome(home, away) == expected


@pytest.mark.asyncio
async def test_ended_cycle_is_resolved_on_chain_then_evaluated():
    db = _db([_cycle_row()], _results(), [])
    oddyssey, evaluator = _oddyssey(CycleState.ENDED), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    (cycle,) = report.cycles
    assert cycle.resolved and not cycle.synced_only
    assert cycle.tx_hash == "0xresolve"
    sent = oddyssey.resolve_daily_cycle.await_args.args[1]
    assert sent[:4] == [(1, 1), (2, 2), (3, 1), (1, 1)]
    oddyssey.resolve_daily_cycle.assert_awaited_once_with(12, ANY, on_sent=ANY)

    pending, resolved = [c.kwargs["params"] for c in db.write.await_args_list]
    assert pending == {"cycle_id": 12, "tx_hash": "0xresolve"}
    assert resolved["tx_hash"] == "0xresolve"
    stored = json.loads(resolved["resolution_data"])
    assert stored[1] == {"match_id": 501, "moneyline": 2, "over_under": 2}
    assert resolved["prize_pool"] is None

    cycle_id, outcomes = evaluator.evaluate_cycle.await_args.args
    assert cycle_id == 12
    assert outcomes[507] == (Moneyline.HOME_WIN, OverUnder.OVER)


@pytest.mark.asyncio
async def test_cycle_resolved_on_chain_is_synced_without_tx():
    db = _db([_cycle_row()], _results(), [])
    oddyssey, evaluator = _oddyssey(CycleState.RESOLVED), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    (cycle,) = report.cycles
    assert cycle.resolved and cycle.synced_only
    oddyssey.resolve_daily_cycle.assert_not_awaited()
    (resolved,) = [c.kwargs["params"] for c in db.write.await_args_list]
    assert resolved["tx_hash"] is None
    assert resolved["prize_pool"] == 5 * 10**18
    evaluator.evaluate_cycle.assert_awaited_once()


@pytest.mark.asyncio
async def test_mirror_resolved_without_results_is_backfilled():
    db = _db([_cycle_row(is_resolved=True)], _results(), [])
    oddyssey, evaluator = _oddyssey(CycleState.ENDED), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    assert report.cycles[0].synced_only
    oddyssey.resolve_daily_cycle.assert_not_awaited()


@pytest.mark.asyncio
async def test_active_cycle_waits():
    db = _db([_cycle_row()], _results(), [])
    oddyssey, evaluator = _oddyssey(CycleState.ACTIVE), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    (cycle,) = report.cycles
    assert not cycle.resolved
    assert cycle.reason == "cycle_state_active"
    db.write.assert_not_awaited()
    evaluator.evaluate_cycle.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_results_skip_chain_lookup():
    db = _db([_cycle_row()], _results(ids=MATCH_IDS[:9]), [])
    oddyssey, evaluator = _oddyssey(CycleState.ENDED), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    assert report.cycles[0].reason == "results_pending"
    oddyssey.get_cycle_status.assert_not_awaited()


@pytest.mark.asyncio
async def test_result_without_scores_blocks_resolution():
    results = _results()
    results[3]["ft_home_score"] = None
    db = _db([_cycle_row()], results, [])
    oddyssey, evaluator = _oddyssey(CycleState.ENDED), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    assert report.cycles[0].reason.startswith("data_integrity")
    oddyssey.resolve_daily_cycle.assert_not_awaited()


@pytest.mark.asyncio
async def test_malformed_cycle_is_reported():
    db = _db([_cycle_row(match_ids=MATCH_IDS[:8])], [])
    oddyssey, evaluator = _oddyssey(CycleState.ENDED), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    assert report.cycles[0].reason == "cycle_has_8_matches"


@pytest.mark.asyncio
async def test_resolution_revert_leaves_cycle_pending():
    db = _db([_cycle_row()], _results(), [])
    oddyssey, evaluator = _oddyssey(CycleState.ENDED), _evaluator()
    oddyssey.resolve_daily_cycle = AsyncMock(side_effect=ChainRevertError("Cycle not ended"))

    report = await _resolver(db, oddyssey, evaluator).run_once()

    assert report.cycles[0].reason == "chain_revert: Cycle not ended"
    db.write.assert_not_awaited()
    evaluator.evaluate_cycle.assert_not_awaited()


@pytest.mark.asyncio
async def test_evaluate_pending_uses_stored_resolution():
    stored = json.dumps([{"match_id": 500, "moneyline": 1, "over_under": 1}])
    db = _db([], [{"cycle_id": 9, "resolution_data": stored}])
    oddyssey, evaluator = _oddyssey(CycleState.RESOLVED), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    assert report.evaluated == [9]
    evaluator.evaluate_cycle.assert_awaited_once_with(9, {500: (Moneyline.HOME_WIN, OverUnder.OVER)})


@pytest.mark.asyncio
async def test_malformed_resolution_data_does_not_block_other_cycles():
    stored = json.dumps([{"match_id": 500, "moneyline": 1, "over_under": 1}])
    db = _db([], [{"cycle_id": 8, "resolution_data": '[{"match_id": 500}]'}, {"cycle_id": 9, "resolution_data": stored}])
    oddyssey, evaluator = _oddyssey(CycleState.RESOLVED), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    assert report.evaluated == [9]
    evaluator.evaluate_cycle.assert_awaited_once_with(9, {500: (Moneyline.HOME_WIN, OverUnder.OVER)})


@pytest.mark.asyncio
async def test_unreadable_matches_data_is_reported():
    row = _cycle_row()
    row["matches_data"] = "{broken"
    db = _db([row], [])
    oddyssey, evaluator = _oddyssey(CycleState.ENDED), _evaluator()

    report = await _resolver(db, oddyssey, evaluator).run_once()

    assert report.cycles[0].reason.startswith("data_integrity")
    oddyssey.get_cycle_status.assert_not_awaited()
