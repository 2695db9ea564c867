from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bitredict.chain.client import TxResult
from bitredict.chain.contracts import SlipPrediction
from bitredict.oracle.config.params import OddysseyParams
from bitredict.oracle.handlers.oddyssey.cycles import prediction_to_json
from bitredict.oracle.handlers.oddyssey.evaluator import (
    SlipEvaluator,
    evaluate_slip,
    is_correct,
    outcomes_from_resolution,
    rank_leaderboard,
)
from bitredict.shared.enums import BetType, Moneyline, OverUnder
from bitredict.shared.errors import ChainRevertError, DataIntegrityError

NOW = datetime(2025, 3, 2, 1, 0, tzinfo=timezone.utc)

HOME_OVER = (Moneyline.HOME_WIN, OverUnder.OVER)
AWAY_UNDER = (Moneyline.AWAY_WIN, OverUnder.UNDER)


def _ml(match_id, selection, odd):
    return SlipPrediction(match_id=match_id, bet_type=BetType.MONEYLINE, selection=selection, selected_odd=odd)


def _ou(match_id, selection, odd):
    return SlipPrediction(match_id=match_id, bet_type=BetType.OVER_UNDER, selection=selection, selected_odd=odd)


def test_is_correct_per_bet_type():
    assert is_correct(_ml(1, "1", 1500), HOME_OVER)
    assert not is_correct(_ml(1, "X", 3200), HOME_OVER)
    assert is_correct(_ml(1, "2", 4100), AWAY_UNDER)
    assert is_correct(_ou(1, "Over", 1900), HOME_OVER)
    assert not is_correct(_ou(1, "Under", 1900), HOME_OVER)
    assert not is_correct(_ml(1, "home", 1500), HOME_OVER)


def test_eight_correct_picks_score_product_of_odds():
    odds = [1250, 1600, 1250, 1600, 1250, 1600, 1250, 2473]
    predictions = [_ml(i, "1", odd) for i, odd in enumerate(odds)]
    predictions += [_ml(8, "X", 3300), _ou(9, "Over", 1850)]
    outcomes = {i: HOME_OVER for i in range(8)}
    outcomes[8] = HOME_OVER
    outcomes[9] = AWAY_UNDER

    score = evaluate_slip(predictions, outcomes)

    assert score.correct_count == 8
    assert score.final_score == 24730


def test_score_floors_at_every_step():
    predictions = [_ml(i, "1", 1333) for i in range(3)]
    score = evaluate_slip(predictions, {i: HOME_OVER for i in range(3)})
    # 1333 -> 1776 -> 2367, not round(1.333 ** 3 * 1000)
    assert score.final_score == 2367


def test_no_correct_pick_scores_zero():
    predictions = [_ml(i, "2", 2000) for i in range(10)]
    score = evaluate_slip(predictions, {i: HOME_OVER for i in range(10)})
    assert score.correct_count == 0
    assert score.final_score == 0


def test_pick_outside_the_cycle_is_a_data_error():
    with pytest.raises(DataIntegrityError):
        evaluate_slip([_ml(1, "1", 1500)], {})


def test_rank_leaderboard_orders_and_filters():
    slips = [
        {"slip_id": 1, "correct_count": 7, "final_score": 9000},
        {"slip_id": 2, "correct_count": 8, "final_score": 9000},
        {"slip_id": 3, "correct_count": 10, "final_score": 50000},
        {"slip_id": 4, "correct_count": 6, "final_score": 99999},
        {"slip_id": 5, "correct_count": 8, "final_score": 9000},
        {"slip_id": 6, "correct_count": 9, "final_score": 12000},
        {"slip_id": 7, "correct_count": 7, "final_score": 8000},
        {"slip_id": 8, "correct_count": 7, "final_score": 100},
    ]

    board = rank_leaderboard(slips, size=5, min_correct=7)

    assert [(e.rank, e.slip_id) for e in board] == [(1, 3), (2, 6), (3, 2), (4, 5), (5, 1)]


def test_outcomes_from_resolution_accepts_json_text():
    stored = '[{"match_id": 11, "moneyline": 3, "over_under": 2}]'
    assert outcomes_from_resolution(stored) == {11: AWAY_UNDER}
    assert outcomes_from_resolution(None) == {}


def _slip_row(slip_id, correct_picks):
    predictions = [_ml(m, "1" if m < correct_picks else "2", 2000) for m in range(10)]
    return {"slip_id": slip_id, "predictions": [prediction_to_json(p) for p in predictions]}


@pytest.mark.asyncio
async def test_evaluate_cycle_batches_and_tolerates_reverted_batch():
    pending = [_slip_row(i, correct_picks=7 if i < 3 else 2) for i in range(1, 8)]
    evaluated = [{"slip_id": i, "correct_count": 7 if i < 3 else 2, "final_score": 128000 if i < 3 else 4000}
                 for i in range(1, 8)]
    db = MagicMock()
    db.read = AsyncMock(side_effect=[pending, evaluated])
    db.write = AsyncMock(return_value=1)
    oddyssey = MagicMock()
    oddyssey.evaluate_multiple_slips = AsyncMock(
        side_effect=[
            TxResult(tx_hash="0xeval", block_number=9, receipt={}),
            ChainRevertError("Slip already evaluated"),
        ]
    )
    evaluator = SlipEvaluator(database=db, oddyssey=oddyssey, params=OddysseyParams(), now_fn=lambda: NOW)

    board = await evaluator.evaluate_cycle(12, {m: HOME_OVER for m in range(10)})

    batches = [c.args[0] for c in oddyssey.evaluate_multiple_slips.await_args_list]
    assert batches == [[1, 2, 3, 4, 5], [6, 7]]
    marks = [c.kwargs["params"] for c in db.write.await_args_list if "final_score" in c.kwargs["params"]]
    assert [(m["slip_id"], m["tx_hash"]) for m in marks] == [
        (1, "0xeval"), (2, "0xeval"), (3, "0xeval"), (4, "0xeval"), (5, "0xeval"), (6, None), (7, None)
    ]
    assert marks[0]["correct_count"] == 7
    assert marks[0]["final_score"] == 128000
    assert marks[3]["final_score"] == 4000
    assert [(e.rank, e.slip_id) for e in board] == [(1, 1), (2, 2)]
    ranks = [c.kwargs["params"] for c in db.write.await_args_list if "rank" in c.kwargs["params"]]
    assert ranks == [{"slip_id": 1, "rank": 1}, {"slip_id": 2, "rank": 2}]


@pytest.mark.asyncio
async def test_slip_with_unknown_match_is_skipped_not_fatal():
    stray = _slip_row(2, correct_picks=8)
    stray["predictions"][9]["match_id"] = 999
    pending = [_slip_row(1, correct_picks=8), stray, {"slip_id": 3, "predictions": "not json"}]
    db = MagicMock()
    db.read = AsyncMock(side_effect=[pending, []])
    db.write = AsyncMock(return_value=1)
    oddyssey = MagicMock()
    oddyssey.evaluate_multiple_slips = AsyncMock(return_value=TxResult(tx_hash="0xeval", block_number=9, receipt={}))
    evaluator = SlipEvaluator(database=db, oddyssey=oddyssey, params=OddysseyParams(), now_fn=lambda: NOW)

    await evaluator.evaluate_cycle(12, {m: HOME_OVER for m in range(10)})

    oddyssey.evaluate_multiple_slips.assert_awaited_once_with([1])
    marked = [c.kwargs["params"]["slip_id"] for c in db.write.await_args_list if "final_score" in c.kwargs["params"]]
    assert marked == [1]
