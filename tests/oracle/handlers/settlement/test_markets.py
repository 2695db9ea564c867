import pytest

from bitredict.oracle.handlers.settlement.markets import (
    BothTeamsToScore,
    CryptoThreshold,
    FullTimeResult,
    HalfTimeResult,
    HalfTimeTotalGoals,
    TotalGoals,
    canonical_outcome,
    category_for,
    family_from_json,
    family_to_json,
    is_valid_market_id,
    parse_market_family,
    require_in_alphabet,
)
from bitredict.shared.enums import PoolCategory
from bitredict.shared.errors import DataIntegrityError, FormatMismatchError


@pytest.mark.parametrize(
    "prediction,expected",
    [
        ("Home", FullTimeResult(long_form=False)),
        ("away", FullTimeResult(long_form=False)),
        ("Home wins", FullTimeResult(long_form=True)),
        ("Draw", FullTimeResult(long_form=False)),
        ("Over 2.5", TotalGoals(line=2.5)),
        ("Under 0.5", TotalGoals(line=0.5)),
        ("Yes", BothTeamsToScore()),
        ("Over 1.5 HT", HalfTimeTotalGoals(line=1.5)),
        ("Home HT", HalfTimeResult()),
        ("BTC above $50000", CryptoThreshold(symbol="BTC", direction="above", price_text="50000")),
        ("eth below 3200.5", CryptoThreshold(symbol="ETH", direction="below", price_text="3200.5")),
    ],
)
def test_parse_market_family(prediction, expected):
    assert parse_market_family(prediction) == expected


@pytest.mark.parametrize("prediction", ["", "   ", "Banana", "Over 7.5", "Over 2.5 HT"])
def test_parse_market_family_rejects_unknown(prediction):
    assert parse_market_family(prediction) is None


def test_alphabets():
    assert FullTimeResult(long_form=False).alphabet() == ("Home", "Draw", "Away")
    assert FullTimeResult().alphabet() == ("Home wins", "Draw", "Away wins")
    assert TotalGoals(line=2.5).alphabet() == ("Over 2.5", "Under 2.5")
    assert HalfTimeResult().alphabet() == ("Home HT", "Draw HT", "Away HT")
    assert CryptoThreshold("BTC", "above", "50000").alphabet() == ("BTC above $50000", "BTC below $50000")


def test_require_in_alphabet_rejects_decorated_prediction():
    family = parse_market_family("Over 2.5 goals")
    assert family == TotalGoals(line=2.5)
    with pytest.raises(FormatMismatchError):
        require_in_alphabet(family, "Over 2.5 goals")
    require_in_alphabet(family, " Under 2.5 ")


def test_canonical_outcome_reads_result_columns():
    result = {"outcome_1x2": "Away", "outcome_ou25": "Under", "outcome_ht_result": "Draw", "outcome_btts": "No"}
    assert canonical_outcome(FullTimeResult(), result) == "Away wins"
    assert canonical_outcome(FullTimeResult(long_form=False), result) == "Away"
    assert canonical_outcome(TotalGoals(line=2.5), result) == "Under 2.5"
    assert canonical_outcome(HalfTimeResult(), result) == "Draw HT"
    assert canonical_outcome(BothTeamsToScore(), result) == "No"


def test_canonical_outcome_bad_column_is_integrity_error():
    with pytest.raises(DataIntegrityError):
        canonical_outcome(TotalGoals(line=3.5), {"outcome_ou35": None})


def test_crypto_threshold_is_inclusive_above():
    from decimal import Decimal

    family = CryptoThreshold("BTC", "above", "50000")
    assert family.outcome_for_price(Decimal("50000")) == "BTC above $50000"
    assert family.outcome_for_price(Decimal("49999.99")) == "BTC below $50000"


def test_family_json_accepts_stored_string():
    family = HalfTimeTotalGoals(line=0.5)
    stored = family_to_json(family)
    assert stored == {"line": 0.5, "kind": "ht_over_under"}
    assert family_from_json('{"kind": "ht_over_under", "line": 0.5}') == family
    assert family_from_json({"kind": "nope"}) is None
    assert family_from_json("not json") is None
    assert family_from_json({"kind": "over_under", "bogus": 1}) is None


def test_category_and_market_id_validation():
    crypto = CryptoThreshold("BTC", "above", "50000")
    assert category_for(crypto) is PoolCategory.CRYPTO
    assert category_for(crypto, "football") is PoolCategory.FOOTBALL
    assert category_for(None, "Cryptocurrency") is PoolCategory.CRYPTO
    assert category_for(TotalGoals(line=2.5)) is PoolCategory.FOOTBALL

    assert is_valid_market_id("19134560", PoolCategory.FOOTBALL)
    assert not is_valid_market_id("fixture-1", PoolCategory.FOOTBALL)
    assert is_valid_market_id("BTC_50000_above_1735689600", PoolCategory.CRYPTO)
    assert is_valid_market_id("ETH_3200.5_below_1735689600", PoolCategory.CRYPTO)
    assert not is_valid_market_id("btc_50000_above_1735689600", PoolCategory.CRYPTO)
