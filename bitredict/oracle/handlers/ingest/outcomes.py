"""Canonical market outcomes derived from a 90-minute score.

The settlement pipeline never recomputes these; it reads the stored columns.
Extra time and penalty scores never reach this module.
"""

from __future__ import annotations

from typing import Dict, Tuple

from bitredict.shared.enums import BttsResult, MatchResult, TotalResult

FT_TOTAL_LINES: Tuple[float, ...] = (0.5, 1.5, 2.5, 3.5, 4.5)
HT_TOTAL_LINES: Tuple[float, ...] = (0.5, 1.5)

_DOUBLE_CHANCE = {
    MatchResult.HOME: "1X,12",
    MatchResult.DRAW: "1X,X2",
    MatchResult.AWAY: "12,X2",
}


def line_key(line: float) -> str:
    """2.5 -> "25", the suffix used by the outcome_ou* columns."""
    return f"{line:.1f}".replace(".", "")


def match_result(home: int, away: int) -> MatchResult:
    if home > away:
        return MatchResult.HOME
    if away > home:
        return MatchResult.AWAY
    return MatchResult.DRAW


def total_result(home: int, away: int, line: float) -> TotalResult:
    return TotalResult.OVER if home + away > line else TotalResult.UNDER


def btts_result(home: int, away: int) -> BttsResult:
    return BttsResult.YES if home > 0 and away > 0 else BttsResult.NO


def compute_outcomes(ft_home: int, ft_away: int, ht_home: int, ht_away: int) -> Dict[str, str]:
    for value in (ft_home, ft_away, ht_home, ht_away):
        if value is None or int(value) < 0:
            raise ValueError(f"invalid score component: {value!r}")

    ft = match_result(ft_home, ft_away)
    outcomes: Dict[str, str] = {
        "outcome_1x2": ft.value,
        "outcome_btts": btts_result(ft_home, ft_away).value,
        "outcome_ht_result": match_result(ht_home, ht_away).value,
        "outcome_double_chance": _DOUBLE_CHANCE[ft],
        "outcome_correct_score": f"{ft_home}-{ft_away}",
    }
    for line in FT_TOTAL_LINES:
        outcomes[f"outcome_ou{line_key(line)}"] = total_result(ft_home, ft_away, line).value
    for line in HT_TOTAL_LINES:
        outcomes[f"outcome_ht_ou{line_key(line)}"] = total_result(ht_home, ht_away, line).value
    return outcomes


__all__ = [
    "FT_TOTAL_LINES",
    "HT_TOTAL_LINES",
    "line_key",
    "match_result",
    "total_result",
    "btts_result",
    "compute_outcomes",
]
