"""Market families and their canonical outcome strings.

A pool's `predicted_outcome` is parsed once into a family value. The family
fixes the output alphabet: the only strings the oracle may ever submit for
that pool. The pool contract compares outcomes as right-padded bytes32, so a
prediction that is not itself a member of its family's alphabet can never be
matched and is rejected instead of guessed at.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from bitredict.oracle.handlers.ingest.outcomes import FT_TOTAL_LINES, HT_TOTAL_LINES, line_key
from bitredict.shared.enums import BttsResult, MatchResult, PoolCategory, TotalResult
from bitredict.shared.errors import DataIntegrityError, FormatMismatchError

CRYPTO_PREDICTION_RE = re.compile(r"(\w+)\s+(above|below)\s+\$?(\d+(?:\.\d+)?)", re.IGNORECASE)
CRYPTO_MARKET_ID_RE = re.compile(r"^[A-Z0-9]+_\d+(\.\d+)?_(above|below)_\d+$")
FOOTBALL_MARKET_ID_RE = re.compile(r"^\d+$")

_TOTAL_RE = re.compile(r"\b(over|under)\s+(\d+(?:\.\d+)?)\b", re.IGNORECASE)
_HT_RE = re.compile(r"\bHT\b|half[\s-]?time|1st half|first half", re.IGNORECASE)
_BTTS_RE = re.compile(r"\bbtts\b|both teams to score", re.IGNORECASE)
_RESULT_WORD_RE = re.compile(r"\b(home|away|draw)\b", re.IGNORECASE)

_SHORT_1X2 = {MatchResult.HOME: "Home", MatchResult.DRAW: "Draw", MatchResult.AWAY: "Away"}
_LONG_1X2 = {MatchResult.HOME: "Home wins", MatchResult.DRAW: "Draw", MatchResult.AWAY: "Away wins"}


@dataclass(frozen=True)
class FullTimeResult:
    long_form: bool = True
    kind: str = "1x2"

    def alphabet(self) -> Tuple[str, ...]:
        return tuple((_LONG_1X2 if self.long_form else _SHORT_1X2).values())

    def outcome(self, result: Mapping[str, Any]) -> str:
        pick = _enum(MatchResult, result.get("outcome_1x2"), "outcome_1x2")
        return (_LONG_1X2 if self.long_form else _SHORT_1X2)[pick]


@dataclass(frozen=True)
class TotalGoals:
    line: float
    kind: str = "over_under"

    def alphabet(self) -> Tuple[str, ...]:
        return (f"Over {self.line}", f"Under {self.line}")

    def outcome(self, result: Mapping[str, Any]) -> str:
        column = f"outcome_ou{line_key(self.line)}"
        pick = _enum(TotalResult, result.get(column), column)
        return f"{pick.value} {self.line}"


@dataclass(frozen=True)
class BothTeamsToScore:
    kind: str = "btts"

    def alphabet(self) -> Tuple[str, ...]:
        return (BttsResult.YES.value, BttsResult.NO.value)

    def outcome(self, result: Mapping[str, Any]) -> str:
        return _enum(BttsResult, result.get("outcome_btts"), "outcome_btts").value


@dataclass(frozen=True)
class HalfTimeResult:
    kind: str = "ht_1x2"

    def alphabet(self) -> Tuple[str, ...]:
        return tuple(f"{label} HT" for label in _SHORT_1X2.values())

    def outcome(self, result: Mapping[str, Any]) -> str:
        pick = _enum(MatchResult, result.get("outcome_ht_result"), "outcome_ht_result")
        return f"{_SHORT_1X2[pick]} HT"


@dataclass(frozen=True)
class HalfTimeTotalGoals:
    line: float
    kind: str = "ht_over_under"

    def alphabet(self) -> Tuple[str, ...]:
        return (f"Over {self.line} HT", f"Under {self.line} HT")

    def outcome(self, result: Mapping[str, Any]) -> str:
        column = f"outcome_ht_ou{line_key(self.line)}"
        pick = _enum(TotalResult, result.get(column), column)
        return f"{pick.value} {self.line} HT"


@dataclass(frozen=True)
class CryptoThreshold:
    symbol: str
    direction: str
    # kept exactly as the creator wrote it so the output bytes match
    price_text: str
    kind: str = "crypto_threshold"

    @property
    def target(self) -> Decimal:
        return Decimal(self.price_text)

    def phrase(self, direction: str) -> str:
        return f"{self.symbol} {direction} ${self.price_text}"

    def alphabet(self) -> Tuple[str, ...]:
        return (self.phrase("above"), self.phrase("below"))

    def outcome_for_price(self, spot: Decimal) -> str:
        return self.phrase("above" if spot >= self.target else "below")


MarketFamily = Union[
    FullTimeResult,
    TotalGoals,
    BothTeamsToScore,
    HalfTimeResult,
    HalfTimeTotalGoals,
    CryptoThreshold,
]
FootballFamily = Union[FullTimeResult, TotalGoals, BothTeamsToScore, HalfTimeResult, HalfTimeTotalGoals]

_BY_KIND = {
    "1x2": FullTimeResult,
    "over_under": TotalGoals,
    "btts": BothTeamsToScore,
    "ht_1x2": HalfTimeResult,
    "ht_over_under": HalfTimeTotalGoals,
    "crypto_threshold": CryptoThreshold,
}


def _enum(enum_cls: Any, value: Any, column: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise DataIntegrityError(f"{column}={value!r} is not a valid {enum_cls.__name__}") from exc


def _line(text: str, allowed: Tuple[float, ...]) -> Optional[float]:
    try:
        value = float(Decimal(text))
    except InvalidOperation:
        return None
    return value if value in allowed else None


def parse_market_family(predicted_outcome: str) -> Optional[MarketFamily]:
    """Classify a prediction string. Returns None when no family matches."""
    text = (predicted_outcome or "").strip()
    if not text:
        return None

    crypto = CRYPTO_PREDICTION_RE.fullmatch(text)
    if crypto:
        return CryptoThreshold(
            symbol=crypto.group(1).upper(),
            direction=crypto.group(2).lower(),
            price_text=crypto.group(3),
        )

    total = _TOTAL_RE.search(text)
    if _HT_RE.search(text):
        if total:
            line = _line(total.group(2), HT_TOTAL_LINES)
            return HalfTimeTotalGoals(line=line) if line is not None else None
        if _RESULT_WORD_RE.search(text):
            return HalfTimeResult()
        return None

    if total:
        line = _line(total.group(2), FT_TOTAL_LINES)
        return TotalGoals(line=line) if line is not None else None

    lowered = text.lower()
    if lowered in ("yes", "no") or _BTTS_RE.search(text):
        return BothTeamsToScore()

    if lowered in ("home", "draw", "away"):
        return FullTimeResult(long_form=False)
    if lowered in ("home wins", "away wins"):
        return FullTimeResult(long_form=True)
    return None


def family_to_json(family: MarketFamily) -> Dict[str, Any]:
    return asdict(family)


def family_from_json(data: Any) -> Optional[MarketFamily]:
    """Rebuild a family from its stored JSON (a mapping, or the raw string)."""
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError:
            return None
    if not isinstance(data, Mapping) or not data:
        return None
    cls = _BY_KIND.get(str(data.get("kind")))
    if cls is None:
        return None
    fields = {k: v for k, v in data.items() if k != "kind"}
    try:
        return cls(**fields)
    except TypeError:
        return None


def require_in_alphabet(family: MarketFamily, predicted_outcome: str) -> None:
    """Reject predictions whose bytes can never equal a canonical outcome."""
    text = (predicted_outcome or "").strip()
    if text not in family.alphabet():
        raise FormatMismatchError(
            f"prediction {predicted_outcome!r} is not one of {list(family.alphabet())} for family {family.kind}"
        )


def canonical_outcome(family: FootballFamily, result: Mapping[str, Any]) -> str:
    outcome = family.outcome(result)
    if outcome not in family.alphabet():
        raise DataIntegrityError(f"outcome {outcome!r} escaped alphabet of family {family.kind}")
    return outcome


def category_for(family: Optional[MarketFamily], declared: Any = None) -> PoolCategory:
    parsed = PoolCategory.parse(declared)
    if parsed is not None:
        return parsed
    return PoolCategory.CRYPTO if isinstance(family, CryptoThreshold) else PoolCategory.FOOTBALL


def is_valid_market_id(market_id: str, category: PoolCategory) -> bool:
    pattern = CRYPTO_MARKET_ID_RE if category is PoolCategory.CRYPTO else FOOTBALL_MARKET_ID_RE
    return bool(pattern.match(market_id or ""))


__all__ = [
    "CRYPTO_PREDICTION_RE",
    "CRYPTO_MARKET_ID_RE",
    "FOOTBALL_MARKET_ID_RE",
    "FullTimeResult",
    "TotalGoals",
    "BothTeamsToScore",
    "HalfTimeResult",
    "HalfTimeTotalGoals",
    "CryptoThreshold",
    "MarketFamily",
    "FootballFamily",
    "parse_market_family",
    "family_to_json",
    "family_from_json",
    "require_in_alphabet",
    "canonical_outcome",
    "category_for",
    "is_valid_market_id",
]
