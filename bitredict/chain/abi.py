"""ABI fragments for the contract surface the oracle touches."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


def _arg(name: str, type_: str, components: Optional[Sequence[Dict[str, Any]]] = None, *, indexed: Optional[bool] = None) -> Dict[str, Any]:
    arg: Dict[str, Any] = {"name": name, "type": type_}
    if components is not None:
        arg["components"] = list(components)
    if indexed is not None:
        arg["indexed"] = indexed
    return arg


def _fn(name: str, inputs: Sequence[Dict[str, Any]], outputs: Sequence[Dict[str, Any]] = (), *, view: bool = False) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": list(inputs),
        "outputs": list(outputs),
        "stateMutability": "view" if view else "nonpayable",
    }


def _event(name: str, inputs: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "event", "name": name, "inputs": list(inputs), "anonymous": False}


GUIDED_ORACLE_ABI: List[Dict[str, Any]] = [
    _fn("submitOutcome", [_arg("marketId", "string"), _arg("resultData", "bytes")]),
    _fn(
        "getOutcome",
        [_arg("marketId", "string")],
        [_arg("isSet", "bool"), _arg("resultData", "bytes")],
        view=True,
    ),
    _fn("executeCall", [_arg("target", "address"), _arg("data", "bytes")], [_arg("", "bytes")]),
    _fn("oracleBot", [], [_arg("", "address")], view=True),
    _event(
        "OutcomeSubmitted",
        [
            _arg("marketId", "string", indexed=True),
            _arg("resultData", "bytes", indexed=False),
            _arg("timestamp", "uint256", indexed=False),
        ],
    ),
]


POOL_CORE_ABI: List[Dict[str, Any]] = [
    _fn(
        "getPoolStats",
        [_arg("poolId", "uint256")],
        [
            _arg("totalBettorStake", "uint256"),
            _arg("totalCreatorSideStake", "uint256"),
            _arg("bettorCount", "uint256"),
            _arg("lpCount", "uint256"),
            _arg("isSettled", "bool"),
            _arg("eligibleForRefund", "bool"),
            _arg("timeUntilEventStart", "uint256"),
            _arg("timeUntilBettingEnd", "uint256"),
        ],
        view=True,
    ),
    _fn("isEligibleForRefund", [_arg("poolId", "uint256")], [_arg("", "bool")], view=True),
    _fn("settlePool", [_arg("poolId", "uint256"), _arg("outcome", "bytes32")]),
    _fn("checkAndRefundEmptyPool", [_arg("poolId", "uint256")]),
    _event(
        "PoolCreated",
        [
            _arg("poolId", "uint256", indexed=True),
            _arg("creator", "address", indexed=True),
            _arg("predictedOutcome", "bytes32", indexed=False),
            _arg("odds", "uint256", indexed=False),
            _arg("creatorStake", "uint256", indexed=False),
            _arg("eventStartTime", "uint256", indexed=False),
            _arg("eventEndTime", "uint256", indexed=False),
            _arg("league", "bytes32", indexed=False),
            _arg("category", "bytes32", indexed=False),
            _arg("homeTeam", "bytes32", indexed=False),
            _arg("awayTeam", "bytes32", indexed=False),
            _arg("title", "bytes32", indexed=False),
            _arg("isPrivate", "bool", indexed=False),
            _arg("maxBetPerUser", "uint256", indexed=False),
            _arg("useBitr", "bool", indexed=False),
            _arg("oracleType", "uint8", indexed=False),
            _arg("marketType", "uint8", indexed=False),
            _arg("marketId", "string", indexed=False),
        ],
    ),
    _event(
        "BetPlaced",
        [
            _arg("poolId", "uint256", indexed=True),
            _arg("bettor", "address", indexed=True),
            _arg("amount", "uint256", indexed=False),
            _arg("isForOutcome", "bool", indexed=False),
        ],
    ),
    _event(
        "LiquidityAdded",
        [
            _arg("poolId", "uint256", indexed=True),
            _arg("provider", "address", indexed=True),
            _arg("amount", "uint256", indexed=False),
        ],
    ),
    _event(
        "PoolSettled",
        [
            _arg("poolId", "uint256", indexed=True),
            _arg("result", "bytes32", indexed=False),
            _arg("creatorSideWon", "bool", indexed=False),
            _arg("timestamp", "uint256", indexed=False),
        ],
    ),
    _event(
        "PoolRefunded",
        [
            _arg("poolId", "uint256", indexed=True),
            _arg("reason", "string", indexed=False),
        ],
    ),
]


_ODDYSSEY_RESULT = [_arg("moneyline", "uint8"), _arg("overUnder", "uint8")]
_ODDYSSEY_MATCH = [
    _arg("id", "uint64"),
    _arg("startTime", "uint64"),
    _arg("oddsHome", "uint32"),
    _arg("oddsDraw", "uint32"),
    _arg("oddsAway", "uint32"),
    _arg("oddsOver", "uint32"),
    _arg("oddsUnder", "uint32"),
    _arg("result", "tuple", _ODDYSSEY_RESULT),
]
_ODDYSSEY_PREDICTION = [
    _arg("matchId", "uint64"),
    _arg("betType", "uint8"),
    _arg("selection", "string"),
    _arg("selectedOdd", "uint32"),
]

ODDYSSEY_ABI: List[Dict[str, Any]] = [
    _fn("dailyCycleId", [], [_arg("", "uint256")], view=True),
    _fn(
        "getCycleStatus",
        [_arg("_cycleId", "uint256")],
        [
            _arg("exists", "bool"),
            _arg("state", "uint8"),
            _arg("endTime", "uint256"),
            _arg("prizePool", "uint256"),
            _arg("cycleSlipCount", "uint32"),
            _arg("hasWinner", "bool"),
        ],
        view=True,
    ),
    _fn(
        "getDailyMatches",
        [_arg("_cycleId", "uint256")],
        [_arg("", "tuple[10]", _ODDYSSEY_MATCH)],
        view=True,
    ),
    _fn(
        "getSlip",
        [_arg("_slipId", "uint256")],
        [
            _arg(
                "",
                "tuple",
                [
                    _arg("player", "address"),
                    _arg("cycleId", "uint256"),
                    _arg("placedAt", "uint256"),
                    _arg("predictions", "tuple[10]", _ODDYSSEY_PREDICTION),
                    _arg("finalScore", "uint256"),
                    _arg("correctCount", "uint8"),
                    _arg("isEvaluated", "bool"),
                ],
            )
        ],
        view=True,
    ),
    _fn("startDailyCycle", [_arg("_matches", "tuple[10]", _ODDYSSEY_MATCH)]),
    _fn("resolveDailyCycle", [_arg("_cycleId", "uint256"), _arg("_results", "tuple[10]", _ODDYSSEY_RESULT)]),
    _fn("evaluateSlip", [_arg("_slipId", "uint256")]),
    _fn("evaluateMultipleSlips", [_arg("_slipIds", "uint256[]")]),
    _event(
        "CycleStarted",
        [_arg("cycleId", "uint256", indexed=True), _arg("endTime", "uint256", indexed=False)],
    ),
    _event(
        "SlipPlaced",
        [
            _arg("cycleId", "uint256", indexed=True),
            _arg("player", "address", indexed=True),
            _arg("slipId", "uint256", indexed=True),
        ],
    ),
    _event(
        "CycleResolved",
        [_arg("cycleId", "uint256", indexed=True), _arg("prizePool", "uint256", indexed=False)],
    ),
]


__all__ = ["GUIDED_ORACLE_ABI", "POOL_CORE_ABI", "ODDYSSEY_ABI"]
