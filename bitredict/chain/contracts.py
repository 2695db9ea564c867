"""Typed wrappers around the guided oracle, pool core and Oddyssey contracts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from eth_utils import keccak
from web3.logs import DISCARD

from bitredict.shared.enums import BetType, CycleState

from .abi import GUIDED_ORACLE_ABI, ODDYSSEY_ABI, POOL_CORE_ABI
from .client import ChainClient, OnSent, TxResult
from .codec import to_bytes

logger = logging.getLogger(__name__)

KNOWN_SELECTIONS = ("1", "X", "2", "Over", "Under", "Yes", "No")
_SELECTION_BY_HASH = {"0x" + keccak(text=s).hex(): s for s in KNOWN_SELECTIONS}


def normalize_selection(value: Any) -> str:
    """Slips may carry either the selection text or its keccak256 hash."""
    if isinstance(value, (bytes, bytearray)):
        value = "0x" + bytes(value).hex() if len(value) == 32 else bytes(value).decode("utf-8", errors="replace")
    text = str(value).strip()
    if text.startswith("0x") and len(text) == 66:
        return _SELECTION_BY_HASH.get(text.lower(), text)
    return text


@dataclass(frozen=True)
class OracleOutcome:
    is_set: bool
    result_data: bytes

    @property
    def text(self) -> str:
        return self.result_data.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class PoolStats:
    total_bettor_stake: int
    total_creator_side_stake: int
    bettor_count: int
    lp_count: int
    is_settled: bool
    eligible_for_refund: bool
    time_until_event_start: int
    time_until_betting_end: int


@dataclass(frozen=True)
class PoolSettledEvent:
    pool_id: int
    result: bytes
    creator_side_won: bool
    timestamp: int


@dataclass(frozen=True)
class CycleStatus:
    exists: bool
    state: CycleState
    end_time: int
    prize_pool: int
    slip_count: int
    has_winner: bool


@dataclass(frozen=True)
class OddysseyMatch:
    id: int
    start_time: int
    odds_home: int
    odds_draw: int
    odds_away: int
    odds_over: int
    odds_under: int
    moneyline: int = 0
    over_under: int = 0

    def as_abi(self) -> Tuple[Any, ...]:
        return (
            self.id,
            self.start_time,
            self.odds_home,
            self.odds_draw,
            self.odds_away,
            self.odds_over,
            self.odds_under,
            (self.moneyline, self.over_under),
        )


@dataclass(frozen=True)
class SlipPrediction:
    match_id: int
    bet_type: BetType
    selection: str
    selected_odd: int


@dataclass(frozen=True)
class SlipView:
    slip_id: int
    player: str
    cycle_id: int
    placed_at: int
    predictions: List[SlipPrediction]
    final_score: int
    correct_count: int
    is_evaluated: bool


class GuidedOracle:
    def __init__(self, client: ChainClient, address: str) -> None:
        self.client = client
        self.address = address
        self.contract = client.contract(address, GUIDED_ORACLE_ABI)

    async def get_outcome(self, market_id: str) -> OracleOutcome:
        is_set, data = await self.client.call(
            self.contract.functions.getOutcome(market_id), method="getOutcome"
        )
        return OracleOutcome(is_set=bool(is_set), result_data=bytes(data or b""))

    async def submit_outcome(self, market_id: str, result_data: bytes, *, on_sent: Optional[OnSent] = None) -> TxResult:
        return await self.client.transact(
            self.contract.functions.submitOutcome(market_id, result_data),
            method="submitOutcome",
            on_sent=on_sent,
        )

    async def execute_call(self, target: str, data: bytes, *, on_sent: Optional[OnSent] = None) -> TxResult:
        return await self.client.transact(
            self.contract.functions.executeCall(self.client.w3.to_checksum_address(target), data),
            method="executeCall",
            on_sent=on_sent,
        )


class PoolCore:
    def __init__(self, client: ChainClient, address: str) -> None:
        self.client = client
        self.address = address
        self.contract = client.contract(address, POOL_CORE_ABI)

    async def get_pool_stats(self, pool_id: int) -> PoolStats:
        values = await self.client.call(self.contract.functions.getPoolStats(pool_id), method="getPoolStats")
        return PoolStats(
            total_bettor_stake=int(values[0]),
            total_creator_side_stake=int(values[1]),
            bettor_count=int(values[2]),
            lp_count=int(values[3]),
            is_settled=bool(values[4]),
            eligible_for_refund=bool(values[5]),
            time_until_event_start=int(values[6]),
            time_until_betting_end=int(values[7]),
        )

    async def is_eligible_for_refund(self, pool_id: int) -> bool:
        return bool(
            await self.client.call(self.contract.functions.isEligibleForRefund(pool_id), method="isEligibleForRefund")
        )

    def encode_settle_pool(self, pool_id: int, outcome: bytes) -> bytes:
        """Calldata for settlePool(uint256, bytes32), forwarded through executeCall."""
        return to_bytes(self.contract.encode_abi("settlePool", args=[pool_id, outcome]))

    async def refund_empty_pool(self, pool_id: int, *, on_sent: Optional[OnSent] = None) -> TxResult:
        return await self.client.transact(
            self.contract.functions.checkAndRefundEmptyPool(pool_id),
            method="checkAndRefundEmptyPool",
            on_sent=on_sent,
        )

    def parse_pool_settled(self, receipt: Any, pool_id: Optional[int] = None) -> Optional[PoolSettledEvent]:
        for event in self.contract.events.PoolSettled().process_receipt(receipt, errors=DISCARD):
            args = event["args"]
            if pool_id is not None and int(args["poolId"]) != pool_id:
                continue
            return PoolSettledEvent(
                pool_id=int(args["poolId"]),
                result=bytes(args["result"]),
                creator_side_won=bool(args["creatorSideWon"]),
                timestamp=int(args["timestamp"]),
            )
        return None

    def has_pool_refunded(self, receipt: Any, pool_id: int) -> bool:
        events = self.contract.events.PoolRefunded().process_receipt(receipt, errors=DISCARD)
        return any(int(e["args"]["poolId"]) == pool_id for e in events)


class OddysseyContract:
    def __init__(self, client: ChainClient, address: str) -> None:
        self.client = client
        self.address = address
        self.contract = client.contract(address, ODDYSSEY_ABI)

    async def daily_cycle_id(self) -> int:
        return int(await self.client.call(self.contract.functions.dailyCycleId(), method="dailyCycleId"))

    async def get_cycle_status(self, cycle_id: int) -> CycleStatus:
        values = await self.client.call(self.contract.functions.getCycleStatus(cycle_id), method="getCycleStatus")
        return CycleStatus(
            exists=bool(values[0]),
            state=CycleState(int(values[1])),
            end_time=int(values[2]),
            prize_pool=int(values[3]),
            slip_count=int(values[4]),
            has_winner=bool(values[5]),
        )

    async def get_daily_matches(self, cycle_id: int) -> List[OddysseyMatch]:
        rows = await self.client.call(self.contract.functions.getDailyMatches(cycle_id), method="getDailyMatches")
        return [
            OddysseyMatch(
                id=int(m[0]),
                start_time=int(m[1]),
                odds_home=int(m[2]),
                odds_draw=int(m[3]),
                odds_away=int(m[4]),
                odds_over=int(m[5]),
                odds_under=int(m[6]),
                moneyline=int(m[7][0]),
                over_under=int(m[7][1]),
            )
            for m in rows
        ]

    async def get_slip(self, slip_id: int) -> SlipView:
        raw = await self.client.call(self.contract.functions.getSlip(slip_id), method="getSlip")
        player, cycle_id, placed_at, predictions, final_score, correct_count, is_evaluated = raw
        return SlipView(
            slip_id=slip_id,
            player=str(player),
            cycle_id=int(cycle_id),
            placed_at=int(placed_at),
            predictions=[
                SlipPrediction(
                    match_id=int(p[0]),
                    bet_type=BetType(int(p[1])),
                    selection=normalize_selection(p[2]),
                    selected_odd=int(p[3]),
                )
                for p in predictions
            ],
            final_score=int(final_score),
            correct_count=int(correct_count),
            is_evaluated=bool(is_evaluated),
        )

    async def start_daily_cycle(self, matches: Sequence[OddysseyMatch], *, on_sent: Optional[OnSent] = None) -> TxResult:
        return await self.client.transact(
            self.contract.functions.startDailyCycle([m.as_abi() for m in matches]),
            method="startDailyCycle",
            on_sent=on_sent,
        )

    async def resolve_daily_cycle(
        self,
        cycle_id: int,
        results: Sequence[Tuple[int, int]],
        *,
        on_sent: Optional[OnSent] = None,
    ) -> TxResult:
        return await self.client.transact(
            self.contract.functions.resolveDailyCycle(cycle_id, [tuple(r) for r in results]),
            method="resolveDailyCycle",
            on_sent=on_sent,
        )

    async def evaluate_multiple_slips(self, slip_ids: Sequence[int]) -> TxResult:
        return await self.client.transact(
            self.contract.functions.evaluateMultipleSlips(list(slip_ids)),
            method="evaluateMultipleSlips",
        )

    def parse_cycle_started(self, receipt: Any) -> Optional[int]:
        for event in self.contract.events.CycleStarted().process_receipt(receipt, errors=DISCARD):
            return int(event["args"]["cycleId"])
        return None


__all__ = [
    "KNOWN_SELECTIONS",
    "normalize_selection",
    "OracleOutcome",
    "PoolStats",
    "PoolSettledEvent",
    "CycleStatus",
    "OddysseyMatch",
    "SlipPrediction",
    "SlipView",
    "GuidedOracle",
    "PoolCore",
    "OddysseyContract",
]
