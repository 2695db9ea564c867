"""Per-event writers for the pool and Oddyssey mirror tables.

Every writer is idempotent: logs are keyed by (tx_hash, log_index), pools and
slips by their on-chain ids, and stake totals are recomputed as sums rather
than incremented. Replaying any block range leaves the tables unchanged.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import text

from bitredict.chain.codec import decode_bytes32, is_zero, to_hex
from bitredict.chain.contracts import OddysseyContract
from bitredict.oracle.config.params import SettlementParams
from bitredict.oracle.handlers.oddyssey.cycles import (
    insert_slip,
    load_cycle,
    mark_cycle_resolved,
    upsert_cycle,
)
from bitredict.oracle.handlers.settlement.healing import clean_market_id
from bitredict.oracle.handlers.settlement.markets import family_to_json, parse_market_family
from bitredict.oracle.handlers.settlement.state import persist_refunded, persist_settled

from .decoder import DecodedEvent

logger = logging.getLogger(__name__)

BlockTime = Callable[[int], Awaitable[datetime]]

AUTO_REFUND_REASON = "no_bets"

_INSERT_POOL = text(
    """
    INSERT INTO pools (
        pool_id, creator, predicted_outcome, market_id, category, league, home_team, away_team,
        title, odds, creator_stake, oracle_type, market_type, event_start_time, event_end_time,
        arbitration_deadline, total_creator_side_stake, market_family, created_block, created_tx_hash
    )
    VALUES (
        :pool_id, :creator, :predicted_outcome, :market_id, :category, :league, :home_team, :away_team,
        :title, :odds, :creator_stake, :oracle_type, :market_type, :event_start_time, :event_end_time,
        :arbitration_deadline, :creator_stake, CAST(:market_family AS jsonb), :created_block, :created_tx_hash
    )
    ON CONFLICT (pool_id) DO NOTHING
    """
)

# Rows for pools that are not mirrored yet are dropped by the EXISTS guard.
_INSERT_BET = text(
    """
    INSERT INTO pool_bets (tx_hash, log_index, pool_id, bettor, amount, is_for_outcome, block_number)
    SELECT CAST(:tx_hash AS varchar), CAST(:log_index AS integer), CAST(:pool_id AS bigint),
           CAST(:bettor AS varchar), CAST(:amount AS numeric), CAST(:is_for_outcome AS boolean),
           CAST(:block_number AS bigint)
    WHERE EXISTS (SELECT 1 FROM pools WHERE pool_id = CAST(:pool_id AS bigint))
    ON CONFLICT (tx_hash, log_index) DO NOTHING
    """
)

_INSERT_LIQUIDITY = text(
    """
    INSERT INTO pool_liquidity (tx_hash, log_index, pool_id, provider, amount, block_number)
    SELECT CAST(:tx_hash AS varchar), CAST(:log_index AS integer), CAST(:pool_id AS bigint),
           CAST(:provider AS varchar), CAST(:amount AS numeric), CAST(:block_number AS bigint)
    WHERE EXISTS (SELECT 1 FROM pools WHERE pool_id = CAST(:pool_id AS bigint))
    ON CONFLICT (tx_hash, log_index) DO NOTHING
    """
)

_RECOMPUTE_TOTALS = text(
    """
    UPDATE pools p
    SET total_bettor_stake = (
            SELECT COALESCE(SUM(b.amount), 0) FROM pool_bets b WHERE b.pool_id = p.pool_id
        ),
        total_creator_side_stake = p.creator_stake + (
            SELECT COALESCE(SUM(l.amount), 0) FROM pool_liquidity l WHERE l.pool_id = p.pool_id
        ),
        updated_at = now()
    WHERE p.pool_id = :pool_id
    """
)


def _text32(value: Any) -> Optional[str]:
    """bytes32 text field; postgres text cannot hold NUL so embedded zeros are dropped."""
    if value is None:
        return None
    decoded = decode_bytes32(value).replace("\x00", "")
    return decoded or None


def _utc(ts: int) -> datetime:
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


class EventMirror:
    """Dispatches decoded events to their table writers."""

    def __init__(
        self,
        *,
        database: Any,
        oddyssey: Optional[OddysseyContract],
        block_time: BlockTime,
        params: SettlementParams,
    ) -> None:
        self.database = database
        self.oddyssey = oddyssey
        self.block_time = block_time
        self.params = params
        self._handlers: Dict[str, Callable[[DecodedEvent], Awaitable[None]]] = {
            "PoolCreated": self.on_pool_created,
            "BetPlaced": self.on_bet_placed,
            "LiquidityAdded": self.on_liquidity_added,
            "PoolSettled": self.on_pool_settled,
            "PoolRefunded": self.on_pool_refunded,
            "CycleStarted": self.on_cycle_started,
            "SlipPlaced": self.on_slip_placed,
            "CycleResolved": self.on_cycle_resolved,
        }

    async def apply(self, event: DecodedEvent) -> None:
        handler = self._handlers.get(event.name)
        if handler is None:
            logger.debug({"event_ignored": {"name": event.name, "tx_hash": event.tx_hash}})
            return
        await handler(event)

    # pools

    async def on_pool_created(self, event: DecodedEvent) -> None:
        args = event.args
        pool_id = int(args["poolId"])
        predicted = _text32(args["predictedOutcome"]) or ""
        family = parse_market_family(predicted)
        start = _utc(args["eventStartTime"])
        end = _utc(args["eventEndTime"])
        await self.database.write(
            _INSERT_POOL,
            params={
                "pool_id": pool_id,
                "creator": str(args["creator"]),
                "predicted_outcome": predicted,
                "market_id": clean_market_id(args["marketId"]),
                "category": _text32(args["category"]),
                "league": _text32(args["league"]),
                "home_team": _text32(args["homeTeam"]),
                "away_team": _text32(args["awayTeam"]),
                "title": _text32(args["title"]),
                "odds": int(args["odds"]),
                "creator_stake": int(args["creatorStake"]),
                "oracle_type": int(args["oracleType"]),
                "market_type": int(args["marketType"]),
                "event_start_time": start,
                "event_end_time": end,
                "arbitration_deadline": end + timedelta(hours=self.params.arbitration_window_hours),
                "market_family": json.dumps(family_to_json(family)) if family is not None else None,
                "created_block": event.block_number,
                "created_tx_hash": event.tx_hash,
            },
        )
        if family is None:
            logger.warning({"pool_family_unknown": {"pool_id": pool_id, "predicted_outcome": predicted}})

    async def on_bet_placed(self, event: DecodedEvent) -> None:
        args = event.args
        pool_id = int(args["poolId"])
        inserted = await self.database.write(
            _INSERT_BET,
            params={
                "tx_hash": event.tx_hash,
                "log_index": event.log_index,
                "pool_id": pool_id,
                "bettor": str(args["bettor"]),
                "amount": int(args["amount"]),
                "is_for_outcome": bool(args["isForOutcome"]),
                "block_number": event.block_number,
            },
        )
        if inserted:
            await self.database.write(_RECOMPUTE_TOTALS, params={"pool_id": pool_id})

    async def on_liquidity_added(self, event: DecodedEvent) -> None:
        args = event.args
        pool_id = int(args["poolId"])
        inserted = await self.database.write(
            _INSERT_LIQUIDITY,
            params={
                "tx_hash": event.tx_hash,
                "log_index": event.log_index,
                "pool_id": pool_id,
                "provider": str(args["provider"]),
                "amount": int(args["amount"]),
                "block_number": event.block_number,
            },
        )
        if inserted:
            await self.database.write(_RECOMPUTE_TOTALS, params={"pool_id": pool_id})

    async def on_pool_settled(self, event: DecodedEvent) -> None:
        args = event.args
        pool_id = int(args["poolId"])
        result = bytes(args["result"])
        settled_at = _utc(args["timestamp"])
        # an all-zero result is the contract's automatic refund of an empty pool
        if is_zero(result):
            await persist_refunded(
                self.database,
                pool_id=pool_id,
                tx_hash=event.tx_hash,
                reason=AUTO_REFUND_REASON,
                refunded_at=settled_at,
            )
            return
        await persist_settled(
            self.database,
            pool_id=pool_id,
            result_hex=to_hex(result),
            creator_side_won=bool(args["creatorSideWon"]),
            result_timestamp=settled_at,
            tx_hash=event.tx_hash,
            settled_at=settled_at,
        )

    async def on_pool_refunded(self, event: DecodedEvent) -> None:
        args = event.args
        await persist_refunded(
            self.database,
            pool_id=int(args["poolId"]),
            tx_hash=event.tx_hash,
            reason=str(args.get("reason") or AUTO_REFUND_REASON),
            refunded_at=await self.block_time(event.block_number),
        )

    # oddyssey

    async def on_cycle_started(self, event: DecodedEvent) -> None:
        cycle_id = int(event.args["cycleId"])
        await self._mirror_cycle(
            cycle_id,
            start_time=await self.block_time(event.block_number),
            end_time=_utc(event.args["endTime"]),
            tx_hash=event.tx_hash,
        )

    async def on_slip_placed(self, event: DecodedEvent) -> None:
        if self.oddyssey is None:
            return
        slip_id = int(event.args["slipId"])
        slip = await self.oddyssey.get_slip(slip_id)
        if await load_cycle(self.database, slip.cycle_id) is None:
            # the sync started after this cycle's CycleStarted block
            status = await self.oddyssey.get_cycle_status(slip.cycle_id)
            await self._mirror_cycle(slip.cycle_id, start_time=None, end_time=_utc(status.end_time), tx_hash=None)
        await insert_slip(
            self.database,
            slip,
            placed_at=_utc(slip.placed_at) if slip.placed_at else await self.block_time(event.block_number),
            tx_hash=event.tx_hash,
        )

    async def on_cycle_resolved(self, event: DecodedEvent) -> None:
        cycle_id = int(event.args["cycleId"])
        await mark_cycle_resolved(
            self.database,
            cycle_id=cycle_id,
            resolved_at=await self.block_time(event.block_number),
            tx_hash=event.tx_hash,
            prize_pool=int(event.args["prizePool"]),
        )
        logger.info({"cycle_resolved_mirrored": {"cycle_id": cycle_id, "tx_hash": event.tx_hash}})

    async def _mirror_cycle(
        self,
        cycle_id: int,
        *,
        start_time: Optional[datetime],
        end_time: Optional[datetime],
        tx_hash: Optional[str],
    ) -> None:
        if self.oddyssey is None:
            return
        matches = await self.oddyssey.get_daily_matches(cycle_id)
        await upsert_cycle(
            self.database,
            cycle_id=cycle_id,
            matches=matches,
            start_time=start_time,
            end_time=end_time,
            tx_hash=tx_hash,
        )


__all__ = ["EventMirror", "AUTO_REFUND_REASON"]
