"""Final step for a pool whose outcome is on-chain: settle it, or refund it when empty."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from bitredict.chain.codec import encode_bytes32, to_hex
from bitredict.chain.contracts import GuidedOracle, PoolCore
from bitredict.oracle.config.params import SettlementParams
from bitredict.oracle.utils.runtime import ensure_utc, retry_async, utcnow
from bitredict.shared.errors import ChainRevertError

from .state import PoolStage, persist_pending_tx, persist_refunded, persist_settled

logger = logging.getLogger(__name__)

EMPTY_POOL_REFUND_REASON = "no_bets"


@dataclass(frozen=True)
class SettleOutcome:
    stage: PoolStage
    reason: Optional[str] = None
    tx_hash: Optional[str] = None
    creator_side_won: Optional[bool] = None


class PoolSettler:
    def __init__(
        self,
        *,
        database: Any,
        oracle: GuidedOracle,
        pool_core: PoolCore,
        params: SettlementParams,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.oracle = oracle
        self.pool_core = pool_core
        self.params = params
        self._sleep = sleep
        self._now = now_fn

    async def settle(self, *, pool_id: int, outcome: str, arbitration_deadline: datetime) -> SettleOutcome:
        stats = await retry_async(
            lambda: self.pool_core.get_pool_stats(pool_id),
            retries=self.params.submit_retries,
            base_delay=self.params.retry_base_delay_seconds,
            factor=self.params.retry_factor,
            max_delay=self.params.retry_max_delay_seconds,
            label=f"getPoolStats:{pool_id}",
            sleep=self._sleep,
        )
        if stats.is_settled:
            # the event sync mirrors the on-chain result
            logger.info({"pool_already_settled_on_chain": {"pool_id": pool_id}})
            return SettleOutcome(stage=PoolStage.SKIPPED, reason="already_settled_on_chain")

        if stats.total_bettor_stake == 0:
            return await self._refund_if_due(pool_id, arbitration_deadline)
        return await self._settle(pool_id, outcome)

    async def _refund_if_due(self, pool_id: int, arbitration_deadline: datetime) -> SettleOutcome:
        now = self._now()
        if now < ensure_utc(arbitration_deadline):
            logger.info(
                {
                    "pool_refund_waiting": {
                        "pool_id": pool_id,
                        "arbitration_deadline": ensure_utc(arbitration_deadline).isoformat(),
                    }
                }
            )
            return SettleOutcome(stage=PoolStage.SKIPPED, reason="awaiting_arbitration_deadline")

        async def _record_pending(tx_hash: str) -> None:
            await persist_pending_tx(self.database, pool_id=pool_id, tx_hash=tx_hash)

        tx_hash: Optional[str] = None
        try:
            tx = await self.pool_core.refund_empty_pool(pool_id, on_sent=_record_pending)
            tx_hash = tx.tx_hash
            if not self.pool_core.has_pool_refunded(tx.receipt, pool_id):
                logger.warning({"pool_refund_event_missing": {"pool_id": pool_id, "tx_hash": tx_hash}})
        except ChainRevertError as exc:
            if not exc.expected:
                logger.error({"pool_refund_reverted": {"pool_id": pool_id, **exc.as_log()}})
                return SettleOutcome(stage=PoolStage.SKIPPED, reason=f"refund_reverted: {exc.reason}")
            logger.info({"pool_refund_idempotent": {"pool_id": pool_id, "reason": exc.reason}})

        await persist_refunded(
            self.database,
            pool_id=pool_id,
            tx_hash=tx_hash,
            reason=EMPTY_POOL_REFUND_REASON,
            refunded_at=self._now(),
        )
        logger.info({"pool_refunded": {"pool_id": pool_id, "tx_hash": tx_hash}})
        return SettleOutcome(stage=PoolStage.REFUNDED, tx_hash=tx_hash)

    async def _settle(self, pool_id: int, outcome: str) -> SettleOutcome:
        outcome32 = encode_bytes32(outcome)
        calldata = self.pool_core.encode_settle_pool(pool_id, outcome32)

        async def _record_pending(tx_hash: str) -> None:
            await persist_pending_tx(self.database, pool_id=pool_id, tx_hash=tx_hash)

        try:
            tx = await self.oracle.execute_call(self.pool_core.address, calldata, on_sent=_record_pending)
        except ChainRevertError as exc:
            if not exc.expected:
                logger.error({"pool_settle_reverted": {"pool_id": pool_id, "outcome": outcome, **exc.as_log()}})
                return SettleOutcome(stage=PoolStage.SKIPPED, reason=f"settle_reverted: {exc.reason}")
            if "Already refunded" in exc.reason:
                # no result to record; the event sync mirrors the refund
                logger.info({"pool_already_refunded_on_chain": {"pool_id": pool_id}})
                return SettleOutcome(stage=PoolStage.SKIPPED, reason="already_refunded_on_chain")
            logger.info({"pool_settle_idempotent": {"pool_id": pool_id, "reason": exc.reason}})
            await persist_settled(
                self.database,
                pool_id=pool_id,
                result_hex=to_hex(outcome32),
                creator_side_won=None,
                result_timestamp=None,
                tx_hash=None,
                settled_at=self._now(),
            )
            return SettleOutcome(stage=PoolStage.SETTLED)

        event = self.pool_core.parse_pool_settled(tx.receipt, pool_id)
        if event is None:
            logger.warning({"pool_settled_event_missing": {"pool_id": pool_id, "tx_hash": tx.tx_hash}})
            result_hex, won, result_ts = to_hex(outcome32), None, None
        else:
            if event.result != outcome32:
                logger.error(
                    {
                        "pool_settled_result_mismatch": {
                            "pool_id": pool_id,
                            "sent": to_hex(outcome32),
                            "emitted": to_hex(event.result),
                        }
                    }
                )
            result_hex = to_hex(event.result)
            won = event.creator_side_won
            result_ts = datetime.fromtimestamp(event.timestamp, tz=timezone.utc)

        await persist_settled(
            self.database,
            pool_id=pool_id,
            result_hex=result_hex,
            creator_side_won=won,
            result_timestamp=result_ts,
            tx_hash=tx.tx_hash,
            settled_at=self._now(),
        )
        logger.info(
            {
                "pool_settled": {
                    "pool_id": pool_id,
                    "outcome": outcome,
                    "creator_side_won": won,
                    "tx_hash": tx.tx_hash,
                }
            }
        )
        return SettleOutcome(stage=PoolStage.SETTLED, tx_hash=tx.tx_hash, creator_side_won=won)


__all__ = ["PoolSettler", "SettleOutcome", "EMPTY_POOL_REFUND_REASON"]
