"""Moves a decided outcome onto the guided oracle contract.

The contract is read before every write attempt, and the `oracle_submissions`
table is the secondary marker. A submission row is only written once the
outcome is confirmed on-chain.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple

from sqlalchemy import text

from bitredict.chain.client import TxResult
from bitredict.chain.contracts import GuidedOracle, OracleOutcome
from bitredict.oracle.config.params import SettlementParams
from bitredict.oracle.utils.runtime import retry_async, utcnow

from .state import OutcomeSubmitted, persist_pending_tx, persist_status

logger = logging.getLogger(__name__)

_SELECT_SUBMISSION = text(
    """
    SELECT market_id, outcome, outcome_hex, tx_hash, block_number, submitted_at
    FROM oracle_submissions
    WHERE market_id = :market_id
    """
)

_UPSERT_SUBMISSION = text(
    """
    INSERT INTO oracle_submissions (market_id, outcome, outcome_hex, tx_hash, block_number, submitted_at)
    VALUES (:market_id, :outcome, :outcome_hex, :tx_hash, :block_number, :submitted_at)
    ON CONFLICT (market_id) DO UPDATE SET
        outcome = EXCLUDED.outcome,
        outcome_hex = EXCLUDED.outcome_hex,
        tx_hash = COALESCE(EXCLUDED.tx_hash, oracle_submissions.tx_hash),
        block_number = COALESCE(EXCLUDED.block_number, oracle_submissions.block_number),
        submitted_at = EXCLUDED.submitted_at
    """
)


@dataclass(frozen=True)
class SubmissionResult:
    market_id: str
    outcome: str
    tx_hash: Optional[str]
    already_on_chain: bool


class OutcomeSubmitter:
    def __init__(
        self,
        *,
        database: Any,
        oracle: GuidedOracle,
        params: SettlementParams,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.oracle = oracle
        self.params = params
        self._sleep = sleep
        self._now = now_fn

    async def ensure_on_chain(
        self,
        *,
        pool_id: int,
        market_id: str,
        outcome: str,
        alphabet: Sequence[str] = (),
    ) -> SubmissionResult:
        """Make sure the oracle has an answer for `market_id`.

        An answer already on-chain wins when it belongs to `alphabet`; the
        returned `outcome` is the one settlement must use.

        Raises TransientError once retries are exhausted; the pool then stays
        at its decided stage until the next tick.
        """
        rows = await self.database.read(_SELECT_SUBMISSION, params={"market_id": market_id}, mappings=True)
        recorded = rows[0] if rows else None
        payload = outcome.encode("utf-8")

        async def _attempt() -> Tuple[Optional[OracleOutcome], Optional[TxResult]]:
            existing = await self.oracle.get_outcome(market_id)
            if existing.is_set:
                if existing.result_data != payload:
                    logger.warning(
                        {
                            "oracle_outcome_differs": {
                                "pool_id": pool_id,
                                "market_id": market_id,
                                "on_chain": existing.text,
                                "decided": outcome,
                            }
                        }
                    )
                return existing, None

            async def _record_pending(tx_hash: str) -> None:
                await persist_pending_tx(self.database, pool_id=pool_id, tx_hash=tx_hash)

            return None, await self.oracle.submit_outcome(market_id, payload, on_sent=_record_pending)

        existing, tx = await retry_async(
            _attempt,
            retries=self.params.submit_retries,
            base_delay=self.params.retry_base_delay_seconds,
            factor=self.params.retry_factor,
            max_delay=self.params.retry_max_delay_seconds,
            label=f"submitOutcome:{market_id}",
            sleep=self._sleep,
        )

        if existing is not None:
            if recorded is None:
                # set on-chain by an earlier run that died before recording it
                await self._record(market_id, existing.text, existing.result_data, tx_hash=None, block_number=None)
            tx_hash = recorded["tx_hash"] if recorded is not None else None
            effective = existing.text if existing.text in alphabet else outcome
            await persist_status(self.database, pool_id=pool_id, state=OutcomeSubmitted(tx_hash=tx_hash))
            return SubmissionResult(market_id=market_id, outcome=effective, tx_hash=tx_hash, already_on_chain=True)

        await self._record(market_id, outcome, payload, tx_hash=tx.tx_hash, block_number=tx.block_number)
        await persist_status(self.database, pool_id=pool_id, state=OutcomeSubmitted(tx_hash=tx.tx_hash))
        logger.info(
            {
                "oracle_outcome_submitted": {
                    "pool_id": pool_id,
                    "market_id": market_id,
                    "outcome": outcome,
                    "tx_hash": tx.tx_hash,
                    "block": tx.block_number,
                }
            }
        )
        return SubmissionResult(market_id=market_id, outcome=outcome, tx_hash=tx.tx_hash, already_on_chain=False)

    async def _record(
        self,
        market_id: str,
        outcome: str,
        payload: bytes,
        *,
        tx_hash: Optional[str],
        block_number: Optional[int],
    ) -> None:
        await self.database.write(
            _UPSERT_SUBMISSION,
            params={
                "market_id": market_id,
                "outcome": outcome,
                "outcome_hex": "0x" + payload.hex(),
                "tx_hash": tx_hash,
                "block_number": block_number,
                "submitted_at": self._now(),
            },
        )


__all__ = ["OutcomeSubmitter", "SubmissionResult"]
