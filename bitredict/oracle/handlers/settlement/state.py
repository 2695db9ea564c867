"""Persisted pool state and the per-tick settlement stages."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union

from sqlalchemy import text

from bitredict.chain.codec import ZERO_BYTES32_HEX
from bitredict.shared.enums import PoolStatus


@dataclass(frozen=True)
class Active:
    status: PoolStatus = PoolStatus.ACTIVE


@dataclass(frozen=True)
class AwaitingResult:
    status: PoolStatus = PoolStatus.AWAITING_RESULT


@dataclass(frozen=True)
class OutcomeSubmitted:
    tx_hash: Optional[str]
    status: PoolStatus = PoolStatus.OUTCOME_SUBMITTED


@dataclass(frozen=True)
class Settled:
    result: str
    creator_side_won: Optional[bool]
    tx_hash: Optional[str]
    status: PoolStatus = PoolStatus.SETTLED


@dataclass(frozen=True)
class Refunded:
    tx_hash: Optional[str]
    status: PoolStatus = PoolStatus.REFUNDED


PoolState = Union[Active, AwaitingResult, OutcomeSubmitted, Settled, Refunded]


def state_from_row(row: Mapping[str, Any]) -> PoolState:
    status = PoolStatus(row.get("status") or PoolStatus.ACTIVE.value)
    tx_hash = row.get("state_tx_hash")
    if status is PoolStatus.SETTLED:
        return Settled(
            result=row.get("result") or "",
            creator_side_won=row.get("creator_side_won"),
            tx_hash=row.get("settlement_tx_hash") or tx_hash,
        )
    if status is PoolStatus.REFUNDED:
        return Refunded(tx_hash=tx_hash)
    if status is PoolStatus.OUTCOME_SUBMITTED:
        return OutcomeSubmitted(tx_hash=tx_hash)
    if status is PoolStatus.AWAITING_RESULT:
        return AwaitingResult()
    return Active()


def is_terminal(state: PoolState) -> bool:
    return isinstance(state, (Settled, Refunded))


class PoolStage(str, Enum):
    """How far a pool got within one settlement tick."""

    NEEDS_FIXTURE = "needs_fixture"
    HAS_RESULT = "has_result"
    OUTCOME_DECIDED = "outcome_decided"
    OUTCOME_ON_CHAIN = "outcome_on_chain"
    SETTLED = "settled"
    REFUNDED = "refunded"
    SKIPPED = "skipped"


# Shared by the settler and the event sync; the guards make the writes safe
# to apply in either order and more than once.
_MARK_POOL_SETTLED = text(
    """
    UPDATE pools
    SET is_settled = true,
        status = CAST(:status AS pool_status),
        result = COALESCE(result, :result),
        creator_side_won = COALESCE(creator_side_won, :creator_side_won),
        result_timestamp = COALESCE(result_timestamp, :result_timestamp),
        settlement_tx_hash = COALESCE(settlement_tx_hash, :tx_hash),
        state_tx_hash = COALESCE(:tx_hash, state_tx_hash),
        settled_at = COALESCE(settled_at, :settled_at),
        updated_at = now()
    WHERE pool_id = :pool_id
      AND (
          is_settled = false
          OR (creator_side_won IS NULL AND status = CAST(:status AS pool_status))
      )
    """
)

_MARK_POOL_REFUNDED = text(
    """
    UPDATE pools
    SET is_settled = true,
        status = CAST(:status AS pool_status),
        result = :result,
        state_tx_hash = COALESCE(:tx_hash, state_tx_hash),
        refund_reason = :reason,
        refunded_at = :refunded_at,
        updated_at = now()
    WHERE pool_id = :pool_id AND is_settled = false
    """
)

_SET_POOL_STATUS = text(
    """
    UPDATE pools
    SET status = CAST(:status AS pool_status),
        state_tx_hash = COALESCE(:tx_hash, state_tx_hash),
        updated_at = now()
    WHERE pool_id = :pool_id AND is_settled = false
    """
)

_SET_PENDING_TX = text(
    """
    UPDATE pools
    SET state_tx_hash = :tx_hash, updated_at = now()
    WHERE pool_id = :pool_id AND is_settled = false
    """
)


async def persist_settled(
    database: Any,
    *,
    pool_id: int,
    result_hex: str,
    creator_side_won: Optional[bool],
    result_timestamp: Optional[datetime],
    tx_hash: Optional[str],
    settled_at: datetime,
) -> int:
    return await database.write(
        _MARK_POOL_SETTLED,
        params={
            "pool_id": pool_id,
            "status": PoolStatus.SETTLED.value,
            "result": result_hex,
            "creator_side_won": creator_side_won,
            "result_timestamp": result_timestamp,
            "tx_hash": tx_hash,
            "settled_at": settled_at,
        },
    )


async def persist_refunded(
    database: Any,
    *,
    pool_id: int,
    tx_hash: Optional[str],
    reason: str,
    refunded_at: datetime,
) -> int:
    return await database.write(
        _MARK_POOL_REFUNDED,
        params={
            "pool_id": pool_id,
            "status": PoolStatus.REFUNDED.value,
            "result": ZERO_BYTES32_HEX,
            "tx_hash": tx_hash,
            "reason": reason,
            "refunded_at": refunded_at,
        },
    )


async def persist_status(database: Any, *, pool_id: int, state: PoolState) -> int:
    """Record a non-terminal tag. Terminal tags go through persist_settled / persist_refunded."""
    if is_terminal(state):
        raise ValueError(f"terminal state {state.status.value} needs its own writer")
    return await database.write(
        _SET_POOL_STATUS,
        params={"pool_id": pool_id, "status": state.status.value, "tx_hash": getattr(state, "tx_hash", None)},
    )


async def persist_pending_tx(database: Any, *, pool_id: int, tx_hash: str) -> int:
    """Remember a sent transaction before its receipt is awaited."""
    return await database.write(_SET_PENDING_TX, params={"pool_id": pool_id, "tx_hash": tx_hash})


__all__ = [
    "Active",
    "AwaitingResult",
    "OutcomeSubmitted",
    "Settled",
    "Refunded",
    "PoolState",
    "state_from_row",
    "is_terminal",
    "PoolStage",
    "persist_settled",
    "persist_refunded",
    "persist_status",
    "persist_pending_tx",
]
