"""Pool mirror tables fed by chain event sync and the settlement pipeline."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from bitredict.shared.enums import PoolStatus

from .base import Base, Wei, pool_status_enum


class Pool(Base):
    __tablename__ = "pools"

    pool_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    creator: Mapped[str] = mapped_column(String(42), nullable=False)
    predicted_outcome: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="UTF-8 decoded, zero-trimmed bytes32 prediction as recorded at creation",
    )
    market_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    fixture_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey("fixtures.fixture_id"), index=True)
    category: Mapped[str | None] = mapped_column(String(64))
    league: Mapped[str | None] = mapped_column(String(128))
    home_team: Mapped[str | None] = mapped_column(String(128))
    away_team: Mapped[str | None] = mapped_column(String(128))
    title: Mapped[str | None] = mapped_column(Text)
    odds: Mapped[int | None] = mapped_column(Integer)
    creator_stake: Mapped[int] = mapped_column(Wei, nullable=False, default=0)
    oracle_type: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    market_type: Mapped[int | None] = mapped_column(SmallInteger)
    event_start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    event_end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    arbitration_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_bettor_stake: Mapped[int] = mapped_column(Wei, nullable=False, default=0)
    total_creator_side_stake: Mapped[int] = mapped_column(Wei, nullable=False, default=0)
    market_family: Mapped[dict | None] = mapped_column(
        JSONB,
        comment="Prediction parsed into its market family at ingest",
    )
    status: Mapped[PoolStatus] = mapped_column(pool_status_enum, nullable=False, default=PoolStatus.ACTIVE)
    state_tx_hash: Mapped[str | None] = mapped_column(String(66))
    is_settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    result: Mapped[str | None] = mapped_column(String(66), comment="bytes32 hex; zero for refunds")
    creator_side_won: Mapped[bool | None] = mapped_column(Boolean)
    result_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    settlement_tx_hash: Mapped[str | None] = mapped_column(String(66))
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refund_reason: Mapped[str | None] = mapped_column(Text)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejected_reason: Mapped[str | None] = mapped_column(Text)
    created_block: Mapped[int | None] = mapped_column(BigInteger)
    created_tx_hash: Mapped[str | None] = mapped_column(String(66))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PoolBet(Base):
    __tablename__ = "pool_bets"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("pools.pool_id"), nullable=False, index=True)
    bettor: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Wei, nullable=False)
    is_for_outcome: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (UniqueConstraint("tx_hash", "log_index", name="uq_pool_bets_tx_log"),)


class PoolLiquidity(Base):
    __tablename__ = "pool_liquidity"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("pools.pool_id"), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Wei, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (UniqueConstraint("tx_hash", "log_index", name="uq_pool_liquidity_tx_log"),)


class OracleSubmission(Base):
    __tablename__ = "oracle_submissions"

    market_id: Mapped[str] = mapped_column(Text, primary_key=True)
    outcome: Mapped[str] = mapped_column(Text, nullable=False, comment="Outcome string as submitted")
    outcome_hex: Mapped[str] = mapped_column(Text, nullable=False, comment="0x-prefixed UTF-8 bytes sent on-chain")
    tx_hash: Mapped[str | None] = mapped_column(String(66), comment="Null when backfilled from chain state")
    block_number: Mapped[int | None] = mapped_column(BigInteger)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


__all__ = ["Pool", "PoolBet", "PoolLiquidity", "OracleSubmission"]
