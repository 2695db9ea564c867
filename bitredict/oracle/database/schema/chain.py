"""Chain sync bookkeeping."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ChainSyncCursor(Base):
    __tablename__ = "chain_sync_cursor"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_block: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Highest block whose logs have been fully mirrored",
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


__all__ = ["ChainSyncCursor"]
