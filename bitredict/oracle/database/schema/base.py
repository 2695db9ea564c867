"""Shared SQLAlchemy base definitions and enums."""

from __future__ import annotations

from sqlalchemy import Enum as SAEnum, MetaData, Numeric
from sqlalchemy.orm import DeclarativeBase

from bitredict.shared.enums import PoolStatus


# Shared metadata constant so Alembic sees every table
naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=naming_convention)


class Base(DeclarativeBase):
    metadata = metadata


# uint256 amounts in wei
Wei = Numeric(78, 0)

pool_status_enum = SAEnum(
    PoolStatus,
    name="pool_status",
    metadata=metadata,
    values_callable=lambda members: [m.value for m in members],
)


__all__ = [
    "Base",
    "metadata",
    "Wei",
    "pool_status_enum",
]
