"""Declarative schema for every table the oracle reads or writes."""

from .base import Base, metadata
from .chain import ChainSyncCursor
from .fixtures import Fixture, FixtureResult
from .oddyssey import OddysseyCycle, OddysseySlip
from .pools import OracleSubmission, Pool, PoolBet, PoolLiquidity

__all__ = [
    "Base",
    "metadata",
    "ChainSyncCursor",
    "Fixture",
    "FixtureResult",
    "OddysseyCycle",
    "OddysseySlip",
    "OracleSubmission",
    "Pool",
    "PoolBet",
    "PoolLiquidity",
]
