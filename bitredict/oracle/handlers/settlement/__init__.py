"""Pool settlement.

Pools move Active -> AwaitingResult -> OutcomeSubmitted -> Settled, or to
Refunded once their arbitration deadline passes with no bets. One tick heals
the mirror, selects candidates and walks each pool as far as it can go.
"""

from .healing import HealingReport, heal_pools
from .markets import parse_market_family
from .pipeline import PoolReport, PoolSkipped, SettlementPipeline, SettlementReport
from .state import PoolStage

__all__ = [
    "HealingReport",
    "heal_pools",
    "parse_market_family",
    "PoolReport",
    "PoolSkipped",
    "SettlementPipeline",
    "SettlementReport",
    "PoolStage",
]
