from __future__ import annotations

from enum import Enum, IntEnum


class OracleType(IntEnum):
    GUIDED = 0
    OPEN = 1


class PoolCategory(str, Enum):
    FOOTBALL = "football"
    CRYPTO = "crypto"

    @classmethod
    def parse(cls, value: object) -> "PoolCategory | None":
        text = str(value or "").strip().lower()
        if text in ("football", "soccer"):
            return cls.FOOTBALL
        if text in ("crypto", "cryptocurrency"):
            return cls.CRYPTO
        return None


class PoolStatus(str, Enum):
    ACTIVE = "active"
    AWAITING_RESULT = "awaiting_result"
    OUTCOME_SUBMITTED = "outcome_submitted"
    SETTLED = "settled"
    REFUNDED = "refunded"


class MatchResult(str, Enum):
    HOME = "Home"
    DRAW = "Draw"
    AWAY = "Away"


class TotalResult(str, Enum):
    OVER = "Over"
    UNDER = "Under"


class BttsResult(str, Enum):
    YES = "Yes"
    NO = "No"


# Oddyssey contract enums (uint8 on-chain)
class Moneyline(IntEnum):
    NOT_SET = 0
    HOME_WIN = 1
    DRAW = 2
    AWAY_WIN = 3


class OverUnder(IntEnum):
    NOT_SET = 0
    OVER = 1
    UNDER = 2


class BetType(IntEnum):
    MONEYLINE = 0
    OVER_UNDER = 1


class CycleState(IntEnum):
    NOT_STARTED = 0
    ACTIVE = 1
    ENDED = 2
    RESOLVED = 3


__all__ = [
    "OracleType",
    "PoolCategory",
    "PoolStatus",
    "MatchResult",
    "TotalResult",
    "BttsResult",
    "Moneyline",
    "OverUnder",
    "BetType",
    "CycleState",
]
