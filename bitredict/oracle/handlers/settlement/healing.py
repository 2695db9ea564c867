"""Deterministic repairs run against the pool mirror before settlement.

Repairs are idempotent: running them twice changes nothing the second time.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict

from sqlalchemy import text

from bitredict.shared.enums import OracleType

from .markets import category_for, family_from_json, family_to_json, is_valid_market_id, parse_market_family

logger = logging.getLogger(__name__)

_LEADING_JUNK_RE = re.compile(r"^[\x00-\x1f\x7f\s]+")
_TRAILING_JUNK_RE = re.compile(r"[\x00-\x1f\x7f\s]+$")

_SELECT_UNSETTLED_POOLS = text(
    """
    SELECT pool_id, market_id, category, predicted_outcome, market_family, rejected_reason
    FROM pools
    WHERE is_settled = false
      AND oracle_type = :oracle_type
    """
)

_UPDATE_MARKET_ID = text(
    """
    UPDATE pools
    SET market_id = :market_id, updated_at = now()
    WHERE pool_id = :pool_id AND is_settled = false
    """
)

_UPDATE_MARKET_FAMILY = text(
    """
    UPDATE pools
    SET market_family = CAST(:market_family AS jsonb), updated_at = now()
    WHERE pool_id = :pool_id AND market_family IS NULL
    """
)

_LINK_FIXTURES = text(
    """
    UPDATE pools p
    SET fixture_id = f.fixture_id, updated_at = now()
    FROM fixtures f
    WHERE p.fixture_id IS NULL
      AND p.is_settled = false
      AND p.oracle_type = :oracle_type
      AND p.market_id ~ '^[0-9]{1,18}$'
      AND f.fixture_id = CAST(p.market_id AS BIGINT)
    """
)

_REJECT_POOL = text(
    """
    UPDATE pools
    SET rejected_reason = :reason, updated_at = now()
    WHERE pool_id = :pool_id AND rejected_reason IS DISTINCT FROM :reason
    """
)


def clean_market_id(raw: Any) -> str:
    """Strip the zero-byte and control prefixes left by on-chain string encoding."""
    value = "" if raw is None else str(raw)
    value = _LEADING_JUNK_RE.sub("", value)
    return _TRAILING_JUNK_RE.sub("", value)


@dataclass
class HealingReport:
    cleaned: int = 0
    families: int = 0
    linked: int = 0
    rejected: int = 0

    def as_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


async def heal_pools(database: Any) -> HealingReport:
    report = HealingReport()
    rows = await database.read(
        _SELECT_UNSETTLED_POOLS,
        params={"oracle_type": int(OracleType.GUIDED)},
        mappings=True,
    )

    # Control prefixes are stripped first so the fixture link sees clean ids.
    for row in rows:
        pool_id = int(row["pool_id"])
        market_id = clean_market_id(row["market_id"])
        if market_id != row["market_id"]:
            await database.write(_UPDATE_MARKET_ID, params={"pool_id": pool_id, "market_id": market_id})
            report.cleaned += 1
            logger.info({"pool_market_id_cleaned": {"pool_id": pool_id, "market_id": market_id}})

        family = family_from_json(row.get("market_family"))
        if family is None:
            family = parse_market_family(row.get("predicted_outcome") or "")
            if family is not None:
                await database.write(
                    _UPDATE_MARKET_FAMILY,
                    params={"pool_id": pool_id, "market_family": json.dumps(family_to_json(family))},
                )
                report.families += 1

        category = category_for(family, row.get("category"))
        if not is_valid_market_id(market_id, category):
            reason = f"invalid_{category.value}_market_id"
            if row.get("rejected_reason") != reason:
                await database.write(_REJECT_POOL, params={"pool_id": pool_id, "reason": reason})
                report.rejected += 1
                logger.warning(
                    {"pool_rejected": {"pool_id": pool_id, "market_id": market_id, "reason": reason}}
                )

    report.linked = int(await database.write(_LINK_FIXTURES, params={"oracle_type": int(OracleType.GUIDED)}) or 0)
    if any(report.as_dict().values()):
        logger.info({"pool_healing": report.as_dict()})
    return report


__all__ = ["clean_market_id", "HealingReport", "heal_pools"]
