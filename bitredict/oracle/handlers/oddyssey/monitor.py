"""Cycle health checks, run every 15 minutes.

Also flips `ready_for_resolution` on cycles whose ten results are all in,
which is the only write the monitor makes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import text

from bitredict.oracle.config.params import OddysseyParams, get_oracle_params
from bitredict.oracle.utils.runtime import utcnow

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


_SEVERITY_ORDER = {Severity.WARNING: 1, Severity.ERROR: 2, Severity.CRITICAL: 3}

_COUNT_CYCLES_FOR_DAY = text(
    """
    SELECT count(*) AS n FROM oddyssey_cycles
    WHERE cycle_end_time >= :day_start AND cycle_end_time < :day_end
    """
)

_SELECT_CYCLES_WITHOUT_TX = text(
    """
    SELECT cycle_id FROM oddyssey_cycles
    WHERE (tx_hash IS NULL OR tx_hash = '') AND created_at >= :since
    ORDER BY cycle_id
    """
)

_SELECT_OVERDUE_CYCLES = text(
    """
    SELECT cycle_id, cycle_end_time FROM oddyssey_cycles
    WHERE is_resolved = false AND cycle_end_time < :overdue_before
    ORDER BY cycle_id
    """
)

# Unresolved cycles whose every fixture has a result.
_SELECT_CYCLES_WITH_ALL_RESULTS = text(
    """
    SELECT c.cycle_id, c.ready_for_resolution
    FROM oddyssey_cycles c
    WHERE c.is_resolved = false
      AND jsonb_array_length(c.matches_data) = :matches_per_cycle
      AND NOT EXISTS (
          SELECT 1
          FROM jsonb_array_elements(c.matches_data) AS m
          LEFT JOIN fixture_results r ON r.fixture_id = CAST(m->>'id' AS bigint)
          WHERE r.fixture_id IS NULL
      )
    ORDER BY c.cycle_id
    """
)

_MARK_READY = text(
    """
    UPDATE oddyssey_cycles
    SET ready_for_resolution = true, resolution_prepared_at = :now, updated_at = now()
    WHERE cycle_id = :cycle_id AND ready_for_resolution = false
    """
)


@dataclass(frozen=True)
class Issue:
    kind: str
    severity: Severity
    message: str
    cycle_ids: List[int] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "severity": self.severity.value,
            "message": self.message,
            "cycle_ids": self.cycle_ids,
        }


@dataclass
class MonitorReport:
    checked_at: datetime
    issues: List[Issue] = field(default_factory=list)
    flagged_ready: List[int] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.issues:
            return "healthy"
        worst = max(self.issues, key=lambda i: _SEVERITY_ORDER[i.severity])
        return worst.severity.value

    def as_dict(self) -> Dict[str, Any]:
        return {
            "checked_at": self.checked_at.isoformat(),
            "status": self.status,
            "issues": [i.as_dict() for i in self.issues],
            "flagged_ready": self.flagged_ready,
        }


class CycleMonitor:
    def __init__(
        self,
        *,
        database: Any,
        params: Optional[OddysseyParams] = None,
        lookback_days: int = 7,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.params = params or get_oracle_params().oddyssey
        self.lookback_days = lookback_days
        self._now = now_fn

    async def run_once(self) -> MonitorReport:
        now = self._now()
        report = MonitorReport(checked_at=now)

        missing = await self._check_today(now)
        if missing is not None:
            report.issues.append(missing)

        rows = await self.database.read(
            _SELECT_CYCLES_WITHOUT_TX,
            params={"since": now - timedelta(days=self.lookback_days)},
            mappings=True,
        )
        if rows:
            ids = [int(r["cycle_id"]) for r in rows]
            report.issues.append(
                Issue("cycle_without_tx", Severity.ERROR, f"{len(ids)} cycles have no start transaction", ids)
            )

        overdue_before = now - timedelta(hours=self.params.resolution_overdue_hours)
        rows = await self.database.read(_SELECT_OVERDUE_CYCLES, params={"overdue_before": overdue_before}, mappings=True)
        if rows:
            ids = [int(r["cycle_id"]) for r in rows]
            report.issues.append(
                Issue(
                    "resolution_overdue",
                    Severity.WARNING,
                    f"{len(ids)} cycles unresolved {self.params.resolution_overdue_hours}h after their end",
                    ids,
                )
            )

        rows = await self.database.read(
            _SELECT_CYCLES_WITH_ALL_RESULTS,
            params={"matches_per_cycle": self.params.matches_per_cycle},
            mappings=True,
        )
        unflagged = [int(r["cycle_id"]) for r in rows if not r["ready_for_resolution"]]
        if unflagged:
            report.issues.append(
                Issue("ready_not_flagged", Severity.WARNING, f"{len(unflagged)} cycles have all results", unflagged)
            )
            for cycle_id in unflagged:
                if await self.database.write(_MARK_READY, params={"cycle_id": cycle_id, "now": now}):
                    report.flagged_ready.append(cycle_id)

        level = logging.INFO if not report.issues else logging.WARNING
        logger.log(level, {"cycle_monitor": report.as_dict()})
        return report

    async def _check_today(self, now: datetime) -> Optional[Issue]:
        # today's cycle is started the evening before
        day_start = datetime.combine(now.date(), time(), tzinfo=timezone.utc)
        rows = await self.database.read(
            _COUNT_CYCLES_FOR_DAY,
            params={"day_start": day_start, "day_end": day_start + timedelta(days=1)},
            mappings=True,
        )
        if rows and int(rows[0]["n"]) > 0:
            return None
        return Issue("missing_cycle", Severity.CRITICAL, f"no cycle for {now.date().isoformat()}")


__all__ = ["Severity", "Issue", "MonitorReport", "CycleMonitor"]
