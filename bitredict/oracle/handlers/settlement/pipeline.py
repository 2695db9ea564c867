"""Settlement pipeline.

One tick: heal the pool mirror, select pools whose event has ended, then walk
each pool through

    NeedsFixture -> HasResult -> OutcomeDecided -> OutcomeOnChain -> Settled | Refunded

Pools are processed one at a time so the oracle key never has two
transactions in flight. A pool that cannot advance is skipped with one
structured log entry and retried on the next tick.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from bitredict.chain.codec import encode_bytes32
from bitredict.chain.contracts import GuidedOracle, PoolCore
from bitredict.oracle.config.params import SettlementParams, get_oracle_params
from bitredict.oracle.utils.runtime import ensure_utc, utcnow
from bitredict.providers.coinpaprika import CoinpaprikaClient
from bitredict.shared.enums import PoolCategory
from bitredict.shared.errors import (
    ChainRevertError,
    DataIntegrityError,
    FatalError,
    FormatMismatchError,
    OracleError,
    PermanentError,
    TransientError,
)

from .healing import HealingReport, heal_pools
from .markets import CryptoThreshold, MarketFamily, canonical_outcome, parse_market_family, require_in_alphabet
from .selection import PoolCandidate, select_candidates
from .settler import PoolSettler
from .state import Active, AwaitingResult, PoolStage, is_terminal, persist_status
from .submitter import OutcomeSubmitter

logger = logging.getLogger(__name__)


class PoolSkipped(OracleError):
    """Raised inside the state machine when a pool cannot advance this tick."""

    def __init__(self, stage: PoolStage, reason: str) -> None:
        super().__init__(reason)
        self.stage = stage
        self.reason = reason


@dataclass
class PoolReport:
    pool_id: int
    stage: PoolStage
    outcome: Optional[str] = None
    reason: Optional[str] = None
    stopped_at: Optional[PoolStage] = None
    tx_hash: Optional[str] = None


@dataclass
class SettlementReport:
    healing: HealingReport = field(default_factory=HealingReport)
    pools: List[PoolReport] = field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        return dict(Counter(p.stage.value for p in self.pools))

    def count(self, stage: PoolStage) -> int:
        return sum(1 for p in self.pools if p.stage is stage)

    def as_dict(self) -> Dict[str, Any]:
        return {"selected": len(self.pools), "healing": self.healing.as_dict(), **self.counts}


class SettlementPipeline:
    def __init__(
        self,
        *,
        database: Any,
        oracle: GuidedOracle,
        pool_core: PoolCore,
        coinpaprika: CoinpaprikaClient,
        params: Optional[SettlementParams] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.coinpaprika = coinpaprika
        self.params = params or get_oracle_params().settlement
        self._now = now_fn
        self.submitter = OutcomeSubmitter(
            database=database, oracle=oracle, params=self.params, sleep=sleep, now_fn=now_fn
        )
        self.settler = PoolSettler(
            database=database,
            oracle=oracle,
            pool_core=pool_core,
            params=self.params,
            sleep=sleep,
            now_fn=now_fn,
        )

    async def process_all_pools(self) -> SettlementReport:
        """Run one settlement tick. Only infrastructure loss escapes."""
        report = SettlementReport()
        report.healing = await heal_pools(self.database)
        candidates = await select_candidates(self.database, now=self._now(), params=self.params)
        for candidate in candidates:
            report.pools.append(await self.process_pool(candidate))
        if candidates:
            logger.info({"settlement_tick": report.as_dict()})
        return report

    async def process_pool(self, pool: PoolCandidate) -> PoolReport:
        stage = PoolStage.NEEDS_FIXTURE
        outcome: Optional[str] = None
        try:
            if is_terminal(pool.state):
                raise PoolSkipped(stage, f"already_{pool.state.status.value}")

            family, outcome = await self.decide_outcome(pool)
            stage = PoolStage.OUTCOME_DECIDED
            if isinstance(pool.state, Active):
                await persist_status(self.database, pool_id=pool.pool_id, state=AwaitingResult())

            submission = await self.submitter.ensure_on_chain(
                pool_id=pool.pool_id,
                market_id=pool.market_id,
                outcome=outcome,
                alphabet=family.alphabet(),
            )
            outcome = submission.outcome
            stage = PoolStage.OUTCOME_ON_CHAIN

            settled = await self.settler.settle(
                pool_id=pool.pool_id,
                outcome=outcome,
                arbitration_deadline=pool.arbitration_deadline,
            )
            if settled.stage is PoolStage.SKIPPED:
                raise PoolSkipped(stage, settled.reason or "settle_skipped")
            return PoolReport(pool_id=pool.pool_id, stage=settled.stage, outcome=outcome, tx_hash=settled.tx_hash)
        except FatalError:
            raise
        except PoolSkipped as exc:
            return self._skip(pool, exc.stage, exc.reason, outcome)
        except FormatMismatchError as exc:
            return self._skip(pool, stage, f"format_mismatch: {exc}", outcome, level=logging.ERROR)
        except DataIntegrityError as exc:
            return self._skip(pool, stage, f"data_integrity: {exc}", outcome, level=logging.ERROR)
        except ChainRevertError as exc:
            return self._skip(pool, stage, f"chain_revert: {exc.reason}", outcome, level=logging.ERROR)
        except PermanentError as exc:
            return self._skip(pool, stage, f"provider_permanent: {exc}", outcome)
        except TransientError as exc:
            return self._skip(pool, stage, f"transient: {exc}", outcome)

    async def decide_outcome(self, pool: PoolCandidate) -> Tuple[MarketFamily, str]:
        family = pool.family or parse_market_family(pool.predicted_outcome)
        if family is None:
            raise FormatMismatchError(f"prediction {pool.predicted_outcome!r} matches no market family")
        require_in_alphabet(family, pool.predicted_outcome)

        if isinstance(family, CryptoThreshold):
            return family, await self._decide_crypto(pool, family)
        if pool.category is PoolCategory.CRYPTO:
            raise FormatMismatchError(f"crypto pool with football prediction {pool.predicted_outcome!r}")

        result = self._require_result(pool)
        return family, _fits_bytes32(canonical_outcome(family, result))

    async def _decide_crypto(self, pool: PoolCandidate, family: CryptoThreshold) -> str:
        now = self._now()
        if now < ensure_utc(pool.event_end_time):
            raise PoolSkipped(PoolStage.NEEDS_FIXTURE, "event_not_ended")
        spot = await self.coinpaprika.fetch_symbol_price(family.symbol)
        outcome = _fits_bytes32(family.outcome_for_price(spot.price_usd))
        logger.info(
            {
                "crypto_outcome_decided": {
                    "pool_id": pool.pool_id,
                    "symbol": family.symbol,
                    "target": family.price_text,
                    "spot": str(spot.price_usd),
                    "outcome": outcome,
                }
            }
        )
        return outcome

    def _require_result(self, pool: PoolCandidate) -> Dict[str, Any]:
        if pool.fixture_id is None or pool.result is None:
            raise PoolSkipped(PoolStage.NEEDS_FIXTURE, "fixture_result_missing")
        if pool.market_id != str(pool.fixture_id):
            raise DataIntegrityError(f"market_id {pool.market_id!r} != fixture_id {pool.fixture_id}")

        result = pool.result
        scores = [result.get(k) for k in ("ft_home_score", "ft_away_score", "ht_home_score", "ht_away_score")]
        finished_at = result.get("finished_at")
        if finished_at is None:
            raise PoolSkipped(PoolStage.NEEDS_FIXTURE, "fixture_not_finished")
        if any(s is None for s in scores):
            raise DataIntegrityError(f"fixture {pool.fixture_id} finished without scores")
        cutoff = self._now() - timedelta(minutes=self.params.result_settle_delay_minutes)
        if ensure_utc(finished_at) > cutoff:
            raise PoolSkipped(PoolStage.HAS_RESULT, "result_within_settle_delay")
        return result

    def _skip(
        self,
        pool: PoolCandidate,
        stage: PoolStage,
        reason: str,
        outcome: Optional[str],
        *,
        level: int = logging.WARNING,
    ) -> PoolReport:
        logger.log(
            level,
            {
                "pool_skipped": {
                    "pool_id": pool.pool_id,
                    "market_id": pool.market_id,
                    "predicted_outcome": pool.predicted_outcome,
                    "stage": stage.value,
                    "reason": reason,
                    "outcome": outcome,
                }
            },
        )
        return PoolReport(
            pool_id=pool.pool_id,
            stage=PoolStage.SKIPPED,
            outcome=outcome,
            reason=reason,
            stopped_at=stage,
        )


def _fits_bytes32(outcome: str) -> str:
    try:
        encode_bytes32(outcome)
    except ValueError as exc:
        raise FormatMismatchError(str(exc)) from exc
    return outcome


__all__ = ["SettlementPipeline", "SettlementReport", "PoolReport", "PoolSkipped"]
