"""Wires settings into the long-lived clients and the periodic components."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Dict, List, Optional

from bitredict.chain.abi import POOL_CORE_ABI
from bitredict.chain.client import ChainClient
from bitredict.chain.contracts import GuidedOracle, OddysseyContract, PoolCore
from bitredict.config import Settings
from bitredict.oracle.config.params import OracleParams, get_oracle_params
from bitredict.oracle.database.dbm import DBM
from bitredict.oracle.handlers.ingest.results import IngestReport, ResultIngestionWorker
from bitredict.oracle.handlers.oddyssey import CycleMonitor, CycleResolver, CycleStarter, SlipEvaluator
from bitredict.oracle.handlers.oddyssey.monitor import MonitorReport
from bitredict.oracle.handlers.oddyssey.resolver import ResolverReport
from bitredict.oracle.handlers.oddyssey.selector import StartedCycle
from bitredict.oracle.handlers.settlement.pipeline import SettlementPipeline, SettlementReport
from bitredict.oracle.handlers.settlement.state import PoolStage
from bitredict.oracle.handlers.sync import ChainEventSync, EventMirror, SyncReport, build_decoder
from bitredict.oracle.runner import PeriodicComponent
from bitredict.providers.coinpaprika import CoinpaprikaClient
from bitredict.providers.coinpaprika.config import CoinpaprikaConfig
from bitredict.providers.sportmonks import SportMonksClient
from bitredict.providers.sportmonks.config import SportMonksConfig
from bitredict.shared.errors import FatalError

logger = logging.getLogger(__name__)


@dataclass
class OracleServices:
    database: Any
    client: ChainClient
    sportmonks: SportMonksClient
    coinpaprika: CoinpaprikaClient
    oracle: GuidedOracle
    pool_core: PoolCore
    oddyssey: Optional[OddysseyContract] = None
    settlement_contract: Any = None

    async def close(self) -> None:
        await self.sportmonks.close()
        await self.coinpaprika.close()
        await self.client.close()
        await self.database.dispose()


def build_services(settings: Settings) -> OracleServices:
    chain = settings.chain
    if not chain.pool_core_address or not chain.guided_oracle_address:
        raise FatalError("chain.pool_core_address and chain.guided_oracle_address are required")
    if settings.runtime.enable_oddyssey and not chain.oddyssey_address:
        raise FatalError("chain.oddyssey_address is required while runtime.enable_oddyssey is set")

    providers = settings.providers
    client = ChainClient(chain)
    return OracleServices(
        database=DBM(settings.database),
        client=client,
        sportmonks=SportMonksClient(
            api_token=providers.sportmonks_api_token,
            config=SportMonksConfig(base_url=providers.sportmonks_base_url),
            timeout_seconds=providers.timeout_seconds,
            max_retries=providers.max_retries,
            rate_per_minute=providers.sportmonks_rate_per_minute,
        ),
        coinpaprika=CoinpaprikaClient(
            api_key=providers.coinpaprika_api_key,
            config=CoinpaprikaConfig(base_url=providers.coinpaprika_base_url),
            timeout_seconds=providers.timeout_seconds,
            max_retries=providers.max_retries,
            rate_per_minute=providers.coinpaprika_rate_per_minute,
        ),
        oracle=GuidedOracle(client, chain.guided_oracle_address),
        pool_core=PoolCore(client, chain.pool_core_address),
        oddyssey=OddysseyContract(client, chain.oddyssey_address) if settings.runtime.enable_oddyssey else None,
        settlement_contract=(
            client.contract(chain.settlement_address, POOL_CORE_ABI) if chain.settlement_address else None
        ),
    )


def _ingest_counters(report: IngestReport) -> Dict[str, int]:
    return {
        "fixtures_catalogued": report.catalogued,
        "results_ingested": report.inserted,
        "fixtures_poisoned": report.poisoned,
        "provider_errors": report.errors,
    }


def _sync_counters(report: SyncReport) -> Dict[str, int]:
    return {"logs_scanned": report.logs, "events_mirrored": report.mirrored}


def _settlement_counters(report: SettlementReport) -> Dict[str, int]:
    return {
        "pools_settled": report.count(PoolStage.SETTLED),
        "pools_refunded": report.count(PoolStage.REFUNDED),
        "pools_skipped": report.count(PoolStage.SKIPPED),
    }


def _starter_counters(started: StartedCycle) -> Dict[str, int]:
    return {"cycles_adopted" if started.from_chain else "cycles_started": 1}


def _resolver_counters(report: ResolverReport) -> Dict[str, int]:
    return {
        "cycles_resolved": sum(1 for c in report.cycles if c.resolved),
        "cycles_evaluated": len(report.evaluated),
    }


def _monitor_counters(report: MonitorReport) -> Dict[str, int]:
    return {"issues": len(report.issues), "cycles_flagged_ready": len(report.flagged_ready)}


def build_components(
    settings: Settings,
    services: OracleServices,
    *,
    params: Optional[OracleParams] = None,
) -> List[PeriodicComponent]:
    params = params or get_oracle_params()
    timers = settings.timers
    database = services.database

    ingestion = ResultIngestionWorker(database=database, sportmonks=services.sportmonks, params=params.ingest)
    pipeline = SettlementPipeline(
        database=database,
        oracle=services.oracle,
        pool_core=services.pool_core,
        coinpaprika=services.coinpaprika,
        params=params.settlement,
    )

    pool_contracts = [services.pool_core.contract]
    if services.settlement_contract is not None:
        pool_contracts.append(services.settlement_contract)
    decoder = build_decoder(
        pool_contracts=pool_contracts,
        oddyssey=services.oddyssey.contract if services.oddyssey is not None else None,
    )

    async def block_time(number: int) -> datetime:
        return await sync.block_time(number)

    mirror = EventMirror(
        database=database,
        oddyssey=services.oddyssey,
        block_time=block_time,
        params=params.settlement,
    )
    sync = ChainEventSync(
        database=database,
        client=services.client,
        decoder=decoder,
        mirror=mirror,
        start_block=settings.chain.start_block,
        params=params.sync.model_copy(update={"max_block_range": settings.chain.max_block_range}),
    )

    components = [
        PeriodicComponent("ingestion", ingestion.run_once, timers.ingestion_interval_seconds, _ingest_counters),
        PeriodicComponent("sync", sync.run_once, timers.sync_interval_seconds, _sync_counters),
        PeriodicComponent(
            "settlement", pipeline.process_all_pools, timers.settlement_interval_seconds, _settlement_counters
        ),
    ]

    if services.oddyssey is not None:
        evaluator = SlipEvaluator(database=database, oddyssey=services.oddyssey, params=params.oddyssey)
        starter = CycleStarter(
            database=database,
            oddyssey=services.oddyssey,
            start_at=time(*timers.cycle_start_time),
            params=params.oddyssey,
        )
        resolver = CycleResolver(
            database=database,
            oddyssey=services.oddyssey,
            evaluator=evaluator,
            params=params.oddyssey,
        )
        monitor = CycleMonitor(database=database, params=params.oddyssey)
        # the starter is a no-op until the target day rolls over, so it shares the resolver cadence
        components.extend(
            [
                PeriodicComponent(
                    "oddyssey_starter", starter.run_once, timers.resolver_interval_seconds, _starter_counters
                ),
                PeriodicComponent(
                    "oddyssey_resolver", resolver.run_once, timers.resolver_interval_seconds, _resolver_counters
                ),
                PeriodicComponent(
                    "oddyssey_monitor", monitor.run_once, timers.monitor_interval_seconds, _monitor_counters
                ),
            ]
        )

    logger.info({"components_built": {c.name: c.interval_seconds for c in components}})
    return components


__all__ = ["OracleServices", "build_services", "build_components"]
