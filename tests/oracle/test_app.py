from unittest.mock import MagicMock

import pytest

from bitredict.config import ChainSettings, RuntimeSettings, Settings, TimerSettings
from bitredict.oracle.app import build_components, build_services
from bitredict.shared.errors import FatalError

POOL_CORE = "0x" + "ab" * 20
ODDYSSEY = "0x" + "cd" * 20


def _services(with_oddyssey=True):
    services = MagicMock()
    services.pool_core.contract.address = POOL_CORE
    services.settlement_contract = None
    if with_oddyssey:
        services.oddyssey.contract.address = ODDYSSEY
    else:
        services.oddyssey = None
    return services


def test_components_follow_timers():
    settings = Settings(timers=TimerSettings(sync_interval_seconds=7, resolver_interval_seconds=45))

    components = build_components(settings, _services())

    intervals = {c.name: c.interval_seconds for c in components}
    assert intervals == {
        "ingestion": 300,
        "sync": 7,
        "settlement": 300,
        "oddyssey_starter": 45,
        "oddyssey_resolver": 45,
        "oddyssey_monitor": 900,
    }


def test_oddyssey_components_optional():
    components = build_components(Settings(), _services(with_oddyssey=False))
    assert [c.name for c in components] == ["ingestion", "sync", "settlement"]


@pytest.mark.parametrize(
    "chain,runtime",
    [
        (ChainSettings(guided_oracle_address=POOL_CORE), RuntimeSettings(enable_oddyssey=False)),
        (ChainSettings(pool_core_address=POOL_CORE), RuntimeSettings(enable_oddyssey=False)),
        (ChainSettings(pool_core_address=POOL_CORE, guided_oracle_address=POOL_CORE), RuntimeSettings()),
    ],
)
def test_build_services_requires_contract_addresses(chain, runtime):
    with pytest.raises(FatalError):
        build_services(Settings(chain=chain, runtime=runtime))
