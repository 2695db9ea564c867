from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic

from bitredict.chain.abi import ODDYSSEY_ABI, POOL_CORE_ABI
from bitredict.oracle.config.params import SyncParams
from bitredict.oracle.handlers.sync.decoder import DecodedEvent, build_decoder
from bitredict.oracle.handlers.sync.worker import ChainEventSync
from bitredict.shared.errors import PermanentError

POOL_ADDRESS = "0x" + "ab" * 20
ODDYSSEY_ADDRESS = "0x" + "cd" * 20


def _topic(abi, name):
    (item,) = [i for i in abi if i.get("type") == "event" and i["name"] == name]
    return bytes(event_abi_to_log_topic(item))


def _contract(address, args_by_event):
    contract = MagicMock()
    contract.address = address
    for name, args in args_by_event.items():
        getattr(contract.events, name).return_value.process_log.return_value = {"args": args}
    return contract


def _log(address, topic, *, block, index, tx=b"\x11" * 32):
    return {
        "address": address,
        "topics": [topic],
        "transactionHash": tx,
        "logIndex": index,
        "blockNumber": block,
        "data": b"",
    }


def _event(name, block, index=0):
    return DecodedEvent(name=name, args={}, address=POOL_ADDRESS, tx_hash="0x11", log_index=index, block_number=block)


def test_decoder_routes_by_address_and_topic():
    pool = _contract(POOL_ADDRESS, {"PoolSettled": {"poolId": 4}, "BetPlaced": {"poolId": 4, "amount": 5}})
    oddyssey = _contract(ODDYSSEY_ADDRESS, {"CycleResolved": {"cycleId": 12, "prizePool": 0}})
    decoder = build_decoder(pool_contracts=[pool], oddyssey=oddyssey)

    logs = [
        _log(ODDYSSEY_ADDRESS.upper().replace("0X", "0x"), _topic(ODDYSSEY_ABI, "CycleResolved"), block=20, index=0),
        _log(POOL_ADDRESS, _topic(POOL_CORE_ABI, "PoolSettled"), block=10, index=3),
        _log(POOL_ADDRESS, _topic(POOL_CORE_ABI, "BetPlaced"), block=10, index=1),
        # a pool topic from the wrong contract is not ours
        _log(ODDYSSEY_ADDRESS, _topic(POOL_CORE_ABI, "PoolSettled"), block=10, index=0),
        {"address": POOL_ADDRESS, "topics": [], "transactionHash": b"\x00" * 32, "logIndex": 0, "blockNumber": 1},
    ]

    events = decoder.decode_all(logs)

    assert [(e.name, e.block_number, e.log_index) for e in events] == [
        ("BetPlaced", 10, 1),
        ("PoolSettled", 10, 3),
        ("CycleResolved", 20, 0),
    ]
    assert events[1].args == {"poolId": 4}
    assert events[1].tx_hash == "0x" + "11" * 32
    assert events[1].key == ("0x" + "11" * 32, 3)
    assert sorted(a.lower() for a in decoder.addresses) == [POOL_ADDRESS, ODDYSSEY_ADDRESS]


def test_decoder_drops_logs_that_do_not_match_their_abi():
    pool = _contract(POOL_ADDRESS, {"PoolSettled": {"poolId": 4}})
    pool.events.BetPlaced.return_value.process_log.side_effect = DecodingError("not enough bytes")
    decoder = build_decoder(pool_contracts=[pool], oddyssey=None)
    broken = _log(POOL_ADDRESS, _topic(POOL_CORE_ABI, "BetPlaced"), block=10, index=1)

    with pytest.raises(PermanentError):
        decoder.decode(broken)

    events = decoder.decode_all([broken, _log(POOL_ADDRESS, _topic(POOL_CORE_ABI, "PoolSettled"), block=10, index=2)])
    assert [(e.name, e.log_index) for e in events] == [("PoolSettled", 2)]


def test_decoder_without_oddyssey_binds_pools_only():
    decoder = build_decoder(pool_contracts=[_contract(POOL_ADDRESS, {})], oddyssey=None)
    assert [a.lower() for a in decoder.addresses] == [POOL_ADDRESS]


def _sync(db, client, decoder, mirror, **params):
    return ChainEventSync(
        database=db,
        client=client,
        decoder=decoder,
        mirror=mirror,
        start_block=100,
        params=SyncParams(**params),
    )


def _db(cursor=None):
    db = MagicMock()
    db.read = AsyncMock(return_value=[{"last_block": cursor}] if cursor is not None else [])
    db.write = AsyncMock(return_value=1)
    return db


@pytest.mark.parametrize("cursor,expected", [(None, 100), (5000, 4989), (105, 100)])
def test_scan_start_rereads_reorg_tail(cursor, expected):
    sync = _sync(_db(), MagicMock(), MagicMock(), MagicMock(), reorg_depth=12)
    assert sync.scan_start(cursor) == expected


@pytest.mark.asyncio
async def test_run_once_chunks_and_advances_cursor():
    db = _db(cursor=4999)
    client = MagicMock()
    client.block_number = AsyncMock(return_value=9000)
    client.get_logs = AsyncMock(side_effect=lambda start, end, addresses: [{"block": start}])
    decoder = MagicMock()
    decoder.addresses = [POOL_ADDRESS]
    decoder.decode_all = MagicMock(side_effect=lambda logs: [_event("BetPlaced", logs[0]["block"])])
    mirror = MagicMock()
    mirror.apply = AsyncMock()

    report = await _sync(db, client, decoder, mirror, reorg_depth=12, max_block_range=2000).run_once()

    ranges = [c.args[:2] for c in client.get_logs.await_args_list]
    assert ranges == [(4988, 6987), (6988, 8987), (8988, 9000)]
    cursors = [c.kwargs["params"]["last_block"] for c in db.write.await_args_list]
    assert cursors == [6987, 8987, 9000]
    assert mirror.apply.await_count == 3
    assert report.from_block == 4988
    assert report.to_block == 9000
    assert report.logs == 3
    assert report.events == {"BetPlaced": 3}
    assert report.mirrored == 3


@pytest.mark.asyncio
async def test_run_once_waits_for_start_block():
    db = _db()
    client = MagicMock()
    client.block_number = AsyncMock(return_value=50)
    client.get_logs = AsyncMock()

    report = await _sync(db, client, MagicMock(), MagicMock()).run_once()

    assert report.from_block is None
    client.get_logs.assert_not_awaited()
    db.write.assert_not_awaited()


@pytest.mark.asyncio
async def test_mirror_failure_keeps_cursor_before_failed_chunk():
    db = _db(cursor=200)
    client = MagicMock()
    client.block_number = AsyncMock(return_value=4000)
    client.get_logs = AsyncMock(side_effect=lambda start, end, addresses: [{"block": start}])
    decoder = MagicMock()
    decoder.addresses = [POOL_ADDRESS]
    decoder.decode_all = MagicMock(side_effect=lambda logs: [_event("PoolSettled", logs[0]["block"])])
    mirror = MagicMock()
    mirror.apply = AsyncMock(side_effect=[None, RuntimeError("constraint violated")])

    with pytest.raises(RuntimeError):
        await _sync(db, client, decoder, mirror, reorg_depth=1, max_block_range=2000).run_once()

    cursors = [c.kwargs["params"]["last_block"] for c in db.write.await_args_list]
    assert cursors == [2199]


@pytest.mark.asyncio
async def test_block_time_is_cached_per_block():
    client = MagicMock()
    client.block_timestamp = AsyncMock(return_value=1740852000)
    sync = _sync(_db(), client, MagicMock(), MagicMock())

    first = await sync.block_time(123)
    second = await sync.block_time(123)

    assert first == second == datetime(2025, 3, 1, 18, 0, tzinfo=timezone.utc)
    client.block_timestamp.assert_awaited_once_with(123)
