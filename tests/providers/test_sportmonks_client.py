import asyncio
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from bitredict.providers.sportmonks.client import SportMonksClient
from bitredict.providers.sportmonks.config import SportMonksConfig
from bitredict.shared.errors import PermanentError, TransientError

NOW = datetime(2025, 3, 1, 18, 0, tzinfo=timezone.utc)


def _score(description, home, away):
    return [
        {"description": description, "score": {"goals": home, "participant": "home"}},
        {"description": description, "score": {"goals": away, "participant": "away"}},
    ]


def _fixture(fixture_id, state, scores, *, kickoff=None):
    kickoff = kickoff or NOW - timedelta(hours=4)
    return {
        "id": fixture_id,
        "starting_at_timestamp": int(kickoff.timestamp()),
        "length": 90,
        "state": {"developer_name": state},
        "scores": scores,
    }


def _client(payload_by_path, **kwargs):
    client = SportMonksClient(api_token="token", now_fn=lambda: NOW, **kwargs)

    async def fake_get_json(path, params=None):
        return payload_by_path(path, params)

    client._get_json = fake_get_json
    return client


def _fetch(client, ids, terminal_seen=None):
    if terminal_seen is None:
        terminal_seen = {i: NOW - timedelta(hours=3) for i in ids}

    async def _run():
        try:
            return await client.fetch_fixture_results(ids, terminal_seen)
        finally:
            await client.close()

    return asyncio.run(_run())


def test_full_time_result_uses_current_score():
    payload = {"data": [_fixture(1, "FT", _score("1ST_HALF", 1, 0) + _score("CURRENT", 2, 1))]}
    [record] = _fetch(_client(lambda path, params: payload), [1])
    assert record.is_final
    assert (record.ft_home_score, record.ft_away_score) == (2, 1)
    assert (record.ht_home_score, record.ht_away_score) == (1, 0)


def test_extra_time_result_uses_regulation_score():
    scores = _score("1ST_HALF", 1, 0) + _score("2ND_HALF", 0, 1) + _score("CURRENT", 2, 1)
    payload = {"data": [_fixture(2, "AET", scores)]}
    [record] = _fetch(_client(lambda path, params: payload), [2])
    assert (record.ft_home_score, record.ft_away_score) == (1, 1)
    assert (record.final_home_score, record.final_away_score) == (2, 1)
    assert record.is_final


def test_penalty_result_keeps_shootout_separate():
    scores = (
        _score("1ST_HALF", 0, 0)
        + _score("2ND_HALF", 1, 1)
        + _score("CURRENT", 1, 1)
        + _score("PENALTY_SHOOTOUT", 4, 3)
    )
    payload = {"data": [_fixture(3, "FT_PEN", scores)]}
    [record] = _fetch(_client(lambda path, params: payload), [3])
    assert (record.ft_home_score, record.ft_away_score) == (1, 1)
    assert (record.penalty_home_score, record.penalty_away_score) == (4, 3)


@pytest.mark.parametrize("minutes_since_end, finished", [(14, False), (16, True)])
def test_terminal_guard(minutes_since_end, finished):
    # regulation 90 + 15 minute break
    kickoff = NOW - timedelta(minutes=105 + minutes_since_end)
    payload = {"data": [_fixture(4, "FT", _score("1ST_HALF", 0, 0) + _score("CURRENT", 0, 0), kickoff=kickoff)]}
    [record] = _fetch(_client(lambda path, params: payload), [4])
    assert (record.finished_at is not None) is finished
    assert record.ended_at == kickoff + timedelta(minutes=105)


def test_first_terminal_sighting_starts_the_guard():
    # play ended long ago by the clock, but FT is reported for the first time now
    kickoff = NOW - timedelta(hours=3)
    payload = {"data": [_fixture(4, "FT", _score("1ST_HALF", 1, 0) + _score("CURRENT", 1, 0), kickoff=kickoff)]}
    [record] = _fetch(_client(lambda path, params: payload), [4], terminal_seen={})
    assert not record.is_final
    assert record.terminal_seen_at == NOW


@pytest.mark.parametrize("minutes_since_seen, finished", [(14, False), (16, True)])
def test_guard_runs_from_later_sighting(minutes_since_seen, finished):
    kickoff = NOW - timedelta(hours=3)
    seen = NOW - timedelta(minutes=minutes_since_seen)
    payload = {"data": [_fixture(4, "FT", _score("1ST_HALF", 1, 0) + _score("CURRENT", 1, 0), kickoff=kickoff)]}
    [record] = _fetch(_client(lambda path, params: payload), [4], terminal_seen={4: seen})
    assert record.is_final is finished
    assert record.terminal_seen_at == seen
    if finished:
        assert record.finished_at == seen


def test_in_play_fixture_is_not_final():
    payload = {"data": [_fixture(5, "INPLAY_2ND_HALF", _score("CURRENT", 1, 0))]}
    [record] = _fetch(_client(lambda path, params: payload), [5])
    assert record.status == "INPLAY_2ND_HALF"
    assert record.finished_at is None
    assert record.problem is None


def test_semantic_problems_are_reported_per_record():
    payload = {
        "data": [
            _fixture(6, "FT", _score("CURRENT", 2, 0)),
            _fixture(7, "FT", _score("1ST_HALF", 3, 0) + _score("CURRENT", 2, 0)),
            _fixture(8, "FT", _score("1ST_HALF", 0, 0) + _score("CURRENT", -1, 0)),
        ]
    }
    records = {r.fixture_id: r for r in _fetch(_client(lambda path, params: payload), [6, 7, 8, 9])}
    assert records[6].problem == "missing_half_time_score"
    assert records[7].problem == "half_time_exceeds_full_time"
    assert records[8].problem.startswith("negative_score")
    assert records[9].problem == "not_found_in_provider"
    assert not any(r.is_final for r in records.values())


def test_results_are_batched():
    paths = []

    def respond(path, params):
        paths.append(path)
        return {"data": []}

    client = _client(respond, config=SportMonksConfig(batch_size=2))
    records = _fetch(client, [1, 2, 2, 3])
    assert paths == ["/fixtures/multi/1,2", "/fixtures/multi/3"]
    assert [r.fixture_id for r in records] == [1, 2, 3]


def test_fetch_fixtures_between_maps_snapshot_and_odds():
    item = {
        "id": 42,
        "starting_at": "2025-03-02 15:00:00",
        "state": {"developer_name": "NS"},
        "participants": [
            {"id": 1, "name": "Arsenal", "meta": {"location": "home"}},
            {"id": 2, "name": "Chelsea", "meta": {"location": "away"}},
        ],
        "league": {"id": 8, "name": "Premier League", "country": {"name": "England"}},
        "odds": [
            {"market_id": 1, "bookmaker_id": 2, "label": "Home", "value": "1.85"},
            {"market_id": 1, "bookmaker_id": 2, "label": "Draw", "value": "3.40"},
            {"market_id": 1, "bookmaker_id": 2, "label": "Away", "value": "4.20"},
            {"market_id": 80, "bookmaker_id": 2, "label": "Over", "value": "1.90", "total": "2.5"},
            {"market_id": 80, "bookmaker_id": 2, "label": "Under", "value": "1.95", "total": "2.5"},
            {"market_id": 80, "bookmaker_id": 2, "label": "Over", "value": "1.30", "total": "1.5"},
        ],
    }
    pages = []

    def respond(path, params):
        pages.append(params["page"])
        return {"data": [item], "pagination": {"has_more": params["page"] < 2}}

    async def _run():
        client = _client(respond)
        try:
            return await client.fetch_fixtures_between(date(2025, 3, 2), date(2025, 3, 3))
        finally:
            await client.close()

    snapshots = asyncio.run(_run())
    assert pages == [1, 2]
    snap = snapshots[0]
    assert snap.starting_at == datetime(2025, 3, 2, 15, 0, tzinfo=timezone.utc)
    assert (snap.home_team, snap.away_team) == ("Arsenal", "Chelsea")
    assert (snap.league_name, snap.country) == ("Premier League", "England")
    assert snap.odds == {"home": 1.85, "draw": 3.4, "away": 4.2, "over_25": 1.9, "under_25": 1.95}


def _mock_transport_client(handler, **kwargs):
    client = SportMonksClient(api_token="token", max_retries=0, **kwargs)
    client._client = httpx.AsyncClient(base_url="https://sportmonks.test", transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [(404, PermanentError), (401, PermanentError), (429, TransientError), (503, TransientError)],
)
async def test_http_status_mapping(status, error):
    client = _mock_transport_client(lambda request: httpx.Response(status, json={}))
    try:
        with pytest.raises(error):
            await client._get_json("/fixtures/1")
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_auth_header_is_sent():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"data": []})

    client = _mock_transport_client(handler)
    try:
        assert await client._get_json("/fixtures/1") == {"data": []}
    finally:
        await client.close()
    assert seen["auth"] == "token"


@pytest.mark.asyncio
async def test_missing_token_is_permanent(monkeypatch):
    monkeypatch.delenv("SPORTMONKS_API_TOKEN", raising=False)
    client = SportMonksClient(api_token=None)
    try:
        with pytest.raises(PermanentError):
            await client._get_json("/fixtures/1")
    finally:
        await client.close()
