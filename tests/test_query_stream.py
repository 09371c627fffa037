from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.settings import settings
from app.services import query_stream


def _event(**overrides) -> dict:
    event = {
        "id": "g-1",
        "appNo": "SNP1",
        "status": "pending",
        "team": "sales",
        "markedForTeam": "sales",
        "sendTo": ["Sales"],
        "sendToSales": True,
        "sendToCredit": False,
        "action": "created",
    }
    event.update(overrides)
    return event


def test_build_event_keeps_dashboard_fields():
    group = {**_event(), "messages": [{"text": "x"}], "queries": []}
    event = query_stream.build_event(group, "updated", subQueryId=None, updatedBy="Meera")
    assert event["action"] == "updated"
    assert event["updatedBy"] == "Meera"
    assert "subQueryId" not in event
    assert "messages" not in event
    assert event["sendToSales"] is True


@pytest.mark.parametrize(
    ("team", "event", "expected"),
    [
        (None, _event(), True),
        ("operations", _event(markedForTeam="credit", team="credit"), True),
        ("sales", _event(), True),
        ("credit", _event(), False),
        ("credit", _event(markedForTeam="operations", sendTo=["Credit"], sendToSales=False), True),
        ("Sales", _event(markedForTeam="operations", team="operations", sendTo=["Both"],
                         sendToSales=False), False),
    ],
)
def test_team_filtering(team, event, expected):
    assert query_stream.event_matches_team(event, team) is expected


def test_channel_and_log_keys():
    assert query_stream.channel_for_org("acme") == "query_updates:acme"
    assert query_stream.log_key_for_org("acme") == "query_update_log:acme"


@pytest.mark.asyncio
async def test_broadcast_logs_and_publishes(fake_redis):
    await query_stream.broadcast("default", _event())
    channel, _ = fake_redis.published[0]
    assert channel == "query_updates:default"
    logged = await query_stream.recent_updates("default")
    assert logged[0]["id"] == "g-1"
    assert "loggedAt" in logged[0]


@pytest.mark.asyncio
async def test_update_log_is_capped(fake_redis, monkeypatch):
    monkeypatch.setattr(settings, "query_update_log_max_entries", 3)
    for index in range(5):
        await query_stream.broadcast("default", _event(id=f"g-{index}"))
    logged = await query_stream.recent_updates("default")
    assert [entry["id"] for entry in logged] == ["g-2", "g-3", "g-4"]


@pytest.mark.asyncio
async def test_recent_updates_since(fake_redis):
    await query_stream.broadcast("default", _event(id="old"))
    cutoff = datetime.now(timezone.utc)
    key = query_stream.log_key_for_org("default")
    fake_redis.lists[key].append(
        '{"id": "new", "loggedAt": "%s"}' % (cutoff + timedelta(seconds=5)).isoformat()
    )
    fake_redis.lists[key].append("not json")

    entries = await query_stream.recent_updates("default", since=cutoff.replace(tzinfo=None))

    assert [entry["id"] for entry in entries] == ["new"]


@pytest.mark.asyncio
async def test_broadcast_never_raises(fake_redis):
    fake_redis.fail_with = RedisConnectionError("redis down")
    await query_stream.broadcast("default", _event())
    assert fake_redis.published == []


def test_poll_route_filters_by_team(client, fake_redis):
    key = query_stream.log_key_for_org("default")
    fake_redis.lists[key].extend(
        [
            '{"id": "s", "markedForTeam": "sales", "loggedAt": "2026-01-05T10:00:00+00:00"}',
            '{"id": "c", "markedForTeam": "credit", "loggedAt": "2026-01-05T10:00:01+00:00"}',
        ]
    )
    resp = client.get("/api/v1/query-updates?team=credit")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [entry["id"] for entry in data["updates"]] == ["c"]
    assert data["count"] == 1
    assert "serverTime" in data


def test_poll_route_redis_down(client, fake_redis):
    fake_redis.fail_with = RedisConnectionError("redis down")
    resp = client.get("/api/v1/query-updates")
    assert resp.status_code == 503
    assert resp.json()["code"] == "service_unavailable"
