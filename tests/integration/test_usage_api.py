from __future__ import annotations

import json

import pytest

pytestmark = pytest.mark.integration


async def _seed(async_client, fake_fetcher) -> dict[str, str]:
    fake_fetcher.set_usage("fk-alpha-0001", allowance=1000, used=400)
    fake_fetcher.set_usage("fk-bravo-0002", allowance=500, used=500)
    fake_fetcher.set_rejection("fk-charlie-0003", 401)
    ids: dict[str, str] = {}
    for label, secret in (("A", "fk-alpha-0001"), ("B", "fk-bravo-0002"), ("C", "fk-charlie-0003")):
        response = await async_client.post("/api/keys", json={"key": secret})
        ids[label] = response.json()["id"]
    return ids


def _sse_events(body: str) -> list[dict[str, object]]:
    events = []
    for block in body.split("\n\n"):
        for line in block.splitlines():
            if line.startswith("data: "):
                events.append(json.loads(line[len("data: ") :]))
    return events


@pytest.mark.asyncio
async def test_usage_api_no_credentials(async_client):
    response = await async_client.get("/api/data")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "no_credentials"

    stream = await async_client.get("/api/data/stream")
    assert stream.status_code == 400
    assert stream.json()["error"]["code"] == "no_credentials"


@pytest.mark.asyncio
async def test_usage_api_aggregate_view(async_client, fake_fetcher):
    ids = await _seed(async_client, fake_fetcher)

    response = await async_client.get("/api/data")

    assert response.status_code == 200
    payload = response.json()
    assert payload["totals"] == {"totalAllowance": 1500, "totalUsed": 900}
    assert payload["totalCount"] == 3
    assert isinstance(payload["updateTime"], str)
    assert [item["id"] for item in payload["data"]] == [ids["A"], ids["B"], ids["C"]]
    assert [item["classification"] for item in payload["data"]] == ["valid", "zero_balance", "invalid"]
    assert payload["data"][2]["error"] == "401"
    assert payload["data"][2]["statusCode"] == 401
    assert "fk-alpha-0001" not in response.text

    calls = len(fake_fetcher.calls)
    cached = await async_client.get("/api/data")
    assert cached.json()["totals"] == payload["totals"]
    assert len(fake_fetcher.calls) == calls

    await async_client.get("/api/data?refresh=true")
    assert len(fake_fetcher.calls) == calls + 3

    progress = await async_client.get("/api/data/progress")
    assert progress.status_code == 200
    assert progress.json() == {
        "completed": 3,
        "total": 3,
        "running": False,
        "totals": {"totalAllowance": 1500, "totalUsed": 900},
    }


@pytest.mark.asyncio
async def test_usage_api_write_invalidates_cached_view(async_client, fake_fetcher):
    await _seed(async_client, fake_fetcher)
    first = (await async_client.get("/api/data")).json()
    assert first["totalCount"] == 3

    fake_fetcher.set_usage("fk-delta-0004", allowance=100, used=0)
    await async_client.post("/api/keys", json={"key": "fk-delta-0004"})

    second = (await async_client.get("/api/data")).json()
    assert second["totalCount"] == 4
    assert second["totals"] == {"totalAllowance": 1600, "totalUsed": 900}


@pytest.mark.asyncio
async def test_usage_api_stream_reports_progress_then_view(async_client, fake_fetcher):
    await _seed(async_client, fake_fetcher)

    response = await async_client.get("/api/data/stream")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _sse_events(response.text)
    progress = [event for event in events if event["type"] == "progress"]
    assert [event["completed"] for event in progress] == [1, 2, 3]
    assert all(event["total"] == 3 for event in progress)
    assert events[-1]["type"] == "complete"
    view = events[-1]["view"]
    assert isinstance(view, dict)
    assert view["totals"] == {"totalAllowance": 1500, "totalUsed": 900}


@pytest.mark.asyncio
async def test_usage_api_cleanup_deletes_zero_balance_and_invalid(async_client, fake_fetcher):
    ids = await _seed(async_client, fake_fetcher)

    response = await async_client.post("/api/keys/cleanup")

    assert response.status_code == 200
    payload = response.json()
    assert payload["deletedCount"] == 2
    assert payload["totalRequested"] == 2
    remaining = [item["id"] for item in (await async_client.get("/api/keys")).json()["credentials"]]
    assert remaining == [ids["A"]]

    view = (await async_client.get("/api/data")).json()
    assert view["totalCount"] == 1


@pytest.mark.asyncio
async def test_usage_api_zero_balance_delete_keeps_invalid(async_client, fake_fetcher):
    ids = await _seed(async_client, fake_fetcher)

    response = await async_client.post("/api/keys/zero-balance/delete")

    assert response.json()["deletedCount"] == 1
    remaining = [item["id"] for item in (await async_client.get("/api/keys")).json()["credentials"]]
    assert remaining == [ids["A"], ids["C"]]


@pytest.mark.asyncio
async def test_usage_api_export_by_classification(async_client, fake_fetcher):
    await _seed(async_client, fake_fetcher)

    valid = await async_client.get("/api/keys/export?classification=valid")
    invalid = await async_client.get("/api/keys/export?classification=invalid")

    assert valid.json() == {"classification": "valid", "keys": ["fk-alpha-0001"]}
    assert invalid.json() == {"classification": "invalid", "keys": ["fk-charlie-0003"]}


@pytest.mark.asyncio
async def test_usage_api_auto_refresh_lifecycle(async_client):
    initial = await async_client.get("/api/auto-refresh")
    assert initial.status_code == 200
    assert initial.json() == {"running": False, "intervalSeconds": 0.0, "nextRunAt": None}

    rejected = await async_client.put("/api/auto-refresh", json={"enabled": True})
    assert rejected.status_code == 400
    assert rejected.json()["error"]["code"] == "invalid_interval"

    invalid = await async_client.put("/api/auto-refresh", json={"enabled": True, "intervalSeconds": 0})
    assert invalid.status_code == 422

    enabled = await async_client.put("/api/auto-refresh", json={"enabled": True, "intervalSeconds": 3600})
    assert enabled.status_code == 200
    enabled_payload = enabled.json()
    assert enabled_payload["running"] is True
    assert enabled_payload["intervalSeconds"] == 3600
    assert enabled_payload["nextRunAt"] is not None

    reset = await async_client.post("/api/auto-refresh/reset")
    assert reset.json()["running"] is True

    disabled = await async_client.put("/api/auto-refresh", json={"enabled": False})
    assert disabled.json()["running"] is False
    assert disabled.json()["nextRunAt"] is None
