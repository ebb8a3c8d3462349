"""
Tests for the HTTP API.
"""

import httpx
import pytest

from storychain_sync.api.main import create_app
from storychain_sync.core.config import settings

from tests.helpers import ALICE, FakeChainClient, ONE_ETHER, chapter_created, story_created, tip_sent


API = settings.api_v1_prefix


@pytest.fixture
async def client(indexer, chain):
    app = create_app()
    app.state.indexer = indexer
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def synced(indexer, chain):
    chain.logs = [
        story_created(1, 100, ipfs_hash="Qm1"),
        chapter_created(1, 10, 0, 101, ipfs_hash="Qm2"),
        tip_sent(1, 10, ONE_ETHER, 102),
    ]
    chain.head = 102
    await indexer.sync()


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["services"]["database"] == "healthy"
    assert body["services"]["chain"] == "healthy"


async def test_list_stories_uses_camel_case(client, indexer, chain):
    await synced(indexer, chain)

    response = await client.get(f"{API}/data/stories")

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 1
    story = body["data"][0]
    assert story["id"] == "1"
    assert story["ipfsHash"] == "Qm1"
    assert story["totalTips"] == "1000000000000000000"


async def test_get_chapter(client, indexer, chain):
    await synced(indexer, chain)

    response = await client.get(f"{API}/data/chapters/10")

    assert response.status_code == 200
    chapter = response.json()["data"]
    assert chapter["storyId"] == "1"
    assert chapter["chapterNumber"] == 1
    assert chapter["totalTips"] == str(ONE_ETHER)


async def test_missing_story_is_404(client):
    response = await client.get(f"{API}/data/stories/404")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "NOT_FOUND"


async def test_chapters_filter_by_story(client, indexer, chain):
    await synced(indexer, chain)

    response = await client.get(f"{API}/data/chapters", params={"storyId": "2"})

    assert response.status_code == 200
    assert response.json()["data"] == []


async def test_analytics(client, indexer, chain):
    await synced(indexer, chain)

    response = await client.get(f"{API}/data/analytics")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalStories"] == 1
    assert data["totalTips"] == str(2 * ONE_ETHER)
    assert data["topAuthors"][0]["address"] == ALICE


async def test_last_update(client, indexer, chain):
    await synced(indexer, chain)

    response = await client.get(f"{API}/data/last-update")

    assert response.json()["data"]["block"] == 102


async def test_monitor_status(client):
    response = await client.get(f"{API}/monitor/status")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["isMonitoring"] is False
    assert data["state"] == "stopped"


async def test_monitor_start_and_stop(client, indexer):
    response = await client.post(f"{API}/monitor/control", json={"action": "start"})
    assert response.status_code == 200
    assert response.json()["data"]["isMonitoring"] is True

    response = await client.post(f"{API}/monitor/control", json={"action": "stop"})
    assert response.status_code == 200
    assert response.json()["data"]["isMonitoring"] is False


async def test_monitor_rejects_unknown_action(client):
    response = await client.post(f"{API}/monitor/control", json={"action": "pause"})

    assert response.status_code == 422


async def test_monitor_start_with_bad_configuration(database):
    from storychain_sync.indexer.core.event_indexer import EventIndexer

    app = create_app()
    app.state.indexer = EventIndexer(chain_client=FakeChainClient(contract_address=None))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(f"{API}/monitor/control", json={"action": "start"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "CONFIGURATION_ERROR"


async def test_manual_sync(client, chain):
    chain.logs = [story_created(1, 100)]
    chain.head = 100

    response = await client.post(f"{API}/monitor/sync", json={"fromBlock": 0})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["events_applied"] == 1
    assert data["watermark"] == 100


async def test_manual_sync_rejects_negative_block(client):
    response = await client.post(f"{API}/monitor/sync", json={"fromBlock": -5})

    assert response.status_code == 422


async def test_direct_event(client):
    payload = {
        "type": "StoryCreated",
        "data": {"storyId": 9, "author": ALICE, "ipfsHash": "Qm9"},
        "blockNumber": 500,
        "transactionHash": "0xbeef",
        "logIndex": 0,
    }

    first = await client.post(f"{API}/monitor/events", json=payload)
    second = await client.post(f"{API}/monitor/events", json=payload)

    assert first.json()["data"]["outcome"] == "applied"
    assert second.json()["data"]["outcome"] == "duplicate"

    story = await client.get(f"{API}/data/stories/9")
    assert story.json()["data"]["ipfsHash"] == "Qm9"


async def test_direct_event_with_bad_payload(client):
    response = await client.post(
        f"{API}/monitor/events",
        json={"type": "TipSent", "data": {"storyId": 1}, "blockNumber": 1, "transactionHash": "0xbeef"},
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "DECODE_ERROR"
