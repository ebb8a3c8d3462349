"""
Tests for the EVM chain client helpers.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import websockets
from web3.exceptions import TransactionNotFound

from storychain_sync.core.exceptions import (
    ConfigurationError,
    InvalidRangeError,
    SourceUnavailableError,
)
from storychain_sync.services.chain_client import (
    ChainClient,
    CommentDetails,
    find_comment_hash,
    normalize_log,
)

from tests.helpers import BOB, CONTRACT, FakeChainClient


def make_client(max_block_range=100):
    client = ChainClient(rpc_url="http://127.0.0.1:8545", ws_url="", contract_address=CONTRACT)
    client.max_block_range = max_block_range
    client.w3 = MagicMock()
    client.w3.eth.get_block = AsyncMock(side_effect=lambda number: {"timestamp": 1000 + number})
    return client


def rpc_log(block_number, log_index=0):
    return {
        "address": CONTRACT,
        "topics": ["0x" + "ab" * 32],
        "data": "0x",
        "blockNumber": hex(block_number),
        "transactionHash": "0x" + "CD" * 32,
        "logIndex": hex(log_index),
        "removed": False,
    }


def test_normalize_json_rpc_log():
    log = normalize_log(rpc_log(0x64, 2))

    assert log.block_number == 100
    assert log.log_index == 2
    assert log.transaction_hash == "0x" + "cd" * 32
    assert log.topics == ("0x" + "ab" * 32,)
    assert log.timestamp is None


def test_normalize_web3_log_with_bytes():
    entry = {
        "address": CONTRACT,
        "topics": [bytes.fromhex("ab" * 32)],
        "data": bytes.fromhex("00" * 32),
        "blockNumber": 7,
        "transactionHash": bytes.fromhex("ef" * 32),
        "logIndex": 0,
    }

    log = normalize_log(entry)

    assert log.topics == ("0x" + "ab" * 32,)
    assert log.data == "0x" + "00" * 32
    assert log.transaction_hash == "0x" + "ef" * 32
    assert log.removed is False


def test_contract_address_is_checksummed():
    client = make_client()
    assert client.contract_address.lower() == CONTRACT
    assert client.contract_address != CONTRACT


def test_invalid_contract_address():
    client = ChainClient(rpc_url="http://127.0.0.1:8545", ws_url="", contract_address="0x1234")

    with pytest.raises(ConfigurationError):
        client.contract_address


async def test_get_logs_sorts_and_attaches_timestamps():
    client = make_client()
    client.w3.eth.get_logs = AsyncMock(return_value=[rpc_log(12, 1), rpc_log(10, 0), rpc_log(12, 0)])

    logs = await client.get_logs(10, 20)

    assert [log.position for log in logs] == [(10, 0), (12, 0), (12, 1)]
    assert [log.timestamp for log in logs] == [1010, 1012, 1012]


async def test_get_logs_walks_windows():
    client = make_client(max_block_range=10)
    client.w3.eth.get_logs = AsyncMock(return_value=[])

    await client.get_logs(0, 24)

    ranges = [
        (call.args[0]["fromBlock"], call.args[0]["toBlock"])
        for call in client.w3.eth.get_logs.call_args_list
    ]
    assert ranges == [(0, 9), (10, 19), (20, 24)]


async def test_get_logs_halves_window_when_node_refuses():
    client = make_client(max_block_range=100)
    requested = []

    async def get_logs(params):
        requested.append((params["fromBlock"], params["toBlock"]))
        if params["toBlock"] - params["fromBlock"] + 1 > 25:
            raise ValueError("query returned more than 10000 results")
        return []

    client.w3.eth.get_logs = get_logs

    await client.get_logs(0, 99)

    served = [r for r in requested if r[1] - r[0] + 1 <= 25]
    assert requested[:3] == [(0, 99), (0, 49), (0, 24)]
    assert served[0] == (0, 24)
    assert served[-1][1] == 99
    # Served windows tile the range without gaps
    for previous, current in zip(served, served[1:]):
        assert current[0] == previous[1] + 1


async def test_get_logs_other_errors_are_source_unavailable():
    client = make_client()
    client.w3.eth.get_logs = AsyncMock(side_effect=ConnectionError("connection refused"))

    with pytest.raises(SourceUnavailableError):
        await client.get_logs(0, 10)


async def test_get_logs_rejects_inverted_range():
    client = make_client()

    with pytest.raises(InvalidRangeError):
        await client.get_logs(10, 5)


async def test_block_timestamps_are_cached():
    client = make_client()

    assert await client.get_block_timestamp(5) == 1005
    assert await client.get_block_timestamp(5) == 1005
    assert client.w3.eth.get_block.await_count == 1


async def test_find_comment_hash_matches_commenter_and_time():
    chain = FakeChainClient()
    chain.comments["10"] = [
        CommentDetails(token_id="10", commenter=BOB, ipfs_hash="QmOld", timestamp=1000),
        CommentDetails(token_id="10", commenter=BOB, ipfs_hash="QmNew", timestamp=5000),
    ]

    assert await find_comment_hash(chain, "10", BOB.upper().replace("0X", "0x"), 5010) == "QmNew"


async def test_find_comment_hash_outside_window():
    chain = FakeChainClient()
    chain.comments["10"] = [
        CommentDetails(token_id="10", commenter=BOB, ipfs_hash="QmOld", timestamp=1000),
    ]

    assert await find_comment_hash(chain, "10", BOB, 1000 + 300) is None


async def test_find_comment_hash_stops_at_end_of_list():
    chain = FakeChainClient()
    chain.get_comment = AsyncMock(return_value=None)

    assert await find_comment_hash(chain, "10", BOB, 1000) is None
    assert chain.get_comment.await_count == 1


async def test_get_receipt_normalizes_logs():
    client = make_client()
    client.w3.eth.get_transaction_receipt = AsyncMock(return_value={
        "transactionHash": bytes.fromhex("CD" * 32),
        "blockNumber": 100,
        "status": 1,
        "logs": [rpc_log(100, 1)],
    })

    receipt = await client.get_receipt("0x" + "cd" * 32)

    assert receipt.transaction_hash == "0x" + "cd" * 32
    assert receipt.block_number == 100
    assert receipt.status == 1
    assert [log.position for log in receipt.logs] == [(100, 1)]


async def test_get_receipt_not_found():
    client = make_client()
    client.w3.eth.get_transaction_receipt = AsyncMock(side_effect=TransactionNotFound("missing"))

    assert await client.get_receipt("0x" + "00" * 32) is None


async def wait_until(condition, attempts=200):
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


class FakeSocket:
    """Websocket stand-in replaying subscription notifications."""

    def __init__(self, entries, drop=True):
        self.entries = entries
        self.drop = drop
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def recv(self):
        return json.dumps({"jsonrpc": "2.0", "id": 1, "result": "0xsub"})

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for entry in self.entries:
            yield json.dumps({
                "jsonrpc": "2.0",
                "method": "eth_subscription",
                "params": {"subscription": "0xsub", "result": entry},
            })
        if self.drop:
            raise ConnectionError("connection closed")
        await asyncio.Event().wait()


def test_backoff_doubles_up_to_the_cap():
    client = make_client()
    client.max_backoff = 4

    delays = [1.0]
    for _ in range(3):
        delays.append(client._next_backoff(delays[-1]))

    assert delays == [1.0, 2.0, 4, 4]


async def test_head_polling_delivers_new_ranges():
    client = make_client()
    client.head_poll_interval = 0
    heads = iter([100, 103, SourceUnavailableError("node down"), 105])

    async def current_height():
        value = next(heads, 105)
        if isinstance(value, Exception):
            raise value
        return value

    client.get_current_height = current_height
    client.get_logs = AsyncMock(side_effect=lambda start, end: [normalize_log(rpc_log(end))])
    batches = []

    async def on_batch(logs):
        batches.append(logs)
        if len(batches) == 1:
            raise RuntimeError("subscriber failure")

    subscription = client.subscribe(on_batch)
    assert subscription.mode == "polling"

    await wait_until(lambda: len(batches) == 2)
    await subscription.cancel()

    ranges = [call.args for call in client.get_logs.call_args_list]
    assert ranges == [(101, 103), (104, 105)]
    assert [logs[0].block_number for logs in batches] == [103, 105]
    assert not subscription.active


async def test_cancelled_subscription_stops_delivery():
    client = make_client()
    client.head_poll_interval = 0
    head = {"value": 10}

    async def current_height():
        return head["value"]

    client.get_current_height = current_height
    client.get_logs = AsyncMock(return_value=[normalize_log(rpc_log(11))])
    batches = []

    async def on_batch(logs):
        batches.append(logs)

    subscription = client.subscribe(on_batch)
    await asyncio.sleep(0.02)
    await subscription.cancel()

    head["value"] = 20
    await asyncio.sleep(0.02)

    assert batches == []
    assert client.get_logs.await_count == 0


async def test_websocket_subscription_drops_removed_logs_and_reconnects(monkeypatch):
    removed = dict(rpc_log(7, 0), removed=True)
    sockets = [
        FakeSocket([removed, rpc_log(7, 1)]),
        FakeSocket([rpc_log(8, 0)], drop=False),
    ]
    urls = []

    def connect(url, **kwargs):
        urls.append(url)
        return sockets[len(urls) - 1]

    monkeypatch.setattr(websockets, "connect", connect)

    client = make_client()
    client.ws_url = "ws://127.0.0.1:8546"
    client.reconnect_delay = 0
    batches = []

    async def on_batch(logs):
        batches.append(logs)

    subscription = client.subscribe(on_batch)
    assert subscription.mode == "websocket"

    await wait_until(lambda: len(batches) == 2)
    await subscription.cancel()

    assert urls == ["ws://127.0.0.1:8546", "ws://127.0.0.1:8546"]
    assert [logs[0].position for logs in batches] == [(7, 1), (8, 0)]
    assert [logs[0].timestamp for logs in batches] == [1007, 1008]

    request = sockets[0].sent[0]
    assert request["method"] == "eth_subscribe"
    assert request["params"][0] == "logs"
    assert request["params"][1]["address"] == client.contract_address
