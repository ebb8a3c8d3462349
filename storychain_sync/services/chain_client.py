"""
EVM JSON-RPC client for the StoryChain contract.
Provides log discovery over arbitrary block ranges, live log subscriptions
and the typed contract reads used for enrichment.
"""

import asyncio
import json
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

import structlog
import websockets
from web3 import AsyncWeb3, Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, TransactionNotFound

from storychain_sync.core.config import settings, ChainConfig
from storychain_sync.core.exceptions import (
    ConfigurationError,
    InvalidRangeError,
    SourceUnavailableError,
)
from storychain_sync.services.contract_abi import EVENT_TOPICS, STORYCHAIN_READ_ABI


logger = structlog.get_logger(__name__)

# Substrings nodes use when a getLogs window is too wide
RANGE_TOO_LARGE_MARKERS = (
    "query returned more than",
    "too many",
    "block range",
    "range too large",
    "limit exceeded",
)

TIMESTAMP_CACHE_SIZE = 4096

COMMENT_SCAN_LIMIT = 20
COMMENT_MATCH_WINDOW = 300  # seconds


@dataclass(frozen=True)
class RawLog:
    """A contract log as delivered by the node, normalized."""
    address: str
    topics: Tuple[str, ...]
    data: str
    block_number: int
    transaction_hash: str
    log_index: int
    timestamp: Optional[int] = None
    removed: bool = False

    @property
    def position(self) -> Tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass
class Receipt:
    """Transaction receipt summary."""
    transaction_hash: str
    block_number: int
    status: int
    logs: List[RawLog] = field(default_factory=list)


@dataclass
class ChapterDetails:
    """Chapter state read from the contract's getChapter()."""
    chapter_id: str
    story_id: str
    parent_id: str
    author: str
    ipfs_hash: str
    created_time: int
    likes: int
    fork_count: int
    fork_fee: int
    total_tips: int
    total_tip_count: int
    chapter_number: int


@dataclass
class CommentDetails:
    """Comment state read from the contract's comments(tokenId, index) getter."""
    token_id: str
    commenter: str
    ipfs_hash: str
    timestamp: int


BatchCallback = Callable[[List[RawLog]], Awaitable[None]]


def _to_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def normalize_log(entry: Mapping[str, Any]) -> RawLog:
    """Build a RawLog from a web3 AttributeDict or a raw JSON-RPC log object."""
    return RawLog(
        address=_to_hex(entry.get("address", "")).lower(),
        topics=tuple(_to_hex(topic).lower() for topic in entry.get("topics", [])),
        data=_to_hex(entry.get("data", "0x")),
        block_number=_to_int(entry.get("blockNumber", 0)),
        transaction_hash=_to_hex(entry.get("transactionHash", "")).lower(),
        log_index=_to_int(entry.get("logIndex", 0)),
        removed=bool(entry.get("removed", False)),
    )


def _is_range_too_large(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in RANGE_TOO_LARGE_MARKERS)


class Subscription:
    """Handle to a running log subscription."""

    def __init__(self, task: asyncio.Task, mode: str):
        self._task = task
        self.mode = mode

    @property
    def active(self) -> bool:
        return not self._task.done()

    async def cancel(self):
        """Stop delivery and wait for the subscription task to exit."""
        if not self._task.done():
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class ChainClient:
    """
    Async EVM RPC client scoped to the StoryChain contract.

    Provides high-level methods for:
    - Paginated log discovery with adaptive window sizing
    - Push delivery via eth_subscribe, with head polling as fallback
    - Block timestamps, receipts and contract code
    - Typed reads of chapter and comment state
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        ws_url: Optional[str] = None,
        contract_address: Optional[str] = None,
    ):
        """Initialize chain client with configuration."""
        self.rpc_config = ChainConfig.get_rpc_config()
        self.rpc_url = rpc_url or self.rpc_config["endpoint"]
        self.ws_url = ws_url if ws_url is not None else self.rpc_config["ws_endpoint"]
        self.raw_contract_address = contract_address or settings.contract_address
        self.max_block_range = self.rpc_config["max_block_range"]
        self.head_poll_interval = self.rpc_config["head_poll_interval"]
        self.max_backoff = settings.max_retry_delay
        self.reconnect_delay = 1.0
        self.topics = list(EVENT_TOPICS.keys())

        self.w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                self.rpc_url,
                request_kwargs={"timeout": self.rpc_config["timeout"]},
            )
        )
        self.logger = logger.bind(service="chain_client")

        self._timestamps: "OrderedDict[int, int]" = OrderedDict()
        self._subscriptions: List[Subscription] = []

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        """Cancel subscriptions and release the HTTP session."""
        for subscription in self._subscriptions:
            await subscription.cancel()
        self._subscriptions.clear()

        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    @property
    def contract_address(self) -> str:
        """Checksummed contract address; raises ConfigurationError when unusable."""
        if not self.raw_contract_address:
            raise ConfigurationError("Contract address is not configured")
        try:
            return Web3.to_checksum_address(self.raw_contract_address)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid contract address: {self.raw_contract_address}",
                {"error": str(e)}
            )

    async def get_health(self) -> bool:
        """Check if the RPC endpoint is reachable."""
        try:
            return await self.w3.is_connected()
        except Exception as e:
            self.logger.error("Health check failed", error=str(e))
            return False

    async def get_current_height(self) -> int:
        """Get the latest block number."""
        try:
            return int(await self.w3.eth.block_number)
        except Exception as e:
            self.logger.warning("Failed to get block number", error=str(e))
            raise SourceUnavailableError(f"Failed to get block number: {e}")

    async def get_block_timestamp(self, block_number: int) -> int:
        """Get the unix timestamp of a block, cached."""
        cached = self._timestamps.get(block_number)
        if cached is not None:
            self._timestamps.move_to_end(block_number)
            return cached

        try:
            block = await self.w3.eth.get_block(block_number)
        except Exception as e:
            raise SourceUnavailableError(
                f"Failed to get block {block_number}: {e}",
                {"block_number": block_number}
            )

        timestamp = int(block["timestamp"])
        self._timestamps[block_number] = timestamp
        if len(self._timestamps) > TIMESTAMP_CACHE_SIZE:
            self._timestamps.popitem(last=False)
        return timestamp

    async def get_logs(self, from_block: int, to_block: int) -> List[RawLog]:
        """
        Get every contract log in ``[from_block, to_block]``.

        The range is walked in windows of ``rpc_max_block_range`` blocks;
        the window is halved whenever the node refuses it as too large.
        Results are sorted by (block_number, log_index) and carry their
        block timestamp.
        """
        if from_block > to_block:
            raise InvalidRangeError(from_block, to_block)

        address = self.contract_address
        collected: List[RawLog] = []
        current = from_block
        window = self.max_block_range

        while current <= to_block:
            window_end = min(current + window - 1, to_block)
            try:
                entries = await self.w3.eth.get_logs({
                    "fromBlock": current,
                    "toBlock": window_end,
                    "address": address,
                    "topics": [self.topics],
                })
            except Exception as e:
                if window > 1 and _is_range_too_large(e):
                    window = max(window // 2, 1)
                    self.logger.warning(
                        "getLogs window too large, shrinking",
                        from_block=current,
                        to_block=window_end,
                        window=window
                    )
                    continue
                raise SourceUnavailableError(
                    f"Failed to get logs: {e}",
                    {"from_block": current, "to_block": window_end}
                )

            collected.extend(normalize_log(entry) for entry in entries)
            current = window_end + 1

        collected.sort(key=lambda log: log.position)
        return await self._attach_timestamps(collected)

    async def _attach_timestamps(self, logs: List[RawLog]) -> List[RawLog]:
        timestamps: Dict[int, int] = {}
        for log in logs:
            if log.timestamp is None and log.block_number not in timestamps:
                timestamps[log.block_number] = await self.get_block_timestamp(log.block_number)
        return [
            log if log.timestamp is not None else replace(log, timestamp=timestamps[log.block_number])
            for log in logs
        ]

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        """Get a transaction receipt, or None if the node does not know it."""
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            raise SourceUnavailableError(
                f"Failed to get receipt: {e}",
                {"transaction_hash": tx_hash}
            )

        return Receipt(
            transaction_hash=_to_hex(receipt["transactionHash"]).lower(),
            block_number=int(receipt["blockNumber"]),
            status=int(receipt.get("status", 1)),
            logs=[normalize_log(entry) for entry in receipt.get("logs", [])],
        )

    async def get_code(self, address: Optional[str] = None) -> bytes:
        """Get deployed bytecode at an address (the contract by default)."""
        target = Web3.to_checksum_address(address) if address else self.contract_address
        try:
            return bytes(await self.w3.eth.get_code(target))
        except Exception as e:
            raise SourceUnavailableError(f"Failed to get code: {e}", {"address": target})

    def _contract(self):
        return self.w3.eth.contract(address=self.contract_address, abi=STORYCHAIN_READ_ABI)

    async def get_chapter(self, chapter_id: str) -> Optional[ChapterDetails]:
        """Read a chapter from the contract; None if it does not exist."""
        try:
            result = await self._contract().functions.getChapter(int(chapter_id)).call()
        except (ContractLogicError, BadFunctionCallOutput):
            return None
        except Exception as e:
            raise SourceUnavailableError(
                f"Failed to read chapter: {e}",
                {"chapter_id": chapter_id}
            )

        return ChapterDetails(
            chapter_id=str(result[0]),
            parent_id=str(result[1]),
            story_id=str(result[2]),
            author=str(result[3]).lower(),
            ipfs_hash=result[4],
            created_time=int(result[5]),
            likes=int(result[6]),
            fork_count=int(result[7]),
            fork_fee=int(result[8]),
            total_tips=int(result[10]),
            total_tip_count=int(result[11]),
            chapter_number=int(result[12]),
        )

    async def get_comment(self, chapter_id: str, index: int) -> Optional[CommentDetails]:
        """Read one comment of a chapter; None past the end of the list."""
        try:
            token_id, commenter, ipfs_hash, timestamp = await self._contract().functions.comments(
                int(chapter_id), index
            ).call()
        except (ContractLogicError, BadFunctionCallOutput):
            return None
        except Exception as e:
            raise SourceUnavailableError(
                f"Failed to read comment: {e}",
                {"chapter_id": chapter_id, "index": index}
            )

        return CommentDetails(
            token_id=str(token_id),
            commenter=str(commenter).lower(),
            ipfs_hash=ipfs_hash,
            timestamp=int(timestamp),
        )

    def subscribe(self, on_batch: BatchCallback) -> Subscription:
        """
        Push new contract logs to ``on_batch`` until cancelled.

        Uses eth_subscribe over a websocket when ``ws_url`` is configured,
        otherwise watches the head via polling.
        """
        if self.ws_url:
            task = asyncio.create_task(self._websocket_loop(on_batch))
            subscription = Subscription(task, "websocket")
        else:
            task = asyncio.create_task(self._head_poll_loop(on_batch))
            subscription = Subscription(task, "polling")

        self._subscriptions.append(subscription)
        self.logger.info("Log subscription started", mode=subscription.mode)
        return subscription

    def _subscribe_payload(self) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_subscribe",
            "params": ["logs", {"address": self.contract_address, "topics": [self.topics]}],
        }

    async def _deliver(self, on_batch: BatchCallback, logs: List[RawLog]):
        try:
            await on_batch(logs)
        except Exception as e:
            self.logger.error("Subscriber failed to handle batch", error=str(e), logs=len(logs))

    def _next_backoff(self, backoff: float) -> float:
        return min(backoff * 2, self.max_backoff)

    async def _websocket_loop(self, on_batch: BatchCallback):
        backoff = self.reconnect_delay

        while True:
            try:
                async with websockets.connect(self.ws_url, ping_interval=20, ping_timeout=20) as ws:
                    await ws.send(json.dumps(self._subscribe_payload()))
                    response = json.loads(await ws.recv())
                    if "error" in response:
                        raise SourceUnavailableError(
                            f"eth_subscribe rejected: {response['error']}"
                        )

                    self.logger.info("Subscribed to contract logs", subscription_id=response.get("result"))
                    backoff = self.reconnect_delay

                    async for message in ws:
                        payload = json.loads(message)
                        if payload.get("method") != "eth_subscription":
                            continue

                        entry = payload.get("params", {}).get("result")
                        if not entry:
                            continue

                        log = normalize_log(entry)
                        if log.removed:
                            self.logger.debug("Ignoring removed log", tx_hash=log.transaction_hash)
                            continue

                        await self._deliver(on_batch, await self._attach_timestamps([log]))

            except ConfigurationError:
                raise
            except Exception as e:
                self.logger.warning("Websocket subscription lost, reconnecting", error=str(e), backoff=backoff)
                await asyncio.sleep(backoff)
                backoff = self._next_backoff(backoff)

    async def _head_poll_loop(self, on_batch: BatchCallback):
        last_seen: Optional[int] = None
        backoff = self.head_poll_interval

        while True:
            try:
                head = await self.get_current_height()
                if last_seen is None:
                    last_seen = head
                elif head > last_seen:
                    logs = await self.get_logs(last_seen + 1, head)
                    last_seen = head
                    if logs:
                        await self._deliver(on_batch, logs)
                backoff = self.head_poll_interval
                await asyncio.sleep(self.head_poll_interval)

            except SourceUnavailableError as e:
                self.logger.warning("Head polling failed", error=str(e), backoff=backoff)
                await asyncio.sleep(backoff)
                backoff = self._next_backoff(backoff)


async def find_comment_hash(
    client,
    chapter_id: str,
    commenter: str,
    timestamp: int,
    max_index: int = COMMENT_SCAN_LIMIT,
    window_seconds: int = COMMENT_MATCH_WINDOW,
) -> Optional[str]:
    """
    Recover a comment's content reference from the contract.

    CommentAdded does not carry the hash, so the chapter's comment list is
    scanned for an entry by the same commenter within ``window_seconds``
    of the event's block time.
    """
    commenter = commenter.lower()
    for index in range(max_index):
        comment = await client.get_comment(chapter_id, index)
        if comment is None:
            break
        if comment.commenter == commenter and abs(comment.timestamp - timestamp) < window_seconds:
            return comment.ipfs_hash or None
    return None


# Global client instance
_client: Optional[ChainClient] = None


async def get_chain_client() -> ChainClient:
    """Get or create a global chain client instance."""
    global _client
    if _client is None:
        _client = ChainClient()
    return _client


async def close_chain_client():
    """Close the global chain client instance."""
    global _client
    if _client:
        await _client.close()
        _client = None
