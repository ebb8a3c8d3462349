"""
Main EventIndexer class: catch-up sync, live tail and lifecycle.
"""

import asyncio
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError

from storychain_sync.core.config import settings
from storychain_sync.core.database import get_async_session
from storychain_sync.core.exceptions import (
    ConfigurationError,
    InvalidRangeError,
    SourceUnavailableError,
    StoreError,
)
from storychain_sync.services.chain_client import (
    ChainClient,
    RawLog,
    close_chain_client,
    find_comment_hash,
    get_chain_client,
)
from storychain_sync.services.event_parser import EventParser, get_event_parser

from .types import (
    CHAPTER_EVENTS,
    ApplyOutcome,
    CommentAdded,
    DecodedEvent,
    DecodeError,
    EventKind,
    IndexerStatus,
    ProcessingStats,
    SyncResult,
)
from ..projection import ProjectionEngine
from ..watermark import WatermarkStore
from ..monitoring.realtime_monitor import RealtimeMonitor


logger = structlog.get_logger(__name__)


class EventIndexer:
    """
    Chain-to-store synchronizer for the StoryChain contract.

    Features:
    - Resumable catch-up from the persisted watermark in bounded chunks
    - Live tail via log subscription plus a periodic safety re-scan
    - One apply lock shared by every write path
    - Retry with exponential backoff while the node is unreachable
    """

    def __init__(
        self,
        chain_client: Optional[ChainClient] = None,
        event_parser: Optional[EventParser] = None,
        watermark_store: Optional[WatermarkStore] = None,
    ):
        """Initialize the event indexer."""
        self.logger = logger.bind(service="event_indexer")
        self.status = IndexerStatus.STOPPED
        self.stats = ProcessingStats()

        # Services
        self.chain_client = chain_client
        self.event_parser = event_parser or get_event_parser()
        self.watermark_store = watermark_store or WatermarkStore()
        self.projection = ProjectionEngine(self.stats)
        self._owns_client = chain_client is None

        # Components
        self.realtime_monitor: Optional[RealtimeMonitor] = None

        # Tuning
        self.chunk_size = settings.sync_chunk_size
        self.start_block = settings.start_block
        self.lookback_blocks = settings.default_lookback_blocks
        self.poll_interval = settings.poll_interval_seconds
        self.max_retries = settings.max_retries
        self.retry_delay = settings.retry_delay
        self.max_retry_delay = settings.max_retry_delay

        # Health
        self.degraded = False
        self.last_error: Optional[str] = None
        self.last_watermark: Optional[int] = None

        # Concurrency control
        self._apply_lock = asyncio.Lock()
        self._sync_in_progress = False
        self._inflight: Set[asyncio.Task] = set()
        self._startup_task: Optional[asyncio.Task] = None
        self._stop_generation = 0

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.dispose()

    async def initialize(self):
        """Resolve the chain client if none was injected."""
        if self.chain_client is None:
            self.chain_client = await get_chain_client()

    @property
    def contract_address(self) -> Optional[str]:
        if self.chain_client is None:
            return settings.contract_address
        return getattr(self.chain_client, "raw_contract_address", None)

    # Lifecycle

    async def start(self):
        """Validate configuration, catch up, then follow the chain head."""
        if self.status in (IndexerStatus.STARTING, IndexerStatus.RUNNING):
            self.logger.warning("Event indexer already running", state=self.status.value)
            return

        self.status = IndexerStatus.STARTING
        self.logger.info("Starting event indexer")

        try:
            await self.initialize()
            await self._validate_configuration()
        except ConfigurationError as e:
            self.status = IndexerStatus.STOPPED
            self.last_error = e.message
            self.logger.error("Invalid indexer configuration", error=e.message, details=e.details)
            raise

        self.stats.start_time = datetime.now(timezone.utc)

        # Tracked so stop() can cancel it between chunks
        task = self._startup_task = asyncio.ensure_future(self.sync())
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            self._startup_task = None

        if task.cancelled() or self.status != IndexerStatus.STARTING:
            self.logger.info("Start interrupted by stop request")
            return

        try:
            result = task.result()
            self.logger.info(
                "Initial catch-up finished",
                from_block=result.from_block,
                to_block=result.to_block,
                events=result.events_applied
            )
        except (SourceUnavailableError, StoreError) as e:
            self.logger.warning("Initial catch-up failed, continuing degraded", error=e.message)

        self.realtime_monitor = RealtimeMonitor(self)
        await self.realtime_monitor.start()

        self.status = IndexerStatus.RUNNING
        self.logger.info("Event indexer started", watermark=self.last_watermark)

    async def stop(self):
        """Stop live tail and wait for any in-flight apply cycle."""
        if self.status in (IndexerStatus.STOPPED, IndexerStatus.STOPPING):
            return

        self.status = IndexerStatus.STOPPING
        self._stop_generation += 1
        self.logger.info("Stopping event indexer")

        if self.realtime_monitor:
            await self.realtime_monitor.stop()
            self.realtime_monitor = None

        startup = self._startup_task
        if startup is not None and not startup.done():
            startup.cancel()
            await asyncio.wait({startup})

        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

        self.status = IndexerStatus.STOPPED
        self.logger.info("Event indexer stopped")

    async def dispose(self):
        """Stop and release the chain client."""
        await self.stop()

        if self.chain_client is not None and self._owns_client:
            await close_chain_client()
            self.chain_client = None

        self.logger.info("Event indexer disposed")

    async def get_status(self) -> Dict[str, Any]:
        """Get current indexer status and statistics."""
        stats = asdict(self.stats)
        if self.stats.start_time:
            stats["start_time"] = self.stats.start_time.isoformat()

        return {
            "isMonitoring": self.status == IndexerStatus.RUNNING,
            "contractAddress": self.contract_address,
            "lastWatermark": self.last_watermark,
            "state": self.status.value,
            "degraded": self.degraded,
            "lastError": self.last_error,
            "stats": stats,
        }

    async def _validate_configuration(self):
        if not self.contract_address:
            raise ConfigurationError("CONTRACT_ADDRESS is not configured")

        # Raises ConfigurationError for malformed addresses
        _ = self.chain_client.contract_address

        if self.chunk_size <= 0:
            raise ConfigurationError("sync_chunk_size must be positive", {"value": self.chunk_size})
        if self.poll_interval <= 0:
            raise ConfigurationError("poll interval must be positive", {"value": self.poll_interval})

        if not settings.verify_contract_code:
            return

        try:
            code = await self.chain_client.get_code()
        except SourceUnavailableError as e:
            self.degraded = True
            self.last_error = e.message
            self.logger.warning("Could not verify contract code, node unreachable", error=e.message)
            return

        if not code:
            raise ConfigurationError(
                "No contract code at configured address",
                {"contract_address": self.contract_address}
            )

    # Catch-up

    async def sync(self, from_block: Optional[int] = None) -> SyncResult:
        """
        Catch up from ``from_block`` (default: watermark + 1) to the head.

        Only one catch-up runs at a time; a concurrent call returns a
        skipped result instead of waiting.
        """
        if self._sync_in_progress:
            self.logger.info("Sync already in progress, skipping")
            return SyncResult(skipped=True, reason="sync already in progress")

        self._sync_in_progress = True
        try:
            return await self._catch_up(from_block)
        finally:
            self._sync_in_progress = False

    async def _catch_up(self, from_block: Optional[int]) -> SyncResult:
        await self.initialize()

        if not self.contract_address:
            raise ConfigurationError("CONTRACT_ADDRESS is not configured")

        if from_block is not None and from_block < 0:
            raise InvalidRangeError(from_block, 0)

        generation = self._stop_generation

        # Status reports the stored watermark even when the head call fails
        try:
            watermark = await self.watermark_store.read()
        except SQLAlchemyError as e:
            self.last_error = str(e)
            raise StoreError(f"Failed to read watermark: {e}")

        if watermark is not None:
            self.last_watermark = watermark.block_number

        head = await self._with_retries("get_current_height", self.chain_client.get_current_height)

        if from_block is not None:
            start = from_block
        elif watermark is not None:
            start = watermark.block_number + 1
        else:
            start = self._genesis_block(head)

        result = SyncResult(from_block=start, to_block=head, watermark=self.last_watermark)
        if start > head:
            self.logger.debug("No new blocks", watermark=self.last_watermark, head=head)
            self.degraded = False
            return result

        self.logger.info("Catch-up started", from_block=start, to_block=head)

        chunk_start = start
        while chunk_start <= head:
            if self._stop_generation != generation:
                result.reason = "stopped"
                break

            chunk_end = min(chunk_start + self.chunk_size - 1, head)
            applied, skipped = await self._process_range(chunk_start, chunk_end)

            result.chunks += 1
            result.events_applied += applied
            result.events_skipped += skipped
            chunk_start = chunk_end + 1

        result.watermark = self.last_watermark
        self.degraded = False

        self.logger.info(
            "Catch-up finished",
            from_block=start,
            to_block=head,
            chunks=result.chunks,
            applied=result.events_applied,
            skipped=result.events_skipped,
            watermark=result.watermark
        )
        return result

    def _genesis_block(self, head: int) -> int:
        if self.lookback_blocks:
            return max(0, head - self.lookback_blocks)
        return self.start_block

    async def _process_range(self, from_block: int, to_block: int) -> Tuple[int, int]:
        raw_logs = await self._with_retries("get_logs", self.chain_client.get_logs, from_block, to_block)
        events, skipped = self._decode(raw_logs)
        events = await self._enrich(events)

        outcomes = await self._run_apply_cycle(events, advance_to=to_block)
        return outcomes.count(ApplyOutcome.APPLIED), skipped

    # Live tail

    async def process_push_batch(self, raw_logs: List[RawLog]) -> int:
        """Apply pushed logs without moving the watermark."""
        events, _ = self._decode(raw_logs)
        if not events:
            return 0

        events = await self._enrich(events)
        outcomes = await self._run_apply_cycle(events, advance_to=None)
        return outcomes.count(ApplyOutcome.APPLIED)

    async def process_event_directly(
        self,
        kind: Union[EventKind, str],
        payload: Dict[str, Any],
        block_number: int,
        transaction_hash: str,
        log_index: int,
        timestamp: Optional[int] = None,
    ) -> ApplyOutcome:
        """Apply one out-of-band event through the same projection rules."""
        await self.initialize()

        if timestamp is None:
            timestamp = await self.chain_client.get_block_timestamp(block_number)

        event = self.event_parser.from_payload(
            kind, payload, block_number, transaction_hash, log_index, timestamp
        )
        events = await self._enrich([event])
        outcomes = await self._run_apply_cycle(events, advance_to=None)

        self.logger.info(
            "Direct event processed",
            kind=event.kind.value,
            tx_hash=event.transaction_hash,
            outcome=outcomes[0].value
        )
        return outcomes[0]

    # Shared pipeline

    def _decode(self, raw_logs: List[RawLog]) -> Tuple[List[DecodedEvent], int]:
        events: List[DecodedEvent] = []
        skipped = 0

        for raw_log in raw_logs:
            decoded = self.event_parser.decode(raw_log)
            if isinstance(decoded, DecodeError):
                skipped += 1
                self.stats.decode_errors += 1
                self.logger.warning(
                    "Skipping undecodable log",
                    reason=decoded.reason,
                    block=decoded.block_number,
                    tx_hash=decoded.transaction_hash,
                    log_index=decoded.log_index
                )
                continue
            events.append(decoded)

        return events, skipped

    async def _enrich(self, events: List[DecodedEvent]) -> List[DecodedEvent]:
        """Attach contract-side details; failures leave the event as decoded."""
        enriched: List[DecodedEvent] = []

        for event in events:
            try:
                if isinstance(event, CHAPTER_EVENTS):
                    details = await self.chain_client.get_chapter(event.chapter_id)
                    if details is not None:
                        event = replace(
                            event,
                            chapter_number=details.chapter_number or None,
                            fork_fee=details.fork_fee,
                        )
                elif isinstance(event, CommentAdded) and not event.ipfs_hash:
                    ipfs_hash = await find_comment_hash(
                        self.chain_client, event.chapter_id, event.commenter, event.timestamp
                    )
                    if ipfs_hash:
                        event = replace(event, ipfs_hash=ipfs_hash)
            except SourceUnavailableError as e:
                self.logger.debug(
                    "Enrichment unavailable",
                    kind=event.kind.value,
                    tx_hash=event.transaction_hash,
                    error=e.message
                )

            enriched.append(event)

        return enriched

    async def _run_apply_cycle(
        self,
        events: List[DecodedEvent],
        advance_to: Optional[int],
    ) -> List[ApplyOutcome]:
        # Cancelling the caller leaves the transaction to finish
        task = asyncio.ensure_future(self._apply_and_commit(events, advance_to))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def _apply_and_commit(
        self,
        events: List[DecodedEvent],
        advance_to: Optional[int],
    ) -> List[ApplyOutcome]:
        async with self._apply_lock:
            try:
                async with get_async_session() as db:
                    outcomes = await self.projection.apply_batch(db, events)
                    if advance_to is not None:
                        await self.watermark_store.write(db, advance_to)
            except SQLAlchemyError as e:
                self.stats.errors += 1
                self.last_error = str(e)
                self.logger.error(
                    "Apply cycle rolled back",
                    events=len(events),
                    advance_to=advance_to,
                    error=str(e)
                )
                raise StoreError(
                    f"Failed to apply events: {e}",
                    {"events": len(events), "advance_to": advance_to}
                )

            if advance_to is not None and (self.last_watermark is None or advance_to > self.last_watermark):
                self.last_watermark = advance_to

            return outcomes

    async def _with_retries(self, operation: str, func, *args):
        attempts = max(1, self.max_retries)

        for attempt in range(attempts):
            try:
                return await func(*args)
            except SourceUnavailableError as e:
                self.degraded = True
                self.last_error = e.message
                if attempt == attempts - 1:
                    self.logger.error("Chain node unavailable", operation=operation, error=e.message)
                    raise

                delay = min(self.retry_delay * (2 ** attempt), self.max_retry_delay)
                self.logger.warning(
                    "Chain call failed, retrying",
                    operation=operation,
                    attempt=attempt + 1,
                    max_retries=attempts,
                    wait_time=delay,
                    error=e.message
                )
                await asyncio.sleep(delay)
