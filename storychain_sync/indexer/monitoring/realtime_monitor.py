"""
Real-time monitoring for contract events.
"""

import asyncio
from typing import List, Optional

import structlog

from storychain_sync.core.exceptions import StoryChainSyncException, StoreError
from storychain_sync.services.chain_client import RawLog, Subscription


logger = structlog.get_logger(__name__)


class RealtimeMonitor:
    """
    Live-tail component of the indexer.

    Pushed logs from the chain subscription are applied as they arrive;
    a periodic catch-up pass re-scans from the watermark so anything the
    push path missed is still applied.
    """

    def __init__(self, indexer):
        """Initialize the realtime monitor."""
        self.indexer = indexer
        self.logger = logger.bind(service="realtime_monitor")
        self.subscription: Optional[Subscription] = None
        self._rescan_task: Optional[asyncio.Task] = None
        self.max_push_retries = 3

    @property
    def running(self) -> bool:
        return self._rescan_task is not None and not self._rescan_task.done()

    async def start(self):
        """Open the log subscription and schedule the safety re-scan."""
        self.subscription = self.indexer.chain_client.subscribe(self._process_pushed_logs)
        self._rescan_task = asyncio.create_task(self._safety_rescan_loop())
        self.logger.info(
            "Live tail started",
            mode=getattr(self.subscription, "mode", "unknown"),
            rescan_interval=self.indexer.poll_interval
        )

    async def stop(self):
        """Cancel the re-scan timer and the subscription."""
        if self._rescan_task and not self._rescan_task.done():
            self._rescan_task.cancel()
            try:
                await self._rescan_task
            except asyncio.CancelledError:
                pass
        self._rescan_task = None

        if self.subscription is not None:
            await self.subscription.cancel()
            self.subscription = None

        self.logger.info("Live tail stopped")

    async def _process_pushed_logs(self, raw_logs: List[RawLog]):
        """Apply a pushed batch, retrying store failures with backoff."""
        for attempt in range(self.max_push_retries):
            try:
                applied = await self.indexer.process_push_batch(raw_logs)
                self.logger.debug("Pushed logs applied", logs=len(raw_logs), applied=applied)
                return

            except StoreError as e:
                if attempt < self.max_push_retries - 1:
                    wait_time = 0.1 * (2 ** attempt)
                    self.logger.warning(
                        "Store failed on pushed logs, retrying",
                        attempt=attempt + 1,
                        max_retries=self.max_push_retries,
                        wait_time=wait_time,
                        error=e.message
                    )
                    await asyncio.sleep(wait_time)
                else:
                    self.logger.error(
                        "Dropping pushed logs, safety re-scan will recover",
                        logs=len(raw_logs),
                        error=e.message
                    )

            except StoryChainSyncException as e:
                self.logger.error("Failed to process pushed logs", error=e.message, code=e.code)
                return

    async def _safety_rescan_loop(self):
        while True:
            await asyncio.sleep(self.indexer.poll_interval)
            try:
                result = await self.indexer.sync()
                if result.events_applied:
                    self.logger.info(
                        "Safety re-scan applied events",
                        events=result.events_applied,
                        watermark=result.watermark
                    )
            except StoryChainSyncException as e:
                self.logger.warning("Safety re-scan failed", error=e.message, code=e.code)
