"""
Main entry point for the standalone indexer service.
"""

import asyncio
import signal

import structlog

from storychain_sync.core.config import settings
from storychain_sync.core.database import init_database, close_database
from storychain_sync.core.logging import setup_logging
from .core.event_indexer import EventIndexer


logger = structlog.get_logger(__name__)


class IndexerMain:
    """
    Indexer service coordinator.

    Owns one EventIndexer, keeps it running until a shutdown signal and
    logs a periodic health line.
    """

    def __init__(self):
        self.indexer: EventIndexer = None
        self.running = False
        self._stopped = asyncio.Event()

    async def initialize(self):
        """Initialize database and indexer."""
        try:
            logger.info("Initializing indexer service", contract=settings.contract_address)

            await init_database()

            self.indexer = EventIndexer()
            await self.indexer.initialize()

            logger.info("Indexer service initialized")

        except Exception as e:
            logger.error("Failed to initialize indexer", error=str(e))
            raise

    async def start(self):
        """Start the indexer and block until stop() is called."""
        logger.info("Starting indexer service")

        await self.indexer.start()
        self.running = True

        health_check_task = asyncio.create_task(self._periodic_health_check())
        try:
            await self._stopped.wait()
        finally:
            health_check_task.cancel()
            await asyncio.gather(health_check_task, return_exceptions=True)

    async def stop(self):
        """Stop the indexer service."""
        logger.info("Stopping indexer service")

        self.running = False
        if self.indexer:
            await self.indexer.dispose()
        await close_database()

        self._stopped.set()
        logger.info("Indexer service stopped")

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    async def _periodic_health_check(self):
        """Periodic status line for the indexer."""
        while self.running:
            try:
                await asyncio.sleep(300)  # 5 minutes

                status = await self.indexer.get_status()
                logger.info(
                    "Indexer health check",
                    state=status["state"],
                    watermark=status["lastWatermark"],
                    degraded=status["degraded"],
                    events=status["stats"]["events_processed"]
                )

                if status["stats"]["errors"] > 0:
                    logger.warning("Errors encountered", errors=status["stats"]["errors"])

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Health check error", error=str(e))


async def main():
    """Main function to run the indexer service."""
    setup_logging()

    service = IndexerMain()
    loop = asyncio.get_running_loop()

    def signal_handler(signum):
        logger.info("Received signal, shutting down", signal=signum)
        asyncio.create_task(service.stop())

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, signal_handler, signum)

    try:
        await service.initialize()
        await service.start()
    except Exception as e:
        logger.error("Indexer service failed", error=str(e))
        raise
    finally:
        if not service.stopped:
            await service.stop()


if __name__ == "__main__":
    asyncio.run(main())
