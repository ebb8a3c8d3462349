"""
Command line interface for the StoryChain sync service.
"""

import asyncio
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from alembic.config import Config
from alembic import command
from storychain_sync.core.config import settings
from storychain_sync.core.database import init_database, close_database, DatabaseManager
from storychain_sync.core.exceptions import StoryChainSyncException
from storychain_sync.core.logging import setup_logging, get_logger
from storychain_sync.indexer.core.event_indexer import EventIndexer
from storychain_sync.indexer.watermark import WatermarkStore
from storychain_sync.services.chain_client import close_chain_client
from storychain_sync.services.repair_service import RepairService

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="StoryChain sync service commands")


def _run(coro):
    """Run a command coroutine with logging and the database set up."""
    async def _wrapped():
        setup_logging()
        await init_database()
        try:
            return await coro
        finally:
            await close_chain_client()
            await close_database()

    try:
        return asyncio.run(_wrapped())
    except StoryChainSyncException as e:
        console.print(f"❌ {e.code}: {e.message}")
        raise typer.Exit(code=1)


@app.command("init-db")
def init_db():
    """Create all tables directly from the models."""
    _run(DatabaseManager.create_tables())
    console.print("✅ Database initialized successfully!")


@app.command()
def upgrade(revision: str = "head"):
    """Apply migrations."""
    alembic_cfg = Config("alembic.ini")
    command.upgrade(alembic_cfg, revision)

    console.print(f"✅ Database upgraded to: {revision}")


@app.command()
def reset():
    """Drop all tables, including the watermark."""
    confirm = typer.confirm("Are you sure you want to drop all tables?")
    if not confirm:
        console.print("❌ Operation cancelled")
        return

    _run(DatabaseManager.drop_tables())
    console.print("🗑️ All tables dropped!")


@app.command()
def health():
    """Check database health."""
    if not _run(DatabaseManager.health_check()):
        console.print("❌ Database health check failed!")
        sys.exit(1)
    console.print("✅ Database is healthy!")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run(
        "storychain_sync.api.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


@app.command()
def run():
    """Run the indexer until interrupted."""
    from storychain_sync.indexer.main import main

    asyncio.run(main())


@app.command()
def sync(
    from_block: Optional[int] = typer.Option(None, "--from-block", min=0, help="Start block, default: watermark + 1"),
):
    """Run a single catch-up pass and exit."""
    async def _sync():
        indexer = EventIndexer()
        await indexer.initialize()
        return await indexer.sync(from_block)

    result = _run(_sync())

    table = Table(title="Sync Result")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("From block", str(result.from_block))
    table.add_row("To block", str(result.to_block))
    table.add_row("Chunks", str(result.chunks))
    table.add_row("Events applied", str(result.events_applied))
    table.add_row("Events skipped", str(result.events_skipped))
    table.add_row("Watermark", str(result.watermark))
    console.print(table)


@app.command()
def status():
    """Show the sync watermark and database state."""

    table = Table(title="Sync Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")

    async def _status():
        is_healthy = await DatabaseManager.health_check()
        table.add_row("Database", "✅ Connected" if is_healthy else "❌ Disconnected")
        table.add_row("Contract", settings.contract_address or "not configured")

        if is_healthy:
            watermark = await WatermarkStore().read()
            if watermark is None:
                table.add_row("Watermark", "never synced")
            else:
                table.add_row("Watermark", f"block {watermark.block_number} at {watermark.updated_at}")

    _run(_status())
    console.print(table)


@app.command("fix-chapter-numbers")
def fix_chapter_numbers():
    """Recompute chapter numbers from the parent links."""
    changed = _run(RepairService().fix_chapter_numbers())
    console.print(f"✅ Updated {changed} chapters")


@app.command("repair-comments")
def repair_comments(limit: int = typer.Option(50, min=1, help="Maximum comments to resolve")):
    """Resolve missing comment content hashes from the contract."""
    updated = _run(RepairService().update_missing_comment_hashes(limit))
    console.print(f"✅ Resolved {updated} comment hashes")


@app.command("sync-chapter-details")
def sync_chapter_details(limit: int = typer.Option(50, min=1, help="Maximum chapters to refresh")):
    """Refresh chapter fork fees from the contract."""
    updated = _run(RepairService().sync_chapter_details(limit))
    console.print(f"✅ Refreshed {updated} chapters")


if __name__ == "__main__":
    app()
