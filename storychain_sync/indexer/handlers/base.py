"""
Shared plumbing for projection handlers.
"""

from typing import Iterable

import structlog
from sqlalchemy import select, insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Update

from storychain_sync.models.applied_event import AppliedEvent, LedgerTarget
from storychain_sync.indexer.core.types import ApplyOutcome, ChainEvent, ProcessingStats


logger = structlog.get_logger(__name__)


def combine_outcomes(outcomes: Iterable[ApplyOutcome]) -> ApplyOutcome:
    """Fold per-target outcomes of one event into a single outcome."""
    outcomes = list(outcomes)
    if ApplyOutcome.APPLIED in outcomes:
        return ApplyOutcome.APPLIED
    if ApplyOutcome.MISSING_TARGET in outcomes:
        return ApplyOutcome.MISSING_TARGET
    return ApplyOutcome.DUPLICATE


class BaseHandlers:
    """Common state and the delta ledger used by every handler group."""

    service_name = "handlers"

    def __init__(self, stats: ProcessingStats):
        self.stats = stats
        self.logger = logger.bind(service=self.service_name)

    async def apply_delta(
        self,
        db: AsyncSession,
        event: ChainEvent,
        target: LedgerTarget,
        statement: Update,
    ) -> ApplyOutcome:
        """
        Run an increment exactly once per (tx, log index, target).

        The ledger row is only written when the UPDATE touched a row, so an
        increment aimed at a not-yet-projected row is retried on re-scan.
        """
        already_applied = await db.scalar(
            select(AppliedEvent.target).where(
                AppliedEvent.transaction_hash == event.transaction_hash,
                AppliedEvent.log_index == event.log_index,
                AppliedEvent.target == target.value,
            )
        )
        if already_applied is not None:
            return ApplyOutcome.DUPLICATE

        result = await db.execute(statement)
        if result.rowcount == 0:
            self.logger.debug(
                "Delta target missing, dropping",
                kind=event.kind.value,
                target=target.value,
                tx_hash=event.transaction_hash,
                log_index=event.log_index
            )
            return ApplyOutcome.MISSING_TARGET

        await db.execute(
            insert(AppliedEvent).values(
                transaction_hash=event.transaction_hash,
                log_index=event.log_index,
                target=target.value,
                event_type=event.kind.value,
                block_number=event.block_number,
            )
        )
        return ApplyOutcome.APPLIED
