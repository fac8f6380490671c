"""
Learning Queue
==============

Background intake of completed-audit learning batches. One batch is
consumed at a time on its own task, so learning never blocks
recommendation requests.

Version: 0.1.0
"""

from __future__ import annotations

import asyncio

from shared.database import AuditRepository
from shared.errors import PersistenceError
from shared.logging import get_logger
from shared.models import LearningBatch
from services.audit_intelligence.services.orchestrator import (
    LearningSummary,
    RecommendationOrchestrator,
)

logger = get_logger(__name__)


class LearningQueue:
    """
    Serial consumer of ``LearningBatch`` submissions.

    A batch id is claimed through ``mark_batch_processed`` before its records
    are applied, so a resubmitted batch is skipped and never double-counted.
    A batch whose processing raises is logged, recorded in ``failed`` and its
    claim released, so the same batch id can be resubmitted. The worker keeps
    consuming.

    Example:
        >>> queue = LearningQueue(orchestrator, repository)
        >>> await queue.start()
        >>> await queue.submit(batch)
        >>> await queue.join()
        >>> await queue.stop()
    """

    def __init__(
        self,
        orchestrator: RecommendationOrchestrator,
        repository: AuditRepository,
    ) -> None:
        self.orchestrator = orchestrator
        self.repository = repository

        self._queue: asyncio.Queue[LearningBatch] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

        self.summaries: dict[str, LearningSummary] = {}
        self.skipped: list[str] = []
        self.failed: dict[str, str] = {}

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the consumer task. Calling twice is a no-op."""
        if self.running:
            return
        self._worker = asyncio.create_task(self._process_batches())
        logger.info("learning_queue_started")

    async def stop(self) -> None:
        """Cancel the consumer task; queued batches stay queued."""
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("learning_queue_stopped", pending=self._queue.qsize())

    async def submit(self, batch: LearningBatch) -> None:
        await self._queue.put(batch)
        logger.debug("learning_batch_queued", batch_id=batch.batch_id, records=len(batch.records))

    async def join(self) -> None:
        """Wait until every submitted batch has been consumed."""
        await self._queue.join()

    async def _process_batches(self) -> None:
        while True:
            batch = await self._queue.get()
            try:
                await self._process(batch)
            finally:
                self._queue.task_done()

    async def _process(self, batch: LearningBatch) -> None:
        try:
            claimed = await self.repository.mark_batch_processed(batch.batch_id)
        except PersistenceError as e:
            self.failed[batch.batch_id] = str(e)
            logger.error("learning_batch_claim_failed", batch_id=batch.batch_id, error=str(e))
            return

        if not claimed:
            self.skipped.append(batch.batch_id)
            logger.info("learning_batch_already_processed", batch_id=batch.batch_id)
            return

        try:
            summary = await self.orchestrator.learn_from_completed_audits(batch.records)
        except Exception as e:
            self.failed[batch.batch_id] = str(e)
            logger.error("learning_batch_failed", batch_id=batch.batch_id, error=str(e))
            await self._release(batch.batch_id)
            return

        self.failed.pop(batch.batch_id, None)
        self.summaries[batch.batch_id] = summary
        logger.info(
            "learning_batch_processed",
            batch_id=batch.batch_id,
            records=summary.records,
            patterns=len(summary.patterns),
        )

    async def _release(self, batch_id: str) -> None:
        try:
            await self.repository.release_batch(batch_id)
        except PersistenceError as e:
            logger.error("learning_batch_release_failed", batch_id=batch_id, error=str(e))
