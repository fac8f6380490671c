"""Tests for background learning-batch intake."""

import pytest
import pytest_asyncio

from services.audit_intelligence.services import (
    LearningQueue,
    RecommendationOrchestrator,
    build_orchestrator,
)
from shared.config import ModelRegistrySettings, RecommenderSettings, Settings
from shared.database import InMemoryAuditRepository
from shared.models import LearningBatch


class ExplodingOrchestrator:
    async def learn_from_completed_audits(self, records):
        raise ValueError("corrupt batch")


class FailOnceOrchestrator:
    """Fails the first learning call, then delegates."""

    def __init__(self, inner: RecommendationOrchestrator) -> None:
        self.inner = inner
        self.calls = 0

    async def learn_from_completed_audits(self, records):
        self.calls += 1
        if self.calls == 1:
            raise ConnectionError("learning store unavailable")
        return await self.inner.learn_from_completed_audits(records)


@pytest_asyncio.fixture
async def queue(
    repository: InMemoryAuditRepository,
    recommender_config: RecommenderSettings,
    registry_config: ModelRegistrySettings,
):
    orchestrator = build_orchestrator(
        repository,
        Settings(recommender=recommender_config, model_registry=registry_config),
    )
    await orchestrator.registry.initialize_models()
    learning_queue = LearningQueue(orchestrator, repository)
    await learning_queue.start()
    yield learning_queue
    await learning_queue.stop()


class TestLearningQueue:
    """Tests for the serial learning consumer."""

    @pytest.mark.asyncio
    async def test_batch_processed(
        self,
        repository: InMemoryAuditRepository,
        queue: LearningQueue,
        make_learning_data,
    ) -> None:
        batch = LearningBatch(
            batch_id="BATCH-1",
            records=tuple(make_learning_data(f"AUD-{i}") for i in range(5)),
        )

        await queue.submit(batch)
        await queue.join()

        assert queue.summaries["BATCH-1"].records == 5
        assert len(repository.procedure_performance) == 5
        assert "BATCH-1" in repository.processed_batches

    @pytest.mark.asyncio
    async def test_duplicate_batch_skipped(
        self,
        repository: InMemoryAuditRepository,
        queue: LearningQueue,
        make_learning_data,
    ) -> None:
        batch = LearningBatch(
            batch_id="BATCH-1",
            records=tuple(make_learning_data(f"AUD-{i}") for i in range(5)),
        )

        await queue.submit(batch)
        await queue.submit(batch)
        await queue.join()

        assert queue.skipped == ["BATCH-1"]
        assert len(repository.procedure_performance) == 5
        assert len(repository.learning_data) == 5

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, queue: LearningQueue) -> None:
        worker = queue._worker

        await queue.start()

        assert queue.running
        assert queue._worker is worker

    @pytest.mark.asyncio
    async def test_stop_leaves_queue_stopped(self, queue: LearningQueue) -> None:
        await queue.stop()

        assert not queue.running

    @pytest.mark.asyncio
    async def test_failed_batch_recorded_and_worker_continues(
        self,
        repository: InMemoryAuditRepository,
    ) -> None:
        learning_queue = LearningQueue(ExplodingOrchestrator(), repository)
        await learning_queue.start()
        try:
            await learning_queue.submit(LearningBatch(batch_id="BATCH-X"))
            await learning_queue.submit(LearningBatch(batch_id="BATCH-Y"))
            await learning_queue.join()
        finally:
            await learning_queue.stop()

        assert learning_queue.failed == {
            "BATCH-X": "corrupt batch",
            "BATCH-Y": "corrupt batch",
        }
        assert learning_queue.summaries == {}

    @pytest.mark.asyncio
    async def test_failed_batch_can_be_resubmitted(
        self,
        repository: InMemoryAuditRepository,
        recommender_config: RecommenderSettings,
        registry_config: ModelRegistrySettings,
        make_learning_data,
    ) -> None:
        """A failed batch releases its claim and is applied exactly once on retry."""
        orchestrator = build_orchestrator(
            repository,
            Settings(recommender=recommender_config, model_registry=registry_config),
        )
        await orchestrator.registry.initialize_models()
        flaky = FailOnceOrchestrator(orchestrator)
        learning_queue = LearningQueue(flaky, repository)
        batch = LearningBatch(
            batch_id="BATCH-1",
            records=tuple(make_learning_data(f"AUD-{i}") for i in range(5)),
        )

        await learning_queue.start()
        try:
            await learning_queue.submit(batch)
            await learning_queue.join()
            assert learning_queue.failed == {"BATCH-1": "learning store unavailable"}
            assert "BATCH-1" not in repository.processed_batches

            await learning_queue.submit(batch)
            await learning_queue.submit(batch)
            await learning_queue.join()
        finally:
            await learning_queue.stop()

        assert flaky.calls == 2
        assert learning_queue.failed == {}
        assert learning_queue.summaries["BATCH-1"].records == 5
        assert learning_queue.skipped == ["BATCH-1"]
        assert len(repository.learning_data) == 5
        assert len(repository.procedure_performance) == 5

    @pytest.mark.asyncio
    async def test_claim_failure_recorded_and_worker_continues(self) -> None:
        repository = InMemoryAuditRepository(failing_writes={"mark_batch_processed"})
        learning_queue = LearningQueue(ExplodingOrchestrator(), repository)

        await learning_queue.start()
        try:
            await learning_queue.submit(LearningBatch(batch_id="BATCH-X"))
            await learning_queue.submit(LearningBatch(batch_id="BATCH-Y"))
            await learning_queue.join()
            assert learning_queue.running
        finally:
            await learning_queue.stop()

        assert learning_queue.failed == {
            "BATCH-X": "mark_batch_processed failed",
            "BATCH-Y": "mark_batch_processed failed",
        }
