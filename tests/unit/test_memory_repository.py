"""
Unit tests for the in-memory audit repository and persistence retry.
"""

import asyncio

import pytest

from shared.database import EntityLocks, InMemoryAuditRepository, persistence_retry
from shared.errors import PersistenceError
from shared.models import (
    ComplexityLevel,
    LearningData,
    ProcedurePerformanceRecord,
    ProcedureTemplate,
)


def procedure_row(procedure_id: str, procedure_type: str, risk: str) -> ProcedurePerformanceRecord:
    return ProcedurePerformanceRecord(
        procedure_id=procedure_id,
        procedure_type=procedure_type,
        audit_id=f"A-{procedure_id}",
        risk_category=risk,
        complexity_level=ComplexityLevel.MODERATE,
        effectiveness_score=80,
        completion_time_hours=6,
        quality_rating=4,
    )


class TestInMemoryAuditRepository:
    """Tests for repository queries and failure injection."""

    @pytest.mark.asyncio
    async def test_procedure_performance_filters(self) -> None:
        repository = InMemoryAuditRepository()
        repository.procedure_performance.extend(
            [
                procedure_row("P-1", "analytics", "fraud"),
                procedure_row("P-2", "analytics", "compliance"),
                procedure_row("P-3", "sampling", "fraud"),
            ]
        )

        by_id = await repository.get_procedure_performance(procedure_id="P-1")
        by_type = await repository.get_procedure_performance(procedure_type="analytics")
        by_either = await repository.get_procedure_performance(
            procedure_id="P-3", procedure_type="analytics"
        )
        by_risk = await repository.get_procedure_performance(risk_category="fraud")

        assert [r.procedure_id for r in by_id] == ["P-1"]
        assert [r.procedure_id for r in by_type] == ["P-1", "P-2"]
        assert [r.procedure_id for r in by_either] == ["P-1", "P-2", "P-3"]
        assert [r.procedure_id for r in by_risk] == ["P-1", "P-3"]

    @pytest.mark.asyncio
    async def test_inactive_templates_hidden(self) -> None:
        repository = InMemoryAuditRepository()
        repository.add_template(ProcedureTemplate(id="P-1", name="Active", procedure_type="analytics"))
        repository.add_template(
            ProcedureTemplate(id="P-2", name="Retired", procedure_type="analytics", is_active=False)
        )

        templates = await repository.get_procedure_templates()

        assert [t.id for t in templates] == ["P-1"]
        assert await repository.get_procedure_template("P-2") is not None

    @pytest.mark.asyncio
    async def test_failing_write_raises(self) -> None:
        repository = InMemoryAuditRepository(failing_writes={"add_learning_data"})

        with pytest.raises(PersistenceError):
            await repository.add_learning_data([LearningData(audit_id="A-1", quality_score=80)])

        assert repository.learning_data == []

    @pytest.mark.asyncio
    async def test_batch_claimed_once(self) -> None:
        repository = InMemoryAuditRepository()

        assert await repository.mark_batch_processed("B-1") is True
        assert await repository.mark_batch_processed("B-1") is False

    @pytest.mark.asyncio
    async def test_released_batch_can_be_claimed_again(self) -> None:
        repository = InMemoryAuditRepository()
        await repository.mark_batch_processed("B-1")

        await repository.release_batch("B-1")

        assert await repository.mark_batch_processed("B-1") is True


class TestPersistenceRetry:
    """Tests for the tenacity retry policy."""

    @pytest.mark.asyncio
    async def test_recovers_from_transient_failure(self) -> None:
        calls = []

        @persistence_retry
        async def flaky_write() -> str:
            calls.append(1)
            if len(calls) < 2:
                raise PersistenceError("connection reset")
            return "stored"

        assert await flaky_write() == "stored"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_reraises_after_final_attempt(self) -> None:
        calls = []

        @persistence_retry
        async def broken_write() -> None:
            calls.append(1)
            raise PersistenceError("disk full")

        with pytest.raises(PersistenceError, match="disk full"):
            await broken_write()
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self) -> None:
        calls = []

        @persistence_retry
        async def invalid_write() -> None:
            calls.append(1)
            raise ValueError("bad record")

        with pytest.raises(ValueError):
            await invalid_write()
        assert len(calls) == 1


class TestEntityLocks:
    """Tests for per-entity locking."""

    @pytest.mark.asyncio
    async def test_same_entity_serialized(self) -> None:
        locks = EntityLocks()
        order = []

        async def writer(name: str) -> None:
            async with locks.hold("model", "M-1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(writer("a"), writer("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_lock_state(self) -> None:
        locks = EntityLocks()

        async with locks.hold("model", "M-1"):
            assert locks.is_locked("model", "M-1")
            assert not locks.is_locked("model", "M-2")

        assert not locks.is_locked("model", "M-1")
