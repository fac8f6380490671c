"""Tests for the recommendation orchestrator."""

import asyncio

import pytest

from services.audit_intelligence.ml.auditors import AuditorRecommender
from services.audit_intelligence.ml.patterns import PatternEngine
from services.audit_intelligence.ml.procedures import ProcedureRecommender
from services.audit_intelligence.ml.registry import ModelRegistry
from services.audit_intelligence.ml.timeline import TimelineRecommender
from services.audit_intelligence.services import (
    RecommendationOrchestrator,
    build_orchestrator,
)
from services.audit_intelligence.services.orchestrator import (
    alternative_strategies,
    assess_overall_risk,
)
from shared.config import ModelRegistrySettings, RecommenderSettings, Settings
from shared.database import InMemoryAuditRepository
from shared.models import (
    Auditor,
    AuditContext,
    AvailableResources,
    ComplexityLevel,
    ExpertiseProfile,
    ModelType,
    OrganizationSize,
    ProcedurePerformanceRecord,
    ProcedureTemplate,
    UserFeedback,
)


class SlowRecommender:
    """Recommender that never answers within the fan-out timeout."""

    async def recommend(self, context: AuditContext) -> list:
        await asyncio.sleep(10)
        return []


class BrokenRecommender:
    async def recommend(self, context: AuditContext) -> list:
        raise RuntimeError("auditor directory unavailable")


class RawErrorRepository(InMemoryAuditRepository):
    """Repository whose backend error escapes untranslated."""

    def __init__(self) -> None:
        super().__init__()
        self.save_attempts = 0

    async def save_recommendation(self, recommendation) -> None:
        self.save_attempts += 1
        raise ConnectionError("socket closed")


def seed_fraud_audit_data(repository: InMemoryAuditRepository) -> None:
    """One strong procedure and one specialist auditor for fraud audits."""
    repository.add_template(
        ProcedureTemplate(
            id="PROC-1",
            name="Journal entry analytics",
            procedure_type="analytics",
            risk_categories=["fraud"],
            complexity_levels=[ComplexityLevel.COMPLEX],
            industries=["banking"],
            organization_sizes=[OrganizationSize.LARGE],
            compliance_levels=["standard"],
            estimated_hours=8,
        )
    )
    for i in range(4):
        repository.procedure_performance.append(
            ProcedurePerformanceRecord(
                procedure_id="PROC-1",
                procedure_type="analytics",
                audit_id=f"HIST-{i}",
                risk_category="fraud",
                complexity_level=ComplexityLevel.COMPLEX,
                effectiveness_score=90,
                completion_time_hours=8,
                quality_rating=4.5,
            )
        )

    repository.add_user(Auditor(id="AUD-1", name="Alex Rivera"))
    repository.profiles["AUD-1"] = ExpertiseProfile(
        auditor_id="AUD-1",
        risk_specializations=["fraud"],
        industry_experience=["banking"],
        complexity_handling=ComplexityLevel.COMPLEX,
    )


@pytest.fixture
def settings(
    recommender_config: RecommenderSettings,
    registry_config: ModelRegistrySettings,
) -> Settings:
    return Settings(recommender=recommender_config, model_registry=registry_config)


@pytest.fixture
def orchestrator(
    repository: InMemoryAuditRepository,
    settings: Settings,
) -> RecommendationOrchestrator:
    return build_orchestrator(repository, settings)


def orchestrator_with(
    repository: InMemoryAuditRepository,
    config: RecommenderSettings,
    **engines: object,
) -> RecommendationOrchestrator:
    parts = {
        "procedures": ProcedureRecommender(repository, config),
        "auditors": AuditorRecommender(repository, config),
        "timeline": TimelineRecommender(repository),
        "patterns": PatternEngine(repository, config),
        "registry": ModelRegistry(repository, ModelRegistrySettings(retraining_delay_seconds=0)),
    }
    parts.update(engines)
    return RecommendationOrchestrator(repository=repository, config=config, **parts)


class TestComprehensiveRecommendation:
    """Tests for the combined recommendation."""

    @pytest.mark.asyncio
    async def test_full_recommendation(
        self,
        repository: InMemoryAuditRepository,
        orchestrator: RecommendationOrchestrator,
        fraud_context: AuditContext,
    ) -> None:
        seed_fraud_audit_data(repository)

        result = await orchestrator.generate_comprehensive_recommendation(
            "AUDIT-100", fraud_context, user_id="planner-1"
        )

        assert [p.procedure_id for p in result.procedure_recommendations] == ["PROC-1"]
        assert result.procedure_recommendations[0].recommendation_score == 88
        assert [a.auditor_id for a in result.auditor_recommendations] == ["AUD-1"]
        assert result.auditor_recommendations[0].match_score == 87
        assert result.timeline_recommendation.recommended_duration_hours == 57.2
        assert result.timeline_recommendation.confidence_level == 68
        # 88 * .40 + 87 * .35 + 68 * .25
        assert result.overall_score == 83
        # 80 + 2.6 + 1.8 - 0.7 - 10 for high risk
        assert result.success_probability == 74
        assert result.timed_out == []

        assert result.reasoning.startswith(
            "Based on analysis of fraud risk in banking context:"
        )
        assert "- Recommended auditor: Alex Rivera (87% match)" in result.reasoning
        assert result.risk_assessment.overall_risk == "high"
        assert [a.expected_outcome.duration_hours for a in result.alternative_strategies] == [
            48.0,
            32.0,
        ]

        plan = result.implementation_plan
        assert [p.phase_id for p in plan.phases] == ["phase-1", "phase-2", "phase-3"]
        assert [p.dependencies for p in plan.phases] == [[], ["phase-1"], ["phase-2"]]
        assert plan.total_duration_hours == 57.2
        assert plan.resource_allocation[0].allocated_to == "Alex Rivera"
        assert plan.quality_gates[0].threshold == 90

        stored = repository.recommendations["AUDIT-100"]
        assert stored.user_id == "planner-1"
        assert stored.overall_score == 83
        assert stored.payload["procedure_recommendations"][0]["procedure_id"] == "PROC-1"

    @pytest.mark.asyncio
    async def test_empty_repository_scores_timeline_only(
        self,
        orchestrator: RecommendationOrchestrator,
        fraud_context: AuditContext,
    ) -> None:
        result = await orchestrator.generate_comprehensive_recommendation(
            "AUDIT-101", fraud_context
        )

        assert result.procedure_recommendations == []
        assert result.auditor_recommendations == []
        # 68 * .25
        assert result.overall_score == 17
        assert "Procedure Recommendations:" not in result.reasoning
        assert result.implementation_plan.resource_allocation[0].allocated_to == "TBD"

    @pytest.mark.asyncio
    async def test_storage_failure_still_returns_recommendation(
        self,
        settings: Settings,
        fraud_context: AuditContext,
    ) -> None:
        repository = InMemoryAuditRepository(failing_writes={"save_recommendation"})
        seed_fraud_audit_data(repository)
        orchestrator = build_orchestrator(repository, settings)

        result = await orchestrator.generate_comprehensive_recommendation(
            "AUDIT-102", fraud_context
        )

        assert result.overall_score == 83
        assert repository.recommendations == {}

    @pytest.mark.asyncio
    async def test_untranslated_storage_error_propagates(
        self,
        settings: Settings,
        fraud_context: AuditContext,
    ) -> None:
        """Backend errors outside PersistenceError are neither retried nor absorbed."""
        repository = RawErrorRepository()
        seed_fraud_audit_data(repository)
        orchestrator = build_orchestrator(repository, settings)

        with pytest.raises(ConnectionError, match="socket closed"):
            await orchestrator.generate_comprehensive_recommendation("AUDIT-106", fraud_context)

        assert repository.save_attempts == 1

    @pytest.mark.asyncio
    async def test_slow_recommender_replaced_by_fallback(
        self,
        repository: InMemoryAuditRepository,
        fraud_context: AuditContext,
    ) -> None:
        seed_fraud_audit_data(repository)
        config = RecommenderSettings(worker_pool_size=2, fanout_timeout_seconds=0.05)
        orchestrator = orchestrator_with(repository, config, procedures=SlowRecommender())

        result = await orchestrator.generate_comprehensive_recommendation(
            "AUDIT-103", fraud_context
        )

        assert result.timed_out == ["procedures"]
        assert result.procedure_recommendations == []
        assert [a.auditor_id for a in result.auditor_recommendations] == ["AUD-1"]
        assert result.timeline_recommendation.is_fallback is False

    @pytest.mark.asyncio
    async def test_slow_timeline_uses_constraint_fallback(
        self,
        repository: InMemoryAuditRepository,
        fraud_context: AuditContext,
    ) -> None:
        config = RecommenderSettings(worker_pool_size=2, fanout_timeout_seconds=0.05)
        orchestrator = orchestrator_with(repository, config, timeline=SlowRecommender())

        result = await orchestrator.generate_comprehensive_recommendation(
            "AUDIT-104", fraud_context
        )

        assert result.timed_out == ["timeline"]
        assert result.timeline_recommendation.is_fallback is True
        assert result.timeline_recommendation.recommended_duration_hours == 32.0

    @pytest.mark.asyncio
    async def test_recommender_error_propagates(
        self,
        repository: InMemoryAuditRepository,
        recommender_config: RecommenderSettings,
        fraud_context: AuditContext,
    ) -> None:
        orchestrator = orchestrator_with(
            repository, recommender_config, auditors=BrokenRecommender()
        )

        with pytest.raises(RuntimeError, match="auditor directory unavailable"):
            await orchestrator.generate_comprehensive_recommendation("AUDIT-105", fraud_context)

        assert repository.recommendations == {}


class TestSynthesis:
    """Tests for the risk and strategy helpers."""

    def test_risk_defaults_to_medium(self, routine_context: AuditContext) -> None:
        risk = assess_overall_risk(routine_context)

        assert risk.overall_risk == "medium"
        assert risk.risk_factors == []
        assert risk.mitigation_strategies[0].name == "Enhanced Planning"
        assert risk.contingency_plans[0].scenario == "Timeline Overrun"

    def test_scarce_skills_flagged(self, routine_context: AuditContext) -> None:
        context = routine_context.model_copy(
            update={
                "complexity_level": ComplexityLevel.HIGHLY_COMPLEX,
                "available_resources": AvailableResources(skill_availability=("sampling",)),
            }
        )

        risk = assess_overall_risk(context)

        assert risk.overall_risk == "high"
        assert [f.name for f in risk.risk_factors] == [
            "High Complexity",
            "Limited Skilled Resources",
        ]

    def test_alternative_durations(self, routine_context: AuditContext) -> None:
        strategies = alternative_strategies(routine_context)

        assert [s.name for s in strategies] == ["Phased Approach", "Team-based Approach"]
        assert strategies[0].expected_outcome.duration_hours == 48.0
        assert strategies[1].expected_outcome.duration_hours == 32.0


class TestLearning:
    """Tests for completed-audit learning intake."""

    @pytest.mark.asyncio
    async def test_small_batch_only_stored(
        self,
        repository: InMemoryAuditRepository,
        orchestrator: RecommendationOrchestrator,
        make_learning_data,
    ) -> None:
        await orchestrator.registry.initialize_models()
        before = dict(repository.models)
        data = [make_learning_data(f"AUD-{i}") for i in range(4)]

        summary = await orchestrator.learn_from_completed_audits(data)

        assert summary.records == 4
        assert summary.models_updated is False
        assert summary.patterns == []
        assert summary.procedure_rows == 0
        assert repository.models == before
        assert repository.procedure_performance == []
        assert repository.timeline_performance == []
        assert dict(repository.auditor_performance) == {}
        assert len(repository.learning_data) == 4

    @pytest.mark.asyncio
    async def test_full_batch_reaches_every_consumer(
        self,
        repository: InMemoryAuditRepository,
        orchestrator: RecommendationOrchestrator,
        make_learning_data,
    ) -> None:
        await orchestrator.registry.initialize_models()
        data = [make_learning_data(f"AUD-{i}") for i in range(5)]

        summary = await orchestrator.learn_from_completed_audits(data)

        assert summary.models_updated is True
        assert summary.procedure_rows == 5
        assert summary.auditor_rows == 1
        assert summary.timeline_rows == 5
        assert {p.name for p in summary.patterns} >= {"top-auditor-performers"}
        model = await orchestrator.registry.get_model(ModelType.AUDITOR_PERFORMANCE)
        assert model.training_data_size == 5
        assert len(repository.learning_metrics) == 4

    @pytest.mark.asyncio
    async def test_empty_batch_is_noop(
        self,
        repository: InMemoryAuditRepository,
        orchestrator: RecommendationOrchestrator,
    ) -> None:
        summary = await orchestrator.learn_from_completed_audits([])

        assert summary.records == 0
        assert repository.learning_data == []

    @pytest.mark.asyncio
    async def test_learning_data_storage_failure_tolerated(
        self,
        settings: Settings,
        make_learning_data,
    ) -> None:
        repository = InMemoryAuditRepository(failing_writes={"add_learning_data"})
        orchestrator = build_orchestrator(repository, settings)

        summary = await orchestrator.learn_from_completed_audits(
            [make_learning_data(f"AUD-{i}") for i in range(5)]
        )

        assert summary.procedure_rows == 5
        assert repository.learning_data == []


class TestFeedbackAndValidation:
    """Tests for feedback processing and accuracy validation."""

    @pytest.mark.asyncio
    async def test_feedback_revalidates_at_threshold(
        self,
        repository: InMemoryAuditRepository,
        orchestrator: RecommendationOrchestrator,
    ) -> None:
        await orchestrator.registry.initialize_models()
        items = [
            UserFeedback(recommendation_id=f"REC-{i}", satisfaction_score=4)
            for i in range(10)
        ]

        assert await orchestrator.process_feedback(items[:9]) is False
        assert await orchestrator.process_feedback(items[9:]) is True
        assert len(repository.feedback) == 10

    @pytest.mark.asyncio
    async def test_feedback_storage_failure_tolerated(
        self,
        settings: Settings,
    ) -> None:
        repository = InMemoryAuditRepository(failing_writes={"add_feedback"})
        orchestrator = build_orchestrator(repository, settings)
        await orchestrator.registry.initialize_models()

        revalidated = await orchestrator.process_feedback(
            [UserFeedback(recommendation_id="REC-1", satisfaction_score=2)]
        )

        assert revalidated is False
        assert repository.feedback == []
        model = await orchestrator.registry.get_model(ModelType.TIMELINE_PREDICTION)
        assert model.configuration["feedback_count"] == 1

    @pytest.mark.asyncio
    async def test_validation_without_outcomes_keeps_models(
        self,
        repository: InMemoryAuditRepository,
        orchestrator: RecommendationOrchestrator,
    ) -> None:
        await orchestrator.registry.initialize_models()
        before = dict(repository.models)

        report = await orchestrator.validate_recommendation_accuracy()

        assert report.sample_size == 0
        assert repository.models == before

    @pytest.mark.asyncio
    async def test_validation_uses_stored_recommendation(
        self,
        repository: InMemoryAuditRepository,
        orchestrator: RecommendationOrchestrator,
        fraud_context: AuditContext,
        make_learning_data,
    ) -> None:
        seed_fraud_audit_data(repository)
        await orchestrator.registry.initialize_models()
        await orchestrator.generate_comprehensive_recommendation("AUDIT-200", fraud_context)
        # The outcome record itself names a different auditor and no procedures
        repository.learning_data.append(
            make_learning_data(
                "AUDIT-200",
                recommended_procedures=(),
                recommended_auditor="AUD-9",
                predicted_timeline_hours=10,
                actual_timeline_hours=57.2,
            )
        )

        report = await orchestrator.validate_recommendation_accuracy()

        assert report.sample_size == 1
        assert report.procedure_accuracy == 100
        assert report.auditor_accuracy == 100
        assert report.timeline_accuracy == 100
        model = await orchestrator.registry.get_model(ModelType.AUDITOR_PERFORMANCE)
        assert model.performance_score == 100
        assert model.metrics["accuracy"] == 1.0
