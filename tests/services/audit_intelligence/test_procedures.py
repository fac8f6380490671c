"""Tests for the procedure recommendation engine."""

from datetime import UTC, datetime, timedelta

import pytest

from services.audit_intelligence.ml.procedures import (
    ProcedureRecommender,
    ProcedureWeights,
)
from shared.config import RecommenderSettings
from shared.database import InMemoryAuditRepository
from shared.models import (
    AuditContext,
    BestPractice,
    ComplexityLevel,
    OrganizationSize,
    ProcedurePerformanceRecord,
    ProcedureTemplate,
)


def fraud_template(template_id: str = "PROC-1", **overrides) -> ProcedureTemplate:
    values = {
        "id": template_id,
        "name": f"Journal entry analytics {template_id}",
        "procedure_type": "analytics",
        "risk_categories": ["fraud"],
        "complexity_levels": [ComplexityLevel.COMPLEX],
        "industries": ["banking"],
        "organization_sizes": [OrganizationSize.LARGE],
        "compliance_levels": ["standard"],
        "estimated_hours": 8,
    }
    values.update(overrides)
    return ProcedureTemplate(**values)


def performance_row(audit_id: str, **overrides) -> ProcedurePerformanceRecord:
    values = {
        "procedure_id": "PROC-1",
        "procedure_type": "analytics",
        "audit_id": audit_id,
        "risk_category": "fraud",
        "complexity_level": ComplexityLevel.COMPLEX,
        "effectiveness_score": 90,
        "completion_time_hours": 8,
        "quality_rating": 4.5,
        "success": True,
    }
    values.update(overrides)
    return ProcedurePerformanceRecord(**values)


@pytest.fixture
def recommender(
    repository: InMemoryAuditRepository,
    recommender_config: RecommenderSettings,
) -> ProcedureRecommender:
    return ProcedureRecommender(repository, recommender_config)


class TestProcedureScoring:
    """Tests for template scoring."""

    def test_no_history_uses_default_factors(
        self,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        """Without history the score rests on context match and defaults."""
        result = recommender.score_template(fraud_template(), fraud_context)

        assert result.factors.context_match == 100
        assert result.factors.historical_success == 50
        assert result.factors.best_practice_alignment == 50
        assert result.factors.time_efficiency == 70
        assert result.factors.quality_potential == 75
        # 50*.30 + 100*.25 + 50*.20 + 70*.15 + 75*.10
        assert result.recommendation_score == 68

    def test_history_raises_score(
        self,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        """Consistent successful history lifts every history-based factor."""
        history = [performance_row(f"A-{i}") for i in range(4)]

        result = recommender.score_template(fraud_template(), fraud_context, history)

        assert result.factors.historical_success == pytest.approx(96)
        assert result.factors.time_efficiency == 100
        assert result.factors.quality_potential == 90
        assert result.recommendation_score == 88
        assert result.historical_success_rate == 96
        assert 30 <= result.confidence_level <= 95

    def test_partial_context_match(
        self,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        """Only matching context attributes earn points."""
        template = fraud_template(industries=[], organization_sizes=[], compliance_levels=[])

        result = recommender.score_template(template, fraud_context)

        assert result.factors.context_match == 55

    def test_best_practice_alignment_averages_success_rates(
        self,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        practices = [
            BestPractice(id="BP-1", procedure_type="analytics", risk_category="fraud", success_rate=90),
            BestPractice(id="BP-2", procedure_type="analytics", risk_category="fraud", success_rate=80),
            BestPractice(id="BP-3", procedure_type="sampling", risk_category="fraud", success_rate=10),
        ]

        result = recommender.score_template(fraud_template(), fraud_context, practices=practices)

        assert result.factors.best_practice_alignment == pytest.approx(85)
        assert [p.practice_id for p in result.best_practices] == ["BP-1", "BP-2"]

    def test_scores_stay_in_range(
        self,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        """Extreme history never pushes factors outside 0-100."""
        history = [
            performance_row(f"A-{i}", completion_time_hours=200, quality_rating=1, success=False)
            for i in range(5)
        ]

        result = recommender.score_template(fraud_template(), fraud_context, history)

        for value in (
            result.factors.historical_success,
            result.factors.context_match,
            result.factors.best_practice_alignment,
            result.factors.time_efficiency,
            result.factors.quality_potential,
            result.recommendation_score,
        ):
            assert 0 <= value <= 100
        assert result.factors.time_efficiency == 0

    def test_effectiveness_and_time_predictions(
        self,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        """Complex, large audits take longer than the template estimate."""
        result = recommender.score_template(fraud_template(), fraud_context)

        # 8h * 1.3 complex * 1.2 large
        assert result.estimated_time_hours == pytest.approx(12.5)
        assert result.expected_effectiveness == 75

    def test_contextual_factors_for_high_risk_critical_audit(
        self,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        template = fraud_template(target_complexity=ComplexityLevel.COMPLEX)

        result = recommender.score_template(template, fraud_context)

        names = [f.name for f in result.contextual_factors]
        assert names == ["High Risk Environment", "Complexity Alignment", "Time Pressure"]
        assert len(result.contextual_factors) <= 4

    def test_alternatives_include_tradeoffs(
        self,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        original = fraud_template("PROC-1", estimated_hours=8)
        slower = fraud_template("PROC-2", estimated_hours=16, required_skills=["forensics"])
        faster = fraud_template("PROC-3", estimated_hours=4, base_effectiveness=85)

        result = recommender.score_template(
            original, fraud_context, templates=[original, slower, faster]
        )

        alternatives = {a.procedure_id: a for a in result.alternatives}
        assert set(alternatives) == {"PROC-2", "PROC-3"}
        assert "Longer execution time" in alternatives["PROC-2"].tradeoffs
        assert "Higher skill requirements" in alternatives["PROC-2"].tradeoffs
        assert "Faster completion" in alternatives["PROC-3"].benefits
        assert "Higher effectiveness" in alternatives["PROC-3"].benefits

    def test_custom_weights(
        self,
        repository: InMemoryAuditRepository,
        fraud_context: AuditContext,
    ) -> None:
        weights = ProcedureWeights(
            historical_success=0,
            context_match=1.0,
            best_practice_alignment=0,
            time_efficiency=0,
            quality_potential=0,
        )
        recommender = ProcedureRecommender(repository, weights=weights)

        result = recommender.score_template(fraud_template(), fraud_context)

        assert result.recommendation_score == 100


class TestProcedureRecommendations:
    """Tests for ranked recommendations."""

    @pytest.mark.asyncio
    async def test_no_history_scores_below_threshold(
        self,
        repository: InMemoryAuditRepository,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        """A perfect context match alone does not reach the threshold of 70."""
        repository.add_template(fraud_template())

        result = await recommender.recommend(fraud_context)

        assert result == []

    @pytest.mark.asyncio
    async def test_lower_threshold_admits_context_only_scores(
        self,
        repository: InMemoryAuditRepository,
        fraud_context: AuditContext,
    ) -> None:
        repository.add_template(fraud_template())
        recommender = ProcedureRecommender(
            repository, RecommenderSettings(procedure_confidence_threshold=60)
        )

        result = await recommender.recommend(fraud_context)

        assert [r.procedure_id for r in result] == ["PROC-1"]
        assert result[0].recommendation_score == 68

    @pytest.mark.asyncio
    async def test_recommend_sorted_and_truncated(
        self,
        repository: InMemoryAuditRepository,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        """At most five results, best first, ties broken by id."""
        for i in range(7):
            repository.add_template(fraud_template(f"PROC-{i}"))
        for i in range(4):
            repository.procedure_performance.append(performance_row(f"A-{i}"))

        result = await recommender.recommend(fraud_context)

        assert len(result) == 5
        scores = [r.recommendation_score for r in result]
        assert scores == sorted(scores, reverse=True)
        assert all(s >= 70 for s in scores)
        assert [r.procedure_id for r in result] == [f"PROC-{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_irrelevant_templates_skipped(
        self,
        repository: InMemoryAuditRepository,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        repository.add_template(
            fraud_template(
                "PROC-IT",
                risk_categories=["it_security"],
                complexity_levels=[ComplexityLevel.SIMPLE],
            )
        )
        for i in range(4):
            repository.procedure_performance.append(performance_row(f"A-{i}"))

        result = await recommender.recommend(fraud_context)

        assert result == []

    @pytest.mark.asyncio
    async def test_inactive_templates_skipped(
        self,
        repository: InMemoryAuditRepository,
        recommender: ProcedureRecommender,
        fraud_context: AuditContext,
    ) -> None:
        repository.add_template(fraud_template(is_active=False))
        for i in range(4):
            repository.procedure_performance.append(performance_row(f"A-{i}"))

        assert await recommender.recommend(fraud_context) == []


class TestProcedureEffectiveness:
    """Tests for effectiveness analysis and improvement suggestions."""

    @pytest.mark.asyncio
    async def test_no_history_is_neutral(self, recommender: ProcedureRecommender) -> None:
        result = await recommender.analyze_procedure_effectiveness("PROC-404")

        assert result.total_executions == 0
        assert result.quality_trend == "stable"
        assert result.insights == ["Insufficient data for analysis"]
        assert await recommender.suggest_procedure_improvements("PROC-404") == []

    @pytest.mark.asyncio
    async def test_improving_quality_trend(
        self,
        repository: InMemoryAuditRepository,
        recommender: ProcedureRecommender,
    ) -> None:
        start = datetime(2024, 1, 1, tzinfo=UTC)
        for i, rating in enumerate([2.0, 4.0, 4.0, 4.0]):
            repository.procedure_performance.append(
                performance_row(f"A-{i}", quality_rating=rating, recorded_at=start + timedelta(days=i))
            )

        result = await recommender.analyze_procedure_effectiveness("PROC-1")

        assert result.total_executions == 4
        assert result.quality_trend == "improving"
        assert result.success_rate == 100
        assert "Quality scores showing improvement trend" in result.insights

    @pytest.mark.asyncio
    async def test_improvements_for_weak_procedure(
        self,
        repository: InMemoryAuditRepository,
        recommender: ProcedureRecommender,
    ) -> None:
        for i in range(3):
            repository.procedure_performance.append(
                performance_row(
                    f"A-{i}",
                    effectiveness_score=50,
                    completion_time_hours=14,
                    quality_rating=3,
                )
            )

        improvements = await recommender.suggest_procedure_improvements("PROC-1")

        assert [i.improvement_type for i in improvements] == [
            "effectiveness",
            "efficiency",
            "quality",
        ]


class TestProcedureLearning:
    """Tests for procedure learning from completed audits."""

    @pytest.mark.asyncio
    async def test_rows_recorded_per_procedure(
        self,
        repository: InMemoryAuditRepository,
        recommender: ProcedureRecommender,
        make_learning_data,
    ) -> None:
        data = [make_learning_data(f"AUD-{i}", quality_score=80) for i in range(3)]

        recorded = await recommender.update_with_learning(data)

        assert recorded == 3
        assert len(repository.procedure_performance) == 3
        row = repository.procedure_performance[0]
        assert row.effectiveness_score == 80
        assert row.risk_category == "fraud"
        assert row.complexity_level == ComplexityLevel.COMPLEX
        assert repository.best_practices == []

    @pytest.mark.asyncio
    async def test_exceptional_outcome_records_best_practice(
        self,
        repository: InMemoryAuditRepository,
        recommender: ProcedureRecommender,
        make_learning_data,
    ) -> None:
        await recommender.update_with_learning([make_learning_data("AUD-1", quality_score=92)])

        assert len(repository.best_practices) == 1
        practice = repository.best_practices[0]
        assert practice.procedure_type == "analytics"
        assert practice.risk_category == "fraud"
        assert practice.success_rate == 92
        assert practice.source_audit_id == "AUD-1"
