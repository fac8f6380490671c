"""Tests for the pattern recognition engine."""

from datetime import UTC, datetime, timedelta

import pytest

from services.audit_intelligence.ml.patterns import PatternEngine
from shared.database import InMemoryAuditRepository
from shared.models import AnomalySeverity, PatternType, TrendDirection


@pytest.fixture
def engine(repository: InMemoryAuditRepository) -> PatternEngine:
    return PatternEngine(repository)


class TestPatternAnalysis:
    """Tests for the full analysis pass."""

    @pytest.mark.asyncio
    async def test_consistent_success_patterns(
        self,
        repository: InMemoryAuditRepository,
        engine: PatternEngine,
        make_learning_data,
    ) -> None:
        data = [make_learning_data(f"AUD-{i}") for i in range(5)]

        patterns = await engine.analyze(data)

        names = {p.name for p in patterns}
        assert names == {
            "top-auditor-performers",
            "successful-procedures",
            "timeline-accuracy",
            "efficiency-pattern",
        }
        assert all(0.70 <= p.strength <= 1 for p in patterns)
        assert repository.patterns == patterns

    @pytest.mark.asyncio
    async def test_insufficient_data_yields_nothing(
        self,
        repository: InMemoryAuditRepository,
        engine: PatternEngine,
        make_learning_data,
    ) -> None:
        data = [make_learning_data(f"AUD-{i}") for i in range(4)]

        assert await engine.analyze(data) == []
        assert engine.detect_anomalies(data) == []
        assert engine.identify_correlations(data) == []
        assert engine.predict_trends(data) == []
        assert repository.patterns == []

    @pytest.mark.asyncio
    async def test_storage_failure_still_returns_patterns(
        self,
        make_learning_data,
    ) -> None:
        repository = InMemoryAuditRepository(failing_writes={"add_patterns"})
        engine = PatternEngine(repository)
        data = [make_learning_data(f"AUD-{i}") for i in range(5)]

        patterns = await engine.analyze(data)

        assert len(patterns) == 4
        assert repository.patterns == []

    def test_failure_factors(self, engine: PatternEngine, make_learning_data) -> None:
        data = [
            make_learning_data(
                f"AUD-{i}",
                outcome_success=False,
                recommendation_followed=False,
                quality_score=50,
            )
            for i in range(5)
        ]

        patterns = engine.failure_patterns(data)

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.pattern_type == PatternType.FAILURE
        assert "Recommendation not followed" in pattern.description
        assert pattern.strength == 0.95


class TestTemporalPatterns:
    """Tests for month-bucketed seasonal detection."""

    def test_seasonal_dip_detected(self, engine: PatternEngine, make_learning_data) -> None:
        qualities = [80, 80, 40, 80, 80, 80]
        data = [
            make_learning_data(
                f"AUD-{month}",
                quality_score=quality,
                completed_at=datetime(2024, month, 10, tzinfo=UTC),
            )
            for month, quality in enumerate(qualities, start=1)
        ]

        patterns = engine.temporal_patterns(data)

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.pattern_type == PatternType.SEASONAL
        assert pattern.characteristics["worst_month"] == "2024-03"
        assert pattern.characteristics["std_dev"] == pytest.approx(14.91, abs=0.01)
        assert pattern.strength == pytest.approx(0.745, abs=0.001)

    def test_fewer_than_six_months_ignored(self, engine: PatternEngine, make_learning_data) -> None:
        data = [
            make_learning_data(
                f"AUD-{month}",
                quality_score=40 if month == 2 else 90,
                completed_at=datetime(2024, month, 10, tzinfo=UTC),
            )
            for month in range(1, 6)
        ]

        assert engine.temporal_patterns(data) == []


class TestAnomalies:
    """Tests for z-score and adherence anomalies."""

    def test_quality_outlier_is_critical(self, engine: PatternEngine, make_learning_data) -> None:
        data = [make_learning_data(f"AUD-{i}", quality_score=80) for i in range(10)]
        data.append(make_learning_data("AUD-BAD", quality_score=10))

        anomalies = engine.detect_anomalies(data)

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.anomaly_type == "quality_anomaly"
        assert anomaly.severity == AnomalySeverity.CRITICAL
        assert anomaly.audit_ids == ["AUD-BAD"]
        assert anomaly.z_score == pytest.approx(3.16, abs=0.01)

    def test_non_adherence_failures(self, engine: PatternEngine, make_learning_data) -> None:
        data = [make_learning_data(f"AUD-F{i}", quality_score=85) for i in range(4)]
        data += [
            make_learning_data(
                f"AUD-I{i}",
                quality_score=85,
                recommendation_followed=False,
                outcome_success=i == 0,
            )
            for i in range(3)
        ]

        anomalies = engine.detect_anomalies(data)

        adherence = [a for a in anomalies if a.anomaly_type == "adherence_anomaly"]
        assert len(adherence) == 1
        assert adherence[0].severity == AnomalySeverity.HIGH
        assert adherence[0].audit_ids == ["AUD-I0", "AUD-I1", "AUD-I2"]


class TestCorrelationsAndTrends:
    """Tests for correlation and trend heuristics."""

    def test_adherence_quality_correlation(
        self,
        engine: PatternEngine,
        make_learning_data,
    ) -> None:
        data = [make_learning_data(f"AUD-F{i}", quality_score=90) for i in range(3)]
        data += [
            make_learning_data(f"AUD-I{i}", quality_score=50, recommendation_followed=False)
            for i in range(3)
        ]

        correlations = engine.identify_correlations(data)

        by_name = {c.name: c for c in correlations}
        adherence = by_name["recommendation_adherence_quality"]
        assert adherence.coefficient > 0.5
        assert adherence.sample_size == 6
        assert "higher" in adherence.description

    def test_improving_quality_trend(self, engine: PatternEngine, make_learning_data) -> None:
        start = datetime(2024, 1, 1, tzinfo=UTC)
        data = [
            make_learning_data(
                f"AUD-{i}",
                quality_score=60 + i * 5,
                completed_at=start + timedelta(days=i),
            )
            for i in range(5)
        ]

        trends = {t.metric: t for t in engine.predict_trends(data)}

        assert trends["quality"].direction == TrendDirection.IMPROVING
        assert trends["quality"].slope == pytest.approx(5.0)
        assert trends["timeline_accuracy"].direction == TrendDirection.STABLE
