"""
Pattern Recognition Engine.

Mines completed-audit learning data for success, failure, performance and
seasonal patterns, and exposes anomaly, correlation and trend heuristics.

Pattern strengths are bounded heuristics in [0, 1], recomputed from scratch
on every pass. They are not calibrated statistics.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from statistics import fmean

import numpy as np

from shared.config import RecommenderSettings
from shared.database import AuditRepository, persistence_retry
from shared.errors import PersistenceError
from shared.logging import get_logger
from shared.models import (
    Anomaly,
    AnomalySeverity,
    Correlation,
    FactorImpact,
    LearningData,
    Pattern,
    PatternType,
    Trend,
    TrendDirection,
)

logger = get_logger(__name__)


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class PatternThresholds:
    """Cut-offs used by the pattern heuristics."""

    success_quality: float = 80.0
    failure_quality: float = 60.0
    high_performance_quality: float = 85.0
    efficient_quality: float = 75.0
    adherence_failure_quality: float = 70.0
    min_group_count: int = 3
    timeline_tolerance: float = 0.15
    timeline_accuracy_rate: float = 0.70
    failure_factor_share: float = 0.30
    characteristic_share: float = 0.60
    timeline_overrun_ratio: float = 1.3
    min_months: int = 6
    seasonal_std: float = 5.0
    anomaly_z: float = 2.5
    critical_z: float = 3.0
    min_correlation: float = 0.5
    min_accuracy_gap: float = 0.1
    min_procedure_quality_gap: float = 10.0
    trend_slope: float = 0.5


NOT_FOLLOWED = "Recommendation not followed"
TIMELINE_OVERRUN = "Significant timeline overrun"


# =============================================================================
# Engine
# =============================================================================


class PatternEngine:
    """
    Pattern recognition over the learning corpus.

    Example:
        >>> engine = PatternEngine(repository)
        >>> patterns = await engine.analyze(learning_data)
        >>> [p.name for p in patterns]
        ['top-auditor-performers', 'seasonal-performance']
    """

    def __init__(
        self,
        repository: AuditRepository,
        config: RecommenderSettings | None = None,
        thresholds: PatternThresholds | None = None,
    ) -> None:
        self.repository = repository
        self.config = config or RecommenderSettings()
        self.thresholds = thresholds or PatternThresholds()

    @property
    def min_points(self) -> int:
        return self.config.min_pattern_data_points

    async def analyze(self, learning_data: Sequence[LearningData]) -> list[Pattern]:
        """
        Detect all pattern classes and keep the significant ones.

        Significant patterns are persisted best-effort; a storage failure is
        logged and the patterns are still returned.
        """
        patterns = [
            *self.success_patterns(learning_data),
            *self.failure_patterns(learning_data),
            *self.performance_patterns(learning_data),
            *self.temporal_patterns(learning_data),
        ]
        significant = [
            p for p in patterns if p.strength >= self.config.pattern_significance_threshold
        ]

        if significant:
            try:
                await self._store(significant)
            except PersistenceError as e:
                logger.error("pattern_storage_failed", count=len(significant), error=str(e))

        logger.info(
            "pattern_analysis_completed",
            records=len(learning_data),
            detected=len(patterns),
            significant=len(significant),
        )
        return significant

    @persistence_retry
    async def _store(self, patterns: list[Pattern]) -> None:
        await self.repository.add_patterns(patterns)

    # =========================================================================
    # Success Patterns
    # =========================================================================

    def success_patterns(self, data: Sequence[LearningData]) -> list[Pattern]:
        t = self.thresholds
        successful = [d for d in data if d.outcome_success and d.quality_score >= t.success_quality]
        if len(successful) < self.min_points:
            return []

        patterns = []
        total = len(successful)

        auditors = Counter(d.actual_auditor for d in successful if d.actual_auditor)
        top_auditors = _frequent(auditors, t.min_group_count, limit=5)
        if top_auditors:
            patterns.append(
                Pattern(
                    pattern_type=PatternType.SUCCESS,
                    name="top-auditor-performers",
                    description=(
                        "Auditors with highest success rates: "
                        + ", ".join(a for a, _ in top_auditors)
                    ),
                    strength=min(0.95, top_auditors[0][1] / total + 0.5),
                    data_points=total,
                    characteristics={"auditor_successes": dict(top_auditors)},
                    recommended_actions=[
                        "Prioritize assignments to high-performing auditors",
                        "Use top performers as mentors for developing auditors",
                        "Analyze success factors of top performers for training",
                    ],
                )
            )

        procedures = Counter(
            procedure_type
            for d in successful
            for procedure_type in {u.procedure_type for u in d.actual_procedures}
        )
        top_procedures = _frequent(procedures, t.min_group_count, limit=3)
        if top_procedures:
            patterns.append(
                Pattern(
                    pattern_type=PatternType.SUCCESS,
                    name="successful-procedures",
                    description=(
                        "Most successful procedure types: "
                        + ", ".join(p for p, _ in top_procedures)
                    ),
                    strength=min(0.90, top_procedures[0][1] / total + 0.4),
                    data_points=total,
                    characteristics={"procedure_successes": dict(top_procedures)},
                    recommended_actions=[
                        "Prefer successful procedure combinations",
                        "Develop templates based on successful patterns",
                        "Train auditors on most effective procedures",
                    ],
                )
            )

        timed = [d for d in successful if d.has_timeline]
        if timed:
            accurate = [
                d for d in timed if abs(d.timeline_variance) / 100 <= t.timeline_tolerance
            ]
            rate = len(accurate) / len(timed)
            if rate >= t.timeline_accuracy_rate:
                patterns.append(
                    Pattern(
                        pattern_type=PatternType.SUCCESS,
                        name="timeline-accuracy",
                        description=(
                            f"High timeline prediction accuracy: {round(rate * 100)}% of "
                            "successful audits completed within 15% of predicted time"
                        ),
                        strength=rate,
                        data_points=len(timed),
                        characteristics={"accurate": len(accurate), "timed": len(timed)},
                        recommended_actions=[
                            "Continue using current timeline prediction methods",
                            "Apply successful timeline patterns to new audits",
                            "Monitor timeline adherence closely",
                        ],
                    )
                )

        return patterns

    # =========================================================================
    # Failure Patterns
    # =========================================================================

    def failure_patterns(self, data: Sequence[LearningData]) -> list[Pattern]:
        t = self.thresholds
        failed = [
            d for d in data if not d.outcome_success or d.quality_score < t.failure_quality
        ]
        if len(failed) < self.min_points:
            return []

        per_audit = [self._failure_factors(d) for d in failed]
        counts = Counter(f for factors in per_audit for f in factors)
        threshold = len(failed) * t.failure_factor_share
        common = [f for f, c in counts.most_common() if c >= threshold]
        if not common:
            return []

        affected = sum(1 for factors in per_audit if factors & set(common))
        return [
            Pattern(
                pattern_type=PatternType.FAILURE,
                name="failure-factors",
                description=f"Common failure factors: {', '.join(common)}",
                strength=min(0.95, affected / len(failed) + 0.2),
                data_points=len(failed),
                characteristics={"factor_counts": {f: counts[f] for f in common}},
                recommended_actions=[
                    "Address identified failure factors before audit starts",
                    "Implement preventive measures for common issues",
                    "Provide additional training in weak areas",
                ],
            )
        ]

    def _failure_factors(self, data: LearningData) -> set[str]:
        factors = {f.name for f in data.context_factors if f.impact == FactorImpact.NEGATIVE}
        if not data.recommendation_followed:
            factors.add(NOT_FOLLOWED)
        if (
            data.has_timeline
            and data.actual_timeline_hours
            > data.predicted_timeline_hours * self.thresholds.timeline_overrun_ratio
        ):
            factors.add(TIMELINE_OVERRUN)
        return factors

    # =========================================================================
    # Performance Patterns
    # =========================================================================

    def performance_patterns(self, data: Sequence[LearningData]) -> list[Pattern]:
        t = self.thresholds
        if len(data) < self.min_points:
            return []

        patterns = []

        high = [
            d for d in data if d.outcome_success and d.quality_score >= t.high_performance_quality
        ]
        if len(high) >= t.min_group_count:
            traits: Counter[str] = Counter()
            for d in high:
                if d.actual_auditor:
                    traits[f"auditor_{d.actual_auditor}"] += 1
                if d.recommendation_followed:
                    traits["followed_recommendations"] += 1
                for f in d.context_factors:
                    if f.impact == FactorImpact.POSITIVE:
                        traits[f"positive_{f.name}"] += 1

            needed = max(2, len(high) * t.characteristic_share)
            common = [(k, c) for k, c in traits.most_common() if c >= needed]
            if common:
                patterns.append(
                    Pattern(
                        pattern_type=PatternType.PERFORMANCE,
                        name="high-performance-combination",
                        description="High-performance audit characteristics: "
                        + ", ".join(k.replace("_", " ") for k, _ in common[:3]),
                        strength=min(0.90, len(common) / 5),
                        data_points=len(high),
                        characteristics={k: round(c / len(high), 2) for k, c in common},
                        recommended_actions=[
                            "Replicate high-performance characteristics in future audits",
                            "Prioritize auditors and procedures with proven success patterns",
                            "Ensure positive contextual factors are in place",
                        ],
                    )
                )

        efficient = [
            d
            for d in data
            if d.has_timeline
            and d.actual_timeline_hours <= d.predicted_timeline_hours
            and d.quality_score >= t.efficient_quality
        ]
        if len(efficient) >= t.min_group_count:
            rate = len(efficient) / len(data)
            patterns.append(
                Pattern(
                    pattern_type=PatternType.PERFORMANCE,
                    name="efficiency-pattern",
                    description=(
                        f"{round(rate * 100)}% of audits completed on time with good quality"
                    ),
                    strength=rate,
                    data_points=len(data),
                    characteristics={
                        "average_timeline_ratio": round(
                            fmean(
                                d.actual_timeline_hours / d.predicted_timeline_hours
                                for d in efficient
                            ),
                            3,
                        )
                    },
                    recommended_actions=[
                        "Apply efficiency patterns to improve timeline predictions",
                        "Identify and replicate efficient working methods",
                        "Balance speed with quality maintenance",
                    ],
                )
            )

        return patterns

    # =========================================================================
    # Temporal Patterns
    # =========================================================================

    def temporal_patterns(self, data: Sequence[LearningData]) -> list[Pattern]:
        """Month-bucketed quality; flagged when month averages spread widely."""
        t = self.thresholds
        if len(data) < self.min_points:
            return []

        months: dict[tuple[int, int], list[float]] = {}
        for d in sorted(data, key=lambda d: d.completed_at):
            key = (d.completed_at.year, d.completed_at.month)
            months.setdefault(key, []).append(d.quality_score)

        if len(months) < t.min_months:
            return []

        averages = {key: fmean(scores) for key, scores in months.items()}
        std = float(np.std(list(averages.values())))
        if std <= t.seasonal_std:
            return []

        best = max(averages, key=averages.__getitem__)
        worst = min(averages, key=averages.__getitem__)
        best_label, worst_label = _month_label(best), _month_label(worst)

        return [
            Pattern(
                pattern_type=PatternType.SEASONAL,
                name="seasonal-performance",
                description=(
                    "Seasonal performance variation detected. "
                    f"Best: {best_label} ({round(averages[best])}/100), "
                    f"Worst: {worst_label} ({round(averages[worst])}/100)"
                ),
                strength=min(0.85, std / 20),
                data_points=len(data),
                characteristics={
                    "best_month": best_label,
                    "worst_month": worst_label,
                    "std_dev": round(std, 2),
                    "monthly_quality": {
                        _month_label(k): round(v, 1) for k, v in averages.items()
                    },
                },
                recommended_actions=[
                    f"Schedule critical audits during high-performance periods ({best_label})",
                    f"Provide additional support during challenging periods ({worst_label})",
                    "Consider seasonal factors in audit planning and resource allocation",
                ],
            )
        ]

    # =========================================================================
    # Correlations
    # =========================================================================

    def identify_correlations(self, data: Sequence[LearningData]) -> list[Correlation]:
        t = self.thresholds
        if len(data) < self.min_points:
            return []

        correlations = []

        timed = [d for d in data if d.has_timeline]
        if len(timed) >= self.min_points:
            followed = _timeline_accuracy([d for d in timed if d.recommendation_followed])
            ignored = _timeline_accuracy([d for d in timed if not d.recommendation_followed])
            if followed is not None and ignored is not None:
                gap = followed - ignored
                if abs(gap) > t.min_accuracy_gap:
                    correlations.append(
                        Correlation(
                            name="recommendation_adherence_timeline",
                            factors=("recommendation_followed", "timeline_accuracy"),
                            coefficient=max(-1.0, min(1.0, gap)),
                            sample_size=len(timed),
                            description=(
                                "Timeline accuracy is "
                                f"{'better' if gap > 0 else 'worse'} "
                                "when recommendations are followed"
                            ),
                        )
                    )

        quality = [d.quality_score for d in data]
        adherence = _pearson([1.0 if d.recommendation_followed else 0.0 for d in data], quality)
        if adherence is not None and abs(adherence) >= t.min_correlation:
            correlations.append(
                Correlation(
                    name="recommendation_adherence_quality",
                    factors=("recommendation_followed", "quality_score"),
                    coefficient=adherence,
                    sample_size=len(data),
                    description=(
                        "Outcome quality is "
                        f"{'higher' if adherence > 0 else 'lower'} "
                        "when recommendations are followed"
                    ),
                )
            )

        ranked = [d for d in data if d.complexity_level is not None]
        if len(ranked) >= self.min_points:
            complexity = _pearson(
                [float(d.complexity_level.rank) for d in ranked],
                [d.quality_score for d in ranked],
            )
            if complexity is not None and abs(complexity) >= t.min_correlation:
                correlations.append(
                    Correlation(
                        name="complexity_quality",
                        factors=("complexity_level", "quality_score"),
                        coefficient=complexity,
                        sample_size=len(ranked),
                        description=(
                            "Quality "
                            f"{'rises' if complexity > 0 else 'falls'} "
                            "with audit complexity"
                        ),
                    )
                )

        correlations.extend(self._procedure_quality(data))
        return correlations

    def _procedure_quality(self, data: Sequence[LearningData]) -> list[Correlation]:
        t = self.thresholds
        overall = fmean(d.quality_score for d in data)
        by_type: dict[str, list[float]] = {}
        for d in data:
            for u in d.actual_procedures:
                by_type.setdefault(u.procedure_type, []).append(d.quality_score)

        correlations = []
        for procedure_type, scores in sorted(by_type.items()):
            if len(scores) < t.min_group_count:
                continue
            average = fmean(scores)
            difference = average - overall
            if abs(difference) > t.min_procedure_quality_gap:
                correlations.append(
                    Correlation(
                        name="procedure_quality_correlation",
                        factors=(procedure_type, "quality_score"),
                        coefficient=difference / 100,
                        sample_size=len(scores),
                        description=(
                            f"{procedure_type} procedures show "
                            f"{'higher' if difference > 0 else 'lower'} than average "
                            f"quality ({round(average)} vs {round(overall)})"
                        ),
                    )
                )
        return correlations

    # =========================================================================
    # Anomalies
    # =========================================================================

    def detect_anomalies(self, data: Sequence[LearningData]) -> list[Anomaly]:
        """Quality, timeline-variance and adherence anomalies of high or critical severity."""
        if len(data) < self.min_points:
            return []

        anomalies = self._zscore_anomalies(
            "quality_anomaly",
            [(d.audit_id, d.quality_score) for d in data],
            lambda value, high: f"Quality score {value:g} is unusually {'high' if high else 'low'}",
        )

        timed = [d for d in data if d.has_timeline]
        if len(timed) >= self.min_points:
            anomalies.extend(
                self._zscore_anomalies(
                    "timeline_anomaly",
                    [(d.audit_id, d.timeline_variance) for d in timed],
                    lambda value, high: (
                        f"Timeline variance of {round(value)}% is unusually "
                        f"{'high' if high else 'low'}"
                    ),
                )
            )

        adherence = self._adherence_anomaly(data)
        if adherence is not None:
            anomalies.append(adherence)

        return [
            a
            for a in anomalies
            if a.severity in (AnomalySeverity.HIGH, AnomalySeverity.CRITICAL)
        ]

    def _zscore_anomalies(
        self,
        anomaly_type: str,
        samples: Sequence[tuple[str, float]],
        describe: Callable[[float, bool], str],
    ) -> list[Anomaly]:
        t = self.thresholds
        values = np.array([v for _, v in samples], dtype=float)
        mean, std = float(values.mean()), float(values.std())
        if std == 0:
            return []

        anomalies = []
        for (audit_id, value), z in zip(samples, np.abs(values - mean) / std):
            if z > t.anomaly_z:
                anomalies.append(
                    Anomaly(
                        anomaly_type=anomaly_type,
                        severity=(
                            AnomalySeverity.CRITICAL
                            if z > t.critical_z
                            else AnomalySeverity.HIGH
                        ),
                        description=describe(value, value > mean),
                        audit_ids=[audit_id],
                        z_score=round(float(z), 2),
                        recommended_actions=["Review the audit for data or execution issues"],
                    )
                )
        return anomalies

    def _adherence_anomaly(self, data: Sequence[LearningData]) -> Anomaly | None:
        """Non-adherence failing at more than 1.5x the adherent failure rate."""
        threshold = self.thresholds.adherence_failure_quality
        followed = [d for d in data if d.recommendation_followed]
        ignored = [d for d in data if not d.recommendation_followed]
        if not followed or not ignored:
            return None

        def failure_rate(group: list[LearningData]) -> float:
            failed = sum(1 for d in group if not d.outcome_success or d.quality_score < threshold)
            return failed / len(group)

        ignored_rate, followed_rate = failure_rate(ignored), failure_rate(followed)
        if ignored_rate <= followed_rate * 1.5:
            return None

        return Anomaly(
            anomaly_type="adherence_anomaly",
            severity=AnomalySeverity.HIGH,
            description=(
                "Non-adherence to recommendations shows "
                f"{round(ignored_rate * 100)}% failure rate vs "
                f"{round(followed_rate * 100)}% when following recommendations"
            ),
            audit_ids=[d.audit_id for d in ignored],
            recommended_actions=[
                "Investigate barriers to recommendation adherence and address them"
            ],
        )

    # =========================================================================
    # Trends
    # =========================================================================

    def predict_trends(self, data: Sequence[LearningData]) -> list[Trend]:
        """Least-squares slope per audit, in completion order."""
        ordered = sorted(data, key=lambda d: d.completed_at)
        trends = []

        quality = self._trend("quality", [d.quality_score for d in ordered])
        if quality is not None:
            trends.append(quality)

        accuracy = self._trend(
            "timeline_accuracy",
            [max(0.0, 100 - abs(d.timeline_variance)) for d in ordered if d.has_timeline],
        )
        if accuracy is not None:
            trends.append(accuracy)

        return trends

    def _trend(self, metric: str, values: list[float]) -> Trend | None:
        if len(values) < self.min_points:
            return None

        slope = float(np.polyfit(np.arange(len(values)), np.array(values), 1)[0])
        if slope > self.thresholds.trend_slope:
            direction = TrendDirection.IMPROVING
        elif slope < -self.thresholds.trend_slope:
            direction = TrendDirection.DECLINING
        else:
            direction = TrendDirection.STABLE

        return Trend(
            metric=metric,
            direction=direction,
            slope=round(slope, 3),
            sample_size=len(values),
            description=f"{metric.replace('_', ' ')} is {direction.value} "
            f"({slope:+.2f} points per audit)",
        )


# =============================================================================
# Helpers
# =============================================================================


def _frequent(counts: Counter[str], minimum: int, limit: int) -> list[tuple[str, int]]:
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [(k, c) for k, c in ranked if c >= minimum][:limit]


def _month_label(key: tuple[int, int]) -> str:
    year, month = key
    return f"{year:04d}-{month:02d}"


def _timeline_accuracy(data: Sequence[LearningData]) -> float | None:
    if not data:
        return None
    return fmean(max(0.0, 1 - abs(d.timeline_variance) / 100) for d in data)


def _pearson(x: Sequence[float], y: Sequence[float]) -> float | None:
    """Pearson coefficient, or None for constant series."""
    xs, ys = np.array(x, dtype=float), np.array(y, dtype=float)
    if xs.std() == 0 or ys.std() == 0:
        return None
    coefficient = float(np.corrcoef(xs, ys)[0, 1])
    if np.isnan(coefficient):
        return None
    return max(-1.0, min(1.0, round(coefficient, 4)))
