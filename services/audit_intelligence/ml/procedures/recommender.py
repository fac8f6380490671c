"""
Procedure Recommendation Engine.

Scores candidate audit-procedure templates against an audit context and
historical procedure performance, and records procedure outcomes from
completed audits.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from statistics import fmean
from uuid import uuid4

from shared.config import RecommenderSettings
from shared.database import AuditRepository
from shared.logging import get_logger
from shared.models import (
    AuditContext,
    BestPractice,
    ComplexityLevel,
    LearningData,
    OrganizationSize,
    ProcedurePerformanceRecord,
    ProcedureTemplate,
)
from services.audit_intelligence.defaults import PROCEDURE_DEFAULTS

logger = get_logger(__name__)


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class ProcedureWeights:
    """Factor weights for the procedure recommendation score."""

    historical_success: float = 0.30
    context_match: float = 0.25
    best_practice_alignment: float = 0.20
    time_efficiency: float = 0.15
    quality_potential: float = 0.10

    # Points awarded per matching context attribute (max 100)
    context_points: dict[str, float] = field(
        default_factory=lambda: {
            "risk_category": 30,
            "complexity": 25,
            "industry": 20,
            "organization_size": 15,
            "compliance_level": 10,
        }
    )


COMPLEXITY_TIME_MULTIPLIER: dict[ComplexityLevel, float] = {
    ComplexityLevel.SIMPLE: 0.8,
    ComplexityLevel.MODERATE: 1.0,
    ComplexityLevel.COMPLEX: 1.3,
    ComplexityLevel.HIGHLY_COMPLEX: 1.6,
}

SIZE_TIME_MULTIPLIER: dict[OrganizationSize, float] = {
    OrganizationSize.SMALL: 0.9,
    OrganizationSize.MEDIUM: 1.0,
    OrganizationSize.LARGE: 1.2,
    OrganizationSize.ENTERPRISE: 1.4,
}

# Share of historical evidence blended into effectiveness and time estimates
LEARNING_WEIGHT = 0.3

MAX_ALTERNATIVES = 3
MAX_CONTEXTUAL_FACTORS = 4
MAX_BEST_PRACTICES = 3
EXCEPTIONAL_QUALITY = 90


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class ProcedureFactors:
    """Five 0-100 factor scores behind a recommendation."""

    historical_success: float
    context_match: float
    best_practice_alignment: float
    time_efficiency: float
    quality_potential: float

    def weighted(self, weights: ProcedureWeights) -> float:
        return (
            self.historical_success * weights.historical_success
            + self.context_match * weights.context_match
            + self.best_practice_alignment * weights.best_practice_alignment
            + self.time_efficiency * weights.time_efficiency
            + self.quality_potential * weights.quality_potential
        )

    @property
    def average(self) -> float:
        return fmean(asdict(self).values())


@dataclass(frozen=True)
class AlternativeProcedure:
    procedure_id: str
    procedure_name: str
    score: float
    tradeoffs: list[str]
    benefits: list[str]
    limitations: list[str]


@dataclass(frozen=True)
class ContextualFactor:
    name: str
    impact: str  # positive, negative
    strength: float
    description: str


@dataclass(frozen=True)
class ApplicablePractice:
    practice_id: str
    description: str
    applicability: float


@dataclass(frozen=True)
class ProcedureRecommendation:
    """Scored procedure recommendation."""

    procedure_id: str
    procedure_name: str
    recommendation_score: float
    factors: ProcedureFactors
    reasoning: str
    expected_effectiveness: float
    estimated_time_hours: float
    historical_success_rate: float
    risk_mitigation_level: float
    confidence_level: float
    required_skills: list[str] = field(default_factory=list)
    alternatives: list[AlternativeProcedure] = field(default_factory=list)
    contextual_factors: list[ContextualFactor] = field(default_factory=list)
    best_practices: list[ApplicablePractice] = field(default_factory=list)


@dataclass
class ProcedureEffectiveness:
    """Aggregate effectiveness of one procedure across executions."""

    procedure_id: str
    effectiveness_score: float
    average_completion_time: float
    success_rate: float
    quality_rating: float
    quality_trend: str  # improving, stable, declining
    total_executions: int
    insights: list[str] = field(default_factory=list)


@dataclass
class ProcedureImprovement:
    improvement_type: str  # effectiveness, efficiency, quality
    priority: str
    description: str
    expected_improvement: str


# =============================================================================
# Engine
# =============================================================================


class ProcedureRecommender:
    """
    Procedure recommendation engine.

    Features:
    - Multi-factor weighted template scoring
    - Effectiveness and completion-time prediction
    - Alternatives with explicit tradeoffs
    - Procedure performance learning from completed audits

    Example:
        >>> recommender = ProcedureRecommender(repository)
        >>> recommendations = await recommender.recommend(context)
        >>> recommendations[0].recommendation_score
        84
    """

    def __init__(
        self,
        repository: AuditRepository,
        config: RecommenderSettings | None = None,
        weights: ProcedureWeights | None = None,
    ) -> None:
        self.repository = repository
        self.config = config or RecommenderSettings()
        self.weights = weights or ProcedureWeights()
        self._semaphore = asyncio.Semaphore(self.config.worker_pool_size)

    async def recommend(self, context: AuditContext) -> list[ProcedureRecommendation]:
        """
        Recommend up to five procedures for an audit context.

        Only templates scoring at or above the confidence threshold are
        returned, best first.
        """
        history, practices, templates = await asyncio.gather(
            self.repository.get_procedure_performance(
                risk_category=context.risk_category,
                complexity_level=context.complexity_level,
            ),
            self.repository.get_best_practices(context.risk_category),
            self.repository.get_procedure_templates(),
        )

        candidates = [t for t in templates if self._is_relevant(t, context)]
        scored = await asyncio.gather(
            *(
                self._score_with_semaphore(t, context, history, practices, templates)
                for t in candidates
            )
        )

        recommendations = [
            r
            for r in scored
            if r.recommendation_score >= self.config.procedure_confidence_threshold
        ]
        recommendations.sort(key=lambda r: (-r.recommendation_score, r.procedure_id))
        top = recommendations[: self.config.max_recommendations]

        logger.info(
            "procedure_recommendations_generated",
            risk_category=context.risk_category,
            candidates=len(candidates),
            recommended=len(top),
        )
        return top

    async def _score_with_semaphore(
        self,
        template: ProcedureTemplate,
        context: AuditContext,
        history: Sequence[ProcedurePerformanceRecord],
        practices: Sequence[BestPractice],
        templates: Sequence[ProcedureTemplate],
    ) -> ProcedureRecommendation:
        async with self._semaphore:
            return self.score_template(template, context, history, practices, templates)

    @staticmethod
    def _is_relevant(template: ProcedureTemplate, context: AuditContext) -> bool:
        return (
            context.risk_category in template.risk_categories
            or context.complexity_level in template.complexity_levels
        )

    def score_template(
        self,
        template: ProcedureTemplate,
        context: AuditContext,
        history: Sequence[ProcedurePerformanceRecord] = (),
        practices: Sequence[BestPractice] = (),
        templates: Sequence[ProcedureTemplate] = (),
    ) -> ProcedureRecommendation:
        """Score one template; pure with respect to its inputs."""
        same_type = [r for r in history if r.procedure_type == template.procedure_type]

        factors = ProcedureFactors(
            historical_success=self._historical_success(template, history),
            context_match=self._context_match(template, context),
            best_practice_alignment=self._best_practice_alignment(template, practices),
            time_efficiency=self._time_efficiency(template, same_type),
            quality_potential=self._quality_potential(same_type),
        )
        score = _clamp(round(factors.weighted(self.weights)))

        return ProcedureRecommendation(
            procedure_id=template.id,
            procedure_name=template.name,
            recommendation_score=score,
            factors=factors,
            reasoning=self._reasoning(factors, context),
            expected_effectiveness=round(
                self._predict_effectiveness(template, context, same_type)
            ),
            estimated_time_hours=round(
                self._estimate_completion_time(template, context, same_type), 1
            ),
            historical_success_rate=round(factors.historical_success),
            risk_mitigation_level=self._risk_mitigation(template, context),
            confidence_level=self._confidence(len(history), factors),
            required_skills=list(template.required_skills),
            alternatives=self._alternatives(template, context, templates),
            contextual_factors=self._contextual_factors(template, context),
            best_practices=[
                ApplicablePractice(
                    practice_id=p.id,
                    description=p.description,
                    applicability=round(p.success_rate),
                )
                for p in practices
                if p.procedure_type == template.procedure_type
            ][:MAX_BEST_PRACTICES],
        )

    # =========================================================================
    # Factor Scores
    # =========================================================================

    @staticmethod
    def _historical_success(
        template: ProcedureTemplate,
        history: Sequence[ProcedurePerformanceRecord],
    ) -> float:
        relevant = [
            r
            for r in history
            if r.procedure_id == template.id or r.procedure_type == template.procedure_type
        ]
        if not relevant:
            return PROCEDURE_DEFAULTS.historical_success

        success_rate = sum(1 for r in relevant if r.success) / len(relevant)
        avg_effectiveness = fmean(r.effectiveness_score for r in relevant)
        return _clamp((success_rate * 0.6 + avg_effectiveness / 100 * 0.4) * 100)

    def _context_match(self, template: ProcedureTemplate, context: AuditContext) -> float:
        points = self.weights.context_points
        org = context.organizational_context
        score = 0.0

        if context.risk_category in template.risk_categories:
            score += points["risk_category"]
        if context.complexity_level in template.complexity_levels:
            score += points["complexity"]
        if org.industry_type in template.industries:
            score += points["industry"]
        if org.organization_size in template.organization_sizes:
            score += points["organization_size"]
        if org.compliance_level in template.compliance_levels:
            score += points["compliance_level"]

        return min(score, 100.0)

    @staticmethod
    def _best_practice_alignment(
        template: ProcedureTemplate,
        practices: Sequence[BestPractice],
    ) -> float:
        applicable = [
            p
            for p in practices
            if p.procedure_type == template.procedure_type
            or any(ctx in template.tags for ctx in p.applicable_contexts)
        ]
        if not applicable:
            return PROCEDURE_DEFAULTS.best_practice
        return min(fmean(p.success_rate for p in applicable), 100.0)

    @staticmethod
    def _time_efficiency(
        template: ProcedureTemplate,
        same_type: Sequence[ProcedurePerformanceRecord],
    ) -> float:
        """How closely historical completion time tracks the estimate."""
        if not same_type:
            return PROCEDURE_DEFAULTS.time_efficiency

        avg_time = fmean(r.completion_time_hours for r in same_type)
        estimate = template.estimated_hours
        efficiency = max(0.0, (estimate - abs(avg_time - estimate)) / estimate)
        return round(efficiency * 100)

    @staticmethod
    def _quality_potential(same_type: Sequence[ProcedurePerformanceRecord]) -> float:
        if not same_type:
            return PROCEDURE_DEFAULTS.quality_potential
        return round(fmean(r.quality_rating for r in same_type) / 5 * 100)

    # =========================================================================
    # Predictions
    # =========================================================================

    @staticmethod
    def _predict_effectiveness(
        template: ProcedureTemplate,
        context: AuditContext,
        same_type: Sequence[ProcedurePerformanceRecord],
    ) -> float:
        base = template.base_effectiveness
        adjustment = 0.0

        if context.complexity_level == ComplexityLevel.SIMPLE:
            adjustment += 10
        elif context.complexity_level == ComplexityLevel.HIGHLY_COMPLEX:
            adjustment -= 15

        maturity = context.organizational_context.maturity_level
        if maturity == "optimized":
            adjustment += 10
        elif maturity == "initial":
            adjustment -= 10

        if same_type:
            historical = fmean(r.effectiveness_score for r in same_type)
            adjustment += (historical - base) * LEARNING_WEIGHT

        return max(30.0, min(95.0, base + adjustment))

    @staticmethod
    def _estimate_completion_time(
        template: ProcedureTemplate,
        context: AuditContext,
        same_type: Sequence[ProcedurePerformanceRecord],
    ) -> float:
        hours = (
            template.estimated_hours
            * COMPLEXITY_TIME_MULTIPLIER[context.complexity_level]
            * SIZE_TIME_MULTIPLIER[context.organizational_context.organization_size]
        )
        if same_type:
            historical = fmean(r.completion_time_hours for r in same_type)
            hours = hours * (1 - LEARNING_WEIGHT) + historical * LEARNING_WEIGHT
        return max(1.0, hours)

    @staticmethod
    def _risk_mitigation(template: ProcedureTemplate, context: AuditContext) -> float:
        risk_coverage = 80 if context.risk_category in template.risk_categories else 40
        complexity = 85 if context.complexity_level in template.complexity_levels else 50
        control_strength = 75 if template.control_focus else 60
        return round((risk_coverage + complexity + control_strength) / 3)

    @staticmethod
    def _confidence(data_points: int, factors: ProcedureFactors) -> float:
        confidence = 50 + min(30, data_points * 2) + (factors.average - 50) * 0.4
        return max(30.0, min(95.0, round(confidence)))

    # =========================================================================
    # Explanations
    # =========================================================================

    @staticmethod
    def _reasoning(factors: ProcedureFactors, context: AuditContext) -> str:
        lines = [f"Recommended for {context.risk_category} risk auditing due to:"]

        if factors.historical_success >= 80:
            lines.append("- Strong historical performance in similar contexts")
        if factors.context_match >= 80:
            lines.append("- Excellent alignment with audit context and requirements")
        if factors.best_practice_alignment >= 80:
            lines.append("- Consistent with proven best practices")

        considerations = []
        if factors.time_efficiency <= 50:
            considerations.append("- May require additional time planning")
        if factors.quality_potential <= 50:
            considerations.append("- Consider quality enhancement measures")
        if considerations:
            lines.extend(["", "Considerations:", *considerations])

        return "\n".join(lines)

    def _alternatives(
        self,
        template: ProcedureTemplate,
        context: AuditContext,
        templates: Sequence[ProcedureTemplate],
    ) -> list[AlternativeProcedure]:
        candidates = [
            t
            for t in templates
            if t.id != template.id and context.risk_category in t.risk_categories
        ]
        return [
            AlternativeProcedure(
                procedure_id=alt.id,
                procedure_name=alt.name,
                score=self._context_match(alt, context),
                tradeoffs=_tradeoffs(template, alt),
                benefits=_benefits(template, alt),
                limitations=_limitations(alt, context),
            )
            for alt in candidates[:MAX_ALTERNATIVES]
        ]

    @staticmethod
    def _contextual_factors(
        template: ProcedureTemplate,
        context: AuditContext,
    ) -> list[ContextualFactor]:
        factors = []

        if context.inherent_risk >= 20:
            factors.append(
                ContextualFactor(
                    name="High Risk Environment",
                    impact="positive",
                    strength=85,
                    description="Template well-suited for high-risk scenarios",
                )
            )
        if template.target_complexity == context.complexity_level:
            factors.append(
                ContextualFactor(
                    name="Complexity Alignment",
                    impact="positive",
                    strength=90,
                    description="Template designed for this complexity level",
                )
            )
        if len(context.available_resources.skill_availability) >= 3:
            factors.append(
                ContextualFactor(
                    name="Resource Availability",
                    impact="positive",
                    strength=75,
                    description="Sufficient skilled resources available",
                )
            )
        if context.is_critical:
            factors.append(
                ContextualFactor(
                    name="Time Pressure",
                    impact="negative",
                    strength=70,
                    description="Critical timeline may impact thoroughness",
                )
            )

        return factors[:MAX_CONTEXTUAL_FACTORS]

    # =========================================================================
    # Effectiveness Analysis
    # =========================================================================

    async def analyze_procedure_effectiveness(
        self,
        procedure_id: str,
    ) -> ProcedureEffectiveness:
        """Aggregate a procedure's execution history; neutral when empty."""
        history = await self.repository.get_procedure_performance(procedure_id=procedure_id)
        if not history:
            return ProcedureEffectiveness(
                procedure_id=procedure_id,
                effectiveness_score=0,
                average_completion_time=0,
                success_rate=0,
                quality_rating=0,
                quality_trend="stable",
                total_executions=0,
                insights=["Insufficient data for analysis"],
            )

        history = sorted(history, key=lambda r: r.recorded_at)
        effectiveness = fmean(r.effectiveness_score for r in history)
        avg_time = fmean(r.completion_time_hours for r in history)
        trend = _quality_trend(history)

        insights = []
        if effectiveness > 85:
            insights.append("Consistently high effectiveness across executions")
        elif effectiveness < 60:
            insights.append("Below-average effectiveness may indicate need for improvement")
        if avg_time < 4:
            insights.append("Efficient execution time compared to similar procedures")
        elif avg_time > 12:
            insights.append("Longer than average completion time - consider optimization")
        if trend == "improving":
            insights.append("Quality scores showing improvement trend")
        elif trend == "declining":
            insights.append("Quality scores declining - may need attention")

        return ProcedureEffectiveness(
            procedure_id=procedure_id,
            effectiveness_score=round(effectiveness),
            average_completion_time=round(avg_time, 1),
            success_rate=round(sum(1 for r in history if r.success) / len(history) * 100),
            quality_rating=round(fmean(r.quality_rating for r in history), 2),
            quality_trend=trend,
            total_executions=len(history),
            insights=insights,
        )

    async def suggest_procedure_improvements(
        self,
        procedure_id: str,
    ) -> list[ProcedureImprovement]:
        analysis = await self.analyze_procedure_effectiveness(procedure_id)
        if analysis.total_executions == 0:
            return []

        improvements = []
        if analysis.effectiveness_score < 70:
            improvements.append(
                ProcedureImprovement(
                    improvement_type="effectiveness",
                    priority="high",
                    description="Consider alternative procedures with higher success rates",
                    expected_improvement="15-25% increase in effectiveness",
                )
            )
        if analysis.average_completion_time > 8:
            improvements.append(
                ProcedureImprovement(
                    improvement_type="efficiency",
                    priority="medium",
                    description="Streamline procedure steps to reduce completion time",
                    expected_improvement="10-20% time savings",
                )
            )
        if analysis.quality_rating < 4.0 or analysis.quality_trend == "declining":
            improvements.append(
                ProcedureImprovement(
                    improvement_type="quality",
                    priority="high",
                    description="Enhance procedure guidance and quality control measures",
                    expected_improvement="0.5-1.0 point quality increase",
                )
            )
        return improvements

    # =========================================================================
    # Learning
    # =========================================================================

    async def update_with_learning(self, learning_data: Sequence[LearningData]) -> int:
        """
        Append procedure performance rows for completed audits.

        Exceptional outcomes also register a best practice per procedure type.

        Returns:
            Number of performance rows recorded.
        """
        recorded = 0
        for data in learning_data:
            for usage in data.actual_procedures:
                await self.repository.add_procedure_performance(
                    ProcedurePerformanceRecord(
                        procedure_id=usage.procedure_id,
                        procedure_type=usage.procedure_type,
                        audit_id=data.audit_id,
                        risk_category=data.risk_category,
                        complexity_level=data.complexity_level,
                        effectiveness_score=round(usage.effectiveness_rating * 20),
                        completion_time_hours=usage.actual_time_hours,
                        quality_rating=usage.quality_rating,
                        findings_count=usage.findings_count,
                        issues_count=usage.issues_count,
                        success=data.outcome_success,
                        recorded_at=data.completed_at,
                    )
                )
                recorded += 1

            if (
                data.outcome_success
                and data.quality_score >= EXCEPTIONAL_QUALITY
                and data.risk_category
            ):
                await self._record_best_practices(data)

        logger.info(
            "procedure_learning_completed",
            audits=len(learning_data),
            rows=recorded,
        )
        return recorded

    async def _record_best_practices(self, data: LearningData) -> None:
        for procedure_type in sorted({u.procedure_type for u in data.actual_procedures}):
            await self.repository.add_best_practice(
                BestPractice(
                    id=str(uuid4()),
                    procedure_type=procedure_type,
                    risk_category=data.risk_category,
                    success_rate=data.quality_score,
                    description=(
                        f"{procedure_type} procedure delivered quality "
                        f"{data.quality_score:.0f} in audit {data.audit_id}"
                    ),
                    source_audit_id=data.audit_id,
                )
            )


# =============================================================================
# Helpers
# =============================================================================


def _clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    return max(lower, min(upper, value))


def _quality_trend(history: Sequence[ProcedurePerformanceRecord]) -> str:
    """Compare the last three quality ratings with the earlier ones."""
    if len(history) < 4:
        return "stable"

    recent = fmean(r.quality_rating for r in history[-3:])
    older = fmean(r.quality_rating for r in history[:-3])
    if recent > older + 0.2:
        return "improving"
    if recent < older - 0.2:
        return "declining"
    return "stable"


def _tradeoffs(original: ProcedureTemplate, alternative: ProcedureTemplate) -> list[str]:
    tradeoffs = []
    if alternative.estimated_hours > original.estimated_hours:
        tradeoffs.append("Longer execution time")
    if len(alternative.required_skills) > len(original.required_skills):
        tradeoffs.append("Higher skill requirements")
    if (
        alternative.target_complexity == ComplexityLevel.HIGHLY_COMPLEX
        and original.target_complexity != ComplexityLevel.HIGHLY_COMPLEX
    ):
        tradeoffs.append("Increased complexity")
    return tradeoffs


def _benefits(original: ProcedureTemplate, alternative: ProcedureTemplate) -> list[str]:
    benefits = []
    if alternative.estimated_hours < original.estimated_hours:
        benefits.append("Faster completion")
    if alternative.base_effectiveness > original.base_effectiveness:
        benefits.append("Higher effectiveness")
    if alternative.automation_level > original.automation_level:
        benefits.append("More automated procedures")
    return benefits


def _limitations(template: ProcedureTemplate, context: AuditContext) -> list[str]:
    limitations = []
    if context.organizational_context.industry_type not in template.industries:
        limitations.append("Limited industry applicability")
    if len(template.required_tools) > len(context.available_resources.tools_available):
        limitations.append("Tool availability constraints")
    return limitations
