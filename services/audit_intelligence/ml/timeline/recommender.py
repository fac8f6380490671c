"""
Timeline Recommender.

Predicts audit duration from context constraints, learned optimal patterns
and historical timeline performance, and derives milestones, contingencies
and a scheduling strategy from the prediction.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from statistics import fmean

from shared.database import AuditRepository, EntityLocks
from shared.logging import get_logger
from shared.models import (
    AuditContext,
    ComplexityLevel,
    LearningData,
    OptimalTimelinePattern,
    OrganizationSize,
    TimelinePerformanceRecord,
)
from services.audit_intelligence.defaults import MIN_HISTORY_POINTS

logger = get_logger(__name__)


# =============================================================================
# Configuration
# =============================================================================


BASE_DURATION_RATIO = 0.8
MIN_DURATION_HOURS = 4.0
DEFAULT_BUFFER = 0.15
AUDITOR_HISTORY_WEIGHT = 0.4

# Signed percentage impact on duration
COMPLEXITY_IMPACT: dict[ComplexityLevel, float] = {
    ComplexityLevel.SIMPLE: -10,
    ComplexityLevel.MODERATE: 0,
    ComplexityLevel.COMPLEX: 15,
    ComplexityLevel.HIGHLY_COMPLEX: 30,
}

SIZE_IMPACT: dict[OrganizationSize, float] = {
    OrganizationSize.SMALL: -5,
    OrganizationSize.MEDIUM: 0,
    OrganizationSize.LARGE: 10,
    OrganizationSize.ENTERPRISE: 20,
}

COMPLEXITY_MITIGATIONS: dict[ComplexityLevel, list[str]] = {
    ComplexityLevel.SIMPLE: ["Streamline procedures", "Use junior auditors for efficiency"],
    ComplexityLevel.MODERATE: ["Standard procedures", "Regular progress monitoring"],
    ComplexityLevel.COMPLEX: [
        "Senior auditor involvement",
        "Detailed planning",
        "Regular checkpoints",
    ],
    ComplexityLevel.HIGHLY_COMPLEX: [
        "Expert specialist support",
        "Phased approach",
        "Extensive planning and preparation",
    ],
}

SIZE_MITIGATIONS: dict[OrganizationSize, list[str]] = {
    OrganizationSize.SMALL: ["Simplified procedures", "Focus on key risks"],
    OrganizationSize.MEDIUM: ["Standard approach", "Balanced coverage"],
    OrganizationSize.LARGE: ["Systematic sampling", "Multiple audit areas"],
    OrganizationSize.ENTERPRISE: [
        "Team-based approach",
        "Structured methodology",
        "Clear coordination protocols",
    ],
}

# (fraction of duration, id, name, criticality, flexibility %)
MILESTONE_PLAN = (
    (0.18, "milestone-planning", "Planning & Preparation Complete", "high", 20),
    (0.65, "milestone-fieldwork", "Fieldwork & Testing Complete", "critical", 10),
    (0.85, "milestone-review", "Review & Quality Assurance Complete", "high", 15),
    (1.00, "milestone-completion", "Final Report & Closure", "medium", 25),
)

# (phase id, fraction of duration, alternative)
PHASE_PLAN = (
    ("planning-phase", 0.18, "accelerated-planning"),
    ("fieldwork-phase", 0.47, "parallel-fieldwork"),
    ("review-phase", 0.20, "concurrent-review"),
    ("reporting-phase", 0.15, "draft-concurrent-reporting"),
)


# =============================================================================
# Results
# =============================================================================


@dataclass
class DurationFactor:
    """Signed influence on duration; impact is increases, decreases, neutral or varies."""

    name: str
    impact: str
    magnitude: float
    description: str
    mitigations: list[str] = field(default_factory=list)

    @property
    def certainty(self) -> float:
        return 10.0 if self.impact == "varies" else 20.0


@dataclass
class Milestone:
    milestone_id: str
    name: str
    scheduled_hours: float
    dependencies: list[str]
    criticality: str
    flexibility: float


@dataclass
class ContingencyOption:
    scenario: str
    probability: float
    impact_hours: float
    response_strategy: str
    resources: list[str] = field(default_factory=list)


@dataclass
class SequenceStep:
    step: int
    phase_id: str
    estimated_hours: float
    dependencies: list[str]
    alternatives: list[str]


@dataclass
class CriticalPath:
    total_duration: float
    critical_phases: list[str]
    buffer_available: float
    risk_points: list[str]


@dataclass
class SchedulingStrategy:
    sequence: list[SequenceStep]
    critical_path: CriticalPath
    parallel_opportunities: list[str] = field(default_factory=list)
    resource_optimization: str = ""
    flexibility_points: list[str] = field(default_factory=list)


@dataclass
class OptimizationOpportunity:
    opportunity_type: str  # time, quality, cost
    description: str
    expected_benefit: str
    implementation_effort: str
    risk_level: str


@dataclass
class TimelineRecommendation:
    """Recommended duration with the plan derived from it."""

    recommended_duration_hours: float
    confidence_level: float
    base_duration_hours: float
    factors: list[DurationFactor]
    risk_adjustment_hours: float
    buffer_hours: float
    buffer_percentage: float
    milestones: list[Milestone]
    contingency_plan: list[ContingencyOption]
    scheduling_strategy: SchedulingStrategy
    optimization_opportunities: list[OptimizationOpportunity]
    historical_sample_size: int = 0
    is_fallback: bool = False


@dataclass
class TimelineRisk:
    risk_type: str
    probability: float
    impact: str
    description: str
    mitigation_strategies: list[str] = field(default_factory=list)


@dataclass
class TimelineRiskAnalysis:
    total_risks: int
    high_probability_risks: int
    overall_risk_level: str  # Low, Medium, High
    risks: list[TimelineRisk]
    recommended_actions: list[str]


# =============================================================================
# Engine
# =============================================================================


class TimelineRecommender:
    """
    Timeline recommender.

    Example:
        >>> recommender = TimelineRecommender(repository)
        >>> timeline = await recommender.recommend(context)
        >>> timeline.recommended_duration_hours
        41.6
    """

    def __init__(self, repository: AuditRepository) -> None:
        self.repository = repository
        self._locks = EntityLocks()

    async def recommend(self, context: AuditContext) -> TimelineRecommendation:
        history = await self.repository.get_timeline_performance(
            risk_category=context.risk_category,
            complexity_level=context.complexity_level,
        )
        pattern = await self.repository.get_optimal_timeline_pattern(
            context.risk_category, context.complexity_level
        )

        base = base_duration(context, history, pattern)
        factors = duration_factors(context, history)
        adjusted = apply_factor_adjustments(base, factors)
        risk_adjustment = self._risk_adjustment(context, history)
        buffer_pct = buffer_percentage(context, risk_adjustment)
        buffer = round(context.max_duration_hours * BASE_DURATION_RATIO * buffer_pct, 1)

        duration = round(max(MIN_DURATION_HOURS, adjusted + risk_adjustment), 1)

        recommendation = TimelineRecommendation(
            recommended_duration_hours=duration,
            confidence_level=confidence_level(len(history), factors),
            base_duration_hours=round(base, 1),
            factors=factors,
            risk_adjustment_hours=risk_adjustment,
            buffer_hours=buffer,
            buffer_percentage=round(buffer_pct, 4),
            milestones=milestones(duration),
            contingency_plan=self._contingencies(context, history),
            scheduling_strategy=scheduling_strategy(duration),
            optimization_opportunities=self._optimizations(context, history),
            historical_sample_size=len(history),
        )

        logger.info(
            "timeline_recommendation_generated",
            risk_category=context.risk_category,
            duration_hours=duration,
            confidence=recommendation.confidence_level,
            samples=len(history),
        )
        return recommendation

    @staticmethod
    def _risk_adjustment(
        context: AuditContext,
        history: Sequence[TimelinePerformanceRecord],
    ) -> float:
        """Additive hours for high risk, unseen contexts and scarce skills."""
        adjustment = 0.0
        if context.inherent_risk >= 20:
            adjustment += 2
        similar = [
            r
            for r in history
            if r.risk_category == context.risk_category
            and r.complexity_level == context.complexity_level
        ]
        if not similar:
            adjustment += 3
        if _resource_scarce(context):
            adjustment += 1.5
        return adjustment

    def _contingencies(
        self,
        context: AuditContext,
        history: Sequence[TimelinePerformanceRecord],
    ) -> list[ContingencyOption]:
        max_hours = context.max_duration_hours
        options = [
            ContingencyOption(
                scenario="Significant Delay (>20% over estimate)",
                probability=delay_probability(context, history),
                impact_hours=round(max_hours * 0.25),
                response_strategy=(
                    "Escalate to management, request timeline extension, "
                    "add resources if possible"
                ),
                resources=["Senior auditor support", "Management approval", "Additional team member"],
            )
        ]
        if not context.is_highly_complex:
            options.append(
                ContingencyOption(
                    scenario="Complexity Higher Than Expected",
                    probability=35,
                    impact_hours=round(max_hours * 0.15),
                    response_strategy="Engage specialist, revise scope or add expertise",
                    resources=["Subject matter expert", "Extended timeline approval"],
                )
            )
        options.append(
            ContingencyOption(
                scenario="Key Resource Becomes Unavailable",
                probability=25,
                impact_hours=round(max_hours * 0.20),
                response_strategy=(
                    "Activate backup resource, redistribute workload, "
                    "or delay non-critical activities"
                ),
                resources=[
                    "Backup auditor",
                    "Cross-training materials",
                    "Workload redistribution plan",
                ],
            )
        )
        return options

    @staticmethod
    def _optimizations(
        context: AuditContext,
        history: Sequence[TimelinePerformanceRecord],
    ) -> list[OptimizationOpportunity]:
        opportunities = []
        if any(r.actual_hours < r.planned_hours * 0.9 for r in history):
            opportunities.append(
                OptimizationOpportunity(
                    opportunity_type="time",
                    description="Historical data shows potential for faster execution",
                    expected_benefit="10-20% time reduction possible",
                    implementation_effort="low",
                    risk_level="low",
                )
            )
        if context.quality_requirements.thoroughness_level == "comprehensive":
            opportunities.append(
                OptimizationOpportunity(
                    opportunity_type="quality",
                    description="Implement continuous quality monitoring",
                    expected_benefit="Early issue detection, reduced rework",
                    implementation_effort="medium",
                    risk_level="low",
                )
            )
        if len(context.available_resources.skill_availability) >= 3:
            opportunities.append(
                OptimizationOpportunity(
                    opportunity_type="cost",
                    description="Parallel execution with multiple team members",
                    expected_benefit="15-25% time savings through parallelization",
                    implementation_effort="medium",
                    risk_level="medium",
                )
            )
        return opportunities

    # =========================================================================
    # Risk Analysis
    # =========================================================================

    async def analyze_timeline_risks(self, context: AuditContext) -> TimelineRiskAnalysis:
        risks = []

        if context.is_critical:
            risks.append(
                TimelineRisk(
                    risk_type="Critical Timeline Pressure",
                    probability=80,
                    impact="High",
                    description="Extremely tight timeline may compromise audit quality",
                    mitigation_strategies=[
                        "Allocate most experienced auditor",
                        "Pre-prepare all materials and procedures",
                        "Establish clear priorities and focus areas",
                    ],
                )
            )
        if context.is_highly_complex:
            risks.append(
                TimelineRisk(
                    risk_type="High Complexity Delays",
                    probability=70,
                    impact="Medium-High",
                    description="Complex audits often exceed initial time estimates",
                    mitigation_strategies=[
                        "Add 20-25% buffer to initial estimate",
                        "Break down into smaller, manageable phases",
                        "Assign senior auditor with relevant experience",
                    ],
                )
            )
        if _resource_scarce(context):
            risks.append(
                TimelineRisk(
                    risk_type="Limited Resource Availability",
                    probability=60,
                    impact="Medium",
                    description="Limited skilled resources may cause scheduling delays",
                    mitigation_strategies=[
                        "Secure resource commitments early",
                        "Identify backup resources",
                        "Consider external expert consultation",
                    ],
                )
            )

        return TimelineRiskAnalysis(
            total_risks=len(risks),
            high_probability_risks=sum(1 for r in risks if r.probability >= 70),
            overall_risk_level=_overall_risk_level(risks),
            risks=risks,
            recommended_actions=_risk_actions(risks),
        )

    # =========================================================================
    # Auditor-specific Prediction
    # =========================================================================

    async def predict_auditor_timeline(
        self,
        auditor_id: str,
        context: AuditContext,
        base_hours: float | None = None,
    ) -> float:
        """
        Adjust a general duration prediction for one auditor.

        Blends with the auditor's actual hours in similar contexts, or scales
        by the auditor's overall actual/planned ratio when none are similar.
        """
        if base_hours is None:
            base_hours = (await self.recommend(context)).recommended_duration_hours

        history = await self.repository.get_timeline_performance(auditor_id=auditor_id)
        if not history:
            return base_hours

        similar = [
            r
            for r in history
            if r.risk_category == context.risk_category
            and r.complexity_level == context.complexity_level
        ]
        if similar:
            auditor_average = fmean(r.actual_hours for r in similar)
            blended = (
                auditor_average * AUDITOR_HISTORY_WEIGHT
                + base_hours * (1 - AUDITOR_HISTORY_WEIGHT)
            )
            return round(blended, 1)

        ratio = fmean(r.actual_hours / r.planned_hours for r in history)
        factor = max(0.5, min(2.0, ratio))
        return round(base_hours * factor, 1)

    # =========================================================================
    # Learning
    # =========================================================================

    async def update_with_learning(self, learning_data: Sequence[LearningData]) -> int:
        """
        Append timeline performance rows and refresh optimal patterns.

        Returns:
            Number of timeline rows recorded.
        """
        groups: set[tuple[str, ComplexityLevel]] = set()
        recorded = 0

        for data in learning_data:
            category, complexity = data.risk_category, data.complexity_level
            if not data.has_timeline or category is None or complexity is None:
                logger.debug("timeline_learning_skipped", audit_id=data.audit_id)
                continue

            await self.repository.add_timeline_performance(
                TimelinePerformanceRecord(
                    audit_id=data.audit_id,
                    auditor_id=data.actual_auditor,
                    risk_category=category,
                    complexity_level=complexity,
                    planned_hours=data.predicted_timeline_hours,
                    actual_hours=data.actual_timeline_hours,
                    success=data.outcome_success,
                    recorded_at=data.completed_at,
                )
            )
            groups.add((category, complexity))
            recorded += 1

        for category, complexity in sorted(groups, key=lambda g: (g[0], g[1].rank)):
            await self._refresh_optimal_pattern(category, complexity)

        logger.info(
            "timeline_learning_completed",
            audits=len(learning_data),
            rows=recorded,
            groups=len(groups),
        )
        return recorded

    async def _refresh_optimal_pattern(
        self,
        risk_category: str,
        complexity_level: ComplexityLevel,
    ) -> None:
        key = f"{risk_category}:{complexity_level.value}"
        async with self._locks.hold("timeline_pattern", key):
            rows = await self.repository.get_timeline_performance(
                risk_category=risk_category,
                complexity_level=complexity_level,
            )
            successful = [r for r in rows if r.success and r.actual_hours > 0]
            if len(successful) < MIN_HISTORY_POINTS:
                return

            await self.repository.save_optimal_timeline_pattern(
                OptimalTimelinePattern(
                    risk_category=risk_category,
                    complexity_level=complexity_level,
                    optimal_duration_hours=round(
                        fmean(r.actual_hours for r in successful), 1
                    ),
                    sample_size=len(successful),
                    success_rate=round(len(successful) / len(rows) * 100, 1),
                )
            )
        logger.debug(
            "optimal_timeline_pattern_updated",
            risk_category=risk_category,
            complexity=complexity_level.value,
            samples=len(successful),
        )


# =============================================================================
# Duration Model
# =============================================================================


def base_duration(
    context: AuditContext,
    history: Sequence[TimelinePerformanceRecord],
    pattern: OptimalTimelinePattern | None = None,
) -> float:
    """Constraint estimate, replaced by a learned pattern, blended 60/40 with history."""
    base = context.max_duration_hours * BASE_DURATION_RATIO
    if pattern is not None:
        base = pattern.optimal_duration_hours
    if len(history) >= MIN_HISTORY_POINTS:
        base = base * 0.6 + fmean(r.actual_hours for r in history) * 0.4
    return max(MIN_DURATION_HOURS, base)


def duration_factors(
    context: AuditContext,
    history: Sequence[TimelinePerformanceRecord],
) -> list[DurationFactor]:
    complexity = context.complexity_level
    size = context.organizational_context.organization_size
    complexity_impact = COMPLEXITY_IMPACT[complexity]
    size_impact = SIZE_IMPACT[size]
    risk_impact = _risk_level_impact(context.inherent_risk)

    factors = [
        DurationFactor(
            name="Audit Complexity",
            impact=_direction(complexity_impact),
            magnitude=abs(complexity_impact),
            description=f"{complexity.value} complexity adjusts timeline requirements",
            mitigations=COMPLEXITY_MITIGATIONS[complexity],
        ),
        DurationFactor(
            name="Organization Size",
            impact=_direction(size_impact),
            magnitude=abs(size_impact),
            description=f"{size.value} organization adjusts audit time",
            mitigations=SIZE_MITIGATIONS[size],
        ),
        DurationFactor(
            name="Risk Level",
            impact="increases" if risk_impact > 0 else "varies",
            magnitude=risk_impact,
            description=(
                f"Risk level {context.inherent_risk:g} requires "
                f"{'extensive' if risk_impact > 10 else 'standard'} audit procedures"
            ),
            mitigations=_risk_mitigations(context.inherent_risk),
        ),
    ]

    if context.is_critical:
        factors.append(
            DurationFactor(
                name="Critical Urgency",
                impact="varies",
                magnitude=15,
                description=(
                    "Critical timeline may require focused approach "
                    "with potential quality trade-offs"
                ),
                mitigations=[
                    "Prioritize high-risk areas",
                    "Use experienced auditor",
                    "Prepare materials in advance",
                ],
            )
        )

    if len(history) >= MIN_HISTORY_POINTS:
        average_variance = fmean(abs(r.variance_percentage) for r in history)
        if average_variance > 20:
            factors.append(
                DurationFactor(
                    name="Historical Variability",
                    impact="varies",
                    magnitude=min(25.0, average_variance),
                    description=(
                        "Historical data shows high timeline variability "
                        "for similar audits"
                    ),
                    mitigations=[
                        "Add extra buffer time",
                        "Plan for contingencies",
                        "Monitor progress closely",
                    ],
                )
            )

    return factors


def apply_factor_adjustments(base: float, factors: Sequence[DurationFactor]) -> float:
    """Apply factors multiplicatively; never below half the base."""
    adjusted = base
    for factor in factors:
        multiplier = factor.magnitude / 100
        if factor.impact == "increases":
            adjusted *= 1 + multiplier
        elif factor.impact == "decreases":
            adjusted *= 1 - multiplier
        elif factor.impact == "varies":
            adjusted *= 1 + multiplier * 0.5
    return max(base * 0.5, adjusted)


def buffer_percentage(context: AuditContext, risk_adjustment: float) -> float:
    percentage = DEFAULT_BUFFER
    if context.is_highly_complex:
        percentage += 0.05
    if context.is_critical:
        percentage *= 0.5
    if risk_adjustment > 2:
        percentage += 0.05
    return percentage


def confidence_level(data_points: int, factors: Sequence[DurationFactor]) -> float:
    certainty = fmean(f.certainty for f in factors) if factors else 0.0
    confidence = 50 + min(30, data_points * 3) + certainty
    return max(40, min(95, round(confidence)))


def delay_probability(
    context: AuditContext,
    history: Sequence[TimelinePerformanceRecord],
) -> float:
    probability = 30.0
    if context.is_highly_complex:
        probability += 25
    if context.is_critical:
        probability += 20
    if _resource_scarce(context):
        probability += 15
    if len(history) >= MIN_HISTORY_POINTS:
        delayed = sum(1 for r in history if r.variance_percentage > 10)
        probability = probability * 0.6 + delayed / len(history) * 100 * 0.4
    return round(max(10.0, min(80.0, probability)))


def milestones(duration: float) -> list[Milestone]:
    result = []
    previous: str | None = None
    for fraction, milestone_id, name, criticality, flexibility in MILESTONE_PLAN:
        result.append(
            Milestone(
                milestone_id=milestone_id,
                name=name,
                scheduled_hours=round(duration * fraction, 1),
                dependencies=[previous] if previous else [],
                criticality=criticality,
                flexibility=flexibility,
            )
        )
        previous = milestone_id
    return result


def scheduling_strategy(duration: float) -> SchedulingStrategy:
    sequence = []
    previous: str | None = None
    for step, (phase_id, fraction, alternative) in enumerate(PHASE_PLAN, start=1):
        sequence.append(
            SequenceStep(
                step=step,
                phase_id=phase_id,
                estimated_hours=round(duration * fraction, 1),
                dependencies=[previous] if previous else [],
                alternatives=[alternative],
            )
        )
        previous = phase_id

    return SchedulingStrategy(
        sequence=sequence,
        critical_path=CriticalPath(
            total_duration=duration,
            critical_phases=["fieldwork-phase", "review-phase"],
            buffer_available=round(duration * DEFAULT_BUFFER, 1),
            risk_points=["Complex procedure execution", "Quality review bottlenecks"],
        ),
        parallel_opportunities=[
            "Run planning alongside resource preparation (about 2 hours saved)"
        ],
        resource_optimization="Focus the primary auditor on critical path activities",
        flexibility_points=["Parallel drafting or phased reporting in the reporting phase"],
    )


def fallback_timeline(context: AuditContext) -> TimelineRecommendation:
    """Constraint-only timeline used when the full recommendation is unavailable."""
    duration = round(max(MIN_DURATION_HOURS, context.max_duration_hours * BASE_DURATION_RATIO), 1)
    return TimelineRecommendation(
        recommended_duration_hours=duration,
        confidence_level=40,
        base_duration_hours=duration,
        factors=[],
        risk_adjustment_hours=0.0,
        buffer_hours=round(duration * DEFAULT_BUFFER, 1),
        buffer_percentage=DEFAULT_BUFFER,
        milestones=milestones(duration),
        contingency_plan=[],
        scheduling_strategy=scheduling_strategy(duration),
        optimization_opportunities=[],
        is_fallback=True,
    )


# =============================================================================
# Helpers
# =============================================================================


def _direction(impact: float) -> str:
    if impact > 0:
        return "increases"
    if impact < 0:
        return "decreases"
    return "neutral"


def _resource_scarce(context: AuditContext) -> bool:
    return len(context.available_resources.skill_availability) < 2


def _risk_level_impact(risk_score: float) -> float:
    if risk_score >= 20:
        return 20
    if risk_score >= 15:
        return 10
    if risk_score >= 10:
        return 5
    return 0


def _risk_mitigations(risk_score: float) -> list[str]:
    if risk_score >= 20:
        return ["Extensive testing", "Senior auditor required", "Comprehensive documentation"]
    if risk_score >= 15:
        return ["Enhanced procedures", "Additional review steps"]
    if risk_score >= 10:
        return ["Standard risk-based procedures", "Regular monitoring"]
    return ["Basic risk assessment", "Standard procedures"]


def _overall_risk_level(risks: Sequence[TimelineRisk]) -> str:
    high = sum(1 for r in risks if r.probability >= 70)
    medium = sum(1 for r in risks if 50 <= r.probability < 70)
    if high >= 2:
        return "High"
    if high >= 1 or medium >= 2:
        return "Medium"
    return "Low"


def _risk_actions(risks: Sequence[TimelineRisk]) -> list[str]:
    types = " ".join(r.risk_type for r in risks)
    actions = []
    if "Critical Timeline" in types:
        actions.append("Establish clear priorities and must-have deliverables")
        actions.append("Prepare contingency plan for scope reduction if needed")
    if "Complexity" in types:
        actions.append("Secure specialist support before audit starts")
        actions.append("Build in additional buffer time")
    if "Resource" in types:
        actions.append("Confirm resource availability and backup plans")
        actions.append("Cross-train team members on key procedures")
    return actions or [
        "Monitor progress daily",
        "Maintain regular communication with stakeholders",
    ]
