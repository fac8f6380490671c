"""
Recommendation Orchestrator
===========================

Combines the procedure, auditor and timeline recommenders into one
comprehensive recommendation, and routes completed-audit outcomes and user
feedback into the pattern engine, model registry and recommender learning
hooks.

Workflows:
1. Fan out to the three recommenders under a request timeout
2. Score, reason, assess risk and plan implementation
3. Persist best-effort, keyed by audit id
4. Learn from completed audits / process feedback / validate accuracy

Version: 0.1.0
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any
from uuid import uuid4

from shared.config import ModelRegistrySettings, RecommenderSettings, Settings
from shared.database import AuditRepository, persistence_retry
from shared.errors import PersistenceError
from shared.logging import bind_context, get_logger, unbind_context
from shared.models import (
    AuditContext,
    LearningData,
    Pattern,
    StoredRecommendation,
    UserFeedback,
)
from services.audit_intelligence.ml.auditors import AuditorRecommendation, AuditorRecommender
from services.audit_intelligence.ml.patterns import PatternEngine
from services.audit_intelligence.ml.procedures import (
    ProcedureRecommendation,
    ProcedureRecommender,
)
from services.audit_intelligence.ml.registry import (
    AccuracyReport,
    ModelRegistry,
    accuracy_report,
)
from services.audit_intelligence.ml.timeline import (
    TimelineRecommendation,
    TimelineRecommender,
    fallback_timeline,
)

logger = get_logger(__name__)


# =============================================================================
# Scoring Constants
# =============================================================================

SCORE_WEIGHTS = {"procedure": 0.40, "auditor": 0.35, "timeline": 0.25}

BASE_SUCCESS_PROBABILITY = 80.0
NEUTRAL_SCORE = 75.0
RISK_LEVEL_ADJUSTMENT = {"low": 10.0, "medium": 0.0, "high": -10.0, "critical": -20.0}

PLAN_PHASES = (
    (
        "phase-1",
        "Planning & Setup",
        "Initial setup and resource allocation",
        0.2,
        ["Audit plan", "Resource allocation", "Risk assessment"],
        ["Plan completeness", "Risk coverage", "Resource availability"],
    ),
    (
        "phase-2",
        "Execution",
        "Core audit procedures execution",
        0.6,
        ["Procedure results", "Findings documentation", "Evidence collection"],
        ["Procedure compliance", "Evidence quality", "Coverage completeness"],
    ),
    (
        "phase-3",
        "Review & Reporting",
        "Review findings and prepare reports",
        0.2,
        ["Audit report", "Recommendations", "Action plans"],
        ["Report quality", "Recommendation clarity", "Actionability"],
    ),
)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class AuditRiskFactor:
    name: str
    risk_level: str
    probability: float
    impact: float
    description: str
    indicators: list[str] = field(default_factory=list)


@dataclass
class MitigationStrategy:
    name: str
    applicable_risks: list[str]
    effectiveness: float
    implementation_effort: str
    description: str


@dataclass
class ContingencyPlan:
    scenario: str
    trigger_conditions: list[str]
    response_actions: list[str]
    resource_requirements: list[str]
    timeline: str


@dataclass
class RiskAssessment:
    """Complexity, urgency and resource flags for one audit."""

    overall_risk: str  # low, medium, high, critical
    risk_factors: list[AuditRiskFactor] = field(default_factory=list)
    mitigation_strategies: list[MitigationStrategy] = field(default_factory=list)
    contingency_plans: list[ContingencyPlan] = field(default_factory=list)


@dataclass
class ExpectedOutcome:
    quality_score: float
    duration_hours: float
    success_probability: float
    risk_level: str
    staff_count: int
    skill_level: str


@dataclass
class AlternativeStrategy:
    name: str
    description: str
    pros: list[str]
    cons: list[str]
    applicability: float
    expected_outcome: ExpectedOutcome


@dataclass
class ImplementationPhase:
    phase_id: str
    name: str
    description: str
    duration_hours: float
    dependencies: list[str] = field(default_factory=list)
    deliverables: list[str] = field(default_factory=list)
    quality_criteria: list[str] = field(default_factory=list)


@dataclass
class ResourceAllocation:
    resource_type: str
    allocated_to: str
    quantity: int
    timeframe: str
    responsibilities: list[str] = field(default_factory=list)


@dataclass
class QualityGate:
    gate_id: str
    name: str
    criterion: str
    measurement_method: str
    threshold: float
    approver: str
    consequences: list[str] = field(default_factory=list)


@dataclass
class RiskMonitoring:
    frequency: str
    key_indicators: list[str]
    escalation_trigger: str
    escalation_level: str
    response_time: str
    reporting: list[str] = field(default_factory=list)


@dataclass
class ImplementationPlan:
    """Three-phase plan over the recommended duration."""

    phases: list[ImplementationPhase]
    total_duration_hours: float
    resource_allocation: list[ResourceAllocation]
    quality_gates: list[QualityGate]
    risk_monitoring: RiskMonitoring


@dataclass
class ComprehensiveRecommendation:
    """All three recommendations plus the synthesized plan for one audit."""

    audit_id: str
    procedure_recommendations: list[ProcedureRecommendation]
    auditor_recommendations: list[AuditorRecommendation]
    timeline_recommendation: TimelineRecommendation
    overall_score: float
    reasoning: str
    risk_assessment: RiskAssessment
    success_probability: float
    alternative_strategies: list[AlternativeStrategy]
    implementation_plan: ImplementationPlan
    timed_out: list[str] = field(default_factory=list)


@dataclass
class LearningSummary:
    """What one pass over completed-audit outcomes changed."""

    records: int
    patterns: list[Pattern] = field(default_factory=list)
    models_updated: bool = False
    procedure_rows: int = 0
    auditor_rows: int = 0
    timeline_rows: int = 0


# =============================================================================
# Orchestrator
# =============================================================================


class RecommendationOrchestrator:
    """
    Entry point for comprehensive recommendations and learning intake.

    Engines are constructed by the caller and injected; use
    ``build_orchestrator`` for the default wiring.

    Example:
        >>> orchestrator = build_orchestrator(repository)
        >>> result = await orchestrator.generate_comprehensive_recommendation(
        ...     "audit-42", context, user_id="u-1"
        ... )
        >>> result.overall_score
        78
    """

    def __init__(
        self,
        repository: AuditRepository,
        procedures: ProcedureRecommender,
        auditors: AuditorRecommender,
        timeline: TimelineRecommender,
        patterns: PatternEngine,
        registry: ModelRegistry,
        config: RecommenderSettings | None = None,
        registry_config: ModelRegistrySettings | None = None,
    ) -> None:
        self.repository = repository
        self.procedures = procedures
        self.auditors = auditors
        self.timeline = timeline
        self.patterns = patterns
        self.registry = registry
        self.config = config or RecommenderSettings()
        self.registry_config = registry_config or ModelRegistrySettings()

    # =========================================================================
    # Comprehensive Recommendation
    # =========================================================================

    async def generate_comprehensive_recommendation(
        self,
        audit_id: str,
        context: AuditContext,
        user_id: str | None = None,
    ) -> ComprehensiveRecommendation:
        """
        Run the three recommenders concurrently and synthesize the result.

        A recommender still running at the fan-out timeout is cancelled and
        replaced by its fallback (no procedures, no auditors, constraint-only
        timeline). An exception raised by a recommender propagates.
        """
        bind_context(audit_id=audit_id, user_id=user_id)
        try:
            procedures, auditors, timeline, timed_out = await self._fan_out(context)

            risk = assess_overall_risk(context)
            recommendation = ComprehensiveRecommendation(
                audit_id=audit_id,
                procedure_recommendations=procedures,
                auditor_recommendations=auditors,
                timeline_recommendation=timeline,
                overall_score=overall_score(procedures, auditors, timeline),
                reasoning=comprehensive_reasoning(procedures, auditors, timeline, context),
                risk_assessment=risk,
                success_probability=success_probability(procedures, auditors, timeline, risk),
                alternative_strategies=alternative_strategies(context),
                implementation_plan=implementation_plan(auditors, timeline),
                timed_out=timed_out,
            )

            try:
                await self._store_recommendation(recommendation, user_id)
            except PersistenceError as e:
                logger.error("recommendation_storage_failed", error=str(e))

            logger.info(
                "comprehensive_recommendation_generated",
                overall_score=recommendation.overall_score,
                success_probability=recommendation.success_probability,
                procedures=len(procedures),
                auditors=len(auditors),
                timed_out=timed_out,
            )
            return recommendation
        finally:
            unbind_context("audit_id", "user_id")

    async def _fan_out(
        self,
        context: AuditContext,
    ) -> tuple[
        list[ProcedureRecommendation],
        list[AuditorRecommendation],
        TimelineRecommendation,
        list[str],
    ]:
        tasks = {
            "procedures": asyncio.create_task(self.procedures.recommend(context)),
            "auditors": asyncio.create_task(self.auditors.recommend(context)),
            "timeline": asyncio.create_task(self.timeline.recommend(context)),
        }
        _, pending = await asyncio.wait(
            tasks.values(), timeout=self.config.fanout_timeout_seconds
        )
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        timed_out = [name for name, task in tasks.items() if task in pending]
        if timed_out:
            logger.warning(
                "recommender_fanout_timeout",
                timed_out=timed_out,
                timeout_seconds=self.config.fanout_timeout_seconds,
            )

        procedures = [] if "procedures" in timed_out else tasks["procedures"].result()
        auditors = [] if "auditors" in timed_out else tasks["auditors"].result()
        if "timeline" in timed_out:
            timeline = fallback_timeline(context)
        else:
            timeline = tasks["timeline"].result()

        return procedures, auditors, timeline, timed_out

    @persistence_retry
    async def _store_recommendation(
        self,
        recommendation: ComprehensiveRecommendation,
        user_id: str | None,
    ) -> None:
        await self.repository.save_recommendation(
            StoredRecommendation(
                id=str(uuid4()),
                audit_id=recommendation.audit_id,
                user_id=user_id,
                overall_score=recommendation.overall_score,
                payload=asdict(recommendation),
            )
        )

    # =========================================================================
    # Learning
    # =========================================================================

    async def learn_from_completed_audits(
        self,
        learning_data: Sequence[LearningData],
    ) -> LearningSummary:
        """
        Route completed-audit outcomes to every learning consumer.

        Outcomes are kept for later accuracy validation. Batches below the
        registry's minimum batch size only feed pattern analysis.
        """
        summary = LearningSummary(records=len(learning_data))
        if not learning_data:
            return summary

        try:
            await self._store_learning_data(list(learning_data))
        except PersistenceError as e:
            logger.error("learning_data_storage_failed", error=str(e))

        summary.patterns = await self.patterns.analyze(learning_data)
        summary.models_updated = await self.registry.update_models_with_learning_data(
            learning_data
        )

        if len(learning_data) >= self.registry_config.min_learning_batch:
            (
                summary.procedure_rows,
                summary.auditor_rows,
                summary.timeline_rows,
            ) = await asyncio.gather(
                self.procedures.update_with_learning(learning_data),
                self.auditors.update_with_learning(learning_data),
                self.timeline.update_with_learning(learning_data),
            )

        logger.info(
            "learning_completed",
            records=summary.records,
            patterns=len(summary.patterns),
            models_updated=summary.models_updated,
        )
        return summary

    @persistence_retry
    async def _store_learning_data(self, records: list[LearningData]) -> None:
        await self.repository.add_learning_data(records)

    # =========================================================================
    # Feedback and Validation
    # =========================================================================

    async def process_feedback(self, feedback: Sequence[UserFeedback]) -> bool:
        """
        Store feedback and fold it into the model registry.

        Returns:
            True if accumulated feedback triggered a full model revalidation.
        """
        for item in feedback:
            try:
                await self._store_feedback(item)
            except PersistenceError as e:
                logger.error(
                    "feedback_storage_failed",
                    recommendation_id=item.recommendation_id,
                    error=str(e),
                )

        revalidated = await self.registry.incorporate_feedback(feedback)
        logger.info("feedback_processed", count=len(feedback), revalidated=revalidated)
        return revalidated

    @persistence_retry
    async def _store_feedback(self, item: UserFeedback) -> None:
        await self.repository.add_feedback(item)

    async def validate_recommendation_accuracy(self) -> AccuracyReport:
        """
        Measure stored recommendations against recorded outcomes.

        Each outcome is scored against the stored recommendation for its
        audit when one exists, otherwise against the recommendation it
        carries. Model performance is only overwritten when outcomes exist.
        """
        outcomes = await self.repository.get_learning_data()
        stored = {r.audit_id: r for r in await self.repository.get_recommendations()}

        paired = [_with_stored_recommendation(o, stored.get(o.audit_id)) for o in outcomes]
        report = accuracy_report(paired)

        if report.sample_size == 0:
            logger.info("accuracy_validation_skipped", reason="no outcomes")
            return report

        await self.registry.update_performance_metrics(report)
        logger.info(
            "accuracy_validation_completed",
            overall=report.overall,
            samples=report.sample_size,
            matched=sum(1 for o in outcomes if o.audit_id in stored),
        )
        return report


def build_orchestrator(
    repository: AuditRepository,
    settings: Settings | None = None,
) -> RecommendationOrchestrator:
    """Wire the default engines against one repository."""
    settings = settings or Settings()
    recommender_config = settings.recommender
    return RecommendationOrchestrator(
        repository=repository,
        procedures=ProcedureRecommender(repository, recommender_config),
        auditors=AuditorRecommender(repository, recommender_config),
        timeline=TimelineRecommender(repository),
        patterns=PatternEngine(repository, recommender_config),
        registry=ModelRegistry(
            repository,
            settings.model_registry,
            revalidation_threshold=recommender_config.feedback_revalidation_threshold,
        ),
        config=recommender_config,
        registry_config=settings.model_registry,
    )


# =============================================================================
# Synthesis
# =============================================================================


def overall_score(
    procedures: Sequence[ProcedureRecommendation],
    auditors: Sequence[AuditorRecommendation],
    timeline: TimelineRecommendation,
) -> float:
    """Weighted top-item score; an empty recommender contributes 0."""
    procedure_score = procedures[0].recommendation_score if procedures else 0.0
    auditor_score = auditors[0].match_score if auditors else 0.0
    return round(
        procedure_score * SCORE_WEIGHTS["procedure"]
        + auditor_score * SCORE_WEIGHTS["auditor"]
        + timeline.confidence_level * SCORE_WEIGHTS["timeline"]
    )


def comprehensive_reasoning(
    procedures: Sequence[ProcedureRecommendation],
    auditors: Sequence[AuditorRecommendation],
    timeline: TimelineRecommendation,
    context: AuditContext,
) -> str:
    lines = [
        f"Based on analysis of {context.risk_category} risk in "
        f"{context.organizational_context.industry_type} context:",
        "",
    ]

    if procedures:
        top = procedures[0]
        lines += [
            "Procedure Recommendations:",
            f"- Top procedure: {top.procedure_name} ({top.recommendation_score}% confidence)",
            f"- Expected effectiveness: {top.expected_effectiveness}%",
            f"- Historical success rate: {top.historical_success_rate}%",
            "",
        ]

    if auditors:
        top_auditor = auditors[0]
        lines += [
            "Auditor Assignment:",
            f"- Recommended auditor: {top_auditor.auditor_name} "
            f"({top_auditor.match_score}% match)",
            f"- Key strengths: {', '.join(top_auditor.strengths[:2]) or 'none identified'}",
            f"- Availability: {top_auditor.availability_status}",
            "",
        ]

    lines += [
        "Timeline Optimization:",
        f"- Recommended duration: {timeline.recommended_duration_hours} hours",
        f"- Confidence level: {timeline.confidence_level}%",
        f"- Buffer recommendation: {timeline.buffer_hours} hours",
    ]
    return "\n".join(lines)


def assess_overall_risk(context: AuditContext) -> RiskAssessment:
    factors = []
    overall = "medium"

    if context.is_highly_complex:
        factors.append(
            AuditRiskFactor(
                name="High Complexity",
                risk_level="high",
                probability=80,
                impact=75,
                description="Highly complex audit increases risk of delays and quality issues",
                indicators=["Complex processes", "Multiple systems", "Integration challenges"],
            )
        )
        overall = "high"

    if context.is_critical:
        factors.append(
            AuditRiskFactor(
                name="Critical Timeline",
                risk_level="high",
                probability=70,
                impact=85,
                description="Critical timeline pressure may compromise thoroughness",
                indicators=["Fixed deadline", "Limited buffer", "High stakes"],
            )
        )
        overall = "high"

    if len(context.available_resources.skill_availability) < 2:
        factors.append(
            AuditRiskFactor(
                name="Limited Skilled Resources",
                risk_level="medium",
                probability=60,
                impact=60,
                description="Limited availability of skilled auditors",
                indicators=["Few qualified auditors", "High workload", "Skill gaps"],
            )
        )

    return RiskAssessment(
        overall_risk=overall,
        risk_factors=factors,
        mitigation_strategies=[
            MitigationStrategy(
                name="Enhanced Planning",
                applicable_risks=["High Complexity", "Critical Timeline"],
                effectiveness=75,
                implementation_effort="medium",
                description="Detailed planning with buffer time and resource allocation",
            )
        ],
        contingency_plans=[
            ContingencyPlan(
                scenario="Timeline Overrun",
                trigger_conditions=["50% duration exceeded", "Quality concerns raised"],
                response_actions=[
                    "Request deadline extension",
                    "Allocate additional resources",
                ],
                resource_requirements=["Senior auditor support", "Management approval"],
                timeline="Immediate",
            )
        ],
    )


def alternative_strategies(context: AuditContext) -> list[AlternativeStrategy]:
    max_hours = context.max_duration_hours
    return [
        AlternativeStrategy(
            name="Phased Approach",
            description="Break audit into phases with intermediate deliverables",
            pros=["Better risk management", "Early feedback", "Easier resource planning"],
            cons=["Longer overall timeline", "More coordination needed"],
            applicability=85,
            expected_outcome=ExpectedOutcome(
                quality_score=85,
                duration_hours=round(max_hours * 1.2, 1),
                success_probability=90,
                risk_level="low",
                staff_count=2,
                skill_level="senior",
            ),
        ),
        AlternativeStrategy(
            name="Team-based Approach",
            description="Use team of auditors with different specializations",
            pros=["Knowledge sharing", "Risk distribution", "Faster execution"],
            cons=["Coordination overhead", "Higher cost", "Consistency challenges"],
            applicability=70,
            expected_outcome=ExpectedOutcome(
                quality_score=80,
                duration_hours=round(max_hours * 0.8, 1),
                success_probability=85,
                risk_level="medium",
                staff_count=3,
                skill_level="mixed",
            ),
        ),
    ]


def implementation_plan(
    auditors: Sequence[AuditorRecommendation],
    timeline: TimelineRecommendation,
) -> ImplementationPlan:
    duration = timeline.recommended_duration_hours

    phases = []
    previous: str | None = None
    for phase_id, name, description, share, deliverables, criteria in PLAN_PHASES:
        phases.append(
            ImplementationPhase(
                phase_id=phase_id,
                name=name,
                description=description,
                duration_hours=round(duration * share, 1),
                dependencies=[previous] if previous else [],
                deliverables=list(deliverables),
                quality_criteria=list(criteria),
            )
        )
        previous = phase_id

    return ImplementationPlan(
        phases=phases,
        total_duration_hours=duration,
        resource_allocation=[
            ResourceAllocation(
                resource_type="Primary Auditor",
                allocated_to=auditors[0].auditor_name if auditors else "TBD",
                quantity=1,
                timeframe="Full duration",
                responsibilities=["Lead execution", "Quality review", "Client communication"],
            )
        ],
        quality_gates=[
            QualityGate(
                gate_id="gate-1",
                name="Planning Review",
                criterion="Plan Completeness",
                measurement_method="Checklist review",
                threshold=90,
                approver="Audit Supervisor",
                consequences=["Proceed to execution", "Revise plan if needed"],
            )
        ],
        risk_monitoring=RiskMonitoring(
            frequency="Daily",
            key_indicators=["Progress vs plan", "Quality metrics", "Resource utilization"],
            escalation_trigger="Timeline deviation > 20%",
            escalation_level="supervisor",
            response_time="4 hours",
            reporting=["Daily status", "Weekly summary", "Issue escalation"],
        ),
    )


def success_probability(
    procedures: Sequence[ProcedureRecommendation],
    auditors: Sequence[AuditorRecommendation],
    timeline: TimelineRecommendation,
    risk: RiskAssessment,
) -> float:
    """80 baseline, nudged by each recommender and the risk level, in [30, 95]."""
    probability = BASE_SUCCESS_PROBABILITY

    if procedures:
        average = sum(p.recommendation_score for p in procedures) / len(procedures)
        probability += (average - NEUTRAL_SCORE) * 0.2

    if auditors:
        probability += (auditors[0].match_score - NEUTRAL_SCORE) * 0.15

    probability += (timeline.confidence_level - NEUTRAL_SCORE) * 0.1
    probability += RISK_LEVEL_ADJUSTMENT.get(risk.overall_risk, 0.0)

    return max(30, min(95, round(probability)))


def _with_stored_recommendation(
    outcome: LearningData,
    stored: StoredRecommendation | None,
) -> LearningData:
    if stored is None:
        return outcome

    payload: dict[str, Any] = stored.payload
    changes: dict[str, Any] = {"recommendation_id": stored.id}

    procedure_ids = tuple(
        p["procedure_id"] for p in payload.get("procedure_recommendations", [])
    )
    if procedure_ids:
        changes["recommended_procedures"] = procedure_ids

    auditors = payload.get("auditor_recommendations", [])
    if auditors:
        changes["recommended_auditor"] = auditors[0]["auditor_id"]

    timeline = payload.get("timeline_recommendation")
    if timeline:
        changes["predicted_timeline_hours"] = timeline["recommended_duration_hours"]

    return outcome.model_copy(update=changes)
