"""
Auditor Assignment Recommender.

Scores active auditors against an audit context using expertise profiles,
performance history, current workload and skill alignment.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from statistics import fmean

from shared.config import RecommenderSettings
from shared.database import AuditRepository, EntityLocks
from shared.errors import PersistenceError
from shared.logging import get_logger
from shared.models import (
    Assignment,
    Auditor,
    AuditContext,
    AuditorPerformanceRecord,
    ComplexityLevel,
    ExpertiseProfile,
    LearningData,
)
from services.audit_intelligence.defaults import (
    MIN_HISTORY_POINTS,
    HistoricalPerformance,
    PerformanceEstimate,
    RiskFactor,
    default_expertise_profile,
    default_historical_performance,
    default_performance_estimate,
)
from services.audit_intelligence.skills import (
    SkillCategory,
    SkillCriticality,
    auditor_proficiency,
    extract_required_skills,
    required_level,
    skill_criticality,
)

logger = get_logger(__name__)


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class MatchWeights:
    """Weights for the composite auditor match score."""

    skill_alignment: float = 0.25
    risk_specialization: float = 0.20
    experience_level: float = 0.15
    availability: float = 0.15
    quality_consistency: float = 0.15
    reliability: float = 0.10


AUDITOR_ROLE = "auditor"
WORKLOAD_THRESHOLD = 80.0
FULLY_AVAILABLE_UTILIZATION = 70.0
UNDERUTILIZED = 50.0
DAYS_PER_MONTH = 30


# =============================================================================
# Results
# =============================================================================


@dataclass
class SkillMatch:
    skill_name: str
    category: SkillCategory
    required: float
    actual: float
    gap: float
    criticality: SkillCriticality


@dataclass
class SkillGap:
    skill_name: str
    gap_size: float
    impact: str  # low, medium, high
    mitigation_options: list[str] = field(default_factory=list)


@dataclass
class SkillAlignment:
    overall_alignment: float
    critical_skills: list[SkillMatch] = field(default_factory=list)
    skill_gaps: list[SkillGap] = field(default_factory=list)
    development_opportunities: list[str] = field(default_factory=list)


@dataclass
class WorkloadAnalysis:
    """Current utilization against weekly capacity."""

    current_utilization: float
    available_capacity: float
    scheduling_flexibility: float
    overcommitment_risk: str  # low, medium, high
    recommendations: list[str] = field(default_factory=list)


@dataclass
class TeamCompatibility:
    """Neutral placeholder until team interaction data is available."""

    teamwork_score: float = 75.0
    communication_score: float = 80.0
    leadership_potential: float = 70.0
    mentorship_capability: float = 65.0
    cultural_fit: float = 85.0


@dataclass
class AuditorRecommendation:
    """Scored auditor recommendation for one context."""

    auditor_id: str
    auditor_name: str
    match_score: float
    strengths: list[str]
    potential_challenges: list[str]
    estimated_performance: PerformanceEstimate
    availability_status: str  # fully_available, partially_available, overloaded
    learning_opportunity: bool
    historical_performance: HistoricalPerformance
    skill_alignment: SkillAlignment
    workload_analysis: WorkloadAnalysis
    team_compatibility: TeamCompatibility = field(default_factory=TeamCompatibility)


@dataclass
class WorkloadBalance:
    overloaded: int
    underutilized: int
    average_utilization: float
    recommendations: list[str] = field(default_factory=list)


# =============================================================================
# Engine
# =============================================================================


class AuditorRecommender:
    """
    Auditor assignment recommender.

    Example:
        >>> recommender = AuditorRecommender(repository)
        >>> recommendations = await recommender.recommend(context)
        >>> [r.auditor_id for r in recommendations]
        ['aud-2', 'aud-7']
    """

    def __init__(
        self,
        repository: AuditRepository,
        config: RecommenderSettings | None = None,
        weights: MatchWeights | None = None,
    ) -> None:
        self.repository = repository
        self.config = config or RecommenderSettings()
        self.weights = weights or MatchWeights()
        self._semaphore = asyncio.Semaphore(self.config.worker_pool_size)
        self._locks = EntityLocks()

    async def recommend(self, context: AuditContext) -> list[AuditorRecommendation]:
        """Recommend up to five auditors with match score of at least 60."""
        auditors = await self._available_auditors()

        analyses = await asyncio.gather(
            *(self._analyze_with_semaphore(a, context) for a in auditors)
        )

        recommendations = [
            r for r in analyses if r.match_score >= self.config.auditor_match_threshold
        ]
        recommendations.sort(key=lambda r: (-r.match_score, r.auditor_id))
        top = recommendations[: self.config.max_recommendations]

        logger.info(
            "auditor_recommendations_generated",
            complexity=context.complexity_level.value,
            auditors=len(auditors),
            recommended=len(top),
        )
        return top

    async def _available_auditors(self) -> list[Auditor]:
        auditors = await self.repository.get_users_by_role(AUDITOR_ROLE)
        return [a for a in auditors if a.is_active]

    async def _analyze_with_semaphore(
        self,
        auditor: Auditor,
        context: AuditContext,
    ) -> AuditorRecommendation:
        async with self._semaphore:
            return await self.analyze_auditor(auditor, context)

    async def analyze_auditor(
        self,
        auditor: Auditor,
        context: AuditContext,
    ) -> AuditorRecommendation:
        profile, historical, workload = await asyncio.gather(
            self.get_expertise(auditor.id),
            self.get_historical_performance(auditor.id),
            self.analyze_workload(auditor.id),
        )
        alignment = self.skill_alignment(profile, context)

        return AuditorRecommendation(
            auditor_id=auditor.id,
            auditor_name=auditor.name or "Unknown",
            match_score=self.match_score(profile, context, alignment, workload),
            strengths=self._strengths(profile, context),
            potential_challenges=self._challenges(profile, context, workload),
            estimated_performance=self._estimate(
                auditor.id, profile, historical, workload, context
            ),
            availability_status=availability_status(workload),
            learning_opportunity=self._is_learning_opportunity(profile, context),
            historical_performance=historical,
            skill_alignment=alignment,
            workload_analysis=workload,
        )

    # =========================================================================
    # Profile and History
    # =========================================================================

    async def get_expertise(self, auditor_id: str) -> ExpertiseProfile:
        """Stored profile, creating the canonical default on first lookup."""
        profile = await self.repository.get_expertise_profile(auditor_id)
        if profile is not None:
            return profile

        async with self._locks.hold("auditor", auditor_id):
            return await self._load_or_create_profile(auditor_id)

    async def _load_or_create_profile(self, auditor_id: str) -> ExpertiseProfile:
        # Caller holds the auditor lock.
        profile = await self.repository.get_expertise_profile(auditor_id)
        if profile is not None:
            return profile

        profile = default_expertise_profile(auditor_id)
        try:
            return await self.repository.save_expertise_profile(profile)
        except PersistenceError as e:
            logger.warning("expertise_profile_save_failed", auditor_id=auditor_id, error=str(e))
            return profile

    async def get_historical_performance(self, auditor_id: str) -> HistoricalPerformance:
        since = datetime.now(UTC) - timedelta(
            days=DAYS_PER_MONTH * self.config.auditor_lookback_months
        )
        history = await self.repository.get_auditor_performance(auditor_id, since=since)
        if len(history) < MIN_HISTORY_POINTS:
            return default_historical_performance(len(history))

        completed = [r for r in history if r.success]
        if not completed:
            return HistoricalPerformance(
                average_quality_score=0,
                completion_reliability=0,
                timeline_accuracy=0,
                findings_effectiveness=0,
                client_satisfaction=75,
                improvement_trend=_improvement_trend(history),
                data_points=len(history),
            )

        on_time = sum(1 for r in completed if r.completed_on_time)
        findings = fmean(r.findings_count for r in completed)
        return HistoricalPerformance(
            average_quality_score=round(fmean(r.quality_score for r in completed)),
            completion_reliability=round(len(completed) / len(history) * 100),
            timeline_accuracy=round(on_time / len(completed) * 100),
            findings_effectiveness=min(100, round(findings * 20)),
            client_satisfaction=75,
            improvement_trend=_improvement_trend(history),
            data_points=len(history),
        )

    async def analyze_workload(self, auditor_id: str) -> WorkloadAnalysis:
        assignments = await self.repository.get_active_assignments(auditor_id)
        capacity = self.config.weekly_capacity_hours
        assigned = sum(a.estimated_hours for a in assignments)
        utilization = round(assigned / capacity * 100)

        return WorkloadAnalysis(
            current_utilization=utilization,
            available_capacity=max(0.0, capacity - assigned),
            scheduling_flexibility=_scheduling_flexibility(assignments),
            overcommitment_risk=_overcommitment_risk(utilization, assignments),
            recommendations=_workload_recommendations([utilization]),
        )

    # =========================================================================
    # Scoring
    # =========================================================================

    @staticmethod
    def skill_alignment(profile: ExpertiseProfile, context: AuditContext) -> SkillAlignment:
        """Average capped proficiency ratio over the context's required skills."""
        matches: list[SkillMatch] = []
        gaps: list[SkillGap] = []
        opportunities: list[str] = []

        for skill in extract_required_skills(context):
            actual = auditor_proficiency(profile, skill)
            required = required_level(skill, context)
            gap = max(0.0, required - actual)

            matches.append(
                SkillMatch(
                    skill_name=skill.name,
                    category=skill.category,
                    required=required,
                    actual=actual,
                    gap=gap,
                    criticality=skill_criticality(skill, context),
                )
            )
            if gap > 20:
                gaps.append(
                    SkillGap(
                        skill_name=skill.name,
                        gap_size=gap,
                        impact="high" if gap > 40 else "medium" if gap > 25 else "low",
                        mitigation_options=_skill_mitigations(skill.category, gap),
                    )
                )
            if 0 < gap < 30:
                opportunities.append(f"Strengthen {skill.name} skills")

        ratios = [min(m.actual / m.required, 1.0) * 100 for m in matches]
        return SkillAlignment(
            overall_alignment=round(fmean(ratios)) if ratios else 50,
            critical_skills=matches,
            skill_gaps=gaps,
            development_opportunities=opportunities,
        )

    def match_score(
        self,
        profile: ExpertiseProfile,
        context: AuditContext,
        alignment: SkillAlignment,
        workload: WorkloadAnalysis,
    ) -> float:
        w = self.weights
        score = (
            alignment.overall_alignment * w.skill_alignment
            + _risk_specialization(profile, context) * w.risk_specialization
            + profile.average_performance_score * w.experience_level
            + max(0.0, 100 - workload.current_utilization) * w.availability
            + profile.quality_consistency * w.quality_consistency
            + profile.completion_reliability * w.reliability
        )
        return round(max(0.0, min(100.0, score)))

    @staticmethod
    def _strengths(profile: ExpertiseProfile, context: AuditContext) -> list[str]:
        strengths = []
        industry = context.organizational_context.industry_type

        if context.risk_category in profile.risk_specializations:
            strengths.append(f"Specialized in {context.risk_category} risk assessment")
        if industry in profile.industry_experience:
            strengths.append(f"Extensive {industry} industry experience")
        if profile.average_performance_score >= 85:
            strengths.append("Consistently high performance ratings")
        if profile.completion_reliability >= 90:
            strengths.append("Excellent track record for on-time completion")
        if profile.quality_consistency >= 80:
            strengths.append("Consistent quality delivery")
        if profile.complexity_handling == context.complexity_level:
            strengths.append(
                f"Well-suited for {context.complexity_level.value} complexity audits"
            )
        return strengths

    @staticmethod
    def _challenges(
        profile: ExpertiseProfile,
        context: AuditContext,
        workload: WorkloadAnalysis,
    ) -> list[str]:
        challenges = []
        industry = context.organizational_context.industry_type

        if workload.current_utilization > WORKLOAD_THRESHOLD:
            challenges.append("High current workload may impact focus and quality")
        if context.risk_category not in profile.risk_specializations:
            challenges.append(
                f"Limited experience with {context.risk_category} risk category"
            )
        if industry not in profile.industry_experience:
            challenges.append(
                f"May need additional support for {industry} industry specifics"
            )
        if profile.learning_velocity < 60 and context.is_highly_complex:
            challenges.append("Complex audit may require additional guidance and support")
        if profile.availability_score < 80:
            challenges.append("Limited availability may affect scheduling flexibility")
        return challenges

    @staticmethod
    def _is_learning_opportunity(profile: ExpertiseProfile, context: AuditContext) -> bool:
        """True when the audit would widen the auditor's experience."""
        has_risk = context.risk_category in profile.risk_specializations
        has_industry = (
            context.organizational_context.industry_type in profile.industry_experience
        )
        stretch = profile.complexity_handling < context.complexity_level
        return not has_risk or not has_industry or (stretch and profile.learning_velocity >= 70)

    # =========================================================================
    # Performance Prediction
    # =========================================================================

    async def predict_performance(
        self,
        auditor_id: str,
        context: AuditContext,
    ) -> PerformanceEstimate:
        """
        Estimate quality, completion time and success probability.

        Unknown auditors receive the canonical default estimate.
        """
        auditor = await self.repository.get_user(auditor_id)
        if auditor is None:
            logger.info("auditor_not_found_using_default_estimate", auditor_id=auditor_id)
            return default_performance_estimate(auditor_id)

        profile, historical, workload = await asyncio.gather(
            self.get_expertise(auditor_id),
            self.get_historical_performance(auditor_id),
            self.analyze_workload(auditor_id),
        )
        return self._estimate(auditor_id, profile, historical, workload, context)

    def _estimate(
        self,
        auditor_id: str,
        profile: ExpertiseProfile,
        historical: HistoricalPerformance,
        workload: WorkloadAnalysis,
        context: AuditContext,
    ) -> PerformanceEstimate:
        specialized = context.risk_category in profile.risk_specializations
        alignment = complexity_alignment(profile.complexity_handling, context.complexity_level)

        quality = profile.average_performance_score + (5 if specialized else 0) + alignment
        quality = quality * 0.7 + historical.average_quality_score * 0.3
        quality = max(60.0, min(95.0, quality))

        hours = context.max_duration_hours * 0.8
        if historical.timeline_accuracy > 90:
            hours *= 0.95
        elif historical.timeline_accuracy < 70:
            hours *= 1.15
        hours = max(4.0, hours)

        probability = (
            75
            + (historical.completion_reliability - 75) * 0.3
            + (10 if specialized else 0)
            + (profile.quality_consistency - 75) * 0.2
            + alignment * 0.5
        )
        probability = max(50, min(95, round(probability)))

        return PerformanceEstimate(
            auditor_id=auditor_id,
            expected_quality_score=round(quality),
            expected_completion_hours=round(hours, 1),
            success_probability=probability,
            risk_factors=self._risk_factors(profile, workload, context),
        )

    @staticmethod
    def _risk_factors(
        profile: ExpertiseProfile,
        workload: WorkloadAnalysis,
        context: AuditContext,
    ) -> list[RiskFactor]:
        factors = []

        if workload.current_utilization > WORKLOAD_THRESHOLD:
            factors.append(
                RiskFactor(
                    factor="High Workload",
                    impact="medium",
                    probability=70,
                    mitigations=[
                        "Consider workload redistribution or timeline adjustment",
                        "Provide additional support resources",
                    ],
                )
            )
        if context.risk_category not in profile.risk_specializations:
            factors.append(
                RiskFactor(
                    factor="Limited Risk Expertise",
                    impact="medium",
                    probability=60,
                    mitigations=[
                        "Pair with senior auditor with relevant expertise",
                        "Provide specialized training materials",
                    ],
                )
            )
        if context.is_critical:
            factors.append(
                RiskFactor(
                    factor="Critical Timeline",
                    impact="high",
                    probability=65,
                    mitigations=[
                        "Agree on a reduced scope with stakeholders up front",
                        "Schedule daily progress checkpoints",
                    ],
                )
            )
        if context.complexity_level >= ComplexityLevel.COMPLEX:
            factors.append(
                RiskFactor(
                    factor="High Complexity Delays",
                    impact="high" if context.is_highly_complex else "medium",
                    probability=55,
                    mitigations=[
                        "Break fieldwork into smaller reviewable phases",
                        "Allocate subject matter expert support",
                    ],
                )
            )
        return factors

    # =========================================================================
    # Workload Balance
    # =========================================================================

    async def analyze_workload_balance(self) -> WorkloadBalance:
        auditors = await self._available_auditors()
        workloads = await asyncio.gather(*(self.analyze_workload(a.id) for a in auditors))
        utilizations = [w.current_utilization for w in workloads]

        return WorkloadBalance(
            overloaded=sum(1 for u in utilizations if u > WORKLOAD_THRESHOLD),
            underutilized=sum(1 for u in utilizations if u < UNDERUTILIZED),
            average_utilization=round(fmean(utilizations), 1) if utilizations else 0.0,
            recommendations=_workload_recommendations(utilizations),
        )

    # =========================================================================
    # Learning
    # =========================================================================

    async def update_with_learning(self, learning_data: Sequence[LearningData]) -> int:
        """
        Append performance rows for the auditors who actually ran each audit
        and refresh their expertise profiles.

        Returns:
            Number of auditor profiles refreshed.
        """
        exposure: dict[str, set[str]] = {}

        for data in learning_data:
            if not data.actual_auditor:
                continue
            await self.repository.add_auditor_performance(
                AuditorPerformanceRecord(
                    auditor_id=data.actual_auditor,
                    audit_id=data.audit_id,
                    quality_score=data.quality_score,
                    completed_on_time=_completed_on_time(data),
                    success=data.outcome_success,
                    findings_count=sum(u.findings_count for u in data.actual_procedures),
                    risk_category=data.risk_category,
                    complexity_level=data.complexity_level,
                    completed_at=data.completed_at,
                )
            )
            categories = exposure.setdefault(data.actual_auditor, set())
            factor = data.factor("riskCategory")
            if factor is not None and factor.value:
                categories.add(factor.value)

        for auditor_id, categories in exposure.items():
            await self._refresh_profile(auditor_id, categories)

        logger.info(
            "auditor_learning_completed",
            audits=len(learning_data),
            auditors=len(exposure),
        )
        return len(exposure)

    async def _refresh_profile(self, auditor_id: str, categories: set[str]) -> None:
        async with self._locks.hold("auditor", auditor_id):
            profile = await self._load_or_create_profile(auditor_id)
            history = await self.repository.get_auditor_performance(auditor_id)
            if not history:
                return

            specializations = list(profile.risk_specializations)
            specializations.extend(sorted(categories - set(specializations)))

            updated = profile.model_copy(
                update={
                    "average_performance_score": round(
                        fmean(r.quality_score for r in history)
                    ),
                    "completion_reliability": round(
                        sum(1 for r in history if r.success) / len(history) * 100
                    ),
                    "risk_specializations": specializations,
                    "updated_at": datetime.now(UTC),
                }
            )
            await self.repository.save_expertise_profile(updated)
        logger.debug("expertise_profile_updated", auditor_id=auditor_id)


# =============================================================================
# Helpers
# =============================================================================


def availability_status(workload: WorkloadAnalysis) -> str:
    if workload.current_utilization <= FULLY_AVAILABLE_UTILIZATION:
        return "fully_available"
    if workload.current_utilization <= WORKLOAD_THRESHOLD:
        return "partially_available"
    return "overloaded"


def complexity_alignment(handling: ComplexityLevel, required: ComplexityLevel) -> float:
    """Bonus or penalty for an auditor's complexity handling vs. the audit's."""
    if handling == required:
        return 10.0
    if handling > required:
        return 5.0
    if handling.rank == required.rank - 1:
        return -5.0
    return -10.0


def _risk_specialization(profile: ExpertiseProfile, context: AuditContext) -> float:
    if context.risk_category in profile.risk_specializations:
        return 90.0
    return 60.0 if profile.risk_specializations else 40.0


def _improvement_trend(history: Sequence[AuditorPerformanceRecord]) -> str:
    if len(history) < 4:
        return "stable"
    ordered = sorted(history, key=lambda r: r.completed_at)
    recent = fmean(r.quality_score for r in ordered[-3:])
    older = fmean(r.quality_score for r in ordered[:-3])
    if recent - older > 5:
        return "improving"
    if recent - older < -5:
        return "declining"
    return "stable"


def _scheduling_flexibility(assignments: Sequence[Assignment]) -> float:
    fixed = sum(1 for a in assignments if a.has_fixed_deadline)
    return max(0.0, 100.0 - fixed * 20)


def _overcommitment_risk(utilization: float, assignments: Sequence[Assignment]) -> str:
    if utilization > 90:
        return "high"
    if utilization > WORKLOAD_THRESHOLD or len(assignments) > 5:
        return "medium"
    return "low"


def _workload_recommendations(utilizations: Sequence[float]) -> list[str]:
    if not utilizations:
        return []
    average = fmean(utilizations)
    recommendations = []
    if average > 85:
        recommendations.append(
            "Consider hiring additional auditors or redistributing workload"
        )
    if average < 60:
        recommendations.append("Team has capacity for additional assignments")
    return recommendations


def _skill_mitigations(category: SkillCategory, gap: float) -> list[str]:
    mitigations = []
    if gap > 30:
        mitigations.append("Assign senior auditor as mentor")
        mitigations.append("Provide intensive training before assignment")
    elif gap > 20:
        mitigations.append("Provide targeted training materials")
        mitigations.append("Schedule periodic check-ins with supervisor")
    if category == SkillCategory.INDUSTRY:
        mitigations.append("Pair with industry specialist")
    return mitigations


def _completed_on_time(data: LearningData) -> bool:
    if not data.has_timeline:
        return data.outcome_success
    return data.actual_timeline_hours <= data.predicted_timeline_hours
