"""
Canonical Defaults
==================

Default profiles and estimates substituted when an entity is missing or
has too little history. Every engine takes its fallbacks from here.

Version: 0.1.0
"""

from __future__ import annotations

from dataclasses import dataclass, field

from shared.models import ComplexityLevel, ExpertiseProfile


@dataclass
class HistoricalPerformance:
    """Auditor performance aggregated over the lookback window."""

    average_quality_score: float
    completion_reliability: float
    timeline_accuracy: float
    findings_effectiveness: float
    client_satisfaction: float
    improvement_trend: str  # improving, stable, declining
    data_points: int = 0


@dataclass
class RiskFactor:
    """A named risk to an assignment with mitigation suggestions."""

    factor: str
    impact: str  # low, medium, high
    probability: float
    mitigations: list[str] = field(default_factory=list)


@dataclass
class PerformanceEstimate:
    """Expected outcome of assigning an auditor to a context."""

    auditor_id: str
    expected_quality_score: float
    expected_completion_hours: float
    success_probability: float
    risk_factors: list[RiskFactor] = field(default_factory=list)
    is_default: bool = False


@dataclass(frozen=True)
class ProcedureFactorDefaults:
    """Factor scores used when a procedure has no supporting history."""

    historical_success: float = 50.0
    best_practice: float = 50.0
    time_efficiency: float = 70.0
    quality_potential: float = 75.0
    base_effectiveness: float = 75.0
    estimated_hours: float = 8.0


PROCEDURE_DEFAULTS = ProcedureFactorDefaults()

MIN_HISTORY_POINTS = 3


def default_expertise_profile(auditor_id: str) -> ExpertiseProfile:
    """Profile created lazily on first lookup of an auditor."""
    return ExpertiseProfile(
        auditor_id=auditor_id,
        risk_specializations=[],
        industry_experience=[],
        technical_skills=[],
        certifications=[],
        average_performance_score=75.0,
        completion_reliability=80.0,
        quality_consistency=75.0,
        learning_velocity=70.0,
        availability_score=100.0,
        complexity_handling=ComplexityLevel.MODERATE,
    )


def default_historical_performance(data_points: int = 0) -> HistoricalPerformance:
    """Used when fewer than three audits fall inside the lookback window."""
    return HistoricalPerformance(
        average_quality_score=75.0,
        completion_reliability=80.0,
        timeline_accuracy=75.0,
        findings_effectiveness=70.0,
        client_satisfaction=75.0,
        improvement_trend="stable",
        data_points=data_points,
    )


def default_performance_estimate(auditor_id: str) -> PerformanceEstimate:
    """Fixed estimate returned for an unknown auditor."""
    return PerformanceEstimate(
        auditor_id=auditor_id,
        expected_quality_score=75.0,
        expected_completion_hours=40.0,
        success_probability=80.0,
        risk_factors=[],
        is_default=True,
    )
