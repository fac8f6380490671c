"""Auditor assignment models."""

from services.audit_intelligence.ml.auditors.recommender import (
    AuditorRecommendation,
    AuditorRecommender,
    MatchWeights,
    SkillAlignment,
    SkillGap,
    SkillMatch,
    TeamCompatibility,
    WorkloadAnalysis,
    WorkloadBalance,
    availability_status,
    complexity_alignment,
)

__all__ = [
    "AuditorRecommendation",
    "AuditorRecommender",
    "MatchWeights",
    "SkillAlignment",
    "SkillGap",
    "SkillMatch",
    "TeamCompatibility",
    "WorkloadAnalysis",
    "WorkloadBalance",
    "availability_status",
    "complexity_alignment",
]
