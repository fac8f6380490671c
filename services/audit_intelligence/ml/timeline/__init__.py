"""Timeline prediction models."""

from services.audit_intelligence.ml.timeline.recommender import (
    ContingencyOption,
    DurationFactor,
    Milestone,
    SchedulingStrategy,
    TimelineRecommendation,
    TimelineRecommender,
    TimelineRisk,
    TimelineRiskAnalysis,
    fallback_timeline,
)

__all__ = [
    "ContingencyOption",
    "DurationFactor",
    "Milestone",
    "SchedulingStrategy",
    "TimelineRecommendation",
    "TimelineRecommender",
    "TimelineRisk",
    "TimelineRiskAnalysis",
    "fallback_timeline",
]
