"""
Audit Intelligence Services
===========================

Orchestration over the recommendation engines.

Services:
- RecommendationOrchestrator: comprehensive recommendations, learning and feedback
- LearningQueue: background learning-batch intake

Version: 0.1.0
"""

from services.audit_intelligence.services.learning import LearningQueue
from services.audit_intelligence.services.orchestrator import (
    AlternativeStrategy,
    ComprehensiveRecommendation,
    ImplementationPhase,
    ImplementationPlan,
    LearningSummary,
    RecommendationOrchestrator,
    RiskAssessment,
    build_orchestrator,
)


__all__ = [
    # Orchestrator
    "RecommendationOrchestrator",
    "ComprehensiveRecommendation",
    "RiskAssessment",
    "AlternativeStrategy",
    "ImplementationPhase",
    "ImplementationPlan",
    "LearningSummary",
    "build_orchestrator",
    # Learning
    "LearningQueue",
]
