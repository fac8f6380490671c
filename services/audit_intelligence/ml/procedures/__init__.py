"""Procedure recommendation models."""

from services.audit_intelligence.ml.procedures.recommender import (
    AlternativeProcedure,
    ContextualFactor,
    ProcedureEffectiveness,
    ProcedureFactors,
    ProcedureImprovement,
    ProcedureRecommendation,
    ProcedureRecommender,
    ProcedureWeights,
)

__all__ = [
    "AlternativeProcedure",
    "ContextualFactor",
    "ProcedureEffectiveness",
    "ProcedureFactors",
    "ProcedureImprovement",
    "ProcedureRecommendation",
    "ProcedureRecommender",
    "ProcedureWeights",
]
