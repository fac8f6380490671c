"""Scoring model registry."""

from services.audit_intelligence.ml.registry.accuracy import (
    AccuracyReport,
    accuracy_report,
)
from services.audit_intelligence.ml.registry.manager import (
    AuditorPerformanceForecast,
    ModelRegistry,
)
from services.audit_intelligence.ml.registry.scorer import (
    HeuristicScorer,
    RetrainOutcome,
    SimulatedRetrainer,
)

__all__ = [
    "AccuracyReport",
    "accuracy_report",
    "AuditorPerformanceForecast",
    "ModelRegistry",
    "HeuristicScorer",
    "RetrainOutcome",
    "SimulatedRetrainer",
]
