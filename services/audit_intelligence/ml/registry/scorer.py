"""
Heuristic Scorers.

Retraining strategy behind the model registry. The shipped implementation
simulates training; a genuine learner can replace it through the same
protocol without touching registry callers.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Protocol

from shared.models import ModelType, ScoringModel


@dataclass
class RetrainOutcome:
    """Performance reported by a retraining run."""

    performance_score: float
    metrics: dict[str, float] = field(default_factory=dict)


class HeuristicScorer(Protocol):
    """Protocol for model retraining strategies."""

    async def retrain(self, model: ScoringModel) -> RetrainOutcome:
        """Retrain a model and report its new performance."""
        ...


class SimulatedRetrainer:
    """
    Stand-in trainer: waits, then nudges performance up by at most 10
    points, capped at 95. No parameters are fitted.
    """

    MAX_IMPROVEMENT = 10.0
    PERFORMANCE_CAP = 95.0
    FALLBACK_PERFORMANCE = 70.0

    def __init__(
        self,
        delay_seconds: float = 1.0,
        rng: random.Random | None = None,
    ) -> None:
        self.delay_seconds = delay_seconds
        self._rng = rng or random.Random()

    async def retrain(self, model: ScoringModel) -> RetrainOutcome:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        current = model.performance_score or self.FALLBACK_PERFORMANCE
        performance = min(
            self.PERFORMANCE_CAP,
            current + self._rng.random() * self.MAX_IMPROVEMENT,
        )
        return RetrainOutcome(
            performance_score=performance,
            metrics=_metrics_for(model.model_type, performance),
        )


def _metrics_for(model_type: ModelType, performance: float) -> dict[str, float]:
    if model_type == ModelType.TIMELINE_PREDICTION:
        return {
            "accuracy": performance / 100,
            "r2_score": (performance - 3) / 100,
        }
    return {
        "accuracy": performance / 100,
        "precision": (performance - 2) / 100,
        "recall": (performance + 1) / 100,
        "f1_score": (performance - 1) / 100,
    }
