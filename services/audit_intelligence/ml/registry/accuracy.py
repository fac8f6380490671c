"""
Recommendation accuracy against completed-audit outcomes.

All functions return a 0-100 percentage, or 0 when no record carries the
needed fields.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from shared.models import LearningData


@dataclass
class AccuracyReport:
    """Accuracy of each recommender, in percent."""

    procedure_accuracy: float
    auditor_accuracy: float
    timeline_accuracy: float
    sample_size: int = 0

    @property
    def overall(self) -> float:
        return round(
            (self.procedure_accuracy + self.auditor_accuracy + self.timeline_accuracy) / 3,
            1,
        )


def procedure_accuracy(learning_data: Sequence[LearningData]) -> float:
    """Mean overlap between recommended and executed procedure ids."""
    relevant = [d for d in learning_data if d.recommended_procedures and d.actual_procedures]
    if not relevant:
        return 0.0

    total = 0.0
    for data in relevant:
        recommended = set(data.recommended_procedures)
        actual = [p.procedure_id for p in data.actual_procedures]
        overlap = sum(1 for pid in recommended if pid in actual)
        total += overlap / max(len(data.recommended_procedures), len(actual))

    return round(total / len(relevant) * 100)


def auditor_accuracy(learning_data: Sequence[LearningData]) -> float:
    """Share of audits staffed by the recommended auditor."""
    relevant = [d for d in learning_data if d.recommended_auditor and d.actual_auditor]
    if not relevant:
        return 0.0

    correct = sum(1 for d in relevant if d.recommended_auditor == d.actual_auditor)
    return round(correct / len(relevant) * 100)


def timeline_accuracy(learning_data: Sequence[LearningData]) -> float:
    """Mean of ``max(0, 1 - |actual - predicted| / predicted)``."""
    relevant = [d for d in learning_data if d.has_timeline]
    if not relevant:
        return 0.0

    total = 0.0
    for data in relevant:
        variance = (
            abs(data.actual_timeline_hours - data.predicted_timeline_hours)
            / data.predicted_timeline_hours
        )
        total += max(0.0, 1 - variance)

    return round(total / len(relevant) * 100)


def accuracy_report(learning_data: Sequence[LearningData]) -> AccuracyReport:
    return AccuracyReport(
        procedure_accuracy=procedure_accuracy(learning_data),
        auditor_accuracy=auditor_accuracy(learning_data),
        timeline_accuracy=timeline_accuracy(learning_data),
        sample_size=len(learning_data),
    )
