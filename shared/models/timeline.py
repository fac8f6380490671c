"""
Timeline Models
===============

Timeline performance history and learned optimal duration patterns.

Version: 0.1.0
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from shared.models.context import ComplexityLevel


class TimelinePerformanceRecord(BaseModel):
    """Planned vs. actual duration of a closed audit."""

    model_config = ConfigDict(frozen=True)

    audit_id: str
    auditor_id: str | None = None
    risk_category: str
    complexity_level: ComplexityLevel
    planned_hours: float = Field(..., gt=0)
    actual_hours: float = Field(..., ge=0)
    success: bool = True
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def variance_percentage(self) -> float:
        """Signed overrun relative to plan, in percent."""
        return (self.actual_hours - self.planned_hours) / self.planned_hours * 100

    @property
    def accuracy(self) -> float:
        return max(0.0, 100 - abs(self.variance_percentage))


class OptimalTimelinePattern(BaseModel):
    """Observed duration for a risk category and complexity pair."""

    risk_category: str
    complexity_level: ComplexityLevel
    optimal_duration_hours: float = Field(..., gt=0)
    sample_size: int = Field(default=0, ge=0)
    success_rate: float = Field(default=0.0, ge=0, le=100)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
