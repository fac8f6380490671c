"""
Learning Models
===============

Completed-audit outcomes, user feedback, and the patterns, anomalies,
correlations and trends mined from them.

Version: 0.1.0
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from shared.models.context import AuditContext, ComplexityLevel


class FactorImpact(str, Enum):
    """Direction a contextual factor pushed an audit outcome."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class ContextFactor(BaseModel):
    """A named circumstance recorded against a completed audit."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str | None = None
    impact: FactorImpact = FactorImpact.NEUTRAL
    strength: float = Field(default=0.5, ge=0, le=1)


class ProcedureUsage(BaseModel):
    """A procedure actually executed during a completed audit."""

    model_config = ConfigDict(frozen=True)

    procedure_id: str
    procedure_type: str
    actual_time_hours: float = Field(..., ge=0)
    effectiveness_rating: float = Field(default=3.0, ge=1, le=5)
    quality_rating: float = Field(default=3.0, ge=1, le=5)
    findings_count: int = Field(default=0, ge=0)
    issues_count: int = Field(default=0, ge=0)


class LearningData(BaseModel):
    """
    Post-hoc record comparing recommended vs. actual choices for one
    completed audit. Never mutated after creation.
    """

    model_config = ConfigDict(frozen=True)

    audit_id: str
    recommendation_id: str | None = None
    context: AuditContext | None = None
    recommended_procedures: tuple[str, ...] = ()
    actual_procedures: tuple[ProcedureUsage, ...] = ()
    recommended_auditor: str | None = None
    actual_auditor: str | None = None
    predicted_timeline_hours: float | None = Field(default=None, gt=0)
    actual_timeline_hours: float | None = Field(default=None, ge=0)
    recommendation_followed: bool = True
    outcome_success: bool = True
    quality_score: float = Field(..., ge=0, le=100)
    context_factors: tuple[ContextFactor, ...] = ()
    completed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def factor(self, name: str) -> ContextFactor | None:
        """Return the first context factor with the given name."""
        for factor in self.context_factors:
            if factor.name == name:
                return factor
        return None

    @property
    def risk_category(self) -> str | None:
        if self.context is not None:
            return self.context.risk_category
        factor = self.factor("riskCategory")
        return factor.value if factor else None

    @property
    def complexity_level(self) -> ComplexityLevel | None:
        if self.context is not None:
            return self.context.complexity_level
        factor = self.factor("complexityLevel")
        if factor is None or factor.value not in {c.value for c in ComplexityLevel}:
            return None
        return ComplexityLevel(factor.value)

    @property
    def has_timeline(self) -> bool:
        return (
            self.predicted_timeline_hours is not None
            and self.actual_timeline_hours is not None
        )

    @property
    def timeline_variance(self) -> float | None:
        """Signed overrun relative to prediction, in percent."""
        if not self.has_timeline:
            return None
        return (
            (self.actual_timeline_hours - self.predicted_timeline_hours)
            / self.predicted_timeline_hours
            * 100
        )


class LearningBatch(BaseModel):
    """Unit of learning ingestion; processed at most once per batch id."""

    model_config = ConfigDict(frozen=True)

    batch_id: str = Field(default_factory=lambda: str(uuid4()))
    records: tuple[LearningData, ...] = ()


class FeedbackType(str, Enum):
    PROCEDURE = "procedure"
    AUDITOR = "auditor"
    TIMELINE = "timeline"
    OVERALL = "overall"


class UserFeedback(BaseModel):
    """A user's rating of a stored recommendation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    recommendation_id: str
    audit_id: str | None = None
    user_id: str | None = None
    feedback_type: FeedbackType = FeedbackType.OVERALL
    satisfaction_score: int = Field(..., ge=1, le=5)
    was_helpful: bool = True
    comments: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def satisfaction_impact(self) -> float:
        """Signed nudge in [-0.2, 0.2] centred on a neutral rating of 3."""
        return (self.satisfaction_score - 3) * 0.1


# =============================================================================
# Mined Insights
# =============================================================================


class PatternType(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PERFORMANCE = "performance"
    SEASONAL = "seasonal"


class Pattern(BaseModel):
    """
    An identified regularity with a heuristic strength in [0, 1].

    Strength is not a calibrated statistic.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    pattern_type: PatternType
    name: str
    description: str
    strength: float = Field(..., ge=0, le=1)
    data_points: int = Field(..., ge=0)
    characteristics: dict[str, Any] = Field(default_factory=dict)
    recommended_actions: list[str] = Field(default_factory=list)
    identified_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class AnomalySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Anomaly(BaseModel):
    model_config = ConfigDict(frozen=True)

    anomaly_type: str
    severity: AnomalySeverity
    description: str
    audit_ids: list[str] = Field(default_factory=list)
    z_score: float | None = None
    recommended_actions: list[str] = Field(default_factory=list)


class Correlation(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    factors: tuple[str, str]
    coefficient: float = Field(..., ge=-1, le=1)
    sample_size: int = Field(..., ge=0)
    description: str = ""


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class Trend(BaseModel):
    model_config = ConfigDict(frozen=True)

    metric: str
    direction: TrendDirection
    slope: float
    sample_size: int = Field(..., ge=0)
    description: str = ""
