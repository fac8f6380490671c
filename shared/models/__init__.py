"""
Shared Models
=============

Pydantic models shared across audit intelligence services.

Models:
- Context models (AuditContext, ComplexityLevel, UrgencyLevel)
- Auditor models (Auditor, ExpertiseProfile, Assignment)
- Procedure models (ProcedureTemplate, BestPractice)
- Timeline models (TimelinePerformanceRecord, OptimalTimelinePattern)
- Learning models (LearningData, UserFeedback, Pattern)
- Scoring models (ScoringModel, ModelStatus, LearningMetric)
"""

from shared.models.auditor import (
    Assignment,
    Auditor,
    AuditorPerformanceRecord,
    ExpertiseProfile,
)
from shared.models.context import (
    AuditContext,
    AvailableResources,
    ComplexityLevel,
    OrganizationalContext,
    OrganizationSize,
    QualityRequirements,
    RiskProfile,
    TimelineConstraints,
    UrgencyLevel,
)
from shared.models.learning import (
    Anomaly,
    AnomalySeverity,
    ContextFactor,
    Correlation,
    FactorImpact,
    FeedbackType,
    LearningBatch,
    LearningData,
    Pattern,
    PatternType,
    ProcedureUsage,
    Trend,
    TrendDirection,
    UserFeedback,
)
from shared.models.procedure import (
    BestPractice,
    ProcedurePerformanceRecord,
    ProcedureTemplate,
)
from shared.models.scoring import (
    LearningMetric,
    ModelStatus,
    ModelType,
    ScoringModel,
    StoredRecommendation,
)
from shared.models.timeline import (
    OptimalTimelinePattern,
    TimelinePerformanceRecord,
)

__all__ = [
    # Context
    "AuditContext",
    "AvailableResources",
    "ComplexityLevel",
    "OrganizationalContext",
    "OrganizationSize",
    "QualityRequirements",
    "RiskProfile",
    "TimelineConstraints",
    "UrgencyLevel",
    # Auditor
    "Assignment",
    "Auditor",
    "AuditorPerformanceRecord",
    "ExpertiseProfile",
    # Procedure
    "BestPractice",
    "ProcedurePerformanceRecord",
    "ProcedureTemplate",
    # Timeline
    "OptimalTimelinePattern",
    "TimelinePerformanceRecord",
    # Learning
    "Anomaly",
    "AnomalySeverity",
    "ContextFactor",
    "Correlation",
    "FactorImpact",
    "FeedbackType",
    "LearningBatch",
    "LearningData",
    "Pattern",
    "PatternType",
    "ProcedureUsage",
    "Trend",
    "TrendDirection",
    "UserFeedback",
    # Scoring
    "LearningMetric",
    "ModelStatus",
    "ModelType",
    "ScoringModel",
    "StoredRecommendation",
]
