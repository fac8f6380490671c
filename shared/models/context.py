"""
Audit Context Models
====================

Immutable description of an upcoming audit, the input to every
recommendation request.

Version: 0.1.0
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ComplexityLevel(str, Enum):
    """
    Ordered audit complexity.

    Shared by audit contexts and auditor complexity-handling levels.
    """

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    HIGHLY_COMPLEX = "highly_complex"

    @property
    def rank(self) -> int:
        """Position in the ordering, 0 for simple."""
        return list(ComplexityLevel).index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ComplexityLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, ComplexityLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, ComplexityLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, ComplexityLevel):
            return NotImplemented
        return self.rank >= other.rank


class UrgencyLevel(str, Enum):
    """Timeline urgency."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class OrganizationSize(str, Enum):
    """Audited organization size."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    ENTERPRISE = "enterprise"


class RiskProfile(BaseModel):
    """Risk category and inherent risk score (likelihood x impact, 1-25)."""

    model_config = ConfigDict(frozen=True)

    category: str = Field(..., description="Risk category tag, e.g. fraud")
    inherent_risk_score: float = Field(default=10.0, ge=0, le=25)


class OrganizationalContext(BaseModel):
    """Organization attributes relevant to procedure and auditor fit."""

    model_config = ConfigDict(frozen=True)

    industry_type: str = "general"
    organization_size: OrganizationSize = OrganizationSize.MEDIUM
    compliance_level: str = "standard"
    maturity_level: str = "defined"


class TimelineConstraints(BaseModel):
    """Duration ceiling and urgency."""

    model_config = ConfigDict(frozen=True)

    max_duration_hours: float = Field(default=40.0, gt=0)
    urgency_level: UrgencyLevel = UrgencyLevel.NORMAL


class QualityRequirements(BaseModel):
    """Expected review depth."""

    model_config = ConfigDict(frozen=True)

    thoroughness_level: str = "standard"
    review_requirements: str = "standard"


class AvailableResources(BaseModel):
    """Skills and tools available to the engagement."""

    model_config = ConfigDict(frozen=True)

    skill_availability: tuple[str, ...] = ()
    tools_available: tuple[str, ...] = ()


class AuditContext(BaseModel):
    """
    Input description of an audit's risk, organizational, complexity,
    timeline and resource attributes.
    """

    model_config = ConfigDict(frozen=True)

    risk_profile: RiskProfile
    organizational_context: OrganizationalContext = Field(
        default_factory=OrganizationalContext
    )
    complexity_level: ComplexityLevel = ComplexityLevel.MODERATE
    timeline_constraints: TimelineConstraints = Field(default_factory=TimelineConstraints)
    quality_requirements: QualityRequirements = Field(default_factory=QualityRequirements)
    available_resources: AvailableResources = Field(default_factory=AvailableResources)

    @property
    def risk_category(self) -> str:
        return self.risk_profile.category

    @property
    def inherent_risk(self) -> float:
        return self.risk_profile.inherent_risk_score

    @property
    def max_duration_hours(self) -> float:
        return self.timeline_constraints.max_duration_hours

    @property
    def is_critical(self) -> bool:
        return self.timeline_constraints.urgency_level == UrgencyLevel.CRITICAL

    @property
    def is_highly_complex(self) -> bool:
        return self.complexity_level == ComplexityLevel.HIGHLY_COMPLEX
