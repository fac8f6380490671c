"""
Auditor Models
==============

Auditors, expertise profiles, assignments and performance history rows.

Version: 0.1.0
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from shared.models.context import ComplexityLevel


class Auditor(BaseModel):
    """User record as seen by the recommenders."""

    id: str
    name: str
    role: str = "auditor"
    is_active: bool = True


class ExpertiseProfile(BaseModel):
    """Per-auditor specializations and aggregate performance statistics."""

    model_config = ConfigDict(from_attributes=True)

    auditor_id: str
    risk_specializations: list[str] = Field(default_factory=list)
    industry_experience: list[str] = Field(default_factory=list)
    technical_skills: list[str] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)
    average_performance_score: float = Field(default=75.0, ge=0, le=100)
    completion_reliability: float = Field(default=80.0, ge=0, le=100)
    quality_consistency: float = Field(default=75.0, ge=0, le=100)
    learning_velocity: float = Field(default=70.0, ge=0, le=100)
    availability_score: float = Field(default=100.0, ge=0, le=100)
    complexity_handling: ComplexityLevel = ComplexityLevel.MODERATE
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_senior(self) -> bool:
        return self.complexity_handling >= ComplexityLevel.COMPLEX


class Assignment(BaseModel):
    """An active audit assignment contributing to workload."""

    auditor_id: str
    audit_id: str
    estimated_hours: float = Field(default=8.0, ge=0)
    has_fixed_deadline: bool = False


class AuditorPerformanceRecord(BaseModel):
    """One closed audit from an auditor's performance history."""

    model_config = ConfigDict(frozen=True)

    auditor_id: str
    audit_id: str
    quality_score: float = Field(..., ge=0, le=100)
    completed_on_time: bool = True
    success: bool = True
    findings_count: int = Field(default=0, ge=0)
    risk_category: str | None = None
    complexity_level: ComplexityLevel | None = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
