"""
Procedure Models
================

Audit procedure templates, their performance history and best practices.

Version: 0.1.0
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from shared.models.context import ComplexityLevel, OrganizationSize


class ProcedureTemplate(BaseModel):
    """Candidate audit procedure."""

    id: str
    name: str
    procedure_type: str
    description: str = ""
    risk_categories: list[str] = Field(default_factory=list)
    complexity_levels: list[ComplexityLevel] = Field(default_factory=list)
    industries: list[str] = Field(default_factory=list)
    organization_sizes: list[OrganizationSize] = Field(default_factory=list)
    compliance_levels: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    target_complexity: ComplexityLevel | None = None
    required_skills: list[str] = Field(default_factory=list)
    required_tools: list[str] = Field(default_factory=list)
    control_focus: bool = False
    automation_level: float = Field(default=0.0, ge=0, le=1)
    estimated_hours: float = Field(default=8.0, gt=0)
    base_effectiveness: float = Field(default=75.0, ge=0, le=100)
    is_active: bool = True


class ProcedurePerformanceRecord(BaseModel):
    """Outcome of one procedure execution in a closed audit."""

    model_config = ConfigDict(frozen=True)

    procedure_id: str
    procedure_type: str
    audit_id: str
    risk_category: str | None = None
    complexity_level: ComplexityLevel | None = None
    industry_type: str | None = None
    organization_size: OrganizationSize | None = None
    effectiveness_score: float = Field(..., ge=0, le=100)
    completion_time_hours: float = Field(..., ge=0)
    quality_rating: float = Field(..., ge=1, le=5)
    findings_count: int = Field(default=0, ge=0)
    issues_count: int = Field(default=0, ge=0)
    success: bool = True
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class BestPractice(BaseModel):
    """Known-good procedure usage for a risk category."""

    id: str
    procedure_type: str
    risk_category: str
    success_rate: float = Field(..., ge=0, le=100)
    applicable_contexts: list[str] = Field(default_factory=list)
    description: str = ""
    source_audit_id: str | None = None
