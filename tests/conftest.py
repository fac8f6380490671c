"""
Test Configuration
==================

Pytest fixtures for audit intelligence tests.
"""

import os

# Set test environment before settings are loaded
os.environ["ENVIRONMENT"] = "testing"
os.environ["MODEL_REGISTRY_RETRAINING_DELAY_SECONDS"] = "0"
os.environ["PERSISTENCE_RETRY_MIN_WAIT_SECONDS"] = "0.001"
os.environ["PERSISTENCE_RETRY_MAX_WAIT_SECONDS"] = "0.01"

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from shared.config import ModelRegistrySettings, RecommenderSettings
from shared.database import InMemoryAuditRepository
from shared.models import (
    AuditContext,
    AvailableResources,
    ComplexityLevel,
    ContextFactor,
    LearningData,
    OrganizationalContext,
    OrganizationSize,
    ProcedureUsage,
    RiskProfile,
    TimelineConstraints,
    UrgencyLevel,
)


@pytest.fixture
def repository() -> InMemoryAuditRepository:
    """Empty in-memory audit repository."""
    return InMemoryAuditRepository()


@pytest.fixture
def recommender_config() -> RecommenderSettings:
    """Recommender settings with a small worker pool."""
    return RecommenderSettings(worker_pool_size=4)


@pytest.fixture
def registry_config() -> ModelRegistrySettings:
    """Model registry settings without retraining delay."""
    return ModelRegistrySettings(retraining_delay_seconds=0)


@pytest.fixture
def fraud_context() -> AuditContext:
    """High-risk, complex, critical banking fraud audit."""
    return AuditContext(
        risk_profile=RiskProfile(category="fraud", inherent_risk_score=22),
        organizational_context=OrganizationalContext(
            industry_type="banking",
            organization_size=OrganizationSize.LARGE,
        ),
        complexity_level=ComplexityLevel.COMPLEX,
        timeline_constraints=TimelineConstraints(
            max_duration_hours=40,
            urgency_level=UrgencyLevel.CRITICAL,
        ),
        available_resources=AvailableResources(
            skill_availability=("forensics", "data_analysis"),
        ),
    )


@pytest.fixture
def routine_context() -> AuditContext:
    """Moderate operational audit for a mid-size retailer."""
    return AuditContext(
        risk_profile=RiskProfile(category="operational", inherent_risk_score=10),
        organizational_context=OrganizationalContext(
            industry_type="retail",
            organization_size=OrganizationSize.MEDIUM,
        ),
        complexity_level=ComplexityLevel.MODERATE,
        timeline_constraints=TimelineConstraints(
            max_duration_hours=40,
            urgency_level=UrgencyLevel.NORMAL,
        ),
        available_resources=AvailableResources(
            skill_availability=("sampling", "data_analysis"),
        ),
    )


@pytest.fixture
def make_learning_data(fraud_context: AuditContext) -> Callable[..., LearningData]:
    """Factory for completed-audit learning records with sensible defaults."""

    def factory(audit_id: str, **overrides: Any) -> LearningData:
        values: dict[str, Any] = {
            "audit_id": audit_id,
            "context": fraud_context,
            "recommended_procedures": ("PROC-1",),
            "actual_procedures": (
                ProcedureUsage(
                    procedure_id="PROC-1",
                    procedure_type="analytics",
                    actual_time_hours=8,
                    effectiveness_rating=4,
                    quality_rating=4,
                ),
            ),
            "recommended_auditor": "AUD-1",
            "actual_auditor": "AUD-1",
            "predicted_timeline_hours": 40,
            "actual_timeline_hours": 40,
            "recommendation_followed": True,
            "outcome_success": True,
            "quality_score": 85,
            "context_factors": (ContextFactor(name="riskCategory", value="fraud"),),
            "completed_at": datetime(2024, 3, 15, tzinfo=UTC),
        }
        values.update(overrides)
        return LearningData(**values)

    return factory
