"""
Scoring Model Records
=====================

Registry records standing in for trained models, plus learning metrics and
stored recommendations.

Version: 0.1.0
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class ModelType(str, Enum):
    PROCEDURE_EFFECTIVENESS = "procedure_effectiveness"
    AUDITOR_PERFORMANCE = "auditor_performance"
    TIMELINE_PREDICTION = "timeline_prediction"


class ModelStatus(str, Enum):
    """Training status of a scoring model."""

    READY = "ready"
    TRAINING = "training"
    FAILED = "failed"


class ScoringModel(BaseModel):
    """Named, versioned configuration with performance metrics."""

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    model_type: ModelType
    version: str = "1.0.0"
    algorithm: str
    features: list[str] = Field(default_factory=list)
    hyperparameters: dict[str, float] = Field(default_factory=dict)
    metrics: dict[str, float] = Field(default_factory=dict)
    configuration: dict[str, Any] = Field(default_factory=dict)
    performance_score: float = Field(default=0.0, ge=0, le=100)
    validation_accuracy: float | None = None
    training_data_size: int = Field(default=0, ge=0)
    status: ModelStatus = ModelStatus.READY
    is_active: bool = True
    last_trained: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def bumped_version(self) -> str:
        """Next patch version, e.g. 1.0.3 -> 1.0.4."""
        major, minor, patch = (int(part) for part in self.version.split("."))
        return f"{major}.{minor}.{patch + 1}"


class LearningMetric(BaseModel):
    """Accuracy measurement recorded after a learning pass."""

    model_config = ConfigDict(frozen=True)

    metric_type: str
    value: float
    sample_size: int = 0
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class StoredRecommendation(BaseModel):
    """Persisted comprehensive recommendation, keyed by audit id."""

    model_config = ConfigDict(frozen=True)

    id: str
    audit_id: str
    user_id: str | None = None
    overall_score: float
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
