"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _default_pool_size() -> int:
    return os.cpu_count() or 4


class RecommenderSettings(BaseSettings):
    """Thresholds and limits shared by the recommendation engines."""

    model_config = SettingsConfigDict(env_prefix="RECOMMENDER_")

    procedure_confidence_threshold: float = Field(default=70.0, ge=0, le=100)
    auditor_match_threshold: float = Field(default=60.0, ge=0, le=100)
    max_recommendations: int = Field(default=5, ge=1)
    auditor_lookback_months: int = Field(default=12, ge=1)
    weekly_capacity_hours: float = Field(default=40.0, gt=0)

    # Concurrency
    worker_pool_size: int = Field(default_factory=_default_pool_size, ge=1)
    fanout_timeout_seconds: float = Field(default=30.0, gt=0)

    # Pattern mining
    pattern_significance_threshold: float = Field(default=0.70, ge=0, le=1)
    min_pattern_data_points: int = Field(default=5, ge=1)

    # Feedback
    feedback_revalidation_threshold: int = Field(default=10, ge=1)


class ModelRegistrySettings(BaseSettings):
    """Scoring model lifecycle configuration."""

    model_config = SettingsConfigDict(env_prefix="MODEL_REGISTRY_")

    min_training_data: int = 50
    min_learning_batch: int = 5
    retraining_delay_seconds: float = Field(default=1.0, ge=0)
    stale_after_days: int = 30
    min_performance_score: float = 60.0


class PersistenceSettings(BaseSettings):
    """Best-effort persistence retry policy."""

    model_config = SettingsConfigDict(env_prefix="PERSISTENCE_")

    retry_attempts: int = Field(default=3, ge=1)
    retry_min_wait_seconds: float = 0.1
    retry_max_wait_seconds: float = 2.0


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    log_level: LogLevel = LogLevel.INFO
    service_name: str = "audit-intelligence"

    # Project paths
    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    # Engines
    recommender: RecommenderSettings = Field(default_factory=RecommenderSettings)
    model_registry: ModelRegistrySettings = Field(default_factory=ModelRegistrySettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
