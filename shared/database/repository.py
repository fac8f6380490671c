"""
Audit Data Repository
=====================

Data-access protocol the recommendation engines depend on. The surrounding
application supplies a concrete implementation over its own stores.

Version: 0.1.0
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from shared.models import (
    Assignment,
    Auditor,
    AuditorPerformanceRecord,
    BestPractice,
    ComplexityLevel,
    ExpertiseProfile,
    LearningData,
    LearningMetric,
    ModelType,
    OptimalTimelinePattern,
    Pattern,
    ProcedurePerformanceRecord,
    ProcedureTemplate,
    ScoringModel,
    StoredRecommendation,
    TimelinePerformanceRecord,
    UserFeedback,
)


class AuditRepository(Protocol):
    """
    Protocol for the audit data-access collaborator.

    Write methods must raise ``PersistenceError`` for storage failures,
    translating backend-native errors (connection loss, driver errors) at
    this boundary. Engines retry and then log ``PersistenceError`` on their
    best-effort paths; any other exception is treated as unexpected and
    propagates from the orchestration entry points.
    """

    # Users
    async def get_user(self, user_id: str) -> Auditor | None: ...

    async def get_users_by_role(self, role: str) -> list[Auditor]: ...

    # Expertise profiles
    async def get_expertise_profile(self, auditor_id: str) -> ExpertiseProfile | None: ...

    async def save_expertise_profile(self, profile: ExpertiseProfile) -> ExpertiseProfile:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    # Auditor workload and history
    async def get_active_assignments(self, auditor_id: str) -> list[Assignment]: ...

    async def get_auditor_performance(
        self,
        auditor_id: str,
        since: datetime | None = None,
    ) -> list[AuditorPerformanceRecord]: ...

    async def add_auditor_performance(self, record: AuditorPerformanceRecord) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    # Procedures
    async def get_procedure_templates(self) -> list[ProcedureTemplate]: ...

    async def get_procedure_template(self, template_id: str) -> ProcedureTemplate | None: ...

    async def get_procedure_performance(
        self,
        *,
        procedure_id: str | None = None,
        procedure_type: str | None = None,
        risk_category: str | None = None,
        complexity_level: ComplexityLevel | None = None,
    ) -> list[ProcedurePerformanceRecord]: ...

    async def add_procedure_performance(self, record: ProcedurePerformanceRecord) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    async def get_best_practices(self, risk_category: str) -> list[BestPractice]: ...

    async def add_best_practice(self, practice: BestPractice) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    # Timelines
    async def get_timeline_performance(
        self,
        *,
        risk_category: str | None = None,
        complexity_level: ComplexityLevel | None = None,
        auditor_id: str | None = None,
    ) -> list[TimelinePerformanceRecord]: ...

    async def add_timeline_performance(self, record: TimelinePerformanceRecord) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    async def get_optimal_timeline_pattern(
        self,
        risk_category: str,
        complexity_level: ComplexityLevel,
    ) -> OptimalTimelinePattern | None: ...

    async def save_optimal_timeline_pattern(self, pattern: OptimalTimelinePattern) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    # Scoring models
    async def get_models_by_type(self, model_type: ModelType) -> list[ScoringModel]: ...

    async def get_model(self, model_id: str) -> ScoringModel | None: ...

    async def get_all_models(self) -> list[ScoringModel]: ...

    async def save_model(self, model: ScoringModel) -> ScoringModel:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    async def add_learning_metric(self, metric: LearningMetric) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    # Patterns, feedback, recommendations
    async def add_patterns(self, patterns: list[Pattern]) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    async def add_feedback(self, feedback: UserFeedback) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    async def save_recommendation(self, record: StoredRecommendation) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    async def get_recommendation(self, audit_id: str) -> StoredRecommendation | None: ...

    async def get_recommendations(self) -> list[StoredRecommendation]: ...

    # Learning data
    async def add_learning_data(self, records: list[LearningData]) -> None:
        """Raises ``PersistenceError`` on storage failure."""
        ...

    async def get_learning_data(self) -> list[LearningData]: ...

    async def mark_batch_processed(self, batch_id: str) -> bool:
        """Claim a learning batch; False if it was already claimed.

        Raises ``PersistenceError`` on storage failure.
        """
        ...

    async def release_batch(self, batch_id: str) -> None:
        """Drop a claim so a failed batch can be resubmitted.

        Raises ``PersistenceError`` on storage failure.
        """
        ...
