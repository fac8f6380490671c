"""
In-Memory Audit Repository
==========================

Dictionary-backed implementation of ``AuditRepository`` for development,
tests and the benchmark script.

Version: 0.1.0
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from shared.errors import PersistenceError
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


class InMemoryAuditRepository:
    """
    In-memory audit data store.

    History collections are append-only. No method awaits, so each call
    completes without interleaving; read-modify-write sequences spanning
    several calls are locked by the engines that run them.

    Args:
        failing_writes: Names of write methods that should raise
            ``PersistenceError``, to exercise best-effort persistence paths.
    """

    def __init__(self, failing_writes: set[str] | None = None) -> None:
        self.failing_writes = set(failing_writes or ())

        self.users: dict[str, Auditor] = {}
        self.profiles: dict[str, ExpertiseProfile] = {}
        self.assignments: defaultdict[str, list[Assignment]] = defaultdict(list)
        self.auditor_performance: defaultdict[str, list[AuditorPerformanceRecord]] = (
            defaultdict(list)
        )

        self.templates: dict[str, ProcedureTemplate] = {}
        self.procedure_performance: list[ProcedurePerformanceRecord] = []
        self.best_practices: list[BestPractice] = []

        self.timeline_performance: list[TimelinePerformanceRecord] = []
        self.optimal_patterns: dict[tuple[str, ComplexityLevel], OptimalTimelinePattern] = {}

        self.models: dict[str, ScoringModel] = {}
        self.learning_metrics: list[LearningMetric] = []
        self.patterns: list[Pattern] = []
        self.feedback: list[UserFeedback] = []
        self.recommendations: dict[str, StoredRecommendation] = {}
        self.learning_data: list[LearningData] = []
        self.processed_batches: set[str] = set()

    def _check_write(self, operation: str) -> None:
        if operation in self.failing_writes:
            raise PersistenceError(f"{operation} failed")

    # =========================================================================
    # Seeding helpers
    # =========================================================================

    def add_user(self, user: Auditor) -> None:
        self.users[user.id] = user

    def add_template(self, template: ProcedureTemplate) -> None:
        self.templates[template.id] = template

    def add_assignment(self, assignment: Assignment) -> None:
        self.assignments[assignment.auditor_id].append(assignment)

    # =========================================================================
    # Users and profiles
    # =========================================================================

    async def get_user(self, user_id: str) -> Auditor | None:
        return self.users.get(user_id)

    async def get_users_by_role(self, role: str) -> list[Auditor]:
        return [u for u in self.users.values() if u.role == role]

    async def get_expertise_profile(self, auditor_id: str) -> ExpertiseProfile | None:
        return self.profiles.get(auditor_id)

    async def save_expertise_profile(self, profile: ExpertiseProfile) -> ExpertiseProfile:
        self._check_write("save_expertise_profile")
        self.profiles[profile.auditor_id] = profile
        return profile

    async def get_active_assignments(self, auditor_id: str) -> list[Assignment]:
        return list(self.assignments.get(auditor_id, []))

    async def get_auditor_performance(
        self,
        auditor_id: str,
        since: datetime | None = None,
    ) -> list[AuditorPerformanceRecord]:
        records = self.auditor_performance.get(auditor_id, [])
        if since is None:
            return list(records)
        return [r for r in records if r.completed_at >= since]

    async def add_auditor_performance(self, record: AuditorPerformanceRecord) -> None:
        self._check_write("add_auditor_performance")
        self.auditor_performance[record.auditor_id].append(record)

    # =========================================================================
    # Procedures
    # =========================================================================

    async def get_procedure_templates(self) -> list[ProcedureTemplate]:
        return [t for t in self.templates.values() if t.is_active]

    async def get_procedure_template(self, template_id: str) -> ProcedureTemplate | None:
        return self.templates.get(template_id)

    async def get_procedure_performance(
        self,
        *,
        procedure_id: str | None = None,
        procedure_type: str | None = None,
        risk_category: str | None = None,
        complexity_level: ComplexityLevel | None = None,
    ) -> list[ProcedurePerformanceRecord]:
        rows = self.procedure_performance
        if procedure_id is not None and procedure_type is not None:
            rows = [
                r
                for r in rows
                if r.procedure_id == procedure_id or r.procedure_type == procedure_type
            ]
        elif procedure_id is not None:
            rows = [r for r in rows if r.procedure_id == procedure_id]
        elif procedure_type is not None:
            rows = [r for r in rows if r.procedure_type == procedure_type]
        if risk_category is not None:
            rows = [r for r in rows if r.risk_category == risk_category]
        if complexity_level is not None:
            rows = [r for r in rows if r.complexity_level == complexity_level]
        return list(rows)

    async def add_procedure_performance(self, record: ProcedurePerformanceRecord) -> None:
        self._check_write("add_procedure_performance")
        self.procedure_performance.append(record)

    async def get_best_practices(self, risk_category: str) -> list[BestPractice]:
        return [p for p in self.best_practices if p.risk_category == risk_category]

    async def add_best_practice(self, practice: BestPractice) -> None:
        self._check_write("add_best_practice")
        self.best_practices.append(practice)

    # =========================================================================
    # Timelines
    # =========================================================================

    async def get_timeline_performance(
        self,
        *,
        risk_category: str | None = None,
        complexity_level: ComplexityLevel | None = None,
        auditor_id: str | None = None,
    ) -> list[TimelinePerformanceRecord]:
        rows = self.timeline_performance
        if risk_category is not None:
            rows = [r for r in rows if r.risk_category == risk_category]
        if complexity_level is not None:
            rows = [r for r in rows if r.complexity_level == complexity_level]
        if auditor_id is not None:
            rows = [r for r in rows if r.auditor_id == auditor_id]
        return list(rows)

    async def add_timeline_performance(self, record: TimelinePerformanceRecord) -> None:
        self._check_write("add_timeline_performance")
        self.timeline_performance.append(record)

    async def get_optimal_timeline_pattern(
        self,
        risk_category: str,
        complexity_level: ComplexityLevel,
    ) -> OptimalTimelinePattern | None:
        return self.optimal_patterns.get((risk_category, complexity_level))

    async def save_optimal_timeline_pattern(self, pattern: OptimalTimelinePattern) -> None:
        self._check_write("save_optimal_timeline_pattern")
        self.optimal_patterns[(pattern.risk_category, pattern.complexity_level)] = pattern

    # =========================================================================
    # Scoring models
    # =========================================================================

    async def get_models_by_type(self, model_type: ModelType) -> list[ScoringModel]:
        return [m for m in self.models.values() if m.model_type == model_type]

    async def get_model(self, model_id: str) -> ScoringModel | None:
        return self.models.get(model_id)

    async def get_all_models(self) -> list[ScoringModel]:
        return list(self.models.values())

    async def save_model(self, model: ScoringModel) -> ScoringModel:
        self._check_write("save_model")
        self.models[model.id] = model
        return model

    async def add_learning_metric(self, metric: LearningMetric) -> None:
        self._check_write("add_learning_metric")
        self.learning_metrics.append(metric)

    # =========================================================================
    # Patterns, feedback, recommendations
    # =========================================================================

    async def add_patterns(self, patterns: list[Pattern]) -> None:
        self._check_write("add_patterns")
        self.patterns.extend(patterns)

    async def add_feedback(self, feedback: UserFeedback) -> None:
        self._check_write("add_feedback")
        self.feedback.append(feedback)

    async def save_recommendation(self, record: StoredRecommendation) -> None:
        self._check_write("save_recommendation")
        self.recommendations[record.audit_id] = record

    async def get_recommendation(self, audit_id: str) -> StoredRecommendation | None:
        return self.recommendations.get(audit_id)

    async def get_recommendations(self) -> list[StoredRecommendation]:
        return list(self.recommendations.values())

    # =========================================================================
    # Learning data
    # =========================================================================

    async def add_learning_data(self, records: list[LearningData]) -> None:
        self._check_write("add_learning_data")
        self.learning_data.extend(records)

    async def get_learning_data(self) -> list[LearningData]:
        return list(self.learning_data)

    async def mark_batch_processed(self, batch_id: str) -> bool:
        self._check_write("mark_batch_processed")
        if batch_id in self.processed_batches:
            return False
        self.processed_batches.add(batch_id)
        return True

    async def release_batch(self, batch_id: str) -> None:
        self._check_write("release_batch")
        self.processed_batches.discard(batch_id)
