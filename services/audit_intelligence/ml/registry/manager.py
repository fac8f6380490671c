"""
Scoring Model Registry.

Lifecycle management for the three named scoring models: idempotent
initialization, learning bookkeeping, feedback intake, validation and
simulated retraining, plus deterministic fallback predictions.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from shared.config import ModelRegistrySettings
from shared.database import AuditRepository, EntityLocks
from shared.errors import ModelNotFoundError, PersistenceError
from shared.logging import get_logger
from shared.models import (
    ComplexityLevel,
    FeedbackType,
    LearningData,
    LearningMetric,
    ModelStatus,
    ModelType,
    ScoringModel,
    UserFeedback,
)
from services.audit_intelligence.ml.registry.accuracy import (
    AccuracyReport,
    accuracy_report,
)
from services.audit_intelligence.ml.registry.scorer import (
    HeuristicScorer,
    SimulatedRetrainer,
)

logger = get_logger(__name__)


# =============================================================================
# Default Model Definitions
# =============================================================================

DEFAULT_MODELS: dict[ModelType, dict[str, Any]] = {
    ModelType.PROCEDURE_EFFECTIVENESS: {
        "name": "procedure_effectiveness_v1",
        "algorithm": "ensemble",
        "features": [
            "complexity",
            "risk_category",
            "historical_success",
            "auditor_skill",
            "time_constraints",
        ],
        "hyperparameters": {"n_estimators": 100, "max_depth": 10, "learning_rate": 0.1},
        "metrics": {"accuracy": 0.75, "precision": 0.73, "recall": 0.77, "f1_score": 0.75},
        "performance_score": 75.0,
    },
    ModelType.AUDITOR_PERFORMANCE: {
        "name": "auditor_performance_v1",
        "algorithm": "gradient_boosting",
        "features": [
            "experience_level",
            "specializations",
            "workload",
            "historical_performance",
            "test_complexity",
        ],
        "hyperparameters": {"n_estimators": 150, "max_depth": 8, "learning_rate": 0.05},
        "metrics": {"accuracy": 0.78, "precision": 0.76, "recall": 0.80, "f1_score": 0.78},
        "performance_score": 78.0,
    },
    ModelType.TIMELINE_PREDICTION: {
        "name": "timeline_prediction_v1",
        "algorithm": "regression_ensemble",
        "features": [
            "complexity",
            "scope_size",
            "auditor_experience",
            "historical_durations",
            "dependencies",
        ],
        "hyperparameters": {"n_estimators": 120, "max_depth": 12, "learning_rate": 0.08},
        "metrics": {
            "mean_absolute_error": 1.5,
            "root_mean_square_error": 2.1,
            "r2_score": 0.72,
            "accuracy": 0.73,
        },
        "performance_score": 73.0,
    },
}

TIMELINE_COMPLEXITY_MULTIPLIER: dict[ComplexityLevel, float] = {
    ComplexityLevel.SIMPLE: 0.8,
    ComplexityLevel.MODERATE: 1.0,
    ComplexityLevel.COMPLEX: 1.3,
    ComplexityLevel.HIGHLY_COMPLEX: 1.6,
}

FEEDBACK_MODEL_TYPES: dict[FeedbackType, tuple[ModelType, ...]] = {
    FeedbackType.PROCEDURE: (ModelType.PROCEDURE_EFFECTIVENESS,),
    FeedbackType.AUDITOR: (ModelType.AUDITOR_PERFORMANCE,),
    FeedbackType.TIMELINE: (ModelType.TIMELINE_PREDICTION,),
    FeedbackType.OVERALL: tuple(ModelType),
}


@dataclass
class AuditorPerformanceForecast:
    """Fallback auditor forecast; probabilities are in [0, 1]."""

    quality_score: float
    completion_probability: float
    time_accuracy: float


class ModelRegistry:
    """
    Registry of named, versioned scoring models.

    Writes to one model are serialized through a per-model lock. Retraining
    is delegated to a ``HeuristicScorer``.

    Example:
        >>> registry = ModelRegistry(repository)
        >>> await registry.initialize_models()
        >>> await registry.update_models_with_learning_data(batch)
    """

    def __init__(
        self,
        repository: AuditRepository,
        config: ModelRegistrySettings | None = None,
        scorer: HeuristicScorer | None = None,
        revalidation_threshold: int = 10,
    ) -> None:
        self.repository = repository
        self.config = config or ModelRegistrySettings()
        self.scorer = scorer or SimulatedRetrainer(
            delay_seconds=self.config.retraining_delay_seconds
        )
        self.revalidation_threshold = revalidation_threshold
        self._locks = EntityLocks()
        self._feedback_since_validation = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize_models(self) -> list[ScoringModel]:
        """
        Create any missing default model.

        A model type that already has an active model is left untouched.

        Returns:
            The models created by this call.
        """
        created = []
        for model_type, definition in DEFAULT_MODELS.items():
            existing = await self.get_model(model_type)
            if existing is not None:
                continue

            model = ScoringModel(
                name=definition["name"],
                model_type=model_type,
                version="1.0.0",
                algorithm=definition["algorithm"],
                features=list(definition["features"]),
                hyperparameters=dict(definition["hyperparameters"]),
                metrics=dict(definition["metrics"]),
                configuration={"training_data_points": 0},
                performance_score=definition["performance_score"],
                status=ModelStatus.READY,
            )
            await self.repository.save_model(model)
            created.append(model)

        logger.info("scoring_models_initialized", created=[m.name for m in created])
        return created

    async def get_model(self, model_type: ModelType) -> ScoringModel | None:
        """Active model of a type, if any."""
        models = await self.repository.get_models_by_type(model_type)
        for model in models:
            if model.is_active:
                return model
        return None

    async def _require_model(self, model_id: str) -> ScoringModel:
        model = await self.repository.get_model(model_id)
        if model is None:
            raise ModelNotFoundError(model_id)
        return model

    async def _update_model(self, model_id: str, **changes: Any) -> ScoringModel:
        """Read-modify-write one model under its lock."""
        async with self._locks.hold("model", model_id):
            model = await self._require_model(model_id)
            updated = model.model_copy(update=changes)
            return await self.repository.save_model(updated)

    # =========================================================================
    # Learning
    # =========================================================================

    async def update_models_with_learning_data(
        self,
        learning_data: Sequence[LearningData],
    ) -> bool:
        """
        Record training bookkeeping for each model.

        No parameters are fitted. Batches smaller than the configured
        minimum are ignored.

        Returns:
            True if the batch was applied.
        """
        if len(learning_data) < self.config.min_learning_batch:
            logger.info(
                "learning_batch_too_small",
                size=len(learning_data),
                minimum=self.config.min_learning_batch,
            )
            return False

        timeline_examples = sum(1 for d in learning_data if d.has_timeline)
        examples = {
            ModelType.PROCEDURE_EFFECTIVENESS: len(learning_data),
            ModelType.AUDITOR_PERFORMANCE: len(learning_data),
            ModelType.TIMELINE_PREDICTION: timeline_examples,
        }

        for model_type, count in examples.items():
            if count == 0:
                continue
            model = await self.get_model(model_type)
            if model is None:
                continue
            await self._record_training_data(model.id, count)

        await self.record_learning_metrics(learning_data)
        return True

    async def _record_training_data(self, model_id: str, count: int) -> None:
        now = datetime.now(UTC)
        async with self._locks.hold("model", model_id):
            model = await self._require_model(model_id)
            points = model.configuration.get("training_data_points", 0) + count
            configuration = {
                **model.configuration,
                "training_data_points": points,
                "last_update": now.isoformat(),
            }
            await self.repository.save_model(
                model.model_copy(
                    update={
                        "configuration": configuration,
                        "training_data_size": points,
                        "last_trained": now,
                    }
                )
            )
        logger.debug("model_training_data_recorded", model_id=model_id, added=count)

    async def record_learning_metrics(
        self,
        learning_data: Sequence[LearningData],
    ) -> list[LearningMetric]:
        """Persist accuracy metrics for a learning batch. Best-effort."""
        report = accuracy_report(learning_data)
        metrics = [
            LearningMetric(
                metric_type="learning_data_processed",
                value=len(learning_data),
                sample_size=len(learning_data),
            ),
            LearningMetric(
                metric_type="procedure_recommendation_accuracy",
                value=report.procedure_accuracy,
                sample_size=len(learning_data),
            ),
            LearningMetric(
                metric_type="auditor_assignment_accuracy",
                value=report.auditor_accuracy,
                sample_size=len(learning_data),
            ),
            LearningMetric(
                metric_type="timeline_prediction_accuracy",
                value=report.timeline_accuracy,
                sample_size=len(learning_data),
            ),
        ]

        try:
            for metric in metrics:
                await self.repository.add_learning_metric(metric)
        except PersistenceError as e:
            logger.error("learning_metrics_storage_failed", error=str(e))

        return metrics

    # =========================================================================
    # Feedback
    # =========================================================================

    async def incorporate_feedback(self, feedback: Sequence[UserFeedback]) -> bool:
        """
        Fold user satisfaction into the affected models.

        Returns:
            True if the accumulated feedback triggered a full revalidation.
        """
        for item in feedback:
            for model_type in FEEDBACK_MODEL_TYPES[item.feedback_type]:
                model = await self.get_model(model_type)
                if model is None:
                    continue
                await self._apply_feedback(model.id, item)

        self._feedback_since_validation += len(feedback)
        if self._feedback_since_validation < self.revalidation_threshold:
            return False

        await self.validate_all_models()
        return True

    async def _apply_feedback(self, model_id: str, feedback: UserFeedback) -> None:
        async with self._locks.hold("model", model_id):
            model = await self._require_model(model_id)
            count = model.configuration.get("feedback_count", 0) + 1
            total = model.configuration.get("feedback_impact", 0.0) + feedback.satisfaction_impact
            configuration = {
                **model.configuration,
                "feedback_count": count,
                "feedback_impact": round(total, 4),
            }
            await self.repository.save_model(
                model.model_copy(update={"configuration": configuration})
            )

    # =========================================================================
    # Validation and Retraining
    # =========================================================================

    async def update_performance_metrics(self, report: AccuracyReport) -> None:
        """Overwrite each model's performance with measured accuracy."""
        accuracies = {
            ModelType.PROCEDURE_EFFECTIVENESS: report.procedure_accuracy,
            ModelType.AUDITOR_PERFORMANCE: report.auditor_accuracy,
            ModelType.TIMELINE_PREDICTION: report.timeline_accuracy,
        }
        for model_type, accuracy in accuracies.items():
            model = await self.get_model(model_type)
            if model is None:
                continue
            metrics = {**model.metrics, "accuracy": accuracy / 100}
            await self._update_model(
                model.id,
                performance_score=accuracy,
                validation_accuracy=accuracy,
                metrics=metrics,
            )
        logger.info(
            "model_performance_updated",
            procedure=report.procedure_accuracy,
            auditor=report.auditor_accuracy,
            timeline=report.timeline_accuracy,
        )

    def assess_retraining_need(
        self,
        model: ScoringModel,
        now: datetime | None = None,
    ) -> bool:
        """Flag poor performance, or stale training with enough new data."""
        if model.performance_score < self.config.min_performance_score:
            return True

        now = now or datetime.now(UTC)
        if model.last_trained is None:
            days_since_training = 365
        else:
            days_since_training = (now - model.last_trained).days

        return (
            days_since_training > self.config.stale_after_days
            and model.training_data_size > self.config.min_training_data * 2
        )

    async def validate_all_models(self) -> list[ScoringModel]:
        """
        Retrain every model that needs it.

        Returns:
            The models that were retrained.
        """
        self._feedback_since_validation = 0
        retrained = []
        for model in await self.repository.get_all_models():
            if self.assess_retraining_need(model):
                logger.info("model_needs_retraining", model=model.name)
                retrained.append(await self.retrain_model(model.id))
        logger.info("model_validation_completed", retrained=len(retrained))
        return retrained

    async def retrain_model(self, model_id: str) -> ScoringModel:
        """
        Run simulated retraining for one model.

        Status moves training -> ready and the patch version increments.
        A scorer failure leaves the model in ``failed`` status.
        """
        async with self._locks.hold("model", model_id):
            model = await self._require_model(model_id)
            training = await self.repository.save_model(
                model.model_copy(update={"status": ModelStatus.TRAINING})
            )

            try:
                outcome = await self.scorer.retrain(training)
            except Exception as e:
                logger.error("model_retraining_failed", model=model.name, error=str(e))
                return await self.repository.save_model(
                    training.model_copy(update={"status": ModelStatus.FAILED})
                )

            metrics = {**training.metrics, **outcome.metrics}
            ready = training.model_copy(
                update={
                    "status": ModelStatus.READY,
                    "performance_score": outcome.performance_score,
                    "validation_accuracy": outcome.performance_score,
                    "metrics": metrics,
                    "version": training.bumped_version(),
                    "last_trained": datetime.now(UTC),
                }
            )
            saved = await self.repository.save_model(ready)

        logger.info(
            "model_retrained",
            model=saved.name,
            version=saved.version,
            performance=round(saved.performance_score, 1),
        )
        return saved

    # =========================================================================
    # Fallback Predictions
    # =========================================================================

    @staticmethod
    def predict_procedure_effectiveness(
        complexity: ComplexityLevel,
        historical_success: float | None = None,
    ) -> float:
        """
        Deterministic effectiveness estimate in [30, 95].

        Args:
            complexity: Audit complexity.
            historical_success: Success rate in [0, 1], if known.
        """
        adjustment = 0.0
        if complexity == ComplexityLevel.SIMPLE:
            adjustment += 5
        elif complexity == ComplexityLevel.HIGHLY_COMPLEX:
            adjustment -= 10

        if historical_success is not None:
            if historical_success > 0.8:
                adjustment += 8
            elif historical_success < 0.5:
                adjustment -= 8

        return max(30.0, min(95.0, 75 + adjustment))

    @staticmethod
    def predict_auditor_performance(
        is_senior: bool,
        workload: float,
    ) -> AuditorPerformanceForecast:
        """
        Deterministic auditor forecast.

        Args:
            is_senior: Whether the auditor handles complex work.
            workload: Utilization as a fraction of capacity.
        """
        quality, completion, time_accuracy = 75.0, 0.8, 0.75

        if is_senior:
            quality += 10
            completion += 0.1
            time_accuracy += 0.1

        if workload > 0.8:
            quality -= 5
            completion -= 0.1
            time_accuracy -= 0.1

        return AuditorPerformanceForecast(
            quality_score=max(40.0, min(95.0, quality)),
            completion_probability=round(max(0.3, min(0.95, completion)), 2),
            time_accuracy=round(max(0.3, min(0.95, time_accuracy)), 2),
        )

    @staticmethod
    def predict_timeline_duration(
        complexity: ComplexityLevel,
        base_hours: float = 8.0,
        historical_average: float | None = None,
    ) -> float:
        """Deterministic duration estimate in hours, at least 2."""
        duration = base_hours * TIMELINE_COMPLEXITY_MULTIPLIER[complexity]
        if historical_average:
            duration = duration * 0.6 + historical_average * 0.4
        return max(2.0, round(duration, 1))
