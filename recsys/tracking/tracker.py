"""Performance tracker: outcome recording, A/B experiments and suggestions."""

import time
import uuid
from datetime import datetime
from typing import Any

from recsys.config import TrackerConfig
from recsys.core.contracts import (
    Clock,
    ExperimentStatus,
    Recommendation,
    RecommendationContext,
    TrackedInteraction,
    utc_now,
)
from recsys.core.errors import ExperimentNotFoundError, InvariantViolationError
from recsys.core.locks import KeyedLocks
from recsys.core.persistence import GuardedRepository
from recsys.logging import get_logger
from recsys.storage.repository import (
    EXPERIMENTS,
    FEEDBACK,
    PERF_METRICS,
    Repository,
)
from recsys.tracking import experiments as exp
from recsys.tracking.models import (
    ABTestResults,
    Experiment,
    Feedback,
    OptimizationSuggestion,
    PerformanceMetrics,
    PerformanceReport,
    Sentiment,
    Variant,
)
from recsys.tracking.reports import ReportFilters, build_report
from recsys.tracking.suggestions import generate_suggestions

logger = get_logger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def rating_sentiment(rating: float) -> Sentiment:
    if rating >= 4:
        return Sentiment.POSITIVE
    if rating <= 2:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def feedback_categories(rating: float) -> list[str]:
    if rating >= 4:
        return ["relevant", "accurate"]
    if rating <= 2:
        return ["irrelevant", "inaccurate"]
    return []


class PerformanceTracker:
    """Records what happened to presented recommendations.

    One metrics record exists per recommendation id. Experiments route
    users deterministically and are analyzed on demand.
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        repository: Repository | None = None,
        clock: Clock | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.config = config or TrackerConfig()
        self._repository = GuardedRepository.wrap(repository)
        self._clock = clock or utc_now
        self._locks = locks or KeyedLocks()
        self._metrics: dict[str, PerformanceMetrics] = {}
        self._experiments: dict[str, Experiment] = {}
        self._feedback: dict[str, list[Feedback]] = {}
        self._suggestions: list[OptimizationSuggestion] = []

    async def load(self) -> int:
        """Warm metrics, experiments and feedback from the repository.

        Returns:
            Number of records loaded
        """
        loaded = 0
        for rec_id, record in await self._repository.scan(PERF_METRICS):
            try:
                self._metrics[rec_id] = PerformanceMetrics.from_dict(record)
                loaded += 1
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable metrics record {rec_id}: {e}")
        for experiment_id, record in await self._repository.scan(EXPERIMENTS):
            try:
                self._experiments[experiment_id] = Experiment.from_dict(record)
                loaded += 1
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable experiment {experiment_id}: {e}")
        for rec_id, record in await self._repository.scan(FEEDBACK):
            try:
                self._feedback[rec_id] = [Feedback.from_dict(f) for f in record.get("entries", [])]
                loaded += 1
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable feedback for {rec_id}: {e}")
        logger.info(
            f"Loaded tracker state: metrics={len(self._metrics)} "
            f"experiments={len(self._experiments)} feedback={len(self._feedback)}"
        )
        return loaded

    # Outcome tracking

    async def present(
        self,
        rec_id: str,
        user_id: str,
        recommendation: Recommendation,
        context: RecommendationContext | None = None,
        position: int = 0,
    ) -> PerformanceMetrics:
        """Record that a recommendation was shown.

        Presenting the same id again returns the existing record.
        """
        if not rec_id:
            raise InvariantViolationError("Recommendation id is required")
        context = context or RecommendationContext()
        now = self._clock()

        async with self._locks.for_key(rec_id):
            existing = self._metrics.get(rec_id)
            if existing is not None:
                return existing

            metadata = recommendation.metadata
            metrics = PerformanceMetrics(
                rec_id=rec_id,
                user_id=user_id,
                type=recommendation.type,
                created_at=now,
                updated_at=now,
                position=position,
                page=context.current_page or "unknown",
                device=context.device,
                time_of_day=context.time_of_day if context.time_of_day is not None else now.hour,
                day_of_week=context.day_of_week if context.day_of_week is not None else now.weekday(),
                session_duration=context.session_duration or 0.0,
                category=metadata.category,
                experiment_id=metadata.experiment_id,
                variant_id=metadata.variant_id,
            )
            self._metrics[rec_id] = metrics
            await self._repository.put(PERF_METRICS, rec_id, metrics.to_dict())

        if metrics.experiment_id and metrics.variant_id:
            await self._count_sample(metrics.experiment_id)

        logger.debug(
            f"Recommendation presented: rec={rec_id} user={user_id} "
            f"type={metrics.type.value} position={position}"
        )
        return metrics

    async def _count_sample(self, experiment_id: str) -> None:
        async with self._locks.for_key(experiment_id):
            experiment = self._experiments.get(experiment_id)
            if experiment is None or experiment.status is not ExperimentStatus.RUNNING:
                return
            experiment.current_sample_size += 1
            await self._save_experiment(experiment)

    async def interact(
        self,
        rec_id: str,
        interaction: TrackedInteraction | str,
        timestamp: datetime | None = None,
        duration: float | None = None,
    ) -> PerformanceMetrics | None:
        """Apply an interaction to a presented recommendation.

        Returns:
            The updated record, or None for an unknown recommendation id
        """
        interaction = TrackedInteraction(interaction)
        now = timestamp or self._clock()

        async with self._locks.for_key(rec_id):
            metrics = self._metrics.get(rec_id)
            if metrics is None:
                logger.warning(
                    f"Interaction for unknown recommendation: interaction={interaction.value}",
                    extra={"rec_id": rec_id},
                )
                return None

            if interaction is TrackedInteraction.VIEWED:
                metrics.viewed = True
            elif interaction is TrackedInteraction.CLICKED:
                metrics.clicked = True
                if metrics.time_to_click_ms is None:
                    metrics.time_to_click_ms = max(
                        (now - metrics.created_at).total_seconds() * 1000, 0.0
                    )
            elif interaction is TrackedInteraction.BOOKMARKED:
                metrics.bookmarked = True
            elif interaction is TrackedInteraction.SHARED:
                metrics.shared = True
            elif interaction is TrackedInteraction.DISMISSED:
                metrics.dismissed = True

            if duration:
                metrics.time_spent = (metrics.time_spent or 0.0) + duration
            metrics.updated_at = now
            await self._repository.put(PERF_METRICS, rec_id, metrics.to_dict())

        logger.debug(f"Recommendation interaction tracked: rec={rec_id} interaction={interaction.value}")
        return metrics

    async def rate(
        self,
        rec_id: str,
        user_id: str,
        rating: float,
        comment: str | None = None,
    ) -> Feedback:
        """Record an explicit 1-5 rating.

        Raises:
            InvariantViolationError: Rating outside the 1-5 scale
        """
        if not MIN_RATING <= rating <= MAX_RATING:
            raise InvariantViolationError(
                f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}"
            )
        now = self._clock()

        async with self._locks.for_key(rec_id):
            metrics = self._metrics.get(rec_id)
            if metrics is not None:
                metrics.rating = rating
                metrics.updated_at = now
                await self._repository.put(PERF_METRICS, rec_id, metrics.to_dict())

            entry = Feedback(
                rec_id=rec_id,
                user_id=user_id,
                rating=rating,
                sentiment=rating_sentiment(rating),
                timestamp=now,
                categories=feedback_categories(rating),
                comment=comment,
                content_category=metrics.category if metrics else "general",
            )
            entries = self._feedback.setdefault(rec_id, [])
            entries.append(entry)
            await self._repository.put(FEEDBACK, rec_id, {"entries": [f.to_dict() for f in entries]})

        logger.info(
            f"Recommendation rating tracked: rec={rec_id} user={user_id} "
            f"rating={rating} sentiment={entry.sentiment.value}"
        )
        return entry

    def get_metrics(self, rec_id: str) -> PerformanceMetrics | None:
        return self._metrics.get(rec_id)

    def get_feedback(self, rec_id: str) -> list[Feedback]:
        return list(self._feedback.get(rec_id, []))

    # Experiments

    async def _save_experiment(self, experiment: Experiment) -> None:
        await self._repository.put(EXPERIMENTS, experiment.experiment_id, experiment.to_dict())

    def _require(self, experiment_id: str) -> Experiment:
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(experiment_id)
        return experiment

    async def create_experiment(
        self,
        name: str,
        variants: list[Variant | dict[str, Any]],
        description: str = "",
        hypothesis: str = "",
        metrics: list[str] | None = None,
        target_sample_size: int = 1000,
        confidence_level: float = 0.95,
    ) -> str:
        """Register a draft experiment. The first variant is the control.

        Raises:
            InvariantViolationError: Variants cannot be routed as given
        """
        experiment = Experiment(
            experiment_id=f"exp_{uuid.uuid4().hex[:12]}",
            name=name,
            variants=[v if isinstance(v, Variant) else Variant.from_dict(v) for v in variants],
            created_at=self._clock(),
            description=description,
            hypothesis=hypothesis,
            metrics=list(metrics or ["conversion_rate"]),
            target_sample_size=target_sample_size,
            confidence_level=confidence_level,
        )
        try:
            exp.validate_experiment(experiment)
        except InvariantViolationError as e:
            logger.error(f"Failed to create A/B test experiment: name={name} error={e}")
            raise

        self._experiments[experiment.experiment_id] = experiment
        await self._save_experiment(experiment)
        logger.info(
            f"A/B test experiment created: experiment={experiment.experiment_id} "
            f"name={name} variants={len(experiment.variants)}"
        )
        return experiment.experiment_id

    async def _transition(self, experiment_id: str, action: str) -> Experiment:
        async with self._locks.for_key(experiment_id):
            experiment = self._require(experiment_id)
            exp.transition(experiment, action, self._clock())
            await self._save_experiment(experiment)
        logger.info(
            f"A/B test experiment {action}: experiment={experiment_id} status={experiment.status.value}"
        )
        return experiment

    async def start_experiment(self, experiment_id: str) -> Experiment:
        """Move a draft experiment to running.

        Raises:
            ExperimentNotFoundError: Unknown experiment id
            ExperimentStateError: Experiment is not in draft
        """
        return await self._transition(experiment_id, "start")

    async def pause_experiment(self, experiment_id: str) -> Experiment:
        return await self._transition(experiment_id, "pause")

    async def resume_experiment(self, experiment_id: str) -> Experiment:
        return await self._transition(experiment_id, "resume")

    async def complete_experiment(self, experiment_id: str) -> Experiment:
        return await self._transition(experiment_id, "complete")

    def get_experiment(self, experiment_id: str) -> Experiment | None:
        return self._experiments.get(experiment_id)

    def list_experiments(self, status: ExperimentStatus | str | None = None) -> list[Experiment]:
        experiments = sorted(self._experiments.values(), key=lambda e: e.created_at)
        if status is None:
            return experiments
        status = ExperimentStatus(status)
        return [e for e in experiments if e.status is status]

    def assign_variant(self, experiment_id: str, user_id: str) -> str | None:
        """Deterministic variant for a user, or None unless the experiment is running."""
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            return None
        return exp.assign_variant(experiment, user_id)

    async def analyze(self, experiment_id: str) -> ABTestResults | None:
        """Compute and attach results from attributed metrics.

        Returns:
            The results, or None for an unknown experiment or a failed analysis
        """
        start = time.perf_counter()
        async with self._locks.for_key(experiment_id):
            experiment = self._experiments.get(experiment_id)
            if experiment is None:
                logger.warning(
                    "Cannot analyze unknown experiment", extra={"experiment_id": experiment_id}
                )
                return None
            try:
                results = exp.analyze_experiment(
                    experiment,
                    list(self._metrics.values()),
                    alpha=self.config.significance_level,
                    min_sample=self.config.min_recommended_sample,
                    now=self._clock(),
                )
                experiment.results = results
                await self._save_experiment(experiment)
            except Exception as e:
                logger.warning(
                    f"Failed to analyze A/B test results: error={type(e).__name__}: {e}",
                    extra={"experiment_id": experiment_id},
                )
                return None

        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            f"A/B test results analyzed: experiment={experiment_id} "
            f"winner={results.winning_variant} significant={results.statistical_significance} "
            f"p_value={results.p_value:.4f} duration_ms={duration_ms}"
        )
        return results

    # Reporting and suggestions

    def report(
        self,
        start: datetime,
        end: datetime,
        filters: ReportFilters | None = None,
    ) -> PerformanceReport:
        begin = time.perf_counter()
        result = build_report(
            self._metrics.values(),
            start,
            end,
            filters,
            low_ctr=self.config.low_performer_ctr,
        )
        duration_ms = int((time.perf_counter() - begin) * 1000)
        logger.info(
            f"Performance report generated: total={result.overall['total_recommendations']} "
            f"ctr={result.overall['average_click_through_rate']:.3f} duration_ms={duration_ms}"
        )
        return result

    def generate_optimization_suggestions(self) -> list[OptimizationSuggestion]:
        """Regenerate suggestions from the configured lookback window."""
        now = self._clock()
        lookback = self.config.suggestion_lookback_hours * 3600
        recent = [
            m for m in self._metrics.values() if (now - m.created_at).total_seconds() <= lookback
        ]
        recent_feedback = [
            f
            for entries in self._feedback.values()
            for f in entries
            if (now - f.timestamp).total_seconds() <= lookback
        ]
        self._suggestions = generate_suggestions(recent, recent_feedback, self.config, now)
        logger.info(
            f"Optimization suggestions generated: total={len(self._suggestions)} "
            f"high_priority={sum(1 for s in self._suggestions if s.priority.value == 'high')}"
        )
        return list(self._suggestions)

    def get_optimization_suggestions(self) -> list[OptimizationSuggestion]:
        return list(self._suggestions)

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_metrics": len(self._metrics),
            "total_experiments": len(self._experiments),
            "running_experiments": sum(
                1 for e in self._experiments.values() if e.status is ExperimentStatus.RUNNING
            ),
            "total_feedback": sum(len(v) for v in self._feedback.values()),
            "active_suggestions": len(self._suggestions),
        }
