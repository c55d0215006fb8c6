"""Recommendation service: wires the components together and owns their lifecycle."""

from dataclasses import replace
from datetime import datetime
from typing import Any

from recsys.config import Config, config as default_config
from recsys.core.catalog import InMemoryCatalog
from recsys.core.collaborative import CollaborativeFilter
from recsys.core.contracts import (
    PROFILE_TO_INTERACTION,
    Clock,
    ContentSource,
    ProfileAction,
    Recommendation,
    RecommendationContext,
    RecommendationRequest,
    TrackedInteraction,
    utc_now,
)
from recsys.core.engine import RecommendationEngine
from recsys.core.errors import InteractionTrackingError, RecsysError
from recsys.core.profiles import UserProfile, UserProfileStore
from recsys.core.trending import TrendingDiscovery, TrendingItem, TrendingQuery
from recsys.jobs.scheduler import (
    create_scheduler,
    setup_maintenance_jobs,
    shutdown_scheduler,
    start_scheduler,
)
from recsys.logging import get_logger
from recsys.storage.repo_records import SqlRepository
from recsys.storage.repository import InMemoryRepository, Repository
from recsys.tracking.models import (
    ABTestResults,
    Experiment,
    Feedback,
    PerformanceMetrics,
    PerformanceReport,
    Variant,
)
from recsys.tracking.reports import ReportFilters
from recsys.tracking.tracker import PerformanceTracker

logger = get_logger(__name__)

# Profile actions that count as an outcome of a presented recommendation
ACTION_OUTCOMES: dict[ProfileAction, TrackedInteraction] = {
    ProfileAction.VIEW: TrackedInteraction.CLICKED,
    ProfileAction.BOOKMARK: TrackedInteraction.BOOKMARKED,
    ProfileAction.FAVORITE: TrackedInteraction.BOOKMARKED,
    ProfileAction.SHARE: TrackedInteraction.SHARED,
    ProfileAction.DELETE: TrackedInteraction.DISMISSED,
}


class RecommendationService:
    """Composition root: ``RecommendationService(config)`` -> ``start()`` -> use -> ``close()``.

    Every instance holds its own state, so several can coexist in one
    process. Persistence goes through ``SqlRepository`` when
    ``database_url`` is configured and ``InMemoryRepository`` otherwise.
    """

    def __init__(
        self,
        config: Config | None = None,
        repository: Repository | None = None,
        catalog: ContentSource | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or default_config
        self._clock = clock or utc_now

        if repository is None:
            if self.config.database_url:
                repository = SqlRepository(self.config.database_url, self.config.log_level)
            else:
                repository = InMemoryRepository()
        self.repository = repository
        self.catalog = catalog if catalog is not None else InMemoryCatalog(clock=self._clock)

        self.profiles = UserProfileStore(repository=repository, clock=self._clock)
        self.collaborative = CollaborativeFilter(
            config=self.config.collaborative,
            repository=repository,
            profiles=self.profiles,
            clock=self._clock,
        )
        self.trending = TrendingDiscovery(
            config=self.config.trending,
            repository=repository,
            catalog=self.catalog,
            clock=self._clock,
        )
        self.engine = RecommendationEngine(
            profiles=self.profiles,
            collaborative=self.collaborative,
            trending=self.trending,
            catalog=self.catalog,
            config=self.config.engine,
            clock=self._clock,
        )
        self.tracker = PerformanceTracker(
            config=self.config.tracker,
            repository=repository,
            clock=self._clock,
        )
        self.scheduler = None
        self._started = False

    # Lifecycle

    async def start(self) -> None:
        """Create tables, warm state from the repository and start maintenance jobs."""
        if self._started:
            return
        logger.info("Starting recommendation service")

        if isinstance(self.repository, SqlRepository):
            await self.repository.init()
            logger.info("Database tables ensured")

        await self.profiles.load()
        await self.collaborative.load()
        await self.trending.load()
        await self.tracker.load()

        if self.config.scheduler_enabled:
            self.scheduler = create_scheduler()
            setup_maintenance_jobs(self.scheduler, self)
            start_scheduler(self.scheduler)

        self._started = True

    async def close(self) -> None:
        """Stop maintenance jobs and release storage."""
        logger.info("Shutting down recommendation service")
        if self.scheduler is not None:
            shutdown_scheduler(self.scheduler)
            self.scheduler = None
        await self.repository.close()
        self._started = False

    async def __aenter__(self) -> "RecommendationService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Generation

    async def generate(
        self,
        request: RecommendationRequest,
        use_cache: bool = False,
    ) -> list[Recommendation]:
        """Generate recommendations, routing the user into the request's experiment.

        A variant whose config carries a ``strategy_mix`` overrides the
        engine's default mix for this request.
        """
        if request.experiment_id and not request.variant_id:
            variant_id = self.tracker.assign_variant(request.experiment_id, request.user_id)
            if variant_id is None:
                request = replace(request, experiment_id=None)
            else:
                request = replace(request, variant_id=variant_id)
                experiment = self.tracker.get_experiment(request.experiment_id)
                variant = experiment.get_variant(variant_id) if experiment else None
                mix = variant.config.get("strategy_mix") if variant else None
                if mix and request.strategy_mix is None:
                    request = replace(request, strategy_mix=dict(mix))

        return await self.engine.generate(request, use_cache=use_cache)

    async def discover_trending(self, query: TrendingQuery | None = None) -> list[TrendingItem]:
        return await self.trending.discover(query)

    # Feedback

    async def present(
        self,
        recommendations: list[Recommendation],
        context: RecommendationContext | None = None,
    ) -> list[PerformanceMetrics]:
        """Record a displayed list. Positions are 1-based in display order."""
        presented = []
        for position, rec in enumerate(recommendations, start=1):
            metrics = await self.tracker.present(
                rec.rec_id, rec.user_id, rec, context, position=position
            )
            presented.append(metrics)
            if rec.item_id:
                await self.trending.record_impression(rec.item_id)
        return presented

    async def track_interaction(
        self,
        user_id: str,
        item_id: str,
        action: ProfileAction | str,
        rec_id: str | None = None,
        duration: float | None = None,
        timestamp: datetime | None = None,
    ) -> UserProfile:
        """Fan an interaction out to every component that learns from it.

        The profile, interaction matrix and trending metrics are updated;
        the user's cached similarities and recommendation list are dropped;
        and when ``rec_id`` is given the outcome is attributed to it.
        """
        action = ProfileAction(action)
        try:
            return await self._track_interaction(
                user_id, item_id, action, rec_id, duration, timestamp
            )
        except RecsysError:
            raise
        except Exception as e:
            logger.error(
                f"Interaction tracking failed: action={action.value} error={type(e).__name__}: {e}",
                extra={"user_id": user_id, "item_id": item_id},
                exc_info=True,
            )
            raise InteractionTrackingError(user_id, item_id, cause=e) from e

    async def _track_interaction(
        self,
        user_id: str,
        item_id: str,
        action: ProfileAction,
        rec_id: str | None,
        duration: float | None,
        timestamp: datetime | None,
    ) -> UserProfile:
        item = await self.catalog.get_item(item_id)

        profile = await self.profiles.track_interaction(
            user_id,
            item_id,
            action,
            item=item,
            duration=duration,
            timestamp=timestamp,
        )

        interaction_type = PROFILE_TO_INTERACTION.get(action)
        if interaction_type is not None:
            await self.collaborative.record_interaction(
                user_id,
                item_id,
                interaction_type,
                duration=duration,
                timestamp=timestamp,
            )
            self.collaborative.invalidate_similarities(user_id)
            await self.trending.record_event(
                item_id,
                interaction_type,
                user_id,
                duration=duration,
                timestamp=timestamp,
            )

        outcome = ACTION_OUTCOMES.get(action)
        if rec_id and outcome is not None:
            await self.tracker.interact(rec_id, outcome, timestamp=timestamp, duration=duration)

        self.engine.clear_user_cache(user_id)
        logger.debug(f"Interaction tracked: user={user_id} item={item_id} action={action.value}")
        return profile

    async def track_rating(
        self,
        rec_id: str,
        user_id: str,
        rating: float,
        comment: str | None = None,
    ) -> Feedback:
        """Record an explicit rating and fold it into the user's category stats."""
        feedback = await self.tracker.rate(rec_id, user_id, rating, comment)
        await self.profiles.record_rating(user_id, feedback.content_category, rating)
        return feedback

    # Experiments

    async def create_experiment(
        self,
        name: str,
        variants: list[Variant | dict[str, Any]],
        **details: Any,
    ) -> str:
        return await self.tracker.create_experiment(name, variants, **details)

    async def start_experiment(self, experiment_id: str) -> Experiment:
        return await self.tracker.start_experiment(experiment_id)

    async def pause_experiment(self, experiment_id: str) -> Experiment:
        return await self.tracker.pause_experiment(experiment_id)

    async def resume_experiment(self, experiment_id: str) -> Experiment:
        return await self.tracker.resume_experiment(experiment_id)

    async def complete_experiment(self, experiment_id: str) -> Experiment:
        return await self.tracker.complete_experiment(experiment_id)

    def get_experiment(self, experiment_id: str) -> Experiment | None:
        return self.tracker.get_experiment(experiment_id)

    def list_experiments(self, status: str | None = None) -> list[Experiment]:
        return self.tracker.list_experiments(status)

    def assign_variant(self, experiment_id: str, user_id: str) -> str | None:
        return self.tracker.assign_variant(experiment_id, user_id)

    async def analyze(self, experiment_id: str) -> ABTestResults | None:
        return await self.tracker.analyze(experiment_id)

    # Reporting

    def report(
        self,
        start: datetime,
        end: datetime,
        filters: ReportFilters | None = None,
    ) -> PerformanceReport:
        return self.tracker.report(start, end, filters)

    async def export_profile(self, user_id: str) -> dict[str, Any] | None:
        return await self.profiles.export_profile(user_id)

    def get_stats(self) -> dict[str, Any]:
        return {
            "profiles": self.profiles.get_stats(),
            "collaborative": self.collaborative.get_stats(),
            "trending": self.trending.get_stats(),
            "engine": self.engine.get_metrics(),
            "tracker": self.tracker.get_stats(),
        }
