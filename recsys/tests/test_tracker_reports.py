"""Tests for the performance tracker and report aggregation.

Covers:
1. presentation, interaction and rating recording
2. experiment lifecycle and routing through the tracker
3. report aggregation, trends and low performers
4. persistence reload
"""

from datetime import timedelta

import pytest

from recsys.core.contracts import (
    Recommendation,
    RecommendationContext,
    RecommendationMetadata,
    RecommendationType,
)


def _rec(clock, rec_id="r1", rec_type=RecommendationType.CONTENT_BASED, **metadata):
    now = clock()
    return Recommendation(
        rec_id=rec_id,
        user_id="u1",
        type=rec_type,
        target=f"https://example.com/{rec_id}",
        title=rec_id,
        score=0.5,
        confidence=0.5,
        reasoning=("Matches your interests",),
        metadata=RecommendationMetadata(category=metadata.pop("category", "technology"), **metadata),
        created_at=now,
        expires_at=now + timedelta(minutes=30),
    )


# =============================================================================
# Outcome recording
# =============================================================================


class TestOutcomeRecording:
    @pytest.mark.asyncio
    async def test_present_is_idempotent(self, clock):
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        context = RecommendationContext(current_page="home", device="mobile")
        first = await tracker.present("r1", "u1", _rec(clock), context, position=2)
        again = await tracker.present("r1", "u1", _rec(clock), position=7)

        assert again is first
        assert first.position == 2
        assert first.page == "home"
        assert first.device == "mobile"
        assert first.time_of_day == 10
        assert tracker.get_stats()["total_metrics"] == 1

    @pytest.mark.asyncio
    async def test_present_requires_id(self, clock):
        from recsys.core.errors import InvariantViolationError
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        with pytest.raises(InvariantViolationError):
            await tracker.present("", "u1", _rec(clock))

    @pytest.mark.asyncio
    async def test_interactions_set_flags(self, clock):
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        await tracker.present("r1", "u1", _rec(clock))
        clock.advance(seconds=2)

        await tracker.interact("r1", "clicked")
        metrics = await tracker.interact("r1", "bookmarked", duration=45)

        assert metrics.clicked and metrics.bookmarked and metrics.converted
        assert metrics.time_to_click_ms == pytest.approx(2000)
        assert metrics.time_spent == 45

    @pytest.mark.asyncio
    async def test_unknown_recommendation_is_ignored(self, clock):
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        assert await tracker.interact("missing", "clicked") is None

    @pytest.mark.asyncio
    async def test_rating_scale_enforced(self, clock):
        from recsys.core.errors import InvariantViolationError
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        for bad in (0, 6):
            with pytest.raises(InvariantViolationError):
                await tracker.rate("r1", "u1", bad)

    @pytest.mark.asyncio
    async def test_rating_recorded_with_sentiment(self, clock):
        from recsys.tracking.models import Sentiment
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        await tracker.present("r1", "u1", _rec(clock))
        feedback = await tracker.rate("r1", "u1", 5, comment="great")

        assert feedback.sentiment is Sentiment.POSITIVE
        assert feedback.categories == ["relevant", "accurate"]
        assert feedback.content_category == "technology"
        assert tracker.get_metrics("r1").rating == 5
        assert len(tracker.get_feedback("r1")) == 1


# =============================================================================
# Experiments
# =============================================================================


VARIANTS = [
    {"id": "control", "name": "Control", "trafficAllocation": 0.5},
    {"variant_id": "treatment", "name": "Treatment", "traffic_allocation": 0.5},
]


class TestExperiments:
    @pytest.mark.asyncio
    async def test_lifecycle(self, clock):
        from recsys.core.contracts import ExperimentStatus
        from recsys.core.errors import ExperimentStateError
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        experiment_id = await tracker.create_experiment("Ranking", VARIANTS)
        assert tracker.get_experiment(experiment_id).status is ExperimentStatus.DRAFT
        assert tracker.assign_variant(experiment_id, "u1") is None

        await tracker.start_experiment(experiment_id)
        assert tracker.assign_variant(experiment_id, "u1") in {"control", "treatment"}
        assert [e.experiment_id for e in tracker.list_experiments("running")] == [experiment_id]

        await tracker.complete_experiment(experiment_id)
        with pytest.raises(ExperimentStateError):
            await tracker.resume_experiment(experiment_id)

    @pytest.mark.asyncio
    async def test_invalid_variants_rejected(self, clock):
        from recsys.core.errors import InvariantViolationError
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        with pytest.raises(InvariantViolationError):
            await tracker.create_experiment("Bad", [{"id": "a", "trafficAllocation": 0.7}])
        assert tracker.list_experiments() == []

    @pytest.mark.asyncio
    async def test_unknown_experiment(self, clock):
        from recsys.core.errors import ExperimentNotFoundError
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        assert tracker.assign_variant("nope", "u1") is None
        assert await tracker.analyze("nope") is None
        with pytest.raises(ExperimentNotFoundError):
            await tracker.start_experiment("nope")

    @pytest.mark.asyncio
    async def test_samples_counted_and_analyzed(self, clock):
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        experiment_id = await tracker.create_experiment("Ranking", VARIANTS)
        await tracker.start_experiment(experiment_id)

        for i in range(20):
            variant = "control" if i % 2 else "treatment"
            rec = _rec(clock, f"r{i}", experiment_id=experiment_id, variant_id=variant)
            await tracker.present(rec.rec_id, f"user{i}", rec)
            if variant == "treatment":
                await tracker.interact(rec.rec_id, "bookmarked")

        assert tracker.get_experiment(experiment_id).current_sample_size == 20
        results = await tracker.analyze(experiment_id)
        assert results.winning_variant == "treatment"
        assert results.variant_performance["treatment"].conversion_rate == 1.0
        assert tracker.get_experiment(experiment_id).results is results

    @pytest.mark.asyncio
    async def test_analysis_failure_returns_none(self, clock, monkeypatch):
        from recsys.tracking import experiments
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        experiment_id = await tracker.create_experiment("Ranking", VARIANTS)
        await tracker.start_experiment(experiment_id)

        def broken(*args, **kwargs):
            raise ZeroDivisionError("bad sample")

        monkeypatch.setattr(experiments, "analyze_experiment", broken)
        assert await tracker.analyze(experiment_id) is None
        assert tracker.get_experiment(experiment_id).results is None


# =============================================================================
# Reports
# =============================================================================


class TestReports:
    @pytest.mark.asyncio
    async def test_report_aggregates_period(self, clock):
        from recsys.tracking.reports import ReportFilters
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        start = clock()
        await tracker.present("r1", "u1", _rec(clock, "r1"), position=1)
        await tracker.present(
            "r2", "u2", _rec(clock, "r2", RecommendationType.TRENDING), position=2
        )
        await tracker.interact("r1", "clicked")
        await tracker.interact("r1", "bookmarked")
        await tracker.rate("r1", "u1", 4)

        report = tracker.report(start, clock())
        assert report.overall["total_recommendations"] == 2
        assert report.overall["total_users"] == 2
        assert report.overall["average_click_through_rate"] == pytest.approx(0.5)
        assert report.overall["average_rating"] == 4
        assert set(report.by_type) == {"content-based", "trending"}
        assert report.by_context["by_device"]["desktop"]["count"] == 2
        assert report.top_performers["recommendations"][0]["rec_id"] == "r1"
        assert [p["rec_id"] for p in report.low_performers] == ["r2"]
        assert "Improve content relevance" in report.low_performers[0]["suggestions"]

        trending_only = tracker.report(start, clock(), ReportFilters(type="trending"))
        assert trending_only.overall["total_recommendations"] == 1

    @pytest.mark.asyncio
    async def test_period_bounds(self, clock):
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(clock=clock)
        await tracker.present("old", "u1", _rec(clock, "old"))
        clock.advance(days=2)
        start = clock()
        await tracker.present("new", "u1", _rec(clock, "new"))

        report = tracker.report(start, clock())
        assert report.overall["total_recommendations"] == 1
        assert report.to_dict()["period"]["start"] is not None

    def test_growth_rate(self):
        from recsys.tracking.reports import growth_rate

        daily = [{"click_through_rate": 0.1}] * 7 + [{"click_through_rate": 0.2}] * 7
        assert growth_rate(daily, 7) == pytest.approx(1.0)
        assert growth_rate(daily[:5], 7) == 0.0
        assert growth_rate(daily[:7], 7) == 0.0

    def test_empty_report(self, clock):
        from recsys.tracking.reports import build_report

        report = build_report([], clock(), clock())
        assert report.overall["total_recommendations"] == 0
        assert report.overall["average_click_through_rate"] == 0.0
        assert report.trends["daily_metrics"] == []
        assert report.low_performers == []


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    @pytest.mark.asyncio
    async def test_state_reloads(self, clock):
        from recsys.storage.repository import InMemoryRepository
        from recsys.tracking.tracker import PerformanceTracker

        repo = InMemoryRepository()
        tracker = PerformanceTracker(repository=repo, clock=clock)
        experiment_id = await tracker.create_experiment("Ranking", VARIANTS)
        await tracker.present("r1", "u1", _rec(clock))
        await tracker.rate("r1", "u1", 2)

        reloaded = PerformanceTracker(repository=repo, clock=clock)
        assert await reloaded.load() == 3
        assert reloaded.get_experiment(experiment_id).name == "Ranking"
        assert reloaded.get_metrics("r1").rating == 2
        assert reloaded.get_feedback("r1")[0].user_id == "u1"
