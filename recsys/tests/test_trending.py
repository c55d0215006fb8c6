"""Tests for trending discovery."""

import pytest

from recsys.config import TrendingConfig
from recsys.core.contracts import ContentItem, InteractionType, TimeWindow


def _lenient_config(**overrides):
    values = dict(min_views=1, min_bookmarks=0, min_unique_users=1)
    values.update(overrides)
    return TrendingConfig(**values)


def _catalog(clock):
    from recsys.core.catalog import InMemoryCatalog

    return InMemoryCatalog(
        [
            ContentItem(item_id="tech1", category="technology", tags=["ai"]),
            ContentItem(item_id="tech2", category="technology", tags=["ai", "gpu"]),
            ContentItem(item_id="sci1", category="science", tags=["space"]),
        ],
        clock=clock,
    )


async def _views(trending, item_id, users):
    for i in range(users):
        await trending.record_event(item_id, InteractionType.VIEW, f"user{i}")


class TestScoreComponents:
    def test_freshness_is_one_at_age_zero_and_decreasing(self):
        from recsys.core.trending import freshness_score

        assert freshness_score(0, 0.1) == 1.0
        assert freshness_score(1, 0.1) < 1.0
        assert freshness_score(10, 0.1) < freshness_score(1, 0.1)

    def test_velocity_at_age_zero(self):
        from recsys.core.trending import TrendingMetrics, velocity_score

        assert velocity_score(TrendingMetrics(views=3), 0) == 1.0
        assert velocity_score(TrendingMetrics(views=25), 1) == pytest.approx(0.5)

    def test_acceleration_without_baseline_uses_recent_activity(self):
        from recsys.core.trending import acceleration_score

        assert acceleration_score(5, 0, 0.3) == pytest.approx(0.6)
        assert acceleration_score(10, 5, 1.0) == pytest.approx(1.0)
        assert acceleration_score(2, 4, 1.0) == 0.0

    def test_window_adjustment(self):
        from recsys.core.trending import TrendingScore, window_adjusted_score

        score = TrendingScore(overall=0.5, velocity=1.0, acceleration=0.0)
        assert window_adjusted_score(score, TimeWindow.HOUR) == pytest.approx(0.55)
        assert window_adjusted_score(score, TimeWindow.DAY) == pytest.approx(0.65)
        assert window_adjusted_score(score, TimeWindow.WEEK) == pytest.approx(0.5)

    def test_click_through_rate_uses_impressions(self):
        from recsys.core.trending import TrendingMetrics

        metrics = TrendingMetrics(views=5, impressions=20)
        metrics.refresh_derived()
        assert metrics.click_through_rate == pytest.approx(0.25)


class TestRecording:
    @pytest.mark.asyncio
    async def test_event_updates_metrics_and_catalog_fields(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(config=_lenient_config(), catalog=_catalog(clock), clock=clock)
        item = await trending.record_event("tech1", "bookmark", "u1")
        await trending.record_event("tech1", "view", "u2", duration=30)

        assert item.category == "technology"
        assert item.metrics.bookmarks == 1
        assert item.metrics.views == 1
        assert item.metrics.unique_users == 2
        assert item.metrics.time_spent == 30

    @pytest.mark.asyncio
    async def test_bad_event_is_swallowed(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(clock=clock)
        assert await trending.record_event("x", "teleport", "u1") is None

    @pytest.mark.asyncio
    async def test_impressions_before_first_event_count(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(clock=clock)
        await trending.record_impression("x", 3)
        assert trending.get_item("x").metrics.impressions == 3
        assert trending.get_item("x").metrics.views == 0

        await trending.record_event("x", "view", "u1")
        await trending.record_impression("x", 1)
        assert trending.get_item("x").metrics.click_through_rate == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_returned_items_do_not_alias_state(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(catalog=_catalog(clock), clock=clock)
        await trending.record_event("tech1", "view", "u1")

        snapshot = trending.get_item("tech1")
        snapshot.metrics.views = 99
        snapshot.tags.append("hacked")
        snapshot.user_ids.add("intruder")
        snapshot.events.clear()
        snapshot.metadata.domain = "elsewhere"

        fresh = trending.get_item("tech1")
        assert fresh.metrics.views == 1
        assert fresh.tags == ["ai"]
        assert fresh.user_ids == {"u1"}
        assert len(fresh.events) == 1
        assert fresh.metadata.domain != "elsewhere"

    @pytest.mark.asyncio
    async def test_window_metrics(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(clock=clock)
        await trending.record_event("x", "view", "u1")
        clock.advance(hours=2)
        await trending.record_event("x", "share", "u2")

        counts = trending.get_window_metrics("x", TimeWindow.HOUR)
        assert counts["share"] == 1
        assert counts["view"] == 0


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_empty_store_returns_empty_list(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(clock=clock)
        assert await trending.discover() == []

    @pytest.mark.asyncio
    async def test_thresholds_exclude_quiet_items(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(config=_lenient_config(min_unique_users=3), clock=clock)
        await _views(trending, "busy", 3)
        await _views(trending, "quiet", 1)

        results = await trending.discover()
        assert [i.item_id for i in results] == ["busy"]

    @pytest.mark.asyncio
    async def test_zero_limit(self, clock):
        from recsys.core.trending import TrendingDiscovery, TrendingQuery

        trending = TrendingDiscovery(config=_lenient_config(), clock=clock)
        await _views(trending, "busy", 3)
        assert await trending.discover(TrendingQuery(limit=0)) == []

    @pytest.mark.asyncio
    async def test_window_cutoff(self, clock):
        from recsys.core.trending import TrendingDiscovery, TrendingQuery

        trending = TrendingDiscovery(config=_lenient_config(), clock=clock)
        await _views(trending, "old", 3)
        clock.advance(hours=3)

        assert await trending.discover(TrendingQuery(time_window=TimeWindow.HOUR)) == []
        assert len(await trending.discover(TrendingQuery(time_window=TimeWindow.DAY))) == 1

    @pytest.mark.asyncio
    async def test_category_diversification(self, clock):
        from recsys.core.trending import TrendingDiscovery, TrendingQuery

        trending = TrendingDiscovery(config=_lenient_config(), catalog=_catalog(clock), clock=clock)
        await _views(trending, "tech1", 8)
        await _views(trending, "tech2", 6)
        await _views(trending, "sci1", 2)

        results = await trending.discover(TrendingQuery(limit=2))
        assert {i.category for i in results} == {"technology", "science"}

    @pytest.mark.asyncio
    async def test_query_filters(self, clock):
        from recsys.core.trending import TrendingDiscovery, TrendingQuery

        trending = TrendingDiscovery(config=_lenient_config(), catalog=_catalog(clock), clock=clock)
        for item_id in ("tech1", "tech2", "sci1"):
            await _views(trending, item_id, 2)

        by_tag = await trending.discover(TrendingQuery(tags=["gpu"]))
        assert [i.item_id for i in by_tag] == ["tech2"]

        excluded = await trending.discover(
            TrendingQuery(categories=["technology"], exclude_items=["tech1"])
        )
        assert [i.item_id for i in excluded] == ["tech2"]

    @pytest.mark.asyncio
    async def test_scores_are_query_time_snapshots(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(config=_lenient_config(), clock=clock)
        await _views(trending, "x", 3)
        fresh = (await trending.discover())[0].score.freshness

        clock.advance(hours=5)
        later = (await trending.discover())[0].score.freshness
        assert later < fresh

    @pytest.mark.asyncio
    async def test_emerging_trends(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(clock=clock)
        await _views(trending, "new", 4)

        emerging = await trending.get_emerging_trends()
        assert [i.item_id for i in emerging] == ["new"]

    @pytest.mark.asyncio
    async def test_trending_tags(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(catalog=_catalog(clock), clock=clock)
        await _views(trending, "tech1", 1)
        await _views(trending, "tech2", 1)

        tags = await trending.get_trending_tags()
        assert tags[0]["tag"] == "ai"
        assert tags[0]["frequency"] == 2


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_stale_items_evicted(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(catalog=_catalog(clock), clock=clock)
        await _views(trending, "tech1", 2)
        clock.advance(days=31)
        await _views(trending, "sci1", 1)

        summary = await trending.run_maintenance()
        assert summary["removed"] == 1
        assert summary["items"] == 1
        assert trending.get_item("tech1") is None

    @pytest.mark.asyncio
    async def test_categories_and_analytics(self, clock):
        from recsys.core.trending import TrendingDiscovery

        trending = TrendingDiscovery(catalog=_catalog(clock), clock=clock)
        await _views(trending, "tech1", 2)
        await _views(trending, "sci1", 1)
        await trending.run_maintenance()

        names = {c.name for c in trending.get_categories()}
        assert names == {"technology", "science"}
        analytics = trending.get_analytics()
        assert analytics["total_trending_items"] == 2
        assert analytics["peak_hours"] == [10]
