"""Tests for collaborative filtering."""

import pytest

from recsys.config import CollaborativeFilterConfig
from recsys.core.contracts import InteractionType


def _small_config(**overrides):
    values = dict(max_similar_users=3, min_supporting_users=3, confidence_threshold=0.5)
    values.update(overrides)
    return CollaborativeFilterConfig(**values)


async def _seed_neighbourhood(cf, peers=("p1", "p2", "p3")):
    """Target user and peers share items a and b; only peers have item c."""
    await cf.record_interaction("target", "a", InteractionType.BOOKMARK)
    await cf.record_interaction("target", "b", InteractionType.FAVORITE)
    for peer in peers:
        await cf.record_interaction(peer, "a", InteractionType.BOOKMARK)
        await cf.record_interaction(peer, "b", InteractionType.FAVORITE)
        await cf.record_interaction(peer, "c", InteractionType.BOOKMARK)


class TestInteractionRatings:
    def test_interaction_weight_dwell_boost(self):
        from recsys.core.collaborative import interaction_weight

        assert interaction_weight(InteractionType.VIEW) == pytest.approx(0.1)
        assert interaction_weight(InteractionType.VIEW, duration=180) == pytest.approx(0.4)
        assert interaction_weight(InteractionType.FAVORITE) == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_rating_in_unit_interval_and_decays(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(clock=clock)
        for _ in range(20):
            await cf.record_interaction("u1", "i1", InteractionType.FAVORITE)

        fresh = cf.get_rating("u1", "i1")
        assert 0.0 <= fresh <= 1.0

        clock.advance(days=5)
        later = cf.get_rating("u1", "i1")
        assert 0.0 <= later < fresh

    @pytest.mark.asyncio
    async def test_equal_bookmarks_give_equal_ratings(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(clock=clock)
        for i in range(5):
            await cf.record_interaction("u1", f"item{i}", "bookmark")

        ratings = {cf.get_rating("u1", f"item{i}") for i in range(5)}
        assert len(ratings) == 1
        assert ratings.pop() == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_unknown_pair_has_no_rating(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(clock=clock)
        assert cf.get_rating("nobody", "nothing") is None

    @pytest.mark.asyncio
    async def test_decay_sweep_prunes_stale_interactions(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(clock=clock)
        await cf.record_interaction("u1", "i1", "view")
        clock.advance(days=60)

        assert await cf.decay_all() == 1
        assert cf.get_rating("u1", "i1") is None

    @pytest.mark.asyncio
    async def test_batch_record(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(clock=clock)
        recorded = await cf.batch_record_interactions(
            [
                {"user_id": "u1", "item_id": "i1", "type": "view"},
                {"user_id": "u2", "item_id": "i1", "type": "share"},
            ]
        )
        assert recorded == 2
        assert cf.get_stats()["users"] == 2


class TestSimilarity:
    @pytest.mark.asyncio
    async def test_zero_shared_items(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(clock=clock)
        await cf.record_interaction("u1", "a", "bookmark")
        await cf.record_interaction("u2", "b", "bookmark")

        sim = await cf.compute_similarity("u1", "u2")
        assert sim.similarity == 0.0
        assert sim.confidence == 0.0

    @pytest.mark.asyncio
    async def test_similarity_is_symmetric_and_cached(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(clock=clock)
        await _seed_neighbourhood(cf, peers=("p1",))

        forward = await cf.compute_similarity("target", "p1")
        backward = await cf.compute_similarity("p1", "target")
        assert forward.similarity == pytest.approx(backward.similarity)
        assert forward.similarity > 0.3
        assert backward.user_id1 == "p1"

    @pytest.mark.asyncio
    async def test_invalidate_drops_both_directions(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(clock=clock)
        await _seed_neighbourhood(cf, peers=("p1",))
        await cf.compute_similarity("target", "p1")

        assert cf.invalidate_similarities("target") == 1
        assert cf.get_user_similarities("target") == []
        assert cf.get_user_similarities("p1") == []

    @pytest.mark.asyncio
    async def test_profile_factors_use_stored_profiles(self, clock):
        from recsys.core.collaborative import CollaborativeFilter
        from recsys.core.contracts import ContentItem
        from recsys.core.profiles import UserProfileStore

        profiles = UserProfileStore(clock=clock)
        item = ContentItem(item_id="a", category="science", tags=["space"])
        await profiles.track_interaction("target", "a", "bookmark", item=item)
        await profiles.track_interaction("p1", "a", "bookmark", item=item)

        cf = CollaborativeFilter(profiles=profiles, clock=clock)
        await _seed_neighbourhood(cf, peers=("p1",))
        sim = await cf.compute_similarity("target", "p1")
        assert sim.factors.category_overlap == pytest.approx(1.0)
        assert sim.factors.tag_similarity == pytest.approx(1.0)


class TestRecommendations:
    @pytest.mark.asyncio
    async def test_user_without_history_gets_nothing(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(config=_small_config(), clock=clock)
        await _seed_neighbourhood(cf)
        assert await cf.recommend_for("newcomer") == []

    @pytest.mark.asyncio
    async def test_recommends_items_of_similar_users(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(config=_small_config(), clock=clock)
        await _seed_neighbourhood(cf)

        recs = await cf.recommend_for("target")
        assert [r.item_id for r in recs] == ["c"]
        rec = recs[0]
        assert len(rec.supporting_users) == 3
        assert rec.predicted_rating == pytest.approx(0.1)
        assert rec.confidence == pytest.approx(0.6, abs=0.01)
        assert rec.final_score > rec.predicted_rating

    @pytest.mark.asyncio
    async def test_excluded_items_are_skipped(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(config=_small_config(), clock=clock)
        await _seed_neighbourhood(cf)
        assert await cf.recommend_for("target", exclude=["c"]) == []

    @pytest.mark.asyncio
    async def test_too_few_supporters_is_empty_not_error(self, clock):
        from recsys.core.collaborative import CollaborativeFilter

        cf = CollaborativeFilter(config=_small_config(), clock=clock)
        await _seed_neighbourhood(cf, peers=("p1", "p2"))
        assert await cf.recommend_for("target") == []


class TestPersistence:
    @pytest.mark.asyncio
    async def test_matrices_reload(self, clock):
        from recsys.core.collaborative import CollaborativeFilter
        from recsys.storage.repository import InMemoryRepository

        repo = InMemoryRepository()
        cf = CollaborativeFilter(repository=repo, clock=clock)
        await cf.record_interaction("u1", "i1", "share")

        reloaded = CollaborativeFilter(repository=repo, clock=clock)
        assert await reloaded.load() == 1
        assert reloaded.get_rating("u1", "i1") == pytest.approx(cf.get_rating("u1", "i1"))
