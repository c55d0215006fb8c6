"""Tests for user profile learning."""

import pytest

from recsys.core.contracts import ContentItem, ProfileAction


def _item(item_id="i1", category="technology", tags=None, content_type="article"):
    return ContentItem(
        item_id=item_id,
        title=f"Item {item_id}",
        url=f"https://example.com/{item_id}",
        category=category,
        tags=tags if tags is not None else ["python", "async"],
        content_type=content_type,
        domain="example.com",
    )


class TestProfileCreation:
    @pytest.mark.asyncio
    async def test_default_profile_created_once(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        first = await store.get_profile("u1")
        second = await store.get_profile("u1")
        assert first is second
        assert first.preferences.languages == {"en": 1.0}
        assert first.preferences.content_types["tutorial"] == 0.9

    @pytest.mark.asyncio
    async def test_find_profile_does_not_create(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        assert await store.find_profile("ghost") is None
        assert await store.export_profile("ghost") is None


class TestLearning:
    @pytest.mark.asyncio
    async def test_bookmark_learns_category_and_tags(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        profile = await store.track_interaction("u1", "i1", ProfileAction.BOOKMARK, item=_item())

        assert profile.preferences.categories["technology"] == pytest.approx(0.15)
        assert profile.preferences.tags["python"] == pytest.approx(0.15)
        assert profile.preferences.tag_frequency["python"] == 1
        assert profile.behavior.bookmark_count == 1
        assert profile.behavior.action_counts["bookmark"] == 1

    @pytest.mark.asyncio
    async def test_weights_stay_within_unit_interval(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        for _ in range(100):
            profile = await store.track_interaction("u1", "i1", "favorite", item=_item())
        assert 0.0 <= profile.preferences.categories["technology"] <= 1.0
        assert profile.preferences.categories["technology"] > 0.99

    @pytest.mark.asyncio
    async def test_delete_reduces_weights(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        await store.track_interaction("u1", "i1", "bookmark", item=_item())
        before = (await store.get_profile("u1")).preferences.categories["technology"]

        profile = await store.track_interaction("u1", "i1", "delete", item=_item())
        assert profile.preferences.categories["technology"] == pytest.approx(before * 0.7)

    @pytest.mark.asyncio
    async def test_view_duration_boosts_learning(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        quick = await store.track_interaction("u1", "i1", "view", item=_item())
        long_read = await store.track_interaction("u2", "i1", "view", item=_item(), duration=120)
        assert (
            long_read.preferences.categories["technology"]
            > quick.preferences.categories["technology"]
        )
        assert long_read.behavior.average_reading_time == pytest.approx(120)

    @pytest.mark.asyncio
    async def test_interaction_without_item_only_updates_behavior(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        profile = await store.track_interaction("u1", "unknown", "view")
        assert profile.preferences.categories == {}
        assert len(profile.behavior.interaction_history) == 1
        assert profile.behavior.hour_histogram["10"] == 1

    @pytest.mark.asyncio
    async def test_repeated_category_becomes_inferred_interest(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        for i in range(3):
            profile = await store.track_interaction("u1", f"i{i}", "bookmark", item=_item(f"i{i}"))
        assert "technology" in profile.interests
        assert "inferred" in profile.interests["technology"].sources


class TestExplicitSignals:
    @pytest.mark.asyncio
    async def test_explicit_interest_has_full_confidence(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        interest = await store.set_interest("u1", "rust", 1.4, keywords=["cargo"])
        assert interest.score == 1.0
        assert interest.confidence == 1.0
        assert interest.keywords == ["cargo"]

    @pytest.mark.asyncio
    async def test_rating_running_average(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        await store.record_rating("u1", "science", 5)
        await store.record_rating("u1", "science", 3)
        profile = await store.get_profile("u1")
        usage = profile.behavior.category_usage["science"]
        assert usage.ratings == 2
        assert usage.average_rating == pytest.approx(4.0)


class TestCompletenessAndExport:
    @pytest.mark.asyncio
    async def test_completeness_grows_with_data(self, clock):
        from recsys.core.profiles import UserProfileStore, profile_completeness

        store = UserProfileStore(clock=clock)
        empty = await store.get_profile("u1")
        assert profile_completeness(empty) == 0.0

        for i in range(3):
            profile = await store.track_interaction("u1", f"i{i}", "bookmark", item=_item(f"i{i}"))
        assert profile_completeness(profile) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_export_includes_derived_fields(self, clock):
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(clock=clock)
        await store.track_interaction("u1", "i1", "bookmark", item=_item())
        exported = await store.export_profile("u1")
        assert exported["user_id"] == "u1"
        assert exported["derived"]["common_domains"] == ["example.com"]
        assert exported["derived"]["peak_hours"] == [10]


class TestPersistence:
    @pytest.mark.asyncio
    async def test_profiles_survive_reload(self, clock):
        from recsys.core.profiles import UserProfileStore
        from recsys.storage.repository import InMemoryRepository

        repo = InMemoryRepository()
        store = UserProfileStore(repository=repo, clock=clock)
        await store.track_interaction("u1", "i1", "bookmark", item=_item())

        reloaded = UserProfileStore(repository=repo, clock=clock)
        assert await reloaded.load() == 1
        profile = await reloaded.get_profile("u1")
        assert profile.preferences.categories["technology"] == pytest.approx(0.15)
        assert profile.behavior.interaction_history[0].item_id == "i1"
