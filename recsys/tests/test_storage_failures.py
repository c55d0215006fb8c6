"""Tests for storage failures surfacing as typed errors.

Covers:
1. repository errors converted to StorageError at component entry points
2. unreadable stored profiles treated as missing
3. service interaction fan-out wrapping unexpected failures
"""

import pytest
from sqlalchemy.exc import OperationalError

from recsys.config import Config
from recsys.core.contracts import ContentItem
from recsys.storage.repository import PROFILES, InMemoryRepository


class FlakyRepository(InMemoryRepository):
    """In-memory repository whose reads or writes fail like a dropped database."""

    def __init__(self, fail_get: bool = False, fail_put: bool = False) -> None:
        super().__init__()
        self.fail_get = fail_get
        self.fail_put = fail_put

    def _error(self) -> OperationalError:
        return OperationalError("INSERT INTO records", {}, Exception("disk I/O error"))

    async def get(self, namespace, key):
        if self.fail_get:
            raise self._error()
        return await super().get(namespace, key)

    async def put(self, namespace, key, value):
        if self.fail_put:
            raise self._error()
        await super().put(namespace, key, value)


def _rec(clock):
    from datetime import timedelta

    from recsys.core.contracts import (
        Recommendation,
        RecommendationMetadata,
        RecommendationType,
    )

    now = clock()
    return Recommendation(
        rec_id="r1",
        user_id="u1",
        type=RecommendationType.CONTENT_BASED,
        target="https://example.com/r1",
        title="r1",
        score=0.5,
        confidence=0.5,
        reasoning=("Matches your interests",),
        metadata=RecommendationMetadata(category="technology"),
        created_at=now,
        expires_at=now + timedelta(minutes=30),
    )


class TestGuardedRepository:
    @pytest.mark.asyncio
    async def test_write_failure_becomes_storage_error(self):
        from recsys.core.errors import StorageError
        from recsys.core.persistence import GuardedRepository

        repo = GuardedRepository.wrap(FlakyRepository(fail_put=True))
        with pytest.raises(StorageError) as exc_info:
            await repo.put(PROFILES, "u1", {"user_id": "u1"})

        assert exc_info.value.operation == "put"
        assert exc_info.value.namespace == PROFILES
        assert exc_info.value.key == "u1"
        assert isinstance(exc_info.value.cause, OperationalError)

    def test_wrap_is_idempotent(self):
        from recsys.core.persistence import GuardedRepository

        guarded = GuardedRepository.wrap(None)
        assert isinstance(guarded.inner, InMemoryRepository)
        assert GuardedRepository.wrap(guarded) is guarded


class TestTrackerStorageFailures:
    @pytest.mark.asyncio
    async def test_present_raises_storage_error(self, clock):
        from recsys.core.errors import RecsysError, StorageError
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(repository=FlakyRepository(fail_put=True), clock=clock)
        with pytest.raises(StorageError) as exc_info:
            await tracker.present("r1", "u1", _rec(clock))
        assert isinstance(exc_info.value, RecsysError)

    @pytest.mark.asyncio
    async def test_create_experiment_raises_storage_error(self, clock):
        from recsys.core.errors import StorageError
        from recsys.tracking.tracker import PerformanceTracker

        tracker = PerformanceTracker(repository=FlakyRepository(fail_put=True), clock=clock)
        with pytest.raises(StorageError):
            await tracker.create_experiment(
                "Ranking",
                [{"id": "a", "trafficAllocation": 0.5}, {"id": "b", "trafficAllocation": 0.5}],
            )

    @pytest.mark.asyncio
    async def test_rate_raises_storage_error(self, clock):
        from recsys.core.errors import StorageError
        from recsys.tracking.tracker import PerformanceTracker

        repo = FlakyRepository()
        tracker = PerformanceTracker(repository=repo, clock=clock)
        await tracker.present("r1", "u1", _rec(clock))

        repo.fail_put = True
        with pytest.raises(StorageError):
            await tracker.rate("r1", "u1", 4)


class TestProfileStorageFailures:
    @pytest.mark.asyncio
    async def test_read_failure_raises_storage_error(self, clock):
        from recsys.core.errors import StorageError
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(repository=FlakyRepository(fail_get=True), clock=clock)
        with pytest.raises(StorageError):
            await store.get_profile("u1")

    @pytest.mark.asyncio
    async def test_write_failure_raises_storage_error(self, clock):
        from recsys.core.errors import StorageError
        from recsys.core.profiles import UserProfileStore

        store = UserProfileStore(repository=FlakyRepository(fail_put=True), clock=clock)
        with pytest.raises(StorageError):
            await store.track_interaction("u1", "item1", "bookmark")

    @pytest.mark.asyncio
    async def test_unreadable_record_is_treated_as_missing(self, clock):
        from recsys.core.profiles import UserProfileStore

        repo = InMemoryRepository()
        await repo.put(PROFILES, "u1", {"user_id": "u1", "preferences": "garbled"})
        store = UserProfileStore(repository=repo, clock=clock)

        assert await store.find_profile("u1") is None
        profile = await store.get_profile("u1")
        assert profile.user_id == "u1"


class TestServiceFailures:
    @pytest.mark.asyncio
    async def test_track_interaction_raises_storage_error(self, clock):
        from recsys.core.errors import StorageError
        from recsys.service import RecommendationService

        repo = FlakyRepository()
        service = RecommendationService(Config(scheduler_enabled=False), repository=repo, clock=clock)
        await service.start()
        try:
            repo.fail_put = True
            with pytest.raises(StorageError):
                await service.track_interaction("u1", "item1", "bookmark")
        finally:
            await service.close()

    @pytest.mark.asyncio
    async def test_catalog_failure_is_wrapped(self, clock):
        from recsys.core.catalog import InMemoryCatalog
        from recsys.core.errors import InteractionTrackingError
        from recsys.service import RecommendationService

        class BrokenCatalog(InMemoryCatalog):
            async def get_item(self, item_id):
                raise ConnectionError("catalog unreachable")

        catalog = BrokenCatalog([ContentItem(item_id="item1")], clock=clock)
        service = RecommendationService(
            Config(scheduler_enabled=False), catalog=catalog, clock=clock
        )
        await service.start()
        try:
            with pytest.raises(InteractionTrackingError) as exc_info:
                await service.track_interaction("u1", "item1", "view")
            assert isinstance(exc_info.value.cause, ConnectionError)
        finally:
            await service.close()
