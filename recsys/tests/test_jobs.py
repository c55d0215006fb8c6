"""Tests for maintenance jobs and scheduler wiring."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from recsys.config import Config


class TestMaintenanceJobs:
    @pytest.mark.asyncio
    async def test_trending_maintenance_returns_summary(self):
        from recsys.jobs.maintenance import run_trending_maintenance

        trending = MagicMock()
        trending.run_maintenance = AsyncMock(return_value={"removed": 2, "items": 5})

        assert await run_trending_maintenance(trending) == {"removed": 2, "items": 5}

    @pytest.mark.asyncio
    async def test_trending_maintenance_never_raises(self):
        from recsys.jobs.maintenance import run_trending_maintenance

        trending = MagicMock()
        trending.run_maintenance = AsyncMock(side_effect=RuntimeError("disk full"))

        assert await run_trending_maintenance(trending) == {"error": "disk full"}

    @pytest.mark.asyncio
    async def test_suggestion_refresh_counts_priorities(self):
        from recsys.jobs.maintenance import run_suggestion_refresh
        from recsys.tracking.models import Priority

        tracker = MagicMock()
        tracker.generate_optimization_suggestions.return_value = [
            MagicMock(priority=Priority.HIGH),
            MagicMock(priority=Priority.LOW),
        ]

        summary = await run_suggestion_refresh(tracker)
        assert summary["suggestions"] == 2
        assert summary["high_priority"] == 1
        assert "duration_ms" in summary

    @pytest.mark.asyncio
    async def test_cache_sweep(self):
        from recsys.jobs.maintenance import run_cache_sweep

        engine = MagicMock()
        engine.evict_expired.return_value = 3
        assert await run_cache_sweep(engine) == {"evicted": 3}

        engine.evict_expired.side_effect = ValueError("bad cache")
        assert await run_cache_sweep(engine) == {"error": "bad cache"}

    @pytest.mark.asyncio
    async def test_interaction_decay(self, clock):
        from recsys.core.collaborative import CollaborativeFilter
        from recsys.jobs.maintenance import run_interaction_decay

        collaborative = CollaborativeFilter(clock=clock)
        await collaborative.record_interaction("u1", "i1", "view")
        clock.advance(days=60)

        summary = await run_interaction_decay(collaborative)
        assert summary["removed"] == 1


class TestScheduler:
    def test_scheduler_defaults(self):
        from recsys.jobs.scheduler import create_scheduler

        scheduler = create_scheduler()
        assert scheduler._job_defaults["coalesce"] is True
        assert scheduler._job_defaults["max_instances"] == 1
        assert scheduler._job_defaults["misfire_grace_time"] == 60

    def test_maintenance_jobs_registered(self):
        from recsys.jobs.scheduler import (
            CACHE_SWEEP_JOB_ID,
            DECAY_SWEEP_JOB_ID,
            SUGGESTIONS_JOB_ID,
            TRENDING_MAINTENANCE_JOB_ID,
            create_scheduler,
            remove_job,
            setup_maintenance_jobs,
        )

        service = MagicMock()
        service.config = Config()
        scheduler = create_scheduler()

        job_ids = setup_maintenance_jobs(scheduler, service)
        assert set(job_ids) == {
            TRENDING_MAINTENANCE_JOB_ID,
            SUGGESTIONS_JOB_ID,
            CACHE_SWEEP_JOB_ID,
            DECAY_SWEEP_JOB_ID,
        }
        assert scheduler.get_job(TRENDING_MAINTENANCE_JOB_ID).args == (service.trending,)

        assert remove_job(scheduler, CACHE_SWEEP_JOB_ID) is True
        assert remove_job(scheduler, CACHE_SWEEP_JOB_ID) is False
        assert len(scheduler.get_jobs()) == 3
