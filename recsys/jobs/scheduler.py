"""APScheduler configuration and maintenance job registration."""

from typing import TYPE_CHECKING

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from recsys.jobs.maintenance import (
    run_cache_sweep,
    run_interaction_decay,
    run_suggestion_refresh,
    run_trending_maintenance,
)
from recsys.logging import get_logger

if TYPE_CHECKING:
    from recsys.service import RecommendationService

logger = get_logger(__name__)

TRENDING_MAINTENANCE_JOB_ID = "trending_maintenance"
SUGGESTIONS_JOB_ID = "optimization_suggestions"
CACHE_SWEEP_JOB_ID = "recommendation_cache_sweep"
DECAY_SWEEP_JOB_ID = "interaction_decay"

DECAY_SWEEP_HOURS = 6


def create_scheduler() -> AsyncIOScheduler:
    """Build a scheduler that skips, rather than queues, overrunning cycles."""
    logger.info("Creating scheduler")
    return AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
    )


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Start the scheduler if not already running."""
    if not scheduler.running:
        logger.info("Starting scheduler")
        scheduler.start()


def shutdown_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        logger.info("Shutting down scheduler")
        scheduler.shutdown(wait=True)


def remove_job(scheduler: AsyncIOScheduler, job_id: str) -> bool:
    """Remove a job from the scheduler."""
    if scheduler.get_job(job_id) is None:
        logger.warning(f"Job {job_id} not found")
        return False
    scheduler.remove_job(job_id)
    logger.info(f"Removed job {job_id}")
    return True


def setup_maintenance_jobs(
    scheduler: AsyncIOScheduler,
    service: "RecommendationService",
) -> list[str]:
    """Register every periodic maintenance job for a service.

    Returns:
        Registered job ids
    """
    cfg = service.config
    jobs = [
        (
            run_trending_maintenance,
            service.trending,
            TRENDING_MAINTENANCE_JOB_ID,
            "Trending Maintenance",
            {"minutes": cfg.trending.update_frequency_minutes},
        ),
        (
            run_suggestion_refresh,
            service.tracker,
            SUGGESTIONS_JOB_ID,
            "Optimization Suggestions",
            {"minutes": cfg.tracker.suggestion_interval_minutes},
        ),
        (
            run_cache_sweep,
            service.engine,
            CACHE_SWEEP_JOB_ID,
            "Recommendation Cache Sweep",
            {"minutes": cfg.engine.cache_ttl_minutes},
        ),
        (
            run_interaction_decay,
            service.collaborative,
            DECAY_SWEEP_JOB_ID,
            "Interaction Decay Sweep",
            {"hours": DECAY_SWEEP_HOURS},
        ),
    ]

    job_ids = []
    for func, component, job_id, name, interval in jobs:
        job = scheduler.add_job(
            func,
            "interval",
            args=[component],
            id=job_id,
            name=name,
            replace_existing=True,
            **interval,
        )
        job_ids.append(job.id)
        unit, amount = next(iter(interval.items()))
        logger.info(f"Scheduled {job_id}: every {amount} {unit}, job_id={job.id}")

    logger.info("All maintenance jobs configured")
    return job_ids
