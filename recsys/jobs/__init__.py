"""Jobs module for scheduled maintenance."""

from recsys.jobs.maintenance import (
    run_cache_sweep,
    run_interaction_decay,
    run_suggestion_refresh,
    run_trending_maintenance,
)
from recsys.jobs.scheduler import (
    create_scheduler,
    remove_job,
    setup_maintenance_jobs,
    shutdown_scheduler,
    start_scheduler,
)

__all__ = [
    "create_scheduler",
    "remove_job",
    "run_cache_sweep",
    "run_interaction_decay",
    "run_suggestion_refresh",
    "run_trending_maintenance",
    "setup_maintenance_jobs",
    "shutdown_scheduler",
    "start_scheduler",
]
