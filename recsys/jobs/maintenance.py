"""Periodic maintenance jobs.

Each job takes the component it maintains, returns a summary dict and
never raises: a failed cycle is logged and the next one runs as usual.
"""

import time

from recsys.core.collaborative import CollaborativeFilter
from recsys.core.engine import RecommendationEngine
from recsys.core.trending import TrendingDiscovery
from recsys.logging import get_logger
from recsys.tracking.tracker import PerformanceTracker

logger = get_logger(__name__)


async def run_trending_maintenance(trending: TrendingDiscovery) -> dict:
    """Evict stale trending items and refresh category aggregates.

    Returns:
        Summary dict from the trending sweep, or an error summary.
    """
    try:
        return await trending.run_maintenance()
    except Exception as e:
        logger.error(f"Trending maintenance failed: {e}", exc_info=True)
        return {"error": str(e)}


async def run_suggestion_refresh(tracker: PerformanceTracker) -> dict:
    """Regenerate optimization suggestions from recent outcomes."""
    start = time.perf_counter()
    try:
        suggestions = tracker.generate_optimization_suggestions()
    except Exception as e:
        logger.error(f"Optimization suggestion refresh failed: {e}", exc_info=True)
        return {"error": str(e)}

    duration_ms = int((time.perf_counter() - start) * 1000)
    return {
        "suggestions": len(suggestions),
        "high_priority": sum(1 for s in suggestions if s.priority.value == "high"),
        "duration_ms": duration_ms,
    }


async def run_cache_sweep(engine: RecommendationEngine) -> dict:
    """Evict expired recommendation lists and recommendations."""
    try:
        evicted = engine.evict_expired()
    except Exception as e:
        logger.error(f"Recommendation cache sweep failed: {e}", exc_info=True)
        return {"error": str(e)}

    if evicted:
        logger.info(f"Recommendation cache sweep: evicted={evicted}")
    return {"evicted": evicted}


async def run_interaction_decay(collaborative: CollaborativeFilter) -> dict:
    """Prune interaction weights that have decayed below the floor."""
    start = time.perf_counter()
    try:
        removed = await collaborative.decay_all()
    except Exception as e:
        logger.error(f"Interaction decay sweep failed: {e}", exc_info=True)
        return {"error": str(e)}

    duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info(f"Interaction decay sweep: removed={removed} duration_ms={duration_ms}")
    return {"removed": removed, "duration_ms": duration_ms}
