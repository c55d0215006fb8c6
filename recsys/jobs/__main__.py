"""Run the recommendation service with its maintenance scheduler as a standalone process.

Usage::

    python -m recsys.jobs

Useful when the API layer runs elsewhere and maintenance should live in
its own process against the shared ``DATABASE_URL``.
"""

import asyncio
import signal
from dataclasses import replace

from recsys.config import config
from recsys.logging import get_logger, setup_logging
from recsys.service import RecommendationService

setup_logging(config.log_level)
logger = get_logger(__name__)


async def _run() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    service = RecommendationService(replace(config, scheduler_enabled=True))
    await service.start()
    logger.info(f"Scheduler running standalone with {len(service.scheduler.get_jobs())} jobs")

    # Keep the event loop alive
    try:
        while service.scheduler.running and not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=1)
            except asyncio.TimeoutError:
                continue
        logger.info("Received stop signal, shutting down scheduler")
    except asyncio.CancelledError:
        pass
    finally:
        await service.close()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
