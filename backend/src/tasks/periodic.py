"""Interval runner for background jobs living inside the API process."""
import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


async def run_periodically(
    name: str,
    interval_seconds: float,
    job: Callable[[], Awaitable[object]],
) -> None:
    """
    Run `job` every `interval_seconds` until cancelled.

    A failing run is logged and the loop continues with the next interval.
    """
    logger.info("periodic_task_started name=%s interval=%s", name, interval_seconds)
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await job()
            except Exception:
                logger.exception("periodic_task_failed name=%s", name)
    finally:
        logger.info("periodic_task_stopped name=%s", name)
