"""Fixed-interval background loops for the realtime sweeps."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


async def run_every(interval: float, sweep: Callable[[], Awaitable[Any]], name: str) -> None:
    """Call ``sweep`` every ``interval`` seconds until cancelled.

    A failing sweep is logged and the loop carries on with the next tick.
    """
    logger.info("Starting %s sweep every %.1fs", name, interval)
    while True:
        await asyncio.sleep(interval)
        try:
            await sweep()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s sweep failed", name)


async def cancel_task(task: asyncio.Task | None) -> None:
    """Cancel ``task`` and wait for it to finish."""
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
