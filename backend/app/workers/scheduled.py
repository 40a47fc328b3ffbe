"""Asyncio scheduler for periodic background jobs such as behavior re-analysis."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


async def _run_periodically(
    name: str,
    interval_seconds: float,
    job: Callable[..., Awaitable],
    run_on_start: bool,
    args: tuple,
    kwargs: dict,
):
    failures = 0
    if not run_on_start:
        await asyncio.sleep(interval_seconds)
    while True:
        try:
            await job(*args, **kwargs)
            failures = 0
        except Exception as e:
            failures += 1
            logger.error(f"Scheduled job '{name}' failed ({failures} in a row): {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)


def start_scheduler(
    interval_seconds: float,
    job: Callable[..., Awaitable],
    *args,
    name: Optional[str] = None,
    run_on_start: bool = False,
    **kwargs,
) -> asyncio.Task:
    """
    Run `job` every `interval_seconds` in a background task and return the task.

    The first run is one interval after start unless `run_on_start` is set.
    A failing run is logged and the schedule continues. Cancel the task to stop.
    """
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be positive")
    name = name or getattr(job, "__name__", "job")
    return asyncio.create_task(
        _run_periodically(name, interval_seconds, job, run_on_start, args, kwargs),
        name=f"scheduled:{name}",
    )
