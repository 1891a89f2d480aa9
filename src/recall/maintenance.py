"""
Background maintenance tasks.

Schedules the periodic embedding backfill sweep and WAL checkpoint, and
cancels them on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from recall.retrieval import Backfiller
    from recall.store import RecordStore

logger = logging.getLogger(__name__)


async def startup(task_fn: Callable[[], Awaitable[None]], interval: float) -> asyncio.Task:
    """
    Schedule ``task_fn`` to run periodically every ``interval`` seconds.

    The task function is invoked in an endless loop until cancelled.  Any
    exceptions raised by the task function are logged but do not stop the
    periodic execution.
    """

    async def _periodic() -> None:
        await asyncio.sleep(interval)   # delay initial loop
        while True:
            try:
                await task_fn()
            except Exception as exc:  # pragma: no cover - best effort logging
                logger.error("Maintenance cycle failed: %s", exc)
            await asyncio.sleep(interval)

    return asyncio.create_task(_periodic())


async def shutdown(task: asyncio.Task | None) -> None:
    """Cancel a task started with :func:`startup`. Tolerates ``None``."""

    if not task:
        return

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:  # pragma: no cover - normal cancellation
        pass


async def start_backfill(
    backfiller: "Backfiller",
    interval: float,
    store: "RecordStore | None" = None,
) -> asyncio.Task:
    """
    Run one maintenance cycle now, then every ``interval`` seconds.

    A cycle pages through every pending record once and, when ``store`` is
    given, truncates the WAL afterwards.
    """

    async def _cycle() -> None:
        while (await backfiller.run_once()).has_more:
            pass
        if store is not None:
            await store.checkpoint()

    logger.info("Starting embedding backfill (interval=%ds)", interval)
    await _cycle()
    return await startup(_cycle, interval)
