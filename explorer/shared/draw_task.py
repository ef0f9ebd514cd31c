"""
Restartable incremental drawing.

Large redraws (thousands of index-colored paths) are split into batches; the
task yields to the event loop between batches so requests keep being served.
A new redraw supersedes the one in flight instead of queueing behind it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable, Optional

from .logger import get_logger

logger = get_logger(__name__)

BATCH_SIZE = 25
TICK_SECONDS = 0.016


class DrawScheduler:
    """Runs one batched draw task at a time."""

    def __init__(self, batch_size: int = BATCH_SIZE, tick: float = TICK_SECONDS):
        self.batch_size = batch_size
        self.tick = tick
        self._task: Optional[asyncio.Task] = None
        self.drawn = 0
        self.generation = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self.running:
            self._task.cancel()
        self._task = None

    def restart(self, items: Iterable[Any], draw: Callable[[Any], None]) -> asyncio.Task:
        """Cancel any running draw and start drawing ``items``.

        Must be called from a running event loop.
        """
        self.cancel()
        self.generation += 1
        self.drawn = 0
        self._task = asyncio.get_running_loop().create_task(
            self._run(iter(items), draw, self.generation)
        )
        return self._task

    async def _run(self, items, draw: Callable[[Any], None], generation: int) -> int:
        count = 0
        while True:
            batch = 0
            for item in items:
                draw(item)
                count += 1
                batch += 1
                if batch == self.batch_size:
                    break
            self.drawn = count
            if batch < self.batch_size:
                break
            await asyncio.sleep(self.tick)
        logger.debug("Draw %d finished after %d items", generation, count)
        return count

    async def wait(self) -> int:
        """Wait for the current draw. Returns the number of items drawn."""
        task = self._task
        if task is None:
            return self.drawn
        try:
            return await task
        except asyncio.CancelledError:
            if task is self._task:
                raise
            # Superseded by a newer draw, follow that one instead
            return await self.wait()
