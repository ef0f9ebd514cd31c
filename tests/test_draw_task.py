"""
Tests for the restartable batched draw task.

Run tests:
    pytest tests/test_draw_task.py -v
"""

import asyncio
import sys
from pathlib import Path

webapp_root = Path(__file__).parent.parent
if str(webapp_root) not in sys.path:
    sys.path.insert(0, str(webapp_root))

from explorer.shared.draw_task import DrawScheduler


class TestDrawScheduler:
    def test_draws_every_item_in_order(self):
        drawn = []

        async def run():
            scheduler = DrawScheduler(batch_size=2, tick=0)
            scheduler.restart(range(5), drawn.append)
            return await scheduler.wait()

        assert asyncio.run(run()) == 5
        assert drawn == [0, 1, 2, 3, 4]

    def test_empty_draw(self):
        async def run():
            scheduler = DrawScheduler()
            scheduler.restart([], lambda item: None)
            count = await scheduler.wait()
            return count, scheduler.running

        assert asyncio.run(run()) == (0, False)

    def test_wait_without_task(self):
        assert asyncio.run(DrawScheduler().wait()) == 0

    def test_restart_cancels_running_draw(self):
        first_drawn = []
        second_drawn = []

        async def run():
            scheduler = DrawScheduler(batch_size=1, tick=0.01)
            first = scheduler.restart(range(100), first_drawn.append)
            await asyncio.sleep(0.02)
            scheduler.restart(range(3), second_drawn.append)
            count = await scheduler.wait()
            await asyncio.sleep(0)
            return first, count, scheduler.generation

        first, count, generation = asyncio.run(run())
        assert first.cancelled()
        assert count == 3
        assert generation == 2
        assert second_drawn == [0, 1, 2]
        assert len(first_drawn) < 100

    def test_waiter_follows_superseding_draw(self):
        async def run():
            scheduler = DrawScheduler(batch_size=1, tick=0.01)
            scheduler.restart(range(100), lambda item: None)
            waiter = asyncio.ensure_future(scheduler.wait())
            await asyncio.sleep(0.02)
            scheduler.restart(range(3), lambda item: None)
            return await waiter

        assert asyncio.run(run()) == 3

    def test_cancel(self):
        async def run():
            scheduler = DrawScheduler(batch_size=1, tick=0.01)
            scheduler.restart(range(100), lambda item: None)
            scheduler.cancel()
            return scheduler.running

        assert asyncio.run(run()) is False
