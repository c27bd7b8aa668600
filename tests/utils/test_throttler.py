import asyncio
import unittest
from asyncio import TaskGroup

from watches.utils.throttler import Throttler


class ThrottlerTest(unittest.TestCase):
    def test_limits_running_tasks(self):
        running = 0
        peak = 0

        async def job():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        async def run():
            async with TaskGroup() as tg:
                throttler = Throttler(tg, 2)
                for _ in range(8):
                    await throttler.schedule(job())

        asyncio.run(run())
        self.assertEqual(2, peak)

    def test_single_slot_serialises_tasks(self):
        order = []

        async def job(i):
            order.append(('start', i))
            await asyncio.sleep(0)
            order.append(('end', i))

        async def run():
            async with TaskGroup() as tg:
                throttler = Throttler(tg, 1)
                for i in range(3):
                    await throttler.schedule(job(i))

        asyncio.run(run())
        self.assertEqual([('start', 0), ('end', 0), ('start', 1), ('end', 1), ('start', 2), ('end', 2)], order)

    def test_failed_task_releases_slot(self):
        throttler = None

        async def failing():
            raise RuntimeError("boom")

        async def run():
            nonlocal throttler
            async with TaskGroup() as tg:
                throttler = Throttler(tg, 1)
                await throttler.schedule(failing())

        with self.assertRaises(ExceptionGroup):
            asyncio.run(run())

        self.assertFalse(throttler._semaphore.locked())

    def test_invalid_concurrency(self):
        with self.assertRaises(ValueError):
            Throttler(None, 0)


if __name__ == '__main__':
    unittest.main()
