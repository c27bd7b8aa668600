import asyncio
from asyncio import TaskGroup, Semaphore


class Throttler:
    """Limits how many tasks scheduled through it run at once in a TaskGroup.

    schedule() waits for a free slot before creating the task, so a producer
    loop that awaits it is held back while the limit is reached.
    """

    def __init__(self, task_group: TaskGroup, concurrency: int):
        if concurrency < 1:
            raise ValueError(f"concurrency must be positive: {concurrency}")

        self._task_group = task_group
        self._semaphore = Semaphore(concurrency)

    async def schedule(self, coro, name=None) -> asyncio.Task:
        """Run coro in the task group once a slot is free.

        The slot is released when the task finishes, whatever the outcome.
        """
        await self._semaphore.acquire()

        async def wrapper():
            try:
                return await coro
            finally:
                self._semaphore.release()

        wrapped = wrapper()
        try:
            return self._task_group.create_task(wrapped, name=name)
        except BaseException:
            wrapped.close()
            coro.close()
            self._semaphore.release()
            raise
