"""
In-flight call sharing

Concurrent callers asking for the same per-order operation await one
shared task instead of starting a second external call.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict


class InFlightRegistry:
    """Per-key registry of running tasks"""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Await the task running for key, starting it with factory() if none is running.

        A caller being cancelled does not cancel the shared task.
        """
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task):
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled():
            # mark retrieved even when every awaiting caller was cancelled
            task.exception()

    async def wait_all(self):
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
