import asyncio
import gc

from docker2lm.core.logging import logger


class MemoryReclaimer:
    """Runs a full garbage collection every `interval` seconds"""

    def __init__(self, interval: float = 600.0):
        self.interval = interval
        self._task = None

    def collect(self) -> int:
        collected = gc.collect()
        logger.info(f"[GC] Done! {collected} objects collected")
        return collected

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            self.collect()

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
