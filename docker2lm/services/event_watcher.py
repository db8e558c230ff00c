"""
Docker Event Watcher

Follows the daemon's lifecycle event feed so new containers are picked up
from the moment they start instead of on the next discovery sweep.
"""

import asyncio
import json
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from docker2lm.core.exceptions import AppException
from docker2lm.core.logging import logger
from docker2lm.schemas.events import LifecycleEvent
from docker2lm.services.runtime_client import RuntimeClient


DiscoverCallback = Callable[[Optional[str], Optional[int]], Awaitable[None]]


class EventWatcher:
    """
    Keeps one subscription to the Docker event feed alive

    start -> targeted discovery from the event time (plus a full sweep)
    die   -> logged only; the log stream cleans up after itself
    """

    def __init__(self, runtime: RuntimeClient, discover: DiscoverCallback):
        self.runtime = runtime
        self.discover = discover
        self.ready = False
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    def listen(self) -> None:
        """Subscribe unless a subscription is already live"""
        if self.ready or self._stopped:
            return

        self.ready = True
        self._task = asyncio.create_task(self._consume())

    def check(self) -> None:
        """Watchdog hook: resubscribe if the feed is not marked ready"""
        if not self.ready:
            logger.info("Docker event feed not ready, resubscribing")
        self.listen()

    async def _consume(self) -> None:
        # Resubscribe here only once the feed response was open; a failed
        # subscribe waits for the watchdog.
        established = False
        try:
            async with self.runtime.subscribe_events() as feed:
                established = True
                logger.info("Listening Docker Events...")
                async for line in feed:
                    await self.handle_line(line)
            logger.error("[ERROR] Listen Docker Event connection end.")
        except asyncio.CancelledError:
            self.ready = False
            raise
        except AppException as e:
            logger.error(f"[ERROR] Listen Docker Event error. {e.message}")
        except Exception as e:
            logger.error(f"[ERROR] Listen Docker Event error. {e}")

        self.ready = False
        self._task = None
        if established and not self._stopped:
            self.listen()

    async def handle_line(self, line: bytes) -> None:
        """Decode one feed line and act on it"""
        line = line.strip()
        if not line:
            return

        try:
            event = LifecycleEvent.from_docker(json.loads(line))
        except (ValueError, ValidationError, AttributeError) as e:
            logger.debug(f"Dropped docker event: {e}")
            return

        await self.handle_event(event)

    async def handle_event(self, event: LifecycleEvent) -> None:
        if not event.is_actionable:
            return

        logger.info(f"[DOCKER_EVENT] {event.id} {event.status}")

        if event.status == "start":
            try:
                await self.discover(event.id, event.time)
            except Exception as e:
                logger.error(f"Discovery after start event failed: {e}")

    async def stop(self) -> None:
        self._stopped = True
        task = self._task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.ready = False
