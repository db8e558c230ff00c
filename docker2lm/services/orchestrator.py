"""
Relay Orchestrator

Wires the runtime client, registry, log streams, stats sampler, event
watcher and forwarding channel together and owns the periodic timers.
Timers are restarted each time the intake connection is (re)authorized.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel

from docker2lm.core.config import RelayConfig, Settings
from docker2lm.core.logging import logger
from docker2lm.services.container_registry import ContainerRegistry
from docker2lm.services.event_watcher import EventWatcher
from docker2lm.services.forwarding_channel import ForwardingChannel
from docker2lm.services.label_projector import LabelProjector
from docker2lm.services.log_stream_manager import LogStreamManager
from docker2lm.services.runtime_client import RuntimeClient
from docker2lm.services.stats_sampler import StatsSampler


class PeriodicTimer:
    """Runs an async job every `interval` seconds until cancelled"""

    def __init__(self, name: str, interval: float, job: Callable[[], Awaitable[Any]]):
        self.name = name
        self.interval = interval
        self.job = job
        self.task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self.task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.job()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in {self.name} timer: {e}")

    def cancel(self) -> None:
        if self.task and not self.task.done():
            self.task.cancel()
        self.task = None


class Orchestrator:
    def __init__(
        self,
        config: RelayConfig,
        settings: Settings,
        runtime: Optional[RuntimeClient] = None,
        channel: Optional[ForwardingChannel] = None
    ):
        self.config = config
        self.settings = settings
        self.api_key = config.apikey
        self.marker = config.custom_field

        self.runtime = runtime or RuntimeClient(url=settings.docker_url)
        self.registry = ContainerRegistry()
        self.projector = LabelProjector(config.label_name_mapping())
        self.channel = channel or ForwardingChannel(
            settings.intake_host,
            settings.intake_port,
            reconnect_delay=settings.reconnect_delay
        )
        self.channel.on_authorized = self.on_authorized

        self.log_streams = LogStreamManager(
            self.runtime, self.registry, self.projector, self.forward, marker=self.marker
        )
        self.stats = StatsSampler(self.runtime, self.projector, self.forward, marker=self.marker)
        self.events = EventWatcher(self.runtime, self.log_streams.discover)

        self.timers: Dict[str, PeriodicTimer] = {}
        self._one_shots: set = set()
        self._stop_event = asyncio.Event()

    def forward(self, record: BaseModel) -> None:
        """Serialize a record and hand it to the forwarding channel"""
        self.channel.write(self.api_key, record.model_dump_json())

    def on_authorized(self) -> None:
        """Kick off discovery and (re)anchor every timer on this connection"""
        self._spawn(self.log_streams.discover())
        self.events.listen()
        self._spawn(self.stats.sample())
        self.restart_timers()

    def restart_timers(self) -> None:
        self.cancel_timers()
        self.timers = {
            "logs": PeriodicTimer("log discovery", self.settings.log_interval, self.log_streams.discover),
            "events": PeriodicTimer("event health check", self.settings.event_interval, self._check_events),
            "stats": PeriodicTimer("stats", self.settings.stats_interval, self.stats.sample),
        }
        for timer in self.timers.values():
            timer.start()

    def cancel_timers(self) -> None:
        for timer in self.timers.values():
            timer.cancel()
        self.timers = {}

    async def _check_events(self) -> None:
        self.events.check()

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._one_shots.add(task)
        task.add_done_callback(self._one_shots.discard)

    async def run(self) -> None:
        """Connect to the intake and keep relaying until stop() is called"""
        await self.channel.connect()
        await self._stop_event.wait()
        await self.shutdown()

    def stop(self) -> None:
        self._stop_event.set()

    async def shutdown(self) -> None:
        logger.info("Shutting down relay")
        self.cancel_timers()
        for task in list(self._one_shots):
            task.cancel()
        await self.events.stop()
        await self.log_streams.stop_all()
        await self.channel.close()
        await self.runtime.close()
