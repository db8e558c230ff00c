"""
Log Stream Manager Service

Opens one log stream per container, turns its output into log records and
tears the stream down when the daemon ends it. Duplicate streams are
prevented by the container registry; a finished stream unregisters itself so
the next discovery sweep can pick the container up again.
"""

import asyncio
import math
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from docker2lm.core.exceptions import AppException
from docker2lm.core.logging import logger
from docker2lm.schemas.records import ContainerRef, LogRecord
from docker2lm.services.container_registry import ContainerRegistry
from docker2lm.services.docker_stream_handler import DockerStreamHandler
from docker2lm.services.label_projector import LabelProjector
from docker2lm.services.runtime_client import RuntimeClient


RecordSink = Callable[[Any], None]


class StreamStatus(str, Enum):
    """Status of a log stream"""
    STARTING = "starting"
    ACTIVE = "active"
    STOPPED = "stopped"
    ERROR = "error"


class LogStream:
    """Represents an active log stream"""

    def __init__(self, ref: ContainerRef, labels: Dict[str, str]):
        self.ref = ref
        self.labels = labels
        self.status = StreamStatus.STARTING
        self.task: Optional[asyncio.Task] = None
        self.log_count = 0
        self.error: Optional[str] = None

    @property
    def container_id(self) -> str:
        return self.ref.id


def poll_cursor() -> int:
    """Since cursor for containers found by polling: one second ago"""
    return math.floor(time.time()) - 1


class LogStreamManager:
    """
    Manages per-container Docker log streams

    Features:
    - At most one stream per container (via ContainerRegistry)
    - Demultiplexes and parses the raw stream into LogRecords
    - Self-heals: a stream that ends frees the container for re-discovery
    """

    def __init__(
        self,
        runtime: RuntimeClient,
        registry: ContainerRegistry,
        projector: LabelProjector,
        sink: RecordSink,
        marker: Any = None,
        stream_handler: Optional[DockerStreamHandler] = None
    ):
        self.runtime = runtime
        self.registry = registry
        self.projector = projector
        self.sink = sink
        self.marker = marker
        self.stream_handler = stream_handler or DockerStreamHandler()
        self._tasks: set = set()

    async def discover(self, target_id: Optional[str] = None, since: Optional[int] = None) -> None:
        """
        Open streams for every running container

        When target_id and since are given (a container start event), that
        container is opened from the event time first. Every listed
        container is then offered with the poll cursor, which is a no-op for
        the ones already tracked.
        """
        try:
            containers = await self.runtime.list_containers()
        except AppException as e:
            logger.error(f"Failed to list containers: {e.message}")
            containers = []
        except Exception as e:
            logger.error(f"Failed to list containers: {e}")
            containers = []

        for container in containers:
            if target_id and since and container["id"] == target_id:
                self.open_stream(ContainerRef(id=container["id"], labels=container["labels"], since_cursor=since))
            self.open_stream(ContainerRef(id=container["id"], labels=container["labels"]))

    def open_stream(self, ref: ContainerRef) -> Optional[LogStream]:
        """Start streaming a container unless another path already owns it"""
        if not self.registry.try_register(ref.id):
            return None

        if ref.since_cursor is None:
            ref.since_cursor = poll_cursor()

        stream = LogStream(ref, self.projector.project(ref.labels))
        self.registry.attach(ref.id, stream)

        stream.task = asyncio.create_task(self._stream_logs(stream))
        self._tasks.add(stream.task)
        stream.task.add_done_callback(self._tasks.discard)
        return stream

    async def _stream_logs(self, stream: LogStream) -> None:
        """Stream logs for one container until the daemon ends the stream"""
        container_id = stream.container_id
        short_id = container_id[:12]

        async def on_log(timestamp: str, message: str) -> None:
            stream.log_count += 1
            record = LogRecord(
                marker=self.marker,
                timestamp=timestamp,
                message=message,
                labels=stream.labels
            )
            try:
                self.sink(record)
            except Exception as e:
                logger.error(f"LOG_ERROR: {e}")

        try:
            tty = await self.runtime.is_tty(container_id)
            async with self.runtime.attach_logs(
                container_id,
                since=stream.ref.since_cursor,
                follow=True,
                stdout=True,
                stderr=True,
                timestamps=True
            ) as raw:
                stream.status = StreamStatus.ACTIVE
                logger.info(f"Container log stream connected! {short_id}")
                await self.stream_handler.process_log_stream(raw, on_log, framed=not tty)
            logger.info(f"Container stream ended! {short_id} ({stream.log_count} lines)")
        except asyncio.CancelledError:
            logger.info(f"Log stream cancelled for container {short_id}")
            raise
        except AppException as e:
            stream.status = StreamStatus.ERROR
            stream.error = e.message
            logger.error(f"Container stream error! {short_id}: {e.message}")
        except Exception as e:
            stream.status = StreamStatus.ERROR
            stream.error = str(e)
            logger.error(f"Container stream error! {short_id}: {e}")
        finally:
            if stream.status != StreamStatus.ERROR:
                stream.status = StreamStatus.STOPPED
            self.registry.unregister(container_id)

    async def stop_all(self) -> None:
        """Cancel every running stream"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

