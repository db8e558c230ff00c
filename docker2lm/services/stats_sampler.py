"""
Stats Sampler

Samples every running container's stats once per tick and emits the delta
against the previous sample. A container's first sample only seeds the pool.
"""

import asyncio
from typing import Any, Callable, Dict, Optional

from docker2lm.core.exceptions import AppException
from docker2lm.core.logging import logger
from docker2lm.schemas.records import StatsDelta, StatsRecord, StatsSnapshot
from docker2lm.services.container_stats_calculator import ContainerStatsCalculator
from docker2lm.services.label_projector import LabelProjector
from docker2lm.services.runtime_client import RuntimeClient


class StatsSampler:
    def __init__(
        self,
        runtime: RuntimeClient,
        projector: LabelProjector,
        sink: Callable[[Any], None],
        marker: Any = None,
        calculator: Optional[ContainerStatsCalculator] = None
    ):
        self.runtime = runtime
        self.projector = projector
        self.sink = sink
        self.marker = marker
        self.calculator = calculator or ContainerStatsCalculator()
        self.snapshots: Dict[str, StatsSnapshot] = {}

    async def sample(self) -> int:
        """
        Run one sampling tick

        Returns:
            Number of delta records emitted
        """
        try:
            containers = await self.runtime.list_containers()
        except AppException as e:
            logger.error(f"Failed to list containers for stats: {e.message}")
            return 0
        except Exception as e:
            logger.error(f"Failed to list containers for stats: {e}")
            return 0

        results = await asyncio.gather(
            *(self._sample_container(c["id"], c["labels"]) for c in containers),
            return_exceptions=True
        )

        # Forget containers that are no longer running
        seen = {c["id"] for c in containers}
        for container_id in list(self.snapshots):
            if container_id not in seen:
                del self.snapshots[container_id]

        emitted = 0
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Stats sampling failed: {result}")
            elif result:
                emitted += 1
        return emitted

    async def _sample_container(self, container_id: str, labels: Dict[str, str]) -> bool:
        try:
            raw = await self.runtime.stats_snapshot(container_id)
            current = self.calculator.flatten(raw)
        except AppException as e:
            logger.debug(f"Dropped stats sample for {container_id[:12]}: {e.message}")
            return False

        previous = self.snapshots.get(container_id)
        self.snapshots[container_id] = current

        if previous is None:
            return False
        if self.calculator.counters_reset(current, previous):
            logger.debug(f"Dropped stats sample for {container_id[:12]}: counters reset")
            return False

        delta = self.calculator.delta(current, previous)
        self._emit(delta, labels)
        return True

    def _emit(self, delta: StatsDelta, labels: Dict[str, str]) -> None:
        record = StatsRecord.from_delta(delta, self.marker, self.projector.project(labels))
        self.sink(record)
