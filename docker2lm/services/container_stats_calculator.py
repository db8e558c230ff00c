"""
Container Statistics Calculator

Flattens raw Docker stats documents into StatsSnapshots and computes the
windowed delta between two consecutive snapshots of the same container.
"""

from typing import Any, Dict

from dateutil.parser import isoparse

from docker2lm.core.exceptions import RecordParseError
from docker2lm.schemas.records import StatsDelta, StatsSnapshot


DELTA_FIELDS = ("cpu_usage", "cpu_system", "net_rx_bytes", "net_tx_bytes")


class ContainerStatsCalculator:
    """Service for flattening raw Docker stats data"""

    def flatten(self, raw_stats: Dict[str, Any]) -> StatsSnapshot:
        """
        Flatten a raw stats document

        Args:
            raw_stats: Non-streaming stats document from the Docker API

        Returns:
            StatsSnapshot with cumulative counters

        Raises:
            RecordParseError: if the document is malformed
        """
        if not isinstance(raw_stats, dict):
            raise RecordParseError("stats", f"expected an object, got {type(raw_stats).__name__}")

        try:
            read_time = isoparse(raw_stats["read"])
            cpu_usage, cpu_system, cpu_core_count = self._cpu_counters(raw_stats)
            mem_rss, mem_usage, mem_limit = self._memory_counters(raw_stats)
            net_rx_bytes, net_tx_bytes = self._network_counters(raw_stats)
        except (KeyError, TypeError, ValueError, AttributeError, OverflowError) as e:
            raise RecordParseError("stats", str(e) or type(e).__name__)

        return StatsSnapshot(
            read_time=read_time,
            cpu_usage=cpu_usage,
            cpu_system=cpu_system,
            cpu_core_count=cpu_core_count,
            mem_rss=mem_rss,
            mem_usage=mem_usage,
            mem_limit=mem_limit,
            net_rx_bytes=net_rx_bytes,
            net_tx_bytes=net_tx_bytes
        )

    def _cpu_counters(self, stats: Dict[str, Any]):
        cpu_stats = stats.get("cpu_stats") or {}
        cpu_usage = cpu_stats.get("cpu_usage") or {}

        total = int(cpu_usage.get("total_usage", 0))
        system = int(cpu_stats.get("system_cpu_usage", 0))

        percpu = cpu_usage.get("percpu_usage")
        if percpu is None:
            # cgroup v2 hosts do not report per-core usage
            core_count = int(cpu_stats.get("online_cpus", 0))
        else:
            core_count = sum(1 for usage in percpu if usage)

        return total, system, core_count

    def _memory_counters(self, stats: Dict[str, Any]):
        memory_stats = stats.get("memory_stats") or {}
        detail = memory_stats.get("stats") or {}

        usage = int(memory_stats.get("usage", 0))
        limit = int(memory_stats.get("limit", 0))
        rss = int(detail.get("rss", detail.get("anon", 0)))

        return rss, usage, limit

    def _network_counters(self, stats: Dict[str, Any]):
        networks = stats.get("networks") or {}

        # Aggregate stats from all network interfaces
        rx_bytes = 0
        tx_bytes = 0
        for net_stats in networks.values():
            rx_bytes += int(net_stats.get("rx_bytes", 0))
            tx_bytes += int(net_stats.get("tx_bytes", 0))

        return rx_bytes, tx_bytes

    def counters_reset(self, current: StatsSnapshot, previous: StatsSnapshot) -> bool:
        """True when any cumulative counter went backwards (container restarted)"""
        return any(getattr(current, field) < getattr(previous, field) for field in DELTA_FIELDS)

    def delta(self, current: StatsSnapshot, previous: StatsSnapshot) -> StatsDelta:
        """Cumulative counters become differences; the rest passes through"""
        values = current.model_dump()
        for field in DELTA_FIELDS:
            values[field] = getattr(current, field) - getattr(previous, field)
        return StatsDelta(**values)

