from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime, timezone


def isoformat_millis(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


class ContainerRef(BaseModel):
    """A discovered container, as handed to the log stream manager"""
    id: str
    labels: Dict[str, str] = Field(default_factory=dict)
    since_cursor: Optional[int] = None


class StatsSnapshot(BaseModel):
    read_time: datetime
    cpu_usage: int = 0
    cpu_system: int = 0
    cpu_core_count: int = 0
    mem_rss: int = 0
    mem_usage: int = 0
    mem_limit: int = 0
    net_rx_bytes: int = 0
    net_tx_bytes: int = 0


class StatsDelta(StatsSnapshot):
    """Windowed difference between two snapshots.

    cpu_usage, cpu_system, net_rx_bytes and net_tx_bytes are deltas; the
    rest is passed through from the newer snapshot.
    """


class LogRecord(BaseModel):
    marker: Any = None
    type: str = "docker-log"
    timestamp: str
    message: str
    labels: Dict[str, str] = Field(default_factory=dict)


class StatsRecord(BaseModel):
    marker: Any = None
    type: str = "docker-stats"
    timestamp: str
    stats: Dict[str, Any]
    labels: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_delta(cls, delta: StatsDelta, marker: Any, labels: Dict[str, str]) -> "StatsRecord":
        stats = delta.model_dump(exclude={"read_time"})
        return cls(
            marker=marker,
            timestamp=isoformat_millis(delta.read_time),
            stats=stats,
            labels=labels
        )
