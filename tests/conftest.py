"""
Pytest configuration and fixtures
"""

import json
import struct
from contextlib import asynccontextmanager

import pytest
from unittest.mock import AsyncMock, Mock

from docker2lm.core.config import RelayConfig, Settings
from docker2lm.services.runtime_client import RuntimeClient


def frame(stream_type: int, payload: bytes) -> bytes:
    """Build one multiplexed Docker log frame"""
    return struct.pack(">BxxxL", stream_type, len(payload)) + payload


async def aiter_bytes(chunks):
    for chunk in chunks:
        yield chunk


@asynccontextmanager
async def opened(stream):
    """Stand-in for the runtime client's stream context managers"""
    yield stream


@asynccontextmanager
async def failing_open(error):
    """A stream whose request fails before any response"""
    raise error
    yield


def raw_stats(
    read="2023-01-01T00:00:30.123456789Z",
    total_usage=150,
    system_cpu_usage=10000,
    percpu_usage=(100, 50, 0, 0),
    usage=2048,
    limit=4096,
    rss=1024,
    networks=None
):
    """Build a raw Docker stats document"""
    if networks is None:
        networks = {"eth0": {"rx_bytes": 1000, "tx_bytes": 400}}
    cpu_usage = {"total_usage": total_usage}
    if percpu_usage is not None:
        cpu_usage["percpu_usage"] = list(percpu_usage)
    return {
        "read": read,
        "preread": "2023-01-01T00:00:00Z",
        "cpu_stats": {
            "cpu_usage": cpu_usage,
            "system_cpu_usage": system_cpu_usage,
            "online_cpus": 4,
        },
        "memory_stats": {
            "usage": usage,
            "limit": limit,
            "stats": {"rss": rss},
        },
        "networks": networks,
    }


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig.model_validate({
        "apikey": "test-key",
        "custom_field": {"env": "test"},
        "applog": {
            "label": {
                "io.kubernetes.pod.namespace": {"rename": "ns"},
                "com.example.team": {},
            }
        },
    })


@pytest.fixture
def settings() -> Settings:
    return Settings(
        relay_config=None,
        intake_host="intake.example.com",
        intake_port=10515,
        log_interval=0.01,
        event_interval=0.01,
        stats_interval=0.01,
    )


@pytest.fixture
def mock_runtime():
    """Mock Docker runtime client"""
    runtime = Mock(spec=RuntimeClient)
    runtime.list_containers = AsyncMock(return_value=[])
    runtime.stats_snapshot = AsyncMock(return_value=raw_stats())
    runtime.is_tty = AsyncMock(return_value=False)
    runtime.attach_logs = Mock(side_effect=lambda *args, **kwargs: opened(aiter_bytes([])))
    runtime.subscribe_events = Mock(side_effect=lambda: opened(aiter_bytes([])))
    runtime.close = AsyncMock()
    return runtime


@pytest.fixture
def sink():
    """Collects emitted records"""
    return Mock()


def event_line(status, container_id="abc123", event_type="container", time=1489729976) -> bytes:
    return json.dumps({
        "status": status,
        "id": container_id,
        "Type": event_type,
        "Action": status,
        "Actor": {"ID": container_id, "Attributes": {}},
        "time": time,
    }).encode() + b"\n"
