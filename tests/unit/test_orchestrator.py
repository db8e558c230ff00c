"""
Unit tests for the relay orchestrator
"""

import asyncio
import json

import pytest
from unittest.mock import AsyncMock, Mock

from docker2lm.schemas.records import LogRecord
from docker2lm.services.forwarding_channel import ForwardingChannel
from docker2lm.services.orchestrator import Orchestrator, PeriodicTimer

from conftest import opened


@pytest.fixture
def channel():
    channel = Mock(spec=ForwardingChannel)
    channel.connect = AsyncMock(return_value=True)
    channel.close = AsyncMock()
    channel.write = Mock(return_value=True)
    return channel


@pytest.fixture
def orchestrator(relay_config, settings, mock_runtime, channel):
    return Orchestrator(relay_config, settings, runtime=mock_runtime, channel=channel)


class TestForward:
    def test_forward_writes_json_line_with_api_key(self, orchestrator, channel):
        record = LogRecord(
            marker={"env": "test"},
            timestamp="2023-01-01T00:00:00.000Z",
            message="hello",
            labels={"ns": "prod"}
        )

        orchestrator.forward(record)

        token, payload = channel.write.call_args[0]
        assert token == "test-key"
        assert json.loads(payload) == {
            "marker": {"env": "test"},
            "type": "docker-log",
            "timestamp": "2023-01-01T00:00:00.000Z",
            "message": "hello",
            "labels": {"ns": "prod"},
        }

    def test_channel_callback_is_wired(self, orchestrator, channel):
        assert channel.on_authorized == orchestrator.on_authorized


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_on_authorized_runs_initial_triggers(self, orchestrator, mock_runtime):
        orchestrator.events.listen = Mock()
        orchestrator.stats.sample = AsyncMock()
        orchestrator.log_streams.discover = AsyncMock()

        orchestrator.on_authorized()
        await asyncio.sleep(0)

        orchestrator.log_streams.discover.assert_awaited()
        orchestrator.events.listen.assert_called_once()
        orchestrator.stats.sample.assert_awaited()
        assert set(orchestrator.timers) == {"logs", "events", "stats"}

        orchestrator.cancel_timers()

    @pytest.mark.asyncio
    async def test_reauthorization_restarts_timers(self, orchestrator):
        orchestrator.restart_timers()
        old_tasks = [timer.task for timer in orchestrator.timers.values()]

        orchestrator.restart_timers()
        new_tasks = [timer.task for timer in orchestrator.timers.values()]
        await asyncio.sleep(0)

        assert all(task.cancelled() for task in old_tasks)
        assert not any(task.done() for task in new_tasks)
        orchestrator.cancel_timers()

    @pytest.mark.asyncio
    async def test_timers_fire_periodically(self, orchestrator, mock_runtime):
        orchestrator.events.check = Mock()

        orchestrator.restart_timers()
        await asyncio.sleep(0.05)
        orchestrator.cancel_timers()

        # Discovery sweep and stats sweep both list containers
        assert mock_runtime.list_containers.await_count >= 4
        assert orchestrator.events.check.call_count >= 2


class TestPeriodicTimer:
    @pytest.mark.asyncio
    async def test_job_errors_do_not_stop_timer(self):
        job = AsyncMock(side_effect=RuntimeError("boom"))
        timer = PeriodicTimer("test", 0.01, job)

        timer.start()
        await asyncio.sleep(0.05)
        timer.cancel()

        assert job.await_count >= 2


async def blocking_feed():
    await asyncio.Event().wait()
    yield b""


class TestRun:
    @pytest.mark.asyncio
    async def test_run_until_stopped(self, orchestrator, channel, mock_runtime):
        mock_runtime.subscribe_events.side_effect = lambda: opened(blocking_feed())
        channel.connect.side_effect = lambda: orchestrator.on_authorized()

        task = asyncio.create_task(orchestrator.run())
        await asyncio.sleep(0.02)
        orchestrator.stop()
        await task

        channel.connect.assert_awaited_once()
        channel.close.assert_awaited_once()
        mock_runtime.close.assert_awaited_once()
        assert orchestrator.timers == {}
        assert not orchestrator.events.ready
