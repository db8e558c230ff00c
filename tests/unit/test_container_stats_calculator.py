"""
Unit tests for the container stats calculator
"""

from datetime import datetime, timezone

import pytest

from docker2lm.core.exceptions import RecordParseError
from docker2lm.schemas.records import StatsSnapshot
from docker2lm.services.container_stats_calculator import ContainerStatsCalculator

from conftest import raw_stats


def snapshot(**overrides):
    values = dict(
        read_time=datetime(2023, 1, 1, tzinfo=timezone.utc),
        cpu_usage=100,
        cpu_system=5000,
        cpu_core_count=2,
        mem_rss=10,
        mem_usage=20,
        mem_limit=30,
        net_rx_bytes=700,
        net_tx_bytes=200,
    )
    values.update(overrides)
    return StatsSnapshot(**values)


class TestFlatten:
    @pytest.fixture
    def calculator(self):
        return ContainerStatsCalculator()

    def test_flatten(self, calculator):
        result = calculator.flatten(raw_stats())
        assert result.read_time == datetime(2023, 1, 1, 0, 0, 30, 123456, tzinfo=timezone.utc)
        assert result.cpu_usage == 150
        assert result.cpu_system == 10000
        assert result.mem_usage == 2048
        assert result.mem_limit == 4096
        assert result.mem_rss == 1024

    def test_core_count_counts_non_zero_entries(self, calculator):
        assert calculator.flatten(raw_stats(percpu_usage=(100, 50, 0, 0))).cpu_core_count == 2
        assert calculator.flatten(raw_stats(percpu_usage=(1, 1, 1, 1))).cpu_core_count == 4

    def test_core_count_without_percpu(self, calculator):
        assert calculator.flatten(raw_stats(percpu_usage=None)).cpu_core_count == 4

    def test_network_counters_are_summed(self, calculator):
        result = calculator.flatten(raw_stats(networks={
            "eth0": {"rx_bytes": 1000, "tx_bytes": 400},
            "eth1": {"rx_bytes": 24, "tx_bytes": 6},
        }))
        assert result.net_rx_bytes == 1024
        assert result.net_tx_bytes == 406

    def test_no_networks(self, calculator):
        result = calculator.flatten(raw_stats(networks={}))
        assert result.net_rx_bytes == 0
        assert result.net_tx_bytes == 0

    @pytest.mark.parametrize("document", [
        None,
        [],
        {},
        {"read": "not a time"},
        {"read": "2023-01-01T00:00:00Z", "cpu_stats": {"cpu_usage": {"total_usage": "lots"}}},
    ])
    def test_malformed_document(self, calculator, document):
        with pytest.raises(RecordParseError):
            calculator.flatten(document)


class TestDelta:
    def test_delta(self):
        calculator = ContainerStatsCalculator()
        previous = snapshot(cpu_usage=100, net_rx_bytes=700)
        current = snapshot(
            read_time=datetime(2023, 1, 1, 0, 0, 30, tzinfo=timezone.utc),
            cpu_usage=150,
            cpu_system=9000,
            cpu_core_count=4,
            mem_usage=99,
            net_rx_bytes=1000,
            net_tx_bytes=260,
        )

        delta = calculator.delta(current, previous)

        assert delta.cpu_usage == 50
        assert delta.cpu_system == 4000
        assert delta.net_rx_bytes == 300
        assert delta.net_tx_bytes == 60
        # Instantaneous values come from the newer snapshot
        assert delta.read_time == current.read_time
        assert delta.cpu_core_count == 4
        assert delta.mem_usage == 99
        assert delta.mem_rss == current.mem_rss
        assert delta.mem_limit == current.mem_limit

    def test_counters_reset(self):
        calculator = ContainerStatsCalculator()
        previous = snapshot(cpu_usage=100, net_rx_bytes=700)

        assert not calculator.counters_reset(snapshot(cpu_usage=150, net_rx_bytes=700), previous)
        assert calculator.counters_reset(snapshot(cpu_usage=10, net_rx_bytes=700), previous)
        assert calculator.counters_reset(snapshot(cpu_usage=150, net_rx_bytes=0), previous)
