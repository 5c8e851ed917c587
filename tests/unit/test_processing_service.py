"""
Unit tests for DashboardProcessingService.

Critical tests:
- Daily pipeline end to end (Scenario A)
- Refresh cadence and snapshot caching
- Reporting of rejected samples, capped totals and counter resets
- Realtime pipeline
- Duplicate detection
"""

import logging

import pytest
from unittest.mock import Mock
from ShellyFlow.models import (
    CapacityBounds,
    DailySnapshot,
    DailyTotals,
    FlowMode,
    NodeId,
    RealtimeSnapshot,
)
from ShellyFlow.repositories import MemoryCacheRepository
from ShellyFlow.services import DashboardProcessingService
from ShellyFlow.services.processing_service import should_refresh
from ShellyFlow.settings import EngineSettings


class TestDashboardProcessingService:
    """Tests for DashboardProcessingService."""

    @pytest.fixture
    def service(self):
        return DashboardProcessingService(cache_repo=MemoryCacheRepository(), clock=lambda: 1000.0)

    def test_initialization_defaults(self):
        service = DashboardProcessingService()

        assert service.settings == EngineSettings()
        assert service.bounds == CapacityBounds(3000, 6000)
        assert service.cache_repo is None

    def test_refresh_daily_scenario_a(self, service, scenario_a_readings):
        snapshot = service.refresh_daily('device-1', scenario_a_readings)

        assert isinstance(snapshot, DailySnapshot)
        assert snapshot.config_id == 'device-1'
        assert snapshot.computed_at == 1000.0
        assert snapshot.totals == DailyTotals(2500, 3500, 200, 2500)
        assert snapshot.graph.mode == FlowMode.DAILY
        assert snapshot.graph.nodes[NodeId.HOME].magnitude == 5800
        assert snapshot.ratios.self_production_rate == pytest.approx(56.9, abs=0.05)
        assert set(snapshot.encoding.edge_widths) == {
            (NodeId.PV, NodeId.HOME), (NodeId.PV, NodeId.GRID), (NodeId.GRID, NodeId.HOME)
        }

    def test_missing_config_id_returns_zero_snapshot(self, mock_cache_repo, scenario_a_readings):
        service = DashboardProcessingService(cache_repo=mock_cache_repo)

        snapshot = service.refresh_daily(None, scenario_a_readings, now=5.0)

        assert snapshot.totals == DailyTotals.zero()
        assert snapshot.graph.is_idle
        mock_cache_repo.get.assert_not_called()
        mock_cache_repo.set.assert_not_called()

    def test_snapshot_is_cached(self, mock_cache_repo, scenario_a_readings):
        service = DashboardProcessingService(cache_repo=mock_cache_repo)

        snapshot = service.refresh_daily('abc', scenario_a_readings, now=100.0)

        mock_cache_repo.set.assert_called_once_with('dailySnapshot_abc', snapshot)

    def test_fresh_cached_snapshot_is_reused(self, service, scenario_a_readings, reading_factory):
        first = service.refresh_daily('abc', scenario_a_readings, now=100.0)

        later_readings = scenario_a_readings + [reading_factory(700, grid_total=9000)]
        second = service.refresh_daily('abc', later_readings, now=130.0)

        assert second is first

    def test_stale_snapshot_is_recomputed(self, service, scenario_a_readings, reading_factory):
        service.refresh_daily('abc', scenario_a_readings, now=100.0)

        later_readings = scenario_a_readings + [
            reading_factory(700, grid_total=4000, grid_returned=200, pv_total=4000)
        ]
        snapshot = service.refresh_daily('abc', later_readings, now=161.0)

        assert snapshot.computed_at == 161.0
        assert snapshot.totals.consumption == 3000

    def test_force_recomputes(self, service, scenario_a_readings):
        service.refresh_daily('abc', scenario_a_readings, now=100.0)

        snapshot = service.refresh_daily('abc', scenario_a_readings[:1], now=101.0, force=True)

        assert snapshot.totals == DailyTotals.zero()

    def test_devices_are_cached_separately(self, service, scenario_a_readings):
        service.refresh_daily('abc', scenario_a_readings, now=100.0)

        other = service.refresh_daily('xyz', [], now=101.0)

        assert other.totals == DailyTotals.zero()
        assert other.config_id == 'xyz'

    def test_cache_write_failure_still_returns_snapshot(self, mock_cache_repo, scenario_a_readings, caplog):
        mock_cache_repo.set.side_effect = RuntimeError("disk full")
        service = DashboardProcessingService(cache_repo=mock_cache_repo)

        with caplog.at_level(logging.ERROR):
            snapshot = service.refresh_daily('abc', scenario_a_readings, now=1.0)

        assert snapshot.totals.consumption == 2500
        assert "Failed to cache daily snapshot for abc" in caplog.text

    def test_clock_used_when_now_missing(self, scenario_a_readings):
        clock = Mock(return_value=42.0)
        service = DashboardProcessingService(clock=clock)

        snapshot = service.refresh_daily('abc', scenario_a_readings)

        assert snapshot.computed_at == 42.0
        clock.assert_called_once()

    def test_rejected_readings_are_logged(self, service, reading_factory, caplog):
        readings = [
            reading_factory(0, grid_total=100),
            reading_factory(1, grid_total=float('nan')),
            reading_factory(2, grid_total=200),
        ]

        with caplog.at_level(logging.WARNING):
            snapshot = service.refresh_daily('abc', readings, now=1.0)

        assert snapshot.totals.consumption == 100
        assert "Rejected reading for abc" in caplog.text

    def test_capped_totals_are_logged(self, service, reading_factory, caplog):
        readings = [
            reading_factory(0, pv_total=0),
            reading_factory(1, pv_total=500000),
        ]

        with caplog.at_level(logging.WARNING):
            snapshot = service.refresh_daily('abc', readings, now=1.0)

        assert snapshot.totals.production == 100000
        assert "Unreasonably high production value detected for abc" in caplog.text

    def test_counter_reset_is_logged(self, service, reading_factory, caplog):
        readings = [
            reading_factory(0, grid_total=5000, pv_total=100),
            reading_factory(1, grid_total=10, pv_total=200),
        ]

        with caplog.at_level(logging.WARNING):
            snapshot = service.refresh_daily('abc', readings, now=1.0)

        assert snapshot.totals == DailyTotals.zero()
        assert "Counter reset detected for abc (grid_energy_total)" in caplog.text

    def test_insufficient_data_is_logged(self, service, reading_factory, caplog):
        with caplog.at_level(logging.WARNING):
            service.refresh_daily('abc', [reading_factory(0)], now=1.0)

        assert "Insufficient valid data points for abc: 1" in caplog.text

    def test_process_realtime_exporting(self, service, reading_factory):
        reading = reading_factory(grid_power=-300, pv_power=1000, grid_total=10)

        snapshot = service.process_realtime(reading)

        assert isinstance(snapshot, RealtimeSnapshot)
        assert snapshot.graph.mode == FlowMode.REALTIME
        assert snapshot.graph.nodes[NodeId.HOME].magnitude == 700
        assert snapshot.ratios.self_consumption_rate == pytest.approx(70)
        assert snapshot.encoding.node_gauges[NodeId.PV] == pytest.approx(1000 / 3000)
        assert snapshot.reading.reactive == 0.0

    def test_process_realtime_with_broken_counters(self, service, reading_factory):
        reading = reading_factory(grid_power=800, pv_power=0)._replace(pv_energy_total=None)

        snapshot = service.process_realtime(reading)

        assert snapshot.graph.edge(NodeId.GRID, NodeId.HOME).magnitude == 800

    def test_process_realtime_uses_device_bounds(self, reading_factory):
        service = DashboardProcessingService(bounds=CapacityBounds(inverter_power_w=6000))

        snapshot = service.process_realtime(reading_factory(pv_power=1500))

        assert snapshot.encoding.node_gauges[NodeId.PV] == pytest.approx(0.25)


class TestDuplicateDetection:
    """Tests for DashboardProcessingService.is_duplicate."""

    def test_no_previous(self, reading_factory):
        assert not DashboardProcessingService.is_duplicate(None, reading_factory())

    def test_identical_values(self, reading_factory):
        previous = reading_factory(0, grid_power=10, pv_power=5, grid_total=100)
        reading = reading_factory(1, grid_power=10, pv_power=5, grid_total=100, voltage=231)

        assert DashboardProcessingService.is_duplicate(previous, reading)

    @pytest.mark.parametrize('change', [
        {'grid_power': 11}, {'pv_power': 6}, {'grid_energy_total': 101},
        {'grid_energy_returned': 1}, {'pv_energy_total': 1},
    ])
    def test_any_change(self, reading_factory, change):
        previous = reading_factory(0, grid_power=10, pv_power=5, grid_total=100)
        reading = previous._replace(**change)

        assert not DashboardProcessingService.is_duplicate(previous, reading)


class TestShouldRefresh:

    def test_never_fetched(self):
        assert should_refresh(None, 100.0, 60)

    def test_within_interval(self):
        assert not should_refresh(100.0, 160.0, 60)

    def test_after_interval(self):
        assert should_refresh(100.0, 160.5, 60)
