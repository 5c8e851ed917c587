"""
Unit tests for ShellyFlow utility functions.

Critical tests:
- reading_from_device_status: grid/production meter mapping and defaults
- reading_from_row: stored row mapping
- to_publish_dict: publish-safe conversion of engine output
"""

import math
from datetime import datetime

import pytest
from ShellyFlow.models import (
    DailyTotals,
    FlowEdge,
    NodeId,
    RealtimeSample,
)
from ShellyFlow.services import FlowGraphBuilder, SampleValidator
from ShellyFlow.utils import reading_from_device_status, reading_from_row, to_publish_dict


class TestReadingFromDeviceStatus:
    """Tests for reading_from_device_status."""

    def test_grid_and_production_meters(self, sample_device_status):
        reading = reading_from_device_status(sample_device_status)

        assert reading.timestamp == '2026-03-14 12:30:00'
        assert reading.grid_power == -300.5
        assert reading.pv_power == 1000.0
        assert reading.grid_energy_total == 152340.0
        assert reading.grid_energy_returned == 80321.0
        assert reading.pv_energy_total == 98000.0
        assert reading.voltage == 231.4
        assert reading.reactive == 12.0
        assert reading.power_factor == 0.97
        assert reading.temperature == 41.2

    def test_explicit_timestamp(self, sample_device_status):
        when = datetime(2026, 3, 14, 12, 30)

        assert reading_from_device_status(sample_device_status, when).timestamp == when

    def test_grid_meter_only(self, sample_device_status):
        sample_device_status['emeters'] = sample_device_status['emeters'][:1]

        reading = reading_from_device_status(sample_device_status)

        assert reading.pv_power == 0
        assert reading.pv_energy_total == 0

    def test_missing_values_default_to_zero(self):
        reading = reading_from_device_status({'emeters': [{'power': None}]})

        assert reading.grid_power == 0
        assert reading.grid_energy_total == 0
        assert reading.grid_energy_returned == 0
        assert SampleValidator().is_valid(reading)

    @pytest.mark.parametrize('status', [None, {}, {'emeters': []}, {'emeters': 'nope'}])
    def test_no_emeters(self, status):
        with pytest.raises(ValueError, match="No emeters"):
            reading_from_device_status(status)


class TestReadingFromRow:
    """Tests for reading_from_row."""

    def test_row_mapping(self):
        row = {
            'timestamp': '2026-03-14T10:00:00Z',
            'consumption': 420,
            'production': 1300,
            'grid_total': 1000,
            'grid_total_returned': 20,
            'production_total': 500,
        }

        reading = reading_from_row(row)

        assert reading.grid_power == 420
        assert reading.pv_power == 1300
        assert reading.grid_energy_total == 1000
        assert reading.grid_energy_returned == 20
        assert reading.pv_energy_total == 500

    def test_broken_row_is_rejected_by_validator(self):
        reading = reading_from_row({'grid_total': 10, 'production_total': 5})

        assert not SampleValidator().is_valid(reading)


class TestToPublishDict:
    """Tests for to_publish_dict."""

    def test_totals(self):
        result = to_publish_dict(DailyTotals(2500.12345, 3500, 200, 2500))

        assert result == {
            'consumption': 2500.123,
            'production': 3500,
            'injection': 200,
            'import_from_grid': 2500,
        }

    def test_graph(self):
        graph = FlowGraphBuilder().build_realtime(RealtimeSample(grid=-300, pv=1000))

        result = to_publish_dict(graph)

        assert result['mode'] == 'realtime'
        assert result['nodes']['GRID'] == {'node_id': 'GRID', 'magnitude': 300, 'direction': 'export'}
        assert {'source': 'PV', 'target': 'GRID', 'magnitude': 300} in result['edges']
        assert result['breakdown']['pv_to_home'] == 700

    def test_tuple_keys_are_joined(self):
        result = to_publish_dict({(NodeId.PV, NodeId.HOME): 4.56789})

        assert result == {'PV->HOME': 4.568}

    def test_datetime(self):
        assert to_publish_dict(datetime(2026, 3, 14, 8, 0)) == '2026-03-14T08:00:00'

    def test_edge_and_plain_values(self):
        assert to_publish_dict(FlowEdge(NodeId.GRID, NodeId.HOME, 1.0)) == {
            'source': 'GRID', 'target': 'HOME', 'magnitude': 1.0
        }
        assert to_publish_dict('text') == 'text'
        assert to_publish_dict(None) is None
        assert math.isclose(to_publish_dict(1 / 3), 0.333)
