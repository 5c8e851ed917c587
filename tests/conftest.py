"""
Pytest configuration and shared fixtures for ShellyFlow tests.

This file contains common fixtures that can be used across all test files.
"""

import pytest
import sys
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

# Add the project root to the path so tests can import ShellyFlow
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ShellyFlow.models import MeterReading  # noqa: E402


def make_reading(minute=0, grid_total=0.0, grid_returned=0.0, pv_total=0.0,
                 grid_power=0.0, pv_power=0.0, **extra):
    """Build a MeterReading at 00:00 + minute on a fixed day."""
    return MeterReading(
        timestamp=datetime(2026, 3, 14, tzinfo=timezone.utc) + timedelta(minutes=minute),
        grid_power=grid_power,
        pv_power=pv_power,
        grid_energy_total=grid_total,
        grid_energy_returned=grid_returned,
        pv_energy_total=pv_total,
        **extra
    )


@pytest.fixture
def reading_factory():
    """Provide the MeterReading builder."""
    return make_reading


@pytest.fixture
def scenario_a_readings():
    """Two readings spanning a day with import, export and production."""
    return [
        make_reading(0, grid_total=1000, grid_returned=0, pv_total=500),
        make_reading(600, grid_total=3500, grid_returned=200, pv_total=4000),
    ]


@pytest.fixture
def mock_cache_repo():
    """Provide a mock CacheRepository."""
    cache_repo = Mock()
    cache_repo.get = Mock(return_value=None)
    cache_repo.set = Mock()
    return cache_repo


@pytest.fixture
def sample_device_status():
    """Provide a Shelly EM device_status payload with grid and PV meters."""
    return {
        '_updated': '2026-03-14 12:30:00',
        'temperature': {'tC': 41.2},
        'emeters': [
            {
                'power': -300.5,
                'reactive': 12.0,
                'voltage': 231.4,
                'total': 152340.0,
                'pf': 0.97,
                'is_valid': True,
                'total_returned': 80321.0,
            },
            {
                'power': 1000.0,
                'reactive': 0.0,
                'voltage': 231.4,
                'total': 98000.0,
                'pf': 0.99,
                'is_valid': True,
                'total_returned': 0.0,
            },
        ],
    }
