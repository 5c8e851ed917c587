"""
Service layer for the ShellyFlow energy flow engine.

Services:
- SampleValidator: Rejects or normalizes malformed meter readings
- DailyTotalsAggregator: Daily energy totals from cumulative counters
- FlowGraphBuilder: PV / GRID / HOME flow graph (realtime and daily)
- RatioCalculator: Self-consumption and self-production rates
- VisualEncodingMapper: Gauge fractions and stroke widths for rendering
- DashboardProcessingService: Pipeline, reporting and snapshot caching
"""

from .validation_service import SampleValidator
from .energy_service import DailyTotalsAggregator
from .flow_service import FlowGraphBuilder
from .ratio_service import RatioCalculator
from .visual_service import VisualEncodingMapper
from .processing_service import DashboardProcessingService

__all__ = [
    'SampleValidator',
    'DailyTotalsAggregator',
    'FlowGraphBuilder',
    'RatioCalculator',
    'VisualEncodingMapper',
    'DashboardProcessingService',
]
