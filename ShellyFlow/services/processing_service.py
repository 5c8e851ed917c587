"""
Dashboard Processing Service for ShellyFlow.

This service is the caller of the engine. It wires the pipeline together
and owns everything the engine deliberately leaves out:
- Daily pipeline: validate -> aggregate -> graph -> ratios -> encoding
- Realtime pipeline for one live reading
- Reporting of rejected samples, capped totals and counter resets
- Refresh cadence and per-device snapshot caching
- Duplicate detection for the collector
"""

import logging
import time
from typing import Iterable, Optional

from ShellyFlow.models import (
    AggregationReport,
    CapacityBounds,
    DailySnapshot,
    DailyTotals,
    MeterReading,
    RealtimeSample,
    RealtimeSnapshot,
)
from ShellyFlow.services.energy_service import DailyTotalsAggregator
from ShellyFlow.services.flow_service import FlowGraphBuilder
from ShellyFlow.services.ratio_service import RatioCalculator
from ShellyFlow.services.validation_service import SampleValidator
from ShellyFlow.services.visual_service import VisualEncodingMapper
from ShellyFlow.settings import EngineSettings


logger = logging.getLogger(__name__)

# Fields that must all match for a reading to count as a repeat
DUPLICATE_FIELDS = (
    'grid_power',
    'pv_power',
    'grid_energy_total',
    'grid_energy_returned',
    'pv_energy_total',
)


def should_refresh(last_fetch: Optional[float], now: float, interval: float) -> bool:
    """True when more than ``interval`` seconds passed since ``last_fetch``."""
    if last_fetch is None:
        return True
    return now - last_fetch > interval


class DashboardProcessingService:
    """
    Service running the engine for the dashboard views.

    Holds no engine state: every call computes a fresh result from the
    readings it is given. The only thing kept between calls is the cached
    daily snapshot, which is replaced wholesale.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        bounds: Optional[CapacityBounds] = None,
        cache_repo=None,
        clock=time.time
    ):
        """
        Initialize the processing service.

        Args:
            settings: Engine settings shared by every service
            bounds: Capacity bounds of the device
            cache_repo: CacheRepository for daily snapshots (None = no caching)
            clock: Callable returning epoch seconds
        """
        self.settings = settings or EngineSettings()
        self.bounds = bounds or CapacityBounds()
        self.cache_repo = cache_repo
        self.clock = clock

        self.validator = SampleValidator()
        self.aggregator = DailyTotalsAggregator(self.settings, self.validator)
        self.flow_builder = FlowGraphBuilder(self.settings)
        self.ratio_calculator = RatioCalculator()
        self.visual_mapper = VisualEncodingMapper(self.settings)

    @staticmethod
    def cache_key(config_id: str) -> str:
        return 'dailySnapshot_' + str(config_id)

    def refresh_daily(
        self,
        config_id: Optional[str],
        readings: Iterable,
        now: Optional[float] = None,
        force: bool = False
    ) -> DailySnapshot:
        """
        Compute (or reuse) the daily snapshot for a device.

        Args:
            config_id: Device configuration id; None yields the zero snapshot
            readings: Today's readings, ascending by timestamp
            now: Epoch seconds (defaults to the service clock)
            force: Recompute even if the cached snapshot is fresh

        Returns:
            DailySnapshot: totals, graph, ratios and encoding
        """
        now = self.clock() if now is None else now

        if not config_id:
            logger.info("No device configured, returning empty daily snapshot")
            return self.build_daily_snapshot(None, DailyTotals.zero(), now)

        if not force:
            cached = self._load_snapshot(config_id)
            if cached is not None and not should_refresh(
                    cached.computed_at, now, self.settings.refresh_interval):
                logger.debug(f"Using cached daily snapshot for {config_id}")
                return cached

        logger.info(f"Refreshing daily energy totals for {config_id}")
        report = self.aggregator.aggregate_with_report(readings)
        self.report_anomalies(config_id, report)

        snapshot = self.build_daily_snapshot(config_id, report.totals, now)
        self._save_snapshot(config_id, snapshot)

        return snapshot

    def build_daily_snapshot(
        self,
        config_id: Optional[str],
        totals: DailyTotals,
        now: float
    ) -> DailySnapshot:
        graph = self.flow_builder.build_daily(totals)
        return DailySnapshot(
            config_id=config_id,
            computed_at=now,
            totals=totals,
            graph=graph,
            ratios=self.ratio_calculator.calculate(totals),
            encoding=self.visual_mapper.encode(graph, self.bounds)
        )

    def process_realtime(self, reading) -> RealtimeSnapshot:
        """
        Compute the live view for the most recent reading.

        Only instantaneous power matters here, so the reading is normalized
        rather than validated: a broken counter must not hide live power.

        Args:
            reading: Most recent MeterReading

        Returns:
            RealtimeSnapshot: graph, instantaneous ratios and encoding
        """
        reading = self.validator.normalize(reading)
        graph = self.flow_builder.build(RealtimeSample(grid=reading.grid_power, pv=reading.pv_power))

        return RealtimeSnapshot(
            reading=reading,
            graph=graph,
            ratios=self.ratio_calculator.from_flow_graph(graph),
            encoding=self.visual_mapper.encode(graph, self.bounds)
        )

    def report_anomalies(self, config_id: str, report: AggregationReport) -> None:
        """
        Log everything the aggregator corrected silently.

        Args:
            config_id: Device configuration id
            report: AggregationReport from the aggregator
        """
        for rejected in report.rejected:
            logger.warning(f"Rejected reading for {config_id}: {rejected.reason}")

        for field, value in report.capped_fields.items():
            logger.warning(
                f"Unreasonably high {field} value detected for {config_id}: {value}Wh, "
                f"capping at {self.settings.daily_ceiling_wh}Wh"
            )

        if report.counter_reset:
            logger.warning(
                f"Counter reset detected for {config_id} ({', '.join(report.counter_reset)}), "
                f"policy '{self.settings.counter_reset_policy}'"
            )

        if report.valid_count < 2:
            logger.warning(f"Insufficient valid data points for {config_id}: {report.valid_count}")

    @staticmethod
    def is_duplicate(previous: Optional[MeterReading], reading: MeterReading) -> bool:
        """
        Check whether a reading repeats the previous one exactly.

        Args:
            previous: Last stored reading (None if nothing stored yet)
            reading: Newly collected reading

        Returns:
            bool: True if every power and counter value is unchanged
        """
        if previous is None:
            return False
        return all(getattr(previous, name) == getattr(reading, name) for name in DUPLICATE_FIELDS)

    def _load_snapshot(self, config_id: str) -> Optional[DailySnapshot]:
        if not self.cache_repo:
            return None
        return self.cache_repo.get(self.cache_key(config_id))

    def _save_snapshot(self, config_id: str, snapshot: DailySnapshot) -> None:
        if not self.cache_repo:
            return
        try:
            self.cache_repo.set(self.cache_key(config_id), snapshot)
        except Exception as e:
            logger.error(f"Failed to cache daily snapshot for {config_id}: {e}")
