"""
Daily Energy Service for ShellyFlow.

This service reduces one day of cumulative counter readings to totals:
- Filters readings through SampleValidator
- First/last counter deltas for consumption, injection and production
- Counter reset detection (counter lower at the end than at the start)
- Anomaly capping against a sanity ceiling

The aggregator never raises. Too few readings, a reset window or garbage
input all produce the zero DailyTotals, which is a valid value.
"""

import logging
from typing import Iterable, List, Optional

from ShellyFlow.models import AggregationReport, DailyTotals, MeterReading
from ShellyFlow.services.validation_service import SampleValidator
from ShellyFlow.settings import EngineSettings, RESET_POLICY_ZERO


logger = logging.getLogger(__name__)

# DailyTotals field -> MeterReading counter it is derived from
COUNTER_FOR_FIELD = {
    'consumption': 'grid_energy_total',
    'injection': 'grid_energy_returned',
    'production': 'pv_energy_total',
}


class DailyTotalsAggregator:
    """
    Service for turning a day's ordered readings into DailyTotals.

    The readings must already be sorted ascending by timestamp; the
    aggregator does not sort.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        validator: Optional[SampleValidator] = None
    ):
        """
        Initialize the aggregator.

        Args:
            settings: Engine settings (ceiling and counter reset policy)
            validator: SampleValidator instance to filter readings with
        """
        self.settings = settings or EngineSettings()
        self.validator = validator or SampleValidator()

    def aggregate(self, readings: Iterable) -> DailyTotals:
        """
        Calculate the day's energy totals.

        Args:
            readings: Readings for one calendar day, ascending by timestamp

        Returns:
            DailyTotals: all fields in [0, ceiling]
        """
        return self.aggregate_with_report(readings).totals

    def aggregate_with_report(self, readings: Iterable) -> AggregationReport:
        """
        Calculate the day's totals and report what was corrected on the way.

        Args:
            readings: Readings for one calendar day, ascending by timestamp

        Returns:
            AggregationReport: totals plus rejected readings, capped fields
            and counters detected as reset
        """
        valid, rejected = self.validator.partition(readings or [])

        if len(valid) < 2:
            logger.info(f"Only {len(valid)} valid readings, daily totals are zero")
            return AggregationReport(DailyTotals.zero(), len(valid), rejected, {}, [])

        first = valid[0]
        last = valid[-1]

        reset_counters = self.detect_counter_reset(first, last)
        if reset_counters and self.settings.counter_reset_policy == RESET_POLICY_ZERO:
            logger.info(f"Counter reset in window ({', '.join(reset_counters)}), daily totals are zero")
            return AggregationReport(DailyTotals.zero(), len(valid), rejected, {}, reset_counters)

        totals = self._calculate_deltas(first, last)
        totals, capped = self.cap_totals(totals)

        logger.info(f"Daily energy totals calculated: {totals}")
        return AggregationReport(totals, len(valid), rejected, capped, reset_counters)

    def detect_counter_reset(self, first: MeterReading, last: MeterReading) -> List[str]:
        """
        Find counters that went backwards between two readings.

        Args:
            first: Earliest valid reading of the window
            last: Latest valid reading of the window

        Returns:
            list: Names of the counters lower in ``last`` than in ``first``
        """
        return [
            counter for counter in COUNTER_FOR_FIELD.values()
            if getattr(last, counter) < getattr(first, counter)
        ]

    def cap_totals(self, totals: DailyTotals) -> tuple:
        """
        Clamp every field to [0, daily ceiling].

        Args:
            totals: Uncapped totals

        Returns:
            tuple: (capped DailyTotals, {field: uncapped value} for fields
            that exceeded the ceiling)
        """
        ceiling = self.settings.daily_ceiling_wh
        capped = {}
        values = {}

        for field, value in totals._asdict().items():
            if value > ceiling:
                capped[field] = value
                value = ceiling
            values[field] = max(0.0, value)

        return DailyTotals(**values), capped

    def _calculate_deltas(self, first: MeterReading, last: MeterReading) -> DailyTotals:
        """
        First/last counter deltas, floored at zero.

        The grid total counter only ever counts imported energy, so the
        import from grid is the consumption delta itself.
        """
        deltas = {
            field: max(0.0, getattr(last, counter) - getattr(first, counter))
            for field, counter in COUNTER_FOR_FIELD.items()
        }

        return DailyTotals(
            consumption=deltas['consumption'],
            production=deltas['production'],
            injection=deltas['injection'],
            import_from_grid=deltas['consumption']
        )
