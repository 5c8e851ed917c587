"""
Sample Validation Service for ShellyFlow.

This service decides which meter readings can be trusted:
- Cumulative counters must be finite, non-negative numbers
- Missing optional fields (reactive, power factor, frequency) default to 0
- Malformed instantaneous power is normalized to 0

Validation is pure: rejects are returned, never logged or raised here.
Reporting them is the caller's job.
"""

import logging
import math
from typing import Iterable, List, Tuple, Union

from ShellyFlow.models import MeterReading, Rejected


logger = logging.getLogger(__name__)

COUNTER_FIELDS = ('grid_energy_total', 'grid_energy_returned', 'pv_energy_total')
OPTIONAL_FIELDS = ('reactive', 'power_factor', 'frequency', 'current', 'temperature')


def is_number(value) -> bool:
    """True for finite ints/floats. Booleans are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def as_number(value, default: float = 0.0) -> float:
    return float(value) if is_number(value) else default


class SampleValidator:
    """
    Rejects or normalizes malformed meter readings.
    """

    def validate(self, reading) -> Union[MeterReading, Rejected]:
        """
        Validate a single reading.

        Args:
            reading: MeterReading (or anything shaped like one)

        Returns:
            MeterReading: normalized copy if the counters are usable
            Rejected: otherwise, with the reason
        """
        for name in COUNTER_FIELDS:
            if not hasattr(reading, name):
                return Rejected(reading, f"{name} is missing")

            value = getattr(reading, name)
            if not is_number(value):
                return Rejected(reading, f"{name} is not a finite number: {value!r}")
            if value < 0:
                return Rejected(reading, f"{name} is negative: {value}")

        return self.normalize(reading)

    def normalize(self, reading) -> MeterReading:
        """
        Fill optional fields and coerce power values without judging counters.

        Used directly for the realtime view, where only instantaneous power
        matters and a broken counter must not hide a live sample.
        """
        fields = {
            'timestamp': getattr(reading, 'timestamp', None),
            'grid_power': as_number(getattr(reading, 'grid_power', None)),
            'pv_power': as_number(getattr(reading, 'pv_power', None)),
            'voltage': as_number(getattr(reading, 'voltage', None)),
        }
        for name in COUNTER_FIELDS:
            value = getattr(reading, name, None)
            fields[name] = float(value) if is_number(value) else value
        for name in OPTIONAL_FIELDS:
            fields[name] = as_number(getattr(reading, name, None))

        return MeterReading(**fields)

    def is_valid(self, reading) -> bool:
        return isinstance(self.validate(reading), MeterReading)

    def partition(self, readings: Iterable) -> Tuple[List[MeterReading], List[Rejected]]:
        """
        Split readings into (valid, rejected), preserving order.
        """
        valid = []
        rejected = []
        for reading in readings:
            result = self.validate(reading)
            if isinstance(result, Rejected):
                rejected.append(result)
            else:
                valid.append(result)

        logger.debug(f"Validated {len(valid)} readings, rejected {len(rejected)}")
        return valid, rejected
