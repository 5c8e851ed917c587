# -*- coding: utf-8 -*-
"""
Utility functions for ShellyFlow.

Pure helpers at the edges of the engine:
- Building MeterReading values from Shelly cloud payloads and stored rows
- Converting engine output into publish-safe dictionaries for the
  rendering layer
"""

import datetime
import logging
from enum import Enum
from typing import Any, Mapping, Optional

from ShellyFlow.models import MeterReading

logger = logging.getLogger(__name__)


def _value(meter: Optional[Mapping], key: str) -> Any:
    """Meter field or 0 when the meter or the field is absent."""
    if not meter:
        return 0
    value = meter.get(key)
    return 0 if value is None else value


def reading_from_device_status(status: Mapping, timestamp=None) -> MeterReading:
    """Build a MeterReading from a Shelly EM ``device_status`` payload.

    The first emeter measures the grid connection, the second one (if
    present) the PV production line.

    Args:
        status: The ``device_status`` object of a Shelly cloud response
        timestamp: Reading time; defaults to the payload ``_updated`` value

    Returns:
        MeterReading with missing values defaulted to 0

    Raises:
        ValueError: If the payload carries no emeters

    Example:
        >>> reading_from_device_status({'emeters': [{'power': 800, 'total': 1000,
        ...     'total_returned': 0}]}).grid_power
        800
    """
    emeters = status.get('emeters') if status else None
    if not emeters or not isinstance(emeters, list):
        raise ValueError("No emeters data found in device status")

    grid_meter = emeters[0]
    production_meter = emeters[1] if len(emeters) > 1 else None

    if timestamp is None:
        timestamp = status.get('_updated')

    temperature = status.get('temperature')
    if isinstance(temperature, Mapping):
        temperature = temperature.get('tC')

    return MeterReading(
        timestamp=timestamp,
        grid_power=_value(grid_meter, 'power'),
        pv_power=_value(production_meter, 'power'),
        grid_energy_total=_value(grid_meter, 'total'),
        grid_energy_returned=_value(grid_meter, 'total_returned'),
        pv_energy_total=_value(production_meter, 'total'),
        voltage=_value(grid_meter, 'voltage'),
        reactive=grid_meter.get('reactive'),
        power_factor=grid_meter.get('pf'),
        current=grid_meter.get('current'),
        temperature=temperature,
    )


def reading_from_row(row: Mapping) -> MeterReading:
    """Build a MeterReading from a stored ``energy_data`` row.

    Rows store instantaneous power as ``consumption`` (grid, signed) and
    ``production`` (PV), and the counters as ``grid_total``,
    ``grid_total_returned`` and ``production_total``. Counter values are
    copied as-is so the validator can reject broken rows.
    """
    return MeterReading(
        timestamp=row.get('timestamp'),
        grid_power=row.get('consumption'),
        pv_power=row.get('production'),
        grid_energy_total=row.get('grid_total'),
        grid_energy_returned=row.get('grid_total_returned'),
        pv_energy_total=row.get('production_total'),
        voltage=row.get('voltage'),
        reactive=row.get('reactive'),
        power_factor=row.get('pf'),
        frequency=row.get('frequency'),
    )


def to_publish_dict(value: Any) -> Any:
    """Create a publish-safe version of engine output.

    NamedTuples become dictionaries, Enums their values, tuple keys are
    joined with '->', datetimes become ISO strings and floats are rounded
    to 3 decimal places.

    Args:
        value: Engine output (snapshot, graph, totals, encoding...)

    Returns:
        Structure made only of dicts, lists, strings and numbers
    """
    if hasattr(value, '_asdict'):
        return {key: to_publish_dict(item) for key, item in value._asdict().items()}

    if isinstance(value, Enum):
        return value.value

    if isinstance(value, dict):
        safeoutput = {}
        for key, item in value.items():
            if isinstance(key, tuple):
                key = '->'.join(str(to_publish_dict(part)) for part in key)
            elif isinstance(key, Enum):
                key = key.value
            safeoutput[key] = to_publish_dict(item)
        return safeoutput

    if isinstance(value, (list, tuple)):
        return [to_publish_dict(item) for item in value]

    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()

    if isinstance(value, float):
        return round(value, 3)

    return value
