"""
Sensor Telemetry Module

This module decodes the textual output of ipmitool into typed readings.
ipmitool output has no schema, so every line is handled independently and
missing or malformed fields fall back to defaults instead of raising. One
unreadable sensor never aborts the whole read.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

# Sensor label used for CPU temperatures on the supported BMC family
CPU_TEMPERATURE_SENSOR = "Temp"

_NUMBER_RE = re.compile(r"\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


@dataclass
class TemperatureReading:
    """A temperature sensor reading from ``sdr type temperature``.

    Attributes:
        sensor: Sensor label (e.g., "Temp", "Inlet Temp")
        identifier: Sensor record ID (e.g., "0Eh")
        status: Sensor status ("ok", "ns", ...)
        degrees: Temperature value, ``nan`` if the field could not be parsed
        units: Unit suffix following "degrees" (e.g., "C")

    Examples:
        >>> reading = parse_temperatures("Temp | 0Eh | ok | 3.1 | 45 degrees C")[0]
        >>> print(f"{reading.sensor}: {reading.degrees}{reading.units}")
        Temp: 45.0C
    """
    sensor: str
    identifier: str
    status: str
    degrees: float
    units: str

    @property
    def is_valid(self) -> bool:
        """Check whether the reading carries a usable temperature."""
        return math.isfinite(self.degrees)


@dataclass
class FanReading:
    """A fan sensor reading from ``sdr type Fan``."""
    sensor: str
    identifier: str
    status: str
    rpm: float
    units: str = "RPM"


@dataclass
class PowerSupplyReading:
    """A power supply sensor reading from ``sdr type "Power Supply"``."""
    sensor: str
    identifier: str
    status: str
    value: str


@dataclass
class PowerConsumption:
    """DCMI power reading in watts; fields the BMC omitted are 0."""
    current_watts: int = 0
    minimum_watts: int = 0
    maximum_watts: int = 0
    average_watts: int = 0


@dataclass
class ChassisStatus:
    """Chassis power state from ``chassis status``."""
    power_on: bool
    power_overload: bool
    power_interlock: bool
    power_fault: bool
    power_control_fault: bool
    last_power_event: str
    chassis_intrusion: str


@dataclass
class SensorReading:
    """A generic row from ``sensor list``."""
    sensor: str
    value: str
    units: str
    status: str


def parse_number(text: str) -> float:
    """Parse the leading number of a field.

    Trailing text is ignored ("45 degrees" -> 45.0). A field with no leading
    number yields ``nan``; callers must check the result with ``math.isfinite``.

    Args:
        text: Raw field text

    Returns:
        Parsed value or ``nan``
    """
    match = _NUMBER_RE.match(text)
    if not match:
        return math.nan
    return float(match.group(1))


def _split_fields(line: str) -> List[str]:
    return [part.strip() for part in line.split("|")]


def _parse_measurement_line(line: str, marker: str):
    parts = _split_fields(line)
    if len(parts) != 5:
        return None
    value, _, units = parts[4].partition(marker)
    return parts, parse_number(value.strip()), units.strip()


def parse_temperatures(output: str) -> List[TemperatureReading]:
    """Parse ``sdr type temperature`` output.

    Only lines containing "degrees" with exactly five pipe-separated fields
    are decoded:

        Inlet Temp       | 04h | ok  |  7.1 | 22 degrees C
        Temp             | 0Eh | ok  |  3.1 | 45 degrees C

    Args:
        output: Raw ipmitool stdout

    Returns:
        Temperature readings in output order
    """
    readings = []
    for line in output.splitlines():
        if "degrees" not in line:
            continue
        parsed = _parse_measurement_line(line, "degrees")
        if parsed is None:
            logger.debug(f"Skipping malformed temperature line: {line!r}")
            continue
        parts, degrees, units = parsed
        readings.append(TemperatureReading(
            sensor=parts[0],
            identifier=parts[1],
            status=parts[2],
            degrees=degrees,
            units=units,
        ))
    return readings


def parse_fan_speeds(output: str) -> List[FanReading]:
    """Parse ``sdr type Fan`` output (lines containing "RPM")."""
    readings = []
    for line in output.splitlines():
        if "RPM" not in line:
            continue
        parsed = _parse_measurement_line(line, "RPM")
        if parsed is None:
            logger.debug(f"Skipping malformed fan line: {line!r}")
            continue
        parts, rpm, _ = parsed
        readings.append(FanReading(
            sensor=parts[0],
            identifier=parts[1],
            status=parts[2],
            rpm=rpm,
        ))
    return readings


def parse_power_supplies(output: str) -> List[PowerSupplyReading]:
    """Parse ``sdr type "Power Supply"`` output.

    Lines need at least four fields; an empty value field becomes "".
    """
    readings = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = _split_fields(line)
        if len(parts) < 4:
            continue
        readings.append(PowerSupplyReading(
            sensor=parts[0],
            identifier=parts[1],
            status=parts[2],
            value=parts[3] or "",
        ))
    return readings


def parse_sensor_list(output: str) -> List[SensorReading]:
    """Parse ``sensor list`` output.

    Lines need at least three fields. Missing or empty trailing fields default
    to value "N/A", units "" and status "ok".
    """
    readings = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = _split_fields(line)
        if len(parts) < 3:
            continue
        readings.append(SensorReading(
            sensor=parts[0],
            value=parts[1] or "N/A",
            units=parts[2] or "",
            status=(parts[3] if len(parts) > 3 else "") or "ok",
        ))
    return readings


_POWER_PATTERNS = {
    "current_watts": re.compile(r"Current Power\s+:\s+(\d+)\s+Watts"),
    "minimum_watts": re.compile(r"Minimum Power over sampling duration\s+:\s+(\d+)\s+Watts"),
    "maximum_watts": re.compile(r"Maximum Power over sampling duration\s+:\s+(\d+)\s+Watts"),
    "average_watts": re.compile(r"Average Power over sampling duration\s+:\s+(\d+)\s+Watts"),
}


def parse_power_consumption(output: str) -> PowerConsumption:
    """Parse ``dcmi power reading`` output.

    BMCs omit some fields depending on their sampling state, so each label is
    matched independently and an absent one reads as 0 watts.

    Example output:
        Current Power                        : 118 Watts
        Minimum Power over sampling duration : 90 Watts
    """
    values = {}
    for field, pattern in _POWER_PATTERNS.items():
        match = pattern.search(output)
        values[field] = int(match.group(1)) if match else 0
    return PowerConsumption(**values)


# Exact "label : value" lines as printed by ipmitool. Any whitespace change in
# the BMC output reads as False.
_CHASSIS_FLAGS = {
    "power_on": "System Power         : on",
    "power_overload": "Power Overload       : true",
    "power_interlock": "Power Interlock      : active",
    "power_fault": "Main Power Fault     : true",
    "power_control_fault": "Power Control Fault  : true",
}


def extract_value(text: str, key: str, default: str = "unknown") -> str:
    """Extract the free-text value of a ``key : value`` line."""
    match = re.search(rf"{re.escape(key)}\s*:\s*(.+)", text)
    return match.group(1).strip() if match else default


def parse_chassis_status(output: str) -> ChassisStatus:
    """Parse ``chassis status`` output into boolean flags and event text."""
    flags = {field: label in output for field, label in _CHASSIS_FLAGS.items()}
    return ChassisStatus(
        last_power_event=extract_value(output, "Last Power Event"),
        chassis_intrusion=extract_value(output, "Chassis Intrusion"),
        **flags,
    )


def parse_raw_temperature(output: str, scale: float = 0.27) -> float:
    """Decode a ``raw 0x04 0x2d`` (Get Sensor Reading) response.

    The reading byte is the third space-separated token of the response and
    is scaled to degrees Celsius.

    Args:
        output: Raw ipmitool stdout (e.g., " 2d 00 c0")
        scale: Degrees per raw count

    Returns:
        Temperature in degrees Celsius, ``nan`` if the response is malformed
    """
    tokens = output.split(" ")
    try:
        return int(tokens[2], 16) * scale
    except (IndexError, ValueError):
        logger.debug(f"Could not decode raw sensor response: {output!r}")
        return math.nan


def max_temperature(readings: Iterable[TemperatureReading],
                    sensor: str = CPU_TEMPERATURE_SENSOR) -> Optional[float]:
    """Get the highest valid temperature among readings with a given label.

    Args:
        readings: Temperature readings
        sensor: Exact sensor label to match

    Returns:
        Highest finite temperature, or None if no reading qualifies
    """
    temps = [r.degrees for r in readings if r.sensor == sensor and r.is_valid]
    if not temps:
        return None
    return max(temps)
