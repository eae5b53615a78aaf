"""
Tests for the Sensor Telemetry module
"""

import math
import pytest

from bmcfan.ipmi.sensors import (
    TemperatureReading,
    parse_number,
    parse_temperatures,
    parse_fan_speeds,
    parse_power_supplies,
    parse_sensor_list,
    parse_power_consumption,
    parse_chassis_status,
    parse_raw_temperature,
    max_temperature,
)

# Test Data
MOCK_SDR_TEMPERATURE = """\
Inlet Temp       | 04h | ok  |  7.1 | 22 degrees C
Exhaust Temp     | 01h | ok  |  7.1 | 31 degrees C
Temp             | 0Eh | ok  |  3.1 | 45 degrees C
Temp             | 0Fh | ok  |  3.2 | 52 degrees C
Temp             | 10h | ns  |  3.3 | Disabled
"""

MOCK_SDR_FAN = """\
Fan1 RPM         | 30h | ok  |  7.1 | 3480 RPM
Fan2 RPM         | 31h | ok  |  7.1 | 3600 RPM
Fan Redundancy   | 75h | ok  |  7.1 | Fully Redundant
"""

MOCK_SDR_PSU = """\
Status           | 60h | ok  | 10.1 | Presence detected
Status           | 61h | ok  | 10.2 |

PS Redundancy    | 77h
"""

MOCK_SENSOR_LIST = """\
Inlet Temp       | 22.000     | degrees C  | ok    | na
Fan1 RPM         | 3480.000   | RPM        | ok    | na
Intrusion        | 0x0        | discrete   | 0x0080| na
Pwr Consumption  | 112.000    | Watts
Broken           |            |
"""

MOCK_DCMI_POWER = """\
    Instantaneous power reading:                   112 Watts
    Current Power                        : 112 Watts
    Minimum Power over sampling duration : 98 Watts
    Maximum Power over sampling duration : 245 Watts
    Average Power over sampling duration : 120 Watts
    Time stamp                           : Mon Oct 19 10:00:00 2026
"""

MOCK_CHASSIS_STATUS = """\
System Power         : on
Power Overload       : false
Power Interlock      : inactive
Main Power Fault     : false
Power Control Fault  : false
Power Restore Policy : always-off
Last Power Event     : command
Chassis Intrusion    : inactive
Front-Panel Lockout  : inactive
Drive Fault          : false
Cooling/Fan Fault    : false
"""


def test_parse_temperature_line():
    """Test a single SDR temperature line"""
    readings = parse_temperatures("Temp | 0Eh | ok | 1 | 45 degrees C")
    assert readings == [TemperatureReading(
        sensor="Temp",
        identifier="0Eh",
        status="ok",
        degrees=45.0,
        units="C",
    )]


def test_parse_temperatures():
    """Test SDR temperature listing"""
    readings = parse_temperatures(MOCK_SDR_TEMPERATURE)

    # The "Disabled" line has no unit marker and is skipped
    assert len(readings) == 4
    assert [r.sensor for r in readings] == ["Inlet Temp", "Exhaust Temp", "Temp", "Temp"]
    assert [r.degrees for r in readings] == [22.0, 31.0, 45.0, 52.0]
    assert all(r.units == "C" for r in readings)


def test_parse_temperatures_ragged_lines():
    """Test lines without exactly five fields are skipped"""
    output = (
        "Temp | 0Eh | ok | 45 degrees C\n"
        "Temp | 0Eh | ok | 3.1 | 45 degrees C | extra\n"
        "Temp | 0Fh | ok | 3.1 | 47 degrees C\n"
    )
    readings = parse_temperatures(output)
    assert len(readings) == 1
    assert readings[0].identifier == "0Fh"


def test_parse_temperatures_malformed_value():
    """Test malformed numbers parse to nan instead of failing"""
    readings = parse_temperatures("Temp | 0Eh | ok | 3.1 | n/a degrees C")
    assert len(readings) == 1
    assert math.isnan(readings[0].degrees)
    assert not readings[0].is_valid


def test_parse_temperatures_empty():
    """Test empty output"""
    assert parse_temperatures("") == []


def test_parse_number():
    """Test leading number parsing"""
    assert parse_number("45") == 45.0
    assert parse_number(" 45.5 ") == 45.5
    assert parse_number("-3") == -3.0
    assert parse_number("45abc") == 45.0
    assert math.isnan(parse_number(""))
    assert math.isnan(parse_number("Disabled"))


def test_parse_fan_speeds():
    """Test SDR fan listing"""
    fans = parse_fan_speeds(MOCK_SDR_FAN)

    assert len(fans) == 2
    assert fans[0].sensor == "Fan1 RPM"
    assert fans[0].identifier == "30h"
    assert fans[0].status == "ok"
    assert fans[0].rpm == 3480.0
    assert fans[0].units == "RPM"
    assert fans[1].rpm == 3600.0


def test_parse_power_supplies():
    """Test power supply listing with short and blank lines"""
    supplies = parse_power_supplies(MOCK_SDR_PSU)

    assert len(supplies) == 2
    assert supplies[0].value == "10.1"
    assert supplies[1].identifier == "61h"
    assert supplies[1].value == "10.2"


def test_parse_power_supplies_empty_value():
    """Test an empty value field defaults to empty string"""
    supplies = parse_power_supplies("Status | 60h | ok |  | Presence detected")
    assert supplies[0].value == ""


def test_parse_sensor_list():
    """Test generic sensor listing defaults"""
    sensors = parse_sensor_list(MOCK_SENSOR_LIST)

    assert len(sensors) == 5
    assert sensors[0].sensor == "Inlet Temp"
    assert sensors[0].value == "22.000"
    assert sensors[0].units == "degrees C"
    assert sensors[0].status == "ok"

    # Three fields only: status defaults to ok
    assert sensors[3].sensor == "Pwr Consumption"
    assert sensors[3].status == "ok"

    # Empty fields
    assert sensors[4].value == "N/A"
    assert sensors[4].units == ""
    assert sensors[4].status == "ok"


def test_parse_power_consumption():
    """Test DCMI power reading"""
    power = parse_power_consumption(MOCK_DCMI_POWER)

    assert power.current_watts == 112
    assert power.minimum_watts == 98
    assert power.maximum_watts == 245
    assert power.average_watts == 120


def test_parse_power_consumption_missing_fields():
    """Test absent labels default to zero"""
    power = parse_power_consumption("    Current Power                        : 87 Watts\n")

    assert power.current_watts == 87
    assert power.minimum_watts == 0
    assert power.maximum_watts == 0
    assert power.average_watts == 0

    empty = parse_power_consumption("")
    assert empty.current_watts == 0


def test_parse_chassis_status():
    """Test chassis status flags and free-text fields"""
    status = parse_chassis_status(MOCK_CHASSIS_STATUS)

    assert status.power_on
    assert not status.power_overload
    assert not status.power_interlock
    assert not status.power_fault
    assert not status.power_control_fault
    assert status.last_power_event == "command"
    assert status.chassis_intrusion == "inactive"


def test_parse_chassis_status_faults():
    """Test fault flags"""
    output = (
        "System Power         : off\n"
        "Power Overload       : true\n"
        "Power Interlock      : active\n"
        "Main Power Fault     : true\n"
        "Power Control Fault  : true\n"
    )
    status = parse_chassis_status(output)

    assert not status.power_on
    assert status.power_overload
    assert status.power_interlock
    assert status.power_fault
    assert status.power_control_fault
    assert status.last_power_event == "unknown"
    assert status.chassis_intrusion == "unknown"


def test_parse_chassis_status_exact_labels():
    """Test flags require the exact label spacing"""
    status = parse_chassis_status("System Power : on\n")
    assert not status.power_on


def test_parse_raw_temperature():
    """Test raw Get Sensor Reading decoding"""
    assert parse_raw_temperature(" 2d 64 c0") == pytest.approx(0x64 * 0.27)
    assert parse_raw_temperature(" 2d 64 c0", scale=1.0) == 100.0
    assert math.isnan(parse_raw_temperature(""))
    assert math.isnan(parse_raw_temperature(" 2d zz c0"))


def test_max_temperature():
    """Test maximum over matching valid readings"""
    readings = parse_temperatures(MOCK_SDR_TEMPERATURE)
    assert max_temperature(readings) == 52.0
    assert max_temperature(readings, sensor="Inlet Temp") == 22.0


def test_max_temperature_no_match():
    """Test None when nothing qualifies"""
    readings = parse_temperatures("Inlet Temp | 04h | ok | 7.1 | 22 degrees C")
    assert max_temperature(readings) is None
    assert max_temperature([]) is None


def test_max_temperature_ignores_invalid():
    """Test nan readings are ignored"""
    readings = [
        TemperatureReading("Temp", "0Eh", "ok", math.nan, "C"),
        TemperatureReading("Temp", "0Fh", "ok", 41.0, "C"),
    ]
    assert max_temperature(readings) == 41.0
    assert max_temperature(readings[:1]) is None
