"""
IPMI Communication Package for bmcfan

This package provides the interface to a remote BMC through ipmitool over
LAN: command execution, fan control and decoding of sensor telemetry.

Key Components:
- IPMICommander: Runs ipmitool for one BMC and issues fan control commands
- sensors: Typed readings and the parsers for ipmitool's textual output

Example Usage:
    >>> from bmcfan.ipmi import IPMICommander
    >>> from bmcfan.machine.models import IPMIConfig
    >>>
    >>> commander = IPMICommander(IPMIConfig("10.0.0.20", "root", "secret"))
    >>> temps = commander.get_temperatures()
    >>>
    >>> commander.set_manual_mode()
    >>> commander.set_fan_speed(30)
    >>> commander.set_auto_mode()  # Return to automatic control

Note:
    This package requires ipmitool to be installed and on PATH.
"""

from .commander import (
    IPMICommander,
    IPMIError,
    TransportError,
    IPMIConnectionError,
    IPMICommandError,
    ValidationError,
)
from .sensors import (
    TemperatureReading,
    FanReading,
    PowerSupplyReading,
    PowerConsumption,
    ChassisStatus,
    SensorReading,
    max_temperature,
)

__all__ = [
    'IPMICommander',
    'IPMIError',
    'TransportError',
    'IPMIConnectionError',
    'IPMICommandError',
    'ValidationError',
    'TemperatureReading',
    'FanReading',
    'PowerSupplyReading',
    'PowerConsumption',
    'ChassisStatus',
    'SensorReading',
    'max_temperature',
]
