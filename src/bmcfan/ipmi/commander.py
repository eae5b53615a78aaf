"""
IPMI Command Execution Module

This module provides a wrapper around ipmitool for executing IPMI commands
against a remote BMC over LAN and managing its fan control.
"""

import subprocess
import logging
from typing import Any, Dict, List, Optional

from .sensors import (
    ChassisStatus,
    FanReading,
    PowerConsumption,
    PowerSupplyReading,
    SensorReading,
    TemperatureReading,
    parse_chassis_status,
    parse_fan_speeds,
    parse_power_consumption,
    parse_power_supplies,
    parse_raw_temperature,
    parse_sensor_list,
    parse_temperatures,
)

logger = logging.getLogger(__name__)

REDACTED = "****"


class IPMIError(Exception):
    """Base exception for IPMI-related errors"""
    pass


class TransportError(IPMIError):
    """Raised when an ipmitool invocation does not complete successfully"""
    pass


class IPMIConnectionError(TransportError):
    """Raised when the BMC cannot be reached or ipmitool cannot be launched"""
    pass


class IPMICommandError(TransportError):
    """Raised when an IPMI command exits with an error"""
    pass


class ValidationError(IPMIError, ValueError):
    """Raised when a command argument is rejected before execution"""
    pass


def redact_args(args: List[str]) -> List[str]:
    """Return a copy of an ipmitool argument vector with the password masked.

    Args:
        args: ipmitool arguments

    Returns:
        Arguments with the value following every ``-P`` replaced
    """
    redacted = list(args)
    for i, arg in enumerate(redacted[:-1]):
        if arg == "-P":
            redacted[i + 1] = REDACTED
    return redacted


class IPMICommander:
    """Handles IPMI command execution and fan control operations for one BMC"""

    # Fan control raw commands (netfn 0x30, cmd 0x30)
    COMMANDS = {
        "SET_AUTO_MODE": ["raw", "0x30", "0x30", "0x01", "0x01"],
        "SET_MANUAL_MODE": ["raw", "0x30", "0x30", "0x01", "0x00"],
        "SET_FAN_SPEED": ["raw", "0x30", "0x30", "0x02", "0xff"],  # Append hex speed
        "GET_SENSOR_READING": ["raw", "0x04", "0x2d"],  # Append sensor number
    }

    # Sensors readable through Get Sensor Reading, with their sensor numbers
    RAW_TEMPERATURE_SENSORS = [
        ("CPU0 Temp", "0x0e"),
        ("CPU1 Temp", "0x0f"),
        ("Inlet Temp", "0x04"),
        ("Exhaust Temp", "0x01"),
    ]

    # Raw counts to degrees Celsius
    RAW_TEMPERATURE_SCALE = 0.27

    def __init__(self, ipmi_config: Any, binary: str = "ipmitool",
                 interface: str = "lanplus", timeout: Optional[float] = 30.0):
        """Initialize IPMI commander with connection details

        Args:
            ipmi_config: Connection descriptor with ``host``, ``user`` and
                ``password`` attributes
            binary: ipmitool executable
            interface: IPMI interface type
            timeout: Seconds before an invocation is abandoned (None to wait forever)
        """
        self.host = ipmi_config.host
        self.username = ipmi_config.user
        self.password = ipmi_config.password
        self.binary = binary
        self.interface = interface
        self.timeout = timeout

    @classmethod
    def from_config(cls, ipmi_config: Any, settings: Optional[Dict[str, Any]] = None) -> "IPMICommander":
        """Create a commander using the ``ipmi`` section of the application config

        Args:
            ipmi_config: Connection descriptor of the machine
            settings: ``ipmi`` config section (binary, interface, timeout)
        """
        settings = settings or {}
        return cls(
            ipmi_config,
            binary=settings.get("binary", "ipmitool"),
            interface=settings.get("interface", "lanplus"),
            timeout=settings.get("timeout", 30.0),
        )

    def _auth_args(self) -> List[str]:
        if not self.host or not self.username:
            raise IPMIConnectionError("IPMI host and user must be set")
        return [
            "-I", self.interface,
            "-H", str(self.host),
            "-U", str(self.username),
            "-P", str(self.password or ""),
        ]

    def execute(self, args: List[str]) -> str:
        """Execute an IPMI command and return its output

        Commands are run once; retry policy belongs to the caller.

        Args:
            args: ipmitool arguments following the connection parameters
                (e.g., ["sdr", "type", "temperature"])

        Returns:
            Command stdout

        Raises:
            IPMIConnectionError: If the connection parameters are incomplete,
                ipmitool cannot be launched, the call times out or the BMC
                refuses the session
            IPMICommandError: If ipmitool exits with an error
        """
        full_cmd = [self.binary] + self._auth_args() + list(args)
        logger.debug(" ".join(redact_args(full_cmd)))

        try:
            result = subprocess.run(
                full_cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout
            )
        # Subprocess errors hold the full command line, password included; never chain them
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            if "Error in open session" in stderr or "Unable to establish" in stderr:
                raise IPMIConnectionError(f"Failed to connect to IPMI at {self.host}: {stderr}") from None
            raise IPMICommandError(f"Command '{' '.join(args)}' failed with exit code {e.returncode}: {stderr}") from None
        except subprocess.TimeoutExpired:
            raise IPMIConnectionError(f"Command '{' '.join(args)}' timed out after {self.timeout}s") from None
        except OSError as e:
            raise IPMIConnectionError(f"Failed to launch {self.binary}: {e}") from None

        return result.stdout

    def toggle_fan_control(self, automatic: bool) -> None:
        """Switch fan control between the BMC and manual overrides.

        Manual speed commands are ignored while the BMC is in automatic mode,
        so manual mode must be set before every ``set_fan_speed``.

        Args:
            automatic: True to hand control back to the BMC firmware
        """
        logger.info(f"Setting fan control to {'automatic' if automatic else 'manual'} on {self.host}")
        self.execute(self.COMMANDS["SET_AUTO_MODE" if automatic else "SET_MANUAL_MODE"])

    def set_manual_mode(self) -> None:
        """Set fan control to manual mode for direct speed control."""
        self.toggle_fan_control(False)

    def set_auto_mode(self) -> None:
        """Restore automatic fan control by returning control to the BMC."""
        self.toggle_fan_control(True)

    def set_fan_speed(self, speed_percent: int) -> None:
        """Set the speed of all fans.

        The percentage is sent as a single hex byte, e.g. 30% -> ``0x1e``.

        Args:
            speed_percent: Fan speed percentage (0-100)

        Raises:
            ValidationError: If the speed is outside 0-100; nothing is sent
            TransportError: If the command fails

        Examples:
            >>> commander.set_manual_mode()
            >>> commander.set_fan_speed(30)
        """
        try:
            value = int(speed_percent)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid fan speed {speed_percent!r}") from e

        if not 0 <= value <= 100:
            raise ValidationError("Fan speed must be between 0 and 100")

        logger.info(f"Setting fan speed to {value}% on {self.host}")
        self.execute(self.COMMANDS["SET_FAN_SPEED"] + [f"0x{value:02x}"])

    def get_temperatures(self) -> List[TemperatureReading]:
        """Get temperature sensor readings from the SDR."""
        return parse_temperatures(self.execute(["sdr", "type", "temperature"]))

    def get_temperatures_from_raw(self) -> List[TemperatureReading]:
        """Read known temperature sensors with raw Get Sensor Reading commands.

        Useful on firmware whose SDR listing is slow or incomplete.
        """
        readings = []
        for label, address in self.RAW_TEMPERATURE_SENSORS:
            output = self.execute(self.COMMANDS["GET_SENSOR_READING"] + [address])
            readings.append(TemperatureReading(
                sensor=label,
                identifier=address,
                status="ok",
                degrees=parse_raw_temperature(output, self.RAW_TEMPERATURE_SCALE),
                units="degrees C",
            ))
        return readings

    def get_fan_speeds(self) -> List[FanReading]:
        """Get fan speed readings from the SDR."""
        return parse_fan_speeds(self.execute(["sdr", "type", "Fan"]))

    def get_power_supplies(self) -> List[PowerSupplyReading]:
        """Get power supply readings from the SDR."""
        return parse_power_supplies(self.execute(["sdr", "type", "Power Supply"]))

    def get_power_consumption(self) -> PowerConsumption:
        """Get the DCMI power reading."""
        return parse_power_consumption(self.execute(["dcmi", "power", "reading"]))

    def get_chassis_status(self) -> ChassisStatus:
        """Get chassis power and intrusion status."""
        return parse_chassis_status(self.execute(["chassis", "status"]))

    def get_all_sensors(self) -> List[SensorReading]:
        """Get every sensor from ``sensor list``."""
        return parse_sensor_list(self.execute(["sensor", "list"]))

    def get_system_event_log(self, lines: int = 20) -> str:
        """Get the last entries of the system event log as text."""
        return self.execute(["sel", "list", "last", str(lines)])

    def clear_system_event_log(self) -> None:
        """Clear the system event log."""
        logger.info(f"Clearing system event log on {self.host}")
        self.execute(["sel", "clear"])
