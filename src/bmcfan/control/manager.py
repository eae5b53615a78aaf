"""
Fan Control Manager Module

This module provides the apply cycle for a single machine: read its
configuration, sample temperatures from the BMC, evaluate the active fan
curve and send the resulting fan speed.
"""

import logging
import threading
from typing import Any, Callable, Optional, Set

from ..ipmi import IPMICommander
from ..ipmi.sensors import CPU_TEMPERATURE_SENSOR, max_temperature
from ..machine.repository import MachineRepository, NotFoundError
from .curve import DEFAULT_BASELINE_SPEED, PresetCurve

logger = logging.getLogger(__name__)


class ApplyManager:
    """Runs sense -> evaluate -> actuate cycles for stored machines.

    An apply cycle is not transactional. If the speed command fails after
    manual mode was set, the BMC stays in manual mode at its previous speed
    until the next scheduled cycle converges it.
    """

    def __init__(self, repository: MachineRepository,
                 commander_factory: Callable[[Any], IPMICommander] = IPMICommander.from_config,
                 baseline_speed: int = DEFAULT_BASELINE_SPEED,
                 temperature_sensor: str = CPU_TEMPERATURE_SENSOR):
        """Initialize apply manager

        Args:
            repository: Machine store
            commander_factory: Creates a commander from a machine's IPMIConfig
            baseline_speed: Curve speed below the first threshold
            temperature_sensor: Sensor label whose readings drive the curve
        """
        self.repository = repository
        self.commander_factory = commander_factory
        self.baseline_speed = baseline_speed
        self.temperature_sensor = temperature_sensor

        # Machines with an apply cycle in progress
        self._active: Set[str] = set()
        self._lock = threading.Lock()

    def apply(self, machine_id: str) -> Optional[int]:
        """Run one apply cycle for a machine

        Args:
            machine_id: ID of the machine

        Returns:
            Fan speed percentage sent to the BMC, or None if the machine is
            disabled or a cycle for it is already running

        Raises:
            NotFoundError: If the machine or its active preset does not exist
            TransportError: If an ipmitool command fails
            ValidationError: If the computed fan speed is out of range
        """
        with self._lock:
            if machine_id in self._active:
                logger.warning(f"Apply already running for machine {machine_id}, skipping")
                return None
            self._active.add(machine_id)

        try:
            return self._apply(machine_id)
        finally:
            with self._lock:
                self._active.discard(machine_id)

    def _apply(self, machine_id: str) -> Optional[int]:
        logger.info(f"Running for machine ID: {machine_id}")

        machine = self.repository.get(machine_id)
        if not machine.enabled:
            logger.debug(f"Machine {machine.name} is disabled, nothing to do")
            return None

        commander = self.commander_factory(machine.ipmi_config)
        readings = commander.get_temperatures()

        if machine.active_preset_id:
            preset = machine.find_preset(machine.active_preset_id)
            if preset is None:
                raise NotFoundError(
                    f"Active preset {machine.active_preset_id} not found on machine {machine.name}"
                )

            max_temp = max_temperature(readings, self.temperature_sensor)
            if max_temp is None:
                logger.warning(
                    f"No valid '{self.temperature_sensor}' readings for {machine.name}, "
                    f"using baseline {self.baseline_speed}%"
                )
            else:
                logger.info(f"Max CPU temperature for {machine.name}: {max_temp}°C")

            target_speed = PresetCurve(preset.fan_curve, self.baseline_speed).get_speed(max_temp)
            logger.info(f"Preset '{preset.name}': setting fan speed to {target_speed}%")
        else:
            target_speed = machine.fan_speed
            logger.info(f"No active preset: setting static fan speed {target_speed}%")

        commander.set_manual_mode()
        commander.set_fan_speed(target_speed)
        return target_speed
