"""
Machine Management Module

Mutations of stored machines. Every change is flushed to the store and then
passed to the scheduler so the set of running jobs matches the stored state.
Stored machines are never changed in place: each mutation commits a copy.
"""

import logging
import uuid
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from ..control.scheduler import build_trigger
from .models import FanCurvePoint, IPMIConfig, Machine, Preset
from .repository import MachineRepository, NotFoundError

logger = logging.getLogger(__name__)

CurveInput = Iterable[Union[FanCurvePoint, Sequence[float]]]

# Curve given to every new machine as its active preset
DEFAULT_PRESET_NAME = "Default Preset"
DEFAULT_FAN_CURVE: List[Tuple[float, int]] = [
    (30, 10),
    (40, 30),
    (50, 50),
    (60, 70),
    (70, 90),
]
DEFAULT_FAN_SPEED = 20


def _to_points(curve: CurveInput) -> List[FanCurvePoint]:
    points = []
    for point in curve:
        if isinstance(point, FanCurvePoint):
            points.append(point)
        else:
            temperature, speed = point
            points.append(FanCurvePoint(temperature=temperature, fan_speed=speed))
    return points


class MachineService:
    """Creates and updates machines and keeps their jobs in sync"""

    def __init__(self, repository: MachineRepository, scheduler=None):
        """Initialize machine service

        Args:
            repository: Machine store
            scheduler: MachineScheduler to reconcile after each change, if any
        """
        self.repository = repository
        self.scheduler = scheduler

    def _commit(self, machine: Machine) -> Machine:
        self.repository.save(machine)
        if self.scheduler is not None:
            self.scheduler.reconcile(machine)
        return machine

    def get_enabled_machines(self) -> List[Machine]:
        return self.repository.find_enabled()

    def create(self, name: str, host: str, user: str, password: str, cron: str) -> Machine:
        """Create a disabled machine with the default preset active

        Args:
            name: Display name
            host: BMC address
            user: BMC user
            password: BMC password
            cron: Schedule expression for apply cycles

        Returns:
            The stored machine

        Raises:
            ValueError: If the cron expression is malformed
        """
        build_trigger(cron)
        preset = Preset(
            id=str(uuid.uuid4()),
            name=DEFAULT_PRESET_NAME,
            fan_curve=_to_points(DEFAULT_FAN_CURVE),
        )
        machine = Machine(
            id=str(uuid.uuid4()),
            name=name,
            enabled=False,
            cron=cron,
            ipmi_config=IPMIConfig(host=host, user=user, password=password),
            fan_speed=DEFAULT_FAN_SPEED,
            active_preset_id=preset.id,
            presets=[preset],
        )
        logger.info(f"Created machine {name} ({machine.id})")
        return self._commit(machine)

    def set_enabled(self, machine_id: str, enabled: bool) -> Machine:
        machine = replace(self.repository.get(machine_id), enabled=enabled)
        logger.info(f"{'Enabled' if enabled else 'Disabled'} machine {machine.name}")
        return self._commit(machine)

    def set_cron(self, machine_id: str, cron: str) -> Machine:
        build_trigger(cron)
        return self._commit(replace(self.repository.get(machine_id), cron=cron))

    def set_fan_speed(self, machine_id: str, fan_speed: int) -> Machine:
        """Set the static fan speed used when no preset is active"""
        return self._commit(replace(self.repository.get(machine_id), fan_speed=fan_speed))

    def add_preset(self, machine_id: str, name: str, curve: CurveInput) -> Preset:
        """Add a preset to a machine

        Args:
            machine_id: ID of the owning machine
            name: Preset name
            curve: FanCurvePoints or (temperature, fan_speed) pairs

        Returns:
            The new preset
        """
        machine = self.repository.get(machine_id)
        preset = Preset(id=str(uuid.uuid4()), name=name, fan_curve=_to_points(curve))
        self._commit(replace(machine, presets=machine.presets + [preset]))
        return preset

    def update_preset(self, machine_id: str, preset_id: str, name: Optional[str] = None,
                      curve: Optional[CurveInput] = None) -> Preset:
        """Rename a preset and/or replace its curve

        Raises:
            NotFoundError: If the machine or preset does not exist
        """
        machine = self.repository.get(machine_id)
        preset = machine.find_preset(preset_id)
        if preset is None:
            raise NotFoundError(f"Preset {preset_id} not found on machine {machine.name}")

        updated = Preset(
            id=preset.id,
            name=preset.name if name is None else name,
            fan_curve=preset.fan_curve if curve is None else _to_points(curve),
        )
        presets = [updated if p.id == preset_id else p for p in machine.presets]
        self._commit(replace(machine, presets=presets))
        return updated

    def set_active_preset(self, machine_id: str, preset_id: Optional[str]) -> Machine:
        """Activate a preset, or fall back to the static speed with None

        Raises:
            NotFoundError: If the machine or preset does not exist
        """
        machine = self.repository.get(machine_id)
        if preset_id is not None and machine.find_preset(preset_id) is None:
            raise NotFoundError(f"Preset {preset_id} not found on machine {machine.name}")
        return self._commit(replace(machine, active_preset_id=preset_id))
