"""Machine configuration: models and the file-backed machine store."""

from .models import IPMIConfig, FanCurvePoint, Preset, Machine
from .repository import MachineRepository, NotFoundError

__all__ = [
    'IPMIConfig',
    'FanCurvePoint',
    'Preset',
    'Machine',
    'MachineRepository',
    'NotFoundError',
]
