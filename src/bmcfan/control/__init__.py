"""
Control package for bmcfan

This package provides modules for fan speed control logic,
including fan curves, apply cycles and job scheduling.
"""

from .curve import FanCurve, PresetCurve, evaluate_curve
from .manager import ApplyManager
from .scheduler import MachineScheduler

__all__ = [
    'FanCurve',
    'PresetCurve',
    'evaluate_curve',
    'ApplyManager',
    'MachineScheduler'
]
