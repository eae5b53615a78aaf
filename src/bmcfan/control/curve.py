"""Fan curve implementations."""

import math
from typing import Iterable, List, Optional
import logging

from ..machine.models import FanCurvePoint

logger = logging.getLogger(__name__)

# Fan speed used when no curve point applies
DEFAULT_BASELINE_SPEED = 20


def evaluate_curve(max_temperature: Optional[float], curve: Iterable[FanCurvePoint],
                   baseline: int = DEFAULT_BASELINE_SPEED) -> int:
    """Get the fan speed a curve prescribes for a temperature.

    Points are scanned in the order given and every point whose threshold is
    at or below the temperature overwrites the result, so the last qualifying
    point wins. Curves must be in ascending temperature order for the result
    to rise with temperature.

    Args:
        max_temperature: Hottest sensor temperature, or None if there is none
        curve: Fan curve points
        baseline: Speed returned when no point qualifies

    Returns:
        Fan speed percentage

    Examples:
        >>> curve = [FanCurvePoint(30, 10), FanCurvePoint(40, 30), FanCurvePoint(50, 50)]
        >>> evaluate_curve(45, curve)
        30
        >>> evaluate_curve(25, curve)
        20
    """
    if max_temperature is None or not math.isfinite(max_temperature):
        return baseline

    speed = baseline
    for point in curve:
        if point.temperature <= max_temperature:
            speed = point.fan_speed
    return speed


class FanCurve:
    """Base class for fan speed curves."""

    def get_speed(self, temperature: Optional[float]) -> int:
        """Get fan speed percentage for a temperature.

        Args:
            temperature: Temperature in Celsius

        Returns:
            Fan speed percentage (0-100)
        """
        raise NotImplementedError


class PresetCurve(FanCurve):
    """Step function over a preset's temperature/speed points."""

    def __init__(self, points: List[FanCurvePoint], baseline: int = DEFAULT_BASELINE_SPEED):
        """Initialize with curve points.

        Args:
            points: Fan curve points, evaluated in the given order
            baseline: Fan speed percentage below the first threshold (0-100)
        """
        if not 0 <= baseline <= 100:
            raise ValueError(f"Invalid baseline {baseline}%, must be 0-100")

        self.points = list(points)
        self.baseline = baseline

    def get_speed(self, temperature: Optional[float]) -> int:
        speed = evaluate_curve(temperature, self.points, self.baseline)
        logger.debug(f"Curve: {temperature}°C -> {speed}%")
        return speed
