"""
Machine Configuration Models

Dataclasses for the machines under thermal control and their fan presets,
with conversion to and from the JSON records of the machine store.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..ipmi.commander import ValidationError


def _check_speed(speed: Any, what: str) -> int:
    if isinstance(speed, bool) or not isinstance(speed, (int, float)):
        raise ValidationError(f"Invalid {what} {speed!r}, must be a number")
    if not 0 <= speed <= 100:
        raise ValidationError(f"Invalid {what} {speed}%, must be 0-100")
    return int(speed)


@dataclass
class IPMIConfig:
    """BMC connection descriptor"""
    host: str
    user: str
    password: str

    def __repr__(self) -> str:
        return f"IPMIConfig(host={self.host!r}, user={self.user!r}, password='****')"


@dataclass
class FanCurvePoint:
    """One point of a fan curve: at ``temperature`` or above, run at ``fan_speed``%"""
    temperature: float
    fan_speed: int

    def __post_init__(self):
        self.fan_speed = _check_speed(self.fan_speed, "fan speed")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FanCurvePoint":
        return cls(temperature=data["temperature"], fan_speed=data["fanSpeed"])

    def to_dict(self) -> Dict[str, Any]:
        return {"temperature": self.temperature, "fanSpeed": self.fan_speed}


@dataclass
class Preset:
    """A named fan curve owned by a machine.

    Curve points are kept sorted by ascending temperature so that evaluation
    is monotonic regardless of the order they were entered in.
    """
    id: str
    name: str
    fan_curve: List[FanCurvePoint] = field(default_factory=list)

    def __post_init__(self):
        self.fan_curve = sorted(self.fan_curve, key=lambda p: p.temperature)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Preset":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            fan_curve=[FanCurvePoint.from_dict(p) for p in data.get("fanCurve", [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fanCurve": [p.to_dict() for p in self.fan_curve],
        }


@dataclass
class Machine:
    """A server whose fans are driven through its BMC.

    Attributes:
        id: Stable unique identifier
        name: Display name
        enabled: Whether the machine is under scheduled control
        cron: Schedule expression for apply cycles
        ipmi_config: BMC connection descriptor
        fan_speed: Static fan speed used when no preset is active (0-100)
        active_preset_id: ID of the active preset, or None
        presets: Presets owned by this machine
    """
    id: str
    name: str
    enabled: bool
    cron: str
    ipmi_config: IPMIConfig
    fan_speed: int = 20
    active_preset_id: Optional[str] = None
    presets: List[Preset] = field(default_factory=list)

    def __post_init__(self):
        self.fan_speed = _check_speed(self.fan_speed, "fan speed")

    def find_preset(self, preset_id: Optional[str]) -> Optional[Preset]:
        """Get an owned preset by ID, or None if there is no such preset"""
        for preset in self.presets:
            if preset.id == preset_id:
                return preset
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Machine":
        ipmi = data.get("ipmiConfig") or {}
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            enabled=bool(data.get("enabled", False)),
            cron=data.get("cron", ""),
            ipmi_config=IPMIConfig(
                host=ipmi.get("host", ""),
                user=ipmi.get("user", ""),
                password=ipmi.get("password", ""),
            ),
            fan_speed=data.get("fanSpeed", 20),
            active_preset_id=data.get("activePresetId"),
            presets=[Preset.from_dict(p) for p in data.get("presets", [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "cron": self.cron,
            "ipmiConfig": {
                "host": self.ipmi_config.host,
                "user": self.ipmi_config.user,
                "password": self.ipmi_config.password,
            },
            "fanSpeed": self.fan_speed,
            "activePresetId": self.active_preset_id,
            "presets": [p.to_dict() for p in self.presets],
        }
