"""
Configuration Module

Loads the YAML application configuration and fills in defaults for every
setting the file leaves out.
"""

import copy
import logging
import os
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/bmcfan/config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "ipmi": {
        "binary": "ipmitool",
        "interface": "lanplus",
        "timeout": 30,
    },
    "store": {
        "path": "/var/lib/bmcfan/machines.json",
        "reload_interval": 10,
    },
    "control": {
        "baseline_speed": 20,
        "temperature_sensor": "Temp",
    },
    "scheduler": {
        "timezone": None,
    },
    "logging": {
        "level": "INFO",
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML file

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration with defaults applied

    Raises:
        ValueError: If the file is not a YAML mapping
    """
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration {config_path} must be a mapping")

    config = _merge(DEFAULT_CONFIG, data)

    baseline = config["control"]["baseline_speed"]
    if not 0 <= baseline <= 100:
        raise ValueError(f"Invalid baseline_speed {baseline}%, must be 0-100")

    logger.debug(f"Loaded configuration from {config_path}")
    return config


def write_default_config(config_path: str) -> None:
    """Write the default configuration to a file, creating its directory"""
    directory = os.path.dirname(config_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.safe_dump(DEFAULT_CONFIG, f, default_flow_style=False, sort_keys=False)
    logger.info(f"Wrote default configuration to {config_path}")
