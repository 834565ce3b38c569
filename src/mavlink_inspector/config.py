"""
Configuration for the MAVLink Inspector.

Settings come from defaults, then an optional JSON file, then command-line
overrides, in that order.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class InspectorConfig:
    """
    Runtime configuration.

    Attributes:
        connection_url: udp://, tcp:// or serial:// link to listen on
        report_period_ms: Length of one reporting window
        poll_interval_ms: Wakeup interval of the reporting loop
        discovery_timeout_s: How long to wait for a first HEARTBEAT at startup
        clear_screen: Clear the terminal before each report
        color_enabled: Highlight message names in green
        dialect: pymavlink dialect providing the message schema
        reconnect_interval: Seconds between reconnect attempts
    """
    connection_url: Optional[str] = None
    report_period_ms: int = 1000
    poll_interval_ms: int = 100
    discovery_timeout_s: float = 3.0
    clear_screen: bool = True
    color_enabled: bool = True
    dialect: str = 'common'
    reconnect_interval: float = 5

    def validate(self) -> 'InspectorConfig':
        """
        Check value ranges.

        Raises:
            ValueError: If a setting is out of range
        """
        if self.report_period_ms <= 0:
            raise ValueError(f"report_period_ms must be positive, got {self.report_period_ms}")
        if self.poll_interval_ms <= 0:
            raise ValueError(f"poll_interval_ms must be positive, got {self.poll_interval_ms}")
        if self.poll_interval_ms > self.report_period_ms:
            raise ValueError("poll_interval_ms must not exceed report_period_ms")
        if self.discovery_timeout_s < 0:
            raise ValueError(f"discovery_timeout_s must be >= 0, got {self.discovery_timeout_s}")
        if self.reconnect_interval < 0:
            raise ValueError(f"reconnect_interval must be >= 0, got {self.reconnect_interval}")
        if not self.dialect:
            raise ValueError("dialect must not be empty")
        return self

    def update(self, **overrides) -> 'InspectorConfig':
        """Apply overrides, skipping None values (unset CLI options)."""
        known = {f.name for f in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                raise ValueError(f"Unknown configuration key: {key}")
            if value is not None:
                setattr(self, key, value)
        return self

    def to_dict(self) -> dict:
        return asdict(self)


def load_config(path: Optional[str] = None) -> InspectorConfig:
    """
    Load configuration from a JSON file.

    Args:
        path: JSON file with any subset of the InspectorConfig keys,
            or None for defaults

    Returns:
        InspectorConfig

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not valid JSON or has unknown keys
    """
    config = InspectorConfig()
    if not path:
        return config

    with open(path, 'r') as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a JSON object")

    config.update(**data)
    logger.info(f"Loaded configuration from {path}")
    return config
