"""
Configuration: sensor specifications, HTTP endpoint and logging settings.
"""

from .loader import ConfigError, ConfigLoader, normalize_labels, parse_sensor_spec
from .schema import Config, HttpConfig, LoggingConfig, SensorSpec

__all__ = [
    "Config",
    "ConfigError",
    "ConfigLoader",
    "HttpConfig",
    "LoggingConfig",
    "SensorSpec",
    "normalize_labels",
    "parse_sensor_spec",
]
