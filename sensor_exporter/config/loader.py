"""
Configuration loader for sensor specifications.

Sensors are given as "type,labels,opts" strings, on the command line or
one per line in a file:

    # UPS in the server room
    upsc,,rack-ups@nas.local
    upsc,site="lab",bench-ups@10.0.0.7:3493
    process,,
"""

import re
from collections.abc import Iterable
from pathlib import Path

from .schema import Config, SensorSpec


class ConfigError(Exception):
    """Exception raised for configuration errors."""

    pass


# key="value" pairs, separated by commas
LABEL_PAIR = r'[a-zA-Z_][a-zA-Z0-9_]*="(?:[^"\\]|\\.)*"'
LABELS_RE = re.compile(rf"^{LABEL_PAIR}(?:,{LABEL_PAIR})*$")

SENSOR_TYPE_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_-]*$")


def normalize_labels(labels: str) -> str:
    """
    Normalize a label override to a braced label set.

    Args:
        labels: 'site="lab"', '{site="lab"}' or empty

    Returns:
        '{site="lab"}', or "" for an empty override

    Raises:
        ConfigError: If the labels are not key="value" pairs
    """
    labels = labels.strip()
    if labels.startswith("{") and labels.endswith("}"):
        labels = labels[1:-1].strip()
    if not labels:
        return ""
    if not LABELS_RE.match(labels):
        raise ConfigError(f'Invalid label set {labels!r}, expected key="value"[,key="value"...]')
    return "{" + labels + "}"


def parse_sensor_spec(text: str) -> SensorSpec:
    """
    Parse a "type,labels,opts" sensor specification.

    The type ends at the first comma and the options start after the
    last one, so label sets may contain commas.

    Raises:
        ConfigError: If the specification is malformed
    """
    text = text.strip()
    first = text.find(",")
    last = text.rfind(",")
    if first == -1 or first == last:
        raise ConfigError(f"Invalid sensor specification {text!r}, expected type,labels,opts")

    sensor_type = text[:first].strip()
    if not SENSOR_TYPE_RE.match(sensor_type):
        raise ConfigError(f"Invalid sensor type {sensor_type!r} in {text!r}")

    return SensorSpec(
        type=sensor_type,
        labels=normalize_labels(text[first + 1 : last]),
        opts=text[last + 1 :].strip(),
    )


class ConfigLoader:
    """
    Builds the configuration from command-line specs and sensor files.

    Usage:
        loader = ConfigLoader()
        specs = loader.load_args(["upsc,,myups@nas"])
        specs += loader.load_file("/etc/sensor-exporter/sensors.conf")
    """

    def load_args(self, specs: Iterable[str]) -> list[SensorSpec]:
        """Parse sensor specifications given as separate strings."""
        return [parse_sensor_spec(spec) for spec in specs]

    def load_string(self, source: str, filename: str = "<string>") -> list[SensorSpec]:
        """
        Parse a sensor file body, one specification per line.

        Blank lines and lines starting with '#' are ignored.

        Raises:
            ConfigError: With file name and line number of the first bad line
        """
        specs = []
        for lineno, line in enumerate(source.splitlines(), start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                specs.append(parse_sensor_spec(line))
            except ConfigError as e:
                raise ConfigError(f"{filename}, line {lineno}: {e}") from e
        return specs

    def load_file(self, path: str | Path) -> list[SensorSpec]:
        """
        Parse a sensor file.

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        path = Path(path)

        if not path.exists():
            raise ConfigError(f"Sensor file not found: {path}")

        if not path.is_file():
            raise ConfigError(f"Not a file: {path}")

        try:
            source = path.read_text()
        except OSError as e:
            raise ConfigError(f"Failed to read sensor file {path}: {e}") from e

        return self.load_string(source, str(path))

    def validate(self, config: Config, known_types: Iterable[str] | None = None) -> list[str]:
        """
        Check the configuration and return a list of warnings.

        Args:
            config: Configuration to validate
            known_types: Registered sensor type names, if available

        Returns:
            List of warning messages (empty if no issues)
        """
        warnings = []

        if not config.sensors:
            warnings.append("No sensors configured")

        seen: set[SensorSpec] = set()
        for spec in config.sensors:
            if spec in seen:
                warnings.append(f"Sensor '{spec}' is configured more than once")
            seen.add(spec)

        if known_types is not None:
            known = set(known_types)
            for spec in config.sensors:
                if spec.type not in known:
                    warnings.append(f"Sensor '{spec}' uses unknown type '{spec.type}'")

        if config.scrape_interval is not None and config.scrape_interval <= 0:
            warnings.append(f"Scrape interval must be positive, got {config.scrape_interval}")

        if config.timeout <= 0:
            warnings.append(f"Timeout must be positive, got {config.timeout}")

        return warnings
