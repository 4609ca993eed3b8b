"""
Configuration schema with dataclasses for validation and type safety.
"""

from dataclasses import dataclass, field

from ..const import DEFAULT_LISTEN, DEFAULT_PATH, DEFAULT_PORT, DEFAULT_TIMEOUT


@dataclass(frozen=True)
class SensorSpec:
    """
    One configured sensor instance.

    Parsed from "type,labels,opts", for example:
        upsc,,myups@nas.local:3493   -> SensorSpec("upsc", "", "myups@nas.local:3493")
        upsc,site="lab",myups        -> SensorSpec("upsc", '{site="lab"}', "myups")
    """

    type: str
    labels: str = ""
    opts: str = ""

    def __str__(self) -> str:
        return f"{self.type},{self.labels},{self.opts}"


@dataclass
class HttpConfig:
    """HTTP exposition endpoint configuration."""

    listen: str = DEFAULT_LISTEN
    port: int = DEFAULT_PORT
    path: str = DEFAULT_PATH

    def __post_init__(self) -> None:
        if not self.path.startswith("/"):
            self.path = "/" + self.path


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "warning"  # debug, info, warning, error
    file: str | None = None  # Log file path
    file_level: str = "debug"
    colors: bool = True


@dataclass
class Config:
    """Root configuration."""

    sensors: list[SensorSpec] = field(default_factory=list)
    http: HttpConfig = field(default_factory=HttpConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Bound for every connect/read/write of a scrape
    timeout: float = DEFAULT_TIMEOUT

    # Interval override for every sensor (None = each sensor type's suggestion)
    scrape_interval: float | None = None
