"""
Base collector interface for sensor scraping.

All collectors inherit from the abstract Collector class and implement
the scrape() coroutine, which produces one exposition-text fragment for
one configured sensor instance.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..const import DEFAULT_SCRAPE_INTERVAL, DEFAULT_TIMEOUT
from ..incidents import IncidentCounter
from ..logging import get_logger

logger = get_logger("collectors")


class ScrapeError(Exception):
    """A recoverable failure while scraping a sensor."""


class TransportError(ScrapeError):
    """Connecting to, reading from or writing to the sensor failed or timed out."""


class ProtocolError(ScrapeError):
    """The sensor answered with something other than what was expected."""


class ScrapeStatus(Enum):
    """Outcome of one scrape."""

    OK = "ok"
    PARTIAL = "partial"  # Data error, readings gathered so far are kept
    FAILED = "failed"  # No data


@dataclass
class ScrapeResult:
    """Result of one scrape of a sensor instance."""

    # Exposition fragment, empty when the scrape failed
    text: str = ""

    status: ScrapeStatus = ScrapeStatus.OK

    # Error message for PARTIAL and FAILED results
    error: str | None = None

    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def ok(cls, text: str) -> "ScrapeResult":
        return cls(text=text)

    @classmethod
    def partial(cls, text: str, error: str) -> "ScrapeResult":
        return cls(text=text, status=ScrapeStatus.PARTIAL, error=error)

    @classmethod
    def failed(cls, error: str) -> "ScrapeResult":
        return cls(status=ScrapeStatus.FAILED, error=error)

    @property
    def incident(self) -> bool:
        """Whether this result counts as an incident."""
        return self.status is not ScrapeStatus.OK

    def __repr__(self) -> str:
        lines = self.text.count("\n")
        status = self.status.value if self.error is None else f"{self.status.value}: {self.error}"
        return f"ScrapeResult({lines} lines, {status})"


@dataclass
class CollectorOptions:
    """Per-instance settings handed to a collector factory."""

    incidents: IncidentCounter = field(default_factory=IncidentCounter)

    # Replaces the collector's own label set when not empty
    labels: str = ""

    # Scrape interval, None means the sensor type's suggestion
    interval: float | None = None

    # Bound for every connect/read/write
    timeout: float = DEFAULT_TIMEOUT


def format_sample(metric: str, labels: str, value: float) -> str:
    """Format one exposition line."""
    return f"{metric}{labels} {value:.2f}\n"


def format_labels(**labels: str) -> str:
    """Build a label set like {ups="name",host="h"} from keyword arguments."""
    if not labels:
        return ""
    pairs = ",".join(f'{key}="{_escape_label(value)}"' for key, value in labels.items())
    return "{" + pairs + "}"


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class Collector(ABC):
    """
    Abstract base class for sensor collectors.

    A collector is bound to one sensor instance and is driven by exactly
    one scheduling task, so scrape() is never called concurrently on the
    same object.
    """

    # Registered sensor type name (override in subclasses)
    SENSOR_TYPE: str = "unknown"

    def __init__(
        self,
        name: str,
        labels: str,
        options: CollectorOptions | None = None,
        suggested_interval: float = DEFAULT_SCRAPE_INTERVAL,
    ):
        """
        Initialize collector.

        Args:
            name: Human-readable instance name for logs
            labels: Label set attached to every sample
            options: Per-instance settings (label override, interval, timeout)
            suggested_interval: Interval used when options carry none
        """
        options = options or CollectorOptions()
        self.name = name
        self.labels = options.labels or labels
        self.incidents = options.incidents
        self.timeout = options.timeout
        self.update_interval = options.interval or suggested_interval

    @property
    def identity(self) -> str:
        """Key of this instance's fragment in the exposition store."""
        return f"{self.SENSOR_TYPE}{self.labels}"

    async def initialize(self) -> None:
        """
        Prepare the collector.

        Called once before scheduling starts. Must not raise for
        conditions a later scrape could recover from.
        """

    @abstractmethod
    async def scrape(self) -> ScrapeResult:
        """
        Scrape the sensor once.

        Performs at most one transport interaction. Raises TransportError
        or ProtocolError on failure; returns a PARTIAL result when a
        reading could not be parsed.
        """

    async def safe_scrape(self) -> ScrapeResult:
        """
        Scrape, containing every failure.

        Incidents are counted and logged here, so the caller always gets
        a result and never an exception.
        """
        try:
            result = await self.scrape()
        except ScrapeError as e:
            result = ScrapeResult.failed(str(e))
        except Exception as e:
            logger.exception(f"{self.name}: unexpected error while scraping")
            result = ScrapeResult.failed(f"unexpected error: {e}")

        if result.incident:
            self.incidents.record()
            logger.warning(f"{self.name}: {result.error}")

        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r}, {self.update_interval}s)"
