"""
Process-wide counter of recoverable scrape failures.
"""

import threading

from .const import INCIDENTS_METRIC


class IncidentCounter:
    """
    Monotonically increasing count of scrape incidents.

    Shared by every collector instance and read by the exposition store
    on each request. Collectors may call record() from worker threads.
    """

    def __init__(self, metric_name: str = INCIDENTS_METRIC):
        self.metric_name = metric_name
        self._value = 0
        self._lock = threading.Lock()

    def record(self) -> int:
        """Count one incident and return the new total."""
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def metadata_lines(self) -> list[str]:
        """HELP and TYPE lines for the counter family."""
        return [
            f"# HELP {self.metric_name} Recoverable scrape failures since start",
            f"# TYPE {self.metric_name} counter",
        ]

    def exposition(self) -> str:
        """Metadata and current value as exposition text."""
        lines = self.metadata_lines()
        lines.append(f"{self.metric_name} {self.value}")
        return "\n".join(lines) + "\n"

    def __repr__(self) -> str:
        return f"IncidentCounter({self.value})"
