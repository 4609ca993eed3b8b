"""
Process metrics collector.

Reports resource usage of one process, by default the exporter itself.
Options select the process:
- empty: this process
- a number: exact PID
- pidfile:PATH: PID read from a file on every scrape
- anything else: exact process name (comm), first match

Collects:
- CPU time (user + system)
- Resident and virtual memory
- Open file descriptors
- Thread count
- Start time
"""

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

from ..logging import get_logger
from .base import (
    Collector,
    CollectorOptions,
    ScrapeResult,
    TransportError,
    format_labels,
    format_sample,
)

if TYPE_CHECKING:
    from ..registry import CollectorRegistry

logger = get_logger("collectors.process")

SUGGESTED_INTERVAL = 15.0

DESCRIPTION = """\
Process reports CPU, memory, file descriptor and thread usage of one
process. Options are empty (the exporter itself), a PID, pidfile:PATH or
a process name:

  sensor-exporter process,,nginx"""

PROCESS_METRICS: dict[str, tuple[str, str]] = {
    "process_cpu_seconds_total": ("counter", "Total user and system CPU time spent (s)"),
    "process_resident_memory_bytes": ("gauge", "Resident memory size (bytes)"),
    "process_virtual_memory_bytes": ("gauge", "Virtual memory size (bytes)"),
    "process_open_fds": ("gauge", "Number of open file descriptors"),
    "process_threads": ("gauge", "Number of OS threads"),
    "process_start_time_seconds": ("gauge", "Start time of the process since unix epoch (s)"),
}

TYPE_LINES = [f"# TYPE {metric} {kind}" for metric, (kind, _) in PROCESS_METRICS.items()]
HELP_LINES = [f"# HELP {metric} {help_text}" for metric, (_, help_text) in PROCESS_METRICS.items()]

PIDFILE_PREFIX = "pidfile:"


def find_process(target: str) -> psutil.Process:
    """
    Find the process described by the collector options.

    Raises:
        psutil.NoSuchProcess: If nothing matches
    """
    if not target:
        return psutil.Process(os.getpid())

    if target.isdigit():
        return psutil.Process(int(target))

    if target.startswith(PIDFILE_PREFIX):
        pidfile = target[len(PIDFILE_PREFIX) :]
        try:
            pid = int(Path(pidfile).read_text().strip())
        except (OSError, ValueError) as e:
            raise psutil.NoSuchProcess(0, msg=f"cannot read pid from {pidfile}: {e}") from e
        return psutil.Process(pid)

    for proc in psutil.process_iter(["name"]):
        if proc.info["name"] == target:
            return proc

    raise psutil.NoSuchProcess(0, name=target, msg=f"no process named {target!r}")


def read_process_metrics(target: str) -> dict[str, float]:
    """Read all metrics of the target process (blocking)."""
    proc = find_process(target)

    with proc.oneshot():
        cpu = proc.cpu_times()
        mem = proc.memory_info()
        metrics = {
            "process_cpu_seconds_total": cpu.user + cpu.system,
            "process_resident_memory_bytes": float(mem.rss),
            "process_virtual_memory_bytes": float(mem.vms),
            "process_threads": float(proc.num_threads()),
            "process_start_time_seconds": proc.create_time(),
        }
        try:
            metrics["process_open_fds"] = float(proc.num_fds())
        except (AttributeError, psutil.AccessDenied):
            # num_fds() is not available on Windows
            pass

    return metrics


class ProcessCollector(Collector):
    """Collector for the resource usage of a single process."""

    SENSOR_TYPE = "process"

    def __init__(self, target: str = "", options: CollectorOptions | None = None):
        """
        Initialize process collector.

        Args:
            target: Process selector (see module docstring)
            options: Per-instance settings
        """
        process_name = target or "self"
        if target.startswith(PIDFILE_PREFIX):
            process_name = Path(target[len(PIDFILE_PREFIX) :]).stem

        super().__init__(
            name=f"process {process_name}",
            labels=format_labels(process=process_name),
            options=options,
            suggested_interval=SUGGESTED_INTERVAL,
        )
        self.target = target

    @classmethod
    def create(cls, opts: str, options: CollectorOptions) -> "ProcessCollector":
        """Factory registered for the "process" sensor type."""
        return cls(opts.strip(), options=options)

    async def scrape(self) -> ScrapeResult:
        """Read process metrics in a worker thread."""
        try:
            metrics = await asyncio.wait_for(
                asyncio.to_thread(read_process_metrics, self.target),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise TransportError(f"reading process metrics timed out after {self.timeout}s") from None
        except psutil.NoSuchProcess as e:
            raise TransportError(f"process not found: {e}") from e
        except psutil.AccessDenied as e:
            raise TransportError(f"access denied: {e}") from e

        text = "".join(
            format_sample(metric, self.labels, metrics[metric])
            for metric in PROCESS_METRICS
            if metric in metrics
        )
        return ScrapeResult.ok(text)


def register(registry: "CollectorRegistry") -> None:
    """Register the "process" sensor type."""
    registry.register(
        ProcessCollector.SENSOR_TYPE,
        ProcessCollector.create,
        SUGGESTED_INTERVAL,
        TYPE_LINES,
        HELP_LINES,
        DESCRIPTION,
    )
