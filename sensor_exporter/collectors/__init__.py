"""
Sensor collectors.

Adding a sensor type: implement a Collector subclass with a create()
factory in its own module, give the module a register(registry)
function and list it in SENSOR_MODULES.
"""

from ..registry import CollectorRegistry
from . import process, upsc
from .base import (
    Collector,
    CollectorOptions,
    ProtocolError,
    ScrapeError,
    ScrapeResult,
    ScrapeStatus,
    TransportError,
)
from .process import ProcessCollector
from .upsc import UpscCollector

SENSOR_MODULES = [upsc, process]


def register_all(registry: CollectorRegistry) -> None:
    """Register every built-in sensor type."""
    for module in SENSOR_MODULES:
        module.register(registry)


def build_registry() -> CollectorRegistry:
    """Create a frozen registry holding all built-in sensor types."""
    registry = CollectorRegistry()
    register_all(registry)
    registry.freeze()
    return registry


__all__ = [
    "Collector",
    "CollectorOptions",
    "ProcessCollector",
    "ProtocolError",
    "ScrapeError",
    "ScrapeResult",
    "ScrapeStatus",
    "TransportError",
    "UpscCollector",
    "build_registry",
    "register_all",
]
