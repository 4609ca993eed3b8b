"""
Registry of sensor types.

Each collector module registers a descriptor during the initialization
phase:

    def register(registry: CollectorRegistry) -> None:
        registry.register("upsc", UpscCollector.create, 10.0, TYPE_LINES, HELP_LINES, DESCRIPTION)

After initialization the registry is frozen and only read.
"""

import threading
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .logging import get_logger

if TYPE_CHECKING:
    from .collectors.base import Collector, CollectorOptions

logger = get_logger("registry")

CollectorFactory = Callable[[str, "CollectorOptions"], "Collector"]


class RegistryError(Exception):
    """Exception raised when a sensor type cannot be registered."""


class SensorNotFoundError(LookupError):
    """Exception raised when resolving an unknown sensor type."""

    def __init__(self, name: str, available: Sequence[str]):
        self.name = name
        self.available = list(available)
        super().__init__(f"Unknown sensor type '{name}'. Available: {', '.join(self.available)}")


@dataclass(frozen=True)
class CollectorDescriptor:
    """Registered metadata for one sensor type."""

    name: str
    factory: CollectorFactory
    interval: float
    type_lines: tuple[str, ...]
    help_lines: tuple[str, ...]
    description: str = ""

    def create(self, opts: str, options: "CollectorOptions") -> "Collector":
        """Construct a collector instance from its options string."""
        return self.factory(opts, options)


class CollectorRegistry:
    """Append-only table mapping sensor type names to descriptors."""

    def __init__(self):
        self._descriptors: dict[str, CollectorDescriptor] = {}
        self._frozen = False
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        factory: CollectorFactory,
        interval: float,
        type_lines: Sequence[str],
        help_lines: Sequence[str],
        description: str = "",
    ) -> CollectorDescriptor:
        """
        Register a sensor type.

        Args:
            name: Unique sensor type name
            factory: Builds a collector from (opts, options)
            interval: Suggested scrape interval in seconds
            type_lines: "# TYPE ..." lines for every metric the type emits
            help_lines: "# HELP ..." lines for every metric the type emits
            description: Human-readable usage description

        Returns:
            The registered descriptor

        Raises:
            RegistryError: If the name is taken or the registry is frozen
        """
        descriptor = CollectorDescriptor(
            name=name,
            factory=factory,
            interval=interval,
            type_lines=tuple(type_lines),
            help_lines=tuple(help_lines),
            description=description,
        )

        with self._lock:
            if self._frozen:
                logger.error(f"Cannot register sensor type '{name}': registry is frozen")
                raise RegistryError(f"Registry is frozen, cannot register '{name}'")
            if name in self._descriptors:
                logger.error(f"Sensor type '{name}' is already registered")
                raise RegistryError(f"Sensor type '{name}' is already registered")
            self._descriptors[name] = descriptor

        logger.debug(f"Registered sensor type '{name}' (interval: {interval}s)")
        return descriptor

    def resolve(self, name: str) -> CollectorDescriptor:
        """
        Look up a sensor type.

        Raises:
            SensorNotFoundError: If no such type is registered
        """
        with self._lock:
            descriptor = self._descriptors.get(name)
            if descriptor is None:
                raise SensorNotFoundError(name, sorted(self._descriptors))
            return descriptor

    def freeze(self) -> None:
        """End the registration phase."""
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._descriptors)

    def descriptors(self) -> list[CollectorDescriptor]:
        with self._lock:
            return [self._descriptors[name] for name in sorted(self._descriptors)]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._descriptors

    def __len__(self) -> int:
        with self._lock:
            return len(self._descriptors)

    def __iter__(self) -> Iterator[CollectorDescriptor]:
        return iter(self.descriptors())
