"""
Main application orchestrator.

Handles:
- Collector construction from sensor specifications
- Scrape scheduling
- HTTP exposition
- Graceful shutdown
"""

import asyncio
import signal

from .collectors import build_registry
from .collectors.base import Collector, CollectorOptions
from .config.loader import ConfigError, ConfigLoader
from .config.schema import Config
from .exposition import ExpositionStore
from .incidents import IncidentCounter
from .logging import get_logger
from .registry import CollectorRegistry, SensorNotFoundError
from .scheduler import Scheduler
from .server import ExpositionServer

logger = get_logger("app")


class Application:
    """
    Main application class.

    Builds one collector per configured sensor, schedules them and serves
    the aggregated readings over HTTP.
    """

    def __init__(self, config: Config, registry: CollectorRegistry | None = None):
        """
        Initialize application.

        Args:
            config: Application configuration
            registry: Sensor types (all built-in types if None)
        """
        self.config = config
        self.registry = registry or build_registry()

        self.incidents = IncidentCounter()
        self.store = ExpositionStore(self.incidents)
        self.scheduler = Scheduler(self.store)
        self.server = ExpositionServer(self.store, config.http)

        self.collectors: list[Collector] = []

        self._shutdown_event = asyncio.Event()

    def create_collectors(self) -> list[Collector]:
        """
        Create and schedule all configured collectors.

        Raises:
            ConfigError: If a sensor type is unknown or its options are invalid
        """
        collectors = []

        for spec in self.config.sensors:
            try:
                descriptor = self.registry.resolve(spec.type)
            except SensorNotFoundError as e:
                raise ConfigError(str(e)) from e

            options = CollectorOptions(
                incidents=self.incidents,
                labels=spec.labels,
                interval=self.config.scrape_interval,
                timeout=self.config.timeout,
            )
            collector = descriptor.create(spec.opts, options)

            self.store.add_metadata(descriptor.type_lines, descriptor.help_lines)
            self.scheduler.add(collector)
            collectors.append(collector)
            logger.info(f"Added sensor: {collector.name} {collector.labels}")

        self.collectors = collectors
        return collectors

    async def _initialize_collectors(self) -> None:
        """Give every collector a chance to probe its sensor."""
        results = await asyncio.gather(
            *(collector.initialize() for collector in self.collectors),
            return_exceptions=True,
        )
        for collector, result in zip(self.collectors, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to initialize collector {collector.name}: {result}")

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

    def _signal_handler(self) -> None:
        """Handle shutdown signals."""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def start(self) -> None:
        """Create collectors, start scraping and serving."""
        logger.info("Starting Sensor Exporter")

        if not self.collectors:
            self.create_collectors()
        logger.info(f"Created {len(self.collectors)} collectors")

        await self._initialize_collectors()
        await self.server.start()
        self.scheduler.start()

        logger.info("Sensor Exporter started successfully")

    async def stop(self) -> None:
        """Stop scraping and serving."""
        logger.info("Stopping Sensor Exporter")
        await self.scheduler.stop()
        await self.server.stop()
        logger.info("Sensor Exporter stopped")

    async def run(self) -> None:
        """Run the application until shutdown."""
        await self.start()
        self._setup_signal_handlers()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    async def scrape_once(self) -> str:
        """Scrape every sensor once and return the exposition document."""
        if not self.collectors:
            self.create_collectors()
        await self.scheduler.run_once()
        return self.store.snapshot()


async def run_app(config: Config, once: bool = False) -> str | None:
    """
    Validate configuration and run the application.

    Args:
        config: Application configuration
        once: Scrape a single time and return the document instead of serving

    Returns:
        The exposition document when once is set
    """
    registry = build_registry()

    loader = ConfigLoader()
    for warning in loader.validate(config, registry.names()):
        logger.warning(f"Config warning: {warning}")

    app = Application(config, registry)
    app.create_collectors()

    if once:
        return await app.scrape_once()

    await app.run()
    return None
