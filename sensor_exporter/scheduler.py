"""
Scrape scheduling.

Every collector instance gets its own asyncio task that scrapes on a
fixed grid of ticks. A slow or hanging sensor only delays its own task.
"""

import asyncio
from dataclasses import dataclass

from .collectors.base import Collector, ScrapeResult
from .exposition import ExpositionStore
from .logging import get_logger

logger = get_logger("scheduler")


@dataclass
class ScheduledCollector:
    """A collector instance and its scheduling state."""

    collector: Collector
    interval: float
    task: asyncio.Task | None = None
    scrapes: int = 0
    skipped_ticks: int = 0

    @property
    def name(self) -> str:
        return self.collector.name


class Scheduler:
    """
    Drives collector instances and stores their fragments.

    Scrapes of one instance are strictly sequential: a tick that falls
    while the previous scrape is still running is skipped. Failed scrapes
    are retried on the next regular tick, without backoff.
    """

    def __init__(self, store: ExpositionStore):
        self.store = store
        self._entries: list[ScheduledCollector] = []
        self._running = False

    def add(self, collector: Collector, interval: float | None = None) -> ScheduledCollector:
        """
        Add a collector instance.

        Args:
            collector: Collector to drive
            interval: Scrape interval in seconds (collector's own if None)

        Returns:
            The scheduling entry
        """
        interval = interval or collector.update_interval
        if interval <= 0:
            raise ValueError(f"Scrape interval must be positive, got {interval}")

        if not self.store.register(collector.identity):
            logger.warning(
                f"{collector.name}: another sensor already reports as "
                f"{collector.identity}, their readings will overwrite each other"
            )

        entry = ScheduledCollector(collector=collector, interval=interval)
        self._entries.append(entry)

        if self._running:
            entry.task = self._spawn(entry)

        return entry

    @property
    def entries(self) -> list[ScheduledCollector]:
        return list(self._entries)

    @property
    def running(self) -> bool:
        return self._running

    async def scrape(self, entry: ScheduledCollector) -> ScrapeResult:
        """Scrape one instance and store its fragment."""
        result = await entry.collector.safe_scrape()
        self.store.update(entry.collector.identity, result.text)
        entry.scrapes += 1
        logger.debug(f"{entry.name}: {result!r}")
        return result

    async def run_once(self) -> list[ScrapeResult]:
        """Scrape every instance once, concurrently."""
        return await asyncio.gather(*(self.scrape(entry) for entry in self._entries))

    async def _run(self, entry: ScheduledCollector) -> None:
        """Scrape loop of a single instance."""
        logger.info(f"Starting collector: {entry.name} (interval: {entry.interval}s)")
        loop = asyncio.get_running_loop()
        next_tick = loop.time()

        while self._running:
            try:
                await self.scrape(entry)
            except Exception as e:
                logger.error(f"Error in collector {entry.name}: {e}")

            next_tick += entry.interval
            now = loop.time()
            if now >= next_tick:
                missed = int((now - next_tick) // entry.interval) + 1
                entry.skipped_ticks += missed
                next_tick += missed * entry.interval
                logger.debug(f"{entry.name}: scrape overran, skipped {missed} tick(s)")

            await asyncio.sleep(next_tick - now)

    def _spawn(self, entry: ScheduledCollector) -> asyncio.Task:
        return asyncio.create_task(self._run(entry), name=f"scrape {entry.name}")

    def start(self) -> None:
        """Start one task per instance. Must be called from a running loop."""
        if self._running:
            return
        self._running = True
        for entry in self._entries:
            entry.task = self._spawn(entry)

    async def stop(self) -> None:
        """Cancel all scrape tasks and wait for them to finish."""
        self._running = False

        tasks = [entry.task for entry in self._entries if entry.task is not None]
        for task in tasks:
            task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for entry in self._entries:
            entry.task = None
