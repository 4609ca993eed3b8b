"""
Pytest configuration and fixtures.
"""

import asyncio
import contextlib
from collections.abc import Callable

import pytest

from sensor_exporter.collectors.base import (
    Collector,
    CollectorOptions,
    ScrapeResult,
    TransportError,
)
from sensor_exporter.incidents import IncidentCounter


def var_list(ups: str, variables: dict[str, str]) -> list[str]:
    """Well-formed upsd answer to LIST VAR for the given variables."""
    lines = [f"BEGIN LIST VAR {ups}"]
    lines += [f'VAR {ups} {name} "{value}"' for name, value in variables.items()]
    lines.append(f"END LIST VAR {ups}")
    return lines


class FakeUpsd:
    """
    Minimal upsd stand-in on a local TCP port.

    The responder gets the UPS name from each LIST VAR request and returns
    the lines to send back, or None to stay silent until the client hangs up.
    """

    def __init__(self, responder: Callable[[str], list[str] | None], delay: float = 0.0):
        self.responder = responder
        self.delay = delay
        self.requests: list[str] = []
        self.port = 0
        self._server: asyncio.AbstractServer | None = None
        self._writers: set[asyncio.StreamWriter] = set()

    async def __aenter__(self) -> "FakeUpsd":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, *exc) -> None:
        for writer in list(self._writers):
            writer.close()
        self._server.close()
        await self._server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.add(writer)
        try:
            request = (await reader.readline()).decode().strip()
            self.requests.append(request)
            ups = request.removeprefix("LIST VAR ")

            lines = self.responder(ups)
            if lines is None:
                await reader.read()
                return

            for line in lines:
                writer.write(f"{line}\n".encode())
                if self.delay:
                    await writer.drain()
                    await asyncio.sleep(self.delay)
            await writer.drain()
        except ConnectionError:
            # Client gave up early, as some tests intend
            pass
        finally:
            self._writers.discard(writer)
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()


@pytest.fixture
def incidents() -> IncidentCounter:
    return IncidentCounter()


@pytest.fixture
def options(incidents: IncidentCounter) -> CollectorOptions:
    """Collector options with a short timeout."""
    return CollectorOptions(incidents=incidents, timeout=0.5)


class StubCollector(Collector):
    """Collector returning canned fragments, optionally slowly."""

    SENSOR_TYPE = "stub"

    def __init__(
        self,
        name: str,
        text: str = "",
        delay: float = 0.0,
        fail: bool = False,
        options: CollectorOptions | None = None,
    ):
        super().__init__(name, f'{{stub="{name}"}}', options, suggested_interval=0.05)
        self.text = text
        self.delay = delay
        self.fail = fail
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def scrape(self) -> ScrapeResult:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                raise TransportError("sensor unreachable")
            return ScrapeResult.ok(self.text)
        finally:
            self.active -= 1
