"""
UPS collector using the Network UPS Tools (NUT) upsd protocol.

Each scrape opens a TCP connection to upsd, asks for all variables of
one UPS and translates the known ones into gauges:

    -> LIST VAR myups
    <- BEGIN LIST VAR myups
    <- VAR myups battery.charge "100"
    <- VAR myups ups.status "OL"
    <- END LIST VAR myups

Protocol reference:
http://networkupstools.org/docs/developer-guide.chunked/ar01s09.html#_command_reference
"""

import asyncio
import contextlib
import re
from typing import TYPE_CHECKING

from ..config.loader import ConfigError
from ..logging import get_logger
from .base import (
    Collector,
    CollectorOptions,
    ProtocolError,
    ScrapeResult,
    TransportError,
    format_labels,
    format_sample,
)

if TYPE_CHECKING:
    from ..registry import CollectorRegistry

logger = get_logger("collectors.upsc")

UPSD_PORT = 3493
DEFAULT_HOST = "localhost"
SUGGESTED_INTERVAL = 10.0

DESCRIPTION = """\
Upsc reads UPS variables from a NUT upsd daemon. Options are UPS or
UPS@HOST[:PORT]; HOST defaults to localhost and PORT to 3493:

  sensor-exporter upsc,,UPS@HOST"""

# NUT variable -> (metric name, help text). Variables not listed here are
# ignored, so adding a reading only takes a new entry.
UPSC_METRICS: dict[str, tuple[str, str]] = {
    "battery.charge": ("upsc_battery_charge", "Battery charge (percent)"),
    "battery.charge.low": ("upsc_battery_charge_low", "Low battery charge threshold (percent)"),
    "battery.voltage": ("upsc_battery_voltage", "Battery voltage (V)"),
    "battery.voltage.high": ("upsc_battery_voltage_high", "Battery voltage high (V)"),
    "battery.voltage.low": ("upsc_battery_voltage_low", "Battery voltage low (V)"),
    "battery.voltage.nominal": (
        "upsc_battery_voltage_nominal",
        "Battery voltage nominal / expected (V)",
    ),
    "input.frequency": ("upsc_input_frequency", "Input line frequency (Hz)"),
    "input.frequency.nominal": (
        "upsc_input_frequency_nominal",
        "Input line frequency nominal / expected (Hz)",
    ),
    "input.voltage": ("upsc_input_voltage", "Input voltage (V)"),
    "input.voltage.fault": ("upsc_input_voltage_fault", "Input voltage fault (V)"),
    "input.voltage.nominal": ("upsc_input_voltage_nominal", "Input voltage nominal / expected (V)"),
    "input.current": ("upsc_input_current", "Input current (A)"),
    "output.voltage": ("upsc_output_voltage", "Output voltage (V)"),
    "ups.beeper.status": ("upsc_ups_beeper_enabled", "Beeper is enabled (bool)"),
    "ups.delay.shutdown": ("upsc_ups_delay_shutdown", "Wait number of seconds before shutdown (s)"),
    "ups.delay.start": ("upsc_ups_delay_start", "Start delay after number of seconds (s)"),
    "ups.load": ("upsc_ups_load", "Load on UPS (percent)"),
    "ups.status": ("upsc_ups_online", "UPS is online (bool)"),
    "ups.temperature": ("upsc_ups_temperature", "UPS temperature (degrees C)"),
}

VAR_MAPPING = {var: metric for var, (metric, _) in UPSC_METRICS.items()}
TYPE_LINES = [f"# TYPE {metric} gauge" for metric, _ in UPSC_METRICS.values()]
HELP_LINES = [f"# HELP {metric} {help_text}" for metric, help_text in UPSC_METRICS.values()]

# Symbolic values that are not numbers themselves
STRING_MAPPING: dict[str, float] = {
    "enabled": 1,
    "disabled": 0,
    "OL": 2,  # online, charged
    "OL CHRG": 2,  # online, charging
    "FSD OL": 1.5,  # online, forced shutdown
    "OB": 1,  # on battery
    "OB DISCHRG": 1,
    "FSD OB": 0.5,  # on battery, forced shutdown
    "LB": 0,  # low battery
    "OB LB": 0,
}


def parse_reading(raw: str) -> float:
    """
    Convert a raw upsd value to a number.

    Raises:
        ValueError: If the value is neither symbolic nor numeric
    """
    if raw in STRING_MAPPING:
        return STRING_MAPPING[raw]
    return float(raw)


def parse_target(opts: str) -> tuple[str, str, int, str]:
    """
    Parse "UPS" or "UPS@HOST[:PORT]".

    Returns:
        Tuple of (ups, host, port, labels). The port never appears in the
        labels; the host only when it was given.

    Raises:
        ConfigError: If the options are malformed
    """
    parts = opts.split("@")
    if len(parts) not in (1, 2) or not parts[0]:
        raise ConfigError(
            f"Upsc, could not understand UPS URI. Empty or too many '@'? Opts: {opts!r}"
        )

    ups = parts[0]
    if len(parts) == 1:
        return ups, DEFAULT_HOST, UPSD_PORT, format_labels(ups=ups)

    host, port = _split_host_port(parts[1], opts)
    host = host or DEFAULT_HOST
    return ups, host, port, format_labels(ups=ups, host=host)


def _split_host_port(address: str, opts: str) -> tuple[str, int]:
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port_str = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, port_str = address.split(":")
    else:
        host, port_str = address, ""

    if not port_str:
        return host, UPSD_PORT
    if not port_str.isdigit() or not 0 < int(port_str) < 65536:
        raise ConfigError(f"Upsc, invalid port {port_str!r}. Opts: {opts!r}")
    return host, int(port_str)


class UpscCollector(Collector):
    """
    Collector for one UPS served by a NUT upsd daemon.

    The connection is opened and closed within every scrape; nothing is
    kept between scrapes except the compiled line pattern.
    """

    SENSOR_TYPE = "upsc"

    def __init__(
        self,
        ups: str,
        host: str = DEFAULT_HOST,
        port: int = UPSD_PORT,
        labels: str | None = None,
        options: CollectorOptions | None = None,
    ):
        """
        Initialize UPS collector.

        Args:
            ups: UPS name as known to upsd
            host: upsd host
            port: upsd port
            labels: Label set (built from ups and host if not given)
            options: Per-instance settings
        """
        if labels is None:
            labels = format_labels(ups=ups, host=host)

        super().__init__(
            name=f"upsc {ups}@{host}:{port}",
            labels=labels,
            options=options,
            suggested_interval=SUGGESTED_INTERVAL,
        )

        self.ups = ups
        self.host = host
        self.port = port

        # Output is like: VAR myups ups.load "14"
        self.pattern = re.compile(rf'^VAR {re.escape(ups)} ([a-zA-Z0-9_.]+) "(.*)"$')
        self.begin_token = f"BEGIN LIST VAR {ups}"
        self.end_token = f"END LIST VAR {ups}"

    @classmethod
    def create(cls, opts: str, options: CollectorOptions) -> "UpscCollector":
        """Factory registered for the "upsc" sensor type."""
        ups, host, port, labels = parse_target(opts)
        return cls(ups, host, port, labels=labels, options=options)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    async def initialize(self) -> None:
        """Probe upsd once so a wrong address shows up in the log early."""
        try:
            _, writer = await self._connect()
        except TransportError as e:
            logger.warning(f"Adding upsc sensor at {self.address} but could not connect: {e}")
            return

        await self._close(writer)
        logger.debug(f"{self.name}: upsd is reachable")

    async def _connect(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise TransportError(
                f"connecting to {self.address} timed out after {self.timeout}s"
            ) from None
        except OSError as e:
            raise TransportError(f"failed to connect to {self.address}: {e}") from e

    @staticmethod
    async def _close(writer: asyncio.StreamWriter) -> None:
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()

    async def _readline(self, reader: asyncio.StreamReader) -> str:
        try:
            line = await reader.readline()
        except (OSError, ValueError) as e:
            raise TransportError(f"connection error while reading: {e}") from e

        if not line:
            raise TransportError("connection closed by upsd")
        return line.decode("utf-8", errors="replace").rstrip("\r\n")

    async def scrape(self) -> ScrapeResult:
        """Request the variable list and convert it to samples."""
        reader, writer = await self._connect()
        try:
            return await asyncio.wait_for(self._exchange(reader, writer), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise TransportError(f"no complete answer from upsd within {self.timeout}s") from None
        finally:
            await self._close(writer)

    async def _exchange(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> ScrapeResult:
        writer.write(f"LIST VAR {self.ups}\n".encode())
        try:
            await writer.drain()
        except OSError as e:
            raise TransportError(f"failed to send request: {e!r}") from e

        return await self._read_var_list(reader)

    async def _read_var_list(self, reader: asyncio.StreamReader) -> ScrapeResult:
        response = await self._readline(reader)
        if response == "ERR UNKNOWN-UPS":
            raise ProtocolError(f'upsd daemon said "unknown ups" for {self.ups}')
        if response != self.begin_token:
            raise ProtocolError(f"upsd daemon returned unknown response: {response!r}")

        samples: list[str] = []
        while True:
            line = await self._readline(reader)
            if line == self.end_token:
                break

            match = self.pattern.match(line)
            if match is None:
                continue

            var, raw = match.groups()
            metric = VAR_MAPPING.get(var)
            if metric is None:
                continue

            try:
                reading = parse_reading(raw)
            except ValueError:
                # Keep what was read so far, skip the rest of the list
                return ScrapeResult.partial("".join(samples), f"could not parse {var}={raw!r}")

            samples.append(format_sample(metric, self.labels, reading))

        logger.debug(f"{self.name}: {len(samples)} readings")
        return ScrapeResult.ok("".join(samples))


def register(registry: "CollectorRegistry") -> None:
    """Register the "upsc" sensor type."""
    registry.register(
        UpscCollector.SENSOR_TYPE,
        UpscCollector.create,
        SUGGESTED_INTERVAL,
        TYPE_LINES,
        HELP_LINES,
        DESCRIPTION,
    )
