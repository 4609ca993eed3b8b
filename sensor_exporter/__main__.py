"""
Entry point for Sensor Exporter.

Usage:
    python -m sensor_exporter upsc,,myups@nas.local
    python -m sensor_exporter -c /etc/sensor-exporter/sensors.conf --port 9091
    python -m sensor_exporter --list-sensors
"""

import argparse
import asyncio
import sys

from . import __version__
from .app import run_app
from .collectors import build_registry
from .config.loader import ConfigError, ConfigLoader
from .config.schema import Config, HttpConfig, LoggingConfig
from .const import DEFAULT_LISTEN, DEFAULT_PATH, DEFAULT_PORT, DEFAULT_TIMEOUT
from .logging import LogConfig, get_logger, setup_logging

logger = get_logger("main")


def positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return number


def list_sensors() -> int:
    """Print registered sensor types."""
    registry = build_registry()
    for descriptor in registry.descriptors():
        print(f"{descriptor.name} (suggested interval: {descriptor.interval:g}s)")
        for line in descriptor.description.splitlines():
            print(f"    {line}")
        print()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sensor-exporter",
        description="Export sensor readings as Prometheus metrics",
        epilog="Sensors are given as type,labels,opts, e.g. upsc,,myups@nas.local",
    )

    parser.add_argument(
        "sensors",
        nargs="*",
        metavar="TYPE,LABELS,OPTS",
        help="Sensor to scrape (repeatable)",
    )

    parser.add_argument(
        "-c", "--config",
        metavar="PATH",
        help="File with one sensor specification per line",
    )

    parser.add_argument(
        "--listen",
        default=DEFAULT_LISTEN,
        help=f"Address to serve metrics on (default: {DEFAULT_LISTEN})",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port to serve metrics on (default: {DEFAULT_PORT})",
    )

    parser.add_argument(
        "--path",
        default=DEFAULT_PATH,
        help=f"HTTP path of the metrics (default: {DEFAULT_PATH})",
    )

    parser.add_argument(
        "--scrape-interval",
        type=positive_float,
        metavar="SECONDS",
        help="Scrape every sensor at this interval instead of its suggested one",
    )

    parser.add_argument(
        "--timeout",
        type=positive_float,
        default=DEFAULT_TIMEOUT,
        metavar="SECONDS",
        help=f"Timeout for each sensor connect/read (default: {DEFAULT_TIMEOUT:g})",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Scrape all sensors once, print the metrics and exit",
    )

    parser.add_argument(
        "--list-sensors",
        action="store_true",
        help="List available sensor types and exit",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging (INFO level)",
    )

    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Enable debug logging (DEBUG level)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet mode (only errors)",
    )

    parser.add_argument(
        "--log-file",
        metavar="PATH",
        help="Write logs to file",
    )

    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def build_config(args: argparse.Namespace) -> Config:
    """
    Build the configuration from parsed arguments.

    Raises:
        ConfigError: If a sensor specification or the sensor file is invalid
    """
    loader = ConfigLoader()
    sensors = loader.load_args(args.sensors)
    if args.config:
        sensors.extend(loader.load_file(args.config))

    if args.debug:
        level = "debug"
    elif args.verbose:
        level = "info"
    elif args.quiet:
        level = "error"
    else:
        level = "warning"

    return Config(
        sensors=sensors,
        http=HttpConfig(listen=args.listen, port=args.port, path=args.path),
        logging=LoggingConfig(level=level, file=args.log_file, colors=not args.no_color),
        timeout=args.timeout,
        scrape_interval=args.scrape_interval,
    )


def main() -> int:
    """Main entry point."""
    args = build_parser().parse_args()

    if args.list_sensors:
        return list_sensors()

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        LogConfig(
            console_level=config.logging.level,
            console_colors=config.logging.colors,
            file_enabled=config.logging.file is not None,
            file_path=config.logging.file or LogConfig.file_path,
            file_level=config.logging.file_level,
        )
    )

    if not config.sensors:
        logger.error("No sensors configured, see --help and --list-sensors")
        return 1

    try:
        output = asyncio.run(run_app(config, once=args.once))
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1

    if output is not None:
        sys.stdout.write(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
