#!/usr/bin/env python3
"""Command-line front end: stream decoded reports or print a bed leveling map."""

import argparse
import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler

from bambulink.app.core.config import APP_VERSION, ConnectionOptions, settings as app_settings
from bambulink.app.core.errors import BambuLinkError, DecodeError
from bambulink.app.schemas.report import decode_report
from bambulink.app.services.level_map import LevelMap
from bambulink.app.services.printer import Printer
from bambulink.app.services.telemetry import level_points, mc_print_value

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure the root logger from settings.

    DEBUG=true -> DEBUG level, else use LOG_LEVEL setting.
    """
    debug = debug or app_settings.debug
    log_level_str = "DEBUG" if debug else app_settings.log_level.upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    log_format = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Console handler - always enabled
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(console_handler)

    if app_settings.log_to_file:
        app_settings.log_dir.mkdir(exist_ok=True)
        log_file = app_settings.log_dir / "bambulink.log"
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        root_logger.addHandler(file_handler)
        logging.info(f"Logging to file: {log_file}")

    # paho logs every packet at debug level
    if not debug:
        logging.getLogger("paho").setLevel(logging.WARNING)

    logging.info(f"bambulink {APP_VERSION} starting - debug={debug}, log_level={log_level_str}")


async def listen(options: ConnectionOptions) -> None:
    """Log every report until the printer drops the connection."""
    printer = await Printer.connect(options)
    listener = printer.listen()
    try:
        async for topic, text in listener:
            try:
                report = decode_report(text)
            except DecodeError as e:
                logger.warning(f"Failed to parse object on topic {topic}: {e}")
                continue
            value = mc_print_value(report)
            if value is not None:
                logger.info(f"RX {topic}: {report!r} -> {value!r}")
            else:
                logger.info(f"RX {topic}: {report!r}")
    finally:
        if not printer.closed:
            printer.disconnect()
        await printer.wait_closed()


async def collect_level_map(options: ConnectionOptions, duration: float) -> LevelMap:
    """Gather bed mesh samples for ``duration`` seconds or until the stream ends."""
    printer = await Printer.connect(options)
    listener = printer.listen()
    texts: list[str] = []

    async def _collect():
        async for _topic, text in listener:
            texts.append(text)

    try:
        await asyncio.wait_for(_collect(), timeout=duration)
    except TimeoutError:
        pass
    finally:
        if not printer.closed:
            printer.disconnect()
        await printer.wait_closed()

    return LevelMap(level_points(texts))


def _options(args: argparse.Namespace) -> ConnectionOptions:
    return ConnectionOptions(
        host=args.host,
        port=args.port,
        access_code=args.access_code,
        tls_insecure=args.insecure,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bambulink", description="Bambu Lab printer MQTT connector")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    connection = argparse.ArgumentParser(add_help=False)
    connection.add_argument("-n", "--host", required=True, help="Printer hostname or IP address")
    connection.add_argument("-p", "--port", type=int, default=app_settings.mqtt_port, help="MQTT port")
    connection.add_argument("--access-code", required=True, help="LAN access code from the printer screen")
    connection.add_argument(
        "--insecure",
        action="store_true",
        help="Skip TLS certificate verification (required for the printer's self-signed certificate)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("listen", parents=[connection], help="Log decoded reports")
    level = subparsers.add_parser("level", parents=[connection], help="Print a bed leveling map")
    level.add_argument("--duration", type=float, default=60.0, help="Seconds to collect samples")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    try:
        if args.command == "listen":
            asyncio.run(listen(_options(args)))
        elif args.command == "level":
            level_map = asyncio.run(collect_level_map(_options(args), args.duration))
            if not level_map.points:
                print("No bed mesh samples received")
                return 1
            print(level_map.render(), end="")
    except BambuLinkError as e:
        logger.error(f"{e}")
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
