"""Command-line interface for koko."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from koko.app import AppConfig, KokoApp, list_players
from koko.discovery import discover_hosts
from koko.session import DEFAULT_STOP_TIMEOUT
from koko.utils import parse_time_as_seconds


def _start_time(value: str) -> int:
    try:
        return parse_time_as_seconds(value)
    except ValueError as err:
        raise argparse.ArgumentTypeError(f"invalid start time {value!r}: {err}") from err


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as err:
        raise argparse.ArgumentTypeError(f"invalid number {value!r}") from err
    if number <= 0:
        raise argparse.ArgumentTypeError("must be greater than zero")
    return number


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for koko."""
    parser = argparse.ArgumentParser(
        prog="koko", description="Play local files on Kodi and control playback"
    )
    parser.add_argument("sources", nargs="*", type=Path, metavar="SOURCE", help="Files to play")
    parser.add_argument(
        "-k",
        "--kodi",
        default=None,
        help="Kodi host label from the config file, or a host name",
    )
    parser.add_argument("-u", "--user", default=None, help="Kodi web server user name")
    parser.add_argument("-p", "--pass", dest="password", default=None, help="Kodi web server password")
    parser.add_argument(
        "-s",
        "--start",
        type=_start_time,
        default=None,
        help="Start this far into the first file, e.g. 1h4m3s, 5m or 30s",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Write a debug log to koko.log",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level to use",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run without the interactive terminal UI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: ~/.config/koko/config.json)",
    )
    parser.add_argument("--port", type=int, default=None, help="Kodi HTTP port (default 8080)")
    parser.add_argument("--ws-port", type=int, default=None, help="Kodi WebSocket port (default 9090)")
    parser.add_argument(
        "--listen-port",
        type=int,
        default=None,
        help="Port to serve the files on (default: any free port)",
    )
    parser.add_argument(
        "--stop-timeout",
        type=_positive_float,
        default=DEFAULT_STOP_TIMEOUT,
        help="Seconds to wait for the next file after Kodi stops one",
    )
    parser.add_argument(
        "--list-players",
        action="store_true",
        help="List the players of the Kodi host and exit",
    )
    parser.add_argument(
        "--list-hosts",
        action="store_true",
        help="Discover and list Kodi hosts on the network and exit",
    )
    args = parser.parse_args(argv)
    if not args.sources and not (args.list_players or args.list_hosts):
        parser.error("at least one SOURCE is required")
    return args


async def list_hosts() -> None:
    """Discover and list all Kodi hosts on the network."""
    try:
        hosts = await discover_hosts(discovery_time=3.0)
    except OSError as e:
        print(f"Error discovering hosts: {e}")  # noqa: T201
        sys.exit(1)
    if not hosts:
        print("No Kodi hosts found.")  # noqa: T201
        return

    print(f"\nFound {len(hosts)} host(s):")  # noqa: T201
    print()  # noqa: T201
    for host in hosts:
        print(f"  {host.name}")  # noqa: T201
        print(f"    Host: {host.hostname} ({host.address}:{host.port})")  # noqa: T201
    print(f"\nTo play on a host:\n  koko -k {hosts[0].hostname} FILE")  # noqa: T201


def main() -> int:
    """Run koko."""
    args = parse_args(sys.argv[1:])

    if args.list_hosts:
        asyncio.run(list_hosts())
        return 0

    config = AppConfig(
        sources=args.sources,
        kodi=args.kodi,
        username=args.user,
        password=args.password,
        start_seconds=args.start,
        debug=args.debug,
        log_level=args.log_level,
        headless=args.headless,
        config_path=args.config,
        port=args.port,
        ws_port=args.ws_port,
        listen_port=args.listen_port,
        stop_timeout=args.stop_timeout,
    )

    if args.list_players:
        return asyncio.run(list_players(config))

    app = KokoApp(config)
    return asyncio.run(app.run())


if __name__ == "__main__":
    raise SystemExit(main())
