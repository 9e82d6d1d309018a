"""Core application logic for koko."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path

from aiohttp import BasicAuth

from koko import kodi_rpc
from koko.control import (
    ControlClosedError,
    KodiControl,
    NowPlayingChanged,
    PlaybackState,
    PlaybackStateChanged,
    PlaylistPositionChanged,
    QueueFullError,
    StatusEvent,
)
from koko.discovery import discover_first, resolve_address
from koko.exit import ExitSignal
from koko.jsonrpc import JsonRpcError, JsonRpcSession, connect, probe
from koko.keyboard import keyboard_loop
from koko.kodi_types import PlayerPropertyName
from koko.server import FileServer, assign_exposed_names, get_local_ip, item_url
from koko.session import DEFAULT_STOP_TIMEOUT, SessionController
from koko.settings import ConfigError, HostConfig, default_config_path, load_config
from koko.ui import KokoUI
from koko.utils import create_task

logger = logging.getLogger(__name__)

LOG_FILE = "koko.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Seconds between status polls while playing
STATUS_POLL_INTERVAL = 0.25

_POLL_PROPERTIES = (
    PlayerPropertyName.TIME,
    PlayerPropertyName.TOTAL_TIME,
    PlayerPropertyName.PERCENTAGE,
    PlayerPropertyName.SPEED,
)


class SetupError(Exception):
    """Koko could not get as far as starting playback."""


@dataclass
class AppConfig:
    """Configuration for the koko application."""

    sources: list[Path] = field(default_factory=list)
    kodi: str | None = None
    username: str | None = None
    password: str | None = None
    start_seconds: int | None = None
    debug: bool = False
    log_level: str = "INFO"
    headless: bool = False
    config_path: Path | None = None
    port: int | None = None
    ws_port: int | None = None
    listen_port: int | None = None
    stop_timeout: float = DEFAULT_STOP_TIMEOUT


@dataclass
class KodiEndpoint:
    """Where Kodi was found and how to talk to it."""

    address: str
    port: int
    ws_port: int
    auth: BasicAuth | None = None
    listen_port: int | None = None

    @property
    def http_url(self) -> str:
        """The plain JSON-RPC endpoint, used for the probe."""
        return f"http://{_format_host(self.address)}:{self.port}/jsonrpc"

    @property
    def ws_url(self) -> str:
        """The WebSocket JSON-RPC endpoint, used for the session."""
        return f"ws://{_format_host(self.address)}:{self.ws_port}/jsonrpc"


def _format_host(address: str) -> str:
    return f"[{address}]" if ":" in address else address


def setup_logging(config: AppConfig, *, interactive: bool) -> None:
    """Configure logging for the run.

    With ``debug`` everything goes to ``koko.log``. Otherwise an interactive
    UI only lets warnings through so log lines do not corrupt the display.
    """
    if config.debug:
        logging.basicConfig(filename=LOG_FILE, level=logging.DEBUG, format=LOG_FORMAT)
    elif interactive and config.log_level != "DEBUG":
        logging.basicConfig(level=logging.WARNING)
    else:
        logging.basicConfig(level=getattr(logging, config.log_level))


def select_host(config: AppConfig) -> HostConfig:
    """Pick the host from the config file and apply command-line overrides.

    Raises:
        ConfigError: The config file is invalid or ambiguous.
    """
    settings = load_config(config.config_path or default_config_path())
    host = settings.get_host(config.kodi)
    overrides = {
        "username": config.username,
        "password": config.password,
        "port": config.port,
        "ws_port": config.ws_port,
        "listen_port": config.listen_port,
    }
    host = replace(host, **{k: v for k, v in overrides.items() if v is not None})
    if host.listen_port is None and settings.listen_port is not None:
        host = replace(host, listen_port=settings.listen_port)
    return host


async def locate_kodi(host: HostConfig) -> KodiEndpoint:
    """Resolve the host's address, through mDNS if configured.

    Raises:
        SetupError: The host could not be found.
    """
    hostname = host.hostname or "localhost"
    port = host.port
    if host.discovery:
        logger.info("Looking for %s via mDNS", hostname)
        found = await discover_first(hostname)
        if found is None:
            raise SetupError(f"Kodi host {hostname} was not found via mDNS")
        address, port = found.address, found.port
    else:
        try:
            address = await resolve_address(hostname)
        except OSError as err:
            raise SetupError(f"Cannot resolve {hostname}: {err}") from err
    logger.info("Kodi host %s is at %s", hostname, address)

    auth = None
    if host.username is not None:
        auth = BasicAuth(host.username, host.password or "")
    return KodiEndpoint(address, port, host.ws_port, auth, host.listen_port)


def check_sources(sources: list[Path]) -> None:
    """Make sure every source is a readable file.

    Raises:
        SetupError: A source is missing or not a file.
    """
    if not sources:
        raise SetupError("No files to play")
    for source in sources:
        if not source.is_file():
            raise SetupError(f"{source} is not a file")


async def poll_status(control: KodiControl, exit_signal: ExitSignal) -> None:
    """Ask for fresh playback status until exit.

    The answers reach the UI as status events, not through this task.
    """
    while not exit_signal.is_set():
        try:
            await control.properties(*_POLL_PROPERTIES)
        except QueueFullError:
            logger.debug("Control queue full, skipping a status poll")
        except ControlClosedError:
            return
        await asyncio.sleep(STATUS_POLL_INTERVAL)


class KokoApp:
    """Main koko application."""

    def __init__(self, config: AppConfig) -> None:
        """Initialize the application."""
        self._config = config
        self._ui: KokoUI | None = None
        self._last_state: PlaybackState | None = None

    def _print_event(self, message: str) -> None:
        if self._ui is None:
            print(message, flush=True)  # noqa: T201

    def _print_error(self, message: str) -> None:
        print(f"error: {message}", file=sys.stderr, flush=True)  # noqa: T201

    async def _status_loop(self, events: asyncio.Queue[StatusEvent]) -> None:
        while True:
            event = await events.get()
            if self._ui is not None:
                self._ui.apply_event(event)
                continue
            match event:
                case NowPlayingChanged(title=title):
                    self._print_event(f"Now playing: {title or 'unknown'}")
                case PlaybackStateChanged(state=state) if state is not self._last_state:
                    self._last_state = state
                    self._print_event(f"Playback {state.value}")
                case PlaylistPositionChanged(position=position):
                    self._print_event(f"Playlist entry #{position + 1}")

    async def run(self) -> int:
        """Run the application."""
        config = self._config
        interactive = sys.stdin.isatty() and not config.headless
        setup_logging(config, interactive=interactive)

        try:
            check_sources(config.sources)
            host = select_host(config)
            endpoint = await locate_kodi(host)
            await probe(endpoint.http_url, endpoint.auth)
        except (ConfigError, SetupError, JsonRpcError) as err:
            self._print_error(str(err))
            return 1

        names = assign_exposed_names(config.sources)
        server = FileServer(names, get_local_ip(endpoint.address, endpoint.port), endpoint.listen_port or 0)
        try:
            base_url = await server.start()
        except OSError as err:
            self._print_error(f"Cannot start the file server: {err}")
            return 1

        try:
            try:
                session = await connect(endpoint.ws_url)
            except JsonRpcError as err:
                self._print_error(str(err))
                return 1
            try:
                items = [item_url(base_url, name) for name in names]
                return await self._run_session(session, items, endpoint, server, interactive)
            finally:
                await session.close()
        finally:
            await server.stop()

    async def _run_session(
        self,
        session: JsonRpcSession,
        items: list[str],
        endpoint: KodiEndpoint,
        server: FileServer,
        interactive: bool,
    ) -> int:
        config = self._config
        exit_signal = ExitSignal()
        control = KodiControl()
        events: asyncio.Queue[StatusEvent] = asyncio.Queue(maxsize=256)
        control.add_status_listener(events)

        loop = asyncio.get_running_loop()
        # Signal handlers aren't supported on this platform (e.g., Windows)
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, exit_signal.signal)
            loop.add_signal_handler(signal.SIGTERM, exit_signal.signal)

        if interactive:
            self._ui = KokoUI(playlist_count=len(items))
            self._ui.set_host(endpoint.address)
            self._ui.start()

        tasks = [
            create_task(self._status_loop(events), name="koko-status"),
            create_task(poll_status(control, exit_signal), name="koko-poll"),
        ]
        if interactive:
            tasks.append(create_task(keyboard_loop(control, exit_signal, self._ui), name="koko-keyboard"))

        controller = SessionController(
            session,
            items,
            exit_signal,
            control,
            start_seconds=config.start_seconds,
            stop_timeout=config.stop_timeout,
            on_cancel=server.request_stop,
        )
        try:
            await controller.run()
        except JsonRpcError as err:
            self._stop_ui()
            self._print_error(f"Failed to start playback: {err}")
            return 1
        finally:
            exit_signal.signal()
            for task in tasks:
                task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            self._stop_ui()
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)
                loop.remove_signal_handler(signal.SIGTERM)
        return 0

    def _stop_ui(self) -> None:
        if self._ui is not None:
            self._ui.stop()
            self._ui = None


async def list_players(config: AppConfig) -> int:
    """Print Kodi's players and the active ones."""
    setup_logging(config, interactive=False)
    try:
        endpoint = await locate_kodi(select_host(config))
        session = await connect(endpoint.ws_url)
    except (ConfigError, SetupError, JsonRpcError) as err:
        print(f"error: {err}", file=sys.stderr)  # noqa: T201
        return 1
    try:
        schema = await kodi_rpc.introspect(session)
        players = await kodi_rpc.get_players(session)
        active = await kodi_rpc.get_active_players(session)
    except JsonRpcError as err:
        print(f"error: {err}", file=sys.stderr)  # noqa: T201
        return 1
    finally:
        await session.close()

    print(  # noqa: T201
        f"Kodi at {endpoint.address} offers {len(schema.get('methods', {}))} methods"
        f" and {len(schema.get('notifications', {}))} notifications"
    )
    print(f"Players on {endpoint.address}:")  # noqa: T201
    for player in players:
        print(f"  {player.get('name', 'unnamed')} ({player.get('type', 'unknown')})")  # noqa: T201
    if active:
        print("\nActive:")  # noqa: T201
    for player in active:
        print(f"  [{player.player_id}] {player.type.value} ({player.player_type.value})")  # noqa: T201
    return 0
