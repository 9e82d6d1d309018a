"""HTTP file server exposing local media files to Kodi."""

from __future__ import annotations

import logging
import socket
from collections.abc import Iterable, Mapping
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from urllib.parse import quote

from aiohttp import web

logger = logging.getLogger(__name__)

FILE_PREFIX = "/file/"


def koko_version() -> str:
    """Return the installed koko version."""
    try:
        return version("koko")
    except PackageNotFoundError:
        return "unknown"


def assign_exposed_names(sources: Iterable[Path]) -> dict[str, Path]:
    """Give every source a unique name to serve it under.

    The name is the file stem. Later files with an already used stem get
    ``"<stem> #<n>"``, counting up per stem and skipping names already taken.
    The result keeps the input order.
    """
    names: dict[str, Path] = {}
    counts: dict[str, int] = {}
    for source in sources:
        stem = source.stem
        count = counts.get(stem, 0) + 1
        name = stem if count == 1 else f"{stem} #{count}"
        while name in names:
            count += 1
            name = f"{stem} #{count}"
        counts[stem] = count
        names[name] = source
    return names


def item_url(base_url: str, name: str) -> str:
    """Build the URL Kodi uses to fetch the file exposed as ``name``."""
    return base_url + quote(name, safe="")


def get_local_ip(remote_host: str, remote_port: int = 80) -> str:
    """Get the local address used to reach ``remote_host``."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect((remote_host, remote_port))
            return s.getsockname()[0]
    except OSError:
        return "localhost"


class FileServer:
    """Serves a fixed set of files under ``/file/<name>``.

    Kodi issues range requests while seeking; ``FileResponse`` answers them.
    """

    def __init__(self, files: Mapping[str, Path], host: str, port: int = 0) -> None:
        self._files = dict(files)
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None
        self._last_served: str | None = None
        self._stop_requested = False
        self.base_url: str | None = None

    @property
    def stop_requested(self) -> bool:
        """True once :meth:`request_stop` was called."""
        return self._stop_requested

    def _create_web_application(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self._index_handler)
        # add_get also registers HEAD
        app.router.add_get(FILE_PREFIX + "{name}", self._file_handler)
        return app

    async def _index_handler(self, request: web.Request) -> web.Response:
        return web.Response(text=f"koko v{koko_version()}")

    async def _file_handler(self, request: web.Request) -> web.StreamResponse:
        if self._stop_requested:
            raise web.HTTPServiceUnavailable(text="Shutting down")
        name = request.match_info["name"]
        path = self._files.get(name)
        if path is None:
            logger.warning("Request for unknown file %r from %s", name, request.remote)
            raise web.HTTPNotFound(text=f"No such file: {name}")
        if name != self._last_served:
            logger.info("Serving %s to %s", path, request.remote)
            self._last_served = name
        return web.FileResponse(path)

    async def start(self) -> str:
        """Start listening and return the base URL for :func:`item_url`."""
        self._runner = web.AppRunner(self._create_web_application())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        port = self._runner.addresses[0][1]
        host = f"[{self._host}]" if ":" in self._host else self._host
        self.base_url = f"http://{host}:{port}{FILE_PREFIX}"
        logger.info("File server listening on %s", self.base_url)
        return self.base_url

    def request_stop(self) -> None:
        """Refuse further file requests; the owner calls :meth:`stop` to finish."""
        if not self._stop_requested:
            logger.debug("File server stop requested")
            self._stop_requested = True

    async def stop(self) -> None:
        """Stop serving and release the socket."""
        self._stop_requested = True
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("File server stopped")
