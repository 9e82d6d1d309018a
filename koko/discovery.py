"""mDNS discovery and name resolution for Kodi hosts."""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

if TYPE_CHECKING:
    from zeroconf import ServiceListener

from zeroconf.asyncio import AsyncServiceBrowser, AsyncZeroconf

logger = logging.getLogger(__name__)

# Kodi advertises its HTTP JSON-RPC endpoint under this type
SERVICE_TYPE = "_xbmc-jsonrpc-h._tcp.local."


@dataclass
class DiscoveredHost:
    """A Kodi instance found via mDNS."""

    name: str
    hostname: str
    address: str
    port: int


def _strip_local(server: str) -> str:
    return server.removesuffix(".").removesuffix(".local")


class _ServiceDiscoveryListener:
    """Collects Kodi advertisements, optionally waiting for one host name."""

    def __init__(self, loop: asyncio.AbstractEventLoop, wanted: str | None = None) -> None:
        self._loop = loop
        self._wanted = wanted.lower() if wanted else None
        self._match: asyncio.Future[DiscoveredHost] = loop.create_future()
        self._hosts: dict[str, DiscoveredHost] = {}
        self.tasks: set[asyncio.Task[None]] = set()

    @property
    def hosts(self) -> dict[str, DiscoveredHost]:
        """All hosts seen so far, by service name."""
        return self._hosts

    async def wait_for_match(self) -> DiscoveredHost:
        """Wait until the wanted host is seen."""
        return await self._match

    async def _process_service_info(
        self, zeroconf: AsyncZeroconf, service_type: str, name: str
    ) -> None:
        info = await zeroconf.async_get_service_info(service_type, name)
        if info is None or info.port is None:
            return
        addresses = info.parsed_addresses()
        if not addresses:
            return
        host = DiscoveredHost(
            name=name.removesuffix(f".{SERVICE_TYPE}"),
            hostname=_strip_local(info.server or ""),
            address=addresses[0],
            port=info.port,
        )
        logger.debug("Discovered %s", host)
        self._hosts[name] = host

        if (
            self._wanted is not None
            and host.hostname.lower() == self._wanted
            and not self._match.done()
        ):
            self._match.set_result(host)

    def _schedule(self, zeroconf: AsyncZeroconf, service_type: str, name: str) -> None:
        task = self._loop.create_task(self._process_service_info(zeroconf, service_type, name))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        task.add_done_callback(lambda t: t.exception() if not t.cancelled() else None)

    def add_service(self, zeroconf: AsyncZeroconf, service_type: str, name: str) -> None:
        self._schedule(zeroconf, service_type, name)

    def update_service(self, zeroconf: AsyncZeroconf, service_type: str, name: str) -> None:
        self._schedule(zeroconf, service_type, name)

    def remove_service(self, _zeroconf: AsyncZeroconf, _service_type: str, name: str) -> None:
        self._hosts.pop(name, None)


class ServiceDiscovery:
    """Browses for Kodi instances until stopped."""

    def __init__(self, wanted: str | None = None) -> None:
        self._wanted = wanted
        self._listener: _ServiceDiscoveryListener | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._zeroconf: AsyncZeroconf | None = None

    async def start(self) -> None:
        """Start browsing."""
        loop = asyncio.get_running_loop()
        self._listener = _ServiceDiscoveryListener(loop, self._wanted)
        self._zeroconf = AsyncZeroconf()
        await self._zeroconf.__aenter__()

        try:
            self._browser = AsyncServiceBrowser(
                self._zeroconf.zeroconf, SERVICE_TYPE, cast("ServiceListener", self._listener)
            )
        except Exception:
            await self.stop()
            raise

    async def wait_for_match(self) -> DiscoveredHost:
        """Wait for the host name given at construction to be advertised."""
        if self._listener is None:
            raise RuntimeError("Discovery not started. Call start() first.")
        return await self._listener.wait_for_match()

    def get_hosts(self) -> list[DiscoveredHost]:
        """Return every host seen so far."""
        if self._listener is None:
            return []
        return list(self._listener.hosts.values())

    async def stop(self) -> None:
        """Stop browsing and release resources."""
        if self._browser:
            await self._browser.async_cancel()
            self._browser = None
        if self._zeroconf:
            await self._zeroconf.__aexit__(None, None, None)
            self._zeroconf = None
        self._listener = None


async def discover_hosts(discovery_time: float = 3.0) -> list[DiscoveredHost]:
    """Discover Kodi instances on the network.

    Args:
        discovery_time: How long to browse, in seconds.

    Returns:
        Every host that answered in that time.
    """
    discovery = ServiceDiscovery()
    await discovery.start()
    try:
        await asyncio.sleep(discovery_time)
        return discovery.get_hosts()
    finally:
        await discovery.stop()


async def discover_first(hostname: str, timeout: float = 5.0) -> DiscoveredHost | None:
    """Wait for a Kodi instance whose mDNS host name is ``hostname``.

    Returns:
        The first matching advertisement, or None on timeout.
    """
    discovery = ServiceDiscovery(_strip_local(hostname))
    await discovery.start()
    try:
        return await asyncio.wait_for(discovery.wait_for_match(), timeout=timeout)
    except TimeoutError:
        logger.info("No mDNS advertisement for %s within %.1fs", hostname, timeout)
        return None
    finally:
        await discovery.stop()


async def resolve_address(hostname: str) -> str:
    """Resolve ``hostname`` with the system resolver.

    Raises:
        OSError: The name does not resolve.
    """
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    if not infos:
        raise OSError(f"No address for {hostname}")
    # IPv4 first
    infos.sort(key=lambda info: info[0] != socket.AF_INET)
    return str(infos[0][4][0])
