"""JSON-RPC 2.0 transport to Kodi over an aiohttp WebSocket."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from contextlib import suppress
from typing import Any

import aiohttp
from aiohttp import BasicAuth, ClientSession, ClientTimeout, ClientWebSocketResponse, WSMessage, WSMsgType

from koko.kodi_types import Notification, parse_notification

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT = 30.0
DEFAULT_PROBE_TIMEOUT = 5.0

# Marks the end of the notification stream
_CLOSED = object()


class JsonRpcError(Exception):
    """Base class for all protocol client errors."""


class ConnectError(JsonRpcError):
    """The endpoint could not be reached or refused the handshake."""


class ProtocolError(JsonRpcError):
    """A call completed but did not produce a usable result."""


class RemoteError(ProtocolError):
    """The server answered with a JSON-RPC error object."""

    def __init__(self, method: str, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message
        self.data = data


class DecodeError(ProtocolError):
    """The result did not match the shape declared for the method."""

    def __init__(self, method: str, payload: Any) -> None:
        super().__init__(f"{method}: unexpected result {payload!r}")
        self.method = method
        self.payload = payload


class ConnectionLostError(JsonRpcError):
    """The connection closed before the call was answered."""


class CallTimeoutError(JsonRpcError):
    """No answer arrived within the call timeout."""


class NotificationStream:
    """Async iterator over the notifications received after subscription.

    Frames whose method is not in the catalog, or whose params do not parse,
    are skipped. Iteration stops when the connection closes.
    """

    def __init__(self, queue: asyncio.Queue[Any]) -> None:
        self._queue = queue

    def __aiter__(self) -> NotificationStream:
        return self

    async def __anext__(self) -> Notification:
        while True:
            frame = await self._queue.get()
            if frame is _CLOSED:
                # Leave the marker in place so later reads end too
                self._queue.put_nowait(_CLOSED)
                raise StopAsyncIteration
            notification = parse_notification(frame)
            if notification is None:
                logger.debug("Skipping notification %s", frame.get("method"))
                continue
            return notification


class JsonRpcSession:
    """A live WebSocket connection plus its pending-request table.

    Requests are correlated with responses by id. A reader task owns the
    socket's receive side; ``call`` only sends and waits on a future.
    """

    def __init__(
        self,
        http: ClientSession,
        ws: ClientWebSocketResponse,
        *,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        owns_http: bool = True,
    ) -> None:
        self._http = http
        self._ws = ws
        self._owns_http = owns_http
        self._call_timeout = call_timeout
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._notifications: asyncio.Queue[Any] | None = None
        self._closed = False
        self._reader_task = asyncio.get_running_loop().create_task(self._reader_loop())

    @property
    def closed(self) -> bool:
        """True once the connection is gone."""
        return self._closed

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Call a remote method and return its raw ``result``.

        Raises:
            RemoteError: The server answered with an error object.
            ConnectionLostError: The connection closed first.
            CallTimeoutError: No answer within the call timeout.
        """
        if self._closed:
            raise ConnectionLostError(f"{method}: connection is closed")

        request_id = next(self._ids)
        frame: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            frame["params"] = params

        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            logger.debug("-> %s", frame)
            try:
                await self._ws.send_str(json.dumps(frame))
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as err:
                raise ConnectionLostError(f"{method}: {err}") from err
            try:
                response = await asyncio.wait_for(future, timeout=self._call_timeout)
            except TimeoutError as err:
                raise CallTimeoutError(f"{method}: no answer within {self._call_timeout:g}s") from err
        finally:
            self._pending.pop(request_id, None)

        error = response.get("error")
        if error is not None:
            if not isinstance(error, dict):
                error = {"code": 0, "message": str(error)}
            raise RemoteError(
                method,
                int(error.get("code", 0)),
                str(error.get("message", "")),
                error.get("data"),
            )
        return response.get("result")

    def subscribe(self) -> NotificationStream:
        """Start buffering notifications and return the stream over them.

        Only one subscription is allowed per session.
        """
        if self._notifications is not None:
            raise RuntimeError("Session already has a notification subscription")
        self._notifications = asyncio.Queue()
        if self._closed:
            self._notifications.put_nowait(_CLOSED)
        return NotificationStream(self._notifications)

    async def close(self) -> None:
        """Close the connection and release resources."""
        current_task = asyncio.current_task()
        if self._reader_task is not current_task and not self._reader_task.done():
            self._reader_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._reader_task
        self._connection_lost()
        await self._ws.close()
        if self._owns_http:
            await self._http.close()

    async def _reader_loop(self) -> None:
        try:
            async for msg in self._ws:
                if not self._handle_ws_message(msg):
                    break
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("WebSocket reader encountered an error")
        finally:
            self._connection_lost()

    def _handle_ws_message(self, msg: WSMessage) -> bool:
        if msg.type is WSMsgType.TEXT:
            self._handle_frame(msg.data)
            return True
        if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
            logger.info("WebSocket closed by Kodi")
            return False
        if msg.type is WSMsgType.ERROR:
            logger.error("WebSocket error: %s", self._ws.exception())
            return False
        logger.debug("Ignoring WebSocket message of type %s", msg.type)
        return True

    def _handle_frame(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except ValueError:
            logger.warning("Dropping malformed frame: %s", data)
            return
        if not isinstance(frame, dict):
            logger.warning("Dropping unexpected frame: %s", data)
            return

        logger.debug("<- %s", frame)
        request_id = frame.get("id")
        if request_id is not None:
            future = self._pending.get(request_id)
            if future is None:
                logger.debug("No pending call for response id %s", request_id)
            elif not future.done():
                future.set_result(frame)
            return

        if "method" in frame and self._notifications is not None:
            self._notifications.put_nowait(frame)

    def _connection_lost(self) -> None:
        if self._closed:
            return
        self._closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ConnectionLostError("connection closed"))
        self._pending.clear()
        if self._notifications is not None:
            self._notifications.put_nowait(_CLOSED)


async def connect(url: str, *, call_timeout: float = DEFAULT_CALL_TIMEOUT) -> JsonRpcSession:
    """Open a JSON-RPC session and perform the ``JSONRPC.Ping`` handshake.

    Args:
        url: WebSocket endpoint, e.g. ``ws://host:9090/jsonrpc``.
        call_timeout: Seconds to wait for each answer.

    Returns:
        The connected session.

    Raises:
        ConnectError: Transport failure or a failed handshake.
    """
    http = ClientSession()
    logger.info("Connecting to Kodi at %s", url)
    try:
        ws = await http.ws_connect(url, heartbeat=30)
    except (aiohttp.ClientError, OSError) as err:
        await http.close()
        raise ConnectError(f"Unable to connect to {url}: {err}") from err

    from koko.kodi_rpc import ping  # kodi_rpc builds on this module

    session = JsonRpcSession(http, ws, call_timeout=call_timeout)
    try:
        pong = await ping(session)
    except JsonRpcError as err:
        await session.close()
        raise ConnectError(f"Handshake with {url} failed: {err}") from err
    if pong != "pong":
        await session.close()
        raise ConnectError(f"Handshake with {url} failed: unexpected answer {pong!r}")

    logger.info("Connected to Kodi at %s", url)
    return session


async def probe(
    url: str,
    auth: BasicAuth | None = None,
    *,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> None:
    """Check that the plain HTTP endpoint answers.

    Raises:
        ConnectError: Transport failure or a non-200 status.
    """
    logger.debug("Probing %s", url)
    try:
        async with ClientSession(timeout=ClientTimeout(total=timeout)) as http:
            async with http.get(url, auth=auth) as response:
                status = response.status
    except (aiohttp.ClientError, TimeoutError, OSError) as err:
        raise ConnectError(f"Unable to reach {url}: {err}") from err
    if status != 200:
        raise ConnectError(f"{url} answered with HTTP status {status}")
