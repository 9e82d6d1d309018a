"""
Tests for the JSON-RPC transport.

Runs the client against an in-process aiohttp WebSocket server that plays
the part of Kodi.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from koko.jsonrpc import (
    CallTimeoutError,
    ConnectError,
    ConnectionLostError,
    RemoteError,
    connect,
    probe,
)
from koko.kodi_types import PlayerOnPause

PAUSE_DATA = {
    "item": {"type": "movie", "title": "Big Buck Bunny"},
    "player": {"playerid": 1, "speed": 0},
}


class FakeKodi:
    """Answers JSON-RPC frames the way Kodi does, for a few methods."""

    def __init__(self, *, pong: Any = "pong", http_status: int = 200) -> None:
        self.pong = pong
        self.http_status = http_status
        self.received: list[dict[str, Any]] = []
        self.sockets: list[web.WebSocketResponse] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/jsonrpc", self._handle_jsonrpc)
        return app

    async def _handle_jsonrpc(self, request: web.Request) -> web.StreamResponse:
        if request.headers.get("Upgrade", "").lower() != "websocket":
            return web.Response(status=self.http_status, text="")

        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        async for msg in ws:
            if msg.type is not WSMsgType.TEXT:
                continue
            frame = json.loads(msg.data)
            self.received.append(frame)
            match frame["method"]:
                case "JSONRPC.Ping":
                    await ws.send_json({"jsonrpc": "2.0", "id": frame["id"], "result": self.pong})
                case "Test.Fail":
                    await ws.send_json(
                        {
                            "jsonrpc": "2.0",
                            "id": frame["id"],
                            "error": {"code": -32601, "message": "Method not found."},
                        }
                    )
                case "Test.Silent":
                    pass
                case "Test.Hangup":
                    await ws.close()
                    break
                case "Test.Echo":
                    await ws.send_json(
                        {"jsonrpc": "2.0", "id": frame["id"], "result": frame.get("params")}
                    )
                case _:
                    await ws.send_json({"jsonrpc": "2.0", "id": frame["id"], "result": "OK"})
        return ws

    async def notify(self, method: str, data: dict[str, Any]) -> None:
        for ws in self.sockets:
            await ws.send_json(
                {"jsonrpc": "2.0", "method": method, "params": {"sender": "xbmc", "data": data}}
            )


@asynccontextmanager
async def running(kodi: FakeKodi) -> AsyncIterator[str]:
    """Serve ``kodi`` and yield its JSON-RPC URL."""
    server = TestServer(kodi.app())
    await server.start_server()
    try:
        yield str(server.make_url("/jsonrpc"))
    finally:
        await server.close()


class TestConnect:
    """Tests for opening a session."""

    @pytest.mark.asyncio
    async def test_handshake(self) -> None:
        """connect() pings and returns a live session."""
        kodi = FakeKodi()
        async with running(kodi) as url:
            session = await connect(url)
            try:
                assert not session.closed
                assert kodi.received == [{"jsonrpc": "2.0", "id": 1, "method": "JSONRPC.Ping"}]
            finally:
                await session.close()
            assert session.closed

    @pytest.mark.asyncio
    async def test_bad_pong_is_refused(self) -> None:
        """A handshake answer other than pong is a connect error."""
        async with running(FakeKodi(pong="nope")) as url:
            with pytest.raises(ConnectError):
                await connect(url)

    @pytest.mark.asyncio
    async def test_non_string_pong_is_refused(self) -> None:
        """A handshake answer that is not a string is a connect error."""
        async with running(FakeKodi(pong=None)) as url:
            with pytest.raises(ConnectError, match="Handshake"):
                await connect(url)

    @pytest.mark.asyncio
    async def test_unreachable(self) -> None:
        """A refused connection is a connect error."""
        kodi = FakeKodi()
        async with running(kodi) as url:
            pass
        with pytest.raises(ConnectError):
            await connect(url)


class TestCall:
    """Tests for request/response correlation."""

    @pytest.mark.asyncio
    async def test_result_and_params(self) -> None:
        """Params are sent as given and the raw result comes back."""
        kodi = FakeKodi()
        async with running(kodi) as url:
            session = await connect(url)
            try:
                result = await session.call("Test.Echo", {"playerid": 1, "to": "next"})
                assert result == {"playerid": 1, "to": "next"}
                assert await session.call("Player.Stop", {"playerid": 1}) == "OK"
            finally:
                await session.close()

        ids = [frame["id"] for frame in kodi.received]
        assert ids == sorted(set(ids))
        assert all(frame["jsonrpc"] == "2.0" for frame in kodi.received)

    @pytest.mark.asyncio
    async def test_params_omitted_when_none(self) -> None:
        """A call without params sends no params member."""
        kodi = FakeKodi()
        async with running(kodi) as url:
            session = await connect(url)
            try:
                await session.call("Player.GetActivePlayers")
            finally:
                await session.close()

        assert "params" not in kodi.received[-1]

    @pytest.mark.asyncio
    async def test_concurrent_calls(self) -> None:
        """Overlapping calls each receive their own answer."""
        kodi = FakeKodi()
        async with running(kodi) as url:
            session = await connect(url)
            try:
                results = await asyncio.gather(
                    *(session.call("Test.Echo", {"n": n}) for n in range(5))
                )
            finally:
                await session.close()

        assert results == [{"n": n} for n in range(5)]

    @pytest.mark.asyncio
    async def test_remote_error(self) -> None:
        """An error object is raised with its code and message."""
        async with running(FakeKodi()) as url:
            session = await connect(url)
            try:
                with pytest.raises(RemoteError) as exc_info:
                    await session.call("Test.Fail")
                assert exc_info.value.code == -32601
                assert exc_info.value.message == "Method not found."
                assert exc_info.value.method == "Test.Fail"
                # The session stays usable
                assert await session.call("Player.Stop", {"playerid": 1}) == "OK"
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """An unanswered call times out."""
        async with running(FakeKodi()) as url:
            session = await connect(url, call_timeout=0.1)
            try:
                with pytest.raises(CallTimeoutError):
                    await session.call("Test.Silent")
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_connection_lost(self) -> None:
        """Pending and later calls fail once the socket closes."""
        async with running(FakeKodi()) as url:
            session = await connect(url)
            try:
                with pytest.raises(ConnectionLostError):
                    await session.call("Test.Hangup")
                assert session.closed
                with pytest.raises(ConnectionLostError):
                    await session.call("Player.Stop", {"playerid": 1})
            finally:
                await session.close()


class TestNotifications:
    """Tests for the notification stream."""

    @pytest.mark.asyncio
    async def test_only_after_subscribe(self) -> None:
        """Notifications before subscribing are dropped."""
        kodi = FakeKodi()
        async with running(kodi) as url:
            session = await connect(url)
            try:
                await kodi.notify("Player.OnPause", PAUSE_DATA)
                # The answer arrives after the notification
                await session.call("JSONRPC.Ping")
                stream = session.subscribe()
                await kodi.notify("Player.OnPause", {**PAUSE_DATA, "player": {"playerid": 2, "speed": 0}})

                notification = await asyncio.wait_for(anext(stream), 2.0)
            finally:
                await session.close()

        assert isinstance(notification, PlayerOnPause)
        assert notification.player.player_id == 2
        assert notification.item.title == "Big Buck Bunny"

    @pytest.mark.asyncio
    async def test_unknown_methods_skipped(self) -> None:
        """Methods outside the catalog never reach the stream."""
        kodi = FakeKodi()
        async with running(kodi) as url:
            session = await connect(url)
            try:
                stream = session.subscribe()
                await kodi.notify("GUI.OnScreensaverActivated", {})
                await kodi.notify("Player.OnPause", PAUSE_DATA)

                notification = await asyncio.wait_for(anext(stream), 2.0)
            finally:
                await session.close()

        assert notification.method == "Player.OnPause"

    @pytest.mark.asyncio
    async def test_subscribe_twice(self) -> None:
        """A session allows a single subscription."""
        async with running(FakeKodi()) as url:
            session = await connect(url)
            try:
                session.subscribe()
                with pytest.raises(RuntimeError):
                    session.subscribe()
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_stream_ends_on_close(self) -> None:
        """The stream stops iterating when the connection goes away."""
        async with running(FakeKodi()) as url:
            session = await connect(url)
            stream = session.subscribe()
            with pytest.raises(ConnectionLostError):
                await session.call("Test.Hangup")

            received = [n async for n in stream]
            await session.close()

        assert received == []
        with pytest.raises(StopAsyncIteration):
            await anext(stream)


class TestProbe:
    """Tests for the HTTP reachability check."""

    @pytest.mark.asyncio
    async def test_ok(self) -> None:
        """A 200 answer passes."""
        async with running(FakeKodi()) as url:
            await probe(url)

    @pytest.mark.asyncio
    async def test_bad_status(self) -> None:
        """Any other status is a connect error."""
        async with running(FakeKodi(http_status=401)) as url:
            with pytest.raises(ConnectError, match="401"):
                await probe(url)

    @pytest.mark.asyncio
    async def test_unreachable(self) -> None:
        """A refused connection is a connect error."""
        async with running(FakeKodi()) as url:
            pass
        with pytest.raises(ConnectError):
            await probe(url, timeout=1.0)
