"""
Tests for the typed method wrappers.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from koko import kodi_rpc
from koko.jsonrpc import DecodeError
from koko.kodi_types import (
    GlobalToggle,
    GoTo,
    GUIWindow,
    PlayerPropertyName,
    SeekRelativeSeconds,
)


def make_session(result: object = "OK") -> MagicMock:
    session = MagicMock()
    session.call = AsyncMock(return_value=result)
    return session


class TestWrappers:
    """Tests for the wire shape of each wrapper."""

    @pytest.mark.asyncio
    async def test_open_file(self) -> None:
        """Player.Open sends the file item."""
        session = make_session()
        await kodi_rpc.player_open_file(session, "http://h/file/a")
        session.call.assert_awaited_once_with("Player.Open", {"item": {"file": "http://h/file/a"}})

    @pytest.mark.asyncio
    async def test_open_playlist(self) -> None:
        """Player.Open sends playlist and position."""
        session = make_session()
        await kodi_rpc.player_open_playlist(session, 1)
        session.call.assert_awaited_once_with("Player.Open", {"item": {"playlistid": 1, "position": 0}})

    @pytest.mark.asyncio
    async def test_playlist_add_keeps_order(self) -> None:
        """Playlist.Add sends one file item per entry, in order."""
        session = make_session()
        await kodi_rpc.playlist_add(session, 1, ["b", "a"])
        session.call.assert_awaited_once_with(
            "Playlist.Add", {"playlistid": 1, "item": [{"file": "b"}, {"file": "a"}]}
        )

    @pytest.mark.asyncio
    async def test_activate_window(self) -> None:
        """GUI.ActivateWindow always carries a parameters list."""
        session = make_session()
        await kodi_rpc.gui_activate_window(session, GUIWindow.HOME)
        session.call.assert_awaited_once_with(
            "GUI.ActivateWindow", {"window": "home", "parameters": ["required parameter"]}
        )

    @pytest.mark.asyncio
    async def test_play_pause(self) -> None:
        """Player.PlayPause returns the speed."""
        session = make_session({"speed": 1})
        assert await kodi_rpc.player_play_pause(session, 1, GlobalToggle.ON) == 1
        session.call.assert_awaited_once_with("Player.PlayPause", {"playerid": 1, "play": True})

    @pytest.mark.asyncio
    async def test_goto(self) -> None:
        """Player.GoTo sends the direction."""
        session = make_session()
        await kodi_rpc.player_goto(session, 1, GoTo.PREVIOUS)
        session.call.assert_awaited_once_with("Player.GoTo", {"playerid": 1, "to": "previous"})

    @pytest.mark.asyncio
    async def test_seek(self) -> None:
        """Player.Seek returns the decoded position."""
        session = make_session({"percentage": 25.0, "time": {"hours": 0, "minutes": 15, "seconds": 0}})
        result = await kodi_rpc.player_seek(session, 1, SeekRelativeSeconds(90))
        session.call.assert_awaited_once_with("Player.Seek", {"playerid": 1, "value": {"seconds": 90}})
        assert result.percentage == 25.0

    @pytest.mark.asyncio
    async def test_get_properties(self) -> None:
        """Player.GetProperties sends property names."""
        session = make_session({"speed": 0})
        props = await kodi_rpc.player_get_properties(session, 1, [PlayerPropertyName.SPEED])
        session.call.assert_awaited_once_with(
            "Player.GetProperties", {"playerid": 1, "properties": ["speed"]}
        )
        assert props.speed == 0

    @pytest.mark.asyncio
    async def test_active_players(self) -> None:
        """Player.GetActivePlayers decodes every entry."""
        session = make_session([{"playerid": 1, "type": "video", "playertype": "internal"}])
        players = await kodi_rpc.get_active_players(session)
        assert [p.player_id for p in players] == [1]


class TestDecodeErrors:
    """Tests for results that do not match the method."""

    @pytest.mark.asyncio
    async def test_not_ok(self) -> None:
        """A method returning "OK" rejects anything else."""
        session = make_session({"unexpected": True})
        with pytest.raises(DecodeError) as exc_info:
            await kodi_rpc.player_stop(session, 1)
        assert exc_info.value.method == "Player.Stop"

    @pytest.mark.asyncio
    async def test_bad_shape(self) -> None:
        """A result of the wrong shape is a decode error."""
        session = make_session("OK")
        with pytest.raises(DecodeError):
            await kodi_rpc.player_play_pause(session, 1)

    @pytest.mark.asyncio
    async def test_ping(self) -> None:
        """JSONRPC.Ping must return a string."""
        assert await kodi_rpc.ping(make_session("pong")) == "pong"
        with pytest.raises(DecodeError):
            await kodi_rpc.ping(make_session(None))

    @pytest.mark.asyncio
    async def test_introspect(self) -> None:
        """JSONRPC.Introspect returns the schema object as is."""
        schema = {"methods": {"Player.Open": {}}, "notifications": {}}
        assert await kodi_rpc.introspect(make_session(schema)) == schema
        with pytest.raises(DecodeError):
            await kodi_rpc.introspect(make_session([]))
