"""Typed wrappers for the Kodi methods koko uses."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from koko.jsonrpc import DecodeError
from koko.kodi_types import (
    ActivePlayer,
    GlobalToggle,
    GoTo,
    GUIWindow,
    PlayerId,
    PlayerProperties,
    PlayerPropertyName,
    PlaylistId,
    PlaylistPosition,
    Seek,
    SeekResult,
)

if TYPE_CHECKING:
    from koko.jsonrpc import NotificationStream

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

# GUI.ActivateWindow requires a parameters list even where the window ignores it
REQUIRED_PARAMETER = ("required parameter",)


class RpcSession(Protocol):
    """What the wrappers and the controller need from a session."""

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any: ...

    def subscribe(self) -> NotificationStream: ...


def _decode(method: str, payload: Any, decoder: Callable[[Any], _T]) -> _T:
    try:
        return decoder(payload)
    except (KeyError, TypeError, ValueError) as err:
        logger.error("Failed to decode %s result (%s): %r", method, err, payload)
        raise DecodeError(method, payload) from err


def _expect_ok(method: str, payload: Any) -> None:
    if payload != "OK":
        logger.error("Unexpected %s result: %r", method, payload)
        raise DecodeError(method, payload)


async def ping(session: RpcSession) -> str:
    """JSONRPC.Ping."""
    result = await session.call("JSONRPC.Ping")
    return _decode("JSONRPC.Ping", result, _as_str)


def _as_str(payload: Any) -> str:
    if not isinstance(payload, str):
        raise TypeError(f"expected a string, got {type(payload).__name__}")
    return payload


async def introspect(session: RpcSession) -> dict[str, Any]:
    """JSONRPC.Introspect, returned undecoded."""
    result = await session.call("JSONRPC.Introspect")
    return _decode("JSONRPC.Introspect", result, _as_dict)


def _as_dict(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise TypeError(f"expected an object, got {type(payload).__name__}")
    return payload


async def player_open_file(session: RpcSession, file: str) -> None:
    """Player.Open on a single file or URL."""
    result = await session.call("Player.Open", {"item": {"file": file}})
    _expect_ok("Player.Open", result)


async def player_open_playlist(
    session: RpcSession, playlist_id: PlaylistId, position: PlaylistPosition = 0
) -> None:
    """Player.Open on a playlist position."""
    result = await session.call(
        "Player.Open", {"item": {"playlistid": playlist_id, "position": position}}
    )
    _expect_ok("Player.Open", result)


async def player_stop(session: RpcSession, player_id: PlayerId) -> None:
    """Player.Stop."""
    result = await session.call("Player.Stop", {"playerid": player_id})
    _expect_ok("Player.Stop", result)


async def player_seek(session: RpcSession, player_id: PlayerId, seek: Seek) -> SeekResult:
    """Player.Seek, returning the updated position."""
    result = await session.call("Player.Seek", {"playerid": player_id, "value": seek.to_param()})
    return _decode("Player.Seek", result, SeekResult.from_dict)


async def player_play_pause(
    session: RpcSession, player_id: PlayerId, play: GlobalToggle = GlobalToggle.TOGGLE
) -> int:
    """Player.PlayPause, returning the new speed."""
    result = await session.call("Player.PlayPause", {"playerid": player_id, "play": play.value})
    return _decode("Player.PlayPause", result, lambda r: int(_as_dict(r)["speed"]))


async def player_goto(session: RpcSession, player_id: PlayerId, to: GoTo) -> None:
    """Player.GoTo next or previous."""
    result = await session.call("Player.GoTo", {"playerid": player_id, "to": to.value})
    _expect_ok("Player.GoTo", result)


async def player_get_properties(
    session: RpcSession,
    player_id: PlayerId,
    properties: Iterable[PlayerPropertyName],
) -> PlayerProperties:
    """Player.GetProperties for the given subset of properties."""
    result = await session.call(
        "Player.GetProperties",
        {"playerid": player_id, "properties": [p.value for p in properties]},
    )
    return _decode("Player.GetProperties", result, PlayerProperties.from_dict)


async def playlist_add(session: RpcSession, playlist_id: PlaylistId, files: Sequence[str]) -> None:
    """Playlist.Add, appending files in order."""
    result = await session.call(
        "Playlist.Add",
        {"playlistid": playlist_id, "item": [{"file": f} for f in files]},
    )
    _expect_ok("Playlist.Add", result)


async def playlist_clear(session: RpcSession, playlist_id: PlaylistId) -> None:
    """Playlist.Clear."""
    result = await session.call("Playlist.Clear", {"playlistid": playlist_id})
    _expect_ok("Playlist.Clear", result)


async def gui_activate_window(
    session: RpcSession,
    window: GUIWindow,
    parameters: Sequence[str] = REQUIRED_PARAMETER,
) -> None:
    """GUI.ActivateWindow."""
    result = await session.call(
        "GUI.ActivateWindow", {"window": window.value, "parameters": list(parameters)}
    )
    _expect_ok("GUI.ActivateWindow", result)


async def get_active_players(session: RpcSession) -> list[ActivePlayer]:
    """Player.GetActivePlayers."""
    result = await session.call("Player.GetActivePlayers")
    return _decode(
        "Player.GetActivePlayers", result, lambda r: [ActivePlayer.from_dict(p) for p in r]
    )


async def get_players(session: RpcSession) -> list[dict[str, Any]]:
    """Player.GetPlayers: every player Kodi knows about, undecoded."""
    result = await session.call("Player.GetPlayers", {"media": "all"})
    return _decode("Player.GetPlayers", result, lambda r: [_as_dict(p) for p in r])
