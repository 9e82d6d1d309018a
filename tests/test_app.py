"""
Tests for application setup helpers and the command line.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp import BasicAuth

from koko.app import (
    AppConfig,
    KodiEndpoint,
    KokoApp,
    SetupError,
    check_sources,
    list_players,
    locate_kodi,
    select_host,
)
from koko.cli import parse_args
from koko.control import NowPlayingChanged, PlaybackState, PlaybackStateChanged
from koko.discovery import DiscoveredHost
from koko.settings import ConfigError, HostConfig


class TestSelectHost:
    """Tests for select_host."""

    def test_overrides_apply(self, tmp_path: Path) -> None:
        """Command-line values override the configured host."""
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "default": "den",
                    "listen_port": 8000,
                    "hosts": {"den": {"hostname": "den.local", "username": "kodi", "ws_port": 9999}},
                }
            )
        )
        host = select_host(AppConfig(config_path=path, password="secret", port=8081))

        assert host.hostname == "den.local"
        assert host.username == "kodi"
        assert host.password == "secret"
        assert host.port == 8081
        assert host.ws_port == 9999
        assert host.listen_port == 8000

    def test_ambiguous(self, tmp_path: Path) -> None:
        """Several hosts without a default or -k fail."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"hosts": {"a": {}, "b": {}}}))
        with pytest.raises(ConfigError):
            select_host(AppConfig(config_path=path))

    def test_kodi_option_as_hostname(self, tmp_path: Path) -> None:
        """An unknown -k value is a host name."""
        host = select_host(AppConfig(config_path=tmp_path / "none.json", kodi="192.168.1.20"))
        assert host.hostname == "192.168.1.20"


class TestLocateKodi:
    """Tests for locate_kodi."""

    @pytest.mark.asyncio
    async def test_resolver(self) -> None:
        """Without discovery the system resolver is used."""
        with patch("koko.app.resolve_address", AsyncMock(return_value="10.0.0.5")):
            endpoint = await locate_kodi(HostConfig(hostname="kodi.lan", username="kodi", password="pw"))

        assert endpoint.address == "10.0.0.5"
        assert endpoint.auth == BasicAuth("kodi", "pw")
        assert endpoint.http_url == "http://10.0.0.5:8080/jsonrpc"
        assert endpoint.ws_url == "ws://10.0.0.5:9090/jsonrpc"

    @pytest.mark.asyncio
    async def test_discovery(self) -> None:
        """With discovery the advertised address and port are used."""
        found = DiscoveredHost("Kodi (den)", "den", "10.0.0.7", 8181)
        with patch("koko.app.discover_first", AsyncMock(return_value=found)):
            endpoint = await locate_kodi(HostConfig(hostname="den", discovery=True))

        assert (endpoint.address, endpoint.port, endpoint.auth) == ("10.0.0.7", 8181, None)

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        """A host that is not advertised or resolvable is a setup error."""
        with patch("koko.app.discover_first", AsyncMock(return_value=None)):
            with pytest.raises(SetupError):
                await locate_kodi(HostConfig(hostname="den", discovery=True))
        with patch("koko.app.resolve_address", AsyncMock(side_effect=OSError("no such host"))):
            with pytest.raises(SetupError):
                await locate_kodi(HostConfig(hostname="nowhere"))

    def test_ipv6_urls(self) -> None:
        """IPv6 addresses are bracketed in URLs."""
        endpoint = KodiEndpoint("fe80::1", 8080, 9090)
        assert endpoint.ws_url == "ws://[fe80::1]:9090/jsonrpc"


class TestCheckSources:
    """Tests for check_sources."""

    def test_missing(self, tmp_path: Path) -> None:
        """A missing file is rejected."""
        with pytest.raises(SetupError):
            check_sources([tmp_path / "missing.mkv"])

    def test_directory(self, tmp_path: Path) -> None:
        """A directory is rejected."""
        with pytest.raises(SetupError):
            check_sources([tmp_path])

    def test_files(self, tmp_path: Path) -> None:
        """Existing files pass."""
        media = tmp_path / "a.mkv"
        media.write_bytes(b"")
        check_sources([media])


class TestHeadlessStatus:
    """Tests for the headless status output."""

    @pytest.mark.asyncio
    async def test_state_changes_printed_once(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Repeated states from polling are printed only when they change."""
        app = KokoApp(AppConfig())
        events: asyncio.Queue = asyncio.Queue()
        for event in (
            NowPlayingChanged("Sintel"),
            PlaybackStateChanged(PlaybackState.PLAYING),
            PlaybackStateChanged(PlaybackState.PLAYING),
            PlaybackStateChanged(PlaybackState.PAUSED),
        ):
            events.put_nowait(event)

        task = asyncio.create_task(app._status_loop(events))
        while not events.empty():
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert capsys.readouterr().out.splitlines() == [
            "Now playing: Sintel",
            "Playback playing",
            "Playback paused",
        ]


class TestListPlayers:
    """Tests for list_players."""

    @pytest.mark.asyncio
    async def test_prints_api_and_players(self, capsys: pytest.CaptureFixture[str]) -> None:
        """The introspected API size and the players are printed."""
        answers = {
            "JSONRPC.Introspect": {
                "methods": {"Player.Open": {}, "Player.Stop": {}},
                "notifications": {"Player.OnStop": {}},
            },
            "Player.GetPlayers": [{"name": "VideoPlayer", "type": "internal"}],
            "Player.GetActivePlayers": [{"playerid": 1, "type": "video", "playertype": "internal"}],
        }
        session = MagicMock()
        session.call = AsyncMock(side_effect=lambda method, params=None: answers[method])
        session.close = AsyncMock()

        with (
            patch("koko.app.select_host", return_value=HostConfig(hostname="den")),
            patch("koko.app.locate_kodi", AsyncMock(return_value=KodiEndpoint("10.0.0.5", 8080, 9090))),
            patch("koko.app.connect", AsyncMock(return_value=session)),
        ):
            assert await list_players(AppConfig()) == 0

        out = capsys.readouterr().out.splitlines()
        assert out[0] == "Kodi at 10.0.0.5 offers 2 methods and 1 notifications"
        assert "  VideoPlayer (internal)" in out
        assert "  [1] video (internal)" in out
        session.close.assert_awaited_once()


class TestParseArgs:
    """Tests for the command line."""

    def test_options(self) -> None:
        """Options map onto the namespace."""
        args = parse_args(["-k", "den", "-u", "kodi", "-p", "pw", "-s", "1h4m3s", "a.mkv", "b.mkv"])
        assert args.kodi == "den"
        assert args.user == "kodi"
        assert args.password == "pw"
        assert args.start == 3843
        assert args.sources == [Path("a.mkv"), Path("b.mkv")]

    def test_sources_required(self) -> None:
        """Playing needs at least one file."""
        with pytest.raises(SystemExit):
            parse_args([])

    def test_listing_needs_no_sources(self) -> None:
        """Listing players or hosts works without files."""
        assert parse_args(["--list-players"]).list_players
        assert parse_args(["--list-hosts"]).list_hosts

    def test_bad_start_time(self) -> None:
        """A malformed start time is a usage error."""
        with pytest.raises(SystemExit):
            parse_args(["-s", "10", "a.mkv"])

    def test_stop_timeout_positive(self) -> None:
        """The stop timeout must be positive."""
        assert parse_args(["--stop-timeout", "2.5", "a.mkv"]).stop_timeout == 2.5
        with pytest.raises(SystemExit):
            parse_args(["--stop-timeout", "0", "a.mkv"])
