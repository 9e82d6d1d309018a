"""Playback session controller.

The controller owns the JSON-RPC session for the lifetime of one playback
session. It opens the items on Kodi, then runs a single loop that waits on
four sources at once (notifications, control requests, the exit signal and,
after an ambiguous stop, a deadline) and fully handles one of them before
waiting again. Only one call is ever in flight on the session.

Kodi does not say whether ``Player.OnStop`` means "the playlist is over" or
"moving to the next entry". A stop before our first ``Player.OnAVStart``
belongs to whatever Kodi was playing earlier and is ignored. After that the
controller guesses: if the player no longer
reports a current video stream the playback has ended; otherwise it waits up
to ``stop_timeout`` seconds for the next ``Player.OnAVStart`` before giving
up. This is a heuristic and the timeout is configurable for that reason.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from koko import kodi_rpc
from koko.control import (
    ControlClosedError,
    ControlRequest,
    GoToRequest,
    KodiControl,
    NowPlayingChanged,
    PendingRequest,
    PlaybackState,
    PlaybackStateChanged,
    PlayPauseRequest,
    PlaylistPositionChanged,
    PropertiesRequest,
    RegisterStatusListener,
    SeekRequest,
    StatusEvent,
    TimeChanged,
)
from koko.exit import ExitSignal
from koko.jsonrpc import JsonRpcError, NotificationStream
from koko.kodi_rpc import RpcSession
from koko.kodi_types import (
    NO_POSITION,
    VIDEO_PLAYLIST_ID,
    GUIWindow,
    Notification,
    PlayerId,
    PlayerOnAVChange,
    PlayerOnAVStart,
    PlayerOnPause,
    PlayerOnPlay,
    PlayerOnResume,
    PlayerOnStop,
    PlayerProperties,
    PlayerPropertyName,
    SeekRelativeSeconds,
)
from koko.utils import create_task

logger = logging.getLogger(__name__)

DEFAULT_STOP_TIMEOUT = 5.0

_START_PROPERTIES = (PlayerPropertyName.CURRENT_VIDEO_STREAM, PlayerPropertyName.PLAYLIST_POSITION)
_STOP_PROPERTIES = (PlayerPropertyName.CURRENT_VIDEO_STREAM,)


class SessionState(Enum):
    """Where the controller is in the playback lifecycle."""

    WAITING_START = auto()
    WAITING_LAST = auto()
    WAITING_TIMEOUT = auto()
    FINISHED = auto()


@dataclass
class ControlContext:
    """The session and what a control request handler may need with it."""

    session: RpcSession
    player_id: PlayerId | None = None
    listeners: list[asyncio.Queue[StatusEvent]] = field(default_factory=list)

    def publish(self, event: StatusEvent) -> None:
        """Push a status event to every listener."""
        for queue in self.listeners:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("Status listener is full, dropping %s", event)


async def handle_request(ctx: ControlContext, request: ControlRequest) -> Any:
    """Run one control request against the session.

    Player-bound requests answer None while no player is known. Failed calls
    are logged and answered with None.
    """
    if isinstance(request, RegisterStatusListener):
        ctx.listeners.append(request.queue)
        return None

    if ctx.player_id is None:
        logger.debug("No active player yet, ignoring %s", request)
        return None

    player_id = ctx.player_id
    try:
        match request:
            case SeekRequest(seek=seek):
                result = await kodi_rpc.player_seek(ctx.session, player_id, seek)
                ctx.publish(TimeChanged(result.time, result.total_time, result.percentage))
                return result
            case PlayPauseRequest(play=play):
                speed = await kodi_rpc.player_play_pause(ctx.session, player_id, play)
                ctx.publish(PlaybackStateChanged(_state_for_speed(speed)))
                return speed
            case GoToRequest(to=to):
                await kodi_rpc.player_goto(ctx.session, player_id, to)
                return True
            case PropertiesRequest(properties=properties):
                props = await kodi_rpc.player_get_properties(ctx.session, player_id, properties)
                _publish_properties(ctx, properties, props)
                return props
            case _:
                raise TypeError(f"Unknown control request: {request!r}")
    except JsonRpcError as err:
        logger.warning("%s did not take effect: %s", type(request).__name__, err)
        return None


def _state_for_speed(speed: float) -> PlaybackState:
    return PlaybackState.PAUSED if speed == 0 else PlaybackState.PLAYING


def _publish_properties(
    ctx: ControlContext,
    requested: Sequence[PlayerPropertyName],
    props: PlayerProperties,
) -> None:
    if props.time is not None or props.total_time is not None:
        percentage = props.percentage if PlayerPropertyName.PERCENTAGE in requested else None
        ctx.publish(TimeChanged(props.time, props.total_time, percentage))
    if PlayerPropertyName.SPEED in requested:
        ctx.publish(PlaybackStateChanged(_state_for_speed(props.speed)))


class SessionController:
    """Drives one playback session from bring-up to teardown.

    Args:
        session: A connected session. The controller subscribes to it.
        items: Playable URLs, in order. More than one uses the video playlist.
        exit_signal: Observed for cancellation and signalled on cancel.
        control: The command channel; closed when the controller exits.
        start_seconds: Seek this far into the first item once it starts.
        stop_timeout: Seconds to wait for the next item after an ambiguous stop.
        on_cancel: Called on cancellation, before teardown.
    """

    def __init__(
        self,
        session: RpcSession,
        items: Sequence[str],
        exit_signal: ExitSignal,
        control: KodiControl,
        *,
        start_seconds: int | None = None,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        on_cancel: Callable[[], None] | None = None,
    ) -> None:
        if not items:
            raise ValueError("At least one item is required")
        self._items = list(items)
        self._playlist_mode = len(self._items) > 1
        self._exit = exit_signal
        self._control = control
        self._start_seconds = start_seconds
        self._stop_timeout = stop_timeout
        self._on_cancel = on_cancel
        self._ctx = ControlContext(session)
        self._state = SessionState.WAITING_START
        self._deadline: float | None = None
        self._started = False
        self._torn_down = False

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def player_id(self) -> PlayerId | None:
        """The player captured from the first playback start."""
        return self._ctx.player_id

    @property
    def playlist_mode(self) -> bool:
        """True when the items are played through the video playlist."""
        return self._playlist_mode

    async def run(self) -> None:
        """Bring playback up, run until it ends, then tear down.

        Raises:
            JsonRpcError: Bring-up failed; no teardown is attempted.
        """
        try:
            # Subscribe first so the playback start cannot be missed
            stream = self._ctx.session.subscribe()
            await self._bring_up()
            await self._event_loop(stream)
        finally:
            self._control.close()

    async def _bring_up(self) -> None:
        session = self._ctx.session
        if self._playlist_mode:
            logger.info("Opening %d items through the video playlist", len(self._items))
            await kodi_rpc.playlist_clear(session, VIDEO_PLAYLIST_ID)
            await kodi_rpc.playlist_add(session, VIDEO_PLAYLIST_ID, self._items)
            await kodi_rpc.player_open_playlist(session, VIDEO_PLAYLIST_ID, 0)
        else:
            logger.info("Opening %s", self._items[0])
            await kodi_rpc.player_open_file(session, self._items[0])
        await kodi_rpc.gui_activate_window(session, GUIWindow.FULLSCREEN_VIDEO)

    async def _event_loop(self, stream: NotificationStream) -> None:
        loop = asyncio.get_running_loop()
        exit_task = create_task(self._exit.wait(), name="koko-exit")
        control_task = create_task(self._control.get(), name="koko-control")
        notification_task = create_task(_next_notification(stream), name="koko-notification")
        try:
            while self._state is not SessionState.FINISHED:
                timeout = None
                if self._state is SessionState.WAITING_TIMEOUT and self._deadline is not None:
                    timeout = max(0.0, self._deadline - loop.time())

                done, _ = await asyncio.wait(
                    {exit_task, control_task, notification_task},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if exit_task in done:
                    await self._cancel()
                elif control_task in done:
                    pending = control_task.result()
                    control_task = create_task(self._control.get(), name="koko-control")
                    await self._handle_control(pending)
                elif notification_task in done:
                    notification = notification_task.result()
                    if notification is None:
                        logger.warning("Notification stream ended, connection to Kodi lost")
                        await self._finish()
                        break
                    notification_task = create_task(
                        _next_notification(stream), name="koko-notification"
                    )
                    await self._handle_notification(notification)
                else:
                    logger.info("No playback started within %.1fs of the last stop", self._stop_timeout)
                    await self._finish()
        finally:
            for task in (exit_task, control_task, notification_task):
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
            # A request taken off the queue but never handled still gets an answer
            if control_task.done() and not control_task.cancelled() and control_task.exception() is None:
                control_task.result().fail(ControlClosedError("Session controller has exited"))

    async def _handle_control(self, pending: PendingRequest) -> None:
        try:
            result = await handle_request(self._ctx, pending.request)
        except Exception as err:
            pending.fail(err)
            raise
        pending.resolve(result)

    async def _handle_notification(self, notification: Notification) -> None:
        logger.debug("Notification %s", notification.method)
        match notification:
            case PlayerOnAVStart():
                await self._on_playback_start(notification)
            case PlayerOnStop():
                await self._on_stop()
            case PlayerOnPause():
                self._ctx.publish(PlaybackStateChanged(PlaybackState.PAUSED))
            case PlayerOnResume() | PlayerOnPlay():
                self._ctx.publish(PlaybackStateChanged(PlaybackState.PLAYING))
            case PlayerOnAVChange():
                pass

    async def _on_playback_start(self, notification: PlayerOnAVStart) -> None:
        first_start = not self._started
        self._started = True
        if self._ctx.player_id is None:
            self._ctx.player_id = notification.player.player_id
            logger.info("Playback started on player %d", self._ctx.player_id)

        props = await self._fetch_properties(_START_PROPERTIES)
        if props is not None and self._playlist_mode and props.playlist_position != NO_POSITION:
            self._ctx.publish(PlaylistPositionChanged(props.playlist_position))
        self._ctx.publish(NowPlayingChanged(notification.item.describe()))
        self._ctx.publish(PlaybackStateChanged(PlaybackState.PLAYING))

        if first_start and self._start_seconds:
            logger.info("Seeking %ds into the first item", self._start_seconds)
            await handle_request(self._ctx, SeekRequest(SeekRelativeSeconds(self._start_seconds)))

        self._state = SessionState.WAITING_LAST
        self._deadline = None

    async def _on_stop(self) -> None:
        if self._state is SessionState.WAITING_START:
            # Opening our items stops whatever Kodi was playing before
            logger.debug("Ignoring stop of an earlier playback")
            return

        self._ctx.publish(PlaybackStateChanged(PlaybackState.STOPPED))
        props = await self._fetch_properties(_STOP_PROPERTIES)
        stream = None if props is None else props.current_video_stream
        if stream is None or stream.is_empty:
            logger.info("Playback finished")
            await self._finish()
            return

        logger.debug("Stop with an active video stream, waiting for the next item")
        self._deadline = asyncio.get_running_loop().time() + self._stop_timeout
        self._state = SessionState.WAITING_TIMEOUT

    async def _cancel(self) -> None:
        logger.info("Exit requested")
        self._exit.signal()
        if self._on_cancel is not None:
            self._on_cancel()
        await self._finish()

    async def _fetch_properties(
        self, properties: Sequence[PlayerPropertyName]
    ) -> PlayerProperties | None:
        if self._ctx.player_id is None:
            return None
        try:
            return await kodi_rpc.player_get_properties(
                self._ctx.session, self._ctx.player_id, properties
            )
        except JsonRpcError as err:
            logger.warning("Fetching player properties failed: %s", err)
            return None

    async def _finish(self) -> None:
        await self._teardown()
        self._state = SessionState.FINISHED

    async def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        session = self._ctx.session

        if self._ctx.player_id is None:
            logger.info("No player was started, not stopping one")
        else:
            await _attempt("Player.Stop", kodi_rpc.player_stop(session, self._ctx.player_id))
        if self._playlist_mode:
            await _attempt("Playlist.Clear", kodi_rpc.playlist_clear(session, VIDEO_PLAYLIST_ID))
        await _attempt("GUI.ActivateWindow", kodi_rpc.gui_activate_window(session, GUIWindow.HOME))


async def _next_notification(stream: NotificationStream) -> Notification | None:
    try:
        return await anext(stream)
    except StopAsyncIteration:
        return None


async def _attempt(what: str, call: Awaitable[None]) -> None:
    try:
        await call
    except JsonRpcError as err:
        logger.warning("Teardown step %s failed: %s", what, err)
