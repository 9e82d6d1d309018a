"""Command channel between UI callers and the session controller.

Callers submit control requests through :class:`KodiControl`; the session
controller is the single consumer. Status flows the other way as typed
events pushed onto listener queues.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from koko.kodi_types import (
    GlobalToggle,
    GoTo,
    PlayerProperties,
    PlayerPropertyName,
    PlayerTime,
    PlaylistPosition,
    Seek,
    SeekResult,
)

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 64


class QueueFullError(Exception):
    """The control queue is full; the request was not enqueued."""


class ControlClosedError(Exception):
    """The session controller is gone and will not answer."""


# Control requests


@dataclass(frozen=True)
class SeekRequest:
    """Seek the active player."""

    seek: Seek


@dataclass(frozen=True)
class PlayPauseRequest:
    """Pause, resume or toggle the active player."""

    play: GlobalToggle = GlobalToggle.TOGGLE


@dataclass(frozen=True)
class GoToRequest:
    """Move to the next or previous playlist entry."""

    to: GoTo


@dataclass(frozen=True)
class PropertiesRequest:
    """Fetch a subset of the active player's properties."""

    properties: tuple[PlayerPropertyName, ...]


@dataclass(frozen=True, eq=False)
class RegisterStatusListener:
    """Start pushing status events onto ``queue``."""

    queue: asyncio.Queue[StatusEvent]


ControlRequest = SeekRequest | PlayPauseRequest | GoToRequest | PropertiesRequest | RegisterStatusListener


# Status events


class PlaybackState(Enum):
    """Playback state as shown to the user."""

    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PlaylistPositionChanged:
    """Playback moved to another playlist entry (0-based)."""

    position: PlaylistPosition


@dataclass(frozen=True)
class NowPlayingChanged:
    """A new item started playing."""

    title: str | None


@dataclass(frozen=True)
class PlaybackStateChanged:
    """The player paused, resumed or stopped."""

    state: PlaybackState


@dataclass(frozen=True)
class TimeChanged:
    """Fresh elapsed/total time from a poll or a seek."""

    time: PlayerTime | None
    total_time: PlayerTime | None
    percentage: float | None


StatusEvent = PlaylistPositionChanged | NowPlayingChanged | PlaybackStateChanged | TimeChanged


@dataclass
class PendingRequest:
    """A queued request and, for awaited submissions, where its reply goes."""

    request: ControlRequest
    reply: asyncio.Future[Any] | None = None

    def resolve(self, result: Any) -> None:
        """Deliver the result, if anyone is still waiting for it."""
        if self.reply is not None and not self.reply.done():
            self.reply.set_result(result)

    def fail(self, err: BaseException) -> None:
        """Deliver an error, if anyone is still waiting for it."""
        if self.reply is not None and not self.reply.done():
            self.reply.set_exception(err)


class KodiControl:
    """Bounded queue of control requests for the session controller."""

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue: asyncio.Queue[PendingRequest] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once the controller stopped consuming."""
        return self._closed

    def _put(self, pending: PendingRequest) -> None:
        if self._closed:
            raise ControlClosedError("Session controller has exited")
        try:
            self._queue.put_nowait(pending)
        except asyncio.QueueFull as err:
            raise QueueFullError(f"Control queue is full ({self._queue.maxsize})") from err

    async def submit(self, request: ControlRequest) -> Any:
        """Enqueue a request and wait for the controller's answer.

        Raises:
            QueueFullError: The queue is full; nothing was enqueued.
            ControlClosedError: The controller exited before answering.
        """
        reply: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._put(PendingRequest(request, reply))
        return await reply

    def submit_nowait(self, request: ControlRequest) -> None:
        """Enqueue a request without waiting for an answer."""
        self._put(PendingRequest(request))

    async def seek(self, seek: Seek) -> SeekResult | None:
        """Seek; None when there is no player or the seek failed."""
        return await self.submit(SeekRequest(seek))

    async def play_pause(self, play: GlobalToggle = GlobalToggle.TOGGLE) -> int | None:
        """Pause or resume; returns the new speed, or None."""
        return await self.submit(PlayPauseRequest(play))

    async def next_item(self) -> bool | None:
        """Skip to the next playlist entry."""
        return await self.submit(GoToRequest(GoTo.NEXT))

    async def previous_item(self) -> bool | None:
        """Go back to the previous playlist entry."""
        return await self.submit(GoToRequest(GoTo.PREVIOUS))

    async def properties(self, *properties: PlayerPropertyName) -> PlayerProperties | None:
        """Fetch player properties; None when there is no player or the call failed."""
        return await self.submit(PropertiesRequest(tuple(properties)))

    def add_status_listener(self, queue: asyncio.Queue[StatusEvent]) -> None:
        """Have status events pushed onto ``queue``."""
        self.submit_nowait(RegisterStatusListener(queue))

    async def get(self) -> PendingRequest:
        """Take the next request. Only the session controller calls this."""
        return await self._queue.get()

    def close(self) -> None:
        """Refuse further requests and fail the ones still queued."""
        if self._closed:
            return
        self._closed = True
        while True:
            try:
                pending = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            pending.fail(ControlClosedError("Session controller has exited"))
        logger.debug("Control channel closed")
