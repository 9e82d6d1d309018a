"""Keyboard input handling for koko."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import TYPE_CHECKING

import readchar

from koko.control import ControlClosedError, QueueFullError
from koko.kodi_types import SeekRelativeSeconds, SeekRelativeStep, SeekStep

if TYPE_CHECKING:
    from koko.control import KodiControl
    from koko.exit import ExitSignal
    from koko.ui import KokoUI

logger = logging.getLogger(__name__)

# How often the key reader thread checks for exit
KEY_POLL_INTERVAL = 0.2

_DIGITS = "0123456789"


class SeekEntry:
    """A relative seek typed as digits.

    Digits shift into ``hh:mm:ss`` from the right, so typing ``1``, ``3``,
    ``0`` means one minute thirty. ``-`` flips the direction.
    """

    MAX_DIGITS = 6

    def __init__(self, first_key: str = "") -> None:
        self.negative = False
        self._digits = ""
        if first_key:
            self.add(first_key)

    def add(self, key: str) -> bool:
        """Add a digit or flip the direction; False if the key was not taken."""
        if key == "-":
            self.negative = not self.negative
            return True
        if key in _DIGITS and len(key) == 1:
            if len(self._digits) >= self.MAX_DIGITS:
                return False
            # Leading zeros carry no value
            if self._digits or key != "0":
                self._digits += key
            return True
        return False

    def backspace(self) -> None:
        """Remove the last digit."""
        self._digits = self._digits[:-1]

    def _fields(self) -> tuple[int, int, int]:
        padded = self._digits.rjust(self.MAX_DIGITS, "0")
        return int(padded[0:2]), int(padded[2:4]), int(padded[4:6])

    def seconds(self) -> int:
        """The signed offset in seconds."""
        hours, minutes, seconds = self._fields()
        total = hours * 3600 + minutes * 60 + seconds
        return -total if self.negative else total

    def display(self) -> str:
        """Render as ``+hh:mm:ss`` or ``-hh:mm:ss``."""
        hours, minutes, seconds = self._fields()
        sign = "-" if self.negative else "+"
        return f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"


class CommandHandler:
    """Turns key presses into control requests."""

    def __init__(
        self,
        control: KodiControl,
        exit_signal: ExitSignal,
        ui: KokoUI | None = None,
    ) -> None:
        """Initialize the command handler."""
        self._control = control
        self._exit = exit_signal
        self._ui = ui
        self.seek_entry: SeekEntry | None = None

        # Key dispatch table: key -> (highlight_name, async action)
        self._shortcuts: dict[str, tuple[str, Callable[[], Awaitable[None]]]] = {
            " ": ("space", self.toggle_play_pause),
            "[": ("prev", self.previous_item),
            readchar.key.PAGE_UP: ("prev", self.previous_item),
            "]": ("next", self.next_item),
            readchar.key.PAGE_DOWN: ("next", self.next_item),
            ",": ("small-back", lambda: self.seek_step(SeekStep.SMALL_BACKWARD)),
            ".": ("small-forward", lambda: self.seek_step(SeekStep.SMALL_FORWARD)),
            "<": ("big-back", lambda: self.seek_step(SeekStep.BIG_BACKWARD)),
            ">": ("big-forward", lambda: self.seek_step(SeekStep.BIG_FORWARD)),
        }

    async def _submit(self, request: Awaitable[object]) -> None:
        try:
            await request
        except QueueFullError:
            logger.warning("Kodi is not keeping up, dropped a command")
        except ControlClosedError:
            logger.debug("Command after the session ended")

    async def toggle_play_pause(self) -> None:
        """Pause or resume playback."""
        await self._submit(self._control.play_pause())

    async def next_item(self) -> None:
        """Skip to the next playlist entry."""
        await self._submit(self._control.next_item())

    async def previous_item(self) -> None:
        """Go back to the previous playlist entry."""
        await self._submit(self._control.previous_item())

    async def seek_step(self, step: SeekStep) -> None:
        """Seek by one of Kodi's predefined steps."""
        await self._submit(self._control.seek(SeekRelativeStep(step)))

    async def seek_by(self, seconds: int) -> None:
        """Seek by a signed number of seconds."""
        if seconds:
            await self._submit(self._control.seek(SeekRelativeSeconds(seconds)))

    def quit(self) -> None:
        """Request exit."""
        self._exit.signal()

    def _show_seek_entry(self) -> None:
        if self._ui is not None:
            self._ui.set_seek_entry(None if self.seek_entry is None else self.seek_entry.display())

    async def _handle_seek_key(self, entry: SeekEntry, key: str) -> None:
        if key in (readchar.key.ENTER, "\n"):
            self.seek_entry = None
            self._show_seek_entry()
            await self.seek_by(entry.seconds())
            return
        if key == readchar.key.ESC:
            self.seek_entry = None
        elif key in (readchar.key.BACKSPACE, "\x08"):
            entry.backspace()
        else:
            entry.add(key)
        self._show_seek_entry()

    async def handle_key(self, key: str) -> None:
        """Act on one key press."""
        if key == readchar.key.CTRL_C:
            self.quit()
            return

        if self.seek_entry is not None:
            await self._handle_seek_key(self.seek_entry, key)
            return

        if key == "q":
            if self._ui:
                self._ui.highlight_shortcut("quit")
            self.quit()
            return

        if key == "-" or (len(key) == 1 and key in _DIGITS):
            if self._ui:
                self._ui.highlight_shortcut("seek")
            self.seek_entry = SeekEntry(key)
            self._show_seek_entry()
            return

        action = self._shortcuts.get(key)
        if action:
            highlight_name, action_handler = action
            if self._ui:
                self._ui.highlight_shortcut(highlight_name)
            await action_handler()


def _read_keys(
    loop: asyncio.AbstractEventLoop,
    keys: asyncio.Queue[str | None],
    exit_signal: ExitSignal,
) -> None:
    """Read keys on a thread and hand them to the event loop."""
    try:
        if sys.platform == "win32":
            while not exit_signal.is_set():
                loop.call_soon_threadsafe(keys.put_nowait, readchar.readkey())
            return

        import select
        import termios
        import tty

        fd = sys.stdin.fileno()
        saved = termios.tcgetattr(fd)
        try:
            # cbreak so single key presses become readable
            tty.setcbreak(fd)
            while not exit_signal.is_set():
                readable, _, _ = select.select([sys.stdin], [], [], KEY_POLL_INTERVAL)
                if readable:
                    loop.call_soon_threadsafe(keys.put_nowait, readchar.readkey())
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
    except RuntimeError:
        logger.debug("Event loop closed, key reader exiting")
    finally:
        with suppress(RuntimeError):
            loop.call_soon_threadsafe(keys.put_nowait, None)


async def keyboard_loop(
    control: KodiControl,
    exit_signal: ExitSignal,
    ui: KokoUI | None = None,
) -> None:
    """Run the keyboard input loop until exit is requested.

    Args:
        control: Command channel to the session controller.
        exit_signal: Signalled on ``q`` or Ctrl-C; ends the loop.
        ui: Optional UI instance.
    """
    handler = CommandHandler(control, exit_signal, ui)

    if not sys.stdin.isatty():
        logger.info("Running without interactive input")
        await exit_signal.wait()
        return

    loop = asyncio.get_running_loop()
    keys: asyncio.Queue[str | None] = asyncio.Queue()
    reader = threading.Thread(
        target=_read_keys, args=(loop, keys, exit_signal), name="koko-keys", daemon=True
    )
    reader.start()

    while True:
        key = await keys.get()
        if key is None:
            break
        await handler.handle_key(key)
