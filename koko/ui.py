"""Rich-based terminal UI for koko."""

from __future__ import annotations

import time
from dataclasses import dataclass

from rich.console import Console, ConsoleOptions, RenderResult
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from koko.control import (
    NowPlayingChanged,
    PlaybackState,
    PlaybackStateChanged,
    PlaylistPositionChanged,
    StatusEvent,
    TimeChanged,
)
from koko.kodi_types import PlayerTime


class _RefreshableLayout:
    """A renderable that rebuilds on each render cycle."""

    def __init__(self, ui: KokoUI) -> None:
        self._ui = ui

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        """Rebuild and yield the layout on each render."""
        yield self._ui._build_layout()  # noqa: SLF001


# Duration in seconds to highlight a pressed shortcut
SHORTCUT_HIGHLIGHT_DURATION = 0.15


@dataclass
class UIState:
    """Holds state for the UI display."""

    # Connection
    host: str | None = None
    status_message: str = "Starting..."

    # Playback
    playback_state: PlaybackState | None = None
    title: str | None = None
    playlist_position: int | None = None
    playlist_count: int = 1
    time: PlayerTime | None = None
    total_time: PlayerTime | None = None
    percentage: float | None = None

    # Relative seek being typed, e.g. "-00:01:30"
    seek_entry: str | None = None

    # Shortcut highlight
    highlighted_shortcut: str | None = None
    highlight_time: float = 0.0


class KokoUI:
    """Rich-based terminal UI for koko."""

    def __init__(self, playlist_count: int = 1) -> None:
        """Initialize the UI."""
        self._console = Console()
        self._state = UIState(playlist_count=playlist_count)
        self._live: Live | None = None

    @property
    def state(self) -> UIState:
        """Get the UI state for external updates."""
        return self._state

    def _format_time(self, value: PlayerTime | None) -> str:
        return "-:--:--" if value is None else str(value)

    def _is_highlighted(self, shortcut: str) -> bool:
        if self._state.highlighted_shortcut != shortcut:
            return False
        elapsed = time.monotonic() - self._state.highlight_time
        return elapsed < SHORTCUT_HIGHLIGHT_DURATION

    def _shortcut_style(self, shortcut: str) -> str:
        return "bold yellow reverse" if self._is_highlighted(shortcut) else "bold cyan"

    def highlight_shortcut(self, shortcut: str) -> None:
        """Highlight a shortcut temporarily."""
        self._state.highlighted_shortcut = shortcut
        self._state.highlight_time = time.monotonic()
        self.refresh()

    def _build_now_playing_panel(self, *, expand: bool = False) -> Panel:
        info = Table.grid(padding=(0, 1))
        info.add_column(style="dim", width=9)
        info.add_column()

        info.add_row("Title:", Text(self._state.title or "Waiting for Kodi...", style="bold white"))
        if self._state.playlist_count > 1:
            position = self._state.playlist_position
            shown = "-" if position is None else f"#{position + 1}"
            info.add_row("Playlist:", Text(f"{shown} / {self._state.playlist_count}", style="cyan"))
        state = self._state.playback_state
        info.add_row("State:", Text(state.value if state else "opening", style="dim"))

        content = Table.grid()
        content.add_column()
        content.add_row(info)
        content.add_row("")

        space_label = "pause" if state is PlaybackState.PLAYING else "play"
        shortcuts = Text()
        if self._state.playlist_count > 1:
            shortcuts.append("[", style=self._shortcut_style("prev"))
            shortcuts.append(" prev  ", style="dim")
        shortcuts.append("<space>", style=self._shortcut_style("space"))
        shortcuts.append(f" {space_label}  ", style="dim")
        if self._state.playlist_count > 1:
            shortcuts.append("]", style=self._shortcut_style("next"))
            shortcuts.append(" next  ", style="dim")
        shortcuts.append("<", style=self._shortcut_style("big-back"))
        shortcuts.append(" ", style="dim")
        shortcuts.append(",", style=self._shortcut_style("small-back"))
        shortcuts.append(" ", style="dim")
        shortcuts.append(".", style=self._shortcut_style("small-forward"))
        shortcuts.append(" ", style="dim")
        shortcuts.append(">", style=self._shortcut_style("big-forward"))
        shortcuts.append(" seek  ", style="dim")
        shortcuts.append("0-9", style=self._shortcut_style("seek"))
        shortcuts.append(" jump", style="dim")
        content.add_row(shortcuts)

        return Panel(content, title="Now Playing", border_style="blue", expand=expand)

    def _build_progress_bar(self, *, expand: bool = False) -> Panel:
        percentage = max(0.0, min(100.0, self._state.percentage or 0.0))

        time_str = f"{self._format_time(self._state.time)} / {self._format_time(self._state.total_time)}"

        # Terminal width minus panel borders (4), time text and spacing
        bar_width = max(10, self._console.width - 4 - len(time_str) - 5)
        filled = int(bar_width * percentage / 100)
        empty = bar_width - filled

        bar = Text()
        bar.append("[", style="dim")
        bar.append("=" * filled, style="green bold")
        if filled < bar_width:
            bar.append(">", style="green bold")
            bar.append("-" * max(0, empty - 1), style="dim")
        bar.append("] ", style="dim")

        time_text_styled = Text()
        time_text_styled.append(self._format_time(self._state.time), style="cyan")
        time_text_styled.append(" / ", style="dim")
        time_text_styled.append(self._format_time(self._state.total_time), style="cyan")

        content = Table.grid(expand=True, padding=0)
        content.add_column()
        content.add_column(justify="right", no_wrap=True)
        content.add_row(bar, time_text_styled)

        return Panel(content, title="Progress", border_style="green", expand=expand)

    def _build_seek_panel(self) -> Panel:
        content = Table.grid()
        content.add_column()
        content.add_row(Text(self._state.seek_entry or "", style="bold white"))
        content.add_row("")
        shortcuts = Text()
        shortcuts.append("<enter>", style="bold cyan")
        shortcuts.append(" seek  ", style="dim")
        shortcuts.append("-", style="bold cyan")
        shortcuts.append(" direction  ", style="dim")
        shortcuts.append("<esc>", style="bold cyan")
        shortcuts.append(" cancel", style="dim")
        content.add_row(shortcuts)
        return Panel(content, title="Seek by", border_style="cyan")

    def _build_layout(self) -> Table:
        # Leave 1 char margin to prevent wrapping
        width = self._console.width - 1

        layout = Table.grid(expand=False)
        layout.add_column(width=width)
        layout.add_row(self._build_now_playing_panel(expand=True))
        layout.add_row(self._build_progress_bar(expand=True))
        if self._state.seek_entry is not None:
            layout.add_row(self._build_seek_panel())
        layout.add_row(self._build_status_line())
        return layout

    def _build_status_line(self) -> Table:
        left = Text()
        left.append("  ")
        if self._state.host:
            left.append(f"Kodi at {self._state.host} · ", style="dim")
        left.append(self._state.status_message, style="dim")

        right = Text()
        right.append("q", style=self._shortcut_style("quit"))
        right.append(" quit", style="dim")

        line = Table.grid(expand=True)
        line.add_column(ratio=1)
        line.add_column(justify="right")
        line.add_column(width=2)
        line.add_row(left, right, "")
        return line

    def refresh(self) -> None:
        """Request a UI refresh."""
        if self._live is not None:
            self._live.refresh()

    def set_host(self, host: str) -> None:
        """Show which Kodi instance is being controlled."""
        self._state.host = host
        self.refresh()

    def set_status(self, message: str) -> None:
        """Update the status line."""
        self._state.status_message = message
        self.refresh()

    def set_seek_entry(self, text: str | None) -> None:
        """Show the seek entry with ``text``, or hide it with None."""
        self._state.seek_entry = text
        self.refresh()

    def apply_event(self, event: StatusEvent) -> None:
        """Update the display from a status event."""
        match event:
            case PlaylistPositionChanged(position=position):
                self._state.playlist_position = position
            case NowPlayingChanged(title=title):
                self._state.title = title
                self._state.time = None
                self._state.total_time = None
                self._state.percentage = None
            case PlaybackStateChanged(state=state):
                self._state.playback_state = state
                self._state.status_message = state.value.capitalize()
            case TimeChanged(time=time_, total_time=total_time, percentage=percentage):
                if time_ is not None:
                    self._state.time = time_
                if total_time is not None:
                    self._state.total_time = total_time
                if percentage is not None:
                    self._state.percentage = percentage
        self.refresh()

    def start(self) -> None:
        """Start the live display."""
        self._console.clear()
        self._live = Live(
            _RefreshableLayout(self),
            console=self._console,
            refresh_per_second=4,
            screen=True,
        )
        self._live.start()

    def stop(self) -> None:
        """Stop the live display."""
        if self._live is not None:
            self._live.stop()
            self._live = None
