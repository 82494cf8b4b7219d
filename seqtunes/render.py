"""
Status line, error line and window title formatting.

Everything here is a pure function of its arguments; the session decides
when to draw and the terminal does the drawing.
"""
from pathlib import Path
from typing import List, NamedTuple

from seqtunes import __version__, NAME
from seqtunes.state import SessionState
from seqtunes.text import display_width, format_duration, pad_to_width, truncate_to_width

# Below this many free columns only the title is shown
MIN_INFO_WIDTH: int = 15
ERROR_NAME_WIDTH: int = 30


class TrackInfo(NamedTuple):
    title: str
    artist: str
    path: Path
    duration: float


def _track_counter(index: int, total: int) -> str:
    return f"[{index + 1}/{total}]"


def _mode_token(state: SessionState) -> str:
    order = "Shuf" if state.mode.random else "Seq"
    repeat = "Loop" if state.mode.loop else "Once"
    return f"[{order}|{repeat}]"


def _extension(path: Path) -> str:
    return path.suffix.lstrip(".").upper() or "?"


def render_status_line(
    state: SessionState,
    total: int,
    track: TrackInfo,
    elapsed: float,
    volume: float,
    width: int,
) -> str:
    """Build the single status line, padded to exactly `width` columns.

    Layout: [i/N][Seq|Once][EXT][title-artist][mm:ss/mm:ss][vol%]. The
    title/artist field absorbs whatever width is left; when less than
    MIN_INFO_WIDTH columns remain it shows the title alone.
    """
    head = f"{_track_counter(state.current_index, total)}{_mode_token(state)}[{_extension(track.path)}]"
    times = f"[{format_duration(elapsed, unknown=None)}/{format_duration(track.duration)}]"
    tail = f"{times}[{volume * 100:.0f}%]"

    info_width = max(0, width - display_width(head) - display_width(tail) - 2)
    if info_width < MIN_INFO_WIDTH:
        info = truncate_to_width(track.title, info_width)
    else:
        info = truncate_to_width(f"{track.title}-{track.artist}", info_width)

    line = f"{head}[{info}]{tail}"
    return pad_to_width(truncate_to_width(line, width, ellipsis=""), width)


def format_error_line(index: int, total: int, kind: str, name: str) -> str:
    """Message shown while a failed track is being skipped."""
    shown = truncate_to_width(name, ERROR_NAME_WIDTH) if name else "?"
    return f"{_track_counter(index, total)} [error: {kind}]: {shown} -> skipping..."


def format_window_title(title: str, artist: str, muted: bool = False, paused: bool = False) -> str:
    base = f"{title}-{artist}-{NAME} v{__version__}"
    if paused:
        base = f"[Paused]{base}"
    if muted:
        base = f"[Muted]{base}"
    return base


def format_idle_title() -> str:
    return f"{NAME} - v{__version__}"


def format_banner() -> List[str]:
    """Key help printed above the status line unless running in simple mode."""
    return [
        f"=================【 {NAME} 】=================",
        f" version: v{__version__}",
        "=" * 44,
        " [P] mute/unmute   [Space] pause/play   [Q] quit",
        " [←] previous      [→] next",
        " [↑] volume up     [↓] volume down",
        "=" * 44,
    ]
