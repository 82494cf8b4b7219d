"""
Display-width aware string helpers for the status line.
"""
import re
import unicodedata
from functools import lru_cache
from typing import Optional

_ANSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text for accurate length calculation."""
    return _ANSI_RE.sub("", text)


@lru_cache(maxsize=4096)
def char_display_width(ch: str) -> int:
    """Return display width of a single Unicode character (0, 1 or 2)."""
    if not ch:
        return 0
    cat = unicodedata.category(ch)
    if cat in ("Mn", "Me", "Cf"):
        return 0
    ea = unicodedata.east_asian_width(ch)
    if ea in ("F", "W"):
        return 2
    return 1


@lru_cache(maxsize=4096)
def display_width(text: str) -> int:
    """Return the visible terminal width of `text`, ignoring ANSI escapes."""
    s = strip_ansi(text)
    return sum(char_display_width(ch) for ch in s)


def truncate_to_width(text: str, max_width: int, ellipsis: str = "...") -> str:
    """Truncate `text` (plain text) to fit in `max_width` display columns.

    Adds `ellipsis` when there's room; otherwise hard-truncates to fit.
    """
    if max_width <= 0:
        return ""
    if display_width(text) <= max_width:
        return text

    e_width = display_width(ellipsis)

    if e_width >= max_width:
        target = max_width
    else:
        target = max_width - e_width

    out = []
    cur = 0
    for ch in text:
        w = char_display_width(ch)
        if cur + w > target:
            break
        out.append(ch)
        cur += w

    if e_width >= max_width:
        return "".join(out)
    return "".join(out) + ellipsis


def pad_to_width(text: str, width: int) -> str:
    """Right-pad `text` with spaces up to `width` display columns."""
    return text + " " * max(0, width - display_width(text))


def format_duration(seconds: Optional[float], unknown: Optional[str] = "??:??") -> str:
    """Format seconds as MM:SS.

    A zero or missing value means "unknown" for track lengths, so it renders
    as `unknown` unless that is None. Minutes are not wrapped into hours, a
    75 minute mix reads 75:00.
    """
    secs = int(seconds) if seconds and seconds > 0 else 0
    if secs <= 0 and unknown is not None:
        return unknown
    return f"{secs // 60:02d}:{secs % 60:02d}"
