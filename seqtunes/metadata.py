"""
Best-effort tag and duration lookup.

Nothing in here raises: unreadable or untagged files get placeholder
strings and a zero duration, which the status line shows as ??:??.
"""
import shutil
import subprocess
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import mutagen

from seqtunes.logging_config import get_logger

logger = get_logger('metadata')

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ARTIST = "Unknown Artist"

# External command cache
_command_cache: Dict[str, Optional[str]] = {}


def find_command(cmd: str) -> Optional[str]:
    """Find an external command in PATH with caching."""
    if cmd not in _command_cache:
        _command_cache[cmd] = shutil.which(cmd)
    return _command_cache[cmd]


def _first_tag(tags, key: str) -> Optional[str]:
    if not tags or key not in tags:
        return None
    value = tags[key]
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@lru_cache(maxsize=1024)
def _read_mutagen(path: str) -> Tuple[Optional[str], Optional[str], float]:
    """Read (title, artist, length) with mutagen's easy tag interface."""
    try:
        audio = mutagen.File(path, easy=True)
    except Exception as e:
        # Parsers raise more than MutagenError on damaged files
        logger.debug(f"mutagen could not read {path}: {e!r}")
        return (None, None, 0.0)

    if audio is None:
        return (None, None, 0.0)

    try:
        title = _first_tag(audio.tags, "title")
        artist = _first_tag(audio.tags, "artist")
        length = float(getattr(getattr(audio, "info", None), "length", 0.0) or 0.0)
    except Exception as e:
        logger.debug(f"Unreadable tags in {path}: {e!r}")
        return (None, None, 0.0)
    return (title, artist, length)


def _get_duration_ffprobe(path: str) -> float:
    """Get duration using ffprobe.

    Args:
        path: Path to the audio file

    Returns:
        Duration in seconds, or 0.0 if unavailable
    """
    ffprobe = find_command("ffprobe")
    if not ffprobe:
        return 0.0

    try:
        result = subprocess.run(
            [
                ffprobe,
                "-v",
                "error",
                "-show_entries",
                "format=duration",
                "-of",
                "default=noprint_wrappers=1:nokey=1",
                path,
            ],
            capture_output=True,
            text=True,
            timeout=2,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"ffprobe failed for {path}: {e}")
        return 0.0

    if result.returncode != 0:
        return 0.0
    try:
        return max(0.0, float(result.stdout.strip().splitlines()[0]))
    except (ValueError, IndexError):
        return 0.0


def get_title_artist(path: Union[str, Path]) -> Tuple[str, str]:
    """Return (title, artist), falling back to placeholders."""
    title, artist, _ = _read_mutagen(str(path))
    return (title or UNKNOWN_TITLE, artist or UNKNOWN_ARTIST)


def get_total_duration(path: Union[str, Path]) -> float:
    """Return the track length in seconds, 0.0 when it cannot be determined."""
    _, _, length = _read_mutagen(str(path))
    if length > 0:
        return length
    return _get_duration_ffprobe(str(path))
