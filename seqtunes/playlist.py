"""
Playlist source resolution.

Turns a single input descriptor (audio file, directory, glob pattern or list
file) into an ordered list of audio paths. Failures come back as an
`Unresolved` value rather than an exception so the caller can print one
message and exit before the player starts.
"""
import glob
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Tuple, Union

from seqtunes.logging_config import get_logger

logger = get_logger('playlist')

# Audio file extensions
AUDIO_EXTENSIONS = frozenset({".mp3", ".wav", ".flac", ".ogg", ".m4a", ".aac"})

LIST_EXTENSIONS = frozenset({".txt", ".m3u", ".m3u8"})

GLOB_CHARS = ("*", "?", "[")


class ResolveFailure(Enum):
    NOT_FOUND = "not found"
    EMPTY = "no playable files"
    UNREADABLE = "unreadable"
    INVALID = "invalid pattern"


@dataclass(frozen=True)
class Resolved:
    paths: Tuple[Path, ...]


@dataclass(frozen=True)
class Unresolved:
    kind: ResolveFailure
    source: str
    detail: str = ""

    def describe(self) -> str:
        message = f"{self.source}: {self.kind.value}"
        return f"{message} ({self.detail})" if self.detail else message


Resolution = Union[Resolved, Unresolved]


def is_audio_file(path: Path) -> bool:
    return path.suffix.lower() in AUDIO_EXTENSIONS


def resolve_playlist(source: str, recursive: bool = False) -> Resolution:
    """Resolve an input descriptor into playlist paths.

    Args:
        source: File, directory, glob pattern or list file path
        recursive: Descend into sub-directories when `source` is a directory

    Returns:
        Resolved with at least one path, or Unresolved with the reason
    """
    expanded = os.path.expanduser(source)

    if any(ch in expanded for ch in GLOB_CHARS) and not os.path.exists(expanded):
        return _resolve_glob(source, expanded)

    path = Path(expanded)
    if not path.exists():
        return Unresolved(ResolveFailure.NOT_FOUND, source)

    if path.is_dir():
        logger.info(f"Scanning directory {path} (recursive={recursive})")
        return _resolve_directory(source, path, recursive)

    if path.is_file():
        if path.suffix.lower() in LIST_EXTENSIONS:
            logger.info(f"Reading playlist file {path}")
            return _resolve_list_file(source, path)
        return Resolved((path,))

    return Unresolved(ResolveFailure.UNREADABLE, source, "not a regular file or directory")


def _resolve_glob(source: str, pattern: str) -> Resolution:
    try:
        matches = sorted(glob.glob(pattern, recursive=True))
    except (re.error, ValueError) as e:
        return Unresolved(ResolveFailure.INVALID, source, str(e))

    paths = tuple(Path(m) for m in matches if os.path.isfile(m))
    logger.info(f"Glob {pattern!r} matched {len(paths)} files")
    if not paths:
        return Unresolved(ResolveFailure.EMPTY, source)
    return Resolved(paths)


def scan_audio_files(directory: Path, recursive: bool = False) -> List[Path]:
    """Scan a directory for audio files, sorted by name.

    Args:
        directory: Directory path to scan
        recursive: Whether to descend into sub-directories

    Returns:
        Sorted list of audio file paths

    Raises:
        OSError: If the top-level directory cannot be listed
    """
    dirs = []
    files = []

    with os.scandir(directory) as entries:
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    dirs.append(entry.name)
                elif entry.is_file() and is_audio_file(Path(entry.name)):
                    files.append(entry.name)
            except OSError:
                continue

    paths = [directory / name for name in sorted(files)]

    if recursive:
        for name in sorted(dirs):
            try:
                paths.extend(scan_audio_files(directory / name, recursive=True))
            except OSError as e:
                logger.warning(f"Skipping unreadable directory {directory / name}: {e}")

    return paths


def _resolve_directory(source: str, directory: Path, recursive: bool) -> Resolution:
    try:
        paths = scan_audio_files(directory, recursive)
    except OSError as e:
        return Unresolved(ResolveFailure.UNREADABLE, source, str(e))

    if not paths:
        return Unresolved(ResolveFailure.EMPTY, source)
    return Resolved(tuple(paths))


def read_list_file(list_path: Path) -> List[Path]:
    """Read a line-delimited playlist (.txt) or M3U file.

    Blank lines are skipped, as are `#` directives in M3U files. Relative
    entries are taken relative to the list file's directory.
    """
    is_m3u = list_path.suffix.lower() in (".m3u", ".m3u8")
    base = list_path.parent
    paths = []

    with open(list_path, "r", encoding="utf-8-sig") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            if is_m3u and line.startswith("#"):
                continue
            entry = Path(os.path.expanduser(line))
            if not entry.is_absolute():
                entry = base / entry
            paths.append(entry)

    return paths


def _resolve_list_file(source: str, list_path: Path) -> Resolution:
    try:
        paths = read_list_file(list_path)
    except (OSError, UnicodeDecodeError) as e:
        return Unresolved(ResolveFailure.UNREADABLE, source, str(e))

    if not paths:
        return Unresolved(ResolveFailure.EMPTY, source)
    return Resolved(tuple(paths))
