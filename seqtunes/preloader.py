"""
Background track loading.

Every `Preloader.start` call runs one short-lived worker thread that opens
and decodes a track and looks up its tags, then posts exactly one tagged
result on the session's result queue. Workers are never cancelled; the
coordinator drops results it no longer wants.
"""
import itertools
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

from seqtunes.audio import open_stream
from seqtunes.logging_config import (
    get_logger,
    PreloadChannelClosed,
    TrackDecodeError,
    TrackOpenError,
)
from seqtunes.metadata import get_title_artist, get_total_duration

logger = get_logger('preloader')


class FailureKind(Enum):
    OPEN_FAILED = "cannot open/read"
    DECODE_FAILED = "decode failed"
    TIMED_OUT = "load timed out"


@dataclass
class LoadedTrack:
    stream: Any
    title: str
    artist: str
    duration: float


@dataclass(frozen=True)
class PreloadHandle:
    """Identifies one preload attempt for one playlist slot."""
    index: int
    attempt: int
    path: Path

    @property
    def display_name(self) -> str:
        return display_name(self.path)


@dataclass
class PreloadReady:
    index: int
    attempt: int
    stream: Any
    title: str
    artist: str
    duration: float

    def matches(self, handle: PreloadHandle) -> bool:
        return self.index == handle.index and self.attempt == handle.attempt

    def discard(self) -> None:
        self.stream.close()


@dataclass
class PreloadFailed:
    index: int
    attempt: int
    kind: FailureKind
    display_name: str

    def matches(self, handle: PreloadHandle) -> bool:
        return self.index == handle.index and self.attempt == handle.attempt

    def discard(self) -> None:
        pass


PreloadResult = Union[PreloadReady, PreloadFailed]


def display_name(path: Path) -> str:
    return path.name or str(path)


def load_track(path: Path) -> LoadedTrack:
    """Open and decode `path`, then fetch its tags and length.

    Raises:
        TrackOpenError: The file cannot be read
        TrackDecodeError: The file cannot be decoded
    """
    stream = open_stream(path)
    try:
        title, artist = get_title_artist(path)
        duration = get_total_duration(path)
    except Exception:
        stream.close()
        raise
    return LoadedTrack(stream, title, artist, duration)


_CLOSED = object()


class Preloader:
    """Starts loading workers and hands their results to the coordinator."""

    def __init__(self, loader: Callable[[Path], LoadedTrack] = load_track):
        self._loader = loader
        self._results: "queue.Queue" = queue.Queue()
        self._attempts = itertools.count(1)

    def start(self, path: Union[str, Path], index: int) -> PreloadHandle:
        handle = PreloadHandle(index, next(self._attempts), Path(path))
        worker = threading.Thread(
            target=self._run,
            args=(handle,),
            name=f"preload-{index}-{handle.attempt}",
            daemon=True,
        )
        worker.start()
        logger.debug(f"Preload started: slot {index} attempt {handle.attempt} ({handle.display_name})")
        return handle

    def _run(self, handle: PreloadHandle) -> None:
        try:
            track = self._loader(handle.path)
        except TrackOpenError as e:
            logger.info(f"Open failed for {handle.display_name}: {e}")
            result = PreloadFailed(handle.index, handle.attempt, FailureKind.OPEN_FAILED, handle.display_name)
        except TrackDecodeError as e:
            logger.info(f"Decode failed for {handle.display_name}: {e}")
            result = PreloadFailed(handle.index, handle.attempt, FailureKind.DECODE_FAILED, handle.display_name)
        except Exception:
            # Every worker must post exactly one result
            logger.exception(f"Unexpected error loading {handle.display_name}")
            result = PreloadFailed(handle.index, handle.attempt, FailureKind.DECODE_FAILED, handle.display_name)
        else:
            result = PreloadReady(
                handle.index, handle.attempt, track.stream,
                track.title, track.artist, track.duration,
            )
        self._results.put(result)

    def receive(self, timeout: Optional[float]) -> PreloadResult:
        """Next result in arrival order.

        Raises:
            queue.Empty: Nothing arrived within `timeout` seconds
            PreloadChannelClosed: The preloader was closed
        """
        item = self._results.get(timeout=timeout)
        if item is _CLOSED:
            # Keep the marker for any later receive
            self._results.put(_CLOSED)
            raise PreloadChannelClosed("preload channel closed")
        return item

    def close(self) -> None:
        """Close the channel.

        Results queued before the call are still delivered; the receive after
        them raises PreloadChannelClosed.
        """
        self._results.put(_CLOSED)
