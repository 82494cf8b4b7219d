import itertools
import queue
import sys
import tempfile
from collections import deque
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from seqtunes.config import AppConfig
from seqtunes.logging_config import PreloadChannelClosed
from seqtunes.preloader import FailureKind, PreloadFailed, PreloadHandle, PreloadReady
from seqtunes.state import PlaybackMode, SessionState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class FakeStream:
    def __init__(self, name: str = "track"):
        self.name = name
        self.samplerate = 44100
        self.channels = 2
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeSink:
    """Sink whose current track lasts `ticks_per_track` unpaused is_empty() checks."""

    def __init__(self, ticks_per_track: int = 3, volume: float = 0.75):
        self.ticks_per_track = ticks_per_track
        self._volume = volume
        self.sources = []
        self.played = []
        self.volumes = []
        self.paused = False
        self.stops = 0
        self._remaining = 0

    def clear(self):
        self.sources.clear()

    def append(self, stream):
        self.sources.append(stream)
        self.played.append(stream)
        self._remaining = self.ticks_per_track

    def play(self):
        self.paused = False

    def pause(self):
        self.paused = True

    def stop(self):
        self.sources.clear()
        self.stops += 1

    def is_paused(self):
        return self.paused

    def is_empty(self):
        if self.sources and not self.paused:
            if self._remaining <= 0:
                self.sources.pop(0)
            else:
                self._remaining -= 1
        return not self.sources

    def set_volume(self, volume):
        self._volume = volume
        self.volumes.append(volume)

    def volume(self):
        return self._volume


class FakeTerminal:
    """Scripted key input.

    `keys` feeds the blocking polls of the playing loop (each one advances
    the clock by its timeout); `loading_keys` feeds the zero-timeout checks
    made while waiting for a track to load.
    """

    def __init__(self, clock=None, keys=(), loading_keys=(), width: int = 80):
        self.clock = clock
        self.keys = deque(keys)
        self.loading_keys = deque(loading_keys)
        self._width = width
        self.output = []
        self.errors = []
        self.titles = []

    def poll_key(self, timeout):
        if timeout <= 0:
            return self.loading_keys.popleft() if self.loading_keys else None
        if self.clock is not None:
            self.clock.advance(timeout)
        return self.keys.popleft() if self.keys else None

    def write(self, text):
        self.output.append(text)

    def write_error(self, text):
        self.errors.append(text)

    def move_to_column(self, column):
        pass

    def clear_line(self):
        pass

    def set_title(self, title):
        self.titles.append(title)

    def width(self):
        return self._width


_CLOSED = object()


class ScriptedPreloader:
    """Synchronous stand-in for Preloader.

    `plan(handle)` returns the results to enqueue when a preload starts;
    `receive` never blocks and raises queue.Empty when nothing is queued.
    """

    def __init__(self, plan=None):
        self.plan = plan or ready_plan
        self.started = []
        self._results = deque()
        self._attempts = itertools.count(1)

    def start(self, path, index):
        handle = PreloadHandle(index, next(self._attempts), Path(path))
        self.started.append(handle)
        self._results.extend(self.plan(handle))
        return handle

    def push(self, result):
        self._results.append(result)

    def receive(self, timeout):
        if not self._results:
            raise queue.Empty
        item = self._results.popleft()
        if item is _CLOSED:
            self._results.appendleft(item)
            raise PreloadChannelClosed("closed")
        return item

    def close(self):
        self._results.append(_CLOSED)


def make_ready(handle, attempt=None, duration=180.0):
    return PreloadReady(
        handle.index,
        handle.attempt if attempt is None else attempt,
        FakeStream(handle.path.name),
        handle.path.stem,
        "Artist",
        duration,
    )


def make_failed(handle, kind=FailureKind.OPEN_FAILED):
    return PreloadFailed(handle.index, handle.attempt, kind, handle.display_name)


def ready_plan(handle):
    return [make_ready(handle)]


@pytest.fixture
def temp_music_dir():
    """Create a temporary music directory with test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        music_dir = Path(tmpdir) / "music"
        music_dir.mkdir()

        (music_dir / "subdir").mkdir()

        (music_dir / "test1.mp3").touch()
        (music_dir / "test2.flac").touch()
        (music_dir / "test3.ogg").touch()
        (music_dir / "test4.txt").touch()

        (music_dir / "subdir" / "nested.mp3").touch()

        yield music_dir


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fast_config():
    """Config with no error pause and a short preload timeout."""
    return AppConfig(error_wait=0.0, preload_timeout=0.05)


@pytest.fixture
def clean_state():
    """Provide a clean session state for testing."""
    return SessionState(mode=PlaybackMode())
