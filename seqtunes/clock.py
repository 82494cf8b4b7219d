"""
Pause-aware elapsed time for the track that is currently audible.
"""
import time
from typing import Callable, Optional


class PlaybackClock:
    """Elapsed playback time that stands still while paused.

    Only `on_track_start` and `on_pause_transition` mutate state; callers
    report a pause transition once, when they observe it, and may call
    `elapsed()` as often as they like.
    """

    def __init__(self, now: Callable[[], float] = time.monotonic):
        self._now = now
        self._start = now()
        self._accumulated_pause = 0.0
        self._pause_started_at: Optional[float] = None
        self._frozen_elapsed = 0.0

    def on_track_start(self) -> None:
        self._start = self._now()
        self._accumulated_pause = 0.0
        self._pause_started_at = None
        self._frozen_elapsed = 0.0

    def on_pause_transition(self, is_paused_now: bool) -> None:
        if is_paused_now and self._pause_started_at is None:
            self._frozen_elapsed = self._running_elapsed()
            self._pause_started_at = self._now()
        elif not is_paused_now and self._pause_started_at is not None:
            self._accumulated_pause += self._now() - self._pause_started_at
            self._pause_started_at = None

    @property
    def is_paused(self) -> bool:
        return self._pause_started_at is not None

    def _running_elapsed(self) -> float:
        return max(0.0, self._now() - self._start - self._accumulated_pause)

    def elapsed(self) -> float:
        """Seconds of audible playback since the track started."""
        if self._pause_started_at is not None:
            return self._frozen_elapsed
        return self._running_elapsed()
