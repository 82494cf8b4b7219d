"""
The playback session coordinator.

A session walks the playlist one slot at a time:

    AwaitingPreload(i) -> Playing(i) -> Finished(i) | Skipping(i, dir)
                       -> AwaitingPreload(next) | end

Loading happens on preloader threads; everything else (sink control, the
clock, key handling, drawing) happens here on the calling thread. Results
are matched to the awaited preload by their (slot, attempt) tag, never by
arrival order, so a result made obsolete by a skip is simply dropped.
"""
import queue
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from seqtunes.clock import PlaybackClock
from seqtunes.config import AppConfig
from seqtunes.logging_config import get_logger, PreloadChannelClosed
from seqtunes.preloader import (
    FailureKind,
    PreloadFailed,
    PreloadHandle,
    PreloadReady,
    Preloader,
)
from seqtunes.render import (
    TrackInfo,
    format_error_line,
    format_window_title,
    render_status_line,
)
from seqtunes.scheduler import RateLimiter, apply_forced_skip, next_natural
from seqtunes.state import SessionState
from seqtunes.terminal import KEY_DOWN, KEY_LEFT, KEY_RIGHT, KEY_UP

logger = get_logger('session')


class SessionOutcome(Enum):
    FINISHED = "finished"
    QUIT = "quit"
    FATAL = "fatal"


class Action(Enum):
    TOGGLE_PAUSE = "toggle_pause"
    TOGGLE_MUTE = "toggle_mute"
    VOLUME_UP = "volume_up"
    VOLUME_DOWN = "volume_down"
    NEXT = "next"
    PREVIOUS = "previous"
    QUIT = "quit"


KEY_BINDINGS: Dict[str, Action] = {
    " ": Action.TOGGLE_PAUSE,
    "p": Action.TOGGLE_MUTE,
    "P": Action.TOGGLE_MUTE,
    KEY_UP: Action.VOLUME_UP,
    KEY_DOWN: Action.VOLUME_DOWN,
    KEY_RIGHT: Action.NEXT,
    KEY_LEFT: Action.PREVIOUS,
    "q": Action.QUIT,
    "Q": Action.QUIT,
    "c": Action.QUIT,
    "\x03": Action.QUIT,
}


class TrackEnd(Enum):
    FINISHED = "finished"
    SKIPPED = "skipped"
    QUIT = "quit"


class Session:
    """Plays one playlist from `state.current_index` until it ends or the user quits.

    Args:
        playlist: Tracks in playing order, already shuffled if requested
        state: Session state, mutated in place
        sink: Audio sink (clear/append/play/pause/stop/is_paused/is_empty/
            set_volume/volume)
        terminal: Terminal collaborator, already in raw mode
        preloader: Background loader; a default one is created if omitted
        config: Timing and volume settings
        now: Monotonic time source for the clock, renders and rate limits
        sleep: Used for the error display pause
    """

    def __init__(
        self,
        playlist: Sequence[Union[str, Path]],
        state: SessionState,
        sink,
        terminal,
        preloader: Optional[Preloader] = None,
        config: Optional[AppConfig] = None,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not playlist:
            raise ValueError("Cannot start a session with an empty playlist")
        self.playlist: List[Path] = [Path(p) for p in playlist]
        self.state = state
        self.sink = sink
        self.terminal = terminal
        self.preloader = preloader or Preloader()
        self.config = config or AppConfig()
        self._now = now
        self._sleep = sleep

        self.clock = PlaybackClock(now)
        self._skip_limiter = RateLimiter(self.config.skip_interval, now)
        self._toggle_limiter = RateLimiter(self.config.toggle_debounce, now)

        self._awaited: Optional[PreloadHandle] = None
        self._speculative: Optional[PreloadHandle] = None
        self._track: Optional[TrackInfo] = None
        self._consecutive_failures = 0
        # Handles of the preloads that actually reached the sink, in order
        self.history: List[PreloadHandle] = []

    @property
    def total(self) -> int:
        return len(self.playlist)

    @property
    def loop(self) -> bool:
        return self.state.mode.loop

    # Main loop

    def run(self) -> SessionOutcome:
        if self.state.validate(self.total):
            raise ValueError(f"Invalid session state for a playlist of {self.total}")

        self._awaited = self._start_preload(self.state.current_index)

        while True:
            if self._quit_pressed():
                logger.info("Quit requested while loading")
                return SessionOutcome.QUIT

            try:
                result = self._await_preload()
            except PreloadChannelClosed:
                logger.error("Preload channel closed; ending session")
                return SessionOutcome.FATAL

            if isinstance(result, PreloadFailed):
                outcome = self._skip_failed(result)
                if outcome is not None:
                    return outcome
                continue

            self._consecutive_failures = 0
            end = self._play(result)

            if end is TrackEnd.QUIT:
                return SessionOutcome.QUIT

            if end is TrackEnd.SKIPPED:
                self._apply_pending_skip()
                continue

            self._clear_status()
            nxt = next_natural(self.state.current_index, self.total, self.loop)
            if nxt is None:
                logger.info("Reached the end of the playlist")
                return SessionOutcome.FINISHED
            self.state.current_index = nxt
            if self._speculative is not None and self._speculative.index == nxt:
                self._awaited = self._speculative
            else:
                self._awaited = self._start_preload(nxt)

    # AwaitingPreload

    def _start_preload(self, index: int) -> PreloadHandle:
        return self.preloader.start(self.playlist[index], index)

    def _await_preload(self) -> Union[PreloadReady, PreloadFailed]:
        """Wait for the awaited handle's result, dropping stale ones.

        A timeout is reported as a TIMED_OUT failure for the awaited slot.
        """
        handle = self._awaited
        deadline = time.monotonic() + self.config.preload_timeout

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                result = self.preloader.receive(remaining)
            except queue.Empty:
                break
            if result.matches(handle):
                return result
            logger.debug(
                f"Dropping stale preload result: slot {result.index} attempt {result.attempt} "
                f"(awaiting slot {handle.index} attempt {handle.attempt})"
            )
            result.discard()

        logger.info(f"Preload of slot {handle.index} timed out")
        return PreloadFailed(handle.index, handle.attempt, FailureKind.TIMED_OUT, handle.display_name)

    def _skip_failed(self, failure: PreloadFailed) -> Optional[SessionOutcome]:
        """Report a failed slot and move past it; returns an outcome if the session ends."""
        self._report_failure(failure)
        self._consecutive_failures += 1
        if self._consecutive_failures >= self.total:
            logger.error("No track in the playlist could be loaded")
            return SessionOutcome.FINISHED

        nxt = next_natural(failure.index, self.total, self.loop)
        if nxt is None:
            return SessionOutcome.FINISHED
        self.state.current_index = nxt
        self._awaited = self._start_preload(nxt)
        return None

    def _report_failure(self, failure: PreloadFailed) -> None:
        logger.info(f"Skipping slot {failure.index} ({failure.display_name}): {failure.kind.value}")
        line = format_error_line(failure.index, self.total, failure.kind.value, failure.display_name)
        self._clear_status()
        self.terminal.write_error(line)
        self._sleep(self.config.error_wait)
        self._clear_status()

    # Playing

    def _play(self, ready: PreloadReady) -> TrackEnd:
        index = ready.index
        self.sink.clear()
        self.sink.append(ready.stream)
        if self.sink.is_paused():
            self.sink.play()

        self.history.append(self._awaited)
        self._track = TrackInfo(ready.title, ready.artist, self.playlist[index], ready.duration)
        self.clock.on_track_start()
        self._update_title()
        logger.info(f"Playing slot {index}: {ready.title} - {ready.artist}")

        nxt = next_natural(index, self.total, self.loop)
        if nxt is not None and nxt != index:
            self._speculative = self._start_preload(nxt)
        else:
            self._speculative = None

        return self._tick_loop()

    def _tick_loop(self) -> TrackEnd:
        was_paused = False
        last_render: Optional[float] = None

        while not self.sink.is_empty():
            paused = self.sink.is_paused()
            if paused != was_paused:
                self.clock.on_pause_transition(paused)
                was_paused = paused

            now = self._now()
            if last_render is None or now - last_render >= self.config.render_interval:
                self._render()
                last_render = now

            key = self.terminal.poll_key(self.config.poll_interval)
            action = KEY_BINDINGS.get(key) if key is not None else None
            if action is None:
                continue

            end = self._dispatch(action)
            if end is not None:
                return end
            last_render = None

        return TrackEnd.FINISHED

    def _dispatch(self, action: Action) -> Optional[TrackEnd]:
        if action is Action.QUIT:
            return TrackEnd.QUIT
        if action is Action.NEXT:
            return self._request_skip(1)
        if action is Action.PREVIOUS:
            return self._request_skip(-1)
        if action is Action.VOLUME_UP:
            self._adjust_volume(self.config.volume_step)
        elif action is Action.VOLUME_DOWN:
            self._adjust_volume(-self.config.volume_step)
        elif action is Action.TOGGLE_PAUSE:
            self._toggle_pause()
        elif action is Action.TOGGLE_MUTE:
            self._toggle_mute()
        return None

    def _toggle_pause(self) -> None:
        if not self._toggle_limiter.ready():
            return
        self._toggle_limiter.mark()
        if self.sink.is_paused():
            self.sink.play()
        else:
            self.sink.pause()
        self._update_title()

    def _toggle_mute(self) -> None:
        if not self._toggle_limiter.ready():
            return
        self._toggle_limiter.mark()
        if self.state.muted:
            self.sink.set_volume(self.state.muted_volume)
            self.state.muted_volume = None
        else:
            self.state.muted_volume = self.sink.volume()
            self.sink.set_volume(0.0)
        self._update_title()

    def _adjust_volume(self, delta: float) -> None:
        # While muted the change applies to the volume restored on un-mute
        if self.state.muted:
            self.state.muted_volume = _clamp_volume(self.state.muted_volume + delta)
        else:
            self.sink.set_volume(_clamp_volume(self.sink.volume() + delta))

    # Skipping

    def _request_skip(self, direction: int) -> Optional[TrackEnd]:
        if not self._skip_limiter.ready():
            logger.debug("Skip ignored: inside the minimum skip interval")
            return None
        if apply_forced_skip(self.state.current_index, self.total, self.loop, direction) is None:
            logger.debug(f"Skip {direction:+d} ignored at slot {self.state.current_index}")
            return None
        self._skip_limiter.mark()
        self.sink.stop()
        self.state.index_offset_pending = direction
        return TrackEnd.SKIPPED

    def _apply_pending_skip(self) -> None:
        direction = self.state.index_offset_pending
        self.state.index_offset_pending = None
        target = apply_forced_skip(self.state.current_index, self.total, self.loop, direction)
        logger.info(f"Skipped {direction:+d} from slot {self.state.current_index} to {target}")
        self.state.current_index = target
        # The speculative preload assumed natural order; always load afresh
        self._awaited = self._start_preload(target)

    # Terminal output

    def _quit_pressed(self) -> bool:
        key = self.terminal.poll_key(0)
        return key is not None and KEY_BINDINGS.get(key) is Action.QUIT

    def _render(self) -> None:
        width = max(1, self.terminal.width() - 1)
        line = render_status_line(
            self.state, self.total, self._track,
            self.clock.elapsed(), self.sink.volume(), width,
        )
        self.terminal.move_to_column(0)
        self.terminal.write(line)

    def _clear_status(self) -> None:
        self.terminal.move_to_column(0)
        self.terminal.clear_line()

    def _update_title(self) -> None:
        self.terminal.set_title(format_window_title(
            self._track.title, self._track.artist,
            muted=self.state.muted, paused=self.sink.is_paused(),
        ))


def _clamp_volume(volume: float) -> float:
    return round(min(1.0, max(0.0, volume)), 4)
