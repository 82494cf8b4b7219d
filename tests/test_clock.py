import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import FakeClock
from seqtunes.clock import PlaybackClock


class TestPlaybackClock:
    """Tests for pause-aware elapsed time."""

    def setup_method(self):
        self.now = FakeClock(50.0)
        self.clock = PlaybackClock(self.now)
        self.clock.on_track_start()

    def test_elapsed_follows_time(self):
        self.now.advance(12.5)

        assert self.clock.elapsed() == pytest.approx(12.5)

    def test_pause_freezes_elapsed(self):
        """Test that elapsed stands still while paused."""
        self.now.advance(3.0)
        self.clock.on_pause_transition(True)
        self.now.advance(10.0)

        assert self.clock.is_paused is True
        assert self.clock.elapsed() == pytest.approx(3.0)

    def test_resume_excludes_paused_time(self):
        self.now.advance(3.0)
        self.clock.on_pause_transition(True)
        self.now.advance(10.0)
        self.clock.on_pause_transition(False)
        self.now.advance(2.0)

        assert self.clock.is_paused is False
        assert self.clock.elapsed() == pytest.approx(5.0)

    def test_repeated_transitions_are_idempotent(self):
        """Test that reporting the same pause state twice changes nothing."""
        self.now.advance(1.0)
        self.clock.on_pause_transition(True)
        self.now.advance(1.0)
        self.clock.on_pause_transition(True)
        self.now.advance(1.0)
        self.clock.on_pause_transition(False)
        self.clock.on_pause_transition(False)
        self.now.advance(1.0)

        assert self.clock.elapsed() == pytest.approx(2.0)

    def test_track_start_resets(self):
        self.now.advance(30.0)
        self.clock.on_pause_transition(True)
        self.clock.on_track_start()
        self.now.advance(1.0)

        assert self.clock.is_paused is False
        assert self.clock.elapsed() == pytest.approx(1.0)

    def test_elapsed_never_negative(self):
        self.now.t = 10.0

        assert self.clock.elapsed() == 0.0

    def test_elapsed_is_pure(self):
        """Test that reading elapsed does not change state."""
        self.now.advance(4.0)

        assert self.clock.elapsed() == self.clock.elapsed()
