import threading
import numpy as np
import pytest
import soundfile as sf
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from seqtunes import audio
from seqtunes.audio import SINK_BLOCKSIZE, AudioSink, SoundFileStream, make_ffmpeg_cmd, open_stream
from seqtunes.logging_config import AudioOutputError, TrackDecodeError, TrackOpenError


class ArrayStream:
    """Decoded stream backed by an in-memory array."""

    def __init__(self, data, samplerate=44100):
        self.data = np.asarray(data, dtype=np.float32)
        self.samplerate = samplerate
        self.channels = self.data.shape[1]
        self.pos = 0
        self.closed = False
        self.reader_threads = set()
        self.closer_threads = set()

    def read(self, frames):
        self.reader_threads.add(threading.get_ident())
        chunk = self.data[self.pos:self.pos + frames]
        self.pos += len(chunk)
        return chunk

    def close(self):
        self.closer_threads.add(threading.get_ident())
        self.closed = True


class BrokenStream(ArrayStream):
    def read(self, frames):
        raise RuntimeError("corrupt frame")


class FakeOutputStream:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.active = False
        self.closed = False

    def start(self):
        self.active = True

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True


class FakePortAudioError(Exception):
    pass


class FakeSoundDevice:
    PortAudioError = FakePortAudioError

    def __init__(self):
        self.streams = []

    def OutputStream(self, **kwargs):
        stream = FakeOutputStream(**kwargs)
        self.streams.append(stream)
        return stream


def ones(frames, value=1.0, channels=2):
    return np.full((frames, channels), value, dtype=np.float32)


class TestAudioSink:
    """Tests for the sink's queue and output callback with sounddevice mocked."""

    @pytest.fixture(autouse=True)
    def fake_sd(self, monkeypatch):
        self.sd = FakeSoundDevice()
        self.sinks = []
        monkeypatch.setattr(audio, "sd", self.sd)
        yield
        for sink in self.sinks:
            sink.close()

    def _sink(self, **kwargs):
        sink = AudioSink(**kwargs)
        self.sinks.append(sink)
        return sink

    def _feed(self, sink):
        """Decode everything the sink will buffer."""
        while sink._feed_once():
            pass

    def _pull(self, sink, frames, channels=2):
        out = np.zeros((frames, channels), dtype=np.float32)
        sink._callback(out, frames, None, None)
        return out

    def test_unavailable_backend(self, monkeypatch):
        monkeypatch.setattr(audio, "sd", None)

        with pytest.raises(AudioOutputError):
            AudioSink()

    def test_append_opens_output_in_stream_format(self):
        sink = self._sink()
        sink.append(ArrayStream(ones(4), samplerate=48000))

        assert len(self.sd.streams) == 1
        assert self.sd.streams[0].kwargs["samplerate"] == 48000
        assert self.sd.streams[0].kwargs["channels"] == 2
        assert self.sd.streams[0].active is True
        assert sink.is_empty() is False

    def test_callback_plays_queue_back_to_back(self):
        """Test that the next stream continues in the same block."""
        first = ArrayStream(ones(3, 1.0))
        second = ArrayStream(ones(3, 0.5))
        sink = self._sink()
        sink.append(first)
        sink.append(second)
        self._feed(sink)

        out = self._pull(sink, 4)

        assert out[:, 0].tolist() == [1.0, 1.0, 1.0, 0.5]
        assert sink.is_empty() is False
        assert first.closed is True
        assert second.closed is False

    def test_callback_never_decodes_or_closes(self):
        """Test that reads and closes stay off the output thread."""
        stream = ArrayStream(ones(2))
        sink = self._sink()
        sink.append(stream)

        # Nothing decoded yet on this thread: the block is silent
        self._pull(sink, 4)
        assert threading.get_ident() not in stream.reader_threads

        self._feed(sink)
        reads_before = set(stream.reader_threads)
        self._pull(sink, 4)

        assert stream.reader_threads == reads_before
        assert stream.closed is False
        assert sink.is_empty() is True
        assert stream.closed is True

    def test_decoder_behind_outputs_silence_and_keeps_stream(self):
        stream = ArrayStream(ones(10 * SINK_BLOCKSIZE))
        sink = self._sink(blocksize=4, buffer_frames=4)
        sink.append(stream)
        self._feed(sink)

        first = self._pull(sink, 8)

        assert first[:4].min() == 1.0
        assert first[4:].sum() == 0
        assert sink.is_empty() is False

    def test_buffer_is_bounded(self):
        stream = ArrayStream(ones(100))
        sink = self._sink(blocksize=4, buffer_frames=8)
        sink.append(stream)

        self._feed(sink)

        assert stream.pos == 8

    def test_exhausted_sink_is_empty(self):
        stream = ArrayStream(ones(2))
        sink = self._sink()
        sink.append(stream)
        self._feed(sink)

        out = self._pull(sink, 4)

        assert out[2:].sum() == 0
        assert sink.is_empty() is True
        assert stream.closed is True

    def test_decode_error_ends_stream(self):
        stream = BrokenStream(ones(4))
        sink = self._sink()
        sink.append(stream)
        self._feed(sink)

        out = self._pull(sink, 4)

        assert out.sum() == 0
        assert sink.is_empty() is True
        assert stream.closed is True

    def test_volume_applied(self):
        sink = self._sink(volume=0.5)
        sink.append(ArrayStream(ones(4)))
        self._feed(sink)

        out = self._pull(sink, 4)

        assert out.max() == pytest.approx(0.5)

    def test_paused_outputs_silence(self):
        stream = ArrayStream(ones(4))
        sink = self._sink()
        sink.append(stream)
        self._feed(sink)
        sink.pause()

        out = self._pull(sink, 4)

        assert sink.is_paused() is True
        assert out.sum() == 0

        sink.play()
        assert self._pull(sink, 4).min() == 1.0

    def test_stop_empties_and_closes(self):
        stream = ArrayStream(ones(100))
        sink = self._sink()
        sink.append(stream)

        sink.stop()

        assert sink.is_empty() is True
        assert stream.closed is True

    def test_clear_then_append(self):
        old = ArrayStream(ones(100))
        new = ArrayStream(ones(100, 0.25))
        sink = self._sink()
        sink.append(old)
        sink.clear()
        sink.append(new)
        self._feed(sink)

        out = self._pull(sink, 2)

        assert old.closed is True
        assert out.max() == pytest.approx(0.25)
        assert len(self.sd.streams) == 1

    def test_format_change_reopens_output(self):
        sink = self._sink()
        sink.append(ArrayStream(ones(4), samplerate=44100))
        sink.clear()
        sink.append(ArrayStream(ones(4), samplerate=22050))

        assert len(self.sd.streams) == 2
        assert self.sd.streams[0].closed is True

    def test_set_volume_clamped(self):
        sink = self._sink()

        sink.set_volume(1.7)
        assert sink.volume() == 1.0
        sink.set_volume(-1)
        assert sink.volume() == 0.0

    def test_close(self):
        stream = ArrayStream(ones(4))
        with AudioSink() as sink:
            sink.append(stream)

        assert stream.closed is True
        assert self.sd.streams[0].closed is True
        assert sink._feeder.is_alive() is False


class TestOpenStream:
    """Tests for decoder selection."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(TrackOpenError):
            open_stream(tmp_path / "missing.wav")

    def test_wav_decoded_by_soundfile(self, tmp_path):
        path = tmp_path / "tone.wav"
        sf.write(str(path), np.zeros((100, 2), dtype=np.float32), 44100)

        stream = open_stream(path)
        try:
            assert isinstance(stream, SoundFileStream)
            assert stream.samplerate == 44100
            assert stream.channels == 2
            assert stream.read(60).shape == (60, 2)
            assert stream.read(100).shape == (40, 2)
        finally:
            stream.close()

    def test_junk_without_ffmpeg(self, tmp_path, monkeypatch):
        """Test that undecodable data is a decode failure when ffmpeg is absent."""
        path = tmp_path / "junk.wav"
        path.write_bytes(b"this is not audio" * 10)
        monkeypatch.setattr(audio, "find_command", lambda cmd: None)

        with pytest.raises(TrackDecodeError):
            open_stream(path)

    def test_ffmpeg_command(self):
        cmd = make_ffmpeg_cmd("ffmpeg", Path("/music/a.m4a"), 44100, 2)

        assert cmd[0] == "ffmpeg"
        assert "/music/a.m4a" in cmd
        assert cmd[cmd.index("-f") + 1] == "f32le"
        assert cmd[-1] == "pipe:1"
