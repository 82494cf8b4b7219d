"""
Audio decoding and output for seqtunes.

Decoded streams yield float32 frames on demand. The sink decodes them ahead
on a feeder thread and plays the buffered audio through a sounddevice
callback.
"""
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional, Tuple, Union

import numpy as np
import soundfile as sf

try:
    import sounddevice as sd
    _sounddevice_import_error = None
except (ImportError, OSError) as e:  # PortAudio missing on the host
    sd = None
    _sounddevice_import_error = e

from seqtunes.logging_config import (
    get_logger,
    AudioOutputError,
    TrackDecodeError,
    TrackOpenError,
)
from seqtunes.metadata import find_command

logger = get_logger('audio')

FFMPEG_SAMPLE_RATE: int = 44100
FFMPEG_CHANNELS: int = 2
# Frames ffmpeg must produce before a stream counts as decodable
FFMPEG_PROBE_FRAMES: int = 4096
SINK_BLOCKSIZE: int = 2048
# Decoded frames buffered ahead of the output per stream
SINK_BUFFER_FRAMES: int = 8 * SINK_BLOCKSIZE
# Seconds the feeder sleeps when every buffer is full
FEED_WAIT: float = 0.05


class SoundFileStream:
    """A track decoded incrementally by libsndfile."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._file = sf.SoundFile(str(self.path))
        self.samplerate: int = self._file.samplerate
        self.channels: int = self._file.channels

    def read(self, frames: int) -> np.ndarray:
        if self._file.closed:
            return np.zeros((0, self.channels), dtype=np.float32)
        return self._file.read(frames, dtype="float32", always_2d=True)

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


def make_ffmpeg_cmd(ffmpeg: str, path: Path, sample_rate: int, channels: int) -> List[str]:
    return [
        ffmpeg, "-hide_banner", "-loglevel", "error", "-nostdin",
        "-i", str(path),
        "-vn",
        "-ac", str(channels),
        "-ar", str(sample_rate),
        "-f", "f32le",
        "pipe:1",
    ]


class FFmpegStream:
    """A track decoded by an ffmpeg subprocess into raw float32 PCM.

    Used for containers libsndfile does not handle (m4a, aac).
    """

    def __init__(
        self,
        path: Union[str, Path],
        ffmpeg: str = "ffmpeg",
        sample_rate: int = FFMPEG_SAMPLE_RATE,
        channels: int = FFMPEG_CHANNELS,
    ):
        self.path = Path(path)
        self.samplerate = sample_rate
        self.channels = channels
        self._frame_bytes = 4 * channels
        self._buffer = bytearray()

        try:
            self._proc: Optional[subprocess.Popen] = subprocess.Popen(
                make_ffmpeg_cmd(ffmpeg, self.path, sample_rate, channels),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise TrackDecodeError(f"Failed to start ffmpeg: {e}") from e

        self._fill(FFMPEG_PROBE_FRAMES * self._frame_bytes)
        if len(self._buffer) < self._frame_bytes:
            self.close()
            raise TrackDecodeError(f"ffmpeg produced no audio for {self.path.name}")

    def _fill(self, nbytes: int) -> None:
        if self._proc is None or self._proc.stdout is None:
            return
        while len(self._buffer) < nbytes:
            chunk = self._proc.stdout.read(nbytes - len(self._buffer))
            if not chunk:
                break
            self._buffer.extend(chunk)

    def read(self, frames: int) -> np.ndarray:
        want = frames * self._frame_bytes
        self._fill(want)
        take = (min(len(self._buffer), want) // self._frame_bytes) * self._frame_bytes
        data = bytes(self._buffer[:take])
        del self._buffer[:take]
        return np.frombuffer(data, dtype=np.float32).reshape((-1, self.channels))

    def close(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None:
            return
        if proc.poll() is None:
            proc.kill()
        try:
            proc.wait(timeout=1.0)
        except subprocess.TimeoutExpired:
            logger.warning(f"ffmpeg did not exit for {self.path.name}")
        if proc.stdout is not None:
            proc.stdout.close()


def open_stream(path: Union[str, Path]):
    """Open a decoded stream for `path`.

    Raises:
        TrackOpenError: The file cannot be opened for reading
        TrackDecodeError: No decoder accepts the file
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            f.read(1)
    except OSError as e:
        raise TrackOpenError(f"{path}: {e}") from e

    try:
        return SoundFileStream(path)
    except (sf.SoundFileError, RuntimeError) as e:
        reason = str(e)
        logger.debug(f"libsndfile rejected {path.name}: {reason}")

    ffmpeg = find_command("ffmpeg")
    if ffmpeg:
        return FFmpegStream(path, ffmpeg)

    raise TrackDecodeError(f"{path.name}: {reason}")


def _parse_device(device: Optional[str]) -> Optional[Union[int, str]]:
    if device is None or device == "":
        return None
    return int(device) if str(device).isdigit() else device


class _QueuedStream:
    """A queued stream and the decoded audio not yet played from it."""

    def __init__(self, source):
        self.source = source
        self.chunks: Deque[np.ndarray] = deque()
        self.frames = 0
        self.exhausted = False


class AudioSink:
    """Queue of decoded streams played back-to-back on one output stream.

    A feeder thread decodes ahead into a bounded per-stream buffer and the
    sounddevice callback only copies from it. Streams the callback finishes
    are closed later on the control thread, by `is_empty`, `clear`,
    `append` or `close`.
    """

    def __init__(self, volume: float = 1.0, device: Optional[str] = None,
                 blocksize: int = SINK_BLOCKSIZE, buffer_frames: int = SINK_BUFFER_FRAMES):
        if sd is None:
            raise AudioOutputError(f"sounddevice not available: {_sounddevice_import_error}")
        # Lock order: _decode_lock before _lock; the callback takes only _lock
        self._lock = threading.Lock()
        self._decode_lock = threading.Lock()
        self._queue: Deque[_QueuedStream] = deque()
        self._finished: List = []
        self._paused = False
        self._volume = min(1.0, max(0.0, volume))
        self._device = _parse_device(device)
        self._blocksize = blocksize
        self._buffer_frames = max(buffer_frames, blocksize)
        self._stream = None
        self._format: Optional[Tuple[int, int]] = None
        self._underruns = 0

        self._wake = threading.Event()
        self._closing = threading.Event()
        self._feeder = threading.Thread(target=self._feed_loop, name="seqtunes-feeder", daemon=True)
        self._feeder.start()

    # Output stream management (never under the lock: closing waits for the callback)

    def _open_output(self, samplerate: int, channels: int) -> None:
        self._close_output()
        try:
            stream = sd.OutputStream(
                samplerate=samplerate,
                channels=channels,
                dtype="float32",
                blocksize=self._blocksize,
                device=self._device,
                callback=self._callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise AudioOutputError(f"Audio output error: {e}") from e
        self._stream = stream
        self._format = (samplerate, channels)
        logger.info(f"Opened output stream: {samplerate} Hz, {channels} ch")

    def _close_output(self) -> None:
        stream, self._stream = self._stream, None
        self._format = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as e:
            logger.warning(f"Error closing output stream: {e}")

    # Feeder thread

    def _feed_loop(self) -> None:
        while not self._closing.is_set():
            while self._feed_once():
                pass
            self._wake.wait(FEED_WAIT)
            self._wake.clear()

    def _feed_once(self) -> bool:
        """Decode one block for the first queued stream short of audio.

        Returns False when every queued stream is decoded or buffered up
        to the limit.
        """
        with self._decode_lock:
            with self._lock:
                entry = next(
                    (e for e in self._queue if not e.exhausted and e.frames < self._buffer_frames),
                    None,
                )
            if entry is None:
                return False
            try:
                chunk = entry.source.read(self._blocksize)
            except (RuntimeError, OSError, ValueError) as e:
                logger.warning(f"Decode error mid-track: {e}")
                chunk = None
            with self._lock:
                if chunk is not None and len(chunk):
                    entry.chunks.append(chunk)
                    entry.frames += len(chunk)
                if chunk is None or len(chunk) < self._blocksize:
                    entry.exhausted = True
        return True

    def _callback(self, outdata, frames, time_info, status) -> None:
        with self._lock:
            if self._paused or not self._queue:
                outdata.fill(0)
                return

            filled = 0
            while filled < frames and self._queue:
                entry = self._queue[0]
                if not entry.chunks:
                    if not entry.exhausted:
                        self._underruns += 1
                        break
                    self._finished.append(self._queue.popleft().source)
                    continue
                chunk = entry.chunks[0]
                take = min(frames - filled, len(chunk))
                outdata[filled:filled + take] = chunk[:take]
                filled += take
                entry.frames -= take
                if take == len(chunk):
                    entry.chunks.popleft()
                else:
                    entry.chunks[0] = chunk[take:]
                if entry.exhausted and not entry.chunks:
                    self._finished.append(self._queue.popleft().source)

            if filled < frames:
                outdata[filled:] = 0
            if self._volume != 1.0:
                outdata *= self._volume
        self._wake.set()

    def _close_finished(self) -> None:
        with self._lock:
            finished, self._finished = self._finished, []
        for source in finished:
            source.close()

    def _drop_sources(self) -> None:
        # Holding the decode lock keeps the feeder off a stream being closed
        with self._decode_lock:
            with self._lock:
                dropped = [entry.source for entry in self._queue]
                self._queue.clear()
            for source in dropped:
                source.close()
        self._close_finished()

    # Sink interface

    def clear(self) -> None:
        """Drop every queued stream."""
        self._drop_sources()

    def append(self, stream) -> None:
        """Queue a decoded stream, reopening the output if its format differs."""
        self._close_finished()
        fmt = (stream.samplerate, stream.channels)
        if fmt != self._format:
            if not self.is_empty():
                logger.warning("Dropping queued audio with a different sample format")
                self._drop_sources()
            self._open_output(*fmt)
        with self._lock:
            self._queue.append(_QueuedStream(stream))
        self._wake.set()

    def play(self) -> None:
        self._paused = False
        if self._stream is not None and not self._stream.active:
            self._stream.start()

    def pause(self) -> None:
        self._paused = True

    def stop(self) -> None:
        """Stop the current track; the sink becomes empty."""
        self._drop_sources()
        logger.debug("Sink stopped")

    def is_paused(self) -> bool:
        return self._paused

    def is_empty(self) -> bool:
        self._close_finished()
        with self._lock:
            return not self._queue

    def set_volume(self, volume: float) -> None:
        self._volume = min(1.0, max(0.0, volume))

    def volume(self) -> float:
        return self._volume

    def close(self) -> None:
        self._closing.set()
        self._wake.set()
        self._feeder.join(timeout=1.0)
        self._drop_sources()
        self._close_output()
        if self._underruns:
            logger.debug(f"Output underruns: {self._underruns}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
