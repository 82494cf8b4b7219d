"""
Terminal control for seqtunes: raw key input, cursor, line and title.
"""
import fcntl
import os
import select
import shutil
import struct
import sys
import termios
import tty
from collections import deque
from typing import Deque, List, Optional

from seqtunes.logging_config import get_logger, TerminalError

logger = get_logger('terminal')

KEY_UP = "up"
KEY_DOWN = "down"
KEY_RIGHT = "right"
KEY_LEFT = "left"
KEY_ESC = "esc"

_ESCAPE_KEYS = {
    "[A": KEY_UP,
    "[B": KEY_DOWN,
    "[C": KEY_RIGHT,
    "[D": KEY_LEFT,
    "OA": KEY_UP,
    "OB": KEY_DOWN,
    "OC": KEY_RIGHT,
    "OD": KEY_LEFT,
}

HIDE_CURSOR = "\033[?25l"
SHOW_CURSOR = "\033[?25h"
CLEAR_LINE = "\033[2K"


def parse_keys(data: str) -> List[str]:
    """Split raw terminal input into key names.

    Arrow keys become KEY_UP/KEY_DOWN/KEY_RIGHT/KEY_LEFT, a lone escape
    becomes KEY_ESC, other escape sequences are dropped and every other
    character is returned as itself.
    """
    keys = []
    i = 0
    while i < len(data):
        ch = data[i]
        if ch != "\033":
            keys.append(ch)
            i += 1
            continue

        seq = data[i + 1:i + 3]
        if seq in _ESCAPE_KEYS:
            keys.append(_ESCAPE_KEYS[seq])
            i += 3
        elif seq[:1] == "[":
            # Unhandled CSI sequence: skip up to its final byte
            j = i + 2
            while j < len(data) and not ("@" <= data[j] <= "~"):
                j += 1
            i = j + 1
        else:
            keys.append(KEY_ESC)
            i += 1
    return keys


class Terminal:
    """The player's terminal.

    Use as a context manager: entering switches to cbreak mode and hides
    the cursor, leaving always restores both, whatever ended the block.
    """

    def __init__(self, stdin=None, stdout=None, stderr=None):
        self._in = stdin or sys.stdin
        self._out = stdout or sys.stdout
        self._err = stderr or sys.stderr
        self._saved_attrs = None
        self._cursor_hidden = False
        self._pending: Deque[str] = deque()

    # Mode control

    def enable_raw_mode(self) -> None:
        if not self._in.isatty():
            raise TerminalError("Must run in an interactive terminal")
        fd = self._in.fileno()
        try:
            self._saved_attrs = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        except termios.error as e:
            raise TerminalError(f"Could not enable raw mode: {e}") from e
        logger.debug("Raw mode enabled")

    def disable_raw_mode(self) -> None:
        if self._saved_attrs is None:
            return
        try:
            termios.tcsetattr(self._in.fileno(), termios.TCSADRAIN, self._saved_attrs)
        except termios.error as e:
            raise TerminalError(f"Could not restore terminal: {e}") from e
        self._saved_attrs = None
        logger.debug("Raw mode disabled")

    def restore(self) -> None:
        """Show the cursor and leave raw mode; safe to call more than once."""
        try:
            if self._cursor_hidden:
                self.show_cursor()
        finally:
            self.disable_raw_mode()

    def __enter__(self):
        self.enable_raw_mode()
        self.hide_cursor()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.restore()
        return False

    # Output

    def write(self, text: str) -> None:
        self._out.write(text)
        self._out.flush()

    def write_error(self, text: str) -> None:
        self._err.write(text)
        self._err.flush()

    def hide_cursor(self) -> None:
        self.write(HIDE_CURSOR)
        self._cursor_hidden = True

    def show_cursor(self) -> None:
        self.write(SHOW_CURSOR)
        self._cursor_hidden = False

    def move_to_column(self, column: int) -> None:
        self.write(f"\033[{column + 1}G")

    def clear_line(self) -> None:
        self.write(CLEAR_LINE)

    def set_title(self, title: str) -> None:
        self.write(f"\033]0;{title}\007")

    def width(self) -> int:
        """Get terminal width using ioctl with fallback to shutil."""
        try:
            if self._out.isatty():
                winsize = struct.pack("HHHH", 0, 0, 0, 0)
                result = fcntl.ioctl(self._out.fileno(), termios.TIOCGWINSZ, winsize)
                rows, cols, _, _ = struct.unpack("HHHH", result)
                if cols > 0:
                    return cols
        except (OSError, ValueError):
            pass
        return shutil.get_terminal_size().columns

    # Input

    def poll(self, timeout: float) -> bool:
        """Wait up to `timeout` seconds for a key; True if one is available."""
        if self._pending:
            return True
        try:
            ready, _, _ = select.select([self._in], [], [], max(0.0, timeout))
        except InterruptedError:
            return False
        return bool(ready)

    def read_key(self) -> Optional[str]:
        if not self._pending:
            try:
                data = os.read(self._in.fileno(), 64)
            except (BlockingIOError, InterruptedError):
                return None
            self._pending.extend(parse_keys(data.decode("utf-8", errors="ignore")))
        return self._pending.popleft() if self._pending else None

    def poll_key(self, timeout: float) -> Optional[str]:
        if self.poll(timeout):
            return self.read_key()
        return None
