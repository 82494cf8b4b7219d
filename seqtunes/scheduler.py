"""
Track order and index arithmetic.

The functions here are pure: they take the current index, the playlist
length and the loop flag and say which slot plays next. The only ordering
policy applied to the playlist itself is a one-time reverse/shuffle before
the session starts.
"""
import random
import time
from typing import Callable, List, Optional, Sequence, TypeVar

from seqtunes.logging_config import get_logger

logger = get_logger('scheduler')

T = TypeVar("T")

# Minimum seconds between two honored forced skips
MIN_SKIP_INTERVAL: float = 0.25


def next_natural(current_index: int, total: int, loop_enabled: bool) -> Optional[int]:
    """Index to play after `current_index` finishes on its own.

    Returns:
        The next index, 0 when wrapping a looping playlist, or None when the
        playlist is exhausted
    """
    if current_index + 1 < total:
        return current_index + 1
    if loop_enabled and total > 0:
        return 0
    return None


def apply_forced_skip(
    current_index: int,
    total: int,
    loop_enabled: bool,
    direction: int,
) -> Optional[int]:
    """Index selected by a user skip, or None when the skip is not allowed.

    Forward from the last slot and back from the first only work when
    looping; otherwise the request is a no-op.
    """
    if direction == 1:
        if current_index < total - 1:
            return current_index + 1
        return 0 if loop_enabled and total > 0 else None
    if direction == -1:
        if current_index > 0:
            return current_index - 1
        return total - 1 if loop_enabled and total > 0 else None
    raise ValueError(f"Skip direction must be +1 or -1, got {direction}")


class RateLimiter:
    """Accepts an action only if `interval` seconds passed since the last one.

    Callers check `ready()`, decide whether the action really happens, and
    only then `mark()` it, so refused or illegal requests do not restart the
    window.
    """

    def __init__(self, interval: float, now: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._now = now
        self._last: Optional[float] = None

    def ready(self) -> bool:
        return self._last is None or self._now() - self._last >= self.interval

    def mark(self) -> None:
        self._last = self._now()


def order_playlist(
    paths: Sequence[T],
    shuffle: bool = False,
    reverse: bool = False,
    rng: Optional[random.Random] = None,
) -> List[T]:
    """Return the playlist in playing order.

    Args:
        paths: Resolved playlist
        shuffle: Apply a uniform random permutation
        reverse: Reverse the order (applied before shuffling)
        rng: Random source, for reproducible shuffles

    Returns:
        A new list with the same elements
    """
    ordered = list(paths)
    if reverse:
        ordered.reverse()
    if shuffle and len(ordered) > 1:
        (rng or random.Random()).shuffle(ordered)
        logger.debug(f"Shuffled {len(ordered)} tracks")
    return ordered
