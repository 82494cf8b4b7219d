"""
Session state for seqtunes.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from seqtunes.logging_config import get_logger

logger = get_logger('state')


@dataclass
class PlaybackMode:
    """Playback-order flags fixed for the whole session."""
    random: bool = False
    loop: bool = False


@dataclass
class SessionState:
    """Everything the coordinator mutates between ticks.

    Owned by a single Session and passed explicitly; there is no
    module-level instance.
    """
    current_index: int = 0
    mode: PlaybackMode = field(default_factory=PlaybackMode)
    muted_volume: Optional[float] = None
    index_offset_pending: Optional[int] = None

    @property
    def muted(self) -> bool:
        return self.muted_volume is not None

    def validate(self, total: int) -> List[str]:
        """Validate state against the playlist length and return issues."""
        issues = []

        if not 0 <= self.current_index < total:
            issues.append(f"Current index {self.current_index} outside playlist of {total}")

        if self.index_offset_pending not in (None, 1, -1):
            issues.append(f"Invalid pending skip offset: {self.index_offset_pending}")

        if self.muted_volume is not None and not 0.0 <= self.muted_volume <= 1.0:
            issues.append(f"Muted volume out of bounds: {self.muted_volume}")

        if issues:
            logger.warning(f"State validation issues: {issues}")

        return issues
