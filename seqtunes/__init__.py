"""
SeqTunes - Sequential terminal music player.
"""

__version__ = "1.0.0"
__author__ = "SeqTunes Team"
__description__ = "A terminal music player that plays a playlist in order, preloading the next track in the background."

NAME = "seqtunes"

# Import all modules
from . import logging_config
from . import config
from . import text
from . import state
from . import clock
from . import scheduler
from . import playlist
from . import metadata
from . import audio
from . import preloader
from . import render
from . import terminal
from . import session

from .audio import AudioSink, open_stream
from .clock import PlaybackClock
from .config import AppConfig, ConfigManager
from .playlist import Resolved, Unresolved, resolve_playlist
from .preloader import Preloader, PreloadHandle, PreloadReady, PreloadFailed
from .scheduler import RateLimiter, apply_forced_skip, next_natural
from .session import Session, SessionOutcome
from .state import PlaybackMode, SessionState
from .terminal import Terminal

# Re-export key classes and functions
__all__ = [
    # Core
    'Session',
    'SessionOutcome',
    'SessionState',
    'PlaybackMode',
    'PlaybackClock',
    'next_natural',
    'apply_forced_skip',
    'RateLimiter',

    # Loading
    'Preloader',
    'PreloadHandle',
    'PreloadReady',
    'PreloadFailed',
    'resolve_playlist',
    'Resolved',
    'Unresolved',

    # Audio / terminal
    'AudioSink',
    'open_stream',
    'Terminal',

    # Config
    'AppConfig',
    'ConfigManager',
]
