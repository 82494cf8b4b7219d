"""
Logging configuration for seqtunes.
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Union


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        # Color a copy so the file handler keeps the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, '')
        reset = self.COLORS['RESET']
        record.levelname = f"{color}{record.levelname}{reset}"
        return super().format(record)


def setup_logging(
    level: str = "WARNING",
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
) -> logging.Logger:
    """Setup logging configuration for seqtunes.

    Console output goes to stderr: stdout carries the status line.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        console: Whether to attach the colored stderr handler

    Returns:
        The configured package logger
    """
    logger = logging.getLogger('seqtunes')
    logger.setLevel(logging.DEBUG if log_file else getattr(logging, level.upper()))
    logger.propagate = False

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, level.upper()))
        console_formatter = ColoredFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - '
            '%(funcName)s:%(lineno)d - %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module.

    Args:
        name: Module name

    Returns:
        Logger instance
    """
    return logging.getLogger(f'seqtunes.{name}')


# Custom exceptions for better error handling
class SeqTunesError(Exception):
    """Base exception for seqtunes."""
    pass


class AudioOutputError(SeqTunesError):
    """Audio output device related errors."""
    pass


class TrackLoadError(SeqTunesError):
    """A track could not be prepared for playback."""
    pass


class TrackOpenError(TrackLoadError):
    """The track file could not be opened or read."""
    pass


class TrackDecodeError(TrackLoadError):
    """The track file was readable but no decoder accepted it."""
    pass


class ConfigurationError(SeqTunesError):
    """Configuration related errors."""
    pass


class TerminalError(SeqTunesError):
    """Terminal setup or restore errors."""
    pass


class PreloadChannelClosed(SeqTunesError):
    """The preload result channel will never deliver another result."""
    pass
