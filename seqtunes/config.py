"""
Configuration management for seqtunes.
"""
import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple

from seqtunes.logging_config import get_logger, ConfigurationError

logger = get_logger('config')


DEFAULT_CONFIG: str = """# seqtunes configuration
# Command-line flags override anything set here.

[player]
# Initial volume, 0-100
volume = 75
# Volume change per arrow key press (0.0-1.0 scale)
volume_step = 0.01
# Hide the key help banner
simple = false
# Shuffle the playlist once before playing
random = false
# Play the playlist back to front
reverse = false
# Start over after the last track
loop = false
# Descend into sub-directories when given a directory
recursive = false
# Output device name or index (leave unset for the system default)
# audio_device = "pulse"

[timing]
# Seconds to wait for a track to load before skipping it
preload_timeout = 5.0
# Minimum seconds between two honored skips
skip_interval = 0.25
# Minimum seconds between two pause/mute toggles
toggle_debounce = 0.2
# Seconds between status line refreshes
render_interval = 1.0
# Seconds to wait for a key press per tick
poll_interval = 0.1
# Seconds an error stays on screen before the next track loads
error_wait = 1.0

[logging]
level = "WARNING"
# file = "~/.local/state/seqtunes/seqtunes.log"
"""

# TOML section/key -> AppConfig attribute
_SECTION_KEYS: Dict[str, Dict[str, str]] = {
    "player": {
        "volume": "volume",
        "volume_step": "volume_step",
        "simple": "simple",
        "random": "random",
        "reverse": "reverse",
        "loop": "loop",
        "recursive": "recursive",
        "audio_device": "audio_device",
    },
    "timing": {
        "preload_timeout": "preload_timeout",
        "skip_interval": "skip_interval",
        "toggle_debounce": "toggle_debounce",
        "render_interval": "render_interval",
        "poll_interval": "poll_interval",
        "error_wait": "error_wait",
    },
    "logging": {
        "level": "log_level",
        "file": "log_file",
    },
}

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class AppConfig:
    """Application configuration settings."""

    # Player settings
    volume: int = 75
    volume_step: float = 0.01
    simple: bool = False
    random: bool = False
    reverse: bool = False
    loop: bool = False
    recursive: bool = False
    audio_device: Optional[str] = None

    # Timing settings
    preload_timeout: float = 5.0
    skip_interval: float = 0.25
    toggle_debounce: float = 0.2
    render_interval: float = 1.0
    poll_interval: float = 0.1
    error_wait: float = 1.0

    # Logging settings
    log_level: str = "WARNING"
    log_file: Optional[str] = None


class ConfigManager:
    """Manages configuration loading, creation, and validation.

    With `strict` a missing or unreadable file, or an out-of-range value,
    raises ConfigurationError; used for explicitly given paths. Otherwise
    out-of-range values are put back to their defaults.
    """

    def __init__(self, config_path: Optional[Path] = None, create: bool = True, strict: bool = False):
        self.config_path = Path(config_path) if config_path else self._get_default_config_path()
        self.config: AppConfig = AppConfig()
        self.created = False
        self.strict = strict
        self._load_config(create)

    def _get_default_config_path(self) -> Path:
        """Get default configuration file path."""
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config:
            return Path(xdg_config) / "seqtunes" / "config.toml"
        return Path.home() / ".config" / "seqtunes" / "config.toml"

    def _load_config(self, create: bool) -> None:
        """Load configuration from file."""
        if not self.config_path.exists():
            if self.strict:
                raise ConfigurationError(f"Config file not found: {self.config_path}")
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            if create:
                self._create_default_config()
            return

        try:
            with open(self.config_path, 'rb') as f:
                data = tomllib.load(f)
        except (tomllib.TOMLDecodeError, OSError) as e:
            if self.strict:
                raise ConfigurationError(f"Failed to load {self.config_path}: {e}") from e
            logger.error(f"Failed to load config: {e}")
            logger.info("Using default configuration")
            return

        self._apply_config_data(data)
        issues = self._find_issues()
        if issues and self.strict:
            messages = "; ".join(message for _, message in issues)
            raise ConfigurationError(f"Invalid values in {self.config_path}: {messages}")
        self._reset_fields(issues)
        logger.info(f"Loaded configuration from {self.config_path}")

    def _create_default_config(self) -> None:
        """Create a default configuration file."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(DEFAULT_CONFIG, encoding="utf-8")
            self.created = True
            logger.info(f"Created default config at {self.config_path}")
        except OSError as e:
            logger.warning(f"Failed to create default config: {e}")

    def _apply_config_data(self, data: Dict[str, Any]) -> None:
        """Apply TOML sections to the AppConfig object."""
        types = {f.name: f.type for f in fields(AppConfig)}
        for section, values in data.items():
            keys = _SECTION_KEYS.get(section)
            if keys is None or not isinstance(values, dict):
                logger.warning(f"Ignoring unknown config section: {section}")
                continue
            for key, value in values.items():
                attr = keys.get(key)
                if attr is None:
                    logger.warning(f"Ignoring unknown config key: {section}.{key}")
                    continue
                try:
                    setattr(self.config, attr, _coerce(value, types[attr]))
                except (TypeError, ValueError) as e:
                    logger.warning(f"Invalid config value for {section}.{key}: {value!r} ({e})")

    def _find_issues(self) -> List[Tuple[str, str]]:
        """Return (field, message) pairs for out-of-range settings."""
        c = self.config
        issues = []

        if not (0 <= c.volume <= 100):
            issues.append(("volume", f"Volume must be 0-100, got {c.volume}"))

        if not (0.0 < c.volume_step <= 1.0):
            issues.append(("volume_step", f"Volume step must be in (0, 1], got {c.volume_step}"))

        for name in ("preload_timeout", "render_interval", "poll_interval"):
            if getattr(c, name) <= 0:
                issues.append((name, f"{name} must be positive, got {getattr(c, name)}"))

        for name in ("skip_interval", "toggle_debounce", "error_wait"):
            if getattr(c, name) < 0:
                issues.append((name, f"{name} must not be negative, got {getattr(c, name)}"))

        if c.log_level.upper() not in VALID_LOG_LEVELS:
            issues.append(("log_level", f"Invalid log level: {c.log_level}"))

        return issues

    def _reset_fields(self, issues: List[Tuple[str, str]]) -> None:
        """Put each offending field back to its AppConfig default."""
        defaults = AppConfig()
        for name, message in issues:
            default = getattr(defaults, name)
            logger.warning(f"{message}; using default {default!r}")
            setattr(self.config, name, default)


def _coerce(value: Any, annotation: Any) -> Any:
    """Convert a TOML value to the type the AppConfig field expects."""
    if annotation is bool:
        if not isinstance(value, bool):
            raise TypeError("expected true or false")
        return value
    if annotation is int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError("expected a number")
        return int(value)
    if annotation is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError("expected a number")
        return float(value)
    if annotation is str:
        if not isinstance(value, str):
            raise TypeError("expected a string")
        return value
    # Optional[str]
    if value is None or isinstance(value, (str, int)):
        return None if value is None else str(value)
    raise TypeError("expected a string")

