"""
Command-line entry point for seqtunes.
"""
import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional

from seqtunes import __description__, __version__, NAME
from seqtunes.audio import AudioSink
from seqtunes.config import AppConfig, ConfigManager, VALID_LOG_LEVELS
from seqtunes.logging_config import (
    get_logger,
    setup_logging,
    AudioOutputError,
    ConfigurationError,
    TerminalError,
)
from seqtunes.playlist import Unresolved, resolve_playlist
from seqtunes.preloader import Preloader
from seqtunes.render import format_banner, format_idle_title
from seqtunes.scheduler import order_playlist
from seqtunes.session import Session, SessionOutcome
from seqtunes.state import PlaybackMode, SessionState
from seqtunes.terminal import Terminal

logger = get_logger('cli')

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_BAD_PLAYLIST = 2

KEYS_HELP = """keys:
  space        pause / resume
  p            mute / unmute
  up / down    volume up / down
  left / right previous / next track
  q, c         quit"""


def _volume_arg(value: str) -> int:
    try:
        volume = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid volume: {value!r}")
    if not 0 <= volume <= 100:
        raise argparse.ArgumentTypeError(f"volume must be between 0 and 100, got {volume}")
    return volume


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=NAME,
        description=__description__,
        epilog=KEYS_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "input", nargs="?",
        help="audio file, directory, glob pattern or playlist file (.txt, .m3u)",
    )
    # Flags default to None so unset ones leave the config file's value alone
    parser.add_argument("-s", "--simple", action="store_true", default=None,
                        help="hide the key help banner")
    parser.add_argument("-r", "--random", action="store_true", default=None,
                        help="shuffle the playlist once before playing")
    parser.add_argument("-l", "--loop", action="store_true", default=None,
                        help="start over after the last track")
    parser.add_argument("-v", "--volume", type=_volume_arg, metavar="0-100",
                        help="initial volume (default 75)")
    parser.add_argument("--reverse", action="store_true", default=None,
                        help="play the playlist in reverse order")
    parser.add_argument("--recursive", action="store_true", default=None,
                        help="include sub-directories when INPUT is a directory")
    parser.add_argument("--device", metavar="DEV",
                        help="output device name or index")
    parser.add_argument("--config", metavar="PATH",
                        help="configuration file (default: XDG config dir)")
    parser.add_argument("--log-level", choices=VALID_LOG_LEVELS, type=str.upper,
                        help="log level (default WARNING)")
    parser.add_argument("--log-file", metavar="PATH",
                        help="write a debug log to PATH")
    parser.add_argument("--version", action="version", version=f"{NAME} {__version__}")
    return parser


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Overlay command-line flags on the loaded configuration."""
    for name in ("simple", "random", "reverse", "loop", "recursive", "volume"):
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)
    if args.device is not None:
        config.audio_device = args.device
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_file is not None:
        config.log_file = args.log_file
    if config.log_level.upper() not in VALID_LOG_LEVELS:
        config.log_level = "WARNING"
    return config


def _raise_system_exit(signum, frame) -> None:
    raise SystemExit(128 + signum)


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, resolve the playlist and run a playback session.

    Returns:
        0 on a finished or quit session, 1 on audio, terminal or fatal
        session errors, 2 when the playlist cannot be resolved
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.input is None:
        parser.print_help()
        return EXIT_OK

    explicit = args.config is not None
    try:
        manager = ConfigManager(Path(args.config) if explicit else None, create=not explicit, strict=explicit)
    except ConfigurationError as e:
        print(f"{NAME}: {e}", file=sys.stderr)
        return EXIT_ERROR
    config = apply_overrides(manager.config, args)
    # Log lines on stderr would tear the status line; a log file replaces them
    setup_logging(config.log_level, config.log_file, console=config.log_file is None)

    resolution = resolve_playlist(args.input, recursive=config.recursive)
    if isinstance(resolution, Unresolved):
        logger.error(f"Playlist not resolved: {resolution.describe()}")
        print(f"{NAME}: {resolution.describe()}", file=sys.stderr)
        return EXIT_BAD_PLAYLIST

    playlist = order_playlist(resolution.paths, shuffle=config.random, reverse=config.reverse)
    state = SessionState(mode=PlaybackMode(random=config.random, loop=config.loop))
    logger.info(f"Playing {len(playlist)} tracks (random={config.random}, loop={config.loop})")

    if manager.created:
        print(f"Config file created at: {manager.config_path}")
    if not config.simple:
        print("\n".join(format_banner()))

    try:
        sink = AudioSink(volume=config.volume / 100, device=config.audio_device)
    except AudioOutputError as e:
        print(f"{NAME}: {e}", file=sys.stderr)
        return EXIT_ERROR

    previous_handlers = {
        sig: signal.signal(sig, _raise_system_exit)
        for sig in (signal.SIGTERM, signal.SIGHUP)
    }
    preloader = Preloader()
    try:
        with Terminal() as terminal:
            try:
                outcome = Session(playlist, state, sink, terminal, preloader, config).run()
            except KeyboardInterrupt:
                outcome = SessionOutcome.QUIT
            terminal.move_to_column(0)
            terminal.clear_line()
            terminal.set_title(format_idle_title())
    except (AudioOutputError, TerminalError) as e:
        logger.error(f"Session aborted: {e}")
        print(f"{NAME}: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        preloader.close()
        sink.close()
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    logger.info(f"Session ended: {outcome.value}")
    if outcome is SessionOutcome.FATAL:
        print(f"{NAME}: playback stopped after a fatal error", file=sys.stderr)
        return EXIT_ERROR
    return EXIT_OK
