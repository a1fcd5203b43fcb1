"""
Command-line interface for gotestshow.

This module provides the `gotestshow` CLI tool, which reads `go test -json`
output from stdin and renders it for humans.
"""

import argparse
import io
import logging
import os
import signal
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Optional

from rich.console import Console

from gotestshow import __version__
from gotestshow.config import DisplayConfig, DisplayMode, InvalidDurationError, parse_duration
from gotestshow.processor import DefaultEventProcessor
from gotestshow.runner import Runner
from gotestshow.terminal import TerminalDisplay

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

THRESHOLD_ENV_VAR = "GOTESTSHOW_THRESHOLD"
CI_ENV_VAR = "CI"
HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

_FALSY_ENV_VALUES = ("", "0", "false", "no", "off")


@dataclass
class CliArgs:
    """Parsed command-line arguments."""

    timing: bool = False
    ci: bool = False
    threshold: float = 0.5
    relative_locations: bool = False
    log_file: Optional[Path] = None
    debug: bool = False
    help: bool = False


def _duration_arg(value: str) -> float:
    try:
        return parse_duration(value)
    except InvalidDurationError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Flags accept both the single-dash spelling used by Go tools (-timing,
    -threshold=1s) and the double-dash spelling.
    """
    parser = argparse.ArgumentParser(
        prog="gotestshow",
        description="gotestshow - A real-time formatter for `go test -json` output",
        add_help=False,
        allow_abbrev=False,
    )
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "-timing",
        "--timing",
        action="store_true",
        help="Show only slow tests and failures",
    )
    mode_group.add_argument(
        "-ci",
        "--ci",
        action="store_true",
        help="CI mode: no escape sequences, only failures and summary",
    )
    parser.add_argument(
        "-threshold",
        "--threshold",
        type=_duration_arg,
        default=os.environ.get(THRESHOLD_ENV_VAR) or "500ms",
        help="Threshold for slow tests (default: 500ms)",
    )
    parser.add_argument(
        "--relative-locations",
        action="store_true",
        help="Prefix file locations with the relative package path",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Write debug logs to this file",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log debug records to stderr",
    )
    parser.add_argument(
        "-h",
        "-help",
        "--help",
        action="store_true",
        help="Show this help message",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"gotestshow {__version__}",
    )
    return parser


def setup_logging(log_file: Optional[Path] = None, debug: bool = False) -> logging.Handler:
    """Attach a handler to the root logger.

    With a log file everything down to DEBUG goes to the file. Otherwise
    records go to stderr at WARNING (DEBUG with debug=True), keeping the
    terminal display on stdout readable.

    Returns:
        The installed handler, so the caller can remove it again.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(str(log_file), encoding="utf-8")
        handler.setLevel(logging.DEBUG)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG if debug else logging.WARNING)

    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    root.addHandler(handler)
    return handler


def _is_tty(stream: Optional[IO[Any]]) -> bool:
    if stream is None:
        return False
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except (OSError, ValueError):
        return False


def _ci_env_enabled() -> bool:
    return os.environ.get(CI_ENV_VAR, "").strip().lower() not in _FALSY_ENV_VALUES


def select_mode(args: CliArgs, stdout_is_terminal: bool) -> DisplayMode:
    """Pick the display mode from flags, the environment and the output stream."""
    if args.ci:
        return DisplayMode.PLAIN
    if args.timing:
        return DisplayMode.SLOW
    if not stdout_is_terminal or _ci_env_enabled():
        return DisplayMode.PLAIN
    return DisplayMode.INTERACTIVE


def _install_signal_handlers(runner: Runner) -> dict[int, Any]:
    """Route Ctrl-C and SIGTERM to the runner so the interrupted summary still prints.

    Returns:
        Previous handlers by signal number, empty off the main thread.
    """
    if threading.current_thread() is not threading.main_thread():
        return {}
    return {signum: signal.signal(signum, runner.handle_signal) for signum in HANDLED_SIGNALS}


def _open_stdin() -> Optional[IO[str]]:
    if sys.stdin is None or _is_tty(sys.stdin):
        return None
    buffer = getattr(sys.stdin, "buffer", None)
    if buffer is None:
        return sys.stdin
    return io.TextIOWrapper(buffer, encoding="utf-8", errors="replace")


def run(args: CliArgs, stdin: Optional[IO[str]] = None, console: Optional[Console] = None) -> int:
    """Run the formatter with parsed arguments.

    Args:
        args: Parsed arguments.
        stdin: Event stream. Defaults to the process stdin.
        console: Output console. Defaults to a Console on stdout.

    Returns:
        Process exit code.
    """
    if console is None:
        console = Console(highlight=False, soft_wrap=True)

    mode = select_mode(args, console.is_terminal)
    display = TerminalDisplay(console, DisplayConfig(mode=mode, threshold=args.threshold))
    logger.debug(f"Display mode: {mode.value}, threshold: {args.threshold}s")

    if args.help:
        display.show_help()
        return 0

    if stdin is None:
        stdin = _open_stdin()
    if stdin is None or _is_tty(stdin):
        # Nothing piped in
        display.show_help()
        return 0

    processor = DefaultEventProcessor(relative_locations=args.relative_locations)
    runner = Runner(processor, display, stdin)

    previous_handlers = _install_signal_handlers(runner)
    try:
        exit_code = runner.run()
    finally:
        for signum, previous in previous_handlers.items():
            if previous is not None:
                signal.signal(signum, previous)

    logger.info(f"Processed {runner.events_processed} events, exit code {exit_code}")
    return exit_code


def main(argv: Optional[list[str]] = None, stdin: Optional[IO[str]] = None, console: Optional[Console] = None) -> int:
    """gotestshow - A real-time formatter for `go test -json` output."""
    parsed_args = build_parser().parse_args(argv)
    args = CliArgs(
        timing=parsed_args.timing,
        ci=parsed_args.ci,
        threshold=parsed_args.threshold,
        relative_locations=parsed_args.relative_locations,
        log_file=parsed_args.log_file,
        debug=parsed_args.debug,
        help=parsed_args.help,
    )

    handler = setup_logging(args.log_file, args.debug)
    try:
        return run(args, stdin=stdin, console=console)
    except KeyboardInterrupt:
        # Interrupted before the runner took over signal handling
        return 130
    finally:
        logging.getLogger().removeHandler(handler)
        handler.close()


if __name__ == "__main__":
    sys.exit(main())
