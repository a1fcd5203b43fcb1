"""Real-time formatter for `go test -json` output.

This package reads the newline-delimited JSON event stream produced by
`go test -json`, folds it into per-test and per-package state, and renders a
live progress line, immediate failure reports and a final summary.

Public API:
    Runner: Streaming coordinator that drives one run end to end.
    DefaultEventProcessor: Thread-safe state store for the event stream.
    TerminalDisplay: Rich-based renderer for interactive, slow and plain modes.
"""

__version__ = "0.1.0"

from .config import DisplayConfig, DisplayMode, InvalidDurationError, parse_duration
from .display import Display, NullDisplay
from .models import (
    BUILD_SENTINEL,
    PACKAGE_SENTINEL,
    EventDecodeError,
    PackageState,
    SummaryStats,
    TestAction,
    TestEvent,
    TestResult,
)
from .processor import DefaultEventProcessor, EventProcessor
from .runner import NonConformingInputError, Runner, RunnerState, StreamReadError
from .terminal import TerminalDisplay
from .ticker import ProgressTicker

__all__ = [
    "BUILD_SENTINEL",
    "DefaultEventProcessor",
    "Display",
    "DisplayConfig",
    "DisplayMode",
    "EventDecodeError",
    "EventProcessor",
    "InvalidDurationError",
    "NonConformingInputError",
    "NullDisplay",
    "PACKAGE_SENTINEL",
    "PackageState",
    "ProgressTicker",
    "Runner",
    "RunnerState",
    "StreamReadError",
    "SummaryStats",
    "TerminalDisplay",
    "TestAction",
    "TestEvent",
    "TestResult",
    "__version__",
    "parse_duration",
]
