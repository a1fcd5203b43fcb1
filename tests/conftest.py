"""Pytest configuration and fixtures for gotestshow tests.

Besides the event builders and display fixtures, this conftest restores
stdout/stderr after each test. Python 3.13 changed how stdout/stderr are
handled, causing "I/O operation on closed file" errors during teardown when a
test closes them. This is a known issue: https://github.com/pytest-dev/pytest/issues/11439
"""

import json
import sys
import threading
import warnings
from io import StringIO
from typing import Any, Callable

import pytest
from rich.console import Console

from gotestshow.config import DisplayConfig
from gotestshow.models import PackageState, TestResult
from gotestshow.rules import collect_summary_stats

# Suppress ResourceWarnings from file cleanup in Python 3.13
if sys.version_info >= (3, 13):
    warnings.filterwarnings("ignore", category=ResourceWarning)


@pytest.fixture(autouse=True)
def _restore_stdio():  # noqa: PT004
    """Ensure stdout/stderr are always restored after each test."""
    yield

    if sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if sys.stderr.closed:
        sys.stderr = sys.__stderr__


@pytest.hookimpl(hookwrapper=True, trylast=True)
def pytest_runtest_teardown(item):  # noqa: ARG001
    """Ensure streams are restored during teardown phase."""
    yield

    if hasattr(sys.stdout, "closed") and sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if hasattr(sys.stderr, "closed") and sys.stderr.closed:
        sys.stderr = sys.__stderr__


# ─── Event builders ───────────────────────────────────────────────────────────


def make_event_line(
    action: str,
    package: str = "",
    test: str = "",
    elapsed: float | None = None,
    output: str | None = None,
    import_path: str | None = None,
) -> str:
    """Build one `go test -json` line (with trailing newline)."""
    data: dict[str, Any] = {"Time": "2024-01-01T00:00:00.000000Z", "Action": action}
    if package:
        data["Package"] = package
    if test:
        data["Test"] = test
    if elapsed is not None:
        data["Elapsed"] = elapsed
    if output is not None:
        data["Output"] = output
    if import_path is not None:
        data["ImportPath"] = import_path
    return json.dumps(data) + "\n"


@pytest.fixture
def event_line() -> Callable[..., str]:
    """Factory for single event lines."""
    return make_event_line


@pytest.fixture
def passing_stream() -> str:
    """One package, two passing tests."""
    pkg = "example.com/demo/math"
    return "".join(
        [
            make_event_line("start", pkg),
            make_event_line("run", pkg, "TestAdd"),
            make_event_line("output", pkg, "TestAdd", output="=== RUN   TestAdd\n"),
            make_event_line("pass", pkg, "TestAdd", elapsed=0.01),
            make_event_line("run", pkg, "TestSub"),
            make_event_line("pass", pkg, "TestSub", elapsed=0.02),
            make_event_line("output", pkg, output="PASS\n"),
            make_event_line("pass", pkg, elapsed=0.05),
        ]
    )


@pytest.fixture
def failing_stream() -> str:
    """One package, one failing test with a file location in its output."""
    pkg = "example.com/demo/math"
    return "".join(
        [
            make_event_line("run", pkg, "TestDiv"),
            make_event_line("output", pkg, "TestDiv", output="=== RUN   TestDiv\n"),
            make_event_line("output", pkg, "TestDiv", output="    math_test.go:42: expected 2, got 3\n"),
            make_event_line("fail", pkg, "TestDiv", elapsed=0.02),
            make_event_line("output", pkg, output="FAIL\n"),
            make_event_line("fail", pkg, elapsed=0.03),
        ]
    )


@pytest.fixture
def build_failure_stream() -> str:
    """Package failing at build time before any test ran."""
    pkg = "example.com/demo/broken"
    return "".join(
        [
            make_event_line("output", pkg, output="# example.com/demo/broken [build failed]\n"),
            make_event_line("output", pkg, output="FAIL\texample.com/demo/broken [build failed]\n"),
            make_event_line("fail", pkg, elapsed=0.0),
        ]
    )


# ─── Display fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def console_buffer() -> tuple[Console, StringIO]:
    """Non-terminal console writing into a buffer (no control codes, no styles)."""
    buffer = StringIO()
    console = Console(file=buffer, force_terminal=False, highlight=False, soft_wrap=True, width=200)
    return console, buffer


@pytest.fixture
def terminal_console_buffer(monkeypatch: pytest.MonkeyPatch) -> tuple[Console, StringIO]:
    """Console forced into terminal mode so control sequences are written, without colors."""
    # Control codes are dropped on dumb terminals
    monkeypatch.setenv("TERM", "xterm-256color")
    buffer = StringIO()
    console = Console(file=buffer, force_terminal=True, color_system=None, highlight=False, soft_wrap=True, width=200)
    return console, buffer


class RecordingDisplay:
    """Thread-safe Display implementation that records every call."""

    def __init__(self, exit_code: int | None = None) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.config = DisplayConfig()
        self._exit_code = exit_code
        self._lock = threading.Lock()

    def _record(self, name: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((name, args))

    def show_progress(self, packages: dict[str, PackageState], has_tests_started: bool, start_time: float) -> None:
        self._record("show_progress", packages, has_tests_started, start_time)

    def show_test_result(self, result: TestResult, success: bool) -> None:
        self._record("show_test_result", result, success)

    def show_package_failure(self, package_name: str, output: list[str]) -> None:
        self._record("show_package_failure", package_name, list(output))

    def show_final_results(self, packages: dict[str, PackageState], results: dict[str, TestResult], start_time: float) -> int:
        self._record("show_final_results", packages, results, start_time)
        if self._exit_code is not None:
            return self._exit_code
        return collect_summary_stats(packages, results).exit_code

    def show_help(self) -> None:
        self._record("show_help")

    def show_notice(self, message: str) -> None:
        self._record("show_notice", message)

    def clear_line(self) -> None:
        self._record("clear_line")

    def show_cursor(self, show: bool) -> None:
        self._record("show_cursor", show)

    def set_config(self, config: DisplayConfig) -> None:
        self.config = config

    def names(self) -> list[str]:
        with self._lock:
            return [name for name, _ in self.calls]

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        with self._lock:
            return [args for call_name, args in self.calls if call_name == name]


@pytest.fixture
def recording_display() -> RecordingDisplay:
    """Display that records calls instead of rendering."""
    return RecordingDisplay()
