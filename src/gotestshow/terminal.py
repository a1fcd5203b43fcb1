"""Rich-based terminal renderer for go test progress and results.

One configurable renderer covers the three display modes:

    interactive: spinner progress line rewritten in place, failures printed in full
    slow:        no progress line, slow tests and failures printed with timings,
                 grouped slow-test listing at the end
    plain:       no control sequences, color or glyphs (CI logs)

Thread-safe: the periodic ticker calls show_progress() while the streaming
coordinator calls show_test_result() from another thread. Every write goes
through one lock, which also owns the in-place line bookkeeping.
"""

import threading
import time

from rich.console import Console
from rich.control import Control
from rich.segment import ControlType
from rich.text import Text

from .config import DisplayConfig, DisplayMode, format_duration, format_threshold
from .models import BUILD_SENTINEL, PACKAGE_SENTINEL, PackageState, TestResult
from .rules import (
    collect_summary_stats,
    extract_relevant_output,
    has_package_failure,
    should_show_package_name,
)

# Braille spinner frames for the progress line animation
_SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")
_DOTS_FRAMES = ("   ", ".  ", ".. ", "...")

_CARRIAGE_RETURN = Control(ControlType.CARRIAGE_RETURN)
_ERASE_LINE = Control((ControlType.ERASE_IN_LINE, 0))

_RULE_WIDTH = 50
_OUTPUT_INDENT = " " * 8
_GRAY = "bright_black"

HELP_LINES = (
    "gotestshow - A real-time formatter for `go test -json` output",
    "",
    "Usage:",
    "  go test -json ./... | gotestshow [flags]",
    "",
    "Flags:",
    "  -timing         Enable timing mode to show only slow tests and failures",
    "  -threshold      Threshold for slow tests (default: 500ms)",
    "                  Examples: 1s, 500ms, 1.5s",
    "  -ci             Enable CI mode - no escape sequences, only show failures and summary",
    "  --relative-locations",
    "                  Prefix file locations with the relative package path",
    "  --log-file      Write debug logs to a file",
    "  --debug         Log debug records to stderr",
    "  -help           Show this help message",
    "",
    "Description:",
    "  gotestshow reads JSON-formatted test output from stdin and displays",
    "  it in a human-readable format with real-time progress updates.",
    "  Real-time progress display shows only failed test details.",
    "",
    "Examples:",
    "  # Test all packages",
    "  go test -json ./... | gotestshow",
    "",
    "  # Test specific package",
    "  go test -json ./pkg/... | gotestshow",
    "",
    "  # Run specific test",
    "  go test -json -run TestName ./... | gotestshow",
    "",
    "  # Enable timing mode with custom threshold",
    "  go test -json ./... | gotestshow -timing -threshold=1s",
)


def _frame(frames: tuple[str, ...], interval: float) -> str:
    return frames[int(time.monotonic() / interval) % len(frames)]


class TerminalDisplay:
    """Display implementation that writes to a Rich Console.

    Implements the Display protocol. In plain mode styles and glyphs are
    dropped and no control sequences are written, so the output is safe for
    log files regardless of what the console supports.

    Args:
        console: Rich Console instance for rendering. If None, creates one on stdout.
        config: Initial display configuration. Defaults to interactive mode.
    """

    def __init__(self, console: Console | None, config: DisplayConfig | None = None) -> None:
        self._console = console if console is not None else Console(highlight=False, soft_wrap=True)
        self._config = config if config is not None else DisplayConfig()
        self._packages: dict[str, PackageState] = {}
        self._seen_packages: set[str] = set()
        self._last_display_length = 0
        self._lock = threading.Lock()

    @property
    def config(self) -> DisplayConfig:
        """Current display configuration."""
        return self._config

    def set_config(self, config: DisplayConfig) -> None:
        """Set the display mode and slow-test threshold."""
        with self._lock:
            self._config = config

    def show_progress(self, packages: dict[str, PackageState], has_tests_started: bool, start_time: float) -> None:
        """Rewrite the progress line in place (interactive mode only).

        The package snapshot is remembered in every mode so that result lines
        can decide whether to mention package names.
        """
        with self._lock:
            self._packages = packages
            if self._config.mode != DisplayMode.INTERACTIVE:
                return

            spinner = _frame(_SPINNER_FRAMES, 0.1)
            if not has_tests_started:
                content = Text(f"{spinner} Initializing{_frame(_DOTS_FRAMES, 0.5)}", style="blue")
            else:
                stats = collect_summary_stats(packages, {})
                elapsed = time.monotonic() - start_time
                content = Text.assemble(
                    (f"{spinner} Running: {stats.running}", "blue"),
                    " | ",
                    (f"✓ Passed: {stats.passed}", "green"),
                    " | ",
                    (f"✗ Failed: {stats.failed}", "red"),
                    " | ",
                    (f"⚡ Skipped: {stats.skipped}", "yellow"),
                    " | ",
                    (f"⏱ {elapsed:.1f}s", _GRAY),
                )
            self._smart_display_line(content)

    def show_test_result(self, result: TestResult, success: bool) -> None:
        """Render a completed test according to the display mode.

        Tests that have subtests are never rendered; only their subtests are.
        """
        with self._lock:
            self._seen_packages.add(result.package)
            if result.has_subtest:
                return
            if self._config.mode == DisplayMode.SLOW:
                self._show_test_result_slow(result)
                return
            if success:
                return
            self._clear_line()
            self._print_test_failure(result)
            self._print_output(result.output)

    def show_package_failure(self, package_name: str, output: list[str]) -> None:
        """Render a package-level failure with its captured output."""
        with self._lock:
            self._clear_line()
            self._emit(Text.assemble(self._part(self._label("✗ PACKAGE FAIL", "PACKAGE FAIL"), "red"), f" {package_name}"))
            self._print_output(output)

    def show_final_results(self, packages: dict[str, PackageState], results: dict[str, TestResult], start_time: float) -> int:
        """Render the final summary.

        Returns:
            0 if nothing failed, 1 otherwise.
        """
        with self._lock:
            self._packages = packages
            stats = collect_summary_stats(packages, results)

            if self._config.mode == DisplayMode.SLOW:
                self._print_slow_tests_summary(results)

            if stats.has_failures:
                self._emit("")
                self._emit("=" * _RULE_WIDTH)
                self._emit(self._label("📊 Failed Tests Summary", "Failed Tests Summary"))
                self._emit("=" * _RULE_WIDTH)
                for name in sorted(packages):
                    self._print_package_summary(packages[name], results)
                self._emit("")
                self._emit("-" * _RULE_WIDTH)

            elapsed = time.monotonic() - start_time
            self._emit("")
            if self._config.plain:
                self._emit(
                    f"Total: {stats.total} tests | Passed: {stats.passed} | Failed: {stats.failed} | "
                    f"Skipped: {stats.skipped} | Time: {elapsed:.2f}s"
                )
            else:
                self._emit(
                    Text.assemble(
                        f"Total: {stats.total} tests | ",
                        (f"✓ Passed: {stats.passed}", "green"),
                        " | ",
                        (f"✗ Failed: {stats.failed}", "red"),
                        " | ",
                        (f"⚡ Skipped: {stats.skipped}", "yellow"),
                        " | ",
                        (f"⏱ {elapsed:.2f}s", _GRAY),
                    )
                )

            exit_code = stats.exit_code
            self._emit("")
            if exit_code != 0:
                self._emit(Text(self._label("❌ Tests failed!", "Tests failed!"), style=self._style("red")))
            else:
                self._emit(Text(self._label("✨ All tests passed!", "All tests passed!"), style=self._style("green")))
            return exit_code

    def show_help(self) -> None:
        """Render the usage text."""
        with self._lock:
            for line in HELP_LINES:
                self._emit(line)

    def show_notice(self, message: str) -> None:
        """Render a notice on its own line, after clearing the progress line."""
        with self._lock:
            self._clear_line()
            self._emit("")
            self._emit(Text(message, style=self._style("yellow")))

    def clear_line(self) -> None:
        """Erase the in-progress line. No-op in plain mode."""
        with self._lock:
            self._clear_line()

    def show_cursor(self, show: bool) -> None:
        """Hide or show the terminal cursor. No-op in plain mode."""
        with self._lock:
            if self._config.plain:
                return
            self._console.show_cursor(show)

    def _emit(self, content: Text | str) -> None:
        """Print one line without markup processing or wrapping."""
        if isinstance(content, str):
            content = Text(content)
        self._console.print(content, soft_wrap=True)

    def _style(self, style: str) -> str:
        return "" if self._config.plain else style

    def _part(self, text: str, style: str) -> tuple[str, str] | str:
        return text if self._config.plain else (text, style)

    def _label(self, decorated: str, plain: str) -> str:
        return plain if self._config.plain else decorated

    def _clear_line(self) -> None:
        if self._config.plain:
            return
        self._console.control(_CARRIAGE_RETURN, _ERASE_LINE)
        self._last_display_length = 0

    def _smart_display_line(self, content: Text) -> None:
        """Overwrite the current line, erasing it first only if the new content is shorter."""
        length = content.cell_len
        if length < self._last_display_length:
            self._console.control(_CARRIAGE_RETURN, _ERASE_LINE)
        else:
            self._console.control(_CARRIAGE_RETURN)
        self._console.print(content, end="", soft_wrap=True)
        self._last_display_length = length

    def _show_package_name(self) -> bool:
        # Results can arrive before the first progress snapshot
        return len(self._seen_packages) > 1 or should_show_package_name(self._packages)

    def _location_part(self, location: str) -> list[tuple[str, str] | str]:
        if not location:
            return []
        return [" ", self._part(f"[{location}]", "blue")]

    def _print_test_failure(self, result: TestResult) -> None:
        if result.test == BUILD_SENTINEL:
            self._emit(
                Text.assemble(
                    self._part(self._label("✗ BUILD FAIL", "BUILD FAIL"), "red"),
                    f" {result.package}",
                    *self._location_part(result.location),
                )
            )
            return

        package_info = f" in {result.package}" if self._show_package_name() else ""
        self._emit(
            Text.assemble(
                self._part(self._label("✗ FAIL", "FAIL"), "red"),
                f" {result.test}",
                *self._location_part(result.location),
                " ",
                self._part(f"({result.elapsed:.2f}s)", _GRAY),
                package_info,
            )
        )

    def _show_test_result_slow(self, result: TestResult) -> None:
        if result.test == BUILD_SENTINEL:
            self._print_test_failure(result)
            self._print_output(result.output)
            return

        is_slow = self._config.is_slow(result.elapsed)
        if not is_slow and not result.failed:
            return

        icon, style = self._test_icon(result)
        parts: list[tuple[str, str] | str] = [
            (icon, style),
            f" {result.test}",
            *self._location_part(result.location),
            " ",
            (f"({format_duration(result.elapsed)})", _GRAY),
        ]
        if is_slow:
            parts += [" ", ("[SLOW]", "red")]
        if self._show_package_name():
            parts += [" ", (result.package, _GRAY)]

        self._clear_line()
        self._emit(Text.assemble(*parts))

        if result.failed:
            self._print_output(result.output)

    @staticmethod
    def _test_icon(result: TestResult) -> tuple[str, str]:
        if result.failed:
            return "✗", "red"
        if result.skipped:
            return "⚡", "yellow"
        if result.passed:
            return "✓", "green"
        return "?", _GRAY

    def _print_output(self, output: list[str]) -> None:
        relevant = extract_relevant_output(output)
        if not relevant:
            return

        style = self._style("red")
        self._emit("")
        for line in relevant:
            text = line.rstrip("\r\n")
            self._emit(Text(f"{_OUTPUT_INDENT}{text}", style=style))
        self._emit("")

    def _print_package_summary(self, pkg: PackageState, results: dict[str, TestResult]) -> None:
        package_fail = has_package_failure(pkg, results)
        if pkg.failed == 0 and not package_fail:
            return

        if package_fail and pkg.individual_test_failed == 0:
            status = self._label("✗ PACKAGE FAIL", "PACKAGE FAIL")
        else:
            status = self._label("✗ FAIL", "FAIL")

        self._emit("")
        self._emit(Text.assemble(self._part(status, "red"), f" {pkg.name} ", self._part(f"({pkg.elapsed:.2f}s)", _GRAY)))
        self._emit(f"  Tests: {pkg.total} | Passed: {pkg.passed} | Failed: {pkg.failed} | Skipped: {pkg.skipped}")

        failed = [
            result
            for result in results.values()
            if result.package == pkg.name and result.failed and result.test != PACKAGE_SENTINEL and not result.has_subtest
        ]
        if not failed:
            return

        self._emit("")
        for result in failed:
            if result.test == BUILD_SENTINEL:
                label = self._label("✗ BUILD FAIL", "BUILD FAIL")
                self._emit(Text.assemble("    ", self._part(label, "red"), *self._location_part(result.location)))
            else:
                label = self._label(f"✗ {result.test}", f"FAIL {result.test}")
                self._emit(
                    Text.assemble(
                        "    ",
                        self._part(label, "red"),
                        *self._location_part(result.location),
                        " ",
                        self._part(f"({result.elapsed:.2f}s)", _GRAY),
                    )
                )

    def _print_slow_tests_summary(self, results: dict[str, TestResult]) -> None:
        by_package: dict[str, list[TestResult]] = {}
        for result in results.values():
            if result.has_subtest or result.test in (PACKAGE_SENTINEL, BUILD_SENTINEL):
                continue
            if self._config.is_slow(result.elapsed):
                by_package.setdefault(result.package, []).append(result)

        if not by_package:
            return

        self._emit("")
        self._emit("=" * _RULE_WIDTH)
        self._emit(f"🐢 Slow Tests (>{format_threshold(self._config.threshold)})")
        self._emit("=" * _RULE_WIDTH)

        for name in sorted(by_package):
            # Slowest first; sorted() is stable so ties keep arrival order
            tests = sorted(by_package[name], key=lambda r: r.elapsed, reverse=True)
            self._emit("")
            self._emit(Text.assemble("=== ", (name, "blue"), " ==="))
            for test in tests:
                self._emit(
                    Text.assemble(
                        f"  {test.test}",
                        *self._location_part(test.location),
                        " ",
                        (f"({format_duration(test.elapsed)})", "red"),
                    )
                )
