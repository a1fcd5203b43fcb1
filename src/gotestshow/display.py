"""Display protocol consumed by the streaming coordinator.

Defines the capability set the core drives without knowing how output is
produced. The terminal renderer implements this protocol; tests and embedders
can supply their own implementation or use NullDisplay.
"""

from typing import Protocol, runtime_checkable

from .config import DisplayConfig
from .models import PackageState, TestResult
from .rules import collect_summary_stats


@runtime_checkable
class Display(Protocol):
    """Protocol for rendering progress, results and the final summary."""

    def show_progress(self, packages: dict[str, PackageState], has_tests_started: bool, start_time: float) -> None:
        """Render the periodic aggregate progress.

        Args:
            packages: Snapshot of package states.
            has_tests_started: Whether any test has been run yet.
            start_time: time.monotonic() value at coordinator start.
        """
        ...

    def show_test_result(self, result: TestResult, success: bool) -> None:
        """Render one completed test (or the [BUILD] sentinel)."""
        ...

    def show_package_failure(self, package_name: str, output: list[str]) -> None:
        """Render a displayable package-level failure."""
        ...

    def show_final_results(self, packages: dict[str, PackageState], results: dict[str, TestResult], start_time: float) -> int:
        """Render the final summary and return the process exit code."""
        ...

    def show_help(self) -> None:
        """Render usage guidance."""
        ...

    def show_notice(self, message: str) -> None:
        """Render a one-off notice (interruption, input errors)."""
        ...

    def clear_line(self) -> None:
        """Erase the in-progress line."""
        ...

    def show_cursor(self, show: bool) -> None:
        """Hide or restore the terminal cursor."""
        ...

    def set_config(self, config: DisplayConfig) -> None:
        """Set the rendering mode and slow-test threshold."""
        ...


class NullDisplay:
    """No-op display for headless use.

    Discards every render call. show_final_results() still returns the exit
    code implied by the state so that callers can use the reduction engine
    without a terminal.
    """

    def __init__(self) -> None:
        self.config = DisplayConfig()

    def show_progress(self, packages: dict[str, PackageState], has_tests_started: bool, start_time: float) -> None:
        pass

    def show_test_result(self, result: TestResult, success: bool) -> None:
        pass

    def show_package_failure(self, package_name: str, output: list[str]) -> None:
        pass

    def show_final_results(self, packages: dict[str, PackageState], results: dict[str, TestResult], start_time: float) -> int:
        return collect_summary_stats(packages, results).exit_code

    def show_help(self) -> None:
        pass

    def show_notice(self, message: str) -> None:
        pass

    def clear_line(self) -> None:
        pass

    def show_cursor(self, show: bool) -> None:
        pass

    def set_config(self, config: DisplayConfig) -> None:
        self.config = config
