"""Data models for the go test event stream.

Defines the core dataclasses used throughout gotestshow:
- TestAction: Enum of every action emitted by `go test -json`
- TestEvent: One decoded line of the event stream (immutable)
- TestResult: Accumulated state for a single (package, test) pair
- PackageState: Accumulated state for a single package
- SummaryStats: Totals across all packages for the final summary
"""

import json
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

# Sentinel test names for failures that are not attributable to a test
PACKAGE_SENTINEL = "[PACKAGE]"
BUILD_SENTINEL = "[BUILD]"

_FRACTION_RE = re.compile(r"(\.\d+)")


class EventDecodeError(ValueError):
    """Raised when a line cannot be decoded into a TestEvent."""

    pass


class TestAction(Enum):
    """Action field of a `go test -json` record."""

    __test__ = False

    START = "start"
    RUN = "run"
    PAUSE = "pause"
    CONT = "cont"
    PASS = "pass"
    BENCH = "bench"
    FAIL = "fail"
    OUTPUT = "output"
    SKIP = "skip"
    BUILD_OUTPUT = "build-output"
    BUILD_FAIL = "build-fail"

    @property
    def is_completion(self) -> bool:
        """True for the actions that end a test (pass, fail, skip)."""
        return self in (TestAction.PASS, TestAction.FAIL, TestAction.SKIP)


def result_key(package: str, test: str) -> str:
    """Identity key of a TestResult inside the state store."""
    return f"{package}/{test}"


@dataclass(frozen=True)
class TestEvent:
    """A single observed fact from the test run.

    Attributes:
        action: What happened (run, output, pass, ...).
        package: Owning package import path. Empty for build-phase events.
        test: Test name. Empty for package-scope events.
        time: Timestamp reported by the test runner, if any.
        elapsed: Elapsed seconds reported on completion events.
        output: One line of captured output (including its newline).
        import_path: Import path for build-phase events that precede package association.
    """

    __test__ = False

    action: TestAction
    package: str = ""
    test: str = ""
    time: datetime | None = None
    elapsed: float = 0.0
    output: str = ""
    import_path: str = ""

    @property
    def key(self) -> str:
        """Identity key of the TestResult this event folds into."""
        return result_key(self.package, self.test)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the `go test -json` wire shape."""
        data: dict[str, Any] = {"Action": self.action.value}
        if self.time is not None:
            data["Time"] = self.time.isoformat()
        if self.package:
            data["Package"] = self.package
        if self.test:
            data["Test"] = self.test
        if self.elapsed:
            data["Elapsed"] = self.elapsed
        if self.output:
            data["Output"] = self.output
        if self.import_path:
            data["ImportPath"] = self.import_path
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestEvent":
        """Deserialize from a decoded `go test -json` record.

        Raises:
            EventDecodeError: If the record is missing an action or a field has the wrong type.
        """
        if not isinstance(data, dict):
            raise EventDecodeError(f"Expected a JSON object, got {type(data).__name__}")

        raw_action = data.get("Action")
        try:
            action = TestAction(raw_action)
        except ValueError as e:
            raise EventDecodeError(f"Unknown action: {raw_action!r}") from e

        elapsed = data.get("Elapsed", 0.0)
        if elapsed is None:
            elapsed = 0.0
        if isinstance(elapsed, bool) or not isinstance(elapsed, (int, float)):
            raise EventDecodeError(f"Elapsed must be a number, got {elapsed!r}")

        return cls(
            action=action,
            package=_get_str(data, "Package"),
            test=_get_str(data, "Test"),
            time=_parse_time(data.get("Time")),
            elapsed=float(elapsed),
            output=_get_str(data, "Output"),
            import_path=_get_str(data, "ImportPath"),
        )

    @classmethod
    def from_json(cls, line: str | bytes) -> "TestEvent":
        """Decode one line of the event stream.

        Raises:
            EventDecodeError: If the line is not a valid event record.
        """
        try:
            data = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EventDecodeError(f"Invalid JSON: {e}") from e
        return cls.from_dict(data)


def _get_str(data: dict[str, Any], name: str) -> str:
    value = data.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise EventDecodeError(f"{name} must be a string, got {value!r}")
    return value


def _parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise EventDecodeError(f"Time must be a string, got {value!r}")
    # Go emits up to nanosecond precision and a "Z" suffix
    text = _FRACTION_RE.sub(lambda m: m.group(1)[:7].ljust(7, "0"), value.strip())
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise EventDecodeError(f"Invalid Time: {value!r}") from e


@dataclass
class TestResult:
    """Accumulated state for one (package, test) pair.

    Attributes:
        package: Owning package.
        test: Test name, or a sentinel ([PACKAGE], [BUILD]).
        passed: Set by a pass event.
        failed: Set by a fail event.
        skipped: Set by a skip event.
        elapsed: Elapsed seconds from the completion event.
        output: Captured output lines in arrival order.
        started: Set once the test has been run (or implicitly completed).
        location: First file:line found in the output. Never overwritten once set.
        has_subtest: Set the first time a subtest event arrives. Never cleared.
    """

    __test__ = False

    package: str
    test: str
    passed: bool = False
    failed: bool = False
    skipped: bool = False
    elapsed: float = 0.0
    output: list[str] = field(default_factory=list)
    started: bool = False
    location: str = ""
    has_subtest: bool = False

    @property
    def key(self) -> str:
        """Identity key inside the state store."""
        return result_key(self.package, self.test)

    @property
    def completed(self) -> bool:
        """True once any completion flag has been set."""
        return self.passed or self.failed or self.skipped

    def copy(self) -> "TestResult":
        """Return a copy that does not share the output list."""
        return replace(self, output=list(self.output))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "package": self.package,
            "test": self.test,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "elapsed": self.elapsed,
            "output": list(self.output),
            "started": self.started,
            "location": self.location,
            "has_subtest": self.has_subtest,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TestResult":
        """Deserialize from dictionary."""
        return cls(
            package=data["package"],
            test=data["test"],
            passed=data.get("passed", False),
            failed=data.get("failed", False),
            skipped=data.get("skipped", False),
            elapsed=data.get("elapsed", 0.0),
            output=list(data.get("output", [])),
            started=data.get("started", False),
            location=data.get("location", ""),
            has_subtest=data.get("has_subtest", False),
        )


@dataclass
class PackageState:
    """Accumulated state for one package.

    Attributes:
        name: Package import path.
        total: Tests counted toward the package (plus synthetic package failures).
        passed: Leaf tests that passed.
        failed: Leaf tests that failed, plus package-level build/setup failures.
        skipped: Leaf tests that were skipped.
        running: Tests started but not yet completed.
        elapsed: Elapsed seconds from the package completion event.
        output: Package-scope output lines.
        individual_test_failed: Failures attributable to a single test.
        build_failed: True once a build-fail event was counted for the package.
    """

    name: str
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    running: int = 0
    elapsed: float = 0.0
    output: list[str] = field(default_factory=list)
    individual_test_failed: int = 0
    build_failed: bool = False

    def copy(self) -> "PackageState":
        """Return a copy that does not share the output list."""
        return replace(self, output=list(self.output))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "running": self.running,
            "elapsed": self.elapsed,
            "output": list(self.output),
            "individual_test_failed": self.individual_test_failed,
            "build_failed": self.build_failed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PackageState":
        """Deserialize from dictionary."""
        return cls(
            name=data["name"],
            total=data.get("total", 0),
            passed=data.get("passed", 0),
            failed=data.get("failed", 0),
            skipped=data.get("skipped", 0),
            running=data.get("running", 0),
            elapsed=data.get("elapsed", 0.0),
            output=list(data.get("output", [])),
            individual_test_failed=data.get("individual_test_failed", 0),
            build_failed=data.get("build_failed", False),
        )


@dataclass
class SummaryStats:
    """Totals across all packages.

    Attributes:
        total: Sum of package totals.
        passed: Sum of package passed counts.
        failed: Sum of package failed counts.
        skipped: Sum of package skipped counts.
        running: Sum of package running counts.
        has_failures: True if any package failed or had a displayable package failure.
    """

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    running: int = 0
    has_failures: bool = False

    @property
    def exit_code(self) -> int:
        """Process exit code implied by these totals."""
        return 1 if self.has_failures or self.failed > 0 else 0
