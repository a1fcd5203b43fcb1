"""Unit tests for the event stream data models.

Tests cover:
- TestAction values and completion classification
- TestEvent decoding from `go test -json` lines, including malformed input
- TestEvent / TestResult / PackageState dict serialization
- Snapshot copies do not share output lists
- SummaryStats exit code
"""

import json
from datetime import timezone

import pytest

from gotestshow.models import (
    BUILD_SENTINEL,
    PACKAGE_SENTINEL,
    EventDecodeError,
    PackageState,
    SummaryStats,
    TestAction,
    TestEvent,
    TestResult,
    result_key,
)


class TestTestAction:
    """Tests for the TestAction enum."""

    def test_wire_values(self) -> None:
        """Enum values should match the strings emitted by go test -json."""
        assert TestAction.BUILD_OUTPUT.value == "build-output"
        assert TestAction.BUILD_FAIL.value == "build-fail"
        assert TestAction("cont") == TestAction.CONT
        assert len(TestAction) == 11

    def test_completion_actions(self) -> None:
        """Only pass, fail and skip complete a test."""
        completions = {a for a in TestAction if a.is_completion}
        assert completions == {TestAction.PASS, TestAction.FAIL, TestAction.SKIP}


class TestTestEventDecoding:
    """Tests for TestEvent.from_json / from_dict."""

    def test_full_record(self) -> None:
        """Every field of a record should be decoded."""
        line = json.dumps(
            {
                "Time": "2024-03-01T10:20:30.123456789Z",
                "Action": "fail",
                "Package": "example.com/m/pkg",
                "Test": "TestX",
                "Elapsed": 0.25,
            }
        )
        event = TestEvent.from_json(line)
        assert event.action == TestAction.FAIL
        assert event.package == "example.com/m/pkg"
        assert event.test == "TestX"
        assert event.elapsed == 0.25
        assert event.output == ""
        assert event.time is not None
        assert event.time.tzinfo is not None
        assert event.time.utcoffset() == timezone.utc.utcoffset(None)
        assert event.time.microsecond == 123456

    def test_short_fraction_time(self) -> None:
        """Go trims trailing zeros from fractional seconds."""
        event = TestEvent.from_json('{"Time":"2024-03-01T10:20:30.5+02:00","Action":"run"}')
        assert event.time is not None
        assert event.time.microsecond == 500000

    def test_minimal_record(self) -> None:
        """Only Action is required."""
        event = TestEvent.from_json('{"Action":"start"}')
        assert event.action == TestAction.START
        assert event.package == ""
        assert event.test == ""
        assert event.time is None
        assert event.elapsed == 0.0

    def test_integer_elapsed(self) -> None:
        """Integer Elapsed values should be accepted as floats."""
        event = TestEvent.from_json('{"Action":"pass","Package":"p","Elapsed":2}')
        assert event.elapsed == 2.0
        assert isinstance(event.elapsed, float)

    def test_build_output_import_path(self) -> None:
        """Build-phase events carry ImportPath rather than Package."""
        event = TestEvent.from_json('{"ImportPath":"example.com/m/bad [example.com/m/bad.test]","Action":"build-output","Output":"# bad\\n"}')
        assert event.action == TestAction.BUILD_OUTPUT
        assert event.import_path == "example.com/m/bad [example.com/m/bad.test]"
        assert event.output == "# bad\n"
        assert event.package == ""

    def test_bytes_input(self) -> None:
        """Byte lines should decode as well as text lines."""
        event = TestEvent.from_json(b'{"Action":"output","Output":"hi\\n"}')
        assert event.output == "hi\n"

    @pytest.mark.parametrize(
        "line",
        [
            "not json at all",
            "{",
            "[1, 2, 3]",
            '{"Action":"explode"}',
            '{"Package":"p"}',
            '{"Action":"pass","Elapsed":"fast"}',
            '{"Action":"pass","Elapsed":true}',
            '{"Action":"run","Test":42}',
            '{"Action":"run","Time":"yesterday"}',
        ],
    )
    def test_malformed_lines_raise(self, line: str) -> None:
        """Malformed records should raise EventDecodeError."""
        with pytest.raises(EventDecodeError):
            TestEvent.from_json(line)

    def test_decode_error_is_value_error(self) -> None:
        """EventDecodeError should be catchable as ValueError."""
        with pytest.raises(ValueError):
            TestEvent.from_json("garbage")

    def test_key(self) -> None:
        """Event key should match the result key of its (package, test)."""
        event = TestEvent(action=TestAction.RUN, package="a/b", test="TestC/sub")
        assert event.key == "a/b/TestC/sub"
        assert event.key == result_key("a/b", "TestC/sub")

    def test_event_is_immutable(self) -> None:
        """Events are facts and cannot be modified."""
        event = TestEvent(action=TestAction.RUN, package="p", test="T")
        with pytest.raises(AttributeError):
            event.test = "Other"  # type: ignore[misc]

    def test_to_dict_uses_wire_names(self) -> None:
        """to_dict should produce the wire shape and omit empty fields."""
        event = TestEvent(action=TestAction.OUTPUT, package="p", test="T", output="x\n")
        assert event.to_dict() == {"Action": "output", "Package": "p", "Test": "T", "Output": "x\n"}
        assert TestEvent.from_dict(event.to_dict()) == event


class TestTestResult:
    """Tests for TestResult."""

    def test_defaults(self) -> None:
        """New results are neither started nor completed."""
        result = TestResult(package="p", test="T")
        assert not result.started
        assert not result.completed
        assert result.output == []
        assert result.location == ""
        assert not result.has_subtest

    def test_completed(self) -> None:
        """Any completion flag marks the result completed."""
        assert TestResult(package="p", test="T", passed=True).completed
        assert TestResult(package="p", test="T", failed=True).completed
        assert TestResult(package="p", test="T", skipped=True).completed

    def test_copy_does_not_share_output(self) -> None:
        """Mutating a copy's output must not affect the original."""
        result = TestResult(package="p", test="T", output=["a\n"])
        clone = result.copy()
        clone.output.append("b\n")
        clone.failed = True
        assert result.output == ["a\n"]
        assert not result.failed

    def test_dict_round_trip(self) -> None:
        """to_dict / from_dict should preserve every field."""
        result = TestResult(
            package="p",
            test=BUILD_SENTINEL,
            failed=True,
            elapsed=1.5,
            output=["x.go:1: boom\n"],
            started=True,
            location="x.go:1",
            has_subtest=True,
        )
        assert TestResult.from_dict(result.to_dict()) == result

    def test_sentinel_key(self) -> None:
        """Sentinel results are keyed like any other test."""
        assert TestResult(package="p", test=PACKAGE_SENTINEL).key == "p/[PACKAGE]"


class TestPackageState:
    """Tests for PackageState."""

    def test_copy_does_not_share_output(self) -> None:
        """Snapshots must be independent of the live state."""
        pkg = PackageState(name="p", total=1, output=["FAIL\n"])
        clone = pkg.copy()
        clone.output.clear()
        clone.total = 5
        assert pkg.output == ["FAIL\n"]
        assert pkg.total == 1

    def test_dict_round_trip(self) -> None:
        """to_dict / from_dict should preserve every field."""
        pkg = PackageState(name="p", total=3, passed=1, failed=1, skipped=1, elapsed=0.3, output=["o\n"], individual_test_failed=1)
        assert PackageState.from_dict(pkg.to_dict()) == pkg


class TestSummaryStats:
    """Tests for SummaryStats.exit_code."""

    def test_clean_run(self) -> None:
        """No failures means exit code 0."""
        assert SummaryStats(total=3, passed=3).exit_code == 0

    def test_failed_count(self) -> None:
        """Any failed test means exit code 1."""
        assert SummaryStats(total=3, passed=2, failed=1).exit_code == 1

    def test_package_failure_flag(self) -> None:
        """A package-level failure alone means exit code 1."""
        assert SummaryStats(has_failures=True).exit_code == 1
