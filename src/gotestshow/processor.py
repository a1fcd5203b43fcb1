"""State store that folds test events into per-test and per-package state.

The store owns two maps: results keyed by "package/test" and package states
keyed by package name. All mutation goes through process_event() and all
reads go through the snapshot accessors, which hand out copies so that the
periodic renderer can never observe a half-applied event.
"""

import logging
import threading
from typing import Protocol, runtime_checkable

from . import rules
from .models import (
    BUILD_SENTINEL,
    PACKAGE_SENTINEL,
    PackageState,
    TestAction,
    TestEvent,
    TestResult,
    result_key,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class EventProcessor(Protocol):
    """Protocol for components that reduce events into aggregate state."""

    def process_event(self, event: TestEvent) -> None:
        """Fold one event into the state."""
        ...

    def get_results(self) -> dict[str, TestResult]:
        """Snapshot of every test result, keyed by "package/test"."""
        ...

    def get_packages(self) -> dict[str, PackageState]:
        """Snapshot of every package state, keyed by package name."""
        ...

    def get_result(self, package: str, test: str) -> TestResult | None:
        """Copy of a single result, or None if unknown."""
        ...

    def get_package(self, name: str) -> PackageState | None:
        """Copy of a single package state, or None if unknown."""
        ...

    def has_tests_started(self) -> bool:
        """True once any test has been run."""
        ...


class DefaultEventProcessor:
    """Thread-safe in-memory implementation of EventProcessor.

    A single lock guards every mutation and every snapshot copy, so readers
    see the state either fully before or fully after an event.

    Args:
        relative_locations: Prefix extracted file locations with the relative package path.
    """

    def __init__(self, relative_locations: bool = False) -> None:
        self._results: dict[str, TestResult] = {}
        self._packages: dict[str, PackageState] = {}
        self._has_tests_started = False
        self._relative_locations = relative_locations
        self._lock = threading.Lock()

    def process_event(self, event: TestEvent) -> None:
        """Fold one event into the state. Thread-safe.

        Args:
            event: Decoded event from the stream.
        """
        with self._lock:
            if event.action in (TestAction.BUILD_OUTPUT, TestAction.BUILD_FAIL):
                self._process_build_event(event)
                return

            if event.package and event.package not in self._packages:
                self._packages[event.package] = PackageState(name=event.package)

            if event.test:
                if not event.package:
                    logger.debug("Ignoring test event without package: %s %s", event.action.value, event.test)
                    return
                self._process_test_event(event)
            elif event.package:
                self._process_package_event(event)

    def get_results(self) -> dict[str, TestResult]:
        """Return a snapshot of all test results. Thread-safe."""
        with self._lock:
            return {key: result.copy() for key, result in self._results.items()}

    def get_packages(self) -> dict[str, PackageState]:
        """Return a snapshot of all package states. Thread-safe."""
        with self._lock:
            return {name: pkg.copy() for name, pkg in self._packages.items()}

    def get_result(self, package: str, test: str) -> TestResult | None:
        """Return a copy of a single result, or None if unknown. Thread-safe."""
        with self._lock:
            result = self._results.get(result_key(package, test))
            return result.copy() if result is not None else None

    def get_package(self, name: str) -> PackageState | None:
        """Return a copy of a single package state, or None if unknown. Thread-safe."""
        with self._lock:
            pkg = self._packages.get(name)
            return pkg.copy() if pkg is not None else None

    def has_tests_started(self) -> bool:
        """Return True once any test has been run. Thread-safe."""
        with self._lock:
            return self._has_tests_started

    def _extract_location(self, output: str, package: str) -> str:
        if self._relative_locations:
            return rules.extract_file_location_with_package(output, package)
        return rules.extract_file_location(output)

    def _process_test_event(self, event: TestEvent) -> None:
        result = self._results.get(event.key)
        if result is None:
            result = TestResult(package=event.package, test=event.test)
            self._results[event.key] = result
        pkg = self._packages[event.package]

        if rules.is_subtest(event.test):
            parent = self._results.get(result_key(event.package, rules.parent_test_name(event.test)))
            if parent is not None:
                parent.has_subtest = True

        if event.action == TestAction.RUN:
            if not result.started:
                result.started = True
                pkg.running += 1
                pkg.total += 1
            self._has_tests_started = True

        elif event.action == TestAction.OUTPUT:
            result.output.append(event.output)
            if not result.location:
                result.location = self._extract_location(event.output, event.package)

        elif event.action.is_completion:
            self._complete_test(event, result, pkg)

    def _complete_test(self, event: TestEvent, result: TestResult, pkg: PackageState) -> None:
        already_completed = result.completed

        if event.action == TestAction.PASS:
            result.passed = True
        elif event.action == TestAction.FAIL:
            result.failed = True
        else:
            result.skipped = True
        result.elapsed = event.elapsed

        if already_completed:
            logger.debug("Duplicate completion for %s ignored in totals", event.key)
            return

        if result.started:
            pkg.running -= 1
        else:
            # Completed without a run event; count it as started
            result.started = True
            pkg.total += 1
            self._has_tests_started = True

        if rules.is_parent_with_subtests(event.test, event.package, self._results.keys()):
            # Only leaf subtests count toward the package
            pkg.total -= 1
            return

        if event.action == TestAction.PASS:
            pkg.passed += 1
        elif event.action == TestAction.FAIL:
            pkg.failed += 1
            pkg.individual_test_failed += 1
        else:
            pkg.skipped += 1

    def _process_package_event(self, event: TestEvent) -> None:
        pkg = self._packages[event.package]

        if event.action == TestAction.OUTPUT:
            pkg.output.append(event.output)

        elif event.action == TestAction.PASS:
            pkg.elapsed = event.elapsed

        elif event.action == TestAction.FAIL:
            pkg.elapsed = event.elapsed
            sentinel_key = result_key(event.package, PACKAGE_SENTINEL)
            self._results[sentinel_key] = TestResult(
                package=event.package,
                test=PACKAGE_SENTINEL,
                failed=True,
                elapsed=event.elapsed,
                output=list(pkg.output),
            )
            if pkg.build_failed:
                # Already counted by the build-fail event
                return
            if rules.should_display_package_failure(pkg):
                pkg.total += 1
                pkg.failed += 1

    def _process_build_event(self, event: TestEvent) -> None:
        if not event.import_path:
            logger.debug("Ignoring %s event without ImportPath", event.action.value)
            return

        package_name = rules.build_package_name(event.import_path)

        pkg = self._packages.get(package_name)
        if pkg is None:
            pkg = PackageState(name=package_name)
            self._packages[package_name] = pkg

        if event.action == TestAction.BUILD_OUTPUT:
            pkg.output.append(event.output)

            key = result_key(package_name, BUILD_SENTINEL)
            result = self._results.get(key)
            if result is None:
                result = TestResult(package=package_name, test=BUILD_SENTINEL, failed=True)
                self._results[key] = result

            result.output.append(event.output)
            if not result.location:
                result.location = self._extract_location(event.output, package_name)

        elif event.action == TestAction.BUILD_FAIL:
            if pkg.build_failed:
                logger.debug("Duplicate build-fail for %s ignored in totals", package_name)
                return
            pkg.build_failed = True
            pkg.failed += 1
            pkg.total += 1
