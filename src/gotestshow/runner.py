"""Streaming coordinator connecting the event stream, state store and display.

Coordinates a single run by:
1. Hiding the cursor and starting the periodic ProgressTicker
2. Reading the input one line at a time and decoding each into a TestEvent
3. Folding each event into the state store, then rendering completed tests
   and displayable package/build failures immediately
4. Stopping the ticker on end of stream, bad input, read failure or interrupt
5. Rendering the final summary from fresh snapshots and restoring the cursor

Run lifecycle:

    IDLE -> RUNNING -> CANCELLING -> DRAINED -> SUMMARIZED
"""

import logging
import threading
import time
from enum import Enum
from typing import IO, Any

from . import rules
from .display import Display
from .models import BUILD_SENTINEL, EventDecodeError, TestAction, TestEvent
from .processor import EventProcessor
from .ticker import DEFAULT_GRACE_PERIOD, DEFAULT_UPDATE_INTERVAL, ProgressTicker

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Interrupted by user (Ctrl-C)"
NOT_JSON_MESSAGE = "Error: Input is not in JSON format.\ngotestshow expects JSON output from 'go test -json'."


class NonConformingInputError(Exception):
    """Raised when the stream is plainly not `go test -json` output."""

    pass


class StreamReadError(Exception):
    """Raised when reading the input stream fails for a reason other than end of stream."""

    pass


class RunnerState(Enum):
    """Lifecycle state of a run."""

    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    DRAINED = "drained"
    SUMMARIZED = "summarized"


class Runner:
    """Consumes an event stream and drives incremental and periodic rendering.

    Args:
        processor: State store that events are folded into.
        display: Display that renders results and the summary.
        input_stream: Text stream of newline-delimited JSON records.
        update_interval: Seconds between periodic progress renders.
        grace_period: Extra seconds granted to an in-flight render when stopping.
    """

    def __init__(
        self,
        processor: EventProcessor,
        display: Display,
        input_stream: IO[str],
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ) -> None:
        self._processor = processor
        self._display = display
        self._input = input_stream
        self._update_interval = update_interval
        self._grace_period = grace_period
        self._interrupted = False
        self._reading = False
        self._state = RunnerState.IDLE
        # Reentrant: handle_signal may run while the main thread holds it
        self._lock = threading.RLock()
        self.malformed_lines = 0
        self.events_processed = 0

    @property
    def state(self) -> RunnerState:
        """Current lifecycle state. Thread-safe."""
        with self._lock:
            return self._state

    @property
    def interrupted(self) -> bool:
        """True if the run ended through interruption. Thread-safe."""
        with self._lock:
            return self._interrupted

    def interrupt(self) -> None:
        """Request interruption. Thread-safe.

        Observed before the next event is folded; events read after this call
        are not applied.
        """
        with self._lock:
            self._interrupted = True

    def handle_signal(self, signum: int, frame: Any) -> None:
        """Signal handler requesting interruption.

        Raises KeyboardInterrupt only while the consumer is blocked reading the
        stream. A signal landing mid-fold lets that event apply completely and
        the loop stops before the next one.
        """
        self.interrupt()
        if self._reading:
            raise KeyboardInterrupt()

    def run(self) -> int:
        """Execute the run and return the process exit code.

        Returns:
            0 if every test passed, 1 on test/package failures, non-conforming
            input or a stream read failure.
        """
        start_time = time.monotonic()
        self._set_state(RunnerState.RUNNING)
        ticker = ProgressTicker(
            self._display,
            self._processor,
            start_time,
            interval=self._update_interval,
            grace_period=self._grace_period,
        )

        self._display.show_cursor(False)
        try:
            ticker.start()
            try:
                self._consume()
            except KeyboardInterrupt:
                logger.info("Interrupted while reading input")
                self.interrupt()
            except NonConformingInputError:
                self._drain(ticker)
                self._display.show_notice(NOT_JSON_MESSAGE)
                self._display.show_help()
                return 1
            except StreamReadError as e:
                logger.error("Error reading input: %s", e)
                self._drain(ticker)
                self._display.show_notice(f"Error reading input: {e}")
                return 1

            self._drain(ticker)
            if self.malformed_lines:
                logger.info("Skipped %d malformed line(s)", self.malformed_lines)
            if self.interrupted:
                self._display.show_notice(INTERRUPTED_MESSAGE)

            packages = self._processor.get_packages()
            results = self._processor.get_results()
            exit_code = self._display.show_final_results(packages, results, start_time)
            self._set_state(RunnerState.SUMMARIZED)
            return exit_code
        finally:
            ticker.stop()
            self._display.show_cursor(True)

    def _set_state(self, state: RunnerState) -> None:
        with self._lock:
            self._state = state

    def _drain(self, ticker: ProgressTicker) -> None:
        """Stop the ticker, wait for its last render and clear the progress line."""
        self._set_state(RunnerState.CANCELLING)
        ticker.stop()
        self._set_state(RunnerState.DRAINED)
        self._display.clear_line()

    def _consume(self) -> None:
        """Read and fold events until end of stream or interruption.

        Raises:
            NonConformingInputError: If the first non-empty line is not a JSON record.
            StreamReadError: If the stream cannot be read.
        """
        seen_content = False
        while not self.interrupted:
            self._reading = True
            try:
                line = self._input.readline()
            except (OSError, ValueError) as e:
                raise StreamReadError(str(e)) from e
            finally:
                self._reading = False
            if not line:
                return
            if self.interrupted:
                return

            if not line.strip():
                continue
            first_line = not seen_content
            seen_content = True

            try:
                event = TestEvent.from_json(line)
            except EventDecodeError as e:
                if first_line and "{" not in line:
                    raise NonConformingInputError(line.strip()[:80]) from e
                self.malformed_lines += 1
                logger.debug("Skipping malformed line: %s", e)
                continue

            self._processor.process_event(event)
            self.events_processed += 1
            self._render_event(event)

    def _render_event(self, event: TestEvent) -> None:
        """Render whatever the event warrants immediately after it is folded."""
        if event.test and event.action.is_completion:
            result = self._processor.get_result(event.package, event.test)
            if result is not None:
                self._display.show_test_result(result, event.action != TestAction.FAIL)

        elif not event.test and event.package and event.action == TestAction.FAIL:
            pkg = self._processor.get_package(event.package)
            if pkg is None or not rules.should_display_package_failure(pkg):
                return
            if pkg.build_failed and self._processor.get_result(event.package, BUILD_SENTINEL) is not None:
                # Already rendered as a build failure with the compiler output
                return
            self._display.show_package_failure(event.package, pkg.output)

        elif event.action == TestAction.BUILD_FAIL and event.import_path:
            package_name = rules.build_package_name(event.import_path)
            result = self._processor.get_result(package_name, BUILD_SENTINEL)
            if result is not None:
                self._display.show_test_result(result, False)

