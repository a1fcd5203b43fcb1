"""Periodic progress renderer running beside the stream consumer.

The ticker is an explicitly cancellable background thread that asks the
display to render the latest package snapshot at a fixed interval,
independent of how fast events arrive. It only reads through the state
store's snapshot accessors.

Lifecycle:

    IDLE -> RUNNING -> CANCELLING -> DRAINED

stop() signals cancellation and waits for the thread to finish its
in-flight render, so callers can read final state without racing a tick.
"""

import logging
import threading
from enum import Enum

from .display import Display
from .processor import EventProcessor

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_INTERVAL = 0.1

# Extra time granted to an in-flight render after cancellation
DEFAULT_GRACE_PERIOD = 0.05


class TickerState(Enum):
    """Lifecycle state of the progress ticker."""

    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    DRAINED = "drained"


class ProgressTicker:
    """Renders aggregate progress on a fixed interval until stopped.

    Args:
        display: Display that receives show_progress() calls.
        processor: State store to snapshot on every tick.
        start_time: time.monotonic() value at coordinator start.
        interval: Seconds between renders.
        grace_period: Extra seconds stop() waits beyond one interval.
    """

    def __init__(
        self,
        display: Display,
        processor: EventProcessor,
        start_time: float,
        interval: float = DEFAULT_UPDATE_INTERVAL,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ) -> None:
        self._display = display
        self._processor = processor
        self._start_time = start_time
        self._interval = interval
        self._grace_period = grace_period
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._state = TickerState.IDLE
        self._lock = threading.Lock()
        self.ticks = 0

    @property
    def state(self) -> TickerState:
        """Current lifecycle state. Thread-safe."""
        with self._lock:
            return self._state

    def start(self) -> None:
        """Start the background thread.

        Raises:
            RuntimeError: If the ticker was already started.
        """
        with self._lock:
            if self._state != TickerState.IDLE:
                raise RuntimeError(f"Ticker cannot start from state {self._state.value}")
            self._state = TickerState.RUNNING
            self._thread = threading.Thread(target=self._run, name="gotestshow-progress", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Cancel the ticker and wait for any in-flight render to finish.

        Cancellation is observed within one interval. Safe to call more than
        once and before start().
        """
        with self._lock:
            if self._state in (TickerState.IDLE, TickerState.DRAINED):
                self._state = TickerState.DRAINED
                return
            self._state = TickerState.CANCELLING
            thread = self._thread

        self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._interval + self._grace_period)
            if thread.is_alive():
                logger.warning("Progress ticker did not stop within %.2fs", self._interval + self._grace_period)

        with self._lock:
            self._state = TickerState.DRAINED

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self._tick()

    def _tick(self) -> None:
        try:
            packages = self._processor.get_packages()
            has_started = self._processor.has_tests_started()
            if self._stop_event.is_set():
                return
            self._display.show_progress(packages, has_started, self._start_time)
            self.ticks += 1
        except Exception as e:
            logger.error(f"Error rendering progress: {e}", exc_info=True)
