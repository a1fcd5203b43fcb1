"""Display configuration: rendering mode, slow-test threshold and duration parsing."""

import re
from dataclasses import dataclass
from enum import Enum

DEFAULT_THRESHOLD = 0.5

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class InvalidDurationError(ValueError):
    """Raised when a duration string cannot be parsed."""

    pass


class DisplayMode(Enum):
    """Rendering mode, selected once at startup."""

    INTERACTIVE = "interactive"
    SLOW = "slow"
    PLAIN = "plain"


@dataclass(frozen=True)
class DisplayConfig:
    """Configuration consumed by the display layer.

    Attributes:
        mode: Rendering mode.
        threshold: Slow-test threshold in seconds. Zero disables slow detection.
    """

    mode: DisplayMode = DisplayMode.INTERACTIVE
    threshold: float = DEFAULT_THRESHOLD

    @property
    def plain(self) -> bool:
        """True when output must be free of control sequences, color and glyphs."""
        return self.mode == DisplayMode.PLAIN

    def is_slow(self, elapsed: float) -> bool:
        """Return True if a test with this elapsed time counts as slow."""
        return self.threshold > 0 and elapsed > self.threshold


def parse_duration(value: str) -> float:
    """Parse a Go style duration string into seconds.

    Accepts one or more number+unit pairs, e.g. "500ms", "1.5s", "1m30s", "250us".
    A bare "0" is accepted as zero.

    Raises:
        InvalidDurationError: If the string is not a valid duration.
    """
    text = value.strip()
    if text in ("0", "+0", "-0"):
        return 0.0
    if text.startswith("-"):
        raise InvalidDurationError(f"Duration must not be negative: {value!r}")
    if text.startswith("+"):
        text = text[1:]
    if not text:
        raise InvalidDurationError(f"Invalid duration: {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise InvalidDurationError(f"Invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return total


def format_threshold(seconds: float) -> str:
    """Format a threshold the way Go prints durations ("500ms", "1.5s", "2m0s", "1h0m0s")."""
    if seconds <= 0:
        return "0s"
    if seconds < 1.0:
        return f"{seconds * 1000:g}ms"
    if seconds < 60.0:
        return f"{seconds:g}s"
    minutes, rest = divmod(seconds, 60.0)
    hours, minutes = divmod(int(minutes), 60)
    if hours:
        return f"{hours}h{minutes}m{rest:g}s"
    return f"{minutes}m{rest:g}s"


def format_duration(seconds: float) -> str:
    """Format an elapsed time for test lines: "NNNms" under a second, "N.NNNs" otherwise."""
    if seconds < 1.0:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.3f}s"
