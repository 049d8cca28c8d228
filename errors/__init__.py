"""Error and warning taxonomy for the MICROTUNE tuning engine.

Failures of the core are raised as subclasses of MicrotuneError and carry
enough context (offending value, expected bound, source line) for the front
end to print an actionable message.

Recoverable conditions (channel exhaustion, deviation clamping) are instances
of TuningWarning: they are returned next to a best-effort result and logged,
never raised by the core.
"""

from typing import Any, Optional


class MicrotuneError(Exception):
    """Base error for the MICROTUNE packages."""


class InvalidRatio(MicrotuneError, ValueError):
    """Raised when a ratio is non-positive, has a zero denominator or cannot be parsed."""

    def __init__(self, value: Any, reason: str = "ratio must be positive"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid ratio {value!r}: {reason}")


class UnsortedScale(MicrotuneError, ValueError):
    """Raised when scale pitches are not strictly increasing within one period."""

    def __init__(self, index: int, previous_cents: float, current_cents: float):
        self.index = index
        self.previous_cents = previous_cents
        self.current_cents = current_cents
        super().__init__(
            f"Scale degree {index} ({current_cents:.6f}c) does not lie above "
            f"degree {index - 1} ({previous_cents:.6f}c)"
        )


class UnmappedKey(MicrotuneError, KeyError):
    """Raised when a tuning query addresses a key without a scale degree."""

    def __init__(self, key: int):
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"Key {self.key} is not mapped to any scale degree"


class EmptyMapping(MicrotuneError, LookupError):
    """Raised when an inverse query runs on a tuning without mapped keys."""

    def __init__(self, message: str = "No keys are mapped in this tuning"):
        super().__init__(message)


class InvalidKeyboardMapping(MicrotuneError, ValueError):
    """Raised when a keyboard mapping is not injective or its reference key is unusable."""


class MalformedScalaFile(MicrotuneError, ValueError):
    """Raised when a .scl or .kbm text cannot be parsed."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.message = message
        self.line = line
        self.column = column
        location = ""
        if line is not None:
            location = f" (line {line}" + (f", column {column})" if column is not None else ")")
        super().__init__(f"{message}{location}")


class OutOfMtsRange(MicrotuneError, ValueError):
    """Raised when a pitch cannot be represented in the target MTS fixed-point format."""

    def __init__(self, value: float, lower: float, upper: float, unit: str = "semitones",
                 key: Optional[int] = None):
        self.value = value
        self.lower = lower
        self.upper = upper
        self.unit = unit
        self.key = key
        prefix = f"Key {key}: " if key is not None else ""
        super().__init__(
            f"{prefix}{value:.6f} {unit} lies outside the representable range "
            f"[{lower:g}, {upper:g}] {unit}"
        )


class TuningWarning(UserWarning):
    """Base class of the recoverable conditions reported next to a best-effort result."""


class ChannelExhausted(TuningWarning):
    """More distinct deviations are needed than channels are available."""

    def __init__(self, key: Any, deviation: float, num_channels: int):
        self.key = key
        self.deviation = deviation
        self.num_channels = num_channels
        super().__init__(
            f"No free channel for key {key!r} ({deviation:+.3f}c): "
            f"all {num_channels} channels hold other deviations"
        )


class DeviationClamped(TuningWarning):
    """A requested deviation exceeded the pitch-bend range and was clamped."""

    def __init__(self, key: Any, requested: float, applied: float):
        self.key = key
        self.requested = requested
        self.applied = applied
        super().__init__(
            f"Deviation {requested:+.3f}c of key {key!r} exceeds the pitch-bend range; "
            f"clamped to {applied:+.3f}c"
        )
