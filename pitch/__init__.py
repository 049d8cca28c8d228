"""Ratio and pitch algebra for microtonal tuning systems.

This module provides the two value types every other MICROTUNE package is built on:
frequency ratios (exact or logarithmic) and pitches (logarithmic offsets from a
reference frequency).

Ratio:
- Exact rational form using fractions.Fraction, reduced by gcd on every operation
- Logarithmic form (cents) for irrational steps such as equal divisions
- Parsing of the usual notations: 3/2, 5, 1.5, 701.955c, 1:12:2
- Multiplication, division, integer powers and reduction into a period

Pitch:
- Immutable offset in cents with octave/semitone views
- Addition and subtraction of offsets (ratio multiplication and division)
- Conversion to and from absolute frequencies given a reference

Comparison:
- Equality and ordering compare cents within consts.CENTS_EPSILON, so an
  irrational 1200-cent step and the exact 2/1 compare equal. Because the
  tolerance makes equality non-transitive at the edges, neither type is hashable.
"""

import functools
import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Optional, Union

import consts
from errors import InvalidRatio


def _fraction_cents(fraction: Fraction) -> float:
    """Cents of a positive fraction, computed on numerator and denominator separately."""
    return consts.CENTS_PER_OCTAVE * (math.log2(fraction.numerator) - math.log2(fraction.denominator))


@functools.total_ordering
class Ratio:
    """A positive frequency multiplier, exact (numerator/denominator) or logarithmic (cents)."""

    __slots__ = ("_fraction", "_cents")
    __hash__ = None

    def __init__(self, numerator: Union[int, Fraction] = 1, denominator: Union[int, Fraction] = 1):
        try:
            fraction = Fraction(numerator, denominator)
        except ZeroDivisionError:
            raise InvalidRatio(f"{numerator}/{denominator}", "zero denominator")
        except TypeError:
            raise InvalidRatio(f"{numerator}/{denominator}", "numerator and denominator must be integers")
        if fraction <= 0:
            raise InvalidRatio(f"{numerator}/{denominator}")
        self._fraction = fraction
        self._cents = _fraction_cents(fraction)

    # --- Construction ---

    @classmethod
    def from_fraction(cls, fraction: Fraction) -> "Ratio":
        return cls(fraction.numerator, fraction.denominator)

    @classmethod
    def from_cents(cls, cents: float) -> "Ratio":
        """Logarithmic ratio; cents are stored as given."""
        try:
            cents = float(cents)
        except (TypeError, ValueError):
            raise InvalidRatio(cents, "cents must be a number")
        if not math.isfinite(cents):
            raise InvalidRatio(cents, "cents must be finite")
        ratio = cls.__new__(cls)
        ratio._fraction = None
        ratio._cents = cents
        return ratio

    @classmethod
    def from_octaves(cls, octaves: float) -> "Ratio":
        return cls.from_cents(float(octaves) * consts.CENTS_PER_OCTAVE)

    @classmethod
    def from_semitones(cls, semitones: float) -> "Ratio":
        return cls.from_cents(float(semitones) * consts.CENTS_PER_SEMITONE)

    @classmethod
    def from_float(cls, value: float) -> "Ratio":
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InvalidRatio(value, "not a number")
        if not math.isfinite(value) or value <= 0:
            raise InvalidRatio(value)
        return cls.from_cents(consts.CENTS_PER_OCTAVE * math.log2(value))

    @classmethod
    def between_frequencies(cls, from_hz: float, to_hz: float) -> "Ratio":
        """The ratio that takes from_hz to to_hz."""
        if from_hz <= 0 or to_hz <= 0:
            raise InvalidRatio(f"{to_hz}/{from_hz}", "frequencies must be positive")
        return cls.from_float(to_hz / from_hz)

    @classmethod
    def parse(cls, text: str) -> "Ratio":
        """Parse 3/2, 5, 1.5, 701.955c or STEPS:DIVISIONS[:INTERVAL] (e.g. 1:12:2)."""
        s = str(text).strip()
        if not s:
            raise InvalidRatio(text, "empty ratio")
        try:
            if s.lower().endswith("c"):
                return cls.from_cents(float(s[:-1]))
            if ":" in s:
                parts = s.split(":")
                if len(parts) not in (2, 3):
                    raise InvalidRatio(text, "expected STEPS:DIVISIONS[:INTERVAL]")
                steps = float(parts[0])
                divisions = float(parts[1])
                if divisions == 0:
                    raise InvalidRatio(text, "zero divisions")
                interval = cls.parse(parts[2]) if len(parts) == 3 else cls(2)
                return cls.from_cents(interval.cents * steps / divisions)
            if "/" in s:
                num_str, den_str = s.split("/", 1)
                try:
                    return cls(int(num_str), int(den_str))
                except ValueError:
                    den = float(den_str)
                    if den == 0:
                        raise InvalidRatio(text, "zero denominator")
                    return cls.from_float(float(num_str) / den)
            try:
                return cls(int(s))
            except ValueError:
                return cls.from_float(float(s))
        except ValueError as e:
            if isinstance(e, InvalidRatio):
                raise
            raise InvalidRatio(text, "unrecognised ratio syntax")

    # --- Views ---

    @property
    def is_exact(self) -> bool:
        return self._fraction is not None

    @property
    def fraction(self) -> Optional[Fraction]:
        return self._fraction

    @property
    def numerator(self) -> Optional[int]:
        return self._fraction.numerator if self._fraction is not None else None

    @property
    def denominator(self) -> Optional[int]:
        return self._fraction.denominator if self._fraction is not None else None

    @property
    def cents(self) -> float:
        return self._cents

    @property
    def octaves(self) -> float:
        return self._cents / consts.CENTS_PER_OCTAVE

    @property
    def semitones(self) -> float:
        return self._cents / consts.CENTS_PER_SEMITONE

    @property
    def value(self) -> float:
        if self._fraction is not None:
            return float(self._fraction)
        return cents_to_ratio(self._cents)

    def __float__(self) -> float:
        return self.value

    # --- Arithmetic ---

    def __mul__(self, other: "Ratio") -> "Ratio":
        if not isinstance(other, Ratio):
            return NotImplemented
        if self._fraction is not None and other._fraction is not None:
            return Ratio.from_fraction(self._fraction * other._fraction)
        return Ratio.from_cents(self._cents + other._cents)

    def __truediv__(self, other: "Ratio") -> "Ratio":
        if not isinstance(other, Ratio):
            return NotImplemented
        if self._fraction is not None and other._fraction is not None:
            return Ratio.from_fraction(self._fraction / other._fraction)
        return Ratio.from_cents(self._cents - other._cents)

    def __pow__(self, exponent: int) -> "Ratio":
        if not isinstance(exponent, int):
            return NotImplemented
        if self._fraction is not None:
            return Ratio.from_fraction(self._fraction ** exponent)
        return Ratio.from_cents(self._cents * exponent)

    def inverse(self) -> "Ratio":
        return Ratio(1) / self

    def reduced(self, period: Optional["Ratio"] = None) -> "Ratio":
        """Reduce into [1, period); the period defaults to the octave."""
        period = period if period is not None else Ratio.from_fraction(consts.DEFAULT_OCTAVE)
        if period.cents <= consts.CENTS_EPSILON:
            raise InvalidRatio(str(period), "reduction period must be larger than 1/1")

        if self._fraction is not None and period._fraction is not None:
            value = self._fraction
            while value >= period._fraction:
                value /= period._fraction
            while value < 1:
                value *= period._fraction
            return Ratio.from_fraction(value)

        k = math.floor(self._cents / period.cents)
        result = self / period ** k
        if result.cents >= period.cents - consts.CENTS_EPSILON:
            result = result / period
        return result

    # --- Comparison ---

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ratio):
            return NotImplemented
        return abs(self._cents - other._cents) <= consts.CENTS_EPSILON

    def __lt__(self, other: "Ratio") -> bool:
        if not isinstance(other, Ratio):
            return NotImplemented
        return self._cents < other._cents - consts.CENTS_EPSILON

    def __repr__(self) -> str:
        if self._fraction is not None:
            return f"Ratio({self._fraction.numerator}, {self._fraction.denominator})"
        return f"Ratio.from_cents({self._cents!r})"

    def __str__(self) -> str:
        if self._fraction is not None:
            return f"{self._fraction.numerator}/{self._fraction.denominator}"
        return f"{self._cents:.3f}c"


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Pitch:
    """Logarithmic offset, in cents, from a reference frequency."""

    cents: float = 0.0

    @classmethod
    def from_ratio(cls, ratio: Union[Ratio, consts.Numeric, str]) -> "Pitch":
        return cls(as_ratio(ratio).cents)

    @classmethod
    def from_octaves(cls, octaves: float) -> "Pitch":
        return cls(float(octaves) * consts.CENTS_PER_OCTAVE)

    @classmethod
    def from_semitones(cls, semitones: float) -> "Pitch":
        return cls(float(semitones) * consts.CENTS_PER_SEMITONE)

    @classmethod
    def from_hz(cls, hz: float, reference_hz: float = consts.DEFAULT_DIAPASON) -> "Pitch":
        return cls(Ratio.between_frequencies(reference_hz, hz).cents)

    @property
    def octaves(self) -> float:
        return self.cents / consts.CENTS_PER_OCTAVE

    @property
    def semitones(self) -> float:
        return self.cents / consts.CENTS_PER_SEMITONE

    def to_ratio(self) -> Ratio:
        return Ratio.from_cents(self.cents)

    def to_hz(self, reference_hz: float = consts.DEFAULT_DIAPASON) -> float:
        return apply_cents(reference_hz, self.cents)

    def __add__(self, other: "Pitch") -> "Pitch":
        if not isinstance(other, Pitch):
            return NotImplemented
        return Pitch(self.cents + other.cents)

    def __sub__(self, other: "Pitch") -> "Pitch":
        if not isinstance(other, Pitch):
            return NotImplemented
        return Pitch(self.cents - other.cents)

    def __neg__(self) -> "Pitch":
        return Pitch(-self.cents)

    def __mul__(self, factor: int) -> "Pitch":
        if not isinstance(factor, int):
            return NotImplemented
        return Pitch(self.cents * factor)

    __rmul__ = __mul__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pitch):
            return NotImplemented
        return abs(self.cents - other.cents) <= consts.CENTS_EPSILON

    def __lt__(self, other: "Pitch") -> bool:
        if not isinstance(other, Pitch):
            return NotImplemented
        return self.cents < other.cents - consts.CENTS_EPSILON

    def __str__(self) -> str:
        return f"{self.cents:+.3f}c"


def as_ratio(value: Union[Ratio, "Pitch", consts.Numeric, str]) -> Ratio:
    """Coerce ratios, pitches, numbers and ratio strings into a Ratio."""
    if isinstance(value, Ratio):
        return value
    if isinstance(value, Pitch):
        return value.to_ratio()
    if isinstance(value, bool):
        raise InvalidRatio(value, "not a ratio")
    if isinstance(value, (int, Fraction)):
        return Ratio(value)
    if isinstance(value, float):
        return Ratio.from_float(value)
    if isinstance(value, str):
        return Ratio.parse(value)
    raise InvalidRatio(value, "not a ratio")


def ratio_to_cents(ratio: Union[Ratio, consts.Numeric, str]) -> float:
    """Convert ratio to cents using logarithmic formula."""
    return as_ratio(ratio).cents


def cents_to_ratio(cents: float) -> float:
    """Convert cents to a float ratio."""
    return 2.0 ** (float(cents) / consts.CENTS_PER_OCTAVE)


def apply_cents(freq_hz: float, cents: float) -> float:
    """Apply cents offset to a frequency."""
    return float(freq_hz) * cents_to_ratio(cents)


def frequency_to_cents(freq_hz: float, reference_hz: float = consts.DEFAULT_DIAPASON) -> float:
    """Cents of freq_hz above reference_hz."""
    return Ratio.between_frequencies(reference_hz, freq_hz).cents
