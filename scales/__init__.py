"""Scale model: periodic sequences of pitches built from one construction rule.

A scale lists the pitches of degrees 0 .. size-1 above its root (degree 0 is
always the unison) and a period after which the pattern repeats. Every variant
answers the same question, "which ratio sits at degree n", for all integers n:

    ratio_of(n + size) == ratio_of(n) * period

Variants (tagged by ScaleKind):
- EqualDivision: k equal logarithmic steps of a period (12-EDO, 31-EDO, Bohlen-Pierce)
- ExplicitScale: arbitrary list of ratios or cents (Scala files, custom ratio lists)
- Rank2Temperament: stacked generators reduced into the period (meantone, porcupine)
- HarmonicSeries: consecutive members of the harmonic or subharmonic series

Invariants:
- Pitches are strictly increasing inside one period; the period itself lies
  above the last degree. Violations raise UnsortedScale.
- Scales are immutable after construction and safe to share.
"""

import enum
import math
from typing import List, NamedTuple, Optional, Sequence

import consts
from errors import InvalidRatio, UnsortedScale
from pitch import Pitch, Ratio, as_ratio


class ScaleKind(enum.Enum):
    EQUAL_DIVISION = "equal-division"
    EXPLICIT = "explicit"
    RANK2 = "rank-2"
    HARMONIC = "harmonic"


class DegreeApproximation(NamedTuple):
    degree: int
    deviation: float


def reduce_ratio(ratio, period=consts.DEFAULT_OCTAVE) -> Ratio:
    """Reduce a ratio into [1, period)."""
    return as_ratio(ratio).reduced(as_ratio(period))


class Scale:
    """Common behaviour of all scale variants; subclasses provide _step()."""

    kind: Optional[ScaleKind] = None

    def __init__(self, period, name: str = ""):
        self._period = as_ratio(period)
        if self._period.cents <= consts.CENTS_EPSILON:
            raise InvalidRatio(str(self._period), "scale period must be larger than 1/1")
        self.name = name

    # --- Variant hooks ---

    @property
    def size(self) -> int:
        raise NotImplementedError

    def _step(self, index: int) -> Ratio:
        """Ratio of degree index, 0 <= index < size."""
        raise NotImplementedError

    # --- Shared capability ---

    @property
    def period(self) -> Ratio:
        return self._period

    def __len__(self) -> int:
        return self.size

    def ratio_of(self, degree: int) -> Ratio:
        periods, index = divmod(degree, self.size)
        return self._step(index) * self._period ** periods

    def degree(self, n: int) -> Pitch:
        return Pitch(self.ratio_of(n).cents)

    def steps(self) -> List[Ratio]:
        """Degrees 1 .. size-1 followed by the period (Scala order)."""
        return [self._step(i) for i in range(1, self.size)] + [self._period]

    def pitches(self) -> List[Pitch]:
        return [self.degree(i) for i in range(self.size)]

    def nearest_degree(self, pitch) -> DegreeApproximation:
        """Degree closest to pitch (a Pitch or anything ratio-like) and the signed deviation in cents."""
        cents = pitch.cents if isinstance(pitch, Pitch) else as_ratio(pitch).cents
        periods = math.floor(cents / self._period.cents)
        best = None
        for degree in range(periods * self.size - 1, (periods + 1) * self.size + 1):
            deviation = cents - self.ratio_of(degree).cents
            if best is None or abs(deviation) < abs(best.deviation) - consts.CENTS_EPSILON:
                best = DegreeApproximation(degree, deviation)
        return best

    def rotated(self, start: int) -> "ExplicitScale":
        """Mode of this scale starting on degree start."""
        base = self.ratio_of(start)
        steps = [self.ratio_of(start + i) / base for i in range(1, self.size)]
        return ExplicitScale(steps, self._period, name=f"{self.name} (mode {start % self.size})")

    def _validate(self) -> None:
        previous = self._step(0).cents
        for index in range(1, self.size + 1):
            current = self._step(index).cents if index < self.size else self._period.cents
            if current <= previous + consts.CENTS_EPSILON:
                raise UnsortedScale(index, previous, current)
            previous = current

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} size={self.size} period={self._period}>"


class EqualDivision(Scale):
    """`divisions` equal steps of `period`."""

    kind = ScaleKind.EQUAL_DIVISION

    def __init__(self, divisions: int, period=consts.DEFAULT_OCTAVE, name: str = ""):
        if int(divisions) != divisions or divisions < 1:
            raise InvalidRatio(f"{period}^(1/{divisions})", "number of divisions must be a positive integer")
        super().__init__(period, name)
        self.divisions = int(divisions)
        if not self.name:
            if self._period == Ratio(2):
                self.name = f"{self.divisions}-EDO"
            else:
                self.name = f"{self.divisions} equal divisions of {self._period}"
        self._validate()

    @classmethod
    def from_step(cls, step, name: str = "") -> "EqualDivision":
        """Equal-step tuning repeating every single step."""
        step = as_ratio(step)
        return cls(1, step, name or f"Equal steps of {step}")

    @property
    def size(self) -> int:
        return self.divisions

    @property
    def step(self) -> Ratio:
        return Ratio.from_cents(self._period.cents / self.divisions)

    def _step(self, index: int) -> Ratio:
        if index == 0:
            return Ratio(1)
        return Ratio.from_cents(self._period.cents * index / self.divisions)


class ExplicitScale(Scale):
    """Scale given by its pitches above the implicit unison."""

    kind = ScaleKind.EXPLICIT

    def __init__(self, steps: Sequence, period=consts.DEFAULT_OCTAVE, name: str = "",
                 cents_decimals: Optional[Sequence[Optional[int]]] = None):
        super().__init__(period, name)
        self._ratios = [Ratio(1)] + [as_ratio(s) for s in steps]
        self._validate()
        # Written precision of each step (Scala order, None = exact / unspecified)
        self.cents_decimals: Optional[List[Optional[int]]] = None
        if cents_decimals is not None:
            if len(cents_decimals) != self.size:
                raise ValueError(f"Expected {self.size} cents precisions, got {len(cents_decimals)}")
            self.cents_decimals = list(cents_decimals)

    @classmethod
    def from_scala_steps(cls, steps: Sequence, name: str = "",
                         cents_decimals: Optional[Sequence[Optional[int]]] = None) -> "ExplicitScale":
        """Build from a Scala pitch list, whose last entry is the period."""
        if not steps:
            raise InvalidRatio("[]", "a scale needs at least its period")
        ratios = [as_ratio(s) for s in steps]
        return cls(ratios[:-1], ratios[-1], name, cents_decimals)

    @classmethod
    def from_ratios(cls, ratios: Sequence, period=consts.DEFAULT_OCTAVE, name: str = "",
                    reduce: bool = True) -> "ExplicitScale":
        """Build from unordered ratios; with reduce, fold into the period, sort and drop duplicates."""
        period = as_ratio(period)
        values = [as_ratio(r) for r in ratios]
        if reduce:
            values = sorted((v.reduced(period) for v in values), key=lambda r: r.cents)
            unique: List[Ratio] = []
            for value in values:
                if abs(value.cents) <= consts.CENTS_EPSILON:
                    continue
                if unique and value == unique[-1]:
                    continue
                unique.append(value)
            values = unique
        return cls(values, period, name)

    @property
    def size(self) -> int:
        return len(self._ratios)

    def _step(self, index: int) -> Ratio:
        return self._ratios[index]


class Rank2Temperament(Scale):
    """Generator stacked num_neg times down and num_pos times up, reduced into the period."""

    kind = ScaleKind.RANK2

    def __init__(self, generator, num_pos: int, num_neg: int = 0, period=consts.DEFAULT_OCTAVE,
                 name: str = ""):
        super().__init__(period, name)
        if num_pos < 0 or num_neg < 0:
            raise ValueError("generator counts must be non-negative")
        self.generator = as_ratio(generator)
        self.num_pos = num_pos
        self.num_neg = num_neg

        stacked = [((self.generator ** k).reduced(self._period), k) for k in range(-num_neg, num_pos + 1)]
        stacked.sort(key=lambda item: item[0].cents)
        self._ratios = [ratio for ratio, _ in stacked]
        self._counts = [count for _, count in stacked]
        if not self.name:
            self.name = f"Rank-2 temperament, generator {self.generator}, {num_neg} down / {num_pos} up"
        self._validate()

    @property
    def size(self) -> int:
        return len(self._ratios)

    @property
    def generator_counts(self) -> List[int]:
        """Signed number of generators stacked to reach each degree."""
        return list(self._counts)

    def _step(self, index: int) -> Ratio:
        return self._ratios[index]


class HarmonicSeries(Scale):
    """Harmonics lowest .. lowest+num_notes-1, or the mirrored subharmonic series."""

    kind = ScaleKind.HARMONIC

    def __init__(self, lowest_harmonic: int, num_notes: Optional[int] = None, subharmonics: bool = False,
                 name: str = ""):
        num_notes = lowest_harmonic if num_notes is None else num_notes
        if lowest_harmonic < 1 or num_notes < 1:
            raise InvalidRatio(f"{lowest_harmonic}+{num_notes}", "harmonic numbers must be positive")
        top = lowest_harmonic + num_notes
        super().__init__(Ratio(top, lowest_harmonic), name)
        self.lowest_harmonic = lowest_harmonic
        self.num_notes = num_notes
        self.subharmonics = subharmonics
        if subharmonics:
            self._ratios = [Ratio(top, top - i) for i in range(num_notes)]
        else:
            self._ratios = [Ratio(lowest_harmonic + i, lowest_harmonic) for i in range(num_notes)]
        if not self.name:
            series = "Subharmonics" if subharmonics else "Harmonics"
            self.name = f"{series} {lowest_harmonic}-{top}"
        self._validate()

    @property
    def size(self) -> int:
        return self.num_notes

    def _step(self, index: int) -> Ratio:
        return self._ratios[index]


# --- Factories ---

def equal_division(divisions: int, period=consts.DEFAULT_OCTAVE) -> EqualDivision:
    return EqualDivision(divisions, period)


def explicit(steps: Sequence, period=consts.DEFAULT_OCTAVE, name: str = "") -> ExplicitScale:
    return ExplicitScale(steps, period, name)


def rank2(generator, num_pos: int, num_neg: int = 0, period=consts.DEFAULT_OCTAVE) -> Rank2Temperament:
    return Rank2Temperament(generator, num_pos, num_neg, period)


def harmonics(lowest_harmonic: int, num_notes: Optional[int] = None, subharmonics: bool = False) -> HarmonicSeries:
    return HarmonicSeries(lowest_harmonic, num_notes, subharmonics)
