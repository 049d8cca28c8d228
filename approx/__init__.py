"""Rational approximation of arbitrary frequency ratios.

Continued-fraction search for low-denominator fractions close to a target ratio,
plus the two related queries used by the dump tables and the command line.

Approximation Queries:
- approximate: best convergent p/q of the ratio itself with q bounded
- approximate_steps: best "k steps of an n-EDO" for the ratio (fraction of a period)
- nearest_fraction: closest ratio whose odd parts stay below an odd limit,
  ignoring powers of two

Search Properties:
- Convergents are computed on the exact Fraction expansion of the value, so
  no precision is lost between iterations
- Denominators strictly increase from one convergent to the next
- The search stops on the denominator bound, on the cents tolerance or on
  consts.MAX_CF_DEPTH, so it always terminates
- Deviations are signed: target cents minus approximation cents
"""

import logging
import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Iterator, Optional, Union

import consts
from errors import InvalidRatio
from pitch import Pitch, Ratio, as_ratio

logger = logging.getLogger(__name__)

Target = Union[Ratio, Pitch, consts.Numeric, str]


@dataclass(frozen=True)
class ApproximationResult:
    """A rational approximation and its residual deviation in cents."""
    ratio: Ratio
    deviation: float
    max_denominator: int
    depth: int

    @property
    def numerator(self) -> int:
        return self.ratio.numerator

    @property
    def denominator(self) -> int:
        return self.ratio.denominator

    def __str__(self) -> str:
        return f"{self.ratio} ({self.deviation:+.3f}c)"


@dataclass(frozen=True)
class StepApproximation:
    """`steps` steps of `divisions` equal divisions of `period`."""
    steps: int
    divisions: int
    period: Ratio
    deviation: float
    depth: int

    @property
    def step_ratio(self) -> Ratio:
        return Ratio.from_cents(self.period.cents / self.divisions)

    @property
    def ratio(self) -> Ratio:
        return Ratio.from_cents(self.period.cents * self.steps / self.divisions)

    def __str__(self) -> str:
        return f"{self.steps}\\{self.divisions} ({self.deviation:+.3f}c)"


@dataclass(frozen=True)
class NearestFraction:
    """Odd-limit fraction n/d transposed by num_octaves octaves."""
    numerator: int
    denominator: int
    num_octaves: int
    deviation: float

    @property
    def ratio(self) -> Ratio:
        return Ratio(self.numerator, self.denominator) * Ratio(2) ** self.num_octaves

    def __str__(self) -> str:
        return f"{self.numerator}/{self.denominator} [{self.num_octaves:+d}] ({self.deviation:+.3f}c)"


def _as_fraction(ratio: Ratio) -> Fraction:
    """Exact value of the ratio, or the exact binary value of its float form."""
    if ratio.is_exact:
        return ratio.fraction
    return Fraction(ratio.value)


def _fraction_cents(fraction: Fraction) -> float:
    return Ratio.from_fraction(fraction).cents


def convergents(value: Union[Fraction, float, int], max_depth: int = consts.MAX_CF_DEPTH) -> Iterator[Fraction]:
    """Yield the continued-fraction convergents h_i/k_i of value, at most max_depth + 1 of them."""
    x = Fraction(value)
    h, h_prev = 1, 0
    k, k_prev = 0, 1
    for _ in range(max_depth + 1):
        a = math.floor(x)
        h, h_prev = a * h + h_prev, h
        k, k_prev = a * k + k_prev, k
        yield Fraction(h, k)
        remainder = x - a
        if remainder == 0:
            return
        x = 1 / remainder


def _nearest_integer(target: Ratio, value: Fraction, max_denominator: int) -> ApproximationResult:
    lower = max(1, math.floor(value))
    candidates = [Fraction(lower), Fraction(lower + 1)]
    best = min(candidates, key=lambda c: abs(target.cents - _fraction_cents(c)))
    return ApproximationResult(Ratio.from_fraction(best), target.cents - _fraction_cents(best), max_denominator, 0)


def approximate(target: Target,
                max_denominator: int = consts.DEFAULT_MAX_DENOMINATOR,
                tolerance_cents: float = consts.CENTS_EPSILON,
                max_depth: int = consts.MAX_CF_DEPTH) -> ApproximationResult:
    """Find the best low-denominator fraction for target.

    Args:
        target: Ratio, Pitch, float ratio, Fraction or ratio string
        max_denominator: Largest admissible denominator (>= 1)
        tolerance_cents: Stop at the first convergent this close to the target
        max_depth: Maximum number of continued-fraction terms to expand

    Returns:
        ApproximationResult with the chosen fraction, its signed deviation
        (target minus approximation, in cents) and the index of the convergent.

    Among convergents within tolerance the one with the smaller denominator wins.
    Otherwise the closest of the admissible convergents and the largest
    semiconvergent inside the denominator bound is returned, so targets below
    1/1 reach 1/2 even when their first convergent 1/n is out of bounds.
    """
    if max_denominator < 1:
        raise ValueError(f"max_denominator must be >= 1, got {max_denominator}")
    ratio = as_ratio(target)

    if abs(ratio.cents) <= consts.CENTS_EPSILON:
        return ApproximationResult(Ratio(1), 0.0, max_denominator, 0)

    value = _as_fraction(ratio)
    if max_denominator == 1:
        return _nearest_integer(ratio, value, max_denominator)

    best: Optional[ApproximationResult] = None

    def consider(fraction: Fraction, depth: int) -> float:
        nonlocal best
        deviation = ratio.cents - _fraction_cents(fraction)
        if best is None or abs(deviation) < abs(best.deviation) or (
                abs(deviation) == abs(best.deviation) and fraction.denominator < best.denominator):
            best = ApproximationResult(Ratio.from_fraction(fraction), deviation, max_denominator, depth)
        return deviation

    # (h, k) of the convergent before `last`; (1, 0) is the seed of the recurrence
    before, last = (1, 0), None
    for depth, convergent in enumerate(convergents(value, max_depth)):
        if convergent.denominator > max_denominator:
            # Largest semiconvergent between `before` and `convergent` inside the bound
            m = (max_denominator - before[1]) // last.denominator
            if m >= 1:
                consider(Fraction(m * last.numerator + before[0], m * last.denominator + before[1]), depth)
            break
        if last is not None:
            before = (last.numerator, last.denominator)
        last = convergent
        if convergent <= 0:
            continue
        if abs(consider(convergent, depth)) <= tolerance_cents:
            break

    if best is None:
        best = ApproximationResult(Ratio(1), ratio.cents, max_denominator, 0)
    logger.debug("approximate %s -> %s at depth %d", ratio, best.ratio, best.depth)
    return best


def approximate_steps(target: Target,
                      period: Target = consts.DEFAULT_OCTAVE,
                      max_divisions: int = consts.DEFAULT_MAX_DIVISIONS,
                      tolerance_cents: float = consts.CENTS_EPSILON,
                      max_depth: int = consts.MAX_CF_DEPTH) -> StepApproximation:
    """Approximate target as steps/divisions of period (e.g. 3/2 ~ 7\\12 of 2/1)."""
    if max_divisions < 1:
        raise ValueError(f"max_divisions must be >= 1, got {max_divisions}")
    ratio = as_ratio(target)
    period_ratio = as_ratio(period)
    if period_ratio.cents <= consts.CENTS_EPSILON:
        raise InvalidRatio(str(period_ratio), "period must be larger than 1/1")

    position = ratio.cents / period_ratio.cents
    best: Optional[StepApproximation] = None
    for depth, convergent in enumerate(convergents(Fraction(position), max_depth)):
        if convergent.denominator > max_divisions:
            break
        approx_cents = period_ratio.cents * convergent.numerator / convergent.denominator
        deviation = ratio.cents - approx_cents
        if best is None or abs(deviation) < abs(best.deviation):
            best = StepApproximation(convergent.numerator, convergent.denominator, period_ratio, deviation, depth)
        if abs(deviation) <= tolerance_cents:
            break
    return best


def nearest_fraction(target: Target, odd_limit: int = consts.DEFAULT_ODD_LIMIT) -> NearestFraction:
    """Closest ratio n/d * 2**k with n and d odd, coprime and <= odd_limit."""
    if odd_limit < 1:
        raise ValueError(f"odd_limit must be >= 1, got {odd_limit}")
    cents = as_ratio(target).cents

    best: Optional[NearestFraction] = None
    for numerator in range(1, odd_limit + 1, 2):
        for denominator in range(1, odd_limit + 1, 2):
            if math.gcd(numerator, denominator) != 1:
                continue
            base = _fraction_cents(Fraction(numerator, denominator))
            num_octaves = round((cents - base) / consts.CENTS_PER_OCTAVE)
            deviation = cents - (base + num_octaves * consts.CENTS_PER_OCTAVE)
            if best is None or abs(deviation) < abs(best.deviation) - consts.CENTS_EPSILON:
                best = NearestFraction(numerator, denominator, num_octaves, deviation)
    return best
