"""Tests for the Ratio and Pitch value types."""

import dataclasses
from fractions import Fraction

import pytest

from errors import InvalidRatio
from pitch import Pitch, Ratio, apply_cents, as_ratio, cents_to_ratio, frequency_to_cents, ratio_to_cents


# ---------------------------------------------------------------------------
# Ratio construction
# ---------------------------------------------------------------------------


def test_ratio_is_stored_in_lowest_terms() -> None:
    ratio = Ratio(6, 4)
    assert ratio.numerator == 3
    assert ratio.denominator == 2
    assert ratio.is_exact
    assert str(ratio) == "3/2"
    assert repr(ratio) == "Ratio(3, 2)"


@pytest.mark.parametrize("numerator, denominator", [(1, 0), (0, 1), (-1, 2), (3, -2)])
def test_ratio_rejects_non_positive_values(numerator: int, denominator: int) -> None:
    with pytest.raises(InvalidRatio):
        Ratio(numerator, denominator)


def test_octave_is_1200_cents() -> None:
    assert Ratio(2).cents == pytest.approx(1200.0)
    assert Ratio(3, 2).cents == pytest.approx(701.955, abs=1e-3)
    assert Ratio(2, 3).cents == pytest.approx(-701.955, abs=1e-3)


def test_from_cents_is_inexact_and_equals_exact_octave() -> None:
    ratio = Ratio.from_cents(1200)
    assert not ratio.is_exact
    assert ratio.numerator is None
    assert ratio == Ratio(2)
    assert ratio.value == pytest.approx(2.0)


def test_equality_uses_cents_tolerance() -> None:
    base = Ratio.from_cents(700)
    assert Ratio.from_cents(700 + 5e-7) == base
    assert Ratio.from_cents(700 + 1e-5) != base
    assert base < Ratio.from_cents(700 + 1e-5)
    assert not base < Ratio.from_cents(700 + 5e-7)


def test_ratio_is_not_hashable() -> None:
    with pytest.raises(TypeError):
        hash(Ratio(3, 2))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def test_parse_fraction_and_integer() -> None:
    assert Ratio.parse("3/2") == Ratio(3, 2)
    assert Ratio.parse("3/2").is_exact
    assert Ratio.parse(" 5 ").numerator == 5


def test_parse_float_and_cents() -> None:
    assert Ratio.parse("1.5").cents == pytest.approx(701.955, abs=1e-3)
    assert not Ratio.parse("1.5").is_exact
    assert Ratio.parse("701.955c").cents == pytest.approx(701.955)


def test_parse_equal_step_notation() -> None:
    assert Ratio.parse("1:12:2").cents == pytest.approx(100.0)
    assert Ratio.parse("7:12").cents == pytest.approx(700.0)
    assert Ratio.parse("1:13:3").cents == pytest.approx(Ratio(3).cents / 13)


@pytest.mark.parametrize("text", ["", "abc", "1/0", "1:0", "-3/2", "0", "1:2:3:4"])
def test_parse_rejects_invalid_text(text: str) -> None:
    with pytest.raises(InvalidRatio):
        Ratio.parse(text)


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def test_exact_arithmetic_stays_exact() -> None:
    product = Ratio(3, 2) * Ratio(4, 3)
    assert product.is_exact
    assert (product.numerator, product.denominator) == (2, 1)

    power = Ratio(3, 2) ** 4
    assert (power.numerator, power.denominator) == (81, 16)

    inverse = Ratio(3, 2) ** -1
    assert (inverse.numerator, inverse.denominator) == (2, 3)
    assert Ratio(3, 2).inverse() == Ratio(2, 3)


def test_repeated_composition_stays_reduced() -> None:
    value = Ratio(1)
    for _ in range(50):
        value = value * Ratio(3, 2) / Ratio(3, 2)
    assert (value.numerator, value.denominator) == (1, 1)


def test_mixed_arithmetic_adds_cents() -> None:
    mixed = Ratio(3, 2) * Ratio.from_cents(100)
    assert not mixed.is_exact
    assert mixed.cents == pytest.approx(Ratio(3, 2).cents + 100.0)


def test_reduced_into_octave() -> None:
    reduced = Ratio(81, 16).reduced()
    assert (reduced.numerator, reduced.denominator) == (81, 64)
    assert Ratio(1, 3).reduced() == Ratio(4, 3)
    assert Ratio.from_cents(-100).reduced().cents == pytest.approx(1100.0)
    assert Ratio.from_cents(2400).reduced().cents == pytest.approx(0.0, abs=1e-9)


def test_reduced_into_other_period() -> None:
    tritave = Ratio(3)
    assert Ratio(3).reduced(tritave) == Ratio(1)
    assert Ratio(5).reduced(tritave) == Ratio(5, 3)
    with pytest.raises(InvalidRatio):
        Ratio(3, 2).reduced(Ratio(1))


# ---------------------------------------------------------------------------
# Pitch
# ---------------------------------------------------------------------------


def test_pitch_addition_is_ratio_multiplication() -> None:
    fifth = Pitch.from_ratio(Ratio(3, 2))
    fourth = Pitch.from_ratio(Ratio(4, 3))
    assert fifth + fourth == Pitch(1200.0)
    assert fifth - fourth == Pitch.from_ratio(Ratio(9, 8))
    assert -fifth == Pitch.from_ratio(Ratio(2, 3))


def test_pitch_scaling_by_integer() -> None:
    assert Pitch(100) * 3 == Pitch(300)
    assert 3 * Pitch(100) == Pitch(300)


def test_pitch_frequency_conversion() -> None:
    assert Pitch.from_hz(880) == Pitch(1200)
    assert Pitch(1200).to_hz() == pytest.approx(880.0)
    assert Pitch(-900).to_hz() == pytest.approx(261.6256, abs=1e-3)
    assert Pitch.from_hz(432, reference_hz=432) == Pitch(0)


def test_pitch_views() -> None:
    pitch = Pitch(1800)
    assert pitch.octaves == pytest.approx(1.5)
    assert pitch.semitones == pytest.approx(18.0)
    assert Pitch.from_semitones(7) == Pitch(700)
    assert Pitch.from_octaves(-1) == Pitch(-1200)
    assert str(Pitch(12.5)) == "+12.500c"


def test_pitch_comparison_and_immutability() -> None:
    assert Pitch(100) < Pitch(200)
    assert Pitch(100) == Pitch(100 + 1e-7)
    assert Pitch(200) >= Pitch(200 - 1e-7)
    with pytest.raises(TypeError):
        hash(Pitch(100))
    with pytest.raises(dataclasses.FrozenInstanceError):
        Pitch(100).cents = 5.0  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_as_ratio_coercions() -> None:
    assert as_ratio("3/2") == Ratio(3, 2)
    assert as_ratio(1.5) == Ratio(3, 2)
    assert as_ratio(Fraction(5, 4)).is_exact
    assert as_ratio(Pitch(700)).cents == pytest.approx(700.0)
    with pytest.raises(InvalidRatio):
        as_ratio(True)
    with pytest.raises(InvalidRatio):
        as_ratio([3, 2])


def test_cents_helpers() -> None:
    assert ratio_to_cents("2/1") == pytest.approx(1200.0)
    assert frequency_to_cents(880.0) == pytest.approx(1200.0)
    assert frequency_to_cents(220.0, 440.0) == pytest.approx(-1200.0)
    assert cents_to_ratio(700.0) == pytest.approx(1.4983070768766815)
    assert apply_cents(440.0, -1200.0) == pytest.approx(220.0)
    assert Ratio.from_cents(1200.0).value == pytest.approx(2.0)
    assert Pitch(1200).to_hz(220.0) == pytest.approx(440.0)
