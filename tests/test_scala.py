"""Tests for the Scala .scl / .kbm codec."""

import pytest

from errors import MalformedScalaFile
from pitch import Ratio
from scala import (
    ScalaPitch,
    format_kbm,
    format_scl,
    kbm_to_mapping,
    load_tuning,
    mapping_to_kbm,
    parse_kbm,
    parse_scl,
    read_kbm,
    read_scl,
    scala_to_scale,
    scale_to_scala,
    write_kbm,
    write_scl,
)
from scales import EqualDivision, Rank2Temperament
from tuning import KeyboardMapping, search_layout

MEANTONE_PITCHES = [
    "76.0490", "193.1569", "310.2630", "386.3137", "503.4206", "579.4653",
    "696.5784", "772.6274", "889.7353", "1006.8431", "1082.8921", "1200.0000",
]

MEANTONE_SCL = "\n".join(
    ["! meanquar.scl", "!", "1/4-comma meantone scale. Pietro Aaron's temperament (1523)", " 12", "!"]
    + MEANTONE_PITCHES) + "\n"

TWELVE_EDO_SCL = "12-EDO\n12\n" + "\n".join(f"{100 * i}.0" for i in range(1, 13)) + "\n"


def _pitch_lines(text: str):
    lines = [line for line in text.splitlines() if not line.startswith("!")]
    return lines[2:]


# ---------------------------------------------------------------------------
# .scl parsing
# ---------------------------------------------------------------------------


def test_parse_meantone() -> None:
    scala_scale = parse_scl(MEANTONE_SCL)
    assert scala_scale.description == "1/4-comma meantone scale. Pietro Aaron's temperament (1523)"
    assert scala_scale.size == 12
    assert scala_scale.comments == ["meanquar.scl", ""]
    assert scala_scale.pitches[0].cents == pytest.approx(76.049)
    assert scala_scale.pitches[0].is_cents
    assert scala_scale.pitches[0].decimals == 4


def test_meantone_pitch_lines_survive_a_round_trip() -> None:
    scala_scale = parse_scl(MEANTONE_SCL)
    assert _pitch_lines(format_scl(scala_scale)) == MEANTONE_PITCHES

    scale = scala_to_scale(scala_scale)
    assert _pitch_lines(format_scl(scale_to_scala(scale))) == MEANTONE_PITCHES


def test_scale_read_from_scl_is_written_back_unchanged() -> None:
    text = "\n".join(["!", "Quarter-comma meantone", "12", "!"] + MEANTONE_PITCHES) + "\n"
    scale = scala_to_scale(parse_scl(text))
    assert scale.cents_decimals == [4] * 12
    assert format_scl(scale_to_scala(scale)) == text


def test_mixed_pitch_lines_keep_their_form() -> None:
    text = "!\nMixed\n4\n!\n9/8\n386.31\n701.955000\n2/1\n"
    scale = scala_to_scale(parse_scl(text))
    assert scale.cents_decimals == [None, 2, 6, None]
    assert format_scl(scale_to_scala(scale), cents_precision=3) == text


def test_parse_ratio_pitches() -> None:
    scala_scale = parse_scl("Just\n3\n9/8\n5/4\n2\n")
    scale = scala_to_scale(scala_scale)
    assert scale.steps() == [Ratio(9, 8), Ratio(5, 4), Ratio(2)]
    assert all(r.is_exact for r in scale.steps())
    assert _pitch_lines(format_scl(scala_scale)) == ["9/8", "5/4", "2/1"]


def test_empty_description_and_trailing_text() -> None:
    scala_scale = parse_scl("!\n\n2\n701.955 fifth\n2/1 octave\n")
    assert scala_scale.description == ""
    assert scala_scale.size == 2
    assert scala_scale.pitches[0].cents == pytest.approx(701.955)


@pytest.mark.parametrize("text, line, column", [
    ("desc\n3\n9/8\n5/4\n", 5, None),
    ("desc\n1\n2/1\n3/1\n", 4, 1),
    ("desc\n2\n5/4\n9/8\n", 4, 1),
    ("desc\n2\n5/4\nabc\n", 4, 1),
    ("desc\nfoo\n", 2, 1),
    ("desc\n0\n", 2, 1),
    ("desc\n", 2, None),
    ("desc\n1\n1/0\n", 3, 1),
    ("desc\n1\n  -2/1\n", 3, 3),
])
def test_malformed_scl_reports_position(text: str, line: int, column) -> None:
    with pytest.raises(MalformedScalaFile) as excinfo:
        parse_scl(text)
    assert excinfo.value.line == line
    assert excinfo.value.column == column


def test_format_scl_layout() -> None:
    text = format_scl(parse_scl("Just\n2\n3/2\n2/1\n"))
    assert text == "!\nJust\n2\n!\n3/2\n2/1\n"


def test_scala_pitch_formatting() -> None:
    assert ScalaPitch.from_cents(100.0).format(3) == "100.000"
    assert ScalaPitch.from_cents(100.0, decimals=0).format() == "100."
    assert ScalaPitch.from_ratio(Ratio(7, 4)).format() == "7/4"
    assert ScalaPitch.parse("386.314").decimals == 3


def test_equal_division_round_trip() -> None:
    scale = EqualDivision(19)
    back = scala_to_scale(parse_scl(format_scl(scale_to_scala(scale))))
    assert back.size == 19
    for n in range(-19, 20):
        assert back.degree(n).cents == pytest.approx(scale.degree(n).cents, abs=1e-6)


def test_exact_steps_round_trip_exactly() -> None:
    scale = Rank2Temperament(Ratio(3, 2), 5, 1)
    back = scala_to_scale(parse_scl(format_scl(scale_to_scala(scale))))
    assert [(r.numerator, r.denominator) for r in back.steps()] == \
        [(r.numerator, r.denominator) for r in scale.steps()]


def test_scl_files(tmp_path) -> None:
    path = str(tmp_path / "edo.scl")
    write_scl(path, EqualDivision(12))
    scala_scale = read_scl(path)
    assert scala_scale.description == "12-EDO"
    assert scala_scale.size == 12


# ---------------------------------------------------------------------------
# .kbm
# ---------------------------------------------------------------------------

PARTIAL_KBM = """! partial.kbm
12
0
127
60
69
440.0
12
! mapping
0
x
2
"""

FULL_KBM = "12\n0\n127\n60\n69\n440.0\n12\n" + "\n".join(str(i) for i in range(12)) + "\n"


def test_parse_kbm_pads_missing_entries() -> None:
    kbm = parse_kbm(PARTIAL_KBM)
    assert (kbm.size, kbm.first_note, kbm.last_note, kbm.middle_note, kbm.reference_note) == (12, 0, 127, 60, 69)
    assert kbm.reference_frequency == pytest.approx(440.0)
    assert kbm.formal_octave == 12
    assert kbm.entries == [0, None, 2] + [None] * 9

    mapping = kbm_to_mapping(kbm)
    assert mapping.degree_of(61) is None
    assert mapping.degree_of(62) == 2
    assert mapping.degree_of(72) == 12
    assert mapping.degree_of(63) is None


def test_unmapped_reference_key_is_rejected() -> None:
    with pytest.raises(MalformedScalaFile) as excinfo:
        load_tuning(TWELVE_EDO_SCL, PARTIAL_KBM)
    # the reference note field
    assert excinfo.value.line == 6


@pytest.mark.parametrize("text, line", [
    ("3\n0\n127\n60\n69\n440\n12\n0\n1\n1\n", 10),
    ("! two keys per period\n2\n0\n127\n60\n60\n440\n0\n0\n1\n", 8),
])
def test_unusable_kbm_reports_its_line(text: str, line: int) -> None:
    kbm = parse_kbm(text)
    with pytest.raises(MalformedScalaFile) as excinfo:
        kbm_to_mapping(kbm)
    assert excinfo.value.line == line


def test_kbm_built_in_memory_has_no_lines() -> None:
    kbm = mapping_to_kbm(KeyboardMapping.linear(60))
    assert kbm.line_of(0) is None


def test_load_tuning_with_full_map() -> None:
    tuning = load_tuning(TWELVE_EDO_SCL, FULL_KBM)
    assert tuning.frequency_of(69) == pytest.approx(440.0)
    assert tuning.frequency_of(60) == pytest.approx(261.6256, abs=1e-3)


def test_load_tuning_without_map_is_linear() -> None:
    tuning = load_tuning(MEANTONE_SCL)
    assert tuning.frequency_of(69) == pytest.approx(440.0)
    assert tuning.degree_of(70) == 1


def test_linear_kbm() -> None:
    mapping = kbm_to_mapping(parse_kbm("0\n0\n127\n60\n69\n440\n0\n"))
    assert mapping.degree_of(61) == 1
    assert mapping.degree_of(60) == 0


@pytest.mark.parametrize("text, line", [
    ("12\n0\n127\n", 4),
    ("x\n0\n127\n60\n69\n440\n12\n", 1),
    ("1\n0\n127\n60\n69\n440\n1\n0\n1\n", 9),
    ("2\n0\n127\n60\n69\n440\n1\n0\ny\n", 9),
    ("0\n0\n127\n60\n69\n-440\n0\n", 6),
    ("0\n100\n10\n60\n69\n440\n0\n", 2),
])
def test_malformed_kbm(text: str, line: int) -> None:
    with pytest.raises(MalformedScalaFile) as excinfo:
        parse_kbm(text)
    assert excinfo.value.line == line


def test_layout_mapping_round_trip() -> None:
    mapping = search_layout(EqualDivision(31), 12, root_key=60)
    kbm = parse_kbm(format_kbm(mapping_to_kbm(mapping)))
    assert kbm.entries == mapping.pattern
    assert kbm.formal_octave == 31
    assert kbm.middle_note == 60
    assert kbm.reference_frequency == pytest.approx(440.0)
    assert list(kbm_to_mapping(kbm).items()) == list(mapping.items())


def test_dict_mapping_spans_its_key_range() -> None:
    mapping = KeyboardMapping.from_dict({60: 0, 62: 1, 64: 2, 69: 5}, reference_key=69, root_key=60)
    kbm = mapping_to_kbm(mapping)
    assert kbm.entries == [0, None, 1, None, 2, None, None, None, None, 5]
    assert kbm.formal_octave == 0
    assert list(kbm_to_mapping(kbm).items()) == list(mapping.items())


def test_kbm_files(tmp_path) -> None:
    path = str(tmp_path / "layout.kbm")
    write_kbm(path, search_layout(EqualDivision(12), 12, root_key=60))
    kbm = read_kbm(path)
    assert kbm.size == 12
    assert kbm.entries == list(range(12))
