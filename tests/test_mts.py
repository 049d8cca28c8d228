"""Tests for the MIDI Tuning Standard encoders."""

from functools import reduce
from operator import xor

import pytest

import utils
from errors import OutOfMtsRange
from midi import to_bytes
from mts import (
    ALL_CHANNELS,
    MTS_MAX_SEMITONES,
    BulkTuningDumpMessage,
    MtsMessageKind,
    RangePolicy,
    ScaleOctaveFormat,
    ScaleOctaveTuningMessage,
    ScaleOctaveTuningOptions,
    SingleNoteTuningChangeOptions,
    channel_coarse_tuning,
    channel_fine_tuning,
    pitch_bend_value,
    quantize_semitones,
    single_note_tuning_change,
    sysex_checksum,
    tuning_bank_change,
    tuning_program_change,
)
from scales import EqualDivision
from tuning import KeyboardMapping, Tuning

TWELVE_EDO = Tuning.create(EqualDivision(12))


# ---------------------------------------------------------------------------
# Quantisation
# ---------------------------------------------------------------------------


def test_quantize_middle_c() -> None:
    assert quantize_semitones(utils.convert_hz_to_midi(261.6256)) == (60, 0, 0)


def test_quantize_quarter_tone() -> None:
    assert quantize_semitones(69.5) == (69, 0x40, 0x00)
    assert quantize_semitones(utils.convert_hz_to_midi(440.0 * 2 ** (50 / 1200))) == (69, 0x40, 0x00)


def test_quantize_carries_into_next_note() -> None:
    assert quantize_semitones(59.99999999) == (60, 0, 0)


def test_quantize_never_produces_the_no_change_pattern() -> None:
    assert quantize_semitones(MTS_MAX_SEMITONES) == (127, 0x7F, 0x7E)
    assert quantize_semitones(127.99999, RangePolicy.CLAMP) == (127, 0x7F, 0x7E)


def test_quantize_range_policies() -> None:
    with pytest.raises(OutOfMtsRange) as excinfo:
        quantize_semitones(-0.5, key=3)
    assert excinfo.value.key == 3
    assert quantize_semitones(-0.5, RangePolicy.CLAMP) == (0, 0, 0)
    assert quantize_semitones(130.0, RangePolicy.SKIP) is None


# ---------------------------------------------------------------------------
# Single Note Tuning Change
# ---------------------------------------------------------------------------


def test_single_note_tuning_change_bytes() -> None:
    change = single_note_tuning_change(TWELVE_EDO, keys=[60])
    message = change.messages[0]
    expected = bytes([0xF0, 0x7F, 0x7F, 0x08, 0x02, 0x00, 0x01, 0x3C, 0x3C, 0x00, 0x00, 0xF7])
    assert message.to_bytes() == expected
    assert change.to_bytes() == expected
    assert message.kind is MtsMessageKind.SINGLE_NOTE_TUNING_CHANGE
    assert message.checksum == 0x0B
    assert message.checksum == reduce(xor, expected[1:-1]) & 0x7F
    assert message.hex() == "F0 7F 7F 08 02 00 01 3C 3C 00 00 F7"


def test_single_note_tuning_change_with_checksum() -> None:
    options = SingleNoteTuningChangeOptions(append_checksum=True)
    data = single_note_tuning_change(TWELVE_EDO, keys=[60], options=options).to_bytes()
    assert data[-2:] == bytes([0x0B, 0xF7])


def test_single_note_tuning_change_is_chunked() -> None:
    change = single_note_tuning_change(TWELVE_EDO)
    assert [len(m.changes) for m in change.messages] == [127, 1]
    assert change.messages[0].to_bytes()[6] == 127
    assert change.messages[1].changes[0].key == 127


def test_single_note_tuning_change_bank_form() -> None:
    options = SingleNoteTuningChangeOptions(bank=3, tuning_program=5, realtime=False)
    data = single_note_tuning_change(TWELVE_EDO, keys=[60], options=options).to_bytes()
    assert data[:8] == bytes([0xF0, 0x7E, 0x7F, 0x08, 0x07, 0x03, 0x05, 0x01])


def test_non_realtime_form_always_has_a_bank() -> None:
    options = SingleNoteTuningChangeOptions(realtime=False)
    message = single_note_tuning_change(TWELVE_EDO, keys=[60], options=options).messages[0]
    assert message.bank == 0
    assert message.to_bytes()[4] == 0x07


def test_single_note_tuning_change_range_policies() -> None:
    # Two octaves up: key k sounds at MIDI pitch k + 24, so keys >= 104 do not fit.
    high = Tuning.create(EqualDivision(12), reference_frequency=440.0 * 4)

    with pytest.raises(OutOfMtsRange) as excinfo:
        single_note_tuning_change(high)
    assert excinfo.value.key == 104

    skipped = single_note_tuning_change(high, options=SingleNoteTuningChangeOptions(range_policy=RangePolicy.SKIP))
    assert skipped.out_of_range_keys == list(range(104, 128))
    assert sum(len(m.changes) for m in skipped.messages) == 104

    clamped = single_note_tuning_change(high, keys=[127],
                                        options=SingleNoteTuningChangeOptions(range_policy=RangePolicy.CLAMP))
    change = clamped.messages[0].changes[0]
    assert (change.note, change.msb, change.lsb) == (127, 0x7F, 0x7E)


def test_keys_outside_midi_range_are_rejected() -> None:
    wide = Tuning.create(EqualDivision(12), key_range=(-10, 140))
    with pytest.raises(OutOfMtsRange):
        single_note_tuning_change(wide, keys=[128])
    change = single_note_tuning_change(wide)
    assert sum(len(m.changes) for m in change.messages) == 128


# ---------------------------------------------------------------------------
# Scale/Octave Tuning
# ---------------------------------------------------------------------------


def test_scale_octave_one_byte_layout() -> None:
    message = ScaleOctaveTuningMessage.from_deviations([0.0] * 12)
    data = message.to_bytes()
    assert data[:8] == bytes([0xF0, 0x7E, 0x7F, 0x08, 0x08, 0x03, 0x7F, 0x7F])
    assert data[8:20] == bytes([0x40] * 12)
    assert data[-1] == 0xF7
    assert len(data) == 21
    assert message.kind is MtsMessageKind.SCALE_OCTAVE_1_BYTE


def test_scale_octave_one_byte_values() -> None:
    message = ScaleOctaveTuningMessage.from_deviations([10, -64, 63] + [0] * 9)
    assert message.values[:3] == (74, 0, 127)


def test_scale_octave_range_policies() -> None:
    deviations = [64.0] + [0.0] * 11
    with pytest.raises(OutOfMtsRange):
        ScaleOctaveTuningMessage.from_deviations(deviations)

    clamped = ScaleOctaveTuningMessage.from_deviations(
        deviations, ScaleOctaveTuningOptions(range_policy=RangePolicy.CLAMP))
    assert clamped.values[0] == 127

    skipped = ScaleOctaveTuningMessage.from_deviations(
        deviations, ScaleOctaveTuningOptions(range_policy=RangePolicy.SKIP))
    assert skipped.values[0] == 64
    assert skipped.out_of_range_pitch_classes == (0,)


def test_scale_octave_two_byte() -> None:
    options = ScaleOctaveTuningOptions(format=ScaleOctaveFormat.TWO_BYTE)
    message = ScaleOctaveTuningMessage.from_deviations([0.0, -100.0] + [0.0] * 10, options)
    data = message.to_bytes()
    assert message.kind is MtsMessageKind.SCALE_OCTAVE_2_BYTE
    assert data[4] == 0x09
    assert data[8:12] == bytes([0x40, 0x00, 0x00, 0x00])
    assert len(data) == 8 + 24 + 1
    with pytest.raises(OutOfMtsRange):
        ScaleOctaveTuningMessage.from_deviations([100.0] + [0.0] * 11, options)


def test_scale_octave_channel_mask() -> None:
    first = ScaleOctaveTuningMessage.from_deviations([0] * 12, ScaleOctaveTuningOptions(channels=0b1))
    assert first.to_bytes()[5:8] == bytes([0, 0, 1])
    last = ScaleOctaveTuningMessage.from_deviations([0] * 12, ScaleOctaveTuningOptions(channels=1 << 15))
    assert last.to_bytes()[5:8] == bytes([2, 0, 0])
    assert ALL_CHANNELS == 0xFFFF


def test_scale_octave_from_tuning() -> None:
    assert ScaleOctaveTuningMessage.from_tuning(TWELVE_EDO).values == (64,) * 12
    sharp = Tuning.create(EqualDivision(12), reference_frequency=445.0)
    # 1200 * log2(445 / 440) = 19.56 cents
    assert ScaleOctaveTuningMessage.from_tuning(sharp).values == (84,) * 12


# ---------------------------------------------------------------------------
# Bulk Tuning Dump
# ---------------------------------------------------------------------------


def test_bulk_tuning_dump() -> None:
    message = BulkTuningDumpMessage.from_tuning(TWELVE_EDO, "12-EDO")
    data = message.to_bytes()
    assert len(data) == 408
    assert data[:6] == bytes([0xF0, 0x7E, 0x7F, 0x08, 0x01, 0x00])
    assert data[6:22] == b"12-EDO          "
    assert data[22 + 60 * 3:22 + 61 * 3] == bytes([60, 0, 0])
    assert data[-2] == sysex_checksum(data[1:-2])
    assert data[-1] == 0xF7
    assert message.kind is MtsMessageKind.BULK_TUNING_DUMP


def test_bulk_tuning_dump_marks_unmapped_keys() -> None:
    mapping = KeyboardMapping.from_dict({60: 0, 69: 9}, reference_key=69)
    message = BulkTuningDumpMessage.from_tuning(Tuning(EqualDivision(12), mapping), "Sparse")
    data = message.to_bytes()
    assert data[22 + 61 * 3:22 + 62 * 3] == bytes([0x7F, 0x7F, 0x7F])
    assert data[22 + 69 * 3:22 + 70 * 3] == bytes([69, 0, 0])


def test_bulk_tuning_dump_name_is_truncated() -> None:
    message = BulkTuningDumpMessage.from_tuning(TWELVE_EDO, "A very long tuning name")
    assert message.name_bytes == b"A very long tuni"


def test_bulk_tuning_dump_defaults_to_scale_name() -> None:
    assert BulkTuningDumpMessage.from_tuning(TWELVE_EDO).name_bytes == b"12-EDO          "


# ---------------------------------------------------------------------------
# RPN and pitch bend helpers
# ---------------------------------------------------------------------------


def test_tuning_program_and_bank_change() -> None:
    assert to_bytes(tuning_program_change(0, 5)) == bytes([0xB0, 101, 0, 0xB0, 100, 3, 0xB0, 6, 5])
    assert to_bytes(tuning_bank_change(2, 1)) == bytes([0xB2, 101, 0, 0xB2, 100, 4, 0xB2, 6, 1])


def test_channel_fine_tuning() -> None:
    assert to_bytes(channel_fine_tuning(1, 50)) == bytes(
        [0xB1, 101, 0, 0xB1, 100, 1, 0xB1, 6, 0x60, 0xB1, 38, 0])
    assert to_bytes(channel_fine_tuning(0, -100))[-6:] == bytes([0xB0, 6, 0, 0xB0, 38, 0])
    with pytest.raises(OutOfMtsRange):
        channel_fine_tuning(0, 100)


def test_channel_coarse_tuning() -> None:
    assert to_bytes(channel_coarse_tuning(0, -2))[-1] == 62
    with pytest.raises(OutOfMtsRange):
        channel_coarse_tuning(0, 64)


@pytest.mark.parametrize("semitones, expected", [(0.0, 8192), (1.0, 12288), (-1.0, 4096), (2.0, 16383),
                                                 (-2.0, 0), (-5.0, 0)])
def test_pitch_bend_value(semitones: float, expected: int) -> None:
    assert pitch_bend_value(semitones, 2.0) == expected
