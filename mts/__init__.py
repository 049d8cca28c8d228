"""MIDI Tuning Standard (MTS) encoders.

Builds the sysex byte sequences that retune MIDI synthesizers, plus the RPN
and pitch-bend channel messages used to select or approximate tunings.

Sysex Messages (tagged by MtsMessageKind):
- Single Note Tuning Change: F0 7F dev 08 02 tt ll [kk xx yy zz]... F7
  (bank variant F0 7E|7F dev 08 07 bb tt ll ... F7), at most 127 changes per message
- Scale/Octave Tuning: F0 7E|7F dev 08 08|09 ff gg hh [12 pitch-class values] F7
  in 1-byte (+-64 cents, 1 cent resolution) or 2-byte (+-100 cents, 14 bit) form
- Bulk Tuning Dump: F0 7E dev 08 01 tt name[16] [128 x xx yy zz] cs F7

Quantisation:
- Absolute pitch is expressed in 12-TET semitones above MIDI note 0
  (69.0 = 440 Hz); xx is the semitone, yy zz the 14-bit fraction
- 7F 7F 7F is reserved for "no change" and is never produced for a pitch
- Out-of-range pitches follow the RangePolicy: FAIL raises OutOfMtsRange,
  CLAMP saturates, SKIP leaves the note out and records its key

Checksum:
- XOR of the bytes between F0 and the checksum, masked to 7 bits; available
  on every message, appended for the bulk dump and on request elsewhere

RPN helpers (CC 101/100 select, CC 6/38 data):
- Tuning program (0, 3), tuning bank (0, 4), channel fine (0, 1) and coarse (0, 2) tuning
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import ClassVar, Iterable, List, Optional, Sequence, Tuple, Union

import consts
import utils
from errors import OutOfMtsRange
from midi import ChannelMessage, rpn_messages
from tuning import Tuning

logger = logging.getLogger(__name__)

ALL_CHANNELS = (1 << consts.NUM_MIDI_CHANNELS) - 1
MTS_MAX_SEMITONES = consts.MIDI_MAX + (consts.MTS_FRACTION_RESOLUTION - 2) / consts.MTS_FRACTION_RESOLUTION


class MtsMessageKind(enum.Enum):
    SINGLE_NOTE_TUNING_CHANGE = "single-note-tuning-change"
    SCALE_OCTAVE_1_BYTE = "scale-octave-1-byte"
    SCALE_OCTAVE_2_BYTE = "scale-octave-2-byte"
    BULK_TUNING_DUMP = "bulk-tuning-dump"


class RangePolicy(enum.Enum):
    FAIL = "fail"
    CLAMP = "clamp"
    SKIP = "skip"


class ScaleOctaveFormat(enum.Enum):
    ONE_BYTE = 1
    TWO_BYTE = 2


def sysex_checksum(data: Iterable[int]) -> int:
    """XOR checksum of the bytes after F0 (exclusive of checksum and F7)."""
    checksum = 0
    for byte in data:
        checksum ^= byte
    return checksum & consts.DATA_BYTE_MASK


def _check_data_byte(name: str, value: int) -> None:
    if not 0 <= value <= consts.DATA_BYTE_MASK:
        raise ValueError(f"{name} must be in 0..127, got {value}")


@dataclass(frozen=True)
class MtsNoteTuning:
    """Key to retune and its 3-byte absolute pitch (note, fraction MSB, fraction LSB)."""
    key: int
    note: int
    msb: int
    lsb: int

    @property
    def fraction(self) -> int:
        return (self.msb << 7) | self.lsb

    @property
    def semitones(self) -> float:
        return self.note + self.fraction / consts.MTS_FRACTION_RESOLUTION

    def to_bytes(self) -> bytes:
        return bytes([self.note, self.msb, self.lsb])


def quantize_semitones(semitones: float, policy: RangePolicy = RangePolicy.FAIL,
                       key: Optional[int] = None) -> Optional[Tuple[int, int, int]]:
    """(note, msb, lsb) of an absolute pitch; None when skipped by policy."""
    # float noise below MIDI note 0 (e.g. -1e-14) still counts as note 0
    lower = -consts.CENTS_EPSILON / consts.CENTS_PER_SEMITONE
    if not (lower <= semitones <= MTS_MAX_SEMITONES):
        if policy is RangePolicy.FAIL:
            raise OutOfMtsRange(semitones, 0.0, MTS_MAX_SEMITONES, key=key)
        if policy is RangePolicy.SKIP:
            return None
    semitones = min(max(semitones, 0.0), MTS_MAX_SEMITONES)

    note = math.floor(semitones)
    value = round((semitones - note) * consts.MTS_FRACTION_RESOLUTION)
    if value == consts.MTS_FRACTION_RESOLUTION:
        note += 1
        value = 0
    if note > consts.MIDI_MAX or (note == consts.MIDI_MAX and value >= consts.MTS_FRACTION_RESOLUTION - 1):
        # Rounded into the reserved 7F 7F 7F pattern
        note, value = consts.MIDI_MAX, consts.MTS_FRACTION_RESOLUTION - 2
    return note, value >> 7, value & consts.DATA_BYTE_MASK


def _note_tunings(tuning: Tuning, keys: Optional[Iterable[int]],
                  policy: RangePolicy) -> Tuple[List[MtsNoteTuning], List[int]]:
    if keys is None:
        keys = [k for k in tuning.keys() if consts.MIDI_MIN <= k <= consts.MIDI_MAX]
    changes, skipped = [], []
    for key in keys:
        if not consts.MIDI_MIN <= key <= consts.MIDI_MAX:
            raise OutOfMtsRange(key, consts.MIDI_MIN, consts.MIDI_MAX, unit="key")
        quantized = quantize_semitones(utils.convert_hz_to_midi(tuning.frequency_of(key)), policy, key)
        if quantized is None:
            logger.warning("Key %d lies outside the MTS range and was skipped", key)
            skipped.append(key)
            continue
        changes.append(MtsNoteTuning(key, *quantized))
    return changes, skipped


class _SysexMessage:
    """Shared framing: body() holds the bytes between F0 and the checksum."""

    kind: ClassVar[MtsMessageKind]
    always_checksum: ClassVar[bool] = False

    def body(self) -> bytes:
        raise NotImplementedError

    @property
    def checksum(self) -> int:
        return sysex_checksum(self.body())

    def to_bytes(self) -> bytes:
        body = self.body()
        trailer = bytes([sysex_checksum(body)]) if (self.always_checksum or self.append_checksum) else b""
        return bytes([consts.SYSEX_START]) + body + trailer + bytes([consts.SYSEX_END])

    def hex(self) -> str:
        return " ".join(f"{b:02X}" for b in self.to_bytes())


# --- Single Note Tuning Change ---

@dataclass(frozen=True)
class SingleNoteTuningChangeOptions:
    device_id: int = consts.DEVICE_ID_BROADCAST
    tuning_program: int = 0
    bank: Optional[int] = None
    realtime: bool = True
    range_policy: RangePolicy = RangePolicy.FAIL
    append_checksum: bool = False


@dataclass(frozen=True)
class SingleNoteTuningChangeMessage(_SysexMessage):
    changes: Tuple[MtsNoteTuning, ...]
    device_id: int = consts.DEVICE_ID_BROADCAST
    tuning_program: int = 0
    bank: Optional[int] = None
    realtime: bool = True
    append_checksum: bool = False

    kind: ClassVar[MtsMessageKind] = MtsMessageKind.SINGLE_NOTE_TUNING_CHANGE

    def __post_init__(self):
        if len(self.changes) > consts.MTS_MAX_CHANGES_PER_MESSAGE:
            raise ValueError(f"At most {consts.MTS_MAX_CHANGES_PER_MESSAGE} changes per message, "
                             f"got {len(self.changes)}")
        _check_data_byte("device_id", self.device_id)
        _check_data_byte("tuning_program", self.tuning_program)
        if self.bank is not None:
            _check_data_byte("bank", self.bank)

    def body(self) -> bytes:
        header = [consts.UNIVERSAL_REALTIME if self.realtime else consts.UNIVERSAL_NON_REALTIME,
                  self.device_id, consts.MTS_SUB_ID_1]
        if self.bank is None:
            header += [consts.MTS_SINGLE_NOTE_TUNING_CHANGE, self.tuning_program]
        else:
            header += [consts.MTS_SINGLE_NOTE_TUNING_CHANGE_BANK, self.bank, self.tuning_program]
        header.append(len(self.changes))
        payload = b"".join(bytes([c.key]) + c.to_bytes() for c in self.changes)
        return bytes(header) + payload


@dataclass
class SingleNoteTuningChange:
    """All messages needed to retune a set of keys, plus the keys skipped as out of range."""
    messages: List[SingleNoteTuningChangeMessage]
    out_of_range_keys: List[int] = field(default_factory=list)

    def to_bytes(self) -> bytes:
        return b"".join(m.to_bytes() for m in self.messages)


def single_note_tuning_change(tuning: Tuning, keys: Optional[Iterable[int]] = None,
                              options: Optional[SingleNoteTuningChangeOptions] = None) -> SingleNoteTuningChange:
    """Encode the tuning of keys (default: every mapped MIDI key) in chunks of 127 changes."""
    options = options or SingleNoteTuningChangeOptions()
    bank = options.bank
    if not options.realtime and bank is None:
        bank = 0  # the non-realtime form only exists with a bank byte
    changes, skipped = _note_tunings(tuning, keys, options.range_policy)
    step = consts.MTS_MAX_CHANGES_PER_MESSAGE
    messages = [
        SingleNoteTuningChangeMessage(tuple(changes[i:i + step]), options.device_id, options.tuning_program,
                                      bank, options.realtime, options.append_checksum)
        for i in range(0, len(changes), step)
    ]
    return SingleNoteTuningChange(messages, skipped)


# --- Scale/Octave Tuning ---

@dataclass(frozen=True)
class ScaleOctaveTuningOptions:
    device_id: int = consts.DEVICE_ID_BROADCAST
    channels: int = ALL_CHANNELS
    format: ScaleOctaveFormat = ScaleOctaveFormat.ONE_BYTE
    realtime: bool = False
    range_policy: RangePolicy = RangePolicy.FAIL
    append_checksum: bool = False


def _encode_octave_value(cents: float, fmt: ScaleOctaveFormat, policy: RangePolicy,
                         pitch_class: int) -> Optional[int]:
    if fmt is ScaleOctaveFormat.ONE_BYTE:
        lower, upper = -consts.MTS_ONE_BYTE_CENTER, consts.MTS_ONE_BYTE_CENTER - 1
        value = round(cents) + consts.MTS_ONE_BYTE_CENTER
        max_value = consts.DATA_BYTE_MASK
    else:
        lower = -consts.CENTS_PER_SEMITONE
        upper = consts.CENTS_PER_SEMITONE * (consts.MTS_TWO_BYTE_CENTER - 1) / consts.MTS_TWO_BYTE_CENTER
        value = round((cents + consts.CENTS_PER_SEMITONE) / (2 * consts.CENTS_PER_SEMITONE)
                      * consts.MTS_FRACTION_RESOLUTION)
        max_value = consts.MTS_FRACTION_RESOLUTION - 1
    if 0 <= value <= max_value:
        return value
    if policy is RangePolicy.FAIL:
        raise OutOfMtsRange(cents, lower, upper, unit="cents", key=pitch_class)
    if policy is RangePolicy.SKIP:
        return None
    return min(max(value, 0), max_value)


@dataclass(frozen=True)
class ScaleOctaveTuningMessage(_SysexMessage):
    """Deviation in cents of each pitch class C .. B from 12-TET, applied to every octave."""
    values: Tuple[int, ...]
    format: ScaleOctaveFormat = ScaleOctaveFormat.ONE_BYTE
    device_id: int = consts.DEVICE_ID_BROADCAST
    channels: int = ALL_CHANNELS
    realtime: bool = False
    append_checksum: bool = False
    out_of_range_pitch_classes: Tuple[int, ...] = ()

    def __post_init__(self):
        if len(self.values) != consts.SEMITONES_PER_OCTAVE:
            raise ValueError(f"Expected {consts.SEMITONES_PER_OCTAVE} pitch-class values, got {len(self.values)}")
        if not 0 <= self.channels <= ALL_CHANNELS:
            raise ValueError(f"Channel mask must fit in 16 bits, got {self.channels:#x}")
        _check_data_byte("device_id", self.device_id)

    @property
    def kind(self) -> MtsMessageKind:
        if self.format is ScaleOctaveFormat.ONE_BYTE:
            return MtsMessageKind.SCALE_OCTAVE_1_BYTE
        return MtsMessageKind.SCALE_OCTAVE_2_BYTE

    @classmethod
    def from_deviations(cls, deviations: Sequence[float],
                        options: Optional[ScaleOctaveTuningOptions] = None) -> "ScaleOctaveTuningMessage":
        options = options or ScaleOctaveTuningOptions()
        values, skipped = [], []
        centre = (consts.MTS_ONE_BYTE_CENTER if options.format is ScaleOctaveFormat.ONE_BYTE
                  else consts.MTS_TWO_BYTE_CENTER)
        for pitch_class, cents in enumerate(deviations):
            value = _encode_octave_value(cents, options.format, options.range_policy, pitch_class)
            if value is None:
                logger.warning("Pitch class %d (%+.3fc) is outside the scale/octave range; left untuned",
                               pitch_class, cents)
                skipped.append(pitch_class)
                value = centre
            values.append(value)
        return cls(tuple(values), options.format, options.device_id, options.channels, options.realtime,
                   options.append_checksum, tuple(skipped))

    @classmethod
    def from_tuning(cls, tuning: Tuning, options: Optional[ScaleOctaveTuningOptions] = None,
                    base_key: int = consts.MIDI_C4) -> "ScaleOctaveTuningMessage":
        """Deviations of keys base_key .. base_key+11 from 12-TET, sorted by pitch class."""
        deviations = [0.0] * consts.SEMITONES_PER_OCTAVE
        for key in range(base_key, base_key + consts.SEMITONES_PER_OCTAVE):
            if key not in tuning.mapping:
                continue
            semitones = utils.convert_hz_to_midi(tuning.frequency_of(key))
            deviations[key % consts.SEMITONES_PER_OCTAVE] = (semitones - key) * consts.CENTS_PER_SEMITONE
        return cls.from_deviations(deviations, options)

    def body(self) -> bytes:
        sub_id_2 = (consts.MTS_SCALE_OCTAVE_1_BYTE if self.format is ScaleOctaveFormat.ONE_BYTE
                    else consts.MTS_SCALE_OCTAVE_2_BYTE)
        header = bytes([
            consts.UNIVERSAL_REALTIME if self.realtime else consts.UNIVERSAL_NON_REALTIME,
            self.device_id, consts.MTS_SUB_ID_1, sub_id_2,
            (self.channels >> 14) & 0x03,
            (self.channels >> 7) & consts.DATA_BYTE_MASK,
            self.channels & consts.DATA_BYTE_MASK,
        ])
        if self.format is ScaleOctaveFormat.ONE_BYTE:
            payload = bytes(self.values)
        else:
            payload = b"".join(bytes([v >> 7, v & consts.DATA_BYTE_MASK]) for v in self.values)
        return header + payload


# --- Bulk Tuning Dump ---

@dataclass(frozen=True)
class BulkTuningDumpMessage(_SysexMessage):
    """Full 128-key tuning program; unmapped or skipped keys are sent as 7F 7F 7F."""
    name: str
    entries: Tuple[Optional[MtsNoteTuning], ...]
    tuning_program: int = 0
    device_id: int = consts.DEVICE_ID_BROADCAST
    out_of_range_keys: Tuple[int, ...] = ()

    kind: ClassVar[MtsMessageKind] = MtsMessageKind.BULK_TUNING_DUMP
    always_checksum: ClassVar[bool] = True
    append_checksum: ClassVar[bool] = True

    def __post_init__(self):
        if len(self.entries) != consts.NUM_MIDI_KEYS:
            raise ValueError(f"Expected {consts.NUM_MIDI_KEYS} entries, got {len(self.entries)}")
        _check_data_byte("tuning_program", self.tuning_program)
        _check_data_byte("device_id", self.device_id)

    @classmethod
    def from_tuning(cls, tuning: Tuning, name: str = "", tuning_program: int = 0,
                    device_id: int = consts.DEVICE_ID_BROADCAST,
                    range_policy: RangePolicy = RangePolicy.FAIL) -> "BulkTuningDumpMessage":
        changes, skipped = _note_tunings(tuning, None, range_policy)
        entries: List[Optional[MtsNoteTuning]] = [None] * consts.NUM_MIDI_KEYS
        for change in changes:
            entries[change.key] = change
        return cls(name or tuning.scale.name, tuple(entries), tuning_program, device_id, tuple(skipped))

    @property
    def name_bytes(self) -> bytes:
        ascii_name = "".join(c if 32 <= ord(c) < 127 else "?" for c in self.name)
        return ascii_name[:consts.MTS_NAME_LENGTH].ljust(consts.MTS_NAME_LENGTH).encode("ascii")

    def body(self) -> bytes:
        header = bytes([consts.UNIVERSAL_NON_REALTIME, self.device_id, consts.MTS_SUB_ID_1,
                        consts.MTS_BULK_DUMP, self.tuning_program])
        payload = b"".join(bytes(consts.MTS_NO_CHANGE) if e is None else e.to_bytes() for e in self.entries)
        return header + self.name_bytes + payload


MtsMessage = Union[SingleNoteTuningChangeMessage, ScaleOctaveTuningMessage, BulkTuningDumpMessage]


# --- RPN and pitch bend helpers ---

def tuning_program_change(channel: int, program: int) -> List[ChannelMessage]:
    _check_data_byte("tuning program", program)
    return rpn_messages(channel, consts.RPN_TUNING_PROGRAM, program)


def tuning_bank_change(channel: int, bank: int) -> List[ChannelMessage]:
    _check_data_byte("tuning bank", bank)
    return rpn_messages(channel, consts.RPN_TUNING_BANK, bank)


def channel_fine_tuning(channel: int, cents: float) -> List[ChannelMessage]:
    """Channel fine tuning RPN, 14 bits over -100 .. +100 cents."""
    value = round(consts.PITCH_BEND_CENTER + cents / consts.CENTS_PER_SEMITONE * consts.PITCH_BEND_CENTER)
    if not 0 <= value <= consts.PITCH_BEND_MAX:
        raise OutOfMtsRange(cents, -consts.CENTS_PER_SEMITONE, consts.CENTS_PER_SEMITONE, unit="cents")
    return rpn_messages(channel, consts.RPN_CHANNEL_FINE_TUNING, value >> 7, value & consts.DATA_BYTE_MASK)


def channel_coarse_tuning(channel: int, semitones: int) -> List[ChannelMessage]:
    """Channel coarse tuning RPN, whole semitones -64 .. +63."""
    value = consts.MTS_ONE_BYTE_CENTER + semitones
    if not 0 <= value <= consts.DATA_BYTE_MASK:
        raise OutOfMtsRange(semitones, -consts.MTS_ONE_BYTE_CENTER, consts.MTS_ONE_BYTE_CENTER - 1)
    return rpn_messages(channel, consts.RPN_CHANNEL_COARSE_TUNING, value)


def pitch_bend_value(semitones: float, bend_range: float = consts.DEFAULT_PITCH_BEND_RANGE) -> int:
    """14-bit pitch-bend value for an offset in semitones, clamped to 0 .. 16383."""
    value = round(consts.PITCH_BEND_CENTER + semitones / bend_range * consts.PITCH_BEND_CENTER)
    return min(max(value, 0), consts.PITCH_BEND_MAX)


def pitch_bend_message(channel: int, semitones: float,
                       bend_range: float = consts.DEFAULT_PITCH_BEND_RANGE) -> ChannelMessage:
    return ChannelMessage.pitch_bend(channel, pitch_bend_value(semitones, bend_range))
