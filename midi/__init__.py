"""MIDI 1.0 channel voice messages.

Plain value types for the messages the retuning planner and the MTS helpers
emit: note on/off, polyphonic and channel pressure, control and program
change, pitch bend. Messages encode to raw bytes and parse back; no port or
driver handling lives here.
"""

import enum
from dataclasses import dataclass
from typing import List, Optional, Sequence

import consts


class ChannelMessageKind(enum.Enum):
    NOTE_OFF = 0x80
    NOTE_ON = 0x90
    POLYPHONIC_KEY_PRESSURE = 0xA0
    CONTROL_CHANGE = 0xB0
    PROGRAM_CHANGE = 0xC0
    CHANNEL_PRESSURE = 0xD0
    PITCH_BEND_CHANGE = 0xE0

    @property
    def num_data_bytes(self) -> int:
        if self in (ChannelMessageKind.PROGRAM_CHANGE, ChannelMessageKind.CHANNEL_PRESSURE):
            return 1
        return 2


def _check_data(name: str, value: int, upper: int = consts.DATA_BYTE_MASK) -> None:
    if not 0 <= value <= upper:
        raise ValueError(f"{name} must be in 0..{upper}, got {value}")


@dataclass(frozen=True)
class ChannelMessage:
    """A channel voice message; data2 is unused for 1-byte kinds, pitch bend uses value."""
    kind: ChannelMessageKind
    channel: int
    data1: int = 0
    data2: int = 0

    def __post_init__(self):
        _check_data("channel", self.channel, consts.NUM_MIDI_CHANNELS - 1)
        _check_data("data1", self.data1)
        _check_data("data2", self.data2)

    # --- Constructors ---

    @classmethod
    def note_on(cls, channel: int, key: int, velocity: int) -> "ChannelMessage":
        return cls(ChannelMessageKind.NOTE_ON, channel, key, velocity)

    @classmethod
    def note_off(cls, channel: int, key: int, velocity: int = 0) -> "ChannelMessage":
        return cls(ChannelMessageKind.NOTE_OFF, channel, key, velocity)

    @classmethod
    def control_change(cls, channel: int, controller: int, value: int) -> "ChannelMessage":
        return cls(ChannelMessageKind.CONTROL_CHANGE, channel, controller, value)

    @classmethod
    def program_change(cls, channel: int, program: int) -> "ChannelMessage":
        return cls(ChannelMessageKind.PROGRAM_CHANGE, channel, program)

    @classmethod
    def pitch_bend(cls, channel: int, value: int) -> "ChannelMessage":
        """14-bit bend, 8192 = centre."""
        _check_data("pitch bend", value, consts.PITCH_BEND_MAX)
        return cls(ChannelMessageKind.PITCH_BEND_CHANGE, channel, value & consts.DATA_BYTE_MASK, value >> 7)

    # --- Views ---

    @property
    def key(self) -> int:
        return self.data1

    @property
    def velocity(self) -> int:
        return self.data2

    @property
    def value(self) -> int:
        """Pitch-bend value (14 bits) or the last data byte of other kinds."""
        if self.kind is ChannelMessageKind.PITCH_BEND_CHANGE:
            return (self.data2 << 7) | self.data1
        if self.kind.num_data_bytes == 1:
            return self.data1
        return self.data2

    @property
    def status(self) -> int:
        return self.kind.value | self.channel

    def to_bytes(self) -> bytes:
        if self.kind.num_data_bytes == 1:
            return bytes([self.status, self.data1])
        return bytes([self.status, self.data1, self.data2])

    @classmethod
    def parse(cls, raw: Sequence[int]) -> "ChannelMessage":
        """Parse one complete channel message from raw bytes."""
        data = bytes(raw)
        if not data:
            raise ValueError("Empty MIDI message")
        status = data[0]
        try:
            kind = ChannelMessageKind(status & 0xF0)
        except ValueError:
            raise ValueError(f"Not a channel voice message: status 0x{status:02X}")
        expected = 1 + kind.num_data_bytes
        if len(data) != expected:
            raise ValueError(f"{kind.name} expects {expected} bytes, got {len(data)}")
        data2 = data[2] if kind.num_data_bytes == 2 else 0
        return cls(kind, status & 0x0F, data[1], data2)

    def __str__(self) -> str:
        return f"{self.kind.name} ch={self.channel} " + " ".join(f"{b:02X}" for b in self.to_bytes())


def to_bytes(messages: Sequence[ChannelMessage]) -> bytes:
    """Concatenate the raw bytes of several messages."""
    return b"".join(m.to_bytes() for m in messages)


def rpn_messages(channel: int, parameter: Sequence[int], msb: int, lsb: Optional[int] = None) -> List[ChannelMessage]:
    """Select a registered parameter (CC 101/100) and set it (CC 6, optional CC 38)."""
    messages = [
        ChannelMessage.control_change(channel, 101, parameter[0]),
        ChannelMessage.control_change(channel, 100, parameter[1]),
        ChannelMessage.control_change(channel, 6, msb),
    ]
    if lsb is not None:
        messages.append(ChannelMessage.control_change(channel, 38, lsb))
    return messages
