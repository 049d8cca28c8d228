"""Constants and metadata for the MICROTUNE tuning engine.

This module centralizes all constants, configuration values, and metadata used across
the MICROTUNE packages for scale construction, tuning queries and codec output.

Program Metadata:
- Version information and authorship details
- Licensing information

Mathematical Constants:
- Cents per octave and per semitone
- Cents tolerance used for equality and ordering of pitches
- Default frequency references (A4 = 440 Hz)
- Bounds for the continued-fraction approximation search

MIDI and MTS Constants:
- MIDI note ranges, reference keys and channel counts
- MIDI Tuning Standard sysex bytes, sub-IDs and fixed-point resolutions
- Pitch-bend centre and default bend range

Scala Format:
- Default cents precision for .scl output
- Sentinel for unmapped keyboard-map entries

Codecs receive their formatting configuration as explicit parameters whose defaults come from here.
"""

from fractions import Fraction
from typing import Union

# Metadata
__program_name__ = "MICROTUNE"
__version__ = "1.0.0"
__author__ = "MICROTUNE contributors"
__license__ = "MIT"  # See LICENSE file

# Constants
CENTS_PER_OCTAVE = 1200.0
CENTS_PER_SEMITONE = 100.0
DEFAULT_DIAPASON = 440.0
DEFAULT_OCTAVE = Fraction(2, 1)
SEMITONES_PER_OCTAVE = 12

# Equality / ordering tolerance for Ratio and Pitch, in cents
CENTS_EPSILON = 1e-6

# Continued-fraction search bounds
DEFAULT_MAX_DENOMINATOR = 10000
MAX_CF_DEPTH = 64
DEFAULT_ODD_LIMIT = 11
DEFAULT_MAX_DIVISIONS = 1000

# MIDI
MIDI_MIN = 0
MIDI_MAX = 127
MIDI_A4 = 69
MIDI_C4 = 60
NUM_MIDI_KEYS = 128
NUM_MIDI_CHANNELS = 16
DATA_BYTE_MASK = 0x7F

# Pitch bend
PITCH_BEND_CENTER = 8192
PITCH_BEND_MAX = 16383
DEFAULT_PITCH_BEND_RANGE = 2.0  # semitones

# MIDI Tuning Standard
SYSEX_START = 0xF0
SYSEX_END = 0xF7
UNIVERSAL_NON_REALTIME = 0x7E
UNIVERSAL_REALTIME = 0x7F
DEVICE_ID_BROADCAST = 0x7F
MTS_SUB_ID_1 = 0x08
MTS_BULK_DUMP = 0x01
MTS_SINGLE_NOTE_TUNING_CHANGE = 0x02
MTS_SINGLE_NOTE_TUNING_CHANGE_BANK = 0x07
MTS_SCALE_OCTAVE_1_BYTE = 0x08
MTS_SCALE_OCTAVE_2_BYTE = 0x09
MTS_FRACTION_RESOLUTION = 1 << 14  # 14-bit fraction of a semitone
MTS_MAX_CHANGES_PER_MESSAGE = 127
MTS_NO_CHANGE = (0x7F, 0x7F, 0x7F)
MTS_NAME_LENGTH = 16
MTS_ONE_BYTE_CENTER = 64  # 1-byte scale/octave format: 0..127 = -64..+63 cents
MTS_TWO_BYTE_CENTER = 1 << 13  # 2-byte scale/octave format: 0..16383 = -100..+100 cents

# Registered parameter numbers (MSB, LSB)
RPN_CHANNEL_FINE_TUNING = (0x00, 0x01)
RPN_CHANNEL_COARSE_TUNING = (0x00, 0x02)
RPN_TUNING_PROGRAM = (0x00, 0x03)
RPN_TUNING_BANK = (0x00, 0x04)

# Scala format
DEFAULT_CENTS_PRECISION = 6
SCALA_COMMENT = "!"
KBM_UNMAPPED = "x"

# Tables
DEFAULT_DUMP_PRECISION = 3

# Type definitions
Numeric = Union[int, float, Fraction]
