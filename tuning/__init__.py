"""Keyboard mappings and tunings: the link between key numbers and frequencies.

KeyboardMapping:
- Associates integer keys with scale degrees (injective, not necessarily surjective)
- Linear, Scala-style repeating pattern or explicit dictionary construction
- Carries the reference key, its frequency and the root key of the pattern

Tuning:
- Scale + KeyboardMapping; immutable once built
- Forward query: frequency_of(key) = reference frequency * ratio(degree) / ratio(reference degree)
- Inverse query: nearest_key_for(frequency) with signed residual in cents,
  vectorised with numpy over the precomputed key pitches

Layout Search:
- Generator-based isomorphic layouts for rank-2 temperaments and equal
  divisions: each key position receives the degree reachable by the fewest
  generator steps (circle-of-fifths style keyboards for meantone, porcupine, 31-EDO)
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

import consts
import utils
from errors import EmptyMapping, InvalidKeyboardMapping, UnmappedKey
from pitch import Pitch, Ratio, as_ratio
from scales import EqualDivision, Scale, ScaleKind

logger = logging.getLogger(__name__)

KeyRange = Tuple[int, int]
DEFAULT_KEY_RANGE: KeyRange = (consts.MIDI_MIN, consts.MIDI_MAX)


class KeyApproximation(NamedTuple):
    key: int
    deviation: float


@dataclass(frozen=True)
class ReferencePitch:
    """Reference key and its frequency, e.g. 69@440Hz."""
    key: int
    frequency: float

    @classmethod
    def parse(cls, text: str) -> "ReferencePitch":
        """Parse KEY[@FREQ[Hz]] where KEY is a MIDI number or note name (A4, C#3)."""
        s = str(text).strip()
        key_part, sep, freq_part = s.partition("@")
        key_str = key_part.strip()
        try:
            key = int(key_str) if re.fullmatch(r"-?\d+", key_str) else utils.convert_note_name_to_midi(key_str)
        except ValueError:
            raise InvalidKeyboardMapping(f"Invalid reference key in {text!r}")
        if not sep:
            return cls(key, utils.convert_midi_to_hz(key))
        freq_str = re.sub(r"\s*hz$", "", freq_part.strip(), flags=re.IGNORECASE)
        try:
            frequency = float(freq_str)
        except ValueError:
            raise InvalidKeyboardMapping(f"Invalid reference frequency in {text!r}")
        if not math.isfinite(frequency) or frequency <= 0:
            raise InvalidKeyboardMapping(f"Reference frequency must be positive in {text!r}")
        return cls(key, frequency)

    def __str__(self) -> str:
        return f"{self.key}@{self.frequency:g}Hz"


class KeyboardMapping:
    """Injective map from key numbers to scale degrees plus the reference pitch."""

    def __init__(self, degrees: Dict[int, int], reference_key: int = consts.MIDI_A4,
                 reference_frequency: float = consts.DEFAULT_DIAPASON, root_key: Optional[int] = None,
                 key_range: Optional[KeyRange] = None, pattern: Optional[Sequence[Optional[int]]] = None,
                 formal_octave: Optional[int] = None):
        if not math.isfinite(reference_frequency) or reference_frequency <= 0:
            raise InvalidKeyboardMapping(f"Reference frequency must be positive, got {reference_frequency}")
        if key_range is None:
            key_range = (min(degrees), max(degrees)) if degrees else DEFAULT_KEY_RANGE
        if key_range[0] > key_range[1]:
            raise InvalidKeyboardMapping(f"Empty key range {key_range[0]}..{key_range[1]}")

        seen: Dict[int, int] = {}
        for key in sorted(degrees):
            degree = degrees[key]
            if degree in seen:
                raise InvalidKeyboardMapping(
                    f"Keys {seen[degree]} and {key} both map to scale degree {degree}")
            seen[degree] = key

        self._degrees = dict(degrees)
        self.reference_key = reference_key
        self.reference_frequency = float(reference_frequency)
        self.root_key = reference_key if root_key is None else root_key
        self.first_key, self.last_key = key_range
        self.pattern = list(pattern) if pattern is not None else None
        self.formal_octave = formal_octave

    @classmethod
    def linear(cls, root_key: Optional[int] = None, reference_key: int = consts.MIDI_A4,
               reference_frequency: float = consts.DEFAULT_DIAPASON,
               key_range: KeyRange = DEFAULT_KEY_RANGE) -> "KeyboardMapping":
        """Key root_key + n plays degree n."""
        root = reference_key if root_key is None else root_key
        degrees = {key: key - root for key in range(key_range[0], key_range[1] + 1)}
        return cls(degrees, reference_key, reference_frequency, root, key_range, pattern=[], formal_octave=0)

    @classmethod
    def from_pattern(cls, pattern: Sequence[Optional[int]], formal_octave: int, root_key: int,
                     reference_key: int = consts.MIDI_A4, reference_frequency: float = consts.DEFAULT_DIAPASON,
                     key_range: KeyRange = DEFAULT_KEY_RANGE) -> "KeyboardMapping":
        """Repeating pattern in the Scala .kbm sense.

        Key root_key + q * len(pattern) + r plays pattern[r] + q * formal_octave;
        None entries leave the key unmapped. An empty pattern is the linear mapping.
        """
        if not pattern:
            return cls.linear(root_key, reference_key, reference_frequency, key_range)
        size = len(pattern)
        degrees = {}
        for key in range(key_range[0], key_range[1] + 1):
            periods, index = divmod(key - root_key, size)
            entry = pattern[index]
            if entry is not None:
                degrees[key] = entry + periods * formal_octave
        return cls(degrees, reference_key, reference_frequency, root_key, key_range,
                   pattern=pattern, formal_octave=formal_octave)

    @classmethod
    def from_dict(cls, degrees: Dict[int, int], reference_key: int = consts.MIDI_A4,
                  reference_frequency: float = consts.DEFAULT_DIAPASON,
                  root_key: Optional[int] = None) -> "KeyboardMapping":
        return cls(degrees, reference_key, reference_frequency, root_key)

    @property
    def key_range(self) -> KeyRange:
        return self.first_key, self.last_key

    def degree_of(self, key: int) -> Optional[int]:
        return self._degrees.get(key)

    def _pattern_degree(self, key: int) -> Optional[int]:
        if self.pattern is None:
            return None
        if not self.pattern:
            return key - self.root_key
        periods, index = divmod(key - self.root_key, len(self.pattern))
        entry = self.pattern[index]
        return None if entry is None else entry + periods * self.formal_octave

    @property
    def reference_degree(self) -> Optional[int]:
        """Degree of the reference key; it may lie outside the mapped key range."""
        degree = self._degrees.get(self.reference_key)
        return degree if degree is not None else self._pattern_degree(self.reference_key)

    def mapped_keys(self) -> List[int]:
        return sorted(self._degrees)

    def items(self) -> Iterator[Tuple[int, int]]:
        for key in self.mapped_keys():
            yield key, self._degrees[key]

    def with_reference(self, reference_key: Optional[int] = None,
                       reference_frequency: Optional[float] = None) -> "KeyboardMapping":
        return KeyboardMapping(
            self._degrees,
            self.reference_key if reference_key is None else reference_key,
            self.reference_frequency if reference_frequency is None else reference_frequency,
            self.root_key, self.key_range, self.pattern, self.formal_octave)

    def __contains__(self, key: int) -> bool:
        return key in self._degrees

    def __len__(self) -> int:
        return len(self._degrees)

    def __repr__(self) -> str:
        return (f"<KeyboardMapping keys={self.first_key}..{self.last_key} mapped={len(self._degrees)} "
                f"root={self.root_key} ref={self.reference_key}@{self.reference_frequency:g}Hz>")


class Tuning:
    """A scale played through a keyboard mapping; answers key <-> frequency queries."""

    def __init__(self, scale: Scale, mapping: KeyboardMapping):
        reference_degree = mapping.reference_degree
        if reference_degree is None:
            raise InvalidKeyboardMapping(
                f"Reference key {mapping.reference_key} is not mapped to any scale degree")
        self.scale = scale
        self.mapping = mapping
        self._reference_cents = scale.ratio_of(reference_degree).cents

        keys = mapping.mapped_keys()
        self._keys = np.array(keys, dtype=np.int64)
        self._cents = np.array(
            [scale.ratio_of(mapping.degree_of(k)).cents - self._reference_cents for k in keys],
            dtype=np.float64)

    @classmethod
    def create(cls, scale: Scale, reference_key: int = consts.MIDI_A4,
               reference_frequency: float = consts.DEFAULT_DIAPASON,
               key_range: KeyRange = DEFAULT_KEY_RANGE, root_key: Optional[int] = None) -> "Tuning":
        """Linear tuning: root_key (default: reference_key) plays degree 0."""
        mapping = KeyboardMapping.linear(root_key, reference_key, reference_frequency, key_range)
        return cls(scale, mapping)

    @property
    def reference_frequency(self) -> float:
        return self.mapping.reference_frequency

    def keys(self) -> List[int]:
        return [int(k) for k in self._keys]

    def degree_of(self, key: int) -> int:
        degree = self.mapping.degree_of(key)
        if degree is None:
            raise UnmappedKey(key)
        return degree

    def pitch_of(self, key: int) -> Pitch:
        """Pitch of key relative to the reference frequency."""
        return Pitch(self.scale.ratio_of(self.degree_of(key)).cents - self._reference_cents)

    def frequency_of(self, key: int) -> float:
        return self.pitch_of(key).to_hz(self.mapping.reference_frequency)

    def frequencies(self) -> Dict[int, float]:
        return {key: self.frequency_of(key) for key in self.keys()}

    def nearest_key_for_pitch(self, pitch: Pitch) -> KeyApproximation:
        """Closest mapped key to a pitch relative to the reference frequency."""
        if self._keys.size == 0:
            raise EmptyMapping()
        index = int(np.argmin(np.abs(self._cents - pitch.cents)))
        deviation = float(pitch.cents - self._cents[index])
        if abs(deviation) <= consts.CENTS_EPSILON:
            deviation = 0.0
        return KeyApproximation(int(self._keys[index]), deviation)

    def nearest_key_for(self, frequency: float) -> KeyApproximation:
        """Closest mapped key to frequency and the signed deviation (target minus key) in cents."""
        return self.nearest_key_for_pitch(Pitch.from_hz(frequency, self.mapping.reference_frequency))

    def transposed(self, ratio) -> "Tuning":
        """Same scale and mapping, every frequency multiplied by ratio."""
        factor = as_ratio(ratio).value
        return Tuning(self.scale, self.mapping.with_reference(
            reference_frequency=self.mapping.reference_frequency * factor))

    def __repr__(self) -> str:
        return f"<Tuning {self.scale.name!r} {self.mapping!r}>"


# --- Layout search ---

def _default_generator_steps(scale: EqualDivision) -> int:
    """Best approximation of the perfect fifth in steps of the division."""
    return round(scale.divisions * Ratio(3, 2).cents / scale.period.cents)


def _generator_candidates(scale: Scale, generator_steps: Optional[int]) -> List[Tuple[int, int]]:
    """(generator count, degree index) pairs reachable inside one period."""
    if scale.kind is ScaleKind.RANK2:
        return [(count, index) for index, count in enumerate(scale.generator_counts)]
    if scale.kind is ScaleKind.EQUAL_DIVISION:
        n = scale.divisions
        g = _default_generator_steps(scale) if generator_steps is None else generator_steps
        best: Dict[int, int] = {}
        for count in sorted(range(-(n - 1), n), key=lambda c: (abs(c), c)):
            degree = (count * g) % n
            best.setdefault(degree, count)
        return [(count, degree) for degree, count in best.items()]
    raise InvalidKeyboardMapping(
        f"Layout search needs a rank-2 temperament or an equal division, got {scale.kind.value} scale")


def search_layout(scale: Scale, keys_per_period: int = consts.SEMITONES_PER_OCTAVE,
                  root_key: int = consts.MIDI_C4, reference_key: int = consts.MIDI_A4,
                  reference_frequency: float = consts.DEFAULT_DIAPASON,
                  key_range: KeyRange = DEFAULT_KEY_RANGE,
                  generator_steps: Optional[int] = None) -> KeyboardMapping:
    """Generator-based keyboard layout.

    Args:
        scale: Rank2Temperament or EqualDivision
        keys_per_period: Keys of the physical keyboard per period (12 for a piano)
        root_key: Key playing degree 0
        reference_key: Key tuned to reference_frequency
        reference_frequency: Frequency of reference_key in Hz
        key_range: Inclusive range of keys to map
        generator_steps: Generator in steps for equal divisions (default: best fifth)

    Returns:
        A pattern KeyboardMapping with formal octave = scale size.

    Each degree is placed at the key position nearest its pitch. When positions
    collide, the degree reached by the fewest generator steps wins; ties go to
    the smaller absolute count, then to the lower key position.
    """
    if keys_per_period < 1:
        raise InvalidKeyboardMapping(f"keys_per_period must be positive, got {keys_per_period}")
    candidates = []
    for count, degree in _generator_candidates(scale, generator_steps):
        raw = round(scale.ratio_of(degree).cents / scale.period.cents * keys_per_period)
        wrapped = raw >= keys_per_period
        position = raw % keys_per_period
        value = degree - scale.size if wrapped else degree
        candidates.append((abs(count), position, degree, value))
    candidates.sort()

    pattern: List[Optional[int]] = [None] * keys_per_period
    used_degrees = set()
    for _, position, degree, value in candidates:
        if pattern[position] is not None or degree in used_degrees:
            continue
        pattern[position] = value
        used_degrees.add(degree)

    unplaced = scale.size - len(used_degrees)
    if unplaced:
        logger.info("Layout search left %d of %d degrees without a key", unplaced, scale.size)
    return KeyboardMapping.from_pattern(pattern, scale.size, root_key, reference_key,
                                        reference_frequency, key_range)
