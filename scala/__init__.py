"""Scala .scl / .kbm codec.

Reads and writes the Huygens-Fokker Scala formats and converts them to and
from the Scale / KeyboardMapping model.

.scl Format:
- Lines starting with '!' are comments
- First non-comment line: description (may be empty)
- Next: number of pitches, then one pitch per line
- A pitch containing '.' is in cents; otherwise it is a ratio n/d or an integer n
- Unison is implicit; the last pitch is the period
- Anything after the first token of a pitch line is ignored

.kbm Format (fixed field order, comments allowed anywhere):
- Map size, first MIDI note, last MIDI note, middle note, reference note,
  reference frequency, formal octave degree, then `map size` entries
- 'x' marks an unmapped key; trailing entries may be omitted
- Map size 0 is the linear mapping

Exactness:
- Ratio pitches stay exact; cents pitches remember how many decimals they
  were written with, so a parse / format cycle reproduces the pitch lines
- Writing precision is an explicit parameter (default consts.DEFAULT_CENTS_PRECISION)

Every failure raises MalformedScalaFile with the 1-based line number.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import consts
from errors import InvalidRatio, InvalidKeyboardMapping, MalformedScalaFile
from pitch import Ratio
from scales import ExplicitScale, Scale
from tuning import KeyboardMapping, Tuning

logger = logging.getLogger(__name__)

KBM_FIELD_NAMES = (
    "Size of map",
    "First MIDI note number to retune",
    "Last MIDI note number to retune",
    "Middle note where the first entry of the mapping is mapped to",
    "Reference note for which frequency is given",
    "Frequency to tune the above note to",
    "Scale degree to consider as formal octave",
)
REFERENCE_NOTE_FIELD = 4
FORMAL_OCTAVE_FIELD = 6


@dataclass(frozen=True)
class ScalaPitch:
    """One pitch line of a .scl file."""
    ratio: Ratio
    decimals: Optional[int] = None
    is_cents: bool = False

    @classmethod
    def from_ratio(cls, ratio: Ratio) -> "ScalaPitch":
        """Exact ratios are written as n/d, others in cents."""
        return cls(ratio, None, not ratio.is_exact)

    @classmethod
    def from_cents(cls, cents: float, decimals: Optional[int] = None) -> "ScalaPitch":
        return cls(Ratio.from_cents(cents), decimals, True)

    @classmethod
    def parse(cls, token: str) -> "ScalaPitch":
        """Parse a single pitch token; raises ValueError (or InvalidRatio) on bad input."""
        if "." in token:
            cents = float(token)
            decimals = len(token.split(".", 1)[1])
            return cls.from_cents(cents, decimals)
        if "/" in token:
            num_str, den_str = token.split("/", 1)
            return cls(Ratio(int(num_str), int(den_str)))
        return cls(Ratio(int(token)))

    @property
    def cents(self) -> float:
        return self.ratio.cents

    def format(self, cents_precision: int = consts.DEFAULT_CENTS_PRECISION) -> str:
        if not self.is_cents:
            return f"{self.ratio.numerator}/{self.ratio.denominator}"
        decimals = self.decimals if self.decimals is not None else cents_precision
        if decimals == 0:
            return f"{round(self.cents)}."
        return f"{self.cents:.{decimals}f}"


@dataclass
class ScalaScale:
    """Text-level image of a .scl file."""
    description: str
    pitches: List[ScalaPitch]
    comments: List[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.pitches)


@dataclass
class ScalaKeyboardMap:
    """Text-level image of a .kbm file."""
    size: int
    first_note: int
    last_note: int
    middle_note: int
    reference_note: int
    reference_frequency: float
    formal_octave: int
    entries: List[Optional[int]] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)
    # Source line of each header field, then of each written entry (empty when not parsed)
    field_lines: List[int] = field(default_factory=list, compare=False, repr=False)

    def line_of(self, index: int) -> Optional[int]:
        return self.field_lines[index] if index < len(self.field_lines) else None


# --- .scl ---

def parse_scl(text: str) -> ScalaScale:
    """Parse the contents of a .scl file."""
    description: Optional[str] = None
    count: Optional[int] = None
    comments: List[str] = []
    pitches: List[ScalaPitch] = []
    lineno = 0

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if line.startswith(consts.SCALA_COMMENT):
            if description is None:
                comments.append(line[1:].strip())
            continue
        if description is None:
            description = line
            continue
        if not line:
            continue
        token = line.split()[0]
        column = raw.index(token) + 1
        if count is None:
            try:
                count = int(token)
            except ValueError:
                raise MalformedScalaFile(f"Invalid number of notes {token!r}", lineno, column)
            if count < 1:
                raise MalformedScalaFile(f"Number of notes must be positive, got {count}", lineno, column)
            continue
        if len(pitches) == count:
            raise MalformedScalaFile(f"Extra pitch {token!r} after {count} notes", lineno, column)
        try:
            pitch = ScalaPitch.parse(token)
        except ValueError as e:
            reason = e.reason if isinstance(e, InvalidRatio) else "not a ratio or cents value"
            raise MalformedScalaFile(f"Invalid pitch {token!r}: {reason}", lineno, column)
        previous = pitches[-1].cents if pitches else 0.0
        if pitch.cents <= previous + consts.CENTS_EPSILON:
            raise MalformedScalaFile(
                f"Pitch {token!r} ({pitch.cents:.6f}c) does not lie above the previous pitch "
                f"({previous:.6f}c)", lineno, column)
        pitches.append(pitch)

    if description is None:
        raise MalformedScalaFile("Missing description line", lineno + 1)
    if count is None:
        raise MalformedScalaFile("Missing number of notes", lineno + 1)
    if len(pitches) < count:
        raise MalformedScalaFile(f"Expected {count} pitches, found {len(pitches)}", lineno + 1)

    logger.debug("Parsed .scl %r with %d pitches", description, count)
    return ScalaScale(description, pitches, comments)


def format_scl(scala_scale: ScalaScale, cents_precision: int = consts.DEFAULT_CENTS_PRECISION) -> str:
    """Render a ScalaScale as .scl text (one trailing newline)."""
    lines = [f"{consts.SCALA_COMMENT} {c}".rstrip() for c in scala_scale.comments]
    lines.append(consts.SCALA_COMMENT)
    lines.append(scala_scale.description)
    lines.append(str(scala_scale.size))
    lines.append(consts.SCALA_COMMENT)
    lines.extend(p.format(cents_precision) for p in scala_scale.pitches)
    return "\n".join(lines) + "\n"


def scale_to_scala(scale: Scale, description: Optional[str] = None,
                   comments: Optional[List[str]] = None) -> ScalaScale:
    """Exact steps become n/d pitches, irrational ones cents pitches.

    Steps of a scale read from a .scl file keep the number of decimals they
    were written with.
    """
    steps = scale.steps()
    decimals = getattr(scale, "cents_decimals", None) or [None] * len(steps)
    pitches = [ScalaPitch.from_ratio(r) if d is None else ScalaPitch(r, d, True)
               for r, d in zip(steps, decimals)]
    return ScalaScale(scale.name if description is None else description, pitches, list(comments or []))


def scala_to_scale(scala_scale: ScalaScale) -> ExplicitScale:
    return ExplicitScale.from_scala_steps([p.ratio for p in scala_scale.pitches], name=scala_scale.description,
                                          cents_decimals=[p.decimals if p.is_cents else None
                                                          for p in scala_scale.pitches])


def read_scl(path: str) -> ScalaScale:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return parse_scl(f.read())


def write_scl(path: str, scale: Union[Scale, ScalaScale],
              cents_precision: int = consts.DEFAULT_CENTS_PRECISION) -> None:
    scala_scale = scale if isinstance(scale, ScalaScale) else scale_to_scala(scale)
    with open(path, "w", encoding="utf-8") as f:
        f.write(format_scl(scala_scale, cents_precision))


# --- .kbm ---

def _kbm_fields(text: str) -> List[Tuple[int, int, str]]:
    """(line number, column, first token) of every non-comment, non-blank line."""
    fields = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith(consts.SCALA_COMMENT):
            continue
        token = line.split()[0]
        fields.append((lineno, raw.index(token) + 1, token))
    return fields


def parse_kbm(text: str) -> ScalaKeyboardMap:
    """Parse the contents of a .kbm file."""
    fields = _kbm_fields(text)
    last_line = len(text.splitlines()) + 1
    if len(fields) < len(KBM_FIELD_NAMES):
        missing = KBM_FIELD_NAMES[len(fields)]
        raise MalformedScalaFile(f"Missing field: {missing}", last_line)

    header = []
    for index, (lineno, column, token) in enumerate(fields[:len(KBM_FIELD_NAMES)]):
        try:
            value = float(token) if index == 5 else int(token)
        except ValueError:
            raise MalformedScalaFile(f"Invalid value {token!r} for {KBM_FIELD_NAMES[index]}", lineno, column)
        header.append(value)
    size, first, last, middle, reference, frequency, formal_octave = header

    header_line = fields[0][0]
    if size < 0:
        raise MalformedScalaFile(f"Size of map must not be negative, got {size}", header_line)
    if first > last:
        raise MalformedScalaFile(f"First note {first} lies above last note {last}", fields[1][0])
    if frequency <= 0:
        raise MalformedScalaFile(f"Reference frequency must be positive, got {frequency}", fields[5][0])

    entries: List[Optional[int]] = []
    for lineno, column, token in fields[len(KBM_FIELD_NAMES):]:
        if len(entries) == size:
            raise MalformedScalaFile(f"Extra mapping entry {token!r} after {size} entries", lineno, column)
        if token.lower() == consts.KBM_UNMAPPED:
            entries.append(None)
            continue
        try:
            entries.append(int(token))
        except ValueError:
            raise MalformedScalaFile(f"Invalid mapping entry {token!r}", lineno, column)
    entries.extend([None] * (size - len(entries)))

    logger.debug("Parsed .kbm with %d entries", size)
    return ScalaKeyboardMap(size, first, last, middle, reference, frequency, formal_octave, entries,
                            field_lines=[lineno for lineno, _, _ in fields])


def format_kbm(kbm: ScalaKeyboardMap) -> str:
    """Render a ScalaKeyboardMap as commented .kbm text."""
    values = [str(kbm.size), str(kbm.first_note), str(kbm.last_note), str(kbm.middle_note),
              str(kbm.reference_note), f"{kbm.reference_frequency:.6f}", str(kbm.formal_octave)]
    lines = [f"{consts.SCALA_COMMENT} {c}".rstrip() for c in kbm.comments]
    for name, value in zip(KBM_FIELD_NAMES, values):
        lines.append(f"{consts.SCALA_COMMENT} {name}:")
        lines.append(value)
    lines.append(f"{consts.SCALA_COMMENT} Mapping.")
    lines.extend(consts.KBM_UNMAPPED if e is None else str(e) for e in kbm.entries)
    return "\n".join(lines) + "\n"


def mapping_to_kbm(mapping: KeyboardMapping, formal_octave: Optional[int] = None) -> ScalaKeyboardMap:
    """Mapping without a repeating pattern is written as one pattern spanning its key range."""
    if mapping.pattern is not None:
        entries = list(mapping.pattern)
        octave = mapping.formal_octave or 0
    else:
        span = mapping.last_key - mapping.first_key + 1
        entries = [None] * span
        for key, degree in mapping.items():
            entries[(key - mapping.root_key) % span] = degree
        octave = 0
    if formal_octave is not None:
        octave = formal_octave
    return ScalaKeyboardMap(len(entries), mapping.first_key, mapping.last_key, mapping.root_key,
                            mapping.reference_key, mapping.reference_frequency, octave, entries)


def _mapping_error_line(kbm: ScalaKeyboardMap) -> Optional[int]:
    """Line of the first repeated entry, else of the formal octave field."""
    seen = set()
    for index, degree in enumerate(kbm.entries):
        if degree is None:
            continue
        if degree in seen:
            return kbm.line_of(len(KBM_FIELD_NAMES) + index)
        seen.add(degree)
    return kbm.line_of(FORMAL_OCTAVE_FIELD)


def kbm_to_mapping(kbm: ScalaKeyboardMap) -> KeyboardMapping:
    try:
        return KeyboardMapping.from_pattern(kbm.entries, kbm.formal_octave, kbm.middle_note,
                                            kbm.reference_note, kbm.reference_frequency,
                                            (kbm.first_note, kbm.last_note))
    except InvalidKeyboardMapping as e:
        raise MalformedScalaFile(f"Keyboard map is not usable: {e}", _mapping_error_line(kbm))


def read_kbm(path: str) -> ScalaKeyboardMap:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return parse_kbm(f.read())


def write_kbm(path: str, mapping: Union[KeyboardMapping, ScalaKeyboardMap]) -> None:
    kbm = mapping if isinstance(mapping, ScalaKeyboardMap) else mapping_to_kbm(mapping)
    with open(path, "w", encoding="utf-8") as f:
        f.write(format_kbm(kbm))


def load_tuning(scl_text: str, kbm_text: Optional[str] = None, reference_key: int = consts.MIDI_A4,
                reference_frequency: float = consts.DEFAULT_DIAPASON,
                root_key: Optional[int] = None) -> Tuning:
    """Tuning from .scl text and optional .kbm text (linear mapping otherwise)."""
    scale = scala_to_scale(parse_scl(scl_text))
    if kbm_text is None:
        return Tuning.create(scale, reference_key, reference_frequency, root_key=root_key)
    kbm = parse_kbm(kbm_text)
    mapping = kbm_to_mapping(kbm)
    try:
        return Tuning(scale, mapping)
    except InvalidKeyboardMapping as e:
        raise MalformedScalaFile(f"Keyboard map does not fit the scale: {e}", kbm.line_of(REFERENCE_NOTE_FIELD))
