"""Retuning planners for synthesizers that only offer per-channel pitch bend.

Each key of a Tuning is played as the nearest 12-TET MIDI note plus a
channel-wide pitch bend. Notes needing different bends must sound on
different channels, so the planners distribute notes over a limited pool.

Live (just-in-time) planning:
- RetuningPlanner.note_on / note_off produce the channel messages for one event
- A channel already holding the required bend is shared when the same MIDI
  note is not sounding on it
- Otherwise the idle channel whose last note ended earliest is reused
- When no channel is free a ChannelExhausted warning is reported and the
  ClashPolicy decides: STOP the oldest channel, BLOCK the new note or IGNORE
  the clash and retune the oldest channel under the sounding notes
- The bookkeeping lives in a RetuningState owned by the caller; use one
  state per synthesizer and do not share it between threads

Ahead-of-time planning:
- plan_ahead_of_time groups a fixed key set by bend value once and
  emits the channel bends up front

Deviations beyond the pitch-bend range are clamped and reported with a
DeviationClamped warning; neither warning aborts planning.
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, List, Optional, Set, Tuple

import consts
import utils
from errors import ChannelExhausted, DeviationClamped, TuningWarning
from midi import ChannelMessage
from mts import pitch_bend_value
from tuning import Tuning

logger = logging.getLogger(__name__)


class ClashPolicy(enum.Enum):
    STOP = "stop"
    BLOCK = "block"
    IGNORE = "ignore"


@dataclass(frozen=True)
class SynthProfile:
    """Channels available on the target synthesizer and its pitch-bend range in semitones."""
    num_channels: int = consts.NUM_MIDI_CHANNELS
    pitch_bend_range: float = consts.DEFAULT_PITCH_BEND_RANGE
    first_channel: int = 0

    def __post_init__(self):
        if self.num_channels < 1:
            raise ValueError(f"num_channels must be positive, got {self.num_channels}")
        if not 0 <= self.first_channel or self.first_channel + self.num_channels > consts.NUM_MIDI_CHANNELS:
            raise ValueError(f"Channels {self.first_channel}..{self.first_channel + self.num_channels - 1} "
                             f"exceed the {consts.NUM_MIDI_CHANNELS} MIDI channels")
        if self.pitch_bend_range <= 0:
            raise ValueError(f"pitch_bend_range must be positive, got {self.pitch_bend_range}")

    def midi_channel(self, index: int) -> int:
        return self.first_channel + index


@dataclass(frozen=True)
class NoteAssignment:
    """Where and how a key sounds: MIDI channel, 12-TET note, bend value and applied deviation (cents)."""
    key: Hashable
    channel: int
    note: int
    bend: int
    deviation: float


@dataclass
class PlanResult:
    assignment: Optional[NoteAssignment]
    stopped: List[NoteAssignment] = field(default_factory=list)
    messages: List[ChannelMessage] = field(default_factory=list)
    warnings: List[TuningWarning] = field(default_factory=list)


@dataclass
class ChannelState:
    bend: Optional[int] = None
    active: Dict[Hashable, NoteAssignment] = field(default_factory=dict)
    last_release: Optional[int] = None

    def sounds_note(self, note: int) -> bool:
        return any(a.note == note for a in self.active.values())


class RetuningState:
    """Mutable channel bookkeeping of one synthesizer target."""

    def __init__(self, num_channels: int):
        self.channels = [ChannelState() for _ in range(num_channels)]
        self.active: Dict[Hashable, Tuple[int, NoteAssignment]] = {}
        self.started: Dict[Hashable, int] = {}
        self.clock = 0

    def tick(self) -> int:
        self.clock += 1
        return self.clock

    def active_keys(self) -> List[Hashable]:
        return list(self.active)


def _detune(tuning: Tuning, key, profile: SynthProfile) -> Tuple[int, float, int, List[TuningWarning]]:
    """(note, applied deviation in cents, bend value, warnings) for key."""
    semitones = utils.convert_hz_to_midi(tuning.frequency_of(key))
    note = min(max(round(semitones), consts.MIDI_MIN), consts.MIDI_MAX)
    deviation = (semitones - note) * consts.CENTS_PER_SEMITONE
    warnings: List[TuningWarning] = []
    range_cents = profile.pitch_bend_range * consts.CENTS_PER_SEMITONE
    if abs(deviation) > range_cents:
        applied = math.copysign(range_cents, deviation)
        warning = DeviationClamped(key, deviation, applied)
        logger.warning("%s", warning)
        warnings.append(warning)
        deviation = applied
    bend = pitch_bend_value(deviation / consts.CENTS_PER_SEMITONE, profile.pitch_bend_range)
    return note, deviation, bend, warnings


class RetuningPlanner:
    """Just-in-time channel allocation for a tuning on a pitch-bend synthesizer."""

    def __init__(self, tuning: Tuning, profile: Optional[SynthProfile] = None,
                 policy: ClashPolicy = ClashPolicy.STOP):
        self.tuning = tuning
        self.profile = profile or SynthProfile()
        self.policy = policy

    def new_state(self) -> RetuningState:
        return RetuningState(self.profile.num_channels)

    def _free_channel(self, state: RetuningState, note: int, bend: int) -> Optional[int]:
        for index, channel in enumerate(state.channels):
            if channel.bend == bend and not channel.sounds_note(note):
                return index
        idle = [i for i, c in enumerate(state.channels) if not c.active]
        if not idle:
            return None

        def release_order(index: int) -> Tuple[int, int]:
            released = state.channels[index].last_release
            return (-1 if released is None else released), index

        return min(idle, key=release_order)

    def _oldest_channel(self, state: RetuningState) -> int:
        oldest_key = min(state.started, key=state.started.get)
        return state.active[oldest_key][0]

    def _release(self, state: RetuningState, key, velocity: int) -> Tuple[NoteAssignment, ChannelMessage]:
        index, assignment = state.active.pop(key)
        state.started.pop(key, None)
        channel = state.channels[index]
        del channel.active[key]
        if not channel.active:
            channel.last_release = state.tick()
        return assignment, ChannelMessage.note_off(assignment.channel, assignment.note, velocity)

    def note_on(self, state: RetuningState, key, velocity: int = 100) -> PlanResult:
        """Assign key to a channel and return the messages that start it."""
        result = PlanResult(None)
        if key in state.active:
            stopped, message = self._release(state, key, 0)
            result.stopped.append(stopped)
            result.messages.append(message)

        note, deviation, bend, warnings = _detune(self.tuning, key, self.profile)
        result.warnings.extend(warnings)

        index = self._free_channel(state, note, bend)
        if index is None:
            warning = ChannelExhausted(key, deviation, self.profile.num_channels)
            logger.warning("%s", warning)
            result.warnings.append(warning)
            if self.policy is ClashPolicy.BLOCK:
                return result
            index = self._oldest_channel(state)
            if self.policy is ClashPolicy.STOP:
                for sounding in list(state.channels[index].active):
                    stopped, message = self._release(state, sounding, 0)
                    result.stopped.append(stopped)
                    result.messages.append(message)

        channel = state.channels[index]
        midi_channel = self.profile.midi_channel(index)
        if channel.bend != bend:
            result.messages.append(ChannelMessage.pitch_bend(midi_channel, bend))
            channel.bend = bend

        assignment = NoteAssignment(key, midi_channel, note, bend, deviation)
        channel.active[key] = assignment
        state.active[key] = (index, assignment)
        state.started[key] = state.tick()
        result.assignment = assignment
        result.messages.append(ChannelMessage.note_on(midi_channel, note, velocity))
        return result

    def note_off(self, state: RetuningState, key, velocity: int = 0) -> PlanResult:
        """Stop key if it is sounding; unknown keys produce an empty result."""
        if key not in state.active:
            return PlanResult(None)
        assignment, message = self._release(state, key, velocity)
        return PlanResult(assignment, messages=[message])


# --- Ahead-of-time planning ---

@dataclass
class AheadOfTimePlan:
    profile: SynthProfile
    assignments: Dict[Hashable, NoteAssignment]
    channel_bends: List[int]
    messages: List[ChannelMessage]
    unassigned_keys: List[Hashable] = field(default_factory=list)
    warnings: List[TuningWarning] = field(default_factory=list)

    @property
    def num_channels_used(self) -> int:
        return len(self.channel_bends)

    def note_on(self, key, velocity: int = 100) -> Optional[ChannelMessage]:
        assignment = self.assignments.get(key)
        if assignment is None:
            return None
        return ChannelMessage.note_on(assignment.channel, assignment.note, velocity)

    def note_off(self, key, velocity: int = 0) -> Optional[ChannelMessage]:
        assignment = self.assignments.get(key)
        if assignment is None:
            return None
        return ChannelMessage.note_off(assignment.channel, assignment.note, velocity)


def plan_ahead_of_time(tuning: Tuning, profile: Optional[SynthProfile] = None,
                       keys: Optional[Iterable[int]] = None) -> AheadOfTimePlan:
    """Group keys by bend value, one group per channel; two keys sharing a MIDI note never share a channel."""
    profile = profile or SynthProfile()
    keys = tuning.keys() if keys is None else list(keys)

    groups: List[Tuple[int, Set[int], List[Tuple[Hashable, int, float]]]] = []
    warnings: List[TuningWarning] = []
    for key in keys:
        note, deviation, bend, detune_warnings = _detune(tuning, key, profile)
        warnings.extend(detune_warnings)
        for group_bend, notes, members in groups:
            if group_bend == bend and note not in notes:
                notes.add(note)
                members.append((key, note, deviation))
                break
        else:
            groups.append((bend, {note}, [(key, note, deviation)]))

    assignments: Dict[Hashable, NoteAssignment] = {}
    unassigned: List[Hashable] = []
    bends: List[int] = []
    messages: List[ChannelMessage] = []
    for index, (bend, _, members) in enumerate(groups):
        if index >= profile.num_channels:
            for key, _, deviation in members:
                warning = ChannelExhausted(key, deviation, profile.num_channels)
                logger.warning("%s", warning)
                warnings.append(warning)
                unassigned.append(key)
            continue
        midi_channel = profile.midi_channel(index)
        bends.append(bend)
        messages.append(ChannelMessage.pitch_bend(midi_channel, bend))
        for key, note, deviation in members:
            assignments[key] = NoteAssignment(key, midi_channel, note, bend, deviation)

    return AheadOfTimePlan(profile, assignments, bends, messages, unassigned, warnings)
