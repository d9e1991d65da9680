from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from poem_rhythm.logging_utils import log_event
from poem_rhythm.models import (
    DEFAULT_BREATH_REST_BEATS,
    DEFAULT_TEMPO_BPM,
    NoteDuration,
    RhythmContext,
    StressLevel,
    TimeSignature,
)
from poem_rhythm.services.meter import (
    beat_in_measure,
    get_beats_per_measure,
    get_strong_beats,
    is_compound_meter,
    is_strong_beat,
)

logger = logging.getLogger(__name__)

UNSTRESSED: StressLevel = "0"
PRIMARY: StressLevel = "1"
SECONDARY: StressLevel = "2"

MUSICAL_DURATIONS: tuple[float, ...] = (0.25, 0.375, 0.5, 0.75, 1.0, 1.5, 2.0)
ALIGNMENT_WINDOW_BEATS = 0.5


@dataclass(frozen=True)
class DurationPolicy:
    """Tunable heuristics behind :func:`stress_to_note_duration`.

    Only the orderings matter to callers: primary and secondary stress stay
    longer than unstressed syllables, strong beats never shorten a note, and a
    faster tempo never lengthens one.
    """

    base_durations: dict[str, float] = field(
        default_factory=lambda: {UNSTRESSED: 0.5, PRIMARY: 1.0, SECONDARY: 0.75}
    )
    compound_meter_scale: float = 0.5
    strong_beat_bonus: float = 1.25
    max_beats: float = 2.0
    fast_tempo_bpm: float = 140
    fast_tempo_scale: float = 0.9
    slow_tempo_bpm: float = 60
    slow_tempo_scale: float = 1.1
    grid: tuple[float, ...] = MUSICAL_DURATIONS


DEFAULT_POLICY = DurationPolicy()


def create_rhythm_context(time_signature: TimeSignature, tempo: float, position: float = 0) -> RhythmContext:
    return RhythmContext(time_signature=time_signature, tempo=tempo, position=position)


def normalize_stress(stress: object) -> StressLevel:
    """Map ``0/1/2`` (digit or int) to a stress level; anything else is unstressed."""
    if isinstance(stress, bool):
        return UNSTRESSED
    token = str(stress).strip() if isinstance(stress, (str, int)) else ""
    if token in (UNSTRESSED, PRIMARY, SECONDARY):
        return token  # type: ignore[return-value]
    return UNSTRESSED


def base_duration(stress: StressLevel, policy: DurationPolicy = DEFAULT_POLICY) -> float:
    return policy.base_durations[stress]


def meter_scale(time_signature: str, policy: DurationPolicy = DEFAULT_POLICY) -> float:
    return policy.compound_meter_scale if is_compound_meter(time_signature) else 1.0


def strong_beat_bonus(stress: StressLevel, context: RhythmContext, policy: DurationPolicy = DEFAULT_POLICY) -> float:
    if stress == PRIMARY and is_strong_beat(context.position, context.time_signature):
        return policy.strong_beat_bonus
    return 1.0


def tempo_scale(tempo: float, policy: DurationPolicy = DEFAULT_POLICY) -> float:
    if tempo > policy.fast_tempo_bpm:
        return policy.fast_tempo_scale
    if tempo < policy.slow_tempo_bpm:
        return policy.slow_tempo_scale
    return 1.0


def round_to_musical_duration(beats: float, grid: Iterable[float] = MUSICAL_DURATIONS) -> float:
    # min() keeps the first of equally close values, so ties snap to the shorter note.
    return min(sorted(grid), key=lambda value: abs(beats - value))


def stress_to_note_duration(
    stress: StressLevel | str | int,
    context: RhythmContext,
    policy: DurationPolicy = DEFAULT_POLICY,
) -> float:
    level = normalize_stress(stress)
    duration = base_duration(level, policy) * meter_scale(context.time_signature, policy)

    bonus = strong_beat_bonus(level, context, policy)
    if bonus > 1.0:
        duration = max(duration, min(duration * bonus, policy.max_beats))

    duration *= tempo_scale(context.tempo, policy)
    return round_to_musical_duration(duration, policy.grid)


def map_line_to_rhythm(
    stress_pattern: str,
    time_signature: TimeSignature,
    tempo: float = DEFAULT_TEMPO_BPM,
    policy: DurationPolicy = DEFAULT_POLICY,
) -> list[NoteDuration]:
    if not stress_pattern:
        return []

    measure_beats = get_beats_per_measure(time_signature)
    durations: list[NoteDuration] = []
    elapsed = 0.0
    for index, stress in enumerate(stress_pattern):
        context = create_rhythm_context(time_signature, tempo, elapsed % measure_beats)
        beats = stress_to_note_duration(stress, context, policy)
        durations.append(NoteDuration(syllable_index=index, beats=beats, is_rest=False))
        elapsed += beats

    log_event(
        logger,
        "line_mapped",
        level=logging.DEBUG,
        syllable_count=len(durations),
        time_signature=time_signature,
        tempo=tempo,
        total_beats=elapsed,
    )
    return durations


def insert_breath_rests(
    durations: list[NoteDuration],
    breath_points: Iterable[int],
    rest_beats: float = DEFAULT_BREATH_REST_BEATS,
) -> list[NoteDuration]:
    """Return a copy of ``durations`` with a rest after each breath point.

    Breath points index the input sequence; out-of-range points are skipped.
    """
    if not durations:
        return []

    rests_after: dict[int, int] = {}
    skipped: list[int] = []
    for point in breath_points:
        if 0 <= point < len(durations):
            rests_after[point] = rests_after.get(point, 0) + 1
        else:
            skipped.append(point)

    if skipped:
        log_event(logger, "breath_points_skipped", level=logging.DEBUG, skipped=skipped, sequence_length=len(durations))

    result: list[NoteDuration] = []
    for index, duration in enumerate(durations):
        result.append(duration)
        for _ in range(rests_after.get(index, 0)):
            result.append(NoteDuration(syllable_index=-1, beats=rest_beats, is_rest=True))
    return result


def _alternating_pattern(syllable_count: int, first: StressLevel, second: StressLevel) -> str:
    return "".join(first if i % 2 == 0 else second for i in range(max(0, syllable_count)))


def create_iambic_rhythm(
    syllable_count: int,
    time_signature: TimeSignature = "4/4",
    tempo: float = DEFAULT_TEMPO_BPM,
) -> list[NoteDuration]:
    return map_line_to_rhythm(_alternating_pattern(syllable_count, UNSTRESSED, PRIMARY), time_signature, tempo)


def create_trochaic_rhythm(
    syllable_count: int,
    time_signature: TimeSignature = "4/4",
    tempo: float = DEFAULT_TEMPO_BPM,
) -> list[NoteDuration]:
    return map_line_to_rhythm(_alternating_pattern(syllable_count, PRIMARY, UNSTRESSED), time_signature, tempo)


def _gap_to_next_strong_beat(beat: float, time_signature: str) -> float:
    measure_beats = get_beats_per_measure(time_signature)
    strong = get_strong_beats(time_signature)
    candidates = [*strong, *(b + measure_beats for b in strong)]
    return min((b - beat for b in candidates if b > beat), default=0.0)


def align_stress_to_beats(
    durations: list[NoteDuration],
    stress_pattern: str,
    time_signature: TimeSignature,
) -> list[NoteDuration]:
    """Nudge primary-stress syllables onto strong beats by stretching the entry before them.

    A stressed syllable is only delayed when it starts off a strong beat and
    the next strong beat is at most half a beat away. Best effort: anything
    further out is left where it is.
    """
    if not durations or not stress_pattern:
        return list(durations)

    result: list[NoteDuration] = []
    cursor = 0.0
    adjustments = 0
    for duration in durations:
        stress = None
        if not duration.is_rest and 0 <= duration.syllable_index < len(stress_pattern):
            stress = normalize_stress(stress_pattern[duration.syllable_index])

        beat = beat_in_measure(cursor, time_signature)
        if stress == PRIMARY and result and not is_strong_beat(beat, time_signature):
            gap = _gap_to_next_strong_beat(beat, time_signature)
            if 0 < gap <= ALIGNMENT_WINDOW_BEATS:
                previous = result[-1]
                result[-1] = previous.model_copy(update={"beats": previous.beats + gap})
                cursor += gap
                adjustments += 1

        result.append(duration)
        cursor += duration.beats

    if adjustments:
        log_event(logger, "stress_alignment_adjusted", level=logging.DEBUG, adjustments=adjustments)
    return result
