from __future__ import annotations

import logging
import math

from poem_rhythm.logging_utils import log_event
from poem_rhythm.models import FitToMeasureOptions, NoteDuration

EPSILON = 1e-9

logger = logging.getLogger(__name__)


def fit_to_measure(
    durations: list[NoteDuration],
    beats_per_measure: float,
    options: FitToMeasureOptions | None = None,
) -> list[NoteDuration]:
    """Pack ``durations`` into measures of ``beats_per_measure`` beats.

    Entries crossing a barline are split into tied parts that keep the
    syllable index (unless ``allow_split_notes`` is off, in which case they
    overflow the bar whole). The last measure is completed with a single rest
    when ``pad_with_rests`` is on. A measure size that is not a positive
    finite number leaves the sequence unchanged.
    """
    opts = options or FitToMeasureOptions()
    if not durations or not 0 < beats_per_measure < math.inf:
        return list(durations)

    result: list[NoteDuration] = []
    used = 0.0
    split_count = 0

    for duration in durations:
        if not math.isfinite(duration.beats) or duration.beats <= EPSILON:
            # Empty, negative or non-finite: left in place for validate_rhythm to report.
            result.append(duration)
            continue
        if not opts.allow_split_notes:
            result.append(duration)
            used = (used + duration.beats) % beats_per_measure
            continue

        remaining = duration.beats
        parts = 0
        while remaining > EPSILON:
            room = beats_per_measure - used
            chunk = remaining if remaining <= room + EPSILON else room
            result.append(duration.model_copy(update={"beats": chunk}) if chunk != duration.beats else duration)
            parts += 1
            used += chunk
            remaining -= chunk
            if used >= beats_per_measure - EPSILON:
                used = 0.0
        if parts > 1:
            split_count += parts - 1

    padding = 0.0
    if opts.pad_with_rests and EPSILON < used < beats_per_measure - EPSILON:
        padding = beats_per_measure - used
        result.append(NoteDuration(syllable_index=-1, beats=padding, is_rest=True))

    log_event(
        logger,
        "measure_fit_completed",
        level=logging.DEBUG,
        input_count=len(durations),
        output_count=len(result),
        beats_per_measure=beats_per_measure,
        split_count=split_count,
        padding_beats=padding,
    )
    return result
