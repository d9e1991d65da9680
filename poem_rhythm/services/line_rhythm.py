from __future__ import annotations

import logging
import re
from typing import Iterable

from poem_rhythm.logging_utils import log_event
from poem_rhythm.models import (
    DEFAULT_BREATH_REST_BEATS,
    DEFAULT_TEMPO_BPM,
    FitToMeasureOptions,
    LineRequest,
    LineRhythm,
    NoteDuration,
    StanzaRhythmResponse,
    TimeSignature,
)
from poem_rhythm.services.measure_fitting import fit_to_measure
from poem_rhythm.services.meter import get_beats_per_measure
from poem_rhythm.services.rhythm_mapping import (
    DEFAULT_POLICY,
    DurationPolicy,
    align_stress_to_beats,
    create_iambic_rhythm,
    insert_breath_rests,
    map_line_to_rhythm,
)
from poem_rhythm.services.rhythm_validation import (
    RhythmDiagnostics,
    calculate_total_duration,
    rhythm_diagnostics,
)

logger = logging.getLogger(__name__)


class RhythmGenerationFailedError(ValueError):
    def __init__(self, message: str, diagnostics: list[str]):
        super().__init__(message)
        self.diagnostics = diagnostics


def _finish(
    durations: list[NoteDuration],
    breath_points: list[int],
    rest_beats: float,
    beats_per_measure: int,
    options: FitToMeasureOptions,
) -> tuple[list[NoteDuration], RhythmDiagnostics]:
    breathed = insert_breath_rests(durations, breath_points, rest_beats)
    fitted = fit_to_measure(breathed, beats_per_measure, options)
    return fitted, rhythm_diagnostics(fitted, beats_per_measure)


def build_line_rhythm(
    stress_pattern: str,
    time_signature: TimeSignature,
    tempo: float = DEFAULT_TEMPO_BPM,
    breath_points: Iterable[int] = (),
    rest_beats: float = DEFAULT_BREATH_REST_BEATS,
    options: FitToMeasureOptions | None = None,
    policy: DurationPolicy = DEFAULT_POLICY,
) -> LineRhythm:
    """Turn one line's stress pattern into measure-fitted, validated durations.

    If the mapped rhythm fails validation the line is retried with a plain
    iambic rhythm of the same length before giving up.
    """
    opts = options or FitToMeasureOptions()
    pattern = re.sub(r"\s+", "", stress_pattern)
    points = list(breath_points)
    beats_per_measure = get_beats_per_measure(time_signature)

    log_event(
        logger,
        "line_rhythm_started",
        syllable_count=len(pattern),
        time_signature=time_signature,
        tempo=tempo,
        breath_point_count=len(points),
    )

    durations = map_line_to_rhythm(pattern, time_signature, tempo, policy)
    if opts.preserve_stress_alignment:
        durations = align_stress_to_beats(durations, pattern, time_signature)
    fitted, report = _finish(durations, points, rest_beats, beats_per_measure, opts)

    used_fallback = False
    if report.fatal:
        log_event(logger, "validation_failed", level=logging.WARNING, stage="line_rhythm", diagnostics=report.fatal)
        # Same tempo, default policy.
        fallback = create_iambic_rhythm(len(pattern), time_signature, tempo)
        fitted, report = _finish(fallback, points, rest_beats, beats_per_measure, opts)
        used_fallback = True
        log_event(logger, "line_rhythm_fallback", level=logging.WARNING, pattern="iambic", valid=report.valid)
        if report.fatal:
            log_event(logger, "line_rhythm_failed", level=logging.ERROR, diagnostics=report.fatal)
            raise RhythmGenerationFailedError(
                "Couldn't build a valid rhythm for this line, even with an iambic fallback.",
                report.fatal,
            )

    total = calculate_total_duration(fitted)
    log_event(
        logger,
        "line_rhythm_completed",
        entry_count=len(fitted),
        total_beats=total,
        used_fallback=used_fallback,
        warning_count=len(report.warnings),
    )
    return LineRhythm(
        stress_pattern=pattern,
        time_signature=time_signature,
        tempo=tempo,
        durations=fitted,
        total_beats=total,
        measure_count=total / beats_per_measure,
        warnings=report.warnings,
        used_fallback=used_fallback,
    )


def build_line_rhythm_from_request(request: LineRequest, policy: DurationPolicy = DEFAULT_POLICY) -> LineRhythm:
    return build_line_rhythm(
        request.stress_pattern,
        request.time_signature,
        tempo=request.tempo,
        breath_points=request.breath_points,
        rest_beats=request.rest_beats,
        options=request.options,
        policy=policy,
    )


def build_stanza_rhythm(lines: list[LineRequest], policy: DurationPolicy = DEFAULT_POLICY) -> StanzaRhythmResponse:
    rhythms = [build_line_rhythm_from_request(line, policy) for line in lines]
    warnings = [f"Line {idx + 1}: {warning}" for idx, line in enumerate(rhythms) for warning in line.warnings]
    warnings.extend(f"Line {idx + 1}: used iambic fallback rhythm." for idx, line in enumerate(rhythms) if line.used_fallback)
    return StanzaRhythmResponse(
        lines=rhythms,
        total_beats=sum(line.total_beats for line in rhythms),
        warnings=warnings,
    )
