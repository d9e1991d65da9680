from __future__ import annotations

import math
from dataclasses import dataclass, field

from poem_rhythm.models import NoteDuration, ValidationResult

EPSILON = 1e-6


@dataclass
class RhythmDiagnostics:
    fatal: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.fatal


def calculate_total_duration(durations: list[NoteDuration]) -> float:
    return sum((d.beats for d in durations), 0.0)


def count_measures(durations: list[NoteDuration], beats_per_measure: float) -> float:
    """Fractional number of measures; 0.0 when the measure size is not positive."""
    if not beats_per_measure > 0:
        return 0.0
    return calculate_total_duration(durations) / beats_per_measure


def durations_to_beats(durations: list[NoteDuration]) -> list[float]:
    return [d.beats for d in durations]


def validate_rhythm(durations: list[NoteDuration]) -> ValidationResult:
    issues: list[str] = []
    for idx, d in enumerate(durations):
        if not d.beats > 0:
            issues.append(f"Entry {idx} has {d.beats:g} beats; durations must be positive.")
        elif math.isinf(d.beats):
            issues.append(f"Entry {idx} has {d.beats:g} beats; durations must be finite.")
        if d.is_rest and d.syllable_index != -1:
            issues.append(f"Rest at entry {idx} has syllable index {d.syllable_index}; rests must use -1.")
        if not d.is_rest and d.syllable_index < 0:
            issues.append(f"Note at entry {idx} has syllable index {d.syllable_index}; notes need an index >= 0.")
    return ValidationResult(valid=not issues, issues=issues)


def rhythm_diagnostics(durations: list[NoteDuration], beats_per_measure: float) -> RhythmDiagnostics:
    report = RhythmDiagnostics(fatal=list(validate_rhythm(durations).issues))
    report.warnings.extend(_syllable_order_warnings(durations))
    if beats_per_measure > 0:
        report.warnings.extend(_barline_warnings(durations, beats_per_measure))
    return report


def _syllable_order_warnings(durations: list[NoteDuration]) -> list[str]:
    warnings: list[str] = []
    previous = -1
    for idx, d in enumerate(durations):
        if d.is_rest or d.syllable_index < 0:
            continue
        # Split notes repeat their index; only a step backwards or a gap is suspicious.
        if d.syllable_index < previous:
            warnings.append(f"Syllable index goes backwards at entry {idx} ({previous} -> {d.syllable_index}).")
        elif d.syllable_index > previous + 1:
            warnings.append(f"Syllable indices skip from {previous} to {d.syllable_index} at entry {idx}.")
        previous = max(previous, d.syllable_index)
    return warnings


def _barline_warnings(durations: list[NoteDuration], beats_per_measure: float) -> list[str]:
    warnings: list[str] = []
    cursor = 0.0
    for idx, d in enumerate(durations):
        if not math.isfinite(d.beats):
            continue
        start_bar = int((cursor + EPSILON) // beats_per_measure)
        end_bar = int((cursor + d.beats - EPSILON) // beats_per_measure)
        if d.beats > 0 and end_bar > start_bar:
            warnings.append(f"Entry {idx} crosses a barline (starts at beat {cursor:g}, lasts {d.beats:g}).")
        cursor += d.beats

    leftover = cursor % beats_per_measure
    if EPSILON < leftover < beats_per_measure - EPSILON:
        warnings.append(
            f"Final measure is incomplete: {leftover:g} of {beats_per_measure:g} beats filled."
        )
    return warnings
