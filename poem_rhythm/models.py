from __future__ import annotations

import math
import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


TimeSignature = Literal["4/4", "3/4", "6/8", "2/4"]
StressLevel = Literal["0", "1", "2"]

DEFAULT_TEMPO_BPM = 100
DEFAULT_BREATH_REST_BEATS = 0.5
MAX_STRESS_PATTERN_LENGTH = 512
MAX_FIT_ENTRIES = 1024
MAX_FIT_TOTAL_BEATS = 1024
MAX_BEATS_PER_MEASURE = 64
MIN_BEATS_PER_MEASURE = 1 / 64


def normalize_time_signature(value: object) -> object:
    if not isinstance(value, str):
        return value
    m = re.fullmatch(r"\s*(\d{1,2})\s*/\s*(\d{1,2})\s*", value)
    if not m:
        return value.strip()
    return f"{int(m.group(1))}/{int(m.group(2))}"


def _require_finite_beats(durations: list[NoteDuration]) -> None:
    for idx, d in enumerate(durations):
        if not math.isfinite(d.beats):
            raise ValueError(f"durations[{idx}].beats must be a finite number.")


class RhythmContext(BaseModel):
    """Where a syllable sits: meter, tempo and beat offset inside the current measure."""

    model_config = ConfigDict(frozen=True)

    time_signature: TimeSignature
    tempo: float
    position: float = 0

    @field_validator("time_signature", mode="before")
    @classmethod
    def clean_time_signature(cls, value: object) -> object:
        return normalize_time_signature(value)


class NoteDuration(BaseModel):
    """One rhythmic slot. Rests carry ``syllable_index == -1``."""

    model_config = ConfigDict(frozen=True)

    syllable_index: int
    beats: float
    is_rest: bool = False


class FitToMeasureOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    pad_with_rests: bool = True
    allow_split_notes: bool = True
    preserve_stress_alignment: bool = True


class ValidationResult(BaseModel):
    valid: bool
    issues: list[str] = Field(default_factory=list)


class LineRequest(BaseModel):
    stress_pattern: str = Field(default="", max_length=MAX_STRESS_PATTERN_LENGTH)
    time_signature: TimeSignature = "4/4"
    tempo: float = Field(default=DEFAULT_TEMPO_BPM, gt=0, le=400)
    breath_points: list[int] = Field(default_factory=list)
    rest_beats: float = Field(default=DEFAULT_BREATH_REST_BEATS, gt=0, le=8)
    options: FitToMeasureOptions = Field(default_factory=FitToMeasureOptions)

    @field_validator("stress_pattern")
    @classmethod
    def clean_stress_pattern(cls, value: str) -> str:
        value = re.sub(r"\s+", "", value)
        bad = sorted(set(value) - {"0", "1", "2"})
        if bad:
            raise ValueError(f"stress_pattern may only contain 0, 1 and 2; found {''.join(bad)!r}.")
        return value

    @field_validator("time_signature", mode="before")
    @classmethod
    def clean_time_signature(cls, value: object) -> object:
        return normalize_time_signature(value)


class StanzaRequest(BaseModel):
    lines: list[LineRequest] = Field(min_length=1, max_length=64)


class LineRhythm(BaseModel):
    stress_pattern: str
    time_signature: TimeSignature
    tempo: float
    durations: list[NoteDuration]
    total_beats: float
    measure_count: float
    warnings: list[str] = Field(default_factory=list)
    used_fallback: bool = False


class StanzaRhythmResponse(BaseModel):
    lines: list[LineRhythm]
    total_beats: float
    warnings: list[str] = Field(default_factory=list)


class FitRequest(BaseModel):
    durations: list[NoteDuration] = Field(max_length=MAX_FIT_ENTRIES)
    beats_per_measure: float = Field(le=MAX_BEATS_PER_MEASURE, allow_inf_nan=False)
    options: FitToMeasureOptions = Field(default_factory=FitToMeasureOptions)

    @field_validator("durations")
    @classmethod
    def bound_durations(cls, value: list[NoteDuration]) -> list[NoteDuration]:
        _require_finite_beats(value)
        total = sum(d.beats for d in value if d.beats > 0)
        if total > MAX_FIT_TOTAL_BEATS:
            raise ValueError(f"durations add up to {total:g} beats; at most {MAX_FIT_TOTAL_BEATS} can be fitted.")
        return value

    @field_validator("beats_per_measure")
    @classmethod
    def reject_tiny_measures(cls, value: float) -> float:
        # Zero or below is allowed and leaves the durations untouched.
        if 0 < value < MIN_BEATS_PER_MEASURE:
            raise ValueError(f"beats_per_measure must be 0 or less, or at least {MIN_BEATS_PER_MEASURE:g}.")
        return value


class FitResponse(BaseModel):
    durations: list[NoteDuration]
    total_beats: float
    measure_count: float | None = None


class ValidateRequest(BaseModel):
    durations: list[NoteDuration] = Field(max_length=MAX_FIT_ENTRIES)

    @field_validator("durations")
    @classmethod
    def reject_non_finite_beats(cls, value: list[NoteDuration]) -> list[NoteDuration]:
        _require_finite_beats(value)
        return value


class StrongBeatsResponse(BaseModel):
    time_signature: str
    beats_per_measure: int
    strong_beats: list[int]
    compound: bool
