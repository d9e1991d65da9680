from __future__ import annotations

import math

BEATS_PER_MEASURE: dict[str, int] = {
    "4/4": 4,
    "3/4": 3,
    "6/8": 6,  # counted in eighth-note pulses
    "2/4": 2,
}

STRONG_BEATS: dict[str, tuple[int, ...]] = {
    "4/4": (0, 2),
    "3/4": (0,),
    "6/8": (0, 3),
    "2/4": (0,),
}

COMPOUND_TIME_SIGNATURES = frozenset({"6/8"})
FALLBACK_BEATS_PER_MEASURE = 4


def get_beats_per_measure(time_signature: str) -> int:
    known = BEATS_PER_MEASURE.get(time_signature)
    if known is not None:
        return known
    top, sep, _bottom = str(time_signature).partition("/")
    if sep and top.strip().isdigit() and int(top) > 0:
        return int(top)
    return FALLBACK_BEATS_PER_MEASURE


def get_strong_beats(time_signature: str) -> list[int]:
    return list(STRONG_BEATS.get(time_signature, (0,)))


def is_compound_meter(time_signature: str) -> bool:
    return time_signature in COMPOUND_TIME_SIGNATURES


def beat_in_measure(position: float, time_signature: str) -> float:
    return position % get_beats_per_measure(time_signature)


def is_strong_beat(position: float, time_signature: str) -> bool:
    """True when the beat containing ``position`` is metrically strong.

    Positions wrap modulo the measure, so beat 4 in 4/4 is the downbeat again.
    """
    beat = math.floor(beat_in_measure(position, time_signature))
    return beat in STRONG_BEATS.get(time_signature, (0,))
