import pytest

from poem_rhythm.models import NoteDuration
from poem_rhythm.services.rhythm_mapping import (
    DurationPolicy,
    align_stress_to_beats,
    base_duration,
    create_iambic_rhythm,
    create_rhythm_context,
    create_trochaic_rhythm,
    insert_breath_rests,
    map_line_to_rhythm,
    meter_scale,
    round_to_musical_duration,
    strong_beat_bonus,
    stress_to_note_duration,
    tempo_scale,
)
from poem_rhythm.services.rhythm_validation import calculate_total_duration, durations_to_beats

TIME_SIGNATURES = ["4/4", "3/4", "6/8", "2/4"]


def _notes(*beats):
    return [NoteDuration(syllable_index=i, beats=b, is_rest=False) for i, b in enumerate(beats)]


def test_context_defaults_to_start_of_measure():
    ctx = create_rhythm_context("3/4", 90)
    assert ctx.position == 0
    assert ctx.time_signature == "3/4"
    assert ctx.tempo == 90


def test_stress_levels_map_to_short_medium_long_in_common_time():
    ctx = create_rhythm_context("4/4", 100)
    assert stress_to_note_duration("0", ctx) <= 0.5
    assert 0.5 < stress_to_note_duration("2", ctx) <= 1.0
    assert stress_to_note_duration("1", ctx) >= 1.0


@pytest.mark.parametrize("time_signature", TIME_SIGNATURES)
@pytest.mark.parametrize("tempo", [40, 59, 60, 100, 140, 141, 200])
@pytest.mark.parametrize("position", [0, 0.5, 1, 1.5, 2, 3, 4.5])
def test_stressed_syllables_are_always_longer_than_unstressed(time_signature, tempo, position):
    ctx = create_rhythm_context(time_signature, tempo, position)
    unstressed = stress_to_note_duration("0", ctx)
    secondary = stress_to_note_duration("2", ctx)
    primary = stress_to_note_duration("1", ctx)
    assert primary > unstressed
    assert secondary > unstressed
    assert secondary <= primary


@pytest.mark.parametrize("time_signature", TIME_SIGNATURES)
@pytest.mark.parametrize("stress", ["0", "1", "2"])
def test_duration_never_grows_as_tempo_rises(time_signature, stress):
    tempos = [30, 59, 60, 100, 140, 141, 220]
    for position in (0, 1):
        durations = [stress_to_note_duration(stress, create_rhythm_context(time_signature, t, position)) for t in tempos]
        assert durations == sorted(durations, reverse=True)


def test_slow_tempo_lengthens_strong_primary_stress():
    slow = stress_to_note_duration("1", create_rhythm_context("4/4", 50, 0))
    normal = stress_to_note_duration("1", create_rhythm_context("4/4", 100, 0))
    assert slow > normal


@pytest.mark.parametrize("time_signature", TIME_SIGNATURES)
def test_strong_beat_never_shortens_primary_stress(time_signature):
    strong = stress_to_note_duration("1", create_rhythm_context(time_signature, 100, 0))
    weak = stress_to_note_duration("1", create_rhythm_context(time_signature, 100, 1))
    assert strong >= weak


def test_compound_meter_shortens_unstressed_syllables():
    simple = stress_to_note_duration("0", create_rhythm_context("4/4", 100))
    compound = stress_to_note_duration("0", create_rhythm_context("6/8", 100))
    assert compound < simple


@pytest.mark.parametrize("invalid", ["3", "x", "", None, 7, True])
def test_invalid_stress_falls_back_to_unstressed(invalid):
    ctx = create_rhythm_context("4/4", 100)
    assert stress_to_note_duration(invalid, ctx) == 0.5


def test_integer_stress_levels_are_accepted():
    ctx = create_rhythm_context("4/4", 100, 1)
    assert stress_to_note_duration(1, ctx) == stress_to_note_duration("1", ctx)
    assert stress_to_note_duration(2, ctx) == stress_to_note_duration("2", ctx)


def test_sub_computations_are_individually_exposed():
    assert base_duration("0") == 0.5
    assert base_duration("2") == 0.75
    assert base_duration("1") == 1.0
    assert meter_scale("6/8") < meter_scale("4/4") == 1.0
    assert strong_beat_bonus("1", create_rhythm_context("4/4", 100, 2)) > 1.0
    assert strong_beat_bonus("1", create_rhythm_context("4/4", 100, 1)) == 1.0
    assert strong_beat_bonus("0", create_rhythm_context("4/4", 100, 0)) == 1.0
    assert tempo_scale(180) < tempo_scale(100) < tempo_scale(50)


def test_rounding_snaps_to_musical_values_and_prefers_shorter_on_ties():
    assert round_to_musical_duration(0.45) == 0.5
    assert round_to_musical_duration(1.25) == 1.0
    assert round_to_musical_duration(1.4) == 1.5
    assert round_to_musical_duration(9.0) == 2.0
    assert round_to_musical_duration(0.01) == 0.25


def test_custom_policy_changes_constants_not_shape():
    policy = DurationPolicy(strong_beat_bonus=2.0)
    ctx = create_rhythm_context("4/4", 100, 0)
    assert stress_to_note_duration("1", ctx, policy) == 2.0


def test_empty_pattern_maps_to_empty_sequence():
    assert map_line_to_rhythm("", "4/4") == []


@pytest.mark.parametrize("pattern", ["1", "0", "0101", "0101010101", "2102012", "001001001"])
@pytest.mark.parametrize("time_signature", TIME_SIGNATURES)
def test_one_entry_per_syllable_in_order(pattern, time_signature):
    result = map_line_to_rhythm(pattern, time_signature)
    assert len(result) == len(pattern)
    assert [d.syllable_index for d in result] == list(range(len(pattern)))
    assert all(not d.is_rest and d.beats > 0 for d in result)


def test_iambic_tetrameter_alternates_short_long():
    result = map_line_to_rhythm("01010101", "4/4")
    assert len(result) == 8
    for even, odd in zip(result[0::2], result[1::2]):
        assert even.beats < odd.beats
    assert durations_to_beats(result) == [0.5, 1.0] * 4


def test_trochaic_line_alternates_long_short():
    result = map_line_to_rhythm("10101010", "4/4")
    for strong, weak in zip(result[0::2], result[1::2]):
        assert strong.beats > weak.beats


def test_anapestic_and_dactylic_feet_lengthen_the_stressed_syllable():
    anapest = map_line_to_rhythm("001001001", "4/4")
    assert anapest[2].beats > anapest[0].beats
    assert anapest[5].beats > anapest[3].beats
    dactyl = map_line_to_rhythm("100100100", "4/4")
    assert dactyl[0].beats > dactyl[1].beats
    assert dactyl[3].beats > dactyl[4].beats


def test_secondary_stress_sits_between_unstressed_and_primary():
    result = map_line_to_rhythm("0210", "4/4")
    assert result[0].beats < result[1].beats <= result[2].beats


def test_position_advances_by_beats_not_characters():
    # Primary stress at beat 1.5 is off the strong beats; at beat 0.5 it is inside beat 0.
    weak = map_line_to_rhythm("0001", "4/4", tempo=50)
    strong = map_line_to_rhythm("01", "4/4", tempo=50)
    assert strong[1].beats > weak[3].beats


def test_pattern_generators_match_mapped_alternations():
    assert create_iambic_rhythm(4) == map_line_to_rhythm("0101", "4/4")
    assert create_trochaic_rhythm(5, "3/4") == map_line_to_rhythm("10101", "3/4")
    assert create_iambic_rhythm(0) == []
    assert create_trochaic_rhythm(-2) == []


SAMPLE = _notes(0.5, 1.0, 0.5, 1.0, 0.5, 1.0)


def test_breath_rest_is_inserted_after_the_syllable():
    result = insert_breath_rests(SAMPLE, [2])
    assert len(result) == len(SAMPLE) + 1
    assert result[3] == NoteDuration(syllable_index=-1, beats=0.5, is_rest=True)
    assert result[2].syllable_index == 2


def test_breath_rests_use_custom_length_and_keep_note_order():
    result = insert_breath_rests(SAMPLE, [0, 2, 4], 1.0)
    assert len(result) == len(SAMPLE) + 3
    assert [d.beats for d in result if d.is_rest] == [1.0, 1.0, 1.0]
    assert [d.syllable_index for d in result if not d.is_rest] == list(range(6))
    assert result[1].is_rest and result[4].is_rest and result[7].is_rest


def test_breath_point_at_last_syllable_ends_with_rest():
    result = insert_breath_rests(SAMPLE, [5])
    assert result[-1].is_rest


@pytest.mark.parametrize("points", [[-1], [6], [100], [-3, 42]])
def test_invalid_breath_points_are_skipped(points):
    assert insert_breath_rests(SAMPLE, points) == SAMPLE


def test_breath_insertion_does_not_mutate_input():
    original = list(SAMPLE)
    result = insert_breath_rests(SAMPLE, [1, 3])
    assert SAMPLE == original
    assert result is not SAMPLE
    assert insert_breath_rests(SAMPLE, []) is not SAMPLE


def test_breath_insertion_on_empty_sequence():
    assert insert_breath_rests([], [0, 1]) == []


def test_breath_rests_add_to_total_duration():
    result = insert_breath_rests(SAMPLE, [1, 3], 0.5)
    assert calculate_total_duration(result) == calculate_total_duration(SAMPLE) + 1.0


def test_alignment_stretches_previous_note_to_reach_strong_beat():
    durations = _notes(0.5, 1.0, 1.0)
    result = align_stress_to_beats(durations, "001", "4/4")
    assert durations_to_beats(result) == [0.5, 1.5, 1.0]
    assert durations_to_beats(durations) == [0.5, 1.0, 1.0]


def test_alignment_can_stretch_a_breath_rest():
    durations = [
        *_notes(0.5, 0.5),
        NoteDuration(syllable_index=-1, beats=0.5, is_rest=True),
        NoteDuration(syllable_index=2, beats=1.0),
    ]
    result = align_stress_to_beats(durations, "001", "4/4")
    assert result[2] == NoteDuration(syllable_index=-1, beats=1.0, is_rest=True)


def test_alignment_leaves_aligned_or_distant_stresses_alone():
    aligned = map_line_to_rhythm("0101", "4/4")
    assert align_stress_to_beats(aligned, "0101", "4/4") == aligned
    distant = _notes(1.0, 1.0)
    assert align_stress_to_beats(distant, "01", "4/4") == distant


def test_alignment_handles_missing_pattern():
    durations = _notes(0.5, 1.0)
    result = align_stress_to_beats(durations, "", "4/4")
    assert result == durations
    assert result is not durations
