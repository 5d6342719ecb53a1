"""
Tests for availability resolution (pure, no database).
"""

from datetime import date, timedelta
from types import SimpleNamespace

from booking_engine.core.clock import at_minute

from booking_engine.services.availability_resolver import (
    candidate_starts,
    covering_interval,
    day_of_week,
    merge,
    resolve,
    resolve_day,
    subtract,
)

SUNDAY = date(2030, 1, 6)
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
SATURDAY = date(2030, 1, 12)


def rule(dow, start, end):
    return SimpleNamespace(day_of_week=dow, start_minute=start, end_minute=end)


def override(block_type, start_date, end_date=None, start=None, end=None):
    return SimpleNamespace(
        block_type=block_type,
        start_date=start_date,
        end_date=end_date,
        start_minute=start,
        end_minute=end,
    )


def windows(intervals):
    return [(i.start_minute, i.end_minute) for i in intervals]


MONDAY_9_TO_5 = [rule(1, 540, 1020)]


def test_day_of_week_starts_on_sunday():
    assert day_of_week(SUNDAY) == 0
    assert day_of_week(MONDAY) == 1
    assert day_of_week(SATURDAY) == 6


def test_weekly_rule_applies_to_matching_weekday_only():
    assert windows(resolve_day(7, MONDAY, MONDAY_9_TO_5, [])) == [(540, 1020)]
    assert resolve_day(7, TUESDAY, MONDAY_9_TO_5, []) == []


def test_resolved_interval_carries_trainer_and_date():
    [interval] = resolve_day(7, MONDAY, MONDAY_9_TO_5, [])
    assert interval.trainer_id == 7
    assert interval.date == MONDAY
    assert interval.ends_at > interval.starts_at


def test_partial_block_splits_interval():
    lunch = override("blocked", MONDAY, start=720, end=780)
    assert windows(resolve_day(7, MONDAY, MONDAY_9_TO_5, [lunch])) == [(540, 720), (780, 1020)]


def test_whole_day_block_removes_everything():
    """A blocked override with no minutes wins over the recurring hours."""
    vacation = override("blocked", MONDAY)
    assert resolve_day(7, MONDAY, MONDAY_9_TO_5, [vacation]) == []


def test_block_overlapping_interval_edge_truncates():
    early_finish = override("blocked", MONDAY, start=900, end=1440)
    assert windows(resolve_day(7, MONDAY, MONDAY_9_TO_5, [early_finish])) == [(540, 900)]


def test_available_override_extends_hours_and_merges():
    evening = override("available", MONDAY, start=1020, end=1140)
    assert windows(resolve_day(7, MONDAY, MONDAY_9_TO_5, [evening])) == [(540, 1140)]


def test_available_override_opens_day_without_rules():
    saturday_pop_up = override("available", SATURDAY, start=480, end=600)
    assert windows(resolve_day(7, SATURDAY, MONDAY_9_TO_5, [saturday_pop_up])) == [(480, 600)]


def test_blocked_wins_over_available_on_same_date():
    extra = override("available", TUESDAY, start=600, end=720)
    block = override("blocked", TUESDAY, start=600, end=720)
    assert resolve_day(7, TUESDAY, MONDAY_9_TO_5, [extra, block]) == []
    # Order of overrides does not matter
    assert resolve_day(7, TUESDAY, MONDAY_9_TO_5, [block, extra]) == []


def test_multi_day_override_end_date_is_inclusive():
    two_weeks_off = override("blocked", date(2030, 1, 1), end_date=MONDAY)
    assert resolve_day(7, MONDAY, MONDAY_9_TO_5, [two_weeks_off]) == []
    next_monday = date(2030, 1, 14)
    assert windows(resolve_day(7, next_monday, MONDAY_9_TO_5, [two_weeks_off])) == [(540, 1020)]


def test_resolve_range_covers_each_date():
    rules = [rule(1, 540, 1020), rule(3, 600, 660)]
    intervals = resolve(7, SUNDAY, SATURDAY, rules, [])
    assert [(i.date, i.start_minute, i.end_minute) for i in intervals] == [
        (MONDAY, 540, 1020),
        (date(2030, 1, 9), 600, 660),
    ]


def test_merge_coalesces_overlapping_and_touching():
    assert merge([(600, 700), (540, 600), (650, 720), (800, 900)]) == [(540, 720), (800, 900)]


def test_merge_drops_empty_windows():
    assert merge([(600, 600), (540, 560)]) == [(540, 560)]


def test_subtract_outside_window_is_noop():
    assert subtract([(540, 600)], (600, 700)) == [(540, 600)]


def test_subtract_covering_cut_removes_window():
    assert subtract([(540, 600)], (500, 700)) == []


def span(start_minute, end_minute, day=MONDAY):
    return at_minute(day, start_minute), at_minute(day, end_minute)


def test_covering_interval_allows_exact_end():
    intervals = resolve_day(7, MONDAY, MONDAY_9_TO_5, [])
    assert covering_interval(intervals, *span(960, 1020)) is not None
    assert covering_interval(intervals, *span(990, 1050)) is None


def test_covering_interval_counts_seconds():
    intervals = resolve_day(7, MONDAY, MONDAY_9_TO_5, [])
    start, end = span(960, 1020)
    late = timedelta(seconds=30)
    assert covering_interval(intervals, start + late, end + late) is None
    assert covering_interval(intervals, start - late, end - late) is not None


def test_range_across_gap_is_not_contained():
    """Two intervals separated by a block do not host a range spanning both."""
    lunch = override("blocked", MONDAY, start=720, end=780)
    intervals = resolve_day(7, MONDAY, MONDAY_9_TO_5, [lunch])
    assert covering_interval(intervals, *span(690, 810)) is None


def test_candidate_starts_fit_whole_duration():
    intervals = resolve_day(7, MONDAY, [rule(1, 540, 660)], [])
    starts = [minute for _, minute in candidate_starts(intervals, 60, 15)]
    assert starts == [540, 555, 570, 585, 600]


def test_candidate_starts_align_to_step():
    intervals = resolve_day(7, MONDAY, [rule(1, 545, 700)], [])
    starts = [minute for _, minute in candidate_starts(intervals, 60, 15)]
    assert starts[0] == 555
    assert starts[-1] == 630
