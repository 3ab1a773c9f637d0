"""Tests for time-of-day parsing, formatting and weekday pattern matching."""

from __future__ import annotations

from datetime import datetime, time

import pytest

from backend.utils.time_utils import (
    MissingPatternPolicy,
    day_matches,
    format_clock,
    format_time,
    overlaps,
    parse_time,
    pattern_days,
)


MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("09:00", 540),
        ("9:30", 570),
        ("14:15:00", 855),
        ("1900-01-01T09:00:00Z", 540),
        ("1900-01-01T13:45:00.000+00:00", 825),
        ("2026-02-10T07:05", 425),
        ("9am", 540),
        ("9:30 am", 570),
        ("12pm", 720),
        ("12:15 AM", 15),
        ("11:59 p.m.", 1439),
        (time(8, 45), 525),
        (datetime(2026, 2, 10, 16, 0), 960),
    ],
)
def test_parse_time_accepts_known_forms(raw, expected) -> None:
    assert parse_time(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [None, "", "   ", "noon", "25:00", "09:61", "13pm", "0am", "T99:00", 930, True],
)
def test_parse_time_rejects_unknown_forms(raw) -> None:
    assert parse_time(raw) is None


@pytest.mark.parametrize(
    "minutes, expected",
    [(540, "9am"), (570, "9:30am"), (720, "12pm"), (0, "12am"), (1305, "9:45pm")],
)
def test_format_time(minutes, expected) -> None:
    assert format_time(minutes) == expected


def test_format_time_of_none_is_empty() -> None:
    assert format_time(None) == ""
    assert format_clock(None) == ""


def test_format_clock_is_zero_padded() -> None:
    assert format_clock(425) == "07:05"
    assert format_clock(1439) == "23:59"


@pytest.mark.parametrize("minutes", [0, 1, 59, 540, 570, 719, 720, 721, 1439])
def test_formatted_time_parses_back_to_same_clock_time(minutes) -> None:
    assert parse_time(format_time(minutes)) == minutes


def test_overlap_is_half_open_and_symmetric() -> None:
    assert overlaps(540, 600, 570, 630)
    assert overlaps(570, 630, 540, 600)
    assert not overlaps(540, 600, 600, 660)
    assert not overlaps(600, 660, 540, 600)
    assert overlaps(540, 660, 570, 600)


def test_disjoint_intervals_never_overlap() -> None:
    intervals = [(480, 525), (540, 570), (600, 660), (700, 701)]
    for index, (start_a, end_a) in enumerate(intervals):
        for start_b, end_b in intervals[index + 1:]:
            assert not overlaps(start_a, end_a, start_b, end_b)
            assert not overlaps(start_b, end_b, start_a, end_a)


@pytest.mark.parametrize(
    "pattern, expected",
    [
        ("MWF", {MONDAY, WEDNESDAY, FRIDAY}),
        ("TTh", {TUESDAY, THURSDAY}),
        ("TR", {TUESDAY, THURSDAY}),
        ("Mon, Wed", {MONDAY, WEDNESDAY}),
        ("Tuesday/Thursday", {TUESDAY, THURSDAY}),
        ("Sa Su", {SATURDAY, SUNDAY}),
        ("Day 3", set()),
        ("", set()),
    ],
)
def test_pattern_days(pattern, expected) -> None:
    assert pattern_days(pattern) == expected


def test_day_matches_named_days() -> None:
    assert day_matches("MWF", MONDAY, missing_policy=MissingPatternPolicy.ALWAYS)
    assert not day_matches("MWF", TUESDAY, missing_policy=MissingPatternPolicy.ALWAYS)


def test_day_matches_missing_pattern_follows_policy() -> None:
    assert day_matches(None, TUESDAY, missing_policy=MissingPatternPolicy.ALWAYS)
    assert day_matches("  ", TUESDAY, missing_policy=MissingPatternPolicy.ALWAYS)
    assert not day_matches(None, TUESDAY, missing_policy=MissingPatternPolicy.NEVER)


def test_undecodable_pattern_never_matches() -> None:
    for weekday in range(7):
        assert not day_matches("Day 3", weekday, missing_policy=MissingPatternPolicy.ALWAYS)
