"""Unit tests for the daily grid and time helpers."""

from datetime import date, datetime, timezone

from courtbook.core.clock import (
    add_months,
    build_daily_grid,
    court_ids,
    end_for_start,
    is_past,
    is_valid_court,
    is_valid_start,
)

KOLKATA = "Asia/Kolkata"


def test_daily_grid_has_seventeen_hourly_slots():
    grid = build_daily_grid()

    assert len(grid) == 17
    assert (grid[0].start, grid[0].end) == ("06:00", "07:00")
    assert (grid[-1].start, grid[-1].end) == ("22:00", "23:00")
    assert all(end_for_start(slot.start) == slot.end for slot in grid)


def test_courts_and_starts_validation():
    assert list(court_ids()) == [1, 2, 3]
    assert is_valid_court(3)
    assert not is_valid_court(0)
    assert not is_valid_court(4)

    assert is_valid_start("06:00")
    assert is_valid_start("22:00")
    assert not is_valid_start("05:00")
    assert not is_valid_start("23:00")
    assert not is_valid_start("07:30")


def test_is_past_only_applies_to_local_today():
    # 10:30 IST on 2026-03-10
    now = datetime(2026, 3, 10, 5, 0)

    assert is_past(date(2026, 3, 10), "10:00", now, KOLKATA)
    assert not is_past(date(2026, 3, 10), "11:00", now, KOLKATA)
    assert not is_past(date(2026, 3, 9), "06:00", now, KOLKATA)
    assert not is_past(date(2026, 3, 11), "06:00", now, KOLKATA)


def test_is_past_uses_local_date_not_utc_date():
    # 20:00 UTC on the 10th is 01:30 IST on the 11th
    now = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)

    assert not is_past(date(2026, 3, 10), "22:00", now, KOLKATA)
    assert not is_past(date(2026, 3, 11), "06:00", now, KOLKATA)


def test_slot_starting_now_counts_as_past():
    # Exactly 06:00 IST
    now = datetime(2026, 3, 10, 0, 30)

    assert is_past(date(2026, 3, 10), "06:00", now, KOLKATA)
    assert not is_past(date(2026, 3, 10), "07:00", now, KOLKATA)


def test_add_months_clamps_to_month_end():
    assert add_months(datetime(2026, 1, 31, 12, 0), 1) == datetime(2026, 2, 28, 12, 0)
    assert add_months(datetime(2026, 11, 15), 3) == datetime(2027, 2, 15)
    assert add_months(datetime(2026, 6, 30), 6) == datetime(2026, 12, 30)
