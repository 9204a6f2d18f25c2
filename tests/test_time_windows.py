"""Tests for business-local time-window resolution."""

from datetime import datetime, timezone

import pytest

from errors import ValidationError
from time_windows import (
    Period,
    business_today,
    get_date_range,
    get_dates_between,
    get_last_complete_week_range,
    get_month_range_for_date,
    get_previous_period,
    get_range_timestamps,
    get_week_range_for_date,
    is_valid_date_string,
    local_date_of,
    parse_tz_offset,
    resolve_period,
    resolve_rolling_range,
)


class TestDateValidation:
    @pytest.mark.parametrize("value", ["2024-06-03", "2024-02-29", "2023-12-31"])
    def test_valid_dates(self, value):
        assert is_valid_date_string(value)

    @pytest.mark.parametrize("value", ["2024-6-3", "2023-02-29", "2024-13-01", "03-06-2024", "", None, "2024-06-03T00:00"])
    def test_invalid_dates(self, value):
        assert not is_valid_date_string(value)

    def test_resolve_period_rejects_bad_date_with_field(self):
        with pytest.raises(ValidationError) as exc:
            resolve_period("2024-02-30", "daily")
        assert exc.value.field == "date"


class TestOffsets:
    def test_parse_offsets(self):
        assert parse_tz_offset("+07:00") == 420
        assert parse_tz_offset("-0330") == -210

    def test_malformed_offset_is_utc(self):
        assert parse_tz_offset("Asia/Jakarta") == 0


class TestWindows:
    def test_day_window_is_local_midnight_to_end_of_day(self):
        window = get_date_range("2024-06-03", "+07:00")
        assert window.start == datetime(2024, 6, 2, 17, 0, tzinfo=timezone.utc)
        assert window.end == datetime(2024, 6, 3, 16, 59, 59, 999000, tzinfo=timezone.utc)

    def test_window_bounds_are_inclusive(self):
        window = get_date_range("2024-06-03", "+07:00")
        assert window.contains(window.start)
        assert window.contains(window.end)

    def test_range_from_after_to_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            get_range_timestamps("2024-06-05", "2024-06-01")
        assert exc.value.field == "from"

    def test_dates_between_is_inclusive(self):
        assert get_dates_between("2024-05-30", "2024-06-02") == [
            "2024-05-30", "2024-05-31", "2024-06-01", "2024-06-02",
        ]

    def test_local_date_of_crosses_midnight(self):
        ts = datetime(2024, 6, 2, 18, 30, tzinfo=timezone.utc)
        assert local_date_of(ts, "+07:00") == "2024-06-03"
        assert local_date_of(ts, "+00:00") == "2024-06-02"


class TestCalendarRanges:
    def test_week_is_monday_to_sunday(self):
        assert get_week_range_for_date("2024-06-06") == Period("2024-06-03", "2024-06-09")
        assert get_week_range_for_date("2024-06-09") == Period("2024-06-03", "2024-06-09")

    def test_month_range(self):
        assert get_month_range_for_date("2024-02-10") == Period("2024-02-01", "2024-02-29")

    def test_resolve_period_modes(self):
        assert resolve_period("2024-06-06", "daily") == Period("2024-06-06", "2024-06-06")
        assert resolve_period("2024-06-06", "weekly") == Period("2024-06-03", "2024-06-09")
        assert resolve_period("2024-06-06", "monthly") == Period("2024-06-01", "2024-06-30")

    def test_unknown_mode(self):
        with pytest.raises(ValidationError) as exc:
            resolve_period("2024-06-06", "yearly")
        assert exc.value.field == "mode"

    def test_previous_period_has_same_length(self):
        assert get_previous_period(Period("2024-06-03", "2024-06-09")) == Period("2024-05-27", "2024-06-02")


class TestBusinessClock:
    def test_business_today_uses_offset(self):
        now = datetime(2024, 6, 9, 18, 0, tzinfo=timezone.utc)
        assert business_today(now, "+07:00") == "2024-06-10"
        assert business_today(now, "+00:00") == "2024-06-09"

    def test_last_complete_week_midweek(self):
        now = datetime(2024, 6, 12, 3, 0, tzinfo=timezone.utc)  # Wednesday local
        assert get_last_complete_week_range(now) == Period("2024-06-03", "2024-06-09")

    def test_last_complete_week_on_sunday_includes_today(self):
        now = datetime(2024, 6, 9, 3, 0, tzinfo=timezone.utc)  # Sunday local
        assert get_last_complete_week_range(now) == Period("2024-06-03", "2024-06-09")

    def test_rolling_ranges(self):
        now = datetime(2024, 6, 12, 3, 0, tzinfo=timezone.utc)
        assert resolve_rolling_range("7d", now) == Period("2024-06-03", "2024-06-09")
        assert resolve_rolling_range("30d", now) == Period("2024-05-13", "2024-06-09")
        with pytest.raises(ValidationError):
            resolve_rolling_range("90d", now)
