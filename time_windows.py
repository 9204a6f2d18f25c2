"""
Time-window resolution in business-local time.

Calendar dates (YYYY-MM-DD) are interpreted in a fixed business UTC offset
(BUSINESS_TZ_OFFSET, default +07:00) and converted into absolute UTC instants.
A day spans local 00:00:00.000 to local 23:59:59.999, both ends inclusive.
"""

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TZ_OFFSET = "+07:00"
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
OFFSET_PATTERN = re.compile(r"^([+-])(\d{2}):?(\d{2})$")
VALID_MODES = ("daily", "weekly", "monthly")
VALID_ROLLING_RANGES = ("7d", "30d")


@dataclass(frozen=True)
class Period:
    """Inclusive business-local date range."""
    from_date: str
    to_date: str

    def to_dict(self) -> dict[str, str]:
        return {"from": self.from_date, "to": self.to_date}

    @property
    def days(self) -> int:
        return (parse_date(self.to_date) - parse_date(self.from_date)).days + 1


@dataclass(frozen=True)
class TimeWindow:
    """Absolute [start, end] window in UTC, both ends inclusive."""
    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


def parse_tz_offset(tz_offset: str) -> int:
    """Offset string such as ``+07:00`` or ``-0330`` to signed minutes. Malformed -> 0."""
    match = OFFSET_PATTERN.match((tz_offset or "").strip())
    if not match:
        logger.warning("Malformed business timezone offset %r, falling back to UTC", tz_offset)
        return 0
    sign = -1 if match.group(1) == "-" else 1
    return sign * (int(match.group(2)) * 60 + int(match.group(3)))


def _offset(tz_offset: str) -> timedelta:
    return timedelta(minutes=parse_tz_offset(tz_offset))


def is_valid_date_string(value: str | None) -> bool:
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def validate_date(value: str | None, field: str = "date") -> str:
    if not is_valid_date_string(value):
        raise ValidationError(field, "Format tanggal tidak valid. Gunakan YYYY-MM-DD")
    return value


def parse_date(value: str) -> date:
    return date.fromisoformat(validate_date(value))


def format_date(d: date) -> str:
    return d.isoformat()


def get_date_range(day: str, tz_offset: str = DEFAULT_TZ_OFFSET) -> TimeWindow:
    return get_range_timestamps(day, day, tz_offset)


def get_range_timestamps(from_date: str, to_date: str, tz_offset: str = DEFAULT_TZ_OFFSET) -> TimeWindow:
    start_day = parse_date(from_date)
    end_day = parse_date(to_date)
    if start_day > end_day:
        raise ValidationError("from", "Tanggal mulai harus sebelum atau sama dengan tanggal akhir")
    offset = _offset(tz_offset)
    start = datetime(start_day.year, start_day.month, start_day.day, tzinfo=timezone.utc) - offset
    end = (
        datetime(end_day.year, end_day.month, end_day.day, 23, 59, 59, 999000, tzinfo=timezone.utc)
        - offset
    )
    return TimeWindow(start=start, end=end)


def get_dates_between(from_date: str, to_date: str) -> list[str]:
    current = parse_date(from_date)
    end = parse_date(to_date)
    dates = []
    while current <= end:
        dates.append(format_date(current))
        current += timedelta(days=1)
    return dates


def get_week_range_for_date(day: str) -> Period:
    d = parse_date(day)
    monday = d - timedelta(days=d.weekday())
    return Period(format_date(monday), format_date(monday + timedelta(days=6)))


def get_month_range_for_date(day: str) -> Period:
    d = parse_date(day)
    last_day = calendar.monthrange(d.year, d.month)[1]
    return Period(format_date(d.replace(day=1)), format_date(d.replace(day=last_day)))


def business_now(now: datetime | None = None, tz_offset: str = DEFAULT_TZ_OFFSET) -> datetime:
    """Current instant shifted by the business offset; only its wall-clock fields are meaningful."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc) + _offset(tz_offset)


def business_today(now: datetime | None = None, tz_offset: str = DEFAULT_TZ_OFFSET) -> str:
    return format_date(business_now(now, tz_offset).date())


def get_days_ago(days: int, now: datetime | None = None, tz_offset: str = DEFAULT_TZ_OFFSET) -> str:
    return format_date(business_now(now, tz_offset).date() - timedelta(days=days))


def get_last_complete_week_range(now: datetime | None = None, tz_offset: str = DEFAULT_TZ_OFFSET) -> Period:
    today = business_now(now, tz_offset).date()
    # Sunday closes the week, so a Sunday "today" is already complete.
    days_since_sunday = (today.weekday() + 1) % 7
    end = today - timedelta(days=days_since_sunday)
    return Period(format_date(end - timedelta(days=6)), format_date(end))


def get_previous_period(period: Period) -> Period:
    prev_to = parse_date(period.from_date) - timedelta(days=1)
    prev_from = prev_to - timedelta(days=period.days - 1)
    return Period(format_date(prev_from), format_date(prev_to))


def resolve_period(day: str, mode: str = "daily") -> Period:
    validate_date(day)
    if mode == "weekly":
        return get_week_range_for_date(day)
    if mode == "monthly":
        return get_month_range_for_date(day)
    if mode == "daily":
        return Period(day, day)
    raise ValidationError("mode", f"Mode harus salah satu dari {', '.join(VALID_MODES)}")


def resolve_rolling_range(range_code: str, now: datetime | None = None, tz_offset: str = DEFAULT_TZ_OFFSET) -> Period:
    week = get_last_complete_week_range(now, tz_offset)
    if range_code == "7d":
        return week
    if range_code == "30d":
        # four complete weeks ending with the last complete week
        start = parse_date(week.to_date) - timedelta(days=27)
        return Period(format_date(start), week.to_date)
    raise ValidationError("range", f"Range harus salah satu dari {', '.join(VALID_ROLLING_RANGES)}")


def local_date_of(ts: datetime, tz_offset: str = DEFAULT_TZ_OFFSET) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return format_date((ts.astimezone(timezone.utc) + _offset(tz_offset)).date())
