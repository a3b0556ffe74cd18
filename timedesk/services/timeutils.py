from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from timedesk.errors import ApiError
from timedesk.settings import get_settings

DEFAULT_TIMEZONE = "Asia/Kolkata"


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except Exception:
        return ZoneInfo(DEFAULT_TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts_utc: datetime) -> datetime:
    # SQLite hands back naive values; everything is stored as UTC.
    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)
    return ts_utc.astimezone(timezone.utc)


def normalize_ts(ts_utc: datetime | None) -> datetime | None:
    if ts_utc is None:
        return None
    return as_utc(ts_utc)


def local_day(ts_utc: datetime) -> date:
    return as_utc(ts_utc).astimezone(attendance_timezone()).date()


def local_day_bounds_utc(day_date: date) -> tuple[datetime, datetime]:
    tz = attendance_timezone()
    local_start = datetime.combine(day_date, time.min, tzinfo=tz)
    local_end = datetime.combine(day_date + timedelta(days=1), time.min, tzinfo=tz)
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


def parse_hhmm(value: str) -> time:
    try:
        hour_str, minute_str = value.strip().split(":")
        hour = int(hour_str)
        minute = int(minute_str)
    except ValueError as exc:
        raise ApiError(status_code=422, code="INVALID_TIME", message="Time must be HH:MM.") from exc
    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        raise ApiError(status_code=422, code="INVALID_TIME", message="Time must be HH:MM.")
    return time(hour=hour, minute=minute)


def combine_local_utc(day_date: date, hhmm: str) -> datetime:
    local_dt = datetime.combine(day_date, parse_hhmm(hhmm), tzinfo=attendance_timezone())
    return local_dt.astimezone(timezone.utc)


def parse_month(value: str | None, *, today: date) -> tuple[date, date]:
    """Return the first day and the exclusive end of a ``YYYY-MM`` month."""
    if not value:
        year, month = today.year, today.month
    else:
        try:
            year_str, month_str = value.split("-")
            year, month = int(year_str), int(month_str)
        except ValueError as exc:
            raise ApiError(status_code=422, code="INVALID_MONTH", message="month must be YYYY-MM.") from exc
        if month < 1 or month > 12:
            raise ApiError(status_code=422, code="INVALID_MONTH", message="month must be YYYY-MM.")
    start = date(year, month, 1)
    end = start + timedelta(days=monthrange(year, month)[1])
    return start, end


def format_month(day_date: date) -> str:
    return f"{day_date.year:04d}-{day_date.month:02d}"
