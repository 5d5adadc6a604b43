from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, timezone
from typing import Optional


KST = timezone(timedelta(hours=9), name="KST")
SATURDAY = 5  # date.weekday(): Monday=0 .. Sunday=6


@dataclass(frozen=True)
class WeekRange:
    """Monday 00:00 to Sunday 23:59:59.999999 in KST."""

    start: datetime
    end: datetime

    @property
    def start_date(self) -> str:
        return self.start.date().isoformat()

    @property
    def end_date(self) -> str:
        return self.end.date().isoformat()


def _to_kst(now: Optional[datetime]) -> datetime:
    current = now or datetime.now(UTC)
    if current.tzinfo is None:
        # Naive timestamps are taken as UTC
        current = current.replace(tzinfo=UTC)
    return current.astimezone(KST)


def parse_ymd(value: str) -> date:
    """Accept `YYYY-MM-DD`, `YYYY.MM.DD` or `YYYYMMDD`."""
    s = value.strip().replace(".", "-")
    if "-" not in s:
        s = f"{s[0:4]}-{s[4:6]}-{s[6:8]}"
    return date.fromisoformat(s)


def add_days(value: str, days: int) -> date:
    return parse_ymd(value) + timedelta(days=days)


def add_years_and_days(value: date, years: int, days: int) -> date:
    try:
        shifted = value.replace(year=value.year + years)
    except ValueError:
        # Feb 29 -> Mar 1, same as a calendar rollover
        shifted = value.replace(year=value.year + years, month=3, day=1)
    return shifted + timedelta(days=days)


def previous_week_range_kst(now: Optional[datetime] = None) -> WeekRange:
    kst_now = _to_kst(now)
    monday = kst_now.date() - timedelta(days=kst_now.weekday())
    start_of_current = datetime(monday.year, monday.month, monday.day, tzinfo=KST)
    start = start_of_current - timedelta(days=7)
    end = start_of_current - timedelta(microseconds=1)
    return WeekRange(start=start, end=end)


def next_saturday_kst(now: Optional[datetime] = None) -> date:
    """The coming draw day; a Saturday returns itself."""
    today = _to_kst(now).date()
    return today + timedelta(days=(SATURDAY - today.weekday()) % 7)


def format_with(value: date, sep: str) -> str:
    return value.strftime(f"%Y{sep}%m{sep}%d")


__all__ = [
    "KST",
    "WeekRange",
    "add_days",
    "add_years_and_days",
    "format_with",
    "next_saturday_kst",
    "parse_ymd",
    "previous_week_range_kst",
]
