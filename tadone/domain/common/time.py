from __future__ import annotations

from datetime import date, datetime, time, timedelta


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt


def to_iso(dt: datetime) -> str:
    ensure_aware(dt)
    # store as ISO 8601 with offset
    return dt.isoformat()


def from_iso(s: str) -> datetime:
    # Python can parse ISO with offset via fromisoformat
    return datetime.fromisoformat(s)


def start_of_day(now: datetime) -> datetime:
    """Local midnight of `now`'s calendar day, in `now`'s zone."""
    ensure_aware(now)
    return datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)


def next_midnight(now: datetime) -> datetime:
    ensure_aware(now)
    return datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo)


def date_to_iso(d: date) -> str:
    return d.isoformat()


def date_from_iso(s: str) -> date:
    return date.fromisoformat(s)
