"""
errexplain/utils/timezone.py — UTC clock and day bucketing
Quota windows and history timelines are computed in UTC so every
worker agrees regardless of host timezone.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta

import pytz

UTC = pytz.utc


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return UTC.localize(dt)
    return dt.astimezone(UTC)


def last_n_days(n: int, today: date) -> list[date]:
    """Oldest first, ending with today."""
    return [today - timedelta(days=offset) for offset in range(n - 1, -1, -1)]


def day_label(day: date, today: date) -> str:
    """'Today', 'Yesterday', else short weekday name (Mon, Tue, ...)."""
    delta = (today - day).days
    if delta == 0:
        return "Today"
    if delta == 1:
        return "Yesterday"
    return day.strftime("%a")
