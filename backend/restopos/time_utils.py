# Overview: UTC timestamps, ISO-8601 parsing and branch-local business dates.

"""
All datetimes stored by the order engine are UTC-naive. Conversion to a
branch's local time only happens when deriving the business date that
order numbers carry.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc(dt: datetime) -> datetime:
    """Aware UTC datetime; naive input is taken to already be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2030-01-01T19:00", "2030-01-01T19:00:00Z" or "...+07:00" -> UTC-naive.

    Blank input gives None; malformed input raises ValueError.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    return _as_utc(datetime.fromisoformat(text)).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing Z."""
    if dt is None:
        return None
    return _as_utc(dt).replace(microsecond=0, tzinfo=None).isoformat() + "Z"


def business_date(at: datetime, tz_name: str | None) -> date:
    """
    Calendar date of a UTC-naive instant in the branch's local timezone.

    Unknown timezone names fall back to UTC.
    """
    try:
        tz = ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        tz = timezone.utc
    return _as_utc(at).astimezone(tz).date()
