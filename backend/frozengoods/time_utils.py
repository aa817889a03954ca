"""
All timestamps are stored UTC-naive and serialized with a trailing 'Z'.
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """
    ISO-8601 string -> UTC-naive datetime (None for empty input).

    Offsets and 'Z' are converted to UTC; naive values are taken as UTC.
    Raises ValueError on anything else.
    """
    if not value or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _is_date_only(text: str) -> bool:
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def parse_date_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    """
    Inclusive filter bounds from start_date / end_date query values.

    A bare date as end covers the whole day, so ?start_date=2026-10-01&end_date=2026-10-01
    returns everything recorded on that day.
    """
    start_dt = parse_iso_datetime(start)
    end_dt = parse_iso_datetime(end)
    if end_dt is not None and _is_date_only(end.strip()):
        end_dt = datetime.combine(end_dt.date(), time.max)
    return start_dt, end_dt


def to_utc_z(dt: datetime | None) -> str | None:
    """Whole-second ISO-8601 with 'Z'; naive input is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
