"""Timestamp helpers.

All timestamps are stored as ISO 8601 strings in UTC with second
precision, so string order matches chronological order.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return ensure_aware(value).astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string into an aware datetime.

    Accepts a trailing "Z" and date-only strings. Naive values are taken as UTC.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_between(start: datetime, end: datetime) -> int:
    """Whole calendar days from start to end (may be negative)."""
    return (ensure_aware(end).date() - ensure_aware(start).date()).days
