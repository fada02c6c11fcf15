from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

UTC = timezone.utc


def is_tz_aware(value: datetime) -> bool:
    """True if a datetime is timezone-aware (has a non-None UTC offset)."""
    return value.tzinfo is not None and value.utcoffset() is not None


def coerce_utc(value: datetime) -> datetime:
    """Coerce any datetime to tz-aware UTC, treating naive values as UTC."""
    if is_tz_aware(value):
        return value.astimezone(UTC)
    return value.replace(tzinfo=UTC)


def parse_iso8601(value: str) -> datetime:
    """Parse ISO8601/RFC3339 timestamps into tz-aware UTC datetimes.

    Supports `Z` suffix.
    """
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"
    return coerce_utc(datetime.fromisoformat(normalized))


def published_sort_key(value: Any) -> float | None:
    """Turn a `published` value into a comparable epoch number.

    The backend reports `published` as an ISO8601 string; numbers (epoch
    values) and datetimes are accepted as-is. Returns None when the value is
    missing or unparseable, in which case callers must not reorder.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return coerce_utc(value).timestamp()
    if isinstance(value, str):
        try:
            return parse_iso8601(value).timestamp()
        except ValueError:
            return None
    return None
