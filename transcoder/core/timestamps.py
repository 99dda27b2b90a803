"""Canonical timestamp handling.

The store keeps every timestamp as a timezone-aware UTC ``datetime``. Values
coming from callers (``datetime`` objects or ISO-8601 strings) and values read
back from backends that drop tzinfo (SQLite) are converted here and nowhere
else.
"""

from datetime import datetime, timezone
from typing import Optional, Union

TimestampLike = Union[datetime, str]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(value: Optional[TimestampLike]) -> Optional[datetime]:
    """Normalize a timestamp to an aware UTC datetime.

    Naive datetimes are assumed to already be in UTC. Strings are parsed as
    ISO-8601; a trailing ``Z`` is accepted.

    Raises:
        ValueError: If a string cannot be parsed.
        TypeError: If the value is neither a datetime nor a string.
    """
    if value is None:
        return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    elif not isinstance(value, datetime):
        raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp in the API wire format (ISO-8601, ``Z`` suffix)."""
    normalized = to_utc(value)
    if normalized is None:
        return None
    return normalized.isoformat().replace("+00:00", "Z")
