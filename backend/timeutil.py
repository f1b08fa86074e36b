from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a loosely formatted date string into an aware UTC datetime.
    Accepts ISO dates ("2025-03-01"), datetimes with or without offset, and a
    trailing "Z". Naive values are taken as UTC. Returns None if unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Return the ISO UTC form of value, or None when it can't be parsed."""
    parsed = parse_datetime(value)
    return to_iso(parsed) if parsed else None
