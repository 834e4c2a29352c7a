"""Normalized lookup keys for canonical entities and graph nodes."""

import hashlib
import re
from datetime import date, datetime, timezone
from typing import Optional

_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Lower-case, trim and collapse internal whitespace.

    ``"  Acme   Corp "`` and ``"acme corp"`` share the key ``"acme corp"``.
    """
    if name is None:
        return ""
    return _WHITESPACE.sub(" ", name.strip()).lower()


def role_key(title: str) -> str:
    """Stable graph id for a role title node."""
    normalized = normalize_name(title)
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]
    return f"role_{digest}"


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_datetime(value: Optional[date]) -> Optional[datetime]:
    """Promote a calendar date to midnight UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD`` into a date; None when unparseable."""
    if not value:
        return None
    if isinstance(value, date):
        return value
    parts = str(value).strip()[:10].split("-")
    try:
        year = int(parts[0])
        month = int(parts[1]) if len(parts) > 1 else 1
        day = int(parts[2]) if len(parts) > 2 else 1
        return date(year, month, day)
    except (ValueError, IndexError):
        return None
