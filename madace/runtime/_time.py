"""Time utilities for the runtime package.

Provides the datetime serialization helpers used by the state serdes.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def datetime_to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO string with a Z suffix."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat(timespec="milliseconds") + "Z"


def iso_to_datetime(iso_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO string (Z suffix allowed) to an aware UTC datetime."""
    if iso_str is None:
        return None
    if iso_str.endswith("Z"):
        iso_str = iso_str[:-1]
    parsed = datetime.fromisoformat(iso_str)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def now_iso() -> str:
    return datetime_to_iso(utc_now())  # type: ignore[return-value]


def today() -> date:
    return date.today()
