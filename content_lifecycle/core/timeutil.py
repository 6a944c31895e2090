"""UTC helpers shared by components and adapters."""

from __future__ import annotations

from datetime import UTC, datetime


def ensure_utc(dt: datetime) -> datetime:
    """Return dt as an aware UTC datetime. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def iso(dt: datetime | None) -> str | None:
    """Fixed-width ISO-8601 UTC string, so stored values sort lexically."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="microseconds")


def parse_iso(s: str | None) -> datetime | None:
    """Parse a stored ISO string back into an aware UTC datetime."""
    if not s:
        return None
    return ensure_utc(datetime.fromisoformat(s))
