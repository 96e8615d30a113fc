from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def parse_hhmm(value: str) -> time:
    """Parse HH:MM (or HH:MM:SS) into time."""
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time string: {value!r}")
    seconds = int(parts[2]) if len(parts) >= 3 and parts[2] else 0
    return time(hour=int(parts[0]), minute=int(parts[1]), second=seconds)


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now()


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def to_naive_local(value: datetime) -> datetime:
    """Offset-aware values are converted to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp; every parsed value is naive local time."""
    if not value:
        return None
    return to_naive_local(datetime.fromisoformat(value))


def from_epoch_millis(value: int) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000.0)


def format_duration(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"
