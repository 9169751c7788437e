# Overview: UTC timestamps for stored rows, API payloads and the floor view's order timers.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC datetime, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as ``2026-01-31T18:04:05Z`` (seconds precision)."""
    if dt is None:
        return None
    return _as_naive_utc(dt).replace(microsecond=0).isoformat() + "Z"


def format_elapsed(since: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """How long a table's order has been open: ``"1h 5m"`` or ``"12m"``."""
    if since is None:
        return None
    elapsed = (now or utcnow()) - _as_naive_utc(since)
    minutes = max(int(elapsed / timedelta(minutes=1)), 0)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m" if hours else f"{minutes}m"
