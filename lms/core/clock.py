from __future__ import annotations

from datetime import UTC, datetime


def now_epoch() -> int:
    """Current UTC time as integer epoch seconds (the storage convention)."""
    return int(datetime.now(UTC).timestamp())


def to_epoch(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp())


def to_iso(epoch: int | None) -> str | None:
    if epoch is None:
        return None
    return datetime.fromtimestamp(epoch, UTC).isoformat().replace("+00:00", "Z")
