"""Time helpers. Timestamps are stored as naive UTC."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Convert a provider unix timestamp to naive UTC."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
