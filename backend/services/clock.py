# backend/services/clock.py
from datetime import datetime, timezone


class Clock:
    """Source of the current time for expiry comparisons."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def get_clock() -> Clock:
    return Clock()
