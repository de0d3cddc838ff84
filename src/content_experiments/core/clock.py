"""Time source used by the engine."""

from datetime import datetime


class SystemClock:
    """Clock backed by the local system time."""

    def now(self) -> datetime:
        return datetime.now()
