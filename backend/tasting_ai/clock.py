"""
Tasting AI — Time Source
=========================

What:  The single place services ask "what time is it?".
Why:   Cache TTLs, rate-limit windows and step durations all depend on time;
       tests swap in a fake clock to cross minute and day boundaries instantly.
"""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Current time in seconds since the epoch."""
        ...


class SystemClock:
    """Wall-clock time from `time.time()`."""

    def now(self) -> float:
        return time.time()
