"""
Tasting AI — Provider Rate Limiter
===================================

What:  Per-provider minute and day call budgets, checked before every
       remote AI call.
Why:   Gemini quotas are per key. Spending them locally and refusing early
       is cheaper than collecting 429s and backing off.
How:   Fixed windows keyed by integer window index:

           key = (provider, granularity, floor(now / window_seconds))

       A call is admitted only if every window counter for the provider is
       below its ceiling; admitted calls increment all of them. Rapid calls
       inside one window land on the same key, so there is no drift from
       wall-clock deltas. Old windows are dropped whenever a call is
       admitted.

Concurrency:
    The check-and-increment runs under a threading.Lock and never awaits,
    so concurrent pipeline runs in one process cannot over-admit.
    `try_acquire` never blocks waiting for budget; it returns False and
    the caller decides what to do.
"""

import logging
import threading
from typing import Dict, List, Mapping, Optional, Tuple

from tasting_ai.clock import Clock
from tasting_ai.config import ProviderLimits

logger = logging.getLogger(__name__)

MINUTE = "minute"
DAY = "day"

WINDOW_SECONDS: Dict[str, int] = {
    MINUTE: 60,
    DAY: 86_400,
}


class RateLimiter:
    """
    Example:
        limiter = RateLimiter({"vision": ProviderLimits(per_minute=60, per_day=1000)}, SystemClock())
        if not limiter.try_acquire("vision"):
            ...  # report rate_limited, do not call the provider
    """

    def __init__(self, limits: Mapping[str, ProviderLimits], clock: Clock):
        self._limits: Dict[str, ProviderLimits] = dict(limits)
        self._clock = clock
        self._counters: Dict[Tuple[str, str, int], int] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _ceilings(limits: ProviderLimits) -> List[Tuple[str, int]]:
        ceilings = []
        if limits.per_minute is not None:
            ceilings.append((MINUTE, limits.per_minute))
        if limits.per_day is not None:
            ceilings.append((DAY, limits.per_day))
        return ceilings

    @staticmethod
    def _window_index(now: float, granularity: str) -> int:
        return int(now // WINDOW_SECONDS[granularity])

    def try_acquire(self, provider_id: str) -> bool:
        """
        Admit one call for `provider_id` if budget remains.

        Providers without configured limits are always admitted.
        """
        limits = self._limits.get(provider_id)
        if limits is None:
            return True

        now = self._clock.now()
        with self._lock:
            keys = []
            for granularity, ceiling in self._ceilings(limits):
                key = (provider_id, granularity, self._window_index(now, granularity))
                if self._counters.get(key, 0) >= ceiling:
                    logger.info(
                        "Rate limit reached for %s (%s ceiling %d)",
                        provider_id,
                        granularity,
                        ceiling,
                    )
                    return False
                keys.append(key)

            for key in keys:
                self._counters[key] = self._counters.get(key, 0) + 1
            self._collect_stale(now)
            return True

    def _collect_stale(self, now: float) -> None:
        # Caller holds the lock
        current = {g: self._window_index(now, g) for g in WINDOW_SECONDS}
        stale = [key for key in self._counters if key[2] < current[key[1]]]
        for key in stale:
            del self._counters[key]

    def remaining(self, provider_id: str) -> Dict[str, Optional[int]]:
        """Calls left in the current windows; None means unlimited."""
        limits = self._limits.get(provider_id)
        result: Dict[str, Optional[int]] = {MINUTE: None, DAY: None}
        if limits is None:
            return result
        now = self._clock.now()
        with self._lock:
            for granularity, ceiling in self._ceilings(limits):
                key = (provider_id, granularity, self._window_index(now, granularity))
                result[granularity] = max(0, ceiling - self._counters.get(key, 0))
        return result

    def reset_at(self, granularity: str = MINUTE) -> float:
        """Epoch seconds at which the current `granularity` window ends."""
        window = WINDOW_SECONDS[granularity]
        return (self._window_index(self._clock.now(), granularity) + 1) * window
