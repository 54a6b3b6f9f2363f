"""
Tasting AI — Provider Usage Statistics
=======================================

What:  Best-effort per-provider counters by UTC day and month: requests,
       successes, cache hits and total latency, plus an estimated cost.
Why:   Lets the app show "N of 500 analyses used today" and spot a provider
       whose success rate is sliding. Nothing in the pipeline reads them
       back for decisions.
How:   Counters are JSON dicts in a CacheStore with no TTL, keyed
       "<provider>:day:YYYY-MM-DD" and "<provider>:month:YYYY-MM".
       Read-modify-write is serialised by an asyncio.Lock inside this
       process. Increments from other processes may be lost, which is
       acceptable for reporting.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

from tasting_ai.clock import Clock
from tasting_ai.schemas.api import ProviderUsage
from tasting_ai.services.cache_store import CacheStore

logger = logging.getLogger(__name__)


def _empty_counters() -> Dict[str, float]:
    return {"requests": 0, "successes": 0, "cache_hits": 0, "total_response_time_ms": 0}


def _percentage(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _estimated_cost(counters: Dict[str, float], unit_cost: float) -> float:
    # Cache hits never reach the provider
    billable = max(0, counters["requests"] - counters["cache_hits"])
    return round(billable * unit_cost, 4)


class UsageStatsRecorder:
    """
    Args:
        store:      where the counters live
        clock:      decides which day and month a call belongs to
        unit_costs: estimated USD per non-cached request, by provider;
                    providers without an entry cost nothing
    """

    def __init__(
        self,
        store: CacheStore,
        clock: Clock,
        unit_costs: Optional[Mapping[str, float]] = None,
    ):
        self.store = store
        self.clock = clock
        self.unit_costs = dict(unit_costs or {})
        self._lock = asyncio.Lock()

    def _period_keys(self, provider: str) -> Dict[str, str]:
        now = datetime.fromtimestamp(self.clock.now(), tz=timezone.utc)
        return {
            "day": f"{provider}:day:{now:%Y-%m-%d}",
            "month": f"{provider}:month:{now:%Y-%m}",
        }

    async def record(
        self,
        provider: str,
        *,
        success: bool,
        from_cache: bool,
        latency_ms: int,
    ) -> None:
        """Add one call to today's and this month's counters."""
        async with self._lock:
            for key in self._period_keys(provider).values():
                counters = await self.store.get(key) or _empty_counters()
                counters["requests"] += 1
                counters["total_response_time_ms"] += max(0, latency_ms)
                if success:
                    counters["successes"] += 1
                if from_cache:
                    counters["cache_hits"] += 1
                await self.store.set(key, counters)
        logger.debug(
            "Usage recorded for %s (success=%s, from_cache=%s, %dms)",
            provider,
            success,
            from_cache,
            latency_ms,
        )

    async def get_usage(self, provider: str) -> ProviderUsage:
        """
        Today's rates and this month's request count for `provider`.

        Rates are computed over today's counters.
        """
        keys = self._period_keys(provider)
        day = await self.store.get(keys["day"]) or _empty_counters()
        month = await self.store.get(keys["month"]) or _empty_counters()
        requests = day["requests"]
        unit_cost = self.unit_costs.get(provider, 0.0)
        return ProviderUsage(
            provider=provider,
            requests_today=int(requests),
            requests_this_month=int(month["requests"]),
            average_response_time_ms=(
                round(day["total_response_time_ms"] / requests, 1) if requests else 0.0
            ),
            success_rate=_percentage(day["successes"], requests),
            cache_hit_rate=_percentage(day["cache_hits"], requests),
            estimated_cost_today=_estimated_cost(day, unit_cost),
            estimated_cost_this_month=_estimated_cost(month, unit_cost),
        )
