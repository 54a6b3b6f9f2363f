"""
Tasting AI — Cache Store
=========================

What:  Namespaced key → (JSON payload, timestamp) store with read-time TTL.
Why:   Vision and language calls are slow and metered. Identical inputs
       should be answered once per TTL.
How:   Rows live in `kv_entries`. On `get`, an entry older than the TTL is
       deleted and reported as a miss; nothing sweeps the table in the
       background.
Who:   Provider adapters (result cache), the orchestrator (session
       snapshots) and UsageStatsRecorder (counters, no TTL).

Failure Policy:
    The cache is never load-bearing. Every storage error is logged and
    turned into a miss (get) or a skipped write (set); nothing here raises
    into a pipeline run.
"""

import json
import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from tasting_ai.clock import Clock
from tasting_ai.database import Database
from tasting_ai.models.cache_entry import KeyValueEntry

logger = logging.getLogger(__name__)

# Failures that mean "storage unavailable or payload unusable"
_STORAGE_ERRORS = (SQLAlchemyError, OSError, ValueError, TypeError)


class CacheStore:
    """
    Args:
        database:    where entries persist
        clock:       time source for stored_at and TTL checks
        namespace:   key prefix, keeps independent caches apart in one table
        ttl_seconds: max entry age; None disables expiry
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        namespace: str,
        ttl_seconds: Optional[float] = None,
    ):
        self.database = database
        self.clock = clock
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _is_expired(self, stored_at: float) -> bool:
        if self.ttl_seconds is None:
            return False
        return self.clock.now() - stored_at >= self.ttl_seconds

    async def get(self, key: str) -> Optional[Any]:
        """Return the payload for `key`, or None on miss, expiry or error."""
        full_key = self._full_key(key)
        try:
            async with self.database.session() as session:
                entry = await session.get(KeyValueEntry, full_key)
                if entry is None:
                    return None
                if self._is_expired(entry.stored_at):
                    await session.delete(entry)
                    logger.debug("Cache entry expired and removed: %s", full_key)
                    return None
                return json.loads(entry.payload)
        except _STORAGE_ERRORS as e:
            logger.warning("Cache read failed for %s, treating as miss: %s", full_key, str(e))
            return None

    async def set(self, key: str, payload: Any) -> bool:
        """
        Store `payload` under `key`, replacing any previous value.

        Returns:
            True if written, False if the write was skipped after an error.
        """
        full_key = self._full_key(key)
        try:
            encoded = json.dumps(payload)
            async with self.database.session() as session:
                await session.merge(
                    KeyValueEntry(key=full_key, payload=encoded, stored_at=self.clock.now())
                )
            return True
        except _STORAGE_ERRORS as e:
            logger.warning("Cache write skipped for %s: %s", full_key, str(e))
            return False

    async def delete(self, key: str) -> bool:
        full_key = self._full_key(key)
        try:
            async with self.database.session() as session:
                entry = await session.get(KeyValueEntry, full_key)
                if entry is None:
                    return False
                await session.delete(entry)
            return True
        except _STORAGE_ERRORS as e:
            logger.warning("Cache delete failed for %s: %s", full_key, str(e))
            return False
