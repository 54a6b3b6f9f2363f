"""
Tasting AI — Cache Store Tests
===============================

What we test:
    ✅ Values round-trip as JSON under a namespaced key
    ✅ Entries expire exactly at the TTL and are removed on read
    ✅ Storage failures become misses / skipped writes, never exceptions
    ❌ Concurrent writers across processes (last write wins; not asserted)
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from tasting_ai.models.cache_entry import KeyValueEntry
from tasting_ai.services.cache_store import CacheStore


class TestCacheStoreBasics:
    @pytest.mark.asyncio
    async def test_set_then_get_returns_payload(self, database, clock):
        store = CacheStore(database, clock, "provider", ttl_seconds=60)

        assert await store.set("abc", {"wine_name": "Margaux", "grapes": ["Merlot"]}) is True
        assert await store.get("abc") == {"wine_name": "Margaux", "grapes": ["Merlot"]}

    @pytest.mark.asyncio
    async def test_missing_key_is_a_miss(self, database, clock):
        store = CacheStore(database, clock, "provider")
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_namespaces_do_not_collide(self, database, clock):
        """The same key in two namespaces refers to two different entries."""
        provider = CacheStore(database, clock, "provider")
        session = CacheStore(database, clock, "session")

        await provider.set("k", {"from": "provider"})
        await session.set("k", {"from": "session"})

        assert await provider.get("k") == {"from": "provider"}
        assert await session.get("k") == {"from": "session"}

    @pytest.mark.asyncio
    async def test_set_replaces_previous_value(self, database, clock):
        store = CacheStore(database, clock, "usage")
        await store.set("counter", {"requests": 1})
        await store.set("counter", {"requests": 2})
        assert await store.get("counter") == {"requests": 2}

    @pytest.mark.asyncio
    async def test_delete(self, database, clock):
        store = CacheStore(database, clock, "provider")
        await store.set("k", 1)

        assert await store.delete("k") is True
        assert await store.get("k") is None
        assert await store.delete("k") is False


class TestCacheStoreExpiry:
    @pytest.mark.asyncio
    async def test_entry_alive_just_before_ttl(self, database, clock):
        store = CacheStore(database, clock, "provider", ttl_seconds=3600)
        await store.set("k", "v")

        clock.advance(3599.9)
        assert await store.get("k") == "v"

    @pytest.mark.asyncio
    async def test_entry_expires_at_ttl_and_is_removed(self, database, clock):
        store = CacheStore(database, clock, "provider", ttl_seconds=3600)
        await store.set("k", "v")

        clock.advance(3600)
        assert await store.get("k") is None

        # Expired row is deleted on read, not just hidden
        async with database.session() as session:
            assert await session.get(KeyValueEntry, "provider:k") is None

    @pytest.mark.asyncio
    async def test_rewrite_refreshes_timestamp(self, database, clock):
        store = CacheStore(database, clock, "provider", ttl_seconds=10)
        await store.set("k", "old")
        clock.advance(8)
        await store.set("k", "new")
        clock.advance(8)
        assert await store.get("k") == "new"

    @pytest.mark.asyncio
    async def test_no_ttl_never_expires(self, database, clock):
        store = CacheStore(database, clock, "usage", ttl_seconds=None)
        await store.set("k", "v")
        clock.advance(365 * 86_400)
        assert await store.get("k") == "v"


class TestCacheStoreFailures:
    """Storage is best-effort: errors degrade to a miss or a skipped write."""

    def _broken_database(self):
        database = MagicMock()
        database.session.side_effect = OperationalError(
            "SELECT", {}, Exception("disk I/O error")
        )
        return database

    @pytest.mark.asyncio
    async def test_read_error_is_a_miss(self, clock):
        store = CacheStore(self._broken_database(), clock, "provider")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_write_error_is_skipped(self, clock):
        store = CacheStore(self._broken_database(), clock, "provider")
        assert await store.set("k", {"a": 1}) is False

    @pytest.mark.asyncio
    async def test_unserialisable_payload_is_skipped(self, database, clock):
        store = CacheStore(database, clock, "provider")
        assert await store.set("k", {"when": object()}) is False
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_a_miss(self, database, clock):
        async with database.session() as session:
            session.add(KeyValueEntry(key="provider:k", payload="{not json", stored_at=clock.now()))

        store = CacheStore(database, clock, "provider")
        assert await store.get("k") is None
