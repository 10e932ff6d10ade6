"""Volatile tiers: bounded MemoryTier and the redis-backed tier (client mocked)."""

import json
from unittest.mock import AsyncMock

from cache import MemoryTier, RedisTier
from cache_key import derive, lookup_key
from conftest import chapter
from models import CacheRecord


def record(resource_id: str, pages: int = 2) -> tuple[CacheRecord, str]:
    key = lookup_key("chapter", resource_id, "mangapill", "mangapill")
    return CacheRecord(key=key, payload=chapter(pages)), derive(key)


class TestMemoryTier:
    async def test_set_then_get(self):
        tier = MemoryTier()
        rec, key_hash = record("ch-1")
        await tier.set(rec, key_hash)

        assert await tier.get(rec.key, key_hash) == rec

    async def test_oldest_entry_is_evicted(self):
        tier = MemoryTier(max_entries=2)
        records = [record(f"ch-{i}") for i in range(3)]
        for rec, key_hash in records:
            await tier.set(rec, key_hash)

        assert await tier.get(records[0][0].key, records[0][1]) is None
        assert await tier.get(records[1][0].key, records[1][1]) is not None
        assert await tier.get(records[2][0].key, records[2][1]) is not None

    async def test_overwrite_counts_as_newest(self):
        tier = MemoryTier(max_entries=2)
        first, second, third = record("a"), record("b"), record("c")
        await tier.set(*first)
        await tier.set(*second)
        await tier.set(*first)
        await tier.set(*third)

        assert await tier.get(first[0].key, first[1]) is not None
        assert await tier.get(second[0].key, second[1]) is None

    async def test_collections_do_not_share_slots(self):
        tier = MemoryTier()
        rec, key_hash = record("ch-1")
        await tier.set(rec, key_hash)

        stream_key = lookup_key("stream", "ch-1", "mangapill", "mangapill")
        assert await tier.get(stream_key, key_hash) is None

    async def test_hits_cannot_mutate_the_stored_record(self):
        tier = MemoryTier()
        rec, key_hash = record("ch-1", pages=3)
        await tier.set(rec, key_hash)

        hit = await tier.get(rec.key, key_hash)
        hit.payload.pages.clear()
        rec.payload.pages.pop()

        again = await tier.get(rec.key, key_hash)
        assert len(again.payload.pages) == 3

    async def test_ttl_expiry(self, clock):
        tier = MemoryTier(clock=clock)
        rec, key_hash = record("ch-1")
        await tier.set(rec, key_hash, ttl=600)

        clock.now = 599.9
        assert await tier.get(rec.key, key_hash) is not None
        clock.now = 600
        assert await tier.get(rec.key, key_hash) is None


class TestRedisTier:
    async def test_round_trip_uses_document_shape(self):
        client = AsyncMock()
        tier = RedisTier(client)
        rec, key_hash = record("ch-1", pages=3)

        await tier.set(rec, key_hash)

        slot, raw = client.set.call_args.args
        assert slot == f"streamhub:chapter_cache:{key_hash}"
        assert json.loads(raw)["chapterId"] == "ch-1"
        assert client.set.call_args.kwargs["ex"] is None

        client.get.return_value = raw.encode()
        loaded = await tier.get(rec.key, key_hash)
        assert len(loaded.payload.pages) == 3
        assert loaded.cached_at == rec.cached_at

    async def test_ttl_becomes_redis_expiry(self):
        client = AsyncMock()
        rec, key_hash = record("ch-1")
        await RedisTier(client).set(rec, key_hash, ttl=600)
        assert client.set.call_args.kwargs["ex"] == 600

    async def test_miss(self):
        client = AsyncMock()
        client.get.return_value = None
        rec, key_hash = record("ch-1")
        assert await RedisTier(client).get(rec.key, key_hash) is None

    async def test_errors_become_misses(self):
        client = AsyncMock()
        client.get.side_effect = ConnectionError("redis down")
        client.set.side_effect = ConnectionError("redis down")
        client.ping.side_effect = ConnectionError("redis down")
        tier = RedisTier(client)
        rec, key_hash = record("ch-1")

        await tier.set(rec, key_hash)
        assert await tier.get(rec.key, key_hash) is None
        assert await tier.ping() is False

    async def test_garbage_entry_is_a_miss(self):
        client = AsyncMock()
        client.get.return_value = b"not json"
        rec, key_hash = record("ch-1")
        assert await RedisTier(client).get(rec.key, key_hash) is None
