"""
Volatile cache tiers.

MemoryTier is the default: an in-process dict, bounded by entry count,
oldest entries dropped first. RedisTier is used when REDIS_URL is set so
several workers share hits. Entries expire only when written with a ttl
(sources whose URLs go stale); otherwise they go away through eviction or
a refresh overwrite.
"""

import json
import time

from models import CacheRecord, LookupKey


class MemoryTier:
    name = "memory"

    def __init__(self, max_entries: int = 2000, clock=time.monotonic):
        self.max_entries = max_entries
        self._clock = clock
        # slot -> (record, expires_at or None)
        self._store: dict[str, tuple[CacheRecord, float | None]] = {}

    @staticmethod
    def _slot(key: LookupKey, key_hash: str) -> str:
        return f"{key.collection}:{key_hash}"

    async def get(self, key: LookupKey, key_hash: str) -> CacheRecord | None:
        slot = self._slot(key, key_hash)
        entry = self._store.get(slot)
        if entry is None:
            return None
        record, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[slot]
            return None
        # callers get their own copy; the stored record stays untouched
        return record.model_copy(deep=True)

    async def set(self, record: CacheRecord, key_hash: str, ttl: float | None = None) -> None:
        slot = self._slot(record.key, key_hash)
        expires_at = self._clock() + ttl if ttl else None
        # re-insert so an overwrite counts as newest
        self._store.pop(slot, None)
        self._store[slot] = (record.model_copy(deep=True), expires_at)
        while len(self._store) > self.max_entries:
            del self._store[next(iter(self._store))]


class RedisTier:
    """
    Shared volatile tier on redis.asyncio. Values are the persisted document
    shape, so a record read back is identical to one read from sqlite.
    Redis errors never fail a request: reads become misses, writes are skipped.
    """

    name = "redis"

    def __init__(self, client, prefix: str = "streamhub"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisTier":
        import redis.asyncio as redis

        return cls(redis.from_url(url, socket_timeout=2, socket_connect_timeout=2))

    def _slot(self, key: LookupKey, key_hash: str) -> str:
        return f"{self.prefix}:{key.collection}:{key_hash}"

    async def get(self, key: LookupKey, key_hash: str) -> CacheRecord | None:
        try:
            raw = await self.client.get(self._slot(key, key_hash))
        except Exception as e:
            print(f"[cache] Redis read failed, treating as miss: {e}")
            return None
        if not raw:
            return None
        try:
            return CacheRecord.from_document(key, json.loads(raw))
        except (ValueError, KeyError) as e:
            print(f"[cache] Unreadable Redis entry {key_hash}: {e}")
            return None

    async def set(self, record: CacheRecord, key_hash: str, ttl: float | None = None) -> None:
        try:
            await self.client.set(
                self._slot(record.key, key_hash),
                json.dumps(record.to_document()),
                ex=max(1, int(ttl)) if ttl else None,
            )
        except Exception as e:
            print(f"[cache] Redis write failed: {e}")

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception:
            return False

    async def aclose(self) -> None:
        await self.client.aclose()
