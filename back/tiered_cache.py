"""
Two-tier read-through / write-through cache.

    volatile (memory or redis)  ->  persistent (sqlite)  ->  origin

Persistent records never expire on their own. Volatile entries only expire
when the source asks for a lifetime (`ttl`), for URLs that go stale upstream.
A refresh skips both tiers, and only a non-empty origin result overwrites
what is stored, so a failed refresh keeps serving the old record.

Concurrent misses on the same key share one origin fetch. The fetch runs in
its own task, so a caller that goes away does not cancel it for the others.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from cache_key import derive
from errors import StoreUnavailable
from models import CacheRecord, LookupKey, ResourcePayload, is_empty

OriginLoader = Callable[[], Awaitable[Optional[ResourcePayload]]]


class TieredCache:
    def __init__(self, volatile, store=None):
        self.volatile = volatile
        self.store = store
        self._inflight: dict[str, asyncio.Task] = {}
        self._degraded_logged = False

    @property
    def persistent_available(self) -> bool:
        return self.store is not None and self.store.available

    def _log_degraded(self, reason: str, once: bool = False):
        if once and self._degraded_logged:
            return
        self._degraded_logged = True
        print(f"[cache] Persistent tier unavailable ({reason}), serving from volatile tier + origin")

    async def get(
        self,
        key: LookupKey,
        origin_loader: OriginLoader,
        refresh: bool = False,
        persist: bool = True,
        ttl: float | None = None,
    ) -> Optional[ResourcePayload]:
        """
        Return the payload for `key`, loading it from origin on a miss.
        Empty origin results are returned but never stored. Loader errors
        propagate unchanged. `ttl` (seconds) bounds the volatile entry.
        """
        key_hash = derive(key)
        label = f"{key.collection}/{key_hash}"

        if not refresh:
            record = await self.volatile.get(key, key_hash)
            if record is not None and not record.payload.is_empty():
                print(f"[cache] {self.volatile.name} HIT {label}")
                return record.payload

            if persist:
                record = await self._read_persistent(key, key_hash)
                if record is not None:
                    print(f"[cache] store HIT {label}")
                    await self.volatile.set(record, key_hash)
                    return record.payload

            print(f"[cache] MISS {label}")
        else:
            print(f"[cache] REFRESH {label}")

        return await self._load(key, key_hash, origin_loader, persist, ttl)

    async def _read_persistent(self, key: LookupKey, key_hash: str) -> CacheRecord | None:
        if not self.persistent_available:
            self._log_degraded("not configured", once=True)
            return None
        try:
            record = await self.store.get(key, key_hash)
        except StoreUnavailable as e:
            self._log_degraded(str(e))
            return None
        except (ValueError, KeyError) as e:
            print(f"[cache] Unreadable stored record {key.collection}/{key_hash}: {e}")
            return None
        if record is None or record.payload.is_empty():
            return None
        return record

    async def _load(self, key: LookupKey, key_hash: str, origin_loader: OriginLoader, persist: bool, ttl):
        slot = f"{key.collection}:{key_hash}"
        task = self._inflight.get(slot)
        if task is None:
            task = asyncio.create_task(self._fetch(key, key_hash, origin_loader, persist, ttl))
            self._inflight[slot] = task
            task.add_done_callback(lambda done: self._finish(slot, done))
        else:
            print(f"[cache] Joining in-flight fetch {slot}")
        # cancelling one caller leaves the shared fetch running
        return await asyncio.shield(task)

    def _finish(self, slot: str, task: asyncio.Task):
        if self._inflight.get(slot) is task:
            del self._inflight[slot]
        # every caller may have left; mark the error retrieved
        if not task.cancelled():
            task.exception()

    async def _fetch(self, key: LookupKey, key_hash: str, origin_loader: OriginLoader, persist: bool, ttl):
        payload = await origin_loader()
        if not is_empty(payload):
            await self._write_through(CacheRecord(key=key, payload=payload), key_hash, persist, ttl)
        return payload

    async def _write_through(self, record: CacheRecord, key_hash: str, persist: bool, ttl=None):
        await self.volatile.set(record, key_hash, ttl)
        label = f"{record.key.collection}/{key_hash}"
        if not persist:
            print(f"[cache] SET {label} (volatile only)")
            return
        if not self.persistent_available:
            self._log_degraded("not configured", once=True)
            return
        try:
            await self.store.put(record, key_hash)
            print(f"[cache] SET {label}")
        except StoreUnavailable as e:
            self._log_degraded(str(e))
