"""
Operational maintenance over the persistent tier: aggregate stats and
age-based purge. Neither operation touches surviving records.
"""

import time

from db.database import RecordStore
from errors import StoreUnavailable

DAY_SECONDS = 86400


class CacheMaintenance:
    def __init__(self, store: RecordStore, clock=time.time):
        self.store = store
        self._clock = clock

    async def stats(self, collection: str | None = None) -> dict:
        """{total_records, total_size_bytes, oldest_cached_at, newest_cached_at}"""
        if self.store is None:
            raise StoreUnavailable("persistent tier not configured")
        return await self.store.stats(collection)

    async def purge(self, older_than_days: float, collection: str | None = None) -> int:
        """Delete records cached before now - older_than_days. Returns the number deleted."""
        if older_than_days < 0:
            raise ValueError("older_than_days must be >= 0")
        if self.store is None:
            raise StoreUnavailable("persistent tier not configured")
        cutoff = self._clock() - older_than_days * DAY_SECONDS
        deleted = await self.store.purge_before(cutoff, collection)
        print(f"[maintenance] Purged {deleted} records older than {older_than_days} days")
        return deleted


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size / (1024 * 1024):.2f} MB"
