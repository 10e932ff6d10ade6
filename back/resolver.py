"""
Wires sources, rate gate, retry policy and cache tiers together and
exposes the two resolutions the HTTP layer needs: episode streams and
manga chapter pages.
"""

import importlib
import os
import pkgutil

import config
from cache import MemoryTier, RedisTier
from db.database import RecordStore
from errors import InvalidLookupKey, NotFound
from maintenance import CacheMaintenance
from models import CHAPTER, STREAM, Resolution
from provider_chain import ProviderChain
from rate_gate import RateGate
from retry import RetryPolicy
from sources.base import ContentSource
from sources.mangadex import is_mangadex_chapter_id
from tiered_cache import TieredCache

CATEGORIES = ("sub", "dub", "raw")


def load_sources() -> dict[str, ContentSource]:
    """Dynamically load all source plugins from the sources/ directory."""
    loaded: dict[str, ContentSource] = {}
    sources_dir = os.path.join(os.path.dirname(__file__), "sources")
    for _, module_name, _ in pkgutil.iter_modules([sources_dir]):
        if module_name == "base" or module_name.startswith("_"):
            continue
        try:
            module = importlib.import_module(f"sources.{module_name}")
            if hasattr(module, "SOURCES"):
                instances = list(module.SOURCES)
            elif hasattr(module, "Source"):
                instances = [module.Source()]
            else:
                continue
            for source in instances:
                loaded[source.name] = source
                print(f"✓ Loaded source: {source.name} ({source.resource_type})")
        except Exception as e:
            # one broken plugin must not take the others down
            print(f"✗ Failed to load source {module_name}: {e}")
    return loaded


def _unique(names) -> list[str]:
    return list(dict.fromkeys(n for n in names if n))


class Resolver:
    def __init__(
        self,
        sources: dict[str, ContentSource],
        cache: TieredCache,
        gate: RateGate | None = None,
        policy: RetryPolicy | None = None,
    ):
        self.sources = sources
        self.cache = cache
        self.gate = gate or RateGate()
        self.chain = ProviderChain(cache, self.gate, policy)
        self.maintenance = CacheMaintenance(cache.store)

    @classmethod
    def from_config(cls) -> "Resolver":
        volatile = (
            RedisTier.from_url(config.REDIS_URL) if config.REDIS_URL
            else MemoryTier(config.VOLATILE_MAX_ENTRIES)
        )
        store = RecordStore(config.CACHE_DB_PATH)
        return cls(load_sources(), TieredCache(volatile, store))

    def _pick(self, names: list[str], resource_type: str) -> list[ContentSource]:
        picked = []
        for name in names:
            source = self.sources.get(name)
            if source is None or source.resource_type != resource_type:
                print(f"[resolver] Unknown {resource_type} provider '{name}', skipped")
                continue
            picked.append(source)
        if not picked:
            raise InvalidLookupKey(f"No known {resource_type} providers in {names}")
        return picked

    async def resolve_stream(
        self,
        episode_id: str,
        category: str = config.DEFAULT_CATEGORY,
        servers: list[str] | None = None,
        refresh: bool = False,
    ) -> Resolution:
        if category not in CATEGORIES:
            raise InvalidLookupKey(f"category must be one of {CATEGORIES}, got {category!r}")
        providers = self._pick(_unique(servers or config.STREAM_SERVERS), STREAM)
        resolution = await self.chain.resolve(STREAM, episode_id, providers, variant=category, refresh=refresh)
        if not resolution.found:
            raise NotFound(episode_id, resolution.attempts)
        return resolution

    async def resolve_chapter(
        self,
        chapter_id: str,
        provider: str | None = None,
        refresh: bool = False,
    ) -> Resolution:
        """Requested provider first, then the configured fallbacks."""
        order = [provider] + config.MANGA_PROVIDERS
        if is_mangadex_chapter_id(chapter_id or ""):
            order.insert(0, "mangadex")
        providers = self._pick(_unique(order), CHAPTER)
        resolution = await self.chain.resolve(CHAPTER, chapter_id, providers, refresh=refresh)
        if not resolution.found:
            raise NotFound(chapter_id, resolution.attempts)
        return resolution

    async def health(self) -> dict:
        volatile = self.cache.volatile
        volatile_ok = await volatile.ping() if hasattr(volatile, "ping") else True
        store = self.cache.store
        store_ok = await store.ping() if store is not None else False
        return {
            "volatile": {"tier": volatile.name, "ok": volatile_ok},
            "persistent": {"configured": self.cache.persistent_available, "ok": store_ok},
            "sources": len(self.sources),
        }

    async def aclose(self) -> None:
        for source in self.sources.values():
            await source.aclose()
        if hasattr(self.cache.volatile, "aclose"):
            await self.cache.volatile.aclose()
