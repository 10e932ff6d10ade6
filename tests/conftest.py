"""Shared fixtures: fake sources, a deterministic clock, real sqlite stores in tmp dirs.

Environment is pinned before any project module is imported, so importing
`main` never touches a real database or Redis.
"""

import os

os.environ["CACHE_DB_PATH"] = ""
os.environ["REDIS_URL"] = ""

import pytest

from cache import MemoryTier
from db.database import RecordStore
from models import ChapterPage, ChapterPayload, StreamPayload, VideoSource
from tiered_cache import TieredCache


class FakeClock:
    """Monotonic clock whose sleep() advances time instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeSource:
    """Scripted source: each fetch pops the next outcome (payload or exception); the last one repeats."""

    def __init__(self, name, outcomes, resource_type="chapter", persistent=True, calls_log=None, volatile_ttl=None):
        self.name = name
        self.resource_type = resource_type
        self.rate_scope = name
        self.persistent = persistent
        self.volatile_ttl = volatile_ttl
        self.base_url = f"https://{name}.test"
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, str]] = []
        self.calls_log = calls_log

    async def fetch(self, resource_id, variant):
        self.calls.append((resource_id, variant))
        if self.calls_log is not None:
            self.calls_log.append(self.name)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self):
        pass

    def describe(self):
        return {"name": self.name, "type": self.resource_type}


def chapter(pages: int, prefix: str = "https://img.test/p") -> ChapterPayload:
    return ChapterPayload(pages=[ChapterPage(img=f"{prefix}{i}.jpg", page=i) for i in range(1, pages + 1)])


def stream(url: str = "https://cdn.test/master.m3u8") -> StreamPayload:
    return StreamPayload(sources=[VideoSource(url=url, quality="1080p", is_m3u8=True)])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path) -> RecordStore:
    return RecordStore(str(tmp_path / "cache.db"))


@pytest.fixture
def memory() -> MemoryTier:
    return MemoryTier(max_entries=100)


@pytest.fixture
def tiered(memory, store) -> TieredCache:
    return TieredCache(memory, store)


@pytest.fixture
def counting_loader():
    """Factory for an origin loader that counts invocations."""

    def make(result):
        async def loader():
            loader.calls += 1
            if isinstance(result, BaseException):
                raise result
            return result

        loader.calls = 0
        return loader

    return make
