"""
Base class for content sources (plugin interface).

Every source plugin must:
1. Create a file in sources/ (e.g. sources/my_source.py)
2. Define `Source` (one instance is created) or `SOURCES` (a list of
   ready instances, e.g. one per streaming server)
3. Implement `fetch`

A source's `name` is what callers put in the provider list: a streaming
server ("hd-1", "voiranime", "gogoanime") or a manga provider
("mangapill", "mangadex").

Stream payload (resource_type "stream"), fetch(episode_id, category):
{
    "embedUrl": "https://...",                # optional, iframe fallback
    "sources": [{"url": "...m3u8", "quality": "1080p", "isM3U8": true}],
    "subtitles": [{"url": "...vtt", "lang": "en", "label": "English"}],
    "headers": {"Referer": "..."},            # optional
    "intro": {"start": 31, "end": 110},       # optional
    "outro": {"start": 1300, "end": 1390},    # optional
}

Chapter payload (resource_type "chapter"), fetch(chapter_id, provider):
{
    "pages": [{"img": "https://...", "page": 1, "headerForImage": {...}}]
}

fetch() returns an empty payload when the origin has nothing and lets
httpx errors propagate (call `resp.raise_for_status()`); retries, rate
limiting and caching are handled around it.
"""

from abc import ABC, abstractmethod

import httpx

import config
from models import CHAPTER, STREAM, ChapterPayload, StreamPayload

HEADERS = {
    "User-Agent": config.USER_AGENT,
    "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
}


class ContentSource(ABC):
    name: str = "base"
    resource_type: str = STREAM
    base_url: str = ""
    rate_scope: str = ""
    # False for sources whose URLs expire (kept in the volatile tier only)
    persistent: bool = True
    # seconds a volatile entry stays valid, None = until evicted
    volatile_ttl: float | None = None

    def __init__(self):
        self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=HEADERS,
                follow_redirects=True,
                timeout=config.REQUEST_TIMEOUT,
            )
        return self._client

    @abstractmethod
    async def fetch(self, resource_id: str, variant: str) -> StreamPayload | ChapterPayload:
        """Fetch one resource straight from the origin."""
        ...

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def describe(self) -> dict:
        return {
            "name": self.name,
            "type": self.resource_type,
            "base_url": self.base_url,
            "rate_scope": self.rate_scope,
        }


class StreamSource(ContentSource):
    resource_type = STREAM


class ChapterSource(ContentSource):
    resource_type = CHAPTER
