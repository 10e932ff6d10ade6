"""
Consumet API source plugin.

Streams:  GET /meta/anilist/watch/{episodeId}?provider=<gogoanime|zoro>
Chapters: GET /meta/anilist-manga/read?chapterId=<id>&provider=<mangapill|...>

The public instance is slow and often down, so these sit late in the
default provider order.
"""

import config
from models import ChapterPage, ChapterPayload, StreamPayload, Subtitle, VideoSource
from sources.base import ChapterSource, StreamSource

STREAM_PROVIDERS = ["gogoanime", "zoro"]
MANGA_PROVIDERS = ["mangapill", "mangareader", "mangahere", "mangakakalot"]


class ConsumetStream(StreamSource):
    base_url = config.CONSUMET_API_URL
    rate_scope = "consumet"

    def __init__(self, provider: str):
        super().__init__()
        self.name = provider

    async def fetch(self, resource_id: str, variant: str) -> StreamPayload:
        client = self._get_client()
        params = {"provider": self.name}
        if variant == "dub":
            params["dub"] = "true"
        resp = await client.get(f"{self.base_url}/meta/anilist/watch/{resource_id}", params=params)
        resp.raise_for_status()

        data = resp.json() or {}
        sources = [
            VideoSource(
                url=s["url"],
                quality=s.get("quality") or "default",
                is_m3u8=bool(s.get("isM3U8")) or ".m3u8" in s["url"],
            )
            for s in data.get("sources") or []
            if s.get("url")
        ]
        subtitles = [
            Subtitle(url=s["url"], lang=s.get("lang") or "en", label=s.get("label"))
            for s in data.get("subtitles") or []
            if s.get("url") and s.get("lang") != "thumbnails"
        ]
        return StreamPayload(sources=sources, subtitles=subtitles, headers=data.get("headers") or None)


class ConsumetManga(ChapterSource):
    base_url = config.CONSUMET_API_URL
    rate_scope = "consumet"

    def __init__(self, provider: str):
        super().__init__()
        self.name = provider

    async def fetch(self, resource_id: str, variant: str) -> ChapterPayload:
        client = self._get_client()
        resp = await client.get(
            f"{self.base_url}/meta/anilist-manga/read",
            params={"chapterId": resource_id, "provider": self.name},
        )
        resp.raise_for_status()
        return ChapterPayload(pages=normalize_pages(resp.json()))


def normalize_pages(data) -> list[ChapterPage]:
    """Pages come as a bare list or as {"pages": [...]}; page numbers may be missing."""
    if isinstance(data, dict):
        data = data.get("pages")
    if not isinstance(data, list):
        return []

    pages = []
    for i, p in enumerate(data):
        if not isinstance(p, dict) or not p.get("img"):
            continue
        number = p.get("page")
        pages.append(ChapterPage(
            img=p["img"],
            page=number if isinstance(number, int) else i + 1,
            header_for_image=p.get("headerForImage") or None,
        ))
    return pages


SOURCES = [ConsumetStream(p) for p in STREAM_PROVIDERS] + [ConsumetManga(p) for p in MANGA_PROVIDERS]
