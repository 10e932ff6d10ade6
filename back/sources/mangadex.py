"""
MangaDex source plugin.

Chapter pages come from the at-home server:
    GET /at-home/server/{chapterId}
    -> {"baseUrl": ..., "chapter": {"hash": ..., "data": [...], "dataSaver": [...]}}
Image URL = {baseUrl}/{data|data-saver}/{hash}/{filename}

The baseUrl expires after ~15 minutes, so these records stay out of the
persistent tier and drop out of the volatile tier after MANGADEX_CACHE_TTL
seconds. Published limit is 5 requests/second.
"""

import re

import config
from models import ChapterPage, ChapterPayload
from sources.base import ChapterSource

_UUID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def is_mangadex_chapter_id(chapter_id: str) -> bool:
    return bool(_UUID.match(chapter_id))


class Source(ChapterSource):
    name = "mangadex"
    base_url = config.MANGADEX_API_URL
    rate_scope = "mangadex"
    persistent = False
    volatile_ttl = config.MANGADEX_CACHE_TTL

    async def fetch(self, resource_id: str, variant: str) -> ChapterPayload:
        if not is_mangadex_chapter_id(resource_id):
            # other providers' slugs never exist here
            return ChapterPayload()

        client = self._get_client()
        resp = await client.get(f"{self.base_url}/at-home/server/{resource_id}")
        resp.raise_for_status()

        data = resp.json() or {}
        base = data.get("baseUrl")
        chapter = data.get("chapter") or {}
        if not base or not chapter.get("hash"):
            print(f"[mangadex] No chapter hash for {resource_id}")
            return ChapterPayload()

        files = chapter.get("data") or []
        quality = "data"
        if not files:
            files = chapter.get("dataSaver") or []
            quality = "data-saver"

        return ChapterPayload(pages=[
            ChapterPage(img=f"{base}/{quality}/{chapter['hash']}/{filename}", page=i + 1)
            for i, filename in enumerate(files)
        ])
