"""
HiAnime API source plugin (self-hosted aniwatch-api).

Endpoint: GET /api/v2/hianime/episode/sources
          ?animeEpisodeId=<id>&server=<hd-1|hd-2>&category=<sub|dub|raw>
Episode ids look like "one-piece-100?ep=2142".

One Source per server, so the provider chain can fall back from hd-1
to hd-2 and each server gets its own cache record.
"""

import config
from models import SkipRange, StreamPayload, Subtitle, VideoSource
from sources.base import StreamSource

SERVERS = ["hd-1", "hd-2"]

# label fragment -> short language code
_LANG_CODES = {
    "english": "en",
    "japanese": "ja",
    "spanish": "es",
    "french": "fr",
    "portuguese": "pt",
    "arabic": "ar",
}


class HiAnimeServer(StreamSource):
    base_url = config.HIANIME_API_URL
    rate_scope = "hianime"

    def __init__(self, server: str):
        super().__init__()
        self.name = server
        self.server = server

    async def fetch(self, resource_id: str, variant: str) -> StreamPayload:
        client = self._get_client()
        resp = await client.get(
            f"{self.base_url}/api/v2/hianime/episode/sources",
            params={"animeEpisodeId": resource_id, "server": self.server, "category": variant},
        )
        resp.raise_for_status()

        data = (resp.json() or {}).get("data") or {}
        payload = parse_sources(data)
        print(f"[hianime] {self.server}/{variant}: {len(payload.sources)} sources, "
              f"{len(payload.subtitles)} subtitles for {resource_id}")
        return payload


def parse_sources(data: dict) -> StreamPayload:
    """Convert a HiAnime `data` object to a StreamPayload."""
    sources = [
        VideoSource(
            url=s["url"],
            quality=s.get("quality") or "default",
            is_m3u8=s.get("type") == "hls" or ".m3u8" in s["url"],
        )
        for s in data.get("sources") or []
        if s.get("url")
    ]

    subtitles = []
    seen_langs = set()
    for track in data.get("tracks") or []:
        if "thumbnails" in (track.get("lang"), track.get("label"), track.get("kind")):
            continue
        if track.get("kind") not in (None, "", "captions", "subtitles"):
            continue
        url = track.get("url") or track.get("file")
        if not url:
            continue
        label = track.get("label") or track.get("lang") or "English"
        lang = _lang_code(label)
        # one track per language
        if lang in seen_langs:
            continue
        seen_langs.add(lang)
        subtitles.append(Subtitle(url=url, lang=lang, label=label))

    return StreamPayload(
        sources=sources,
        subtitles=subtitles,
        headers=data.get("headers") or None,
        intro=_skip_range(data.get("intro")),
        outro=_skip_range(data.get("outro")),
    )


def _lang_code(label: str) -> str:
    lowered = label.lower()
    for fragment, code in _LANG_CODES.items():
        if fragment in lowered:
            return code
    return lowered


def _skip_range(raw: dict | None) -> SkipRange | None:
    if not raw:
        return None
    try:
        rng = SkipRange(start=raw.get("start") or 0, end=raw.get("end") or 0)
    except (TypeError, ValueError):
        return None
    return rng if rng.is_real else None


SOURCES = [HiAnimeServer(server) for server in SERVERS]
