"""
Voiranime.com source plugin (HTML scraping).

Site: v6.voiranime.com (WordPress + Madara theme)
Episode page: /anime/{slug}/{ep-slug}/ -> iframe(s) with video players
Episode ids are the page path: "naruto/naruto-001-vostfr".

The site only has French audio (vf) and French subs (vostfr); the
language category picks which one: sub -> vostfr, dub -> vf.
"""

import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from models import StreamPayload, VideoSource
from sources.base import StreamSource

BASE = "https://v6.voiranime.com"

HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "fr-FR,fr;q=0.9,en-US;q=0.8,en;q=0.7",
    "Referer": BASE + "/",
}

_CATEGORY_SUFFIX = {"sub": "vostfr", "dub": "vf"}


class Source(StreamSource):
    name = "voiranime"
    base_url = BASE
    rate_scope = "voiranime"

    # Preferred hosts in order of reliability for embed playback
    _HOST_PRIORITY = [
        "vidmoly",   # Usually most reliable, HLS streams
        "voe",
        "f16px",     # MOON player
        "streamtape",
        "mail.ru",
    ]

    async def fetch(self, resource_id: str, variant: str) -> StreamPayload:
        path = episode_path(resource_id, variant)
        if path is None:
            # no raw releases on this site
            return StreamPayload()

        client = self._get_client()
        url = f"{BASE}/anime/{path}/"
        resp = await client.get(url, headers=HEADERS)
        if resp.status_code == 404:
            return StreamPayload()
        resp.raise_for_status()

        html = resp.text
        embeds = self._parse_chapter_sources(html)
        if not embeds:
            iframe = self._find_iframe_video(BeautifulSoup(html, "lxml"))
            embeds = [{"name": "default", "url": iframe}] if iframe else []

        for embed in embeds:
            direct_url = await self._resolve_embed_url(embed["url"])
            if direct_url:
                print(f"[voiranime] Resolved {embed['name']} for {path}")
                return StreamPayload(
                    embed_url=embed["url"],
                    sources=[VideoSource(url=direct_url, quality="default", is_m3u8=".m3u8" in direct_url)],
                    headers={"Referer": embed["url"]},
                )

        if embeds:
            # iframe playback only
            return StreamPayload(embed_url=embeds[0]["url"], headers={"Referer": url})

        direct_url = _extract_generic_video_url(html)
        if direct_url:
            return StreamPayload(
                sources=[VideoSource(url=direct_url, is_m3u8=".m3u8" in direct_url)],
                headers={"Referer": url},
            )
        return StreamPayload()

    async def _resolve_embed_url(self, embed_url: str) -> str | None:
        """
        Fetch an embed page (vidmoly, voe...) and pull the actual .m3u8/.mp4
        out of its source. None when the host hides it.
        """
        client = self._get_client()
        try:
            resp = await client.get(embed_url, headers=HEADERS)
            if resp.status_code != 200:
                return None
        except Exception as e:
            # a broken embed host just means trying the next one
            print(f"[voiranime] Error resolving embed {embed_url}: {e}")
            return None

        html = resp.text
        url_lower = embed_url.lower()
        if "vidmoly" in url_lower:
            return _extract_vidmoly(html)
        if "voe" in url_lower:
            return _extract_voe(html)
        return _extract_generic_video_url(html)

    def _parse_chapter_sources(self, html: str) -> list[dict]:
        """
        Parse `var thisChapterSources = {"LECTEUR myTV": "<iframe src=...>", ...};`
        into [{name, url}] sorted by host priority. Captcha-gated players are skipped.
        """
        match = re.search(r"var\s+thisChapterSources\s*=\s*\{(.+?)\}\s*;", html, re.DOTALL)
        if not match:
            return []

        sources = []
        for entry in re.finditer(r'"([^"]+)"\s*:\s*"((?:[^"\\]|\\.)*)"', match.group(1)):
            name = entry.group(1)
            value = (
                entry.group(2)
                .replace("\\/", "/")
                .replace('\\"', '"')
                .replace("\\n", "\n")
                .replace("\\t", "\t")
            )
            if "captcha" in value.lower():
                continue

            iframe_match = re.search(r'<iframe[^>]+src=["\']([^"\']+)["\']', value, re.IGNORECASE)
            if not iframe_match:
                continue
            sources.append({"name": name, "url": _absolute(iframe_match.group(1))})

        def sort_key(s):
            url_lower = s["url"].lower()
            for i, host in enumerate(self._HOST_PRIORITY):
                if host in url_lower:
                    return i
            return len(self._HOST_PRIORITY)

        sources.sort(key=sort_key)
        return sources

    @staticmethod
    def _find_iframe_video(soup: BeautifulSoup) -> str | None:
        """Player iframe on the episode page, ignoring ad/social frames."""
        for iframe in soup.select(
            ".chapter-video-frame iframe, "
            ".reading-content iframe, "
            "iframe[src*='embed'], "
            "iframe[data-src]"
        ):
            src = iframe.get("src", "") or iframe.get("data-src", "")
            if src and src != "about:blank" and "google" not in src and "facebook" not in src:
                return _absolute(src)
        return None


def episode_path(episode_id: str, category: str) -> str | None:
    """naruto/naruto-001-vostfr + dub -> naruto/naruto-001-vf"""
    suffix = _CATEGORY_SUFFIX.get(category)
    if suffix is None:
        return None
    episode_id = episode_id.strip("/")
    if re.search(r"-(vostfr|vf)$", episode_id, re.IGNORECASE):
        return re.sub(r"-(vostfr|vf)$", f"-{suffix}", episode_id, flags=re.IGNORECASE)
    return episode_id


def _absolute(url: str) -> str:
    if url.startswith("//"):
        return "https:" + url
    if not url.startswith("http"):
        return urljoin(BASE, url)
    return url


def _extract_vidmoly(html: str) -> str | None:
    """sources: [{file:"URL"}] or source: "URL" on vidmoly pages."""
    patterns = [
        r'sources\s*:\s*\[\s*\{\s*file\s*:\s*["\']([^"\']+\.m3u8[^"\']*)["\']',
        r'source\s*:\s*["\']([^"\']+\.m3u8[^"\']*)["\']',
        r'file\s*:\s*["\']([^"\']+\.m3u8[^"\']*)["\']',
    ]
    for pattern in patterns:
        match = re.search(pattern, html, re.IGNORECASE)
        if match:
            return match.group(1)
    return _extract_generic_video_url(html)


def _extract_voe(html: str) -> str | None:
    """'hls': 'URL', 'mp4': 'URL' or prompt("Node","URL") on voe pages."""
    patterns = [
        r"'hls'\s*:\s*'([^']+)'",
        r'"hls"\s*:\s*"([^"]+)"',
        r"'mp4'\s*:\s*'([^']+)'",
        r'"mp4"\s*:\s*"([^"]+)"',
        r'prompt\s*\(\s*"Node"\s*,\s*"([^"]+)"',
    ]
    for pattern in patterns:
        match = re.search(pattern, html, re.IGNORECASE)
        if match:
            return _absolute(match.group(1))
    return _extract_generic_video_url(html)


def _extract_generic_video_url(html: str) -> str | None:
    patterns = [
        r'(?:file|source|src|video_url|videoUrl)\s*[:=]\s*["\']([^"\']+\.m3u8[^"\']*)["\']',
        r'(?:file|source|src|video_url|videoUrl)\s*[:=]\s*["\']([^"\']+\.mp4[^"\']*)["\']',
        r'(https?://[^\s"\'<>\\]+\.m3u8[^\s"\'<>\\]*)',
        r'(https?://[^\s"\'<>\\]+\.mp4[^\s"\'<>\\]*)',
    ]
    for pattern in patterns:
        match = re.search(pattern, html, re.IGNORECASE)
        if match:
            return _absolute(match.group(1))
    return None
