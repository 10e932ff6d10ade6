"""
Runtime settings for the StreamHub backend.

Everything is read once from environment variables at import time.
Rate limits are the upstream's published numbers; the gate runs at
RATE_SAFETY_MARGIN of them to absorb clock skew and bursts.
"""

import os


def _int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


def _list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# --- Upstreams ---
HIANIME_API_URL = os.environ.get("HIANIME_API_URL", "http://localhost:4000").rstrip("/")
CONSUMET_API_URL = os.environ.get("CONSUMET_API_URL", "https://api.consumet.org").rstrip("/")
MANGADEX_API_URL = os.environ.get("MANGADEX_API_URL", "https://api.mangadex.org").rstrip("/")

REQUEST_TIMEOUT = _float("REQUEST_TIMEOUT", 15.0)  # seconds, per HTTP request
# seconds, whole fetch() of one provider (scrapers make several requests)
ORIGIN_CALL_TIMEOUT = _float("ORIGIN_CALL_TIMEOUT", 45.0)

# --- Retry ---
MAX_RETRY_ATTEMPTS = _int("MAX_RETRY_ATTEMPTS", 3)
RETRY_DELAY_MS = _int("RETRY_DELAY_MS", 1000)
RETRY_BACKOFF_MULTIPLIER = _float("RETRY_BACKOFF_MULTIPLIER", 2.0)
RETRY_JITTER_MS = _int("RETRY_JITTER_MS", 0)

# --- Rate limits: scope -> (published requests, window in ms) ---
RATE_SAFETY_MARGIN = _float("RATE_SAFETY_MARGIN", 0.85)
RATE_MAX_WAIT_MS = _int("RATE_MAX_WAIT_MS", 5000)
PUBLISHED_RATE_LIMITS = {
    "hianime": (_int("HIANIME_RATE_LIMIT", 60), 60_000),
    "consumet": (_int("CONSUMET_RATE_LIMIT", 60), 60_000),
    "mangadex": (_int("MANGADEX_RATE_LIMIT", 5), 1_000),
    "voiranime": (_int("VOIRANIME_RATE_LIMIT", 30), 60_000),
}

# --- Cache tiers ---
# Empty CACHE_DB_PATH disables the persistent tier (degraded mode).
_default_db = (
    "/app/data/streamhub.db" if os.path.isdir("/app/data")
    else os.path.join(os.path.dirname(__file__), "db", "streamhub.db")
)
CACHE_DB_PATH = os.environ.get("CACHE_DB_PATH", _default_db)
REDIS_URL = os.environ.get("REDIS_URL", "")
VOLATILE_MAX_ENTRIES = _int("VOLATILE_MAX_ENTRIES", 2000)
# seconds; MangaDex at-home URLs die after ~15 minutes
MANGADEX_CACHE_TTL = _int("MANGADEX_CACHE_TTL", 600)
SCHEMA_VERSION = "1.0"

# --- Provider order ---
STREAM_SERVERS = _list("STREAM_SERVERS", "hd-1,hd-2,voiranime,gogoanime")
MANGA_PROVIDERS = _list("MANGA_PROVIDERS", "mangapill,mangadex,mangareader,mangahere,mangakakalot")
DEFAULT_CATEGORY = "sub"
DEFAULT_MANGA_PROVIDER = "mangapill"

# Browser-like headers shared by every origin client
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)
