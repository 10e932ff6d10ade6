"""
StreamHub - multi-provider stream & manga chapter resolver
FastAPI Backend
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

import config
from errors import InvalidLookupKey, NotFound, StoreUnavailable, UpstreamError
from maintenance import format_size
from resolver import Resolver


class CacheControlMiddleware(BaseHTTPMiddleware):
    """Add Cache-Control headers for GET endpoints."""

    CACHE_RULES = {
        "/sources": 3600,      # 1 hour for source list
        "/stream/": 0,         # stream URLs are signed/short-lived
        "/manga/chapter": 0,
        "/cache-stats": 0,
        "/health": 0,
    }

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if request.method == "GET" and response.status_code == 200:
            path = request.url.path
            for prefix, max_age in self.CACHE_RULES.items():
                if path.startswith(prefix):
                    if max_age > 0:
                        response.headers["Cache-Control"] = f"public, max-age={max_age}"
                    else:
                        response.headers["Cache-Control"] = "no-store"
                    break
        return response


resolver = Resolver.from_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await resolver.aclose()


app = FastAPI(title="StreamHub API", version="0.2.0", lifespan=lifespan)

app.add_middleware(CacheControlMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, InvalidLookupKey):
        return HTTPException(400, str(e))
    if isinstance(e, NotFound):
        return HTTPException(404, str(e))
    if isinstance(e, (UpstreamError, StoreUnavailable)):
        return HTTPException(503, str(e))
    return HTTPException(500, str(e))


# --- API Routes ---

@app.get("/")
def root():
    return {"status": "ok", "sources": list(resolver.sources.keys())}


@app.get("/sources")
def list_sources():
    """List all loaded stream servers and manga providers."""
    return [s.describe() for s in resolver.sources.values()]


@app.get("/stream/{episode_id:path}")
async def get_stream(
    episode_id: str,
    category: str = Query(config.DEFAULT_CATEGORY),
    servers: Optional[str] = Query(None, description="Comma-separated server order"),
    ep: Optional[str] = None,
    refresh: bool = False,
):
    """
    Resolve playable sources for an episode, trying servers in order.
    HiAnime ids carry "?ep=N"; the query string splits it off, so it is
    glued back here.
    """
    if ep and "?ep=" not in episode_id:
        episode_id = f"{episode_id}?ep={ep}"
    server_list = [s.strip() for s in servers.split(",")] if servers else None

    try:
        resolution = await resolver.resolve_stream(episode_id, category, server_list, refresh)
    except Exception as e:
        raise _http_error(e)
    return {**resolution.payload.to_wire(), "servedBy": resolution.served_by}


@app.get("/manga/chapter")
async def get_chapter(
    chapter_id: str = Query(..., alias="chapterId"),
    provider: str = Query(config.DEFAULT_MANGA_PROVIDER),
    refresh: bool = False,
):
    """Chapter page images, falling back across manga providers."""
    try:
        resolution = await resolver.resolve_chapter(chapter_id, provider, refresh)
    except Exception as e:
        raise _http_error(e)
    return {**resolution.payload.to_wire(), "servedBy": resolution.served_by}


# --- Cache maintenance ---

@app.get("/cache-stats")
async def cache_stats(collection: Optional[str] = None):
    """Aggregate statistics over the persistent tier."""
    try:
        stats = await resolver.maintenance.stats(collection)
    except Exception as e:
        raise _http_error(e)
    return {
        "success": True,
        "cache": {
            "totalRecords": stats["total_records"],
            "totalSize": format_size(stats["total_size_bytes"]),
            "totalSizeBytes": stats["total_size_bytes"],
            "oldestCachedAt": stats["oldest_cached_at"],
            "newestCachedAt": stats["newest_cached_at"],
        },
        "message": f"{stats['total_records']} records cached, "
                   f"using {format_size(stats['total_size_bytes'])} of storage",
    }


@app.delete("/cache-stats")
async def purge_cache(days: float = Query(30, ge=0), collection: Optional[str] = None):
    """Delete records older than `days`."""
    try:
        deleted = await resolver.maintenance.purge(days, collection)
    except Exception as e:
        raise _http_error(e)
    return {
        "success": True,
        "message": f"Deleted {deleted} old cache records",
        "deletedCount": deleted,
    }


@app.get("/health")
async def health():
    return await resolver.health()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
