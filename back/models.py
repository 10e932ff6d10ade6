"""
Payload and record types.

Wire/persisted names are camelCase (episodeId, isM3U8, headerForImage...),
python attribute names are snake_case. Both are accepted on input.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

import config

STREAM = "stream"
CHAPTER = "chapter"

COLLECTIONS = {
    STREAM: "stream_cache",
    CHAPTER: "chapter_cache",
}


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Streams ---

class VideoSource(_Wire):
    url: str
    quality: str = "default"
    is_m3u8: bool = Field(False, alias="isM3U8")


class Subtitle(_Wire):
    url: str
    lang: str
    label: Optional[str] = None


class SkipRange(_Wire):
    start: float
    end: float

    @property
    def is_real(self) -> bool:
        """Upstreams send {start: 0, end: 0} when they know nothing."""
        return self.end > 0 and self.end - self.start > 0


class StreamPayload(_Wire):
    kind: Literal["stream"] = Field("stream", exclude=True)
    embed_url: Optional[str] = Field(None, alias="embedUrl")
    sources: list[VideoSource] = []
    subtitles: list[Subtitle] = []
    headers: Optional[dict[str, str]] = None
    intro: Optional[SkipRange] = None
    outro: Optional[SkipRange] = None

    def is_empty(self) -> bool:
        # an embed URL alone is still playable (iframe)
        return not self.sources and not self.embed_url


# --- Manga chapters ---

class ChapterPage(_Wire):
    img: str
    page: int
    header_for_image: Optional[dict[str, str]] = Field(None, alias="headerForImage")


class ChapterPayload(_Wire):
    kind: Literal["chapter"] = Field("chapter", exclude=True)
    pages: list[ChapterPage] = []

    def is_empty(self) -> bool:
        return not self.pages


ResourcePayload = Union[StreamPayload, ChapterPayload]


def is_empty(payload: Optional[ResourcePayload]) -> bool:
    return payload is None or payload.is_empty()


# --- Cache ---

class LookupKey(BaseModel):
    """Identifies one resource variant from one provider. Built through cache_key.lookup_key()."""
    model_config = ConfigDict(frozen=True)

    resource_type: Literal["stream", "chapter"]
    resource_id: str
    provider: str
    variant: str

    @property
    def collection(self) -> str:
        return COLLECTIONS[self.resource_type]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheRecord(BaseModel):
    key: LookupKey
    payload: Union[StreamPayload, ChapterPayload] = Field(discriminator="kind")
    cached_at: datetime = Field(default_factory=utcnow)
    schema_version: str = config.SCHEMA_VERSION

    def to_document(self) -> dict[str, Any]:
        """Persisted field set, one shape per collection."""
        stamp = {
            "cachedAt": self.cached_at.isoformat(),
            "schemaVersion": self.schema_version,
        }
        if self.key.resource_type == STREAM:
            doc = {
                "episodeId": self.key.resource_id,
                "server": self.key.provider,
                "languageCategory": self.key.variant,
                **self.payload.to_wire(),
                **stamp,
            }
            # only real skip ranges are stored
            for name in ("intro", "outro"):
                rng = getattr(self.payload, name)
                doc.pop(name, None)
                if rng is not None and rng.is_real:
                    doc[f"{name}Range"] = rng.to_wire()
            return doc
        return {
            "chapterId": self.key.resource_id,
            "provider": self.key.provider,
            **self.payload.to_wire(),
            **stamp,
        }

    @classmethod
    def from_document(cls, key: LookupKey, doc: dict[str, Any]) -> "CacheRecord":
        if key.resource_type == STREAM:
            intro = doc.get("introRange")
            outro = doc.get("outroRange")
            payload = StreamPayload(
                embed_url=doc.get("embedUrl"),
                sources=doc.get("sources", []),
                subtitles=doc.get("subtitles", []),
                headers=doc.get("headers"),
                intro=SkipRange(**intro) if intro else None,
                outro=SkipRange(**outro) if outro else None,
            )
        else:
            payload = ChapterPayload(pages=doc.get("pages", []))
        return cls(
            key=key,
            payload=payload,
            cached_at=datetime.fromisoformat(doc["cachedAt"]),
            schema_version=doc.get("schemaVersion", config.SCHEMA_VERSION),
        )


# --- Resolution ---

@dataclass
class ProviderResult:
    provider_name: str
    payload: Optional[ResourcePayload] = None
    succeeded: bool = False
    error: Optional[BaseException] = None


@dataclass
class Resolution:
    """Outcome of a provider chain. `found` is False once every provider came back empty."""
    payload: Optional[ResourcePayload]
    served_by: Optional[str]
    attempts: list[ProviderResult] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.served_by is not None

    @classmethod
    def not_found(cls, attempts: list[ProviderResult]) -> "Resolution":
        return cls(payload=None, served_by=None, attempts=attempts)
