"""Pydantic data models for the canonical anime shapes.

Defines DTOs (Data Transfer Objects) for:
- AnimeRecord: Anime information produced by every source adapter
- EpisodeRecord: One episode of an anime
- VideoVariant: One playable rendition of an episode
- StreamingBundle: Playable variants plus subtitles and playback headers
- SearchPage: Paginated listing returned by search-like operations
- RankedAnime: One entry of a top-rated chart
- SourceHealth: Health snapshot of one adapter
- SearchQuery: Validated request parameters
- BrowseFilters: Filter, sort and paging options for browsing
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Type aliases for common patterns
SourceName: TypeAlias = str
AnimeId: TypeAlias = str
EpisodeId: TypeAlias = str
ServerName: TypeAlias = str
LatencyMs: TypeAlias = float


class AnimeType(str, Enum):
    """Anime format."""

    TV = "TV"
    MOVIE = "Movie"
    OVA = "OVA"
    ONA = "ONA"
    SPECIAL = "Special"


class AiringStatus(str, Enum):
    """Anime airing status."""

    ONGOING = "Ongoing"
    COMPLETED = "Completed"
    UPCOMING = "Upcoming"


class Category(str, Enum):
    """Audio track category."""

    SUB = "sub"
    DUB = "dub"


class Quality(str, Enum):
    """Video quality label, ordered best first."""

    Q1080 = "1080p"
    Q720 = "720p"
    Q480 = "480p"
    Q360 = "360p"
    AUTO = "auto"

    @property
    def rank(self) -> int:
        """Sort rank (0 = best)."""
        return _QUALITY_RANK[self]


_QUALITY_RANK = {
    Quality.Q1080: 0,
    Quality.Q720: 1,
    Quality.Q480: 2,
    Quality.Q360: 3,
    Quality.AUTO: 4,
}


class HealthStatus(str, Enum):
    """Circuit state of a source adapter."""

    ONLINE = "Online"
    DEGRADED = "Degraded"
    OFFLINE = "Offline"
    UNKNOWN = "Unknown"


class Outcome(str, Enum):
    """Result of one adapter call as seen by the health monitor."""

    SUCCESS = "success"
    EMPTY = "empty"
    FAILURE = "failure"


class ContentMode(str, Enum):
    """Which content a listing may include.

    safe drops adult sources and mature records, adult queries only adult
    sources, mixed applies no filtering.
    """

    SAFE = "safe"
    MIXED = "mixed"
    ADULT = "adult"


class CanonicalModel(BaseModel):
    """Base for immutable records serialised with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AnimeRecord(CanonicalModel):
    """Anime metadata from one source.

    Attributes:
        id: Source-qualified id (``"<source>-<raw id>"``)
        title: Display title (non-empty)
        title_native: Native/romaji title
        rating: Score on a 0-10 scale
        genres: Unique genre names, first occurrence order
        source: Name of the adapter that produced the record
        is_mature: Adult content flag

    Validation:
        - id must be prefixed with the owning source's name
        - rating, when present, must be within 0-10
    """

    id: AnimeId = Field(..., min_length=1, description="Source-qualified id")
    title: str = Field(..., min_length=1, description="Anime title")
    title_native: str | None = Field(None, description="Native title")
    image: str = Field("", description="Poster URL")
    cover: str = Field("", description="Cover/banner URL")
    description: str = Field("", description="Plain-text synopsis")
    type: AnimeType = Field(AnimeType.TV, description="Anime format")
    status: AiringStatus = Field(AiringStatus.COMPLETED, description="Airing status")
    rating: float | None = Field(None, description="Score on a 0-10 scale")
    total_episodes: int = Field(0, ge=0, description="Total episode count")
    sub_count: int = Field(0, ge=0, description="Subbed episodes available")
    dub_count: int = Field(0, ge=0, description="Dubbed episodes available")
    genres: list[str] = Field(default_factory=list, description="Genre names")
    studios: list[str] = Field(default_factory=list, description="Studios in credit order")
    season: str | None = Field(None, description="Season label (e.g. Fall 2024)")
    year: int | None = Field(None, ge=1900, le=2100, description="Release year")
    source: SourceName = Field(..., min_length=1, description="Origin adapter name")
    is_mature: bool = Field(False, description="Adult content flag")

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v: float | None) -> float | None:
        """Rating must already be normalised to 0-10."""
        if v is not None and not 0 <= v <= 10:
            raise ValueError(f"Rating must be on a 0-10 scale, got: {v}")
        return v

    @field_validator("genres")
    @classmethod
    def dedupe_genres(cls, v: list[str]) -> list[str]:
        """Drop blank and repeated genres, keeping first occurrence."""
        seen = set()
        unique = []
        for genre in v:
            genre = genre.strip()
            if genre and genre.lower() not in seen:
                seen.add(genre.lower())
                unique.append(genre)
        return unique

    @model_validator(mode="after")
    def validate_id_prefix(self) -> "AnimeRecord":
        """Validate id is qualified with the source name."""
        prefix = f"{self.source.lower()}-"
        if not self.id.lower().startswith(prefix):
            raise ValueError(f"Anime id {self.id!r} must start with {prefix!r}")
        return self


class EpisodeRecord(CanonicalModel):
    """Episode of an anime.

    The id is an opaque token for the owning source and is not unique
    across sources.
    """

    id: EpisodeId = Field(..., min_length=1, description="Source-opaque episode token")
    number: int = Field(..., ge=1, description="1-based episode number")
    title: str = Field("", description="Episode title")
    is_filler: bool = Field(False, description="Filler episode flag")
    has_sub: bool = Field(True, description="Subbed version available")
    has_dub: bool = Field(False, description="Dubbed version available")
    thumbnail: str | None = Field(None, description="Thumbnail URL")


class VideoVariant(CanonicalModel):
    """One playable rendition of an episode."""

    url: str = Field(..., min_length=1, description="Playback URL")
    quality: Quality = Field(Quality.AUTO, description="Quality label")
    is_m3u8: bool = Field(False, alias="isM3U8", description="HLS playlist")
    is_dash: bool = Field(False, alias="isDASH", description="DASH manifest")


class SubtitleTrack(CanonicalModel):
    """Subtitle track for a stream."""

    url: str = Field(..., min_length=1, description="Subtitle file URL")
    lang: str = Field("", description="Language code")
    label: str = Field("", description="Display label")


class TimeRange(CanonicalModel):
    """Intro/outro window in seconds."""

    start: float = Field(..., ge=0)
    end: float = Field(..., ge=0)

    @model_validator(mode="after")
    def validate_order(self) -> "TimeRange":
        """End must not precede start."""
        if self.end < self.start:
            raise ValueError(f"Range end {self.end} precedes start {self.start}")
        return self


class StreamingBundle(CanonicalModel):
    """Playable sources for one episode.

    An empty bundle (no sources) is a valid result meaning nothing playable
    was found; it is never an error.
    """

    sources: list[VideoVariant] = Field(default_factory=list)
    subtitles: list[SubtitleTrack] = Field(default_factory=list)
    headers: dict[str, str] | None = Field(None, description="Headers required for playback")
    intro: TimeRange | None = None
    outro: TimeRange | None = None
    source: SourceName | None = Field(None, description="Origin adapter name")
    server: ServerName | None = Field(None, description="Server that produced the sources")

    @classmethod
    def empty(cls, source: SourceName | None = None) -> "StreamingBundle":
        return cls(source=source)

    @property
    def is_empty(self) -> bool:
        return not self.sources

    def sorted_by_quality(self) -> "StreamingBundle":
        """Copy with variants ordered best quality first (stable)."""
        ordered = sorted(self.sources, key=lambda v: v.quality.rank)
        return self.model_copy(update={"sources": ordered})


class EpisodeServer(CanonicalModel):
    """Streaming server offered for an episode."""

    name: ServerName = Field(..., min_length=1)
    category: Category = Field(Category.SUB)


class SearchPage(CanonicalModel):
    """Paginated listing of anime records."""

    results: list[AnimeRecord] = Field(default_factory=list)
    total_pages: int = Field(0, ge=0)
    current_page: int = Field(1, ge=1)
    has_next_page: bool = False
    source: SourceName = Field("none", description="Adapter(s) that produced the page")

    @classmethod
    def empty(cls, page: int = 1, source: SourceName = "none") -> "SearchPage":
        return cls(current_page=page, source=source)

    @property
    def is_empty(self) -> bool:
        return not self.results


class RankedAnime(CanonicalModel):
    """One entry of a source's top-rated chart."""

    rank: int = Field(..., ge=1, description="1-based chart position")
    anime: AnimeRecord


class SourceCapabilities(CanonicalModel):
    """Static features of an adapter used for source recommendation."""

    has_dub: bool = False
    quality: str = Field("medium", pattern="^(high|medium|low)$")
    has_schedule: bool = False
    is_adult: bool = False


class SourceHealth(CanonicalModel):
    """Health snapshot of one adapter."""

    name: SourceName
    status: HealthStatus = HealthStatus.UNKNOWN
    latency_ms: LatencyMs | None = Field(None, alias="latency", description="Rolling mean latency")
    success_rate: float = Field(1.0, ge=0, le=1, description="Rolling success ratio")
    last_checked: datetime | None = None
    consecutive_failures: int = Field(0, ge=0)
    total_requests: int = Field(0, ge=0)


class BestSourceOptions(CanonicalModel):
    """Filters and preferences for source recommendation."""

    prefer_dub: bool = False
    prefer_high_quality: bool = False
    require_schedule: bool = False
    exclude_adult: bool = True


class SearchQuery(BaseModel):
    """Validated search request.

    Attributes:
        query: Trimmed, non-empty search text
        page: 1-based page number
        source: Optional explicit adapter name (directed mode)
    """

    query: str = Field(..., description="Search text")
    page: int = Field(1, ge=1, description="1-based page")
    source: SourceName | None = Field(None, description="Explicit source")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        """Query must contain non-whitespace text."""
        v = v.strip()
        if not v:
            raise ValueError("Query must not be empty")
        return v

    @field_validator("source")
    @classmethod
    def normalize_source(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


BrowseSort: TypeAlias = Literal["rating", "year", "title", "episodes"]


class BrowseFilters(BaseModel):
    """Validated browse request.

    Every filter left unset matches all records. Genres match when any
    requested genre is a case-insensitive substring of a record genre.

    Validation:
        - type and status accept their labels in any case ("tv", "ongoing")
        - page >= 1, 1 <= limit <= 100
    """

    type: AnimeType | None = None
    genres: list[str] = Field(default_factory=list)
    status: AiringStatus | None = None
    year: int | None = Field(None, ge=1900, le=2100)
    sort: BrowseSort = "rating"
    order: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    source: SourceName | None = None
    mode: ContentMode = ContentMode.SAFE

    @field_validator("type", "status", mode="before")
    @classmethod
    def match_label(cls, v: Any, info: ValidationInfo) -> Any:
        if not isinstance(v, str):
            return v
        enum = AnimeType if info.field_name == "type" else AiringStatus
        wanted = v.strip().lower()
        return next((member for member in enum if member.value.lower() == wanted), v)

    @field_validator("genres")
    @classmethod
    def drop_blank_genres(cls, v: list[str]) -> list[str]:
        return [genre.strip().lower() for genre in v if genre.strip()]

    def matches(self, record: AnimeRecord) -> bool:
        if self.type is not None and record.type != self.type:
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.year is not None and record.year != self.year:
            return False
        if self.genres:
            owned = [genre.lower() for genre in record.genres]
            if not any(wanted in genre for wanted in self.genres for genre in owned):
                return False
        return True

    def sort_key(self, record: AnimeRecord) -> Any:
        if self.sort == "title":
            return record.title.casefold()
        if self.sort == "year":
            return record.year or 0
        if self.sort == "episodes":
            return record.total_episodes
        return record.rating or 0.0


def is_empty(value: Any) -> bool:
    """Whether an operation result counts as "nothing found".

    Examples:
        >>> is_empty(None), is_empty([]), is_empty(StreamingBundle())
        (True, True, True)
    """
    if value is None:
        return True
    if isinstance(value, (SearchPage, StreamingBundle)):
        return value.is_empty
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False
