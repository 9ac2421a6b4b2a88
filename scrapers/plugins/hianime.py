"""HiAnime adapter backed by the aniwatch JSON API.

Responses are wrapped as ``{"success": true, "data": {...}}``. Several
public mirrors serve the same API; a failing mirror rotates to the next one
and the last working mirror is tried first on the following request.
"""

from models.models import (
    AnimeRecord,
    Category,
    EpisodeRecord,
    EpisodeServer,
    RankedAnime,
    SearchPage,
    SourceCapabilities,
    StreamingBundle,
    SubtitleTrack,
    TimeRange,
    VideoVariant,
)
from scrapers.base import SourceAdapter
from utils.exceptions import UpstreamUnavailableError
from utils.logging import get_logger
from utils.title_utils import map_status, map_type, normalize_quality, normalize_rating, strip_html

logger = get_logger(__name__)

API_PATH = "/api/v2/hianime"
MIRRORS = [
    "https://aniwatch-api-v2.vercel.app",
    "https://api-aniwatch.onrender.com",
    "https://aniwatch-api.onrender.com",
]
MATURE_RATINGS = {"R+", "R-17+", "RX"}
DEFAULT_HEADERS = {"Referer": "https://megacloud.blog/"}


class HiAnime(SourceAdapter):
    name = "hianime"
    capabilities = SourceCapabilities(has_dub=True, quality="high", has_schedule=True)
    server_priority = ["hd-2", "hd-1", "hd-3", "megacloud", "streamsb"]
    default_server = "hd-1"

    def __init__(self, mirrors: list[str] | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.mirrors = list(mirrors or MIRRORS)
        self._mirror = 0

    @property
    def base_url(self) -> str:
        return self.mirrors[self._mirror]

    async def _api(self, path: str, params: dict | None = None) -> dict:
        """GET an API path, rotating through mirrors until one answers."""
        last_error: Exception | None = None
        for offset in range(len(self.mirrors)):
            index = (self._mirror + offset) % len(self.mirrors)
            mirror = self.mirrors[index]
            try:
                payload = await self.fetcher.get_json(
                    f"{mirror}{API_PATH}{path}",
                    params=params,
                    headers={"Accept": "application/json"},
                )
                if not isinstance(payload, dict) or not (
                    payload.get("success") is True or payload.get("status") == 200
                ):
                    raise UpstreamUnavailableError(f"{mirror} answered without success flag")
            except Exception as e:
                last_error = e
                logger.debug("Mirror {} failed for {}: {}", mirror, path, e)
                continue
            self._mirror = index
            return payload.get("data") or {}
        raise last_error or UpstreamUnavailableError("No mirrors configured")

    # ========== Mapping ==========

    def _map_anime(self, data: dict, more: dict | None = None) -> AnimeRecord:
        more = more or {}
        episodes = data.get("episodes") or {}
        stats = data.get("stats") or {}
        age_rating = stats.get("rating") or data.get("rating") or ""
        aired = str(more.get("aired") or data.get("aired") or "")
        year = next((int(tok) for tok in aired.replace(",", " ").split() if tok.isdigit() and len(tok) == 4), None)
        studios = more.get("studios") or data.get("studios") or []
        if isinstance(studios, str):
            studios = [s.strip() for s in studios.split(",") if s.strip()]
        return AnimeRecord(
            id=self.qualify(str(data["id"])),
            title=data.get("name") or data.get("title") or "Unknown",
            title_native=data.get("jname"),
            image=data.get("poster") or "",
            cover=data.get("poster") or "",
            description=strip_html(data.get("description")),
            type=map_type(stats.get("type") or data.get("type")),
            status=map_status(more.get("status") or data.get("status")),
            rating=normalize_rating(more.get("malscore")),
            total_episodes=episodes.get("sub") or data.get("totalEpisodes") or 0,
            sub_count=episodes.get("sub") or 0,
            dub_count=episodes.get("dub") or 0,
            genres=more.get("genres") or data.get("genres") or [],
            studios=studios,
            season=more.get("premiered"),
            year=year,
            source=self.name,
            is_mature=age_rating in MATURE_RATINGS,
        )

    def _map_page(self, data: dict, page: int) -> SearchPage:
        return SearchPage(
            results=[self._map_anime(a) for a in data.get("animes") or [] if a.get("id")],
            total_pages=data.get("totalPages") or 1,
            current_page=data.get("currentPage") or page,
            has_next_page=bool(data.get("hasNextPage")),
            source=self.name,
        )

    # ========== Hooks ==========

    async def _health_check(self) -> bool:
        await self._api("/home")
        return True

    async def _search(self, query: str, page: int, filters: dict) -> SearchPage:
        data = await self._api("/search", {"q": query, "page": page, **filters})
        return self._map_page(data, page)

    async def _get_details(self, raw_id: str) -> AnimeRecord | None:
        data = await self._api(f"/anime/{raw_id}")
        anime = data.get("anime") or {}
        info = anime.get("info")
        if not info or not info.get("id"):
            return None
        return self._map_anime(info, anime.get("moreInfo"))

    async def _get_episodes(self, raw_id: str) -> list[EpisodeRecord]:
        data = await self._api(f"/anime/{raw_id}/episodes")
        # The episode list carries no dub flags; the first dub_count episodes are dubbed
        details = await self.get_details(self.qualify(raw_id))
        dubbed = details.dub_count if details else 0
        return [
            EpisodeRecord(
                id=self.qualify(ep["episodeId"]),
                number=ep.get("number") or index,
                title=ep.get("title") or f"Episode {ep.get('number') or index}",
                is_filler=bool(ep.get("isFiller")),
                has_sub=True,
                has_dub=(ep.get("number") or index) <= dubbed,
            )
            for index, ep in enumerate(data.get("episodes") or [], start=1)
            if ep.get("episodeId")
        ]

    async def _get_servers(self, raw_episode_id: str) -> list[EpisodeServer]:
        data = await self._api("/episode/servers", {"animeEpisodeId": raw_episode_id})
        servers = [
            EpisodeServer(name=s["serverName"], category=category)
            for category in (Category.SUB, Category.DUB)
            for s in data.get(category.value) or []
            if s.get("serverName")
        ]
        return servers or [EpisodeServer(name=name) for name in ("hd-1", "hd-2")]

    async def _fetch_stream(
        self, raw_episode_id: str, server: str, category: Category
    ) -> StreamingBundle:
        data = await self._api(
            "/episode/sources",
            {"animeEpisodeId": raw_episode_id, "server": server, "category": category.value},
        )
        sources = [
            VideoVariant(
                url=s["url"],
                quality=normalize_quality(s.get("quality")),
                is_m3u8=bool(s.get("isM3U8")) or ".m3u8" in s["url"],
                is_dash=".mpd" in s["url"],
            )
            for s in data.get("sources") or []
            if s.get("url")
        ]
        subtitles = [
            SubtitleTrack(url=t["file"], lang=t.get("label") or "", label=t.get("label") or "")
            for t in data.get("tracks") or data.get("subtitles") or []
            if t.get("file") and t.get("kind", "captions") == "captions"
        ]
        return StreamingBundle(
            sources=sources,
            subtitles=subtitles,
            headers=data.get("headers") or DEFAULT_HEADERS,
            intro=_time_range(data.get("intro")),
            outro=_time_range(data.get("outro")),
        )

    async def _get_by_genre(self, genre: str, page: int) -> SearchPage:
        slug = "-".join(genre.lower().split())
        return self._map_page(await self._api(f"/genre/{slug}", {"page": page}), page)

    async def _get_trending(self, page: int) -> list[AnimeRecord]:
        if page > 1:  # /home has a single trending page
            return []
        data = await self._api("/home")
        items = data.get("trendingAnimes") or data.get("spotlightAnimes") or []
        return [self._map_anime(a) for a in items if a.get("id")]

    async def _get_latest(self, page: int) -> list[AnimeRecord]:
        data = await self._api("/category/recently-updated", {"page": page})
        return [self._map_anime(a) for a in data.get("animes") or [] if a.get("id")]

    async def _get_top_rated(self, page: int, limit: int) -> list[RankedAnime]:
        if page > 1:  # /home only carries a top-10 chart
            return []
        data = await self._api("/home")
        charts = data.get("top10Animes") or {}
        items = [a for a in charts.get("today") or charts.get("week") or [] if a.get("id")]
        return [
            RankedAnime(rank=a.get("rank") or position, anime=self._map_anime(a))
            for position, a in enumerate(items[:limit], start=1)
        ]


def _time_range(raw: dict | None) -> TimeRange | None:
    if not raw:
        return None
    start, end = raw.get("start") or 0, raw.get("end") or 0
    if end <= start:
        return None
    return TimeRange(start=start, end=end)


def load(manager) -> None:
    manager.register(HiAnime())
