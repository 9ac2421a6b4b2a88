"""Source adapter contract.

Every upstream provider is one SourceAdapter subclass. Subclasses implement
the underscore hooks (_search, _get_details, ...) and return canonical
models; the public methods wrap each hook so that:

- a cached, unexpired result is returned without calling the upstream
- any exception is logged and turned into the operation's empty value
- empty results are never cached
- every real call reports (adapter, outcome, latency) to the observer
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from models.config import settings
from models.models import (
    AnimeRecord,
    Category,
    EpisodeRecord,
    EpisodeServer,
    Outcome,
    RankedAnime,
    SearchPage,
    SourceCapabilities,
    StreamingBundle,
    is_empty,
)
from scrapers.fetcher import Fetcher
from scrapers.streaming import StreamingResolver, server_order
from utils.cache_manager import TTLCache, fold_text, make_key
from utils.logging import get_logger

logger = get_logger(__name__)

Observer = Callable[[str, Outcome, float], None]


class SourceAdapter(ABC):
    """Base class for one upstream provider.

    Class attributes:
        name: Adapter identifier, also the id prefix (e.g. "hianime")
        base_url: Upstream root URL
        capabilities: Static features used for source recommendation
        server_priority: Streaming servers by decreasing reliability
        default_server: Tried after every server in server_priority
    """

    name: str = ""
    base_url: str = ""
    capabilities: SourceCapabilities = SourceCapabilities()
    server_priority: list[str] = []
    default_server: str = "default"

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        clock: Callable[[], float] = time.monotonic,
        resolver: StreamingResolver | None = None,
    ) -> None:
        if not self.name:
            raise TypeError(f"{type(self).__name__} must define a name")
        self.fetcher = fetcher or Fetcher()
        self.cache = TTLCache(clock=clock)
        self.resolver = resolver or StreamingResolver()
        self._observer: Observer | None = None

    # ========== Identity ==========

    @property
    def id_prefix(self) -> str:
        return f"{self.name}-"

    def owns(self, item_id: str) -> bool:
        """Whether an anime/episode id was issued by this adapter."""
        return item_id.lower().startswith(self.id_prefix.lower())

    def qualify(self, raw_id: str) -> str:
        """Prefix a provider id with the adapter name."""
        return raw_id if self.owns(raw_id) else f"{self.id_prefix}{raw_id}"

    def unqualify(self, item_id: str) -> str:
        """Strip the adapter prefix from an id."""
        return item_id[len(self.id_prefix):] if self.owns(item_id) else item_id

    def implements(self, hook: str) -> bool:
        """Whether the subclass overrides an optional hook (e.g. "_get_by_genre")."""
        return getattr(type(self), hook) is not getattr(SourceAdapter, hook)

    @property
    def supports_genre(self) -> bool:
        return self.implements("_get_by_genre")

    def bind_observer(self, observer: Observer | None) -> None:
        """Register the callback receiving (name, outcome, latency_ms)."""
        self._observer = observer

    # ========== Guarded runner ==========

    def _report(self, outcome: Outcome, started: float) -> None:
        latency_ms = (time.perf_counter() - started) * 1000
        if self._observer is not None:
            self._observer(self.name, outcome, latency_ms)

    async def _run(
        self,
        operation: str,
        args: tuple,
        producer: Callable[[], Awaitable[Any]],
        empty: Any,
        ttl: float,
    ) -> Any:
        key = make_key(operation, *args)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("{} cache hit: {}", self.name, key)
            return cached

        started = time.perf_counter()
        try:
            result = await producer()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("{} {} failed: {}: {}", self.name, operation, type(e).__name__, e)
            self._report(Outcome.FAILURE, started)
            return empty

        if is_empty(result):
            logger.debug("{} {} returned nothing for {}", self.name, operation, args)
            self._report(Outcome.EMPTY, started)
            return empty

        self._report(Outcome.SUCCESS, started)
        self.cache.set(key, result, ttl)
        return result

    # ========== Public contract ==========

    async def health_check(self) -> bool:
        """Probe the upstream. Never raises."""
        try:
            return bool(await self._health_check())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("{} health check failed: {}", self.name, e)
            return False

    async def search(self, query: str, page: int = 1, filters: dict | None = None) -> SearchPage:
        query = query.strip()

        async def produce():
            result = await self._search(query, page, filters or {})
            return self._tag(result)

        filter_key = ",".join(f"{k}={v}" for k, v in sorted((filters or {}).items())) or None
        return await self._run(
            "search",
            (fold_text(query), page, filter_key),
            produce,
            SearchPage.empty(page, self.name),
            settings.cache.search_ttl,
        )

    async def get_details(self, anime_id: str) -> AnimeRecord | None:
        return await self._run(
            "details",
            (anime_id,),
            lambda: self._get_details(self.unqualify(anime_id)),
            None,
            settings.cache.details_ttl,
        )

    async def get_episodes(self, anime_id: str) -> list[EpisodeRecord]:
        return await self._run(
            "episodes",
            (anime_id,),
            lambda: self._get_episodes(self.unqualify(anime_id)),
            [],
            settings.cache.episodes_ttl,
        )

    async def get_servers(self, episode_id: str) -> list[EpisodeServer]:
        return await self._run(
            "servers",
            (episode_id,),
            lambda: self._get_servers(self.unqualify(episode_id)),
            [],
            settings.cache.servers_ttl,
        )

    async def get_streaming_links(
        self,
        episode_id: str,
        server: str | None = None,
        category: Category | str = Category.SUB,
    ) -> StreamingBundle:
        category = Category(category)
        servers = server_order(server, [*self.server_priority, self.default_server])

        async def produce():
            bundle = await self.resolver.resolve(
                self._fetch_stream, self.unqualify(episode_id), servers, category
            )
            return bundle.model_copy(update={"source": self.name})

        return await self._run(
            "stream",
            (episode_id, server, category),
            produce,
            StreamingBundle.empty(self.name),
            settings.cache.stream_ttl,
        )

    async def get_by_genre(self, genre: str, page: int = 1) -> SearchPage:
        """Genre listing; adapters without one answer with a search for the genre."""
        if not self.supports_genre:
            return await self.search(genre, page)

        async def produce():
            return self._tag(await self._get_by_genre(genre.strip(), page))

        return await self._run(
            "genre",
            (fold_text(genre), page),
            produce,
            SearchPage.empty(page, self.name),
            settings.cache.genre_ttl,
        )

    async def get_trending(self, page: int = 1) -> list[AnimeRecord]:
        if not self.implements("_get_trending"):
            return []
        return await self._run(
            "trending", (page,), lambda: self._get_trending(page), [], settings.cache.home_ttl
        )

    async def get_latest(self, page: int = 1) -> list[AnimeRecord]:
        if not self.implements("_get_latest"):
            return []
        return await self._run(
            "latest", (page,), lambda: self._get_latest(page), [], settings.cache.home_ttl
        )

    async def get_top_rated(self, page: int = 1, limit: int = 10) -> list[RankedAnime]:
        """Top-rated chart; [] for adapters without one."""
        if not self.implements("_get_top_rated"):
            return []
        return await self._run(
            "top_rated",
            (page, limit),
            lambda: self._get_top_rated(page, limit),
            [],
            settings.cache.home_ttl,
        )

    async def close(self) -> None:
        await self.fetcher.close()

    def _tag(self, page: SearchPage | None) -> SearchPage | None:
        if page is None:
            return None
        return page.model_copy(update={"source": self.name})

    # ========== Provider hooks ==========

    @abstractmethod
    async def _health_check(self) -> bool: ...

    @abstractmethod
    async def _search(self, query: str, page: int, filters: dict) -> SearchPage | None: ...

    @abstractmethod
    async def _get_details(self, raw_id: str) -> AnimeRecord | None: ...

    @abstractmethod
    async def _get_episodes(self, raw_id: str) -> list[EpisodeRecord]: ...

    @abstractmethod
    async def _get_servers(self, raw_episode_id: str) -> list[EpisodeServer]: ...

    @abstractmethod
    async def _fetch_stream(
        self, raw_episode_id: str, server: str, category: Category
    ) -> StreamingBundle | None:
        """One attempt against one server; the resolver handles retries."""

    async def _get_by_genre(self, genre: str, page: int) -> SearchPage | None:
        raise NotImplementedError

    async def _get_trending(self, page: int) -> list[AnimeRecord]:
        raise NotImplementedError

    async def _get_latest(self, page: int) -> list[AnimeRecord]:
        raise NotImplementedError

    async def _get_top_rated(self, page: int, limit: int) -> list[RankedAnime]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
