"""Source manager: adapter registry, ordering, fallback walks and fan-out.

Two request modes:
- Directed (source given): only that adapter is called, even when it is
  unhealthy (a warning is logged). No fallback.
- Undirected: adapters are walked one at a time in priority order, Offline
  ones moved to the end (and Degraded ones after healthy ones), stopping at
  the first non-empty result. Exhaustion yields an empty result tagged
  source "none"; it never raises.

Fan-out operations (search_all, trending, latest) query the healthy adapters
concurrently under one deadline and merge whatever arrived in time.
"""

import asyncio
import math
import random
import time
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from models.config import ManagerSettings, settings
from models.models import (
    AnimeRecord,
    BestSourceOptions,
    BrowseFilters,
    Category,
    ContentMode,
    EpisodeRecord,
    EpisodeServer,
    HealthStatus,
    Outcome,
    RankedAnime,
    SearchPage,
    SearchQuery,
    SourceHealth,
    StreamingBundle,
    is_empty,
)
from scrapers.base import SourceAdapter
from services.health import HealthMonitor
from utils.exceptions import InvalidRequestError, SourceNotFoundError, UpstreamTimeoutError
from utils.logging import get_logger
from utils.title_utils import best_match, dedupe_key

logger = get_logger(__name__)

AdapterCall = Callable[[SourceAdapter], Awaitable[Any]]

_TIER = {
    HealthStatus.ONLINE: 0,
    HealthStatus.UNKNOWN: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.OFFLINE: 2,
}


class SourceManager:
    """Orchestrates every registered source adapter.

    Construct one per process (or per test) and pass it around; it owns the
    adapter registry, the priority order and the health table.

    Args:
        adapters: Adapters to register immediately
        priority: Adapter names by decreasing reliability (settings.manager.priority)
        health: Health monitor (a fresh one by default)
        config: Ordering and budget settings (settings.manager)
        rng: Random source for get_random_anime (injectable for tests)
    """

    def __init__(
        self,
        adapters: list[SourceAdapter] | None = None,
        priority: list[str] | None = None,
        health: HealthMonitor | None = None,
        config: ManagerSettings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or settings.manager
        self.health = health or HealthMonitor()
        self._rng = rng or random.Random()
        self._adapters: dict[str, SourceAdapter] = {}
        self._priority: list[str] = [
            name.lower() for name in (priority if priority is not None else self.config.priority)
        ]
        self._tasks: list[asyncio.Task] = []
        for adapter in adapters or []:
            self.register(adapter)

    # ========== Registry ==========

    def register(self, adapter: SourceAdapter) -> None:
        """Add an adapter; names missing from the priority list go last."""
        name = adapter.name.lower()
        if name in self._adapters:
            logger.warning("Source {} registered twice, replacing", name)
        self._adapters[name] = adapter
        adapter.bind_observer(self.health.record)
        self.health.register(adapter.name)
        if name not in self._priority:
            self._priority.append(name)
        logger.debug("Registered source {}", name)

    def get_adapter(self, name: str) -> SourceAdapter:
        """Look up an adapter by (case-insensitive) name.

        Raises:
            SourceNotFoundError: If no adapter has that name
        """
        adapter = self._adapters.get((name or "").strip().lower())
        if adapter is None:
            raise SourceNotFoundError(
                f"Unknown source {name!r}; available: {', '.join(self.ordered_sources())}"
            )
        return adapter

    def ordered_sources(self) -> list[str]:
        """Registered adapter names in static priority order."""
        return [name for name in self._priority if name in self._adapters]

    def candidates(self, adapters: list[SourceAdapter] | None = None) -> list[SourceAdapter]:
        """Fallback order: priority order, stably re-ranked by health tier."""
        if adapters is None:
            adapters = [self._adapters[name] for name in self.ordered_sources()]

        def tier(adapter: SourceAdapter) -> int:
            rank = _TIER[self.health.status(adapter.name)]
            if rank == 1 and not self.config.demote_degraded:
                return 0
            return rank

        return sorted(adapters, key=tier)

    @staticmethod
    def _admits(adapter: SourceAdapter, mode: ContentMode) -> bool:
        """Whether undirected requests in mode may use adapter."""
        if mode == ContentMode.SAFE:
            return not adapter.capabilities.is_adult
        if mode == ContentMode.ADULT:
            return adapter.capabilities.is_adult
        return True

    def _mode_candidates(self, mode: ContentMode) -> list[SourceAdapter]:
        return [adapter for adapter in self.candidates() if self._admits(adapter, mode)]

    @staticmethod
    def _screen(value: Any, mode: ContentMode) -> Any:
        """Drop mature records from a result in safe mode."""
        if mode != ContentMode.SAFE or value is None:
            return value

        def mature(item) -> bool:
            record = item.anime if isinstance(item, RankedAnime) else item
            return record.is_mature

        if isinstance(value, SearchPage):
            return value.model_copy(
                update={"results": [r for r in value.results if not mature(r)]}
            )
        return [item for item in value if not mature(item)]

    def _owners(self, item_id: str) -> list[SourceAdapter]:
        """Candidates that issued item_id, or every candidate if none claims it."""
        ordered = self.candidates()
        return [a for a in ordered if a.owns(item_id)] or ordered

    def get_available_sources(self) -> list[str]:
        """Names of adapters that are not Offline, in fallback order."""
        return [
            adapter.name
            for adapter in self.candidates()
            if self.health.status(adapter.name) != HealthStatus.OFFLINE
        ]

    def get_health_status(self) -> dict[str, SourceHealth]:
        return {name: self.health.snapshot(self._adapters[name].name) for name in self.ordered_sources()}

    def get_source_status(self) -> list[dict]:
        """Health, capabilities and priority of every adapter (for status pages)."""
        status = []
        for index, name in enumerate(self.ordered_sources(), start=1):
            adapter = self._adapters[name]
            status.append(
                {
                    "name": adapter.name,
                    "priority": index,
                    "health": self.health.snapshot(adapter.name).to_dict(),
                    "capabilities": adapter.capabilities.to_dict(),
                    "supportsGenre": adapter.supports_genre,
                    "cache": adapter.cache.stats(),
                }
            )
        return status

    def set_preferred_source(self, name: str) -> bool:
        """Move an adapter to the front of the priority list.

        Returns:
            False if no adapter has that name
        """
        key = (name or "").strip().lower()
        if key not in self._adapters:
            return False
        self._priority.remove(key)
        self._priority.insert(0, key)
        logger.info("Preferred source set to {}", key)
        return True

    # ========== Health ==========

    async def _probe(self, adapter: SourceAdapter) -> None:
        started = time.perf_counter()
        try:
            healthy = await asyncio.wait_for(
                adapter.health_check(), timeout=self.health.config.probe_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Health check for {} timed out", adapter.name)
            healthy = False
        self.health.record_probe(adapter.name, healthy, (time.perf_counter() - started) * 1000)

    async def check_all_health(self) -> dict[str, SourceHealth]:
        """Probe every adapter concurrently and return the fresh health table."""
        adapters = [self._adapters[name] for name in self.ordered_sources()]
        await asyncio.gather(*(self._probe(adapter) for adapter in adapters))
        return self.get_health_status()

    async def probe_offline(self) -> int:
        """Re-probe Offline adapters; returns how many were probed."""
        offline = [
            adapter
            for adapter in self._adapters.values()
            if self.health.status(adapter.name) == HealthStatus.OFFLINE
        ]
        await asyncio.gather(*(self._probe(adapter) for adapter in offline))
        return len(offline)

    def get_best_source(self, options: BestSourceOptions | None = None) -> str | None:
        """Recommend an adapter from the health table alone (no network).

        Scoring: base 100; quality high +30, medium +15; mean latency
        <500ms +20, <1s +10, <2s +5, unknown +10; success ratio * 30 once
        min_samples calls were seen, else +20; +10 for dub when preferred.
        Ties go to the higher-priority adapter.
        """
        opts = options or BestSourceOptions()
        best_name, best_score = None, float("-inf")
        for name in self.ordered_sources():
            adapter = self._adapters[name]
            caps = adapter.capabilities
            snapshot = self.health.snapshot(adapter.name)
            if snapshot.status == HealthStatus.OFFLINE:
                continue
            if opts.exclude_adult and caps.is_adult:
                continue
            if opts.prefer_dub and not caps.has_dub:
                continue
            if opts.require_schedule and not caps.has_schedule:
                continue
            if opts.prefer_high_quality and caps.quality == "low":
                continue

            score = 100.0
            score += {"high": 30, "medium": 15}.get(caps.quality, 0)
            latency = snapshot.latency_ms
            if latency is None:
                score += 10
            elif latency < 500:
                score += 20
            elif latency < 1000:
                score += 10
            elif latency < 2000:
                score += 5
            if snapshot.total_requests > self.health.config.min_samples:
                score += snapshot.success_rate * 30
            else:
                score += 20
            if opts.prefer_dub and caps.has_dub:
                score += 10

            if score > best_score:
                best_name, best_score = adapter.name, score
        return best_name

    # ========== Guarded calls ==========

    def _budget(self, operation: str) -> float:
        """Seconds one adapter may spend on an operation.

        A stream call walks every server with retries inside the adapter, so it
        gets its own budget instead of the per-candidate one.
        """
        if operation == "stream":
            return self.config.stream_timeout
        return self.config.candidate_timeout

    async def _call(self, adapter: SourceAdapter, operation: str, call: AdapterCall) -> Any:
        timeout = self._budget(operation)
        try:
            return await asyncio.wait_for(call(adapter), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamTimeoutError(
                f"{adapter.name}.{operation} exceeded {timeout:g}s"
            ) from e

    async def _attempt(self, adapter: SourceAdapter, operation: str, call: AdapterCall) -> Any:
        """One bounded adapter call; timeouts and stray exceptions become None."""
        started = time.perf_counter()
        try:
            return await self._call(adapter, operation, call)
        except UpstreamTimeoutError as e:
            logger.warning("{}", e)
        except Exception as e:
            # Adapters absorb upstream errors themselves; reaching here is a bug
            logger.error("{} {} raised {}: {}", adapter.name, operation, type(e).__name__, e)
        self.health.record(adapter.name, Outcome.FAILURE, (time.perf_counter() - started) * 1000)
        return None

    def _directed(self, name: str) -> SourceAdapter:
        adapter = self.get_adapter(name)
        status = self.health.status(adapter.name)
        if status in (HealthStatus.OFFLINE, HealthStatus.DEGRADED):
            logger.warning("Source {} is {}, calling it anyway as requested", adapter.name, status.value)
        return adapter

    async def _walk(
        self, operation: str, call: AdapterCall, candidates: list[SourceAdapter]
    ) -> tuple[SourceAdapter | None, Any]:
        """Try candidates sequentially until one returns a non-empty result."""
        for adapter in candidates:
            result = await self._attempt(adapter, operation, call)
            if not is_empty(result):
                logger.debug("{} served by {}", operation, adapter.name)
                return adapter, result
            logger.debug("{} empty from {}, trying next source", operation, adapter.name)
        logger.info("{} exhausted {} sources", operation, len(candidates))
        return None, None

    async def _fan_out(
        self, operation: str, call: AdapterCall, targets: list[SourceAdapter]
    ) -> list[tuple[SourceAdapter, Any]]:
        """Call targets concurrently; results that missed the deadline are dropped."""
        if not targets:
            return []
        tasks = [asyncio.create_task(self._attempt(a, operation, call)) for a in targets]
        done, pending = await asyncio.wait(tasks, timeout=self.config.fanout_deadline)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results = []
        for adapter, task in zip(targets, tasks):
            if task in pending:
                logger.warning("{} from {} missed the fan-out deadline", operation, adapter.name)
                self.health.record(adapter.name, Outcome.FAILURE, self.config.fanout_deadline * 1000)
                continue
            result = task.result()
            if not is_empty(result):
                results.append((adapter, result))
        return results

    def _fan_out_targets(
        self, sources: list[str] | None = None, mode: ContentMode = ContentMode.SAFE
    ) -> list[SourceAdapter]:
        if sources:
            return [self.get_adapter(name) for name in sources]
        ordered = self._mode_candidates(mode)
        healthy = [a for a in ordered if self.health.status(a.name) != HealthStatus.OFFLINE]
        return (healthy or ordered)[: self.config.fanout_limit]

    # ========== Validation ==========

    @staticmethod
    def _validate(query: str, page: int = 1, source: str | None = None) -> SearchQuery:
        try:
            return SearchQuery(query=query, page=page, source=source)
        except ValidationError as e:
            raise InvalidRequestError(e.errors()[0]["msg"]) from e

    @staticmethod
    def _validate_page(page: int) -> int:
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise InvalidRequestError(f"Page must be an integer >= 1, got {page!r}")
        return page

    @staticmethod
    def _validate_id(value: str, field: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InvalidRequestError(f"{field} must be a non-empty string")
        return value.strip()

    @staticmethod
    def _validate_mode(mode: ContentMode | str) -> ContentMode:
        try:
            return ContentMode(mode)
        except ValueError as e:
            raise InvalidRequestError(
                f"Mode must be 'safe', 'mixed' or 'adult', got {mode!r}"
            ) from e

    @staticmethod
    def _validate_category(category: Category | str) -> Category:
        try:
            return Category(category)
        except ValueError as e:
            raise InvalidRequestError(f"Category must be 'sub' or 'dub', got {category!r}") from e

    # ========== Listings ==========

    async def _serve(
        self, operation: str, call: AdapterCall, source: str | None, mode: ContentMode
    ) -> tuple[SourceAdapter | None, Any]:
        """Directed call to source, or a walk over the adapters mode admits.

        A directed call returns its adapter even when the result is empty; an
        exhausted walk returns (None, None).
        """
        if source:
            adapter = self._directed(source)
            return adapter, await self._attempt(adapter, operation, call)
        candidates = self._mode_candidates(mode)
        if not candidates:
            logger.warning("No registered source serves {} content", mode.value)
        return await self._walk(operation, call, candidates)

    async def search(
        self,
        query: str,
        page: int = 1,
        source: str | None = None,
        filters: dict | None = None,
        mode: ContentMode | str = ContentMode.SAFE,
    ) -> SearchPage:
        """Search one source (directed) or the first source with results."""
        request = self._validate(query, page, source)
        mode = self._validate_mode(mode)

        async def call(adapter):
            return self._screen(await adapter.search(request.query, request.page, filters), mode)

        adapter, result = await self._serve("search", call, request.source, mode)
        if adapter is None:
            return SearchPage.empty(request.page)
        if result is None:
            return SearchPage.empty(request.page, adapter.name)
        return result.model_copy(update={"source": adapter.name})

    async def search_all(
        self,
        query: str,
        page: int = 1,
        sources: list[str] | None = None,
        mode: ContentMode | str = ContentMode.SAFE,
    ) -> SearchPage:
        """Search every healthy source concurrently and merge unique titles.

        Results keep priority order; a title already seen from a
        higher-priority source is dropped. source lists contributors as
        "a+b", or "none".
        """
        request = self._validate(query, page)
        mode = self._validate_mode(mode)
        targets = self._fan_out_targets(sources, mode)

        async def call(adapter):
            return self._screen(await adapter.search(request.query, request.page), mode)

        answered = await self._fan_out("search_all", call, targets)

        merged, seen, contributors = [], set(), []
        total_pages, has_next = 0, False
        for adapter, result in answered:
            contributors.append(adapter.name)
            total_pages = max(total_pages, result.total_pages)
            has_next = has_next or result.has_next_page
            for record in result.results:
                key = dedupe_key(record.title)
                if key not in seen:
                    seen.add(key)
                    merged.append(record)

        return SearchPage(
            results=merged,
            total_pages=total_pages,
            current_page=request.page,
            has_next_page=has_next,
            source="+".join(contributors) or "none",
        )

    async def get_by_genre(
        self,
        genre: str,
        page: int = 1,
        source: str | None = None,
        mode: ContentMode | str = ContentMode.SAFE,
    ) -> SearchPage:
        """Genre listing; adapters without one fall back to searching the genre name."""
        request = self._validate(genre, page, source)
        mode = self._validate_mode(mode)

        async def call(adapter):
            return self._screen(await adapter.get_by_genre(request.query, request.page), mode)

        adapter, result = await self._serve("genre", call, request.source, mode)
        if adapter is None:
            return SearchPage.empty(request.page)
        if result is None:
            return SearchPage.empty(request.page, adapter.name)
        return result.model_copy(update={"source": adapter.name})

    async def _interleaved(
        self, operation: str, call: AdapterCall, limit: int | None, mode: ContentMode
    ) -> list[AnimeRecord]:
        async def screened(adapter):
            return self._screen(await call(adapter), mode)

        answered = await self._fan_out(operation, screened, self._fan_out_targets(mode=mode))
        lists = [result for _, result in answered]
        merged, seen = [], set()
        for index in range(max((len(items) for items in lists), default=0)):
            for items in lists:
                if index < len(items):
                    key = dedupe_key(items[index].title)
                    if key not in seen:
                        seen.add(key)
                        merged.append(items[index])
        return merged[:limit] if limit else merged

    async def get_trending(
        self, page: int = 1, limit: int | None = None, mode: ContentMode | str = ContentMode.SAFE
    ) -> list[AnimeRecord]:
        """Trending titles from all healthy sources, interleaved round-robin."""
        self._validate_page(page)
        mode = self._validate_mode(mode)
        return await self._interleaved("trending", lambda a: a.get_trending(page), limit, mode)

    async def get_latest(
        self, page: int = 1, limit: int | None = None, mode: ContentMode | str = ContentMode.SAFE
    ) -> list[AnimeRecord]:
        """Recently updated titles from all healthy sources, interleaved round-robin."""
        self._validate_page(page)
        mode = self._validate_mode(mode)
        return await self._interleaved("latest", lambda a: a.get_latest(page), limit, mode)

    async def get_top_rated(
        self,
        page: int = 1,
        limit: int = 10,
        source: str | None = None,
        mode: ContentMode | str = ContentMode.SAFE,
    ) -> list[RankedAnime]:
        """Top-rated chart of one source, falling back to the next source with one."""
        self._validate_page(page)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidRequestError(f"Limit must be an integer >= 1, got {limit!r}")
        mode = self._validate_mode(mode)

        async def call(adapter):
            return self._screen(await adapter.get_top_rated(page, limit), mode)

        _, chart = await self._serve("top_rated", call, source, mode)
        return chart or []

    async def _pool(self, adapter: SourceAdapter, mode: ContentMode) -> list[AnimeRecord]:
        """Trending pages 1..pool_pages of one adapter, unique by id."""
        pages = range(1, self.config.pool_pages + 1)
        batches = await asyncio.gather(*(adapter.get_trending(page) for page in pages))
        pool = {}
        for record in (r for batch in batches for r in batch):
            pool.setdefault(record.id, record)
        return self._screen(list(pool.values()), mode)

    async def get_random_anime(
        self, source: str | None = None, mode: ContentMode | str = ContentMode.SAFE
    ) -> AnimeRecord | None:
        """A random pick from the trending pool of the first source that has one."""
        mode = self._validate_mode(mode)
        adapter, pool = await self._serve(
            "random", lambda a: self._pool(a, mode), source, mode
        )
        if not pool:
            return None
        pick = self._rng.choice(pool)
        logger.debug("Random pick {} out of {} from {}", pick.id, len(pool), adapter.name)
        return pick

    async def browse_anime(self, filters: BrowseFilters | dict | None = None) -> SearchPage:
        """Filter, sort and paginate the trending pool of one source.

        The pool is trending pages 1..pool_pages of the first source (in
        fallback order, or the one named by filters.source) that returns
        any titles; filters then apply to that pool only.

        Raises:
            InvalidRequestError: If filters do not validate
        """
        if not isinstance(filters, BrowseFilters):
            try:
                filters = BrowseFilters.model_validate(filters or {})
            except ValidationError as e:
                raise InvalidRequestError(e.errors()[0]["msg"]) from e

        adapter, pool = await self._serve(
            "browse", lambda a: self._pool(a, filters.mode), filters.source, filters.mode
        )
        if adapter is None:
            return SearchPage.empty(filters.page)

        matched = [record for record in pool or [] if filters.matches(record)]
        matched.sort(key=filters.sort_key, reverse=filters.order == "desc")
        start = (filters.page - 1) * filters.limit
        return SearchPage(
            results=matched[start : start + filters.limit],
            total_pages=math.ceil(len(matched) / filters.limit),
            current_page=filters.page,
            has_next_page=start + filters.limit < len(matched),
            source=adapter.name,
        )

    async def find_streaming_match(self, title: str) -> AnimeRecord | None:
        """Best fuzzy title match for title across all healthy sources."""
        request = self._validate(title)
        page = await self.search_all(request.query)
        if page.is_empty:
            return None
        cfg = settings.streaming
        threshold = cfg.single_match_threshold if len(page.results) == 1 else cfg.match_threshold
        index = best_match(request.query, [record.title for record in page.results], threshold)
        return page.results[index] if index is not None else None

    # ========== Id-scoped lookups ==========

    async def _lookup(
        self, operation: str, item_id: str, call: AdapterCall, source: str | None
    ) -> tuple[SourceAdapter | None, Any]:
        if source:
            adapter = self._directed(source)
            result = await self._attempt(adapter, operation, call)
            return (adapter, result) if not is_empty(result) else (None, None)
        return await self._walk(operation, call, self._owners(item_id))

    async def get_details(self, anime_id: str, source: str | None = None) -> AnimeRecord | None:
        anime_id = self._validate_id(anime_id, "anime_id")
        _, record = await self._lookup(
            "details", anime_id, lambda a: a.get_details(anime_id), source
        )
        return record

    async def get_episodes(self, anime_id: str, source: str | None = None) -> list[EpisodeRecord]:
        anime_id = self._validate_id(anime_id, "anime_id")
        _, episodes = await self._lookup(
            "episodes", anime_id, lambda a: a.get_episodes(anime_id), source
        )
        return episodes or []

    async def get_servers(self, episode_id: str, source: str | None = None) -> list[EpisodeServer]:
        episode_id = self._validate_id(episode_id, "episode_id")
        _, servers = await self._lookup(
            "servers", episode_id, lambda a: a.get_servers(episode_id), source
        )
        return servers or []

    async def get_streaming_links(
        self,
        episode_id: str,
        server: str | None = None,
        category: Category | str = Category.SUB,
        source: str | None = None,
    ) -> StreamingBundle:
        """Playable sources for an episode; an empty bundle when nothing plays."""
        episode_id = self._validate_id(episode_id, "episode_id")
        category = self._validate_category(category)
        adapter, bundle = await self._lookup(
            "stream",
            episode_id,
            lambda a: a.get_streaming_links(episode_id, server, category),
            source,
        )
        if adapter is None:
            return StreamingBundle.empty(self.get_adapter(source).name if source else "none")
        return bundle.model_copy(update={"source": adapter.name})

    # ========== Lifecycle ==========

    def sweep_caches(self) -> int:
        """Purge expired cache entries of every adapter."""
        purged = sum(adapter.cache.sweep() for adapter in self._adapters.values())
        if purged:
            logger.debug("Swept {} expired cache entries", purged)
        return purged

    def clear_caches(self, prefix: str | None = None) -> None:
        for adapter in self._adapters.values():
            if prefix:
                adapter.cache.clear_by_prefix(prefix)
            else:
                adapter.cache.clear()

    async def _every(self, seconds: float, job: Callable[[], Any]) -> None:
        while True:
            await asyncio.sleep(seconds)
            try:
                outcome = job()
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception as e:
                logger.exception("Background job {} failed: {}", getattr(job, "__name__", job), e)

    def start(self) -> None:
        """Start the periodic cache sweep and Offline re-probe tasks."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._every(settings.cache.sweep_interval, self.sweep_caches)),
            asyncio.create_task(self._every(self.health.config.probe_interval, self.probe_offline)),
        ]

    async def close(self) -> None:
        """Stop background tasks and close adapter HTTP sessions."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await asyncio.gather(*(adapter.close() for adapter in self._adapters.values()))

    async def __aenter__(self) -> "SourceManager":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
