"""
Shared test fixtures and configuration for anistream-hub test suite.

This module provides:
- A controllable clock for TTL expiry
- Fake source adapters with canned data and call counters
- SourceManager fixtures wired to fake adapters
"""

import asyncio
import os
from collections import Counter
from unittest.mock import AsyncMock

import pytest

# Keep test runs from writing log files under the user's state dir
os.environ.setdefault("ANISTREAM__LOGGING__TO_FILE", "false")

from models.models import (  # noqa: E402
    AnimeRecord,
    EpisodeRecord,
    EpisodeServer,
    Quality,
    RankedAnime,
    SearchPage,
    SourceCapabilities,
    StreamingBundle,
    VideoVariant,
)
from scrapers.base import SourceAdapter  # noqa: E402
from scrapers.streaming import StreamingResolver  # noqa: E402
from services.health import HealthMonitor  # noqa: E402
from services.source_manager import SourceManager  # noqa: E402


# ========== Clock ==========


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ========== Fake Adapters ==========


class FakeAdapter(SourceAdapter):
    """Adapter serving canned data without network.

    Args:
        name: Adapter name
        titles: Titles returned by search/trending/latest ([] = empty result)
        streams: server -> list of variants, or an exception to raise
        fail: Hook names that raise RuntimeError
        delay: Seconds to sleep inside every hook
        healthy: Health check answer
        mature: Titles flagged as adult content
        meta: title -> extra AnimeRecord fields (type, genres, rating, ...)
        adult: Whether the adapter is an adult source
    """

    def __init__(
        self,
        name,
        titles=None,
        streams=None,
        fail=(),
        delay=0.0,
        healthy=True,
        episodes=3,
        clock=None,
        server_priority=None,
        mature=(),
        meta=None,
        adult=False,
    ):
        self.name = name
        if adult:
            self.capabilities = SourceCapabilities(is_adult=True)
        super().__init__(
            fetcher=AsyncMock(),
            clock=clock or FakeClock(),
            resolver=StreamingResolver(max_retries=2, backoff=1.0, sleep=AsyncMock()),
        )
        self.titles = list(titles or [])
        self.streams = streams or {}
        self.fail = set(fail)
        self.delay = delay
        self.healthy = healthy
        self.episode_count = episodes
        self.mature = set(mature)
        self.meta = meta or {}
        if server_priority is not None:
            self.server_priority = server_priority
        self.calls = Counter()
        self.stream_attempts = []

    async def _hook(self, hook):
        self.calls[hook] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if hook in self.fail:
            raise RuntimeError(f"{self.name} {hook} broken")

    def _record(self, title):
        slug = "-".join(title.lower().split())
        return AnimeRecord(
            id=self.qualify(slug),
            title=title,
            source=self.name,
            is_mature=title in self.mature,
            **self.meta.get(title, {}),
        )

    async def _health_check(self):
        await self._hook("health_check")
        return self.healthy

    async def _search(self, query, page, filters):
        await self._hook("search")
        return SearchPage(
            results=[self._record(t) for t in self.titles],
            total_pages=1 if self.titles else 0,
            current_page=page,
            source=self.name,
        )

    async def _get_details(self, raw_id):
        await self._hook("details")
        if not self.titles:
            return None
        return AnimeRecord(id=self.qualify(raw_id), title=self.titles[0], source=self.name)

    async def _get_episodes(self, raw_id):
        await self._hook("episodes")
        return [
            EpisodeRecord(id=self.qualify(f"{raw_id}-{n}"), number=n)
            for n in range(1, self.episode_count + 1)
        ]

    async def _get_servers(self, raw_episode_id):
        await self._hook("servers")
        return [EpisodeServer(name=name) for name in self.streams]

    async def _fetch_stream(self, raw_episode_id, server, category):
        self.stream_attempts.append(server)
        await self._hook("stream")
        outcome = self.streams.get(server, [])
        if isinstance(outcome, Exception):
            raise outcome
        return StreamingBundle(sources=list(outcome))


class GenreAdapter(FakeAdapter):
    """Fake adapter with a native genre listing."""

    async def _get_by_genre(self, genre, page):
        await self._hook("genre")
        return SearchPage(
            results=[self._record(f"{genre.title()} {t}") for t in self.titles],
            total_pages=1,
            current_page=page,
        )


class TrendingAdapter(FakeAdapter):
    """Fake adapter with trending, latest and top-rated listings."""

    async def _get_trending(self, page):
        await self._hook("trending")
        return [self._record(t) for t in self.titles]

    async def _get_latest(self, page):
        await self._hook("latest")
        return [self._record(t) for t in reversed(self.titles)]

    async def _get_top_rated(self, page, limit):
        await self._hook("top_rated")
        return [
            RankedAnime(rank=rank, anime=self._record(t))
            for rank, t in enumerate(self.titles[:limit], start=1)
        ]


class BrokenAdapter(FakeAdapter):
    """Adapter violating the contract: public calls raise."""

    async def search(self, query, page=1, filters=None):
        self.calls["search"] += 1
        raise RuntimeError("contract violation")

    async def get_trending(self, page=1):
        self.calls["trending"] += 1
        raise RuntimeError("contract violation")


ADAPTER_KINDS = {
    "plain": FakeAdapter,
    "genre": GenreAdapter,
    "trending": TrendingAdapter,
    "broken": BrokenAdapter,
}


@pytest.fixture
def make_adapter(clock):
    """Factory for fake adapters sharing the test clock.

    Usage:
        make_adapter("a", titles=["Naruto"], kind="trending")
    """

    def factory(name, kind="plain", **kwargs):
        kwargs.setdefault("clock", clock)
        return ADAPTER_KINDS[kind](name, **kwargs)

    return factory


@pytest.fixture
def variants():
    """Two variants in the wrong order (auto before 1080p)."""
    return [
        VideoVariant(url="https://cdn.example/auto.m3u8", quality=Quality.AUTO, is_m3u8=True),
        VideoVariant(url="https://cdn.example/1080.m3u8", quality=Quality.Q1080, is_m3u8=True),
    ]


# ========== Manager Fixtures ==========


@pytest.fixture
def health():
    return HealthMonitor()


@pytest.fixture
def make_manager(health):
    """Factory for a SourceManager over given adapters, priority = list order."""

    def factory(*adapters, **kwargs):
        kwargs.setdefault("health", health)
        return SourceManager(
            list(adapters), priority=[a.name for a in adapters], **kwargs
        )

    return factory

