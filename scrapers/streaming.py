"""Streaming resolver: fallback walk over (server x retry) combinations.

Obtaining playable sources is the most brittle upstream operation, so the
resolver tries the requested server first, then the adapter's own server
priority list, retrying each a bounded number of times with linear backoff.
The first bundle with at least one variant wins.
"""

import asyncio
from typing import Awaitable, Callable

from models.config import settings
from models.models import Category, StreamingBundle
from utils.logging import get_logger

logger = get_logger(__name__)

StreamFetch = Callable[[str, str, Category], Awaitable[StreamingBundle | None]]


def server_order(requested: str | None, priority: list[str]) -> list[str]:
    """Trial order: requested server, then priority list, without repeats.

    Examples:
        server_order("hd-1", ["hd-2", "hd-1", "hd-3"]) -> ["hd-1", "hd-2", "hd-3"]
        server_order(None, ["hd-2", "hd-1"]) -> ["hd-2", "hd-1"]
    """
    order = []
    seen = set()
    for server in [requested, *priority]:
        if not server:
            continue
        key = server.strip().lower()
        if key and key not in seen:
            seen.add(key)
            order.append(server.strip())
    return order


class StreamingResolver:
    """Walks servers and retries until a playable bundle is found.

    Args:
        max_retries: Extra attempts per server after the first one
        backoff: Seconds multiplied by the attempt number between retries
        sleep: Awaitable sleep (injectable for tests)
    """

    def __init__(
        self,
        max_retries: int | None = None,
        backoff: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_retries = settings.streaming.max_retries if max_retries is None else max_retries
        self.backoff = settings.streaming.backoff_seconds if backoff is None else backoff
        self._sleep = sleep

    async def resolve(
        self,
        fetch: StreamFetch,
        episode_id: str,
        servers: list[str],
        category: Category,
    ) -> StreamingBundle:
        """Return the first non-empty bundle, sorted best quality first.

        Args:
            fetch: Provider call (episode_id, server, category) -> bundle
            episode_id: Episode token of the owning adapter
            servers: Trial order from server_order()
            category: sub or dub

        Returns:
            Winning bundle tagged with its server, or an empty bundle
        """
        for server in servers:
            for attempt in range(self.max_retries + 1):
                if attempt:
                    await self._sleep(attempt * self.backoff)
                try:
                    bundle = await fetch(episode_id, server, category)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.debug(
                        "Server {} attempt {} failed for {}: {}",
                        server, attempt + 1, episode_id, e,
                    )
                    continue

                if bundle is not None and not bundle.is_empty:
                    logger.debug("Server {} resolved {} on attempt {}", server, episode_id, attempt + 1)
                    return bundle.sorted_by_quality().model_copy(update={"server": server})

                logger.debug("Server {} returned no sources for {} (attempt {})", server, episode_id, attempt + 1)

        logger.info("No playable sources for {} after trying {}", episode_id, servers)
        return StreamingBundle.empty()
