"""Source adapter system for anime providers.

Plugin architecture for multi-source aggregation:
- base: Adapter contract (caching, error absorption, health reporting)
- streaming: Server x retry fallback walk for streaming links
- fetcher: Shared aiohttp client
- loader: Plugin discovery and loading system
- plugins: Actual provider implementations
"""

from scrapers import loader

__all__ = ["loader"]
